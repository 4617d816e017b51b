from __future__ import annotations
from typing import Any, Optional
from pydantic import BaseModel

from app.schemas.data import SubmissionStatus


class Filter(BaseModel):
    """Equality filter: only fields that are set (not None) become clauses."""

    def clauses(self) -> dict[str, Any]:
        return self.model_dump(mode="json", exclude_none=True)

    def is_empty(self) -> bool:
        return not self.clauses()


class SubmissionQuery(Filter):
    assignment_id: Optional[int] = None
    user_id: Optional[int] = None
    group_id: Optional[int] = None
    status: Optional[SubmissionStatus] = None
    released: Optional[bool] = None


class ReviewQuery(Filter):
    id: Optional[int] = None
    submission_id: Optional[int] = None
    reviewer_id: Optional[int] = None
    ready: Optional[bool] = None
