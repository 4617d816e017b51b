from __future__ import annotations
from typing import Optional
from pydantic import BaseModel, Field

from app.schemas.data import SubmissionStatus


class SubmissionStatusUpdate(BaseModel):
    status: SubmissionStatus
    released: bool = False


class ApprovalRequest(BaseModel):
    minimum_score: int = Field(..., ge=0)
    status: SubmissionStatus = SubmissionStatus.APPROVED
    released: bool = False


class ApprovalResult(BaseModel):
    updated: int


class ReviewDeleteResult(BaseModel):
    deleted: int


class ReviewUpdateResult(BaseModel):
    updated: int
    review_id: Optional[int] = None
