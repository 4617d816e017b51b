from __future__ import annotations
from typing import Any, Literal, Optional, TypedDict

# ---- Event payloads (camelCase on the wire) ----
class SubmissionResultPayload(TypedDict, total=False):
    assignmentId: int
    userId: Optional[int]
    groupId: Optional[int]
    score: Optional[int]
    status: str
    released: bool
    testResults: Optional[dict[str, Any]]
    commitHash: Optional[str]

class ReviewEventPayload(TypedDict, total=False):
    action: Literal["create", "update", "delete"]
    id: int
    submissionId: int
    reviewerId: int
    feedback: str
    review: Optional[dict[str, Any]]
    ready: bool
    score: int
