# app/routers/v1/submissions.py
from typing import Annotated, Optional
from fastapi import APIRouter, Depends

from app.core.deps import get_submission_service
from app.schemas.data import Submission, SubmissionHistory, SubmissionStatus
from app.schemas.queries import SubmissionQuery
from app.schemas.requests import ApprovalRequest, ApprovalResult, SubmissionStatusUpdate
from app.services.submission_service import SubmissionService

router = APIRouter()
SubmissionsDep = Annotated[SubmissionService, Depends(get_submission_service)]


def submission_query(
    assignment_id: Optional[int] = None,
    user_id: Optional[int] = None,
    group_id: Optional[int] = None,
    status: Optional[SubmissionStatus] = None,
    released: Optional[bool] = None,
) -> SubmissionQuery:
    return SubmissionQuery(
        assignment_id=assignment_id, user_id=user_id, group_id=group_id,
        status=status, released=released,
    )

QueryDep = Annotated[SubmissionQuery, Depends(submission_query)]


@router.post("/submissions", response_model=Submission)
async def upsert_submission(submission: Submission, service: SubmissionsDep):
    return await service.upsert_submission(submission)

@router.get("/submissions/latest", response_model=Submission)
async def latest_submission(query: QueryDep, service: SubmissionsDep):
    return await service.get_latest_submission(query)

@router.get("/submissions", response_model=list[Submission])
async def list_submissions(query: QueryDep, service: SubmissionsDep):
    return await service.get_submissions(query)

@router.get("/submissions/{submission_id}/history", response_model=list[SubmissionHistory])
async def submission_history(submission_id: int, service: SubmissionsDep):
    return await service.get_submission_history(submission_id)

@router.patch("/submissions/{submission_id}", response_model=Submission)
async def update_submission(submission_id: int, body: SubmissionStatusUpdate, service: SubmissionsDep):
    return await service.update_submission(submission_id, body.status, body.released)

@router.post(
    "/courses/{course_id}/assignments/{assignment_id}/approve",
    response_model=ApprovalResult,
)
async def approve_assignment(
    course_id: int, assignment_id: int, body: ApprovalRequest, service: SubmissionsDep
):
    updated = await service.approve_by_threshold(
        course_id, assignment_id, body.minimum_score, body.status, body.released
    )
    return ApprovalResult(updated=updated)
