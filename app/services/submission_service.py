from __future__ import annotations
import logging
from typing import Optional

from app.core.errors import InvalidReference, NotFound
from app.database.entity_store import EntityStore
from app.schemas.data import Submission, SubmissionHistory, SubmissionStatus
from app.schemas.queries import SubmissionQuery

logger = logging.getLogger(__name__)


def _owner(submission: Submission) -> tuple[Optional[int], Optional[int]]:
    """Return (user_id, group_id) with exactly one set, or raise InvalidReference."""
    if not submission.assignment_id or submission.assignment_id < 1:
        raise InvalidReference("submission must reference an assignment")
    has_user = bool(submission.user_id and submission.user_id > 0)
    has_group = bool(submission.group_id and submission.group_id > 0)
    if has_user == has_group:
        raise InvalidReference("submission must belong to exactly one user or one group")
    return (submission.user_id, None) if has_user else (None, submission.group_id)


class SubmissionService:
    """Reconciles incoming submissions with the single stored record per
    (assignment, owner) and performs bulk approval."""

    def __init__(self, store: EntityStore):
        self.store = store

    async def upsert_submission(self, submission: Submission) -> Submission:
        user_id, group_id = _owner(submission)

        if user_id:
            owners = await self.store.count_users(user_id=user_id)
        else:
            owners = await self.store.count_groups(group_id=group_id)
        found_assignments = await self.store.count_assignments(assignment_id=submission.assignment_id)
        if owners != 1 or found_assignments != 1:
            raise NotFound(
                f"assignment {submission.assignment_id} or owner "
                f"(user={submission.user_id}, group={submission.group_id}) does not exist"
            )

        # A zero score is written as-is.
        stored = await self.store.upsert_submission(
            submission.model_copy(update={"user_id": user_id, "group_id": group_id})
        )
        submission.id = stored.id
        logger.info("Submission reconciled",
                    extra={"submission_id": stored.id, "assignment_id": stored.assignment_id,
                           "score": stored.score})
        return stored

    async def get_latest_submission(self, query: SubmissionQuery) -> Submission:
        return await self.store.find_last_submission(query)

    async def get_last_submissions_for_course(
        self, course_id: int, query: SubmissionQuery
    ) -> list[Submission]:
        course = await self.store.get_course(course_id=course_id)
        latest: list[Submission] = []
        for assignment in course.assignments:
            try:
                latest.append(
                    await self.store.find_last_submission(
                        query.model_copy(update={"assignment_id": assignment.id})
                    )
                )
            except NotFound:
                continue
        return latest

    async def get_submissions(self, query: SubmissionQuery) -> list[Submission]:
        return await self.store.find_submissions(query)

    async def update_submission(
        self, submission_id: int, status: SubmissionStatus, released: bool
    ) -> Submission:
        return await self.store.update_submission(
            submission_id=submission_id,
            values={"status": status.value, "released": released},
        )

    async def approve_by_threshold(
        self,
        course_id: int,
        assignment_id: int,
        minimum_score: int,
        status: SubmissionStatus,
        released: bool,
    ) -> int:
        """Set status and released on every submission of the assignment
        scoring at least ``minimum_score``. Returns the number of rows touched."""
        updated = await self.store.update_submissions(
            course_id=course_id,
            assignment_id=assignment_id,
            minimum_score=minimum_score,
            values={"status": status.value, "released": released},
        )
        logger.info("Bulk approval applied",
                    extra={"course_id": course_id, "assignment_id": assignment_id,
                           "minimum_score": minimum_score, "updated": updated})
        return updated

    async def get_submission_history(self, submission_id: int) -> list[SubmissionHistory]:
        return await self.store.find_submission_history(submission_id=submission_id)
