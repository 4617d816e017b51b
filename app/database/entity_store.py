from __future__ import annotations
from abc import ABC, abstractmethod
from typing import Any, Optional, Sequence

from app.schemas.data import (
    Assignment, Course, Enrollment, EnrollmentStatus, Group, Review, Submission,
    SubmissionHistory, User,
)
from app.schemas.queries import ReviewQuery, SubmissionQuery


class EntityStore(ABC):
    """Persistence contract used by the reconciler, the ledger and the aggregator.

    Lookups that must return exactly one entity raise ``NotFound``; any other
    persistence error surfaces as ``StoreFailure``.
    """

    @abstractmethod
    async def ensure_schema(self) -> None:
        raise NotImplementedError

    # Existence checks
    @abstractmethod
    async def count_users(self, *, user_id: int) -> int:
        raise NotImplementedError

    @abstractmethod
    async def count_groups(self, *, group_id: int) -> int:
        raise NotImplementedError

    @abstractmethod
    async def count_assignments(self, *, assignment_id: int) -> int:
        raise NotImplementedError

    # Submissions
    @abstractmethod
    async def find_last_submission(self, query: SubmissionQuery) -> Submission:
        """Most recently created match, reviews attached. Raises NotFound."""
        raise NotImplementedError

    @abstractmethod
    async def find_submissions(self, query: SubmissionQuery) -> list[Submission]:
        raise NotImplementedError

    @abstractmethod
    async def upsert_submission(self, submission: Submission) -> Submission:
        """Find-or-create the (assignment, owner) row and assign the incoming values."""
        raise NotImplementedError

    @abstractmethod
    async def update_submission(self, *, submission_id: int, values: dict[str, Any]) -> Submission:
        raise NotImplementedError

    @abstractmethod
    async def update_submissions(
        self, *, course_id: int, assignment_id: int, minimum_score: int, values: dict[str, Any]
    ) -> int:
        raise NotImplementedError

    @abstractmethod
    async def find_submission_history(self, *, submission_id: int) -> list[SubmissionHistory]:
        raise NotImplementedError

    # Reviews
    @abstractmethod
    async def create_review(self, review: Review) -> Review:
        raise NotImplementedError

    @abstractmethod
    async def update_review(self, review: Review) -> int:
        raise NotImplementedError

    @abstractmethod
    async def delete_reviews(self, query: ReviewQuery) -> int:
        raise NotImplementedError

    @abstractmethod
    async def find_reviews(self, query: ReviewQuery) -> list[Review]:
        raise NotImplementedError

    # Course reads
    @abstractmethod
    async def get_course(self, *, course_id: int) -> Course:
        """Course with its assignments preloaded. Raises NotFound."""
        raise NotImplementedError

    @abstractmethod
    async def get_assignments(self, *, course_id: int) -> list[Assignment]:
        raise NotImplementedError

    @abstractmethod
    async def get_enrollments_for_user(
        self, *, user_id: int, statuses: Optional[Sequence[EnrollmentStatus]] = None
    ) -> list[Enrollment]:
        raise NotImplementedError

    @abstractmethod
    async def get_enrollments_for_course(
        self,
        *,
        course_id: int,
        exclude_group_members: bool = False,
        statuses: Optional[Sequence[EnrollmentStatus]] = None,
    ) -> list[Enrollment]:
        raise NotImplementedError

    @abstractmethod
    async def get_user(self, *, user_id: int) -> User:
        raise NotImplementedError

    @abstractmethod
    async def get_group(self, *, group_id: int) -> Group:
        """Group with its members. Raises NotFound."""
        raise NotImplementedError
