import itertools
from datetime import datetime, timedelta, timezone
from typing import Any, Optional, Sequence

import pytest

from app.core.errors import NotFound
from app.database.entity_store import EntityStore
from app.schemas.data import (
    Assignment, Course, Enrollment, EnrollmentStatus, Group, Review, Submission,
    SubmissionHistory, User,
)
from app.schemas.queries import Filter, ReviewQuery, SubmissionQuery

MERGED_FIELDS = ("score", "status", "released", "test_results", "commit_hash")


def _matches(entity, query: Filter) -> bool:
    return all(getattr(entity, name) == value for name, value in query.clauses().items())


class FakeEntityStore(EntityStore):
    """In-memory store honoring the EntityStore contract. Records every call."""

    def __init__(self):
        self.users: dict[int, User] = {}
        self.groups: dict[int, Group] = {}
        self.courses: dict[int, Course] = {}
        self.assignments: dict[int, Assignment] = {}
        self.enrollments: list[Enrollment] = []
        self.submissions: dict[int, Submission] = {}
        self.reviews: dict[int, Review] = {}
        self.history: list[SubmissionHistory] = []
        self.calls: list[str] = []
        self.writes = 0
        self._ids = itertools.count(1)
        self._clock = datetime(2024, 1, 1, tzinfo=timezone.utc)

    # ---- seeding helpers ----
    def add_user(self, user_id: int, name: str = "") -> User:
        self.users[user_id] = User(id=user_id, name=name or f"user{user_id}")
        return self.users[user_id]

    def add_course(self, course_id: int, name: str = "") -> Course:
        self.courses[course_id] = Course(id=course_id, name=name or f"course{course_id}")
        return self.courses[course_id]

    def add_assignment(self, assignment_id: int, course_id: int, order: int = 0) -> Assignment:
        a = Assignment(id=assignment_id, course_id=course_id, name=f"lab{assignment_id}", order=order)
        self.assignments[assignment_id] = a
        return a

    def add_group(self, group_id: int, course_id: int, name: str = "") -> Group:
        self.groups[group_id] = Group(id=group_id, course_id=course_id, name=name or f"group{group_id}")
        return self.groups[group_id]

    def enroll(self, user_id: int, course_id: int, status=EnrollmentStatus.STUDENT,
               group_id: Optional[int] = None) -> Enrollment:
        e = Enrollment(id=len(self.enrollments) + 1, course_id=course_id, user_id=user_id,
                       group_id=group_id, status=status)
        self.enrollments.append(e)
        return e

    def _tick(self) -> datetime:
        self._clock += timedelta(seconds=1)
        return self._clock

    # ---- contract ----
    async def ensure_schema(self) -> None:
        self.calls.append("ensure_schema")

    async def count_users(self, *, user_id: int) -> int:
        self.calls.append("count_users")
        return int(user_id in self.users)

    async def count_groups(self, *, group_id: int) -> int:
        self.calls.append("count_groups")
        return int(group_id in self.groups)

    async def count_assignments(self, *, assignment_id: int) -> int:
        self.calls.append("count_assignments")
        return int(assignment_id in self.assignments)

    async def find_last_submission(self, query: SubmissionQuery) -> Submission:
        self.calls.append("find_last_submission")
        found = [s for s in self.submissions.values() if _matches(s, query)]
        if not found:
            raise NotFound(f"no submission matches {query.clauses()}")
        last = max(found, key=lambda s: (s.created_at, s.id))
        attached = [r for r in self.reviews.values() if r.submission_id == last.id]
        return last.model_copy(update={"reviews": attached})

    async def find_submissions(self, query: SubmissionQuery) -> list[Submission]:
        self.calls.append("find_submissions")
        return [s.model_copy() for s in self.submissions.values() if _matches(s, query)]

    async def upsert_submission(self, submission: Submission) -> Submission:
        self.calls.append("upsert_submission")
        self.writes += 1
        now = self._tick()
        current = next(
            (s for s in self.submissions.values()
             if (s.assignment_id, s.user_id, s.group_id)
             == (submission.assignment_id, submission.user_id, submission.group_id)),
            None,
        )
        if current is None:
            current = submission.model_copy(
                update={"id": next(self._ids), "created_at": now, "updated_at": now, "reviews": []}
            )
        else:
            current = current.model_copy(
                update={**{f: getattr(submission, f) for f in MERGED_FIELDS}, "updated_at": now}
            )
        self.submissions[current.id] = current
        self.history.append(SubmissionHistory(
            id=len(self.history) + 1, submission_id=current.id, score=current.score,
            status=current.status, released=current.released, recorded_at=now,
        ))
        return current.model_copy()

    async def update_submission(self, *, submission_id: int, values: dict[str, Any]) -> Submission:
        self.calls.append("update_submission")
        if submission_id not in self.submissions:
            raise NotFound(f"submission {submission_id} not found")
        self.writes += 1
        current = self.submissions[submission_id]
        self.submissions[submission_id] = Submission.model_validate({**current.model_dump(), **values})
        return self.submissions[submission_id].model_copy()

    async def update_submissions(
        self, *, course_id: int, assignment_id: int, minimum_score: int, values: dict[str, Any]
    ) -> int:
        self.calls.append("update_submissions")
        self.writes += 1
        assignment = self.assignments.get(assignment_id)
        if assignment is None or assignment.course_id != course_id:
            return 0
        updated = 0
        for sid, s in list(self.submissions.items()):
            if s.assignment_id == assignment_id and s.score is not None and s.score >= minimum_score:
                self.submissions[sid] = Submission.model_validate({**s.model_dump(), **values})
                updated += 1
        return updated

    async def find_submission_history(self, *, submission_id: int) -> list[SubmissionHistory]:
        self.calls.append("find_submission_history")
        return [h for h in self.history if h.submission_id == submission_id]

    async def create_review(self, review: Review) -> Review:
        self.calls.append("create_review")
        self.writes += 1
        created = review.model_copy(update={"id": next(self._ids)})
        self.reviews[created.id] = created
        return created.model_copy()

    async def update_review(self, review: Review) -> int:
        self.calls.append("update_review")
        current = self.reviews.get(review.id)
        if current is None or (current.submission_id, current.reviewer_id) != (
            review.submission_id, review.reviewer_id
        ):
            return 0
        self.writes += 1
        self.reviews[review.id] = current.model_copy(update={
            "feedback": review.feedback, "review": review.review,
            "ready": review.ready, "score": review.score,
        })
        return 1

    async def delete_reviews(self, query: ReviewQuery) -> int:
        self.calls.append("delete_reviews")
        self.writes += 1
        doomed = [rid for rid, r in self.reviews.items() if _matches(r, query)]
        for rid in doomed:
            del self.reviews[rid]
        return len(doomed)

    async def find_reviews(self, query: ReviewQuery) -> list[Review]:
        self.calls.append("find_reviews")
        return [r.model_copy() for r in self.reviews.values() if _matches(r, query)]

    async def get_course(self, *, course_id: int) -> Course:
        self.calls.append("get_course")
        if course_id not in self.courses:
            raise NotFound(f"course {course_id} not found")
        return self.courses[course_id].model_copy(
            update={"assignments": self._assignments(course_id)}
        )

    async def get_assignments(self, *, course_id: int) -> list[Assignment]:
        self.calls.append("get_assignments")
        return self._assignments(course_id)

    def _assignments(self, course_id: int) -> list[Assignment]:
        return sorted(
            (a for a in self.assignments.values() if a.course_id == course_id),
            key=lambda a: (a.order, a.id),
        )

    async def get_enrollments_for_user(
        self, *, user_id: int, statuses: Optional[Sequence[EnrollmentStatus]] = None
    ) -> list[Enrollment]:
        self.calls.append("get_enrollments_for_user")
        return [
            self._attach(e) for e in self.enrollments
            if e.user_id == user_id and (not statuses or e.status in statuses)
        ]

    async def get_enrollments_for_course(
        self,
        *,
        course_id: int,
        exclude_group_members: bool = False,
        statuses: Optional[Sequence[EnrollmentStatus]] = None,
    ) -> list[Enrollment]:
        self.calls.append("get_enrollments_for_course")
        return [
            self._attach(e) for e in self.enrollments
            if e.course_id == course_id
            and not (exclude_group_members and e.group_id is not None)
            and (not statuses or e.status in statuses)
        ]

    def _attach(self, e: Enrollment) -> Enrollment:
        return e.model_copy(update={
            "user": self.users.get(e.user_id),
            "course": self.courses.get(e.course_id),
            "group": self.groups.get(e.group_id) if e.group_id else None,
        })

    async def get_user(self, *, user_id: int) -> User:
        self.calls.append("get_user")
        if user_id not in self.users:
            raise NotFound(f"user {user_id} not found")
        return self.users[user_id]

    async def get_group(self, *, group_id: int) -> Group:
        self.calls.append("get_group")
        if group_id not in self.groups:
            raise NotFound(f"group {group_id} not found")
        members = [self.users[e.user_id] for e in self.enrollments
                   if e.group_id == group_id and e.user_id in self.users]
        return self.groups[group_id].model_copy(update={"users": members})


@pytest.fixture
def store():
    """Course 1 with labs 10 and 11, student 1 (Ada), student 2 (Bob, in group 7)."""
    s = FakeEntityStore()
    s.add_course(1, "Distributed Systems")
    s.add_course(2, "Operating Systems")
    s.add_assignment(10, 1, order=1)
    s.add_assignment(11, 1, order=2)
    s.add_assignment(20, 2, order=1)
    s.add_user(1, "Ada")
    s.add_user(2, "Bob")
    s.add_user(3, "Teacher")
    s.add_group(7, 1, "team-seven")
    s.enroll(1, 1)
    s.enroll(2, 1, group_id=7)
    s.enroll(3, 1, status=EnrollmentStatus.TEACHER)
    s.enroll(1, 2, status=EnrollmentStatus.PENDING)
    return s
