from __future__ import annotations
from enum import Enum
from typing import Any, Optional
from datetime import datetime
from pydantic import BaseModel, ConfigDict, Field


class SubmissionStatus(str, Enum):
    NONE = "none"
    APPROVED = "approved"
    REJECTED = "rejected"
    REVISION = "revision"


class EnrollmentStatus(str, Enum):
    NONE = "none"
    PENDING = "pending"
    STUDENT = "student"
    TEACHER = "teacher"


class GroupStatus(str, Enum):
    PENDING = "pending"
    APPROVED = "approved"


class User(BaseModel):
    id: int
    name: str = ""
    student_id: Optional[str] = None
    email: Optional[str] = None
    is_admin: bool = False


class Assignment(BaseModel):
    id: int
    course_id: int
    name: str = ""
    order: int = 0
    is_group_lab: bool = False
    score_limit: int = 0
    deadline: Optional[datetime] = None


class Course(BaseModel):
    id: int
    name: str = ""
    code: str = ""
    year: Optional[int] = None
    assignments: list[Assignment] = Field(default_factory=list)


class Group(BaseModel):
    id: int
    name: str = ""
    course_id: int
    status: GroupStatus = GroupStatus.PENDING
    users: list[User] = Field(default_factory=list)


class Enrollment(BaseModel):
    id: Optional[int] = None
    course_id: int
    user_id: Optional[int] = None
    group_id: Optional[int] = None
    status: EnrollmentStatus = EnrollmentStatus.NONE
    user: Optional[User] = None
    course: Optional[Course] = None
    group: Optional[Group] = None


class Review(BaseModel):
    id: Optional[int] = None
    submission_id: int
    reviewer_id: int
    feedback: str = ""
    review: Optional[dict[str, Any]] = None
    ready: bool = False
    score: int = 0


class Submission(BaseModel):
    # score=None is "not graded", score=0 is a real grade and is always stored
    id: Optional[int] = None
    assignment_id: int = 0
    user_id: Optional[int] = None
    group_id: Optional[int] = None
    score: Optional[int] = None
    status: SubmissionStatus = SubmissionStatus.NONE
    released: bool = False
    test_results: Optional[dict[str, Any]] = None
    commit_hash: Optional[str] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None
    reviews: list[Review] = Field(default_factory=list)


class SubmissionHistory(BaseModel):
    id: int
    submission_id: int
    score: Optional[int] = None
    status: SubmissionStatus
    released: bool
    recorded_at: datetime


class UserRelation(BaseModel):
    link: Enrollment
    user: User


class SubmissionLink(BaseModel):
    model_config = ConfigDict(frozen=True)

    assignment: Assignment
    latest: Optional[Submission] = None
    author_name: str = ""


class AssignmentLink(BaseModel):
    """Progress view of one student or group in one course.

    Built per read and never mutated; ``submissions`` follows the order of
    the assignments it was built from.
    """
    model_config = ConfigDict(frozen=True)

    course: Course
    link: Enrollment
    submissions: tuple[SubmissionLink, ...] = ()
