from __future__ import annotations
import logging
from typing import Optional, Sequence

from app.database.entity_store import EntityStore
from app.schemas.data import (
    Assignment, AssignmentLink, Course, Enrollment, EnrollmentStatus, Group,
    Submission, SubmissionLink, User, UserRelation,
)
from app.schemas.queries import SubmissionQuery
from app.services.submission_service import SubmissionService

logger = logging.getLogger(__name__)


class ProgressService:
    """Builds AssignmentLink progress views for students and groups.

    Every call re-reads from the store; nothing is cached and the inputs
    (course, enrollment, assignment list) are never modified.
    """

    def __init__(self, store: EntityStore, submissions: SubmissionService):
        self.store = store
        self.submissions = submissions

    async def build_student_link(
        self,
        student: UserRelation,
        course: Course,
        assignments: Optional[Sequence[Assignment]] = None,
    ) -> AssignmentLink:
        link = Enrollment(
            user_id=student.user.id,
            user=student.user,
            course_id=course.id,
            course=course,
            status=student.link.status,
        )
        return await self._fill(
            course, link, SubmissionQuery(user_id=student.user.id), student.user.name, assignments
        )

    async def build_group_link(
        self,
        group: Group,
        course: Course,
        assignments: Optional[Sequence[Assignment]] = None,
    ) -> Optional[AssignmentLink]:
        if group.course_id != course.id:
            return None
        link = Enrollment(group_id=group.id, course_id=course.id, group=group)
        return await self._fill(
            course, link, SubmissionQuery(group_id=group.id), group.name, assignments
        )

    async def build_all_student_links(
        self, student: User, statuses: Optional[Sequence[EnrollmentStatus]] = None
    ) -> list[AssignmentLink]:
        enrollments = await self.store.get_enrollments_for_user(user_id=student.id, statuses=statuses)
        links = []
        for enrollment in enrollments:
            if enrollment.course is None:
                continue
            links.append(
                await self._fill(
                    enrollment.course, enrollment, SubmissionQuery(user_id=student.id), student.name
                )
            )
        return links

    async def list_course_links(
        self, student: User, statuses: Optional[Sequence[EnrollmentStatus]] = None
    ) -> list[AssignmentLink]:
        """Enrolled courses of a user, without submission data."""
        enrollments = await self.store.get_enrollments_for_user(user_id=student.id, statuses=statuses)
        return [
            AssignmentLink(course=e.course, link=e)
            for e in enrollments
            if e.course is not None
        ]

    async def build_course_roster(
        self,
        course: Course,
        exclude_group_members: bool = False,
        statuses: Optional[Sequence[EnrollmentStatus]] = None,
    ) -> list[UserRelation]:
        enrollments = await self.store.get_enrollments_for_course(
            course_id=course.id, exclude_group_members=exclude_group_members, statuses=statuses
        )
        return [
            UserRelation(link=e.model_copy(update={"course_id": course.id}), user=e.user)
            for e in enrollments
            if e.user is not None
        ]

    async def _fill(
        self,
        course: Course,
        link: Enrollment,
        owner: SubmissionQuery,
        author_name: str,
        assignments: Optional[Sequence[Assignment]] = None,
    ) -> AssignmentLink:
        if assignments is None:
            assignments = await self.store.get_assignments(course_id=course.id)
        if not assignments:
            return AssignmentLink(course=course, link=link)

        latest = await self.submissions.get_last_submissions_for_course(course.id, owner)
        by_assignment: dict[int, Submission] = {}
        for submission in latest:
            by_assignment.setdefault(submission.assignment_id, submission)

        logger.debug("Progress link built",
                     extra={"course_id": course.id, "assignments": len(assignments),
                            "submitted": len(by_assignment)})
        return AssignmentLink(
            course=course,
            link=link,
            submissions=tuple(
                SubmissionLink(assignment=a, latest=by_assignment.get(a.id), author_name=author_name)
                for a in assignments
            ),
        )
