from __future__ import annotations
import functools
import logging
from typing import Any, Optional, Sequence
from sqlalchemy.ext.asyncio import AsyncEngine, async_sessionmaker
from sqlalchemy.dialects.postgresql import insert as pg_insert
from sqlalchemy import Table, delete, func, insert, select, update
from sqlalchemy.exc import SQLAlchemyError

from app.core.errors import NotFound, StoreFailure
from app.database.entity_store import EntityStore
from app.database.tables import (
    metadata, users, courses, assignments, groups, enrollments,
    submissions, submission_history, reviews,
)
from app.schemas.data import (
    Assignment, Course, Enrollment, EnrollmentStatus, Group, Review,
    Submission, SubmissionHistory, User,
)
from app.schemas.queries import Filter, ReviewQuery, SubmissionQuery

logger = logging.getLogger("progress.store")

_MERGED_FIELDS = ("score", "status", "released", "test_results", "commit_hash")


def _where(table: Table, query: Filter) -> list:
    return [table.c[name] == value for name, value in query.clauses().items()]


def _store_errors(fn):
    @functools.wraps(fn)
    async def wrapper(*args, **kwargs):
        try:
            return await fn(*args, **kwargs)
        except SQLAlchemyError as exc:
            logger.error("Store operation %s failed: %s", fn.__name__, exc)
            raise StoreFailure(f"{fn.__name__} failed") from exc
    return wrapper


class PostgresEntityStore(EntityStore):
    def __init__(self, engine: AsyncEngine):
        self.engine = engine
        self.session_factory = async_sessionmaker(bind=engine, expire_on_commit=False)

    @_store_errors
    async def ensure_schema(self) -> None:
        logger.info("Ensuring schema for progress tables")
        async with self.engine.begin() as conn:
            await conn.run_sync(metadata.create_all)
        logger.info("Schema ready")

    async def _count(self, table: Table, entity_id: int) -> int:
        stmt = select(func.count()).select_from(table).where(table.c.id == entity_id)
        async with self.session_factory() as session:
            return int((await session.execute(stmt)).scalar_one())

    @_store_errors
    async def count_users(self, *, user_id: int) -> int:
        return await self._count(users, user_id)

    @_store_errors
    async def count_groups(self, *, group_id: int) -> int:
        return await self._count(groups, group_id)

    @_store_errors
    async def count_assignments(self, *, assignment_id: int) -> int:
        return await self._count(assignments, assignment_id)

    # -----------------------------
    # Submissions
    # -----------------------------
    @_store_errors
    async def find_last_submission(self, query: SubmissionQuery) -> Submission:
        stmt = (
            select(submissions)
            .where(*_where(submissions, query))
            .order_by(submissions.c.created_at.desc(), submissions.c.id.desc())
            .limit(1)
        )
        async with self.session_factory() as session:
            row = (await session.execute(stmt)).mappings().first()
            if row is None:
                raise NotFound(f"no submission matches {query.clauses()}")
            review_rows = (
                await session.execute(
                    select(reviews).where(reviews.c.submission_id == row["id"]).order_by(reviews.c.id)
                )
            ).mappings().all()
        return Submission(**row, reviews=[Review(**r) for r in review_rows])

    @_store_errors
    async def find_submissions(self, query: SubmissionQuery) -> list[Submission]:
        stmt = select(submissions).where(*_where(submissions, query))
        async with self.session_factory() as session:
            rows = (await session.execute(stmt)).mappings().all()
        return [Submission(**r) for r in rows]

    @_store_errors
    async def upsert_submission(self, submission: Submission) -> Submission:
        # The partial unique index of the owner kind is the conflict target, so
        # concurrent upserts for one (assignment, owner) always hit one row.
        owner = submissions.c.user_id if submission.user_id else submissions.c.group_id
        values = submission.model_dump(
            mode="json",
            include={"assignment_id", "user_id", "group_id", *_MERGED_FIELDS},
        )
        stmt = pg_insert(submissions).values(**values)
        stmt = stmt.on_conflict_do_update(
            index_elements=[submissions.c.assignment_id, owner],
            index_where=owner.isnot(None),
            set_={
                **{name: stmt.excluded[name] for name in _MERGED_FIELDS},
                "updated_at": func.now(),
            },
        ).returning(*submissions.c)

        async with self.session_factory() as session:
            row = (await session.execute(stmt)).mappings().one()
            await session.execute(
                insert(submission_history).values(
                    submission_id=row["id"],
                    score=row["score"],
                    status=row["status"],
                    released=row["released"],
                )
            )
            await session.commit()
        logger.debug("Submission upserted",
                     extra={"submission_id": row["id"], "assignment_id": row["assignment_id"],
                            "user_id": row["user_id"], "group_id": row["group_id"]})
        return Submission(**row)

    @_store_errors
    async def update_submission(self, *, submission_id: int, values: dict[str, Any]) -> Submission:
        stmt = (
            update(submissions)
            .where(submissions.c.id == submission_id)
            .values(**values, updated_at=func.now())
            .returning(*submissions.c)
        )
        async with self.session_factory() as session:
            row = (await session.execute(stmt)).mappings().first()
            if row is None:
                raise NotFound(f"submission {submission_id} not found")
            await session.commit()
        logger.debug("Submission updated", extra={"submission_id": submission_id, **values})
        return Submission(**row)

    @_store_errors
    async def update_submissions(
        self, *, course_id: int, assignment_id: int, minimum_score: int, values: dict[str, Any]
    ) -> int:
        course_assignments = select(assignments.c.id).where(assignments.c.course_id == course_id)
        stmt = (
            update(submissions)
            .where(submissions.c.assignment_id == assignment_id)
            .where(submissions.c.assignment_id.in_(course_assignments))
            .where(submissions.c.score >= minimum_score)
            .values(**values, updated_at=func.now())
        )
        async with self.session_factory() as session:
            result = await session.execute(stmt)
            await session.commit()
        return result.rowcount

    @_store_errors
    async def find_submission_history(self, *, submission_id: int) -> list[SubmissionHistory]:
        stmt = (
            select(submission_history)
            .where(submission_history.c.submission_id == submission_id)
            .order_by(submission_history.c.recorded_at, submission_history.c.id)
        )
        async with self.session_factory() as session:
            rows = (await session.execute(stmt)).mappings().all()
        return [SubmissionHistory(**r) for r in rows]

    # -----------------------------
    # Reviews
    # -----------------------------
    @_store_errors
    async def create_review(self, review: Review) -> Review:
        stmt = (
            insert(reviews)
            .values(**review.model_dump(mode="json", exclude={"id"}))
            .returning(*reviews.c)
        )
        async with self.session_factory() as session:
            row = (await session.execute(stmt)).mappings().one()
            await session.commit()
        logger.debug("Review created",
                     extra={"review_id": row["id"], "submission_id": row["submission_id"]})
        return Review(**row)

    @_store_errors
    async def update_review(self, review: Review) -> int:
        stmt = (
            update(reviews)
            .where(reviews.c.id == review.id)
            .where(reviews.c.submission_id == review.submission_id)
            .where(reviews.c.reviewer_id == review.reviewer_id)
            .values(**review.model_dump(mode="json", include={"feedback", "review", "ready", "score"}))
        )
        async with self.session_factory() as session:
            result = await session.execute(stmt)
            await session.commit()
        return result.rowcount

    @_store_errors
    async def delete_reviews(self, query: ReviewQuery) -> int:
        stmt = delete(reviews).where(*_where(reviews, query))
        async with self.session_factory() as session:
            result = await session.execute(stmt)
            await session.commit()
        return result.rowcount

    @_store_errors
    async def find_reviews(self, query: ReviewQuery) -> list[Review]:
        stmt = select(reviews).where(*_where(reviews, query)).order_by(reviews.c.id)
        async with self.session_factory() as session:
            rows = (await session.execute(stmt)).mappings().all()
        return [Review(**r) for r in rows]

    # -----------------------------
    # Courses and enrollments
    # -----------------------------
    @_store_errors
    async def get_course(self, *, course_id: int) -> Course:
        async with self.session_factory() as session:
            row = (
                await session.execute(select(courses).where(courses.c.id == course_id))
            ).mappings().first()
        if row is None:
            raise NotFound(f"course {course_id} not found")
        return Course(**row, assignments=await self.get_assignments(course_id=course_id))

    @_store_errors
    async def get_assignments(self, *, course_id: int) -> list[Assignment]:
        stmt = (
            select(assignments)
            .where(assignments.c.course_id == course_id)
            .order_by(assignments.c.order, assignments.c.id)
        )
        async with self.session_factory() as session:
            rows = (await session.execute(stmt)).mappings().all()
        return [Assignment(**r) for r in rows]

    @_store_errors
    async def get_enrollments_for_user(
        self, *, user_id: int, statuses: Optional[Sequence[EnrollmentStatus]] = None
    ) -> list[Enrollment]:
        conditions = [enrollments.c.user_id == user_id]
        if statuses:
            conditions.append(enrollments.c.status.in_([s.value for s in statuses]))
        return await self._enrollments(conditions)

    @_store_errors
    async def get_enrollments_for_course(
        self,
        *,
        course_id: int,
        exclude_group_members: bool = False,
        statuses: Optional[Sequence[EnrollmentStatus]] = None,
    ) -> list[Enrollment]:
        conditions = [enrollments.c.course_id == course_id]
        if exclude_group_members:
            conditions.append(enrollments.c.group_id.is_(None))
        if statuses:
            conditions.append(enrollments.c.status.in_([s.value for s in statuses]))
        return await self._enrollments(conditions)

    @_store_errors
    async def get_user(self, *, user_id: int) -> User:
        async with self.session_factory() as session:
            row = (await session.execute(select(users).where(users.c.id == user_id))).mappings().first()
        if row is None:
            raise NotFound(f"user {user_id} not found")
        return User(**row)

    @_store_errors
    async def get_group(self, *, group_id: int) -> Group:
        members = (
            select(users)
            .join(enrollments, enrollments.c.user_id == users.c.id)
            .where(enrollments.c.group_id == group_id)
            .order_by(users.c.id)
        )
        async with self.session_factory() as session:
            row = (await session.execute(select(groups).where(groups.c.id == group_id))).mappings().first()
            if row is None:
                raise NotFound(f"group {group_id} not found")
            member_rows = (await session.execute(members)).mappings().all()
        return Group(**row, users=[User(**r) for r in member_rows])

    async def _enrollments(self, conditions: list) -> list[Enrollment]:
        """Enrollments with user, course and group attached."""
        async with self.session_factory() as session:
            rows = (
                await session.execute(select(enrollments).where(*conditions).order_by(enrollments.c.id))
            ).mappings().all()
            if not rows:
                return []
            user_ids = {r["user_id"] for r in rows}
            course_ids = {r["course_id"] for r in rows}
            group_ids = {r["group_id"] for r in rows if r["group_id"] is not None}

            user_rows = (await session.execute(select(users).where(users.c.id.in_(user_ids)))).mappings().all()
            course_rows = (
                await session.execute(select(courses).where(courses.c.id.in_(course_ids)))
            ).mappings().all()
            group_rows = []
            if group_ids:
                group_rows = (
                    await session.execute(select(groups).where(groups.c.id.in_(group_ids)))
                ).mappings().all()

        by_user = {r["id"]: User(**r) for r in user_rows}
        by_course = {r["id"]: Course(**r) for r in course_rows}
        by_group = {r["id"]: Group(**r) for r in group_rows}
        return [
            Enrollment(
                **r,
                user=by_user.get(r["user_id"]),
                course=by_course.get(r["course_id"]),
                group=by_group.get(r["group_id"]),
            )
            for r in rows
        ]
