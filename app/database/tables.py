from sqlalchemy import (
    MetaData, Table, Column, String, Integer, Boolean, Text, JSON,
    CheckConstraint, Index, UniqueConstraint, func, text, DateTime, ForeignKey
)

metadata = MetaData()

users = Table(
    "users",
    metadata,
    Column("id", Integer, primary_key=True),
    Column("name", String(255), nullable=False, server_default=""),
    Column("student_id", String(64), nullable=True),
    Column("email", String(255), nullable=True, unique=True),
    Column("is_admin", Boolean, nullable=False, server_default="false"),
)

courses = Table(
    "courses",
    metadata,
    Column("id", Integer, primary_key=True),
    Column("name", String(255), nullable=False, server_default=""),
    Column("code", String(32), nullable=False, server_default=""),
    Column("year", Integer, nullable=True),
)

assignments = Table(
    "assignments",
    metadata,
    Column("id", Integer, primary_key=True),
    Column(
        "course_id",
        Integer,
        ForeignKey("courses.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    ),
    Column("name", String(255), nullable=False, server_default=""),
    Column("order", Integer, nullable=False, server_default="0"),
    Column("is_group_lab", Boolean, nullable=False, server_default="false"),
    Column("score_limit", Integer, nullable=False, server_default="0"),
    Column("deadline", DateTime(timezone=True), nullable=True),
)

groups = Table(
    "groups",
    metadata,
    Column("id", Integer, primary_key=True),
    Column("name", String(255), nullable=False),
    Column(
        "course_id",
        Integer,
        ForeignKey("courses.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    ),
    Column("status", String(32), nullable=False, server_default="pending"),
    UniqueConstraint("course_id", "name", name="uq_group_course_name"),
)

enrollments = Table(
    "enrollments",
    metadata,
    Column("id", Integer, primary_key=True),
    Column(
        "course_id",
        Integer,
        ForeignKey("courses.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    ),
    Column("user_id", Integer, ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True),
    Column("group_id", Integer, ForeignKey("groups.id", ondelete="SET NULL"), nullable=True, index=True),
    Column("status", String(32), nullable=False, server_default="none"),
    UniqueConstraint("user_id", "course_id", name="uq_enrollment_user_course"),
)

# One current row per (assignment, owner); the owner is a user xor a group.
submissions = Table(
    "submissions",
    metadata,
    Column("id", Integer, primary_key=True),
    Column(
        "assignment_id",
        Integer,
        ForeignKey("assignments.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    ),
    Column("user_id", Integer, ForeignKey("users.id", ondelete="CASCADE"), nullable=True),
    Column("group_id", Integer, ForeignKey("groups.id", ondelete="CASCADE"), nullable=True),
    Column("score", Integer, nullable=True),
    Column("status", String(32), nullable=False, server_default="none"),
    Column("released", Boolean, nullable=False, server_default="false"),
    Column("test_results", JSON(none_as_null=True), nullable=True),
    Column("commit_hash", String(64), nullable=True),
    Column("created_at", DateTime(timezone=True), nullable=False, server_default=func.now()),
    Column("updated_at", DateTime(timezone=True), nullable=False, server_default=func.now()),
    CheckConstraint(
        "(user_id IS NULL) <> (group_id IS NULL)",
        name="ck_submission_single_owner",
    ),
    Index(
        "uq_submission_assignment_user",
        "assignment_id",
        "user_id",
        unique=True,
        postgresql_where=text("user_id IS NOT NULL"),
    ),
    Index(
        "uq_submission_assignment_group",
        "assignment_id",
        "group_id",
        unique=True,
        postgresql_where=text("group_id IS NOT NULL"),
    ),
)

submission_history = Table(
    "submission_history",
    metadata,
    Column("id", Integer, primary_key=True),
    Column(
        "submission_id",
        Integer,
        ForeignKey("submissions.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    ),
    Column("score", Integer, nullable=True),
    Column("status", String(32), nullable=False),
    Column("released", Boolean, nullable=False),
    Column("recorded_at", DateTime(timezone=True), nullable=False, server_default=func.now()),
)

reviews = Table(
    "reviews",
    metadata,
    Column("id", Integer, primary_key=True),
    Column(
        "submission_id",
        Integer,
        ForeignKey("submissions.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    ),
    Column("reviewer_id", Integer, ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True),
    Column("feedback", Text, nullable=False, server_default=""),
    Column("review", JSON(none_as_null=True), nullable=True),
    Column("ready", Boolean, nullable=False, server_default="false"),
    Column("score", Integer, nullable=False, server_default="0"),
)
