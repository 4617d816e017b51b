# app/routers/v1/progress.py
from typing import Annotated, Optional
from fastapi import APIRouter, Depends, Query

from app.core.deps import get_progress_service, get_store
from app.core.errors import NotFound
from app.database.entity_store import EntityStore
from app.schemas.data import AssignmentLink, EnrollmentStatus, UserRelation
from app.services.progress_service import ProgressService

router = APIRouter()
StoreDep = Annotated[EntityStore, Depends(get_store)]
ProgressDep = Annotated[ProgressService, Depends(get_progress_service)]
StatusFilter = Annotated[Optional[list[EnrollmentStatus]], Query(alias="status")]


@router.get("/courses/{course_id}/students/{user_id}/link", response_model=AssignmentLink)
async def student_link(course_id: int, user_id: int, store: StoreDep, progress: ProgressDep):
    course = await store.get_course(course_id=course_id)
    roster = await progress.build_course_roster(course)
    relation = next((r for r in roster if r.user.id == user_id), None)
    if relation is None:
        raise NotFound(f"user {user_id} is not enrolled in course {course_id}")
    return await progress.build_student_link(relation, course, course.assignments)

@router.get("/courses/{course_id}/groups/{group_id}/link", response_model=AssignmentLink)
async def group_link(course_id: int, group_id: int, store: StoreDep, progress: ProgressDep):
    course = await store.get_course(course_id=course_id)
    group = await store.get_group(group_id=group_id)
    link = await progress.build_group_link(group, course, course.assignments)
    if link is None:
        raise NotFound(f"group {group_id} is not enrolled in course {course_id}")
    return link

@router.get("/users/{user_id}/links", response_model=list[AssignmentLink])
async def user_links(user_id: int, store: StoreDep, progress: ProgressDep, statuses: StatusFilter = None):
    user = await store.get_user(user_id=user_id)
    return await progress.build_all_student_links(user, statuses)

@router.get("/users/{user_id}/courses", response_model=list[AssignmentLink])
async def user_courses(user_id: int, store: StoreDep, progress: ProgressDep, statuses: StatusFilter = None):
    user = await store.get_user(user_id=user_id)
    return await progress.list_course_links(user, statuses)

@router.get("/courses/{course_id}/roster", response_model=list[UserRelation])
async def course_roster(
    course_id: int,
    store: StoreDep,
    progress: ProgressDep,
    statuses: StatusFilter = None,
    exclude_group_members: bool = False,
):
    course = await store.get_course(course_id=course_id)
    return await progress.build_course_roster(course, exclude_group_members, statuses)
