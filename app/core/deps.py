from fastapi import Request
from app.database.entity_store import EntityStore
from app.services.progress_service import ProgressService
from app.services.review_service import ReviewService
from app.services.submission_service import SubmissionService

def get_store(request: Request) -> EntityStore:
    store = getattr(request.app.state, "store", None)
    if store is None:
        raise RuntimeError("Entity store not initialized")
    return store

def get_submission_service(request: Request) -> SubmissionService:
    return SubmissionService(get_store(request))

def get_review_service(request: Request) -> ReviewService:
    return ReviewService(get_store(request))

def get_progress_service(request: Request) -> ProgressService:
    store = get_store(request)
    return ProgressService(store, SubmissionService(store))
