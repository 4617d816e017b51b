# app/routers/v1/reviews.py
from typing import Annotated, Optional
from fastapi import APIRouter, Depends, status

from app.core.deps import get_review_service
from app.schemas.data import Review
from app.schemas.queries import ReviewQuery
from app.schemas.requests import ReviewDeleteResult, ReviewUpdateResult
from app.services.review_service import ReviewService

router = APIRouter()
ReviewsDep = Annotated[ReviewService, Depends(get_review_service)]


def review_query(
    id: Optional[int] = None,
    submission_id: Optional[int] = None,
    reviewer_id: Optional[int] = None,
    ready: Optional[bool] = None,
) -> ReviewQuery:
    return ReviewQuery(id=id, submission_id=submission_id, reviewer_id=reviewer_id, ready=ready)

QueryDep = Annotated[ReviewQuery, Depends(review_query)]


@router.post("/reviews", response_model=Review, status_code=status.HTTP_201_CREATED)
async def create_review(review: Review, service: ReviewsDep):
    return await service.create_review(review)

@router.put("/reviews/{review_id}", response_model=ReviewUpdateResult)
async def update_review(review_id: int, review: Review, service: ReviewsDep):
    updated = await service.update_review(review.model_copy(update={"id": review_id}))
    return ReviewUpdateResult(updated=updated, review_id=review_id)

@router.get("/reviews", response_model=list[Review])
async def list_reviews(query: QueryDep, service: ReviewsDep):
    return await service.get_reviews(query)

@router.delete("/reviews", response_model=ReviewDeleteResult)
async def delete_reviews(query: QueryDep, service: ReviewsDep):
    return ReviewDeleteResult(deleted=await service.delete_reviews(query))
