from __future__ import annotations
import logging

from app.core.errors import InvalidReference
from app.database.entity_store import EntityStore
from app.schemas.data import Review
from app.schemas.queries import ReviewQuery

logger = logging.getLogger(__name__)


class ReviewService:
    def __init__(self, store: EntityStore):
        self.store = store

    async def create_review(self, review: Review) -> Review:
        created = await self.store.create_review(review)
        logger.info("Review created",
                    extra={"review_id": created.id, "submission_id": created.submission_id,
                           "reviewer_id": created.reviewer_id})
        return created

    async def update_review(self, review: Review) -> int:
        """Overwrite feedback, review, ready and score of the review matching
        (id, submission_id, reviewer_id). Zero matches updates nothing."""
        if review.id is None:
            return 0
        updated = await self.store.update_review(review)
        if not updated:
            logger.info("Review update matched no row",
                        extra={"review_id": review.id, "submission_id": review.submission_id,
                               "reviewer_id": review.reviewer_id})
        return updated

    async def delete_reviews(self, query: ReviewQuery) -> int:
        if query.is_empty():
            raise InvalidReference("refusing to delete reviews without a filter")
        deleted = await self.store.delete_reviews(query)
        logger.info("Reviews deleted", extra={"filter": query.clauses(), "deleted": deleted})
        return deleted

    async def get_reviews(self, query: ReviewQuery) -> list[Review]:
        return await self.store.find_reviews(query)
