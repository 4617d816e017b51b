import pytest

from app.core.errors import InvalidReference
from app.schemas.data import Review
from app.schemas.queries import ReviewQuery
from app.services.review_service import ReviewService


@pytest.mark.asyncio
async def test_create_review_assigns_id(store):
    service = ReviewService(store)

    created = await service.create_review(
        Review(submission_id=5, reviewer_id=3, feedback="needs tests", review={"criteria": [1, 0]})
    )

    assert created.id is not None
    assert store.reviews[created.id].review == {"criteria": [1, 0]}


@pytest.mark.asyncio
async def test_create_review_does_not_deduplicate(store):
    service = ReviewService(store)

    await service.create_review(Review(submission_id=5, reviewer_id=3))
    await service.create_review(Review(submission_id=5, reviewer_id=3))

    assert len(store.reviews) == 2


@pytest.mark.asyncio
async def test_update_review_overwrites_content_only(store):
    service = ReviewService(store)
    created = await service.create_review(Review(submission_id=5, reviewer_id=3, feedback="draft"))

    updated = await service.update_review(
        Review(id=created.id, submission_id=5, reviewer_id=3, feedback="final", ready=True, score=8)
    )

    assert updated == 1
    stored = store.reviews[created.id]
    assert (stored.feedback, stored.ready, stored.score) == ("final", True, 8)
    assert (stored.submission_id, stored.reviewer_id) == (5, 3)


@pytest.mark.asyncio
async def test_update_review_from_other_reviewer_is_noop(store):
    service = ReviewService(store)
    created = await service.create_review(Review(submission_id=5, reviewer_id=3, feedback="mine"))

    updated = await service.update_review(
        Review(id=created.id, submission_id=5, reviewer_id=4, feedback="hijacked")
    )

    assert updated == 0
    assert store.reviews[created.id].feedback == "mine"


@pytest.mark.asyncio
async def test_update_review_without_id_is_noop(store):
    service = ReviewService(store)

    assert await service.update_review(Review(submission_id=5, reviewer_id=3)) == 0
    assert "update_review" not in store.calls


@pytest.mark.asyncio
async def test_delete_reviews_by_submission(store):
    service = ReviewService(store)
    for reviewer_id in (3, 4):
        await service.create_review(Review(submission_id=5, reviewer_id=reviewer_id))
    kept = await service.create_review(Review(submission_id=6, reviewer_id=3))

    deleted = await service.delete_reviews(ReviewQuery(submission_id=5))

    assert deleted == 2
    assert await service.get_reviews(ReviewQuery(submission_id=5)) == []
    assert [r.id for r in await service.get_reviews(ReviewQuery(submission_id=6))] == [kept.id]


@pytest.mark.asyncio
async def test_delete_reviews_requires_filter(store):
    service = ReviewService(store)
    await service.create_review(Review(submission_id=5, reviewer_id=3))

    with pytest.raises(InvalidReference):
        await service.delete_reviews(ReviewQuery())

    assert len(store.reviews) == 1
