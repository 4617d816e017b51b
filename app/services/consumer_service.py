# app/services/consumer_service.py
import asyncio
import json
import logging
from typing import Optional, Callable, Awaitable
import aio_pika
from aio_pika import ExchangeType, IncomingMessage
from aio_pika.abc import AbstractQueue

from app.core.errors import NotFound
from app.schemas.data import Review, Submission, SubmissionStatus
from app.schemas.payloads import ReviewEventPayload, SubmissionResultPayload
from app.schemas.queries import ReviewQuery
from app.services.review_service import ReviewService
from app.services.submission_service import SubmissionService

logger = logging.getLogger(__name__)


def submission_from_payload(payload: SubmissionResultPayload) -> Submission:
    if not payload.get("assignmentId"):
        raise ValueError("Missing required field: assignmentId")
    fields = {
        "assignment_id": payload["assignmentId"],
        "user_id": payload.get("userId"),
        "group_id": payload.get("groupId"),
        "score": payload.get("score"),
        "status": payload.get("status", SubmissionStatus.NONE.value),
        "released": payload.get("released", False),
        "test_results": payload.get("testResults"),
        "commit_hash": payload.get("commitHash"),
    }
    # ValidationError is a ValueError, so malformed fields are rejected without requeue
    return Submission.model_validate(fields)


def review_from_payload(payload: ReviewEventPayload) -> Review:
    if not payload.get("submissionId"):
        raise ValueError("Missing required field: submissionId")
    if not payload.get("reviewerId"):
        raise ValueError("Missing required field: reviewerId")
    return Review.model_validate({
        "id": payload.get("id"),
        "submission_id": payload["submissionId"],
        "reviewer_id": payload["reviewerId"],
        "feedback": payload.get("feedback", ""),
        "review": payload.get("review"),
        "ready": payload.get("ready", False),
        "score": payload.get("score", 0),
    })


class SubmissionConsumerService:
    """
    Consumes two queues bound to one DIRECT exchange:
      - submissions.results: test-run results, reconciled into submissions
      - reviews.events: review create/update/delete events
    """

    def __init__(
        self,
        submissions: SubmissionService,
        reviews: ReviewService,
        rabbitmq_url: str,
        *,
        exchange_name: str = "progress.events",
        heartbeat: int = 30,
        durable: bool = True,
        prefetch_count: int = 20,
        requeue_on_error: bool = False,
    ) -> None:
        self.submissions = submissions
        self.reviews = reviews
        self.rabbitmq_url = rabbitmq_url
        self.exchange_name = exchange_name
        self.heartbeat = heartbeat
        self.durable = durable
        self.prefetch_count = prefetch_count
        self.requeue_on_error = requeue_on_error

        self._conn: Optional[aio_pika.RobustConnection] = None
        self._channel: Optional[aio_pika.RobustChannel] = None
        self._exchange: Optional[aio_pika.Exchange] = None

        self._consumers: list[tuple[AbstractQueue, str]] = []

        # guards connect/close
        self._lock = asyncio.Lock()

        # routing key == queue name
        self.submissions_q = "submissions.results"
        self.reviews_q = "reviews.events"

    # -----------------------------
    # Lifecycle
    # -----------------------------
    async def connect(self, max_retries: int = 5, delay: int = 3) -> None:
        """Open the connection and declare the exchange, retrying on failure."""
        attempt = 0
        while True:
            try:
                logger.debug("RabbitMQ connection attempt #%s", attempt + 1)
                self._conn = await aio_pika.connect_robust(
                    self.rabbitmq_url,
                    heartbeat=self.heartbeat,
                )
                self._channel = await self._conn.channel()
                await self._channel.set_qos(prefetch_count=self.prefetch_count)

                self._exchange = await self._channel.declare_exchange(
                    self.exchange_name, ExchangeType.DIRECT, durable=self.durable
                )

                logger.info("Connected to RabbitMQ.")
                return
            except asyncio.CancelledError:
                raise
            except Exception as exc:
                attempt += 1
                logger.warning("Connection failed: %s", exc)
                if attempt >= max_retries:
                    logger.error("Could not connect to RabbitMQ after %s attempts.", max_retries)
                    raise
                await asyncio.sleep(delay)

    async def _ensure_ready(self) -> None:
        async with self._lock:
            if not self._conn or self._conn.is_closed:
                logger.debug("Connection not open, reconnecting.")
                await self.connect()

            if not self._channel or self._channel.is_closed:
                logger.debug("Channel not open, reopening.")
                assert self._conn is not None
                self._channel = await self._conn.channel()
                await self._channel.set_qos(prefetch_count=self.prefetch_count)

            if not self._exchange:
                assert self._channel is not None
                self._exchange = await self._channel.declare_exchange(
                    self.exchange_name, ExchangeType.DIRECT, durable=self.durable
                )

    async def close(self) -> None:
        async with self._lock:
            try:
                for queue, tag in self._consumers:
                    try:
                        await queue.cancel(tag)
                    except Exception:
                        logger.exception("Failed to cancel consumer tag=%s", tag)
            finally:
                self._consumers.clear()

            try:
                if self._channel and not self._channel.is_closed:
                    logger.debug("Closing RabbitMQ channel.")
                    await self._channel.close()
            finally:
                if self._conn and not self._conn.is_closed:
                    logger.debug("Closing RabbitMQ connection.")
                    await self._conn.close()

            self._conn = None
            self._channel = None
            self._exchange = None

    def is_ready(self) -> bool:
        return bool(
            self._conn
            and not self._conn.is_closed
            and self._channel
            and not self._channel.is_closed
            and self._exchange
        )

    async def start(self) -> None:
        await self._ensure_ready()
        await self._declare_and_consume(self.submissions_q, self._on_submission_message)
        await self._declare_and_consume(self.reviews_q, self._on_review_message)
        logger.info("SubmissionConsumerService listening on 2 queues.")

    async def stop(self) -> None:
        await self.close()
        logger.info("SubmissionConsumerService stopped.")

    async def _declare_and_consume(
        self,
        queue_name: str,
        handler: Callable[[IncomingMessage], Awaitable[None]],
    ) -> None:
        assert self._channel is not None and self._exchange is not None

        queue = await self._channel.declare_queue(
            name=queue_name,
            durable=self.durable,
            exclusive=False,
            auto_delete=False,
        )
        await queue.bind(self._exchange, routing_key=queue_name)

        tag = await queue.consume(handler, no_ack=False)
        self._consumers.append((queue, tag))
        logger.info("Queue ready: %s (consumer tag=%s)", queue_name, tag)

    # -----------------------------
    # submissions.results
    # -----------------------------
    async def _on_submission_message(self, message: IncomingMessage) -> None:
        try:
            payload: SubmissionResultPayload = json.loads(message.body.decode("utf-8"))
            submission = submission_from_payload(payload)

            stored = await self.submissions.upsert_submission(submission)

            await message.ack()
            logger.info("Submission processed",
                        extra={"submission_id": stored.id, "assignment_id": stored.assignment_id})

        except json.JSONDecodeError:
            logger.exception("Invalid submission JSON")
            await message.nack(requeue=self.requeue_on_error)
        except (ValueError, NotFound) as exc:
            # InvalidReference is a ValueError
            logger.error("Submission rejected (no requeue)", extra={"error": str(exc)})
            await message.nack(requeue=False)
        except Exception:
            logger.exception("Submission processing failed")
            await message.nack(requeue=self.requeue_on_error)

    # -----------------------------
    # reviews.events
    # -----------------------------
    async def _on_review_message(self, message: IncomingMessage) -> None:
        try:
            payload: ReviewEventPayload = json.loads(message.body.decode("utf-8"))
            action = payload.get("action")

            if action == "create":
                await self.reviews.create_review(review_from_payload(payload))
            elif action == "update":
                await self.reviews.update_review(review_from_payload(payload))
            elif action == "delete":
                await self.reviews.delete_reviews(
                    ReviewQuery(
                        id=payload.get("id"),
                        submission_id=payload.get("submissionId"),
                        reviewer_id=payload.get("reviewerId"),
                    )
                )
            else:
                raise ValueError(f"Unknown review action: {action!r}")

            await message.ack()
            logger.info("Review event processed",
                        extra={"action": action, "submission_id": payload.get("submissionId")})

        except json.JSONDecodeError:
            logger.exception("Invalid review JSON")
            await message.nack(requeue=self.requeue_on_error)
        except (ValueError, NotFound) as exc:
            logger.error("Review event rejected (no requeue)", extra={"error": str(exc)})
            await message.nack(requeue=False)
        except Exception:
            logger.exception("Review event processing failed")
            await message.nack(requeue=self.requeue_on_error)
