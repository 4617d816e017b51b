# app/main.py
import logging
from contextlib import asynccontextmanager
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from app.core.config import settings
from app.core.handlers import register_exception_handlers
from app.routers.v1 import health
from app.routers.v1 import progress
from app.routers.v1 import reviews
from app.routers.v1 import submissions

from sqlalchemy.ext.asyncio import create_async_engine
from app.database.postgres_store import PostgresEntityStore
from app.services.consumer_service import SubmissionConsumerService
from app.services.review_service import ReviewService
from app.services.submission_service import SubmissionService

logging.basicConfig(level=settings.log_level)

def create_app() -> FastAPI:
    engine = create_async_engine(settings.postgres_url, echo=settings.sql_echo, pool_pre_ping=True)

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        store = PostgresEntityStore(engine)
        consumer = None
        app.state.consumer = None

        try:
            await store.ensure_schema()
            app.state.store = store

            if settings.consumer_enabled:
                consumer = SubmissionConsumerService(
                    submissions=SubmissionService(store),
                    reviews=ReviewService(store),
                    rabbitmq_url=settings.rabbitmq_url,
                    exchange_name=settings.exchange_name,
                    prefetch_count=settings.prefetch_count,
                    requeue_on_error=settings.requeue_on_error,
                    durable=True,
                )
                app.state.consumer = consumer
                await consumer.start()

            yield
        finally:
            try:
                if consumer is not None:
                    await consumer.stop()
            finally:
                await engine.dispose()

    app = FastAPI(
        title="Submission Progress Service",
        description="Submission reconciliation and course progress views",
        version="1.0.0",
        lifespan=lifespan,
    )

    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"], allow_credentials=True,
        allow_methods=["*"], allow_headers=["*"],
    )

    register_exception_handlers(app)

    app.include_router(health.router, prefix="/api/v1", tags=["health"])
    app.include_router(submissions.router, prefix="/api/v1", tags=["submissions"])
    app.include_router(reviews.router, prefix="/api/v1", tags=["reviews"])
    app.include_router(progress.router, prefix="/api/v1", tags=["progress"])
    return app


app = create_app()
