"""Online Judge worker - FastAPI application hosting the judge."""

import asyncio
import logging
import time
import uuid
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from starlette.middleware.base import BaseHTTPMiddleware

from onlinejudge.config import get_settings
from onlinejudge.db.database import create_engine, create_session_factory
from onlinejudge.db.redis import close_redis, create_redis
from onlinejudge.services.broker import SubmissionConsumer
from onlinejudge.services.dispatcher import SubmissionDispatcher
from onlinejudge.services.judge_service import JudgingPipeline
from onlinejudge.services.repository import JudgeRepository

settings = get_settings()

# Configure logging
logging.basicConfig(
    level=settings.log_level,
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    datefmt="%Y-%m-%d %H:%M:%S",
)
logger = logging.getLogger("onlinejudge")


class RequestLoggingMiddleware(BaseHTTPMiddleware):
    """Middleware for logging requests with correlation IDs."""

    async def dispatch(self, request: Request, call_next):
        request_id = str(uuid.uuid4())[:8]
        start_time = time.time()
        request.state.request_id = request_id

        response = await call_next(request)
        process_time = (time.time() - start_time) * 1000

        logger.info(
            f"[{request_id}] {request.method} {request.url.path} "
            f"-> {response.status_code} ({process_time:.2f}ms)"
        )
        response.headers["X-Request-ID"] = request_id
        return response


def _report_consumer_exit(task: asyncio.Task) -> None:
    if task.cancelled():
        return
    exc = task.exception()
    if exc is not None:
        logger.error("Submission consumer died", exc_info=exc)
    else:
        logger.warning("Submission consumer stopped listening")


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Wire the judge: storage, pipeline, workers and queue consumer."""
    logger.info("Starting Online Judge worker...")

    engine = create_engine(settings.database_url, echo=settings.debug)
    repository = JudgeRepository(create_session_factory(engine))
    pipeline = JudgingPipeline.from_settings(settings, repository)

    dispatcher = SubmissionDispatcher(pipeline, concurrency=settings.max_concurrent_judges)
    dispatcher.start()
    app.state.dispatcher = dispatcher

    redis_client = create_redis(settings.redis_url)
    consumer = SubmissionConsumer(redis_client, dispatcher, settings.submission_channel)
    consumer_task = asyncio.create_task(consumer.run())
    consumer_task.add_done_callback(_report_consumer_exit)
    app.state.consumer_task = consumer_task
    logger.info("Submission consumer started")

    try:
        yield
    finally:
        logger.info("Shutting down Online Judge worker...")
        consumer_task.cancel()
        await asyncio.gather(consumer_task, return_exceptions=True)
        await dispatcher.stop()
        await close_redis(redis_client)
        await engine.dispose()
        logger.info("Online Judge worker stopped")


app = FastAPI(
    title=settings.app_name,
    version=settings.app_version,
    description="Submission judging engine",
    lifespan=lifespan,
)

app.add_middleware(RequestLoggingMiddleware)


@app.get("/health")
async def health_check(request: Request) -> dict:
    """Health check endpoint with judge queue depth."""
    dispatcher = getattr(request.app.state, "dispatcher", None)
    consumer_task = getattr(request.app.state, "consumer_task", None)
    consuming = consumer_task is None or not consumer_task.done()
    return {
        "status": "ok" if consuming else "degraded",
        "version": settings.app_version,
        "workers": dispatcher.concurrency if dispatcher and dispatcher.running else 0,
        "pending": dispatcher.queue.pending_count if dispatcher else 0,
        "processing": dispatcher.queue.processing_count if dispatcher else 0,
    }


@app.get("/")
async def root() -> dict:
    """Root endpoint with service info."""
    return {
        "name": settings.app_name,
        "version": settings.app_version,
    }
