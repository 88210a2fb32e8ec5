"""Redis pub/sub transport for submission events."""

import asyncio
import logging
from typing import Optional, Union

import redis.asyncio as redis
from pydantic import ValidationError
from redis.backoff import AbstractBackoff, ExponentialBackoff
from redis.exceptions import ConnectionError as RedisConnectionError
from redis.exceptions import RedisError
from redis.exceptions import TimeoutError as RedisTimeoutError

from onlinejudge.schemas.submission import SubmissionEvent
from onlinejudge.services.dispatcher import SubmissionDispatcher

logger = logging.getLogger(__name__)


async def publish_submission(
    client: redis.Redis, event: SubmissionEvent, channel: str
) -> int:
    """Publish a submission for evaluation. Returns the number of receivers."""
    return await client.publish(channel, event.model_dump_json())


class SubmissionConsumer:
    """Subscribes to the submission channel and hands events to the dispatcher."""

    def __init__(
        self,
        client: redis.Redis,
        dispatcher: SubmissionDispatcher,
        channel: str,
        backoff: Optional[AbstractBackoff] = None,
    ):
        self.client = client
        self.dispatcher = dispatcher
        self.channel = channel
        self.backoff = backoff or ExponentialBackoff(cap=30.0, base=0.5)
        self.failures = 0

    async def handle_message(self, data: Union[str, bytes]) -> bool:
        """Parse one payload and queue it. Malformed payloads are dropped."""
        try:
            event = SubmissionEvent.model_validate_json(data)
        except ValidationError as e:
            logger.error("Dropping malformed submission payload: %s", e)
            return False
        return await self.dispatcher.submit(event)

    async def run(self) -> None:
        """Consume messages until cancelled, resubscribing when Redis drops."""
        while True:
            try:
                await self._consume()
                return
            except (RedisConnectionError, RedisTimeoutError) as e:
                self.failures += 1
                delay = self.backoff.compute(self.failures)
                logger.warning(
                    "Lost submission channel %s (%s), resubscribing in %.1fs",
                    self.channel,
                    e,
                    delay,
                )
                await asyncio.sleep(delay)

    async def _consume(self) -> None:
        pubsub = self.client.pubsub()
        try:
            await pubsub.subscribe(self.channel)
            self.failures = 0
            logger.info("Listening for submissions on %s", self.channel)

            async for message in pubsub.listen():
                if message["type"] != "message":
                    continue
                await self.handle_message(message["data"])
        finally:
            try:
                await pubsub.unsubscribe(self.channel)
            except RedisError as e:
                logger.debug("Unsubscribe from %s failed: %s", self.channel, e)
            await pubsub.aclose()
