"""Request/reply over RabbitMQ.

Sends a message to another service's queue and waits for the reply that
carries the same correlation id on an exclusive callback queue.
"""

import asyncio
import logging
import uuid
from typing import Any, Dict, Protocol

import aio_pika
from aio_pika.abc import AbstractChannel, AbstractExchange, AbstractIncomingMessage, AbstractQueue
from pydantic import ValidationError

from app.schemas.message import WorkerMessage

logger = logging.getLogger(__name__)


class TransactionRequestor(Protocol):
    """Contract for talking to the transaction service."""

    async def send_with_response(self, queue: str, type: str, payload: Any) -> WorkerMessage: ...


class RabbitRequest:
    """aio-pika implementation of ``TransactionRequestor``."""

    def __init__(self, channel: AbstractChannel, exchange: AbstractExchange, timeout: float = 30.0):
        self.channel = channel
        self.exchange = exchange
        self.timeout = timeout
        self.callback_queue: AbstractQueue = None
        self._futures: Dict[str, asyncio.Future] = {}

    async def start(self) -> "RabbitRequest":
        self.callback_queue = await self.channel.declare_queue(exclusive=True, auto_delete=True)
        await self.callback_queue.consume(self._on_response, no_ack=True)
        return self

    async def _on_response(self, message: AbstractIncomingMessage) -> None:
        future = self._futures.pop(message.correlation_id, None)
        if future is None or future.done():
            logger.warning(
                "Dropping reply with unknown correlation id",
                extra={"correlation_id": message.correlation_id},
            )
            return
        try:
            future.set_result(WorkerMessage.from_body(message.body))
        except (ValueError, ValidationError) as exc:
            future.set_exception(exc)

    async def send_with_response(self, queue: str, type: str, payload: Any) -> WorkerMessage:
        """Publish ``{status, type, payload}`` to ``queue`` and await the reply."""
        if self.callback_queue is None:
            await self.start()

        correlation_id = str(uuid.uuid4())
        future = asyncio.get_running_loop().create_future()
        self._futures[correlation_id] = future

        request = WorkerMessage(type=type, status=200, payload=payload)
        try:
            await self.exchange.publish(
                aio_pika.Message(
                    body=request.to_body(),
                    correlation_id=correlation_id,
                    reply_to=self.callback_queue.name,
                    content_type="application/json",
                ),
                routing_key=queue,
            )
            logger.debug(
                f"Sent {type} request to {queue}",
                extra={"correlation_id": correlation_id},
            )
            return await asyncio.wait_for(future, timeout=self.timeout)
        finally:
            self._futures.pop(correlation_id, None)
