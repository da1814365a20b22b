"""Debt worker: consumes the debt queue and answers every message."""

import asyncio
import json
import logging
import sys

from aio_pika.abc import AbstractChannel, AbstractIncomingMessage

from app.core.config import Settings, WorkerConfig
from app.db.mongo import connect_to_mongo, disconnect_from_mongo
from app.db.session import get_database
from app.messaging.rabbit import close_rabbit_connection, connect_to_rabbit, respond_to_queue
from app.messaging.rabbit_request import RabbitRequest
from app.repositories.debt_repo import DebtRepository
from app.schemas.message import WorkerMessage
from app.services.debt_service import DebtService
from app.services.message_processor import MessageProcessor

logger = logging.getLogger(__name__)


class DebtWorker:
    """Binds the worker queue and feeds each delivery to the message processor."""

    def __init__(self, processor: MessageProcessor, channel: AbstractChannel):
        self.processor = processor
        self.channel = channel

    async def handle_delivery(self, message: AbstractIncomingMessage) -> None:
        """Process one delivery, reply if asked to, then ack it."""
        async with message.process(ignore_processed=True):
            try:
                content = json.loads(message.body)
            except ValueError as exc:
                logger.warning(f"Undecodable message: {exc}", extra={"correlation_id": message.correlation_id})
                response = WorkerMessage.error_message("Message body is not valid JSON")
            else:
                response = await self.processor.process(content)

            if message.reply_to:
                await respond_to_queue(self.channel, message.reply_to, message.correlation_id, response)


async def run_worker(settings: Settings) -> None:
    """Connect to MongoDB and RabbitMQ and consume until cancelled."""
    if not settings.MONGODB_URL:
        logger.error("No Mongo url provided, exiting with error 1")
        sys.exit(1)

    try:
        await connect_to_mongo(settings.MONGODB_URL, settings.DATABASE_NAME)
    except Exception:
        logger.exception("Could not connect to database, exiting with error 1")
        sys.exit(1)

    rabbit = await connect_to_rabbit(settings.RABBITMQ_URL, settings.EXCHANGE_NAME)
    try:
        requestor = await RabbitRequest(
            rabbit.channel, rabbit.exchange, timeout=settings.REQUEST_TIMEOUT_SECONDS,
        ).start()
        service = DebtService(
            DebtRepository(await get_database()), requestor, WorkerConfig.from_settings(settings),
        )
        worker = DebtWorker(MessageProcessor(service), rabbit.channel)

        # Every worker of this type shares the queue
        queue = await rabbit.channel.declare_queue(settings.QUEUE_NAME, durable=False)
        await queue.bind(rabbit.exchange, routing_key=settings.QUEUE_NAME)

        logger.info(f"Listening for messages on queue {settings.QUEUE_NAME}")
        await queue.consume(worker.handle_delivery, no_ack=False)

        await asyncio.Future()
    finally:
        await close_rabbit_connection()
        await disconnect_from_mongo()
