"""RabbitMQ connection manager shared by the worker and the requestor."""

import logging

import aio_pika
from aio_pika.abc import AbstractChannel, AbstractExchange, AbstractRobustConnection

from app.core.config import settings
from app.schemas.message import WorkerMessage

logger = logging.getLogger(__name__)


class RabbitConnection:
    """RabbitMQ connection manager."""

    connection: AbstractRobustConnection = None
    channel: AbstractChannel = None
    exchange: AbstractExchange = None


rabbit = RabbitConnection()


async def connect_to_rabbit(url: str = None, exchange_name: str = None) -> RabbitConnection:
    """Open a robust connection, a channel and the direct exchange."""
    rabbit.connection = await aio_pika.connect_robust(url or settings.RABBITMQ_URL)
    rabbit.channel = await rabbit.connection.channel()
    rabbit.exchange = await rabbit.channel.declare_exchange(
        exchange_name or settings.EXCHANGE_NAME,
        aio_pika.ExchangeType.DIRECT,
        durable=False,
    )
    logger.info("Connected to RabbitMQ")
    return rabbit


async def close_rabbit_connection() -> None:
    if rabbit.connection is not None:
        await rabbit.connection.close()
        logger.info("Disconnected from RabbitMQ")


async def respond_to_queue(channel: AbstractChannel, reply_to: str, correlation_id: str, content: WorkerMessage) -> None:
    """Send a reply straight to the requester's callback queue."""
    await channel.default_exchange.publish(
        aio_pika.Message(
            body=content.to_body(),
            correlation_id=correlation_id,
            content_type="application/json",
        ),
        routing_key=reply_to,
    )
