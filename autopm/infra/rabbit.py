# autopm/infra/rabbit.py
from __future__ import annotations

import asyncio
import logging
from typing import Optional

import aio_pika
import orjson
from aio_pika import DeliveryMode, ExchangeType

from autopm.config import settings
from autopm.models.events import WorkflowEvent

logger = logging.getLogger("autopm.infra.rabbit")

SERVICE_SEGMENT = "workflow"


def rk(org: str, event: str, version: str = "v1") -> str:
    """Versioned routing key: <org>.workflow.<event>.<version>"""
    return f"{org}.{SERVICE_SEGMENT}.{event}.{version}"


class RabbitPublisher:
    """
    Async publisher that reuses one robust connection + channel + exchange.
    """
    def __init__(self, url: Optional[str] = None, exchange_name: Optional[str] = None):
        self.url = url or settings.RABBITMQ_URL
        self.exchange_name = exchange_name or settings.RABBITMQ_EXCHANGE
        self._conn: Optional[aio_pika.abc.AbstractRobustConnection] = None
        self._channel: Optional[aio_pika.abc.AbstractChannel] = None
        self._exchange: Optional[aio_pika.abc.AbstractExchange] = None
        self._lock = asyncio.Lock()

    async def _ensure(self) -> None:
        if self._exchange:
            return
        async with self._lock:
            if self._exchange:
                return
            logger.info("Rabbit: connecting...")
            self._conn = await aio_pika.connect_robust(self.url)
            self._channel = await self._conn.channel()
            self._exchange = await self._channel.declare_exchange(
                self.exchange_name, ExchangeType.TOPIC, durable=True
            )
            logger.info("Rabbit: connected and exchange declared", extra={"exchange": self.exchange_name})

    async def publish(self, ev: WorkflowEvent, version: str = "v1") -> None:
        await self._ensure()
        assert self._exchange is not None

        routing_key = rk(ev.org, ev.event, version)
        msg = aio_pika.Message(
            body=orjson.dumps(ev.model_dump(mode="json")),
            content_type="application/json",
            delivery_mode=DeliveryMode.PERSISTENT,
            headers=ev.headers(),
            type=ev.event,
            timestamp=ev.occurred_at,
        )
        await self._exchange.publish(msg, routing_key=routing_key)
        logger.info(
            "Rabbit: event published",
            extra={"routing_key": routing_key, "workflow_id": ev.workflow_id, "stage": ev.stage},
        )

    async def close(self) -> None:
        try:
            if self._channel and not self._channel.is_closed:
                await self._channel.close()
        finally:
            if self._conn and not self._conn.is_closed:
                await self._conn.close()
