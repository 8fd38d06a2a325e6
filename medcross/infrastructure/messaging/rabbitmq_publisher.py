# medcross/infrastructure/messaging/rabbitmq_publisher.py

import json
from typing import Any, Dict, Optional

import aio_pika

from medcross.config.settings import settings
from medcross.domain.models.record import ChainId


class RabbitMQLedgerSubmitter:
    """
    Publishes upload/grant/revoke requests to the per-chain relayers.
    Routing key is "<chain>.<operation>", e.g. "chain_a.grant".
    """

    def __init__(self, url: Optional[str] = None, exchange_name: Optional[str] = None):
        self._url = url or settings.rabbitmq_url
        self._exchange_name = exchange_name or settings.submission_exchange
        self._connection = None
        self._channel = None
        self._exchange = None

    async def connect(self):
        self._connection = await aio_pika.connect_robust(self._url)
        self._channel = await self._connection.channel()
        self._exchange = await self._channel.declare_exchange(
            self._exchange_name,
            aio_pika.ExchangeType.TOPIC,
            durable=True,
        )

    async def submit(
        self,
        chain: ChainId,
        operation: str,
        message: Dict[str, Any],
        idempotency_key: str,
    ) -> None:
        if not self._exchange:
            await self.connect()

        msg = aio_pika.Message(
            body=json.dumps(message).encode(),
            content_type="application/json",
            delivery_mode=aio_pika.DeliveryMode.PERSISTENT,
            message_id=message.get("submission_id"),
            headers={
                "idempotency_key": idempotency_key,
            },
        )

        await self._exchange.publish(msg, routing_key=f"{chain.value}.{operation}")

    async def close(self) -> None:
        if self._connection is not None:
            await self._connection.close()
            self._connection = None
            self._channel = None
            self._exchange = None
