# medcross/infrastructure/messaging/rabbitmq_block_source.py

import json
import logging
from typing import AsyncIterator, Optional

import aio_pika

from medcross.application.pipeline import RawBlock
from medcross.config.settings import settings
from medcross.domain.models.record import ChainId

logger = logging.getLogger(__name__)


def decode_block(body: bytes) -> RawBlock:
    """Listener message: {"blockHeight": <int>, "events": [<raw event>, ...]}."""
    data = json.loads(body.decode("utf-8"))
    return RawBlock(block_height=int(data["blockHeight"]), events=list(data.get("events") or []))


class RabbitMQBlockSource:
    """
    Reads blocks of one chain from the durable queue "<prefix>.<chain>" fed by
    the chain listener. A message is acknowledged only after the pipeline has
    processed the block, so a crash redelivers it.
    """

    def __init__(
        self,
        chain: ChainId,
        url: Optional[str] = None,
        queue_prefix: Optional[str] = None,
        prefetch_count: int = 1,
    ):
        self._chain = chain
        self._url = url or settings.rabbitmq_url
        self._queue_name = f"{queue_prefix or settings.ledger_event_queue_prefix}.{chain.value}"
        self._prefetch_count = prefetch_count
        self._connection = None

    @property
    def queue_name(self) -> str:
        return self._queue_name

    async def blocks(self, start_height: int) -> AsyncIterator[RawBlock]:
        self._connection = await aio_pika.connect_robust(self._url)
        try:
            channel = await self._connection.channel()
            # Blocks must be handled one at a time and in delivery order.
            await channel.set_qos(prefetch_count=self._prefetch_count)
            queue = await channel.declare_queue(self._queue_name, durable=True)
            async with queue.iterator() as messages:
                async for message in messages:
                    try:
                        block = decode_block(message.body)
                    except (ValueError, KeyError, TypeError) as e:
                        logger.error(
                            "block_message_rejected",
                            extra={"queue": self._queue_name, "error": str(e)},
                        )
                        await message.reject(requeue=False)
                        continue
                    if block.block_height < start_height:
                        await message.ack()
                        continue
                    yield block
                    await message.ack()
        finally:
            await self._connection.close()
            self._connection = None
