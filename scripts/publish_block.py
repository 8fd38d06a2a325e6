# scripts/publish_block.py
# Dev helper: push one raw block from a JSON file onto a chain's block queue.
# Usage: python scripts/publish_block.py chain_a block.json

import sys
from pathlib import Path

# Ensure project root is on the path when running this script directly
sys.path.insert(0, str(Path(__file__).resolve().parent.parent))

import asyncio

import aio_pika

from medcross.config.settings import settings
from medcross.domain.models.record import parse_chain


async def publish(chain_name: str, path: str):
    chain = parse_chain(chain_name)
    body = Path(path).read_bytes()
    connection = await aio_pika.connect_robust(settings.rabbitmq_url)
    async with connection:
        channel = await connection.channel()
        queue_name = f"{settings.ledger_event_queue_prefix}.{chain.value}"
        await channel.declare_queue(queue_name, durable=True)
        await channel.default_exchange.publish(
            aio_pika.Message(body=body, delivery_mode=aio_pika.DeliveryMode.PERSISTENT),
            routing_key=queue_name,
        )
    print("Published to", queue_name)


asyncio.run(publish(sys.argv[1], sys.argv[2]))
