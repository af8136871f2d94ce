"""
Push agent location pings to the audit queue.
Backend: AWS SQS when SQS_AUDIT_QUEUE_URL is set, Redis list (LPUSH) otherwise.
"""
import asyncio
import json
from typing import Any

import boto3
import redis.asyncio as redis

from delivery_orders.config import settings

LOCATION_AUDIT_KEY = "audit:agent_locations"

_redis: redis.Redis | None = None
_sqs_client: Any = None


async def get_redis() -> redis.Redis:
    global _redis
    if _redis is None:
        _redis = redis.from_url(settings.redis_url, decode_responses=True)
    return _redis


async def close_redis() -> None:
    global _redis
    if _redis is not None:
        await _redis.aclose()
        _redis = None


def _get_sqs_client():
    global _sqs_client
    if _sqs_client is None:
        _sqs_client = boto3.client("sqs", region_name=settings.aws_region)
    return _sqs_client


async def _send_sqs(body: dict) -> None:
    """boto3 is blocking, run it in a thread."""
    client = _get_sqs_client()
    await asyncio.to_thread(
        client.send_message,
        QueueUrl=settings.sqs_audit_queue_url,
        MessageBody=json.dumps(body),
    )


def queue_backend() -> str:
    return "sqs" if settings.sqs_audit_queue_url else "redis"


async def push_location(body: dict) -> str:
    """Send one JSON-ready ping. Returns the backend used."""
    if settings.sqs_audit_queue_url:
        await _send_sqs(body)
        return "sqs"
    r = await get_redis()
    await r.lpush(LOCATION_AUDIT_KEY, json.dumps(body))
    return "redis"
