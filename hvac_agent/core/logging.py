"""Logging setup, phone masking and request-id middleware."""

from __future__ import annotations

import logging
import uuid
from typing import Callable

from fastapi import Request

logger = logging.getLogger("hvac.request")


def configure_logging(level_name: str) -> int:
    level = getattr(logging, str(level_name).upper(), logging.INFO)
    logging.basicConfig(level=level, format="%(levelname)s %(name)s %(message)s")
    logging.getLogger("httpx").setLevel(logging.WARNING)
    logging.getLogger("googleapiclient.discovery_cache").setLevel(logging.ERROR)
    return level


def mask_phone(value: str | None) -> str:
    """Hide the middle of a phone number before it reaches the logs."""

    if not value:
        return ""
    value = value.strip()
    if value.startswith("+") and len(value) > 4:
        return value[:3] + "****" + value[-3:]
    if len(value) > 4:
        return value[:2] + "****" + value[-2:]
    return value


async def request_id_middleware(request: Request, call_next: Callable):
    request_id = request.headers.get("x-request-id", str(uuid.uuid4()))
    request.state.request_id = request_id

    logger.info("%s %s [rid=%s]", request.method, request.url.path, request_id)

    response = await call_next(request)
    response.headers["X-Request-ID"] = request_id
    return response
