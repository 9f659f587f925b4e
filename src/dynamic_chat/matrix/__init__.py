"""Matrix chat gateway."""

from __future__ import annotations

from .client import MatrixClient, MatrixRetryAfter, RetryAfter, parse_room_message
from .config import MatrixGatewayConfig
from .gateway import ExponentialBackoff, MatrixGateway, build_client

__all__ = [
    "ExponentialBackoff",
    "MatrixClient",
    "MatrixGateway",
    "MatrixGatewayConfig",
    "MatrixRetryAfter",
    "RetryAfter",
    "build_client",
    "parse_room_message",
]
