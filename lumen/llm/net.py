"""Small helpers for turning httpx failures into readable text."""

from __future__ import annotations

import asyncio
import json
from typing import Callable

import httpx

DEFAULT_TIMEOUT = 120.0

# Builds a fresh client for one call, given its timeout in seconds.
ClientFactory = Callable[[float], httpx.AsyncClient]

SERVER_HINT = "(Check: Is the server running? Is CORS configured?)"


def is_unreachable(exc: BaseException) -> bool:
    """True when the server could not be reached at all."""
    return isinstance(
        exc,
        (httpx.ConnectError, httpx.TimeoutException, asyncio.TimeoutError),
    )


def describe_error(exc: BaseException) -> str:
    text = str(exc)
    if text:
        return text
    if isinstance(exc, (httpx.TimeoutException, asyncio.TimeoutError)):
        return "Request timed out"
    if isinstance(exc, httpx.ConnectError):
        return "Failed to reach server"
    return exc.__class__.__name__


def response_error_message(response: httpx.Response) -> str:
    """
    Best human-readable message from an already-read error response.

    Understands the OpenAI shape (``{"error": {"message": ...}}``) and the
    Ollama shape (``{"error": "..."}``), falling back to the reason phrase.
    """
    try:
        data = json.loads(response.content or b"")
    except (json.JSONDecodeError, UnicodeDecodeError):
        data = None

    if isinstance(data, dict):
        error = data.get("error")
        if isinstance(error, dict) and error.get("message"):
            return str(error["message"])
        if isinstance(error, str) and error:
            return error

    return response.reason_phrase or f"HTTP {response.status_code}"
