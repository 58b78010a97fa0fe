# ai proxy: forwards chat requests to an openai-compatible completions api
# the api key stays server-side; upstream failures are remapped into the error taxonomy

import errno
import json
import logging
import math
import socket
from typing import Any, Optional

import httpx

from app.errors import FailedPrecondition, Internal, InvalidArgument, ServiceError, Unavailable, Unknown
from app.models.ai import ChatCompletionResponse
from app.services.config_resolver import OpenAIConfig

logger = logging.getLogger(__name__)

DEFAULT_MAX_TOKENS = 800
MAX_TOKENS_CAP = 2000
DEFAULT_TEMPERATURE = 0.7
MAX_TEMPERATURE = 2.0

UNREACHABLE_MESSAGE = "The server could not reach OpenAI. Ensure outbound networking is enabled and retry."
TIMEOUT_MESSAGE = "The OpenAI request timed out before it could finish. Please try again."
INTERRUPTED_MESSAGE = "The connection to OpenAI was interrupted. Please try again in a moment."


def normalize_messages(raw: Any) -> list[dict[str, str]]:
    if not isinstance(raw, list) or not raw:
        raise InvalidArgument("Expected a non-empty messages array.")

    messages = []
    for index, entry in enumerate(raw):
        entry = entry if isinstance(entry, dict) else {}
        role = entry.get("role")
        role = role.strip() if isinstance(role, str) else ""
        content = entry.get("content")
        content = content if isinstance(content, str) else ""
        if not role:
            raise InvalidArgument(f"messages[{index}].role must be a non-empty string")
        if not content.strip():
            raise InvalidArgument(f"messages[{index}].content must be a non-empty string")
        messages.append({"role": role, "content": content})
    return messages


def _to_number(value: Any) -> Optional[float]:
    """lenient numeric coercion; None when the value is not a finite number"""
    if isinstance(value, bool):
        return float(value)
    if isinstance(value, (int, float)):
        number = float(value)
    elif isinstance(value, str):
        text = value.strip()
        if not text:
            return 0.0
        try:
            number = float(text)
        except ValueError:
            return None
    else:
        return None
    return number if math.isfinite(number) else None


def clamp_max_tokens(value: Any) -> int:
    if value is None:
        return DEFAULT_MAX_TOKENS
    number = _to_number(value)
    if number is None:
        return DEFAULT_MAX_TOKENS
    return max(1, min(math.trunc(number), MAX_TOKENS_CAP))


def clamp_temperature(value: Any) -> float:
    if value is None:
        return DEFAULT_TEMPERATURE
    number = _to_number(value)
    if number is None:
        return DEFAULT_TEMPERATURE
    return max(0.0, min(number, MAX_TEMPERATURE))


def _upstream_message(data: Any, text: str) -> str:
    """pull the most specific error text out of an upstream error body"""
    if isinstance(data, dict):
        error = data.get("error")
        if isinstance(error, dict) and isinstance(error.get("message"), str) and error["message"].strip():
            return error["message"].strip()
        if isinstance(data.get("message"), str) and data["message"].strip():
            return data["message"].strip()
    elif text.strip():
        return text.strip()
    return "OpenAI request failed."


def _root_causes(exc: BaseException):
    seen = set()
    current: Optional[BaseException] = exc
    while current is not None and id(current) not in seen:
        seen.add(id(current))
        yield current
        current = current.__cause__ or current.__context__


def classify_transport_error(exc: httpx.TransportError) -> ServiceError:
    """map connection-level failures onto retryable unavailable errors"""
    if isinstance(exc, httpx.TimeoutException):
        return Unavailable(TIMEOUT_MESSAGE, {"reason": "timeout"})

    if isinstance(exc, httpx.ConnectError):
        for cause in _root_causes(exc):
            if isinstance(cause, ConnectionRefusedError) or getattr(cause, "errno", None) == errno.ECONNREFUSED:
                return Unavailable(INTERRUPTED_MESSAGE, {"reason": "connection-refused"})
            if isinstance(cause, socket.gaierror):
                break
        return Unavailable(UNREACHABLE_MESSAGE, {"reason": "unreachable"})

    if isinstance(exc, (httpx.ReadError, httpx.WriteError, httpx.RemoteProtocolError)):
        return Unavailable(INTERRUPTED_MESSAGE, {"reason": "connection-reset"})

    return Internal(
        "The AI companion is currently unavailable. Please try again.",
        {"message": str(exc) or "Unexpected error while calling OpenAI."},
    )


async def generate_chat_completion(
    config: OpenAIConfig,
    messages: Any,
    model: Any = None,
    max_tokens: Any = None,
    temperature: Any = None,
    transport: Optional[httpx.AsyncBaseTransport] = None,
) -> ChatCompletionResponse:
    if not config.configured:
        raise FailedPrecondition(
            "AI companion not configured. Please ask an admin to configure the OpenAI API key in Admin Settings."
        )

    normalized = normalize_messages(messages)
    model = model.strip() if isinstance(model, str) and model.strip() else config.default_model
    body = {
        "model": model,
        "messages": normalized,
        "max_tokens": clamp_max_tokens(max_tokens),
        "temperature": clamp_temperature(temperature),
    }

    try:
        async with httpx.AsyncClient(timeout=config.timeout, transport=transport) as client:
            resp = await client.post(
                f"{config.base_url}/chat/completions",
                headers={
                    "Authorization": f"Bearer {config.api_key}",
                    "Content-Type": "application/json",
                },
                json=body,
            )
    except httpx.TransportError as e:
        error = classify_transport_error(e)
        logger.error(f"Transport error while calling OpenAI: {e!r} -> {error.code}: {error.message}")
        raise error from e

    text = resp.text
    try:
        data = resp.json() if text.strip() else None
    except (json.JSONDecodeError, ValueError):
        data = None

    if not 200 <= resp.status_code < 300:
        message = _upstream_message(data, text)
        logger.error(f"OpenAI chat completion failed (status {resp.status_code}): {message}")
        failure = Unavailable if resp.status_code >= 500 else FailedPrecondition
        raise failure(message, {"message": message, "status": resp.status_code, "body": text or None})

    if not isinstance(data, dict):
        logger.error("Failed to parse OpenAI response JSON")
        raise Unknown(
            "OpenAI returned an unreadable response.",
            {"message": "OpenAI returned an unreadable response."},
        )

    choices = data.get("choices")
    choice = choices[0] if isinstance(choices, list) and choices else {}
    message = choice.get("message") if isinstance(choice, dict) else None
    content = message.get("content") if isinstance(message, dict) else None
    reply = content.strip() if isinstance(content, str) else ""
    if not reply:
        raise Unknown("OpenAI did not return any message content.")

    return ChatCompletionResponse(
        text=reply,
        id=data.get("id"),
        model=data.get("model") or model,
        usage=data.get("usage"),
    )
