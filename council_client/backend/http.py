"""HTTP backend: REST conversation calls and the server-sent-event stream, via httpx."""

import json
import logging
from collections.abc import AsyncIterable, AsyncIterator, Mapping
from typing import Any

import httpx

from config.config_loader import ServerConfig
from council_client.backend.base import CouncilBackend
from council_client.errors import NetworkError, NotFoundError, ProtocolError, TransportError
from council_client.events import parse_final_response, parse_metadata, parse_model_responses
from council_client.models import (
    AssistantMessage,
    Conversation,
    ConversationSummary,
    Message,
    UserMessage,
)

logger = logging.getLogger(__name__)


async def parse_sse_lines(lines: AsyncIterable[str]) -> AsyncIterator[dict[str, Any]]:
    """Group SSE lines into events and decode each event's JSON data.

    An ``event:`` field fills in ``type`` when the JSON object has none.
    Undecodable events are logged and skipped.
    """
    event_name: str | None = None
    data_lines: list[str] = []

    def flush() -> dict[str, Any] | None:
        if not data_lines:
            return None
        payload = "\n".join(data_lines)
        try:
            decoded = json.loads(payload)
        except json.JSONDecodeError:
            logger.warning("Skipping undecodable stream event: %.200s", payload)
            return None
        if not isinstance(decoded, dict):
            logger.warning("Skipping non-object stream event: %.200s", payload)
            return None
        if event_name and "type" not in decoded:
            decoded["type"] = event_name
        return decoded

    async for line in lines:
        if not line:
            event = flush()
            event_name, data_lines = None, []
            if event is not None:
                yield event
            continue
        if line.startswith(":"):
            continue
        field_name, _, value = line.partition(":")
        if value.startswith(" "):
            value = value[1:]
        if field_name == "event":
            event_name = value
        elif field_name == "data":
            data_lines.append(value)

    event = flush()
    if event is not None:
        yield event


def _parse_message(raw: Mapping[str, Any]) -> Message:
    if raw.get("role") == "user":
        return UserMessage(content=str(raw.get("content", "")))
    stage1 = raw.get("stage1")
    stage3 = raw.get("stage3")
    return AssistantMessage(
        stage1=parse_model_responses(stage1, "conversation") if stage1 is not None else None,
        stage2=raw.get("stage2"),
        stage3=parse_final_response(stage3, "conversation") if stage3 is not None else None,
        metadata=parse_metadata(raw.get("metadata")),
        error=raw.get("error"),
    )


def parse_conversation(raw: Mapping[str, Any]) -> Conversation:
    """Build a Conversation from the server's JSON. Stored messages are never in progress."""
    try:
        return Conversation(
            id=str(raw["id"]),
            created_at=str(raw.get("created_at", "")),
            messages=tuple(_parse_message(m) for m in raw.get("messages", [])),
            title=raw.get("title"),
        )
    except (KeyError, TypeError, ProtocolError) as exc:
        raise NetworkError(f"Malformed conversation payload: {exc}") from exc


def parse_summary(raw: Mapping[str, Any]) -> ConversationSummary:
    return ConversationSummary(
        id=str(raw["id"]),
        created_at=str(raw.get("created_at", "")),
        message_count=int(raw.get("message_count", 0)),
        title=raw.get("title"),
    )


class HttpCouncilBackend(CouncilBackend):
    """Council server reached over HTTP."""

    def __init__(self, config: ServerConfig, transport: httpx.AsyncBaseTransport | None = None) -> None:
        self._config = config
        self._client = httpx.AsyncClient(
            base_url=config.base_url,
            timeout=config.request_timeout_sec,
            transport=transport,
        )

    async def _request(
        self,
        method: str,
        path: str,
        not_found_id: str | None = None,
        **kwargs: Any,
    ) -> Any:
        try:
            response = await self._client.request(method, path, **kwargs)
        except httpx.HTTPError as exc:
            raise NetworkError(f"{method} {path} failed: {exc}") from exc

        if response.status_code == 404 and not_found_id is not None:
            raise NotFoundError(not_found_id)
        if response.is_error:
            raise NetworkError(f"{method} {path} returned HTTP {response.status_code}")

        try:
            return response.json()
        except ValueError as exc:
            raise NetworkError(f"{method} {path} returned invalid JSON") from exc

    async def list_conversations(self) -> list[ConversationSummary]:
        raw = await self._request("GET", "/api/conversations")
        if not isinstance(raw, list):
            raise NetworkError("Conversation list is not an array")
        try:
            return [parse_summary(item) for item in raw]
        except (KeyError, TypeError, ValueError) as exc:
            raise NetworkError(f"Malformed conversation summary: {exc}") from exc

    async def get_conversation(self, conversation_id: str) -> Conversation:
        raw = await self._request("GET", f"/api/conversations/{conversation_id}", not_found_id=conversation_id)
        return parse_conversation(raw)

    async def create_conversation(self) -> Conversation:
        raw = await self._request("POST", "/api/conversations", json={})
        return parse_conversation(raw)

    async def send_message_stream(self, conversation_id: str, content: str) -> AsyncIterator[dict[str, Any]]:
        path = f"/api/conversations/{conversation_id}/message/stream"
        # read timeout doubles as the idle timeout between events
        timeout = httpx.Timeout(
            self._config.request_timeout_sec,
            read=self._config.stream_idle_timeout_sec,
        )
        try:
            async with self._client.stream("POST", path, json={"content": content}, timeout=timeout) as response:
                if response.status_code != 200:
                    raise TransportError(f"Stream request returned HTTP {response.status_code}")
                logger.debug("Stream opened for conversation %s", conversation_id)
                async for event in parse_sse_lines(response.aiter_lines()):
                    yield event
        except httpx.TimeoutException as exc:
            raise TransportError(
                f"No stream activity within {self._config.stream_idle_timeout_sec}s"
            ) from exc
        except httpx.HTTPError as exc:
            raise TransportError(f"Stream failed: {exc}") from exc

    async def health(self) -> None:
        await self._request("GET", "/")

    async def aclose(self) -> None:
        await self._client.aclose()
