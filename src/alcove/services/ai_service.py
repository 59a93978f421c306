"""httpx client for the local inference proxy's messages endpoint."""

from __future__ import annotations

import asyncio
import json
import logging
from typing import Any, AsyncGenerator, AsyncIterator, Awaitable, TypeVar

import httpx

from ..config import AIConfig
from ..errors import AbortedError, ProtocolError, TransportError, UpstreamError
from ..models import Message
from .stream_decoder import StreamDecoder, decode_sse

logger = logging.getLogger(__name__)

T = TypeVar("T")

MESSAGES_PATH = "/v1/messages"


class AIService:
    def __init__(self, config: AIConfig, transport: httpx.AsyncBaseTransport | None = None) -> None:
        self.config = config
        self._transport = transport
        self._build_client()

    def _build_client(self) -> None:
        timeout = httpx.Timeout(
            connect=float(self.config.connect_timeout),
            read=float(self.config.request_timeout),
            write=float(self.config.write_timeout),
            pool=float(self.config.pool_timeout),
        )
        # SECURITY-REVIEW: verify=False only when user explicitly sets verify_ssl: false in config
        self.client = httpx.AsyncClient(
            base_url=self.config.base_url,
            verify=self.config.verify_ssl,
            timeout=timeout,
            transport=self._transport,
        )

    async def aclose(self) -> None:
        await self.client.aclose()

    def _headers(self) -> dict[str, str]:
        headers = {
            "content-type": "application/json",
            "anthropic-version": self.config.api_version,
        }
        if self.config.api_key:
            headers["x-api-key"] = self.config.api_key
        return headers

    def build_payload(
        self,
        messages: list[Message],
        tools: list[dict[str, Any]] | None = None,
        model: str | None = None,
    ) -> dict[str, Any]:
        payload: dict[str, Any] = {
            "model": model or self.config.model,
            "max_tokens": self.config.max_tokens,
            "stream": self.config.stream,
            "messages": [m.model_dump(mode="json") for m in messages],
        }
        if tools:
            payload["tools"] = tools
        if self.config.system_prompt:
            payload["system"] = self.config.system_prompt
        return payload

    @staticmethod
    async def _await_or_cancel(awaitable: Awaitable[T], cancel_event: asyncio.Event | None) -> T:
        """Await ``awaitable`` unless ``cancel_event`` fires first, in which case raise AbortedError."""
        if cancel_event is None:
            return await awaitable

        task = asyncio.ensure_future(awaitable)
        cancel_wait = asyncio.ensure_future(cancel_event.wait())
        try:
            done, _pending = await asyncio.wait({task, cancel_wait}, return_when=asyncio.FIRST_COMPLETED)
        except BaseException:
            task.cancel()
            cancel_wait.cancel()
            raise

        if task in done:
            cancel_wait.cancel()
            return task.result()

        task.cancel()
        await asyncio.wait({task}, timeout=2.0)
        if task.done() and not task.cancelled() and task.exception() is None:
            result = task.result()
            if isinstance(result, httpx.Response):
                await result.aclose()
        raise AbortedError()

    @staticmethod
    async def _iter_lines(lines: AsyncIterator[str], cancel_event: asyncio.Event | None) -> AsyncGenerator[str, None]:
        """Iterate response lines, raising AbortedError as soon as ``cancel_event`` is set."""
        iterator = lines.__aiter__()
        while True:
            if cancel_event is not None and cancel_event.is_set():
                raise AbortedError()

            next_line = asyncio.ensure_future(iterator.__anext__())
            wait_tasks: set[asyncio.Future[Any]] = {next_line}
            cancel_wait = asyncio.ensure_future(cancel_event.wait()) if cancel_event else None
            if cancel_wait:
                wait_tasks.add(cancel_wait)

            try:
                done, _pending = await asyncio.wait(wait_tasks, return_when=asyncio.FIRST_COMPLETED)
            except BaseException:
                next_line.cancel()
                if cancel_wait:
                    cancel_wait.cancel()
                raise

            if cancel_wait and cancel_wait in done:
                next_line.cancel()
                await asyncio.wait({next_line}, timeout=2.0)
                raise AbortedError()

            if cancel_wait:
                cancel_wait.cancel()

            try:
                line = next_line.result()
            except StopAsyncIteration:
                return
            yield line

    async def stream_turn(
        self,
        messages: list[Message],
        tools: list[dict[str, Any]] | None = None,
        model: str | None = None,
        cancel_event: asyncio.Event | None = None,
    ) -> AsyncGenerator[dict[str, Any], None]:
        """Run one model turn, yielding progress notifications.

        Notifications are ``{"event": "block-start" | "block-delta" | "block-stop", "data": {...}}``.
        The last event is ``{"event": "message", "data": {"content": [...blocks], "stop_reason": ...}}``.

        Raises TransportError, UpstreamError, ProtocolError or AbortedError.
        """
        if cancel_event is not None and cancel_event.is_set():
            raise AbortedError()

        payload = self.build_payload(messages, tools=tools, model=model)
        request = self.client.build_request("POST", MESSAGES_PATH, json=payload, headers=self._headers())

        try:
            response = await self._await_or_cancel(self.client.send(request, stream=True), cancel_event)
        except httpx.TimeoutException as e:
            logger.warning("Timed out connecting to proxy at %s", self.config.base_url)
            raise TransportError(f"Timed out connecting to proxy at {self.config.base_url}") from e
        except httpx.RequestError as e:
            logger.warning("Cannot reach proxy at %s: %s", self.config.base_url, type(e).__name__)
            raise TransportError(f"Cannot connect to proxy at {self.config.base_url}: {e}") from e

        try:
            if response.status_code >= 400:
                try:
                    await response.aread()
                    body = response.text
                except httpx.HTTPError:
                    body = ""
                logger.warning("Proxy returned HTTP %d", response.status_code)
                raise UpstreamError(response.status_code, body)

            content_type = response.headers.get("content-type", "")
            if "text/event-stream" in content_type:
                lines = self._iter_lines(response.aiter_lines(), cancel_event)
                async for event in decode_sse(lines):
                    yield event
                return

            raw = await self._await_or_cancel(response.aread(), cancel_event)
            try:
                document = json.loads(raw)
            except (json.JSONDecodeError, UnicodeDecodeError) as e:
                raise ProtocolError("Proxy reply is neither an event stream nor JSON") from e
            decoder = StreamDecoder()
            for event in decoder.feed_document(document):
                yield event
            yield {"event": "message", "data": {"content": decoder.finish(), "stop_reason": decoder.stop_reason}}
        except httpx.TimeoutException as e:
            raise TransportError("Timed out waiting for the proxy to respond") from e
        except httpx.RequestError as e:
            raise TransportError(f"Connection to proxy failed mid-response: {e}") from e
        finally:
            await response.aclose()
