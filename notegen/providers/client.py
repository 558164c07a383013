"""
Provider Client

One concrete client type for every backend. Backend differences live in the
injected RequestBuilder and ResponseParser factory; this module owns
credentials, HTTP, timeout, cancellation and callback dispatch.
"""
import asyncio
import inspect
import logging
import time
import uuid
from typing import Any, AsyncIterator, Awaitable, Callable, Optional, Set

import httpx

from ..cancellation import CancellationToken
from ..config import settings
from ..errors import (
    CredentialMissingError,
    GenerationCancelled,
    GenerationError,
    GenerationTimeoutError,
    ProviderHTTPError,
    TransportError,
    UnsupportedModelError,
    scrub_secret,
)
from ..services.key_store import CredentialProvider
from ..utils.llm_logger import LLMLogger
from .base import RequestBuilder, ResponseParser
from .sse import SSEFramer
from .stream import StreamProcessor
from .types import (
    GenerationRequest,
    GenerationResult,
    ProviderMetadata,
    StreamEvent,
    StreamEventKind,
)

logger = logging.getLogger(__name__)

ParserFactory = Callable[[], ResponseParser]


async def _invoke(callback: Optional[Callable[..., Any]], *args: Any) -> None:
    """Call a sync or async callback."""
    if callback is None:
        return
    outcome = callback(*args)
    if inspect.isawaitable(outcome):
        await outcome


async def _next_bytes(byte_stream: AsyncIterator[bytes]) -> Optional[bytes]:
    """Next body block, or None at end of stream."""
    try:
        return await byte_stream.__anext__()
    except StopAsyncIteration:
        return None


class _Race:
    """
    Runs awaitables against the caller's token and the request deadline.

    The token waiter is created once per request and reused for every await.
    """

    def __init__(self, token: CancellationToken, deadline: float, context: dict):
        self._token = token
        self._deadline = deadline
        self._context = context
        self._waiter: Optional[asyncio.Future] = None

    async def __call__(self, awaitable: Awaitable[Any]) -> Any:
        if self._token.cancelled:
            raise GenerationCancelled(self._token.reason)

        loop = asyncio.get_running_loop()
        if self._waiter is None:
            self._waiter = asyncio.ensure_future(self._token.wait())

        task = asyncio.ensure_future(awaitable)
        remaining = self._deadline - loop.time()
        pending: Set[asyncio.Future] = {task, self._waiter}
        done, _ = await asyncio.wait(
            pending,
            timeout=max(remaining, 0),
            return_when=asyncio.FIRST_COMPLETED,
        )

        if task in done:
            # The caller re-checks the token before using the result.
            return task.result()

        task.cancel()
        await asyncio.gather(task, return_exceptions=True)

        if self._token.cancelled:
            raise GenerationCancelled(self._token.reason)
        raise GenerationTimeoutError("request deadline exceeded", **self._context)

    def close(self) -> None:
        if self._waiter is not None:
            self._waiter.cancel()
            self._waiter = None


class ProviderClient:
    """
    Streaming generation client for one backend.

    Instances are shared between requests and hold no per-request state;
    everything mutable lives in the StreamProcessor created per call.
    """

    def __init__(
        self,
        metadata: ProviderMetadata,
        request_builder: RequestBuilder,
        parser_factory: ParserFactory,
        credentials: Optional[CredentialProvider] = None,
        *,
        http_client: Optional[httpx.AsyncClient] = None,
        timeout: Optional[float] = None,
        idle_threshold: Optional[float] = None,
        max_parse_failures: Optional[int] = None,
        llm_logger: Optional[LLMLogger] = None,
    ):
        self.metadata = metadata
        self.request_builder = request_builder
        self.parser_factory = parser_factory
        self.credentials = credentials
        self.http_client = http_client
        self.timeout = timeout if timeout is not None else settings.request_timeout_seconds
        if idle_threshold is None:
            idle_threshold = metadata.thinking_idle_threshold
        if idle_threshold is None:
            idle_threshold = settings.thinking_idle_threshold_seconds
        self.idle_threshold = idle_threshold
        self.max_parse_failures = (
            max_parse_failures if max_parse_failures is not None
            else settings.max_consecutive_parse_failures
        )
        self.llm_logger = llm_logger

    @property
    def provider_id(self) -> str:
        return self.metadata.id

    def resolve_model(self, request: GenerationRequest) -> str:
        """Request model or provider default; strict providers reject unknown ids."""
        model = request.model or self.metadata.default_model
        if self.metadata.strict_models and model not in self.metadata.supported_models:
            raise UnsupportedModelError(
                f"model '{model}' is not supported by {self.metadata.name}",
                provider_id=self.provider_id,
                model=model,
                prompt=request.prompt,
            )
        return model

    async def resolve_api_key(self, request: GenerationRequest, model: str) -> Optional[str]:
        api_key = None
        if self.credentials is not None:
            api_key = await self.credentials.get_key(self.provider_id)
        if not api_key and self.metadata.requires_api_key:
            raise CredentialMissingError(
                f"no API key configured for provider '{self.provider_id}'",
                provider_id=self.provider_id,
                model=model,
                prompt=request.prompt,
            )
        return api_key or None

    # ==================== Public API ====================

    async def stream_content(
        self,
        request: GenerationRequest,
        cancellation_token: Optional[CancellationToken] = None,
    ) -> AsyncIterator[StreamEvent]:
        """
        Run one request and yield its events.

        Yields partial / phase_change events in arrival order, then exactly
        one complete or error event. Yields nothing further once the token
        is cancelled. Errors are delivered as events, not raised.
        """
        token = cancellation_token or CancellationToken()
        request_id = uuid.uuid4().hex
        started = time.monotonic()
        model = request.model or self.metadata.default_model
        processor: Optional[StreamProcessor] = None
        race: Optional[_Race] = None
        response: Optional[httpx.Response] = None
        owns_client = self.http_client is None
        client = self.http_client
        outcome = "completed"
        api_key: Optional[str] = None

        try:
            if token.cancelled:
                raise GenerationCancelled(token.reason)

            model = self.resolve_model(request)
            api_key = await self.resolve_api_key(request, model)
            context = {"provider_id": self.provider_id, "model": model, "prompt": request.prompt}

            body = self.request_builder.build_request_body(request, model)
            headers = self.request_builder.build_headers(api_key)
            if self.llm_logger is not None:
                self.llm_logger.log_request(request_id, self.provider_id, model, self.metadata.endpoint, body)

            loop = asyncio.get_running_loop()
            race = _Race(token, loop.time() + self.timeout, context)
            if client is None:
                client = httpx.AsyncClient(timeout=httpx.Timeout(self.timeout))

            logger.info(f"[{self.provider_id}] POST {self.metadata.endpoint} model={model} request={request_id[:8]}")
            http_request = client.build_request("POST", self.metadata.endpoint, json=body, headers=headers)
            try:
                response = await race(client.send(http_request, stream=True))

                if not 200 <= response.status_code < 300:
                    raw = await race(response.aread())
                    text = scrub_secret(raw.decode("utf-8", errors="replace"), api_key)
                    raise ProviderHTTPError(response.status_code, text, **context)

                processor = StreamProcessor(
                    self.provider_id,
                    model,
                    self.parser_factory(),
                    prompt=request.prompt,
                    idle_threshold=self.idle_threshold,
                    max_parse_failures=self.max_parse_failures,
                )
                framer = SSEFramer()
                byte_stream = response.aiter_bytes().__aiter__()

                while not processor.done:
                    data = await race(_next_bytes(byte_stream))
                    if data is None:
                        break
                    for chunk in framer.feed(data):
                        if token.cancelled:
                            raise GenerationCancelled(token.reason)
                        for event in processor.process_chunk(chunk):
                            if token.cancelled:
                                raise GenerationCancelled(token.reason)
                            yield event
                        if processor.done:
                            break

                if not processor.done:
                    for chunk in framer.flush():
                        if token.cancelled:
                            raise GenerationCancelled(token.reason)
                        for event in processor.process_chunk(chunk):
                            if token.cancelled:
                                raise GenerationCancelled(token.reason)
                            yield event

                if token.cancelled:
                    raise GenerationCancelled(token.reason)
                result = processor.finish(request.prompt, request_id)
            except httpx.TimeoutException as e:
                raise GenerationTimeoutError(f"HTTP timeout: {e.__class__.__name__}", **context) from e
            except httpx.HTTPError as e:
                message = scrub_secret(str(e) or e.__class__.__name__, api_key)
                raise TransportError(f"transport failure: {message}", **context) from e

            logger.info(
                f"[{self.provider_id}] completed request={request_id[:8]} "
                f"chunks={processor.state.chunk_count} chars={len(result.raw_markdown)}"
            )
            yield StreamEvent(kind=StreamEventKind.COMPLETE, content=result.content, result=result)

        except GenerationCancelled as e:
            outcome = "cancelled"
            logger.info(f"[{self.provider_id}] request={request_id[:8]} cancelled: {e}")
        except GenerationError as e:
            if token.cancelled:
                # A failure after the caller cancelled is not reported.
                outcome = "cancelled"
                logger.info(f"[{self.provider_id}] request={request_id[:8]} cancelled; dropped {e.__class__.__name__}")
                return
            outcome = e.__class__.__name__
            logger.warning(f"[{self.provider_id}] request={request_id[:8]} failed: {e}")
            if self.llm_logger is not None:
                self.llm_logger.log_error(request_id, e, context=self.metadata.endpoint)
            yield StreamEvent(kind=StreamEventKind.ERROR, error=e)
        finally:
            if race is not None:
                race.close()
            if response is not None:
                await response.aclose()
            if owns_client and client is not None:
                await client.aclose()
            if self.llm_logger is not None:
                state = processor.state if processor is not None else None
                self.llm_logger.log_interaction(
                    request_id,
                    self.provider_id,
                    model,
                    request.prompt,
                    chunk_count=state.chunk_count if state else 0,
                    content_length=len(state.raw_text) if state else 0,
                    reasoning_length=len(state.reasoning_text) if state else 0,
                    duration_seconds=time.monotonic() - started,
                    outcome=outcome,
                )

    async def generate_content(
        self,
        request: GenerationRequest,
        cancellation_token: Optional[CancellationToken] = None,
    ) -> Optional[GenerationResult]:
        """
        Run one request and report through the request's callbacks.

        on_partial(rendered, metadata) fires zero or more times, then
        exactly one of on_complete(rendered, result) / on_error(error),
        unless the token is cancelled, in which case neither fires.

        Returns:
            The result, or None when cancelled

        Raises:
            GenerationError: after on_error has been called
        """
        result: Optional[GenerationResult] = None
        error: Optional[Exception] = None

        async for event in self.stream_content(request, cancellation_token):
            if event.kind in (StreamEventKind.PARTIAL, StreamEventKind.PHASE_CHANGE):
                await _invoke(request.on_partial, event.content, event.metadata)
            elif event.kind == StreamEventKind.COMPLETE:
                result = event.result
                await _invoke(request.on_complete, event.content, result)
            elif event.kind == StreamEventKind.ERROR:
                error = event.error
                await _invoke(request.on_error, error)

        if error is not None:
            raise error
        return result
