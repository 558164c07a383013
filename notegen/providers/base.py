"""
Request Builder / Response Parser Contracts

Each backend is described by one RequestBuilder and one ResponseParser.
ProviderClient is composed from the pair instead of being subclassed.
"""
import json
from abc import ABC, abstractmethod
from typing import Any, Dict, List, Optional

from .sse import DONE_SENTINEL, iter_sse_data
from .types import GenerationRequest


class ChunkParseError(ValueError):
    """A framed chunk did not contain valid structured data."""


class RequestBuilder(ABC):
    """
    Turns a GenerationRequest into the backend-specific HTTP request.

    Builders are stateless and shared by every request of a provider.
    """

    @abstractmethod
    def build_request_body(self, request: GenerationRequest, model: str) -> Dict[str, Any]:
        """
        Build the JSON body for one request.

        Args:
            request: Caller request
            model: Resolved model id

        Returns:
            JSON-serialisable payload. Optional sampling fields are left out
            when the caller did not set them.
        """
        pass

    def build_headers(self, api_key: Optional[str]) -> Dict[str, str]:
        """
        Build HTTP headers. Subclasses override for vendor-specific auth.

        Args:
            api_key: Credential (may be None for keyless custom endpoints)

        Returns:
            Header dict
        """
        headers = {
            "Content-Type": "application/json",
            "Accept": "text/event-stream",
        }
        if api_key:
            headers["Authorization"] = f"Bearer {api_key}"
        return headers

    @staticmethod
    def user_messages(request: GenerationRequest) -> List[Dict[str, str]]:
        return [{"role": "user", "content": request.prompt}]

    @staticmethod
    def apply_sampling(target: Dict[str, Any], request: GenerationRequest) -> Dict[str, Any]:
        """Copy temperature / max_tokens into target only when the caller set them."""
        if request.temperature is not None:
            target["temperature"] = request.temperature
        if request.max_tokens:
            target["max_tokens"] = request.max_tokens
        return target


class ResponseParser(ABC):
    """
    Extracts deltas from one framed chunk of a response body.

    A new parser is created for every request, so subclasses may keep
    per-request state (see the Bailian full-text diff).
    """

    # Whether extract_thinking() reads a dedicated reasoning field.
    has_thinking_channel: bool = False

    def __init__(self) -> None:
        self._cached_chunk: Optional[str] = None
        self._cached_payloads: List[Dict[str, Any]] = []

    def payloads(self, chunk: str) -> List[Dict[str, Any]]:
        """
        Decode every JSON payload in a chunk.

        Handles SSE framing (`data: {...}` lines) as well as a bare JSON
        object (non-streamed responses). The sentinel is skipped.

        Raises:
            ChunkParseError: if a data line is not a JSON object
        """
        if chunk == self._cached_chunk:
            return self._cached_payloads

        payloads: List[Dict[str, Any]] = []
        data_lines = list(iter_sse_data(chunk))
        if not data_lines:
            stripped = chunk.strip()
            if stripped.startswith("{"):
                data_lines = [stripped]

        for data in data_lines:
            if data == DONE_SENTINEL:
                continue
            try:
                parsed = json.loads(data)
            except json.JSONDecodeError as e:
                raise ChunkParseError(f"invalid JSON in chunk: {e.msg}") from e
            if not isinstance(parsed, dict):
                raise ChunkParseError("chunk payload is not a JSON object")
            payloads.append(parsed)

        self._cached_chunk = chunk
        self._cached_payloads = payloads
        return payloads

    def is_stream_complete(self, chunk: str) -> bool:
        """Return True if the chunk carries the termination sentinel."""
        return any(data == DONE_SENTINEL for data in iter_sse_data(chunk))

    def extract_content(self, chunk: str) -> str:
        """
        Extract the content delta carried by a chunk.

        Raises:
            ChunkParseError: if the chunk is malformed
        """
        return "".join(self.content_from_payload(p) for p in self.payloads(chunk))

    def extract_thinking(self, chunk: str) -> Optional[str]:
        """
        Extract the reasoning delta from the backend's dedicated channel.

        Returns:
            Reasoning text, or None when the backend has no such channel or
            the chunk carries none.
        """
        if not self.has_thinking_channel:
            return None
        thinking = "".join(self.thinking_from_payload(p) for p in self.payloads(chunk))
        return thinking or None

    @abstractmethod
    def content_from_payload(self, payload: Dict[str, Any]) -> str:
        pass

    def thinking_from_payload(self, payload: Dict[str, Any]) -> str:
        return ""
