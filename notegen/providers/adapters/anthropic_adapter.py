"""
Anthropic Messages API Adapter.

Auth uses `x-api-key` + `anthropic-version` instead of a Bearer token, and
text arrives in `content_block_delta` events.
"""
import json
from typing import Any, Dict, Optional

from ..base import RequestBuilder, ResponseParser
from ..sse import DONE_SENTINEL, iter_sse_data
from ..types import GenerationRequest
from .utils import choice_delta, first_text

ANTHROPIC_VERSION = "2023-06-01"

# The Messages API rejects requests without max_tokens.
DEFAULT_MAX_TOKENS = 4096


class AnthropicRequestBuilder(RequestBuilder):

    def build_request_body(self, request: GenerationRequest, model: str) -> Dict[str, Any]:
        body: Dict[str, Any] = {
            "model": model,
            "messages": self.user_messages(request),
            "stream": request.stream,
            "max_tokens": request.max_tokens or DEFAULT_MAX_TOKENS,
        }
        if request.temperature is not None:
            body["temperature"] = request.temperature
        return body

    def build_headers(self, api_key: Optional[str]) -> Dict[str, str]:
        headers = {
            "Content-Type": "application/json",
            "Accept": "text/event-stream",
            "anthropic-version": ANTHROPIC_VERSION,
        }
        if api_key:
            headers["x-api-key"] = api_key
        return headers


class AnthropicResponseParser(ResponseParser):
    """Reads `delta.text` (text_delta) and `delta.thinking` (thinking_delta)."""

    has_thinking_channel = True

    def is_stream_complete(self, chunk: str) -> bool:
        for data in iter_sse_data(chunk):
            if data == DONE_SENTINEL:
                return True
            try:
                parsed = json.loads(data)
            except json.JSONDecodeError:
                continue
            if isinstance(parsed, dict) and parsed.get("type") == "message_stop":
                return True
        return False

    def content_from_payload(self, payload: Dict[str, Any]) -> str:
        delta = payload.get("delta")
        if isinstance(delta, dict):
            text = first_text(delta, ("text",))
            if text:
                return text
        # Some Anthropic-compatible gateways answer in OpenAI format.
        return first_text(choice_delta(payload), ("content",))

    def thinking_from_payload(self, payload: Dict[str, Any]) -> str:
        delta = payload.get("delta")
        if isinstance(delta, dict):
            return first_text(delta, ("thinking",))
        return ""
