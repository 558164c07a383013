"""
Custom OpenAI-Compatible Adapter.

Used for user-registered endpoints (LM Studio, vLLM, one-api, ...). These
servers differ in small ways, so the parser is deliberately lenient.
"""
import re
from typing import Any, Dict

from ..base import ChunkParseError
from ..sse import DONE_SENTINEL, iter_sse_data
from .openai_adapter import OpenAIRequestBuilder, OpenAIResponseParser
from .utils import choice_delta, finish_reason, first_text

CHAT_COMPLETIONS_PATH = "/chat/completions"

_VERSION_SUFFIX = re.compile(r"/v\d+$")


def normalize_endpoint(base_url: str) -> str:
    """
    Turn a user-supplied base URL into a chat/completions endpoint.

    Examples:
        http://localhost:1234        -> http://localhost:1234/v1/chat/completions
        https://api.example.com/v4   -> https://api.example.com/v4/chat/completions
        .../v1/chat/completions/     -> .../v1/chat/completions
    """
    url = base_url.strip().rstrip("/")
    if CHAT_COMPLETIONS_PATH in url:
        return url
    if _VERSION_SUFFIX.search(url):
        return url + CHAT_COMPLETIONS_PATH
    return url + "/v1" + CHAT_COMPLETIONS_PATH


class CustomRequestBuilder(OpenAIRequestBuilder):
    """Same body as OpenAI. The base headers already skip Authorization without a key."""


class CustomResponseParser(OpenAIResponseParser):
    """
    Accepts `delta.content` or `message.content`, reasoning in
    `reasoning_content` or `thinking`. A `finish_reason: "stop"` chunk that
    still carries content is extracted; the sentinel is the empty one.
    """

    has_thinking_channel = True

    def is_stream_complete(self, chunk: str) -> bool:
        if any(data == DONE_SENTINEL for data in iter_sse_data(chunk)):
            return True
        try:
            payloads = self.payloads(chunk)
        except ChunkParseError:
            return False
        return any(
            finish_reason(p) == "stop" and not self.content_from_payload(p)
            for p in payloads
        )

    def thinking_from_payload(self, payload: Dict[str, Any]) -> str:
        return first_text(choice_delta(payload), ("reasoning_content", "thinking"))
