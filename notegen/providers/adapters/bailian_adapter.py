"""
Alibaba Cloud Bailian (DashScope) Native Adapter.

Uses the native text-generation API rather than the OpenAI-compatible one.
Each streamed event carries the FULL text generated so far in
`output.text`, so the parser diffs it against what it has already seen.
"""
import logging
from typing import Any, Dict

from ..base import ChunkParseError, RequestBuilder, ResponseParser
from ..sse import DONE_SENTINEL, iter_sse_data
from ..types import GenerationRequest
from .utils import first_text

logger = logging.getLogger(__name__)


class BailianRequestBuilder(RequestBuilder):
    """Builds `{model, input: {messages}, parameters: {...}}` bodies."""

    def build_request_body(self, request: GenerationRequest, model: str) -> Dict[str, Any]:
        parameters: Dict[str, Any] = {"stream": request.stream}
        self.apply_sampling(parameters, request)
        return {
            "model": model,
            "input": {"messages": self.user_messages(request)},
            "parameters": parameters,
        }

    def build_headers(self, api_key):
        headers = super().build_headers(api_key)
        headers["X-DashScope-SSE"] = "enable"
        return headers


def _full_text(payload: Dict[str, Any]) -> str:
    output = payload.get("output")
    if not isinstance(output, dict):
        return ""
    text = first_text(output, ("text",))
    if text:
        return text
    # result_format=message
    choices = output.get("choices")
    if isinstance(choices, list) and choices and isinstance(choices[0], dict):
        message = choices[0].get("message")
        if isinstance(message, dict):
            return first_text(message, ("content",))
    return ""


def _finish_reason(payload: Dict[str, Any]) -> str:
    output = payload.get("output")
    if isinstance(output, dict) and isinstance(output.get("finish_reason"), str):
        return output["finish_reason"]
    return ""


class BailianResponseParser(ResponseParser):
    """
    Stateful parser: remembers the last full text of THIS request.

    A `finish_reason: "stop"` event only counts as the sentinel when it
    brings no unseen text; otherwise its tail is extracted first and the
    stream ends when the server closes it.
    """

    def __init__(self) -> None:
        super().__init__()
        self._last_text = ""

    def is_stream_complete(self, chunk: str) -> bool:
        if any(data == DONE_SENTINEL for data in iter_sse_data(chunk)):
            return True
        try:
            payloads = self.payloads(chunk)
        except ChunkParseError:
            return False
        for payload in payloads:
            if _finish_reason(payload) != "stop":
                continue
            text = _full_text(payload)
            if not text or text == self._last_text:
                return True
        return False

    def content_from_payload(self, payload: Dict[str, Any]) -> str:
        current = _full_text(payload)
        if not current:
            return ""
        if not current.startswith(self._last_text):
            # Server rewrote earlier text; emit only the part past the old length.
            logger.debug("DashScope text diverged from previous snapshot")
        delta = current[len(self._last_text):]
        self._last_text = current
        return delta
