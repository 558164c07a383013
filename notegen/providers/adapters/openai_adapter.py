"""
OpenAI Chat Completions Adapter.

Request builder and response parser for the OpenAI wire format. Also used
for SiliconFlow, which serves the same API.
"""
from typing import Any, Dict

from ..base import RequestBuilder, ResponseParser
from ..types import GenerationRequest
from .utils import choice_delta, first_text


class OpenAIRequestBuilder(RequestBuilder):
    """Builds `{model, messages, stream, temperature?, max_tokens?}` bodies."""

    def build_request_body(self, request: GenerationRequest, model: str) -> Dict[str, Any]:
        body: Dict[str, Any] = {
            "model": model,
            "messages": self.user_messages(request),
            "stream": request.stream,
        }
        return self.apply_sampling(body, request)


class OpenAIResponseParser(ResponseParser):
    """
    Parser for `choices[0].delta.content` chunks terminated by `[DONE]`.

    Non-streamed responses carry `choices[0].message.content` instead.
    """

    def content_from_payload(self, payload: Dict[str, Any]) -> str:
        content = first_text(choice_delta(payload), ("content",))
        if content:
            return content
        return _message_content(payload)


def _message_content(payload: Dict[str, Any]) -> str:
    choices = payload.get("choices")
    if not isinstance(choices, list) or not choices or not isinstance(choices[0], dict):
        return ""
    message = choices[0].get("message")
    if not isinstance(message, dict):
        return ""
    return first_text(message, ("content",))
