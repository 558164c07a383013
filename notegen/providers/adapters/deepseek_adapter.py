"""
DeepSeek Adapter.

DeepSeek speaks the OpenAI format; deepseek-reasoner streams its reasoning
in a separate `reasoning_content` field before the answer.
"""
from typing import Any, Dict

from .openai_adapter import OpenAIRequestBuilder, OpenAIResponseParser
from .utils import choice_delta, first_text


class DeepSeekRequestBuilder(OpenAIRequestBuilder):
    pass


class DeepSeekResponseParser(OpenAIResponseParser):
    """Adds the `delta.reasoning_content` channel."""

    has_thinking_channel = True

    _REASONING_FIELDS = ("reasoning_content", "reasoning")

    def thinking_from_payload(self, payload: Dict[str, Any]) -> str:
        return first_text(choice_delta(payload), self._REASONING_FIELDS)
