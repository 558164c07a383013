"""
Zhipu (GLM) Adapter.

OpenAI-compatible endpoint. GLM thinking models stream reasoning either in
`delta.thinking` or, on newer models, in `delta.reasoning_content`.
"""
from typing import Any, Dict

from .openai_adapter import OpenAIRequestBuilder, OpenAIResponseParser
from .utils import choice_delta, first_text


class ZhipuRequestBuilder(OpenAIRequestBuilder):
    pass


class ZhipuResponseParser(OpenAIResponseParser):
    has_thinking_channel = True

    def thinking_from_payload(self, payload: Dict[str, Any]) -> str:
        return first_text(choice_delta(payload), ("thinking", "reasoning_content"))
