"""
Backend Adapters

One RequestBuilder / ResponseParser pair per wire format, selected by
ProviderMetadata.sdk_class.
"""
from typing import Dict, Tuple, Type

from ..base import RequestBuilder, ResponseParser
from .anthropic_adapter import AnthropicRequestBuilder, AnthropicResponseParser
from .bailian_adapter import BailianRequestBuilder, BailianResponseParser
from .custom_adapter import CustomRequestBuilder, CustomResponseParser, normalize_endpoint
from .deepseek_adapter import DeepSeekRequestBuilder, DeepSeekResponseParser
from .openai_adapter import OpenAIRequestBuilder, OpenAIResponseParser
from .zhipu_adapter import ZhipuRequestBuilder, ZhipuResponseParser

AdapterPair = Tuple[Type[RequestBuilder], Type[ResponseParser]]

# sdk_class -> (builder class, parser class)
ADAPTERS: Dict[str, AdapterPair] = {
    "openai": (OpenAIRequestBuilder, OpenAIResponseParser),
    "siliconflow": (OpenAIRequestBuilder, OpenAIResponseParser),
    "deepseek": (DeepSeekRequestBuilder, DeepSeekResponseParser),
    "zhipu": (ZhipuRequestBuilder, ZhipuResponseParser),
    "bailian": (BailianRequestBuilder, BailianResponseParser),
    "anthropic": (AnthropicRequestBuilder, AnthropicResponseParser),
    "custom": (CustomRequestBuilder, CustomResponseParser),
}

__all__ = [
    "ADAPTERS",
    "AdapterPair",
    "AnthropicRequestBuilder",
    "AnthropicResponseParser",
    "BailianRequestBuilder",
    "BailianResponseParser",
    "CustomRequestBuilder",
    "CustomResponseParser",
    "DeepSeekRequestBuilder",
    "DeepSeekResponseParser",
    "OpenAIRequestBuilder",
    "OpenAIResponseParser",
    "ZhipuRequestBuilder",
    "ZhipuResponseParser",
    "normalize_endpoint",
]
