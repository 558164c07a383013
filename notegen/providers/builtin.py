"""
Built-in Provider Definitions

Pre-configured backends with endpoints, models and capabilities.
"""
from typing import Dict, Optional

from .types import ProviderMetadata


# Built-in provider definitions
BUILTIN_PROVIDERS: Dict[str, ProviderMetadata] = {
    "zhipu": ProviderMetadata(
        id="zhipu",
        name="Zhipu (GLM)",
        description="GLM models with a reasoning channel",
        website="https://open.bigmodel.cn",
        endpoint="https://open.bigmodel.cn/api/paas/v4/chat/completions",
        sdk_class="zhipu",
        api_key_pattern=r"^[a-zA-Z0-9.]{32,}$",
        default_model="glm-4-plus",
        supported_models=["glm-4-plus", "glm-4-0520", "glm-4-air", "glm-4-airx", "glm-4-flash"],
        supports_thinking=True,
    ),

    "deepseek": ProviderMetadata(
        id="deepseek",
        name="DeepSeek",
        description="Reasoning models that stream reasoning_content",
        website="https://platform.deepseek.com",
        endpoint="https://api.deepseek.com/v1/chat/completions",
        sdk_class="deepseek",  # Dedicated parser for reasoning_content
        api_key_pattern=r"^sk-[a-zA-Z0-9]{32,}$",
        default_model="deepseek-chat",
        supported_models=["deepseek-chat", "deepseek-reasoner"],
        strict_models=True,
        supports_thinking=True,
    ),

    "openai": ProviderMetadata(
        id="openai",
        name="OpenAI",
        description="GPT models",
        website="https://platform.openai.com",
        endpoint="https://api.openai.com/v1/chat/completions",
        sdk_class="openai",
        # Legacy sk-<48> keys and project keys (sk-proj-...)
        api_key_pattern=r"^sk-(proj-)?[a-zA-Z0-9_\-]{40,}$",
        default_model="gpt-4",
        supported_models=["gpt-4", "gpt-4-turbo", "gpt-4o", "gpt-3.5-turbo"],
    ),

    "alibaba": ProviderMetadata(
        id="alibaba",
        name="Alibaba Bailian (DashScope)",
        description="Qwen models via the native DashScope API",
        website="https://dashscope.aliyuncs.com",
        endpoint="https://dashscope.aliyuncs.com/api/v1/services/aigc/text-generation/generation",
        sdk_class="bailian",
        api_key_pattern=r"^sk-[a-zA-Z0-9]{20,}$",
        default_model="qwen-plus",
        supported_models=["qwen-plus", "qwen-turbo", "qwen-max"],
    ),

    "siliconflow": ProviderMetadata(
        id="siliconflow",
        name="SiliconFlow",
        description="OpenAI-compatible hosting for open models",
        website="https://siliconflow.cn",
        endpoint="https://api.siliconflow.cn/v1/chat/completions",
        sdk_class="siliconflow",
        api_key_pattern=r"^sk-[a-zA-Z0-9]{32,}$",
        default_model="deepseek-llm-67b-chat",
        supported_models=["deepseek-llm-67b-chat", "qwen-72b-chat", "internlm2_5-7b-chat"],
    ),

    "anthropic": ProviderMetadata(
        id="anthropic",
        name="Anthropic",
        description="Claude models",
        website="https://console.anthropic.com",
        endpoint="https://api.anthropic.com/v1/messages",
        sdk_class="anthropic",
        api_key_pattern=r"^sk-ant-api03-[a-zA-Z0-9\-_]{93}$",
        default_model="claude-3-sonnet",
        supported_models=["claude-3-opus", "claude-3-sonnet", "claude-3-haiku"],
        supports_thinking=True,
    ),
}


def get_builtin_provider(provider_id: str) -> Optional[ProviderMetadata]:
    """Get built-in provider metadata by ID."""
    return BUILTIN_PROVIDERS.get(provider_id)


def is_builtin_provider(provider_id: str) -> bool:
    return provider_id in BUILTIN_PROVIDERS
