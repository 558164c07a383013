"""
Streaming Generation Providers

This package issues generation requests to heterogeneous HTTP/SSE backends
and turns their streams into rendered content plus a reasoning trace.

Key components:
- types: Data models and enums
- builtin: Pre-configured provider definitions
- registry: Metadata catalogue and shared client cache
- client: ProviderClient (HTTP, timeout, cancellation, callbacks)
- stream: The per-request read/parse/accumulate loop
- adapters: Request builder / response parser pairs per wire format

Usage:
    from notegen.providers import ProviderRegistry, GenerationRequest
    from notegen.services.key_store import KeyStore

    registry = ProviderRegistry(credentials=KeyStore("config/keys_config.yaml"))
    client = await registry.load_provider("deepseek")

    # Callback style
    result = await client.generate_content(GenerationRequest(
        note_id="note-1",
        prompt="Summarise the meeting",
        on_partial=lambda html, meta: print(meta.phase, len(html)),
    ))

    # Iterator style
    async for event in client.stream_content(request, token):
        if event.kind == StreamEventKind.PARTIAL:
            print(event.content)
"""
from .types import (
    CUSTOM_PROVIDER_PREFIX,
    CustomProviderConfig,
    GenerationPhase,
    GenerationRequest,
    GenerationResult,
    PhaseMetadata,
    ProviderMetadata,
    ProviderTestResult,
    ProviderType,
    StepType,
    StreamEvent,
    StreamEventKind,
    StreamState,
    ThinkingChain,
    ThinkingStep,
    ValidationResult,
)
from .builtin import (
    BUILTIN_PROVIDERS,
    get_builtin_provider,
    is_builtin_provider,
)
from .base import ChunkParseError, RequestBuilder, ResponseParser
from .client import ProviderClient
from .registry import ProviderRegistry
from .stream import StreamProcessor

__all__ = [
    # Types
    "CUSTOM_PROVIDER_PREFIX",
    "CustomProviderConfig",
    "GenerationPhase",
    "GenerationRequest",
    "GenerationResult",
    "PhaseMetadata",
    "ProviderMetadata",
    "ProviderTestResult",
    "ProviderType",
    "StepType",
    "StreamEvent",
    "StreamEventKind",
    "StreamState",
    "ThinkingChain",
    "ThinkingStep",
    "ValidationResult",
    # Builtin
    "BUILTIN_PROVIDERS",
    "get_builtin_provider",
    "is_builtin_provider",
    # Core
    "ChunkParseError",
    "RequestBuilder",
    "ResponseParser",
    "ProviderClient",
    "ProviderRegistry",
    "StreamProcessor",
]
