"""
Provider Types and Data Models

Defines enums and Pydantic models for the streaming generation layer.
"""
import time
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, Callable, List, Optional
from urllib.parse import urlparse

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator


CUSTOM_PROVIDER_PREFIX = "custom_"


class ProviderType(str, Enum):
    """Provider source type"""
    BUILTIN = "builtin"    # Built-in provider (e.g., deepseek, openai)
    CUSTOM = "custom"      # User-registered OpenAI-compatible provider


class GenerationPhase(str, Enum):
    """Generation phase. Only ever moves forward."""
    INITIALIZING = "initializing"
    THINKING = "thinking"
    ANSWERING = "answering"
    COMPLETED = "completed"

    @property
    def rank(self) -> int:
        return _PHASE_ORDER.index(self)

    def can_advance_to(self, target: "GenerationPhase") -> bool:
        return target.rank > self.rank


_PHASE_ORDER = [
    GenerationPhase.INITIALIZING,
    GenerationPhase.THINKING,
    GenerationPhase.ANSWERING,
    GenerationPhase.COMPLETED,
]


class StepType(str, Enum):
    THINKING = "thinking"
    ANALYSIS = "analysis"
    REASONING = "reasoning"
    CONCLUSION = "conclusion"


class ProviderMetadata(BaseModel):
    """
    Static description of one backend.

    Built-in entries live in builtin.py; custom entries are produced by
    ProviderRegistry.register_custom_provider().
    """
    model_config = ConfigDict(frozen=True)

    # === Basic info ===
    id: str = Field(..., description="Unique identifier")
    name: str = Field(..., description="Display name")
    description: str = Field(default="", description="Short description")
    website: Optional[str] = Field(default=None, description="Vendor website")
    type: ProviderType = Field(default=ProviderType.BUILTIN, description="Provider source type")

    # === API configuration ===
    endpoint: str = Field(..., description="Full generation endpoint URL")
    sdk_class: str = Field(default="openai", description="Request builder / response parser pair")
    api_key_pattern: Optional[str] = Field(
        default=None,
        description="Regex the API key must match (None = format not enforced)",
    )
    requires_api_key: bool = Field(default=True, description="Whether a credential is mandatory")

    # === Models ===
    default_model: str = Field(..., description="Model used when the request names none")
    supported_models: List[str] = Field(default_factory=list, description="Known model ids")
    strict_models: bool = Field(
        default=False,
        description="Reject models outside supported_models instead of passing them through",
    )

    # === Capabilities ===
    supports_streaming: bool = Field(default=True, description="Supports streaming output")
    supports_thinking: bool = Field(default=False, description="Exposes a reasoning channel")
    thinking_idle_threshold: Optional[float] = Field(
        default=None,
        description="Seconds without reasoning before THINKING is considered over (None = global default)",
    )


class CustomProviderConfig(BaseModel):
    """User-supplied configuration for an OpenAI-compatible endpoint."""
    id: str = Field(..., description="Unique identifier (custom_xxx)")
    name: str = Field(..., description="Display name")
    base_url: str = Field(..., description="API base URL or full chat/completions URL")
    models: List[str] = Field(..., description="Models served by this endpoint")
    default_model: Optional[str] = Field(default=None, description="Defaults to the first model")
    api_key: Optional[str] = Field(default=None, exclude=True, description="Inline API key (optional)")
    requires_api_key: bool = Field(default=True, description="Local servers may not need a key")
    description: str = Field(default="", description="Short description")
    created_at: datetime = Field(default_factory=datetime.now)
    updated_at: Optional[datetime] = None

    @field_validator("id")
    @classmethod
    def _check_prefix(cls, value: str) -> str:
        value = value.strip()
        if not value.startswith(CUSTOM_PROVIDER_PREFIX) or len(value) == len(CUSTOM_PROVIDER_PREFIX):
            raise ValueError(f"custom provider id must start with '{CUSTOM_PROVIDER_PREFIX}'")
        return value

    @field_validator("base_url")
    @classmethod
    def _check_base_url(cls, value: str) -> str:
        value = value.strip()
        parsed = urlparse(value)
        if parsed.scheme not in ("http", "https") or not parsed.netloc:
            raise ValueError(f"invalid base URL: {value!r}")
        return value

    @field_validator("models", mode="before")
    @classmethod
    def _normalize_models(cls, raw):
        """Accept a comma separated string or a list; drop blanks and duplicates."""
        if isinstance(raw, str):
            candidates = [part.strip() for part in raw.split(",")]
        elif isinstance(raw, list):
            candidates = [str(part).strip() for part in raw]
        else:
            candidates = []

        models: List[str] = []
        for model in candidates:
            if model and model not in models:
                models.append(model)
        if not models:
            raise ValueError("custom provider needs at least one model")
        return models

    @model_validator(mode="after")
    def _resolve_default_model(self):
        if not self.default_model:
            self.default_model = self.models[0]
        elif self.default_model not in self.models:
            raise ValueError(f"default model {self.default_model!r} is not in the model list")
        return self


class GenerationRequest(BaseModel):
    """
    One generation request, owned by the caller.

    Callbacks may be plain functions or coroutine functions.
    """
    model_config = ConfigDict(frozen=True)

    note_id: str = Field(..., description="Note the generated content belongs to")
    prompt: str = Field(..., description="User prompt")
    model: Optional[str] = Field(default=None, description="Model id (provider default if omitted)")
    temperature: Optional[float] = Field(default=None, description="Omitted from the wire when None")
    max_tokens: Optional[int] = Field(default=None, description="Omitted from the wire when None")
    stream: bool = Field(default=True, description="Request a streamed response")

    on_partial: Optional[Callable[..., Any]] = Field(default=None, exclude=True)
    on_complete: Optional[Callable[..., Any]] = Field(default=None, exclude=True)
    on_error: Optional[Callable[..., Any]] = Field(default=None, exclude=True)


class ThinkingStep(BaseModel):
    id: str
    content: str
    timestamp: float = Field(default_factory=time.time)
    type: StepType = StepType.THINKING


class ThinkingChain(BaseModel):
    steps: List[ThinkingStep] = Field(default_factory=list)
    summary: str = ""
    total_steps: int = 0


class PhaseMetadata(BaseModel):
    """Metadata delivered alongside every partial callback."""
    provider_id: str
    model: str
    phase: GenerationPhase
    raw_length: int = 0
    thinking_chain: Optional[ThinkingChain] = None
    phase_changed: bool = False


class GenerationResult(BaseModel):
    """Final output of a successful request."""
    model_config = ConfigDict(frozen=True)

    content: str = Field(..., description="Rendered HTML")
    raw_markdown: str = Field(default="", description="Markdown the HTML was rendered from")
    thinking_chain: Optional[ThinkingChain] = None
    phase: GenerationPhase = GenerationPhase.COMPLETED
    provider_id: str
    model: str
    prompt: str
    request_id: str
    generated_at: datetime = Field(default_factory=datetime.now)

    @property
    def show_thinking(self) -> bool:
        return bool(self.thinking_chain and self.thinking_chain.steps)


class StreamEventKind(str, Enum):
    PARTIAL = "partial"
    PHASE_CHANGE = "phase_change"
    COMPLETE = "complete"
    ERROR = "error"


class StreamEvent(BaseModel):
    """One item of the async event sequence produced by ProviderClient.stream_content()."""
    model_config = ConfigDict(arbitrary_types_allowed=True)

    kind: StreamEventKind
    content: str = ""
    metadata: Optional[PhaseMetadata] = None
    result: Optional[GenerationResult] = None
    error: Optional[Exception] = None

    @property
    def is_terminal(self) -> bool:
        return self.kind in (StreamEventKind.COMPLETE, StreamEventKind.ERROR)


@dataclass
class StreamState:
    """Mutable per-request state; owned by exactly one stream loop."""
    phase: GenerationPhase = GenerationPhase.INITIALIZING
    raw_text: str = ""
    reasoning_text: str = ""
    reasoning_step: Optional[ThinkingStep] = None
    parse_failures: int = 0
    last_reasoning_at: Optional[float] = None
    chunk_count: int = 0
    started_at: float = field(default_factory=time.monotonic)

    def advance(self, target: GenerationPhase) -> bool:
        """Move to target if it is ahead of the current phase."""
        if not self.phase.can_advance_to(target):
            return False
        self.phase = target
        return True


@dataclass
class ValidationResult:
    errors: List[str] = field(default_factory=list)
    warnings: List[str] = field(default_factory=list)

    @property
    def is_valid(self) -> bool:
        return not self.errors



class ProviderTestResult(BaseModel):
    """Outcome of a minimal live request against one provider."""

    provider_id: str = Field(..., description="Provider that was tested")
    model: Optional[str] = Field(default=None, description="Model used for the test request")
    success: bool = Field(..., description="Whether the request completed")
    latency_ms: Optional[int] = Field(default=None, description="Elapsed milliseconds")
    message: str = Field(..., description="Result message")
    error_category: Optional[str] = Field(default=None, description="GenerationError category on failure")
    http_status: Optional[int] = Field(default=None, description="HTTP status for provider HTTP errors")
