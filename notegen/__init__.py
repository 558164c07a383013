"""notegen: multi-provider streaming generation client."""
from .cancellation import CancellationToken
from .errors import (
    CredentialMissingError,
    ErrorCategory,
    GenerationError,
    GenerationTimeoutError,
    ParseFailureExceededError,
    ProviderConfigError,
    ProviderHTTPError,
    TransportError,
    UnknownProviderError,
    UnsupportedModelError,
)
from .providers import (
    GenerationPhase,
    GenerationRequest,
    GenerationResult,
    ProviderClient,
    ProviderRegistry,
    StreamEvent,
    StreamEventKind,
)

__version__ = "0.1.0"

__all__ = [
    "CancellationToken",
    "CredentialMissingError",
    "ErrorCategory",
    "GenerationError",
    "GenerationTimeoutError",
    "ParseFailureExceededError",
    "ProviderConfigError",
    "ProviderHTTPError",
    "TransportError",
    "UnknownProviderError",
    "UnsupportedModelError",
    "GenerationPhase",
    "GenerationRequest",
    "GenerationResult",
    "ProviderClient",
    "ProviderRegistry",
    "StreamEvent",
    "StreamEventKind",
]
