"""Error taxonomy for generation requests.

Every error carries the provider id, model and a truncated prompt so callers
can log it directly. None of them ever carries the credential.
"""

from __future__ import annotations

from enum import Enum
from typing import Optional

PROMPT_EXCERPT_LENGTH = 50
BODY_EXCERPT_LENGTH = 2000


class ErrorCategory(str, Enum):
    """Coarse classification the caller can base its retry policy on."""

    CREDENTIAL = "credential"
    CONFIGURATION = "configuration"
    HTTP = "http"
    RATE_LIMIT = "rate_limit"
    PARSE = "parse"
    TIMEOUT = "timeout"
    NETWORK = "network"


def truncate_prompt(prompt: Optional[str]) -> str:
    if not prompt:
        return ""
    if len(prompt) <= PROMPT_EXCERPT_LENGTH:
        return prompt
    return prompt[:PROMPT_EXCERPT_LENGTH] + "..."


def scrub_secret(text: str, secret: Optional[str]) -> str:
    """Replace every occurrence of secret in text."""
    if not text or not secret:
        return text
    return text.replace(secret, "***")


class GenerationError(Exception):
    """Base error for everything the generation core reports."""

    category: ErrorCategory = ErrorCategory.CONFIGURATION
    retryable: bool = False

    def __init__(
        self,
        message: str,
        *,
        provider_id: Optional[str] = None,
        model: Optional[str] = None,
        prompt: Optional[str] = None,
    ) -> None:
        super().__init__(message)
        self.message = message
        self.provider_id = provider_id
        self.model = model
        self.prompt_excerpt = truncate_prompt(prompt)

    def __str__(self) -> str:
        context = ", ".join(
            f"{key}={value}"
            for key, value in (("provider", self.provider_id), ("model", self.model))
            if value
        )
        return f"{self.message} ({context})" if context else self.message

    def to_dict(self) -> dict:
        return {
            "type": self.__class__.__name__,
            "category": self.category.value,
            "retryable": self.retryable,
            "message": self.message,
            "provider_id": self.provider_id,
            "model": self.model,
            "prompt_excerpt": self.prompt_excerpt,
        }


class CredentialMissingError(GenerationError):
    """Raised before any network I/O when no API key is configured."""

    category = ErrorCategory.CREDENTIAL


class UnknownProviderError(GenerationError):
    """Raised when a provider id is neither built-in nor registered."""


class UnsupportedModelError(GenerationError):
    """Raised when a strict provider is asked for a model it does not list."""


class ProviderConfigError(GenerationError):
    """Raised when a custom provider configuration is rejected."""


class ProviderHTTPError(GenerationError):
    """Non-2xx response from the backend."""

    category = ErrorCategory.HTTP

    def __init__(self, status_code: int, body: str, **kwargs) -> None:
        self.status_code = status_code
        self.body = (body or "")[:BODY_EXCERPT_LENGTH]
        super().__init__(f"HTTP {status_code}: {self.body}", **kwargs)
        if status_code == 429:
            self.category = ErrorCategory.RATE_LIMIT
        self.retryable = status_code in (408, 429) or status_code >= 500

    def to_dict(self) -> dict:
        data = super().to_dict()
        data["status_code"] = self.status_code
        data["body"] = self.body
        return data


class ParseFailureExceededError(GenerationError):
    """Too many consecutive chunks could not be parsed."""

    category = ErrorCategory.PARSE


class GenerationTimeoutError(GenerationError):
    """The overall request deadline elapsed."""

    category = ErrorCategory.TIMEOUT
    retryable = True


class TransportError(GenerationError):
    """Connection-level failure (DNS, reset, TLS)."""

    category = ErrorCategory.NETWORK
    retryable = True


class GenerationCancelled(Exception):
    """Internal signal: the caller cancelled. Never surfaced through on_error."""
