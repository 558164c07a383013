"""LLM interaction logger for debugging and auditing.

Records request/response summaries as JSON. Credentials are never part of
a record: only the request body and response lengths are logged.
"""

import json
import logging
from datetime import datetime
from pathlib import Path
from typing import Any, Dict, Optional

from ..errors import truncate_prompt


class LLMLogger:
    """Logger for generation requests with request/outcome tracking."""

    def __init__(self, log_dir: Optional[str] = "logs"):
        """Initialize LLM logger.

        Args:
            log_dir: Directory for the JSON log file (None = no file handler)
        """
        self.logger = logging.getLogger("llm_interactions")
        self.logger.setLevel(logging.DEBUG)

        # Prevent duplicate handlers
        if log_dir is not None and not self.logger.handlers:
            self.log_dir = Path(log_dir)
            self.log_dir.mkdir(parents=True, exist_ok=True)
            log_file = self.log_dir / f"llm_interactions_{datetime.now().strftime('%Y%m%d')}.log"
            fh = logging.FileHandler(log_file, encoding='utf-8')
            fh.setLevel(logging.DEBUG)
            fh.setFormatter(logging.Formatter('%(message)s'))
            self.logger.addHandler(fh)

    def log_request(
        self,
        request_id: str,
        provider_id: str,
        model: str,
        endpoint: str,
        body: Dict[str, Any],
    ) -> None:
        """Log an outgoing request body (headers are left out on purpose)."""
        log_entry = {
            "timestamp": datetime.now().isoformat(),
            "type": "REQUEST",
            "request_id": request_id,
            "provider_id": provider_id,
            "model": model,
            "endpoint": endpoint,
            "body": _redact_prompt(body),
        }
        self.logger.debug(json.dumps(log_entry, ensure_ascii=False, indent=2))

    def log_interaction(
        self,
        request_id: str,
        provider_id: str,
        model: str,
        prompt: str,
        *,
        chunk_count: int,
        content_length: int,
        reasoning_length: int,
        duration_seconds: float,
        outcome: str,
    ) -> None:
        """Log one finished request.

        Args:
            request_id: Request identifier
            provider_id: Backend id
            model: Model name used
            prompt: Prompt (truncated in the record)
            chunk_count: Number of framed chunks read
            content_length: Length of the raw Markdown
            reasoning_length: Length of the reasoning text
            duration_seconds: Wall time of the request
            outcome: "completed", "cancelled" or an error class name
        """
        log_entry = {
            "timestamp": datetime.now().isoformat(),
            "type": "INTERACTION",
            "request_id": request_id,
            "provider_id": provider_id,
            "model": model,
            "prompt_excerpt": truncate_prompt(prompt),
            "chunk_count": chunk_count,
            "content_length": content_length,
            "reasoning_length": reasoning_length,
            "duration_seconds": round(duration_seconds, 3),
            "outcome": outcome,
        }
        self.logger.debug(json.dumps(log_entry, ensure_ascii=False, indent=2))

        # Console summary
        self.logger.info(
            f"LLM Call | Request: {request_id[:8]}... | {provider_id}/{model} | "
            f"{outcome} | Received: {content_length} chars in {chunk_count} chunks"
        )

    def log_error(self, request_id: str, error: Exception, context: str = "") -> None:
        """Log a failed request.

        Args:
            request_id: Request identifier
            error: Exception that occurred (message already free of secrets)
            context: Additional context about the error
        """
        log_entry = {
            "timestamp": datetime.now().isoformat(),
            "type": "ERROR",
            "request_id": request_id,
            "error": {
                "type": error.__class__.__name__,
                "message": str(error),
                "context": context
            }
        }
        self.logger.error(json.dumps(log_entry, ensure_ascii=False, indent=2))


def _redact_prompt(body: Dict[str, Any]) -> Dict[str, Any]:
    """Copy of body with message contents truncated."""
    def shorten(messages):
        return [
            {**m, "content": truncate_prompt(m.get("content"))} if isinstance(m, dict) else m
            for m in messages
        ]

    redacted = dict(body)
    if isinstance(redacted.get("messages"), list):
        redacted["messages"] = shorten(redacted["messages"])
    nested = redacted.get("input")
    if isinstance(nested, dict) and isinstance(nested.get("messages"), list):
        redacted["input"] = {**nested, "messages": shorten(nested["messages"])}
    return redacted


# Global logger instance
_llm_logger = None


def get_llm_logger() -> LLMLogger:
    """Get or create the global LLM logger instance.

    Returns:
        LLMLogger instance
    """
    global _llm_logger
    if _llm_logger is None:
        from ..config import settings
        _llm_logger = LLMLogger(str(settings.log_dir))
    return _llm_logger
