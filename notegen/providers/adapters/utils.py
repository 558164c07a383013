"""
Shared utilities for response parsers.
"""
from typing import Any, Dict, Iterable, Optional


def first_choice(payload: Dict[str, Any]) -> Dict[str, Any]:
    """Return choices[0] of an OpenAI-style payload, or an empty dict."""
    choices = payload.get("choices")
    if isinstance(choices, list) and choices and isinstance(choices[0], dict):
        return choices[0]
    return {}


def choice_delta(payload: Dict[str, Any]) -> Dict[str, Any]:
    delta = first_choice(payload).get("delta")
    return delta if isinstance(delta, dict) else {}


def first_text(container: Dict[str, Any], keys: Iterable[str]) -> str:
    """Return the first non-empty string value among keys.

    Args:
        container: Dict to look into (e.g. a choice delta)
        keys: Field names in priority order

    Returns:
        The value, or "" when none of the fields carries text.
    """
    for key in keys:
        value = container.get(key)
        if isinstance(value, str) and value:
            return value
    return ""


def finish_reason(payload: Dict[str, Any]) -> Optional[str]:
    reason = first_choice(payload).get("finish_reason")
    return reason if isinstance(reason, str) else None
