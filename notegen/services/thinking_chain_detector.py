"""Detect reasoning ("thinking chain") content in model output.

Two entry points share one set of patterns:

- detect_in_chunk(payload): reasoning fields in a decoded stream payload,
  used when a backend has no dedicated reasoning channel.
- detect_in_full_text(text): tagged reasoning blocks such as
  <think>...</think> in the final text.
"""

from __future__ import annotations

import re
import time
from dataclasses import dataclass
from typing import Any, Dict, List, Optional

from ..providers.types import StepType, ThinkingChain, ThinkingStep

MIN_THINKING_LENGTH = 20
MAX_DETECTION_LENGTH = 100_000

_XML_PATTERNS = [
    re.compile(rf"<{tag}>(.*?)</{tag}>", re.IGNORECASE | re.DOTALL)
    for tag in ("thinking", "think", "reasoning", "thought")
]

JSON_FIELD_PATTERNS = (
    "reasoning_content",
    "thinking",
    "thought_process",
    "chain_of_thought",
    "internal_thoughts",
)

_PARAGRAPH_SPLIT = re.compile(r"\n\s*\n")

_STEP_KEYWORDS = [
    (StepType.ANALYSIS, ("analyze", "analyse", "observe", "分析", "观察")),
    (StepType.REASONING, ("therefore", "reasoning", "推理", "因此", "所以")),
    (StepType.CONCLUSION, ("conclusion", "summary", "结论", "总结")),
]


@dataclass
class DetectionResult:
    has_thinking_chain: bool
    thinking_content: Optional[ThinkingChain]
    clean_content: str
    raw_thinking: str = ""


def _nested_candidates(payload: Dict[str, Any]) -> List[Dict[str, Any]]:
    """Top level, choices[0].delta, data, response."""
    candidates = [payload]
    choices = payload.get("choices")
    if isinstance(choices, list) and choices and isinstance(choices[0], dict):
        delta = choices[0].get("delta")
        if isinstance(delta, dict):
            candidates.append(delta)
    for key in ("data", "response"):
        nested = payload.get(key)
        if isinstance(nested, dict):
            candidates.append(nested)
    return candidates


def detect_in_chunk(payload: Any) -> Optional[str]:
    """Return reasoning text carried by a known field of a stream payload."""
    if not isinstance(payload, dict):
        return None
    candidates = _nested_candidates(payload)
    for field_name in JSON_FIELD_PATTERNS:
        for candidate in candidates:
            value = candidate.get(field_name)
            if isinstance(value, str) and value.strip():
                return value
    return None


def infer_step_type(content: str) -> StepType:
    lowered = content.lower()
    for step_type, keywords in _STEP_KEYWORDS:
        if any(keyword in lowered for keyword in keywords):
            return step_type
    return StepType.THINKING


def parse_steps(content: str) -> List[ThinkingStep]:
    """Split reasoning text into steps on blank lines."""
    if not content or not content.strip():
        return []

    paragraphs = [p.strip() for p in _PARAGRAPH_SPLIT.split(content) if p.strip()]
    now = time.time()
    return [
        ThinkingStep(
            id=f"thinking_step_{index + 1}",
            content=paragraph,
            timestamp=now + index * 0.001,
            type=infer_step_type(paragraph),
        )
        for index, paragraph in enumerate(paragraphs)
    ]


def summarize(steps: List[ThinkingStep]) -> str:
    if not steps:
        return "no reasoning recorded"
    if len(steps) == 1:
        return "completed in 1 step"

    counts: Dict[str, int] = {}
    for step in steps:
        counts[step.type.value] = counts.get(step.type.value, 0) + 1
    breakdown = ", ".join(f"{count} {name}" for name, count in counts.items())
    return f"completed in {len(steps)} steps ({breakdown})"


def build_chain(content: str) -> ThinkingChain:
    steps = parse_steps(content)
    return ThinkingChain(steps=steps, summary=summarize(steps), total_steps=len(steps))


def detect_in_full_text(text: Optional[str]) -> DetectionResult:
    """
    Find the first tagged reasoning block of at least MIN_THINKING_LENGTH
    characters and return it together with the text stripped of that tag.

    Only the first MAX_DETECTION_LENGTH characters are scanned; when nothing
    is found the input is returned untouched.
    """
    if not text:
        return DetectionResult(False, None, text or "")

    scanned = text[:MAX_DETECTION_LENGTH]
    for pattern in _XML_PATTERNS:
        match = pattern.search(scanned)
        if not match:
            continue
        thinking = match.group(1).strip()
        if len(thinking) < MIN_THINKING_LENGTH:
            continue
        clean = (pattern.sub("", scanned) + text[MAX_DETECTION_LENGTH:]).strip()
        return DetectionResult(True, build_chain(thinking), clean, raw_thinking=thinking)

    return DetectionResult(False, None, text)
