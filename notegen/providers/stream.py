"""
Stream Processor

The read/parse/accumulate loop run by ProviderClient for one request.
Takes framed chunks, keeps StreamState and produces StreamEvents; it does
no I/O of its own, so it can be driven directly in tests.
"""
import logging
import time
from typing import Callable, List, Optional

from ..errors import ParseFailureExceededError
from ..services import markdown_renderer
from ..services import thinking_chain_detector as detector
from .base import ChunkParseError, ResponseParser
from .types import (
    GenerationPhase,
    GenerationResult,
    PhaseMetadata,
    StepType,
    StreamEvent,
    StreamEventKind,
    StreamState,
    ThinkingChain,
    ThinkingStep,
)

logger = logging.getLogger(__name__)

REASONING_STEP_ID = "thinking_step_1"


class StreamProcessor:
    """
    Per-request stream loop state machine.

    Usage:
        processor = StreamProcessor(metadata.id, model, parser, ...)
        for chunk in chunks:
            events = processor.process_chunk(chunk)
            if processor.done:
                break
        result = processor.finish(prompt, request_id)
    """

    def __init__(
        self,
        provider_id: str,
        model: str,
        parser: ResponseParser,
        *,
        prompt: str = "",
        idle_threshold: float = 0.5,
        max_parse_failures: int = 3,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.provider_id = provider_id
        self.model = model
        self.parser = parser
        self.prompt = prompt
        self.idle_threshold = idle_threshold
        self.max_parse_failures = max_parse_failures
        self._clock = clock

        self.state = StreamState(started_at=clock())
        self.done = False
        self._rendered = ""

    # ==================== Chunk handling ====================

    def process_chunk(self, chunk: str) -> List[StreamEvent]:
        """
        Handle one framed chunk.

        Returns:
            Events to deliver, in order (may be empty)

        Raises:
            ParseFailureExceededError: after too many malformed chunks in a row
        """
        if self.done:
            return []
        state = self.state
        state.chunk_count += 1

        if self.parser.is_stream_complete(chunk):
            logger.debug(f"[{self.provider_id}] termination sentinel after {state.chunk_count} chunks")
            self.done = True
            return []

        try:
            content = self.parser.extract_content(chunk)
            reasoning = self._extract_reasoning(chunk)
        except ChunkParseError as e:
            state.parse_failures += 1
            logger.warning(
                f"[{self.provider_id}] malformed chunk ({state.parse_failures} consecutive): {e}"
            )
            if state.parse_failures > self.max_parse_failures:
                raise ParseFailureExceededError(
                    f"{state.parse_failures} consecutive chunks could not be parsed",
                    provider_id=self.provider_id,
                    model=self.model,
                    prompt=self.prompt,
                ) from e
            return []

        state.parse_failures = 0
        events: List[StreamEvent] = []

        if content:
            state.raw_text += content
            if state.phase == GenerationPhase.INITIALIZING:
                state.advance(GenerationPhase.ANSWERING)
            self._rendered = markdown_renderer.render_stream(state.raw_text)
            events.append(self._event(StreamEventKind.PARTIAL))

        if reasoning:
            self._append_reasoning(reasoning)
            events.append(self._event(StreamEventKind.PARTIAL))
        elif self._thinking_went_idle():
            state.advance(GenerationPhase.ANSWERING)
            logger.debug(f"[{self.provider_id}] reasoning idle, switching to answering")
            events.append(self._event(StreamEventKind.PHASE_CHANGE, phase_changed=True))

        return events

    def _extract_reasoning(self, chunk: str) -> Optional[str]:
        reasoning = self.parser.extract_thinking(chunk)
        if reasoning:
            return reasoning
        for payload in self.parser.payloads(chunk):
            found = detector.detect_in_chunk(payload)
            if found:
                return found
        return None

    def _append_reasoning(self, reasoning: str) -> None:
        state = self.state
        now = self._clock()
        state.reasoning_text += reasoning
        state.last_reasoning_at = now
        if state.phase == GenerationPhase.INITIALIZING:
            state.advance(GenerationPhase.THINKING)

        first_seen = state.reasoning_step.timestamp if state.reasoning_step else time.time()
        state.reasoning_step = ThinkingStep(
            id=REASONING_STEP_ID,
            content=state.reasoning_text,
            timestamp=first_seen,
            type=StepType.THINKING,
        )

    def _thinking_went_idle(self) -> bool:
        state = self.state
        if state.phase != GenerationPhase.THINKING or state.reasoning_step is None:
            return False
        if state.last_reasoning_at is None:
            return False
        return self._clock() - state.last_reasoning_at > self.idle_threshold

    # ==================== Output ====================

    def thinking_chain(self) -> Optional[ThinkingChain]:
        step = self.state.reasoning_step
        if step is None:
            return None
        return ThinkingChain(steps=[step], summary="reasoning in progress", total_steps=1)

    def metadata(self, phase_changed: bool = False) -> PhaseMetadata:
        return PhaseMetadata(
            provider_id=self.provider_id,
            model=self.model,
            phase=self.state.phase,
            raw_length=len(self.state.raw_text),
            thinking_chain=self.thinking_chain(),
            phase_changed=phase_changed,
        )

    def _event(self, kind: StreamEventKind, phase_changed: bool = False) -> StreamEvent:
        return StreamEvent(kind=kind, content=self._rendered, metadata=self.metadata(phase_changed))

    def finish(self, prompt: str, request_id: str) -> GenerationResult:
        """
        Close out a stream that ended normally.

        Falls back to tagged reasoning blocks in the text when nothing was
        surfaced incrementally; the block is then removed from the output.
        """
        state = self.state
        self.done = True
        state.advance(GenerationPhase.COMPLETED)

        display = state.raw_text
        chain = None
        if state.reasoning_step is not None:
            chain = ThinkingChain(steps=[state.reasoning_step], summary="completed in 1 step", total_steps=1)
        else:
            detection = detector.detect_in_full_text(state.raw_text)
            if detection.has_thinking_chain:
                detected_steps = detection.thinking_content.total_steps if detection.thinking_content else 1
                chain = ThinkingChain(
                    steps=[ThinkingStep(id=REASONING_STEP_ID, content=detection.raw_thinking)],
                    summary=f"completed in {detected_steps} steps",
                    total_steps=1,
                )
                display = detection.clean_content

        return GenerationResult(
            content=markdown_renderer.render_complete(display),
            raw_markdown=display,
            thinking_chain=chain,
            phase=state.phase,
            provider_id=self.provider_id,
            model=self.model,
            prompt=prompt,
            request_id=request_id,
        )
