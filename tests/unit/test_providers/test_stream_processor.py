"""Tests for the per-request stream loop."""

import json

import pytest

from notegen.errors import ParseFailureExceededError
from notegen.providers.adapters import DeepSeekResponseParser, OpenAIResponseParser
from notegen.providers.stream import StreamProcessor
from notegen.providers.types import GenerationPhase, StreamEventKind


class FakeClock:
    def __init__(self):
        self.now = 100.0

    def __call__(self):
        return self.now


def chunk(payload):
    return f"data: {json.dumps(payload)}"


def content_chunk(text):
    return chunk({"choices": [{"delta": {"content": text}}]})


def reasoning_chunk(text):
    return chunk({"choices": [{"delta": {"reasoning_content": text}}]})


def make_processor(parser=None, clock=None, **kwargs):
    return StreamProcessor(
        "deepseek",
        "deepseek-reasoner",
        parser or DeepSeekResponseParser(),
        clock=clock or FakeClock(),
        **kwargs,
    )


def test_first_content_moves_to_answering_without_phase_event():
    processor = make_processor(OpenAIResponseParser())

    events = processor.process_chunk(content_chunk("Hello "))

    assert [e.kind for e in events] == [StreamEventKind.PARTIAL]
    assert events[0].metadata.phase == GenerationPhase.ANSWERING
    assert events[0].metadata.phase_changed is False
    assert "Hello" in events[0].content


def test_raw_length_never_decreases():
    processor = make_processor(OpenAIResponseParser())
    lengths = []
    for text in ["a", "", "bc", "d"]:
        for event in processor.process_chunk(content_chunk(text)):
            lengths.append(event.metadata.raw_length)

    assert lengths == sorted(lengths)
    assert lengths[-1] == 4


def test_reasoning_consolidates_into_single_step():
    clock = FakeClock()
    processor = make_processor(clock=clock)

    for piece in ["Let me ", "think about ", "this."]:
        processor.process_chunk(reasoning_chunk(piece))
        clock.now += 0.1

    chain = processor.thinking_chain()
    assert chain.total_steps == 1
    assert len(chain.steps) == 1
    assert chain.steps[0].content == "Let me think about this."
    assert processor.state.phase == GenerationPhase.THINKING


def test_reasoning_step_keeps_surrounding_whitespace():
    processor = make_processor()
    processor.process_chunk(reasoning_chunk("  first\n\n"))
    processor.process_chunk(reasoning_chunk("second  "))

    assert processor.state.reasoning_step.content == "  first\n\nsecond  "


def test_idle_reasoning_switches_to_answering_once():
    clock = FakeClock()
    processor = make_processor(clock=clock, idle_threshold=0.5)

    processor.process_chunk(reasoning_chunk("pondering the question"))
    clock.now += 0.2
    early = processor.process_chunk(content_chunk("A"))
    clock.now += 0.6
    late = processor.process_chunk(content_chunk("B"))
    clock.now += 0.6
    later = processor.process_chunk(content_chunk("C"))

    assert [e.kind for e in early] == [StreamEventKind.PARTIAL]
    assert [e.kind for e in late] == [StreamEventKind.PARTIAL, StreamEventKind.PHASE_CHANGE]
    assert late[1].metadata.phase_changed is True
    assert late[1].metadata.phase == GenerationPhase.ANSWERING
    assert all(e.kind == StreamEventKind.PARTIAL for e in later)


def test_phase_never_regresses_after_answering():
    processor = make_processor(OpenAIResponseParser())
    processor.process_chunk(content_chunk("answer"))
    processor.process_chunk(chunk({"choices": [{"delta": {"thinking": "late reasoning"}}]}))

    assert processor.state.phase == GenerationPhase.ANSWERING
    assert processor.state.reasoning_text == "late reasoning"


def test_detector_fallback_for_parser_without_channel():
    processor = make_processor(OpenAIResponseParser())

    events = processor.process_chunk(chunk({"choices": [{"delta": {"reasoning_content": "hmm"}}]}))

    assert processor.state.phase == GenerationPhase.THINKING
    assert events[0].metadata.thinking_chain.steps[0].content == "hmm"


def test_sentinel_stops_without_parsing():
    processor = make_processor(OpenAIResponseParser())

    assert processor.process_chunk("data: [DONE]") == []
    assert processor.done is True
    assert processor.process_chunk(content_chunk("ignored")) == []
    assert processor.state.raw_text == ""


def test_three_malformed_chunks_are_tolerated():
    processor = make_processor(OpenAIResponseParser())
    for _ in range(3):
        assert processor.process_chunk("data: {not json") == []

    processor.process_chunk(content_chunk("ok"))
    assert processor.state.parse_failures == 0
    assert processor.state.raw_text == "ok"


def test_fourth_consecutive_malformed_chunk_raises():
    processor = make_processor(OpenAIResponseParser(), prompt="Summarise the meeting notes")
    for _ in range(3):
        processor.process_chunk("data: {not json")

    with pytest.raises(ParseFailureExceededError) as exc_info:
        processor.process_chunk("data: {still not json")

    assert exc_info.value.provider_id == "deepseek"
    assert exc_info.value.model == "deepseek-reasoner"
    assert exc_info.value.prompt_excerpt == "Summarise the meeting notes"


def test_finish_uses_incremental_reasoning():
    processor = make_processor()
    processor.process_chunk(reasoning_chunk("step one reasoning"))
    processor.process_chunk(content_chunk("The answer"))

    result = processor.finish("prompt", "req-1")

    assert result.phase == GenerationPhase.COMPLETED
    assert result.show_thinking
    assert result.thinking_chain.steps[0].content == "step one reasoning"
    assert result.raw_markdown == "The answer"


def test_finish_detects_tagged_reasoning_in_text():
    processor = make_processor(OpenAIResponseParser())
    processor.process_chunk(content_chunk("<think>First I analyze the input.\n\nTherefore the answer is 4.</think>"))
    processor.process_chunk(content_chunk("The answer is 4."))

    result = processor.finish("2+2?", "req-2")

    assert result.raw_markdown == "The answer is 4."
    assert "<think>" not in result.content
    assert result.thinking_chain.total_steps == 1
    assert result.thinking_chain.summary == "completed in 2 steps"


def test_finish_without_reasoning_has_no_chain():
    processor = make_processor(OpenAIResponseParser())
    processor.process_chunk(content_chunk("# Title\n\nBody"))

    result = processor.finish("p", "req-3")

    assert result.thinking_chain is None
    assert not result.show_thinking
    assert "<h1>Title</h1>" in result.content
