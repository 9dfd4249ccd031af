"""Tests for the reasoning extraction heuristic."""

from ollama_chat_relay.relay.reasoning import ReasoningBuffer, extract_reasoning


def _raw(content=None, **message_fields):
    message = dict(message_fields)
    if content is not None:
        message["content"] = content
    return {"message": message}


def test_thinking_marker_extracts_up_to_line_break():
    fragment = "thinking: check the edge case\nmore text"
    matches = extract_reasoning(fragment, _raw(fragment))
    assert [(m.rule, m.text) for m in matches] == [("marker", "check the edge case")]


def test_thinking_marker_at_end_of_fragment():
    fragment = "ok thinking: nothing after"
    matches = extract_reasoning(fragment, _raw(fragment))
    assert matches[0].text == "nothing after"


def test_discourse_marker_takes_whole_fragment():
    fragment = "Let me think about this carefully"
    matches = extract_reasoning(fragment, _raw(fragment))
    assert [(m.rule, m.text) for m in matches] == [("discourse", fragment)]


def test_each_discourse_marker_triggers():
    for fragment in ("Let me think.", "so I need to check", "First, the basics"):
        assert extract_reasoning(fragment, _raw(fragment)), fragment


def test_discourse_markers_are_case_sensitive():
    fragment = "let me think"
    assert extract_reasoning(fragment, _raw(fragment)) == []


def test_explicit_reasoning_field():
    matches = extract_reasoning("", _raw("", reasoning="step one"))
    assert [(m.rule, m.text) for m in matches] == [("explicit", "step one")]


def test_explicit_thinking_field():
    matches = extract_reasoning("", _raw("", thinking="pondering"))
    assert matches[0].text == "pondering"


def test_plain_answer_has_no_reasoning():
    assert extract_reasoning("The answer is 4.", _raw("The answer is 4.")) == []


def test_rules_run_in_order_and_can_double_count():
    fragment = "thinking: First, add\nrest"
    matches = extract_reasoning(fragment, _raw(fragment, reasoning="First, add"))
    assert [m.rule for m in matches] == ["explicit", "marker", "discourse"]


def test_buffer_appends_with_rule_separators():
    buffer = ReasoningBuffer()
    buffer.add("", _raw("", reasoning="a"))
    buffer.add("thinking: b\n", _raw("thinking: b\n"))
    buffer.add("I need to c", _raw("I need to c"))
    assert buffer.text == "ab\nI need to c "
    assert buffer


def test_empty_buffer_is_falsy():
    assert not ReasoningBuffer()
    assert ReasoningBuffer().text == ""
