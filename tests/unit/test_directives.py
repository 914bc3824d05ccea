# pylint: disable=missing-module-docstring,missing-function-docstring

from orchestrator.directives import strip_directive, try_parse


def test_directive_embedded_in_prose_is_found_with_its_span() -> None:
    reply = 'Checking now. {"action": "device_info", "type": "battery"} One moment.'

    parsed = try_parse(reply)

    assert parsed is not None
    assert parsed.directive.type == "device_info"
    assert parsed.directive.param("type") == "battery"
    assert reply[parsed.start:parsed.end].startswith("{")
    assert reply[parsed.start:parsed.end].endswith("}")


def test_plain_reply_has_no_directive() -> None:
    assert try_parse("Sure boss, it is sunny today.") is None
    assert try_parse("") is None


def test_braces_inside_strings_do_not_end_the_object() -> None:
    reply = '{"action": "type", "text": "a } tricky { string"}'

    parsed = try_parse(reply)

    assert parsed is not None
    assert parsed.directive.param("text") == "a } tricky { string"


def test_escaped_quotes_inside_strings_are_handled() -> None:
    reply = r'{"action": "send_message", "text": "he said \"hi\" }"}'

    parsed = try_parse(reply)

    assert parsed is not None
    assert parsed.directive.param("text") == 'he said "hi" }'


def test_object_without_action_is_skipped_for_a_later_one() -> None:
    reply = 'Settings {"volume": 3} then {"action": "scroll", "direction": "up"}'

    parsed = try_parse(reply)

    assert parsed is not None
    assert parsed.directive.type == "scroll"


def test_malformed_json_never_raises() -> None:
    assert try_parse('{"action": "click", "target": ') is None
    assert try_parse('{"action": }') is None
    assert try_parse("}}}{{{") is None


def test_nesting_beyond_limit_is_abandoned() -> None:
    deep = '{"action": "x", "p": ' + '{"a": ' * 9 + "1" + "}" * 9 + "}"

    assert try_parse(deep, max_depth=8) is None


def test_non_scalar_parameters_are_dropped_and_scalars_stringified() -> None:
    parsed = try_parse('{"action": "read_messages", "count": 3, "meta": {"x": 1}, "flag": true}')

    assert parsed is not None
    assert parsed.directive.parameters == {"count": "3", "flag": "true"}


def test_strip_removes_directive_and_empty_fence() -> None:
    reply = 'Opening it now.\n```json\n{"action": "open_app", "app": "Spotify"}\n```\nEnjoy!'

    parsed = try_parse(reply)
    assert parsed is not None

    assert strip_directive(reply, parsed) == "Opening it now.\n\nEnjoy!"


def test_strip_keeps_other_prose() -> None:
    reply = 'Done {"action": "scroll", "direction": "down"} boss'

    parsed = try_parse(reply)
    assert parsed is not None

    assert strip_directive(reply, parsed) == "Done boss"


def test_strip_of_directive_only_reply_is_empty() -> None:
    reply = '{"action": "web_search", "query": "weather"}'

    parsed = try_parse(reply)
    assert parsed is not None

    assert strip_directive(reply, parsed) == ""
