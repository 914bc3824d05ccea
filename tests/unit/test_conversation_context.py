# pylint: disable=missing-module-docstring,missing-function-docstring

from typing import Any

import pytest

import context.conversation as conversation_mod
from context.conversation import ConversationHistory
from context.serialization import RequestContext, build_messages
from spec import SCREEN_CONTEXT_MAX_CHARS


def test_history_drops_oldest_turn_first(monkeypatch: pytest.MonkeyPatch) -> None:
    emitted: list[dict[str, Any]] = []
    monkeypatch.setattr(conversation_mod, "log_event", emitted.append)

    history = ConversationHistory(max_turns=3)
    history.add_user("one")
    history.add_assistant("two")
    history.add_user("three")
    history.add_assistant("four")

    assert [t.content for t in history.turns] == ["two", "three", "four"]
    assert len(history) == 3
    assert [e["event_type"] for e in emitted] == ["context_turn_dropped"]
    assert emitted[0]["role"] == "user"


def test_history_serializes_role_and_content_in_order() -> None:
    history = ConversationHistory()
    history.add_user("hi")
    history.add_assistant("hello boss")

    assert history.serialize() == [
        {"role": "user", "content": "hi"},
        {"role": "assistant", "content": "hello boss"},
    ]


def test_build_messages_orders_prompt_context_then_history() -> None:
    history = ConversationHistory()
    history.add_user("what's on screen?")

    messages = build_messages(
        system_prompt="PROMPT",
        context=RequestContext(
            screen_text="inbox",
            web_page="Title: News",
            notifications=("[WhatsApp] Mom: call me",),
            device_summary="Battery: 50%",
        ),
        history=history,
    )

    assert messages[0] == {"role": "system", "content": "PROMPT"}
    assert [m["content"].splitlines()[0] for m in messages[1:5]] == [
        "[CURRENT SCREEN CONTEXT]",
        "[LAST WEB PAGE VISITED]",
        "[RECENT NOTIFICATIONS]",
        "[DEVICE INFO]",
    ]
    assert messages[-1] == {"role": "user", "content": "what's on screen?"}


def test_build_messages_omits_empty_context_and_truncates_screen() -> None:
    history = ConversationHistory()
    history.add_user("hi")

    bare = build_messages(system_prompt="P", context=RequestContext(), history=history)
    assert len(bare) == 2

    long_screen = build_messages(
        system_prompt="P",
        context=RequestContext(screen_text="x" * (SCREEN_CONTEXT_MAX_CHARS + 500)),
        history=history,
    )
    body = long_screen[1]["content"].split("\n", 1)[1]
    assert len(body) == SCREEN_CONTEXT_MAX_CHARS
