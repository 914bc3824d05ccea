"""
Request building for the reasoning backend.

Responsibilities:
- Convert system prompt + ambient context + conversation history
  into LLM-ready message format.

Non-responsibilities:
- No truncation of history (see context.conversation)
- No logging
- No orchestration decisions
"""

from __future__ import annotations

from dataclasses import dataclass, field

from context.conversation import ConversationHistory
from spec import SCREEN_CONTEXT_MAX_CHARS, WEB_CONTEXT_MAX_CHARS


@dataclass(frozen=True)
class RequestContext:
    """
    Optional ambient context gathered just before a backend call.

    Every field may be empty; empty fields produce no message.
    """
    screen_text: str | None = None
    web_page: str | None = None
    notifications: tuple[str, ...] = field(default_factory=tuple)
    device_summary: str | None = None


def _context_blocks(context: RequestContext) -> list[str]:
    blocks: list[str] = []

    if context.screen_text:
        blocks.append(
            "[CURRENT SCREEN CONTEXT]\n" + context.screen_text[:SCREEN_CONTEXT_MAX_CHARS]
        )

    if context.web_page:
        blocks.append(
            "[LAST WEB PAGE VISITED]\n" + context.web_page[:WEB_CONTEXT_MAX_CHARS]
        )

    if context.notifications:
        blocks.append(
            "[RECENT NOTIFICATIONS]\n" + "\n".join(context.notifications)
        )

    if context.device_summary:
        blocks.append("[DEVICE INFO]\n" + context.device_summary)

    return blocks


def build_messages(
    *,
    system_prompt: str,
    context: RequestContext,
    history: ConversationHistory,
) -> list[dict[str, str]]:
    """
    Build the backend request.

    Output format:
    [
        {"role": "system", "content": "<system prompt>"},
        {"role": "system", "content": "[CURRENT SCREEN CONTEXT]\n..."},
        ...
        {"role": "user", "content": "..."},
        {"role": "assistant", "content": "..."},
    ]

    Rules:
    - System prompt is always first
    - Context blocks follow in fixed order: screen, web page, notifications, device
    - History comes last (already bounded; the current user turn is its tail)
    """
    messages: list[dict[str, str]] = [{
        "role": "system",
        "content": system_prompt,
    }]

    for block in _context_blocks(context):
        messages.append({"role": "system", "content": block})

    messages.extend(history.serialize())

    return messages
