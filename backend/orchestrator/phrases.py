"""
Localized spoken phrases.

Every sentence the agent produces on its own (greetings, apologies, action
confirmations) comes from this table. Languages fall back to English per key.
"""

from __future__ import annotations

from typing import Any, Final

from observability.logger import log_event


_EN: Final[dict[str, str]] = {
    # Greeting
    "greeting_late_night": "Still up this late, boss?",
    "greeting_morning": "Good morning, boss!",
    "greeting_afternoon": "Good afternoon, boss. How is the day going?",
    "greeting_evening": "Good evening, boss!",
    "greeting_night": "Still awake, boss?",
    "greeting_intro": "I am {name}, your AI assistant. What can I do for you?",
    "low_battery": "By the way, battery is at {percent}%. Please plug in the charger.",

    # Turn loop
    "goodbye": "Okay boss, shutting down. Call me when you need me!",
    "filler": "On it, boss!",
    "not_configured": "Boss, the AI provider is not set up. Add an API key in the settings.",
    "apology": "Boss, I ran into a problem: {error}",
    "notification": "Boss, message from {app}. {sender} says: {text}",

    # Actions
    "screen_empty": "I can't see anything on the screen, boss.",
    "messages_none": "No recent messages, boss.",
    "messages_read": "Last messages: {messages}",
    "message_sent": "Message sent: {text}",
    "message_failed": "I couldn't send the message, boss.",
    "clicked": "Clicked '{target}'.",
    "click_failed": "I couldn't find '{target}', boss.",
    "typed": "Typed: {text}",
    "type_failed": "I couldn't type there, boss.",
    "scrolled": "Scrolled {direction}.",
    "scroll_failed": "I couldn't scroll, boss.",
    "navigated": "Went to {target}.",
    "navigate_failed": "I couldn't go to {target}, boss.",
    "searched": "Searching for: {query}",
    "opened_url": "Opened {url}",
    "app_opened": "Opened {app}, boss.",
    "app_not_found": "I couldn't find {app}, boss. Is it installed?",
    "battery": "Battery is at {percent}%{charging}.",
    "battery_charging": ", charging",
    "battery_not_charging": ", not charging",
    "battery_unknown": "I can't read the battery level on this device, boss.",
    "network": "Network: {type}, {status}.",
    "network_connected": "connected",
    "network_disconnected": "disconnected",
    "unavailable": "{capability} is not available on this device, boss.",
    "missing_parameter": "I need a {name} for that, boss.",
    "action_failed": "Sorry boss, I couldn't do that: {error}",
}

_BN: Final[dict[str, str]] = {
    "greeting_late_night": "এত রাতে জেগে আছেন Boss?",
    "greeting_morning": "সুপ্রভাত Boss!",
    "greeting_afternoon": "Boss, দুপুরের পর কেমন যাচ্ছে?",
    "greeting_evening": "শুভ সন্ধ্যা Boss!",
    "greeting_night": "Boss, এখনো জেগে আছেন?",
    "greeting_intro": "আমি {name}, আপনার AI assistant। বলুন কি করতে পারি?",
    "low_battery": "আচ্ছা Boss, battery {percent}% আছে, charge দিয়ে দিন।",

    "goodbye": "ঠিক আছে Boss, আমি বন্ধ হয়ে যাচ্ছি। আবার দরকার হলে ডাকবেন!",
    "filler": "করে দিচ্ছি Boss!",
    "not_configured": "Boss, AI provider set up করা হয়নি। Settings এ গিয়ে API key দিন।",
    "apology": "Boss, একটু সমস্যা হচ্ছে: {error}",
    "notification": "Boss, {app} থেকে message। {sender} বলেছে: {text}",

    "screen_empty": "Screen এ কিছু দেখতে পারছি না Boss।",
    "message_sent": "Message পাঠানো হয়েছে: {text}",
    "message_failed": "Message পাঠাতে পারলাম না Boss।",
    "clicked": "'{target}' এ click করেছি।",
    "click_failed": "'{target}' খুঁজে পাইনি Boss।",
    "app_opened": "{app} open করেছি Boss।",
    "app_not_found": "{app} খুঁজে পাইনি Boss। Install আছে কি?",
    "battery": "Battery {percent}%{charging}।",
    "battery_charging": ", charging হচ্ছে",
    "battery_not_charging": ", charge এ নেই",
}

_TABLES: Final[dict[str, dict[str, str]]] = {
    "en": _EN,
    "bn": _BN,
}


def phrase(language: str, key: str, **values: Any) -> str:
    """
    Look up and format a phrase.

    Unknown languages and keys missing from a language fall back to English.
    """
    table = _TABLES.get(language.split("-")[0].lower(), _EN)
    template = table.get(key) or _EN[key]
    try:
        return template.format(**values)
    except (KeyError, IndexError) as e:
        log_event({
            "event_type": "phrase_format_failed",
            "level": "WARNING",
            "key": key,
            "error": repr(e),
        })
        return template


def greeting_key(hour: int) -> str:
    """Time-of-day greeting key for a 0-23 hour."""
    if hour < 6:
        return "greeting_late_night"
    if hour < 12:
        return "greeting_morning"
    if hour < 17:
        return "greeting_afternoon"
    if hour < 21:
        return "greeting_evening"
    return "greeting_night"
