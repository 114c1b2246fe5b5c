"""Render units sent to the browser.

Every unit is a JSON-serializable dict tagged by ``kind``; the page script in
``templates/index.html`` knows how to draw each kind.
"""

from typing import Any, Dict, NamedTuple


class RenderState(NamedTuple):
    """One step of a turn: provisional renders first, then a single one with ``done``."""

    display: Dict[str, Any]
    done: bool = False


def user_display(text: str) -> Dict[str, Any]:
    return {"kind": "user", "text": text}


def text_display(content: str) -> Dict[str, Any]:
    return {"kind": "text", "content": content}


def spinner_display() -> Dict[str, Any]:
    """Loading placeholder shown while a tool runs."""
    return {"kind": "spinner"}


def flight_card(flight_info: Dict[str, Any]) -> Dict[str, Any]:
    return {"kind": "flight_card", "flight_info": flight_info}


def weather_card(weather_info: Dict[str, Any]) -> Dict[str, Any]:
    return {"kind": "weather_card", "weather_info": weather_info}


def error_display(message: str) -> Dict[str, Any]:
    return {"kind": "error", "message": message}
