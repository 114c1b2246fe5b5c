"""
Generative UI chat - a weather assistant that answers in text or in cards.

This package provides a streaming chat interface backed by OpenAI function
calling, with mock flight and weather tools rendered as structured cards.
"""

__version__ = "0.1.0"

from .agent import Agent
from .render import RenderState
from .session_manager import ChatSession, SessionManager
from .state import AIState, DisplayItem, ModelMessage, UIState
from .tool_registry import ToolRegistry, callable_to_tool_schema

__all__ = [
    "Agent",
    "AIState",
    "ChatSession",
    "DisplayItem",
    "ModelMessage",
    "RenderState",
    "SessionManager",
    "ToolRegistry",
    "UIState",
    "callable_to_tool_schema",
]
