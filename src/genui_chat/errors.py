"""Exceptions raised by the genui_chat package."""


class ChatError(Exception):
    """Base class for chat errors."""


class HistoryRewriteError(ChatError):
    """Raised when a state update would change or drop existing history entries."""


class ToolArgumentError(ChatError):
    """Raised when tool arguments don't match the declared schema."""

    def __init__(self, tool_name: str, reason: str):
        self.tool_name = tool_name
        self.reason = reason
        super().__init__(f"Invalid arguments for {tool_name}: {reason}")


class ModelCallError(ChatError):
    """Raised when the language model request fails."""
