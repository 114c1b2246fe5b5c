import asyncio
import json
import logging
from datetime import datetime

from fastapi import WebSocket, WebSocketDisconnect

from ..render import RenderState
from ..state import DisplayItem

logger = logging.getLogger(__name__)


class UILogHandler(logging.Handler):
    """Logging handler that forwards a session's structured log records to the UI."""

    def __init__(self, ui: "UIPlugin", session_id: str):
        super().__init__()
        self.ui = ui
        self.session_id = session_id

    def emit(self, record: logging.LogRecord) -> None:
        # Filter out debug level logs from being sent to client
        if record.levelno <= logging.DEBUG:
            return
        structured = getattr(record, "structured", None)
        if not structured or structured.get("session_id") != self.session_id:
            return
        self.ui.log_structured(structured)


class UIPlugin:
    """Websocket side of a chat session: pushes display items, renders, state and logs."""

    def __init__(self):
        self.websocket = None
        self.status = "Connected"

    async def set_websocket(self, websocket: WebSocket):
        self.websocket = websocket
        self.status = "Connected"
        await self._send_state_update()

    async def _send_to_ui(self, message_data: dict):
        """Send message to the websocket, if one is attached."""
        if not self.websocket:
            return
        try:
            await self.websocket.send_text(json.dumps(message_data, ensure_ascii=False))
        except (WebSocketDisconnect, RuntimeError) as e:
            # Client went away mid-send; the turn carries on without a page
            logger.debug(f"SYSTEM: Dropping UI message, websocket closed: {e}")
            self.websocket = None

    async def _send_state_update(self):
        await self._send_to_ui({"type": "state", "status": self.status})

    async def _send_internal_message(self, content: str, message_type: str = "error"):
        """Send messages that are not part of the conversation (errors, logs)."""
        message_data = {
            "type": message_type,
            "content": content,
            "timestamp": datetime.now().isoformat(),
        }
        await self._send_to_ui(message_data)

    async def send_display(self, item: DisplayItem):
        """Send a display item to be appended to the visible list."""
        await self._send_to_ui({"type": "display", "item": item.to_dict()})

    async def send_render(self, render_state: RenderState):
        """Send a provisional render for the response currently being produced."""
        await self._send_to_ui(
            {
                "type": "render",
                "display": render_state.display,
                "done": render_state.done,
            }
        )

    async def set_running(self, running: bool):
        self.status = "Running" if running else "Connected"
        await self._send_state_update()

    def log_structured(self, structured_data: dict) -> None:
        """Send structured log to UI (formatted as string)."""
        formatted_content = self._format_structured_log(structured_data)
        try:
            asyncio.get_running_loop()
        except RuntimeError:
            return
        asyncio.create_task(self._send_internal_message(formatted_content, message_type="log"))

    def _format_structured_log(self, data: dict) -> str:
        """Format structured log data as a single display line."""
        log_type = data.get("log_type", "")

        formatters = {
            "tool_call": lambda: f"{data.get('tool_name', 'unknown')}({data.get('arguments', '')})",
            "tool_result": lambda: f"{data.get('tool_name', 'unknown')} executed - returned: {data.get('result', '')}",
            "output_text": lambda: data.get("content", ""),
            "user_input": lambda: data.get("content", ""),
        }

        if log_type in formatters:
            return f"{log_type.upper()}: {formatters[log_type]()}"

        # Fallback to content field
        return data.get("content", str(data))
