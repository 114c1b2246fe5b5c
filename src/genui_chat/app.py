import asyncio
import json
import logging
from pathlib import Path
from typing import Optional

from dotenv import load_dotenv
from fastapi import FastAPI, HTTPException, Response, WebSocket, WebSocketDisconnect
from fastapi.responses import FileResponse
from pydantic import BaseModel

from .errors import ModelCallError
from .plugins.ui_plugin import UILogHandler, UIPlugin
from .session_manager import ChatSession, SessionManager

load_dotenv()

logger = logging.getLogger(__name__)

app = FastAPI(title="Generative UI chat")

# Get the templates directory (in the same package)
TEMPLATES_DIR = Path(__file__).parent / "templates"

# Global session manager, sessions are addressed by id
session_manager = SessionManager()


class UserMessageIn(BaseModel):
    content: str


async def run_turn(session: ChatSession, ui_plugin: UIPlugin, text: str):
    """Run one user message through the session and push the results to the page."""
    await ui_plugin.set_running(True)
    try:
        _, response_item = await session.send(
            text,
            on_user_item=ui_plugin.send_display,
            on_render=ui_plugin.send_render,
        )
        await ui_plugin.send_display(response_item)
    except ModelCallError as e:
        logger.error(f"ERROR: Model call failed: {e}")
        await ui_plugin._send_internal_message(
            "Sorry, the language model could not be reached. Please try again."
        )
    except Exception as e:
        logger.exception(f"ERROR: Error processing message: {e}")
        await ui_plugin._send_internal_message(f"Sorry, I encountered an error: {str(e)}")
    finally:
        await ui_plugin.set_running(False)


async def message_loop(
    session: ChatSession, ui_plugin: UIPlugin, queue: asyncio.Queue, turns: set
):
    """Run queued user messages through the session one turn at a time."""
    while True:
        text = await queue.get()
        turn = asyncio.create_task(run_turn(session, ui_plugin, text))
        turns.add(turn)
        turn.add_done_callback(turns.discard)
        # Cancelling the loop must not cut a turn off halfway through its state updates
        await asyncio.shield(turn)


async def replay_history(session: ChatSession, ui_plugin: UIPlugin):
    """Send existing display items to a newly connected client."""
    for item in session.ui_state.items():
        await ui_plugin.send_display(item)


async def handle_websocket_session(websocket: WebSocket, session_id: Optional[str] = None):
    """Serve one websocket connection bound to a (new or existing) session."""
    session = session_manager.get_session(session_id) if session_id else None
    owns_session = session is None
    if session is None:
        session = session_manager.create_session()

    ui_plugin = UIPlugin()
    await ui_plugin.set_websocket(websocket)
    await ui_plugin._send_to_ui({"type": "session", "session_id": session.session_id})
    await replay_history(session, ui_plugin)

    # Forward this session's structured logs to the page
    log_handler = UILogHandler(ui_plugin, session.session_id)
    package_logger = logging.getLogger("genui_chat")
    package_logger.addHandler(log_handler)
    if package_logger.getEffectiveLevel() > logging.INFO:
        package_logger.setLevel(logging.INFO)

    queue: asyncio.Queue = asyncio.Queue()
    turns: set = set()
    processing_task = asyncio.create_task(message_loop(session, ui_plugin, queue, turns))

    try:
        while True:
            data = await websocket.receive_text()
            try:
                message_data = json.loads(data)
            except json.JSONDecodeError:
                logger.warning("SYSTEM: Ignoring malformed websocket message")
                continue

            if message_data.get("type", "user_message") != "user_message":
                continue
            content = message_data.get("content", "")
            if not isinstance(content, str) or not content.strip():
                continue
            await queue.put(content)
    except WebSocketDisconnect:
        logger.info("SYSTEM: Client disconnected")
    except Exception as e:
        logger.error(f"ERROR: WebSocket error: {e}")
    finally:
        ui_plugin.websocket = None
        processing_task.cancel()
        if turns and not owns_session:
            # The session outlives this connection, so let its turn finish
            await asyncio.gather(*turns, return_exceptions=True)
        package_logger.removeHandler(log_handler)
        if owns_session:
            for turn in list(turns):
                turn.cancel()
            session_manager.cleanup_session(session.session_id)


@app.get("/")
async def get():
    return FileResponse(str(TEMPLATES_DIR / "index.html"))


@app.get("/health")
async def health():
    return {"status": "ok", "sessions": session_manager.get_session_count()}


@app.websocket("/ws")
async def websocket_endpoint(websocket: WebSocket, session_id: Optional[str] = None):
    await websocket.accept()
    await handle_websocket_session(websocket, session_id)


def _require_session(session_id: str) -> ChatSession:
    session = session_manager.get_session(session_id)
    if not session:
        raise HTTPException(status_code=404, detail="Session not found")
    return session


@app.post("/api/sessions")
async def create_session():
    """Create a new session and return its ID."""
    session = session_manager.create_session()
    return {"session_id": session.session_id}


@app.post("/api/sessions/{session_id}/messages")
async def submit_user_message(session_id: str, message: UserMessageIn):
    """Run one turn and return the user and response display items."""
    session = _require_session(session_id)
    try:
        user_item, response_item = await session.send(message.content)
    except ModelCallError as e:
        raise HTTPException(status_code=502, detail=f"Language model error: {e}")
    return {"user": user_item.to_dict(), "response": response_item.to_dict()}


@app.get("/api/sessions/{session_id}/history")
async def get_history(session_id: str):
    return _require_session(session_id).history()


@app.delete("/api/sessions/{session_id}", status_code=204)
async def delete_session(session_id: str):
    if not session_manager.cleanup_session(session_id):
        raise HTTPException(status_code=404, detail="Session not found")
    return Response(status_code=204)
