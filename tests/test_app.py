"""Tests for the HTTP and websocket routes.

Uses Starlette's synchronous TestClient against the real FastAPI app; only the
OpenAI client is replaced by a scripted stream.
"""

from __future__ import annotations

import asyncio
import json
import logging
from unittest.mock import AsyncMock, patch

import httpx
import openai
import pytest
from fastapi import WebSocketDisconnect
from starlette.testclient import TestClient

from conftest import (
    FakeStream,
    function_chunk,
    make_client,
    mock_async_client,
    text_chunk,
    weather_response,
)
from genui_chat import app as app_module


@pytest.fixture
def scripted(monkeypatch, weather_env):
    """Make every new session use a client built from the scripted turns."""
    turns = []

    def factory():
        return make_client(*turns)

    monkeypatch.setattr(app_module.session_manager, "client_factory", factory)
    monkeypatch.setattr(app_module.session_manager, "sessions", {})
    return turns


@pytest.fixture
def client(scripted):
    return TestClient(app_module.app)


def next_event(ws):
    """Next websocket event, skipping forwarded log lines."""
    while True:
        event = ws.receive_json()
        if event["type"] != "log":
            return event


def receive_until_response(ws):
    """Collect websocket events until the response display item arrives."""
    events = []
    while True:
        event = next_event(ws)
        events.append(event)
        if event["type"] == "error":
            return events
        if event["type"] == "display" and event["item"]["display"]["kind"] != "user":
            return events


class TestPages:
    def test_index_serves_chat_page(self, client):
        resp = client.get("/")
        assert resp.status_code == 200
        assert "text/html" in resp.headers["content-type"]
        assert 'id="chat-input"' in resp.text
        assert 'id="messages"' in resp.text

    def test_health(self, client):
        resp = client.get("/health")
        assert resp.json() == {"status": "ok", "sessions": 0}


class TestSessionApi:
    def test_text_turn(self, client, scripted):
        scripted.append([text_chunk("It is "), text_chunk("sunny.")])
        session_id = client.post("/api/sessions").json()["session_id"]

        resp = client.post(f"/api/sessions/{session_id}/messages", json={"content": "weather?"})

        assert resp.status_code == 200
        body = resp.json()
        assert body["user"]["display"] == {"kind": "user", "text": "weather?"}
        assert body["response"]["display"] == {"kind": "text", "content": "It is sunny."}
        assert body["response"]["id"] > body["user"]["id"]

    def test_weather_turn_and_history(self, client, scripted):
        scripted.append([function_chunk("get_weather_info", '{"city": "Paris"}')])
        session_id = client.post("/api/sessions").json()["session_id"]

        with patch("genui_chat.plugins.weather_plugin.httpx.AsyncClient") as client_cls:
            mock_async_client(client_cls, weather_response(50, "Rain"))
            resp = client.post(
                f"/api/sessions/{session_id}/messages",
                json={"content": "what's the weather in Paris"},
            )

        assert resp.json()["response"]["display"] == {
            "kind": "weather_card",
            "weather_info": {"city": "Paris", "temperature": 10.0, "conditions": "Rain"},
        }

        history = client.get(f"/api/sessions/{session_id}/history").json()
        assert [m["role"] for m in history["messages"]] == ["user", "function"]
        assert history["messages"][1]["name"] == "get_weather_info"
        assert len(history["display"]) == 2

    def test_unknown_session(self, client):
        assert client.post("/api/sessions/nope/messages", json={"content": "x"}).status_code == 404
        assert client.get("/api/sessions/nope/history").status_code == 404
        assert client.delete("/api/sessions/nope").status_code == 404

    def test_missing_content_is_rejected(self, client):
        session_id = client.post("/api/sessions").json()["session_id"]
        assert client.post(f"/api/sessions/{session_id}/messages", json={}).status_code == 422

    def test_model_failure_is_bad_gateway(self, client):
        session_id = client.post("/api/sessions").json()["session_id"]
        session = app_module.session_manager.get_session(session_id)
        session.agent.client.chat.completions.create.side_effect = openai.APIConnectionError(
            request=httpx.Request("POST", "https://api.openai.com/v1/chat/completions")
        )

        resp = client.post(f"/api/sessions/{session_id}/messages", json={"content": "hi"})

        assert resp.status_code == 502

    def test_delete_session(self, client):
        session_id = client.post("/api/sessions").json()["session_id"]
        assert client.delete(f"/api/sessions/{session_id}").status_code == 204
        assert client.get("/health").json()["sessions"] == 0


class TestWebsocket:
    def test_streams_renders_then_display_item(self, client, scripted):
        scripted.append([text_chunk("Hel"), text_chunk("lo")])

        with client.websocket_connect("/ws") as ws:
            assert next_event(ws) == {"type": "state", "status": "Connected"}
            session_event = next_event(ws)
            assert session_event["type"] == "session"

            ws.send_json({"type": "user_message", "content": "hi"})
            events = receive_until_response(ws)

        types = [e["type"] for e in events]
        assert types[0] == "state" and events[0]["status"] == "Running"
        assert events[1]["type"] == "display"
        assert events[1]["item"]["display"] == {"kind": "user", "text": "hi"}
        renders = [e for e in events if e["type"] == "render"]
        assert [r["display"]["content"] for r in renders] == ["Hel", "Hello"]
        assert all(r["done"] is False for r in renders)
        assert events[-1]["item"]["display"] == {"kind": "text", "content": "Hello"}

    def test_tool_turn_streams_spinner(self, client, scripted):
        scripted.append([function_chunk("get_flight_info", '{"flightNumber": "AF1"}')])

        with client.websocket_connect("/ws") as ws:
            next_event(ws)
            next_event(ws)
            ws.send_json({"type": "user_message", "content": "AF1?"})
            events = receive_until_response(ws)

        renders = [e["display"] for e in events if e["type"] == "render"]
        assert renders == [{"kind": "spinner"}]
        assert events[-1]["item"]["display"]["kind"] == "flight_card"

    def test_model_failure_reports_error_and_keeps_connection(self, client, scripted):
        with client.websocket_connect("/ws") as ws:
            next_event(ws)
            session_id = next_event(ws)["session_id"]
            session = app_module.session_manager.get_session(session_id)
            session.agent.client.chat.completions.create.side_effect = (
                openai.APIConnectionError(
                    request=httpx.Request("POST", "https://api.openai.com/v1/chat/completions")
                )
            )

            ws.send_json({"type": "user_message", "content": "hi"})
            events = receive_until_response(ws)
            assert events[-1]["type"] == "error"

            assert next_event(ws) == {"type": "state", "status": "Connected"}

    def test_existing_session_replays_history(self, client, scripted):
        scripted.append([text_chunk("Hello")])
        session_id = client.post("/api/sessions").json()["session_id"]
        client.post(f"/api/sessions/{session_id}/messages", json={"content": "hi"})

        with client.websocket_connect(f"/ws?session_id={session_id}") as ws:
            next_event(ws)
            assert next_event(ws) == {"type": "session", "session_id": session_id}
            replayed = [next_event(ws)["item"]["display"]["kind"] for _ in range(2)]

        assert replayed == ["user", "text"]
        # Sessions created through the API outlive the websocket
        assert app_module.session_manager.get_session(session_id) is not None

    def test_connection_session_is_cleaned_up(self, client):
        with client.websocket_connect("/ws") as ws:
            next_event(ws)
            next_event(ws)
            assert client.get("/health").json()["sessions"] == 1
        # Give the server a moment to run its cleanup
        for _ in range(50):
            if client.get("/health").json()["sessions"] == 0:
                break
        assert client.get("/health").json()["sessions"] == 0

    def test_agent_logs_are_forwarded(self, client, scripted):
        package_logger = logging.getLogger("genui_chat")
        previous_level = package_logger.level
        package_logger.setLevel(logging.NOTSET)
        scripted.append([text_chunk("Hello")])
        try:
            with client.websocket_connect("/ws") as ws:
                ws.receive_json()
                ws.receive_json()
                ws.send_json({"type": "user_message", "content": "hi"})
                logs = []
                while True:
                    event = ws.receive_json()
                    if event["type"] == "log":
                        logs.append(event["content"])
                    if event["type"] == "display" and event["item"]["display"]["kind"] == "text":
                        break
        finally:
            package_logger.setLevel(previous_level)

        assert "USER_INPUT: hi" in logs


class FakeWebSocket:
    """In-memory websocket; putting None on ``incoming`` disconnects the client."""

    def __init__(self):
        self.incoming: asyncio.Queue = asyncio.Queue()
        self.sent = []

    async def send_text(self, data):
        self.sent.append(json.loads(data))

    async def receive_text(self):
        data = await self.incoming.get()
        if data is None:
            raise WebSocketDisconnect()
        return data


class GatedStream(FakeStream):
    """Holds its chunks back until ``gate`` is set."""

    def __init__(self, chunks, gate: asyncio.Event, started: asyncio.Event):
        super().__init__(chunks)
        self.gate = gate
        self.started = started

    async def _iterate(self):
        self.started.set()
        await self.gate.wait()
        for chunk in self.chunks:
            yield chunk


class TestDisconnectMidTurn:
    async def start_turn(self, session):
        gate, started = asyncio.Event(), asyncio.Event()
        session.agent.client.chat.completions.create = AsyncMock(
            return_value=GatedStream([text_chunk("Hello")], gate, started)
        )
        ws = FakeWebSocket()
        handler = asyncio.create_task(app_module.handle_websocket_session(ws, session.session_id))
        await ws.incoming.put(json.dumps({"type": "user_message", "content": "hi"}))
        await asyncio.wait_for(started.wait(), timeout=1)
        await ws.incoming.put(None)
        for _ in range(5):
            await asyncio.sleep(0)
        return handler, gate

    @pytest.mark.asyncio
    async def test_resumed_session_turn_completes(self, scripted):
        session = app_module.session_manager.create_session()

        handler, gate = await self.start_turn(session)
        assert not handler.done()
        gate.set()
        await asyncio.wait_for(handler, timeout=1)

        assert session.ai_state.is_done
        assert session.history()["messages"] == [
            {"role": "user", "content": "hi"},
            {"role": "assistant", "content": "Hello"},
        ]
        assert [item.display["kind"] for item in session.ui_state.items()] == ["user", "text"]
        assert app_module.session_manager.get_session(session.session_id) is session

    @pytest.mark.asyncio
    async def test_socket_closing_mid_send_does_not_abort_turn(self, scripted):
        session = app_module.session_manager.create_session()
        session.agent.client.chat.completions.create = AsyncMock(
            return_value=FakeStream([text_chunk("Hel"), text_chunk("lo")])
        )
        ws = FakeWebSocket()
        open_send = ws.send_text

        async def send_text(data):
            if json.loads(data)["type"] == "render":
                raise RuntimeError('Cannot call "send" once a close message has been sent.')
            await open_send(data)

        ws.send_text = send_text

        handler = asyncio.create_task(app_module.handle_websocket_session(ws, session.session_id))
        await ws.incoming.put(json.dumps({"type": "user_message", "content": "hi"}))

        async def turn_finished():
            while len(session.ui_state) < 2:
                await asyncio.sleep(0.01)

        await asyncio.wait_for(turn_finished(), timeout=1)
        await ws.incoming.put(None)
        await asyncio.wait_for(handler, timeout=1)

        assert session.history()["messages"][-1] == {"role": "assistant", "content": "Hello"}
        assert not any(event["type"] == "error" for event in ws.sent)
