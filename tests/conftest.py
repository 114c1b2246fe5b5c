"""Shared test fixtures: a scripted stand-in for the OpenAI streaming client."""

from __future__ import annotations

from types import SimpleNamespace
from unittest.mock import AsyncMock, MagicMock

import httpx
import pytest


def text_chunk(text: str):
    """A streamed chat completion chunk carrying a content fragment."""
    delta = SimpleNamespace(content=text, function_call=None)
    return SimpleNamespace(choices=[SimpleNamespace(delta=delta, finish_reason=None)])


def function_chunk(name: str | None = None, arguments: str = ""):
    """A streamed chat completion chunk carrying part of a function call."""
    delta = SimpleNamespace(
        content=None, function_call=SimpleNamespace(name=name, arguments=arguments)
    )
    return SimpleNamespace(choices=[SimpleNamespace(delta=delta, finish_reason=None)])


def empty_chunk():
    return SimpleNamespace(choices=[])


class FakeStream:
    """Async iterable over a fixed list of chunks."""

    def __init__(self, chunks):
        self.chunks = list(chunks)

    def __aiter__(self):
        return self._iterate()

    async def _iterate(self):
        for chunk in self.chunks:
            yield chunk


def make_client(*turns):
    """Client whose ``chat.completions.create`` returns one FakeStream per call."""
    client = MagicMock()
    client.chat.completions.create = AsyncMock(
        side_effect=[FakeStream(chunks) for chunks in turns]
    )
    return client


def weather_response(temp_f: float = 59.0, conditions: str = "Clouds"):
    """Mocked httpx response with the open-weather payload shape."""
    response = MagicMock()
    response.status_code = 200
    response.raise_for_status = MagicMock()
    response.json.return_value = {
        "main": {"temp": temp_f},
        "weather": [{"main": conditions, "description": "scattered clouds"}],
    }
    return response


def mock_async_client(mock_async_client_cls, response=None, side_effect=None):
    """Wire a patched ``httpx.AsyncClient`` class to return ``response`` from ``get``."""
    mock_client = AsyncMock()
    if side_effect is not None:
        mock_client.get = AsyncMock(side_effect=side_effect)
    else:
        mock_client.get = AsyncMock(return_value=response)
    mock_async_client_cls.return_value.__aenter__.return_value = mock_client
    return mock_client


@pytest.fixture
def weather_env(monkeypatch):
    """Configure the weather API through the environment."""
    monkeypatch.setenv("RAPIDAPI_KEY", "test-key")
    monkeypatch.setenv("WEATHER_API_HOST", "weather.test")
    monkeypatch.delenv("WEATHER_API_URL", raising=False)
    monkeypatch.delenv("WEATHER_API_TIMEOUT", raising=False)


@pytest.fixture
def connect_error():
    return httpx.ConnectError("connection refused")
