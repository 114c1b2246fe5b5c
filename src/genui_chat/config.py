"""Environment-driven settings.

Values are read at call time so a `.env` loaded by the app (or a test's
monkeypatched environment) is always honored.
"""

import os

DEFAULT_MODEL = "gpt-4o-mini"
DEFAULT_SYSTEM_PROMPT = "You are a weather assistant"
DEFAULT_WEATHER_HOST = "open-weather13.p.rapidapi.com"
DEFAULT_WEATHER_TIMEOUT = 10.0


def get_openai_api_key() -> str | None:
    return os.getenv("OPENAI_API_KEY")


def get_model_name() -> str:
    return os.getenv("GENUI_CHAT_MODEL", DEFAULT_MODEL)


def get_system_prompt() -> str:
    return os.getenv("GENUI_CHAT_SYSTEM_PROMPT", DEFAULT_SYSTEM_PROMPT)


def get_weather_api_key() -> str | None:
    return os.getenv("RAPIDAPI_KEY")


def get_weather_api_host() -> str:
    return os.getenv("WEATHER_API_HOST", DEFAULT_WEATHER_HOST)


def get_weather_api_url(host: str | None = None) -> str:
    """Base URL of the weather API, without a trailing slash.

    ``WEATHER_API_URL`` wins; otherwise the URL is built from ``host`` (or the
    configured host).
    """
    url = os.getenv("WEATHER_API_URL") or f"https://{host or get_weather_api_host()}"
    return url.rstrip("/")


def get_weather_timeout() -> float:
    raw = os.getenv("WEATHER_API_TIMEOUT")
    if not raw:
        return DEFAULT_WEATHER_TIMEOUT
    try:
        return float(raw)
    except ValueError:
        return DEFAULT_WEATHER_TIMEOUT


def browser_disabled() -> bool:
    return os.environ.get("GENUI_CHAT_NO_BROWSER") == "1"
