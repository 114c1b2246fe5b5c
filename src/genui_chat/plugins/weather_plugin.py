"""Plugin for looking up the current weather of a city."""

import logging
from urllib.parse import quote

import httpx

from .. import config
from ..render import weather_card
from ..tool_registry import tool

logger = logging.getLogger(__name__)


def fahrenheit_to_celsius(fahrenheit: float) -> float:
    """Convert a Fahrenheit temperature to Celsius, rounded to 2 decimals."""
    return round((fahrenheit - 32) * (5 / 9), 2)


class WeatherPlugin:
    """Plugin fetching weather from the RapidAPI open-weather service."""

    def __init__(
        self,
        api_key: str | None = None,
        api_host: str | None = None,
        base_url: str | None = None,
        timeout: float | None = None,
    ):
        self.api_key = api_key if api_key is not None else config.get_weather_api_key()
        self.api_host = api_host or config.get_weather_api_host()
        self.base_url = (base_url or config.get_weather_api_url(self.api_host)).rstrip("/")
        self.timeout = timeout if timeout is not None else config.get_weather_timeout()

    def _headers(self) -> dict:
        return {
            "X-RapidAPI-Key": self.api_key or "",
            "X-RapidAPI-Host": self.api_host,
        }

    async def _fetch(self, city: str) -> dict:
        url = f"{self.base_url}/city/{quote(city)}"
        logger.debug(f"Fetching weather from {url}")
        async with httpx.AsyncClient(timeout=self.timeout) as client:
            response = await client.get(url, headers=self._headers())
            response.raise_for_status()
            return response.json()

    @tool(
        description="Get the weather information for a city",
        city="the city to get the weather for",
    )
    async def get_weather_info(self, city: str) -> dict:
        """Fetch the current weather of a city, in Celsius.

        Never raises: failures are logged and returned as ``{"city", "error"}``.
        """
        if not self.api_key:
            logger.error("Weather lookup skipped: RAPIDAPI_KEY is not set")
            return {"city": city, "error": "Weather service is not configured"}

        try:
            data = await self._fetch(city)
            temperature = fahrenheit_to_celsius(float(data["main"]["temp"]))
            conditions = data["weather"][0]["main"]
        except httpx.HTTPStatusError as e:
            logger.error(f"Weather API returned {e.response.status_code} for {city}")
            return {"city": city, "error": f"Weather service returned {e.response.status_code}"}
        except httpx.HTTPError as e:
            logger.error(f"Weather API request failed for {city}: {e!r}")
            return {"city": city, "error": "Weather service is unreachable"}
        except (KeyError, IndexError, TypeError, ValueError) as e:
            logger.error(f"Unexpected weather payload for {city}: {e!r}")
            return {"city": city, "error": "Weather service sent an unexpected response"}

        logger.info(f"Weather for {city}: {temperature} C, {conditions}")
        return {"city": city, "temperature": temperature, "conditions": conditions}

    def hook_provide_tools(self):
        """Return tools this plugin provides for auto-registration."""
        return [self.get_weather_info]

    def hook_render_tool_result(self, tool_name: str, result: dict):
        """Render the weather card for results of this plugin's tool."""
        if tool_name != "get_weather_info":
            return None
        return weather_card(result)
