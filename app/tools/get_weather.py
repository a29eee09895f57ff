"""Weather lookup tool backed by Open-Meteo."""

from typing import Any

import httpx
from langchain_core.tools import BaseTool, tool

OPEN_METEO_URL = "https://api.open-meteo.com/v1/forecast"


def build_get_weather_tool(http_client: httpx.AsyncClient) -> BaseTool:
    """Create the ``getWeather`` tool."""

    @tool("getWeather")
    async def get_weather(latitude: float, longitude: float) -> dict[str, Any]:
        """Get the current weather at a location.

        Args:
            latitude: Latitude of the location.
            longitude: Longitude of the location.

        Returns:
            Current temperature, hourly temperatures and sunrise/sunset times.
        """
        response = await http_client.get(
            OPEN_METEO_URL,
            params={
                "latitude": latitude,
                "longitude": longitude,
                "current": "temperature_2m",
                "hourly": "temperature_2m",
                "daily": "sunrise,sunset",
                "timezone": "auto",
            },
        )
        response.raise_for_status()
        return response.json()

    return get_weather
