"""Local weather via Open-Meteo (free, no API key)."""

import logging
from typing import Optional

import httpx

from atmosphera.domain.entities import WeatherReport, WeatherType
from atmosphera.domain.repositories import IWeatherService

logger = logging.getLogger(__name__)

UNKNOWN_LOCATION = "Local Atmosphere"

_RAINY = {51, 53, 55, 56, 57, 61, 63, 66, 80, 81}
_STORMY = {65, 67, 82, 95, 96, 99}
_SNOWY = {71, 73, 75, 77, 85, 86}
_FOGGY = {45, 48}


def weather_for_code(code: int, is_day: bool) -> WeatherType:
    """Map a WMO weather interpretation code onto a :class:`WeatherType`."""
    if code in (0, 1):
        return WeatherType.SUNNY if is_day else WeatherType.NIGHT
    if code == 2:
        return WeatherType.CLOUDY
    if code == 3:
        return WeatherType.OVERCAST
    if code in _FOGGY:
        return WeatherType.FOGGY
    if code in _RAINY:
        return WeatherType.RAINY
    if code in _STORMY:
        return WeatherType.STORMY
    if code in _SNOWY:
        return WeatherType.SNOWY
    return WeatherType.CLOUDY


class OpenMeteoWeatherService(IWeatherService):

    def __init__(
        self,
        client: httpx.AsyncClient,
        base_url: str = "https://api.open-meteo.com/v1",
        geocode_url: str = "https://api.bigdatacloud.net/data",
    ):
        self.client = client
        self.base_url = base_url.rstrip("/")
        self.geocode_url = geocode_url.rstrip("/")

    async def _city_name(self, latitude: float, longitude: float) -> str:
        try:
            resp = await self.client.get(
                f"{self.geocode_url}/reverse-geocode-client",
                params={"latitude": latitude, "longitude": longitude, "localityLanguage": "en"},
            )
            resp.raise_for_status()
            data = resp.json()
        except (httpx.HTTPError, ValueError) as exc:
            logger.warning("Locality lookup failed: %s", exc)
            return UNKNOWN_LOCATION
        return (
            data.get("locality")
            or data.get("city")
            or data.get("principalSubdivision")
            or "Unknown Location"
        )

    async def fetch_local_weather(self, latitude: float, longitude: float) -> WeatherReport:
        resp = await self.client.get(
            f"{self.base_url}/forecast",
            params={
                "latitude": latitude,
                "longitude": longitude,
                "current": "temperature_2m,is_day,weather_code",
                "timezone": "auto",
            },
        )
        resp.raise_for_status()
        current = resp.json().get("current") or {}
        is_day = current.get("is_day") == 1
        code: Optional[int] = current.get("weather_code")
        report = WeatherReport(
            weather=weather_for_code(code if code is not None else -1, is_day),
            temperature=float(current.get("temperature_2m", 0.0)),
            is_day=is_day,
            location_name=await self._city_name(latitude, longitude),
        )
        logger.info("Weather at %.2f,%.2f: %s", latitude, longitude, report.weather.value)
        return report
