import httpx
import pytest

from atmosphera.domain.entities import WeatherType
from atmosphera.infrastructure.weather.open_meteo import (
    UNKNOWN_LOCATION,
    OpenMeteoWeatherService,
    weather_for_code,
)

from conftest import json_transport


@pytest.mark.parametrize(
    "code, is_day, expected",
    [
        (0, True, WeatherType.SUNNY),
        (1, False, WeatherType.NIGHT),
        (2, True, WeatherType.CLOUDY),
        (3, True, WeatherType.OVERCAST),
        (45, True, WeatherType.FOGGY),
        (61, True, WeatherType.RAINY),
        (95, False, WeatherType.STORMY),
        (73, True, WeatherType.SNOWY),
        (1234, True, WeatherType.CLOUDY),
    ],
)
def test_weather_codes(code, is_day, expected):
    assert weather_for_code(code, is_day) is expected


async def test_fetch_local_weather():
    def handler(request):
        if request.url.host == "api.open-meteo.com":
            assert request.url.params["current"] == "temperature_2m,is_day,weather_code"
            return {"current": {"temperature_2m": 8.5, "is_day": 0, "weather_code": 45}}
        return {"locality": "Reykjavik"}

    service = OpenMeteoWeatherService(httpx.AsyncClient(transport=json_transport(handler)))
    report = await service.fetch_local_weather(64.1, -21.9)

    assert report.weather is WeatherType.FOGGY
    assert report.temperature == 8.5
    assert report.is_day is False
    assert report.location_name == "Reykjavik"


async def test_geocode_failure_uses_placeholder_name():
    def handler(request):
        if request.url.host == "api.open-meteo.com":
            return {"current": {"temperature_2m": 20, "is_day": 1, "weather_code": 0}}
        return httpx.Response(500)

    service = OpenMeteoWeatherService(httpx.AsyncClient(transport=json_transport(handler)))
    report = await service.fetch_local_weather(0, 0)

    assert report.weather is WeatherType.SUNNY
    assert report.location_name == UNKNOWN_LOCATION
