"""Local weather API route."""

import logging
from typing import Annotated

import httpx
from fastapi import APIRouter, Depends, HTTPException, Query, status

from atmosphera.api.schemas import WeatherResponse
from atmosphera.core.dependencies import get_weather_service
from atmosphera.domain.repositories import IWeatherService

logger = logging.getLogger(__name__)
router = APIRouter(tags=["weather"])


@router.get("/weather", response_model=WeatherResponse)
async def get_local_weather(
    weather_service: Annotated[IWeatherService, Depends(get_weather_service)],
    lat: Annotated[float, Query(ge=-90, le=90)],
    lon: Annotated[float, Query(ge=-180, le=180)],
) -> WeatherResponse:
    """Current conditions mapped onto the questionnaire's weather choices."""
    try:
        report = await weather_service.fetch_local_weather(lat, lon)
    except httpx.HTTPError as exc:
        logger.warning("Weather lookup failed: %s", exc)
        raise HTTPException(
            status_code=status.HTTP_502_BAD_GATEWAY, detail="Weather service unavailable"
        )
    return WeatherResponse.model_validate(report)
