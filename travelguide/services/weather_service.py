import logging
from datetime import date, timedelta
from typing import Any, Dict, List, Optional

import httpx

from travelguide.models.guide_models import DailyForecast, WeatherInfo
from travelguide.services.amap_geocoding_service import (
    AmapGeocodingService,
    GeocodingError,
    normalize_city_name,
)

WEATHER_FALLBACK_ADVICE = "无法获取天气信息，建议出行前查看当地天气预报。"


def _to_float(value: Any) -> Optional[float]:
    try:
        return float(value)
    except (TypeError, ValueError):
        return None


class AmapWeatherService:
    """Live weather and short-range forecast from Amap, keyed by the city's adcode."""

    def __init__(
        self,
        api_key: str,
        geocoder: AmapGeocodingService,
        base_url: str = "https://restapi.amap.com/v3",
        http_client: Optional[httpx.AsyncClient] = None,
    ):
        self.api_key = api_key
        self.geocoder = geocoder
        self.base_url = base_url.rstrip("/")
        # shares the geocoder's connection pool unless told otherwise
        self._client = http_client or geocoder.http_client
        self.logger = logging.getLogger(__name__)

    async def _weather_info(self, adcode: str, extensions: str) -> Dict[str, Any]:
        response = await self._client.get(
            f"{self.base_url}/weather/weatherInfo",
            params={"key": self.api_key, "city": adcode, "extensions": extensions, "output": "json"},
        )
        response.raise_for_status()
        data = response.json()
        if data.get("status") != "1":
            raise ValueError(f"Amap weather error: {data.get('info')}")
        return data

    async def get_weather(
        self,
        destination: str,
        start_date: Optional[date] = None,
        duration_days: Optional[int] = None,
    ) -> WeatherInfo:
        """Weather for a destination. Never raises; failures yield fallback advice."""
        base = WeatherInfo(destination=destination, start_date=start_date, duration_days=duration_days)
        if not destination:
            return base.model_copy(update={"available": False, "advice": WEATHER_FALLBACK_ADVICE})

        try:
            location = await self.geocoder.geocode(normalize_city_name(destination))
            if location is None or not location.adcode:
                raise ValueError(f"no adcode for {destination}")

            forecast_data = await self._weather_info(location.adcode, "all")
            live_data = await self._weather_info(location.adcode, "base")
        except (GeocodingError, httpx.HTTPError, ValueError) as e:
            self.logger.warning(f"[weather] Weather lookup failed for {destination}: {e}")
            return base.model_copy(update={"available": False, "advice": WEATHER_FALLBACK_ADVICE})

        casts = ((forecast_data.get("forecasts") or [{}])[0] or {}).get("casts") or []
        forecast = [
            DailyForecast(
                date=c.get("date", ""),
                day_weather=c.get("dayweather", ""),
                night_weather=c.get("nightweather", ""),
                day_temp=_to_float(c.get("daytemp")),
                night_temp=_to_float(c.get("nighttemp")),
                wind=f"{c.get('daywind', '')}风{c.get('daypower', '')}级" if c.get("daywind") else "",
            )
            for c in casts
        ]
        lives = live_data.get("lives") or []
        current = lives[0] if lives else None

        return base.model_copy(update={
            "current": current,
            "forecast": forecast,
            "advice": self.build_advice(forecast, start_date, duration_days),
        })

    @staticmethod
    def build_advice(
        forecast: List[DailyForecast],
        start_date: Optional[date] = None,
        duration_days: Optional[int] = None,
    ) -> str:
        if not forecast:
            return WEATHER_FALLBACK_ADVICE

        relevant = forecast
        prefix = ""
        if start_date:
            end_date = start_date + timedelta(days=max(1, duration_days or 1) - 1)
            in_window = [
                f for f in forecast
                if f.date and start_date.isoformat() <= f.date <= end_date.isoformat()
            ]
            if in_window:
                relevant = in_window
            else:
                prefix = "出行日期超出天气预报范围，以下为近期天气参考。"

        tips = []
        conditions = " ".join(f.day_weather + f.night_weather for f in relevant)
        if "雨" in conditions:
            tips.append("行程期间可能有雨，请携带雨具。")
        if "雪" in conditions:
            tips.append("可能有降雪，注意防滑保暖。")

        highs = [f.day_temp for f in relevant if f.day_temp is not None]
        lows = [f.night_temp for f in relevant if f.night_temp is not None]
        if highs and max(highs) >= 30:
            tips.append("天气炎热，注意防晒补水。")
        if lows and min(lows) <= 5:
            tips.append("早晚气温较低，注意保暖。")
        if highs and lows:
            tips.insert(0, f"气温约{min(lows):.0f}~{max(highs):.0f}℃。")
        if len(tips) <= 1:
            tips.append("天气总体适宜出行。")

        return prefix + "".join(tips)
