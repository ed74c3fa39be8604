"""Live-data provider for weather, news, exchange rates and the clock.

Reference collaborator for the live-data source. Upstream wire handling is
kept minimal; the router only relies on the ``fetch(subtype, params)``
contract.
"""

import logging
import re
from datetime import datetime
from typing import Any

import httpx

from switchyard.config import Settings, get_settings
from switchyard.models import LiveDataSubtype
from switchyard.sources.base import (
    LiveData,
    SourceAuthError,
    SourceParseError,
    SourceTimeoutError,
)

logger = logging.getLogger(__name__)

DEFAULT_CITY = "New York"
DEFAULT_BASE_CURRENCY = "USD"

CITY_AFTER_PREPOSITION = re.compile(r"\b(?:in|at|for)\s+([A-Za-z][\w\-]*(?:\s+[A-Z][\w\-]*)*)")
CITY_BEFORE_WEATHER = re.compile(r"\b([A-Z][\w\-]*)\s+weather\b")
CURRENCY_CODE = re.compile(r"\b([A-Za-z]{3})\b")

KNOWN_CURRENCIES: frozenset[str] = frozenset(
    {
        "AUD",
        "BRL",
        "BTC",
        "CAD",
        "CHF",
        "CNY",
        "EUR",
        "GBP",
        "HKD",
        "INR",
        "JPY",
        "KRW",
        "MXN",
        "NZD",
        "SEK",
        "SGD",
        "USD",
        "ZAR",
    }
)

# Words the preposition pattern picks up that are never city names
_NOT_CITIES: frozenset[str] = frozenset({"the", "a", "an", "my", "your", "general", "celsius"})


def extract_city(message: str) -> str:
    """Pull a city name out of a weather question, defaulting to New York."""
    match = CITY_AFTER_PREPOSITION.search(message)
    if match and match.group(1).lower() not in _NOT_CITIES:
        return match.group(1)
    match = CITY_BEFORE_WEATHER.search(message)
    if match:
        return match.group(1)
    return DEFAULT_CITY


def extract_base_currency(message: str) -> str:
    """Return the first ISO currency code in the message, defaulting to USD."""
    for candidate in CURRENCY_CODE.findall(message):
        code = candidate.upper()
        if code in KNOWN_CURRENCIES:
            return code
    return DEFAULT_BASE_CURRENCY


def lookup_params(subtype: LiveDataSubtype, message: str) -> dict[str, Any]:
    """Derive upstream lookup parameters for a subtype from the message.

    The returned parameters also key the cache entry for the lookup.
    """
    if subtype == LiveDataSubtype.WEATHER:
        return {"city": extract_city(message).lower()}
    if subtype == LiveDataSubtype.CURRENCY:
        return {"base": extract_base_currency(message)}
    if subtype == LiveDataSubtype.NEWS:
        return {"country": "us"}
    return {}


class LiveDataProvider:
    """Fetches live data from public upstream APIs.

    Upstreams:
        weather: Open-Meteo geocoding + forecast (no key)
        news: NewsAPI top headlines (requires news_api_key)
        currency: exchangerate-api latest rates (no key)
        time: local clock (no upstream)
    """

    GEOCODING_URL = "https://geocoding-api.open-meteo.com/v1/search"
    FORECAST_URL = "https://api.open-meteo.com/v1/forecast"
    NEWS_URL = "https://newsapi.org/v2/top-headlines"
    RATES_URL = "https://api.exchangerate-api.com/v4/latest"
    DEFAULT_TIMEOUT = 10.0  # seconds

    def __init__(self, settings: Settings | None = None) -> None:
        self._client: httpx.AsyncClient | None = None
        self._settings = settings or get_settings()

    @property
    def source_name(self) -> str:
        return "live_data"

    async def _get_client(self) -> httpx.AsyncClient:
        """Lazy initialization of HTTP client."""
        if self._client is None:
            self._client = httpx.AsyncClient(
                timeout=httpx.Timeout(self.DEFAULT_TIMEOUT),
                headers={"User-Agent": "Switchyard/0.1"},
            )
        return self._client

    async def _get_json(self, api: str, url: str, params: dict[str, Any] | None = None) -> Any:
        client = await self._get_client()
        try:
            response = await client.get(url, params=params)
            response.raise_for_status()
        except httpx.TimeoutException as e:
            logger.warning(f"{api} timeout")
            raise SourceTimeoutError(api, self.DEFAULT_TIMEOUT) from e
        except httpx.HTTPStatusError as e:
            if e.response.status_code in (401, 403):
                raise SourceAuthError(api, f"HTTP {e.response.status_code}") from e
            logger.error(f"{api} HTTP error: {e}")
            raise SourceParseError(api, str(e)) from e
        except httpx.HTTPError as e:
            logger.error(f"{api} HTTP error: {e}")
            raise SourceParseError(api, str(e)) from e

        try:
            return response.json()
        except ValueError as e:
            raise SourceParseError(api, "Invalid JSON response") from e

    async def fetch(self, subtype: LiveDataSubtype, params: dict[str, Any]) -> LiveData:
        """Fetch live data for a subtype.

        Args:
            subtype: Live-data family to query.
            params: Parameters from :func:`lookup_params`.

        Returns:
            LiveData with content and the upstream identifier.

        Raises:
            SourceTimeoutError: If an upstream request times out.
            SourceParseError: If an upstream response cannot be used.
            SourceAuthError: If credentials are missing or rejected.
        """
        logger.info(f"Fetching live data for type: {subtype.value}")
        if subtype == LiveDataSubtype.WEATHER:
            return await self._fetch_weather(params.get("city", DEFAULT_CITY))
        if subtype == LiveDataSubtype.NEWS:
            return await self._fetch_news(params.get("country", "us"))
        if subtype == LiveDataSubtype.CURRENCY:
            return await self._fetch_rates(params.get("base", DEFAULT_BASE_CURRENCY))
        if subtype == LiveDataSubtype.TIME:
            return self._current_time()
        return LiveData(error=f"Unknown live-data type: {subtype}")

    async def _fetch_weather(self, city: str) -> LiveData:
        geo = await self._get_json(
            "open-meteo",
            self.GEOCODING_URL,
            {"name": city, "count": 1, "language": "en", "format": "json"},
        )
        results = geo.get("results") or []
        if not results:
            return LiveData(api_used="open-meteo", error=f"City '{city}' not found")

        location = results[0]
        forecast = await self._get_json(
            "open-meteo",
            self.FORECAST_URL,
            {
                "latitude": location["latitude"],
                "longitude": location["longitude"],
                "current": "temperature_2m,relative_humidity_2m,weather_code",
                "temperature_unit": "celsius",
            },
        )
        current = forecast.get("current")
        if not current:
            raise SourceParseError("open-meteo", "Forecast response has no current conditions")

        return LiveData(
            api_used="open-meteo",
            content={
                "city": f"{location.get('name', city)}, {location.get('country', '')}".strip(", "),
                "temperature": current.get("temperature_2m"),
                "humidity": current.get("relative_humidity_2m"),
                "weather_code": current.get("weather_code"),
                "timestamp": datetime.now().astimezone().isoformat(),
            },
        )

    async def _fetch_news(self, country: str) -> LiveData:
        if not self._settings.has_news_credentials():
            raise SourceAuthError("newsapi", "SWITCHYARD_NEWS_API_KEY is not set")
        assert self._settings.news_api_key is not None  # For mypy

        data = await self._get_json(
            "newsapi",
            self.NEWS_URL,
            {
                "country": country,
                "apiKey": self._settings.news_api_key.get_secret_value(),
                "pageSize": 5,
            },
        )
        articles = data.get("articles") or []
        if not articles:
            return LiveData(api_used="newsapi", error="No headlines available")

        headlines = [
            {
                "title": article.get("title"),
                "description": article.get("description"),
                "url": article.get("url"),
                "source": (article.get("source") or {}).get("name"),
            }
            for article in articles
        ]
        return LiveData(
            api_used="newsapi",
            content={"headlines": headlines, "timestamp": datetime.now().astimezone().isoformat()},
        )

    async def _fetch_rates(self, base: str) -> LiveData:
        data = await self._get_json("exchangerate-api", f"{self.RATES_URL}/{base}")
        rates = data.get("rates")
        if not rates:
            raise SourceParseError("exchangerate-api", "Response has no rates")
        return LiveData(
            api_used="exchangerate-api",
            content={
                "base": data.get("base", base),
                "rates": rates,
                "timestamp": datetime.now().astimezone().isoformat(),
            },
        )

    def _current_time(self) -> LiveData:
        now = datetime.now().astimezone()
        return LiveData(
            api_used="local-clock",
            content={
                "time": now.strftime("%H:%M:%S"),
                "timezone": now.tzname() or "",
                "timestamp": now.isoformat(),
            },
        )

    async def close(self) -> None:
        """Close the HTTP client."""
        if self._client:
            await self._client.aclose()
            self._client = None
            logger.debug("Live-data provider client closed")


__all__ = [
    "LiveDataProvider",
    "extract_base_currency",
    "extract_city",
    "lookup_params",
]
