import asyncio
import logging
import re
from typing import Any, Callable, Dict, List, Optional, Sequence, Set, Tuple

import httpx

from travelguide.models.guide_models import Coordinates, ResolvedLocation
from travelguide.services.rate_limiter import SlidingWindowRateLimiter


class GeocodingError(Exception):
    """Raised when the geocoding upstream cannot be reached or rejects the request."""


_PLACEHOLDER_KEYS = {"", "your-amap-key"}

_CITY_SUFFIX_RE = re.compile(r"(?:特别行政区|自治区|市|省)$")
_MUNICIPALITIES = {
    "北京": "北京市",
    "上海": "上海市",
    "天津": "天津市",
    "重庆": "重庆市",
}

# Simplification rules, applied in order
_SIMPLIFY_PATTERNS = [
    re.compile(r"（.*?）"),
    re.compile(r"\(.*?\)"),
    re.compile(r"斜对面|附近|周边|旁边|对面|\bnext to\b|\bnear\b|\bopposite\b", re.IGNORECASE),
    re.compile(r"推荐|必去|热门|著名|知名|网红|人气|\bmust-see\b|\bpopular\b|\bfamous\b", re.IGNORECASE),
    re.compile(r"(?:餐厅|饭店|酒楼|食府|大排档)$"),
    re.compile(r"(?:酒店|宾馆|旅馆|度假村)$"),
    re.compile(r"(?:购物中心|商场|百货|广场)$"),
]
_WHITESPACE_RE = re.compile(r"\s+")

_CORE_NAME_PATTERNS = [
    re.compile(r"([一-龥\w]{2,}?)(?:餐厅|饭店|酒楼|食府|大排档|海鲜|火锅|烧烤)"),
    re.compile(r"([一-龥\w]{2,}?)(?:大酒店|酒店|宾馆|旅馆|度假村)"),
    re.compile(r"([一-龥\w]{2,}?)(?:购物中心|商场|百货|广场|商城)"),
]
_CJK_RUN_RE = re.compile(r"[一-龥]{2,}")


def normalize_city_name(city_name: str) -> str:
    """Strip administrative suffixes; municipalities keep their 市 form."""
    stem = _CITY_SUFFIX_RE.sub("", (city_name or "").strip()).strip()
    return _MUNICIPALITIES.get(stem, stem)


def simplify_address(address: str) -> str:
    """Remove asides, positional qualifiers, promo words and generic category suffixes."""
    simplified = address
    for pattern in _SIMPLIFY_PATTERNS:
        simplified = pattern.sub("", simplified)
    return _WHITESPACE_RE.sub(" ", simplified).strip()


def extract_place_name(address: str) -> Optional[str]:
    """Best guess at the distinctive part of a place description."""
    for pattern in _CORE_NAME_PATTERNS:
        match = pattern.search(address)
        if match and match.group(1):
            return match.group(1)

    runs = _CJK_RUN_RE.findall(address)
    if not runs:
        return None
    # first longest run wins ties
    return max(runs, key=len)


def _text(value: Any) -> str:
    # Amap encodes absent string fields as []
    if isinstance(value, str):
        return value
    return ""


class AmapGeocodingService:
    """Rate-limited, multi-strategy address resolution against the Amap geocoder."""

    def __init__(
        self,
        api_key: str,
        rate_limiter: Optional[SlidingWindowRateLimiter] = None,
        base_url: str = "https://restapi.amap.com/v3",
        timeout: float = 10.0,
        http_client: Optional[httpx.AsyncClient] = None,
    ):
        self.api_key = api_key
        self.rate_limiter = rate_limiter or SlidingWindowRateLimiter()
        self.base_url = base_url.rstrip("/")
        self._client = http_client or httpx.AsyncClient(timeout=timeout)
        self.logger = logging.getLogger(__name__)

        if api_key in _PLACEHOLDER_KEYS:
            self.logger.warning("[geocode] Amap API key not configured, geocoding disabled")

    @property
    def http_client(self) -> httpx.AsyncClient:
        return self._client

    async def close(self) -> None:
        await self._client.aclose()

    async def geocode(self, address: str, city: Optional[str] = None) -> Optional[ResolvedLocation]:
        """Single upstream lookup. ``None`` means the upstream found nothing."""
        if self.api_key in _PLACEHOLDER_KEYS:
            raise GeocodingError("Amap API key is not configured")

        params = {"key": self.api_key, "address": address, "output": "json"}
        if city:
            params["city"] = city

        await self.rate_limiter.admit()
        try:
            response = await self._client.get(f"{self.base_url}/geocode/geo", params=params)
            response.raise_for_status()
            data = response.json()
        except httpx.HTTPError as e:
            raise GeocodingError(f"Amap geocode request failed: {e}") from e
        except ValueError as e:
            raise GeocodingError(f"Amap geocode returned invalid JSON: {e}") from e

        if not isinstance(data, dict):
            raise GeocodingError(f"Amap geocode returned unexpected payload: {type(data).__name__}")

        geocodes = data.get("geocodes") or []
        if not isinstance(geocodes, list):
            raise GeocodingError(f"Amap geocode returned unexpected geocodes: {type(geocodes).__name__}")
        if data.get("status") != "1" or not geocodes:
            self.logger.debug(
                f"[geocode] No match for '{address}'",
                extra={"city": city, "info": data.get("info")},
            )
            return None

        first = geocodes[0]
        if not isinstance(first, dict):
            raise GeocodingError(f"Amap geocode returned unexpected match: {type(first).__name__}")
        coordinates = self._parse_location(_text(first.get("location")))
        if coordinates is None:
            self.logger.debug(f"[geocode] Unparsable location for '{address}': {first.get('location')!r}")
            return None

        return ResolvedLocation(
            input_text=address,
            coordinates=coordinates,
            city=_text(first.get("city")) or _text(first.get("province")),
            district=_text(first.get("district")),
            formatted_address=_text(first.get("formatted_address")),
            adcode=_text(first.get("adcode")),
        )

    @staticmethod
    def _parse_location(raw: str) -> Optional[Coordinates]:
        try:
            lng, lat = (float(part) for part in raw.split(","))
        except ValueError:
            return None
        return (lng, lat)

    def _attempts(self, input_text: str, city: str) -> List[Tuple[str, Optional[str]]]:
        attempts: List[Tuple[str, Optional[str]]] = [
            (input_text, city or None),
            (f"{city}{input_text}", None),
        ]

        simplified = simplify_address(input_text)
        if simplified and simplified != input_text:
            attempts.append((simplified, city or None))
            attempts.append((f"{city}{simplified}", None))

        place_name = extract_place_name(input_text)
        if place_name:
            attempts.append((place_name, city or None))
            attempts.append((f"{city}{place_name}", None))

        unique: List[Tuple[str, Optional[str]]] = []
        seen: Set[Tuple[str, Optional[str]]] = set()
        for attempt in attempts:
            if attempt not in seen:
                seen.add(attempt)
                unique.append(attempt)
        return unique

    async def resolve(self, input_text: str, destination_city: str) -> Optional[ResolvedLocation]:
        """Resolve free text to coordinates, trying progressively looser queries.

        Strategies run in order and stop at the first hit:

        1. the raw text with the destination city as a hint
        2. ``city + text`` without a hint
        3. the simplified text, hinted then city-prefixed
        4. the extracted core name, hinted then city-prefixed

        Failed attempts, including upstream errors, fall through to the next one.
        Returns ``None`` when every attempt misses.
        """
        if not input_text or not input_text.strip():
            raise ValueError("input_text must not be empty")

        text = input_text.strip()
        city = normalize_city_name(destination_city)

        for query, hint in self._attempts(text, city):
            try:
                result = await self.geocode(query, hint)
            except GeocodingError as e:
                self.logger.warning(f"[geocode] Attempt failed for '{query}': {e}")
                continue

            if result is not None:
                if query != text:
                    self.logger.info(f"[geocode] Resolved '{input_text}' via '{query}'")
                return result.model_copy(update={"input_text": input_text})

        self.logger.warning(f"[geocode] All strategies failed for '{input_text}' (city: {city})")
        return None

    async def batch_resolve(
        self,
        pairs: Sequence[Tuple[str, str]],
        on_resolved: Optional[Callable[[int, Optional[ResolvedLocation]], None]] = None,
    ) -> List[Optional[ResolvedLocation]]:
        """Resolve ``(input_text, city)`` pairs concurrently, one result per pair in input order."""

        async def _tracked(index: int, input_text: str, city: str) -> Optional[ResolvedLocation]:
            result = None
            try:
                result = await self.resolve(input_text, city)
            finally:
                # failures still count towards progress
                if on_resolved is not None:
                    on_resolved(index, result)
            return result

        outcomes = await asyncio.gather(
            *(_tracked(i, text, city) for i, (text, city) in enumerate(pairs)),
            return_exceptions=True,
        )

        results: List[Optional[ResolvedLocation]] = []
        for (text, _), outcome in zip(pairs, outcomes):
            if isinstance(outcome, BaseException):
                self.logger.warning(f"[geocode] Batch entry '{text}' failed: {outcome}")
                results.append(None)
            else:
                results.append(outcome)
        return results

    async def city_center(self, city_name: str) -> Optional[Coordinates]:
        """Coordinates for a city's center, or ``None``."""
        normalized = normalize_city_name(city_name)
        if not normalized:
            return None

        stem = normalized[:-1] if normalized.endswith("市") else normalized
        variants: List[str] = []
        for variant in (normalized, f"{stem}市", f"{stem}市中心", f"{stem}市政府"):
            if variant not in variants:
                variants.append(variant)

        for variant in variants:
            try:
                result = await self.geocode(variant)
            except GeocodingError as e:
                self.logger.warning(f"[geocode] City center lookup failed for '{variant}': {e}")
                continue
            if result is not None and result.coordinates is not None:
                self.logger.info(f"[geocode] City center for {city_name} via '{variant}': {result.coordinates}")
                return result.coordinates

        self.logger.warning(f"[geocode] Could not determine city center for {city_name}")
        return None

    def rate_limit_status(self) -> Dict[str, float]:
        return self.rate_limiter.status()
