"""DataForSEO API integration for competitor keywords and longtail sources.

Every endpoint comes back as ``ProviderKeyword`` rows whose competition value
is normalized at this boundary, so downstream steps never see the provider's
mix of 0-1 floats, 0-100 indices and LOW/MEDIUM/HIGH labels.
"""

import base64
import logging
from dataclasses import dataclass
from typing import Any, Literal, Protocol

import httpx

from keyword_intel.config import settings
from keyword_intel.core.exceptions import (
    APIKeyMissingError,
    ExternalAPIError,
    ProviderResponseError,
    RateLimitExceededError,
)

logger = logging.getLogger(__name__)

API_NAME = "DataForSEO"
STATUS_OK = 20000
STATUS_RATE_LIMITED = 42900

CompetitionLevel = Literal["low", "medium", "high"]
KeywordSource = Literal["site", "related", "suggestions", "ideas", "autocomplete"]

_COMPETITION_LABELS = {"low": 17, "medium": 50, "high": 84}


@dataclass(frozen=True)
class CompetitionMetric:
    """Competition on a single 0-100 scale plus its bucket."""

    index: int
    level: CompetitionLevel


@dataclass(frozen=True)
class ProviderKeyword:
    """A keyword returned by one of the provider endpoints."""

    keyword: str
    search_volume: int
    competition: CompetitionMetric
    keyword_difficulty: int = 0
    cpc: float | None = None
    source: KeywordSource = "site"


class KeywordDataProvider(Protocol):
    """Keyword endpoints the seed and longtail steps call."""

    async def get_keywords_for_site(
        self, target: str, location_code: int = ..., language_code: str = ..., limit: int = ...
    ) -> list[ProviderKeyword]: ...

    async def get_related_keywords(
        self, keyword: str, location_code: int = ..., language_code: str = ..., limit: int = ...
    ) -> list[ProviderKeyword]: ...

    async def get_keyword_suggestions(
        self, keyword: str, location_code: int = ..., language_code: str = ..., limit: int = ...
    ) -> list[ProviderKeyword]: ...

    async def get_keyword_ideas(
        self, keyword: str, location_code: int = ..., language_code: str = ..., limit: int = ...
    ) -> list[ProviderKeyword]: ...

    async def get_autocomplete(
        self, keyword: str, location_code: int = ..., language_code: str = ..., limit: int = ...
    ) -> list[ProviderKeyword]: ...


def competition_level_for(index: int) -> CompetitionLevel:
    """Bucket a 0-100 competition index."""
    if index < 33:
        return "low"
    if index < 67:
        return "medium"
    return "high"


def normalize_competition(value: Any) -> CompetitionMetric:
    """Normalize any provider competition value to a ``CompetitionMetric``.

    Floats in [0, 1] are scaled by 100, numbers in (1, 100] are taken as an
    index, LOW/MEDIUM/HIGH labels map to 17/50/84. Anything else is low.
    """
    if value is None or isinstance(value, bool):
        return CompetitionMetric(index=0, level="low")

    if isinstance(value, str):
        label = value.strip().lower()
        if label in _COMPETITION_LABELS:
            index = _COMPETITION_LABELS[label]
            return CompetitionMetric(index=index, level=competition_level_for(index))
        try:
            value = float(label)
        except ValueError:
            return CompetitionMetric(index=0, level="low")

    if not isinstance(value, (int, float)):
        return CompetitionMetric(index=0, level="low")

    numeric = float(value)
    if numeric <= 0:
        index = 0
    elif numeric <= 1:
        index = round(numeric * 100)
    else:
        index = round(min(numeric, 100.0))
    return CompetitionMetric(index=index, level=competition_level_for(index))


def _to_int(value: Any) -> int:
    try:
        return max(0, int(value or 0))
    except (TypeError, ValueError):
        return 0


def _to_float(value: Any) -> float | None:
    if value is None:
        return None
    try:
        return float(value)
    except (TypeError, ValueError):
        return None


def _parse_retry_after_ms(header: str | None) -> int | None:
    """Convert a ``Retry-After`` seconds header to milliseconds."""
    if not header:
        return None
    try:
        seconds = int(header.strip())
    except ValueError:
        return None
    return seconds * 1000 if seconds > 0 else None


def _http_status_for(provider_code: int) -> int:
    """Map a five-digit envelope code onto the HTTP status it mirrors."""
    if 40000 <= provider_code < 50000:
        return provider_code // 100
    return 500


def _parse_labs_item(item: dict[str, Any], source: KeywordSource) -> ProviderKeyword | None:
    # related_keywords nests the keyword payload under keyword_data.
    data = item.get("keyword_data") or item
    keyword = (data.get("keyword") or "").strip()
    if not keyword:
        return None

    info = data.get("keyword_info") or {}
    props = data.get("keyword_properties") or {}

    competition_value = info.get("competition")
    if competition_value is None:
        competition_value = data.get("competition_index", data.get("competition"))
    if competition_value is None:
        competition_value = info.get("competition_level")

    difficulty = props.get("keyword_difficulty")
    if difficulty is None:
        difficulty = data.get("keyword_difficulty")

    return ProviderKeyword(
        keyword=keyword,
        search_volume=_to_int(info.get("search_volume", data.get("search_volume"))),
        competition=normalize_competition(competition_value),
        keyword_difficulty=min(_to_int(difficulty), 100),
        cpc=_to_float(info.get("cpc", data.get("cpc"))),
        source=source,
    )


class DataForSEOClient:
    """Client for the DataForSEO API.

    Provides methods for:
    - Keywords a competitor site ranks for
    - Related keywords
    - Keyword suggestions
    - Keyword ideas
    - Google autocomplete
    """

    BASE_URL = "https://api.dataforseo.com/v3"

    def __init__(
        self,
        login: str | None = None,
        password: str | None = None,
        timeout: float | None = None,
    ) -> None:
        self.login = login or settings.dataforseo_login
        self.password = password or settings.dataforseo_password
        self.timeout = timeout if timeout is not None else settings.dataforseo_timeout_seconds
        self._client: httpx.AsyncClient | None = None

        if not self.login or not self.password:
            raise APIKeyMissingError(API_NAME)

    @property
    def _auth_header(self) -> str:
        """Generate Basic Auth header."""
        credentials = f"{self.login}:{self.password}"
        encoded = base64.b64encode(credentials.encode()).decode()
        return f"Basic {encoded}"

    async def __aenter__(self) -> "DataForSEOClient":
        self._client = httpx.AsyncClient(
            timeout=self.timeout,
            headers={
                "Authorization": self._auth_header,
                "Content-Type": "application/json",
            },
        )
        return self

    async def __aexit__(self, *args: Any) -> None:
        if self._client:
            await self._client.aclose()
            self._client = None

    @property
    def client(self) -> httpx.AsyncClient:
        if self._client is None:
            raise RuntimeError("Client must be used as async context manager")
        return self._client

    async def _make_request(
        self,
        endpoint: str,
        data: list[dict[str, Any]],
    ) -> list[dict[str, Any]]:
        """POST to DataForSEO and return the concatenated task results.

        Timeouts and connection failures propagate as httpx exceptions so the
        retry engine can classify them by type.
        """
        logger.info("DataForSEO API request", extra={"endpoint": endpoint})
        url = f"{self.BASE_URL}/{endpoint}"

        response = await self.client.post(url, json=data)
        retry_after_ms = _parse_retry_after_ms(response.headers.get("Retry-After"))

        if response.status_code == 429:
            logger.warning(
                "DataForSEO rate limit hit",
                extra={"endpoint": endpoint, "retry_after_ms": retry_after_ms},
            )
            raise RateLimitExceededError(API_NAME, retry_after_ms=retry_after_ms)

        if response.is_error:
            logger.warning(
                "DataForSEO HTTP error",
                extra={"endpoint": endpoint, "status_code": response.status_code},
            )
            raise ExternalAPIError(
                API_NAME,
                f"HTTP {response.status_code} {response.reason_phrase}".strip(),
                status_code=response.status_code,
                retry_after_ms=retry_after_ms,
            )

        try:
            result = response.json()
        except ValueError as e:
            raise ProviderResponseError(API_NAME, "Invalid JSON response format") from e

        self._raise_for_provider_status(
            endpoint,
            result.get("status_code"),
            result.get("status_message"),
            retry_after_ms,
        )

        results: list[dict[str, Any]] = []
        for task in result.get("tasks") or []:
            self._raise_for_provider_status(
                endpoint,
                task.get("status_code"),
                task.get("status_message"),
                retry_after_ms,
            )
            task_result = task.get("result")
            if task_result is None:
                continue
            if not isinstance(task_result, list):
                raise ProviderResponseError(
                    API_NAME,
                    f"Invalid result format: expected array, got {type(task_result).__name__}",
                )
            results.extend(task_result)

        return results

    def _raise_for_provider_status(
        self,
        endpoint: str,
        code: Any,
        message: str | None,
        retry_after_ms: int | None,
    ) -> None:
        if code == STATUS_OK:
            return
        provider_code = code if isinstance(code, int) else 50000
        logger.warning(
            "DataForSEO API error",
            extra={"endpoint": endpoint, "status": provider_code, "status_message": message},
        )
        if provider_code == STATUS_RATE_LIMITED:
            raise RateLimitExceededError(API_NAME, retry_after_ms=retry_after_ms)
        raise ProviderResponseError(
            API_NAME,
            message or "Unknown error",
            status_code=_http_status_for(provider_code),
        )

    def _parse_items(
        self,
        results: list[dict[str, Any]],
        source: KeywordSource,
    ) -> list[ProviderKeyword]:
        keywords: list[ProviderKeyword] = []
        for result in results:
            # Labs endpoints wrap rows in ``items``; older ones return flat rows.
            items = result.get("items") if "items" in result else [result]
            for item in items or []:
                parsed = _parse_labs_item(item, source)
                if parsed is not None:
                    keywords.append(parsed)
        return keywords

    async def get_keywords_for_site(
        self,
        target: str,
        location_code: int = 2840,  # US
        language_code: str = "en",
        limit: int = 3,
    ) -> list[ProviderKeyword]:
        """Get the keywords a competitor site ranks for, highest volume first.

        Args:
            target: Competitor URL or domain
            location_code: DataForSEO location code (2840 = US)
            language_code: Language code (en, de, etc.)
            limit: Maximum keywords to return

        Returns:
            Keywords sorted by search volume descending, at most ``limit``
        """
        logger.info(
            "Fetching keywords for site",
            extra={"target": target, "location": location_code, "limit": limit},
        )
        data = [
            {
                "target": target,
                "location_code": location_code,
                "language_code": language_code,
                "limit": limit,
            }
        ]
        results = await self._make_request("dataforseo_labs/google/keywords_for_site/live", data)
        keywords = self._parse_items(results, "site")
        keywords.sort(key=lambda kw: kw.search_volume, reverse=True)
        return keywords[:limit]

    async def _get_labs_keywords(
        self,
        endpoint: str,
        source: KeywordSource,
        keyword: str,
        location_code: int,
        language_code: str,
        limit: int,
    ) -> list[ProviderKeyword]:
        data = [
            {
                "keyword": keyword,
                "location_code": location_code,
                "language_code": language_code,
                "limit": limit,
            }
        ]
        results = await self._make_request(endpoint, data)
        return self._parse_items(results, source)[:limit]

    async def get_related_keywords(
        self,
        keyword: str,
        location_code: int = 2840,
        language_code: str = "en",
        limit: int = 3,
    ) -> list[ProviderKeyword]:
        """Get keywords related to a seed."""
        return await self._get_labs_keywords(
            "dataforseo_labs/google/related_keywords/live",
            "related",
            keyword,
            location_code,
            language_code,
            limit,
        )

    async def get_keyword_suggestions(
        self,
        keyword: str,
        location_code: int = 2840,
        language_code: str = "en",
        limit: int = 3,
    ) -> list[ProviderKeyword]:
        """Get search queries that contain the seed."""
        return await self._get_labs_keywords(
            "dataforseo_labs/google/keyword_suggestions/live",
            "suggestions",
            keyword,
            location_code,
            language_code,
            limit,
        )

    async def get_keyword_ideas(
        self,
        keyword: str,
        location_code: int = 2840,
        language_code: str = "en",
        limit: int = 3,
    ) -> list[ProviderKeyword]:
        """Get keywords from the same product or service category as the seed."""
        data = [
            {
                "keywords": [keyword],
                "location_code": location_code,
                "language_code": language_code,
                "limit": limit,
            }
        ]
        results = await self._make_request("dataforseo_labs/google/keyword_ideas/live", data)
        return self._parse_items(results, "ideas")[:limit]

    async def get_autocomplete(
        self,
        keyword: str,
        location_code: int = 2840,
        language_code: str = "en",
        limit: int = 3,
    ) -> list[ProviderKeyword]:
        """Get Google autocomplete suggestions.

        Autocomplete carries no metrics, so volume and competition are zero.
        """
        data = [
            {
                "keyword": keyword,
                "location_code": location_code,
                "language_code": language_code,
            }
        ]
        results = await self._make_request("serp/google/autocomplete/live/advanced", data)

        suggestions: list[ProviderKeyword] = []
        seen: set[str] = set()
        for result in results:
            for item in result.get("items") or []:
                text = (item.get("suggestion") or item.get("keyword") or "").strip()
                if not text or text.lower() in seen:
                    continue
                seen.add(text.lower())
                suggestions.append(
                    ProviderKeyword(
                        keyword=text,
                        search_volume=0,
                        competition=normalize_competition(None),
                        source="autocomplete",
                    )
                )
        return suggestions[:limit]


# Location codes for common countries
LOCATION_CODES = {
    "us": 2840,
    "uk": 2826,
    "gb": 2826,
    "de": 2276,
    "fr": 2250,
    "es": 2724,
    "it": 2380,
    "nl": 2528,
    "au": 2036,
    "ca": 2124,
    "in": 2356,
}


def get_location_code(locale: str | None) -> int:
    """Convert locale string to DataForSEO location code."""
    if not locale:
        return LOCATION_CODES["us"]
    country = locale.split("-")[-1].lower() if "-" in locale else locale.lower()
    return LOCATION_CODES.get(country, 2840)  # Default to US


def get_language_code(locale: str | None) -> str:
    """Extract the language part of a locale such as ``en-US``."""
    if not locale:
        return "en"
    language = locale.replace("_", "-").split("-")[0].strip().lower()
    return language or "en"
