from __future__ import annotations

import asyncio
import json
import logging
from datetime import date, timedelta
from typing import Any, Awaitable, Callable, Mapping, Optional, Tuple

import aiohttp

from nasa_gateway.config.models import NasaApiSettings
from nasa_gateway.core.errors import (
    ConfigurationError,
    RateLimited,
    UpstreamAuthError,
    UpstreamError,
    ValidationError,
)
from nasa_gateway.core.models import IssPosition, Item, ManifestPayload, NearEarthObject
from nasa_gateway.core.utils import normalize_rover, parse_iso_date, validate_period_key
from nasa_gateway.upstream.parsing import parse_manifest, parse_neo_feed, parse_photos

logger = logging.getLogger(__name__)

SleepFn = Callable[[float], Awaitable[None]]

NEO_MAX_RANGE_DAYS = 7


def parse_retry_after(value: Optional[str], default: float) -> float:
    if value is None:
        return default
    try:
        seconds = int(str(value).strip())
    except ValueError:
        return default
    if seconds < 0:
        return default
    return float(seconds)


class NasaClient:
    """
    HTTP client for the NASA open APIs.

    Processes one logical request at a time. A 429 answer is retried after the
    `Retry-After` delay until `max_attempts` is reached; any other non-2xx answer
    fails immediately. The client never touches the cache or the store.
    """

    def __init__(
        self,
        config: NasaApiSettings,
        *,
        session: Optional[aiohttp.ClientSession] = None,
        sleep: SleepFn = asyncio.sleep,
    ) -> None:
        self._config = config
        self._session = session
        self._owns_session = False
        self._sleep = sleep

    async def __aenter__(self) -> NasaClient:
        await self.start()
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        await self.close()

    async def start(self) -> None:
        if self._session is not None:
            return
        timeout = aiohttp.ClientTimeout(total=self._config.request_timeout_seconds)
        self._session = aiohttp.ClientSession(timeout=timeout)
        self._owns_session = True

    async def close(self) -> None:
        if self._session is not None and self._owns_session:
            await self._session.close()
            self._session = None
            self._owns_session = False

    @property
    def has_api_key(self) -> bool:
        return bool(self._config.api_key.strip())

    def _api_key(self) -> str:
        api_key = self._config.api_key.strip()
        if not api_key:
            raise ConfigurationError("NASA API key is not configured. Set nasa.api_key or NASA_API_KEY.")
        return api_key

    def _url(self, path: str) -> str:
        return f"{self._config.base_url.rstrip('/')}/{path.lstrip('/')}"

    async def fetch_manifest(self, parent_identity: str) -> ManifestPayload:
        rover = normalize_rover(parent_identity)
        payload = await self._get_json(
            self._url(f"mars-photos/api/v1/manifests/{rover}"),
            {"api_key": self._api_key()},
        )
        manifest = parse_manifest(rover, payload)
        logger.debug("upstream.manifest_fetched rover=%s entries=%d", rover, len(manifest.records))
        return manifest

    async def fetch_items(
        self,
        parent_identity: str,
        period_key: int,
        category_filter: Optional[str] = None,
    ) -> list[Item]:
        rover = normalize_rover(parent_identity)
        sol = validate_period_key(period_key)
        params = {"api_key": self._api_key(), "sol": str(sol)}
        if category_filter:
            # Camera names are case-sensitive upstream.
            params["camera"] = category_filter
        payload = await self._get_json(self._url(f"mars-photos/api/v1/rovers/{rover}/photos"), params)
        items = parse_photos(rover, payload)
        logger.debug(
            "upstream.photos_fetched rover=%s sol=%s camera=%s count=%d",
            rover,
            sol,
            category_filter,
            len(items),
        )
        return items

    async def fetch_apods(
        self,
        start_date: Optional[str] = None,
        end_date: Optional[str] = None,
        count: Optional[int] = None,
    ) -> list[dict[str, Any]]:
        params: dict[str, str] = {"api_key": self._api_key()}
        if count:
            params["count"] = str(count)
        else:
            if start_date:
                params["start_date"] = parse_iso_date(start_date).isoformat()
            if end_date:
                params["end_date"] = parse_iso_date(end_date).isoformat()
        payload = await self._get_json(self._url("planetary/apod"), params)
        # A single date answers with an object, a range with a list.
        data = payload if isinstance(payload, list) else [payload]
        return [item for item in data if isinstance(item, dict)]

    async def fetch_apod(self, day: str) -> Optional[dict[str, Any]]:
        params = {"api_key": self._api_key(), "date": parse_iso_date(day).isoformat()}
        payload = await self._get_json(self._url("planetary/apod"), params)
        if not isinstance(payload, dict) or payload.get("media_type") != "image":
            return None
        return payload

    async def fetch_neo_feed(self, start_date: str, end_date: str) -> list[NearEarthObject]:
        start = parse_iso_date(start_date)
        end = parse_iso_date(end_date)
        if abs((end - start).days) > NEO_MAX_RANGE_DAYS:
            raise ValidationError("Date range cannot exceed 7 days for NEO queries")
        params = {
            "api_key": self._api_key(),
            "start_date": start.isoformat(),
            "end_date": end.isoformat(),
        }
        try:
            payload = await self._get_json(self._url("neo/rest/v1/feed"), params)
        except UpstreamError as e:
            if e.status == 400:
                raise ValidationError("Invalid date range for NEO query") from e
            raise
        return parse_neo_feed(payload)

    async def fetch_iss_position(self) -> IssPosition:
        payload = await self._get_json(self._config.iss_url, {})
        try:
            position = payload["iss_position"]
            return IssPosition(
                latitude=float(position["latitude"]),
                longitude=float(position["longitude"]),
                timestamp=int(payload["timestamp"]),
            )
        except (KeyError, TypeError, ValueError) as e:
            raise UpstreamError(200, f"Malformed ISS position payload: {e}", url=self._config.iss_url) from e

    async def _get_json(self, url: str, params: Mapping[str, str]) -> Any:
        max_attempts = self._config.max_attempts
        retry_after = self._config.default_retry_after_seconds
        body = ""
        for attempt in range(1, max_attempts + 1):
            status, headers, body = await self._request(url, params)
            if 200 <= status < 300:
                try:
                    return json.loads(body) if body else None
                except json.JSONDecodeError as e:
                    raise UpstreamError(status, body, url=url) from e

            if status == 429:
                retry_after = parse_retry_after(headers.get("Retry-After"), self._config.default_retry_after_seconds)
                if attempt < max_attempts:
                    logger.warning(
                        "Upstream rate limited the request and it will be retried. url=%s retry_after=%s attempt=%s/%s",
                        url,
                        retry_after,
                        attempt,
                        max_attempts,
                    )
                    await self._sleep(retry_after)
                    continue
                break

            if status in (401, 403):
                logger.error("Upstream rejected the API key. url=%s status=%s", url, status)
                raise UpstreamAuthError(status, body, url=url)

            logger.warning("Upstream request failed with a non-retryable status. url=%s status=%s", url, status)
            raise UpstreamError(status, body, url=url)

        logger.error("Upstream rate limit retries exhausted. url=%s attempts=%s", url, max_attempts)
        raise RateLimited(url=url, attempts=max_attempts, retry_after=retry_after, body=body)

    async def _request(self, url: str, params: Mapping[str, str]) -> Tuple[int, Mapping[str, str], str]:
        if self._session is not None:
            return await self._send(self._session, url, params)
        timeout = aiohttp.ClientTimeout(total=self._config.request_timeout_seconds)
        async with aiohttp.ClientSession(timeout=timeout) as session:
            return await self._send(session, url, params)

    async def _send(
        self,
        session: aiohttp.ClientSession,
        url: str,
        params: Mapping[str, str],
    ) -> Tuple[int, Mapping[str, str], str]:
        try:
            async with session.get(url, params=dict(params)) as response:
                body = await response.text()
                return response.status, response.headers, body
        except asyncio.TimeoutError as e:
            raise UpstreamError(None, "Request timed out.", url=url) from e
        except aiohttp.ClientError as e:
            raise UpstreamError(None, str(e), url=url) from e


def neo_default_range(today: date) -> Tuple[str, str]:
    return today.isoformat(), (today + timedelta(days=NEO_MAX_RANGE_DAYS - 1)).isoformat()
