from __future__ import annotations

import logging
from typing import Awaitable, Callable, Optional

from aiohttp import web

from nasa_gateway.config.models import AppConfig
from nasa_gateway.core.errors import (
    ConfigurationError,
    NasaGatewayError,
    RateLimited,
    UpstreamAuthError,
    UpstreamError,
    ValidationError,
)
from nasa_gateway.core.utils import format_rfc3339, normalize_rover, utc_now
from nasa_gateway.service import Gateway

logger = logging.getLogger(__name__)

GATEWAY_KEY = web.AppKey("gateway", Gateway)
CONFIG_KEY = web.AppKey("config", AppConfig)

Handler = Callable[[web.Request], Awaitable[web.StreamResponse]]

_TRUE_VALUES = {"1", "true", "yes", "on"}


def _json_error(status: int, message: str, *, headers: Optional[dict[str, str]] = None) -> web.Response:
    return web.json_response({"error": message}, status=status, headers=headers)


@web.middleware
async def error_middleware(request: web.Request, handler: Handler) -> web.StreamResponse:
    try:
        return await handler(request)
    except web.HTTPException:
        raise
    except ValidationError as e:
        return _json_error(400, str(e))
    except RateLimited as e:
        return _json_error(503, "Upstream rate limit exceeded.", headers={"Retry-After": str(int(e.retry_after))})
    except (ConfigurationError, UpstreamAuthError) as e:
        logger.error("Request failed due to upstream configuration. path=%s error=%s", request.path, e)
        return _json_error(502, "Upstream is not configured correctly.")
    except UpstreamError as e:
        logger.warning("Upstream request failed. path=%s status=%s", request.path, e.status)
        return _json_error(502, "Failed to fetch data from NASA API")
    except NasaGatewayError as e:
        logger.exception("Unhandled gateway error. path=%s", request.path)
        return _json_error(500, str(e))


@web.middleware
async def cors_middleware(request: web.Request, handler: Handler) -> web.StreamResponse:
    try:
        response = await handler(request)
    except web.HTTPException as e:
        e.headers.setdefault("Access-Control-Allow-Origin", "*")
        raise
    response.headers.setdefault("Access-Control-Allow-Origin", "*")
    return response


def _parse_sols(raw: Optional[str]) -> Optional[list[int]]:
    if raw is None or not raw.strip():
        return None
    sols = []
    for part in raw.split(","):
        part = part.strip()
        if not part:
            continue
        try:
            sols.append(int(part))
        except ValueError as e:
            raise ValidationError(f"Invalid sol value: {part!r}") from e
    return sols


def _parse_count(raw: Optional[str]) -> Optional[int]:
    if raw is None or not raw.strip():
        return None
    try:
        count = int(raw)
    except ValueError as e:
        raise ValidationError(f"Invalid count value: {raw!r}") from e
    if count <= 0:
        raise ValidationError("count must be a positive integer")
    return count


async def health(request: web.Request) -> web.Response:
    return web.json_response({"status": "ok", "timestamp": format_rfc3339(utc_now()), "service": "nasa-gateway"})


async def apod_recent(request: web.Request) -> web.Response:
    images = await request.app[GATEWAY_KEY].apod.recent_space_images()
    return web.json_response([apod.to_public() for apod in images])


async def apod_list(request: web.Request) -> web.Response:
    query = request.rel_url.query
    apods = await request.app[GATEWAY_KEY].apod.get_apods(
        start_date=query.get("start_date") or None,
        end_date=query.get("end_date") or None,
        count=_parse_count(query.get("count")),
    )
    return web.json_response([apod.to_public() for apod in apods])


async def apod_single(request: web.Request) -> web.Response:
    apod = await request.app[GATEWAY_KEY].apod.get_apod(request.match_info["date"])
    if apod is None:
        return _json_error(404, "No image APOD for this date.")
    return web.json_response(apod.to_public())


async def neo_feed(request: web.Request) -> web.Response:
    query = request.rel_url.query
    neos = await request.app[GATEWAY_KEY].neo.get_neos(
        start_date=query.get("start_date") or None,
        end_date=query.get("end_date") or None,
    )
    return web.json_response([neo.to_public() for neo in neos])


async def iss_position(request: web.Request) -> web.Response:
    position = await request.app[GATEWAY_KEY].iss.current_position()
    return web.json_response(position.to_public())


async def rover_sols(request: web.Request) -> web.Response:
    sols = await request.app[GATEWAY_KEY].rovers.get_periods_with_items(request.match_info["rover"])
    return web.json_response(sols)


async def rover_cameras(request: web.Request) -> web.Response:
    cameras = await request.app[GATEWAY_KEY].rovers.get_categories_for(request.match_info["rover"])
    return web.json_response(sorted(cameras))


async def rover_photos(request: web.Request) -> web.Response:
    query = request.rel_url.query
    results = await request.app[GATEWAY_KEY].rovers.get_items_for_periods(
        request.match_info["rover"],
        periods=_parse_sols(query.get("sols")),
        category_filter=query.get("camera") or None,
        summary_only=query.get("summary_only", "").strip().lower() in _TRUE_VALUES,
    )
    return web.json_response([result.to_public() for result in results])


async def rover_refresh(request: web.Request) -> web.Response:
    rover = request.match_info["rover"]
    outcome = await request.app[GATEWAY_KEY].rovers.refresh(rover)
    if outcome is None:
        return web.json_response({"rover": normalize_rover(rover), "updated": False})
    return web.json_response(
        {
            "rover": outcome.parent_identity,
            "updated": True,
            "stored": outcome.stored,
            "deleted": outcome.deleted,
            "failures": [failure.period_key for failure in outcome.failures],
        }
    )


async def _start_background_sync(app: web.Application) -> None:
    gateway = app[GATEWAY_KEY]
    if not app[CONFIG_KEY].server.startup_sync:
        return
    if not gateway.client.has_api_key:
        logger.warning("Skipping background rover updates: NASA API key is not configured.")
        return
    gateway.synchronizer.schedule_startup_sync()


async def _close_gateway(app: web.Application) -> None:
    await app[GATEWAY_KEY].close()


def create_app(config: AppConfig, gateway: Gateway) -> web.Application:
    app = web.Application(middlewares=[cors_middleware, error_middleware])
    app[CONFIG_KEY] = config
    app[GATEWAY_KEY] = gateway

    app.router.add_get("/health", health)
    app.router.add_get("/api/apod/last7days", apod_recent)
    app.router.add_get("/api/apod", apod_list)
    app.router.add_get("/api/apod/{date}", apod_single)
    app.router.add_get("/api/neo", neo_feed)
    app.router.add_get("/api/iss", iss_position)
    app.router.add_get("/api/rovers/{rover}/sols", rover_sols)
    app.router.add_get("/api/rovers/{rover}/cameras", rover_cameras)
    app.router.add_get("/api/rovers/{rover}/photos", rover_photos)
    app.router.add_post("/api/rovers/{rover}/refresh", rover_refresh)

    app.on_startup.append(_start_background_sync)
    app.on_cleanup.append(_close_gateway)
    return app
