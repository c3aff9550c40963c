import logging
from contextlib import asynccontextmanager
from typing import Optional

import httpx
from fastapi import FastAPI, Request, Response
from fastapi.responses import JSONResponse

from . import config
from .selection import OriginSelector
from .settings import ConfigurationError, NoOriginsError, RaceSettings, load_race_settings
from .state import RACE_STATE
from .variables import get_variable_store


@asynccontextmanager
async def lifespan(app: FastAPI):
    global http_client, variable_store, selector
    logger.info("Origin race starting up...")
    if http_client is None:
        # 3xx is a failed probe, so redirects are not followed
        http_client = httpx.AsyncClient(timeout=httpx.Timeout(config.PROBE_CLIENT_TIMEOUT_SECS), follow_redirects=False)
    if variable_store is None:
        variable_store = get_variable_store(config.VARIABLE_SOURCE)
        logger.info("Using variable source: %s", config.VARIABLE_SOURCE)
    if selector is None:
        selector = OriginSelector(http_client, RACE_STATE)
    try:
        yield
    finally:
        if selector is not None:
            try:
                await selector.wait_for_background()
            except Exception:
                logger.exception("Background race did not finish cleanly")
        if variable_store is not None:
            try:
                await variable_store.aclose()
            except Exception:
                logger.exception("Variable store did not close cleanly")
        if http_client is not None:
            try:
                await http_client.aclose()
            except Exception:
                logger.exception("Probe client did not close cleanly")
        logger.info("Origin race shut down.")


app = FastAPI(title="Origin Race", lifespan=lifespan)
http_client = None
variable_store = None
selector: Optional[OriginSelector] = None
logger = logging.getLogger("origin_race")
logging.basicConfig(level=config.LOG_LEVEL, format="%(asctime)s %(levelname)s %(name)s %(message)s")


def _request_path(request: Request) -> str:
    path = request.url.path or "/"
    if request.url.query:
        path = f"{path}?{request.url.query}"
    return path


async def _load_settings(request_path: str) -> RaceSettings:
    variables = await variable_store.snapshot()
    settings = load_race_settings(variables, request_path)
    logger.info("Origins=%d: %s", len(settings.origins), ",".join(settings.origins))
    return settings


@app.get("/health", status_code=200)
async def health_check(response: Response):
    """Reports whether the current variables are enough to run a race."""
    try:
        settings = await _load_settings("/")
    except ConfigurationError as e:
        response.status_code = 503
        return {"status": "unhealthy", "reason": str(e)}
    except Exception as e:
        logger.error("Variable store unavailable: %s", e)
        response.status_code = 503
        return {"status": "unhealthy", "reason": f"variable store error: {e}"}
    return {
        "status": "healthy",
        "origins": settings.origins,
        "cache_ttl_secs": int(settings.cache_ttl_secs),
        "sync_on_cold": settings.sync_on_cold,
    }


@app.get("/v1/race/state")
async def race_state():
    """Debug endpoint: the cached winner as this process sees it."""
    entry = selector.state.snapshot()
    return {
        "origin": entry.origin or None,
        "measured_at": entry.measured_at if entry else None,
        "age_secs": int(selector.clock() - entry.measured_at) if entry else None,
        "background_race_in_flight": selector.state.background_race_in_flight,
    }


@app.api_route("/{full_path:path}", methods=["GET", "HEAD", "POST", "PUT", "PATCH", "DELETE", "OPTIONS"])
async def select_origin(full_path: str, request: Request):
    """Pick the origin for this request and publish it in x-selected-origin.

    Without usable configuration no header is set (204), leaving the routing
    decision to whatever default sits in front of this service.
    """
    try:
        settings = await _load_settings(_request_path(request))
    except NoOriginsError as e:
        logger.warning("%s; leaving routing to the default", e)
        return Response(status_code=204)
    except ConfigurationError as e:
        logger.error("%s", e)
        return Response(status_code=204)
    except Exception as e:
        logger.error("Variable store unavailable: %s", e)
        return Response(status_code=204)

    selection = await selector.select(settings)
    return JSONResponse(
        selection.as_dict(),
        headers={
            config.SELECTED_ORIGIN_HEADER: selection.host,
            config.SELECTION_SOURCE_HEADER: selection.source.value,
        },
    )
