from __future__ import annotations

import logging

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse

from api.routers import runs, twitter
from core.errors import ConnectivityError, HarvestError, InvalidRequestError
from scrapers.twitter import TwitterAgent

log = logging.getLogger(__name__)


def create_app(agent: TwitterAgent) -> FastAPI:
    app = FastAPI(title="Twitter Vision Agent", version="0.1.0")
    app.state.agent = agent

    app.include_router(twitter.router)
    app.include_router(runs.router)

    @app.exception_handler(InvalidRequestError)
    async def invalid_request(request: Request, exc: InvalidRequestError):
        return JSONResponse({"success": False, "error": str(exc)}, status_code=400)

    @app.exception_handler(ConnectivityError)
    async def browser_unreachable(request: Request, exc: ConnectivityError):
        log.error("Browser unreachable: %s", exc)
        return JSONResponse({"success": False, "error": str(exc)}, status_code=503)

    @app.exception_handler(HarvestError)
    async def harvest_failed(request: Request, exc: HarvestError):
        log.error("Harvest failed: %s", exc)
        return JSONResponse({"success": False, "error": str(exc)}, status_code=500)

    @app.get("/health")
    async def health(request: Request):
        result = await request.app.state.agent.health_check()
        return JSONResponse(result, status_code=200 if result["healthy"] else 503)

    return app
