from __future__ import annotations

import logging
from typing import Any

from fastapi import APIRouter, Request
from fastapi.responses import JSONResponse
from pydantic import BaseModel

from core.errors import HarvestError

log = logging.getLogger(__name__)

router = APIRouter(prefix="/twitter", tags=["twitter"])


# Fields stay loosely typed so bad input reaches the agent's own validation
# and comes back as a 400 instead of a 422.
class SearchBody(BaseModel):
    query: Any = None
    maxResults: Any = 10


class BreakingNewsBody(BaseModel):
    symbols: Any = None


def _server_error(exc: Exception) -> JSONResponse:
    return JSONResponse({"success": False, "error": str(exc)}, status_code=500)


@router.post("/search")
async def search(body: SearchBody, request: Request):
    agent = request.app.state.agent
    log.info("Searching for: %s (max: %s)", body.query, body.maxResults)
    try:
        items = await agent.search(body.query, body.maxResults)
    except HarvestError:
        raise
    except Exception as e:
        log.exception("Search error")
        return _server_error(e)
    return {
        "success": True,
        "items": [i.to_dict() for i in items],
        "count": len(items),
    }


@router.post("/breaking-news")
async def breaking_news(body: BreakingNewsBody, request: Request):
    agent = request.app.state.agent
    try:
        news = await agent.breaking_news(body.symbols)
    except HarvestError:
        raise
    except Exception as e:
        log.exception("Breaking news error")
        return _server_error(e)
    return {
        "success": True,
        "news": [n.to_dict() for n in news],
        "count": len(news),
    }
