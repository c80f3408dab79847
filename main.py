"""Twitter Vision Agent — entry point."""

from __future__ import annotations

import logging
import sys

import uvicorn

from api.app import create_app
from config.settings import settings
from core.errors import ConnectivityError
from data.database import init_db, record_harvest_run
from scrapers.browser import PlaywrightBrowserSession
from scrapers.twitter import TwitterAgent
from scrapers.vision import OpenAIVisionOracle

logging.basicConfig(
    level=getattr(logging, settings.LOG_LEVEL),
    format="%(asctime)s  %(levelname)-8s  %(name)s  %(message)s",
)
log = logging.getLogger(__name__)

if not settings.OPENAI_API_KEY:
    log.error("OPENAI_API_KEY is required")
    sys.exit(1)

agent = TwitterAgent(
    browser=PlaywrightBrowserSession(settings),
    oracle=OpenAIVisionOracle(settings),
    config=settings,
    on_harvest=record_harvest_run,
)
app = create_app(agent)


@app.on_event("startup")
async def on_startup() -> None:
    log.info("Initialising database…")
    await init_db()

    log.info("Connecting to Chrome on port %d…", settings.CHROME_DEBUG_PORT)
    try:
        await agent.init()
    except ConnectivityError as e:
        log.error("Failed to initialize: %s", e)
        log.error("Make sure Chrome is running with remote debugging enabled")


@app.on_event("shutdown")
async def on_shutdown() -> None:
    await agent.close()
    log.info("Browser connection closed.")


if __name__ == "__main__":
    log.info("LLM model: %s", settings.llm_model_name)
    uvicorn.run(
        "main:app",
        host="0.0.0.0",
        port=settings.SERVER_PORT,
        reload=False,
    )
