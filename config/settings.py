from __future__ import annotations

from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    # Database
    DATABASE_URL: str = "sqlite+aiosqlite:///./twitter_agent.db"

    # Server
    SERVER_PORT: int = 8788
    LOG_LEVEL: str = "INFO"

    # Browser (existing Chrome with --remote-debugging-port)
    CHROME_DEBUG_PORT: int = 9222
    BROWSER_COMMAND_TIMEOUT: float = 30.0
    SCREENSHOT_TIMEOUT: float = 20.0
    SCREENSHOT_DIR: str = "."
    TWITTER_BASE_URL: str = "https://twitter.com"

    # Vision oracle
    OPENAI_API_KEY: str = ""
    OPENAI_BASE_URL: str = ""
    LLM_MODEL: str = "gpt-4o-mini"
    LLM_TEMPERATURE: float = 0.3
    LLM_MAX_TOKENS: int = 2000
    LLM_TIMEOUT_SECONDS: float = 60.0

    # Navigate & verify
    INITIAL_LOAD_DELAY: float = 5.0
    VERIFY_MAX_ATTEMPTS: int = 8
    VERIFY_DELAY: float = 3.0

    # Prefetch
    PREFETCH_MIN_SCROLLS: int = 5
    PREFETCH_SCROLL_PIXELS: int = 2500
    PREFETCH_SETTLE: float = 3.5

    # Reset to top
    RESET_TOP_SCROLLS: int = 10
    RESET_TOP_PIXELS: int = 5000
    RESET_TOP_SETTLE: float = 0.8
    RESET_TOP_FINAL_SETTLE: float = 3.0
    RESET_TOP_REVERIFY_DELAY: float = 5.0

    # Extraction loop
    MAX_EXTRACT_ITERATIONS: int = 50
    SURPLUS_MULTIPLIER: int = 3
    SCROLL_PIXELS: int = 3000
    SCROLL_SETTLE: float = 4.0
    STUCK_THRESHOLD: int = 3
    EMPTY_THRESHOLD: int = 5
    AGGRESSIVE_SCROLL_PIXELS: int = 5000
    AGGRESSIVE_SETTLE: float = 4.0

    # Rescan
    RESCAN_PASSES: int = 3
    RESCAN_SURPLUS_MULTIPLIER: int = 2
    RESCAN_BACKTRACK_PIXELS: int = 3000
    RESCAN_BACKTRACK_SETTLE: float = 2.0
    RESCAN_SCROLL_PIXELS: int = 2000
    RESCAN_SETTLE: float = 2.5

    # Dedup
    DEDUP_KEY_LENGTH: int = 150
    DEDUP_MIN_KEY_LENGTH: int = 11

    # Hard ceiling on a single harvest, in seconds (0 disables)
    HARVEST_DEADLINE_SECONDS: float = 900.0
    MAX_TARGET_COUNT: int = 50

    # Breaking news
    BREAKING_NEWS_ACCOUNTS: str = "FirstSquawk,DeItaone,Newsquawk"
    BREAKING_NEWS_MAX_SYMBOLS: int = 3
    BREAKING_NEWS_TARGET: int = 5
    BREAKING_NEWS_WINDOW_MINUTES: int = 30
    BREAKING_THRESHOLD_MINUTES: int = 10
    HEADLINE_MAX_CHARS: int = 200

    model_config = {"env_file": ".env", "env_file_encoding": "utf-8"}

    @property
    def llm_model_name(self) -> str:
        return self.LLM_MODEL.removeprefix("openai/")

    @property
    def breaking_news_accounts(self) -> list[str]:
        return [
            a.strip() for a in self.BREAKING_NEWS_ACCOUNTS.split(",") if a.strip()
        ]


settings = Settings()
