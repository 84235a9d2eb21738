import os

from dotenv import load_dotenv
from pydantic import BaseModel, ConfigDict, Field

load_dotenv()


class Settings(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    # API Configuration
    api_base_url: str = Field(default="http://localhost:3000", alias="SWAP_API_URL")
    api_prefix: str = Field(default="/api/v1", alias="SWAP_API_PREFIX")
    request_timeout: float = Field(default=30.0, alias="SWAP_REQUEST_TIMEOUT")
    transaction_timeout: float = Field(default=60.0, alias="SWAP_TRANSACTION_TIMEOUT")

    # Response cache
    cache_max_size: int = Field(default=200, alias="SWAP_CACHE_MAX_SIZE")

    # Call diagnostics (loop detection)
    diagnostics_history_size: int = Field(default=20, alias="SWAP_DIAG_HISTORY")
    diagnostics_window_seconds: float = Field(default=5.0, alias="SWAP_DIAG_WINDOW")
    diagnostics_loop_threshold: int = Field(default=2, alias="SWAP_DIAG_THRESHOLD")

    # Rate limiting
    default_retry_after_seconds: int = Field(default=30, alias="SWAP_RETRY_AFTER")

    # Token handling
    token_expiry_leeway_seconds: int = Field(default=5, alias="SWAP_TOKEN_LEEWAY")
    # 0 disables proactive background refresh
    proactive_refresh_window_seconds: int = Field(
        default=0, alias="SWAP_PROACTIVE_REFRESH_WINDOW"
    )

    # Local repository
    database_url: str = Field(
        default="sqlite+aiosqlite:///./swap_local.db", alias="SWAP_DATABASE_URL"
    )
    database_echo: bool = Field(default=False, alias="SWAP_DATABASE_ECHO")

    # Local-first sync
    pools_sync_delay_seconds: float = Field(default=3.0, alias="SWAP_POOLS_SYNC_DELAY")
    enrollments_sync_delay_seconds: float = Field(
        default=2.0, alias="SWAP_ENROLLMENTS_SYNC_DELAY"
    )
    enrollments_max_age_seconds: float = Field(
        default=120.0, alias="SWAP_ENROLLMENTS_MAX_AGE"
    )

    debug: bool = Field(default=False, alias="SWAP_DEBUG")

    @property
    def api_url(self) -> str:
        return self.api_base_url.rstrip("/") + self.api_prefix


global_settings = Settings(**os.environ)
