import datetime as dt

from pydantic import SecretStr, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Config(BaseSettings):
    model_config = SettingsConfigDict(
        env_prefix="WRANGLER_", env_file=".env", enable_decoding=False
    )

    server_url: str
    token: SecretStr
    bot_user_id: str

    sentry_dsn: SecretStr | None = None

    enable_merge_thread: bool = False
    move_thread_max_count: int = 0
    move_notice: bool = True
    page_size: int = 200
    staging_expiry_minutes: float | None = None

    @field_validator("server_url", mode="after")
    @classmethod
    def strip_trailing_slash(cls, value: str) -> str:
        return value.rstrip("/")

    @field_validator("staging_expiry_minutes", mode="before")
    @classmethod
    def parse_expiry(cls, value: object) -> object:
        # An empty variable means "never expire", same as leaving it unset.
        return None if value == "" else value

    @property
    def api_url(self) -> str:
        return f"{self.server_url}/api/v4"

    @property
    def staging_expiry(self) -> dt.timedelta | None:
        if not self.staging_expiry_minutes:
            return None
        return dt.timedelta(minutes=self.staging_expiry_minutes)
