"""Blog server settings, loaded from the environment."""

from functools import lru_cache
from pathlib import Path
from typing import Optional

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Configuration for the blog server.

    Every option can be overridden with the environment variable named in its
    alias, or from a .env file in the working directory.
    """

    app_name: str = Field(default="Music Blog", alias="BLOG_APP_NAME")
    app_version: str = Field(default="0.1.0", alias="BLOG_APP_VERSION")

    database_path: Path = Field(
        default=Path(__file__).parent / "db" / "blog.db",
        alias="BLOG_DATABASE_PATH",
    )

    # Requests carrying this value in X-Blog-Admin act as the admin.
    # Unset means nobody is admin.
    admin_token: Optional[str] = Field(default=None, alias="BLOG_ADMIN_TOKEN")

    posts_per_page: int = Field(default=10, alias="BLOG_POSTS_PER_PAGE")
    thread_max_depth: int = Field(default=3, alias="BLOG_THREAD_MAX_DEPTH")

    ip_lookup_url: str = Field(
        default="https://api.ipify.org?format=json",
        alias="BLOG_IP_LOOKUP_URL",
    )
    ip_lookup_timeout: float = Field(default=5.0, alias="BLOG_IP_LOOKUP_TIMEOUT")
    # Look up the public IP of callers connecting over loopback, i.e. when the
    # blog runs on the visitor's own machine.
    resolve_local_callers: bool = Field(default=False, alias="BLOG_RESOLVE_LOCAL_CALLERS")

    log_level: str = Field(default="INFO", alias="LOG_LEVEL")

    model_config = SettingsConfigDict(
        env_file=".env",
        extra="ignore",
        populate_by_name=True,
    )


@lru_cache
def get_settings() -> Settings:
    return Settings()
