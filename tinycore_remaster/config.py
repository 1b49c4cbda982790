"""Configuration settings for tinycore_remaster.

Uses pydantic-settings for config parsing from environment variables
and defaults. Configuration precedence: CLI flags > env vars > defaults.
"""

from pathlib import Path
from typing import Literal

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings.

    Settings are loaded from environment variables with the TC_REMASTER_ prefix.
    CLI flags can override these at runtime.
    """

    model_config = SettingsConfigDict(
        env_prefix="TC_REMASTER_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # Repository
    mirror_url: str = Field(
        default="http://repo.tinycorelinux.net",
        description="Website the extensions are downloaded from",
    )
    tc_version: str = Field(
        default="13.x",
        pattern=r"^\d+\.x$",
        description="Tiny Core release series, always ending in .x",
    )
    arch: str = Field(
        default="x86",
        description="Processor architecture (x86, x86_64, armv6, armv7, armv7l, aarch64)",
    )

    # Ownership
    owner_uid: int | None = Field(
        default=None,
        ge=0,
        description="User that should own downloaded files (unset = leave as is)",
    )
    owner_gid: int = Field(
        default=50,
        ge=0,
        description="Group that should own downloaded files (50 = staff)",
    )
    use_sudo: bool = Field(
        default=True,
        description="Use non-interactive sudo for privileged steps when not root",
    )

    # Cache
    index_max_age: int = Field(
        default=3600,
        ge=0,
        description="Seconds before info.lst is considered stale",
    )

    # Timeouts (in seconds)
    request_timeout: int = Field(
        default=30,
        ge=1,
        description="Timeout for small requests (trees, checksums, probes)",
    )
    download_timeout: int = Field(
        default=600,
        ge=1,
        description="Timeout for extension downloads",
    )

    # Operational
    terminal: str = Field(
        default="xterm",
        description="Terminal emulator used to page info.lst and Log.txt",
    )
    log_level: Literal["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"] = Field(
        default="WARNING",
        description="Logging level",
    )

    @property
    def repository_url(self) -> str:
        """Return the tcz directory URL for the configured version and arch."""
        return f"{self.mirror_url.rstrip('/')}/{self.tc_version}/{self.arch}/tcz/"


def get_settings() -> Settings:
    """Get the application settings singleton.

    Returns:
        Settings instance loaded from environment.
    """
    return Settings()


def settings_reference_paths() -> list[Path]:
    """Return files whose modification invalidates the cached index.

    Editing the configuration (or upgrading this package) should force a
    fresh info.lst, the same way editing the settings would.
    """
    paths = [Path(__file__).resolve()]
    env_file = Path(".env")
    if env_file.is_file():
        paths.append(env_file)
    return paths


def print_settings_json(settings: Settings | None = None) -> str:
    """Render effective settings as JSON.

    Args:
        settings: Optional settings instance; uses default if not provided.

    Returns:
        JSON string of effective settings.
    """
    if settings is None:
        settings = get_settings()
    return settings.model_dump_json(indent=2)


__all__ = [
    "Settings",
    "get_settings",
    "print_settings_json",
    "settings_reference_paths",
]
