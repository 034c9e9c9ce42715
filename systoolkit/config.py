"""systoolkit configuration: Pydantic BaseSettings loaded from the environment / .env."""

from __future__ import annotations

import json
from functools import lru_cache
from typing import Annotated, Any, Tuple

from pydantic import field_validator, model_validator
from pydantic_settings import BaseSettings, NoDecode, SettingsConfigDict

StrTuple = Annotated[Tuple[str, ...], NoDecode]


class Settings(BaseSettings):
    """Immutable runtime settings shared by the report generator and the menus."""

    app_name: str = "systoolkit"
    log_level: str = "INFO"
    log_file: str = ""  # empty = discard log records while the menu owns the terminal

    # Disk report
    report_formats: StrTuple = ("text", "csv", "html", "json")
    default_report_format: str = "text"
    report_units: StrTuple = ("K", "M", "G")
    default_unit: str = "M"
    excluded_dirs: StrTuple = ("/proc", "/dev", "/sys", "/run")
    du_command: str = "du"
    find_command: str = "find"

    # Account management
    use_sudo: bool = False

    # System information
    disk_alert_threshold: float = 80.0

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        env_prefix="SYSTOOLKIT_",
        extra="ignore",
        frozen=True,
    )

    @field_validator("report_formats", "report_units", "excluded_dirs", mode="before")
    @classmethod
    def split_list(cls, value: Any) -> Any:
        if isinstance(value, str):
            text = value.strip()
            if text.startswith("["):
                return tuple(json.loads(text))
            return tuple(item.strip() for item in text.split(",") if item.strip())
        return value

    @field_validator("report_units", mode="after")
    @classmethod
    def upper_units(cls, value: Tuple[str, ...]) -> Tuple[str, ...]:
        return tuple(unit.upper() for unit in value)

    @model_validator(mode="after")
    def _check_defaults(self) -> "Settings":
        if self.default_report_format not in self.report_formats:
            raise ValueError(
                f"default_report_format {self.default_report_format!r} is not one of {self.report_formats}"
            )
        if self.default_unit.upper() not in self.report_units:
            raise ValueError(f"default_unit {self.default_unit!r} is not one of {self.report_units}")
        return self


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    return Settings()
