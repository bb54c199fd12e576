"""Application configuration loaded from environment variables."""

from __future__ import annotations

import json
import logging
from dataclasses import dataclass
from functools import lru_cache
from pathlib import Path
from typing import Annotated

from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator
from pydantic_settings import BaseSettings, NoDecode, SettingsConfigDict

logger = logging.getLogger("hitcounter.config")


def _split_list(value: object) -> object:
    if isinstance(value, str):
        value = value.strip()
        if value.startswith("["):
            return json.loads(value)
        return [item.strip() for item in value.split(",") if item.strip()]
    return value


class Settings(BaseSettings):
    """Runtime settings for the hit counter API."""

    app_name: str = "Hit Counter"
    app_version: str = "0.1.0"
    environment: str = "development"
    log_level: str = "INFO"
    data_file: str = "counts.json"
    counter_config_file: str | None = None
    allow_all: bool = True
    allowed_root_domains: Annotated[list[str], NoDecode] = Field(default_factory=list)
    anonymize_ip: bool = False
    cors_allow_origins: Annotated[list[str], NoDecode] = Field(default_factory=lambda: ["*"])

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    @field_validator("allowed_root_domains", "cors_allow_origins", mode="before")
    @classmethod
    def _parse_list(cls, value: object) -> object:
        return _split_list(value)


@lru_cache
def get_settings() -> Settings:
    """Return cached settings so env parsing only happens once."""

    return Settings()


def _normalize_root(root: str) -> str:
    return root.strip().lower().lstrip(".")


@dataclass(frozen=True, slots=True)
class CounterPolicy:
    """Allow-list and anonymization toggles consulted by every counter operation."""

    allow_all: bool = True
    allowed_root_domains: tuple[str, ...] = ()
    anonymize_ip: bool = False

    @classmethod
    def build(
        cls,
        *,
        allow_all: bool,
        allowed_root_domains: list[str] | tuple[str, ...],
        anonymize_ip: bool,
    ) -> CounterPolicy:
        roots = tuple(
            root for root in (_normalize_root(item) for item in allowed_root_domains) if root
        )
        return cls(allow_all=allow_all, allowed_root_domains=roots, anonymize_ip=anonymize_ip)


class CounterConfigFile(BaseModel):
    """On-disk policy document using the camelCase keys shared with the client."""

    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    allow_all: bool = Field(default=True, alias="allowAll")
    allowed_root_domains: list[str] = Field(default_factory=list, alias="allowedRootDomains")
    anonymize_ip: bool = Field(default=False, alias="anonymizeIp")


def _policy_from_file(path: Path) -> CounterPolicy:
    try:
        document = CounterConfigFile.model_validate_json(path.read_bytes())
    except FileNotFoundError:
        logger.warning("counter_config_missing path=%s fallback=permissive", path)
        return CounterPolicy()
    except (OSError, ValidationError) as exc:
        logger.warning("counter_config_invalid path=%s fallback=permissive error=%s", path, exc)
        return CounterPolicy()

    return CounterPolicy.build(
        allow_all=document.allow_all,
        allowed_root_domains=document.allowed_root_domains,
        anonymize_ip=document.anonymize_ip,
    )


def load_counter_policy() -> CounterPolicy:
    """
    Read the counter policy fresh for a single operation.

    A configured policy file wins over environment settings. Neither source is
    cached, so edits take effect on the next request.
    """

    try:
        settings = Settings()
    except ValidationError as exc:
        logger.warning("counter_config_invalid source=environment fallback=permissive error=%s", exc)
        return CounterPolicy()

    if settings.counter_config_file:
        return _policy_from_file(Path(settings.counter_config_file))

    return CounterPolicy.build(
        allow_all=settings.allow_all,
        allowed_root_domains=settings.allowed_root_domains,
        anonymize_ip=settings.anonymize_ip,
    )
