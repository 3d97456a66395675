"""Configuration schema using Pydantic."""

import math
from collections.abc import Mapping
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator
from pydantic.alias_generators import to_camel
from pydantic_settings import BaseSettings, SettingsConfigDict

_TRUTHY = {"true", "1", "yes", "on"}


def _coerce_flag(value: Any) -> bool:
    """Real booleans pass through; textual/int forms are interpreted, anything else is False."""
    if isinstance(value, bool):
        return value
    if isinstance(value, int):
        return value != 0
    if isinstance(value, str):
        return value.strip().lower() in _TRUTHY
    return False


def _coerce_non_negative_int(value: Any) -> int:
    """Clamp numeric-ish values to a non-negative integer. Garbage becomes 0."""
    if isinstance(value, bool):
        return int(value)
    try:
        number = float(value)
    except (TypeError, ValueError, OverflowError):
        return 0
    if not math.isfinite(number):
        return 0
    return max(0, math.floor(number))


def _to_mapping(raw: Any) -> dict[str, Any] | None:
    if raw is None:
        return None
    if isinstance(raw, BaseModel):
        return raw.model_dump()
    if isinstance(raw, Mapping):
        return dict(raw)
    attrs = getattr(raw, "__dict__", None)
    if isinstance(attrs, dict):
        return {key: value for key, value in attrs.items() if not key.startswith("_")}
    return None


class _CamelModel(BaseModel):
    """Accepts both snake_case and camelCase keys, dumps camelCase by alias."""

    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        validate_assignment=True,
    )


class RetrySettings(_CamelModel):
    """Auto-retry toggles, read fresh at every decision point."""
    enabled: bool = True
    max_retries: int = 2
    cooldown_ms: int = 1000
    stop_on_manual_regen: bool = True

    @field_validator("enabled", "stop_on_manual_regen", mode="before")
    @classmethod
    def _flags(cls, value: Any) -> bool:
        return _coerce_flag(value)

    @field_validator("max_retries", "cooldown_ms", mode="before")
    @classmethod
    def _counts(cls, value: Any) -> int:
        return _coerce_non_negative_int(value)

    @classmethod
    def coerce(cls, raw: Any) -> "RetrySettings":
        """Build settings from a model, mapping, attribute object, or None."""
        if isinstance(raw, cls):
            return raw
        data = _to_mapping(raw)
        if data is None:
            return cls()
        return cls.model_validate(data)


class CooperatingSettings(_CamelModel):
    """Settings of the cooperating auto-continue automation."""
    enabled: bool = False
    auto_continue_active: bool = False
    selected_option: str = ""
    option_list: list[str] = Field(default_factory=list)

    @field_validator("enabled", "auto_continue_active", mode="before")
    @classmethod
    def _flags(cls, value: Any) -> bool:
        return _coerce_flag(value)

    @field_validator("selected_option", mode="before")
    @classmethod
    def _selected(cls, value: Any) -> str:
        return value if isinstance(value, str) else ""

    @field_validator("option_list", mode="before")
    @classmethod
    def _options(cls, value: Any) -> list[str]:
        if not isinstance(value, (list, tuple)):
            return []
        return [item for item in value if isinstance(item, str)]

    @classmethod
    def coerce(cls, raw: Any) -> "CooperatingSettings | None":
        """Return settings, or None when absent or unusable."""
        if isinstance(raw, cls):
            return raw
        data = _to_mapping(raw)
        if data is None:
            return None
        try:
            return cls.model_validate(data)
        except ValidationError:
            return None

    def matches(self, message_text: str) -> bool:
        """True when the stripped text equals the selected option or any listed option."""
        candidate = (message_text or "").strip()
        if not candidate:
            return False
        options = [self.selected_option, *self.option_list]
        return any(candidate == option.strip() for option in options if option.strip())


class TrackerConfig(_CamelModel):
    """Generation session tracking."""
    settle_delay_ms: int = 250

    @field_validator("settle_delay_ms", mode="before")
    @classmethod
    def _delay(cls, value: Any) -> int:
        return _coerce_non_negative_int(value)


class ValidityConfig(_CamelModel):
    """Which tag pairs count as reply content."""
    tags: list[str] = Field(default_factory=lambda: ["正文", "game"])


class EventsConfig(_CamelModel):
    """Observable guard event log."""
    log_path: str = ""  # JSONL sink; empty keeps events in memory only
    max_events: int = 500


class GuardConfig(BaseSettings):
    """Root configuration for reply-guard."""
    retry: RetrySettings = Field(default_factory=RetrySettings)
    cooperating: CooperatingSettings = Field(default_factory=CooperatingSettings)
    tracker: TrackerConfig = Field(default_factory=TrackerConfig)
    validity: ValidityConfig = Field(default_factory=ValidityConfig)
    events: EventsConfig = Field(default_factory=EventsConfig)

    model_config = SettingsConfigDict(
        env_prefix="REPLY_GUARD_",
        env_nested_delimiter="__",
    )
