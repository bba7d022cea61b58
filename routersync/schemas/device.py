"""Typed views of RouterOS API payloads.

``routeros_api`` returns plain dicts keyed by RouterOS attribute names
(``.id``, ``rate-limit``, ``remote-address``). These models normalize them
and accept the snake_case/camelCase spellings used by fixtures and imports.
"""

from __future__ import annotations

import ipaddress

from pydantic import AliasChoices, BaseModel, ConfigDict, Field, field_validator

from routersync.services import ip_ranges

_TRUE_VALUES = {"true", "yes", "1", "on"}


def _as_bool(value: object) -> bool:
    if isinstance(value, bool):
        return value
    if value is None:
        return False
    return str(value).strip().lower() in _TRUE_VALUES


def _blank_to_none(value: object) -> object:
    if isinstance(value, str) and not value.strip():
        return None
    return value


def split_rate_limit(rate_limit: str | None) -> dict[str, str | None]:
    """Split a RouterOS rate-limit string into its positional parts.

    Format: ``rx/tx [burst-rx/burst-tx [threshold-rx/threshold-tx
    [time-rx/time-tx [priority [min-rx/min-tx]]]]]``.
    """
    parts = (rate_limit or "").split()
    keys = (
        "rate_limit",
        "burst_limit",
        "burst_threshold",
        "burst_time",
        "priority",
        "min_rate",
    )
    return {key: (parts[index] if index < len(parts) else None) for index, key in enumerate(keys)}


class DeviceRecord(BaseModel):
    model_config = ConfigDict(populate_by_name=True, extra="ignore", frozen=True)

    external_id: str = Field(
        min_length=1,
        max_length=64,
        validation_alias=AliasChoices(".id", "id", "external_id"),
    )


class DevicePool(DeviceRecord):
    name: str = Field(min_length=1, max_length=120)
    ranges: str | None = None

    @field_validator("ranges", mode="before")
    @classmethod
    def _blank_ranges(cls, value):
        return _blank_to_none(value)

    @field_validator("ranges", mode="after")
    @classmethod
    def _parseable_ranges(cls, value: str | None) -> str | None:
        if value is not None:
            ip_ranges.summarize_ranges(value)
        return value


class DeviceProfile(DeviceRecord):
    name: str = Field(min_length=1, max_length=120)
    rate_limit: str | None = Field(
        default=None, validation_alias=AliasChoices("rate-limit", "rate_limit", "rateLimit")
    )
    burst_limit: str | None = Field(
        default=None, validation_alias=AliasChoices("burst-limit", "burst_limit", "burstLimit")
    )
    burst_threshold: str | None = Field(
        default=None,
        validation_alias=AliasChoices("burst-threshold", "burst_threshold", "burstThreshold"),
    )
    burst_time: str | None = Field(
        default=None, validation_alias=AliasChoices("burst-time", "burst_time", "burstTime")
    )
    priority: str | None = None
    min_rate: str | None = Field(
        default=None, validation_alias=AliasChoices("min-rate", "min_rate", "minRate")
    )
    local_address: str | None = Field(
        default=None,
        validation_alias=AliasChoices("local-address", "local_address", "localAddress"),
    )
    remote_address: str | None = Field(
        default=None,
        validation_alias=AliasChoices("remote-address", "remote_address", "remoteAddress"),
    )
    dns_server: str | None = Field(
        default=None, validation_alias=AliasChoices("dns-server", "dns_server", "dnsServer")
    )
    only_one: bool = Field(
        default=False, validation_alias=AliasChoices("only-one", "only_one", "onlyOne")
    )

    @field_validator(
        "rate_limit",
        "burst_limit",
        "burst_threshold",
        "burst_time",
        "priority",
        "min_rate",
        "local_address",
        "remote_address",
        "dns_server",
        mode="before",
    )
    @classmethod
    def _blank_strings(cls, value):
        value = _blank_to_none(value)
        return str(value) if value is not None else None

    @field_validator("only_one", mode="before")
    @classmethod
    def _only_one_flag(cls, value):
        return _as_bool(value)

    def engine_fields(self) -> dict[str, object]:
        """Engine-owned profile fields with the rate-limit string expanded.

        Explicit burst attributes take precedence over the positional parts of
        ``rate-limit``.
        """
        rate_parts = split_rate_limit(self.rate_limit)
        return {
            "name": self.name,
            "rate_limit": rate_parts["rate_limit"],
            "burst_limit": self.burst_limit or rate_parts["burst_limit"],
            "burst_threshold": self.burst_threshold or rate_parts["burst_threshold"],
            "burst_time": self.burst_time or rate_parts["burst_time"],
            "priority": self.priority or rate_parts["priority"],
            "min_rate": self.min_rate or rate_parts["min_rate"],
            "local_address": self.local_address,
            "remote_address": self.remote_address,
            "dns_server": self.dns_server,
            "only_one": self.only_one,
        }


class DeviceUser(DeviceRecord):
    name: str = Field(min_length=1, max_length=120)
    profile: str | None = None
    disabled: bool = False
    remote_address: str | None = Field(
        default=None,
        validation_alias=AliasChoices("remote-address", "remote_address", "address"),
    )
    comment: str | None = None

    @field_validator("disabled", mode="before")
    @classmethod
    def _disabled_flag(cls, value):
        return _as_bool(value)

    @field_validator("profile", "comment", mode="before")
    @classmethod
    def _blank_strings(cls, value):
        return _blank_to_none(value)

    @field_validator("remote_address", mode="before")
    @classmethod
    def _valid_address(cls, value):
        value = _blank_to_none(value)
        if value is None:
            return None
        return str(ipaddress.ip_address(str(value).strip()))


class PoolAddressBuckets(BaseModel):
    """Addresses of one pool as seen by the device.

    ``owners`` maps used addresses to the owner info RouterOS reports in
    ``/ip/pool/used`` (normally the PPP username).
    """
    model_config = ConfigDict(frozen=True)

    used: list[str] = Field(default_factory=list)
    available: list[str] = Field(default_factory=list)
    owners: dict[str, str] = Field(default_factory=dict)

    @field_validator("used", "available", mode="after")
    @classmethod
    def _normalize(cls, values: list[str]) -> list[str]:
        return [str(ipaddress.ip_address(str(value).strip())) for value in values]

    @field_validator("owners", mode="after")
    @classmethod
    def _normalize_owners(cls, owners: dict[str, str]) -> dict[str, str]:
        return {str(ipaddress.ip_address(str(key).strip())): value for key, value in owners.items()}
