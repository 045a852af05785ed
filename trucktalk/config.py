"""Canonical load schema, header synonyms, and analyzer configuration."""

from __future__ import annotations

import json
import re
from dataclasses import dataclass, field, replace
from pathlib import Path
from types import MappingProxyType
from typing import Any, Mapping

import pandas as pd

from trucktalk.errors import ConfigError

CANONICAL_FIELDS = (
    "loadId",
    "fromAddress",
    "fromAppointmentDateTimeUTC",
    "toAddress",
    "toAppointmentDateTimeUTC",
    "status",
    "driverName",
    "driverPhone",
    "unitNumber",
    "broker",
)

REQUIRED_FIELDS = (
    "loadId",
    "fromAddress",
    "fromAppointmentDateTimeUTC",
    "toAddress",
    "toAppointmentDateTimeUTC",
    "status",
    "driverName",
    "unitNumber",
    "broker",
)

DATE_FIELDS = ("fromAppointmentDateTimeUTC", "toAppointmentDateTimeUTC")

HEADER_SYNONYMS = {
    "loadId": ("loadId", "load id", "ref", "vrid", "reference", "ref #"),
    "fromAddress": ("fromAddress", "from", "pu", "pickup", "origin", "pickup address", "pickup location"),
    "fromAppointmentDateTimeUTC": ("fromAppointmentDateTimeUTC", "pu time", "pickup appt", "pickup date/time"),
    "toAddress": ("toAddress", "to", "drop", "delivery", "destination", "delivery address", "delivery location"),
    "toAppointmentDateTimeUTC": ("toAppointmentDateTimeUTC", "del time", "delivery appt", "delivery date/time"),
    "status": ("status", "load status", "stage"),
    "driverName": ("driverName", "driver", "driver name", "driver/carrier"),
    "driverPhone": ("driverPhone", "phone", "driver phone", "contact"),
    "unitNumber": ("unitNumber", "unit", "truck", "truck #", "tractor", "unit number"),
    "broker": ("broker", "customer", "shipper"),
}

STATUS_VALUES = (
    "Pending",
    "Scheduled",
    "Dispatched",
    "At Pickup",
    "Loaded",
    "In Transit",
    "At Delivery",
    "Delivered",
    "Completed",
    "Cancelled",
    "On Hold",
)

FIXABLE_CODES = frozenset({"MISSING_REQUIRED_FIELD", "NON_ISO_DATE", "INCONSISTENT_STATUS"})

DEFAULT_MAX_ROWS = 20_000
SUPPORTED_CONFIG_SUFFIXES = {".json", ".yml", ".yaml"}

_MULTI_WS = re.compile(r"\s+")


def normalize_header(value: Any) -> str:
    if value is None:
        return ""
    return _MULTI_WS.sub(" ", str(value).strip()).lower()


@dataclass(frozen=True)
class AnalyzerConfig:
    """Immutable settings for one analyzer; safe to share between runs."""

    fields: tuple[str, ...] = CANONICAL_FIELDS
    required_fields: tuple[str, ...] = REQUIRED_FIELDS
    synonyms: Mapping[str, tuple[str, ...]] = field(
        default_factory=lambda: MappingProxyType(dict(HEADER_SYNONYMS))
    )
    status_values: tuple[str, ...] = STATUS_VALUES
    fixable_codes: frozenset[str] = FIXABLE_CODES
    max_rows: int | None = DEFAULT_MAX_ROWS
    assume_timezone: str | None = None

    def __post_init__(self) -> None:
        unknown = [name for name in self.required_fields if name not in self.fields]
        if unknown:
            raise ConfigError(f"Required fields are not canonical fields: {unknown}")
        for name in self.fields:
            aliases = self.synonyms.get(name, ())
            if normalize_header(name) not in {normalize_header(alias) for alias in aliases}:
                raise ConfigError(f"Synonyms for '{name}' must include the field name itself")
        if self.assume_timezone is not None:
            try:
                pd.Timestamp("2000-01-01").tz_localize(self.assume_timezone)
            except Exception as exc:
                raise ConfigError(f"Unknown timezone for assume_timezone: {self.assume_timezone}") from exc
        if self.max_rows is not None and (
            isinstance(self.max_rows, bool) or not isinstance(self.max_rows, int) or self.max_rows < 1
        ):
            raise ConfigError("max_rows must be a positive integer or null")

    def aliases_for(self, field_name: str) -> tuple[str, ...]:
        return tuple(self.synonyms.get(field_name, ()))

    def is_required(self, field_name: str) -> bool:
        return field_name in self.required_fields


DEFAULT_CONFIG = AnalyzerConfig()


def _merge_synonyms(overrides: Mapping[str, Any]) -> Mapping[str, tuple[str, ...]]:
    merged = dict(HEADER_SYNONYMS)
    for name, aliases in overrides.items():
        if name not in CANONICAL_FIELDS:
            raise ConfigError(f"Unknown field in synonyms: {name}")
        if not isinstance(aliases, list) or not all(isinstance(alias, str) for alias in aliases):
            raise ConfigError(f"Synonyms for '{name}' must be a list of strings")
        ordered = [name] + [alias for alias in aliases if normalize_header(alias) != normalize_header(name)]
        merged[name] = tuple(dict.fromkeys(ordered))
    return MappingProxyType(merged)


def config_from_dict(payload: Mapping[str, Any], base: AnalyzerConfig = DEFAULT_CONFIG) -> AnalyzerConfig:
    changes: dict[str, Any] = {}
    if "synonyms" in payload:
        if not isinstance(payload["synonyms"], dict):
            raise ConfigError("'synonyms' must be an object of field -> alias list")
        changes["synonyms"] = _merge_synonyms(payload["synonyms"])
    if "status_values" in payload:
        values = payload["status_values"]
        if not isinstance(values, list) or not values:
            raise ConfigError("'status_values' must be a non-empty list")
        changes["status_values"] = tuple(str(value).strip() for value in values)
    if "max_rows" in payload:
        changes["max_rows"] = payload["max_rows"]
    if "assume_timezone" in payload:
        changes["assume_timezone"] = payload["assume_timezone"] or None
    unknown = sorted(set(payload) - {"synonyms", "status_values", "max_rows", "assume_timezone"})
    if unknown:
        raise ConfigError(f"Unknown config keys: {', '.join(unknown)}")
    return replace(base, **changes)


def load_config(path: Path | None) -> AnalyzerConfig:
    if path is None:
        return DEFAULT_CONFIG
    if not path.exists():
        raise ConfigError(f"Config not found: {path}")
    suffix = path.suffix.lower()
    if suffix not in SUPPORTED_CONFIG_SUFFIXES:
        raise ConfigError("Config must be .json, .yml, or .yaml")
    if suffix in {".yml", ".yaml"}:
        raise ConfigError("YAML configs are not supported yet. Use JSON for now.")
    try:
        payload = json.loads(path.read_text(encoding="utf-8"))
    except Exception as exc:
        raise ConfigError(f"Could not read config: {exc}") from exc
    if not isinstance(payload, dict):
        raise ConfigError("Config root must be a JSON object.")
    return config_from_dict(payload)


def starter_config() -> dict[str, Any]:
    return {
        "max_rows": DEFAULT_MAX_ROWS,
        "assume_timezone": None,
        "status_values": list(STATUS_VALUES),
        "synonyms": {name: list(aliases) for name, aliases in HEADER_SYNONYMS.items()},
    }
