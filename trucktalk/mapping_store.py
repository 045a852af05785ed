"""
Persistence for user-confirmed header mappings.

The mapper never reaches for storage itself; callers pass a store (or the
mapping it returned) in explicitly.
"""

from __future__ import annotations

import json
import logging
import os
import tempfile
from pathlib import Path
from typing import Any, Mapping, Protocol

from trucktalk.config import DEFAULT_CONFIG, AnalyzerConfig
from trucktalk.errors import MappingStoreError

logger = logging.getLogger(__name__)

DEFAULT_STORE_ENV = "TRUCKTALK_MAPPING_STORE"
DEFAULT_STORE_FILENAME = ".trucktalk-mappings.json"


class MappingStore(Protocol):
    def get(self, user: str) -> dict[str, str] | None: ...

    def set(self, user: str, mapping: Mapping[str, str]) -> None: ...


class InMemoryMappingStore:
    def __init__(self, initial: Mapping[str, Mapping[str, str]] | None = None) -> None:
        self._mappings: dict[str, dict[str, str]] = {
            user: dict(mapping) for user, mapping in (initial or {}).items()
        }

    def get(self, user: str) -> dict[str, str] | None:
        mapping = self._mappings.get(user)
        return dict(mapping) if mapping is not None else None

    def set(self, user: str, mapping: Mapping[str, str]) -> None:
        self._mappings[user] = dict(mapping)


class JsonFileMappingStore:
    """All users' mappings in one JSON file: {"users": {user: {header: field}}}."""

    def __init__(self, path: Path) -> None:
        self.path = Path(path)

    def _read(self) -> dict[str, dict[str, str]]:
        if not self.path.exists():
            return {}
        try:
            payload = json.loads(self.path.read_text(encoding="utf-8"))
        except (OSError, json.JSONDecodeError) as exc:
            raise MappingStoreError(f"Could not read mapping store {self.path}: {exc}") from exc
        users = payload.get("users") if isinstance(payload, dict) else None
        if not isinstance(users, dict):
            raise MappingStoreError(f"Mapping store {self.path} has no 'users' object")
        return users

    def get(self, user: str) -> dict[str, str] | None:
        mapping = self._read().get(user)
        return dict(mapping) if isinstance(mapping, dict) else None

    def set(self, user: str, mapping: Mapping[str, str]) -> None:
        users = self._read()
        users[user] = dict(mapping)
        self.path.parent.mkdir(parents=True, exist_ok=True)
        fd, tmp_name = tempfile.mkstemp(prefix=".trucktalk-", suffix=".json", dir=self.path.parent)
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as handle:
                json.dump({"users": users}, handle, indent=2, ensure_ascii=False, sort_keys=True)
            os.replace(tmp_name, self.path)
        except OSError as exc:
            Path(tmp_name).unlink(missing_ok=True)
            raise MappingStoreError(f"Could not write mapping store {self.path}: {exc}") from exc
        logger.debug("Saved %d mapping entries for %s", len(mapping), user)


def default_store_path() -> Path:
    override = os.environ.get(DEFAULT_STORE_ENV)
    if override:
        return Path(override)
    return Path.home() / DEFAULT_STORE_FILENAME


def confirm_mapping(
    store: MappingStore,
    user: str,
    mapping: Mapping[str, Any],
    config: AnalyzerConfig = DEFAULT_CONFIG,
) -> dict[str, str]:
    """Validate a header -> field mapping and persist it for the user."""
    if not user:
        raise MappingStoreError("A user identity is required to save a mapping")
    cleaned: dict[str, str] = {}
    claimed: dict[str, str] = {}
    for header, field_name in mapping.items():
        header = str(header).strip()
        if not header:
            raise MappingStoreError("Mapping headers must be non-empty")
        if field_name not in config.fields:
            raise MappingStoreError(f"Unknown field '{field_name}' for header '{header}'")
        if field_name in claimed:
            raise MappingStoreError(
                f"Field '{field_name}' is mapped from both '{claimed[field_name]}' and '{header}'"
            )
        claimed[field_name] = header
        cleaned[header] = field_name
    store.set(user, cleaned)
    return cleaned
