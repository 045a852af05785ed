"""Shared versioned contracts for trucktalk outputs."""

from __future__ import annotations

from datetime import datetime, timezone
from typing import Any

CONTRACT_VERSIONS = {
    "trucktalk.analysis": "1.0.0",
    "trucktalk.preview": "1.0.0",
    "trucktalk.fix": "1.0.0",
}


def utc_now_iso(now: datetime | None = None) -> str:
    """Second-precision UTC stamp with a Z suffix; ``now`` must be timezone-aware."""
    stamp = (now or datetime.now(timezone.utc)).astimezone(timezone.utc)
    return stamp.strftime("%Y-%m-%dT%H:%M:%SZ")


def build_contract(name: str) -> dict[str, str]:
    if name not in CONTRACT_VERSIONS:
        raise KeyError(f"Unknown contract '{name}'; known contracts: {sorted(CONTRACT_VERSIONS)}")
    return {"name": name, "version": CONTRACT_VERSIONS[name]}


def build_run_summary(
    *,
    command: str,
    source: str,
    status: str = "ok",
    output_path: str | None = None,
    metrics: dict[str, Any] | None = None,
    warnings: list[str] | None = None,
) -> dict[str, Any]:
    return {
        "tool": "trucktalk",
        "command": command,
        "status": status,
        "generated_at": utc_now_iso(),
        "source": source,
        "output_file": output_path,
        "warnings_count": len(warnings or []),
        "warnings": list(warnings or []),
        "metrics": metrics or {},
    }
