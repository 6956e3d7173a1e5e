"""JSON output utilities with schema validation and quarantine."""

from __future__ import annotations

import hashlib
import json
from datetime import UTC, datetime
from pathlib import Path
from typing import Any

from gatechain.artifacts.canonical_json import pretty_dumps
from gatechain.schemas.validator import validate_data


def _redact_long_strings(data: Any, max_len: int = 256) -> Any:
    """Replace long strings with their hash and length.

    Raw tool output attached to violations can be large and may contain
    secrets picked up by scanners, so quarantine copies are redacted.
    """
    if isinstance(data, dict):
        return {k: _redact_long_strings(v, max_len) for k, v in data.items()}
    if isinstance(data, list):
        return [_redact_long_strings(item, max_len) for item in data]
    if isinstance(data, str) and len(data) > max_len:
        return {
            "_omitted": True,
            "_sha256": hashlib.sha256(data.encode("utf-8")).hexdigest(),
            "_len": len(data),
        }
    return data


def quarantine_invalid_json(
    *,
    data: dict,
    schema_name: str,
    error: Exception,
    quarantine_dir: Path,
    intended_path: Path,
    allow_raw: bool = False,
) -> Path:
    """Write an invalid payload to quarantine with metadata and return its path."""
    quarantine_dir.mkdir(parents=True, exist_ok=True)

    timestamp = datetime.now(UTC).strftime("%Y%m%dT%H%M%SZ")
    quarantine_path = quarantine_dir / f"{schema_name}__{intended_path.stem}__{timestamp}.json"

    quarantine_record = {
        "schema_name": schema_name,
        "created_at": datetime.now(UTC).isoformat(),
        "intended_path": str(intended_path),
        "error": str(error),
        "data": data if allow_raw else _redact_long_strings(data),
    }
    with open(quarantine_path, "w", encoding="utf-8") as f:
        json.dump(quarantine_record, f, indent=2, ensure_ascii=False)

    return quarantine_path


def ensure_valid_or_quarantine(
    *,
    data: dict,
    intended_path: Path,
    schema_name: str,
    quarantine_dir: Path | None = None,
) -> None:
    """Validate ``data`` against ``schema_name``.

    Raises:
        RuntimeError: If validation fails (after quarantining the payload)
    """
    try:
        validate_data(data, schema_name, strict=True)
    except (ValueError, KeyError) as e:
        qdir = quarantine_dir if quarantine_dir else (intended_path.parent / "quarantine")
        quarantine_path = quarantine_invalid_json(
            data=data,
            schema_name=schema_name,
            error=e,
            quarantine_dir=qdir,
            intended_path=intended_path,
        )
        raise RuntimeError(
            f"Schema validation failed for {schema_name} at {intended_path}. "
            f"Invalid data quarantined to {quarantine_path}"
        ) from e


def write_json_strict(
    *,
    data: dict,
    output_path: Path,
    schema_name: str,
    quarantine_dir: Path | None = None,
) -> None:
    """Write JSON only if it validates; quarantine and raise otherwise.

    Raises:
        RuntimeError: If validation fails (after quarantining)
    """
    ensure_valid_or_quarantine(
        data=data,
        intended_path=output_path,
        schema_name=schema_name,
        quarantine_dir=quarantine_dir,
    )
    output_path.parent.mkdir(parents=True, exist_ok=True)
    output_path.write_text(pretty_dumps(data), encoding="utf-8")
