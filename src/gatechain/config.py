"""Workspace configuration for gatechain.

Settings come from ``.gatechain/config.toml`` (table ``[gatechain]``), then
environment variables, then CLI flags, with later sources winning.
"""

from __future__ import annotations

import os
import tomllib
from dataclasses import dataclass, field, replace
from datetime import UTC, datetime
from pathlib import Path
from typing import Any, Literal

from gatechain.task_id import DEFAULT_TASK_ID_PATTERN

TimestampMode = Literal["deterministic", "wallclock"]

CONFIG_RELATIVE_PATH = Path(".gatechain/config.toml")
DEFAULT_EVIDENCE_DIRNAME = ".evidence"
DEFAULT_INTEGRITY_MANIFEST = "integrity-manifest.json"
DETERMINISTIC_TIMESTAMP = "1970-01-01T00:00:00Z"

EVIDENCE_ROOT_ENV = "GATECHAIN_EVIDENCE_ROOT"
EXTERNAL_ROOT_ENV = "GATECHAIN_EXTERNAL_ROOT"
ACTOR_ENV = "GATECHAIN_ACTOR"

DEFAULT_PROBE_TIMEOUT = 15.0
DEFAULT_CHAIN_INTERVAL = 5.0


class ConfigError(RuntimeError):
    """Raised when workspace configuration is malformed."""


@dataclass(frozen=True)
class GatechainConfig:
    """Resolved configuration for one gatechain invocation."""

    workspace_root: Path
    evidence_root: Path
    external_artifact_root: Path | None = None
    probe_timeout: float = DEFAULT_PROBE_TIMEOUT
    chain_interval: float = DEFAULT_CHAIN_INTERVAL
    actor: str = "unknown"
    timestamp_mode: TimestampMode = "wallclock"
    task_id_pattern: str = DEFAULT_TASK_ID_PATTERN
    integrity_manifest: Path | None = None
    tools: dict[str, tuple[str, ...]] = field(default_factory=dict)

    @classmethod
    def from_dict(cls, data: dict[str, Any], *, workspace_root: Path) -> GatechainConfig:
        """Build config from the ``[gatechain]`` table of config.toml."""
        root = workspace_root.resolve()

        evidence_raw = data.get("evidence_root", DEFAULT_EVIDENCE_DIRNAME)
        external_raw = data.get("external_artifact_root")
        manifest_raw = data.get("integrity_manifest", DEFAULT_INTEGRITY_MANIFEST)

        tools_raw = data.get("tools", {})
        if not isinstance(tools_raw, dict):
            raise ValueError("`tools` must be a table of command lists")
        tools: dict[str, tuple[str, ...]] = {}
        for name in sorted(tools_raw):
            argv = tools_raw[name]
            if not isinstance(argv, list) or not argv or not all(isinstance(a, str) for a in argv):
                raise ValueError(f"tools.{name} must be a non-empty list of strings")
            tools[name] = tuple(argv)

        probe_timeout = float(data.get("probe_timeout", DEFAULT_PROBE_TIMEOUT))
        if probe_timeout <= 0:
            raise ValueError("probe_timeout must be positive")
        chain_interval = float(data.get("chain_interval", DEFAULT_CHAIN_INTERVAL))
        if chain_interval < 0:
            raise ValueError("chain_interval must not be negative")

        return cls(
            workspace_root=root,
            evidence_root=_resolve_under(root, str(evidence_raw)),
            external_artifact_root=(
                _resolve_under(root, str(external_raw)) if external_raw else None
            ),
            probe_timeout=probe_timeout,
            chain_interval=chain_interval,
            actor=str(data.get("actor", "")).strip() or _default_actor(),
            timestamp_mode=normalize_timestamp_mode(str(data.get("timestamp_mode", "wallclock"))),
            task_id_pattern=str(data.get("task_id_pattern", DEFAULT_TASK_ID_PATTERN)),
            integrity_manifest=_resolve_under(root, str(manifest_raw)) if manifest_raw else None,
            tools=tools,
        )

    def tool_command(self, name: str, default: tuple[str, ...]) -> tuple[str, ...]:
        return self.tools.get(name, default)


def normalize_timestamp_mode(timestamp_mode: str) -> TimestampMode:
    """Normalize CLI timestamp modes; ``now`` is accepted as an alias of wallclock."""
    normalized = timestamp_mode.strip().lower()
    if normalized == "deterministic":
        return "deterministic"
    if normalized in {"wallclock", "now"}:
        return "wallclock"
    raise ValueError(
        f"Unsupported timestamp mode: {timestamp_mode}. "
        "Expected one of: deterministic, wallclock."
    )


def make_timestamp(timestamp_mode: TimestampMode) -> str:
    if timestamp_mode == "deterministic":
        return DETERMINISTIC_TIMESTAMP
    return datetime.now(UTC).strftime("%Y-%m-%dT%H:%M:%SZ")


def load_config(
    workspace_root: Path,
    *,
    evidence_root: Path | None = None,
    external_root: Path | None = None,
    actor: str | None = None,
    timestamp_mode: str | None = None,
) -> GatechainConfig:
    """Load config.toml (if any), then apply env and explicit overrides.

    Raises:
        ConfigError: If config.toml is malformed or has invalid values
    """
    root = workspace_root.expanduser().resolve()
    toml_path = root / CONFIG_RELATIVE_PATH
    data: dict[str, Any] = {}
    if toml_path.exists():
        try:
            with open(toml_path, "rb") as f:
                raw = tomllib.load(f)
        except tomllib.TOMLDecodeError as e:
            raise ConfigError(f"Malformed TOML config at {toml_path}: {e}") from e
        section = raw.get("gatechain", {})
        if not isinstance(section, dict):
            raise ConfigError(f"Invalid config structure in {toml_path}: [gatechain] must be a table")
        data = section

    try:
        config = GatechainConfig.from_dict(data, workspace_root=root)
    except (TypeError, ValueError) as e:
        raise ConfigError(f"Invalid config structure in {toml_path}: {e}") from e

    env_evidence = os.getenv(EVIDENCE_ROOT_ENV, "").strip()
    env_external = os.getenv(EXTERNAL_ROOT_ENV, "").strip()
    env_actor = os.getenv(ACTOR_ENV, "").strip()

    overrides: dict[str, Any] = {}
    if evidence_root is not None:
        overrides["evidence_root"] = _resolve_under(root, str(evidence_root))
    elif env_evidence:
        overrides["evidence_root"] = _resolve_under(root, env_evidence)

    if external_root is not None:
        overrides["external_artifact_root"] = _resolve_under(root, str(external_root))
    elif env_external:
        overrides["external_artifact_root"] = _resolve_under(root, env_external)

    if actor:
        overrides["actor"] = actor.strip()
    elif env_actor:
        overrides["actor"] = env_actor

    if timestamp_mode is not None:
        try:
            overrides["timestamp_mode"] = normalize_timestamp_mode(timestamp_mode)
        except ValueError as e:
            raise ConfigError(str(e)) from e

    return replace(config, **overrides) if overrides else config


def _resolve_under(root: Path, value: str) -> Path:
    path = Path(value).expanduser()
    if not path.is_absolute():
        path = root / path
    return path.resolve()


def _default_actor() -> str:
    return os.getenv(ACTOR_ENV, "").strip() or os.getenv("USER", "").strip() or "unknown"
