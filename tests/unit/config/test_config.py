from __future__ import annotations

from pathlib import Path

import pytest

from gatechain.config import (
    DETERMINISTIC_TIMESTAMP,
    ConfigError,
    load_config,
    make_timestamp,
    normalize_timestamp_mode,
)


def _write_config(workspace: Path, body: str) -> None:
    path = workspace / ".gatechain" / "config.toml"
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(body, encoding="utf-8")


def test_defaults_without_config_file(workspace: Path) -> None:
    config = load_config(workspace)

    assert config.workspace_root == workspace
    assert config.evidence_root == workspace / ".evidence"
    assert config.external_artifact_root is None
    assert config.integrity_manifest == workspace / "integrity-manifest.json"
    assert config.timestamp_mode == "wallclock"


def test_empty_integrity_manifest_disables_the_check(workspace: Path) -> None:
    _write_config(workspace, '[gatechain]\nintegrity_manifest = ""\n')

    assert load_config(workspace).integrity_manifest is None


def test_toml_then_env_then_flags(workspace: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    _write_config(
        workspace,
        '[gatechain]\nevidence_root = "proof"\nactor = "toml-actor"\nprobe_timeout = 30\n'
        'timestamp_mode = "deterministic"\n',
    )

    config = load_config(workspace)
    assert config.evidence_root == workspace / "proof"
    assert config.actor == "toml-actor"
    assert config.probe_timeout == 30.0
    assert config.timestamp_mode == "deterministic"

    monkeypatch.setenv("GATECHAIN_EVIDENCE_ROOT", "env-proof")
    monkeypatch.setenv("GATECHAIN_ACTOR", "env-actor")
    config = load_config(workspace)
    assert config.evidence_root == workspace / "env-proof"
    assert config.actor == "env-actor"

    config = load_config(workspace, evidence_root=Path("flag-proof"), actor="flag-actor", timestamp_mode="now")
    assert config.evidence_root == workspace / "flag-proof"
    assert config.actor == "flag-actor"
    assert config.timestamp_mode == "wallclock"


def test_tool_overrides(workspace: Path) -> None:
    _write_config(workspace, '[gatechain.tools]\nlint = ["npx", "eslint", ".", "--format", "json"]\n')

    config = load_config(workspace)

    assert config.tool_command("lint", ("ruff",)) == ("npx", "eslint", ".", "--format", "json")
    assert config.tool_command("tests", ("pytest",)) == ("pytest",)


@pytest.mark.parametrize(
    "body",
    [
        "[gatechain\n",
        "gatechain = 3\n",
        "[gatechain]\nprobe_timeout = 0\n",
        "[gatechain]\ntimestamp_mode = \"sometimes\"\n",
        "[gatechain.tools]\nlint = []\n",
    ],
)
def test_malformed_config_raises(workspace: Path, body: str) -> None:
    _write_config(workspace, body)

    with pytest.raises(ConfigError):
        load_config(workspace)


def test_bad_timestamp_flag_raises(workspace: Path) -> None:
    with pytest.raises(ConfigError, match="Unsupported timestamp mode"):
        load_config(workspace, timestamp_mode="yesterday")


def test_timestamp_modes() -> None:
    assert normalize_timestamp_mode(" Now ") == "wallclock"
    assert make_timestamp("deterministic") == DETERMINISTIC_TIMESTAMP
    assert make_timestamp("wallclock").endswith("Z")
