"""Assemble the probe adapters a gate evaluation may call."""

from __future__ import annotations

from dataclasses import dataclass

from gatechain.config import GatechainConfig
from gatechain.probes.network import HttpNetworkProbe
from gatechain.probes.pr_host import GhPrHost
from gatechain.probes.tools import (
    DEFAULT_COMMANDS,
    AccessibilityProbe,
    DependencyAuditProbe,
    LintProbe,
    PerformanceProbe,
    SecretScanProbe,
    TestProbe,
)
from gatechain.probes.types import (
    NetworkProbe,
    PullRequestHost,
    ToolProbe,
    UrlToolProbe,
    VersionControl,
)
from gatechain.probes.vcs import GitProbe


@dataclass
class ProbeSet:
    """Every external collaborator, injected into the evaluator as one bundle."""

    vcs: VersionControl
    pr_host: PullRequestHost
    network: NetworkProbe
    lint: ToolProbe
    tests: ToolProbe
    secrets: ToolProbe
    audit: ToolProbe
    accessibility: UrlToolProbe
    performance: UrlToolProbe


def build_probe_set(config: GatechainConfig) -> ProbeSet:
    """Real adapters rooted at the workspace, honouring ``[gatechain.tools]`` overrides."""
    root = config.workspace_root
    timeout = config.probe_timeout

    def command(name: str) -> tuple[str, ...]:
        return config.tool_command(name, DEFAULT_COMMANDS[name])

    return ProbeSet(
        vcs=GitProbe(root, timeout=timeout),
        pr_host=GhPrHost(root, timeout=timeout),
        network=HttpNetworkProbe(timeout=timeout),
        lint=LintProbe(command("lint"), cwd=root, timeout=timeout),
        tests=TestProbe(command("tests"), cwd=root, timeout=timeout),
        secrets=SecretScanProbe(command("secrets"), cwd=root, timeout=timeout),
        audit=DependencyAuditProbe(command("audit"), cwd=root, timeout=timeout),
        accessibility=AccessibilityProbe(command("accessibility"), cwd=root, timeout=timeout),
        performance=PerformanceProbe(command("performance"), cwd=root, timeout=timeout),
    )
