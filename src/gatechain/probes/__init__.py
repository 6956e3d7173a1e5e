"""External probe adapters: version control, PR host, network and analysis tools."""

from gatechain.probes.toolbox import ProbeSet, build_probe_set
from gatechain.probes.types import (
    PrComment,
    ProbeFailedError,
    ProbeResult,
    ProbeUnavailableError,
)

__all__ = [
    "PrComment",
    "ProbeFailedError",
    "ProbeResult",
    "ProbeSet",
    "ProbeUnavailableError",
    "build_probe_set",
]
