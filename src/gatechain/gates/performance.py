"""Performance gate: median of repeated audits against a baseline score."""

from __future__ import annotations

import logging

from gatechain.gates.types import GateCheck, GateContext
from gatechain.probes.types import ProbeResult

logger = logging.getLogger(__name__)

DEFAULT_RUNS = 5
DEFAULT_BASELINE = 80


def median_score(scores: list[float]) -> float:
    """Upper median: ``sorted(scores)[len // 2]``.

    Raises:
        ValueError: If ``scores`` is empty
    """
    if not scores:
        raise ValueError("median of no scores")
    return sorted(scores)[len(scores) // 2]


def check_performance(ctx: GateContext, text: str | None) -> GateCheck:
    check = GateCheck()
    url = ctx.target_url()
    runs = max(1, int(ctx.params.get("runs", DEFAULT_RUNS)))
    baseline = float(ctx.params.get("baseline", DEFAULT_BASELINE))
    fallback = ctx.params.get("fallback_score")

    scores: list[float] = []
    estimated = False
    for run in range(runs):
        result: ProbeResult = ctx.probes.performance.run(url)
        if not result.available:
            estimated = True
            score = fallback if fallback is not None else result.metrics.get("score")
            if score is None:
                check.block("probe_unavailable", result.warning or "performance auditor unavailable")
                return check
            scores.append(float(score))
            if result.warning and result.warning not in check.warnings:
                check.warn(result.warning)
            continue
        if not result.success:
            detail = "timed out" if result.metrics.get("timed_out") else "failed"
            check.block(
                "probe_failure",
                f"Performance audit run {run + 1}/{runs} {detail} for {url}",
                result.raw_output or None,
            )
            return check
        scores.append(float(result.metrics["score"]))
        logger.debug("performance run %d/%d score=%s", run + 1, runs, result.metrics["score"])

    median = median_score(scores)
    check.metrics.update(
        {
            "url": url,
            "runs": runs,
            "scores": scores,
            "median_score": median,
            "baseline": baseline,
            "estimated": estimated,
        }
    )
    if estimated:
        check.warn(f"Performance score {median:g} is estimated, not measured")
    if median < baseline:
        check.block(
            "content",
            f"Median performance score {median:g} is below baseline {baseline:g}",
            ", ".join(f"{s:g}" for s in scores),
        )
    return check
