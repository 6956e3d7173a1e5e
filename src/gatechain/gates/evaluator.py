"""Gate evaluation: LOCATING -> VALIDATING -> AGGREGATING -> PASSED | BLOCKED."""

from __future__ import annotations

import logging
from collections.abc import Callable
from dataclasses import dataclass
from pathlib import Path
from typing import TYPE_CHECKING

from gatechain.artifacts.locator import LocatedArtifact, checked_paths, locate_artifact
from gatechain.config import GatechainConfig, make_timestamp
from gatechain.gates.approval import check_approval
from gatechain.gates.catalog import GateCatalog
from gatechain.gates.integrations import check_mock_coverage
from gatechain.gates.performance import check_performance
from gatechain.gates.quality import (
    check_accessibility,
    check_document,
    check_duplicate_work,
    check_lint,
    check_security,
    check_tests,
)
from gatechain.gates.scope import check_scope
from gatechain.gates.types import (
    REQUIRED_INPUTS,
    GateCheck,
    GateContext,
    GateDefinition,
    GateInputs,
    MissingGateInput,
    Verdict,
)
from gatechain.probes.toolbox import ProbeSet
from gatechain.probes.types import ProbeFailedError, ProbeUnavailableError
from gatechain.task_id import validate_task_id
from gatechain.utils.files import read_text_lenient
from gatechain.validators.factory import ValidatorContext, build_validator, needs_revision

if TYPE_CHECKING:
    from gatechain.evidence.store import EvidenceStore, RecordResult

logger = logging.getLogger(__name__)

KindHandler = Callable[[GateContext, str | None], GateCheck]

KIND_HANDLERS: dict[str, KindHandler] = {
    "document": check_document,
    "scope": check_scope,
    "performance": check_performance,
    "mock_coverage": check_mock_coverage,
    "approval": check_approval,
    "lint": check_lint,
    "tests": check_tests,
    "security": check_security,
    "accessibility": check_accessibility,
    "duplicate_work": check_duplicate_work,
}


@dataclass(frozen=True)
class EvaluationResult:
    verdict: Verdict
    record: RecordResult


class GateEvaluator:
    """Evaluate one gate for one task and record the verdict."""

    def __init__(
        self,
        catalog: GateCatalog,
        config: GatechainConfig,
        probes: ProbeSet,
        store: EvidenceStore,
    ) -> None:
        self.catalog = catalog
        self.config = config
        self.probes = probes
        self.store = store

    def evaluate(self, gate_id: str, task_id: str, inputs: GateInputs | None = None) -> EvaluationResult:
        """Run the gate and record its verdict.

        Raises:
            TaskIdError: If ``task_id`` does not match the configured pattern
            UnknownGateError: If ``gate_id`` is not in the catalogue
            MissingGateInput: If the gate kind needs an input that was not given
        """
        inputs = inputs or GateInputs()
        task_id = validate_task_id(task_id, self.config.task_id_pattern)
        definition = self.catalog.get(gate_id)
        self._require_inputs(definition, inputs)

        check = GateCheck()
        logger.debug("%s/%s: LOCATING", gate_id, task_id)
        self._check_dependencies(definition, task_id, check)
        located = self._locate(definition, task_id, check)
        text = read_text_lenient(located.path) if located is not None else None

        logger.debug("%s/%s: VALIDATING", gate_id, task_id)
        if located is not None and text is not None:
            self._run_validators(definition, located, text, check)

        ctx = GateContext(
            definition=definition,
            task_id=task_id,
            inputs=inputs,
            config=self.config,
            probes=self.probes,
            store=self.store,
            artifact=located,
        )
        kind_check = KIND_HANDLERS[definition.kind](ctx, text)
        check.violations.extend(kind_check.violations)
        check.warnings.extend(kind_check.warnings)
        check.metrics.update(kind_check.metrics)

        logger.debug("%s/%s: AGGREGATING", gate_id, task_id)
        verdict = Verdict(
            gate_id=definition.id,
            gate_title=definition.title,
            gate_kind=definition.kind,
            task_id=task_id,
            timestamp=make_timestamp(self.config.timestamp_mode),
            outcome="BLOCKED" if check.violations else "PASS",
            violations=tuple(check.violations),
            warnings=tuple(check.warnings),
            metrics=dict(check.metrics),
            artifact=self._display_path(located.path) if located is not None else None,
        )
        record = self.store.record(verdict)
        logger.debug(
            "%s/%s: %s (%d violation(s))",
            gate_id,
            task_id,
            "PASSED" if verdict.passed else "BLOCKED",
            len(verdict.violations),
        )
        return EvaluationResult(verdict=verdict, record=record)

    def _require_inputs(self, definition: GateDefinition, inputs: GateInputs) -> None:
        for name in REQUIRED_INPUTS.get(definition.kind, ()):
            value = getattr(inputs, name)
            if name == "target_url" and not value:
                value = definition.params.get("url")
            if value is None or value == "":
                flag = {"pr_number": "--pr", "target_url": "--url"}.get(name, name)
                raise MissingGateInput(f"Gate `{definition.id}` ({definition.kind}) requires {flag}")

    def _check_dependencies(self, definition: GateDefinition, task_id: str, check: GateCheck) -> None:
        for dep in definition.depends_on:
            latest = self.store.latest_verdict(dep, task_id)
            if latest is None:
                check.block("dependency", f"Prerequisite gate `{dep}` has not been run for {task_id}")
            elif not latest.passed:
                check.block(
                    "dependency",
                    f"Prerequisite gate `{dep}` is BLOCKED for {task_id}",
                    self._display_path(self.store.report_json_path(dep, task_id)),
                )

    def _locate(self, definition: GateDefinition, task_id: str, check: GateCheck) -> LocatedArtifact | None:
        policy = definition.artifact
        if policy is None:
            return None
        roots = {
            "workspace_root": self.config.workspace_root,
            "external_root": self.config.external_artifact_root,
        }
        located = locate_artifact(policy, task_id, **roots)
        if located is not None:
            logger.debug("located %s at %s", policy.label, located.path)
            return located

        tried = "\n".join(self._display_path(p) for p in checked_paths(policy, task_id, **roots))
        if policy.required:
            check.block("missing_artifact", f"{policy.label} not found for {task_id}", tried)
        else:
            check.warn(f"Optional {policy.label} not found; checked: {tried.replace(chr(10), ', ')}")
        return None

    def _run_validators(
        self,
        definition: GateDefinition,
        located: LocatedArtifact,
        text: str,
        check: GateCheck,
    ) -> None:
        revision = self._current_revision() if needs_revision(definition.validators) else None
        vctx = ValidatorContext(
            revision=revision,
            base_dirs=(located.path.parent, self.config.workspace_root),
            network=self.probes.network,
        )
        evidence = self._display_path(located.path)
        for spec in definition.validators:
            validator = build_validator(spec, vctx)
            result = validator(text)
            check.metrics.update({f"{validator.name}.{key}": value for key, value in result.metrics.items()})
            if result.passed:
                continue
            if spec.severity == "warning":
                check.warn(f"{validator.name}: {result.detail}")
            else:
                check.block("content", result.detail, evidence)

    def _current_revision(self) -> str | None:
        try:
            return self.probes.vcs.current_revision()
        except (ProbeUnavailableError, ProbeFailedError) as e:
            logger.debug("current revision unavailable: %s", e)
            return None

    def _display_path(self, path: Path) -> str:
        try:
            return path.relative_to(self.config.workspace_root).as_posix()
        except ValueError:
            return str(path)
