"""Poll the gate chain in order; a gate is only attempted once every earlier gate passed."""

from __future__ import annotations

import logging
import threading
import time
from collections.abc import Callable, Sequence
from dataclasses import dataclass, field
from typing import Literal

from gatechain.chain.state import ChainState, ChainStateStore, MemoryChainStateStore
from gatechain.gates.types import GateInputs, Verdict

logger = logging.getLogger(__name__)

GateStatus = Literal["PASSED", "BLOCKED", "LOCKED"]

EvaluateFn = Callable[[str, str, GateInputs], Verdict]


@dataclass(frozen=True)
class GateOutcome:
    index: int
    gate_id: str
    status: GateStatus
    verdict: Verdict | None = None


@dataclass(frozen=True)
class CycleReport:
    task_id: str
    state: ChainState
    outcomes: tuple[GateOutcome, ...] = field(default_factory=tuple)

    @property
    def all_passed(self) -> bool:
        return bool(self.outcomes) and all(o.status == "PASSED" for o in self.outcomes)

    @property
    def blocked_at(self) -> str | None:
        for outcome in self.outcomes:
            if outcome.status == "BLOCKED":
                return outcome.gate_id
        return None


class ChainRunner:
    """Evaluate ``gate_ids`` in order every ``interval`` seconds.

    ``integrity`` is called before each cycle and is expected to raise
    ``IntegrityError`` on tamper; that exception is never caught here.
    """

    def __init__(
        self,
        gate_ids: Sequence[str],
        evaluate: EvaluateFn,
        state_store: ChainStateStore | None = None,
        *,
        interval: float = 5.0,
        integrity: Callable[[], object] | None = None,
        on_event: Callable[[GateOutcome], None] | None = None,
    ) -> None:
        if not gate_ids:
            raise ValueError("chain must contain at least one gate")
        self.gate_ids = tuple(gate_ids)
        self.evaluate = evaluate
        self.state_store = state_store if state_store is not None else MemoryChainStateStore()
        self.interval = interval
        self.integrity = integrity
        self.on_event = on_event
        self._cycle_lock = threading.Lock()

    def _emit(self, outcomes: list[GateOutcome], outcome: GateOutcome) -> None:
        outcomes.append(outcome)
        if self.on_event is not None:
            self.on_event(outcome)

    def _lock_rest(self, outcomes: list[GateOutcome], start: int) -> None:
        for index in range(start, len(self.gate_ids)):
            self._emit(outcomes, GateOutcome(index=index, gate_id=self.gate_ids[index], status="LOCKED"))

    def run_cycle(self, task_id: str, inputs: GateInputs | None = None) -> CycleReport | None:
        """One pass over the chain; None when another cycle is still running."""
        if not self._cycle_lock.acquire(blocking=False):
            logger.debug("chain cycle already in progress for %s; skipping", task_id)
            return None
        try:
            if self.integrity is not None:
                self.integrity()

            inputs = inputs or GateInputs()
            state = self.state_store.load(task_id)
            last = state.last_passed_index
            outcomes: list[GateOutcome] = []

            for index, gate_id in enumerate(self.gate_ids):
                if index > last + 1:
                    self._lock_rest(outcomes, index)
                    break
                verdict = self.evaluate(gate_id, task_id, inputs)
                if verdict.passed:
                    last = max(last, index)
                    self._emit(outcomes, GateOutcome(index, gate_id, "PASSED", verdict))
                    continue
                # a regression anywhere re-locks everything after it
                last = index - 1
                self._emit(outcomes, GateOutcome(index, gate_id, "BLOCKED", verdict))
                self._lock_rest(outcomes, index + 1)
                break

            new_state = ChainState(last_passed_index=last, cycle=state.cycle + 1)
            self.state_store.save(task_id, new_state)
            logger.debug(
                "chain cycle %d for %s: last passed index %d of %d",
                new_state.cycle,
                task_id,
                last,
                len(self.gate_ids),
            )
            return CycleReport(task_id=task_id, state=new_state, outcomes=tuple(outcomes))
        finally:
            self._cycle_lock.release()

    def run(
        self,
        task_id: str,
        inputs: GateInputs | None = None,
        *,
        max_cycles: int | None = None,
        sleep: Callable[[float], None] = time.sleep,
    ) -> CycleReport | None:
        """Cycle until ``max_cycles`` (forever when None); returns the last completed report."""
        report: CycleReport | None = None
        cycles = 0
        while True:
            current = self.run_cycle(task_id, inputs)
            if current is not None:
                report = current
            cycles += 1
            if max_cycles is not None and cycles >= max_cycles:
                return report
            sleep(self.interval)
