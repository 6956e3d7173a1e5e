"""Chain progress state and where it is kept between cycles."""

from __future__ import annotations

import json
import logging
import os
from dataclasses import dataclass
from pathlib import Path
from typing import Protocol

from gatechain.artifacts.canonical_json import pretty_dumps

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ChainState:
    """Index of the furthest gate that has passed, and how many cycles ran."""

    last_passed_index: int = -1
    cycle: int = 0


class ChainStateStore(Protocol):
    def load(self, task_id: str) -> ChainState: ...

    def save(self, task_id: str, state: ChainState) -> None: ...


class MemoryChainStateStore:
    """Per-process state; every new process starts from the first gate."""

    def __init__(self) -> None:
        self._states: dict[str, ChainState] = {}

    def load(self, task_id: str) -> ChainState:
        return self._states.get(task_id, ChainState())

    def save(self, task_id: str, state: ChainState) -> None:
        self._states[task_id] = state


class JsonChainStateStore:
    """State persisted as ``{task_id: {last_passed_index, cycle}}`` in one JSON file."""

    def __init__(self, path: Path) -> None:
        self.path = path

    def _read_all(self) -> dict[str, dict[str, int]]:
        if not self.path.exists():
            return {}
        try:
            data = json.loads(self.path.read_text(encoding="utf-8"))
        except json.JSONDecodeError:
            logger.warning("chain state file %s is corrupt; starting over", self.path)
            return {}
        return data if isinstance(data, dict) else {}

    def load(self, task_id: str) -> ChainState:
        entry = self._read_all().get(task_id)
        if not isinstance(entry, dict):
            return ChainState()
        return ChainState(
            last_passed_index=int(entry.get("last_passed_index", -1)),
            cycle=int(entry.get("cycle", 0)),
        )

    def save(self, task_id: str, state: ChainState) -> None:
        data = self._read_all()
        data[task_id] = {"last_passed_index": state.last_passed_index, "cycle": state.cycle}
        self.path.parent.mkdir(parents=True, exist_ok=True)
        tmp = self.path.with_name(f".{self.path.name}.gatechain.tmp")
        tmp.write_text(pretty_dumps(data), encoding="utf-8")
        os.replace(tmp, self.path)
