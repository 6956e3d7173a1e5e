"""Resolve the document a gate inspects from ordered candidate path patterns."""

from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path

from gatechain.task_id import normalize_task_id


@dataclass(frozen=True)
class ArtifactPolicy:
    """Naming policy for one gate's input artifact.

    Candidates are templates relative to a search root. ``{task}`` expands to
    the task identifier and ``{task_norm}`` to its legacy normalized form.
    The first candidate is the current layout; later ones are legacy layouts.
    An artifact that is not ``required`` and absent only earns a warning.
    """

    label: str
    candidates: tuple[str, ...]
    required: bool = True


@dataclass(frozen=True)
class LocatedArtifact:
    path: Path
    checked: tuple[Path, ...]


def expand_candidates(policy: ArtifactPolicy, task_id: str) -> list[str]:
    task_norm = normalize_task_id(task_id)
    return [
        candidate.format(task=task_id, task_norm=task_norm)
        for candidate in policy.candidates
    ]


def checked_paths(
    policy: ArtifactPolicy,
    task_id: str,
    *,
    workspace_root: Path,
    external_root: Path | None = None,
) -> list[Path]:
    """Every path the locator would try, in search order."""
    roots = [workspace_root]
    if external_root is not None and external_root != workspace_root:
        roots.append(external_root)
    expanded = expand_candidates(policy, task_id)
    return [root / relative for root in roots for relative in expanded]


def locate_artifact(
    policy: ArtifactPolicy,
    task_id: str,
    *,
    workspace_root: Path,
    external_root: Path | None = None,
) -> LocatedArtifact | None:
    """Return the first existing candidate, or None when nothing matches.

    All candidates are tried under the workspace root before any candidate
    under the external root. No partial matches are merged.
    """
    tried: list[Path] = []
    for path in checked_paths(
        policy,
        task_id,
        workspace_root=workspace_root,
        external_root=external_root,
    ):
        tried.append(path)
        if path.is_file():
            return LocatedArtifact(path=path, checked=tuple(tried))
    return None
