"""Schema registry backed by the ``gatechain_schemas`` package data.

Schemas are resolved from the installed package only, so validation behaves the
same regardless of the current working directory.
"""

from __future__ import annotations

import json
from dataclasses import dataclass
from importlib.resources import files
from typing import Any

SCHEMA_PACKAGE = "gatechain_schemas"
SCHEMA_SUFFIX = ".schema.json"


@dataclass(frozen=True)
class SchemaRegistry:
    """Registry of schemas discovered in package data.

    Attributes:
        available: Sorted tuple of canonical schema names (without suffix)
    """

    available: tuple[str, ...] = ()

    def __init__(self) -> None:
        object.__setattr__(self, "available", tuple(sorted(self._discover_schemas())))

    def _discover_schemas(self) -> list[str]:
        try:
            schema_files = files(SCHEMA_PACKAGE)
            return [
                item.name[: -len(SCHEMA_SUFFIX)]
                for item in schema_files.iterdir()
                if item.name.endswith(SCHEMA_SUFFIX)
            ]
        except (ModuleNotFoundError, FileNotFoundError):
            # Broken install; get_text() reports the missing schema with context.
            return []

    def _normalize_name(self, name: str) -> str:
        if name.endswith(SCHEMA_SUFFIX):
            return name[: -len(SCHEMA_SUFFIX)]
        return name

    def get_text(self, name: str) -> str:
        """Load schema text by name.

        Raises:
            KeyError: If the schema is not bundled (message lists what is available)
        """
        canonical_name = self._normalize_name(name)
        if canonical_name not in self.available:
            raise KeyError(
                f"Schema '{canonical_name}' not found in gatechain package data.\n"
                f"Available schemas: {', '.join(self.available) or '(none)'}\n"
                f"Run `gatechain doctor` to diagnose packaging problems."
            )

        schema_file = files(SCHEMA_PACKAGE) / f"{canonical_name}{SCHEMA_SUFFIX}"
        try:
            return schema_file.read_text(encoding="utf-8")
        except OSError as e:
            raise RuntimeError(
                f"Failed to load schema '{canonical_name}' from package data: {e}\n"
                f"This may indicate a broken installation. Try reinstalling gatechain."
            ) from e

    def get_json(self, name: str) -> dict[str, Any]:
        """Load schema as a parsed dictionary.

        Raises:
            KeyError: If schema not found
            ValueError: If schema JSON is malformed
        """
        canonical_name = self._normalize_name(name)
        text = self.get_text(canonical_name)
        try:
            res: dict[str, Any] = json.loads(text)
            return res
        except json.JSONDecodeError as e:
            raise ValueError(f"Schema '{canonical_name}' contains invalid JSON: {e}") from e


_registry: SchemaRegistry | None = None


def get_registry() -> SchemaRegistry:
    """Return the process-wide registry, creating it on first use."""
    global _registry
    if _registry is None:
        _registry = SchemaRegistry()
    return _registry
