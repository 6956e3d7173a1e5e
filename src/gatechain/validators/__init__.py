"""Composable content validators for gate artifacts."""

from gatechain.validators.factory import (
    ValidatorContext,
    ValidatorSpec,
    build_validator,
    parse_validator_spec,
)
from gatechain.validators.types import ValidationResult, Validator

__all__ = [
    "ValidationResult",
    "Validator",
    "ValidatorContext",
    "ValidatorSpec",
    "build_validator",
    "parse_validator_spec",
]
