"""
Schema Validator

Validates structured data against the canonical per-type schema.

Never raises and never discards information:
- success: the coerced tree with every schema key present (nulled if unknown)
- failure: the original data, unmodified, plus flat {path, message} errors
"""

import logging
from dataclasses import dataclass, field
from typing import Any, Dict, List, Sequence, Union

from pydantic import ValidationError

from ..schemas.doc_types import DocType
from ..schemas.records import FieldError
from .registry import DocTypeRegistry

logger = logging.getLogger(__name__)


@dataclass
class ValidationOutcome:
    """Result of validating one document's structured data."""
    success: bool
    data: Dict[str, Any]
    errors: List[FieldError] = field(default_factory=list)


def format_error_path(loc: Sequence[Union[str, int]]) -> str:
    """Render a pydantic error location as a dot-path ("a.b[0].c")."""
    path = ""
    for part in loc:
        if isinstance(part, int):
            path += f"[{part}]"
        else:
            path = f"{path}.{part}" if path else str(part)
    return path or "_root"


class SchemaValidator:
    """Validates structured output against the registry's canonical schemas."""

    def __init__(self, registry: DocTypeRegistry):
        self.registry = registry

    def validate(self, doc_type: DocType, data: Any) -> ValidationOutcome:
        """
        Validate structured data for a document type.

        Args:
            doc_type: Classified document type
            data: Structured tree from the mapper or the model

        Returns:
            ValidationOutcome. Types without a registered schema pass through
            unchanged with success=True.
        """
        schema = self.registry.schema_for(doc_type)

        if schema is None:
            return ValidationOutcome(success=True, data=data if isinstance(data, dict) else {})

        if not isinstance(data, dict):
            return ValidationOutcome(
                success=False,
                data={},
                errors=[FieldError(path="_root", message="Structured data must be a JSON object")],
            )

        try:
            model = schema.model_validate(data)
        except ValidationError as e:
            errors = [
                FieldError(path=format_error_path(err["loc"]), message=err["msg"])
                for err in e.errors()
            ]
            logger.warning(
                f"{doc_type.value} failed schema validation with {len(errors)} error(s)"
            )
            return ValidationOutcome(success=False, data=data, errors=errors)

        return ValidationOutcome(success=True, data=model.model_dump())
