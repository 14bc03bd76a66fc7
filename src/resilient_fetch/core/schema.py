"""Schema validation seam for response bodies.

Any type pydantic can build a ``TypeAdapter`` for is accepted as a schema:
``BaseModel`` subclasses, dataclasses, ``TypedDict``s and plain typing
constructs such as ``list[int]``. Adapters are cached per schema.
"""

from __future__ import annotations

import functools
from typing import Any, Callable

from pydantic import TypeAdapter, ValidationError

from resilient_fetch.core.errors import SchemaIssue, SchemaValidationError

Validator = Callable[[Any, Any], Any]


@functools.lru_cache(maxsize=256)
def _cached_adapter(schema: Any) -> TypeAdapter:
    return TypeAdapter(schema)


def get_adapter(schema: Any) -> TypeAdapter:
    """Return a ``TypeAdapter`` for ``schema``, reusing cached adapters."""
    if isinstance(schema, TypeAdapter):
        return schema
    try:
        return _cached_adapter(schema)
    except TypeError:
        # Unhashable schema objects cannot be cached
        return TypeAdapter(schema)


def issues_from_validation_error(error: ValidationError) -> list[SchemaIssue]:
    """Flatten a pydantic ``ValidationError`` into schema issues."""
    return [
        SchemaIssue(message=detail["msg"], path=tuple(detail.get("loc", ())))
        for detail in error.errors()
    ]


def validate_schema(schema: Any, value: Any) -> Any:
    """Validate ``value`` against ``schema``.

    Args:
        schema: Anything accepted by ``pydantic.TypeAdapter``.
        value: Parsed JSON body.

    Returns:
        The validated (and possibly coerced) value.

    Raises:
        SchemaValidationError: With one issue per validation failure.
    """
    adapter = get_adapter(schema)
    try:
        return adapter.validate_python(value)
    except ValidationError as exc:
        raise SchemaValidationError(issues_from_validation_error(exc)) from exc
