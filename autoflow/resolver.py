"""Resolve ``{{ path }}`` parameter templates against an execution context."""

from __future__ import annotations

from typing import Any, Dict, Mapping, Optional, Sequence


def get_value_by_path(obj: Any, path: str) -> Any:
    """Follow a dotted ``path`` through mappings, sequences and attributes.

    Missing segments resolve to ``None`` instead of raising.
    """
    current = obj
    for key in path.split("."):
        if current is None:
            return None
        if isinstance(current, Mapping):
            current = current.get(key)
        elif isinstance(current, Sequence) and not isinstance(current, (str, bytes)):
            try:
                current = current[int(key)]
            except (ValueError, IndexError):
                return None
        else:
            current = getattr(current, key, None)
    return current


def resolve_value(value: Any, context: Mapping[str, Any]) -> Any:
    if isinstance(value, str) and value.startswith("{{") and value.endswith("}}"):
        path = value[2:-2].strip()
        return get_value_by_path(context, path)
    return value


def resolve_parameters(
    parameters: Optional[Mapping[str, Any]], context: Mapping[str, Any]
) -> Dict[str, Any]:
    """Return a copy of ``parameters`` with every template resolved."""
    if not parameters:
        return {}
    return {key: resolve_value(value, context) for key, value in parameters.items()}
