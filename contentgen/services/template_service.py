# FILE: contentgen/services/template_service.py

from __future__ import annotations

import json
from typing import Any, Mapping


def coerce_to_string(value: Any) -> str:
    """
    Coerce a variable value to text for template substitution.
    - strings pass through
    - lists of strings are comma-joined
    - everything else is compact JSON
    """
    if isinstance(value, str):
        return value
    if isinstance(value, (list, tuple)) and all(isinstance(v, str) for v in value):
        return ", ".join(value)
    return json.dumps(value, separators=(",", ":"), ensure_ascii=False)


def substitute_variables(template: str, variables: Mapping[str, Any]) -> str:
    """Replace every {{name}} with its coerced value. Unknown placeholders stay as-is."""
    result = template
    for key, value in variables.items():
        result = result.replace("{{" + key + "}}", coerce_to_string(value))
    return result
