"""Response schemas for the coach's structured analysis.

ANALYSIS_RESPONSE_SCHEMA constrains the Gemini response; the dict-based
schemas below validate what actually came back before it is turned into
a FullAnalysis, since the model's output is untrusted.
"""

from __future__ import annotations

import math

from gm_studio.models import PHASES

# ---------------------------------------------------------------------------
# Gemini response schema
# ---------------------------------------------------------------------------

_PHASE_RESPONSE_SCHEMA = {
    "type": "OBJECT",
    "properties": {
        "score": {"type": "NUMBER"},
        "feedback": {"type": "STRING"},
        "errors": {"type": "ARRAY", "items": {"type": "STRING"}},
    },
    "required": ["score", "feedback", "errors"],
}

ANALYSIS_RESPONSE_SCHEMA = {
    "type": "OBJECT",
    "properties": {
        **{phase: _PHASE_RESPONSE_SCHEMA for phase in PHASES},
        "overallAdvice": {"type": "STRING"},
        "referencedBooks": {"type": "ARRAY", "items": {"type": "STRING"}},
    },
    "required": [*PHASES, "overallAdvice", "referencedBooks"],
}


# ---------------------------------------------------------------------------
# Validation schemas (dict-based)
# ---------------------------------------------------------------------------

PHASE_SCHEMA = {
    "score": (int, float),
    "feedback": str,
    "errors": list,
}

ANALYSIS_SCHEMA = {
    **{phase: dict for phase in PHASES},
    "overallAdvice": str,
    "referencedBooks": list,
}


def validate_response(response: object, schema: dict, prefix: str = "") -> list[str]:
    """Validate a response dict against a schema.

    Args:
        response: Decoded JSON value to validate.
        schema: Dict mapping key names to expected types (or tuple of types).
        prefix: Key path prepended to messages for nested objects.

    Returns:
        List of validation error strings (empty = valid).
    """
    errors = []

    if not isinstance(response, dict):
        errors.append(f"{prefix or 'Response'} is not a dict: {type(response).__name__}")
        return errors

    for key, expected_types in schema.items():
        path = f"{prefix}{key}"
        if key not in response:
            errors.append(f"Missing key: {path}")
            continue

        value = response[key]
        if not isinstance(expected_types, tuple):
            expected_types = (expected_types,)
        # bool is an int subclass but never a valid score
        if isinstance(value, bool) or not isinstance(value, expected_types):
            type_names = ", ".join(t.__name__ for t in expected_types)
            errors.append(
                f"Key '{path}': expected ({type_names}), "
                f"got {type(value).__name__}"
            )

    return errors


def validate_analysis(payload: object) -> list[str]:
    """Validate a full analysis payload including each phase object.

    Args:
        payload: Decoded JSON returned by the coach.

    Returns:
        List of validation error strings (empty = valid).
    """
    errors = validate_response(payload, ANALYSIS_SCHEMA)
    if errors and not isinstance(payload, dict):
        return errors

    for phase in PHASES:
        phase_value = payload.get(phase)
        if not isinstance(phase_value, dict):
            continue
        errors.extend(validate_response(phase_value, PHASE_SCHEMA, prefix=f"{phase}."))
        score = phase_value.get("score")
        # json.loads accepts NaN and Infinity
        if isinstance(score, float) and not math.isfinite(score):
            errors.append(f"Key '{phase}.score': expected a finite number, got {score}")
        phase_errors = phase_value.get("errors")
        if isinstance(phase_errors, list) and not all(isinstance(e, str) for e in phase_errors):
            errors.append(f"Key '{phase}.errors': expected list of str")

    books = payload.get("referencedBooks")
    if isinstance(books, list) and not all(isinstance(b, str) for b in books):
        errors.append("Key 'referencedBooks': expected list of str")

    return errors
