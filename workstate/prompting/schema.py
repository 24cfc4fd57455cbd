"""JSON schema for the structured model response."""

from __future__ import annotations

from typing import Any, Dict

from ..models import ProgressState, SignalType

SCHEMA_NAME = "progress_analysis"


def analysis_schema() -> Dict[str, Any]:
    item = {
        "type": "object",
        "properties": {
            "unit_id": {"type": "string"},
            "state": {"type": "string", "enum": [state.value for state in ProgressState]},
            "confidence": {"type": "number", "minimum": 0, "maximum": 1},
            "reasoning": {"type": "string"},
            "last_activity": {"type": ["string", "null"]},
            "signals_considered": {
                "type": "array",
                "items": {"type": "string", "enum": [kind.value for kind in SignalType]},
            },
        },
        "required": [
            "unit_id",
            "state",
            "confidence",
            "reasoning",
            "last_activity",
            "signals_considered",
        ],
        "additionalProperties": False,
    }
    return {
        "type": "object",
        "properties": {"analyses": {"type": "array", "items": item}},
        "required": ["analyses"],
        "additionalProperties": False,
    }


def response_format() -> Dict[str, Any]:
    """``response_format`` payload for OpenAI-compatible chat completions."""
    return {
        "type": "json_schema",
        "json_schema": {"name": SCHEMA_NAME, "strict": True, "schema": analysis_schema()},
    }


__all__ = ["SCHEMA_NAME", "analysis_schema", "response_format"]
