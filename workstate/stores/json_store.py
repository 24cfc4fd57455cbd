"""Score store persisted as a versioned JSON document."""

from __future__ import annotations

import json
import os
from pathlib import Path
from typing import Any

from ..logging import get_logger
from ..models import ClassificationScore, CostLogEntry, WorkUnit, format_timestamp, parse_timestamp
from .memory import InMemoryScoreStore

_STORE_VERSION = 1


class JsonScoreStore(InMemoryScoreStore):
    """In-memory store that loads from and persists to a JSON file."""

    def __init__(self, path: Path) -> None:
        super().__init__()
        self._path = path
        self._dirty = False
        self.logger = get_logger("stores.json")
        self._load(path)

    @property
    def path(self) -> Path:
        return self._path

    @property
    def dirty(self) -> bool:
        return self._dirty

    def upsert_unit(self, unit: WorkUnit) -> None:
        super().upsert_unit(unit)
        self._touch()

    def persist(self) -> None:
        with self._lock:
            if not self._dirty:
                return
            payload = {
                "version": _STORE_VERSION,
                "units": [unit.to_dict() for unit in self._units.values()],
                "scores": [score.to_dict() for score in self._scores.values()],
                "analyzed": {
                    unit_id: format_timestamp(at) for unit_id, at in self._analyzed.items()
                },
                "cost_log": [entry.to_dict() for entry in self._costs],
            }
            self._path.parent.mkdir(parents=True, exist_ok=True)
            temp_path = self._path.with_name(self._path.name + ".tmp")
            temp_path.write_text(json.dumps(payload, indent=2, sort_keys=True), encoding="utf-8")
            os.replace(temp_path, self._path)
            self._dirty = False

    def _touch(self) -> None:
        self._dirty = True

    # ------------------------------------------------------------------
    # Internal helpers

    def _load(self, path: Path) -> None:
        try:
            data = json.loads(path.read_text(encoding="utf-8"))
        except FileNotFoundError:
            return
        except (OSError, json.JSONDecodeError) as exc:
            self.logger.warning("Ignoring unreadable store %s: %s", path, exc)
            return
        if not isinstance(data, dict) or data.get("version") != _STORE_VERSION:
            self.logger.warning("Ignoring store %s with unsupported version", path)
            return

        for raw in _as_list(data.get("units")):
            unit = _safe(WorkUnit.from_dict, raw)
            if unit is not None:
                self._units[unit.id] = unit
        for raw in _as_list(data.get("scores")):
            score = _safe(ClassificationScore.from_dict, raw)
            if score is not None:
                self._scores[score.unit_id] = score
        analyzed = data.get("analyzed")
        if isinstance(analyzed, dict):
            for unit_id, raw in analyzed.items():
                at = parse_timestamp(raw)
                if isinstance(unit_id, str) and at is not None:
                    self._analyzed[unit_id] = at
        for raw in _as_list(data.get("cost_log")):
            entry = _safe(CostLogEntry.from_dict, raw)
            if entry is not None:
                self._costs.append(entry)
        self._dirty = False


def _as_list(value: Any) -> list:
    return value if isinstance(value, list) else []


def _safe(factory: Any, payload: object) -> Any:
    if not isinstance(payload, dict):
        return None
    try:
        return factory(payload)
    except (KeyError, TypeError, ValueError):
        return None


__all__ = ["JsonScoreStore"]
