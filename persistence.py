"""
Persistence adapters for orchestrator state.

The orchestrator snapshots its queue, active set and history after every
mutation and reloads them at start-up. Stores here implement the
KeyValueStore protocol; any failure surfaces as PersistenceError so the
orchestrator can log it and keep running in memory.
"""
from __future__ import annotations

import copy
import json
import os
import tempfile
import time
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, List, Optional

from collaborators import KeyValueStore
from error_handling import PersistenceError
from models.task_models import Task, TaskResult


SNAPSHOT_VERSION = "1.0"


class InMemoryStore:
    """Key-value store kept in a dict. Values are deep-copied in and out."""

    def __init__(self):
        self._data: Dict[str, Dict[str, Any]] = {}

    def get(self, key: str) -> Optional[Dict[str, Any]]:
        value = self._data.get(key)
        return copy.deepcopy(value) if value is not None else None

    def set(self, key: str, value: Dict[str, Any]) -> None:
        self._data[key] = copy.deepcopy(value)

    def __contains__(self, key: str) -> bool:
        return key in self._data


class JsonFileStore:
    """
    Key-value store backed by a single JSON file.

    Writes go to a temporary file first and are moved into place, so a crash
    mid-write never leaves a truncated file behind.
    """

    def __init__(self, filepath: str):
        self.path = Path(filepath)

    def _read_all(self) -> Dict[str, Any]:
        if not self.path.exists():
            return {}
        with open(self.path, "r", encoding="utf-8") as f:
            data = json.load(f)
        if not isinstance(data, dict):
            raise ValueError(f"Store file {self.path} does not contain a JSON object")
        return data

    def get(self, key: str) -> Optional[Dict[str, Any]]:
        return self._read_all().get(key)

    def set(self, key: str, value: Dict[str, Any]) -> None:
        data = self._read_all()
        data[key] = value
        self.path.parent.mkdir(parents=True, exist_ok=True)
        fd, tmp_path = tempfile.mkstemp(dir=str(self.path.parent), suffix=".tmp")
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as f:
                json.dump(data, f, indent=2, default=str)
            os.replace(tmp_path, self.path)
        except BaseException:
            if os.path.exists(tmp_path):
                os.remove(tmp_path)
            raise


@dataclass
class OrchestratorSnapshot:
    """Serializable copy of the orchestrator's queue, active set and history."""
    task_queue: List[Task] = field(default_factory=list)
    active_tasks: List[Task] = field(default_factory=list)
    task_history: List[TaskResult] = field(default_factory=list)
    saved_at: float = field(default_factory=time.time)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "version": SNAPSHOT_VERSION,
            "saved_at": self.saved_at,
            "task_queue": [t.to_dict() for t in self.task_queue],
            "active_tasks": [t.to_dict() for t in self.active_tasks],
            "task_history": [r.to_dict() for r in self.task_history],
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> OrchestratorSnapshot:
        return cls(
            task_queue=[Task.from_dict(t) for t in data.get("task_queue", [])],
            active_tasks=[Task.from_dict(t) for t in data.get("active_tasks", [])],
            task_history=[TaskResult.from_dict(r) for r in data.get("task_history", [])],
            saved_at=data.get("saved_at", time.time()),
        )


def save_snapshot(store: KeyValueStore, key: str, snapshot: OrchestratorSnapshot) -> None:
    try:
        store.set(key, snapshot.to_dict())
    except Exception as exc:
        raise PersistenceError(f"Failed to persist tasks: {exc}") from exc


def load_snapshot(store: KeyValueStore, key: str) -> Optional[OrchestratorSnapshot]:
    try:
        data = store.get(key)
        if not data:
            return None
        return OrchestratorSnapshot.from_dict(data)
    except Exception as exc:
        raise PersistenceError(f"Failed to load persisted tasks: {exc}") from exc
