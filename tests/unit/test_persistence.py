import json

import pytest

from error_handling import PersistenceError, TaskError
from models import ExecutePayload, ParsePayload, Task, TaskKind, TaskPriority, TaskResult, TaskStatus
from persistence import InMemoryStore, JsonFileStore, OrchestratorSnapshot, load_snapshot, save_snapshot
from tests.conftest import make_command


class BrokenStore:
    def get(self, key):
        raise OSError("disk unavailable")

    def set(self, key, value):
        raise OSError("disk unavailable")


def _snapshot():
    pending = Task(kind=TaskKind.PARSE, payload=ParsePayload(text="open example.com"), priority=TaskPriority.HIGH)
    running = Task(
        kind=TaskKind.EXECUTE,
        payload=ExecutePayload(commands=[make_command("click", selector="#go")], context_id="ctx-1"),
        status=TaskStatus.RUNNING,
        retries=1,
    )
    failed = TaskResult(
        task_id="task_1_abc",
        status=TaskStatus.FAILED,
        error=TaskError(code="PARSE_ERROR", message="parser down"),
        processing_time=0.5,
    )
    return OrchestratorSnapshot(task_queue=[pending], active_tasks=[running], task_history=[failed])


class TestStores:
    def test_in_memory_store_copies_values(self):
        store = InMemoryStore()
        value = {"items": [1, 2]}
        store.set("key", value)
        value["items"].append(3)

        assert store.get("key") == {"items": [1, 2]}
        assert store.get("missing") is None
        assert "key" in store

    def test_json_file_store(self, tmp_path):
        path = tmp_path / "state" / "tasks.json"
        store = JsonFileStore(str(path))

        store.set("a", {"x": 1})
        store.set("b", {"y": 2})

        assert JsonFileStore(str(path)).get("a") == {"x": 1}
        assert json.loads(path.read_text())["b"] == {"y": 2}

    def test_json_file_store_missing_file(self, tmp_path):
        assert JsonFileStore(str(tmp_path / "none.json")).get("a") is None


class TestSnapshot:
    def test_snapshot_survives_json_store(self, tmp_path):
        store = JsonFileStore(str(tmp_path / "tasks.json"))
        original = _snapshot()

        save_snapshot(store, "orchestrator", original)
        restored = load_snapshot(store, "orchestrator")

        assert restored.task_queue[0].id == original.task_queue[0].id
        assert restored.task_queue[0].priority == TaskPriority.HIGH
        assert restored.active_tasks[0].payload.commands[0].parameters.selector == "#go"
        assert restored.active_tasks[0].retries == 1
        assert restored.task_history[0].error.code == "PARSE_ERROR"

    def test_missing_snapshot(self):
        assert load_snapshot(InMemoryStore(), "orchestrator") is None

    def test_store_failures_become_persistence_errors(self):
        with pytest.raises(PersistenceError):
            save_snapshot(BrokenStore(), "orchestrator", _snapshot())
        with pytest.raises(PersistenceError):
            load_snapshot(BrokenStore(), "orchestrator")

    def test_corrupt_snapshot(self):
        store = InMemoryStore()
        store.set("orchestrator", {"task_queue": [{"kind": "teleport"}]})

        with pytest.raises(PersistenceError):
            load_snapshot(store, "orchestrator")
