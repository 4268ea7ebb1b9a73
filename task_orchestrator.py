"""
Task orchestrator for parse, validate and execute work.

A single dispatch loop ticks on a fixed interval and moves pending tasks into
the active set, never exceeding max_concurrent_tasks. Each dispatched task
then runs as its own asyncio task, so a task waiting on the parser or the
executor never holds up scheduling of the others.

All bookkeeping (queue, active set, history) happens on the event loop thread.

Example:
    >>> async with TaskOrchestrator(parser, executor, config=AssistantConfig()) as orchestrator:
    ...     result = await orchestrator.process_command("log in and open my dashboard")
    ...     result.status
    <TaskStatus.COMPLETED: 'completed'>
"""
from __future__ import annotations

import asyncio
import inspect
import logging
import time
from typing import Any, Dict, List, Mapping, Optional, Set, Union

from assistant_config import AssistantConfig, OrchestratorConfig
from collaborators import CommandExecutor, CommandParser, KeyValueStore
from command_validator import CommandValidator
from error_handling import (
    AssistantError,
    CommandExecutionError,
    OrchestratorNotRunningError,
    ParserError,
    PersistenceError,
    TaskBookkeepingError,
    TaskError,
    TaskTimeoutError,
    UnknownTaskKindError,
)
from models.command_models import (
    CommandCandidate,
    CommandContext,
    CommandExecutionResult,
    ExecutionReport,
    ParsingResult,
    PipelineOutcome,
    PipelineStatus,
)
from models.task_models import (
    PAYLOAD_TYPES,
    PipelinePayload,
    Task,
    TaskKind,
    TaskPayload,
    TaskPriority,
    TaskResult,
    TaskStatistics,
    TaskStatus,
    next_sequence,
)
from persistence import InMemoryStore, OrchestratorSnapshot, load_snapshot, save_snapshot
from task_history import TaskHistory
from task_queue import PendingTaskQueue
from utils.event_logger import EventCallback, EventLogger, TaskEventType

logger = logging.getLogger(__name__)


class TaskOrchestrator:
    """
    Priority queue plus bounded-concurrency dispatch of assistant tasks.

    Args:
        parser: Parser collaborator (free text -> ParsingResult)
        executor: Executor collaborator; when None, sanitized commands are
            reported as executed without touching a page
        validator: CommandValidator; built from the config when omitted
        store: Key-value store for snapshots; an InMemoryStore is used when
            persistence is enabled and no store is given
        config: AssistantConfig or OrchestratorConfig
        events: EventLogger to publish lifecycle events on
    """

    def __init__(
        self,
        parser: CommandParser,
        executor: Optional[CommandExecutor] = None,
        validator: Optional[CommandValidator] = None,
        store: Optional[KeyValueStore] = None,
        config: Union[AssistantConfig, OrchestratorConfig, None] = None,
        events: Optional[EventLogger] = None,
    ):
        if isinstance(config, AssistantConfig):
            assistant_config = config
        else:
            assistant_config = AssistantConfig(orchestrator=config or OrchestratorConfig())

        self.config: OrchestratorConfig = assistant_config.orchestrator
        self.parser = parser
        self.executor = executor
        self.validator = validator or CommandValidator(assistant_config.validator)
        self.store = store if store is not None else InMemoryStore()
        self.events = events or EventLogger(debug_mode=assistant_config.debug_mode)

        self._queue = PendingTaskQueue()
        self._active: Dict[str, Task] = {}
        self._retrying: Dict[str, Task] = {}
        self._history = TaskHistory(max_items=self.config.max_history)

        self._jobs: Dict[str, asyncio.Task] = {}
        # Jobs of cancelled tasks that may still be inside a collaborator call
        self._detached: Set[asyncio.Task] = set()
        self._retry_handles: Dict[str, asyncio.TimerHandle] = {}
        self._waiters: Dict[str, asyncio.Future] = {}
        self._started_at: Dict[str, float] = {}

        self._loop_task: Optional[asyncio.Task] = None
        self._dispatching = False
        self._warned_no_executor = False

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    @property
    def is_running(self) -> bool:
        return self._loop_task is not None and not self._loop_task.done()

    async def start(self) -> None:
        """Reload persisted state and start the dispatch loop."""
        if self.is_running:
            return
        self.load_persisted_tasks()
        self._loop_task = asyncio.create_task(self._dispatch_loop())
        logger.info("Task orchestrator started (max %d concurrent tasks)", self.config.max_concurrent_tasks)

    async def stop(self) -> None:
        """
        Stop dispatching.

        Running and retry-waiting tasks go back to the pending queue so a
        later start (or a reload from the store) picks them up again. Jobs of
        tasks cancelled while running are cancelled and awaited as well.
        """
        if self._loop_task is not None:
            self._loop_task.cancel()
            try:
                await self._loop_task
            except asyncio.CancelledError:
                pass
            self._loop_task = None

        for handle in self._retry_handles.values():
            handle.cancel()
        self._retry_handles.clear()

        jobs = list(self._jobs.values()) + list(self._detached)
        for job in jobs:
            job.cancel()
        if jobs:
            await asyncio.gather(*jobs, return_exceptions=True)
        self._jobs.clear()
        self._detached.clear()

        for task in list(self._active.values()) + list(self._retrying.values()):
            task.status = TaskStatus.PENDING
            if self._queue.get(task.id) is None:
                self._queue.push(task)
        self._active.clear()
        self._retrying.clear()
        self._started_at.clear()

        for task_id, waiter in list(self._waiters.items()):
            if not waiter.done():
                waiter.set_exception(OrchestratorNotRunningError(f"Orchestrator stopped before task {task_id} finished"))
        self._waiters.clear()

        self._persist()
        logger.info("Task orchestrator stopped")

    async def __aenter__(self) -> TaskOrchestrator:
        await self.start()
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        await self.stop()

    # ------------------------------------------------------------------
    # Public task API
    # ------------------------------------------------------------------

    def add_task(
        self,
        kind: Union[TaskKind, str],
        payload: Union[TaskPayload, Mapping[str, Any]],
        priority: Union[TaskPriority, str] = TaskPriority.NORMAL,
        timeout: Optional[float] = None,
    ) -> str:
        """
        Queue a new task.

        Args:
            kind: parse, validate, execute or pipeline
            payload: The payload matching the kind, or a mapping of its fields
            priority: critical, high, normal or low
            timeout: Seconds; defaults to config.task_timeout

        Returns:
            The new task id
        """
        kind = TaskKind(kind)
        if isinstance(payload, Mapping):
            payload = PAYLOAD_TYPES[kind].from_dict(dict(payload))
        task = Task(
            kind=kind,
            payload=payload,
            priority=TaskPriority(priority),
            timeout=timeout if timeout is not None else self.config.task_timeout,
        )
        self._queue.push(task)
        self.events.task_added(task.id, kind.value, task.priority.value)
        self._persist()
        return task.id

    def get_task_status(self, task_id: str) -> Optional[Task]:
        """Live (pending or running) task by id; terminal tasks live in history."""
        return self._active.get(task_id) or self._queue.get(task_id) or self._retrying.get(task_id)

    def get_task_result(self, task_id: str) -> Optional[TaskResult]:
        return self._history.find(task_id)

    def cancel_task(self, task_id: str) -> bool:
        """
        Cancel a pending or running task.

        Cancelling a running task only stops tracking it; work already handed
        to a collaborator is not interrupted and its outcome is discarded.
        """
        task = self._active.pop(task_id, None)
        if task is None:
            task = self._queue.remove(task_id)
        if task is None:
            task = self._retrying.pop(task_id, None)
            handle = self._retry_handles.pop(task_id, None)
            if handle is not None:
                handle.cancel()
        if task is None:
            return False

        previous = task.status
        task.status = TaskStatus.CANCELLED
        started = self._started_at.pop(task_id, None)
        self._detach_job(task_id)
        self._history.add(
            TaskResult(
                task_id=task_id,
                status=TaskStatus.CANCELLED,
                processing_time=time.perf_counter() - started if started is not None else 0.0,
            )
        )
        self.events.task_cancelled(task_id, previous.value)
        self._resolve_waiter(task)
        self._persist()
        return True

    def pending_tasks(self) -> List[Task]:
        """Queued tasks in dispatch order."""
        return self._queue.inspect()

    def active_tasks(self) -> List[Task]:
        return list(self._active.values())

    def get_history(self, limit: Optional[int] = None) -> List[TaskResult]:
        return self._history.entries(limit)

    async def wait_for_task(self, task_id: str, timeout: Optional[float] = None) -> TaskStatus:
        """
        Wait until a task reaches a terminal status.

        Woken once, on the terminal transition; no polling.
        """
        task = self.get_task_status(task_id)
        if task is None:
            recorded = self._history.find(task_id)
            if recorded is None:
                raise KeyError(task_id)
            return recorded.status

        waiter = self._waiters.get(task_id)
        if waiter is None:
            waiter = asyncio.get_running_loop().create_future()
            self._waiters[task_id] = waiter
        return await asyncio.wait_for(asyncio.shield(waiter), timeout)

    async def process_command(
        self,
        text: str,
        context: Union[CommandContext, Mapping[str, Any], None] = None,
        priority: Union[TaskPriority, str] = TaskPriority.NORMAL,
    ) -> TaskResult:
        """
        Run the full parse, validate and execute pipeline for one utterance.

        Returns:
            The terminal TaskResult (completed, failed or cancelled). A
            completed result carries a PipelineOutcome whose status tells
            completed, needs_clarification and validation_failed apart.
        """
        if not self.is_running:
            raise OrchestratorNotRunningError("Call start() before process_command()")
        if context is not None and not isinstance(context, CommandContext):
            context = CommandContext.model_validate(context)

        task_id = self.add_task(TaskKind.PIPELINE, PipelinePayload(text=text, context=context), priority)
        await self.wait_for_task(task_id)

        result = self._history.find(task_id)
        if result is None:
            logger.error("Task %s reached a terminal status but has no history entry", task_id)
            raise TaskBookkeepingError(f"Task result not found in history: {task_id}")
        return result

    def add_event_listener(self, event: Union[TaskEventType, str, None], listener: EventCallback) -> None:
        self.events.subscribe(listener, TaskEventType(event) if event is not None else None)

    def remove_event_listener(self, event: Union[TaskEventType, str, None], listener: EventCallback) -> bool:
        return self.events.unsubscribe(listener, TaskEventType(event) if event is not None else None)

    # ------------------------------------------------------------------
    # Statistics and housekeeping
    # ------------------------------------------------------------------

    def get_statistics(self) -> TaskStatistics:
        counts = self._history.count_by_status()
        return TaskStatistics(
            queue_length=len(self._queue) + len(self._retrying),
            active_tasks=len(self._active),
            completed_tasks=counts[TaskStatus.COMPLETED],
            failed_tasks=counts[TaskStatus.FAILED],
            cancelled_tasks=counts[TaskStatus.CANCELLED],
            average_processing_time=self._history.average_processing_time(TaskStatus.COMPLETED),
            total_processed=len(self._history),
        )

    def clear_history(self) -> None:
        self._history.clear()
        self._persist()

    def clear_all_tasks(self) -> None:
        """Drop every queued, active and retrying task and the history."""
        for handle in self._retry_handles.values():
            handle.cancel()
        self._retry_handles.clear()

        dropped = self._queue.inspect() + list(self._active.values()) + list(self._retrying.values())
        self._queue.clear()
        self._active.clear()
        self._retrying.clear()
        for task_id in list(self._jobs):
            self._detach_job(task_id)
        self._started_at.clear()
        self._history.clear()
        for task in dropped:
            task.status = TaskStatus.CANCELLED
            self._resolve_waiter(task)
        self._persist()

    def update_config(self, **changes: Any) -> OrchestratorConfig:
        """Apply and validate config changes; returns a copy of the new config."""
        self.config = OrchestratorConfig.model_validate({**self.config.model_dump(), **changes})
        self._history.resize(self.config.max_history)
        return self.get_config()

    def get_config(self) -> OrchestratorConfig:
        return self.config.model_copy(deep=True)

    # ------------------------------------------------------------------
    # Persistence
    # ------------------------------------------------------------------

    def load_persisted_tasks(self) -> None:
        """
        Restore queue and history from the store.

        Tasks that were running when the snapshot was taken are queued again.
        Failures are logged and the orchestrator continues in memory.
        """
        if not self.config.enable_persistence:
            return
        try:
            snapshot = load_snapshot(self.store, self.config.storage_key)
        except PersistenceError as exc:
            logger.warning("%s", exc)
            return
        if snapshot is None:
            return

        restored: Dict[str, Task] = {}
        for task in snapshot.task_queue + snapshot.active_tasks:
            if task.status.is_terminal or self.get_task_status(task.id) is not None:
                continue
            restored.setdefault(task.id, task)
        # Sequence numbers do not survive a restart; renumber in creation order
        for task in sorted(restored.values(), key=lambda task: task.created_at):
            task.status = TaskStatus.PENDING
            task.sequence = next_sequence()
            self._queue.push(task)
        if not len(self._history):
            self._history.replace(snapshot.task_history)
        logger.info(
            "Restored %d pending tasks and %d history entries", len(self._queue), len(self._history)
        )

    def _persist(self) -> None:
        if not self.config.enable_persistence:
            return
        snapshot = OrchestratorSnapshot(
            task_queue=self._queue.inspect() + list(self._retrying.values()),
            active_tasks=list(self._active.values()),
            task_history=self._history.entries(),
        )
        try:
            save_snapshot(self.store, self.config.storage_key, snapshot)
        except PersistenceError as exc:
            logger.warning("%s", exc)

    # ------------------------------------------------------------------
    # Dispatch
    # ------------------------------------------------------------------

    async def _dispatch_loop(self) -> None:
        while True:
            try:
                self._dispatch_once()
            except Exception:
                logger.exception("Dispatch pass failed")
            await asyncio.sleep(self.config.tick_interval)

    def _dispatch_once(self) -> int:
        """Move as many pending tasks into the active set as there are free slots."""
        if self._dispatching or not self._queue:
            return 0
        self._dispatching = True
        try:
            free_slots = self.config.max_concurrent_tasks - len(self._active)
            if free_slots <= 0:
                return 0
            tasks = self._queue.pop_many(free_slots)
            for task in tasks:
                task.status = TaskStatus.RUNNING
                self._active[task.id] = task
                self._started_at[task.id] = time.perf_counter()
                self._jobs[task.id] = asyncio.create_task(self._run_task(task))
            if tasks:
                self._persist()
            return len(tasks)
        finally:
            self._dispatching = False

    async def _run_task(self, task: Task) -> None:
        self.events.task_started(task.id, task.kind.value, task.retries)
        try:
            result = await self._handle(task)
        except Exception as exc:
            self._finish_failure(task, exc)
        else:
            self._finish_success(task, result)

    def _is_tracked(self, task: Task) -> bool:
        return task.status == TaskStatus.RUNNING and self._active.get(task.id) is task

    def _elapsed(self, task: Task) -> float:
        started = self._started_at.pop(task.id, None)
        return time.perf_counter() - started if started is not None else 0.0

    def _finish_success(self, task: Task, result: Any) -> None:
        if not self._is_tracked(task):
            logger.info("Discarding result of task %s (no longer tracked)", task.id)
            return
        elapsed = self._elapsed(task)
        del self._active[task.id]
        self._jobs.pop(task.id, None)

        task.status = TaskStatus.COMPLETED
        task.result = result
        task.error = None
        self._history.add(
            TaskResult(task_id=task.id, status=TaskStatus.COMPLETED, result=result, processing_time=elapsed)
        )
        self.events.task_completed(task.id, elapsed)
        self._resolve_waiter(task)
        self._persist()

    def _finish_failure(self, task: Task, exc: Exception) -> None:
        if not self._is_tracked(task):
            logger.info("Discarding failure of task %s (no longer tracked): %s", task.id, exc)
            return
        elapsed = self._elapsed(task)
        del self._active[task.id]
        self._jobs.pop(task.id, None)

        task.status = TaskStatus.FAILED
        task.error = TaskError.from_exception(exc)
        self._history.add(
            TaskResult(task_id=task.id, status=TaskStatus.FAILED, error=task.error, processing_time=elapsed)
        )

        will_retry = self.config.enable_retry and task.retries < self.config.max_retries
        logger.warning("Task %s failed (%s): %s", task.id, task.error.code, task.error.message)
        self.events.task_failed(task.id, task.error.message, will_retry, code=task.error.code)

        if will_retry:
            task.retries += 1
            task.status = TaskStatus.PENDING
            delay = self.config.retry_delay * task.retries
            self._retrying[task.id] = task
            self._retry_handles[task.id] = asyncio.get_running_loop().call_later(
                delay, self._requeue, task.id
            )
            self.events.task_retry_scheduled(task.id, task.retries, delay)
        else:
            self._resolve_waiter(task)
        self._persist()

    def _requeue(self, task_id: str) -> None:
        self._retry_handles.pop(task_id, None)
        task = self._retrying.pop(task_id, None)
        if task is None or task.status != TaskStatus.PENDING:
            return
        self._queue.push(task)
        self._persist()

    def _detach_job(self, task_id: str) -> None:
        """Stop tracking a job by task id but keep it referenced until it finishes."""
        job = self._jobs.pop(task_id, None)
        if job is not None and not job.done():
            self._detached.add(job)
            job.add_done_callback(self._detached.discard)

    def _resolve_waiter(self, task: Task) -> None:
        waiter = self._waiters.pop(task.id, None)
        if waiter is not None and not waiter.done():
            waiter.set_result(task.status)

    # ------------------------------------------------------------------
    # Task handlers
    # ------------------------------------------------------------------

    async def _handle(self, task: Task) -> Any:
        payload = task.payload
        if task.kind == TaskKind.PARSE:
            return await self._parse(payload.text, payload.context)
        if task.kind == TaskKind.VALIDATE:
            return self.validator.validate_batch(payload.commands, payload.context)
        if task.kind == TaskKind.EXECUTE:
            return await self._execute(payload.commands, task.timeout)
        if task.kind == TaskKind.PIPELINE:
            return await self._run_pipeline(payload, task.timeout)
        raise UnknownTaskKindError(f"Unknown task kind: {task.kind}")

    async def _run_pipeline(self, payload: PipelinePayload, timeout: float) -> PipelineOutcome:
        parsing = await self._parse(payload.text, payload.context)
        if parsing.requires_clarification:
            return PipelineOutcome(status=PipelineStatus.NEEDS_CLARIFICATION, parsing_result=parsing)

        validation = self.validator.validate_batch(parsing.commands, payload.context)
        if not validation.is_valid:
            return PipelineOutcome(
                status=PipelineStatus.VALIDATION_FAILED,
                parsing_result=parsing,
                validation_result=validation,
            )

        report = await self._execute(validation.sanitized_commands or [], timeout)
        return PipelineOutcome(
            status=PipelineStatus.COMPLETED,
            parsing_result=parsing,
            validation_result=validation,
            execution_result=report,
            executed_commands=report.executed_count,
        )

    async def _parse(self, text: str, context: Optional[CommandContext]) -> ParsingResult:
        try:
            outcome = self.parser.parse(text, context)
            if inspect.isawaitable(outcome):
                outcome = await outcome
            if isinstance(outcome, Mapping):
                outcome = ParsingResult.model_validate(outcome)
        except AssistantError:
            raise
        except Exception as exc:
            raise ParserError(f"Parser failed: {exc}", details={"text": text}) from exc

        if not isinstance(outcome, ParsingResult):
            raise ParserError(f"Parser returned {type(outcome).__name__}, expected ParsingResult")
        return outcome

    async def _execute(self, commands: List[CommandCandidate], timeout: float) -> ExecutionReport:
        if self.executor is None:
            if not self._warned_no_executor:
                logger.warning("No executor configured; commands are reported as executed without running")
                self._warned_no_executor = True
            return ExecutionReport(
                executed_count=len(commands),
                per_command_results=[
                    CommandExecutionResult(command_id=c.id, intent=c.intent.value, ok=True, message="dry run")
                    for c in commands
                ],
            )

        try:
            outcome = self.executor.execute(commands, timeout=timeout)
            if inspect.isawaitable(outcome):
                outcome = await asyncio.wait_for(outcome, timeout)
            if isinstance(outcome, Mapping):
                outcome = ExecutionReport.model_validate(outcome)
        except asyncio.TimeoutError as exc:
            raise TaskTimeoutError(f"Execution exceeded the {timeout}s task timeout") from exc
        except AssistantError:
            raise
        except Exception as exc:
            raise CommandExecutionError(f"Executor failed: {exc}") from exc

        if not isinstance(outcome, ExecutionReport):
            raise CommandExecutionError(f"Executor returned {type(outcome).__name__}, expected ExecutionReport")
        return outcome
