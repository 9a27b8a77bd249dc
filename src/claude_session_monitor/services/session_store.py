"""Central session state coordinator.

Every mutation of tracked sessions goes through :meth:`SessionStore.process`,
one event at a time, on the thread that owns the store. Other threads hand
events over with :meth:`SessionStore.submit`.
"""

import copy
import logging
from collections import deque
from datetime import datetime
from typing import Callable, Optional

from PySide6.QtCore import QObject, Signal, Slot, QThread

from claude_session_monitor.services import permission_queue
from claude_session_monitor.services.activity import derive_thinking_state, latch_turn_end, turn_appears_done
from claude_session_monitor.services.chat_items import (
    apply_messages,
    collect_valid_ids,
    ensure_tool_item,
    interrupt_running,
    reconcile,
    set_subagent_tools,
    update_tool_status,
)
from claude_session_monitor.services.conversation_parser import TranscriptSource
from claude_session_monitor.services.file_watcher import FileWatcher
from claude_session_monitor.services.git_resolver import resolve_git_branch, resolve_repo_name
from claude_session_monitor.services.permission_queue import Resolution
from claude_session_monitor.services.sync_scheduler import DEFAULT_DEBOUNCE_MS, SyncScheduler
from claude_session_monitor.services.window_focus import WindowFocuser
from claude_session_monitor.types.chat import SubagentToolCall, ToolStatus
from claude_session_monitor.types.events import (
    ClearDetected,
    FileUpdated,
    HistoryLoaded,
    HookEvent,
    HookReceived,
    InterruptDetected,
    LoadHistory,
    PermissionApproved,
    PermissionChannelFailed,
    PermissionDenied,
    SessionEnded,
    SessionEvent,
    SubagentStarted,
    SubagentStopped,
    SubagentToolCompleted,
    SubagentToolExecuted,
    ToolCompleted,
    ToolCompletionResult,
)
from claude_session_monitor.types.phases import Phase, PhaseKind
from claude_session_monitor.types.sessions import SessionState, SubagentState, utcnow

logger = logging.getLogger(__name__)

DEFAULT_RECONCILE_GRACE_S = 2.0


class _HistoryWorker(QThread):
    """Background thread for the full parse of a session transcript."""

    loaded = Signal(object, object)  # worker, HistoryLoaded

    def __init__(self, parser: TranscriptSource, session_id: str, cwd: str, parent=None):
        super().__init__(parent)
        self._parser = parser
        self.session_id = session_id
        self.cwd = cwd

    def run(self):
        try:
            result = self._parser.parse_full(self.session_id, self.cwd)
            event = HistoryLoaded(
                session_id=self.session_id,
                messages=result.all_messages,
                completed_tool_ids=result.completed_tool_ids,
                tool_results=result.tool_results,
                structured_results=result.structured_results,
                conversation_info=self._parser.conversation_info(self.session_id),
                active_todo=self._parser.active_todo(self.session_id),
            )
        except Exception:
            logger.exception("Worker failed to load history for %s", self.session_id)
            return
        self.loaded.emit(self, event)


class SessionStore(QObject):
    """Single writer for every tracked session."""

    sessions_changed = Signal(list)  # list[SessionState], deep copies
    _submitted = Signal(object)

    def __init__(
        self,
        parser: TranscriptSource,
        debounce_ms: int = DEFAULT_DEBOUNCE_MS,
        reconcile_grace_s: float = DEFAULT_RECONCILE_GRACE_S,
        clock: Callable[[], datetime] = utcnow,
        watcher: Optional[FileWatcher] = None,
        focuser: Optional[WindowFocuser] = None,
        branch_resolver: Callable[[str], str] = resolve_git_branch,
        repo_name_resolver: Callable[[str], str] = resolve_repo_name,
        parent=None,
    ):
        super().__init__(parent)
        self._parser = parser
        self._clock = clock
        self._reconcile_grace_s = reconcile_grace_s
        self._watcher = watcher
        self._focuser = focuser
        self._branch_resolver = branch_resolver
        self._repo_name_resolver = repo_name_resolver

        self._sessions: dict[str, SessionState] = {}
        self._queue: deque[SessionEvent] = deque()
        self._draining = False
        self._history_workers: dict[str, _HistoryWorker] = {}

        self._scheduler = SyncScheduler(parser, self.process, debounce_ms, self)

        self._handlers: dict[type, Callable] = {
            HookReceived: self._on_hook,
            PermissionApproved: self._on_permission_approved,
            PermissionDenied: self._on_permission_denied,
            PermissionChannelFailed: self._on_permission_channel_failed,
            FileUpdated: self._on_file_updated,
            InterruptDetected: self._on_interrupt,
            ClearDetected: self._on_clear,
            SessionEnded: self._on_session_ended,
            LoadHistory: self._on_load_history,
            HistoryLoaded: self._on_history_loaded,
            ToolCompleted: self._on_tool_completed,
            SubagentStarted: self._on_subagent_started,
            SubagentStopped: self._on_subagent_stopped,
            SubagentToolExecuted: self._on_subagent_tool_executed,
            SubagentToolCompleted: self._on_subagent_tool_completed,
        }

        self._submitted.connect(self.process)
        if self._watcher is not None:
            self._watcher.transcript_changed.connect(self.notify_file_changed)

    @property
    def scheduler(self) -> SyncScheduler:
        return self._scheduler

    # ------------------------------------------------------------------
    # Event entry points
    # ------------------------------------------------------------------

    def submit(self, event: SessionEvent):
        """Hand an event to the store from any thread."""
        self._check_event_type(event)
        self._submitted.emit(event)

    @Slot(object)
    def process(self, event: SessionEvent):
        """Apply an event on the store's thread.

        Events submitted while another one is being applied are queued and
        applied afterwards, in order.
        """
        self._check_event_type(event)
        self._queue.append(event)
        if self._draining:
            return
        self._draining = True
        try:
            while self._queue:
                self._apply(self._queue.popleft())
        finally:
            self._draining = False

    def _check_event_type(self, event):
        if type(event) not in self._handlers:
            raise TypeError(f"Unsupported session event: {type(event).__name__}")

    def _apply(self, event: SessionEvent):
        handler = self._handlers[type(event)]
        try:
            handler(event)
        except Exception:
            logger.exception("Failed to apply %s", type(event).__name__)
        self.sessions_changed.emit(self.snapshot())

    # ------------------------------------------------------------------
    # Convenience API
    # ------------------------------------------------------------------

    def handle_hook(self, data: dict):
        self.process(HookReceived(HookEvent.from_dict(data)))

    def approve(self, session_id: str, tool_use_id: str):
        self.process(PermissionApproved(session_id, tool_use_id))

    def deny(self, session_id: str, tool_use_id: str, reason: Optional[str] = None):
        self.process(PermissionDenied(session_id, tool_use_id, reason))

    def approval_failed(self, session_id: str, tool_use_id: str):
        self.process(PermissionChannelFailed(session_id, tool_use_id))

    def end_session(self, session_id: str):
        self.process(SessionEnded(session_id))

    def load_history(self, session_id: str, cwd: Optional[str] = None):
        session = self._sessions.get(session_id)
        if cwd is None:
            cwd = session.cwd if session else ""
        self.process(LoadHistory(session_id, cwd))

    @Slot(str)
    def notify_file_changed(self, session_id: str):
        """Transcript of a session changed on disk."""
        session = self._sessions.get(session_id)
        if session is not None:
            self._scheduler.schedule(session_id, session.cwd)

    def focus_session(self, session_id: str) -> bool:
        session = self._sessions.get(session_id)
        if session is None or self._focuser is None:
            return False
        if session.pid is not None and self._focuser.focus_pid(session.pid):
            return True
        return self._focuser.focus_directory(session.cwd)

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    def session(self, session_id: str) -> Optional[SessionState]:
        session = self._sessions.get(session_id)
        return copy.deepcopy(session) if session is not None else None

    def all_sessions(self) -> list[SessionState]:
        return self.snapshot()

    def snapshot(self) -> list[SessionState]:
        ordered = sorted(self._sessions.values(), key=lambda s: (s.project_name, s.session_id))
        return copy.deepcopy(ordered)

    def has_active_permission(self, session_id: str) -> bool:
        session = self._sessions.get(session_id)
        return session is not None and session.active_permission is not None

    def cleanup(self):
        """Stop timers, workers and file watching."""
        self._scheduler.cancel_all()
        for worker in list(self._history_workers.values()):
            worker.quit()
            worker.wait(2000)
        self._history_workers.clear()
        if self._watcher is not None:
            self._watcher.stop()

    # ------------------------------------------------------------------
    # Phase handling
    # ------------------------------------------------------------------

    def _transition(self, session: SessionState, proposed: Phase) -> bool:
        current = session.phase
        if not current.can_transition_to(proposed):
            logger.debug(
                "Invalid transition %s -> %s for %s, ignoring",
                current, proposed, session.session_id[:8],
            )
            return False
        if current == proposed:
            return False

        # Entering processing from any other phase starts a new turn
        if proposed.kind == PhaseKind.PROCESSING and current.kind != PhaseKind.PROCESSING:
            session.turn_end_time = None
            session.conversation_info = session.conversation_info.for_new_turn()
        if proposed.kind == PhaseKind.WAITING_FOR_INPUT:
            session.current_todo_active_form = None

        session.phase = proposed
        logger.debug("Session %s: %s -> %s", session.session_id[:8], current, proposed)
        return True

    def _lookup(self, session_id: str, event_name: str) -> Optional[SessionState]:
        session = self._sessions.get(session_id)
        if session is None:
            logger.debug("%s for unknown session %s, ignoring", event_name, session_id[:8])
        return session

    # ------------------------------------------------------------------
    # Hook events
    # ------------------------------------------------------------------

    def _on_hook(self, event: HookReceived):
        hook = event.hook
        if not hook.session_id:
            logger.debug("Hook %s without session id, ignoring", hook.event)
            return
        now = self._clock()

        if hook.status == "ended" or hook.event == "SessionEnd":
            if hook.session_id in self._sessions:
                self._end_session(hook.session_id)
            return

        session = self._sessions.get(hook.session_id)
        if session is None:
            session = self._create_session(hook, now)
        self._update_identity(session, hook, now)

        proposed = hook.determine_phase(now)
        if proposed is not None:
            if proposed.kind == PhaseKind.WAITING_FOR_APPROVAL and not hook.tool_use_id:
                logger.debug("Approval status without tool id for %s", session.session_id[:8])
                proposed = None
            elif proposed.kind == PhaseKind.PROCESSING and self._approval_still_pending(session):
                proposed = None
        if proposed is not None:
            self._transition(session, proposed)

        if hook.tool_use_id and (hook.event == "PermissionRequest" or hook.status == "waiting_for_approval"):
            permission_queue.record_request(
                session, hook.tool_use_id, hook.tool or "unknown", hook.tool_input, now,
            )

        self._track_tool(session, hook, now)
        self._track_subagent(session, hook, now)

        if hook.event == "Stop":
            self._handle_stop(session, now)

        settled = permission_queue.settle_active_approval(session)
        if settled is not None:
            self._transition(session, settled)

        if hook.should_sync_file:
            self._scheduler.schedule(session.session_id, session.cwd)

    def _create_session(self, hook: HookEvent, now: datetime) -> SessionState:
        session = SessionState(
            session_id=hook.session_id,
            cwd=hook.cwd,
            project_name=self._repo_name_resolver(hook.cwd) or hook.cwd,
            git_branch=hook.git_branch or self._branch_resolver(hook.cwd) or None,
            created_at=now,
            last_activity=now,
        )
        path = self._parser.transcript_path(hook.session_id, hook.cwd)
        session.transcript_path = str(path)
        self._sessions[hook.session_id] = session
        if self._watcher is not None:
            self._watcher.watch_session(hook.session_id, str(path))
        logger.info("Tracking session %s in %s", hook.session_id[:8], session.project_name)
        return session

    @staticmethod
    def _update_identity(session: SessionState, hook: HookEvent, now: datetime):
        if hook.pid is not None:
            session.pid = hook.pid
        if hook.tty:
            session.tty = hook.tty.replace("/dev/", "")
        if hook.git_branch:
            session.git_branch = hook.git_branch
        session.last_activity = now

    @staticmethod
    def _approval_still_pending(session: SessionState) -> bool:
        ctx = session.active_permission
        if ctx is None:
            return False
        item = session.find_item(ctx.tool_use_id)
        return item is not None and item.tool_status == ToolStatus.WAITING_FOR_APPROVAL

    def _track_tool(self, session: SessionState, hook: HookEvent, now: datetime):
        tool_id = hook.tool_use_id
        if not tool_id:
            return
        tool_name = hook.tool or "unknown"

        if hook.event == "PreToolUse":
            session.tool_tracker.start_tool(tool_id, tool_name, now)
            if tool_name != "Task" and session.has_active_subagent:
                # Belongs under its Task, not at top level
                session.subagent_state.add_tool(SubagentToolCall(
                    id=tool_id,
                    name=tool_name,
                    input=dict(hook.tool_input or {}),
                    status=ToolStatus.RUNNING,
                    timestamp=now,
                ))
                return
            ensure_tool_item(session, tool_id, tool_name, hook.tool_input, now)

        elif hook.event == "PostToolUse":
            session.tool_tracker.complete_tool(tool_id)
            permission_queue.clear_request(session, tool_id)
            if session.subagent_state.update_tool_status(tool_id, ToolStatus.SUCCESS):
                return
            item = session.find_item(tool_id)
            if item is not None and item.tool_status in (ToolStatus.RUNNING, ToolStatus.WAITING_FOR_APPROVAL):
                update_tool_status(session, tool_id, ToolStatus.SUCCESS)

    def _track_subagent(self, session: SessionState, hook: HookEvent, now: datetime):
        if hook.tool != "Task" or not hook.tool_use_id:
            if hook.event == "SubagentStop":
                logger.debug("SubagentStop for %s", session.session_id[:8])
            return
        if hook.event == "PreToolUse":
            tool_input = hook.tool_input or {}
            session.subagent_state.start_task(
                hook.tool_use_id,
                description=tool_input.get("description"),
                agent_type=tool_input.get("subagent_type"),
                now=now,
            )
        elif hook.event == "PostToolUse":
            self._stop_task(session, hook.tool_use_id)

    def _handle_stop(self, session: SessionState, now: datetime):
        descriptions = session.subagent_state.agent_descriptions
        session.subagent_state = SubagentState(agent_descriptions=descriptions)
        info = session.conversation_info
        session.conversation_info = info.with_thinking(False, info.last_thinking_text)
        session.current_todo_active_form = None
        if session.turn_end_time is None and info.turn_start_time is not None:
            session.turn_end_time = now

    # ------------------------------------------------------------------
    # Approval events
    # ------------------------------------------------------------------

    def _resolve(self, session_id: str, tool_use_id: str, resolution: Resolution, event_name: str):
        session = self._lookup(session_id, event_name)
        if session is None:
            return
        next_phase = permission_queue.resolve_request(session, tool_use_id, resolution)
        if next_phase is not None:
            self._transition(session, next_phase)

    def _on_permission_approved(self, event: PermissionApproved):
        self._resolve(event.session_id, event.tool_use_id, Resolution.APPROVED, "PermissionApproved")

    def _on_permission_denied(self, event: PermissionDenied):
        if event.reason:
            logger.info("Tool %s denied: %s", event.tool_use_id[:12], event.reason)
        self._resolve(event.session_id, event.tool_use_id, Resolution.DENIED, "PermissionDenied")

    def _on_permission_channel_failed(self, event: PermissionChannelFailed):
        self._resolve(event.session_id, event.tool_use_id, Resolution.CHANNEL_FAILED, "PermissionChannelFailed")

    # ------------------------------------------------------------------
    # Transcript events
    # ------------------------------------------------------------------

    def _on_file_updated(self, event: FileUpdated):
        payload = event.payload
        session = self._lookup(payload.session_id, "FileUpdated")
        if session is None:
            return
        now = self._clock()

        info = payload.conversation_info or session.conversation_info
        is_thinking, thinking_text = derive_thinking_state(payload.all_messages)
        if session.phase.kind == PhaseKind.WAITING_FOR_INPUT:
            is_thinking = False
        session.conversation_info = info.with_thinking(is_thinking, thinking_text)
        session.current_todo_active_form = payload.active_todo

        if session.needs_clear_reconciliation:
            dropped = reconcile(session, collect_valid_ids(payload.messages), now, self._reconcile_grace_s)
            session.needs_clear_reconciliation = False
            logger.info("Clear reconciliation for %s dropped %d items", session.session_id[:8], dropped)
            for tool_id in list(session.open_requests):
                if session.find_item(tool_id) is None:
                    permission_queue.clear_request(session, tool_id)
            settled = permission_queue.settle_active_approval(session)
            if settled is not None:
                self._transition(session, settled)

        apply_messages(session, payload.messages)
        self._populate_subagent_tools(session, payload.subagent_tools, payload.structured_results)
        self._apply_completions(
            session, payload.completed_tool_ids, payload.tool_results, payload.structured_results,
        )

        session.tool_tracker.last_sync_offset = payload.offset
        session.tool_tracker.last_sync_time = now

        done = turn_appears_done(session)
        if session.phase.kind == PhaseKind.PROCESSING and done:
            if self._transition(session, Phase.waiting_for_input()):
                logger.debug("Turn of %s looks complete, waiting for input", session.session_id[:8])
        latch_turn_end(session, now)

    def _populate_subagent_tools(
        self,
        session: SessionState,
        subagent_tools: dict[str, list[SubagentToolCall]],
        structured_results: dict[str, dict],
    ):
        for task_tool_id, tools in subagent_tools.items():
            item = session.find_item(task_tool_id)
            if item is None or not item.is_tool_call:
                continue
            structured = structured_results.get(task_tool_id) or {}
            agent_id = structured.get("agentId")
            if agent_id:
                task = session.subagent_state.active_tasks.get(task_tool_id)
                description = (task.description if task else None) or item.tool.input.get("description")
                if description:
                    session.subagent_state.agent_descriptions[agent_id] = description
            set_subagent_tools(session, task_tool_id, tools)

    def _apply_completions(self, session: SessionState, completed_ids, tool_results, structured_results):
        for item in list(session.chat_items):
            if not item.is_tool_call or item.id not in completed_ids:
                continue
            result = ToolCompletionResult.from_parser(
                tool_results.get(item.id), structured_results.get(item.id),
            )
            self._complete_tool(session, item.id, result)
        for tool_id in list(session.tool_tracker.in_progress):
            if tool_id in completed_ids:
                session.tool_tracker.complete_tool(tool_id)

    def _complete_tool(self, session: SessionState, tool_use_id: str, result: ToolCompletionResult) -> bool:
        item = session.find_item(tool_use_id)
        if item is None or not item.is_tool_call:
            return False
        if item.tool.status.is_terminal and item.tool.result is not None:
            return False
        if item.tool.status == ToolStatus.INTERRUPTED and result.status != ToolStatus.ERROR:
            return False

        update_tool_status(
            session, tool_use_id, result.status,
            result=result.result, structured_result=result.structured_result,
        )
        permission_queue.clear_request(session, tool_use_id)
        session.tool_tracker.complete_tool(tool_use_id)

        ctx = session.active_permission
        if ctx is not None and ctx.tool_use_id == tool_use_id:
            next_phase = permission_queue.next_phase_after(session, tool_use_id, Phase.processing())
            if next_phase is not None:
                self._transition(session, next_phase)
        return True

    def _on_tool_completed(self, event: ToolCompleted):
        session = self._lookup(event.session_id, "ToolCompleted")
        if session is not None:
            self._complete_tool(session, event.tool_use_id, event.result)

    def _on_interrupt(self, event: InterruptDetected):
        session = self._lookup(event.session_id, "InterruptDetected")
        if session is None:
            return
        session.subagent_state = SubagentState(agent_descriptions=session.subagent_state.agent_descriptions)
        session.tool_tracker.in_progress.clear()
        count = interrupt_running(session)
        self._transition(session, Phase.idle())
        logger.info("Interrupt in %s, %d tools stopped", session.session_id[:8], count)

    def _on_clear(self, event: ClearDetected):
        session = self._lookup(event.session_id, "ClearDetected")
        if session is None:
            return
        # The next transcript update drops what the clear removed
        session.needs_clear_reconciliation = True
        logger.info("/clear detected for %s", session.session_id[:8])

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    def _on_session_ended(self, event: SessionEnded):
        if self._lookup(event.session_id, "SessionEnded") is not None:
            self._end_session(event.session_id)

    def _end_session(self, session_id: str):
        session = self._sessions.pop(session_id)
        self._scheduler.cancel(session_id)
        worker = self._history_workers.pop(session_id, None)
        if worker is not None:
            logger.debug("Dropping history load for ended session %s", session_id[:8])
        if self._watcher is not None:
            self._watcher.unwatch_session(session_id)
        self._parser.clear_session(session_id, session.cwd)
        logger.info("Session %s ended", session_id[:8])

    def _on_load_history(self, event: LoadHistory):
        if self._lookup(event.session_id, "LoadHistory") is None:
            return
        if event.session_id in self._history_workers:
            logger.debug("Replacing history load for %s", event.session_id[:8])

        worker = _HistoryWorker(self._parser, event.session_id, event.cwd, self)
        worker.loaded.connect(self._on_worker_loaded)
        worker.finished.connect(worker.deleteLater)
        self._history_workers[event.session_id] = worker
        worker.start()

    @Slot(object, object)
    def _on_worker_loaded(self, worker: _HistoryWorker, event: HistoryLoaded):
        # Session ended or a newer load replaced this one
        if self._history_workers.get(event.session_id) is not worker:
            if event.session_id not in self._sessions:
                # The full parse refilled the cache after the session ended
                self._parser.clear_session(event.session_id, worker.cwd)
            return
        del self._history_workers[event.session_id]
        self.process(event)

    def _on_history_loaded(self, event: HistoryLoaded):
        session = self._lookup(event.session_id, "HistoryLoaded")
        if session is None:
            return
        if event.conversation_info is not None:
            session.conversation_info = event.conversation_info
        session.current_todo_active_form = event.active_todo
        for message in event.messages:
            for block in message.content:
                if block.tool_id:
                    session.tool_tracker.mark_seen(block.tool_id)
        apply_messages(session, event.messages)
        self._apply_completions(
            session, event.completed_tool_ids, event.tool_results, event.structured_results,
        )

    # ------------------------------------------------------------------
    # Delegated tasks
    # ------------------------------------------------------------------

    def _stop_task(self, session: SessionState, task_tool_id: str):
        task = session.subagent_state.stop_task(task_tool_id)
        if task is None or not task.subagent_tools:
            return
        item = session.find_item(task_tool_id)
        if item is not None and item.is_tool_call and not item.tool.subagent_tools:
            set_subagent_tools(session, task_tool_id, task.subagent_tools)

    def _on_subagent_started(self, event: SubagentStarted):
        session = self._lookup(event.session_id, "SubagentStarted")
        if session is not None:
            session.subagent_state.start_task(
                event.task_tool_id, event.description, event.agent_type, self._clock(),
            )

    def _on_subagent_stopped(self, event: SubagentStopped):
        session = self._lookup(event.session_id, "SubagentStopped")
        if session is not None:
            self._stop_task(session, event.task_tool_id)

    def _on_subagent_tool_executed(self, event: SubagentToolExecuted):
        session = self._lookup(event.session_id, "SubagentToolExecuted")
        if session is None:
            return
        if session.subagent_state.add_tool(event.tool, event.task_tool_id) is None:
            logger.debug("No active task for nested tool %s", event.tool.id[:12])

    def _on_subagent_tool_completed(self, event: SubagentToolCompleted):
        session = self._lookup(event.session_id, "SubagentToolCompleted")
        if session is not None:
            session.subagent_state.update_tool_status(event.tool_id, event.status)
