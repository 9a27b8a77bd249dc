"""Debounced transcript sync: coalesces bursts of signals into one parse."""

import logging
from typing import Callable

from PySide6.QtCore import QObject, QTimer

from claude_session_monitor.services.conversation_parser import TranscriptSource
from claude_session_monitor.types.chat import SubagentToolCall, ToolStatus
from claude_session_monitor.types.events import (
    ClearDetected,
    FileUpdated,
    FileUpdatePayload,
    SessionEvent,
)
from claude_session_monitor.types.messages import ParseResult
from claude_session_monitor.types.sessions import utcnow

logger = logging.getLogger(__name__)

DEFAULT_DEBOUNCE_MS = 100


class SyncScheduler(QObject):
    """One single-shot timer per session; a new request replaces the pending one."""

    def __init__(
        self,
        parser: TranscriptSource,
        submit: Callable[[SessionEvent], None],
        debounce_ms: int = DEFAULT_DEBOUNCE_MS,
        parent=None,
    ):
        super().__init__(parent)
        self._parser = parser
        self._submit = submit
        self._debounce_ms = debounce_ms
        self._timers: dict[str, QTimer] = {}
        self._cwds: dict[str, str] = {}

    @property
    def debounce_ms(self) -> int:
        return self._debounce_ms

    def set_debounce_ms(self, value: int):
        self._debounce_ms = max(0, value)

    def schedule(self, session_id: str, cwd: str):
        """(Re)start the debounce for a session."""
        self._cwds[session_id] = cwd
        timer = self._timers.get(session_id)
        if timer is not None:
            timer.stop()
        else:
            timer = QTimer(self)
            timer.setSingleShot(True)
            timer.timeout.connect(lambda: self._fire(session_id))
            self._timers[session_id] = timer

        timer.start(self._debounce_ms)
        logger.debug("Sync scheduled for %s in %dms", session_id[:8], self._debounce_ms)

    def cancel(self, session_id: str):
        self._cwds.pop(session_id, None)
        timer = self._timers.pop(session_id, None)
        if timer is not None:
            timer.stop()
            timer.deleteLater()

    def cancel_all(self):
        for session_id in list(self._timers):
            self.cancel(session_id)

    def is_pending(self, session_id: str) -> bool:
        timer = self._timers.get(session_id)
        return timer is not None and timer.isActive()

    def _fire(self, session_id: str):
        # Cancelled between the timeout being queued and delivered
        if session_id not in self._timers:
            return
        cwd = self._cwds[session_id]
        self.cancel(session_id)
        self.sync_now(session_id, cwd)

    def sync_now(self, session_id: str, cwd: str):
        """Parse immediately and submit the resulting events."""
        try:
            result = self._parser.parse_incremental(session_id, cwd)
        except Exception:
            logger.exception("Incremental parse failed for %s", session_id[:8])
            return

        if result.clear_detected:
            self._submit(ClearDetected(session_id=session_id))
        elif result.lines_read == 0:
            return

        self._submit(FileUpdated(payload=self.build_payload(session_id, cwd, result)))

    def build_payload(self, session_id: str, cwd: str, result: ParseResult) -> FileUpdatePayload:
        return FileUpdatePayload(
            session_id=session_id,
            cwd=cwd,
            messages=result.new_messages,
            all_messages=result.all_messages,
            is_incremental=not result.clear_detected,
            completed_tool_ids=result.completed_tool_ids,
            tool_results=result.tool_results,
            structured_results=result.structured_results,
            conversation_info=self._parser.conversation_info(session_id),
            active_todo=self._parser.active_todo(session_id),
            subagent_tools=self._read_subagent_tools(session_id, cwd, result.structured_results),
            offset=result.offset,
        )

    def _read_subagent_tools(
        self, session_id: str, cwd: str, structured_results: dict[str, dict],
    ) -> dict[str, list[SubagentToolCall]]:
        tools: dict[str, list[SubagentToolCall]] = {}
        for task_tool_id, structured in structured_results.items():
            agent_id = structured.get("agentId") if isinstance(structured, dict) else None
            if not agent_id:
                continue
            infos = self._parser.parse_subagent_tools(agent_id, session_id, cwd)
            if not infos:
                continue
            tools[task_tool_id] = [
                SubagentToolCall(
                    id=info.id,
                    name=info.name,
                    input=info.input,
                    status=ToolStatus.SUCCESS if info.is_completed else ToolStatus.RUNNING,
                    timestamp=info.timestamp or utcnow(),
                )
                for info in infos
            ]
        return tools
