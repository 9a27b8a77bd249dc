"""Per-session state owned by the session store."""

from dataclasses import dataclass, field, replace
from datetime import datetime, timezone
from typing import Optional

from claude_session_monitor.types.chat import ChatItem, SubagentToolCall, ToolStatus
from claude_session_monitor.types.phases import Phase, PermissionContext, PhaseKind


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


@dataclass
class ToolInProgress:
    id: str
    name: str
    start_time: datetime


@dataclass
class ToolTracker:
    """In-progress tools plus every tool id ever seen (for dedup)."""
    in_progress: dict[str, ToolInProgress] = field(default_factory=dict)
    seen_ids: set[str] = field(default_factory=set)
    last_sync_offset: int = 0
    last_sync_time: Optional[datetime] = None

    def mark_seen(self, tool_id: str) -> bool:
        """Mark a tool id as seen. Returns True if it was new."""
        if tool_id in self.seen_ids:
            return False
        self.seen_ids.add(tool_id)
        return True

    def has_seen(self, tool_id: str) -> bool:
        return tool_id in self.seen_ids

    def start_tool(self, tool_id: str, name: str, now: Optional[datetime] = None) -> bool:
        """Start tracking a tool. Duplicate starts are ignored."""
        if not self.mark_seen(tool_id):
            return False
        self.in_progress[tool_id] = ToolInProgress(
            id=tool_id, name=name, start_time=now or utcnow(),
        )
        return True

    def complete_tool(self, tool_id: str) -> Optional[ToolInProgress]:
        return self.in_progress.pop(tool_id, None)


@dataclass
class TaskContext:
    """A running Task tool and the tool calls made inside it."""
    task_tool_id: str
    start_time: datetime
    agent_id: Optional[str] = None
    description: Optional[str] = None
    agent_type: Optional[str] = None
    subagent_tools: list[SubagentToolCall] = field(default_factory=list)


@dataclass
class SubagentState:
    active_tasks: dict[str, TaskContext] = field(default_factory=dict)
    # Active task ids in arrival order, most recent last
    task_stack: list[str] = field(default_factory=list)
    agent_descriptions: dict[str, str] = field(default_factory=dict)

    @property
    def has_active_subagent(self) -> bool:
        return bool(self.active_tasks)

    @property
    def most_recent_task_id(self) -> Optional[str]:
        for task_id in reversed(self.task_stack):
            if task_id in self.active_tasks:
                return task_id
        return None

    @property
    def most_recent_task(self) -> Optional[TaskContext]:
        task_id = self.most_recent_task_id
        return self.active_tasks.get(task_id) if task_id else None

    def start_task(
        self,
        task_tool_id: str,
        description: Optional[str] = None,
        agent_type: Optional[str] = None,
        now: Optional[datetime] = None,
    ) -> bool:
        existing = self.active_tasks.get(task_tool_id)
        if existing is not None:
            # Duplicate start: fill in whatever the first signal lacked
            existing.description = existing.description or description
            existing.agent_type = existing.agent_type or agent_type
            return False
        self.active_tasks[task_tool_id] = TaskContext(
            task_tool_id=task_tool_id,
            start_time=now or utcnow(),
            description=description,
            agent_type=agent_type,
        )
        self.task_stack.append(task_tool_id)
        return True

    def stop_task(self, task_tool_id: str) -> Optional[TaskContext]:
        if task_tool_id in self.task_stack:
            self.task_stack.remove(task_tool_id)
        return self.active_tasks.pop(task_tool_id, None)

    def set_agent_id(self, agent_id: str, task_tool_id: str):
        task = self.active_tasks.get(task_tool_id)
        if task is None:
            return
        task.agent_id = agent_id
        if task.description:
            self.agent_descriptions[agent_id] = task.description

    def add_tool(self, tool: SubagentToolCall, task_tool_id: Optional[str] = None) -> Optional[str]:
        """Attach a nested tool call to a task.

        An explicit parent wins; otherwise the most recently started active
        task takes it. Returns the task id used, or None if no task is active.
        """
        target = task_tool_id if task_tool_id in self.active_tasks else self.most_recent_task_id
        if target is None:
            return None
        task = self.active_tasks[target]
        if any(t.id == tool.id for t in task.subagent_tools):
            return target
        task.subagent_tools.append(tool)
        return target

    def update_tool_status(self, tool_id: str, status: ToolStatus) -> bool:
        for task in self.active_tasks.values():
            for i, tool in enumerate(task.subagent_tools):
                if tool.id == tool_id:
                    task.subagent_tools[i] = replace(tool, status=status)
                    return True
        return False


@dataclass(frozen=True)
class ConversationInfo:
    """Summary derived from the transcript. Always replaced as a whole."""
    summary: Optional[str] = None
    last_message: Optional[str] = None
    last_message_role: Optional[str] = None
    last_tool_name: Optional[str] = None
    first_user_message: Optional[str] = None
    last_user_message_time: Optional[datetime] = None
    turn_start_time: Optional[datetime] = None
    turn_input_tokens: Optional[int] = None
    turn_output_tokens: Optional[int] = None
    turn_cache_read_tokens: Optional[int] = None
    is_thinking: bool = False
    last_thinking_text: Optional[str] = None
    last_text_output: Optional[str] = None

    def for_new_turn(self) -> "ConversationInfo":
        return replace(
            self,
            turn_input_tokens=None,
            turn_output_tokens=None,
            turn_cache_read_tokens=None,
            is_thinking=False,
            last_thinking_text=None,
            last_text_output=None,
        )

    def with_thinking(self, is_thinking: bool, thinking_text: Optional[str]) -> "ConversationInfo":
        return replace(self, is_thinking=is_thinking, last_thinking_text=thinking_text)


@dataclass
class SessionState:
    session_id: str
    cwd: str
    project_name: str
    git_branch: Optional[str] = None
    pid: Optional[int] = None
    tty: Optional[str] = None
    phase: Phase = field(default_factory=Phase.idle)
    chat_items: list[ChatItem] = field(default_factory=list)
    tool_tracker: ToolTracker = field(default_factory=ToolTracker)
    subagent_state: SubagentState = field(default_factory=SubagentState)
    conversation_info: ConversationInfo = field(default_factory=ConversationInfo)
    current_todo_active_form: Optional[str] = None
    needs_clear_reconciliation: bool = False
    # tool id -> tool name for every approval request whose channel is open
    open_requests: dict[str, str] = field(default_factory=dict)
    transcript_path: Optional[str] = None
    created_at: datetime = field(default_factory=utcnow)
    last_activity: datetime = field(default_factory=utcnow)
    turn_end_time: Optional[datetime] = None

    @property
    def id(self) -> str:
        return self.session_id

    # ------------------------------------------------------------------
    # Chat items
    # ------------------------------------------------------------------

    def index_of(self, item_id: str) -> Optional[int]:
        for i, item in enumerate(self.chat_items):
            if item.id == item_id:
                return i
        return None

    def find_item(self, item_id: str) -> Optional[ChatItem]:
        idx = self.index_of(item_id)
        return self.chat_items[idx] if idx is not None else None

    def sort_items(self):
        # Stable sort keeps arrival order for equal timestamps
        self.chat_items.sort(key=lambda item: item.timestamp)

    # ------------------------------------------------------------------
    # Phase / permission
    # ------------------------------------------------------------------

    @property
    def needs_attention(self) -> bool:
        return self.phase.needs_attention

    @property
    def active_permission(self) -> Optional[PermissionContext]:
        if self.phase.kind == PhaseKind.WAITING_FOR_APPROVAL:
            return self.phase.permission
        return None

    @property
    def has_pending_request(self) -> bool:
        return bool(self.open_requests)

    @property
    def pending_tool_id(self) -> Optional[str]:
        ctx = self.active_permission
        if ctx is not None:
            return ctx.tool_use_id
        return next(iter(self.open_requests), None)

    @property
    def pending_tool_name(self) -> Optional[str]:
        ctx = self.active_permission
        if ctx is not None:
            return ctx.tool_name
        tool_id = self.pending_tool_id
        return self.open_requests.get(tool_id) if tool_id else None

    @property
    def pending_tool_input(self) -> Optional[str]:
        ctx = self.active_permission
        return ctx.formatted_input if ctx else None

    # ------------------------------------------------------------------
    # Display helpers
    # ------------------------------------------------------------------

    @property
    def stable_id(self) -> str:
        if self.pid is not None:
            return f"{self.pid}-{self.session_id}"
        return self.session_id

    @property
    def project_branch_label(self) -> str:
        if self.git_branch:
            return f"{self.project_name}/{self.git_branch}"
        return self.project_name

    @property
    def title_detail(self) -> Optional[str]:
        return self.conversation_info.summary or self.conversation_info.first_user_message

    @property
    def display_title(self) -> str:
        detail = self.title_detail
        if detail:
            return f"{self.project_branch_label}: {detail}"
        return self.project_branch_label

    @property
    def window_hint(self) -> str:
        return self.conversation_info.summary or self.project_name

    # ------------------------------------------------------------------
    # Live activity
    # ------------------------------------------------------------------

    @property
    def current_tool_in_progress(self) -> Optional[ToolInProgress]:
        tools = self.tool_tracker.in_progress.values()
        return max(tools, key=lambda t: t.start_time) if tools else None

    @property
    def has_active_subagent(self) -> bool:
        return self.subagent_state.has_active_subagent

    @property
    def active_subagent_description(self) -> Optional[str]:
        task = self.subagent_state.most_recent_task
        return task.description if task else None

    @property
    def active_subagent_type(self) -> Optional[str]:
        task = self.subagent_state.most_recent_task
        return task.agent_type if task else None

    @property
    def subagent_current_tool(self) -> Optional[SubagentToolCall]:
        task = self.subagent_state.most_recent_task
        if task is None or not task.subagent_tools:
            return None
        for tool in reversed(task.subagent_tools):
            if tool.status == ToolStatus.RUNNING:
                return tool
        return task.subagent_tools[-1]

    @property
    def is_thinking(self) -> bool:
        return self.conversation_info.is_thinking

    @property
    def turn_total_tokens(self) -> Optional[int]:
        total = (self.conversation_info.turn_input_tokens or 0) + \
            (self.conversation_info.turn_output_tokens or 0)
        return total if total > 0 else None

    def turn_elapsed_seconds(self, now: Optional[datetime] = None) -> Optional[float]:
        start = self.conversation_info.turn_start_time
        if start is None:
            return None
        end = self.turn_end_time or now or utcnow()
        return (end - start).total_seconds()
