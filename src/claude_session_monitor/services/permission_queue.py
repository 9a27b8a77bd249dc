"""Outstanding approval requests of a session.

There is no explicit queue: the pending set is every tool-call ChatItem whose
status is still ``waitingForApproval``, scanned in timestamp order.
"""

import logging
from datetime import datetime
from enum import Enum
from typing import Any, Optional

from claude_session_monitor.services.chat_items import ensure_tool_item, update_tool_status
from claude_session_monitor.types.chat import ChatItem, ToolStatus
from claude_session_monitor.types.phases import Phase, PermissionContext, PhaseKind
from claude_session_monitor.types.sessions import SessionState

logger = logging.getLogger(__name__)


class Resolution(str, Enum):
    APPROVED = "approved"
    DENIED = "denied"
    CHANNEL_FAILED = "channel_failed"


def find_next_pending(session: SessionState, excluding: Optional[str] = None) -> Optional[ChatItem]:
    """First tool call still waiting for approval, oldest first."""
    for item in sorted(session.chat_items, key=lambda i: i.timestamp):
        if item.id == excluding:
            continue
        if item.is_tool_call and item.tool.status == ToolStatus.WAITING_FOR_APPROVAL:
            return item
    return None


def context_for(item: ChatItem) -> PermissionContext:
    return PermissionContext(
        tool_use_id=item.id,
        tool_name=item.tool.name if item.tool else "unknown",
        tool_input=dict(item.tool.input) if item.tool and item.tool.input else None,
        received_at=item.timestamp,
    )


def record_request(
    session: SessionState,
    tool_use_id: str,
    tool_name: str,
    tool_input: Optional[dict[str, Any]],
    now: datetime,
):
    """Mark a tool as waiting for approval and remember its open channel."""
    ensure_tool_item(session, tool_use_id, tool_name, tool_input, now)
    update_tool_status(session, tool_use_id, ToolStatus.WAITING_FOR_APPROVAL)
    session.open_requests[tool_use_id] = tool_name
    logger.info(
        "Approval requested for %s id:%s in session %s",
        tool_name, tool_use_id[:12], session.session_id[:8],
    )


def clear_request(session: SessionState, tool_use_id: str):
    """Close the open channel for exactly this tool id."""
    session.open_requests.pop(tool_use_id, None)


def resolve_request(session: SessionState, tool_use_id: str, resolution: Resolution) -> Optional[Phase]:
    """Apply an approve/deny/channel-failure to one request.

    Returns the phase the session should move to, or None to stay put.
    """
    status = ToolStatus.RUNNING if resolution == Resolution.APPROVED else ToolStatus.ERROR
    update_tool_status(session, tool_use_id, status)
    clear_request(session, tool_use_id)

    fallback = Phase.idle() if resolution == Resolution.CHANNEL_FAILED else Phase.processing()
    return next_phase_after(session, tool_use_id, fallback)


def next_phase_after(session: SessionState, resolved_id: str, fallback: Phase) -> Optional[Phase]:
    """Phase after ``resolved_id`` stopped being pending.

    An active context for a different, still-pending tool is left alone.
    Otherwise the oldest remaining pending tool is promoted, or the session
    falls back when nothing is pending.
    """
    ctx = session.active_permission
    if ctx is not None and ctx.tool_use_id != resolved_id:
        active = session.find_item(ctx.tool_use_id)
        if active is not None and active.tool_status == ToolStatus.WAITING_FOR_APPROVAL:
            return None

    next_item = find_next_pending(session, excluding=resolved_id)
    if next_item is not None:
        return Phase.waiting_for_approval(context_for(next_item))
    if session.phase.kind == PhaseKind.WAITING_FOR_APPROVAL:
        return fallback
    return None


def settle_active_approval(session: SessionState) -> Optional[Phase]:
    """Replace an active context whose tool is no longer pending."""
    ctx = session.active_permission
    if ctx is None:
        return None
    item = session.find_item(ctx.tool_use_id)
    if item is not None and item.tool_status == ToolStatus.WAITING_FOR_APPROVAL:
        return None
    return next_phase_after(session, ctx.tool_use_id, Phase.processing())
