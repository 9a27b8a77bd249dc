"""Turn and activity inference from raw transcript/hook signals."""

import logging
from datetime import datetime
from typing import Optional

from claude_session_monitor.types.messages import BlockType, ChatMessage
from claude_session_monitor.types.phases import PhaseKind
from claude_session_monitor.types.sessions import SessionState

logger = logging.getLogger(__name__)


def derive_thinking_state(messages: list[ChatMessage]) -> tuple[bool, Optional[str]]:
    """Derive (is_actively_thinking, last_thinking_text) for the current turn.

    Walks back from the newest message until a user message. Thinking is
    active only when the newest assistant message *ends* with a thinking
    block; the text is the most recent thinking block of the turn.
    """
    last_thinking_text = None
    is_thinking = False
    first_assistant = True

    for message in reversed(messages):
        if message.is_user:
            break
        if not message.is_assistant:
            continue

        for block in reversed(message.content):
            if block.type == BlockType.THINKING:
                last_thinking_text = block.text
                break

        if first_assistant:
            if message.content and message.content[-1].type == BlockType.THINKING:
                is_thinking = True
            first_assistant = False

        if last_thinking_text is not None:
            break

    return is_thinking, last_thinking_text


def turn_appears_done(session: SessionState) -> bool:
    """Infer that the agent finished its turn without an explicit stop signal."""
    if session.conversation_info.last_message_role != "assistant":
        return False
    return not (
        session.is_thinking
        or session.current_tool_in_progress is not None
        or session.has_active_subagent
        or session.tool_tracker.in_progress
    )


def latch_turn_end(session: SessionState, now: datetime) -> bool:
    """Stamp the turn end once, when waiting for input with nothing running."""
    if session.turn_end_time is not None or session.conversation_info.turn_start_time is None:
        return False
    if session.phase.kind != PhaseKind.WAITING_FOR_INPUT or not turn_appears_done(session):
        return False
    session.turn_end_time = now
    return True
