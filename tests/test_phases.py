"""Tests for claude_session_monitor.types.phases."""

import pytest

from claude_session_monitor.types.phases import Phase, PermissionContext, PhaseKind

from helpers import T0


def _ctx(tool_id="tool-a", name="Bash", tool_input=None):
    return PermissionContext(tool_use_id=tool_id, tool_name=name, tool_input=tool_input, received_at=T0)


ALL = [
    Phase.idle(),
    Phase.processing(),
    Phase.waiting_for_approval(_ctx()),
    Phase.waiting_for_input(),
    Phase.compacting(),
    Phase.ended(),
]


class TestForwardProgress:
    @pytest.mark.parametrize("src,dst", [
        (Phase.idle(), Phase.processing()),
        (Phase.processing(), Phase.waiting_for_approval(_ctx())),
        (Phase.waiting_for_approval(_ctx()), Phase.processing()),
        (Phase.processing(), Phase.waiting_for_input()),
        (Phase.processing(), Phase.compacting()),
        (Phase.compacting(), Phase.processing()),
    ])
    def test_always_legal(self, src, dst):
        assert src.can_transition_to(dst)


class TestRejected:
    @pytest.mark.parametrize("dst", ALL)
    def test_nothing_leaves_ended(self, dst):
        assert not Phase.ended().can_transition_to(dst)

    def test_approval_cannot_jump_to_compacting(self):
        assert not Phase.waiting_for_approval(_ctx()).can_transition_to(Phase.compacting())

    def test_compacting_cannot_jump_to_approval(self):
        assert not Phase.compacting().can_transition_to(Phase.waiting_for_approval(_ctx()))

    @pytest.mark.parametrize("src", ALL[:-1])
    def test_anything_live_can_end(self, src):
        assert src.can_transition_to(Phase.ended())


class TestSameKind:
    def test_next_approval_context_is_legal(self):
        a = Phase.waiting_for_approval(_ctx("tool-a"))
        b = Phase.waiting_for_approval(_ctx("tool-b"))
        assert a.can_transition_to(b)

    def test_processing_self_transition_is_legal(self):
        assert Phase.processing().can_transition_to(Phase.processing())


class TestAttention:
    def test_needs_attention(self):
        assert Phase.waiting_for_approval(_ctx()).needs_attention
        assert Phase.waiting_for_input().needs_attention
        assert not Phase.processing().needs_attention
        assert not Phase.idle().needs_attention

    def test_str_includes_tool(self):
        phase = Phase.waiting_for_approval(_ctx("toolu_0123456789abcdef", "Edit"))
        assert str(phase) == "waitingForApproval(Edit:toolu_012345)"
        assert str(Phase.idle()) == "idle"

    def test_kind_values(self):
        assert PhaseKind.WAITING_FOR_APPROVAL.value == "waitingForApproval"


class TestFormattedInput:
    def test_scalars_rendered(self):
        ctx = _ctx(tool_input={"command": "ls", "timeout": 5, "background": True, "nested": {"x": 1}})
        assert ctx.formatted_input == "command: ls\ntimeout: 5\nbackground: true"

    def test_empty_input(self):
        assert _ctx(tool_input=None).formatted_input is None
        assert _ctx(tool_input={"nested": {}}).formatted_input is None
