import pytest

from guard_agent.models import ArmState, Notice, NoticeKind, OrchestratorPhase, RemoteAlarmState
from guard_agent.state import GuardStateStore


def test_update_notifies_subscribers():
    store = GuardStateStore()
    seen = []
    store.subscribe(lambda state: seen.append(state.arm_state))

    store.update(arm_state=ArmState.ARMED)

    assert seen == [ArmState.ARMED]
    assert store.state.arm_state is ArmState.ARMED


def test_update_rejects_unknown_fields():
    store = GuardStateStore()

    with pytest.raises(AttributeError, match="armed"):
        store.update(armed=True)


def test_unsubscribe_stops_notifications():
    store = GuardStateStore()
    seen = []
    unsubscribe = store.subscribe(lambda state: seen.append(state.phase))

    store.update(phase=OrchestratorPhase.TRIGGERING)
    unsubscribe()
    unsubscribe()
    store.update(phase=OrchestratorPhase.IDLE)

    assert seen == [OrchestratorPhase.TRIGGERING]


def test_broken_listener_does_not_block_others():
    store = GuardStateStore()
    seen = []

    def broken(state):
        raise RuntimeError("ui gone")

    store.subscribe(broken)
    store.subscribe(lambda state: seen.append(state.camera_active))

    store.update(camera_active=True)

    assert seen == [True]


def test_notice_post_and_acknowledge():
    store = GuardStateStore()
    notice = Notice(NoticeKind.CRITICAL, "Security system error", "boom")

    store.post_notice(notice)
    assert store.state.notice is notice

    assert store.acknowledge_notice() is notice
    assert store.state.notice is None
    assert store.acknowledge_notice() is None


def test_snapshot_is_json_ready():
    store = GuardStateStore()
    store.update(arm_state=ArmState.ARMED, remote_alarm=RemoteAlarmState(active=True))

    snap = store.snapshot()

    assert snap["arm_state"] == "armed"
    assert snap["phase"] == "idle"
    assert snap["connection_status"] == "disconnected"
    assert snap["remote_alarm"]["active"] is True
    assert snap["current_episode"] is None
    assert snap["notice"] is None
