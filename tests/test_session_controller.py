# tests/test_session_controller.py

from __future__ import annotations

import pytest

from heroic_tasks.core.errors import ErrorKind, NotFound, StoreUnavailable, ValidationFailed
from heroic_tasks.core.events import EngineError, LevelUp, SessionChanged, TaskCompleted
from heroic_tasks.core.session import SessionController, SessionState
from heroic_tasks.tasks.local_backend import LocalTaskBackend
from heroic_tasks.tasks.task_models import Progress, Task, TaskPriority

from .fakes import EventRecorder, FakeClock, MemorySlots, ScriptedBackend


def _task(task_id: str, created_at: float, **kw) -> Task:
    base = dict(id=task_id, title=f"task {task_id}", completed=False, created_at=created_at, xp_earned=10)
    base.update(kw)
    return Task(**base)


# ---- lifecycle ----


@pytest.mark.asyncio
async def test_start_without_identity_is_signed_out(controller: SessionController, recorder: EventRecorder) -> None:
    await controller.start()

    assert controller.state is SessionState.SIGNED_OUT
    assert controller.owner_id is None
    assert recorder.of_type(SessionChanged)[-1].state == "signed_out"


@pytest.mark.asyncio
async def test_start_with_identity_loads_owner_and_creates_progress(
    controller: SessionController,
    backends: dict[str, ScriptedBackend],
    clock: FakeClock,
) -> None:
    backends["u1"] = ScriptedBackend("u1", tasks=[_task("a", 1.0), _task("b", 2.0)], clock=clock)

    await controller.start("u1")

    assert controller.state is SessionState.AUTHENTICATED
    assert controller.owner_id == "u1"
    assert [t.id for t in controller.tasks] == ["b", "a"]
    # First visit: progress record created lazily at level 1.
    assert controller.progress == Progress(xp=0, level=1)
    assert backends["u1"].calls == [("save_progress", Progress())]
    assert len(backends["u1"].subscriptions) == 1


@pytest.mark.asyncio
async def test_existing_progress_is_not_overwritten(
    controller: SessionController, backends: dict[str, ScriptedBackend], clock: FakeClock
) -> None:
    backends["u1"] = ScriptedBackend("u1", progress=Progress(xp=30, level=4), clock=clock)

    await controller.handle_identity_change("u1")

    assert controller.progress == Progress(xp=30, level=4)
    assert backends["u1"].calls == []


@pytest.mark.asyncio
async def test_guest_mode_round_trip(controller: SessionController, backends: dict[str, ScriptedBackend]) -> None:
    await controller.start()

    assert await controller.enter_guest() is True
    assert controller.state is SessionState.GUEST
    assert controller.backend_kind == "guest"

    await controller.exit_guest()
    assert controller.state is SessionState.SIGNED_OUT
    assert controller.tasks == []
    assert backends["guest"].closed is True


@pytest.mark.asyncio
async def test_guest_is_ignored_while_authenticated(controller: SessionController) -> None:
    await controller.start("u1")

    assert await controller.enter_guest() is False
    assert controller.state is SessionState.AUTHENTICATED
    assert controller.owner_id == "u1"


@pytest.mark.asyncio
async def test_sign_in_forces_guest_off(
    controller: SessionController, backends: dict[str, ScriptedBackend], clock: FakeClock
) -> None:
    await controller.start()
    await controller.enter_guest()
    await controller.add_task("guest chore")
    guest_sub = backends["guest"].subscriptions[0]

    backends["u1"] = ScriptedBackend("u1", tasks=[_task("r1", 5.0)], clock=clock)
    await controller.handle_identity_change("u1")

    assert controller.state is SessionState.AUTHENTICATED
    assert [t.id for t in controller.tasks] == ["r1"]
    assert guest_sub.active is False


@pytest.mark.asyncio
async def test_remote_sign_out_leaves_guest_session_alone(controller: SessionController) -> None:
    await controller.start()
    await controller.enter_guest()

    await controller.handle_identity_change(None)

    assert controller.state is SessionState.GUEST


@pytest.mark.asyncio
async def test_sign_out_drops_remote_view(
    controller: SessionController, backends: dict[str, ScriptedBackend], clock: FakeClock
) -> None:
    backends["u1"] = ScriptedBackend("u1", tasks=[_task("a", 1.0)], progress=Progress(xp=5), clock=clock)
    await controller.start("u1")

    await controller.sign_out()

    assert controller.state is SessionState.SIGNED_OUT
    assert controller.tasks == []
    assert controller.progress is None
    assert backends["u1"].subscriptions[0].active is False
    assert backends["u1"].closed is True


@pytest.mark.asyncio
async def test_stale_snapshot_from_previous_owner_is_ignored(
    controller: SessionController, backends: dict[str, ScriptedBackend], clock: FakeClock
) -> None:
    backends["u1"] = ScriptedBackend("u1", tasks=[_task("a", 1.0)], clock=clock)
    backends["u2"] = ScriptedBackend("u2", tasks=[_task("z", 9.0)], clock=clock)
    await controller.start("u1")
    old_sub = backends["u1"].subscriptions[0]

    await controller.handle_identity_change("u2")
    old_sub.push([_task("leak", 100.0)])
    old_sub.fail(StoreUnavailable("late failure"))

    assert controller.owner_id == "u2"
    assert [t.id for t in controller.tasks] == ["z"]
    assert controller.state is SessionState.AUTHENTICATED


@pytest.mark.asyncio
async def test_live_snapshot_replaces_tasks(
    controller: SessionController, backends: dict[str, ScriptedBackend], clock: FakeClock
) -> None:
    await controller.start("u1")

    backends["u1"].subscriptions[0].push([_task("x", 3.0)])

    assert [t.id for t in controller.tasks] == ["x"]


# ---- error state ----


@pytest.mark.asyncio
async def test_read_failure_moves_to_error_and_refresh_recovers(
    controller: SessionController, backends: dict[str, ScriptedBackend], recorder: EventRecorder, clock: FakeClock
) -> None:
    backends["u1"] = ScriptedBackend("u1", tasks=[_task("a", 1.0)], progress=Progress(), clock=clock)
    await controller.start("u1")

    backends["u1"].fail_reads = True
    assert await controller.refresh() is False
    assert controller.state is SessionState.ERROR
    # Last-known data is kept.
    assert [t.id for t in controller.tasks] == ["a"]
    assert recorder.of_type(EngineError)[-1].kind is ErrorKind.STORE_UNAVAILABLE

    backends["u1"].fail_reads = False
    assert await controller.refresh() is True
    assert controller.state is SessionState.AUTHENTICATED


@pytest.mark.asyncio
async def test_live_query_error_then_snapshot_recovers(
    controller: SessionController, backends: dict[str, ScriptedBackend]
) -> None:
    await controller.start("u1")
    sub = backends["u1"].subscriptions[0]

    sub.fail(StoreUnavailable("network down"))
    assert controller.state is SessionState.ERROR

    sub.push([])
    assert controller.state is SessionState.AUTHENTICATED


@pytest.mark.asyncio
async def test_mutation_without_owner_is_store_unavailable(controller: SessionController) -> None:
    await controller.start()

    with pytest.raises(StoreUnavailable):
        await controller.add_task("nobody home")
    with pytest.raises(StoreUnavailable):
        await controller.refresh()


# ---- mutations ----


@pytest.mark.asyncio
async def test_add_task_validates_before_reaching_store(
    controller: SessionController, backends: dict[str, ScriptedBackend]
) -> None:
    await controller.start("u1")
    backends["u1"].calls.clear()

    for kwargs in ({"title": "  "}, {"title": "ok", "due_date": "tomorrow"}, {"title": "ok", "priority": "urgent"}):
        with pytest.raises(ValidationFailed):
            await controller.add_task(**kwargs)

    assert backends["u1"].calls == []


@pytest.mark.asyncio
async def test_add_task_inserts_store_result_first(
    controller: SessionController, backends: dict[str, ScriptedBackend], recorder: EventRecorder
) -> None:
    await controller.start("u1")

    task = await controller.add_task("  Save the day ", due_date="2030-01-01", time="7:05", priority="high")

    assert task is not None
    assert task.title == "Save the day"
    assert task.time == "07:05"
    assert task.xp_earned == 15
    assert controller.tasks[0].id == task.id
    assert "task-added" in recorder.names()


@pytest.mark.asyncio
async def test_complete_uncomplete_complete_awards_once(
    controller: SessionController, backends: dict[str, ScriptedBackend], recorder: EventRecorder
) -> None:
    await controller.start("u1")
    task = await controller.add_task("Train", priority=TaskPriority.MEDIUM)
    assert task is not None

    await controller.toggle_complete(task.id)
    await controller.toggle_complete(task.id)
    await controller.toggle_complete(task.id)

    assert controller.progress == Progress(xp=10, level=1)
    assert backends["u1"].progress == Progress(xp=10, level=1)
    completions = recorder.of_type(TaskCompleted)
    assert [e.xp_gained for e in completions] == [10, 0]
    stored = backends["u1"].tasks[task.id]
    assert stored.completed is True
    assert stored.xp_awarded_at is not None


@pytest.mark.asyncio
async def test_gate_write_goes_out_before_progress_write(
    controller: SessionController, backends: dict[str, ScriptedBackend]
) -> None:
    await controller.start("u1")
    task = await controller.add_task("Ordered")
    assert task is not None
    backends["u1"].calls.clear()

    await controller.set_completed(task.id, True)

    kinds = [c[0] for c in backends["u1"].calls]
    assert kinds == ["update", "save_progress"]
    assert "xp_awarded_at" in backends["u1"].calls[0][2]


@pytest.mark.asyncio
async def test_setting_same_state_is_noop(
    controller: SessionController, backends: dict[str, ScriptedBackend]
) -> None:
    await controller.start("u1")
    task = await controller.add_task("Idle")
    assert task is not None
    backends["u1"].calls.clear()

    assert await controller.set_completed(task.id, False) is None
    assert backends["u1"].calls == []


@pytest.mark.asyncio
async def test_legacy_task_pays_default_xp(
    controller: SessionController, backends: dict[str, ScriptedBackend], clock: FakeClock
) -> None:
    backends["u1"] = ScriptedBackend("u1", tasks=[_task("old", 1.0, xp_earned=None)], clock=clock)
    await controller.start("u1")

    decision = await controller.set_completed("old", True)

    assert decision is not None and decision.reward is not None
    assert decision.reward.xp_gained == 10
    assert controller.progress == Progress(xp=10, level=1)


@pytest.mark.asyncio
async def test_level_up_event(
    controller: SessionController, backends: dict[str, ScriptedBackend], recorder: EventRecorder, clock: FakeClock
) -> None:
    backends["u1"] = ScriptedBackend(
        "u1",
        tasks=[_task("big", 1.0, priority=TaskPriority.HIGH, xp_earned=15)],
        progress=Progress(xp=45, level=1),
        clock=clock,
    )
    await controller.start("u1")

    await controller.set_completed("big", True)

    assert controller.progress == Progress(xp=10, level=2)
    assert [e.new_level for e in recorder.of_type(LevelUp)] == [2]


@pytest.mark.asyncio
async def test_write_failure_emits_error_and_keeps_optimistic_state(
    controller: SessionController, backends: dict[str, ScriptedBackend], recorder: EventRecorder, clock: FakeClock
) -> None:
    backends["u1"] = ScriptedBackend("u1", tasks=[_task("a", 1.0)], progress=Progress(), clock=clock)
    await controller.start("u1")
    backends["u1"].fail_writes = True

    await controller.set_completed("a", True)

    assert controller.get_task("a").completed is True
    errors = recorder.of_type(EngineError)
    assert errors and errors[-1].kind is ErrorKind.WRITE_FAILED
    # Gate never landed, so progress was not written either.
    assert [c[0] for c in backends["u1"].calls] == ["update"]
    assert controller.state is SessionState.AUTHENTICATED
    assert controller.get_task("a").xp_awarded_at is None
    assert controller.progress == Progress()
    assert [e.xp_gained for e in recorder.of_type(TaskCompleted)] == [0]


@pytest.mark.asyncio
async def test_failed_gate_write_then_snapshot_pays_once(
    controller: SessionController, backends: dict[str, ScriptedBackend]
) -> None:
    await controller.start("u1")
    task = await controller.add_task("Fragile")
    assert task is not None
    backend = backends["u1"]

    backend.fail_writes = True
    await controller.set_completed(task.id, True)
    backend.fail_writes = False

    # The store never saw the completion; its copy comes back through the live query.
    backend.subscriptions[0].push(backend.listing())
    assert controller.get_task(task.id).completed is False

    await controller.set_completed(task.id, True)

    assert controller.progress == Progress(xp=5, level=1)
    assert backend.progress == Progress(xp=5, level=1)
    assert backend.tasks[task.id].xp_awarded_at is not None


@pytest.mark.asyncio
async def test_edit_preserves_reward_gate(
    controller: SessionController, backends: dict[str, ScriptedBackend], clock: FakeClock
) -> None:
    backends["u1"] = ScriptedBackend(
        "u1",
        tasks=[_task("a", 1.0, completed=True, xp_awarded_at=50.0)],
        progress=Progress(xp=10),
        clock=clock,
    )
    await controller.start("u1")

    updated = await controller.edit_task("a", title="Renamed", priority="high", due_date=None)

    assert updated.xp_awarded_at == 50.0
    assert updated.xp_earned == 10
    assert backends["u1"].tasks["a"].xp_awarded_at == 50.0
    patch = backends["u1"].calls[-1][2]
    assert "xp_awarded_at" not in patch
    assert patch["title"] == "Renamed"


@pytest.mark.asyncio
async def test_edit_and_delete_unknown_ids(controller: SessionController) -> None:
    await controller.start("u1")

    with pytest.raises(NotFound):
        await controller.edit_task("missing", title="x")
    with pytest.raises(NotFound):
        await controller.delete_task("missing")
    with pytest.raises(NotFound):
        await controller.toggle_complete("missing")


@pytest.mark.asyncio
async def test_delete_removes_from_view_and_store(
    controller: SessionController, backends: dict[str, ScriptedBackend], recorder: EventRecorder, clock: FakeClock
) -> None:
    backends["u1"] = ScriptedBackend("u1", tasks=[_task("a", 1.0), _task("b", 2.0)], clock=clock)
    await controller.start("u1")

    await controller.delete_task("a")

    assert [t.id for t in controller.tasks] == ["b"]
    assert "a" not in backends["u1"].tasks
    assert "task-deleted" in recorder.names()


@pytest.mark.asyncio
async def test_remote_factory_failure_is_error_state(bus, recorder: EventRecorder) -> None:
    def _remote(owner_id: str):
        raise StoreUnavailable("remote store is not configured")

    controller = SessionController(
        local_backend_factory=lambda: ScriptedBackend("guest", kind="guest"),
        remote_backend_factory=_remote,
        events=bus,
    )
    await controller.start("u1")

    assert controller.state is SessionState.ERROR
    assert controller.owner_id is None
    # A guest session is still possible.
    assert await controller.enter_guest() is True
    assert controller.state is SessionState.GUEST


@pytest.mark.asyncio
async def test_unreadable_guest_storage_reports_one_error(bus, recorder: EventRecorder) -> None:
    slots = MemorySlots()
    slots.fail_reads = True
    controller = SessionController(
        local_backend_factory=lambda: LocalTaskBackend(slots),
        remote_backend_factory=lambda owner_id: ScriptedBackend(owner_id),
        events=bus,
    )
    await controller.start()

    await controller.enter_guest()

    assert controller.state is SessionState.ERROR
    errors = recorder.of_type(EngineError)
    assert len(errors) == 1
    assert errors[0].kind is ErrorKind.STORE_UNAVAILABLE
