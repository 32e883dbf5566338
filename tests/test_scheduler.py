import pytest

from knotboard.scheduler import (
    CallbackTask,
    Debouncer,
    FrameScheduler,
    ManualTimer,
    Transition,
    ease_in_out_quad,
)


def test_ease_in_out_quad():
    assert ease_in_out_quad(0.0) == 0.0
    assert ease_in_out_quad(0.25) == pytest.approx(0.125)
    assert ease_in_out_quad(0.5) == pytest.approx(0.5)
    assert ease_in_out_quad(1.0) == pytest.approx(1.0)


def test_transition_starts_on_first_tick():
    values = []
    transition = Transition((0.0,), (10.0,), 1.0, values.append)
    assert transition.tick(100.0)
    assert transition.tick(100.5)
    assert not transition.tick(101.0)
    assert values == [(0.0,), pytest.approx((5.0,)), pytest.approx((10.0,))]
    assert transition.finished


def test_zero_duration_transition_jumps_to_end():
    done = []
    values = []
    transition = Transition((1.0, 2.0), (3.0, 4.0), 0.0, values.append, on_done=lambda: done.append(True))
    assert not transition.tick(0.0)
    assert values == [(3.0, 4.0)]
    assert done == [True]


def test_scheduler_wakes_host_once():
    scheduler = FrameScheduler()
    wakes = []
    scheduler.on_wake = lambda: wakes.append(True)
    scheduler.add(CallbackTask(lambda: None))
    scheduler.add(CallbackTask(lambda: None))
    assert wakes == [True]
    scheduler.tick(0.0)
    assert not scheduler.active
    scheduler.add(CallbackTask(lambda: None))
    assert len(wakes) == 2


def test_cancelled_callback_does_not_run():
    scheduler = FrameScheduler()
    calls = []
    task = scheduler.add(CallbackTask(lambda: calls.append(1)))
    scheduler.cancel_all()
    assert task.cancelled
    scheduler.tick(0.0)
    assert calls == []


def test_debouncer_coalesces_bursts():
    timer = ManualTimer()
    calls = []
    debouncer = Debouncer(timer, 500, lambda: calls.append(1))
    for _ in range(5):
        debouncer.trigger()
    assert timer.pending == 1
    assert debouncer.pending
    timer.run_pending()
    assert calls == [1]
    assert not debouncer.pending


def test_debouncer_flush_and_cancel():
    timer = ManualTimer()
    calls = []
    debouncer = Debouncer(timer, 500, lambda: calls.append(1))
    debouncer.flush()
    assert calls == []

    debouncer.trigger()
    debouncer.flush()
    assert calls == [1]
    assert timer.pending == 0

    debouncer.trigger()
    debouncer.cancel()
    timer.run_pending()
    assert calls == [1]
