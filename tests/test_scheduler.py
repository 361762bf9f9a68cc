from GazeTracker.control.scheduler import FrameScheduler


def test_callbacks_fire_in_due_order():
    sched = FrameScheduler()
    fired = []
    sched.call_later(300, lambda: fired.append("c"))
    sched.call_later(100, lambda: fired.append("a"))
    sched.call_later(200, lambda: fired.append("b"))
    assert sched.advance(99) == 0
    assert sched.advance(250) == 2
    assert fired == ["a", "b"]
    assert sched.pending() == 1
    sched.advance(1000)
    assert fired == ["a", "b", "c"]


def test_equal_due_times_keep_insertion_order():
    sched = FrameScheduler()
    fired = []
    for name in "xyz":
        sched.call_later(50, lambda n=name: fired.append(n))
    sched.advance(50)
    assert fired == ["x", "y", "z"]


def test_cancelled_handle_never_fires():
    sched = FrameScheduler()
    fired = []
    handle = sched.call_later(10, lambda: fired.append(1))
    sched.cancel(handle)
    assert sched.pending() == 0
    assert sched.advance(100) == 0
    assert fired == []


def test_cancel_from_inside_callback():
    sched = FrameScheduler()
    fired = []
    later = sched.call_later(20, lambda: fired.append("later"))
    sched.call_later(10, lambda: later.cancel())
    sched.advance(30)
    assert fired == []


def test_delay_is_relative_to_clock_and_clock_is_monotonic():
    sched = FrameScheduler(start_ms=1000)
    fired = []
    sched.advance(500)
    assert sched.now_ms == 1000
    sched.call_later(100, lambda: fired.append(sched.now_ms))
    sched.advance(1099)
    assert fired == []
    sched.advance(1100)
    assert fired == [1100]


def test_callback_scheduled_during_advance_can_fire_same_frame():
    sched = FrameScheduler()
    fired = []
    sched.call_later(10, lambda: sched.call_later(0, lambda: fired.append("chained")))
    sched.advance(10)
    assert fired == ["chained"]


def test_clear_drops_everything():
    sched = FrameScheduler()
    sched.call_later(1, lambda: None)
    sched.call_later(2, lambda: None)
    sched.clear()
    assert sched.pending() == 0
    assert sched.advance(10) == 0
