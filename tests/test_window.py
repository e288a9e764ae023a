import pytest

from vehicleauth.window import SlidingWindow, update_sliding_window

BASE = (1 << 0) | (1 << 5)

CASES = [
    (100, BASE, 101, 101, 1 | (1 << 1) | (1 << 6), True),
    (100, BASE, 103, 103, (1 << 2) | (1 << 3) | (1 << 8), True),
    (100, BASE, 500, 500, 0, True),
    (100, BASE, 98, 100, (1 << 0) | (1 << 1) | (1 << 5), True),
    (100, BASE, 99, 100, BASE, False),
    (100, BASE, 3, 100, BASE, False),
    (100, BASE, 100, 100, BASE, False),
]


@pytest.mark.parametrize("counter,window,new_counter,exp_counter,exp_window,exp_ok", CASES)
def test_update_sliding_window(counter, window, new_counter, exp_counter, exp_window, exp_ok):
    assert update_sliding_window(counter, window, new_counter) == (exp_counter, exp_window, exp_ok)


@pytest.mark.parametrize("counter,window,new_counter,exp_counter,exp_window,exp_ok", CASES)
def test_sliding_window_update(counter, window, new_counter, exp_counter, exp_window, exp_ok):
    w = SlidingWindow(history=window, counter=counter, used=True)
    assert w.update(new_counter) is exp_ok
    assert (w.counter, w.history) == (exp_counter, exp_window)


def test_first_update_is_always_accepted():
    w = SlidingWindow()
    assert w.update(42) is True
    assert w.counter == 42
    assert w.update(42) is False


def test_huge_jump_clears_history():
    result = update_sliding_window(0, BASE, 0xFFFFFFFF)
    assert result.accepted
    assert result.counter == 0xFFFFFFFF
    assert result.window == 0