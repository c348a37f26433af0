import os
import signal
import threading
import time
from unittest.mock import MagicMock, patch

import pytest

from macsafe_py.cancellation import CancellationSupervisor


def test_initial_state() -> None:
    supervisor = CancellationSupervisor()
    assert supervisor.is_cancelled() is False
    assert supervisor.tracked_pid == 0


@patch("macsafe_py.cancellation.os.killpg")
def test_request_cancel_without_process(mock_killpg: MagicMock) -> None:
    supervisor = CancellationSupervisor()
    supervisor.request_cancel()
    assert supervisor.is_cancelled() is True
    mock_killpg.assert_not_called()


@patch("macsafe_py.cancellation.os.killpg")
def test_request_cancel_signals_process_group(mock_killpg: MagicMock) -> None:
    supervisor = CancellationSupervisor()
    supervisor.track(4242)
    supervisor.request_cancel()
    mock_killpg.assert_called_once_with(4242, signal.SIGTERM)
    assert supervisor.tracked_pid == 0


@patch("macsafe_py.cancellation.os.killpg", side_effect=ProcessLookupError)
def test_request_cancel_tolerates_exited_process(mock_killpg: MagicMock) -> None:
    supervisor = CancellationSupervisor()
    supervisor.track(4242)
    supervisor.request_cancel()
    assert supervisor.is_cancelled() is True


def test_untrack_and_clear() -> None:
    supervisor = CancellationSupervisor()
    supervisor.track(10)
    supervisor.untrack()
    assert supervisor.tracked_pid == 0

    with patch("macsafe_py.cancellation.os.killpg") as mock_killpg:
        supervisor.request_cancel()
        mock_killpg.assert_not_called()
    supervisor.clear()
    assert supervisor.is_cancelled() is False


def test_request_cancel_while_lock_held() -> None:
    # A signal handler interrupts the main thread inside one of these methods
    supervisor = CancellationSupervisor()
    done = threading.Event()

    def _interrupted() -> None:
        with supervisor._lock:
            supervisor.request_cancel()
        done.set()

    threading.Thread(target=_interrupted, daemon=True).start()
    assert done.wait(timeout=5)
    assert supervisor.is_cancelled() is True


@pytest.mark.skipif(not hasattr(signal, "SIGUSR1"), reason="needs SIGUSR1")
def test_signal_handler_while_lock_held() -> None:
    supervisor = CancellationSupervisor()
    previous = signal.signal(
        signal.SIGUSR1, lambda signum, frame: supervisor.request_cancel()
    )
    try:
        with supervisor._lock:
            os.kill(os.getpid(), signal.SIGUSR1)
            time.sleep(0.01)
    finally:
        signal.signal(signal.SIGUSR1, previous)
    assert supervisor.is_cancelled() is True
