"""Tests for EvdevHandler key processing (no real devices)."""

from unittest.mock import MagicMock, patch

import pytest

from typingstats.core import evdev_handler
from typingstats.core.evdev_handler import EvdevHandler
from typingstats.core.keystroke_buffer import KeystrokeBuffer
from typingstats.utils.keycodes import SPACE_KEYCODE

KEY_A = 30
KEY_B = 48

PRESS, RELEASE, REPEAT = 1, 0, 2


@pytest.fixture
def buffer():
    return KeystrokeBuffer()


@pytest.fixture
def handler(buffer):
    with patch.object(evdev_handler, "EVDEV_AVAILABLE", True):
        yield EvdevHandler(buffer)


class TestEvdevHandler:
    """Test event classification."""

    def test_requires_evdev(self, buffer):
        with patch.object(evdev_handler, "EVDEV_AVAILABLE", False):
            with pytest.raises(ImportError):
                EvdevHandler(buffer)

    def test_counts_presses_only(self, handler, buffer):
        handler.process_key(KEY_A, PRESS)
        handler.process_key(KEY_A, REPEAT)
        handler.process_key(KEY_A, RELEASE)
        assert buffer.drain() == (1, 0)

    def test_counts_words(self, handler, buffer):
        for code in (KEY_A, KEY_B, SPACE_KEYCODE, KEY_A, SPACE_KEYCODE):
            handler.process_key(code, PRESS)
            handler.process_key(code, RELEASE)
        assert buffer.drain() == (5, 2)

    def test_word_counting_disabled(self, buffer):
        with patch.object(evdev_handler, "EVDEV_AVAILABLE", True):
            handler = EvdevHandler(buffer, count_words=False)
        for code in (KEY_A, SPACE_KEYCODE):
            handler.process_key(code, PRESS)
        assert buffer.drain() == (2, 0)

    def test_start_without_keyboards(self, handler):
        with patch.object(EvdevHandler, "_find_keyboard_devices", return_value=[]):
            with pytest.raises(RuntimeError):
                handler.start()
        assert handler.running is False

    def test_stop_without_start(self, handler):
        handler.stop()
        assert handler.thread is None

    def test_stop_resets_word_tracker(self, handler, buffer):
        handler.process_key(KEY_A, PRESS)
        handler.stop()
        handler.process_key(SPACE_KEYCODE, PRESS)
        assert buffer.drain() == (2, 0)


class TestDeviceDisconnect:
    """Test handling of keyboards that go away while listening."""

    def test_drop_device(self, handler, buffer):
        gone = MagicMock(path="/dev/input/event3")
        other = MagicMock(path="/dev/input/event4")
        devices = [gone, other]
        handler.process_key(KEY_A, PRESS)

        handler._drop_device(devices, gone, OSError(19, "No such device"))

        assert devices == [other]
        gone.close.assert_called_once()
        handler.process_key(SPACE_KEYCODE, PRESS)
        assert buffer.drain() == (2, 0)

    def test_drop_device_tolerates_close_error(self, handler):
        gone = MagicMock(path="/dev/input/event3")
        gone.close.side_effect = OSError(19, "No such device")
        devices = [gone]
        handler._drop_device(devices, gone, OSError(19, "No such device"))
        assert devices == []

    def test_listener_stops_reading_unplugged_device(self, handler, buffer):
        """Test that a failing device is dropped instead of polled again."""
        gone = MagicMock(path="/dev/input/event3")
        gone.read.side_effect = OSError(19, "No such device")
        good = MagicMock(path="/dev/input/event4")
        good.read.return_value = [MagicMock(type=1, code=KEY_A, value=PRESS)]
        selected = []

        def fake_select(devices, _w, _x, _timeout):
            selected.append(list(devices))
            if len(selected) > 1:
                handler.running = False
                return [], [], []
            return list(devices), [], []

        handler.device_paths = [gone.path, good.path]
        handler.running = True
        with patch.object(evdev_handler, "InputDevice", side_effect=[gone, good], create=True), \
                patch.object(evdev_handler, "ecodes", MagicMock(EV_KEY=1), create=True), \
                patch.object(evdev_handler, "select", side_effect=fake_select):
            handler._run_listener()

        assert selected[1] == [good]
        gone.read.assert_called_once()
        gone.close.assert_called_once()
        good.close.assert_called_once()
        assert buffer.drain() == (1, 0)

    def test_listener_exits_when_all_devices_gone(self, handler):
        gone = MagicMock(path="/dev/input/event3")
        gone.read.side_effect = OSError(19, "No such device")

        handler.device_paths = [gone.path]
        handler.running = True
        with patch.object(evdev_handler, "InputDevice", return_value=gone, create=True), \
                patch.object(evdev_handler, "ecodes", MagicMock(EV_KEY=1), create=True), \
                patch.object(evdev_handler, "select", return_value=([gone], [], [])) as select:
            handler._run_listener()

        select.assert_called_once()
        gone.close.assert_called_once()
