"""evdev keyboard listener feeding the keystroke buffer (Linux)."""

import logging
import threading
from select import select
from typing import List, Optional

try:
    from evdev import InputDevice, ecodes, list_devices
    EVDEV_AVAILABLE = True
except ImportError:
    EVDEV_AVAILABLE = False

from typingstats.core.keystroke_buffer import KeystrokeBuffer
from typingstats.utils.keycodes import WordBoundaryTracker

log = logging.getLogger("typingstats.evdev")

KEY_PRESS = 1


class EvdevHandler:
    """Counts key presses from every keyboard device on a background thread.

    Only press events are counted (no releases, no auto-repeat). Word
    boundaries are reported too when ``count_words`` is set.
    """

    def __init__(self, buffer: KeystrokeBuffer, count_words: bool = True):
        """Initialize evdev handler.

        Args:
            buffer: Buffer receiving keystroke and word events
            count_words: Whether to detect and report word boundaries

        Raises:
            ImportError: If the evdev module is not installed
        """
        if not EVDEV_AVAILABLE:
            raise ImportError("evdev module is not installed. Install it with: pip install evdev")

        self.buffer = buffer
        self.count_words = count_words
        self.word_tracker = WordBoundaryTracker()
        self.running = False
        self.thread: Optional[threading.Thread] = None
        self.device_paths: List[str] = []

    def _find_keyboard_devices(self) -> List[str]:
        """Paths of input devices that have letter keys."""
        keyboards = []
        for path in list_devices():
            try:
                device = InputDevice(path)
                caps = device.capabilities().get(ecodes.EV_KEY, [])
                if any(ecodes.KEY_A <= code <= ecodes.KEY_Z for code in caps):
                    keyboards.append(path)
                    log.info(f"Found keyboard: {device.name} at {path}")
                device.close()
            except PermissionError:
                log.error(f"Permission denied accessing {path}. You may need to be in the 'input' group.")
            except OSError as e:
                log.error(f"Error accessing {path}: {e}")
        return keyboards

    def start(self) -> None:
        """Start listening for keyboard events in a background thread.

        Raises:
            RuntimeError: If no keyboard device is accessible
        """
        if self.running:
            return

        self.device_paths = self._find_keyboard_devices()
        if not self.device_paths:
            raise RuntimeError(
                "No keyboard devices found. Make sure you're in the 'input' group: "
                "sudo usermod -aG input $USER"
            )

        self.running = True
        self.thread = threading.Thread(target=self._run_listener, name="typingstats-evdev", daemon=True)
        self.thread.start()

    def stop(self) -> None:
        """Stop listening; the thread exits within one select() timeout."""
        self.running = False
        if self.thread:
            self.thread.join(timeout=1)
            self.thread = None
        self.word_tracker.reset()

    def _run_listener(self) -> None:
        devices = []
        for path in self.device_paths:
            try:
                devices.append(InputDevice(path))
            except OSError as e:
                log.error(f"Error reopening device {path}: {e}")

        if not devices:
            log.error("No keyboard devices available in listener thread")
            return

        log.info(f"Listening on {len(devices)} keyboard device(s)...")
        try:
            while self.running and devices:
                readable, _, _ = select(devices, [], [], 0.1)
                for device in readable:
                    try:
                        for event in device.read():
                            if event.type == ecodes.EV_KEY:
                                self.process_key(event.code, event.value)
                    except OSError as e:
                        self._drop_device(devices, device, e)
            if not devices:
                log.error("All keyboard devices disconnected")
        finally:
            for device in devices:
                device.close()

    def _drop_device(self, devices: list, device, error: OSError) -> None:
        """Stop reading from a disconnected device."""
        log.warning(f"Keyboard {device.path} disconnected: {error}")
        devices.remove(device)
        try:
            device.close()
        except OSError as e:
            log.debug(f"Error closing {device.path}: {e}")
        # A word typed across the unplug is not counted
        self.word_tracker.reset()

    def process_key(self, keycode: int, value: int) -> None:
        """Record one key event (value: 0 release, 1 press, 2 repeat)."""
        if value != KEY_PRESS:
            return
        self.buffer.record_keystroke()
        if self.count_words and self.word_tracker.process(keycode):
            self.buffer.record_word()
