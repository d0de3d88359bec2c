"""Device identifier resolution for typingstats.

The identifier keys this device's entries in every G-Counter, so it must
stay stable for the lifetime of the installation and differ between
devices. It is resolved once at startup and passed around explicitly.
"""

import logging
import platform
import re
import subprocess
import uuid
from pathlib import Path

log = logging.getLogger("typingstats.device_id")

MACHINE_ID_PATHS = (Path("/etc/machine-id"), Path("/var/lib/dbus/machine-id"))

_IOPLATFORM_UUID_RE = re.compile(r'"IOPlatformUUID"\s*=\s*"([^"]+)"')


def _macos_platform_uuid() -> str | None:
    """Read IOPlatformUUID from the IOKit registry via ioreg."""
    try:
        result = subprocess.run(
            ["ioreg", "-rd1", "-c", "IOPlatformExpertDevice"],
            capture_output=True,
            text=True,
            timeout=2,
            check=True,
        )
    except (subprocess.CalledProcessError, subprocess.TimeoutExpired, OSError) as e:
        log.debug(f"ioreg lookup failed: {e}")
        return None

    match = _IOPLATFORM_UUID_RE.search(result.stdout)
    return match.group(1) if match else None


def _linux_machine_id(paths: tuple[Path, ...] = MACHINE_ID_PATHS) -> str | None:
    for path in paths:
        try:
            value = path.read_text().strip()
        except OSError:
            continue
        if value:
            return value
    return None


def get_hardware_uuid() -> str | None:
    """Hardware-derived identifier for this machine, or None if unavailable."""
    system = platform.system()
    if system == "Darwin":
        return _macos_platform_uuid()
    if system == "Linux":
        return _linux_machine_id()
    return None


def resolve_device_id(config) -> str:
    """Resolve this device's identifier.

    Priority:
    1. Explicit ``device_id`` setting
    2. Hardware UUID (IOPlatformUUID on macOS, machine-id on Linux)
    3. Persisted random ``device_uuid`` setting, generated on first use

    Args:
        config: Config instance holding the settings

    Returns:
        Device identifier string
    """
    override = str(config.get("device_id", "") or "")
    if override:
        return override

    hardware_id = get_hardware_uuid()
    if hardware_id:
        return hardware_id

    stored = str(config.get("device_uuid", "") or "")
    if stored:
        return stored

    generated = str(uuid.uuid4()).upper()
    config.set("device_uuid", generated)
    log.info(f"No hardware UUID available, generated device id {generated}")
    return generated
