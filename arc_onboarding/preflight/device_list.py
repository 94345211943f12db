"""Device list parsing.

A device list file holds one device name per line. Blank lines and lines
starting with ``#`` are ignored; either line-ending style is accepted.
"""

import logging
from collections.abc import Iterable
from pathlib import Path

logger = logging.getLogger(__name__)


class DeviceListError(ValueError):
    """Raised when a device list is missing, unreadable or empty."""


def normalize_devices(devices: Iterable[str]) -> list[str]:
    """Trim names, drop blanks and comments, and remove duplicates.

    Duplicates are compared case-insensitively; the first spelling wins.
    """
    seen: set[str] = set()
    normalized = []
    for raw in devices:
        name = str(raw).strip()
        if not name or name.startswith("#"):
            continue
        key = name.lower()
        if key in seen:
            logger.debug(f"Ignoring duplicate device entry '{name}'")
            continue
        seen.add(key)
        normalized.append(name)
    return normalized


def parse_device_list(text: str) -> list[str]:
    """Parse device list text (LF, CRLF or CR line endings)."""
    return normalize_devices(text.splitlines())


def load_device_list(path: str | Path) -> list[str]:
    """Read and parse a device list file.

    Raises:
        DeviceListError: If the file cannot be read or lists no devices
    """
    path = Path(path)
    try:
        text = path.read_text(encoding="utf-8-sig")
    except (OSError, UnicodeDecodeError) as e:
        raise DeviceListError(f"Cannot read device list '{path}': {e}") from e

    devices = parse_device_list(text)
    if not devices:
        raise DeviceListError(f"Device list '{path}' contains no devices")

    logger.info(f"Loaded {len(devices)} device(s) from {path}")
    return devices


def resolve_devices(
    devices: Iterable[str] | None = None, devices_file: str | Path | None = None
) -> list[str]:
    """Combine inline device names and a device list file.

    Raises:
        DeviceListError: If no devices remain after parsing
    """
    combined: list[str] = list(devices or [])
    if devices_file:
        combined.extend(load_device_list(devices_file))

    normalized = normalize_devices(combined)
    if not normalized:
        raise DeviceListError("No devices specified")
    return normalized
