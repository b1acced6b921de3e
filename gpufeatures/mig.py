"""MIG device discovery helpers."""

from __future__ import annotations

import logging
import re
from pathlib import Path
from typing import Any, Protocol, Sequence

log = logging.getLogger(__name__)

NVIDIA_PROC_DRIVER_PATH = "/proc/driver/nvidia"
NVIDIA_CAPABILITIES_PATH = NVIDIA_PROC_DRIVER_PATH + "/capabilities"
NVCAPS_PROC_DRIVER_PATH = "/proc/driver/nvidia-caps"
NVCAPS_MIG_MINORS_PATH = NVCAPS_PROC_DRIVER_PATH + "/mig-minors"
NVCAPS_DEVICE_PATH = "/dev/nvidia-caps"


class Device(Protocol):
    def is_mig_enabled(self) -> bool: ...

    def get_mig_devices(self) -> Sequence[Any]: ...


class Manager(Protocol):
    def get_devices(self) -> Sequence[Device]: ...


class DeviceInfo:
    """Information about the devices on a node, grouped by MIG mode."""

    def __init__(self, manager: Manager) -> None:
        self.manager = manager
        self._devices_map: dict[bool, list[Any]] | None = None

    def get_devices_map(self) -> dict[bool, list[Any]]:
        """Return devices keyed by whether MIG is enabled; built on first use."""
        if self._devices_map is None:
            grouped: dict[bool, list[Any]] = {}
            for device in self.manager.get_devices():
                grouped.setdefault(bool(device.is_mig_enabled()), []).append(device)
            self._devices_map = grouped
        return self._devices_map

    def get_devices_with_mig_enabled(self) -> list[Any]:
        return list(self.get_devices_map().get(True, []))

    def get_devices_with_mig_disabled(self) -> list[Any]:
        return list(self.get_devices_map().get(False, []))

    def any_mig_enabled_device_is_empty(self) -> bool:
        """Whether some MIG-enabled device has no MIG devices (true if none are enabled)."""
        enabled = self.get_devices_map().get(True, [])
        if not enabled:
            return True
        return any(not device.get_mig_devices() for device in enabled)

    def get_all_mig_devices(self) -> list[Any]:
        """Return every MIG device across all MIG-enabled devices."""
        return [
            mig
            for device in self.get_devices_map().get(True, [])
            for mig in device.get_mig_devices()
        ]


_NUM = r"\s*([+-]?\d+)"
_CI_ACCESS = re.compile(rf"gpu{_NUM}/gi{_NUM}/ci{_NUM}/access{_NUM}")
_GI_ACCESS = re.compile(rf"gpu{_NUM}/gi{_NUM}/access{_NUM}")
_CONFIG = re.compile(rf"config{_NUM}")
_MONITOR = re.compile(rf"monitor{_NUM}")


def parse_mig_minors_line(line: str) -> tuple[str, int]:
    """Parse one line of the MIG minors file into (capability path, minor)."""
    if match := _CI_ACCESS.match(line):
        gpu, gi, ci, minor = (int(g) for g in match.groups())
        return f"{NVIDIA_CAPABILITIES_PATH}/gpu{gpu}/mig/gi{gi}/ci{ci}/access", minor
    if match := _GI_ACCESS.match(line):
        gpu, gi, minor = (int(g) for g in match.groups())
        return f"{NVIDIA_CAPABILITIES_PATH}/gpu{gpu}/mig/gi{gi}/access", minor
    if match := _CONFIG.match(line):
        return f"{NVIDIA_CAPABILITIES_PATH}/mig/config", int(match.group(1))
    if match := _MONITOR.match(line):
        return f"{NVIDIA_CAPABILITIES_PATH}/mig/monitor", int(match.group(1))
    raise ValueError(f"unparsable line: {line}")


def get_mig_capability_device_paths(
    minors_path: str | Path = NVCAPS_MIG_MINORS_PATH,
) -> dict[str, str]:
    """Map MIG capability paths to device node paths.

    A missing minors file means the machine is not MIG capable and yields an
    empty mapping.
    """
    try:
        with open(minors_path, encoding="utf-8") as minors_file:
            lines = [line.rstrip("\r\n") for line in minors_file]
    except FileNotFoundError:
        return {}
    except OSError as err:
        raise OSError(f"error opening MIG minors file: {err}") from err

    paths: dict[str, str] = {}
    for line in lines:
        try:
            cap_path, minor = parse_mig_minors_line(line)
        except ValueError as err:
            log.error("Skipping line in MIG minors file: %s", err)
            continue
        paths[cap_path] = f"{NVCAPS_DEVICE_PATH}/nvidia-cap{minor}"
    return paths