"""Building container allocation responses for requested devices."""

from __future__ import annotations

import posixpath
import re
from dataclasses import dataclass, field
from enum import Enum
from typing import Callable, Iterable, Mapping

DEFAULT_CDI_ANNOTATION_PREFIX = "cdi.k8s.io/"
CDI_PLUGIN_NAME = "nvidia-device-plugin"

DEVICE_LIST_AS_VOLUME_MOUNTS_HOST_PATH = "/dev/null"
DEVICE_LIST_AS_VOLUME_MOUNTS_CONTAINER_PATH_ROOT = "/var/run/nvidia-container-devices"

_MAX_ANNOTATION_NAME_LEN = 63
_ANNOTATION_NAME = re.compile(r"[A-Za-z0-9]([A-Za-z0-9._-]*[A-Za-z0-9])?")
_VENDOR = re.compile(r"[A-Za-z0-9]([A-Za-z0-9._-]*[A-Za-z0-9])?")
_CLASS = re.compile(r"[A-Za-z]([A-Za-z0-9_-]*[A-Za-z0-9])?")
_DEVICE_NAME = re.compile(r"[A-Za-z0-9]([A-Za-z0-9._:-]*[A-Za-z0-9])?")


class DeviceListStrategy(str, Enum):
    """How the allocated devices are passed to the container."""

    ENVVAR = "envvar"
    VOLUME_MOUNTS = "volume-mounts"
    CDI_ANNOTATIONS = "cdi-annotations"
    CDI_CRI = "cdi-cri"

    def __str__(self) -> str:
        return self.value

    @property
    def is_cdi(self) -> bool:
        return self in (DeviceListStrategy.CDI_ANNOTATIONS, DeviceListStrategy.CDI_CRI)


@dataclass
class Mount:
    """A host path mounted into the container."""

    container_path: str
    host_path: str


@dataclass
class ContainerAllocateResponse:
    """What the runtime needs to give a container its devices."""

    envs: dict[str, str] = field(default_factory=dict)
    mounts: list[Mount] = field(default_factory=list)
    annotations: dict[str, str] = field(default_factory=dict)
    cdi_devices: list[str] = field(default_factory=list)


def _annotation_key(plugin_name: str, device_id: str) -> str:
    if not plugin_name:
        raise ValueError("invalid plugin name, empty")
    if not device_id:
        raise ValueError("invalid deviceID, empty")
    name = f"{plugin_name}_{device_id.replace('/', '_')}"
    if len(name) > _MAX_ANNOTATION_NAME_LEN:
        raise ValueError(f"invalid plugin+deviceID {name!r}, too long")
    if not _ANNOTATION_NAME.fullmatch(name):
        raise ValueError(f"invalid plugin+deviceID {name!r}")
    return DEFAULT_CDI_ANNOTATION_PREFIX + name


def _validate_qualified_name(device: str) -> None:
    kind, sep, name = device.partition("=")
    vendor, slash, cls = kind.partition("/")
    if not sep or not slash:
        raise ValueError(f"unqualified device {device!r}, missing vendor, class or name")
    if not _VENDOR.fullmatch(vendor):
        raise ValueError(f"invalid vendor {vendor!r} in device {device!r}")
    if not _CLASS.fullmatch(cls):
        raise ValueError(f"invalid class {cls!r} in device {device!r}")
    if not _DEVICE_NAME.fullmatch(name):
        raise ValueError(f"invalid device name {name!r} in device {device!r}")


def update_cdi_annotations(
    annotations: Mapping[str, str],
    plugin_name: str,
    response_id: str,
    devices: Iterable[str],
) -> dict[str, str]:
    """Return ``annotations`` with the CDI device-injection annotation added."""
    result = dict(annotations)
    devices = list(devices)
    if not devices:
        return result
    key = _annotation_key(plugin_name, response_id)
    for device in devices:
        _validate_qualified_name(device)
    result[key] = ",".join(devices)
    return result


def _default_qualified_name(device_class: str, name: str) -> str:
    return f"nvidia.com/{device_class}={name}"


@dataclass
class ResponseBuilder:
    """Fills in allocation responses according to the configured strategies."""

    device_list_strategies: Iterable[DeviceListStrategy | str] = (DeviceListStrategy.ENVVAR,)
    qualified_name: Callable[[str, str], str] = _default_qualified_name
    gds_enabled: bool = False
    mofed_enabled: bool = False
    cdi_annotation_prefix: str = DEFAULT_CDI_ANNOTATION_PREFIX
    device_list_envvar: str = "NVIDIA_VISIBLE_DEVICES"

    def __post_init__(self) -> None:
        strategies = set()
        for strategy in self.device_list_strategies:
            try:
                strategies.add(DeviceListStrategy(strategy))
            except ValueError:
                raise ValueError(f"invalid strategy: {strategy}") from None
        self.device_list_strategies = frozenset(strategies)

    def includes(self, strategy: DeviceListStrategy | str) -> bool:
        return DeviceListStrategy(strategy) in self.device_list_strategies

    def update_response_for_cdi(
        self, response: ContainerAllocateResponse, response_id: str, *device_ids: str
    ) -> None:
        """Add the CDI annotations or CDI devices for the given device IDs."""
        devices = [self.qualified_name("gpu", device_id) for device_id in device_ids]
        if self.gds_enabled:
            devices.append(self.qualified_name("gds", "all"))
        if self.mofed_enabled:
            devices.append(self.qualified_name("mofed", "all"))
        if not devices:
            return

        if self.includes(DeviceListStrategy.CDI_ANNOTATIONS):
            response.annotations = self.cdi_device_annotations(response_id, *devices)
        if self.includes(DeviceListStrategy.CDI_CRI):
            response.cdi_devices.extend(devices)

    def cdi_device_annotations(self, response_id: str, *devices: str) -> dict[str, str]:
        """Return the CDI annotations for the devices, using the configured prefix."""
        try:
            annotations = update_cdi_annotations({}, CDI_PLUGIN_NAME, response_id, devices)
        except ValueError as err:
            raise ValueError(f"failed to add CDI annotations: {err}") from err

        if self.cdi_annotation_prefix == DEFAULT_CDI_ANNOTATION_PREFIX:
            return annotations
        return {
            self.cdi_annotation_prefix + key.removeprefix(DEFAULT_CDI_ANNOTATION_PREFIX): value
            for key, value in annotations.items()
        }

    def update_response_for_device_list_envvar(
        self, response: ContainerAllocateResponse, *device_ids: str
    ) -> None:
        """Set the device list environment variable to the given IDs."""
        response.envs[self.device_list_envvar] = ",".join(device_ids)

    def update_response_for_device_mounts(
        self, response: ContainerAllocateResponse, *device_ids: str
    ) -> None:
        """Request the devices through volume mounts."""
        self.update_response_for_device_list_envvar(
            response, DEVICE_LIST_AS_VOLUME_MOUNTS_CONTAINER_PATH_ROOT
        )
        response.mounts.extend(
            Mount(
                container_path=posixpath.join(
                    DEVICE_LIST_AS_VOLUME_MOUNTS_CONTAINER_PATH_ROOT, device_id
                ),
                host_path=DEVICE_LIST_AS_VOLUME_MOUNTS_HOST_PATH,
            )
            for device_id in device_ids
        )