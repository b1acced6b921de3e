"""Node-level labelers built from the devices a resource manager reports."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any, Iterable, Sequence

from gpufeatures.labels import Empty, Labeler, LabelingError, Labels, merge
from gpufeatures.migstrategy import new_resource_labeler
from gpufeatures.resource import Sharing, _call, sanitise

log = logging.getLogger(__name__)

MACHINE_TYPE_UNKNOWN = "unknown"

PCI_VGA_CONTROLLER_CLASS = 0x030000
PCI_3D_CONTROLLER_CLASS = 0x030200

_STRATEGY_MPS = "mps"


class MPSSharingNotSupportedError(LabelingError):
    """Raised when MPS sharing is requested on a node where it cannot work."""


@dataclass
class LabelerConfig:
    """The settings that drive device labelling."""

    mig_strategy: str = "none"
    sharing: Sharing | None = None
    machine_type_file: str = ""


class VGPULabeler(Labeler):
    """Labels describing the vGPU devices present on the node."""

    def __init__(self, lib: Any) -> None:
        self.lib = lib

    def labels(self) -> Labels:
        try:
            devices = list(self.lib.devices())
        except Exception as err:  # vGPU information is optional
            log.error("unable to get vGPU devices: %s", err)
            return Labels()

        result = Labels({"nvidia.com/vgpu.present": "true" if devices else "false"})
        for device in devices:
            info = _call("error getting vGPU device info", device.get_info)
            result["nvidia.com/vgpu.host-driver-version"] = info.host_driver_version
            result["nvidia.com/vgpu.host-driver-branch"] = info.host_driver_branch
        return result


def new_labelers(manager: Any, vgpu: Any, config: LabelerConfig) -> Labeler:
    """Return the combined device and vGPU labeler for the node."""
    device_labeler = _call("error creating labeler", new_device_labeler, manager, config)
    return merge(device_labeler, VGPULabeler(vgpu))


def new_device_labeler(manager: Any, config: LabelerConfig) -> Labeler:
    """Return a labeler for all the devices reported by ``manager``."""
    _call("failed to initialize resource manager", manager.init)
    try:
        devices = _call("error getting devices", manager.get_devices)
        if not devices:
            return Empty()

        machine_type = _call(
            "failed to construct machine type labeler",
            new_machine_type_labeler,
            config.machine_type_file,
        )
        version = _call("failed to construct version labeler", new_version_labeler, manager)
        mig_capability = _call(
            "error creating mig capability labeler", new_mig_capability_labeler, manager
        )
        try:
            sharing = new_sharing_labeler(manager, config.sharing)
        except MPSSharingNotSupportedError as err:
            raise MPSSharingNotSupportedError(f"error creating sharing labeler: {err}") from err
        except Exception as err:
            raise LabelingError(f"error creating sharing labeler: {err}") from err
        resources = _call(
            "error creating resource labeler",
            new_resource_labeler,
            manager,
            config.mig_strategy,
            config.sharing,
        )
        gpu_mode = _call("error creating resource labeler", new_gpu_mode_labeler, devices)

        return merge(machine_type, version, mig_capability, sharing, resources, gpu_mode)
    finally:
        try:
            manager.shutdown()
        except Exception:
            pass


def new_version_labeler(manager: Any) -> Labels:
    """Return the CUDA driver and runtime version labels."""
    driver_version = _call("error getting driver version", manager.get_driver_version)

    parts = driver_version.split(".")
    if not 2 <= len(parts) <= 3:
        raise LabelingError(
            f'error getting driver version: Version "{driver_version}" '
            'does not match format "X.Y[.Z]"'
        )
    major, minor = parts[0], parts[1]
    revision = parts[2] if len(parts) > 2 else ""

    cuda_major, cuda_minor = _call(
        "error getting cuda driver version", manager.get_cuda_driver_version
    )

    return Labels(
        {
            # Deprecated labels
            "nvidia.com/cuda.driver.major": major,
            "nvidia.com/cuda.driver.minor": minor,
            "nvidia.com/cuda.driver.rev": revision,
            "nvidia.com/cuda.runtime.major": str(cuda_major),
            "nvidia.com/cuda.runtime.minor": str(cuda_minor),
            # Current labels
            "nvidia.com/cuda.driver-version.major": major,
            "nvidia.com/cuda.driver-version.minor": minor,
            "nvidia.com/cuda.driver-version.revision": revision,
            "nvidia.com/cuda.driver-version.full": driver_version,
            "nvidia.com/cuda.runtime-version.major": str(cuda_major),
            "nvidia.com/cuda.runtime-version.minor": str(cuda_minor),
            "nvidia.com/cuda.runtime-version.full": f"{cuda_major}.{cuda_minor}",
        }
    )


def new_mig_capability_labeler(manager: Any) -> Labeler:
    """Return the mig.capable label: true if any device is MIG capable."""
    devices = manager.get_devices()
    if not devices:
        return Empty()

    capable = False
    for device in devices:
        capable = _call("error getting mig capability", device.is_mig_capable)
        if capable:
            break
    return Labels({"nvidia.com/mig.capable": "true" if capable else "false"})


def new_sharing_labeler(manager: Any, sharing: Sharing | None) -> Labels:
    """Return the mps.capable label for the given sharing configuration."""
    if sharing is None or sharing.strategy() != _STRATEGY_MPS:
        return Labels({"nvidia.com/mps.capable": "false"})

    try:
        capable = is_mps_capable(manager)
    except MPSSharingNotSupportedError as err:
        raise MPSSharingNotSupportedError(f"failed to check MPS-capable: {err}") from err
    except Exception as err:
        raise LabelingError(f"failed to check MPS-capable: {err}") from err
    return Labels({"nvidia.com/mps.capable": "true" if capable else "false"})


def is_mps_capable(manager: Any) -> bool:
    """Return True if MPS can be used; raise if any device has MIG enabled."""
    devices = _call("failed to get device", manager.get_devices)
    for device in devices:
        enabled = _call("failed to check if device is MIG-enabled", device.is_mig_enabled)
        if enabled:
            raise MPSSharingNotSupportedError("MPS sharing is not supported for mig devices")
    return True


def new_gpu_mode_labeler(devices: Iterable[Any]) -> Labels:
    """Return the gpu.mode label: graphics, compute or unknown."""
    return Labels({"nvidia.com/gpu.mode": get_mode_for_classes(_device_classes(devices))})


def get_mode_for_classes(classes: Sequence[int]) -> str:
    """Return the GPU mode shared by all the given PCI classes."""
    if not classes:
        return "unknown"
    first = classes[0]
    if any(cls != first for cls in classes):
        log.info(
            "Not all GPU devices belong to the same class %s",
            ", ".join(f"{cls:#06x}" for cls in classes),
        )
        return "unknown"
    if first == PCI_VGA_CONTROLLER_CLASS:
        return "graphics"
    if first == PCI_3D_CONTROLLER_CLASS:
        return "compute"
    return "unknown"


def _device_classes(devices: Iterable[Any]) -> list[int]:
    return list(dict.fromkeys(device.get_pci_class() for device in devices))


def new_machine_type_labeler(path: str | None) -> Labels:
    """Return the gpu.machine label read from ``path``, or unknown on error."""
    try:
        machine_type = get_machine_type(path)
    except LabelingError as err:
        log.warning("Error getting machine type from %s: %s", path, err)
        machine_type = MACHINE_TYPE_UNKNOWN
    return Labels({"nvidia.com/gpu.machine": sanitise(machine_type)})


def get_machine_type(path: str | None) -> str:
    """Return the stripped contents of the machine type file, or unknown if unset."""
    if not path:
        return MACHINE_TYPE_UNKNOWN
    try:
        with open(path, encoding="utf-8") as handle:
            return handle.read().strip()
    except OSError as err:
        raise LabelingError(f"could not open machine type file: {err}") from err