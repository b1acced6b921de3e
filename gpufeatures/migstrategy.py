"""Resource labels according to the configured MIG strategy."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any

from gpufeatures.labels import (
    Empty,
    Labeler,
    LabelerList,
    LabelingError,
    Labels,
    MigStrategy,
    merge,
    mig_strategy_labeler,
)
from gpufeatures.mig import DeviceInfo
from gpufeatures.resource import (
    FULL_GPU_RESOURCE_NAME,
    ResourceLabeler,
    Sharing,
    _call,
    new_gpu_resource_labeler,
    new_gpu_resource_labeler_without_sharing,
    new_mig_resource_labeler,
)

log = logging.getLogger(__name__)


@dataclass
class _MigResource:
    name: str
    device: Any
    count: int = 0


def _strategy_value(strategy: Any) -> str:
    return strategy.value if isinstance(strategy, MigStrategy) else str(strategy)


def new_resource_labeler(manager: Any, mig_strategy: Any, sharing: Sharing | None) -> Labeler:
    """Return a labeler for the GPU resources on the node.

    The labels cover full GPUs and, unless the strategy is ``none``, the MIG
    devices as the strategy exposes them. A missing sharing configuration is
    treated as an empty one.
    """
    if sharing is None:
        sharing = Sharing()

    devices = _call("error getting devices", manager.get_devices)
    if not devices:
        return Empty()

    full_gpus = _call("failed to construct GPU labeler", _gpu_labels, manager, sharing)

    if _strategy_value(mig_strategy) == MigStrategy.NONE.value:
        return full_gpus

    mig_labeler = _call("failed to construct MIG resource labeler", _mig_labeler, manager, mig_strategy, sharing)
    return merge(full_gpus, mig_labeler)


def _mig_labeler(manager: Any, mig_strategy: Any, sharing: Sharing) -> Labeler:
    value = _strategy_value(mig_strategy)
    try:
        strategy = MigStrategy(value)
    except ValueError:
        raise LabelingError(f"unknown strategy: {value}") from None

    if strategy is MigStrategy.NONE:
        labeler: Labeler = Empty()
    elif strategy is MigStrategy.SINGLE:
        labeler = _call(
            "failed to create labeler for mig-strategy=single",
            _single_strategy_labeler,
            manager,
            sharing,
        )
    else:
        labeler = _call(
            "failed to create labeler for mig-strategy=mixed",
            _mixed_strategy_labeler,
            manager,
            sharing,
        )
    return merge(mig_strategy_labeler(strategy.value), labeler)


def _gpu_labels(manager: Any, sharing: Sharing) -> Labels:
    device_info = DeviceInfo(manager)
    by_mig_enabled = _call("error getting map of devices", device_info.get_devices_map)
    if not by_mig_enabled:
        raise LabelingError("no GPU devices detected")

    counts: dict[str, int] = {}
    mig_enabled: dict[str, Any] = {}
    for device in by_mig_enabled.get(True, []):
        name = _call("error getting device name", device.get_name)
        mig_enabled[name] = device
        counts[name] = counts.get(name, 0) + 1

    full: dict[str, Any] = {}
    for device in by_mig_enabled.get(False, []):
        name = _call("error getting device name", device.get_name)
        full[name] = device
        counts[name] = counts.get(name, 0) + 1

    if len(counts) > 1:
        log.warning("Multiple device types detected: %s", list(counts))

    labelers = LabelerList()
    # MIG-enabled devices carry no sharing information.
    for name, device in mig_enabled.items():
        labelers.append(
            _call(
                "failed to construct labeler",
                new_gpu_resource_labeler_without_sharing,
                device,
                counts[name],
            )
        )
    # Full GPUs override MIG-enabled devices of the same name.
    for name, device in full.items():
        labelers.append(
            _call("failed to construct labeler", new_gpu_resource_labeler, sharing, device, counts[name])
        )
    return labelers.labels()


def _collect_mig_resources(device_info: DeviceInfo, resource_name: Any) -> dict[str, _MigResource]:
    migs = _call("unable to retrieve list of MIG devices", device_info.get_all_mig_devices)
    resources: dict[str, _MigResource] = {}
    for mig in migs:
        name = _call("unable to get MIG device name", mig.get_name)
        if name not in resources:
            resources[name] = _MigResource(name=resource_name(name), device=mig)
        resources[name].count += 1
    return resources


def _single_strategy_labeler(manager: Any, sharing: Sharing) -> Labeler:
    device_info = DeviceInfo(manager)
    enabled = _call(
        "unabled to retrieve list of MIG-enabled devices",
        device_info.get_devices_with_mig_enabled,
    )
    if not enabled:
        return Empty()

    has_empty = _call(
        "failed to check for empty MIG-enabled devices",
        device_info.any_mig_enabled_device_is_empty,
    )
    if has_empty:
        return _invalid_mig_strategy_labeler(enabled[0], "at least one MIG device is enabled but empty")

    disabled = _call(
        "unabled to retrieve list of non-MIG-enabled devices",
        device_info.get_devices_with_mig_disabled,
    )
    if disabled:
        return _invalid_mig_strategy_labeler(enabled[0], "devices with MIG enabled and disable detected")

    resources = _collect_mig_resources(device_info, lambda _name: FULL_GPU_RESOURCE_NAME)
    if len(resources) != 1:
        return _invalid_mig_strategy_labeler(enabled[0], "more than one MIG device type present on node")

    return _mig_device_labelers(resources, sharing)


def _invalid_mig_strategy_labeler(device: Any, reason: str) -> Labels:
    log.warning("Invalid configuration detected for mig-strategy=single: %s", reason)
    model = _call("failed to get device model", device.get_name)

    rl = ResourceLabeler(FULL_GPU_RESOURCE_NAME, None)
    labels = rl.product_label(model, "MIG", "INVALID")
    rl.update_label(labels, "count", 0)
    rl.update_label(labels, "replicas", 0)
    rl.update_label(labels, "sharing-strategy", "")
    rl.update_label(labels, "memory", 0)
    return labels


def _mixed_strategy_labeler(manager: Any, sharing: Sharing) -> Labeler:
    # MIG-enabled devices exposing no MIG devices are ignored here.
    device_info = DeviceInfo(manager)
    resources = _collect_mig_resources(device_info, lambda name: f"nvidia.com/mig-{name}")
    return _mig_device_labelers(resources, sharing)


def _mig_device_labelers(resources: dict[str, _MigResource], sharing: Sharing) -> LabelerList:
    return LabelerList(
        _call(
            "failed to construct labeler",
            new_mig_resource_labeler,
            resource.name,
            sharing,
            resource.device,
            resource.count,
        )
        for resource in resources.values()
    )