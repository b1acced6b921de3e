"""Labels describing GPU and MIG resources and how they are shared."""

from __future__ import annotations

import re
from dataclasses import dataclass, field
from typing import Any, Callable, Mapping, TypeVar

from gpufeatures.labels import Empty, Labeler, LabelingError, Labels, merge

FULL_GPU_RESOURCE_NAME = "nvidia.com/gpu"

_STRATEGY_NONE = "none"
_STRATEGY_TIME_SLICING = "time-slicing"
_STRATEGY_MPS = "mps"

_DISALLOWED = re.compile(r"[^A-Za-z0-9\-_. ]")

_T = TypeVar("_T")


def _call(message: str, func: Callable[..., _T], *args: Any) -> _T:
    """Call ``func`` and re-raise any failure as a LabelingError with context."""
    try:
        return func(*args)
    except Exception as err:
        raise LabelingError(f"{message}: {err}") from err


def _format(value: Any) -> str:
    if isinstance(value, bool):
        return "true" if value else "false"
    return str(value)


@dataclass
class ReplicatedResource:
    """A resource that is advertised as several replicas."""

    name: str = ""
    replicas: int = 0
    rename: str = ""


def _is_replicated(resources: list[ReplicatedResource]) -> bool:
    return any(resource.replicas > 1 for resource in resources)


@dataclass
class Sharing:
    """The sharing configuration: time-slicing and, optionally, MPS."""

    time_slicing: list[ReplicatedResource] = field(default_factory=list)
    mps: list[ReplicatedResource] | None = None

    def strategy(self) -> str:
        """Return the sharing strategy in effect: ``mps``, ``time-slicing`` or ``none``."""
        if self.mps is not None and _is_replicated(self.mps):
            return _STRATEGY_MPS
        if _is_replicated(self.time_slicing):
            return _STRATEGY_TIME_SLICING
        return _STRATEGY_NONE

    def replicated_resources(self) -> list[ReplicatedResource]:
        """Return the replicated resources of the strategy in effect."""
        if self.strategy() == _STRATEGY_MPS and self.mps is not None:
            return self.mps
        return self.time_slicing


class ResourceLabeler:
    """Builds labels keyed as ``<resource-name>.<suffix>``.

    A sharing of ``None`` means that sharing is disabled for the resource.
    """

    def __init__(self, resource_name: str, sharing: Sharing | None) -> None:
        self.resource_name = resource_name
        self.sharing = sharing

    def single(self, suffix: str, value: Any) -> Labels:
        """Return a single label for the resource."""
        return self.labels({suffix: value})

    def labels(self, suffix_values: Mapping[str, Any]) -> Labels:
        """Return one label per suffix in the mapping."""
        result = Labels()
        for suffix, value in suffix_values.items():
            self.update_label(result, suffix, value)
        return result

    def update_label(self, labels: Labels, suffix: str, value: Any) -> None:
        """Set the label for ``suffix`` in ``labels`` to ``value``."""
        labels[self.key(suffix)] = _format(value)

    def key(self, suffix: str) -> str:
        return f"{self.resource_name}.{suffix}"

    def base_labeler(self, count: int, *parts: str) -> Labels:
        """Return the product, count, replicas and sharing-strategy labels."""
        replicas = self.replicas()
        strategy = _STRATEGY_NONE
        if self.sharing is not None and replicas > 1:
            strategy = self.sharing.strategy()
        return self.labels(
            {
                "product": self.product_name(*parts),
                "count": count,
                "replicas": replicas,
                "sharing-strategy": strategy,
            }
        )

    def product_label(self, *parts: str) -> Labels:
        """Return the product label alone, or no labels if the name is empty."""
        name = self.product_name(*parts)
        if not name:
            return Labels()
        return self.single("product", name)

    def product_name(self, *parts: str) -> str:
        """Join the sanitised, non-empty parts, marking shared resources."""
        stripped = [sanitise(part) for part in parts if part]
        if not stripped:
            return ""
        if self.is_shared() and not self.is_renamed():
            stripped.append("SHARED")
        return "-".join(stripped)

    def replicas(self) -> int:
        """Return 0 if sharing is disabled, else the configured replicas (at least 1)."""
        if self.sharing is None:
            return 0
        info = self.replication_info()
        if info is not None and info.replicas > 0:
            return info.replicas
        return 1

    def is_shared(self) -> bool:
        info = self.replication_info()
        return info is not None and info.replicas > 1

    def is_renamed(self) -> bool:
        info = self.replication_info()
        return info is not None and info.rename != ""

    def replication_info(self) -> ReplicatedResource | None:
        """Return the replication settings configured for this resource, if any."""
        if self.sharing is None:
            return None
        for resource in self.sharing.replicated_resources():
            if resource.name == self.resource_name:
                return resource
        return None


def new_gpu_resource_labeler_without_sharing(device: Any, count: int) -> Labeler:
    """Return a resource labeler for a full GPU with sharing disabled."""
    return new_gpu_resource_labeler(None, device, count)


def new_gpu_resource_labeler(sharing: Sharing | None, device: Any, count: int) -> Labeler:
    """Return a resource labeler for ``count`` full GPUs like ``device``."""
    if count == 0:
        return Empty()

    model = _call("failed to get device model", device.get_name)
    total_memory_mb = _call("failed to get memory info for device", device.get_total_memory_mb)

    rl = ResourceLabeler(FULL_GPU_RESOURCE_NAME, sharing)
    architecture = _call("failed to create architecture labels", _architecture_labels, rl, device)

    memory: Labeler = Empty()
    if total_memory_mb != 0:
        memory = rl.single("memory", total_memory_mb)

    return merge(rl.base_labeler(count, model), memory, architecture)


def new_mig_resource_labeler(
    resource_name: str, sharing: Sharing | None, device: Any, count: int
) -> Labeler:
    """Return a resource labeler for ``count`` MIG devices like ``device``."""
    if count == 0:
        return Empty()

    parent = _call("failed to get parent of MIG device", device.get_device_handle_from_mig_device_handle)
    model = _call("failed to get device model", parent.get_name)
    profile = _call("failed to get MIG profile name", device.get_name)

    rl = ResourceLabeler(resource_name, sharing)
    attributes = _call("failed to get MIG attribute labels", _mig_attribute_labels, rl, device)

    return merge(rl.base_labeler(count, model, "MIG", profile), attributes)


def _mig_attribute_labels(rl: ResourceLabeler, device: Any) -> Labels:
    attributes = _call("unable to get attributes of MIG device", device.get_attributes)
    return rl.labels(attributes)


def _architecture_labels(rl: ResourceLabeler, device: Any) -> Labels:
    major, minor = _call(
        "failed to determine CUDA compute capability", device.get_cuda_compute_capability
    )
    if major == 0:
        return Labels()
    return rl.labels(
        {
            "family": get_arch_family(major, minor),
            "compute.major": major,
            "compute.minor": minor,
        }
    )


_FAMILIES = {
    1: "tesla",
    2: "fermi",
    3: "kepler",
    5: "maxwell",
    6: "pascal",
    8: "ampere",
    9: "hopper",
}


def get_arch_family(compute_major: int, compute_minor: int) -> str:
    """Return the architecture family name for a CUDA compute capability."""
    if compute_major == 7:
        return "volta" if compute_minor < 5 else "turing"
    return _FAMILIES.get(compute_major, "undefined")


def sanitise(text: str) -> str:
    """Drop disallowed characters and join the remaining words with dashes."""
    return "-".join(_DISALLOWED.sub("", text).split())