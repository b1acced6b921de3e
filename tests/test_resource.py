from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any

import pytest

from gpufeatures.labels import LabelingError
from gpufeatures.resource import (
    ReplicatedResource,
    ResourceLabeler,
    Sharing,
    get_arch_family,
    new_gpu_resource_labeler,
    new_gpu_resource_labeler_without_sharing,
    new_mig_resource_labeler,
    sanitise,
)


@dataclass
class MockDevice:
    name: str = "MOCKMODEL"
    total_memory_mb: int = 300
    compute: tuple = (8, 0)
    parent: Any = None
    attributes: dict = field(default_factory=dict)

    def get_name(self):
        return self.name

    def get_total_memory_mb(self):
        return self.total_memory_mb

    def get_cuda_compute_capability(self):
        return self.compute

    def get_device_handle_from_mig_device_handle(self):
        return self.parent

    def get_attributes(self):
        return self.attributes


def full_gpu():
    return MockDevice()


def mig_device(gi, ci, memory):
    attributes = {
        "memory": memory,
        "multiprocessors": 0,
        "slices.gi": gi,
        "slices.ci": ci,
        "engines.copy": 0,
        "engines.decoder": 0,
        "engines.encoder": 0,
        "engines.jpeg": 0,
        "engines.ofa": 0,
    }
    parent = MockDevice(compute=(0, 0))
    return MockDevice(name=f"{gi}g.{memory}gb", total_memory_mb=memory, parent=parent, attributes=attributes)


def gpu_labels(count, replicas, strategy, product):
    return {
        "nvidia.com/gpu.count": count,
        "nvidia.com/gpu.replicas": replicas,
        "nvidia.com/gpu.sharing-strategy": strategy,
        "nvidia.com/gpu.memory": "300",
        "nvidia.com/gpu.product": product,
        "nvidia.com/gpu.family": "ampere",
        "nvidia.com/gpu.compute.major": "8",
        "nvidia.com/gpu.compute.minor": "0",
    }


@pytest.mark.parametrize(
    "count, sharing, expected",
    [
        (0, Sharing(), {}),
        (1, Sharing(), gpu_labels("1", "1", "none", "MOCKMODEL")),
        (
            1,
            Sharing(time_slicing=[ReplicatedResource(name="nvidia.com/not-gpu", replicas=2)]),
            gpu_labels("1", "1", "none", "MOCKMODEL"),
        ),
        (
            1,
            Sharing(time_slicing=[ReplicatedResource(name="nvidia.com/gpu", replicas=2)]),
            gpu_labels("1", "2", "time-slicing", "MOCKMODEL-SHARED"),
        ),
        (
            1,
            Sharing(
                time_slicing=[
                    ReplicatedResource(name="nvidia.com/gpu", rename="nvidia.com/gpu.shared", replicas=2)
                ]
            ),
            gpu_labels("1", "2", "time-slicing", "MOCKMODEL"),
        ),
        (
            1,
            Sharing(mps=[ReplicatedResource(name="nvidia.com/not-gpu", replicas=2)]),
            gpu_labels("1", "1", "none", "MOCKMODEL"),
        ),
        (
            1,
            Sharing(mps=[ReplicatedResource(name="nvidia.com/gpu", replicas=2)]),
            gpu_labels("1", "2", "mps", "MOCKMODEL-SHARED"),
        ),
        (
            1,
            Sharing(mps=[ReplicatedResource(name="nvidia.com/gpu", rename="nvidia.com/gpu.shared", replicas=2)]),
            gpu_labels("1", "2", "mps", "MOCKMODEL"),
        ),
    ],
    ids=[
        "zero-count",
        "no-sharing",
        "time-slicing-non-matching",
        "time-slicing-suffix",
        "time-slicing-renamed",
        "mps-non-matching",
        "mps-suffix",
        "mps-renamed",
    ],
)
def test_gpu_resource_labeler(count, sharing, expected):
    assert new_gpu_resource_labeler(sharing, full_gpu(), count).labels() == expected


def test_gpu_resource_labeler_without_sharing_has_zero_replicas():
    labels = new_gpu_resource_labeler_without_sharing(full_gpu(), 2).labels()
    assert labels["nvidia.com/gpu.replicas"] == "0"
    assert labels["nvidia.com/gpu.sharing-strategy"] == "none"
    assert labels["nvidia.com/gpu.count"] == "2"


def test_gpu_resource_labeler_zero_memory_and_compute_omits_labels():
    device = MockDevice(total_memory_mb=0, compute=(0, 0))
    labels = new_gpu_resource_labeler(Sharing(), device, 1).labels()
    assert "nvidia.com/gpu.memory" not in labels
    assert "nvidia.com/gpu.family" not in labels
    assert labels["nvidia.com/gpu.product"] == "MOCKMODEL"


def test_gpu_resource_labeler_wraps_device_errors():
    class Broken(MockDevice):
        def get_name(self):
            raise RuntimeError("boom")

    with pytest.raises(LabelingError, match="failed to get device model"):
        new_gpu_resource_labeler(Sharing(), Broken(), 1)


@pytest.mark.parametrize(
    "text, expected",
    [
        ("a space separated string", "a-space-separated-string"),
        ("some(thing)else", "somethingelse"),
        ("some ( thing )else", "some-thing-else"),
        ("NVIDIA-TITAN-X-(Pascal)", "NVIDIA-TITAN-X-Pascal"),
        (" input  with multiple   spaces   ", "input-with-multiple-spaces"),
        ("some [ / thing / ]else", "some-thing-else"),
        ("some / thing /else", "some-thing-else"),
        ("some-thing.else_new", "some-thing.else_new"),
    ],
)
def test_sanitise(text, expected):
    assert sanitise(text) == expected


def mig_labels(prefix, replicas, strategy, product):
    return {
        f"{prefix}.count": "1",
        f"{prefix}.replicas": replicas,
        f"{prefix}.sharing-strategy": strategy,
        f"{prefix}.memory": "300",
        f"{prefix}.product": product,
        f"{prefix}.multiprocessors": "0",
        f"{prefix}.slices.gi": "1",
        f"{prefix}.slices.ci": "2",
        f"{prefix}.engines.copy": "0",
        f"{prefix}.engines.decoder": "0",
        f"{prefix}.engines.encoder": "0",
        f"{prefix}.engines.jpeg": "0",
        f"{prefix}.engines.ofa": "0",
    }


@pytest.mark.parametrize(
    "resource_name, count, time_slicing, expected",
    [
        ("", 0, [], {}),
        ("nvidia.com/gpu", 1, [], mig_labels("nvidia.com/gpu", "1", "none", "MOCKMODEL-MIG-1g.300gb")),
        (
            "nvidia.com/gpu",
            1,
            [ReplicatedResource(name="nvidia.com/gpu", replicas=2)],
            mig_labels("nvidia.com/gpu", "2", "time-slicing", "MOCKMODEL-MIG-1g.300gb-SHARED"),
        ),
        (
            "nvidia.com/gpu",
            1,
            [ReplicatedResource(name="nvidia.com/gpu", rename="nvidia.com/gpu.shared", replicas=2)],
            mig_labels("nvidia.com/gpu", "2", "time-slicing", "MOCKMODEL-MIG-1g.300gb"),
        ),
        (
            "nvidia.com/mig-1g.1gb",
            1,
            [
                ReplicatedResource(name="nvidia.com/gpu", rename="nvidia.com/gpu.shared", replicas=2),
                ReplicatedResource(name="nvidia.com/mig-1g.1gb", replicas=2),
            ],
            mig_labels("nvidia.com/mig-1g.1gb", "2", "time-slicing", "MOCKMODEL-MIG-1g.300gb-SHARED"),
        ),
        (
            "nvidia.com/mig-1g.1gb",
            1,
            [
                ReplicatedResource(
                    name="nvidia.com/mig-1g.1gb", rename="nvidia.com/mig-1g.1gb.shared", replicas=2
                )
            ],
            mig_labels("nvidia.com/mig-1g.1gb", "2", "time-slicing", "MOCKMODEL-MIG-1g.300gb"),
        ),
    ],
    ids=["zero-count", "no-sharing", "shared", "renamed", "mixed-shared", "mixed-renamed"],
)
def test_mig_resource_labeler(resource_name, count, time_slicing, expected):
    sharing = Sharing(time_slicing=time_slicing)
    labeler = new_mig_resource_labeler(resource_name, sharing, mig_device(1, 2, 300), count)
    assert labeler.labels() == expected


@pytest.mark.parametrize(
    "major, minor, family",
    [
        (1, 0, "tesla"),
        (2, 1, "fermi"),
        (3, 5, "kepler"),
        (5, 2, "maxwell"),
        (6, 1, "pascal"),
        (7, 0, "volta"),
        (7, 5, "turing"),
        (8, 6, "ampere"),
        (9, 0, "hopper"),
        (4, 0, "undefined"),
        (10, 0, "undefined"),
    ],
)
def test_get_arch_family(major, minor, family):
    assert get_arch_family(major, minor) == family


def test_sharing_strategy_selection():
    assert Sharing().strategy() == "none"
    assert Sharing(time_slicing=[ReplicatedResource(replicas=2)]).strategy() == "time-slicing"
    assert Sharing(mps=[ReplicatedResource(replicas=1)]).strategy() == "none"
    mps = [ReplicatedResource(name="nvidia.com/gpu", replicas=3)]
    sharing = Sharing(time_slicing=[ReplicatedResource(replicas=2)], mps=mps)
    assert sharing.strategy() == "mps"
    assert sharing.replicated_resources() is mps


def test_resource_labeler_without_sharing():
    rl = ResourceLabeler("nvidia.com/gpu", None)
    assert rl.replicas() == 0
    assert rl.replication_info() is None
    assert rl.is_shared() is False
    assert rl.product_name("A B", "", "C(x)") == "A-B-Cx"


def test_resource_labeler_product_label_and_update():
    rl = ResourceLabeler("nvidia.com/gpu", Sharing())
    assert rl.product_label("", "") == {}
    labels = rl.product_label("Model")
    rl.update_label(labels, "flag", True)
    assert labels == {"nvidia.com/gpu.product": "Model", "nvidia.com/gpu.flag": "true"}
    assert rl.key("count") == "nvidia.com/gpu.count"