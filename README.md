# gpufeatures

`gpufeatures` turns a description of the GPUs on a machine into a flat set of
node labels. These are `key=value` pairs such as `nvidia.com/gpu.product` or
`nvidia.com/mig.strategy`. It can write those labels to a file or to a stream.
It also contains the steps a device plugin uses to fill in a container
allocation response.

The package talks to no driver itself. You pass in *manager* and *device*
objects that report what the hardware looks like. The labelers work the same
way with real devices and with test doubles.

## Installation

```
pip install gpufeatures
```

The package has no runtime dependencies. To run the test suite, install the
`test` extra:

```
pip install "gpufeatures[test]"
```

## The objects you supply

The labelers call these methods on the objects you pass in:

- **manager**: `get_devices()`, and for the node-level labelers also `init()`,
  `shutdown()`, `get_driver_version()` (a string such as `"550.54.14"`) and
  `get_cuda_driver_version()` (a `(major, minor)` pair).
- **device**: `get_name()`, `get_total_memory_mb()`,
  `get_cuda_compute_capability()` (a `(major, minor)` pair), `is_mig_enabled()`,
  `is_mig_capable()`, `get_mig_devices()` and `get_pci_class()`.
- **MIG device**: `get_name()` (the profile, such as `1g.10gb`), `get_attributes()`
  (a mapping of label suffix to value) and
  `get_device_handle_from_mig_device_handle()` (the parent device).
- **vGPU library**: `devices()`; each device's `get_info()` returns an object
  with `host_driver_version` and `host_driver_branch`.

## Labelers

A labeler is anything with a `labels()` method that returns a `Labels` mapping.
`Labels` is a `dict` and is its own labeler, and `Empty()` produces no labels.
`merge(...)` combines several labelers into a `LabelerList`. When two labelers
produce the same key, the later one wins.

```python
from gpufeatures.labels import Labels, merge, mig_strategy_labeler, new_timestamp_labeler

combined = merge(
    Labels({"nvidia.com/gpu.machine": "example-machine"}),
    mig_strategy_labeler("single"),
    new_timestamp_labeler(no_timestamp=True),
)
print(combined.labels())
```

If a labeler in a `LabelerList` fails, the error is raised as a
`LabelingError`. `mig_strategy_labeler` yields no label for the `none`
strategy; `new_timestamp_labeler(False)` yields `nvidia.com/gfd.timestamp` with
the current Unix time.

### Resource labels

`gpufeatures.resource` builds the per-resource labels: product, count,
replicas, sharing strategy, memory, architecture family and compute
capability. Sharing is described with `Sharing` (time-slicing and optional MPS
lists) and `ReplicatedResource` (name, replicas, rename).
`Sharing.strategy()` returns `mps`, `time-slicing` or `none`.

```python
from gpufeatures.resource import ReplicatedResource, Sharing, new_gpu_resource_labeler

sharing = Sharing(time_slicing=[ReplicatedResource(name="nvidia.com/gpu", replicas=2)])
labels = new_gpu_resource_labeler(sharing, device, count=1).labels()
# e.g. nvidia.com/gpu.product = "MODEL-SHARED", nvidia.com/gpu.sharing-strategy = "time-slicing"
```

A shared resource gets `-SHARED` appended to its product name unless it is
renamed. With `new_gpu_resource_labeler_without_sharing` the replicas label is
`0`. `new_mig_resource_labeler(resource_name, sharing, device, count)` does the
same for a MIG device, naming the product `<model>-MIG-<profile>` and adding
the device's attributes. A count of zero gives an empty labeler.

`sanitise(text)` removes every character other than letters, digits, `-`, `_`,
`.` and spaces, then joins the remaining words with dashes.
`get_arch_family(major, minor)` maps a CUDA compute capability to an
architecture family name (`ampere`, `hopper`, ... or `undefined`).

### MIG strategies

`gpufeatures.migstrategy.new_resource_labeler(manager, mig_strategy, sharing)`
produces labels for full GPUs and for MIG devices. The MIG strategy is one of
`none`, `single` or `mixed` (see `MigStrategy`); any other value raises
`LabelingError`. Under `mixed`, each MIG profile becomes a
`nvidia.com/mig-<profile>` resource. Under `single`, some layouts are
inconsistent:

- a MIG-enabled GPU with no MIG devices,
- MIG-enabled and MIG-disabled GPUs on the same node,
- more than one MIG profile.

For these layouts the labeler emits an `…-MIG-INVALID` product label with
zero counts instead of the MIG resource labels.

`gpufeatures.mig.DeviceInfo` groups a manager's devices by MIG mode and lists
their MIG devices. `get_mig_capability_device_paths(minors_path)` reads a MIG
minors file (by default `/proc/driver/nvidia-caps/mig-minors`) and maps each
capability path to its `/dev/nvidia-caps/nvidia-capN` node. A missing file
gives an empty mapping and unparsable lines are skipped;
`parse_mig_minors_line(line)` parses a single line.

### Node labels

`gpufeatures.nvml` provides the complete labeler set for a node:

- `new_device_labeler(manager, config)` initialises the manager, combines the
  labels below and shuts the manager down again:
  - machine type (`new_machine_type_labeler`),
  - driver and CUDA versions (`new_version_labeler`),
  - MIG capability (`new_mig_capability_labeler`),
  - MPS capability (`new_sharing_labeler`),
  - resources (`new_resource_labeler`),
  - GPU mode (`new_gpu_mode_labeler`: `graphics`, `compute` or `unknown`).
- `new_labelers(manager, vgpu, config)` adds the vGPU labels from
  `VGPULabeler`.

`LabelerConfig` carries the MIG strategy, the sharing settings and the path of
the machine type file. A driver version not of the form `X.Y[.Z]` raises
`LabelingError`. When MPS sharing is configured on a node with MIG-enabled
GPUs, `new_sharing_labeler` and `new_device_labeler` raise
`MPSSharingNotSupportedError`.

## Writing labels

```python
from gpufeatures.output import to_file

to_file("/etc/kubernetes/node-feature-discovery/features.d/gfd").output(labels)
```

`to_file(path)` returns a `FileOutputer`, which writes to a temporary file and
then replaces the target, raising `OSError` on failure. If `path` is empty, it
returns a `WriterOutputer` that writes to standard output. Each label is
written as one `key=value` line.

## Allocation responses

`gpufeatures.allocate` holds the data types and steps used to answer a
container allocation request:

- `ResponseBuilder` takes the device list strategies, a function that gives a
  qualified CDI device name, the GDS and MOFED switches, the CDI annotation
  prefix and the name of the device-list environment variable. It fills a
  `ContainerAllocateResponse` in three ways:
  - `update_response_for_cdi` adds CDI annotations or CDI device names,
  - `update_response_for_device_list_envvar` sets the device-list environment variable,
  - `update_response_for_device_mounts` adds `/dev/null` volume mounts under
    `/var/run/nvidia-container-devices`.
- `DeviceListStrategy` names the available strategies; an unknown strategy
  raises `ValueError`.
- `update_cdi_annotations` builds the annotation mapping that CDI-aware
  runtimes read, raising `ValueError` for invalid names.

## What the package does not do

`gpufeatures` has no command-line program and runs no service. It does not
discover devices, so you supply the manager and device objects. It does not
serve the device plugin protocol or register with a kubelet, and it does not
publish labels to a cluster API. Labels are written only to files or streams.

## Version

`gpufeatures.version.get_version_string()` returns the version, with the build
commit on a second line when one is recorded. Extra arguments are appended as
further lines.