# etcdkit

Building blocks for running etcd on cloud machines. Everything is plain Python
with no third-party dependencies.

## What is in the package

- **Volumes** (`etcdkit.volume`, `etcdkit.paths`, `etcdkit.retry`, `etcdkit.mounter`)
  - `Volume` and `VolumeInfo` describe a volume that may hold etcd data.
  - `VolumeProvider` is the abstract interface a cloud back end implements:
    `attach_volume`, `find_volumes`, `find_mounted_volume` and `my_ip`.
  - `path_for(host_path, containerized)` maps an absolute host path to where it is
    visible from this process (under `/rootfs/` when containerized); a relative
    path raises `ValueError`.
  - `Backoff` and `sleep_until(backoff, condition, sleep)` call a condition up to
    `backoff.attempts` times, sleeping `backoff.duration` seconds between tries.
  - `VolumeMountController` attaches a single master volume through a
    `VolumeProvider`, waits for its device, and formats, mounts and resizes it
    through a `MountBackend` you supply (`list_mounts`, `format_and_mount`,
    `resize`). `Boot.wait_for_volumes()` retries this until a volume is mounted.
    `is_same_device` and `names_for` compare device paths, following symlinks.
- **Google Cloud** (`etcdkit.gce_url`, `etcdkit.gce_ops`, `etcdkit.gce_disks`)
  - `GoogleCloudURL.build_url()` and `parse_google_cloud_url()` build and parse
    compute API resource URLs; `region_from_zone()` and `last_component()`.
  - `Operation`, `OperationError`, `op_is_done`, `error_from_op`, `wait_for_op`
    and `wait_for_scoped_op` poll operations through an `OperationsClient`
    you implement.
  - `GceDisk`, `GceVolumeBuilder` (`matches_tags`, `build_volume`) and
    `decode_gce_label` turn labelled disks into `Volume` records.
- **Azure** (`etcdkit.azure_metadata`, `etcdkit.azure_volumes`)
  - `unmarshal_instance_metadata()` parses an instance metadata JSON document into
    `InstanceMetadata` (with `local_ip()` and `vm_scale_set_instance_id()`);
    `query_instance_metadata()` fetches it from the metadata service.
  - `AzureVolumes` is a `VolumeProvider` over the managed disks of a VM scale set,
    driven by an `AzureClient`. `InMemoryAzureClient` keeps VMs and disks in memory.
    `lun_to_dev()` maps LUN `"0"` and `"1"` to `/dev/sdc` and `/dev/sdd`.
- **OpenStack** (`etcdkit.openstack_config`): `read_config()` parses a cloud
  configuration file into `OpenstackConfig` (`global_` and `block_storage`
  sections); `get_server_fixed_ip()` picks the fixed IP from a server address map.
- **DigitalOcean** (`etcdkit.do_tags`): `DOVolumeMatcher` decides which `DOVolume`
  records belong to the cluster by their `key:value` tags, and `match_volume`
  describes a matching volume; `local_device_name()` gives its device path.
- **etcd members** (`etcdkit.members`): `Member`, `member_for_peer_urls`,
  `member_for_id`, `started` and `initial_cluster_from_members`.

## Installation

```
pip install .
```

For the tests:

```
pip install ".[test]"
pytest
```

## Examples

```python
from etcdkit.gce_url import GoogleCloudURL, parse_google_cloud_url, region_from_zone

ref = GoogleCloudURL(project="demo", zone="us-central1-b", type="disks", name="etcd-1")
url = parse_google_cloud_url(ref.build_url())
print(url.version, url.project, url.zone, url.type, url.name)  # v1 demo us-central1-b disks etcd-1
print(region_from_zone(url.zone))  # us-central1
```

```python
from etcdkit.members import Member, initial_cluster_from_members

members = [
    Member(id=1, name="etcd-a", peer_urls=["https://10.0.0.1:2380"]),
    Member(id=2, name="etcd-b", peer_urls=["https://10.0.0.2:2380"]),
]
print(initial_cluster_from_members(members))
# etcd-a=https://10.0.0.1:2380,etcd-b=https://10.0.0.2:2380
```

## Command-line tools

### Extract a Debian package into a tar file

```
etcdkit-deb-extract --package etcd --packages Packages.gz \
    --mirror http://mirror.example.com/debian --out etcd.tar
```

Options:

- `--package` name of the package to extract (required)
- `--packages` path to the packages index (default `Packages.gz`)
- `--packages-format` `gz` or `raw` (default `gz`)
- `--out` path of the tar file to write (required)
- `--mirror` mirror to download from (required)
- `--cache-dir` directory for downloaded packages (defaults to the user cache
  directory, or the temporary directory when none can be found)

Downloads are checked against the SHA256 from the index and cached under
`deb-tools/<sha256>` in the cache directory. Every entry of the package's
`data.tar.xz` is written to the output tar. Errors are printed to standard error
and the command exits with status 1.

### Check source files for the licence header

```
etcdkit-verify-boilerplate path/to/file.go path/to/script.sh ...
```

Files ending in `.go`, `.py` or `.sh` are checked; others are skipped with a note.
The command exits with status 1 if no file is given, or if any file is missing
the header or has it wrong.

## What the package does not do

- It contains no clients for cloud APIs. `VolumeProvider`, `AzureClient`,
  `OperationsClient` and `MountBackend` are interfaces for you to implement;
  only `InMemoryAzureClient` and the metadata fetch in `query_instance_metadata`
  come ready-made.
- It does not format, mount or resize filesystems itself; that work is done by
  the `MountBackend` given to `VolumeMountController`.
- It does not connect to etcd or restore snapshots; `etcdkit.members` works on
  member lists you already have.