"""Etcd volumes backed by Azure managed disks on a VM scale set."""

from __future__ import annotations

import copy
import ipaddress
import logging
import os
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Iterable, Optional

from etcdkit.azure_metadata import DataDisk, IPAddressValue
from etcdkit.paths import path_for
from etcdkit.volume import Volume, VolumeInfo, VolumeProvider

log = logging.getLogger(__name__)

DISK_CREATE_OPTION_ATTACH = "Attach"
STORAGE_ACCOUNT_STANDARD_LRS = "Standard_LRS"

_LUN_TO_DEV = {"0": "/dev/sdc", "1": "/dev/sdd"}


@dataclass
class AzureDisk:
    """A managed disk of the resource group."""

    name: str = ""
    id: str = ""
    disk_state: str = ""
    # Resource ID of the VM the disk is attached to, or None.
    managed_by: Optional[str] = None
    tags: dict[str, str] = field(default_factory=dict)


@dataclass
class AzureDataDisk:
    """A data disk entry in a VM's storage profile."""

    lun: Optional[int] = None
    name: str = ""
    create_option: str = ""
    managed_disk_id: str = ""
    storage_account_type: str = ""


@dataclass
class ScaleSetVM:
    """A VM of the scale set, with the data disks in its storage profile."""

    name: str = ""
    id: str = ""
    data_disks: list[AzureDataDisk] = field(default_factory=list)


class AzureClient(ABC):
    """Access to this instance's metadata and to the Azure APIs that volumes need."""

    @abstractmethod
    def name(self) -> str:
        """Return the name of this instance."""

    @abstractmethod
    def vm_scale_set_instance_id(self) -> str:
        """Return this instance's ID within its scale set."""

    @abstractmethod
    def data_disks(self) -> list[DataDisk]:
        """Return the data disks the metadata reports as attached here."""

    @abstractmethod
    def refresh_metadata(self) -> None:
        """Query the instance metadata again."""

    @abstractmethod
    def local_ip(self) -> Optional[IPAddressValue]:
        """Return this instance's private IP, or None."""

    @abstractmethod
    def list_vm_scale_set_vms(self) -> list[ScaleSetVM]:
        """Return the VMs of the scale set."""

    @abstractmethod
    def get_vm_scale_set_vm(self, instance_id: str) -> ScaleSetVM:
        """Return one VM of the scale set."""

    @abstractmethod
    def update_vm_scale_set_vm(self, instance_id: str, vm: ScaleSetVM) -> None:
        """Update one VM of the scale set and wait for the update to complete."""

    @abstractmethod
    def list_disks(self) -> list[AzureDisk]:
        """Return the managed disks of the resource group."""


class InMemoryAzureClient(AzureClient):
    """An Azure client that keeps its VMs and disks in memory."""

    def __init__(
        self,
        *,
        instance_name: str = "master.masters.cluster.k8s.local_0",
        instance_id: str = "0",
        ip_address: str = "10.0.0.1",
    ) -> None:
        self.instance_name = instance_name
        self.instance_id = instance_id
        self.ip_address = ip_address
        self.attached_data_disks: list[DataDisk] = []
        self.vms: dict[str, ScaleSetVM] = {}
        self.disks: list[AzureDisk] = []
        self.metadata_refreshes = 0

    def name(self) -> str:
        return self.instance_name

    def vm_scale_set_instance_id(self) -> str:
        return self.instance_id

    def data_disks(self) -> list[DataDisk]:
        return self.attached_data_disks

    def refresh_metadata(self) -> None:
        """Record that the metadata was queried again; it is already current."""
        self.metadata_refreshes += 1

    def local_ip(self) -> Optional[IPAddressValue]:
        try:
            return ipaddress.ip_address(self.ip_address)
        except ValueError:
            return None

    def list_vm_scale_set_vms(self) -> list[ScaleSetVM]:
        return list(self.vms.values())

    def get_vm_scale_set_vm(self, instance_id: str) -> ScaleSetVM:
        return copy.deepcopy(self.vms.get(instance_id, ScaleSetVM()))

    def update_vm_scale_set_vm(self, instance_id: str, vm: ScaleSetVM) -> None:
        self.vms[instance_id] = vm

    def list_disks(self) -> list[AzureDisk]:
        return list(self.disks)


def lun_to_dev(lun: str) -> str:
    """Return the device a LUN shows up as, or "" when unknown."""
    return _LUN_TO_DEV.get(lun, "")


class AzureVolumes(VolumeProvider):
    """Volume provider over the managed disks of a VM scale set."""

    def __init__(
        self,
        cluster_name: str,
        volume_tags: Iterable[str],
        name_tag: str,
        client: AzureClient,
        *,
        containerized: bool = False,
    ) -> None:
        self.cluster_name = cluster_name
        self.name_tag = name_tag
        self.client = client
        self.containerized = containerized
        # Disks carrying all these tag keys belong to this cluster.
        self.match_tag_keys: set[str] = set()
        # Disks carrying all these tag values belong to this cluster.
        self.match_tags: dict[str, str] = {}
        for tag in volume_tags:
            key, sep, value = tag.partition("=")
            if sep:
                self.match_tags[key] = value
            else:
                self.match_tag_keys.add(key)

        self.instance_id = client.name()
        if not self.instance_id:
            raise ValueError("empty name")
        local_ip = client.local_ip()
        if local_ip is None:
            raise ValueError("error querying internal IP")
        self.local_ip: IPAddressValue = local_ip

    def my_ip(self) -> str:
        return str(self.local_ip)

    def find_volumes(self) -> list[Volume]:
        try:
            disks = self.client.list_disks()
        except Exception as err:
            raise RuntimeError(f"error listing disks: {err}") from err

        # Query metadata again before checking which data disks are attached.
        try:
            self.client.refresh_metadata()
        except Exception as err:
            raise RuntimeError(f"error refreshing metadata: {err}") from err

        found = []
        for disk in disks:
            if not self.is_disk_for_cluster(disk):
                continue
            v = Volume(
                mount_name="master-" + disk.name,
                provider_id=disk.id,
                etcd_name=self.extract_etcd_name(disk),
                status=disk.disk_state,
                info=VolumeInfo(description=disk.name),
            )
            if disk.managed_by is not None:
                v.attached_to = disk.managed_by.split("/")[-1]
                if v.attached_to == self.instance_id:
                    try:
                        v.local_device = self._find_local_device(disk)
                    except ValueError as err:
                        raise RuntimeError(f"error finding a local device: {err}") from err
            found.append(v)
        return found

    def _find_local_device(self, disk: AzureDisk) -> str:
        found = next(
            (
                d
                for d in self.client.data_disks()
                if d.managed_disk is not None and d.managed_disk.id == disk.id
            ),
            None,
        )
        if found is None:
            raise ValueError(f"no data disk found for {disk.id}")
        dev = lun_to_dev(found.lun)
        if not dev:
            raise ValueError(f"no device found for LUN {found.lun}")
        return dev

    def find_mounted_volume(self, volume: Volume) -> str:
        dev = volume.local_device
        local = path_for(dev, self.containerized)
        try:
            os.stat(local)
        except FileNotFoundError:
            log.debug("volume %s not mounted at %s", volume.provider_id, local)
        except OSError as err:
            raise RuntimeError(f"error checking for device {dev!r}: {err}") from err
        return dev

    def attach_volume(self, volume: Volume) -> None:
        if volume.local_device:
            return
        instance_id = self.client.vm_scale_set_instance_id()
        try:
            vm = self.client.get_vm_scale_set_vm(instance_id)
        except Exception as err:
            raise RuntimeError(f"error getting VM: {err}") from err

        try:
            lun = self.find_available_lun()
        except Exception as err:
            raise RuntimeError(f"error finding available Lun: {err}") from err

        disk = AzureDataDisk(
            lun=lun,
            # The disk name is carried in the volume description.
            name=volume.info.description,
            create_option=DISK_CREATE_OPTION_ATTACH,
            managed_disk_id=volume.provider_id,
            storage_account_type=STORAGE_ACCOUNT_STANDARD_LRS,
        )
        vm.data_disks = [*vm.data_disks, disk]
        try:
            self.client.update_vm_scale_set_vm(instance_id, vm)
        except Exception as err:
            raise RuntimeError(f"error updating VM: {err}") from err

        volume.local_device = lun_to_dev(str(lun))

    def is_disk_for_cluster(self, disk: AzureDisk) -> bool:
        """Tell whether the disk's tags mark it as belonging to this cluster."""
        found = 0
        for key, value in disk.tags.items():
            if key in self.match_tag_keys:
                found += 1
            if self.match_tags.get(key, "") == value:
                found += 1
        return found == len(self.match_tag_keys) + len(self.match_tags)

    def extract_etcd_name(self, disk: AzureDisk) -> str:
        """Return the etcd name from the disk's name tag, or the disk name."""
        if not self.name_tag:
            return disk.name
        value = disk.tags.get(self.name_tag, "")
        if not value:
            return disk.name
        return self.cluster_name + "-" + value.split("/", 1)[0]

    def find_available_lun(self) -> int:
        """Return one past the highest LUN in use on this VM, or 0 when none is.

        Concurrent callers may pick the same LUN; only one VM update then
        succeeds and the others are retried.
        """
        try:
            vm = self.client.get_vm_scale_set_vm(self.client.vm_scale_set_instance_id())
        except Exception as err:
            raise RuntimeError(f"error getting VM: {err}") from err
        if not vm.data_disks:
            return 0
        max_lun = max((d.lun for d in vm.data_disks if d.lun is not None), default=0)
        return max(max_lun, 0) + 1