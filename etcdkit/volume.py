"""Volume records and the interface that cloud volume providers implement."""

from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass, field


@dataclass
class VolumeInfo:
    """Free-form information about a volume."""

    description: str = ""


@dataclass
class Volume:
    """A cloud volume that may hold etcd data."""

    # Name to use when mounting the volume.
    mount_name: str = ""
    # Cloud-provider identifier for the volume.
    provider_id: str = ""
    # Name of the etcd member whose data lives on the volume.
    etcd_name: str = ""
    # Set when the volume is attached to the local machine.
    local_device: str = ""
    # ID of the machine the volume is attached to, or "" when unattached.
    attached_to: str = ""
    # Path the volume is mounted on, if mounted.
    mountpoint: str = ""
    # Provider-specific status string.
    status: str = ""
    info: VolumeInfo = field(default_factory=VolumeInfo)


class VolumeProvider(ABC):
    """Finds, attaches and locates volumes on one cloud."""

    @abstractmethod
    def attach_volume(self, volume: Volume) -> None:
        """Attach the volume to this machine, setting its local device or mountpoint."""

    @abstractmethod
    def find_volumes(self) -> list[Volume]:
        """Return the volumes that belong to this etcd cluster."""

    @abstractmethod
    def find_mounted_volume(self, volume: Volume) -> str:
        """Return the device the volume is attached at, or "" when not found yet.

        Raises on any error other than the device being absent. Callers poll
        this until the volume shows up.
        """

    @abstractmethod
    def my_ip(self) -> str:
        """Return this machine's IP address."""