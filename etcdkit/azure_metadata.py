"""Azure instance metadata: its data model, parsing and retrieval."""

from __future__ import annotations

import ipaddress
import json
import urllib.error
import urllib.request
from dataclasses import dataclass, field
from typing import Any, Optional, Union
from urllib.parse import urlencode

IPAddressValue = Union[ipaddress.IPv4Address, ipaddress.IPv6Address]

METADATA_URL = "http://169.254.169.254/metadata/instance"
METADATA_API_VERSION = "2020-06-01"


@dataclass
class ManagedDisk:
    """Reference to the managed disk behind a data disk."""

    id: str = ""


@dataclass
class DataDisk:
    """A data disk attached to the instance."""

    name: str = ""
    lun: str = ""
    managed_disk: Optional[ManagedDisk] = None


@dataclass
class StorageProfile:
    """The storage attached to the instance."""

    data_disks: list[DataDisk] = field(default_factory=list)


@dataclass
class InstanceComputeMetadata:
    """Compute section of the instance metadata."""

    name: str = ""
    resource_group_name: str = ""
    vm_scale_set_name: str = ""
    subscription_id: str = ""
    storage_profile: Optional[StorageProfile] = None


@dataclass
class IPAddress:
    """One private/public address pair of an interface."""

    private_ip_address: str = ""
    public_ip_address: str = ""


@dataclass
class IPv4Interface:
    """IPv4 configuration of a network interface."""

    ip_addresses: list[IPAddress] = field(default_factory=list)


@dataclass
class NetworkInterface:
    """A network interface of the instance."""

    ipv4: Optional[IPv4Interface] = None


@dataclass
class InstanceNetworkMetadata:
    """Network section of the instance metadata."""

    interfaces: list[NetworkInterface] = field(default_factory=list)


@dataclass
class InstanceMetadata:
    """The instance metadata document."""

    compute: Optional[InstanceComputeMetadata] = None
    network: Optional[InstanceNetworkMetadata] = None

    def local_ip(self) -> Optional[IPAddressValue]:
        """Return the first private IP address of the instance, or None."""
        if self.network is None:
            return None
        for iface in self.network.interfaces:
            if iface.ipv4 is None:
                continue
            for addr in iface.ipv4.ip_addresses:
                if addr.private_ip_address:
                    try:
                        return ipaddress.ip_address(addr.private_ip_address)
                    except ValueError:
                        return None
        return None

    def vm_scale_set_instance_id(self) -> str:
        """Return the scale-set instance ID: the part of the name after the last "_"."""
        name = self.compute.name if self.compute is not None else ""
        return name.split("_")[-1]


def _object(data: dict[str, Any], key: str) -> Optional[dict[str, Any]]:
    value = data.get(key)
    if value is None:
        return None
    if not isinstance(value, dict):
        raise ValueError(f"field {key!r} must be an object")
    return value


def _string(data: dict[str, Any], key: str) -> str:
    value = data.get(key)
    if value is None:
        return ""
    if not isinstance(value, str):
        raise ValueError(f"field {key!r} must be a string")
    return value


def _objects(data: dict[str, Any], key: str) -> list[dict[str, Any]]:
    value = data.get(key)
    if value is None:
        return []
    if not isinstance(value, list):
        raise ValueError(f"field {key!r} must be an array")
    items = []
    for item in value:
        if item is None:
            continue
        if not isinstance(item, dict):
            raise ValueError(f"elements of {key!r} must be objects")
        items.append(item)
    return items


def _parse_data_disk(raw: dict[str, Any]) -> DataDisk:
    managed = _object(raw, "managedDisk")
    return DataDisk(
        name=_string(raw, "name"),
        lun=_string(raw, "lun"),
        managed_disk=ManagedDisk(id=_string(managed, "id")) if managed is not None else None,
    )


def _parse_compute(raw: dict[str, Any]) -> InstanceComputeMetadata:
    profile = _object(raw, "storageProfile")
    storage = None
    if profile is not None:
        storage = StorageProfile(
            data_disks=[_parse_data_disk(d) for d in _objects(profile, "dataDisks")]
        )
    return InstanceComputeMetadata(
        name=_string(raw, "name"),
        resource_group_name=_string(raw, "resourceGroupName"),
        vm_scale_set_name=_string(raw, "vmScaleSetName"),
        subscription_id=_string(raw, "subscriptionId"),
        storage_profile=storage,
    )


def _parse_interface(raw: dict[str, Any]) -> NetworkInterface:
    ipv4 = _object(raw, "ipv4")
    if ipv4 is None:
        return NetworkInterface()
    addresses = [
        IPAddress(
            private_ip_address=_string(a, "privateIpAddress"),
            public_ip_address=_string(a, "publicIpAddress"),
        )
        for a in _objects(ipv4, "ipAddress")
    ]
    return NetworkInterface(ipv4=IPv4Interface(ip_addresses=addresses))


def unmarshal_instance_metadata(data: Union[bytes, str]) -> InstanceMetadata:
    """Parse an instance metadata JSON document; raise ValueError if it is malformed."""
    raw = json.loads(data)
    if raw is None:
        return InstanceMetadata()
    if not isinstance(raw, dict):
        raise ValueError("instance metadata must be a JSON object")
    compute = _object(raw, "compute")
    network = _object(raw, "network")
    return InstanceMetadata(
        compute=_parse_compute(compute) if compute is not None else None,
        network=(
            InstanceNetworkMetadata(
                interfaces=[_parse_interface(i) for i in _objects(network, "interface")]
            )
            if network is not None
            else None
        ),
    )


def query_instance_metadata(url: str = METADATA_URL) -> InstanceMetadata:
    """Fetch and parse the instance metadata from the metadata service."""
    query = urlencode(sorted({"format": "json", "api-version": METADATA_API_VERSION}.items()))
    request = urllib.request.Request(f"{url}?{query}", headers={"Metadata": "True"})
    try:
        with urllib.request.urlopen(request) as response:
            body = response.read()
    except urllib.error.HTTPError as err:
        body = err.read()
    except OSError as err:
        raise RuntimeError(f"error sending request to the metadata server: {err}") from err
    try:
        return unmarshal_instance_metadata(body)
    except ValueError as err:
        raise RuntimeError(f"error unmarshalling metadata: {err}") from err