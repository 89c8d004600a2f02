"""Turning Google Compute Engine disks into etcd volumes."""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass, field
from typing import Iterable
from urllib.parse import unquote_plus

from etcdkit.gce_url import last_component, parse_google_cloud_url
from etcdkit.volume import Volume, VolumeInfo

log = logging.getLogger(__name__)

_BAD_ESCAPE = re.compile(r"%(?![0-9A-Fa-f]{2})")


@dataclass
class GceDisk:
    """The parts of a compute disk that volume discovery needs."""

    name: str = ""
    self_link: str = ""
    zone: str = ""
    status: str = ""
    labels: dict[str, str] = field(default_factory=dict)
    # URLs of the instances the disk is attached to.
    users: list[str] = field(default_factory=list)


def decode_gce_label(s: str) -> str:
    """Decode a label value whose "-" stand for "%" escapes."""
    uri_form = s.replace("-", "%")
    if _BAD_ESCAPE.search(uri_form):
        raise ValueError(f"cannot decode GCE label: {s!r}")
    return unquote_plus(uri_form)


class GceVolumeBuilder:
    """Selects the disks of one cluster and describes them as volumes."""

    def __init__(
        self,
        cluster_name: str,
        volume_tags: Iterable[str],
        name_tag: str,
        *,
        project: str,
        zone: str,
        instance_name: str,
    ) -> None:
        self.cluster_name = cluster_name
        self.name_tag = name_tag
        self.project = project
        self.zone = zone
        self.instance_name = instance_name
        self.match_tag_keys: list[str] = []
        self.match_tags: dict[str, str] = {}
        for tag in volume_tags:
            key, sep, value = tag.partition("=")
            if sep:
                self.match_tags[key] = value
            else:
                self.match_tag_keys.append(key)

    def matches_tags(self, disk: GceDisk) -> bool:
        """Tell whether the disk carries every required label and label value."""
        if any(k not in disk.labels for k in self.match_tag_keys):
            return False
        return all(disk.labels.get(k) == v for k, v in self.match_tags.items())

    def build_volume(self, disk: GceDisk) -> Volume:
        """Describe the disk as a volume; raise ValueError on malformed labels or users."""
        etcd_name = disk.name
        if self.name_tag:
            label = disk.labels.get(self.name_tag, "")
            if label:
                try:
                    plaintext = decode_gce_label(label)
                except ValueError as err:
                    raise ValueError(
                        f"error decoding GCE label: {self.name_tag}={label!r}"
                    ) from err
                etcd_name = self.cluster_name + "-" + plaintext.split("/", 1)[0]

        vol = Volume(
            provider_id=disk.self_link,
            mount_name="master-" + last_component(disk.zone) + "-" + disk.name,
            etcd_name=etcd_name,
            info=VolumeInfo(description=disk.self_link),
            status=disk.status,
        )

        for attached_to in disk.users:
            try:
                u = parse_google_cloud_url(attached_to)
            except ValueError as err:
                raise ValueError(
                    f"error parsing disk attachment url {attached_to!r}: {err}"
                ) from err
            vol.attached_to = attached_to
            if (u.project, u.zone, u.name) == (self.project, self.zone, self.instance_name):
                vol.local_device = "/dev/disk/by-id/google-" + disk.name
                log.debug("volume %r is attached to this instance at %s", disk.name, vol.local_device)
            else:
                log.debug("volume %r is attached to another instance %r", disk.name, attached_to)

        return vol