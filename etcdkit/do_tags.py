"""Selecting DigitalOcean block storage volumes that belong to an etcd cluster.

DigitalOcean tags are plain strings, so key/value tags are stored as "key:value".
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Iterable, Optional

from etcdkit.volume import Volume, VolumeInfo

log = logging.getLogger(__name__)

LOCAL_DEVICE_PREFIX = "/dev/disk/by-id/scsi-0DO_Volume_"


@dataclass
class DOVolume:
    """The parts of a DigitalOcean volume that discovery needs."""

    id: str = ""
    name: str = ""
    tags: list[str] = field(default_factory=list)
    droplet_ids: list[int] = field(default_factory=list)


def local_device_name(volume: DOVolume) -> str:
    """Return the device path the volume appears at when attached."""
    return LOCAL_DEVICE_PREFIX + volume.name


def _split_tag(tag: str) -> Optional[tuple[str, str]]:
    key, sep, value = tag.partition(":")
    return (key, value) if sep else None


class DOVolumeMatcher:
    """Decides which volumes belong to the cluster this droplet is part of."""

    def __init__(
        self,
        cluster_name: str,
        volume_tags: Iterable[str],
        name_tag: str,
        droplet_name: str,
        droplet_tags: Iterable[str],
    ) -> None:
        self.cluster_name = cluster_name
        self.name_tag = name_tag
        self.droplet_name = droplet_name
        self.droplet_tags = list(droplet_tags)
        self.match_tag_keys: list[str] = []
        self.match_tags: dict[str, str] = {}
        for tag in volume_tags:
            key, sep, value = tag.partition("=")
            if sep:
                self.match_tags[key] = value
            else:
                self.match_tag_keys.append(key)

    def contains(self, tags: Iterable[str], x: str) -> bool:
        """Tell whether tags hold x, ignoring case."""
        wanted = x.upper()
        return any(t.upper() == wanted for t in tags)

    def matches_droplet_tags(self, volume: DOVolume) -> bool:
        """Tell whether every required "key:value" tag is on both the volume and the droplet."""
        for key, value in self.match_tags.items():
            do_tag = key + ":" + value
            if not self.contains(volume.tags, do_tag):
                return False
            if not self.contains(self.droplet_tags, do_tag):
                return False
        return True

    def matches_tags(self, volume: DOVolume) -> bool:
        """Like matches_droplet_tags, and each tag key must carry the same value on volume and droplet."""
        if not self.matches_droplet_tags(volume):
            return False

        matching = 0
        for match_key in self.match_tag_keys:
            wanted = match_key.upper()
            for volume_tag in volume.tags:
                vt = _split_tag(volume_tag)
                if vt is None or vt[0].upper() != wanted:
                    continue
                for droplet_tag in self.droplet_tags:
                    dt = _split_tag(droplet_tag)
                    if dt is None or dt[0].upper() != wanted:
                        continue
                    if dt[1].upper() == vt[1].upper():
                        log.debug("everything matched for tag key %s", wanted)
                        matching += 1
        return matching == len(self.match_tag_keys)

    def match_volume(self, volume: DOVolume) -> Optional[Volume]:
        """Describe the volume when it serves this etcd cluster (main or events), else None."""
        if "etcd-main" in volume.name:
            cluster_key = "main"
        elif "etcd-events" in volume.name:
            cluster_key = "events"
        else:
            cluster_key = ""

        if cluster_key not in self.name_tag:
            return None

        vol = Volume(
            provider_id=volume.id,
            info=VolumeInfo(description=self.cluster_name + "-" + self.name_tag),
            mount_name="master-" + volume.id,
            etcd_name=volume.name,
        )
        if volume.droplet_ids:
            vol.attached_to = str(volume.droplet_ids[0])
            vol.local_device = local_device_name(volume)
        log.debug(
            "found matching name tag %s for cluster key %r, volume %s",
            self.name_tag,
            cluster_key,
            volume.name,
        )
        return vol