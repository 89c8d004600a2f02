"""Attaching, formatting and mounting the master volume that holds etcd data."""

from __future__ import annotations

import logging
import os
import time
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Callable, Optional

from etcdkit.paths import path_for
from etcdkit.volume import Volume, VolumeProvider

log = logging.getLogger(__name__)


@dataclass(frozen=True)
class MountPoint:
    """An entry of the mount table."""

    device: str
    path: str


class MountBackend(ABC):
    """Mount-table access, safe formatting and resizing of filesystems."""

    @abstractmethod
    def list_mounts(self) -> list[MountPoint]:
        """Return the current mount table."""

    @abstractmethod
    def format_and_mount(
        self, device: str, mountpoint: str, fstype: str, options: list[str]
    ) -> None:
        """Mount device at mountpoint, formatting it first only if it has no filesystem."""

    @abstractmethod
    def resize(self, device: str, mountpoint: str) -> bool:
        """Grow the filesystem on device to fill it; return whether it was resized."""


def names_for(dev: str, containerized: bool = False) -> list[str]:
    """Return the known aliases of a device: itself, its rootfs path and its symlink target."""
    names = [dev, path_for(dev, containerized)]
    try:
        resolved = os.path.realpath(dev, strict=True)
    except OSError as err:
        log.info("device %r did not evaluate as a symlink: %s", dev, err)
    else:
        names.append(os.path.abspath(resolved))
    return names


def is_same_device(dev1: str, dev2: str, containerized: bool = False) -> bool:
    """Tell whether two device paths name the same device."""
    aliases1 = names_for(dev1, containerized)
    aliases2 = names_for(dev2, containerized)
    common = [name for name in aliases1 if name in aliases2]
    if common:
        log.debug("matched device %r and %r via %r", dev1, dev2, common[0])
        return True
    log.warning(
        "device %r and %r were not the same; expansions %s and %s",
        dev1,
        dev2,
        aliases1,
        aliases2,
    )
    return False


class VolumeMountController:
    """Attaches one master volume and keeps track of what is mounted."""

    def __init__(
        self,
        provider: VolumeProvider,
        backend: MountBackend,
        *,
        containerized: bool = False,
        container_backend: Optional[MountBackend] = None,
        root: str = "/",
        sleep: Callable[[float], None] = time.sleep,
    ) -> None:
        if containerized and container_backend is None:
            raise ValueError("a container mount backend is required when containerized")
        self.provider = provider
        self.backend = backend
        self.containerized = containerized
        self.container_backend = container_backend
        self.root = root
        self.mounted: dict[str, Volume] = {}
        self._sleep = sleep

    def _local(self, host_path: str) -> str:
        return os.path.join(self.root, path_for(host_path, self.containerized).lstrip("/"))

    def mount_master_volumes(self) -> list[Volume]:
        """Attach and mount a master volume; return every volume mounted so far."""
        try:
            attached = self.attach_master_volumes()
        except Exception as err:
            raise RuntimeError(f"unable to attach master volumes: {err}") from err

        for v in attached:
            if self.mounted:
                # Only a single volume is ever mounted.
                break
            if v.provider_id in self.mounted:
                continue

            if v.mountpoint:
                log.debug("master volume %r is pre-mounted at %r", v.provider_id, v.mountpoint)
                self.mounted[v.provider_id] = v
                continue

            log.debug("master volume %r is attached at %r", v.provider_id, v.local_device)

            mountpoint = "/mnt/" + v.mount_name
            # On ContainerOS /mnt is read-only, so mount under /mnt/disks instead.
            try:
                os.stat(self._local("/mnt/disks"))
            except FileNotFoundError:
                pass
            except OSError as err:
                raise RuntimeError(f"error checking for /mnt/disks: {err}") from err
            else:
                mountpoint = "/mnt/disks/" + v.mount_name

            log.info("doing safe-format-and-mount of %s to %s", v.local_device, mountpoint)
            try:
                self.safe_format_and_mount(v, mountpoint, "")
            except Exception as err:
                log.warning("unable to mount master volume: %s", err)
                continue

            log.info("mounted master volume %r on %s", v.provider_id, mountpoint)
            v.mountpoint = self._local(mountpoint)
            self.mounted[v.provider_id] = v

        return list(self.mounted.values())

    def safe_format_and_mount(self, volume: Volume, mountpoint: str, fstype: str = "") -> None:
        """Wait for the volume's device, then format, mount and resize it."""
        while True:
            device = self.provider.find_mounted_volume(volume)
            if device:
                break
            log.info("waiting for volume %r to be mounted", volume.provider_id)
            self._sleep(1)
        log.info("found volume %r mounted at device %r", volume.provider_id, device)

        try:
            mounts = self.backend.list_mounts()
        except Exception as err:
            raise RuntimeError(f"error listing existing mounts: {err}") from err

        existing = [m for m in mounts if m.path == mountpoint]

        if not existing:
            local_mountpoint = self._local(mountpoint)
            log.info("creating mount directory %r", local_mountpoint)
            os.makedirs(local_mountpoint, mode=0o750, exist_ok=True)

            log.info("mounting device %r on %r", device, mountpoint)
            try:
                self.backend.format_and_mount(device, mountpoint, fstype, [])
            except Exception as err:
                raise RuntimeError(
                    f"error formatting and mounting disk {device!r} on {mountpoint!r}: {err}"
                ) from err
        elif len(existing) != 1:
            log.info("existing mounts unexpected")
            for m in mounts:
                log.info("%s\t%s", m.device, m.path)
            raise RuntimeError(f"found multiple existing mounts of {device!r} at {mountpoint!r}")
        else:
            log.info("found existing mount of %r at %r", device, mountpoint)

        try:
            self.backend.resize(device, mountpoint)
        except Exception as err:
            raise RuntimeError(
                f"error resizing disk {device!r} on {mountpoint!r}: {err}"
            ) from err

        if self.containerized:
            self._mount_in_container(device, mountpoint, fstype)

    def _mount_in_container(self, device: str, mountpoint: str, fstype: str) -> None:
        # Mount the device a second time inside the container, where it is visible under rootfs.
        assert self.container_backend is not None
        source = self._local(device)
        target = self._local(mountpoint)
        try:
            mounts = self.container_backend.list_mounts()
        except Exception as err:
            raise RuntimeError(
                f"error checking for mounts of {target} inside container: {err}"
            ) from err
        mounted_device = next((m.device for m in mounts if m.path == target), "")

        if mounted_device:
            if not is_same_device(device, mounted_device, self.containerized):
                raise RuntimeError(
                    f"device already mounted at {target}, but is {mounted_device} "
                    f"and we want {source} or {device}"
                )
            return

        log.info("mounting inside container: %s -> %s", source, target)
        try:
            self.container_backend.format_and_mount(source, target, fstype, [])
        except Exception as err:
            raise RuntimeError(
                f"error mounting {source} inside container at {target}: {err}"
            ) from err

    def attach_master_volumes(self) -> list[Volume]:
        """Return the volumes attached here, attaching one if none is."""
        volumes = self.provider.find_volumes()

        try_attach = [v for v in volumes if not v.attached_to]
        attached = [v for v in volumes if v.local_device]

        if not try_attach:
            return attached

        for v in try_attach:
            if attached:
                # Only a single volume is ever attached.
                break
            log.debug("trying to mount master volume: %r", v.provider_id)
            try:
                self.provider.attach_volume(v)
            except Exception as err:
                # Other instances race for the same volumes; this is expected.
                log.warning("error attaching volume %r: %s", v.provider_id, err)
                continue
            if not v.local_device and not v.mountpoint:
                raise RuntimeError("attach_volume did not set local_device or mountpoint")
            attached.append(v)

        log.debug("currently attached volumes: %s", attached)
        return attached


class Boot:
    """Blocks until a master volume is mounted."""

    def __init__(
        self,
        provider: VolumeProvider,
        backend: MountBackend,
        *,
        containerized: bool = False,
        container_backend: Optional[MountBackend] = None,
        root: str = "/",
        sleep: Callable[[float], None] = time.sleep,
    ) -> None:
        self.volume_mounter = VolumeMountController(
            provider,
            backend,
            containerized=containerized,
            container_backend=container_backend,
            root=root,
            sleep=sleep,
        )
        self._sleep = sleep

    def wait_for_volumes(self) -> list[Volume]:
        """Retry mounting until at least one volume is mounted, and return them."""
        while True:
            try:
                info = self.try_mount_volumes()
            except Exception as err:
                log.warning("error during attempt to bootstrap (will sleep and retry): %s", err)
                self._sleep(1)
                continue
            if info:
                return info
            log.info("waiting for volumes")
            self._sleep(60)

    def try_mount_volumes(self) -> list[Volume]:
        """Make one attempt at attaching and mounting the master volume."""
        return self.volume_mounter.mount_master_volumes()