"""Mapping of host paths into the (possibly containerized) local filesystem."""

from __future__ import annotations


def path_for(host_path: str, containerized: bool = False) -> str:
    """Return where an absolute host path is visible from this process.

    When running in a container the host filesystem is expected under /rootfs.
    """
    if not host_path.startswith("/"):
        raise ValueError(f"path was not absolute: {host_path!r}")
    rootfs = "/rootfs/" if containerized else "/"
    return rootfs + host_path[1:]