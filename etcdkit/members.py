"""Helpers over etcd cluster member lists."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Iterable, Optional


@dataclass
class Member:
    """An etcd cluster member as reported by the member list."""

    id: int = 0
    name: str = ""
    peer_urls: list[str] = field(default_factory=list)
    client_urls: list[str] = field(default_factory=list)


def member_for_peer_urls(members: Iterable[Member], peer_urls: list[str]) -> Optional[Member]:
    """Return the first member whose peer URLs equal peer_urls, in order, or None."""
    return next((m for m in members if list(m.peer_urls) == list(peer_urls)), None)


def member_for_id(members: Iterable[Member], member_id: int) -> Optional[Member]:
    """Return the first member with the given ID, or None."""
    return next((m for m in members if m.id == member_id), None)


def started(member: Member) -> bool:
    """Tell whether the member has started: it has a name or client URLs."""
    return bool(member.name or member.client_urls)


def initial_cluster_from_members(members: Iterable[Member]) -> str:
    """Return an initial-cluster string "name=peerURL,..." for the members."""
    return ",".join(f"{m.name}={u}" for m in members for u in m.peer_urls)