"""Parsing and building Google Compute Engine resource URLs."""

from __future__ import annotations

from dataclasses import dataclass

_BASE = "https://www.googleapis.com/compute/"
_END = object()


@dataclass
class GoogleCloudURL:
    """The parts of a compute API resource URL."""

    version: str = ""
    project: str = ""
    type: str = ""
    name: str = ""
    is_global: bool = False
    region: str = ""
    zone: str = ""

    def build_url(self) -> str:
        """Return the full URL for this resource; the version defaults to v1."""
        url = _BASE + (self.version or "v1") + "/"
        if self.project:
            url += "projects/" + self.project + "/"
        if self.is_global:
            url += "global/"
        if self.region:
            url += "regions/" + self.region + "/"
        if self.zone:
            url += "zones/" + self.zone + "/"
        return url + self.type + "/" + self.name


def parse_google_cloud_url(u: str) -> GoogleCloudURL:
    """Split a compute API URL into its parts; raise ValueError if it is not one."""
    tokens = u.split("/")
    if len(tokens) < 3:
        raise ValueError(f"invalid google cloud URL (token count): {u!r}")
    if tokens[0] != "https:" or tokens[1] != "" or tokens[2] != "www.googleapis.com":
        raise ValueError(f"invalid google cloud URL (schema / host): {u!r}")
    if len(tokens) < 5 or tokens[3] != "compute":
        raise ValueError(f"invalid google cloud URL (not compute): {u!r}")
    if tokens[4] not in ("v1", "beta"):
        raise ValueError(f"invalid google cloud URL (not compute/v1 or compute/beta): {u!r}")

    parsed = GoogleCloudURL(version=tokens[4])
    rest = tokens[5:]
    it = iter(enumerate(rest))
    for index, token in it:
        if token == "projects":
            value = next(it, _END)
            if value is _END:
                raise ValueError(f"invalid google cloud URL (unexpected projects): {u!r}")
            parsed.project = value[1]
        elif token == "zones":
            value = next(it, _END)
            if value is _END:
                raise ValueError(f"invalid google cloud URL (unexpected zones): {u!r}")
            parsed.zone = value[1]
        elif token == "regions" and index + 2 < len(rest):
            parsed.region = next(it)[1]
        elif token == "global":
            parsed.is_global = True
        else:
            parsed.type = token
            value = next(it, _END)
            if value is _END:
                raise ValueError(f"invalid google cloud URL (no name): {u!r}")
            parsed.name = value[1]
            if next(it, _END) is not _END:
                raise ValueError(f"invalid google cloud URL (content after name): {u!r}")
            return parsed
    raise ValueError(f"invalid google cloud URL (unexpected end): {u!r}")


def region_from_zone(zone: str) -> str:
    """Return the region of a zone such as "us-central1-b" (here "us-central1")."""
    region, sep, _ = zone.rpartition("-")
    if not sep:
        raise ValueError(f"unexpected zone: {zone}")
    return region


def last_component(s: str) -> str:
    """Return everything after the last slash, or the whole string if there is none."""
    return s.rpartition("/")[2]