"""OpenStack cloud configuration files and server address lookup."""

from __future__ import annotations

import re
from dataclasses import dataclass, field, fields
from typing import Any, Mapping, Optional, TextIO

_EXTERNAL_IP_TYPE = "OS-EXT-IPS:type"
_ADDRESS_FIXED = "fixed"
_ADDRESS = "addr"


@dataclass
class GlobalConfig:
    """The [Global] section: credentials and endpoint."""

    auth_url: str = ""
    username: str = ""
    user_id: str = ""
    password: str = ""
    tenant_id: str = ""
    tenant_name: str = ""
    trust_id: str = ""
    domain_id: str = ""
    domain_name: str = ""
    tenant_domain_id: str = ""
    tenant_domain_name: str = ""
    region: str = ""
    ca_file: str = ""
    cloud: str = ""
    application_credential_id: str = ""
    application_credential_name: str = ""
    application_credential_secret: str = ""


@dataclass
class BlockStorageOpts:
    """The [BlockStorage] section."""

    ignore_volume_az: bool = False


@dataclass
class OpenstackConfig:
    """A parsed cloud configuration file."""

    global_: GlobalConfig = field(default_factory=GlobalConfig)
    block_storage: BlockStorageOpts = field(default_factory=BlockStorageOpts)


def _file_names(cls: type) -> dict[str, str]:
    """Map variable names as written in the file (lower case) to attributes."""
    return {f.name.replace("_", "-"): f.name for f in fields(cls)}


_GLOBAL_NAMES = _file_names(GlobalConfig)
_BLOCK_STORAGE_NAMES = _file_names(BlockStorageOpts)
_SECTIONS = {
    "global": ("global_", _GLOBAL_NAMES),
    "blockstorage": ("block_storage", _BLOCK_STORAGE_NAMES),
}

_SECTION_RE = re.compile(
    r'^\[\s*([A-Za-z0-9.-]+)\s*(?:"((?:[^"\\]|\\.)*)"\s*)?\]\s*(?:[;#].*)?$'
)
_NAME_RE = re.compile(r"^[A-Za-z][A-Za-z0-9-]*")
_ESCAPES = {"n": "\n", "t": "\t", "b": "\b", "\\": "\\", '"': '"'}
_TRUE = {"true", "yes", "on", "1"}
_FALSE = {"false", "no", "off", "0"}


def _parse_value(raw: str, lineno: int) -> str:
    out: list[str] = []
    quoted = False
    keep = 0
    chars = iter(raw)
    for c in chars:
        if c == "\\":
            escaped = next(chars, None)
            if escaped is None:
                raise ValueError(f"line {lineno}: line continuation is not supported")
            mapped = _ESCAPES.get(escaped)
            if mapped is None:
                raise ValueError(f"line {lineno}: invalid escape \\{escaped}")
            out.append(mapped)
            keep = len(out)
        elif c == '"':
            quoted = not quoted
            keep = len(out)
        elif not quoted and c in ";#":
            break
        else:
            out.append(c)
            if quoted or not c.isspace():
                keep = len(out)
    if quoted:
        raise ValueError(f"line {lineno}: unterminated quoted value")
    return "".join(out[:keep])


def _parse_bool(value: Optional[str], lineno: int) -> bool:
    if value is None:
        return True
    lowered = value.strip().lower()
    if lowered in _TRUE:
        return True
    if lowered in _FALSE:
        return False
    raise ValueError(f"line {lineno}: invalid boolean value {value!r}")


def read_config(stream: TextIO) -> OpenstackConfig:
    """Parse a cloud configuration file; raise ValueError on malformed content.

    Unknown sections and variables are ignored.
    """
    cfg = OpenstackConfig()
    target: Any = None
    names: Mapping[str, str] = {}
    in_section = False

    for lineno, raw_line in enumerate(stream.read().splitlines(), 1):
        line = raw_line.strip()
        if not line or line[0] in ";#":
            continue

        if line.startswith("["):
            m = _SECTION_RE.match(line)
            if m is None:
                raise ValueError(f"line {lineno}: invalid section header {raw_line!r}")
            in_section = True
            section = _SECTIONS.get(m.group(1).lower())
            if section is None:
                target, names = None, {}
                continue
            if m.group(2) is not None:
                raise ValueError(f"line {lineno}: section {m.group(1)!r} takes no subsection")
            attr, names = section
            target = getattr(cfg, attr)
            continue

        if not in_section:
            raise ValueError(f"line {lineno}: variable outside of any section")
        m = _NAME_RE.match(line)
        if m is None:
            raise ValueError(f"line {lineno}: invalid variable name in {raw_line!r}")
        name = m.group(0)
        rest = line[m.end():].lstrip()
        value: Optional[str]
        if rest.startswith("="):
            value = _parse_value(rest[1:].lstrip(), lineno)
        elif not rest or rest[0] in ";#":
            value = None
        else:
            raise ValueError(f"line {lineno}: invalid variable line {raw_line!r}")

        if target is None:
            continue
        attr_name = names.get(name.lower())
        if attr_name is None:
            continue
        if isinstance(getattr(target, attr_name), bool):
            setattr(target, attr_name, _parse_bool(value, lineno))
        else:
            if value is None:
                raise ValueError(f"line {lineno}: missing value for {name!r}")
            setattr(target, attr_name, value)

    return cfg


def get_server_fixed_ip(addrs: Mapping[str, Any], name: str) -> str:
    """Return the first fixed IP in a server's address map; raise ValueError if none."""
    for addresses in addrs.values():
        if not isinstance(addresses, list):
            continue
        for addr in addresses:
            if not isinstance(addr, Mapping):
                continue
            if addr.get(_EXTERNAL_IP_TYPE) == _ADDRESS_FIXED:
                fixed_ip = addr.get(_ADDRESS)
                if isinstance(fixed_ip, str):
                    return fixed_ip
    raise ValueError(f"failed to find Fixed IP address for server {name}")


__all__ = [
    "GlobalConfig",
    "BlockStorageOpts",
    "OpenstackConfig",
    "read_config",
    "get_server_fixed_ip",
]