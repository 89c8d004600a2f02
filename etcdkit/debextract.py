"""Extracting the data files of a Debian package into a tar archive."""

from __future__ import annotations

import argparse
import gzip
import hashlib
import io
import logging
import lzma
import os
import sys
import tarfile
import tempfile
import urllib.error
import urllib.request
from dataclasses import dataclass
from typing import BinaryIO, Iterator, Optional, Sequence

log = logging.getLogger(__name__)

_AR_MAGIC = b"!<arch>\n"
_AR_HEADER_SIZE = 60
_CHUNK = 64 * 1024
_FIELDS = {"Package": "package", "Filename": "filename", "SHA256": "sha256"}


@dataclass
class PackageInfo:
    """The per-package information taken from a Packages index."""

    package: str = ""
    filename: str = ""
    sha256: str = ""


def _read_index(path: str, packages_format: str) -> bytes:
    try:
        f = open(path, "rb")
    except OSError as err:
        raise OSError(f"error opening {path!r}: {err}") from err
    with f:
        if packages_format == "raw":
            return f.read()
        if packages_format == "gz":
            try:
                with gzip.GzipFile(fileobj=f) as gz:
                    return gz.read()
            except (OSError, EOFError) as err:
                raise ValueError(f"error reading {path!r}: {err}") from err
        raise ValueError(f"unknown packages format {packages_format!r}")


def _lines(data: bytes) -> Iterator[str]:
    parts = data.decode("utf-8", "surrogateescape").split("\n")
    if parts and parts[-1] == "":
        parts.pop()
    for part in parts:
        yield part.removesuffix("\r")


def parse_packages(path: str, packages_format: str = "gz") -> dict[str, PackageInfo]:
    """Parse a Packages index ("raw" or "gz") into a map from package name to info."""
    packages: dict[str, PackageInfo] = {}
    current = PackageInfo()
    # Values may continue over several lines.
    key = ""
    for line in _lines(_read_index(path, packages_format)):
        if not line:
            if current.package:
                packages[current.package] = current
            current = PackageInfo()
            continue
        if line.startswith(" "):
            value = line[1:]
        else:
            name, sep, value = line.partition(": ")
            if not sep:
                raise ValueError(f"cannot parse line {line!r}")
            key = name
        attr = _FIELDS.get(key)
        if attr is not None:
            setattr(current, attr, getattr(current, attr) + value)
    if current.package:
        packages[current.package] = current
    return packages


def compute_hash_for_file(path: str) -> str:
    """Return the hex SHA-256 of a file's contents."""
    hasher = hashlib.sha256()
    with open(path, "rb") as f:
        for chunk in iter(lambda: f.read(_CHUNK), b""):
            hasher.update(chunk)
    return hasher.hexdigest()


def iter_ar_members(stream: BinaryIO) -> Iterator[tuple[str, bytes]]:
    """Yield (name, contents) for each member of an ar archive."""
    if stream.read(len(_AR_MAGIC)) != _AR_MAGIC:
        raise ValueError("not an ar archive")
    while True:
        header = stream.read(_AR_HEADER_SIZE)
        if not header:
            return
        if len(header) < _AR_HEADER_SIZE:
            raise ValueError("truncated ar header")
        if header[58:60] != b"`\n":
            raise ValueError("malformed ar header")
        name = header[0:16].decode("ascii", "replace").rstrip(" ")
        try:
            size = int(header[48:58].decode("ascii").strip())
        except ValueError as err:
            raise ValueError(f"malformed ar member size for {name!r}") from err
        data = stream.read(size)
        if len(data) < size:
            raise ValueError(f"truncated ar member {name!r}")
        if size % 2:
            stream.read(1)
        yield name, data


class PackageExtractor:
    """Downloads packages from a mirror and copies their data files into a tar archive."""

    def __init__(self, out: tarfile.TarFile, mirrors: Sequence[str], cache_dir: str) -> None:
        self.out = out
        self.mirrors = list(mirrors)
        self.cache_dir = cache_dir

    def download_package(self, url: str, expected_sha256: str) -> str:
        """Return the path of a cached copy of url, downloading it if needed."""
        cache_dir = os.path.join(self.cache_dir, "deb-tools")
        try:
            os.makedirs(cache_dir, mode=0o755, exist_ok=True)
        except OSError as err:
            raise RuntimeError(f"error creating cache dir {cache_dir!r}: {err}") from err

        cache_file = os.path.join(cache_dir, expected_sha256)
        try:
            cached_hash = compute_hash_for_file(cache_file)
        except FileNotFoundError:
            pass
        except OSError as err:
            log.warning("failed to hash cache file %r: %s", cache_file, err)
        else:
            if cached_hash == expected_sha256:
                return cache_file
            log.warning(
                "cache file %r did not have expected hash %r, was %r",
                cache_file,
                expected_sha256,
                cached_hash,
            )

        try:
            fd, temp_path = tempfile.mkstemp(prefix="download", dir=cache_dir)
        except OSError as err:
            raise RuntimeError(f"error creating cache file: {err}") from err
        try:
            hasher = hashlib.sha256()
            with os.fdopen(fd, "wb") as f:
                self._fetch(url, f, hasher)
            actual = hasher.hexdigest()
            if actual != expected_sha256:
                raise RuntimeError(
                    f"unexpected SHA256 for {url!r}, got {actual!r}, expected {expected_sha256!r}"
                )
            try:
                os.replace(temp_path, cache_file)
            except OSError as err:
                raise RuntimeError(f"failed to rename temp file to cache file: {err}") from err
        except BaseException:
            try:
                os.remove(temp_path)
            except OSError as err:
                log.warning("failed to remove temp file %r: %s", temp_path, err)
            raise
        return cache_file

    @staticmethod
    def _fetch(url: str, f: BinaryIO, hasher: "hashlib._Hash") -> None:
        try:
            response = urllib.request.urlopen(url)
        except urllib.error.HTTPError as err:
            err.close()
            raise RuntimeError(
                f"unexpected HTTP status fetching {url!r}: {err.code} {err.reason}"
            ) from err
        except OSError as err:
            raise RuntimeError(f"error fetching from {url!r}: {err}") from err
        with response:
            if response.status != 200:
                raise RuntimeError(
                    f"unexpected HTTP status fetching {url!r}: {response.status} {response.reason}"
                )
            try:
                for chunk in iter(lambda: response.read(_CHUNK), b""):
                    f.write(chunk)
                    hasher.update(chunk)
            except OSError as err:
                raise RuntimeError(f"error downloading {url!r}: {err}") from err

    def visit_deb(self, package_info: PackageInfo) -> None:
        """Download a package and copy the files of its data.tar.xz to the output."""
        base = self.mirrors[0]
        if not base.endswith("/"):
            base += "/"
        url = base + package_info.filename.removeprefix("/")

        path = self.download_package(url, package_info.sha256)
        try:
            f = open(path, "rb")
        except OSError as err:
            raise RuntimeError(f"error opening {path!r}: {err}") from err
        with f:
            try:
                for name, data in iter_ar_members(f):
                    if name != "data.tar.xz":
                        continue
                    try:
                        with lzma.open(io.BytesIO(data)) as xz:
                            self.visit_data_tar(xz)
                    except (lzma.LZMAError, tarfile.TarError, EOFError) as err:
                        raise RuntimeError(f"error reading {name!r}: {err}") from err
            except ValueError as err:
                raise RuntimeError(f"error reading from archive: {err}") from err

    def visit_data_tar(self, stream: BinaryIO) -> None:
        """Copy every entry of a tar stream to the output archive."""
        with tarfile.open(fileobj=stream, mode="r|") as tar:
            for member in tar:
                fileobj = tar.extractfile(member) if member.isreg() else None
                self.out.addfile(member, fileobj)


def _user_cache_dir() -> Optional[str]:
    if sys.platform == "win32":
        return os.environ.get("LOCALAPPDATA") or None
    home = os.environ.get("HOME", "")
    if sys.platform == "darwin":
        return os.path.join(home, "Library", "Caches") if home else None
    xdg = os.environ.get("XDG_CACHE_HOME", "")
    if xdg:
        return xdg
    return os.path.join(home, ".cache") if home else None


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="Extract the data files of a Debian package.")
    parser.add_argument("--package", default="", help="name of package to extract")
    parser.add_argument("--packages", default="Packages.gz", help="path to packages archive")
    parser.add_argument("--packages-format", default="gz", help="format of packages archive")
    parser.add_argument("--out", default="", help="path to write extracted contents to")
    parser.add_argument("--mirror", default="", help="mirrors from which to download")
    parser.add_argument("--cache-dir", default="", help="directory to use for caching artifacts")
    return parser


def _run(args: argparse.Namespace) -> None:
    cache_dir = args.cache_dir
    if not cache_dir:
        cache_dir = _user_cache_dir()
        if cache_dir is None:
            log.warning("unable to get cache dir; will use temp directory")
            cache_dir = tempfile.gettempdir()

    if not args.package:
        raise ValueError("--package is required")
    if not args.out:
        raise ValueError("--out is required")
    if not args.mirror:
        raise ValueError("--mirrors is required")

    packages = parse_packages(args.packages, args.packages_format)
    info = packages.get(args.package)
    if info is None:
        raise LookupError(f"package {args.package!r} not found")

    try:
        out = open(args.out, "wb")
    except OSError as err:
        raise RuntimeError(f"error creating output file {args.out!r}: {err}") from err
    with out, tarfile.open(fileobj=out, mode="w") as tar:
        PackageExtractor(tar, [args.mirror], cache_dir).visit_deb(info)


def main(argv: Optional[Sequence[str]] = None) -> int:
    """Run the extractor from the command line; return the exit status."""
    args = _build_parser().parse_args(argv)
    try:
        _run(args)
    except Exception as err:
        print(err, file=sys.stderr)
        return 1
    return 0