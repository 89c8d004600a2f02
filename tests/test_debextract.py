import functools
import gzip
import hashlib
import io
import lzma
import os
import tarfile
import threading
from http.server import SimpleHTTPRequestHandler, ThreadingHTTPServer

import pytest

from etcdkit.debextract import (
    PackageExtractor,
    PackageInfo,
    compute_hash_for_file,
    iter_ar_members,
    main,
    parse_packages,
)


def _ar(members):
    out = bytearray(b"!<arch>\n")
    for name, data in members:
        header = f"{name:<16}{0:<12}{0:<6}{0:<6}{'100644':<8}{len(data):<10}`\n"
        out += header.encode("ascii") + data
        if len(data) % 2:
            out += b"\n"
    return bytes(out)


def _data_tar(files):
    buf = io.BytesIO()
    with tarfile.open(fileobj=buf, mode="w") as tar:
        d = tarfile.TarInfo("etc")
        d.type = tarfile.DIRTYPE
        tar.addfile(d)
        for name, data in files.items():
            info = tarfile.TarInfo(name)
            info.size = len(data)
            tar.addfile(info, io.BytesIO(data))
    return buf.getvalue()


FILES = {"etc/hello.txt": b"hello world\n", "etc/other.conf": b"x=1\n"}


def _deb():
    return _ar(
        [
            ("debian-binary", b"2.0\n"),
            ("control.tar.xz", lzma.compress(_data_tar({}))),
            ("data.tar.xz", lzma.compress(_data_tar(FILES))),
        ]
    )


class _QuietHandler(SimpleHTTPRequestHandler):
    def log_message(self, format, *args):
        pass


@pytest.fixture
def mirror(tmp_path):
    root = tmp_path / "mirror"
    pool = root / "pool" / "h"
    pool.mkdir(parents=True)
    deb = _deb()
    (pool / "hello.deb").write_bytes(deb)
    handler = functools.partial(_QuietHandler, directory=str(root))
    server = ThreadingHTTPServer(("127.0.0.1", 0), handler)
    thread = threading.Thread(target=server.serve_forever, daemon=True)
    thread.start()
    try:
        yield f"http://127.0.0.1:{server.server_address[1]}", hashlib.sha256(deb).hexdigest()
    finally:
        server.shutdown()
        server.server_close()


def _write_index(path, text, compress):
    data = text.encode()
    path.write_bytes(gzip.compress(data) if compress else data)


def test_parse_packages_raw(tmp_path):
    index = tmp_path / "Packages"
    _write_index(
        index,
        "Package: alpha\nVersion: 1\nFilename: pool/a.deb\nSHA256: aaa\n\n"
        "Package: beta\nFilename: pool/b.deb\nSHA256: bbb\n",
        compress=False,
    )
    packages = parse_packages(str(index), "raw")
    assert packages == {
        "alpha": PackageInfo("alpha", "pool/a.deb", "aaa"),
        "beta": PackageInfo("beta", "pool/b.deb", "bbb"),
    }


def test_parse_packages_gz_matches_raw(tmp_path):
    text = "Package: alpha\nFilename: pool/a.deb\nSHA256: aaa\n\n"
    raw, gz = tmp_path / "Packages", tmp_path / "Packages.gz"
    _write_index(raw, text, compress=False)
    _write_index(gz, text, compress=True)
    assert parse_packages(str(gz), "gz") == parse_packages(str(raw), "raw")
    assert parse_packages(str(gz)) == parse_packages(str(raw), "raw")


def test_parse_packages_continuation_lines(tmp_path):
    index = tmp_path / "Packages"
    _write_index(index, "Package: foo\n bar\nDescription: d\n more text\n", compress=False)
    packages = parse_packages(str(index), "raw")
    assert list(packages) == ["foobar"]


def test_parse_packages_skips_entries_without_name(tmp_path):
    index = tmp_path / "Packages"
    _write_index(index, "Filename: pool/x.deb\n\n\nPackage: y\n", compress=False)
    assert set(parse_packages(str(index), "raw")) == {"y"}


def test_parse_packages_bad_line(tmp_path):
    index = tmp_path / "Packages"
    _write_index(index, "Package alpha\n", compress=False)
    with pytest.raises(ValueError, match="cannot parse line"):
        parse_packages(str(index), "raw")


def test_parse_packages_unknown_format(tmp_path):
    index = tmp_path / "Packages"
    _write_index(index, "", compress=False)
    with pytest.raises(ValueError, match="unknown packages format"):
        parse_packages(str(index), "bz2")


def test_parse_packages_missing_file(tmp_path):
    with pytest.raises(OSError):
        parse_packages(str(tmp_path / "absent"), "raw")


def test_parse_packages_bad_gzip(tmp_path):
    index = tmp_path / "Packages.gz"
    index.write_bytes(b"not gzip at all")
    with pytest.raises(ValueError):
        parse_packages(str(index), "gz")


def test_compute_hash_for_file(tmp_path):
    p = tmp_path / "f"
    p.write_bytes(b"some contents" * 10000)
    assert compute_hash_for_file(str(p)) == hashlib.sha256(b"some contents" * 10000).hexdigest()


def test_iter_ar_members_round_trip():
    members = [("debian-binary", b"2.0\n"), ("odd", b"abc"), ("data.tar.xz", b"zz")]
    assert list(iter_ar_members(io.BytesIO(_ar(members)))) == members


def test_iter_ar_members_bad_magic():
    with pytest.raises(ValueError):
        list(iter_ar_members(io.BytesIO(b"not an archive")))


def test_iter_ar_members_truncated():
    data = _ar([("x", b"abcdef")])[:-3]
    with pytest.raises(ValueError):
        list(iter_ar_members(io.BytesIO(data)))


def test_visit_data_tar_copies_entries():
    out_buf = io.BytesIO()
    with tarfile.open(fileobj=out_buf, mode="w") as out:
        PackageExtractor(out, [], "").visit_data_tar(io.BytesIO(_data_tar(FILES)))
    out_buf.seek(0)
    with tarfile.open(fileobj=out_buf) as tar:
        assert tar.getnames() == ["etc", *FILES]
        for name, data in FILES.items():
            assert tar.extractfile(name).read() == data


def test_visit_deb_downloads_and_extracts(mirror, tmp_path):
    base, sha = mirror
    out_buf = io.BytesIO()
    with tarfile.open(fileobj=out_buf, mode="w") as out:
        extractor = PackageExtractor(out, [base], str(tmp_path / "cache"))
        extractor.visit_deb(PackageInfo("hello", "/pool/h/hello.deb", sha))
    out_buf.seek(0)
    with tarfile.open(fileobj=out_buf) as tar:
        assert tar.extractfile("etc/hello.txt").read() == FILES["etc/hello.txt"]
    cached = tmp_path / "cache" / "deb-tools" / sha
    assert compute_hash_for_file(str(cached)) == sha


def test_download_package_uses_cache(tmp_path):
    content = b"cached deb"
    sha = hashlib.sha256(content).hexdigest()
    cache = tmp_path / "deb-tools"
    cache.mkdir()
    (cache / sha).write_bytes(content)
    extractor = PackageExtractor(None, [], str(tmp_path))
    path = extractor.download_package("http://127.0.0.1:1/unreachable.deb", sha)
    assert path == os.path.join(str(tmp_path), "deb-tools", sha)


def test_download_package_hash_mismatch_leaves_no_temp(mirror, tmp_path):
    base, _ = mirror
    extractor = PackageExtractor(None, [base], str(tmp_path))
    with pytest.raises(RuntimeError, match="unexpected SHA256"):
        extractor.download_package(base + "/pool/h/hello.deb", "0" * 64)
    assert os.listdir(tmp_path / "deb-tools") == []


def test_download_package_http_error(mirror, tmp_path):
    base, _ = mirror
    extractor = PackageExtractor(None, [base], str(tmp_path))
    with pytest.raises(RuntimeError, match="unexpected HTTP status"):
        extractor.download_package(base + "/missing.deb", "0" * 64)


def test_main_extracts_package(mirror, tmp_path):
    base, sha = mirror
    index = tmp_path / "Packages.gz"
    _write_index(
        index,
        f"Package: hello\nFilename: pool/h/hello.deb\nSHA256: {sha}\n",
        compress=True,
    )
    out = tmp_path / "out.tar"
    status = main(
        [
            "--package", "hello",
            "--packages", str(index),
            "--out", str(out),
            "--mirror", base,
            "--cache-dir", str(tmp_path / "cache"),
        ]
    )
    assert status == 0
    with tarfile.open(out) as tar:
        assert set(FILES) <= set(tar.getnames())


def test_main_requires_package(tmp_path, capsys):
    assert main(["--cache-dir", str(tmp_path)]) == 1
    assert "--package is required" in capsys.readouterr().err


def test_main_requires_mirror(tmp_path, capsys):
    args = ["--package", "p", "--out", str(tmp_path / "o"), "--cache-dir", str(tmp_path)]
    assert main(args) == 1
    assert "--mirrors is required" in capsys.readouterr().err


def test_main_unknown_package(tmp_path, capsys):
    index = tmp_path / "Packages"
    _write_index(index, "Package: other\n", compress=False)
    args = [
        "--package", "hello",
        "--packages", str(index),
        "--packages-format", "raw",
        "--out", str(tmp_path / "o.tar"),
        "--mirror", "http://127.0.0.1:1",
        "--cache-dir", str(tmp_path),
    ]
    assert main(args) == 1
    assert "not found" in capsys.readouterr().err