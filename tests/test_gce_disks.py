import pytest

from etcdkit.gce_disks import GceDisk, GceVolumeBuilder, decode_gce_label

BASE = "https://www.googleapis.com/compute/v1/projects/proj/zones/za/"


def builder(tags=(), name_tag=""):
    return GceVolumeBuilder(
        "cluster", list(tags), name_tag, project="proj", zone="za", instance_name="me"
    )


def test_decode_plain():
    assert decode_gce_label("plain") == "plain"


def test_decode_escape():
    assert decode_gce_label("a-2fb") == "a/b"


def test_decode_invalid():
    with pytest.raises(ValueError):
        decode_gce_label("a-zz")


@pytest.mark.parametrize(
    "labels,expected",
    [
        ({}, False),
        ({"k0": "x", "k1": "v1", "other": "y"}, True),
        ({"k0": "x"}, False),
        ({"k0": "x", "k1": "v2"}, False),
    ],
)
def test_matches_tags(labels, expected):
    assert builder(["k0", "k1=v1"]).matches_tags(GceDisk(labels=labels)) is expected


def test_build_basic_volume():
    disk = GceDisk(name="d1", self_link=BASE + "disks/d1", zone=BASE[:-1], status="READY")
    vol = builder().build_volume(disk)
    assert vol.provider_id == disk.self_link
    assert vol.info.description == disk.self_link
    assert vol.etcd_name == "d1"
    assert vol.mount_name == "master-za-d1"
    assert vol.status == "READY"
    assert (vol.attached_to, vol.local_device) == ("", "")


def test_name_tag_label():
    disk = GceDisk(name="d1", labels={"etcd": "main-2fmembers"})
    vol = builder(name_tag="etcd").build_volume(disk)
    assert vol.etcd_name == "cluster-main"


def test_bad_name_tag_label():
    with pytest.raises(ValueError):
        builder(name_tag="etcd").build_volume(GceDisk(name="d1", labels={"etcd": "x-q"}))


def test_attached_here():
    user = BASE + "instances/me"
    vol = builder().build_volume(GceDisk(name="d1", users=[user]))
    assert vol.attached_to == user
    assert vol.local_device == "/dev/disk/by-id/google-d1"


def test_attached_elsewhere():
    user = BASE + "instances/other"
    vol = builder().build_volume(GceDisk(name="d1", users=[user]))
    assert vol.attached_to == user
    assert vol.local_device == ""


def test_bad_user_url():
    with pytest.raises(ValueError):
        builder().build_volume(GceDisk(name="d1", users=["nonsense"]))