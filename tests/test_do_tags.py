import pytest

from etcdkit.do_tags import DOVolume, DOVolumeMatcher, local_device_name


def _matcher(droplet_tags=("k8s-index:1", "kubernetescluster:mycluster"), name_tag="etcdcluster-main"):
    return DOVolumeMatcher(
        "mycluster",
        ["kubernetescluster=mycluster", "k8s-index"],
        name_tag,
        "droplet-1",
        list(droplet_tags),
    )


def test_local_device_name():
    vol = DOVolume(id="v1", name="kops-etcd-main")
    assert local_device_name(vol) == "/dev/disk/by-id/scsi-0DO_Volume_kops-etcd-main"


def test_volume_tags_split_into_keys_and_values():
    m = _matcher()
    assert m.match_tags == {"kubernetescluster": "mycluster"}
    assert m.match_tag_keys == ["k8s-index"]


def test_contains_ignores_case():
    m = _matcher()
    assert m.contains(["KubernetesCluster:MyCluster"], "kubernetescluster:mycluster")
    assert not m.contains([], "kubernetescluster:mycluster")
    assert not m.contains(["other"], "kubernetescluster:mycluster")


def test_matching_volume():
    m = _matcher()
    vol = DOVolume(tags=["kubernetescluster:mycluster", "k8s-index:1"])
    assert m.matches_droplet_tags(vol)
    assert m.matches_tags(vol)


def test_index_value_differs():
    m = _matcher()
    vol = DOVolume(tags=["kubernetescluster:mycluster", "k8s-index:2"])
    assert m.matches_droplet_tags(vol)
    assert not m.matches_tags(vol)


def test_volume_missing_cluster_tag():
    m = _matcher()
    vol = DOVolume(tags=["k8s-index:1"])
    assert not m.matches_droplet_tags(vol)
    assert not m.matches_tags(vol)


def test_droplet_missing_cluster_tag():
    m = _matcher(droplet_tags=["k8s-index:1"])
    vol = DOVolume(tags=["kubernetescluster:mycluster", "k8s-index:1"])
    assert not m.matches_droplet_tags(vol)


def test_tag_key_values_compared_ignoring_case():
    m = _matcher(droplet_tags=["K8S-INDEX:A", "kubernetescluster:mycluster"])
    vol = DOVolume(tags=["kubernetescluster:MYCLUSTER", "k8s-index:a"])
    assert m.matches_tags(vol)


def test_match_volume_attached():
    m = _matcher()
    vol = DOVolume(id="vol-1", name="kops-etcd-main-a", droplet_ids=[42, 7])
    result = m.match_volume(vol)
    assert result.provider_id == "vol-1"
    assert result.mount_name == "master-vol-1"
    assert result.etcd_name == "kops-etcd-main-a"
    assert result.info.description == "mycluster-etcdcluster-main"
    assert result.attached_to == "42"
    assert result.local_device == local_device_name(vol)


def test_match_volume_unattached():
    m = _matcher()
    result = m.match_volume(DOVolume(id="vol-2", name="kops-etcd-main-b"))
    assert (result.attached_to, result.local_device) == ("", "")


def test_match_volume_other_cluster():
    m = _matcher()
    assert m.match_volume(DOVolume(id="vol-3", name="kops-etcd-events-a")) is None


@pytest.mark.parametrize("name_tag", ["etcdcluster-main", "etcdcluster-events"])
def test_match_volume_without_cluster_key_always_matches(name_tag):
    m = _matcher(name_tag=name_tag)
    result = m.match_volume(DOVolume(id="vol-4", name="plain"))
    assert result.etcd_name == "plain"