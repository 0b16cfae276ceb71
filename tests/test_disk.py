"""Tests for aumai_imagecompose.disk."""

from __future__ import annotations

import random

import pytest

from aumai_imagecompose.catalog import default_partition_tables, edge_partition_tables
from aumai_imagecompose.disk import (
    GIBIBYTE,
    MEBIBYTE,
    MOUNTPOINT_POLICIES,
    Filesystem,
    Partition,
    PartitionTable,
    align_up,
    check_mountpoints,
    new_partition_table,
)
from aumai_imagecompose.errors import OptionsError
from aumai_imagecompose.models import FilesystemCustomization, ImageOptions
from aumai_imagecompose.registry import ImageType


def _mp(path: str, size: int = GIBIBYTE) -> FilesystemCustomization:
    return FilesystemCustomization(mountpoint=path, minsize=size)


@pytest.fixture()
def base() -> PartitionTable:
    return default_partition_tables()["x86_64"]


# ---------------------------------------------------------------------------
# Layout
# ---------------------------------------------------------------------------


class TestNewPartitionTable:
    def test_same_seed_same_table(self, base: PartitionTable) -> None:
        mps = [_mp("/var"), _mp("/home")]
        first = new_partition_table(base, mps, 10 * GIBIBYTE, True, random.Random(42))
        second = new_partition_table(base, mps, 10 * GIBIBYTE, True, random.Random(42))
        assert first == second

    def test_different_seed_different_uuids(self, base: PartitionTable) -> None:
        mps = [_mp("/var")]
        first = new_partition_table(base, mps, 10 * GIBIBYTE, True, random.Random(1))
        second = new_partition_table(base, mps, 10 * GIBIBYTE, True, random.Random(2))
        assert first != second
        assert first.mountpoints() == second.mountpoints()

    def test_base_is_not_modified(self, base: PartitionTable) -> None:
        before = base.clone()
        new_partition_table(base, [_mp("/var")], 10 * GIBIBYTE, True, random.Random(0))
        assert base == before

    def test_fills_requested_size(self, base: PartitionTable) -> None:
        pt = new_partition_table(base, None, 10 * GIBIBYTE, True, random.Random(0))
        assert pt.size == 10 * GIBIBYTE
        last = pt.partitions[-1]
        # GPT keeps 1 MiB for the backup header
        assert last.start + last.size == pt.size - MEBIBYTE

    def test_partitions_aligned_and_contiguous(self, base: PartitionTable) -> None:
        pt = new_partition_table(base, [_mp("/var", 300 * 1000 * 1000)], 10 * GIBIBYTE, True, random.Random(0))
        assert pt.partitions[0].start == MEBIBYTE
        for prev, cur in zip(pt.partitions, pt.partitions[1:]):
            assert cur.start % MEBIBYTE == 0
            assert cur.start == prev.start + prev.size

    def test_small_image_grows_to_fit(self, base: PartitionTable) -> None:
        pt = new_partition_table(base, None, 0, True, random.Random(0))
        last = pt.partitions[-1]
        assert pt.size == last.start + last.size + MEBIBYTE

    def test_no_customization_keeps_plain_layout(self, base: PartitionTable) -> None:
        pt = new_partition_table(base, None, 10 * GIBIBYTE, True, random.Random(0))
        assert pt.volume_group() is None
        assert pt.mountpoints() == ["/boot/efi", "/"]

    def test_lvmify_new_mountpoint(self, base: PartitionTable) -> None:
        pt = new_partition_table(base, [_mp("/var")], 10 * GIBIBYTE, True, random.Random(0))
        vg = pt.volume_group()
        assert vg is not None
        assert vg.name == "rootvg"
        assert [lv.name for lv in vg.logical_volumes] == ["rootlv", "varlv"]
        assert sorted(pt.mountpoints()) == ["/", "/boot", "/boot/efi", "/var"]
        root = pt.find_mountpoint("/")
        assert root is not None and root.size > 2 * GIBIBYTE

    def test_nested_mountpoint_lv_name(self, base: PartitionTable) -> None:
        pt = new_partition_table(base, [_mp("/var/log")], 10 * GIBIBYTE, True, random.Random(0))
        vg = pt.volume_group()
        assert vg is not None
        assert vg.logical_volumes[-1].name == "var_loglv"

    def test_without_lvmify_adds_partition_before_root(self, base: PartitionTable) -> None:
        pt = new_partition_table(base, [_mp("/var")], 10 * GIBIBYTE, False, random.Random(0))
        assert pt.volume_group() is None
        payloads = [p.payload for p in pt.partitions]
        assert isinstance(payloads[-1], Filesystem) and payloads[-1].mountpoint == "/"
        assert isinstance(payloads[-2], Filesystem) and payloads[-2].mountpoint == "/var"
        assert pt.partitions[-2].uuid != ""

    def test_existing_mountpoint_grows(self, base: PartitionTable) -> None:
        pt = new_partition_table(base, [_mp("/", 5 * GIBIBYTE)], 0, True, random.Random(0))
        assert pt.volume_group() is None
        root = pt.find_mountpoint("/")
        assert root is not None and root.size >= 5 * GIBIBYTE

    def test_generated_filesystem_uuids(self, base: PartitionTable) -> None:
        pt = new_partition_table(base, [_mp("/var")], 10 * GIBIBYTE, True, random.Random(0))
        assert all(fs.uuid for _, fs in pt.filesystems())

    def test_dos_table(self) -> None:
        base = PartitionTable(
            type="dos",
            partitions=[Partition(size=GIBIBYTE, type="83", payload=Filesystem(type="xfs", mountpoint="/"))],
        )
        pt = new_partition_table(base, None, 4 * GIBIBYTE, True, random.Random(7))
        assert pt.uuid.startswith("0x") and len(pt.uuid) == 10
        last = pt.partitions[-1]
        assert last.start + last.size == pt.size

    def test_align_up(self) -> None:
        assert align_up(1) == MEBIBYTE
        assert align_up(MEBIBYTE) == MEBIBYTE
        assert align_up(0) == 0


class TestImageTypePartitionTable:
    def test_ostree_never_lvmified(self, edge_raw_image: ImageType) -> None:
        pt = edge_raw_image.partition_table([_mp("/var")], ImageOptions(), random.Random(0))
        assert pt.volume_group() is None
        assert "/var" in pt.mountpoints()

    def test_disk_image_lvmified(self, qcow2: ImageType) -> None:
        pt = qcow2.partition_table([_mp("/var")], ImageOptions(), random.Random(0))
        assert pt.volume_group() is not None

    def test_uses_image_type_size(self, qcow2: ImageType) -> None:
        pt = qcow2.partition_table(None, ImageOptions(), random.Random(0))
        assert pt.size == 10 * GIBIBYTE
        pt = qcow2.partition_table(None, ImageOptions(size=20 * GIBIBYTE), random.Random(0))
        assert pt.size == 20 * GIBIBYTE

    def test_deterministic_for_seed(self, qcow2: ImageType) -> None:
        mps = [_mp("/srv"), _mp("/data")]
        first = qcow2.partition_table(mps, ImageOptions(), random.Random(99))
        second = qcow2.partition_table(mps, ImageOptions(), random.Random(99))
        assert first.model_dump() == second.model_dump()

    def test_custom_boot_is_single_partition(self, qcow2: ImageType) -> None:
        pt = qcow2.partition_table([_mp("/boot")], ImageOptions(), random.Random(0))
        assert pt.mountpoints().count("/boot") == 1
        boot = pt.find_mountpoint("/boot")
        assert isinstance(boot, Partition)
        assert boot.size >= GIBIBYTE
        vg = pt.volume_group()
        assert vg is not None
        assert [lv.name for lv in vg.logical_volumes] == ["rootlv"]

    def test_custom_boot_with_other_mountpoints(self, vhd: ImageType) -> None:
        mps = [_mp("/boot", 2 * GIBIBYTE), _mp("/var")]
        pt = vhd.partition_table(mps, ImageOptions(), random.Random(0))
        assert sorted(pt.mountpoints()) == ["/", "/boot", "/boot/efi", "/var"]
        boot = pt.find_mountpoint("/boot")
        assert isinstance(boot, Partition)
        assert boot.size == 2 * GIBIBYTE

    def test_edge_table_has_boot(self) -> None:
        assert edge_partition_tables()["aarch64"].contains_mountpoint("/boot")


# ---------------------------------------------------------------------------
# Mountpoint policies
# ---------------------------------------------------------------------------


class TestMountpointPolicies:
    @pytest.mark.parametrize("path", ["/", "/boot", "/var", "/var/log", "/home/user", "/opt", "/srv/www", "/tmp"])
    def test_allowed(self, path: str) -> None:
        MOUNTPOINT_POLICIES.check(path)

    @pytest.mark.parametrize(
        "path",
        ["/etc", "/boot/efi", "/var/run", "/var/run/user", "/var/lock", "/usr2", "relative", "/var//log", "/var/"],
    )
    def test_rejected(self, path: str) -> None:
        with pytest.raises(OptionsError):
            MOUNTPOINT_POLICIES.check(path)

    def test_check_mountpoints_empty(self) -> None:
        check_mountpoints(None)
        check_mountpoints([])

    def test_check_mountpoints_aggregates_errors(self) -> None:
        with pytest.raises(OptionsError) as excinfo:
            check_mountpoints([_mp("/var"), _mp("/etc"), _mp("/var/run")])
        message = str(excinfo.value)
        assert message.startswith("The following errors occurred while setting up custom mountpoints:\n")
        assert "'/etc'" in message
        assert "'/var/run'" in message
        assert "'/var'" not in message
