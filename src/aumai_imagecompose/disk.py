"""Partition tables: base templates, customization and deterministic layout."""

from __future__ import annotations

import logging
import posixpath
import random
import re
import uuid
from dataclasses import dataclass
from typing import Iterator, Optional, Union

from pydantic import BaseModel, Field

from .errors import OptionsError
from .log import LOGGER_NAME
from .models import FilesystemCustomization

__all__ = [
    "Filesystem",
    "GIBIBYTE",
    "LVMVolumeGroup",
    "LogicalVolume",
    "MEBIBYTE",
    "MOUNTPOINT_POLICIES",
    "Partition",
    "PartitionTable",
    "PathPolicies",
    "PathPolicy",
    "check_mountpoints",
    "new_partition_table",
]

log = logging.getLogger(LOGGER_NAME)

MEBIBYTE = 1024 * 1024
GIBIBYTE = 1024 * MEBIBYTE

# first partition starts after the partition table header
_START_OFFSET = MEBIBYTE
# space reserved at the end of the disk for the GPT backup header
_GPT_FOOTER = MEBIBYTE
# LVM metadata area at the start of a physical volume
_LVM_METADATA = MEBIBYTE

_DEFAULT_BOOT_SIZE = 512 * MEBIBYTE

# partition type identifiers, keyed by table type
_FILESYSTEM_PART_TYPE = {"gpt": "0FC63DAF-8483-4772-8E79-3D69D8477DE4", "dos": "83"}
_LVM_PART_TYPE = {"gpt": "E6D6D379-F507-44C2-A23C-238F2A3DF928", "dos": "8e"}
_XBOOTLDR_PART_TYPE = {"gpt": "BC13C2FF-59E6-4262-A352-B275FD6F7172", "dos": "83"}


def align_up(size: int, alignment: int = MEBIBYTE) -> int:
    """Round *size* up to the next multiple of *alignment*."""
    if size % alignment == 0:
        return size
    return (size // alignment + 1) * alignment


def _random_uuid(rng: random.Random) -> str:
    return str(uuid.UUID(int=rng.getrandbits(128), version=4))


# ---------------------------------------------------------------------------
# Models
# ---------------------------------------------------------------------------


class Filesystem(BaseModel):
    type: str              # xfs, ext4, vfat
    mountpoint: str
    uuid: str = ""
    label: str = ""
    fstab_options: str = "defaults"
    fstab_freq: int = 0
    fstab_passno: int = 0


class LogicalVolume(BaseModel):
    name: str
    size: int
    payload: Filesystem


class LVMVolumeGroup(BaseModel):
    name: str
    description: str = ""
    logical_volumes: list[LogicalVolume] = Field(default_factory=list)

    def create_logical_volume(self, mountpoint: str, size: int) -> LogicalVolume:
        name = _lv_name(mountpoint)
        existing = {lv.name for lv in self.logical_volumes}
        base, n = name, 0
        while name in existing:
            n += 1
            name = f"{base}{n:02d}"
        lv = LogicalVolume(
            name=name,
            size=align_up(size),
            payload=Filesystem(type="xfs", mountpoint=mountpoint, fstab_options="defaults"),
        )
        self.logical_volumes.append(lv)
        return lv

    @property
    def min_size(self) -> int:
        return _LVM_METADATA + sum(lv.size for lv in self.logical_volumes)


def _lv_name(mountpoint: str) -> str:
    if mountpoint == "/":
        return "rootlv"
    return re.sub(r"[^a-zA-Z0-9]+", "_", mountpoint.strip("/")) + "lv"


class Partition(BaseModel):
    start: int = 0
    size: int = 0
    type: str = ""
    bootable: bool = False
    uuid: str = ""
    payload: Optional[Union[LVMVolumeGroup, Filesystem]] = None


class PartitionTable(BaseModel):
    """An ordered disk layout.  ``size`` and partition offsets are in bytes."""

    type: str = "gpt"      # gpt or dos
    uuid: str = ""
    size: int = 0
    partitions: list[Partition] = Field(default_factory=list)

    def clone(self) -> PartitionTable:
        return self.model_copy(deep=True)

    def filesystems(self) -> Iterator[tuple[Union[Partition, LogicalVolume], Filesystem]]:
        """Yield every (container, filesystem) pair in layout order."""
        for part in self.partitions:
            if isinstance(part.payload, Filesystem):
                yield part, part.payload
            elif isinstance(part.payload, LVMVolumeGroup):
                for lv in part.payload.logical_volumes:
                    yield lv, lv.payload

    def mountpoints(self) -> list[str]:
        return [fs.mountpoint for _, fs in self.filesystems()]

    def contains_mountpoint(self, mountpoint: str) -> bool:
        return mountpoint in self.mountpoints()

    def find_mountpoint(self, mountpoint: str) -> Optional[Union[Partition, LogicalVolume]]:
        for entity, fs in self.filesystems():
            if fs.mountpoint == mountpoint:
                return entity
        return None

    def volume_group(self) -> Optional[LVMVolumeGroup]:
        for part in self.partitions:
            if isinstance(part.payload, LVMVolumeGroup):
                return part.payload
        return None

    def _root_partition_index(self) -> int:
        for idx, part in enumerate(self.partitions):
            payload = part.payload
            if isinstance(payload, Filesystem) and payload.mountpoint == "/":
                return idx
            if isinstance(payload, LVMVolumeGroup) and any(
                lv.payload.mountpoint == "/" for lv in payload.logical_volumes
            ):
                return idx
        raise OptionsError("partition table has no root filesystem")

    # ------------------------------------------------------------------
    # Mutation, only ever applied to a private clone
    # ------------------------------------------------------------------

    def ensure_lvm(self) -> None:
        """Move the root filesystem into an LVM volume group."""
        if self.volume_group() is not None:
            return
        idx = self._root_partition_index()
        root = self.partitions[idx]
        fs = root.payload
        if not isinstance(fs, Filesystem):
            raise OptionsError("root partition holds no filesystem")
        vg = LVMVolumeGroup(
            name="rootvg",
            description="created via lvm2 and osbuild",
            logical_volumes=[LogicalVolume(name="rootlv", size=root.size, payload=fs)],
        )
        root.payload = vg
        root.type = _LVM_PART_TYPE[self.type]
        root.size = max(root.size, vg.min_size)

        # the bootloader cannot read /boot from a logical volume
        if not self.contains_mountpoint("/boot"):
            boot = Partition(
                size=_DEFAULT_BOOT_SIZE,
                type=_XBOOTLDR_PART_TYPE[self.type],
                payload=Filesystem(
                    type="xfs", mountpoint="/boot", fstab_options="defaults"
                ),
            )
            self.partitions.insert(idx, boot)

    def create_mountpoint(self, mountpoint: str, size: int) -> None:
        vg = self.volume_group()
        if vg is not None:
            vg.create_logical_volume(mountpoint, size)
            return
        part = Partition(
            size=align_up(size),
            type=_FILESYSTEM_PART_TYPE[self.type],
            payload=Filesystem(type="xfs", mountpoint=mountpoint, fstab_options="defaults"),
        )
        # keep the root partition last so it can take the remaining space
        self.partitions.insert(self._root_partition_index(), part)

    def relayout(self, size: int) -> None:
        """Assign offsets with 1 MiB alignment and grow the last partition."""
        start = _START_OFFSET
        for part in self.partitions:
            if isinstance(part.payload, LVMVolumeGroup):
                part.size = max(part.size, part.payload.min_size)
            part.size = align_up(part.size)
            part.start = start
            start += part.size

        footer = _GPT_FOOTER if self.type == "gpt" else 0
        needed = start + footer
        self.size = max(align_up(size), needed)

        if not self.partitions:
            return
        extra = self.size - needed
        last = self.partitions[-1]
        last.size += extra
        if isinstance(last.payload, LVMVolumeGroup):
            for lv in last.payload.logical_volumes:
                if lv.payload.mountpoint == "/":
                    lv.size += extra
                    break

    def generate_uuids(self, rng: random.Random) -> None:
        """Fill every empty identifier from *rng*, in layout order."""
        if not self.uuid:
            if self.type == "dos":
                self.uuid = f"0x{rng.getrandbits(32):08x}"
            else:
                self.uuid = _random_uuid(rng)
        for part in self.partitions:
            if self.type == "gpt" and not part.uuid:
                part.uuid = _random_uuid(rng)
        for _, fs in self.filesystems():
            if fs.uuid:
                continue
            if fs.type == "vfat":
                vol_id = f"{rng.getrandbits(32):08X}"
                fs.uuid = f"{vol_id[:4]}-{vol_id[4:]}"
            else:
                fs.uuid = _random_uuid(rng)


def new_partition_table(
    base: PartitionTable,
    mountpoints: Optional[list[FilesystemCustomization]],
    image_size: int,
    lvmify: bool,
    rng: random.Random,
) -> PartitionTable:
    """
    Derive a concrete partition table from *base*.

    Existing mountpoints are grown to their requested minimum size; new ones
    become logical volumes when *lvmify* is set and plain partitions
    otherwise.  All identifiers come from *rng*, so the same seed always
    yields the same table.
    """
    pt = base.clone()
    new_mountpoints: list[FilesystemCustomization] = []
    for mp in mountpoints or []:
        entity = pt.find_mountpoint(mp.mountpoint)
        if entity is None:
            new_mountpoints.append(mp)
        else:
            entity.size = max(entity.size, align_up(mp.minsize))

    if new_mountpoints and lvmify:
        pt.ensure_lvm()
    for mp in new_mountpoints:
        # ensure_lvm may have added /boot as a plain partition
        entity = pt.find_mountpoint(mp.mountpoint)
        if entity is None:
            pt.create_mountpoint(mp.mountpoint, mp.minsize)
        else:
            entity.size = max(entity.size, align_up(mp.minsize))

    pt.relayout(image_size)
    pt.generate_uuids(rng)
    log.debug(
        "partition table: type=%s size=%d mountpoints=%s",
        pt.type, pt.size, ",".join(pt.mountpoints()),
    )
    return pt


# ---------------------------------------------------------------------------
# Mountpoint policies
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class PathPolicy:
    # only the path itself is allowed, not anything below it
    exact: bool = False
    deny: bool = False


class PathPolicies:
    """Longest-prefix path policy lookup."""

    def __init__(self, policies: dict[str, PathPolicy]) -> None:
        self._policies = dict(sorted(policies.items(), key=lambda kv: -len(kv[0])))

    def check(self, path: str) -> None:
        if not path.startswith("/"):
            raise OptionsError(f"path {path!r} must be absolute")
        if posixpath.normpath(path) != path:
            raise OptionsError(f"path {path!r} must be canonical")

        for prefix, policy in self._policies.items():
            if path == prefix or prefix == "/" or path.startswith(prefix + "/"):
                if policy.deny or (policy.exact and path != prefix):
                    raise OptionsError(f"path {path!r} is not allowed")
                return
        raise OptionsError(f"path {path!r} is not allowed")


MOUNTPOINT_POLICIES = PathPolicies(
    {
        "/": PathPolicy(exact=True),
        "/boot": PathPolicy(exact=True),
        "/var": PathPolicy(),
        "/opt": PathPolicy(),
        "/srv": PathPolicy(),
        "/usr": PathPolicy(),
        "/app": PathPolicy(),
        "/data": PathPolicy(),
        "/home": PathPolicy(),
        "/tmp": PathPolicy(),
        "/var/run": PathPolicy(deny=True),
        "/var/lock": PathPolicy(deny=True),
    }
)


def check_mountpoints(
    mountpoints: Optional[list[FilesystemCustomization]],
    policies: PathPolicies = MOUNTPOINT_POLICIES,
) -> None:
    """Raise ``OptionsError`` listing every mountpoint the policies reject."""
    errors: list[str] = []
    for mp in mountpoints or []:
        try:
            policies.check(mp.mountpoint)
        except OptionsError as exc:
            errors.append(str(exc))
    if errors:
        raise OptionsError(
            "The following errors occurred while setting up custom mountpoints:\n"
            + "\n".join(errors)
        )
