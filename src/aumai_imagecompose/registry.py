"""Distribution / architecture / image type registry."""

from __future__ import annotations

import dataclasses
import logging
import random
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Callable, Iterable, Optional

from .disk import PartitionTable, new_partition_table
from .errors import CatalogError, NotFoundError, UnknownArchitectureError
from .log import LOGGER_NAME
from .models import (
    ContainerSpec,
    Customizations,
    FilesystemCustomization,
    ImageConfig,
    ImageOptions,
    PackageSet,
    PackageSpec,
    RepoConfig,
    Workload,
)

if TYPE_CHECKING:
    from .manifest import Pipeline

__all__ = [
    "Architecture",
    "BUILD_PKGS_KEY",
    "BLUEPRINT_PKGS_KEY",
    "CONTAINER_PKGS_KEY",
    "Distribution",
    "INSTALLER_PKGS_KEY",
    "ImageType",
    "OS_PKGS_KEY",
    "Platform",
    "Registry",
]

log = logging.getLogger(LOGGER_NAME)

# package set names
BUILD_PKGS_KEY = "build"
OS_PKGS_KEY = "os"
CONTAINER_PKGS_KEY = "container"
INSTALLER_PKGS_KEY = "installer"
BLUEPRINT_PKGS_KEY = "blueprint"

MEBIBYTE = 1024 * 1024

PackageSetFunc = Callable[["ImageType"], PackageSet]
PipelinesFunc = Callable[
    [
        Workload,
        "ImageType",
        Customizations,
        ImageOptions,
        list[RepoConfig],
        dict[str, list[PackageSpec]],
        list[ContainerSpec],
        random.Random,
    ],
    "list[Pipeline]",
]


@dataclass(frozen=True)
class Platform:
    """Firmware capabilities of an architecture."""

    arch: str
    bios: bool = False
    uefi_vendor: str = ""

    @property
    def boot_type(self) -> str:
        if self.bios and self.uefi_vendor:
            return "hybrid"
        if self.uefi_vendor:
            return "uefi"
        return "legacy"


@dataclass
class ImageType:
    """
    Static description of one image type.

    Catalog entries are templates: ``Architecture.add_image_types`` stores a
    private copy bound to the architecture, so no instance is ever shared
    between two architectures.
    """

    name: str
    filename: str
    mime_type: str
    package_sets: dict[str, PackageSetFunc]
    pipelines: PipelinesFunc
    name_aliases: list[str] = field(default_factory=list)
    package_set_chains: dict[str, list[str]] = field(default_factory=dict)
    default_image_config: Optional[ImageConfig] = None
    kernel_options: str = ""
    default_size: int = 0
    build_pipelines: list[str] = field(default_factory=lambda: ["build"])
    payload_pipelines: list[str] = field(default_factory=list)
    exports: list[str] = field(default_factory=list)
    rpm_ostree: bool = False
    boot_iso: bool = False
    bootable: bool = False
    # overrides the platform boot type when set
    boot_type_override: str = ""
    base_partition_tables: dict[str, PartitionTable] = field(default_factory=dict)
    arch: Optional[Architecture] = field(default=None, repr=False, compare=False)
    platform: Optional[Platform] = field(default=None, compare=False)

    @property
    def architecture(self) -> Architecture:
        if self.arch is None:
            raise CatalogError(f"image type {self.name!r} is not bound to an architecture")
        return self.arch

    @property
    def distro(self) -> Distribution:
        return self.architecture.distro

    def ostree_ref(self) -> str:
        if self.rpm_ostree:
            return self.distro.ostree_ref_tmpl % self.architecture.name
        return ""

    def size(self, size: int) -> int:
        """Final image size in bytes for a requested *size* (0 = default)."""
        # Azure requires vhd images to be rounded up to the nearest MiB
        if self.name == "vhd" and size % MEBIBYTE != 0:
            size = (size // MEBIBYTE + 1) * MEBIBYTE
        if size == 0:
            size = self.default_size
        return size

    def get_exports(self) -> list[str]:
        return self.exports or ["assembler"]

    def payload_package_sets(self) -> list[str]:
        return [BLUEPRINT_PKGS_KEY]

    def get_package_set(self, name: str) -> PackageSet:
        getter = self.package_sets.get(name)
        if getter is None:
            return PackageSet()
        return getter(self)

    def boot_type(self) -> str:
        if self.boot_type_override:
            return self.boot_type_override
        if self.platform is None:
            return "legacy"
        return self.platform.boot_type

    def supports_uefi(self) -> bool:
        return self.boot_type() in ("hybrid", "uefi")

    def default_config(self) -> ImageConfig:
        """The image type's default config, inheriting from the distro's."""
        config = self.default_image_config or ImageConfig()
        return config.inherit_from(self.distro.default_image_config)

    def partition_type(self) -> str:
        base = self.base_partition_tables.get(self.architecture.name)
        return base.type if base is not None else ""

    def base_partition_table(self) -> PartitionTable:
        base = self.base_partition_tables.get(self.architecture.name)
        if base is None:
            raise UnknownArchitectureError(self.architecture.name)
        return base

    def partition_table(
        self,
        mountpoints: Optional[list[FilesystemCustomization]],
        options: ImageOptions,
        rng: random.Random,
    ) -> PartitionTable:
        """Derive this request's partition table; ostree images are never lvmified."""
        base = self.base_partition_table()
        return new_partition_table(
            base, mountpoints, self.size(options.size), not self.rpm_ostree, rng
        )


@dataclass(eq=False)
class Architecture:
    name: str
    distro: Distribution = field(repr=False)
    image_types: dict[str, ImageType] = field(default_factory=dict, repr=False)
    image_type_aliases: dict[str, str] = field(default_factory=dict)

    def list_image_types(self) -> list[str]:
        return sorted(self.image_types)

    def get_image_type(self, name: str) -> ImageType:
        it = self.image_types.get(name)
        if it is not None:
            return it
        canonical = self.image_type_aliases.get(name)
        if canonical is None:
            raise NotFoundError("image type", name)
        it = self.image_types.get(canonical)
        if it is None:
            raise CatalogError(
                f"image type '{name}' is an alias to a non-existing image type '{canonical}'"
            )
        return it

    def add_image_types(self, platform: Platform, *image_types: ImageType) -> None:
        for template in image_types:
            it = dataclasses.replace(
                template,
                arch=self,
                platform=platform,
                name_aliases=list(template.name_aliases),
            )
            _check_package_sets(it)
            if it.name in self.image_types:
                raise CatalogError(
                    f"image type '{it.name}' is already defined for {self.distro.name}/{self.name}"
                )
            if it.name in self.image_type_aliases:
                raise CatalogError(
                    f"image type '{it.name}' collides with an alias for "
                    f"'{self.image_type_aliases[it.name]}'"
                )
            self.image_types[it.name] = it
            for alias in it.name_aliases:
                existing = self.image_type_aliases.get(alias)
                if existing is not None:
                    raise CatalogError(
                        f"image type alias '{alias}' for '{it.name}' is already "
                        f"defined for another image type '{existing}'"
                    )
                if alias in self.image_types:
                    raise CatalogError(
                        f"image type alias '{alias}' for '{it.name}' collides with "
                        "a canonical image type name"
                    )
                self.image_type_aliases[alias] = it.name


def _check_package_sets(it: ImageType) -> None:
    if BUILD_PKGS_KEY not in it.package_sets:
        raise CatalogError(
            f"'{it.name}' image type has no '{BUILD_PKGS_KEY}' package set defined"
        )
    known = set(it.package_sets) | {OS_PKGS_KEY, BLUEPRINT_PKGS_KEY}
    for chain, names in sorted(it.package_set_chains.items()):
        for name in names:
            if name not in known:
                raise CatalogError(
                    f"image type '{it.name}' specifies chained package set "
                    f"'{name}' in chain '{chain}' but no package set with that name exists"
                )


@dataclass(eq=False)
class Distribution:
    name: str
    product: str
    os_version: str
    release_version: str
    module_platform_id: str
    ostree_ref_tmpl: str
    isolabel_tmpl: str
    runner: str
    default_image_config: Optional[ImageConfig] = None
    arches: dict[str, Architecture] = field(default_factory=dict, repr=False)

    def is_rhel(self) -> bool:
        return self.name.startswith("rhel")

    def list_arches(self) -> list[str]:
        return sorted(self.arches)

    def get_arch(self, name: str) -> Architecture:
        arch = self.arches.get(name)
        if arch is None:
            raise NotFoundError("architecture", name)
        return arch

    def add_arch(self, name: str) -> Architecture:
        if name in self.arches:
            raise CatalogError(f"architecture '{name}' is already defined for {self.name}")
        arch = Architecture(name=name, distro=self)
        self.arches[name] = arch
        return arch


class Registry:
    """
    Read-only catalog of distributions.

    Built once (see ``catalog.build_registry``) and shared by reference;
    nothing mutates it after construction.
    """

    def __init__(self, distros: Iterable[Distribution]) -> None:
        self._distros: dict[str, Distribution] = {}
        for d in distros:
            if d.name in self._distros:
                raise CatalogError(f"distribution '{d.name}' is registered twice")
            self._distros[d.name] = d
        log.debug("registry initialised with %d distributions", len(self._distros))

    def list_distros(self) -> list[str]:
        return sorted(self._distros)

    def get_distro(self, name: str) -> Distribution:
        d = self._distros.get(name)
        if d is None:
            raise NotFoundError("distribution", name)
        return d

    def resolve(self, distro: str, arch: str, image_type: str) -> ImageType:
        return self.get_distro(distro).get_arch(arch).get_image_type(image_type)

    def catalog(self) -> dict[str, dict[str, dict[str, object]]]:
        """distro -> arch -> {"image_types": [...], "aliases": {...}}, all sorted."""
        out: dict[str, dict[str, dict[str, object]]] = {}
        for dname in self.list_distros():
            d = self._distros[dname]
            out[dname] = {}
            for aname in d.list_arches():
                a = d.arches[aname]
                out[dname][aname] = {
                    "image_types": a.list_image_types(),
                    "aliases": dict(sorted(a.image_type_aliases.items())),
                }
        return out
