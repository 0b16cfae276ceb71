"""Package set resolution: merge image, build and blueprint requirements into chains."""

from __future__ import annotations

import logging
from typing import Optional

from .errors import CatalogError
from .log import LOGGER_NAME
from .models import Blueprint, ImageOptions, PackageSet, RepoConfig
from .registry import BLUEPRINT_PKGS_KEY, BUILD_PKGS_KEY, OS_PKGS_KEY, ImageType

__all__ = [
    "make_package_set_chains",
    "merged_package_sets",
    "resolve_package_sets",
]

log = logging.getLogger(LOGGER_NAME)

TIMESYNC_PACKAGE = "chrony"
LVM_PACKAGE = "lvm2"
CONTAINER_TRANSPORT_PACKAGE = "skopeo"
# needed by the containers-storage.conf stage on ostree images
OSTREE_CONTAINER_CONFIG_PACKAGE = "python3-pytoml"
OSCAP_PACKAGES = ("openscap-scanner", "scap-security-guide")


def _has_new_mountpoint(image_type: ImageType, bp: Blueprint) -> bool:
    filesystems = bp.customizations.filesystem
    if not filesystems:
        return False
    base = image_type.base_partition_tables.get(image_type.architecture.name)
    if base is None:
        return True
    return any(not base.contains_mountpoint(fs.mountpoint) for fs in filesystems)


def merged_package_sets(image_type: ImageType, bp: Blueprint) -> dict[str, PackageSet]:
    """
    Base package sets of *image_type* amended with blueprint requirements.

    Blueprint packages land in their own ``blueprint`` set so the exclude
    list of the ``os`` set never filters what the user asked for.  The
    blueprint kernel goes into ``os`` to avoid installing two kernels.
    """
    if BUILD_PKGS_KEY not in image_type.package_sets:
        raise CatalogError(
            f"'{image_type.name}' image type has no '{BUILD_PKGS_KEY}' package set defined"
        )

    merged: dict[str, PackageSet] = {
        name: image_type.get_package_set(name) for name in sorted(image_type.package_sets)
    }
    merged.setdefault(OS_PKGS_KEY, PackageSet())

    customizations = bp.customizations
    bp_packages = bp.get_packages()

    if customizations.timezone is not None:
        bp_packages.append(TIMESYNC_PACKAGE)

    # new mountpoints convert the layout to LVM
    if not image_type.rpm_ostree and _has_new_mountpoint(image_type, bp):
        bp_packages.append(LVM_PACKAGE)

    if bp.containers:
        extra = PackageSet(include=[CONTAINER_TRANSPORT_PACKAGE])
        if image_type.rpm_ostree:
            extra = extra.append(PackageSet(include=[OSTREE_CONTAINER_CONFIG_PACKAGE]))
        merged[BUILD_PKGS_KEY] = merged[BUILD_PKGS_KEY].append(extra)

    if customizations.openscap is not None:
        bp_packages.extend(OSCAP_PACKAGES)

    merged[BLUEPRINT_PKGS_KEY] = PackageSet(include=bp_packages)
    kernel = customizations.get_kernel().name
    merged[OS_PKGS_KEY] = merged[OS_PKGS_KEY].append(PackageSet(include=[kernel]))

    return merged


def _repos_for(name: str, repos: list[RepoConfig]) -> list[RepoConfig]:
    return [r for r in repos if not r.package_sets or name in r.package_sets]


def make_package_set_chains(
    image_type: ImageType,
    package_sets: dict[str, PackageSet],
    repos: list[RepoConfig],
) -> dict[str, list[PackageSet]]:
    """
    Group *package_sets* into the chains declared by *image_type*.

    Sets named in a chain are laid out in the declared order; every other
    set becomes a chain of its own.  Each set gets the repositories scoped
    to it plus all unscoped ones.
    """
    chains: dict[str, list[PackageSet]] = {}
    chained: set[str] = set()

    for chain_name in sorted(image_type.package_set_chains):
        sets: list[PackageSet] = []
        for set_name in image_type.package_set_chains[chain_name]:
            pkg_set = package_sets.get(set_name)
            if pkg_set is None:
                raise CatalogError(
                    f"image type {image_type.name!r} specifies chained package set "
                    f"{set_name!r} but no package set with that name exists"
                )
            sets.append(pkg_set.model_copy(update={"repositories": _repos_for(set_name, repos)}))
            chained.add(set_name)
        chains[chain_name] = sets

    for set_name in sorted(package_sets):
        if set_name in chained:
            continue
        pkg_set = package_sets[set_name]
        chains[set_name] = [
            pkg_set.model_copy(update={"repositories": _repos_for(set_name, repos)})
        ]

    return dict(sorted(chains.items()))


def resolve_package_sets(
    image_type: ImageType,
    bp: Blueprint,
    options: Optional[ImageOptions],
    repos: list[RepoConfig],
) -> dict[str, list[PackageSet]]:
    """Package set chains to send to the depsolver for one request."""
    merged = merged_package_sets(image_type, bp)
    chains = make_package_set_chains(image_type, merged, repos)
    log.debug(
        "package set chains for %s/%s/%s: %s",
        image_type.distro.name,
        image_type.architecture.name,
        image_type.name,
        ", ".join(f"{k}[{len(v)}]" for k, v in chains.items()),
    )
    return chains
