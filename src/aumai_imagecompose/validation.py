"""Compatibility checks between an image type and the requested customizations."""

from __future__ import annotations

from .disk import MOUNTPOINT_POLICIES, check_mountpoints
from .errors import OptionsError
from .models import ContainerSpec, Customizations, ImageOptions
from .registry import ImageType

__all__ = [
    "OSCAP_PROFILE_ALLOW_LIST",
    "check_options",
]

EDGE_COMMIT = "edge-commit"
EDGE_CONTAINER = "edge-container"
EDGE_INSTALLER = "edge-installer"
EDGE_SIMPLIFIED_INSTALLER = "edge-simplified-installer"
EDGE_RAW_IMAGE = "edge-raw-image"

# ostree artifacts that may embed containers: the commit itself and its container
OSTREE_ARTIFACT_TYPES = frozenset({EDGE_COMMIT, EDGE_CONTAINER, "ostree-commit", "ostree-container"})

OSCAP_MIN_VERSION = "8.7"

_OSCAP_PREFIX = "xccdf_org.ssgproject.content_profile_"
OSCAP_PROFILE_ALLOW_LIST = frozenset(
    _OSCAP_PREFIX + p
    for p in (
        "anssi_bp28_enhanced",
        "anssi_bp28_high",
        "anssi_bp28_intermediary",
        "anssi_bp28_minimal",
        "cis",
        "cis_server_l1",
        "cis_workstation_l1",
        "cis_workstation_l2",
        "cui",
        "e8",
        "hipaa",
        "ism_o",
        "ospp",
        "pci-dss",
        "stig",
        "stig_gui",
        "standard",
    )
)


def version_less_than(a: str, b: str) -> bool:
    """Compare dotted numeric versions (``"8.10" > "8.7"``)."""

    def parts(v: str) -> list[int]:
        return [int(p) if p.isdigit() else 0 for p in v.split(".")]

    pa, pb = parts(a), parts(b)
    width = max(len(pa), len(pb))
    pa += [0] * (width - len(pa))
    pb += [0] * (width - len(pb))
    return pa < pb


def _check_allowed(image_type: ImageType, customizations: Customizations, *allowed: str) -> None:
    try:
        customizations.check_allowed(*allowed)
    except OptionsError as exc:
        raise OptionsError(
            f"unsupported blueprint customizations found for boot ISO image type "
            f"{image_type.name!r}: (allowed: {', '.join(allowed)})"
        ) from exc


def _check_simplified_installer(image_type: ImageType, customizations: Customizations) -> None:
    _check_allowed(image_type, customizations, "installation_device", "fdo")
    if not customizations.installation_device:
        raise OptionsError(
            f"boot ISO image type {image_type.name!r} requires specifying an "
            "installation device to install to"
        )
    fdo = customizations.fdo
    if fdo is None:
        return
    if not fdo.manufacturing_server_url:
        raise OptionsError(
            f"boot ISO image type {image_type.name!r} requires specifying "
            "FDO.ManufacturingServerURL configuration to install to"
        )
    trust_anchors = [
        fdo.diun_pub_key_hash,
        fdo.diun_pub_key_insecure,
        fdo.diun_pub_key_root_certs,
    ]
    if sum(1 for v in trust_anchors if v) != 1:
        raise OptionsError(
            f"boot ISO image type {image_type.name!r} requires specifying one of "
            "[FDO.DiunPubKeyHash,FDO.DiunPubKeyInsecure,FDO.DiunPubKeyRootCerts] "
            "configuration to install to"
        )


def check_options(
    image_type: ImageType,
    customizations: Customizations,
    options: ImageOptions,
    containers: list[ContainerSpec],
) -> None:
    """
    Raise ``OptionsError`` for the first rule the request violates.

    The check is a pure function of its arguments.
    """
    distro = image_type.distro

    # containers are embedded into the commit, not into images derived from it
    if containers and image_type.rpm_ostree and image_type.name not in OSTREE_ARTIFACT_TYPES:
        raise OptionsError(
            f"embedding containers is not supported for {image_type.name} on {distro.name}"
        )

    if image_type.boot_iso and image_type.rpm_ostree:
        # the URL is only used to resolve the checksum; the checksum is what matters
        if not options.ostree.fetch_checksum:
            raise OptionsError(
                f"boot ISO image type {image_type.name!r} requires specifying a URL "
                "from which to retrieve the OSTree commit"
            )
        if image_type.name == EDGE_SIMPLIFIED_INSTALLER:
            _check_simplified_installer(image_type, customizations)
        elif image_type.name == EDGE_INSTALLER:
            _check_allowed(image_type, customizations, "user", "group")

    if image_type.name == EDGE_RAW_IMAGE and not options.ostree.fetch_checksum:
        raise OptionsError(
            "edge raw images require specifying a URL from which to retrieve the OSTree commit"
        )

    kernel = customizations.get_kernel()
    if kernel.append and image_type.rpm_ostree and (not image_type.bootable or image_type.boot_iso):
        raise OptionsError("kernel boot parameter customizations are not supported for ostree types")

    mountpoints = customizations.filesystem
    if mountpoints is not None and image_type.rpm_ostree:
        raise OptionsError("Custom mountpoints are not supported for ostree types")

    check_mountpoints(mountpoints, MOUNTPOINT_POLICIES)

    oscap = customizations.openscap
    if oscap is not None:
        if not distro.is_rhel() or version_less_than(distro.os_version, OSCAP_MIN_VERSION):
            raise OptionsError(f"OpenSCAP unsupported os version: {distro.os_version}")
        if oscap.profile_id not in OSCAP_PROFILE_ALLOW_LIST:
            raise OptionsError(f"OpenSCAP unsupported profile: {oscap.profile_id}")
        if image_type.rpm_ostree:
            raise OptionsError("OpenSCAP customizations are not supported for ostree types")
        if not oscap.datastream:
            raise OptionsError("OpenSCAP datastream cannot be empty")
        if not oscap.profile_id:
            raise OptionsError("OpenSCAP profile cannot be empty")
