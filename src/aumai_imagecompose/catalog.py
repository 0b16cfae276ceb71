"""
The static distribution catalog.

``build_registry`` is the only place distributions, architectures and image
types are defined.  Catalog defects raise ``CatalogError`` while the registry
is built, so a broken catalog never serves a request.
"""

from __future__ import annotations

import logging

from . import pipelines
from .disk import GIBIBYTE, MEBIBYTE, Filesystem, Partition, PartitionTable
from .log import LOGGER_NAME
from .models import ImageConfig, PackageSet
from .registry import (
    BUILD_PKGS_KEY,
    CONTAINER_PKGS_KEY,
    INSTALLER_PKGS_KEY,
    OS_PKGS_KEY,
    Distribution,
    ImageType,
    Platform,
    Registry,
)

__all__ = [
    "build_registry",
]

log = logging.getLogger(LOGGER_NAME)

X86_64 = "x86_64"
AARCH64 = "aarch64"

_DEFAULT_KERNEL_OPTIONS = "console=tty0 console=ttyS0,115200n8 no_timer_check net.ifnames=0 crashkernel=auto"

_BIOS_BOOT_GUID = "21686148-6449-6E6F-744E-656564454649"
_EFI_SYSTEM_GUID = "C12A7328-F81F-11D2-BA4B-00A0C93EC93B"
_XBOOTLDR_GUID = "BC13C2FF-59E6-4262-A352-B275FD6F7172"
_FILESYSTEM_GUID = "0FC63DAF-8483-4772-8E79-3D69D8477DE4"
_EFI_FSTAB_OPTIONS = "defaults,uid=0,gid=0,umask=077,shortname=winnt"

_EDGE_SERVICES = ["NetworkManager.service", "firewalld.service", "sshd.service", "greenboot-grub2-set-counter"]
_SCOS_SERVICES = ["sshd.service", "containerd.service", "docker.service"]


# ---------------------------------------------------------------------------
# Partition tables
# ---------------------------------------------------------------------------


def _efi_partition(size: int) -> Partition:
    return Partition(
        size=size,
        type=_EFI_SYSTEM_GUID,
        uuid="68B2905B-DF3E-4FB3-80FA-49D1E773AA33",
        payload=Filesystem(
            type="vfat",
            uuid="7B77-95E7",
            label="EFI-SYSTEM",
            mountpoint="/boot/efi",
            fstab_options=_EFI_FSTAB_OPTIONS,
            fstab_passno=2,
        ),
    )


def _root_partition(size: int) -> Partition:
    return Partition(
        size=size,
        type=_FILESYSTEM_GUID,
        uuid="6264D520-3FB9-423F-8AB8-7A0A8E3D3562",
        payload=Filesystem(type="xfs", label="root", mountpoint="/", fstab_options="defaults"),
    )


def _bios_partition() -> Partition:
    return Partition(
        size=MEBIBYTE,
        bootable=True,
        type=_BIOS_BOOT_GUID,
        uuid="FAC7F1FB-3E8D-4137-A512-961DE09A5549",
    )


def default_partition_tables() -> dict[str, PartitionTable]:
    return {
        X86_64: PartitionTable(
            type="gpt",
            uuid="D209C89E-EA5E-4FBD-B161-B461CCE297E0",
            partitions=[_bios_partition(), _efi_partition(100 * MEBIBYTE), _root_partition(2 * GIBIBYTE)],
        ),
        AARCH64: PartitionTable(
            type="gpt",
            uuid="D209C89E-EA5E-4FBD-B161-B461CCE297E0",
            partitions=[_efi_partition(100 * MEBIBYTE), _root_partition(2 * GIBIBYTE)],
        ),
    }


def edge_partition_tables() -> dict[str, PartitionTable]:
    def boot() -> Partition:
        return Partition(
            size=384 * MEBIBYTE,
            type=_XBOOTLDR_GUID,
            uuid="CB07C243-BC44-4717-853E-28852021225B",
            payload=Filesystem(
                type="xfs", label="boot", mountpoint="/boot", fstab_options="defaults", fstab_freq=1, fstab_passno=1
            ),
        )

    return {
        X86_64: PartitionTable(
            type="gpt",
            uuid="D209C89E-EA5E-4FBD-B161-B461CCE297E0",
            partitions=[_bios_partition(), _efi_partition(127 * MEBIBYTE), boot(), _root_partition(2 * GIBIBYTE)],
        ),
        AARCH64: PartitionTable(
            type="gpt",
            uuid="D209C89E-EA5E-4FBD-B161-B461CCE297E0",
            partitions=[_efi_partition(127 * MEBIBYTE), boot(), _root_partition(2 * GIBIBYTE)],
        ),
    }


# ---------------------------------------------------------------------------
# Package sets
# ---------------------------------------------------------------------------


def _release_package(t: ImageType) -> str:
    name = t.distro.name
    if name.startswith("rhel"):
        return "redhat-release"
    if name.startswith("centos"):
        return "centos-stream-release"
    if name.startswith("scos-oe"):
        return "openEuler-release"
    return "rocky-release"


def build_package_set(t: ImageType) -> PackageSet:
    ps = PackageSet(
        include=[
            "dnf", "dosfstools", "e2fsprogs", "glibc", "lorax-templates-generic",
            "policycoreutils", "python36", "python3-iniparse", "qemu-img",
            "rpm", "selinux-policy-targeted", "systemd", "tar", "xfsprogs", "xz",
        ]
    )
    if t.architecture.name == X86_64:
        ps = ps.append(PackageSet(include=["grub2-pc"]))
    if t.rpm_ostree:
        ps = ps.append(PackageSet(include=["rpm-ostree"]))
    if t.boot_iso:
        ps = ps.append(PackageSet(include=["isomd5sum", "xorriso", "squashfs-tools", "syslinux"]))
    return ps


def os_package_set(t: ImageType) -> PackageSet:
    ps = PackageSet(
        include=["@core", _release_package(t), "chrony", "dracut-config-generic", "grub2", "shim"],
        exclude=["dracut-config-rescue", "rng-tools"],
    )
    if t.architecture.name == X86_64:
        ps = ps.append(PackageSet(include=["grub2-pc", "grub2-efi-x64", "shim-x64"]))
    elif t.architecture.name == AARCH64:
        ps = ps.append(PackageSet(include=["grub2-efi-aa64", "shim-aa64", "efibootmgr"]))
    return ps


def tar_package_set(t: ImageType) -> PackageSet:
    return PackageSet(include=["policycoreutils", "selinux-policy-targeted"], exclude=["rng-tools"])


def edge_commit_package_set(t: ImageType) -> PackageSet:
    return PackageSet(
        include=[
            _release_package(t), "attr", "audit", "basesystem", "bash", "clevis", "clevis-dracut",
            "container-selinux", "coreutils", "criu", "cryptsetup", "curl", "dnsmasq", "dosfstools",
            "dracut-config-generic", "dracut-network", "e2fsprogs", "firewalld", "fuse-overlayfs",
            "fwupd", "glibc", "glibc-minimal-langpack", "gnupg2", "greenboot", "gzip", "hostname",
            "ima-evm-utils", "iproute", "iptables", "iputils", "keyutils", "less", "lvm2",
            "NetworkManager", "nss-altfiles", "openssh-clients", "openssh-server", "passwd",
            "pinentry", "podman", "policycoreutils", "procps-ng", "rootfiles", "rpm", "rpm-ostree",
            "selinux-policy-targeted", "setools-console", "setup", "shadow-utils", "skopeo",
            "sudo", "systemd", "tar", "tmux", "traceroute", "usbguard", "util-linux",
            "vim-minimal", "wpa_supplicant", "xz", "zstd",
        ],
        exclude=["rng-tools"],
    )


def scos_commit_package_set(t: ImageType) -> PackageSet:
    return PackageSet(
        include=[
            _release_package(t), "basesystem", "network-scripts", "kernel", "glibc", "tmux",
            "nss-altfiles", "glibc-minimal-langpack", "lvm2", "cryptsetup", "dracut",
            "dracut-config-generic", "bash", "coreutils", "curl", "openssl", "jq", "hostname",
            "iproute", "iputils", "iptables", "openssh-clients", "openssh-server", "passwd",
            "e2fsprogs", "xfsprogs", "dosfstools", "sudo", "systemd", "util-linux",
            "vim-minimal", "setup", "shadow-utils", "policycoreutils", "selinux-policy-targeted",
            "procps-ng", "rpm", "rpm-ostree", "cloud-init", "grub2", "efibootmgr",
            "containerd.io", "docker-ce", "docker-compose-plugin",
        ],
        exclude=["geolite2-city", "geolite2-country", "glibc-all-langpacks", "mozjs78"],
    )


def container_package_set(t: ImageType) -> PackageSet:
    return PackageSet(include=["nginx"])


def installer_package_set(t: ImageType) -> PackageSet:
    ps = PackageSet(
        include=[
            "anaconda-dracut", "curl", "dracut-config-generic", "dracut-network", "hostname",
            "iwl100-firmware", "kernel", "less", "nfs-utils", "openssh-clients", "ostree",
            "plymouth", "prefixdevname", "rng-tools", "rpcbind", "selinux-policy-targeted",
            "systemd", "tar", "xfsprogs", "xz",
        ]
    )
    if t.architecture.name == X86_64:
        ps = ps.append(PackageSet(include=["biosdevname", "memtest86+", "syslinux", "grub2-efi-x64-cdboot"]))
    return ps


def simplified_installer_package_set(t: ImageType) -> PackageSet:
    return installer_package_set(t).append(
        PackageSet(include=["coreos-installer", "coreos-installer-dracut", "fdo-init", "fdo-client"])
    )


# ---------------------------------------------------------------------------
# Image types
# ---------------------------------------------------------------------------

_OS_CHAIN = {OS_PKGS_KEY: [OS_PKGS_KEY, "blueprint"]}


def _rhel_image_types() -> list[ImageType]:
    return [
        ImageType(
            name="qcow2",
            filename="disk.qcow2",
            mime_type="application/x-qemu-disk",
            package_sets={BUILD_PKGS_KEY: build_package_set, OS_PKGS_KEY: os_package_set},
            package_set_chains=dict(_OS_CHAIN),
            pipelines=pipelines.disk_image_pipelines,
            default_image_config=ImageConfig(default_target="multi-user.target"),
            kernel_options=_DEFAULT_KERNEL_OPTIONS,
            default_size=10 * GIBIBYTE,
            payload_pipelines=["os", "image", "qcow2"],
            exports=["qcow2"],
            bootable=True,
            base_partition_tables=default_partition_tables(),
        ),
        ImageType(
            name="vhd",
            filename="disk.vhd",
            mime_type="application/x-vhd",
            package_sets={BUILD_PKGS_KEY: build_package_set, OS_PKGS_KEY: os_package_set},
            package_set_chains=dict(_OS_CHAIN),
            pipelines=pipelines.disk_image_pipelines,
            default_image_config=ImageConfig(enabled_services=["sshd", "waagent"]),
            kernel_options="ro biosdevname=0 rootdelay=300 console=ttyS0 earlyprintk=ttyS0 net.ifnames=0",
            default_size=4 * GIBIBYTE,
            payload_pipelines=["os", "image", "vpc"],
            exports=["vpc"],
            bootable=True,
            base_partition_tables=default_partition_tables(),
        ),
        ImageType(
            name="tar",
            filename="root.tar.xz",
            mime_type="application/x-tar",
            package_sets={BUILD_PKGS_KEY: build_package_set, OS_PKGS_KEY: tar_package_set},
            package_set_chains=dict(_OS_CHAIN),
            pipelines=pipelines.tar_pipelines,
            payload_pipelines=["os", "archive"],
            exports=["archive"],
        ),
        ImageType(
            name="edge-commit",
            name_aliases=["rhel-edge-commit"],
            filename="commit.tar",
            mime_type="application/x-tar",
            package_sets={BUILD_PKGS_KEY: build_package_set, OS_PKGS_KEY: edge_commit_package_set},
            package_set_chains=dict(_OS_CHAIN),
            pipelines=pipelines.edge_commit_pipelines,
            default_image_config=ImageConfig(enabled_services=list(_EDGE_SERVICES)),
            payload_pipelines=["os", "ostree-commit", "commit-archive"],
            exports=["commit-archive"],
            rpm_ostree=True,
        ),
        ImageType(
            name="edge-container",
            name_aliases=["rhel-edge-container"],
            filename="container.tar",
            mime_type="application/x-tar",
            package_sets={
                BUILD_PKGS_KEY: build_package_set,
                OS_PKGS_KEY: edge_commit_package_set,
                CONTAINER_PKGS_KEY: container_package_set,
            },
            package_set_chains=dict(_OS_CHAIN),
            pipelines=pipelines.edge_container_pipelines,
            default_image_config=ImageConfig(enabled_services=list(_EDGE_SERVICES)),
            payload_pipelines=["os", "ostree-commit", "container-tree", "container"],
            exports=["container"],
            rpm_ostree=True,
        ),
        ImageType(
            name="edge-installer",
            name_aliases=["rhel-edge-installer"],
            filename="installer.iso",
            mime_type="application/x-iso9660-image",
            package_sets={BUILD_PKGS_KEY: build_package_set, INSTALLER_PKGS_KEY: installer_package_set},
            pipelines=pipelines.edge_installer_pipelines,
            payload_pipelines=["anaconda-tree", "bootiso-tree", "bootiso"],
            exports=["bootiso"],
            rpm_ostree=True,
            boot_iso=True,
        ),
        ImageType(
            name="edge-simplified-installer",
            filename="simplified-installer.iso",
            mime_type="application/x-iso9660-image",
            package_sets={BUILD_PKGS_KEY: build_package_set, INSTALLER_PKGS_KEY: simplified_installer_package_set},
            pipelines=pipelines.edge_simplified_installer_pipelines,
            default_size=10 * GIBIBYTE,
            payload_pipelines=["ostree-deployment", "image", "xz", "coreos-installer", "bootiso-tree", "bootiso"],
            exports=["bootiso"],
            rpm_ostree=True,
            boot_iso=True,
            bootable=True,
            boot_type_override="uefi",
            base_partition_tables=edge_partition_tables(),
        ),
        ImageType(
            name="edge-raw-image",
            filename="image.raw.xz",
            mime_type="application/xz",
            package_sets={BUILD_PKGS_KEY: build_package_set},
            pipelines=pipelines.edge_raw_image_pipelines,
            kernel_options="modprobe.blacklist=vc4",
            default_size=10 * GIBIBYTE,
            payload_pipelines=["ostree-deployment", "image", "xz"],
            exports=["xz"],
            rpm_ostree=True,
            bootable=True,
            base_partition_tables=edge_partition_tables(),
        ),
    ]


def _scos_image_types(base: str) -> list[ImageType]:
    config = ImageConfig(enabled_services=list(_SCOS_SERVICES))
    return [
        ImageType(
            name="ostree-commit",
            name_aliases=[f"scos-{base}-commit"],
            filename="commit.tar",
            mime_type="application/x-tar",
            package_sets={BUILD_PKGS_KEY: build_package_set, OS_PKGS_KEY: scos_commit_package_set},
            package_set_chains=dict(_OS_CHAIN),
            pipelines=pipelines.edge_commit_pipelines,
            default_image_config=config,
            payload_pipelines=["os", "ostree-commit", "commit-archive"],
            exports=["commit-archive"],
            rpm_ostree=True,
        ),
        ImageType(
            name="ostree-container",
            name_aliases=[f"scos-{base}-container"],
            filename="container.tar",
            mime_type="application/x-tar",
            package_sets={
                BUILD_PKGS_KEY: build_package_set,
                OS_PKGS_KEY: scos_commit_package_set,
                CONTAINER_PKGS_KEY: container_package_set,
            },
            package_set_chains=dict(_OS_CHAIN),
            pipelines=pipelines.edge_container_pipelines,
            default_image_config=config,
            payload_pipelines=["os", "ostree-commit", "container-tree", "container"],
            exports=["container"],
            rpm_ostree=True,
        ),
    ]


# ---------------------------------------------------------------------------
# Distributions
# ---------------------------------------------------------------------------

def _rhel8(minor: int) -> Distribution:
    return Distribution(
        name=f"rhel-8{minor}",
        product="Red Hat Enterprise Linux",
        os_version=f"8.{minor}",
        release_version="8",
        module_platform_id="platform:el8",
        ostree_ref_tmpl="rhel/8/%s/edge",
        isolabel_tmpl=f"RHEL-8-{minor}-0-BaseOS-%s",
        runner=f"org.osbuild.rhel8{minor}",
        default_image_config=ImageConfig(timezone="UTC", locale="en_US.UTF-8"),
    )


def _centos8() -> Distribution:
    return Distribution(
        name="centos-8",
        product="CentOS Stream",
        os_version="8-stream",
        release_version="8",
        module_platform_id="platform:el8",
        ostree_ref_tmpl="centos/8/%s/edge",
        isolabel_tmpl="CentOS-Stream-8-BaseOS-%s",
        runner="org.osbuild.centos8",
        default_image_config=ImageConfig(timezone="UTC", locale="en_US.UTF-8"),
    )


def _scos(base: str, version: int) -> Distribution:
    if base == "oe":
        module_platform_id = f"platform:oe{version}"
        ostree_ref_tmpl = f"scos/oe{version}/%s/os"
        isolabel_tmpl = f"SCOS-OpenEuler{version}-BaseOS-%s"
    else:
        module_platform_id = f"platform:el{version}"
        ostree_ref_tmpl = f"scos/rocky{version}/%s/os"
        isolabel_tmpl = f"SCOS-Rocky{version}-BaseOS-%s"
    return Distribution(
        name=f"scos-{base}-{version}",
        product="SCOS",
        os_version=str(version),
        release_version=str(version),
        module_platform_id=module_platform_id,
        ostree_ref_tmpl=ostree_ref_tmpl,
        isolabel_tmpl=isolabel_tmpl,
        runner="org.osbuild.centos8",
        default_image_config=ImageConfig(timezone="UTC", locale="en_US"),
    )


def _register(distro: Distribution, image_types: list[ImageType], uefi_vendor: str) -> Distribution:
    distro.add_arch(X86_64).add_image_types(
        Platform(arch=X86_64, bios=True, uefi_vendor=uefi_vendor), *image_types
    )
    distro.add_arch(AARCH64).add_image_types(
        Platform(arch=AARCH64, uefi_vendor=uefi_vendor), *image_types
    )
    return distro


def build_registry() -> Registry:
    """Construct the registry of every supported distribution."""
    distros = [
        _register(_rhel8(6), _rhel_image_types(), "redhat"),
        _register(_rhel8(7), _rhel_image_types(), "redhat"),
        _register(_centos8(), _rhel_image_types(), "centos"),
        _register(_scos("rocky", 8), _scos_image_types("rocky"), "smartx"),
        _register(_scos("oe", 1), _scos_image_types("oe"), "smartx"),
    ]
    registry = Registry(distros)
    log.debug("catalog: %s", ", ".join(registry.list_distros()))
    return registry
