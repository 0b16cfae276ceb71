"""
Pipeline constructors, one per image family.

Every constructor has the same signature::

    (workload, image_type, customizations, options, repos,
     package_specs, containers, rng) -> list[Pipeline]

and returns the pipelines in execution order.  ``rng`` is the only source
of randomness; constructors never touch global random state.
"""

from __future__ import annotations

import random
from typing import Any, Optional

from .disk import Filesystem, LVMVolumeGroup, PartitionTable
from .manifest import Pipeline, Stage, inline_id
from .models import (
    ContainerSpec,
    Customizations,
    ImageConfig,
    ImageOptions,
    PackageSpec,
    RepoConfig,
    Workload,
)
from .registry import (
    BUILD_PKGS_KEY,
    CONTAINER_PKGS_KEY,
    INSTALLER_PKGS_KEY,
    OS_PKGS_KEY,
    ImageType,
)

__all__ = [
    "disk_image_pipelines",
    "edge_commit_pipelines",
    "edge_container_pipelines",
    "edge_installer_pipelines",
    "edge_raw_image_pipelines",
    "edge_simplified_installer_pipelines",
    "tar_pipelines",
]

_SELINUX_FILE_CONTEXTS = "etc/selinux/targeted/contexts/files/file_contexts"
_CONTAINERS_STORAGE = "/usr/share/containers/storage"
_GOARCH = {"x86_64": "amd64", "aarch64": "arm64", "ppc64le": "ppc64le", "s390x": "s390x"}

_BUILD_REF = "name:build"
_START_SECTOR = 2048


# ---------------------------------------------------------------------------
# Stage helpers
# ---------------------------------------------------------------------------


def _gpg_keys(repos: list[RepoConfig]) -> list[str]:
    keys: list[str] = []
    for repo in repos:
        for key in repo.gpg_keys:
            if key not in keys:
                keys.append(key)
    return keys


def _pipeline_input(name: str) -> dict[str, Any]:
    return {"type": "org.osbuild.tree", "origin": "org.osbuild.pipeline", "references": [f"name:{name}"]}


def _file_input(pipeline: str, filename: str) -> dict[str, Any]:
    return {
        "type": "org.osbuild.files",
        "origin": "org.osbuild.pipeline",
        "references": {f"name:{pipeline}": {"file": filename}},
    }


def rpm_stage(
    specs: list[PackageSpec],
    repos: list[RepoConfig],
    ostree_booted: bool = False,
) -> Stage:
    references: dict[str, Any] = {}
    for pkg in specs:
        references[pkg.checksum] = {"metadata": {"rpm.check_gpg": True}} if pkg.check_gpg else {}
    options: dict[str, Any] = {}
    keys = _gpg_keys(repos)
    if keys:
        options["gpgkeys"] = keys
    if ostree_booted:
        options["ostree_booted"] = True
        options["dbpath"] = "/usr/share/rpm"
    return Stage(
        type="org.osbuild.rpm",
        inputs={
            "packages": {
                "type": "org.osbuild.files",
                "origin": "org.osbuild.source",
                "references": references,
            }
        },
        options=options or None,
    )


def selinux_stage(labels: Optional[dict[str, str]] = None) -> Stage:
    options: dict[str, Any] = {"file_contexts": _SELINUX_FILE_CONTEXTS}
    if labels:
        options["labels"] = labels
    return Stage(type="org.osbuild.selinux", options=options)


def _users_stage(customizations: Customizations) -> Optional[Stage]:
    if not customizations.user:
        return None
    users: dict[str, Any] = {}
    for user in customizations.user:
        users[user.name] = user.model_dump(exclude={"name"}, exclude_none=True, exclude_defaults=True)
    return Stage(type="org.osbuild.users", options={"users": users})


def _groups_stage(customizations: Customizations) -> Optional[Stage]:
    if not customizations.group:
        return None
    groups: dict[str, Any] = {}
    for group in customizations.group:
        groups[group.name] = {"gid": group.gid} if group.gid is not None else {}
    return Stage(type="org.osbuild.groups", options={"groups": groups})


def _kernel_options(t: ImageType, customizations: Customizations) -> str:
    opts = [o for o in (t.kernel_options, customizations.get_kernel().append) if o]
    return " ".join(opts)


def _image_config(t: ImageType, workload: Workload, customizations: Customizations) -> ImageConfig:
    config = t.default_config()
    if customizations.timezone is not None and customizations.timezone.timezone:
        config.timezone = customizations.timezone.timezone
    if customizations.locale is not None and customizations.locale.languages:
        config.locale = customizations.locale.languages[0]
    config.enabled_services = [*config.enabled_services, *workload.services]
    config.disabled_services = [*config.disabled_services, *workload.disabled_services]
    return config


def _config_stages(
    t: ImageType,
    workload: Workload,
    customizations: Customizations,
) -> list[Stage]:
    config = _image_config(t, workload, customizations)
    stages: list[Stage] = []
    if config.locale:
        stages.append(Stage(type="org.osbuild.locale", options={"language": config.locale}))
    if config.timezone:
        stages.append(Stage(type="org.osbuild.timezone", options={"zone": config.timezone}))
    if customizations.timezone is not None and customizations.timezone.ntpservers:
        servers = [{"hostname": s} for s in customizations.timezone.ntpservers]
        stages.append(Stage(type="org.osbuild.chrony", options={"servers": servers}))
    if customizations.hostname:
        stages.append(Stage(type="org.osbuild.hostname", options={"hostname": customizations.hostname}))
    for stage in (_groups_stage(customizations), _users_stage(customizations)):
        if stage is not None:
            stages.append(stage)
    if config.enabled_services or config.disabled_services or config.default_target:
        options: dict[str, Any] = {}
        if config.enabled_services:
            options["enabled_services"] = config.enabled_services
        if config.disabled_services:
            options["disabled_services"] = config.disabled_services
        if config.default_target:
            options["default_target"] = config.default_target
        stages.append(Stage(type="org.osbuild.systemd", options=options))
    return stages


def _container_stages(containers: list[ContainerSpec], ostree: bool) -> list[Stage]:
    if not containers:
        return []
    references: dict[str, Any] = {}
    for c in containers:
        references[c.image_id or c.source] = {"name": c.local_name or c.source}
    stages: list[Stage] = []
    if ostree:
        stages.append(
            Stage(
                type="org.osbuild.containers.storage.conf",
                options={
                    "filename": "/etc/containers/storage.conf",
                    "config": {"storage": {"options": {"additionalimagestores": [_CONTAINERS_STORAGE]}}},
                },
            )
        )
    stages.append(
        Stage(
            type="org.osbuild.skopeo",
            inputs={
                "images": {
                    "type": "org.osbuild.containers",
                    "origin": "org.osbuild.source",
                    "references": references,
                }
            },
            options={"destination": {"type": "containers-storage", "storage-path": _CONTAINERS_STORAGE}},
        )
    )
    return stages


def _fstab_stage(pt: PartitionTable, deployment: Optional[dict[str, Any]] = None) -> Stage:
    filesystems = []
    for _, fs in sorted(pt.filesystems(), key=lambda item: item[1].mountpoint):
        filesystems.append(
            {
                "uuid": fs.uuid,
                "vfs_type": fs.type,
                "path": fs.mountpoint,
                "options": fs.fstab_options,
                "freq": fs.fstab_freq,
                "passno": fs.fstab_passno,
            }
        )
    options: dict[str, Any] = {"filesystems": filesystems}
    if deployment is not None:
        options["ostree"] = {"deployment": deployment}
    return Stage(type="org.osbuild.fstab", options=options)


def _grub2_stage(t: ImageType, pt: PartitionTable, kernel_opts: str) -> Stage:
    by_mountpoint = {fs.mountpoint: fs for _, fs in pt.filesystems()}
    options: dict[str, Any] = {
        "root_fs_uuid": by_mountpoint["/"].uuid,
        "kernel_opts": kernel_opts,
    }
    if "/boot" in by_mountpoint:
        options["boot_fs_uuid"] = by_mountpoint["/boot"].uuid
    if t.boot_type() in ("legacy", "hybrid"):
        options["legacy"] = "i386-pc"
    if t.supports_uefi() and t.platform is not None:
        options["uefi"] = {"vendor": t.platform.uefi_vendor}
    return Stage(type="org.osbuild.grub2", options=options)


def _oscap_stage(customizations: Customizations) -> Optional[Stage]:
    oscap = customizations.openscap
    if oscap is None:
        return None
    return Stage(
        type="org.osbuild.oscap.remediation",
        options={
            "data_dir": "/oscap_data",
            "config": {"datastream": oscap.datastream, "profile_id": oscap.profile_id},
        },
    )


def build_pipeline(
    t: ImageType,
    repos: list[RepoConfig],
    package_specs: dict[str, list[PackageSpec]],
) -> Pipeline:
    pipeline = Pipeline(name="build", runner=t.distro.runner)
    pipeline.add_stage(rpm_stage(package_specs.get(BUILD_PKGS_KEY, []), repos))
    pipeline.add_stage(selinux_stage({"/usr/bin/cp": "system_u:object_r:install_exec_t:s0"}))
    return pipeline


def os_pipeline(
    workload: Workload,
    t: ImageType,
    customizations: Customizations,
    repos: list[RepoConfig],
    package_specs: dict[str, list[PackageSpec]],
    containers: list[ContainerSpec],
    pt: Optional[PartitionTable] = None,
) -> Pipeline:
    pipeline = Pipeline(name="os", build=_BUILD_REF)
    pipeline.add_stage(rpm_stage(package_specs.get(OS_PKGS_KEY, []), repos, ostree_booted=t.rpm_ostree))
    kernel_opts = _kernel_options(t, customizations)
    if t.bootable and not t.rpm_ostree and kernel_opts:
        pipeline.add_stage(
            Stage(
                type="org.osbuild.kernel-cmdline",
                options={"root_fs_uuid": _root_uuid(pt), "kernel_opts": kernel_opts},
            )
        )
    for stage in _config_stages(t, workload, customizations):
        pipeline.add_stage(stage)
    for stage in _container_stages(containers, t.rpm_ostree):
        pipeline.add_stage(stage)
    if pt is not None:
        pipeline.add_stage(_fstab_stage(pt))
        if t.bootable:
            pipeline.add_stage(_grub2_stage(t, pt, kernel_opts))
    pipeline.add_stage(_oscap_stage(customizations))
    pipeline.add_stage(selinux_stage())
    if t.rpm_ostree:
        pipeline.add_stage(
            Stage(type="org.osbuild.ostree.preptree", options={"etc_group_members": ["wheel", "docker"]})
        )
    return pipeline


def _root_uuid(pt: Optional[PartitionTable]) -> str:
    if pt is None:
        return ""
    for _, fs in pt.filesystems():
        if fs.mountpoint == "/":
            return fs.uuid
    return ""


def _partition_device(filename: str, start: int, size: int) -> dict[str, Any]:
    return {
        "type": "org.osbuild.loopback",
        "options": {"filename": filename, "start": start // 512, "size": size // 512},
    }


def _lv_device(parent: str, volume: str) -> dict[str, Any]:
    return {"type": "org.osbuild.lvm2.lv", "parent": parent, "options": {"volume": volume}}


def _mkfs_stage(fs: Filesystem, devices: dict[str, Any]) -> Stage:
    options: dict[str, Any] = {"uuid": fs.uuid}
    if fs.label:
        options["label"] = fs.label
    return Stage(type=f"org.osbuild.mkfs.{fs.type}", options=options, devices=devices)


def _mount(device: str, fs: Filesystem) -> dict[str, Any]:
    return {"name": device, "type": f"org.osbuild.{fs.type}", "source": device, "target": fs.mountpoint}


def image_pipeline(
    t: ImageType,
    pt: PartitionTable,
    tree: str,
    filename: str = "disk.img",
) -> Pipeline:
    """Write *tree* onto a raw disk laid out according to *pt*."""
    pipeline = Pipeline(name="image", build=_BUILD_REF)
    pipeline.add_stage(Stage(type="org.osbuild.truncate", options={"filename": filename, "size": str(pt.size)}))

    devices: dict[str, Any] = {
        "device": {"type": "org.osbuild.loopback", "options": {"filename": filename}}
    }
    partitions = []
    for part in pt.partitions:
        entry: dict[str, Any] = {"start": part.start // 512, "size": part.size // 512, "type": part.type}
        if part.uuid:
            entry["uuid"] = part.uuid
        if part.bootable:
            entry["bootable"] = True
        partitions.append(entry)
    pipeline.add_stage(
        Stage(
            type="org.osbuild.sfdisk",
            options={"label": pt.type, "uuid": pt.uuid, "partitions": partitions},
            devices=devices,
        )
    )

    # every filesystem gets its own named device; logical volumes sit on
    # top of the loopback device of their physical volume
    copy_devices: dict[str, Any] = {}
    mounts: list[dict[str, Any]] = []
    for idx, part in enumerate(pt.partitions):
        part_name = f"part{idx}"
        part_device = _partition_device(filename, part.start, part.size)
        if isinstance(part.payload, LVMVolumeGroup):
            vg = part.payload
            pipeline.add_stage(
                Stage(
                    type="org.osbuild.lvm2.create",
                    options={"volumes": [{"name": lv.name, "size": str(lv.size)} for lv in vg.logical_volumes]},
                    devices={"device": part_device},
                )
            )
            copy_devices[part_name] = part_device
            for lv in vg.logical_volumes:
                pipeline.add_stage(
                    _mkfs_stage(lv.payload, {"parent": part_device, "device": _lv_device("parent", lv.name)})
                )
                copy_devices[lv.name] = _lv_device(part_name, lv.name)
                mounts.append(_mount(lv.name, lv.payload))
        elif isinstance(part.payload, Filesystem):
            pipeline.add_stage(_mkfs_stage(part.payload, {"device": part_device}))
            copy_devices[part_name] = part_device
            mounts.append(_mount(part_name, part.payload))

    mounts.sort(key=lambda m: m["target"])
    pipeline.add_stage(
        Stage(
            type="org.osbuild.copy",
            inputs={"root-tree": _pipeline_input(tree)},
            options={"paths": [{"from": "input://root-tree/", "to": "mount://-/"}]},
            devices=copy_devices,
            mounts=mounts,
        )
    )
    if t.boot_type() in ("legacy", "hybrid") and t.bootable:
        pipeline.add_stage(
            Stage(
                type="org.osbuild.grub2.inst",
                options={"filename": filename, "platform": "i386-pc", "location": _START_SECTOR},
            )
        )
    return pipeline


def _qemu_pipeline(t: ImageType, fmt: dict[str, Any]) -> Pipeline:
    pipeline = Pipeline(name=t.exports[0] if t.exports else "qcow2", build=_BUILD_REF)
    pipeline.add_stage(
        Stage(
            type="org.osbuild.qemu",
            inputs={"image": _file_input("image", "disk.img")},
            options={"filename": t.filename, "format": fmt},
        )
    )
    return pipeline


def _ostree_ref(t: ImageType, options: ImageOptions) -> str:
    return options.ostree.image_ref or t.ostree_ref()


def _osname(t: ImageType) -> str:
    return t.distro.name.split("-")[0]


def _isolabel(t: ImageType) -> str:
    return t.distro.isolabel_tmpl % t.architecture.name


def _commit_input(options: ImageOptions, ref: str) -> dict[str, Any]:
    return {
        "type": "org.osbuild.ostree",
        "origin": "org.osbuild.source",
        "references": {options.ostree.fetch_checksum: {"ref": ref}},
    }


# ---------------------------------------------------------------------------
# Image families
# ---------------------------------------------------------------------------


def disk_image_pipelines(
    workload: Workload,
    t: ImageType,
    customizations: Customizations,
    options: ImageOptions,
    repos: list[RepoConfig],
    package_specs: dict[str, list[PackageSpec]],
    containers: list[ContainerSpec],
    rng: random.Random,
) -> list[Pipeline]:
    """Partitioned disk images converted by qemu-img (qcow2, vhd)."""
    pt = t.partition_table(customizations.filesystem, options, rng)
    fmt: dict[str, Any] = {"type": "qcow2", "compat": "1.1"}
    if t.name == "vhd":
        fmt = {"type": "vpc", "force_size": True}
    return [
        build_pipeline(t, repos, package_specs),
        os_pipeline(workload, t, customizations, repos, package_specs, containers, pt),
        image_pipeline(t, pt, "os"),
        _qemu_pipeline(t, fmt),
    ]


def tar_pipelines(
    workload: Workload,
    t: ImageType,
    customizations: Customizations,
    options: ImageOptions,
    repos: list[RepoConfig],
    package_specs: dict[str, list[PackageSpec]],
    containers: list[ContainerSpec],
    rng: random.Random,
) -> list[Pipeline]:
    archive = Pipeline(name="archive", build=_BUILD_REF)
    archive.add_stage(
        Stage(type="org.osbuild.tar", inputs={"tree": _pipeline_input("os")}, options={"filename": t.filename})
    )
    return [
        build_pipeline(t, repos, package_specs),
        os_pipeline(workload, t, customizations, repos, package_specs, containers),
        archive,
    ]


def _ostree_commit_pipeline(t: ImageType, options: ImageOptions) -> Pipeline:
    commit_options: dict[str, Any] = {"ref": _ostree_ref(t, options), "os_version": t.distro.os_version}
    if options.ostree.fetch_checksum:
        commit_options["parent"] = options.ostree.fetch_checksum
    pipeline = Pipeline(name="ostree-commit", build=_BUILD_REF)
    pipeline.add_stage(Stage(type="org.osbuild.ostree.init", options={"path": "/repo"}))
    pipeline.add_stage(
        Stage(type="org.osbuild.ostree.commit", inputs={"tree": _pipeline_input("os")}, options=commit_options)
    )
    return pipeline


def edge_commit_pipelines(
    workload: Workload,
    t: ImageType,
    customizations: Customizations,
    options: ImageOptions,
    repos: list[RepoConfig],
    package_specs: dict[str, list[PackageSpec]],
    containers: list[ContainerSpec],
    rng: random.Random,
) -> list[Pipeline]:
    archive = Pipeline(name="commit-archive", build=_BUILD_REF)
    archive.add_stage(
        Stage(
            type="org.osbuild.tar",
            inputs={"tree": _pipeline_input("ostree-commit")},
            options={"filename": t.filename},
        )
    )
    return [
        build_pipeline(t, repos, package_specs),
        os_pipeline(workload, t, customizations, repos, package_specs, containers),
        _ostree_commit_pipeline(t, options),
        archive,
    ]


def edge_container_pipelines(
    workload: Workload,
    t: ImageType,
    customizations: Customizations,
    options: ImageOptions,
    repos: list[RepoConfig],
    package_specs: dict[str, list[PackageSpec]],
    containers: list[ContainerSpec],
    rng: random.Random,
) -> list[Pipeline]:
    ref = _ostree_ref(t, options)
    tree = Pipeline(name="container-tree", build=_BUILD_REF)
    tree.add_stage(rpm_stage(package_specs.get(CONTAINER_PKGS_KEY, []), repos))
    tree.add_stage(Stage(type="org.osbuild.ostree.init", options={"path": "/usr/share/nginx/html/repo"}))
    tree.add_stage(
        Stage(
            type="org.osbuild.ostree.pull",
            inputs={
                "commits": {
                    "type": "org.osbuild.ostree",
                    "origin": "org.osbuild.pipeline",
                    "references": {"name:ostree-commit": {"ref": ref}},
                }
            },
            options={"repo": "/usr/share/nginx/html/repo"},
        )
    )
    tree.add_stage(
        Stage(
            type="org.osbuild.nginx.conf",
            options={"path": "/etc/nginx.conf", "config": {"listen": "8080", "root": "/usr/share/nginx/html"}},
        )
    )

    container = Pipeline(name="container", build=_BUILD_REF)
    container.add_stage(
        Stage(
            type="org.osbuild.oci-archive",
            inputs={"base": _pipeline_input("container-tree")},
            options={
                "filename": t.filename,
                "architecture": _GOARCH.get(t.architecture.name, t.architecture.name),
                "config": {"Cmd": ["nginx", "-c", "/etc/nginx.conf"], "ExposedPorts": ["8080"]},
            },
        )
    )
    return [
        build_pipeline(t, repos, package_specs),
        os_pipeline(workload, t, customizations, repos, package_specs, containers),
        _ostree_commit_pipeline(t, options),
        tree,
        container,
    ]


def _anaconda_tree(
    t: ImageType,
    repos: list[RepoConfig],
    package_specs: dict[str, list[PackageSpec]],
    name: str = "anaconda-tree",
) -> Pipeline:
    pipeline = Pipeline(name=name, build=_BUILD_REF)
    pipeline.add_stage(rpm_stage(package_specs.get(INSTALLER_PKGS_KEY, []), repos))
    pipeline.add_stage(
        Stage(
            type="org.osbuild.buildstamp",
            options={
                "arch": t.architecture.name,
                "product": t.distro.product,
                "version": t.distro.os_version,
                "variant": "edge",
                "final": True,
            },
        )
    )
    pipeline.add_stage(Stage(type="org.osbuild.locale", options={"language": "en_US.UTF-8"}))
    pipeline.add_stage(
        Stage(
            type="org.osbuild.dracut",
            options={"kernel": [], "add_modules": ["anaconda", "rdma", "rngd", "multipath", "fcoe", "fips", "lvm", "ifcfg"]},
        )
    )
    pipeline.add_stage(selinux_stage())
    return pipeline


def _bootiso_pipeline(t: ImageType, tree: str) -> Pipeline:
    pipeline = Pipeline(name="bootiso", build=_BUILD_REF)
    pipeline.add_stage(
        Stage(
            type="org.osbuild.xorrisofs",
            inputs={"tree": _pipeline_input(tree)},
            options={
                "filename": t.filename,
                "volid": _isolabel(t),
                "sysid": "LINUX",
                "boot": {"image": "isolinux/isolinux.bin", "catalog": "isolinux/boot.cat"},
                "efi": "images/efiboot.img",
                "isohybridmbr": "/usr/share/syslinux/isohdpfx.bin",
                "isolevel": 3,
            },
        )
    )
    pipeline.add_stage(Stage(type="org.osbuild.implantisomd5", options={"filename": t.filename}))
    return pipeline


def _bootiso_tree_stages(t: ImageType, rootfs: str, kernel_opts: list[str]) -> list[Stage]:
    return [
        Stage(
            type="org.osbuild.bootiso.mono",
            inputs={"rootfs": _pipeline_input(rootfs)},
            options={
                "product": {"name": t.distro.product, "version": t.distro.os_version},
                "isolabel": _isolabel(t),
                "kernel": "kernel",
                "kernel_opts": " ".join(kernel_opts),
                "efi": {"architectures": [t.architecture.name.upper()], "vendor": _vendor(t)},
            },
        ),
        Stage(
            type="org.osbuild.discinfo",
            options={"basearch": t.architecture.name, "release": f"{t.distro.product} {t.distro.os_version}"},
        ),
    ]


def _vendor(t: ImageType) -> str:
    return t.platform.uefi_vendor if t.platform is not None else ""


def edge_installer_pipelines(
    workload: Workload,
    t: ImageType,
    customizations: Customizations,
    options: ImageOptions,
    repos: list[RepoConfig],
    package_specs: dict[str, list[PackageSpec]],
    containers: list[ContainerSpec],
    rng: random.Random,
) -> list[Pipeline]:
    """Anaconda boot ISO that installs the fetched ostree commit."""
    ref = _ostree_ref(t, options)
    tree = Pipeline(name="bootiso-tree", build=_BUILD_REF)
    for stage in _bootiso_tree_stages(t, "anaconda-tree", [f"inst.ks=hd:LABEL={_isolabel(t)}:/osbuild.ks"]):
        tree.add_stage(stage)
    tree.add_stage(Stage(type="org.osbuild.ostree.init", options={"path": "/ostree/repo"}))
    tree.add_stage(
        Stage(type="org.osbuild.ostree.pull", inputs={"commits": _commit_input(options, ref)}, options={"repo": "/ostree/repo"})
    )
    kickstart: dict[str, Any] = {
        "path": "/osbuild.ks",
        "ostree": {"osname": _osname(t), "url": "file:///run/install/repo/ostree/repo", "ref": ref, "gpg": False},
    }
    if customizations.user:
        kickstart["users"] = {
            u.name: u.model_dump(exclude={"name"}, exclude_none=True, exclude_defaults=True)
            for u in customizations.user
        }
    if customizations.group:
        kickstart["groups"] = {
            g.name: ({"gid": g.gid} if g.gid is not None else {}) for g in customizations.group
        }
    tree.add_stage(Stage(type="org.osbuild.kickstart", options=kickstart))
    return [
        build_pipeline(t, repos, package_specs),
        _anaconda_tree(t, repos, package_specs),
        tree,
        _bootiso_pipeline(t, "bootiso-tree"),
    ]


def _ostree_deployment_pipeline(
    t: ImageType,
    customizations: Customizations,
    options: ImageOptions,
    pt: PartitionTable,
) -> Pipeline:
    ref = _ostree_ref(t, options)
    osname = _osname(t)
    kernel_opts = [o for o in _kernel_options(t, customizations).split() if o]
    kernel_opts.append(f"root=UUID={_root_uuid(pt)}")

    pipeline = Pipeline(name="ostree-deployment", build=_BUILD_REF)
    pipeline.add_stage(Stage(type="org.osbuild.ostree.init-fs"))
    pipeline.add_stage(
        Stage(type="org.osbuild.ostree.pull", inputs={"commits": _commit_input(options, ref)}, options={"repo": "/ostree/repo"})
    )
    pipeline.add_stage(Stage(type="org.osbuild.ostree.os-init", options={"osname": osname}))
    pipeline.add_stage(
        Stage(type="org.osbuild.ostree.config", options={"repo": "/ostree/repo", "config": {"sysroot": {"readonly": True}}})
    )
    deployment = {"osname": osname, "ref": ref, "serial": 0}
    pipeline.add_stage(
        Stage(
            type="org.osbuild.ostree.deploy",
            options={"osname": osname, "ref": ref, "mounts": ["/boot", "/boot/efi"], "rootfs": {"label": "root"}, "kernel_opts": kernel_opts},
        )
    )
    pipeline.add_stage(Stage(type="org.osbuild.ostree.fillvar", options={"deployment": deployment}))
    pipeline.add_stage(_fstab_stage(pt, deployment))
    pipeline.add_stage(_grub2_stage(t, pt, " ".join(kernel_opts)))
    pipeline.add_stage(Stage(type="org.osbuild.ostree.selinux", options={"deployment": deployment}))
    return pipeline


def _xz_pipeline(t: ImageType, filename: str) -> Pipeline:
    pipeline = Pipeline(name="xz", build=_BUILD_REF)
    pipeline.add_stage(
        Stage(type="org.osbuild.xz", inputs={"file": _file_input("image", "image.raw")}, options={"filename": filename})
    )
    return pipeline


def edge_raw_image_pipelines(
    workload: Workload,
    t: ImageType,
    customizations: Customizations,
    options: ImageOptions,
    repos: list[RepoConfig],
    package_specs: dict[str, list[PackageSpec]],
    containers: list[ContainerSpec],
    rng: random.Random,
) -> list[Pipeline]:
    pt = t.partition_table(customizations.filesystem, options, rng)
    return [
        build_pipeline(t, repos, package_specs),
        _ostree_deployment_pipeline(t, customizations, options, pt),
        image_pipeline(t, pt, "ostree-deployment", filename="image.raw"),
        _xz_pipeline(t, t.filename),
    ]


def edge_simplified_installer_pipelines(
    workload: Workload,
    t: ImageType,
    customizations: Customizations,
    options: ImageOptions,
    repos: list[RepoConfig],
    package_specs: dict[str, list[PackageSpec]],
    containers: list[ContainerSpec],
    rng: random.Random,
) -> list[Pipeline]:
    """coreos-installer ISO writing a raw ostree image to the installation device."""
    pt = t.partition_table(None, options, rng)
    raw_name = "image.raw.xz"

    kernel_opts = [
        f"coreos.inst.install_dev={customizations.installation_device}",
        f"coreos.inst.image_file=/run/media/iso/{raw_name}",
        "coreos.inst.insecure",
    ]
    fdo = customizations.fdo
    if fdo is not None:
        kernel_opts.append(f"fdo.manufacturing_server_url={fdo.manufacturing_server_url}")
        if fdo.diun_pub_key_insecure:
            kernel_opts.append("fdo.diun_pub_key_insecure=true")
        if fdo.diun_pub_key_hash:
            kernel_opts.append(f"fdo.diun_pub_key_hash={fdo.diun_pub_key_hash}")
        if fdo.diun_pub_key_root_certs:
            kernel_opts.append("fdo.diun_pub_key_root_certs=/fdo_diun_pub_key_root_certs.pem")

    installer_tree = _anaconda_tree(t, repos, package_specs, name="coreos-installer")

    tree = Pipeline(name="bootiso-tree", build=_BUILD_REF)
    for stage in _bootiso_tree_stages(t, "coreos-installer", kernel_opts):
        tree.add_stage(stage)
    tree.add_stage(
        Stage(
            type="org.osbuild.copy",
            inputs={"file": _file_input("xz", raw_name)},
            options={"paths": [{"from": f"input://file/{raw_name}", "to": f"tree:///{raw_name}"}]},
        )
    )
    if fdo is not None and fdo.diun_pub_key_root_certs:
        tree.add_stage(
            Stage(
                type="org.osbuild.fdo",
                inputs={
                    "rootcerts": {
                        "type": "org.osbuild.files",
                        "origin": "org.osbuild.source",
                        "references": {inline_id(fdo.diun_pub_key_root_certs): {}},
                    }
                },
            )
        )

    return [
        build_pipeline(t, repos, package_specs),
        _ostree_deployment_pipeline(t, customizations, options, pt),
        image_pipeline(t, pt, "ostree-deployment", filename="image.raw"),
        _xz_pipeline(t, raw_name),
        installer_tree,
        tree,
        _bootiso_pipeline(t, "bootiso-tree"),
    ]
