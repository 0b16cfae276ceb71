"""Pydantic models for aumai-imagecompose."""

from __future__ import annotations

from typing import Optional

from pydantic import BaseModel, Field

from .errors import OptionsError

__all__ = [
    "Blueprint",
    "ContainerRef",
    "ContainerSpec",
    "Customizations",
    "FDOCustomization",
    "FilesystemCustomization",
    "GroupCustomization",
    "ImageConfig",
    "ImageOptions",
    "KernelCustomization",
    "OSTreeImageOptions",
    "OpenSCAPCustomization",
    "PackageRef",
    "PackageSet",
    "PackageSpec",
    "RepoConfig",
    "ServicesCustomization",
    "UserCustomization",
    "Workload",
]

DEFAULT_KERNEL_NAME = "kernel"


# ---------------------------------------------------------------------------
# Repositories and package sets
# ---------------------------------------------------------------------------


class RepoConfig(BaseModel):
    """A package repository, optionally scoped to named package sets."""

    name: str
    baseurl: str = ""
    metalink: str = ""
    mirrorlist: str = ""
    gpg_keys: list[str] = Field(default_factory=list)
    check_gpg: bool = False
    ignore_ssl: bool = False
    rhsm: bool = False
    # empty means the repository applies to every package set
    package_sets: list[str] = Field(default_factory=list)


class PackageSet(BaseModel):
    """Include/exclude package name lists plus the repositories to use."""

    include: list[str] = Field(default_factory=list)
    exclude: list[str] = Field(default_factory=list)
    repositories: list[RepoConfig] = Field(default_factory=list)

    def append(self, other: PackageSet) -> PackageSet:
        """Return a new set with *other*'s lists concatenated after ours."""
        return PackageSet(
            include=[*self.include, *other.include],
            exclude=[*self.exclude, *other.exclude],
            repositories=[*self.repositories, *other.repositories],
        )


class PackageSpec(BaseModel):
    """A concrete package returned by the depsolver."""

    name: str
    epoch: int = 0
    version: str = ""
    release: str = ""
    arch: str = ""
    remote_location: str = ""
    checksum: str          # e.g. sha256:<hex>
    secrets: str = ""
    check_gpg: bool = False
    ignore_ssl: bool = False

    @property
    def nevra(self) -> str:
        evr = f"{self.version}-{self.release}"
        if self.epoch:
            evr = f"{self.epoch}:{evr}"
        return f"{self.name}-{evr}.{self.arch}"


class ContainerSpec(BaseModel):
    """A container image to embed, carried unchanged into the manifest."""

    source: str
    tls_verify: Optional[bool] = None
    local_name: str = ""
    digest: str = ""
    image_id: str = ""


# ---------------------------------------------------------------------------
# Blueprint
# ---------------------------------------------------------------------------


class PackageRef(BaseModel):
    name: str
    version: str = ""

    def to_name_version(self) -> str:
        if not self.version or self.version == "*":
            return self.name
        return f"{self.name}-{self.version}"


class ContainerRef(BaseModel):
    source: str
    name: str = ""
    tls_verify: Optional[bool] = None


class KernelCustomization(BaseModel):
    name: str = DEFAULT_KERNEL_NAME
    append: str = ""


class TimezoneCustomization(BaseModel):
    timezone: Optional[str] = None
    ntpservers: list[str] = Field(default_factory=list)


class LocaleCustomization(BaseModel):
    languages: list[str] = Field(default_factory=list)
    keyboard: Optional[str] = None


class UserCustomization(BaseModel):
    name: str
    description: Optional[str] = None
    password: Optional[str] = None
    key: Optional[str] = None
    home: Optional[str] = None
    shell: Optional[str] = None
    groups: list[str] = Field(default_factory=list)
    uid: Optional[int] = None
    gid: Optional[int] = None


class GroupCustomization(BaseModel):
    name: str
    gid: Optional[int] = None


class ServicesCustomization(BaseModel):
    enabled: list[str] = Field(default_factory=list)
    disabled: list[str] = Field(default_factory=list)


class FilesystemCustomization(BaseModel):
    mountpoint: str
    minsize: int = 0       # bytes


class FDOCustomization(BaseModel):
    """FIDO device onboarding (ownership voucher) settings."""

    manufacturing_server_url: str = ""
    diun_pub_key_insecure: str = ""
    diun_pub_key_hash: str = ""
    diun_pub_key_root_certs: str = ""


class OpenSCAPCustomization(BaseModel):
    datastream: str = ""
    profile_id: str = ""


class Customizations(BaseModel):
    """User customizations; every field is optional and ``None`` when unset."""

    hostname: Optional[str] = None
    kernel: Optional[KernelCustomization] = None
    timezone: Optional[TimezoneCustomization] = None
    locale: Optional[LocaleCustomization] = None
    user: Optional[list[UserCustomization]] = None
    group: Optional[list[GroupCustomization]] = None
    services: Optional[ServicesCustomization] = None
    filesystem: Optional[list[FilesystemCustomization]] = None
    installation_device: Optional[str] = None
    fdo: Optional[FDOCustomization] = None
    openscap: Optional[OpenSCAPCustomization] = None

    def get_kernel(self) -> KernelCustomization:
        return self.kernel or KernelCustomization()

    def check_allowed(self, *allowed: str) -> None:
        """Raise ``OptionsError`` if a customization outside *allowed* is set."""
        for name in type(self).model_fields:
            if name in allowed:
                continue
            if getattr(self, name) is not None:
                raise OptionsError(f"'{name}' is not allowed")


class Blueprint(BaseModel):
    name: str = ""
    description: str = ""
    version: str = ""
    packages: list[PackageRef] = Field(default_factory=list)
    modules: list[PackageRef] = Field(default_factory=list)
    groups: list[str] = Field(default_factory=list)
    containers: list[ContainerRef] = Field(default_factory=list)
    customizations: Customizations = Field(default_factory=Customizations)

    def get_packages(self) -> list[str]:
        """Package and module names (``name-version``) plus ``@group`` entries."""
        packages = [p.to_name_version() for p in self.packages]
        packages.extend(m.to_name_version() for m in self.modules)
        packages.extend(f"@{g}" for g in self.groups)
        return packages

    def container_specs(self) -> list[ContainerSpec]:
        """Unresolved container specs taken straight from the blueprint."""
        return [
            ContainerSpec(source=c.source, tls_verify=c.tls_verify, local_name=c.name)
            for c in self.containers
        ]


# ---------------------------------------------------------------------------
# Image options and configuration
# ---------------------------------------------------------------------------


class OSTreeImageOptions(BaseModel):
    image_ref: str = ""
    fetch_checksum: str = ""
    url: str = ""
    content_url: str = ""
    rhsm: bool = False


class ImageOptions(BaseModel):
    size: int = 0          # bytes; 0 means the image type default
    ostree: OSTreeImageOptions = Field(default_factory=OSTreeImageOptions)


class ImageConfig(BaseModel):
    """Default OS configuration for a distro or image type."""

    timezone: Optional[str] = None
    locale: Optional[str] = None
    enabled_services: list[str] = Field(default_factory=list)
    disabled_services: list[str] = Field(default_factory=list)
    default_target: Optional[str] = None

    def inherit_from(self, parent: Optional[ImageConfig]) -> ImageConfig:
        """Return a copy where unset fields are taken from *parent*."""
        if parent is None:
            return self.model_copy(deep=True)
        merged = parent.model_copy(deep=True)
        for name in type(self).model_fields:
            value = getattr(self, name)
            if value is not None and value != []:
                setattr(merged, name, value)
        return merged


class Workload(BaseModel):
    """What the image runs: user packages, repositories and services."""

    repos: list[RepoConfig] = Field(default_factory=list)
    packages: list[str] = Field(default_factory=list)
    services: list[str] = Field(default_factory=list)
    disabled_services: list[str] = Field(default_factory=list)

    @classmethod
    def from_blueprint(cls, bp: Blueprint, repos: list[RepoConfig]) -> Workload:
        services = bp.customizations.services or ServicesCustomization()
        return cls(
            repos=repos,
            packages=bp.get_packages(),
            services=services.enabled,
            disabled_services=services.disabled,
        )
