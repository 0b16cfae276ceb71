"""Tests for aumai_imagecompose.registry and the static catalog."""

from __future__ import annotations

import random
from typing import Any

import pytest

from aumai_imagecompose.disk import GIBIBYTE, MEBIBYTE
from aumai_imagecompose.errors import CatalogError, NotFoundError, UnknownArchitectureError
from aumai_imagecompose.models import ImageOptions, PackageSet
from aumai_imagecompose.registry import (
    BUILD_PKGS_KEY,
    OS_PKGS_KEY,
    Architecture,
    Distribution,
    ImageType,
    Platform,
    Registry,
)


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _no_pipelines(*args: Any) -> list[Any]:
    return []


def _build_set(t: ImageType) -> PackageSet:
    return PackageSet(include=["rpm"])


def _template(name: str, **kwargs: Any) -> ImageType:
    kwargs.setdefault("package_sets", {BUILD_PKGS_KEY: _build_set})
    return ImageType(
        name=name,
        filename="out.img",
        mime_type="application/octet-stream",
        pipelines=_no_pipelines,
        **kwargs,
    )


def _distro(name: str = "testos-1") -> Distribution:
    return Distribution(
        name=name,
        product="TestOS",
        os_version="1",
        release_version="1",
        module_platform_id="platform:t1",
        ostree_ref_tmpl="testos/1/%s/edge",
        isolabel_tmpl="TestOS-1-%s",
        runner="org.osbuild.testos1",
    )


def _arch() -> Architecture:
    return _distro().add_arch("x86_64")


_PLATFORM = Platform(arch="x86_64", bios=True, uefi_vendor="testos")


# ---------------------------------------------------------------------------
# Listing and lookup
# ---------------------------------------------------------------------------


class TestRegistryLookup:
    def test_list_distros_sorted(self, registry: Registry) -> None:
        assert registry.list_distros() == ["centos-8", "rhel-86", "rhel-87", "scos-oe-1", "scos-rocky-8"]

    def test_list_arches_sorted(self, registry: Registry) -> None:
        assert registry.get_distro("rhel-87").list_arches() == ["aarch64", "x86_64"]

    def test_list_image_types_sorted(self, registry: Registry) -> None:
        names = registry.get_distro("rhel-87").get_arch("x86_64").list_image_types()
        assert names == sorted(names)
        assert names == [
            "edge-commit",
            "edge-container",
            "edge-installer",
            "edge-raw-image",
            "edge-simplified-installer",
            "qcow2",
            "tar",
            "vhd",
        ]

    def test_scos_image_types(self, registry: Registry) -> None:
        arch = registry.get_distro("scos-rocky-8").get_arch("aarch64")
        assert arch.list_image_types() == ["ostree-commit", "ostree-container"]
        assert arch.get_image_type("scos-rocky-commit").name == "ostree-commit"

    def test_alias_returns_same_object(self, registry: Registry) -> None:
        arch = registry.get_distro("rhel-87").get_arch("x86_64")
        assert arch.get_image_type("rhel-edge-commit") is arch.get_image_type("edge-commit")

    def test_resolve_by_alias(self, registry: Registry) -> None:
        it = registry.resolve("centos-8", "aarch64", "rhel-edge-installer")
        assert it.name == "edge-installer"
        assert it.architecture.name == "aarch64"
        assert it.distro.name == "centos-8"

    @pytest.mark.parametrize(
        "distro, arch, image_type, kind",
        [
            ("fedora-99", "x86_64", "qcow2", "distribution"),
            ("rhel-87", "s390x", "qcow2", "architecture"),
            ("rhel-87", "x86_64", "ami", "image type"),
        ],
    )
    def test_unknown_names(self, registry: Registry, distro: str, arch: str, image_type: str, kind: str) -> None:
        with pytest.raises(NotFoundError, match=f"invalid {kind}") as excinfo:
            registry.resolve(distro, arch, image_type)
        assert excinfo.value.kind == kind

    def test_not_found_is_lookup_error(self, registry: Registry) -> None:
        with pytest.raises(LookupError):
            registry.get_distro("nope")

    def test_catalog_surface(self, registry: Registry) -> None:
        catalog = registry.catalog()
        assert list(catalog) == registry.list_distros()
        rhel = catalog["rhel-87"]["x86_64"]
        assert "qcow2" in rhel["image_types"]
        assert rhel["aliases"]["rhel-edge-container"] == "edge-container"

    def test_duplicate_distro_rejected(self) -> None:
        with pytest.raises(CatalogError):
            Registry([_distro(), _distro()])


# ---------------------------------------------------------------------------
# Registration
# ---------------------------------------------------------------------------


class TestRegistration:
    def test_private_copy_per_architecture(self, registry: Registry) -> None:
        x86 = registry.resolve("rhel-87", "x86_64", "qcow2")
        arm = registry.resolve("rhel-87", "aarch64", "qcow2")
        assert x86 is not arm
        assert x86.architecture.name == "x86_64"
        assert arm.architecture.name == "aarch64"

    def test_template_is_not_bound(self) -> None:
        template = _template("raw")
        arch = _arch()
        arch.add_image_types(_PLATFORM, template)
        assert template.arch is None
        assert arch.get_image_type("raw").arch is arch
        assert arch.get_image_type("raw").platform == _PLATFORM

    def test_unbound_image_type_has_no_architecture(self) -> None:
        with pytest.raises(CatalogError):
            _ = _template("raw").architecture

    def test_missing_build_package_set(self) -> None:
        with pytest.raises(CatalogError, match="no 'build' package set"):
            _arch().add_image_types(_PLATFORM, _template("raw", package_sets={}))

    def test_chain_with_unknown_set(self) -> None:
        template = _template("raw", package_set_chains={OS_PKGS_KEY: [OS_PKGS_KEY, "payload"]})
        with pytest.raises(CatalogError, match="payload"):
            _arch().add_image_types(_PLATFORM, template)

    def test_chain_with_implicit_sets(self) -> None:
        template = _template("raw", package_set_chains={OS_PKGS_KEY: [OS_PKGS_KEY, "blueprint"]})
        _arch().add_image_types(_PLATFORM, template)

    def test_duplicate_image_type(self) -> None:
        arch = _arch()
        arch.add_image_types(_PLATFORM, _template("raw"))
        with pytest.raises(CatalogError, match="already defined"):
            arch.add_image_types(_PLATFORM, _template("raw"))

    def test_duplicate_alias(self) -> None:
        arch = _arch()
        arch.add_image_types(_PLATFORM, _template("raw", name_aliases=["disk"]))
        with pytest.raises(CatalogError, match="already defined for another image type 'raw'"):
            arch.add_image_types(_PLATFORM, _template("img", name_aliases=["disk"]))

    def test_alias_colliding_with_canonical_name(self) -> None:
        arch = _arch()
        arch.add_image_types(_PLATFORM, _template("raw"))
        with pytest.raises(CatalogError, match="canonical"):
            arch.add_image_types(_PLATFORM, _template("img", name_aliases=["raw"]))

    def test_canonical_name_colliding_with_alias(self) -> None:
        arch = _arch()
        arch.add_image_types(_PLATFORM, _template("raw", name_aliases=["img"]))
        with pytest.raises(CatalogError, match="collides with an alias"):
            arch.add_image_types(_PLATFORM, _template("img"))

    def test_dangling_alias_is_catalog_defect(self) -> None:
        arch = _arch()
        arch.image_type_aliases["ghost"] = "missing"
        with pytest.raises(CatalogError, match="non-existing image type 'missing'"):
            arch.get_image_type("ghost")

    def test_duplicate_arch(self) -> None:
        distro = _distro()
        distro.add_arch("x86_64")
        with pytest.raises(CatalogError):
            distro.add_arch("x86_64")


# ---------------------------------------------------------------------------
# ImageType helpers
# ---------------------------------------------------------------------------


class TestImageTypeHelpers:
    def test_vhd_rounds_up_to_mebibyte(self, vhd: ImageType) -> None:
        assert vhd.size(1) == MEBIBYTE
        assert vhd.size(MEBIBYTE + 1) == 2 * MEBIBYTE

    def test_vhd_exact_mebibyte_unchanged(self, vhd: ImageType) -> None:
        assert vhd.size(5 * MEBIBYTE) == 5 * MEBIBYTE

    def test_default_size(self, vhd: ImageType, qcow2: ImageType) -> None:
        assert vhd.size(0) == 4 * GIBIBYTE
        assert qcow2.size(0) == 10 * GIBIBYTE

    def test_other_formats_not_rounded(self, qcow2: ImageType) -> None:
        assert qcow2.size(1) == 1

    def test_ostree_ref(self, edge_commit: ImageType, qcow2: ImageType) -> None:
        assert edge_commit.ostree_ref() == "rhel/8/x86_64/edge"
        assert qcow2.ostree_ref() == ""

    def test_exports(self, qcow2: ImageType) -> None:
        assert qcow2.get_exports() == ["qcow2"]
        assert _template("raw").get_exports() == ["assembler"]

    def test_payload_package_sets(self, qcow2: ImageType) -> None:
        assert qcow2.payload_package_sets() == ["blueprint"]

    def test_boot_types(self, registry: Registry, simplified_installer: ImageType) -> None:
        assert registry.resolve("rhel-87", "x86_64", "qcow2").boot_type() == "hybrid"
        assert registry.resolve("rhel-87", "aarch64", "qcow2").boot_type() == "uefi"
        assert simplified_installer.boot_type() == "uefi"
        assert simplified_installer.supports_uefi()

    def test_platform_boot_type(self) -> None:
        assert Platform(arch="x86_64", bios=True).boot_type == "legacy"

    def test_default_config_inherits_from_distro(self, qcow2: ImageType, vhd: ImageType) -> None:
        config = qcow2.default_config()
        assert config.timezone == "UTC"
        assert config.locale == "en_US.UTF-8"
        assert config.default_target == "multi-user.target"
        assert vhd.default_config().enabled_services == ["sshd", "waagent"]

    def test_partition_type(self, qcow2: ImageType, tar: ImageType) -> None:
        assert qcow2.partition_type() == "gpt"
        assert tar.partition_type() == ""

    def test_missing_base_partition_table(self, tar: ImageType) -> None:
        with pytest.raises(UnknownArchitectureError, match="unknown arch: x86_64"):
            tar.partition_table(None, ImageOptions(), random.Random(0))

    def test_rhel_distro(self, registry: Registry) -> None:
        assert registry.get_distro("rhel-86").is_rhel()
        assert not registry.get_distro("centos-8").is_rhel()
