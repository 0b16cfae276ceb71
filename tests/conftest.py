"""Shared test fixtures for aumai-imagecompose."""

from __future__ import annotations

import hashlib
import json
import logging
from pathlib import Path
from typing import Callable, Iterator

import pytest
import yaml

from aumai_imagecompose.catalog import build_registry
from aumai_imagecompose.log import LOGGER_NAME
from aumai_imagecompose.models import (
    Blueprint,
    PackageSet,
    PackageSpec,
    RepoConfig,
)
from aumai_imagecompose.registry import ImageType, Registry

SpecFactory = Callable[..., PackageSpec]


def make_spec(name: str, arch: str = "x86_64", **kwargs: object) -> PackageSpec:
    fields: dict[str, object] = {
        "name": name,
        "version": "1.0",
        "release": "1.el8",
        "arch": arch,
        "remote_location": f"https://repo.example.com/{arch}/{name}-1.0-1.el8.{arch}.rpm",
        "checksum": "sha256:" + hashlib.sha256(f"{name}.{arch}".encode()).hexdigest(),
    }
    fields.update(kwargs)
    return PackageSpec.model_validate(fields)


class FakeDepsolver:
    """Resolves every included name of a chain to one synthetic package."""

    def __init__(self) -> None:
        self.calls: list[tuple[list[PackageSet], str, str]] = []

    def depsolve(
        self,
        chain: list[PackageSet],
        repos: list[RepoConfig],
        module_platform_id: str,
        arch: str,
        releasever: str,
    ) -> list[PackageSpec]:
        self.calls.append((chain, arch, releasever))
        seen: set[str] = set()
        specs: list[PackageSpec] = []
        for pkg_set in chain:
            for name in pkg_set.include:
                if name in seen:
                    continue
                seen.add(name)
                specs.append(make_spec(name, arch))
        return specs


class FailingDepsolver:
    def depsolve(self, *args: object) -> list[PackageSpec]:
        raise RuntimeError("nothing provides libfoo.so.1 needed by bar-1.0")


@pytest.fixture(autouse=True)
def _reset_logger() -> Iterator[None]:
    """CLI tests install handlers on the package logger; drop them afterwards."""
    yield
    logger = logging.getLogger(LOGGER_NAME)
    for handler in list(logger.handlers):
        handler.close()
    logger.handlers.clear()
    logger.propagate = True


# ---------------------------------------------------------------------------
# Registry fixtures
# ---------------------------------------------------------------------------


@pytest.fixture()
def registry() -> Registry:
    return build_registry()


@pytest.fixture()
def qcow2(registry: Registry) -> ImageType:
    return registry.resolve("rhel-87", "x86_64", "qcow2")


@pytest.fixture()
def vhd(registry: Registry) -> ImageType:
    return registry.resolve("rhel-87", "x86_64", "vhd")


@pytest.fixture()
def tar(registry: Registry) -> ImageType:
    return registry.resolve("rhel-87", "x86_64", "tar")


@pytest.fixture()
def edge_commit(registry: Registry) -> ImageType:
    return registry.resolve("rhel-87", "x86_64", "edge-commit")


@pytest.fixture()
def edge_installer(registry: Registry) -> ImageType:
    return registry.resolve("rhel-87", "x86_64", "edge-installer")


@pytest.fixture()
def simplified_installer(registry: Registry) -> ImageType:
    return registry.resolve("rhel-87", "x86_64", "edge-simplified-installer")


@pytest.fixture()
def edge_raw_image(registry: Registry) -> ImageType:
    return registry.resolve("rhel-87", "x86_64", "edge-raw-image")


# ---------------------------------------------------------------------------
# Request fixtures
# ---------------------------------------------------------------------------


@pytest.fixture()
def empty_blueprint() -> Blueprint:
    return Blueprint()


@pytest.fixture()
def sample_blueprint() -> Blueprint:
    return Blueprint.model_validate(
        {
            "name": "web-server",
            "version": "0.0.1",
            "packages": [{"name": "nginx", "version": "*"}, {"name": "tmux", "version": "3.2"}],
            "groups": ["development"],
            "customizations": {
                "hostname": "web-01",
                "services": {"enabled": ["nginx"], "disabled": ["kdump"]},
            },
        }
    )


@pytest.fixture()
def sample_repos() -> list[RepoConfig]:
    return [
        RepoConfig(name="baseos", baseurl="https://cdn.example.com/rhel8/baseos", gpg_keys=["KEY-A"]),
        RepoConfig(name="appstream", baseurl="https://cdn.example.com/rhel8/appstream", gpg_keys=["KEY-A"]),
        RepoConfig(name="custom", baseurl="https://repo.example.com/custom", package_sets=["blueprint"]),
    ]


@pytest.fixture()
def spec_factory() -> SpecFactory:
    return make_spec


@pytest.fixture()
def package_specs() -> dict[str, list[PackageSpec]]:
    """Resolved specs for a qcow2 request: one chain for build, one for os."""
    return {
        "build": [make_spec("rpm"), make_spec("xfsprogs")],
        "os": [make_spec("bash"), make_spec("kernel", epoch=1), make_spec("nginx")],
    }


@pytest.fixture()
def fake_depsolver() -> FakeDepsolver:
    return FakeDepsolver()


@pytest.fixture()
def failing_depsolver() -> FailingDepsolver:
    return FailingDepsolver()


# ---------------------------------------------------------------------------
# Request files
# ---------------------------------------------------------------------------


@pytest.fixture()
def blueprint_file(tmp_path: Path) -> Path:
    path = tmp_path / "blueprint.yaml"
    path.write_text(
        yaml.safe_dump(
            {
                "name": "base",
                "packages": [{"name": "tmux"}],
                "customizations": {"hostname": "node-1"},
            }
        ),
        encoding="utf-8",
    )
    return path


@pytest.fixture()
def packages_file(tmp_path: Path, package_specs: dict[str, list[PackageSpec]]) -> Path:
    path = tmp_path / "packages.json"
    data = {name: [s.model_dump() for s in specs] for name, specs in package_specs.items()}
    path.write_text(json.dumps(data), encoding="utf-8")
    return path
