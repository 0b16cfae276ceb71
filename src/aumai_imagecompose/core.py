"""Core logic for aumai-imagecompose."""

from __future__ import annotations

import logging
import random
from typing import Optional

from pydantic import BaseModel, Field

from .depsolve import (
    DepsolveJob,
    Depsolver,
    check_depsolve_result,
    make_depsolve_job,
    run_depsolve_job,
)
from .errors import DepsolveError
from .log import LOGGER_NAME
from .manifest import (
    RHSM_CONSUMER_SECRETS,
    CommitSpec,
    Manifest,
    gen_sources,
    manifest_checksum,
)
from .models import (
    Blueprint,
    ContainerSpec,
    Customizations,
    ImageOptions,
    PackageSpec,
    RepoConfig,
    Workload,
)
from .packagesets import resolve_package_sets
from .registry import ImageType, Registry
from .validation import check_options

__all__ = [
    "BuildRequest",
    "ComposeRequest",
    "ComposeResult",
    "ImageComposer",
    "compile_manifest",
    "inline_data",
]

log = logging.getLogger(LOGGER_NAME)


class ComposeRequest(BaseModel):
    """Everything needed to compile one manifest."""

    distro: str
    arch: str
    image_type: str
    blueprint: Blueprint = Field(default_factory=Blueprint)
    options: ImageOptions = Field(default_factory=ImageOptions)
    repos: list[RepoConfig] = Field(default_factory=list)
    seed: int = 0


class BuildRequest(BaseModel):
    """Describes a compiled manifest for build orchestration and caching."""

    distro: str
    arch: str
    image_type: str
    blueprint: str
    manifest_checksum: str


class ComposeResult(BaseModel):
    manifest: Manifest
    build_request: BuildRequest


def inline_data(customizations: Customizations) -> list[str]:
    """Blobs the image needs delivered as inline sources."""
    data: list[str] = []
    # FDO root certs are transmitted via an inline source
    fdo = customizations.fdo
    if fdo is not None and fdo.diun_pub_key_root_certs:
        data.append(fdo.diun_pub_key_root_certs)
    return data


def compile_manifest(
    image_type: ImageType,
    blueprint: Blueprint,
    options: ImageOptions,
    repos: list[RepoConfig],
    package_specs: dict[str, list[PackageSpec]],
    containers: list[ContainerSpec],
    seed: int,
) -> Manifest:
    """
    Compile a manifest for *image_type*.

    Options are validated before any pipeline is built; any error aborts
    the compile and no partial manifest is returned.  The same inputs and
    *seed* always produce the same manifest.
    """
    customizations = blueprint.customizations
    check_options(image_type, customizations, options, containers)

    rng = random.Random(seed)
    workload = Workload.from_blueprint(blueprint, repos)
    pipelines = image_type.pipelines(
        workload, image_type, customizations, options, repos, package_specs, containers, rng
    )

    all_specs: list[PackageSpec] = []
    for name in sorted(package_specs):
        all_specs.extend(package_specs[name])

    commits: list[CommitSpec] = []
    ostree = options.ostree
    if ostree.fetch_checksum and ostree.url:
        commits.append(
            CommitSpec(
                checksum=ostree.fetch_checksum,
                url=ostree.url,
                content_url=ostree.content_url,
                secrets=RHSM_CONSUMER_SECRETS if ostree.rhsm else "",
            )
        )

    manifest = Manifest(
        pipelines=pipelines,
        sources=gen_sources(all_specs, commits, inline_data(customizations), containers),
    )
    log.info(
        "compiled %s/%s/%s: %d pipelines, %d packages",
        image_type.distro.name,
        image_type.architecture.name,
        image_type.name,
        len(manifest.pipelines),
        len(all_specs),
    )
    return manifest


class ImageComposer:
    """
    Drives one request end to end: registry lookup, validation, package
    sets, depsolve, and manifest compilation.

    The registry is shared read-only; every call works on its own inputs, so
    one composer can serve concurrent requests.
    """

    def __init__(self, registry: Registry, depsolver: Optional[Depsolver] = None) -> None:
        self.registry = registry
        self.depsolver = depsolver

    def resolve(self, request: ComposeRequest) -> ImageType:
        return self.registry.resolve(request.distro, request.arch, request.image_type)

    def depsolve_job(self, request: ComposeRequest) -> DepsolveJob:
        """Validate *request* and build the job to send to the depsolver."""
        image_type = self.resolve(request)
        check_options(
            image_type,
            request.blueprint.customizations,
            request.options,
            request.blueprint.container_specs(),
        )
        chains = resolve_package_sets(image_type, request.blueprint, request.options, request.repos)
        return make_depsolve_job(image_type, chains, request.repos)

    def compile(
        self,
        request: ComposeRequest,
        package_specs: dict[str, list[PackageSpec]],
        containers: Optional[list[ContainerSpec]] = None,
    ) -> ComposeResult:
        """Compile *request* against already resolved *package_specs*."""
        image_type = self.resolve(request)
        if containers is None:
            containers = request.blueprint.container_specs()
        manifest = compile_manifest(
            image_type,
            request.blueprint,
            request.options,
            request.repos,
            package_specs,
            containers,
            request.seed,
        )
        build_request = BuildRequest(
            distro=image_type.distro.name,
            arch=image_type.architecture.name,
            image_type=image_type.name,
            blueprint=request.blueprint.name,
            manifest_checksum=manifest_checksum(manifest),
        )
        return ComposeResult(manifest=manifest, build_request=build_request)

    def compose(self, request: ComposeRequest) -> ComposeResult:
        """Run the whole request, calling the configured depsolver in between."""
        if self.depsolver is None:
            raise DepsolveError("no depsolver configured")
        job = self.depsolve_job(request)
        log.debug("depsolving %s for %s/%s", ", ".join(job.package_sets), job.arch, job.releasever)
        result = run_depsolve_job(job, self.depsolver)
        package_specs = check_depsolve_result(job, result)
        return self.compile(request, package_specs)
