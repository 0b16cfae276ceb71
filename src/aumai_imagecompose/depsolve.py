"""Request/result contract of the external depsolve job."""

from __future__ import annotations

import logging
from typing import Protocol

from pydantic import BaseModel, Field

from .errors import DepsolveError
from .log import LOGGER_NAME
from .models import PackageSet, PackageSpec, RepoConfig
from .registry import ImageType

__all__ = [
    "DepsolveJob",
    "DepsolveJobResult",
    "Depsolver",
    "check_depsolve_result",
    "make_depsolve_job",
    "run_depsolve_job",
]

log = logging.getLogger(LOGGER_NAME)


class DepsolveJob(BaseModel):
    """What the compiler asks the depsolve service to resolve."""

    package_sets: dict[str, list[PackageSet]]
    repos: list[RepoConfig] = Field(default_factory=list)
    module_platform_id: str
    arch: str
    releasever: str


class DepsolveJobResult(BaseModel):
    package_specs: dict[str, list[PackageSpec]] = Field(default_factory=dict)
    error: str = ""


class Depsolver(Protocol):
    """Resolves one package set chain into concrete package specs."""

    def depsolve(
        self,
        chain: list[PackageSet],
        repos: list[RepoConfig],
        module_platform_id: str,
        arch: str,
        releasever: str,
    ) -> list[PackageSpec]:
        ...


def make_depsolve_job(
    image_type: ImageType,
    package_sets: dict[str, list[PackageSet]],
    repos: list[RepoConfig],
) -> DepsolveJob:
    distro = image_type.distro
    return DepsolveJob(
        package_sets=package_sets,
        repos=repos,
        module_platform_id=distro.module_platform_id,
        arch=image_type.architecture.name,
        releasever=distro.release_version,
    )


def run_depsolve_job(job: DepsolveJob, solver: Depsolver) -> DepsolveJobResult:
    """
    Worker side of the contract: solve every chain of *job* with *solver*.

    A failure is reported in ``result.error`` rather than raised, and the
    partial result is discarded.
    """
    result = DepsolveJobResult()
    try:
        for name in sorted(job.package_sets):
            result.package_specs[name] = solver.depsolve(
                job.package_sets[name],
                job.repos,
                job.module_platform_id,
                job.arch,
                job.releasever,
            )
    except Exception as exc:  # the job reports every solver failure as a string
        log.warning("depsolve failed: %s", exc)
        return DepsolveJobResult(error=str(exc))
    return result


def check_depsolve_result(job: DepsolveJob, result: DepsolveJobResult) -> dict[str, list[PackageSpec]]:
    """
    Validate *result* against *job*.

    Extra or reordered names are tolerated; a missing requested name or an
    error string raises ``DepsolveError``.  Only requested names are returned.
    """
    if result.error:
        raise DepsolveError(f"depsolve job failed: {result.error}")
    missing = sorted(set(job.package_sets) - set(result.package_specs))
    if missing:
        raise DepsolveError(f"depsolve result is missing package sets: {', '.join(missing)}")
    return {name: result.package_specs[name] for name in sorted(job.package_sets)}
