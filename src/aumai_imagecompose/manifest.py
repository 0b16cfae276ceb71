"""Manifest wire format: pipelines, stages and sources."""

from __future__ import annotations

import base64
import hashlib
import json
from typing import Any, Optional

from pydantic import BaseModel, Field

from .models import ContainerSpec, PackageSpec

__all__ = [
    "CommitSpec",
    "MANIFEST_VERSION",
    "Manifest",
    "Pipeline",
    "Stage",
    "gen_sources",
    "inline_id",
    "manifest_checksum",
]

MANIFEST_VERSION = "2"

RHSM_CONSUMER_SECRETS = "org.osbuild.rhsm.consumer"


class Stage(BaseModel):
    type: str
    inputs: Optional[dict[str, Any]] = None
    options: Optional[dict[str, Any]] = None
    devices: Optional[dict[str, Any]] = None
    mounts: Optional[list[dict[str, Any]]] = None


class Pipeline(BaseModel):
    name: str
    build: Optional[str] = None       # "name:<pipeline>" of the build root
    runner: Optional[str] = None
    stages: list[Stage] = Field(default_factory=list)

    def add_stage(self, stage: Optional[Stage]) -> None:
        if stage is not None:
            self.stages.append(stage)


class Manifest(BaseModel):
    """The serialized build plan consumed by the build engine."""

    version: str = MANIFEST_VERSION
    pipelines: list[Pipeline] = Field(default_factory=list)
    sources: dict[str, Any] = Field(default_factory=dict)

    def to_dict(self) -> dict[str, Any]:
        return self.model_dump(exclude_none=True)

    def to_json(self, indent: Optional[int] = None) -> str:
        return json.dumps(self.to_dict(), indent=indent)

    def pipeline_names(self) -> list[str]:
        return [p.name for p in self.pipelines]


class CommitSpec(BaseModel):
    """An ostree commit to fetch as a source."""

    checksum: str
    url: str
    content_url: str = ""
    ref: str = ""
    secrets: str = ""


def inline_id(data: str) -> str:
    """Content address of an inline source blob."""
    return "sha256:" + hashlib.sha256(data.encode("utf-8")).hexdigest()


def gen_sources(
    packages: list[PackageSpec],
    commits: list[CommitSpec],
    inline_data: list[str],
    containers: list[ContainerSpec],
) -> dict[str, Any]:
    """
    Build the manifest ``sources`` object.

    Only source types with at least one item appear in the result; items are
    inserted in argument order so output is stable for stable input.
    """
    sources: dict[str, Any] = {}

    if packages:
        curl: dict[str, Any] = {}
        for pkg in packages:
            if pkg.secrets == "org.osbuild.rhsm" or pkg.ignore_ssl:
                item: dict[str, Any] = {"url": pkg.remote_location}
                if pkg.secrets:
                    item["secrets"] = {"name": pkg.secrets}
                if pkg.ignore_ssl:
                    item["insecure"] = True
                curl[pkg.checksum] = item
            else:
                curl[pkg.checksum] = pkg.remote_location
        sources["org.osbuild.curl"] = {"items": curl}

    if commits:
        ostree: dict[str, Any] = {}
        for commit in commits:
            remote: dict[str, Any] = {"url": commit.url}
            if commit.content_url:
                remote["contenturl"] = commit.content_url
            if commit.secrets:
                remote["secrets"] = {"name": commit.secrets}
            ostree[commit.checksum] = {"remote": remote}
        sources["org.osbuild.ostree"] = {"items": ostree}

    if inline_data:
        inline: dict[str, Any] = {}
        for data in inline_data:
            inline[inline_id(data)] = {
                "encoding": "base64",
                "data": base64.b64encode(data.encode("utf-8")).decode("ascii"),
            }
        sources["org.osbuild.inline"] = {"items": inline}

    if containers:
        skopeo: dict[str, Any] = {}
        for c in containers:
            image: dict[str, Any] = {"name": c.source}
            if c.digest:
                image["digest"] = c.digest
            if c.tls_verify is not None:
                image["tls-verify"] = c.tls_verify
            skopeo[c.image_id or c.source] = {"image": image}
        sources["org.osbuild.skopeo"] = {"items": skopeo}

    return sources


def _stage_id(stage: Stage, base: str, build: str) -> str:
    desc: dict[str, Any] = {"type": stage.type}
    if base:
        desc["base"] = base
    if build:
        desc["build"] = build
    if stage.options:
        desc["options"] = stage.options
    if stage.inputs:
        desc["inputs"] = stage.inputs
    if stage.devices:
        desc["devices"] = stage.devices
    if stage.mounts:
        desc["mounts"] = stage.mounts
    blob = json.dumps(desc, sort_keys=True, separators=(",", ":"))
    return hashlib.sha256(blob.encode("utf-8")).hexdigest()


def manifest_checksum(manifest: Manifest) -> str:
    """
    Identity of the manifest's final pipeline.

    Each stage id hashes its type, options and inputs together with the id
    of the stage before it and the id of its build pipeline, so the last
    stage of the last pipeline identifies the whole chain that produced it.
    """
    pipeline_ids: dict[str, str] = {}
    last = ""
    for pipeline in manifest.pipelines:
        build = ""
        if pipeline.build:
            build = pipeline_ids.get(pipeline.build.removeprefix("name:"), "")
        current = ""
        for stage in pipeline.stages:
            current = _stage_id(stage, current, build)
        pipeline_ids[pipeline.name] = current
        last = current
    return "sha256:" + last if last else ""
