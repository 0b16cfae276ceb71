"""CLI entry point for aumai-imagecompose."""

from __future__ import annotations

import json
import sys
from pathlib import Path
from typing import Any, Callable, Optional

import click

from .catalog import build_registry
from .config import load_blueprint, load_image_options, load_package_specs, load_repos
from .core import ComposeRequest, ImageComposer
from .errors import ImageComposeError
from .log import init_logging
from .models import Blueprint, ImageOptions


def _fail(exc: Exception) -> None:
    click.echo(f"Error: {exc}", err=True)
    sys.exit(1)


@click.group()
@click.version_option(package_name="aumai-imagecompose")
@click.option("--verbose", "-v", is_flag=True, help="Enable debug logging.")
@click.option(
    "--log-dir",
    type=click.Path(file_okay=False, path_type=Path),
    default=None,
    help="Also write a full debug log to this directory.",
)
def main(verbose: bool, log_dir: Optional[Path]) -> None:
    """AumAI ImageCompose — compile OS image requests into build manifests."""
    init_logging(verbose=verbose, log_dir=log_dir)


@main.command("list-distros")
def list_distros_command() -> None:
    """List supported distributions."""
    for name in build_registry().list_distros():
        click.echo(name)


@main.command("list-arches")
@click.option("--distro", required=True, help="Distribution name.")
def list_arches_command(distro: str) -> None:
    """List the architectures of a distribution."""
    try:
        d = build_registry().get_distro(distro)
    except ImageComposeError as exc:
        _fail(exc)
        return
    for name in d.list_arches():
        click.echo(name)


@main.command("list-image-types")
@click.option("--distro", required=True, help="Distribution name.")
@click.option("--arch", required=True, help="Architecture name.")
@click.option("--json", "as_json", is_flag=True, help="Print types and aliases as JSON.")
def list_image_types_command(distro: str, arch: str, as_json: bool) -> None:
    """List the image types of a distribution/architecture."""
    try:
        a = build_registry().get_distro(distro).get_arch(arch)
    except ImageComposeError as exc:
        _fail(exc)
        return
    if as_json:
        payload = {
            "image_types": a.list_image_types(),
            "aliases": dict(sorted(a.image_type_aliases.items())),
        }
        click.echo(json.dumps(payload, indent=2))
        return
    aliases: dict[str, list[str]] = {}
    for alias, canonical in sorted(a.image_type_aliases.items()):
        aliases.setdefault(canonical, []).append(alias)
    for name in a.list_image_types():
        if name in aliases:
            click.echo(f"{name:<28}  (aliases: {', '.join(aliases[name])})")
        else:
            click.echo(name)


_REQUEST_OPTIONS = [
    click.option("--distro", required=True, help="Distribution name."),
    click.option("--arch", required=True, help="Architecture name."),
    click.option("--image-type", required=True, help="Image type name or alias."),
    click.option(
        "--blueprint",
        "blueprint_path",
        type=click.Path(exists=True, dir_okay=False),
        default=None,
        help="Blueprint file (YAML or JSON).",
    ),
    click.option(
        "--options",
        "options_path",
        type=click.Path(exists=True, dir_okay=False),
        default=None,
        help="Image options file (YAML or JSON).",
    ),
    click.option(
        "--repos",
        "repos_path",
        type=click.Path(exists=True, dir_okay=False),
        default=None,
        help="Repository list file (YAML or JSON).",
    ),
    click.option("--seed", default=0, show_default=True, type=int, help="Seed for reproducible layout."),
]


def _request_options(func: Callable[..., Any]) -> Callable[..., Any]:
    """Options shared by every command that compiles a request."""
    for option in reversed(_REQUEST_OPTIONS):
        func = option(func)
    return func


def _build_request(
    distro: str,
    arch: str,
    image_type: str,
    blueprint_path: Optional[str],
    options_path: Optional[str],
    repos_path: Optional[str],
    seed: int,
) -> ComposeRequest:
    return ComposeRequest(
        distro=distro,
        arch=arch,
        image_type=image_type,
        blueprint=load_blueprint(blueprint_path) if blueprint_path else Blueprint(),
        options=load_image_options(options_path) if options_path else ImageOptions(),
        repos=load_repos(repos_path) if repos_path else [],
        seed=seed,
    )


@main.command("package-sets")
@_request_options
def package_sets_command(**kwargs: Any) -> None:
    """Print the depsolve job (package set chains) for a request as JSON."""
    try:
        request = _build_request(**kwargs)
        job = ImageComposer(build_registry()).depsolve_job(request)
    except ImageComposeError as exc:
        _fail(exc)
        return
    click.echo(job.model_dump_json(indent=2))


@main.command("compile")
@_request_options
@click.option(
    "--packages",
    "packages_path",
    required=True,
    type=click.Path(exists=True, dir_okay=False),
    help="Depsolved package specs (JSON mapping or depsolve job result).",
)
@click.option(
    "--output",
    "output_path",
    type=click.Path(dir_okay=False),
    default=None,
    help="Write the manifest here instead of stdout.",
)
def compile_command(packages_path: str, output_path: Optional[str], **kwargs: Any) -> None:
    """Compile a request and its depsolved packages into a manifest."""
    try:
        request = _build_request(**kwargs)
        package_specs = load_package_specs(packages_path)
        result = ImageComposer(build_registry()).compile(request, package_specs)
    except ImageComposeError as exc:
        _fail(exc)
        return

    manifest_json = result.manifest.to_json(indent=2)
    if output_path is None:
        click.echo(manifest_json)
        return

    Path(output_path).write_text(manifest_json, encoding="utf-8")
    br = result.build_request
    click.echo(f"Manifest written: {output_path}")
    click.echo(f"  Distro      : {br.distro}")
    click.echo(f"  Arch        : {br.arch}")
    click.echo(f"  Image type  : {br.image_type}")
    click.echo(f"  Pipelines   : {', '.join(result.manifest.pipeline_names())}")
    click.echo(f"  Checksum    : {br.manifest_checksum}")


if __name__ == "__main__":
    main()
