"""
aumai-imagecompose quickstart — working demo of the catalog, package sets,
depsolve and manifest compilation.

Run directly:

    python examples/quickstart.py

The depsolver here is a stand-in that invents one package per requested
name; a real deployment plugs in a service talking to dnf.
"""

from __future__ import annotations

import hashlib
import json


# ---------------------------------------------------------------------------
# A toy depsolver
# ---------------------------------------------------------------------------

class DemoDepsolver:
    """Resolves every included name to one synthetic package spec."""

    def depsolve(self, chain, repos, module_platform_id, arch, releasever):
        from aumai_imagecompose.models import PackageSpec

        specs = []
        seen = set()
        for pkg_set in chain:
            for name in pkg_set.include:
                if name in seen:
                    continue
                seen.add(name)
                specs.append(
                    PackageSpec(
                        name=name,
                        version="1.0",
                        release=f"1.el{releasever}",
                        arch=arch,
                        remote_location=f"https://repo.example.com/{arch}/{name}.rpm",
                        checksum="sha256:" + hashlib.sha256(name.encode()).hexdigest(),
                    )
                )
        return specs


# ---------------------------------------------------------------------------
# Demo 1: Browse the catalog
# ---------------------------------------------------------------------------

def demo_catalog() -> None:
    """List distributions, architectures and image types."""
    print("\n=== Demo 1: Catalog ===")

    from aumai_imagecompose.catalog import build_registry

    registry = build_registry()
    for distro in registry.list_distros():
        d = registry.get_distro(distro)
        for arch in d.list_arches():
            types = d.get_arch(arch).list_image_types()
            print(f"  {distro:<14} {arch:<8} {', '.join(types)}")


# ---------------------------------------------------------------------------
# Demo 2: Package set chains for a blueprint
# ---------------------------------------------------------------------------

def demo_package_sets() -> None:
    """Show the depsolve job a qcow2 request produces."""
    print("\n=== Demo 2: Package set chains ===")

    from aumai_imagecompose.catalog import build_registry
    from aumai_imagecompose.core import ComposeRequest, ImageComposer
    from aumai_imagecompose.models import Blueprint, RepoConfig

    blueprint = Blueprint.model_validate(
        {
            "name": "web-server",
            "packages": [{"name": "nginx"}],
            "customizations": {"timezone": {"timezone": "Europe/Berlin"}},
        }
    )
    request = ComposeRequest(
        distro="rhel-87",
        arch="x86_64",
        image_type="qcow2",
        blueprint=blueprint,
        repos=[RepoConfig(name="baseos", baseurl="https://cdn.example.com/rhel8/baseos")],
    )
    job = ImageComposer(build_registry()).depsolve_job(request)

    print(f"  Platform   : {job.module_platform_id} ({job.arch}, release {job.releasever})")
    for chain_name, chain in job.package_sets.items():
        print(f"  Chain {chain_name!r}:")
        for pkg_set in chain:
            print(f"    include={pkg_set.include[:6]}{'...' if len(pkg_set.include) > 6 else ''}")


# ---------------------------------------------------------------------------
# Demo 3: Compose a disk image manifest
# ---------------------------------------------------------------------------

def demo_compose() -> None:
    """Run a full request with the toy depsolver."""
    print("\n=== Demo 3: Compose a qcow2 manifest ===")

    from aumai_imagecompose.catalog import build_registry
    from aumai_imagecompose.core import ComposeRequest, ImageComposer
    from aumai_imagecompose.models import Blueprint, Customizations, FilesystemCustomization

    blueprint = Blueprint(
        name="data-node",
        customizations=Customizations(
            hostname="data-01",
            filesystem=[FilesystemCustomization(mountpoint="/data", minsize=20 * 1024**3)],
        ),
    )
    request = ComposeRequest(distro="rhel-87", arch="x86_64", image_type="qcow2", blueprint=blueprint, seed=42)
    result = ImageComposer(build_registry(), depsolver=DemoDepsolver()).compose(request)

    manifest = result.manifest
    print(f"  Version    : {manifest.version}")
    print(f"  Pipelines  : {', '.join(manifest.pipeline_names())}")
    print(f"  Packages   : {len(manifest.sources['org.osbuild.curl']['items'])}")
    print(f"  Checksum   : {result.build_request.manifest_checksum}")


# ---------------------------------------------------------------------------
# Demo 4: An edge installer that is rejected, then accepted
# ---------------------------------------------------------------------------

def demo_validation() -> None:
    """Show the validator refusing an incomplete simplified installer request."""
    print("\n=== Demo 4: Validation ===")

    from aumai_imagecompose.catalog import build_registry
    from aumai_imagecompose.core import ComposeRequest, ImageComposer
    from aumai_imagecompose.errors import OptionsError
    from aumai_imagecompose.models import Blueprint, ImageOptions

    composer = ImageComposer(build_registry(), depsolver=DemoDepsolver())
    request = ComposeRequest(distro="rhel-87", arch="x86_64", image_type="edge-simplified-installer")
    try:
        composer.compose(request)
    except OptionsError as exc:
        print(f"  Rejected : {exc}")

    request = ComposeRequest(
        distro="rhel-87",
        arch="x86_64",
        image_type="edge-simplified-installer",
        blueprint=Blueprint.model_validate(
            {
                "customizations": {
                    "installation_device": "/dev/vda",
                    "fdo": {
                        "manufacturing_server_url": "http://fdo.example.com:8080",
                        "diun_pub_key_insecure": "true",
                    },
                }
            }
        ),
        options=ImageOptions.model_validate(
            {"ostree": {"fetch_checksum": "b5ad6f8d", "url": "https://ostree.example.com/repo"}}
        ),
    )
    result = composer.compose(request)
    print(f"  Accepted : {', '.join(result.manifest.pipeline_names())}")
    print("  Sources  :")
    print("    " + json.dumps(sorted(result.manifest.sources)))


# ---------------------------------------------------------------------------
# Main
# ---------------------------------------------------------------------------

def main() -> None:
    print("aumai-imagecompose quickstart demo")
    print("=" * 40)

    demo_catalog()
    demo_package_sets()
    demo_compose()
    demo_validation()

    print("\n" + "=" * 40)
    print("All demos completed successfully.")


if __name__ == "__main__":
    main()
