"""Tests for aumai_imagecompose CLI."""

from __future__ import annotations

import json
from pathlib import Path

from click.testing import CliRunner

from aumai_imagecompose.cli import main


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _options_file(tmp_path: Path) -> Path:
    path = tmp_path / "options.yaml"
    path.write_text(
        "ostree:\n  fetch_checksum: b5ad6f8d\n  url: https://ostree.example.com/repo\n",
        encoding="utf-8",
    )
    return path


_QCOW2 = ["--distro", "rhel-87", "--arch", "x86_64", "--image-type", "qcow2"]


# ---------------------------------------------------------------------------
# Version
# ---------------------------------------------------------------------------


class TestVersionFlag:
    def test_version_exits_zero(self) -> None:
        runner = CliRunner()
        result = runner.invoke(main, ["--version"])
        assert result.exit_code == 0
        assert "0.1.0" in result.output


# ---------------------------------------------------------------------------
# Catalog commands
# ---------------------------------------------------------------------------


class TestCatalogCommands:
    def test_list_distros(self) -> None:
        result = CliRunner().invoke(main, ["list-distros"])
        assert result.exit_code == 0, result.output
        assert result.output.split() == ["centos-8", "rhel-86", "rhel-87", "scos-oe-1", "scos-rocky-8"]

    def test_list_arches(self) -> None:
        result = CliRunner().invoke(main, ["list-arches", "--distro", "rhel-87"])
        assert result.exit_code == 0, result.output
        assert result.output.split() == ["aarch64", "x86_64"]

    def test_list_arches_unknown_distro(self) -> None:
        result = CliRunner().invoke(main, ["list-arches", "--distro", "fedora-99"])
        assert result.exit_code == 1
        assert "Error: invalid distribution: fedora-99" in result.output

    def test_list_image_types_shows_aliases(self) -> None:
        result = CliRunner().invoke(main, ["list-image-types", "--distro", "rhel-87", "--arch", "x86_64"])
        assert result.exit_code == 0, result.output
        assert "qcow2" in result.output
        assert "(aliases: rhel-edge-commit)" in result.output

    def test_list_image_types_json(self) -> None:
        result = CliRunner().invoke(
            main, ["list-image-types", "--distro", "scos-oe-1", "--arch", "aarch64", "--json"]
        )
        assert result.exit_code == 0, result.output
        data = json.loads(result.output)
        assert data["image_types"] == ["ostree-commit", "ostree-container"]
        assert data["aliases"]["scos-oe-commit"] == "ostree-commit"

    def test_list_image_types_unknown_arch(self) -> None:
        result = CliRunner().invoke(main, ["list-image-types", "--distro", "rhel-87", "--arch", "s390x"])
        assert result.exit_code == 1
        assert "invalid architecture: s390x" in result.output


# ---------------------------------------------------------------------------
# package-sets command
# ---------------------------------------------------------------------------


class TestPackageSetsCommand:
    def test_prints_depsolve_job(self, blueprint_file: Path) -> None:
        result = CliRunner().invoke(main, ["package-sets", *_QCOW2, "--blueprint", str(blueprint_file)])
        assert result.exit_code == 0, result.output
        job = json.loads(result.output)
        assert sorted(job["package_sets"]) == ["build", "os"]
        assert job["package_sets"]["os"][1]["include"] == ["tmux"]
        assert job["module_platform_id"] == "platform:el8"

    def test_invalid_request(self) -> None:
        result = CliRunner().invoke(
            main, ["package-sets", "--distro", "rhel-87", "--arch", "x86_64", "--image-type", "edge-raw-image"]
        )
        assert result.exit_code == 1
        assert "Error: edge raw images require" in result.output


# ---------------------------------------------------------------------------
# compile command
# ---------------------------------------------------------------------------


class TestCompileCommand:
    def test_writes_manifest(self, tmp_path: Path, blueprint_file: Path, packages_file: Path) -> None:
        out = tmp_path / "manifest.json"
        result = CliRunner().invoke(
            main,
            [
                "compile", *_QCOW2,
                "--blueprint", str(blueprint_file),
                "--packages", str(packages_file),
                "--output", str(out),
            ],
        )
        assert result.exit_code == 0, result.output
        assert "Manifest written" in result.output
        assert "Checksum    : sha256:" in result.output
        manifest = json.loads(out.read_text(encoding="utf-8"))
        assert manifest["version"] == "2"
        assert [p["name"] for p in manifest["pipelines"]] == ["build", "os", "image", "qcow2"]
        assert len(manifest["sources"]["org.osbuild.curl"]["items"]) == 5

    def test_same_seed_same_file(self, tmp_path: Path, packages_file: Path) -> None:
        outputs = []
        for name in ("a.json", "b.json"):
            out = tmp_path / name
            result = CliRunner().invoke(
                main,
                ["compile", *_QCOW2, "--seed", "5", "--packages", str(packages_file), "--output", str(out)],
            )
            assert result.exit_code == 0, result.output
            outputs.append(out.read_bytes())
        assert outputs[0] == outputs[1]

    def test_stdout(self, packages_file: Path) -> None:
        result = CliRunner().invoke(main, ["compile", *_QCOW2, "--packages", str(packages_file)])
        assert result.exit_code == 0, result.output
        assert '"version": "2"' in result.output

    def test_edge_commit_with_options(self, tmp_path: Path, packages_file: Path) -> None:
        out = tmp_path / "commit.json"
        result = CliRunner().invoke(
            main,
            [
                "compile",
                "--distro", "rhel-87", "--arch", "x86_64", "--image-type", "rhel-edge-commit",
                "--options", str(_options_file(tmp_path)),
                "--packages", str(packages_file),
                "--output", str(out),
            ],
        )
        assert result.exit_code == 0, result.output
        assert "Image type  : edge-commit" in result.output
        manifest = json.loads(out.read_text(encoding="utf-8"))
        assert "b5ad6f8d" in manifest["sources"]["org.osbuild.ostree"]["items"]

    def test_invalid_options_exit_one(self, tmp_path: Path, packages_file: Path) -> None:
        result = CliRunner().invoke(
            main,
            ["compile", "--distro", "rhel-87", "--arch", "x86_64", "--image-type", "edge-installer",
             "--packages", str(packages_file)],
        )
        assert result.exit_code == 1
        assert "Error:" in result.output

    def test_bad_packages_file(self, tmp_path: Path) -> None:
        bad = tmp_path / "packages.json"
        bad.write_text("{not json", encoding="utf-8")
        result = CliRunner().invoke(main, ["compile", *_QCOW2, "--packages", str(bad)])
        assert result.exit_code == 1
        assert "Error:" in result.output

    def test_packages_required(self) -> None:
        result = CliRunner().invoke(main, ["compile", *_QCOW2])
        assert result.exit_code == 2

    def test_log_dir(self, tmp_path: Path, packages_file: Path) -> None:
        log_dir = tmp_path / "logs"
        out = tmp_path / "manifest.json"
        result = CliRunner().invoke(
            main,
            ["--log-dir", str(log_dir), "compile", *_QCOW2, "--packages", str(packages_file), "--output", str(out)],
        )
        assert result.exit_code == 0, result.output
        logs = list(log_dir.glob("aumai_imagecompose-*.log"))
        assert len(logs) == 1
        assert "compiled rhel-87/x86_64/qcow2" in logs[0].read_text(encoding="utf-8")
