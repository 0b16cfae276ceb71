"""Loading request files (blueprints, image options, repositories)."""

from __future__ import annotations

import logging
import os
from pathlib import Path
from typing import Any, TypeVar

import yaml
from pydantic import BaseModel, TypeAdapter, ValidationError

from .core import ComposeRequest
from .errors import ConfigError
from .log import LOGGER_NAME
from .models import Blueprint, ImageOptions, PackageSpec, RepoConfig

__all__ = [
    "load_blueprint",
    "load_compose_request",
    "load_image_options",
    "load_package_specs",
    "load_repos",
]

log = logging.getLogger(LOGGER_NAME)

_M = TypeVar("_M", bound=BaseModel)


def _load_yaml(path: str | Path) -> Any:
    """Load a YAML (or JSON) file, expanding ${ENV_VAR} references."""
    path = Path(path)
    try:
        raw = path.read_text(encoding="utf-8")
    except OSError as exc:
        raise ConfigError(f"cannot read {path}: {exc}") from exc
    try:
        return yaml.safe_load(os.path.expandvars(raw))
    except yaml.YAMLError as exc:
        raise ConfigError(f"{path} is not valid YAML/JSON: {exc}") from exc


def _validate(model: type[_M], data: Any, path: str | Path) -> _M:
    try:
        return model.model_validate(data or {})
    except ValidationError as exc:
        raise ConfigError(f"invalid {model.__name__} in {path}: {exc}") from exc


def load_blueprint(path: str | Path) -> Blueprint:
    log.debug("loading blueprint from %s", path)
    return _validate(Blueprint, _load_yaml(path), path)


def load_image_options(path: str | Path) -> ImageOptions:
    return _validate(ImageOptions, _load_yaml(path), path)


def load_repos(path: str | Path) -> list[RepoConfig]:
    """A list of repositories, or a mapping with a ``repos`` key."""
    data = _load_yaml(path)
    if isinstance(data, dict):
        data = data.get("repos", [])
    try:
        return TypeAdapter(list[RepoConfig]).validate_python(data or [])
    except ValidationError as exc:
        raise ConfigError(f"invalid repositories in {path}: {exc}") from exc


def load_package_specs(path: str | Path) -> dict[str, list[PackageSpec]]:
    """Depsolved package specs: either a bare mapping or a depsolve job result."""
    data = _load_yaml(path) or {}
    if isinstance(data, dict) and "package_specs" in data:
        if data.get("error"):
            raise ConfigError(f"{path} holds a failed depsolve result: {data['error']}")
        data = data["package_specs"]
    try:
        return TypeAdapter(dict[str, list[PackageSpec]]).validate_python(data)
    except ValidationError as exc:
        raise ConfigError(f"invalid package specs in {path}: {exc}") from exc


def load_compose_request(path: str | Path) -> ComposeRequest:
    return _validate(ComposeRequest, _load_yaml(path), path)
