"""Exception hierarchy for aumai-imagecompose."""

from __future__ import annotations

__all__ = [
    "CatalogError",
    "ConfigError",
    "DepsolveError",
    "ImageComposeError",
    "NotFoundError",
    "OptionsError",
    "UnknownArchitectureError",
]


class ImageComposeError(Exception):
    """Base class for every error raised by aumai-imagecompose."""


class CatalogError(ImageComposeError):
    """
    The static distro catalog is inconsistent.

    Raised while the registry is being built (duplicate alias, missing
    ``build`` package set, ...).  It indicates a defect in the catalog, never
    bad user input, and callers should refuse to start.
    """


class NotFoundError(ImageComposeError, LookupError):
    """A distro, architecture or image type name is not registered."""

    def __init__(self, kind: str, name: str) -> None:
        self.kind = kind
        self.name = name
        super().__init__(f"invalid {kind}: {name}")


class UnknownArchitectureError(ImageComposeError):
    """No base partition table exists for the requested architecture."""

    def __init__(self, arch: str) -> None:
        self.arch = arch
        super().__init__(f"unknown arch: {arch}")


class OptionsError(ImageComposeError, ValueError):
    """Customizations or image options are incompatible with the image type."""


class DepsolveError(ImageComposeError):
    """The external depsolve job failed or returned an incomplete result."""


class ConfigError(ImageComposeError, ValueError):
    """A request file could not be read or validated."""
