"""Formatting of package version strings."""

from __future__ import annotations

from vulnscout.types import Package


def _format(epoch: int, version: str, release: str) -> str:
    text = f"{version}-{release}" if release else version
    return f"{epoch}:{text}" if epoch else text


def format_version(pkg: Package) -> str:
    """Return ``[epoch:]version[-release]`` for the binary package."""
    return _format(pkg.epoch, pkg.version, pkg.release)


def format_src_version(pkg: Package) -> str:
    """Return ``[epoch:]version[-release]`` for the source package."""
    return _format(pkg.src_epoch, pkg.src_version, pkg.src_release)