"""Scan report structures."""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any

from vulnscout.types import (
    OS,
    DetectedMisconfiguration,
    DetectedVulnerability,
    Layer,
    Package,
)

SCHEMA_VERSION = 2


class ResultClass(str, Enum):
    OS_PKGS = "os-pkgs"
    LANG_PKGS = "lang-pkgs"
    CONFIG = "config"


@dataclass
class Result:
    """Findings for one scan target."""

    target: str = ""
    vulnerabilities: list[DetectedVulnerability] = field(default_factory=list)
    misconfigurations: list[DetectedMisconfiguration] = field(default_factory=list)
    result_class: ResultClass | None = None
    type: str = ""
    packages: list[Package] = field(default_factory=list)

    def clear_layers(self) -> None:
        """Drop layer information from every package and finding."""
        for item in (*self.packages, *self.vulnerabilities, *self.misconfigurations):
            item.layer = Layer()


@dataclass
class Metadata:
    os: OS | None = None
    image_id: str = ""
    diff_ids: list[str] = field(default_factory=list)
    repo_tags: list[str] = field(default_factory=list)
    repo_digests: list[str] = field(default_factory=list)
    image_config: Any = None


@dataclass
class Report:
    schema_version: int = SCHEMA_VERSION
    artifact_name: str = ""
    artifact_type: str = ""
    metadata: Metadata = field(default_factory=Metadata)
    results: list[Result] = field(default_factory=list)