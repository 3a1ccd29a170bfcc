"""Artifact scanning: inspect an artifact, then hand it to a scan driver."""

from __future__ import annotations

import logging
from typing import Protocol

from vulnscout.report import SCHEMA_VERSION, Metadata, Report, Result
from vulnscout.types import (
    ARTIFACT_CONTAINER_IMAGE,
    OS,
    ArtifactReference,
    ScanOptions,
)

logger = logging.getLogger(__name__)


class Driver(Protocol):
    """Something that scans an inspected artifact and returns its findings."""

    def scan(
        self,
        target: str,
        artifact_key: str,
        blob_keys: list[str],
        options: ScanOptions,
    ) -> tuple[list[Result], OS | None]:
        ...


class Artifact(Protocol):
    """Something that can be inspected to produce an artifact reference."""

    def inspect(self) -> ArtifactReference:
        ...


class ScanError(Exception):
    """Raised when scanning an artifact fails."""


class Scanner:
    """Combines an artifact with a driver to produce a report."""

    def __init__(self, driver: Driver, artifact: Artifact) -> None:
        self.driver = driver
        self.artifact = artifact

    def scan_artifact(self, options: ScanOptions) -> Report:
        """Inspect the artifact, scan it and build the report."""
        try:
            reference = self.artifact.inspect()
        except Exception as err:
            raise ScanError(f"failed analysis: {err}") from err

        try:
            results, os_found = self.driver.scan(
                reference.name, reference.id, reference.blob_ids, options
            )
        except Exception as err:
            raise ScanError(f"scan failed: {err}") from err

        if os_found is not None and os_found.eosl:
            logger.warning(
                "This OS version is no longer supported by the distribution: %s %s",
                os_found.family,
                os_found.name,
            )
            logger.warning(
                "The vulnerability detection may be insufficient because "
                "security updates are not provided"
            )

        # Layers only mean something for container images.
        if reference.type != ARTIFACT_CONTAINER_IMAGE:
            for result in results:
                result.clear_layers()

        metadata = reference.image_metadata
        return Report(
            schema_version=SCHEMA_VERSION,
            artifact_name=reference.name,
            artifact_type=reference.type,
            metadata=Metadata(
                os=os_found,
                image_id=metadata.id,
                diff_ids=metadata.diff_ids,
                repo_tags=metadata.repo_tags,
                repo_digests=metadata.repo_digests,
                image_config=metadata.config_file,
            ),
            results=results,
        )