"""Scanning of an artifact's layers held locally."""

from __future__ import annotations

import logging
from datetime import datetime
from typing import Iterable, Protocol

from vulnscout.report import Result, ResultClass
from vulnscout.scanner import ScanError
from vulnscout.types import (
    OS,
    SECURITY_CHECK_CONFIG,
    SECURITY_CHECK_VULNERABILITY,
    SEVERITY_NAMES,
    VULN_TYPE_LIBRARY,
    VULN_TYPE_OS,
    Application,
    ArtifactDetail,
    DetectedMisconfiguration,
    DetectedVulnerability,
    IacMetadata,
    Layer,
    Misconfiguration,
    MisconfResult,
    MisconfStatus,
    Package,
    ScanOptions,
    Severity,
)

logger = logging.getLogger(__name__)

PYTHON_PKG = "python-pkg"
GEM_SPEC = "gemspec"
NODE_PKG = "node-pkg"
JAR = "jar"

_PKG_TARGETS = {
    PYTHON_PKG: "Python",
    GEM_SPEC: "Ruby",
    NODE_PKG: "Node.js",
    JAR: "Java",
}

_APPSHIELD_URL = "https://avd.aquasec.com/appshield/{}"
_TFSEC_DOCS = "https://tfsec.dev/docs/"


class UnknownOSError(Exception):
    """The OS of the artifact could not be detected; ``detail`` holds what was found."""

    def __init__(self, detail: ArtifactDetail | None = None) -> None:
        super().__init__("unknown OS")
        self.detail = detail if detail is not None else ArtifactDetail()


class NoPackagesDetectedError(Exception):
    """No OS packages were found; ``detail`` holds what was found."""

    def __init__(self, detail: ArtifactDetail | None = None) -> None:
        super().__init__("no packages detected")
        self.detail = detail if detail is not None else ArtifactDetail()


class UnsupportedOSError(Exception):
    """Raised by an OS package detector for an OS it does not support."""


class Applier(Protocol):
    def apply_layers(self, artifact_id: str, blob_ids: list[str]) -> ArtifactDetail:
        ...


class OsPackageDetector(Protocol):
    def detect(
        self,
        image_name: str,
        os_family: str,
        os_name: str,
        created: datetime | None,
        pkgs: list[Package],
    ) -> tuple[list[DetectedVulnerability], bool]:
        ...


class LibraryDetector(Protocol):
    def detect(self, lib_type: str, libraries: list[Package]) -> list[DetectedVulnerability]:
        ...


class LocalScanner:
    """Scans OS packages, language libraries and configuration findings."""

    def __init__(
        self,
        applier: Applier,
        ospkg_detector: OsPackageDetector,
        library_detector: LibraryDetector,
    ) -> None:
        self.applier = applier
        self.ospkg_detector = ospkg_detector
        self.library_detector = library_detector

    def scan(
        self,
        target: str,
        artifact_key: str,
        blob_keys: list[str],
        options: ScanOptions,
    ) -> tuple[list[Result], OS | None]:
        """Scan the artifact and return its results and detected OS."""
        try:
            detail = self.applier.apply_layers(artifact_key, blob_keys)
        except UnknownOSError as err:
            logger.debug(
                "OS is not detected and vulnerabilities in OS packages are not detected."
            )
            detail = err.detail
        except NoPackagesDetectedError as err:
            logger.warning(
                "No OS package is detected. Make sure you haven't deleted any files "
                "that contain information about the installed packages."
            )
            logger.warning(
                'e.g. files under "/lib/apk/db/", "/var/lib/dpkg/" and "/var/lib/rpm"'
            )
            detail = err.detail
        except Exception as err:
            raise ScanError(f"failed to apply layers: {err}") from err

        results: list[Result] = []

        if SECURITY_CHECK_VULNERABILITY in options.security_checks:
            try:
                vuln_results, eosl = self._check_vulnerabilities(target, detail, options)
            except ScanError as err:
                raise ScanError(f"failed to detect vulnerabilities: {err}") from err
            if detail.os is not None:
                detail.os.eosl = eosl
            results.extend(vuln_results)

        if SECURITY_CHECK_CONFIG in options.security_checks:
            results.extend(self._misconfs_to_results(detail.misconfigurations))

        return results, detail.os

    def _check_vulnerabilities(
        self, target: str, detail: ArtifactDetail, options: ScanOptions
    ) -> tuple[list[Result], bool]:
        eosl = False
        results: list[Result] = []

        if VULN_TYPE_OS in options.vuln_type:
            try:
                result, eosl = self._scan_os_packages(target, detail, options)
            except ScanError as err:
                raise ScanError(f"unable to scan OS packages: {err}") from err
            if result is not None:
                results.append(result)

        if VULN_TYPE_LIBRARY in options.vuln_type:
            try:
                results.extend(self._scan_libraries(detail.applications, options))
            except ScanError as err:
                raise ScanError(f"failed to scan application libraries: {err}") from err

        return results, eosl

    def _scan_os_packages(
        self, target: str, detail: ArtifactDetail, options: ScanOptions
    ) -> tuple[Result | None, bool]:
        if detail.os is None:
            logger.debug("Detected OS: unknown")
            return None, False
        logger.info("Detected OS: %s", detail.os.family)

        pkgs = detail.packages
        if options.scan_removed_packages:
            pkgs = merge_packages(pkgs, detail.history_packages)

        try:
            result, eosl = self._detect_os_vulnerabilities(
                target, detail.os.family, detail.os.name, pkgs
            )
        except ScanError as err:
            raise ScanError(f"failed to scan OS packages: {err}") from err
        if result is None:
            return None, eosl

        if options.list_all_packages:
            result.packages = sorted(pkgs, key=lambda p: p.name)

        return result, eosl

    def _detect_os_vulnerabilities(
        self, target: str, os_family: str, os_name: str, pkgs: list[Package]
    ) -> tuple[Result | None, bool]:
        if not os_family:
            return None, False
        try:
            vulns, eosl = self.ospkg_detector.detect("", os_family, os_name, None, pkgs)
        except UnsupportedOSError:
            return None, False
        except Exception as err:
            raise ScanError(f"failed vulnerability detection of OS packages: {err}") from err

        return (
            Result(
                target=f"{target} ({os_family} {os_name})",
                vulnerabilities=list(vulns),
                result_class=ResultClass.OS_PKGS,
                type=os_family,
            ),
            eosl,
        )

    def _scan_libraries(
        self, apps: list[Application], options: ScanOptions
    ) -> list[Result]:
        logger.info("Number of language-specific files: %d", len(apps))
        results: list[Result] = []
        printed_types: set[str] = set()
        for app in apps:
            if not app.libraries:
                continue

            if app.type not in printed_types:
                logger.info("Detecting %s vulnerabilities...", app.type)
                printed_types.add(app.type)

            logger.debug(
                "Detecting library vulnerabilities, type: %s, path: %s",
                app.type,
                app.file_path,
            )
            try:
                vulns = self.library_detector.detect(app.type, app.libraries)
            except Exception as err:
                raise ScanError(
                    f"failed vulnerability detection of libraries: {err}"
                ) from err

            target = app.file_path or _PKG_TARGETS.get(app.type, "")
            result = Result(
                target=target,
                vulnerabilities=list(vulns),
                result_class=ResultClass.LANG_PKGS,
                type=app.type,
            )
            if options.list_all_packages:
                result.packages = app.libraries
            results.append(result)

        return sorted(results, key=lambda r: r.target)

    def _misconfs_to_results(self, misconfs: list[Misconfiguration]) -> list[Result]:
        logger.info("Detected config files: %d", len(misconfs))
        results: list[Result] = []
        for misconf in misconfs:
            logger.debug("Scanned config file: %s", misconf.file_path)
            groups: Iterable[tuple[list[MisconfResult], Severity, MisconfStatus]] = (
                (misconf.failures, Severity.CRITICAL, MisconfStatus.FAILURE),
                (misconf.warnings, Severity.MEDIUM, MisconfStatus.FAILURE),
                (misconf.successes, Severity.UNKNOWN, MisconfStatus.PASSED),
                (misconf.exceptions, Severity.UNKNOWN, MisconfStatus.EXCEPTION),
            )
            detected = [
                to_detected_misconfiguration(res, severity, status, misconf.layer)
                for entries, severity, status in groups
                for res in entries
            ]
            results.append(
                Result(
                    target=misconf.file_path,
                    result_class=ResultClass.CONFIG,
                    type=misconf.file_type,
                    misconfigurations=detected,
                )
            )
        return sorted(results, key=lambda r: r.target)


def to_detected_misconfiguration(
    res: MisconfResult,
    default_severity: Severity,
    status: MisconfStatus,
    layer: Layer,
) -> DetectedMisconfiguration:
    """Turn one policy result into a reported misconfiguration."""
    try:
        severity = Severity.from_name(res.severity)
    except ValueError:
        logger.warning("severity must be %s, but %s", SEVERITY_NAMES, res.severity)
        severity = default_severity

    message = res.message.strip() or "No issues found"

    references = list(res.references)
    primary_url = ""
    if res.namespace.startswith("appshield."):
        primary_url = _APPSHIELD_URL.format(res.id.lower())
        references.append(primary_url)
    elif "tfsec" in res.type:
        primary_url = next(
            (ref for ref in references if ref.startswith(_TFSEC_DOCS)), ""
        )

    return DetectedMisconfiguration(
        id=res.id,
        type=res.type,
        title=res.title,
        description=res.description,
        message=message,
        resolution=res.recommended_actions,
        namespace=res.namespace,
        query=res.query,
        severity=severity.name,
        primary_url=primary_url,
        references=references,
        status=status,
        layer=layer,
        traces=list(res.traces),
        iac_metadata=IacMetadata(
            resource=res.resource,
            provider=res.provider,
            service=res.service,
            start_line=res.start_line,
            end_line=res.end_line,
        ),
    )


def merge_packages(pkgs: list[Package], history_pkgs: list[Package]) -> list[Package]:
    """Add packages from history whose names are not already present."""
    names = {pkg.name for pkg in pkgs}
    return list(pkgs) + [pkg for pkg in history_pkgs if pkg.name not in names]