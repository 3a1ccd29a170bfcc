"""Core data types shared by the scanners, the report and the RPC layer."""

from __future__ import annotations

import os
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum, IntEnum
from typing import Any, Mapping

ARTIFACT_CONTAINER_IMAGE = "container_image"
ARTIFACT_FILESYSTEM = "filesystem"
ARTIFACT_REMOTE_REPOSITORY = "repository"

BLOB_JSON_SCHEMA_VERSION = 2

VULN_TYPE_UNKNOWN = "unknown"
VULN_TYPE_OS = "os"
VULN_TYPE_LIBRARY = "library"

SECURITY_CHECK_UNKNOWN = "unknown"
SECURITY_CHECK_VULNERABILITY = "vuln"
SECURITY_CHECK_CONFIG = "config"

VULN_TYPES = (VULN_TYPE_OS, VULN_TYPE_LIBRARY)
SECURITY_CHECKS = (SECURITY_CHECK_VULNERABILITY, SECURITY_CHECK_CONFIG)


class Severity(IntEnum):
    """Vulnerability severity, ordered from least to most severe."""

    UNKNOWN = 0
    LOW = 1
    MEDIUM = 2
    HIGH = 3
    CRITICAL = 4

    @classmethod
    def from_name(cls, name: str) -> "Severity":
        """Return the severity called ``name``; raise ValueError if there is none."""
        try:
            return cls.__members__[name]
        except KeyError:
            raise ValueError(f"unknown severity: {name}") from None

    def __str__(self) -> str:
        return self.name


SEVERITY_NAMES = [severity.name for severity in Severity]


def compare_severity_string(first: str, second: str) -> int:
    """Return a positive number when ``first`` is less severe than ``second``.

    Names that are not severities count as UNKNOWN.
    """

    def _value(name: str) -> int:
        try:
            return int(Severity.from_name(name))
        except ValueError:
            return int(Severity.UNKNOWN)

    return _value(second) - _value(first)


@dataclass(frozen=True)
class Layer:
    digest: str = ""
    diff_id: str = ""


@dataclass
class OS:
    family: str = ""
    name: str = ""
    eosl: bool = False


@dataclass
class Package:
    name: str = ""
    version: str = ""
    release: str = ""
    epoch: int = 0
    arch: str = ""
    src_name: str = ""
    src_version: str = ""
    src_release: str = ""
    src_epoch: int = 0
    license: str = ""
    layer: Layer = field(default_factory=Layer)


@dataclass
class Application:
    type: str = ""
    file_path: str = ""
    libraries: list[Package] = field(default_factory=list)


@dataclass
class PackageInfo:
    file_path: str = ""
    packages: list[Package] = field(default_factory=list)


@dataclass
class MisconfResult:
    """One policy outcome for a configuration file."""

    namespace: str = ""
    message: str = ""
    id: str = ""
    type: str = ""
    title: str = ""
    description: str = ""
    severity: str = ""
    recommended_actions: str = ""
    references: list[str] = field(default_factory=list)
    query: str = ""
    resource: str = ""
    provider: str = ""
    service: str = ""
    start_line: int = 0
    end_line: int = 0
    traces: list[str] = field(default_factory=list)


@dataclass
class Misconfiguration:
    file_type: str = ""
    file_path: str = ""
    successes: list[MisconfResult] = field(default_factory=list)
    warnings: list[MisconfResult] = field(default_factory=list)
    failures: list[MisconfResult] = field(default_factory=list)
    exceptions: list[MisconfResult] = field(default_factory=list)
    layer: Layer = field(default_factory=Layer)


@dataclass
class ArtifactInfo:
    schema_version: int = 0
    architecture: str = ""
    created: datetime | None = None
    docker_version: str = ""
    os: str = ""
    history_packages: list[Package] = field(default_factory=list)


@dataclass
class BlobInfo:
    schema_version: int = 0
    digest: str = ""
    diff_id: str = ""
    os: OS | None = None
    package_infos: list[PackageInfo] = field(default_factory=list)
    applications: list[Application] = field(default_factory=list)
    misconfigurations: list[Misconfiguration] = field(default_factory=list)
    opaque_dirs: list[str] = field(default_factory=list)
    whiteout_files: list[str] = field(default_factory=list)


@dataclass
class ArtifactDetail:
    os: OS | None = None
    packages: list[Package] = field(default_factory=list)
    applications: list[Application] = field(default_factory=list)
    misconfigurations: list[Misconfiguration] = field(default_factory=list)
    history_packages: list[Package] = field(default_factory=list)


@dataclass
class ImageMetadata:
    id: str = ""
    diff_ids: list[str] = field(default_factory=list)
    repo_tags: list[str] = field(default_factory=list)
    repo_digests: list[str] = field(default_factory=list)
    config_file: Any = None


@dataclass
class ArtifactReference:
    name: str = ""
    type: str = ""
    id: str = ""
    blob_ids: list[str] = field(default_factory=list)
    image_metadata: ImageMetadata = field(default_factory=ImageMetadata)


@dataclass(frozen=True)
class IacMetadata:
    resource: str = ""
    provider: str = ""
    service: str = ""
    start_line: int = 0
    end_line: int = 0


@dataclass
class CVSS:
    v2_vector: str = ""
    v3_vector: str = ""
    v2_score: float = 0.0
    v3_score: float = 0.0


@dataclass
class DetectedVulnerability:
    """A vulnerability found in an installed package, with its details."""

    vulnerability_id: str = ""
    vendor_ids: list[str] = field(default_factory=list)
    pkg_name: str = ""
    pkg_path: str = ""
    installed_version: str = ""
    fixed_version: str = ""
    layer: Layer = field(default_factory=Layer)
    severity_source: str = ""
    primary_url: str = ""
    custom: Any = None
    title: str = ""
    description: str = ""
    severity: str = ""
    cwe_ids: list[str] = field(default_factory=list)
    cvss: dict[str, CVSS] = field(default_factory=dict)
    references: list[str] = field(default_factory=list)
    published_date: datetime | None = None
    last_modified_date: datetime | None = None
    vulnerability_custom: Any = None


def _severity_rank(name: str) -> int:
    return -compare_severity_string(name, Severity.UNKNOWN.name)


def sort_by_severity(vulns: list[DetectedVulnerability]) -> list[DetectedVulnerability]:
    """Order by package name, installed version, severity (highest first), then ID."""
    return sorted(
        vulns,
        key=lambda v: (
            v.pkg_name,
            v.installed_version,
            -_severity_rank(v.severity),
            v.vulnerability_id,
        ),
    )


class MisconfStatus(str, Enum):
    PASSED = "PASS"
    FAILURE = "FAIL"
    EXCEPTION = "EXCEPTION"


@dataclass
class DetectedMisconfiguration:
    type: str = ""
    id: str = ""
    title: str = ""
    description: str = ""
    message: str = ""
    namespace: str = ""
    query: str = ""
    resolution: str = ""
    severity: str = ""
    primary_url: str = ""
    references: list[str] = field(default_factory=list)
    status: MisconfStatus | None = None
    layer: Layer = field(default_factory=Layer)
    iac_metadata: IacMetadata = field(default_factory=IacMetadata)
    traces: list[str] = field(default_factory=list)


@dataclass
class ScanOptions:
    vuln_type: list[str] = field(default_factory=list)
    security_checks: list[str] = field(default_factory=list)
    scan_removed_packages: bool = False
    list_all_packages: bool = False


@dataclass
class Library:
    name: str = ""
    version: str = ""


def new_vuln_type(value: str) -> str:
    """Return ``value`` if it is a known vulnerability type, else VULN_TYPE_UNKNOWN."""
    return value if value in VULN_TYPES else VULN_TYPE_UNKNOWN


def new_security_check(value: str) -> str:
    """Return ``value`` if it is a known security check, else SECURITY_CHECK_UNKNOWN."""
    return value if value in SECURITY_CHECKS else SECURITY_CHECK_UNKNOWN


@dataclass
class DockerOption:
    user_name: str = ""
    password: str = ""
    registry_token: str = ""
    insecure_skip_tls_verify: bool = False
    non_ssl: bool = False


_TRUE_WORDS = frozenset({"1", "t", "T", "TRUE", "true", "True"})
_FALSE_WORDS = frozenset({"0", "f", "F", "FALSE", "false", "False"})


def _parse_bool(key: str, value: str) -> bool:
    if value in _TRUE_WORDS:
        return True
    if value in _FALSE_WORDS:
        return False
    raise ValueError(
        f'unable to parse environment variables: parse error on field "{key}": '
        f'invalid boolean "{value}"'
    )


def get_docker_option(
    insecure_tls_skip: bool, environ: Mapping[str, str] | None = None
) -> DockerOption:
    """Build registry options from TRIVY_* environment variables."""
    env = os.environ if environ is None else environ
    non_ssl_raw = env.get("TRIVY_NON_SSL", "")
    non_ssl = _parse_bool("NonSSL", non_ssl_raw) if non_ssl_raw else False
    return DockerOption(
        user_name=env.get("TRIVY_USERNAME", ""),
        password=env.get("TRIVY_PASSWORD", ""),
        registry_token=env.get("TRIVY_REGISTRY_TOKEN", ""),
        insecure_skip_tls_verify=insecure_tls_skip,
        non_ssl=non_ssl,
    )