"""Messages exchanged between the scanning client and server."""

import types as _pytypes
from dataclasses import dataclass, field, fields, is_dataclass
from datetime import datetime
from enum import Enum
from typing import Any, Union, get_args, get_origin

from vulnscout.types import Severity


@dataclass
class RpcLayer:
    digest: str = ""
    diff_id: str = ""


@dataclass
class RpcOS:
    family: str = ""
    name: str = ""
    eosl: bool = False


@dataclass
class RpcPackage:
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
    layer: RpcLayer | None = None


@dataclass
class RpcLibrary:
    name: str = ""
    version: str = ""
    license: str = ""


@dataclass
class RpcPackageInfo:
    file_path: str = ""
    packages: list[RpcPackage] = field(default_factory=list)


@dataclass
class RpcApplication:
    type: str = ""
    file_path: str = ""
    libraries: list[RpcLibrary] = field(default_factory=list)


@dataclass
class RpcMisconfResult:
    namespace: str = ""
    message: str = ""
    id: str = ""
    type: str = ""
    title: str = ""
    severity: str = ""


@dataclass
class RpcMisconfiguration:
    file_type: str = ""
    file_path: str = ""
    successes: list[RpcMisconfResult] = field(default_factory=list)
    warnings: list[RpcMisconfResult] = field(default_factory=list)
    failures: list[RpcMisconfResult] = field(default_factory=list)
    exceptions: list[RpcMisconfResult] = field(default_factory=list)


@dataclass
class RpcCVSS:
    v2_vector: str = ""
    v3_vector: str = ""
    v2_score: float = 0.0
    v3_score: float = 0.0


@dataclass
class RpcVulnerability:
    vulnerability_id: str = ""
    vendor_ids: list[str] = field(default_factory=list)
    pkg_name: str = ""
    installed_version: str = ""
    fixed_version: str = ""
    title: str = ""
    description: str = ""
    severity: Severity = Severity.UNKNOWN
    references: list[str] = field(default_factory=list)
    layer: RpcLayer | None = None
    cvss: dict[str, RpcCVSS] = field(default_factory=dict)
    severity_source: str = ""
    cwe_ids: list[str] = field(default_factory=list)
    primary_url: str = ""
    published_date: datetime | None = None
    last_modified_date: datetime | None = None
    custom_advisory_data: Any = None
    custom_vuln_data: Any = None


@dataclass
class RpcDetectedMisconfiguration:
    type: str = ""
    id: str = ""
    title: str = ""
    description: str = ""
    message: str = ""
    namespace: str = ""
    resolution: str = ""
    severity: Severity = Severity.UNKNOWN
    primary_url: str = ""
    references: list[str] = field(default_factory=list)
    status: str = ""
    layer: RpcLayer | None = None


@dataclass
class RpcArtifactInfo:
    schema_version: int = 0
    architecture: str = ""
    created: datetime | None = None
    docker_version: str = ""
    os: str = ""
    history_packages: list[RpcPackage] = field(default_factory=list)


@dataclass
class RpcBlobInfo:
    schema_version: int = 0
    digest: str = ""
    diff_id: str = ""
    os: RpcOS | None = None
    package_infos: list[RpcPackageInfo] = field(default_factory=list)
    applications: list[RpcApplication] = field(default_factory=list)
    misconfigurations: list[RpcMisconfiguration] = field(default_factory=list)
    opaque_dirs: list[str] = field(default_factory=list)
    whiteout_files: list[str] = field(default_factory=list)


@dataclass
class PutArtifactRequest:
    artifact_id: str = ""
    artifact_info: RpcArtifactInfo | None = None


@dataclass
class PutBlobRequest:
    diff_id: str = ""
    blob_info: RpcBlobInfo | None = None


@dataclass
class MissingBlobsRequest:
    artifact_id: str = ""
    blob_ids: list[str] = field(default_factory=list)


@dataclass
class MissingBlobsResponse:
    missing_artifact: bool = False
    missing_blob_ids: list[str] = field(default_factory=list)


@dataclass
class RpcScanOptions:
    vuln_type: list[str] = field(default_factory=list)
    security_checks: list[str] = field(default_factory=list)
    list_all_packages: bool = False


@dataclass
class ScanRequest:
    target: str = ""
    artifact_id: str = ""
    blob_ids: list[str] = field(default_factory=list)
    options: RpcScanOptions | None = None


@dataclass
class RpcResult:
    target: str = ""
    vulnerabilities: list[RpcVulnerability] = field(default_factory=list)
    misconfigurations: list[RpcDetectedMisconfiguration] = field(default_factory=list)
    result_class: str = ""
    type: str = ""
    packages: list[RpcPackage] = field(default_factory=list)


@dataclass
class ScanResponse:
    os: RpcOS | None = None
    results: list[RpcResult] = field(default_factory=list)


def to_json(message: Any) -> Any:
    """Turn a message into plain JSON-compatible values."""
    if is_dataclass(message) and not isinstance(message, type):
        return {f.name: to_json(getattr(message, f.name)) for f in fields(message)}
    if isinstance(message, Enum):
        return message.name
    if isinstance(message, datetime):
        return message.isoformat()
    if isinstance(message, (list, tuple)):
        return [to_json(item) for item in message]
    if isinstance(message, dict):
        return {key: to_json(value) for key, value in message.items()}
    return message


def _decode(tp: Any, value: Any) -> Any:
    if value is None:
        return None
    origin = get_origin(tp)
    if origin in (Union, _pytypes.UnionType):
        inner = [arg for arg in get_args(tp) if arg is not type(None)]
        return _decode(inner[0], value) if len(inner) == 1 else value
    if origin is list:
        (item_type,) = get_args(tp)
        return [_decode(item_type, item) for item in value]
    if origin is dict:
        _, value_type = get_args(tp)
        return {key: _decode(value_type, item) for key, item in value.items()}
    if tp is datetime:
        if isinstance(value, datetime):
            return value
        return datetime.fromisoformat(value.replace("Z", "+00:00"))
    if isinstance(tp, type) and issubclass(tp, Enum):
        return value if isinstance(value, tp) else tp[value]
    if isinstance(tp, type) and is_dataclass(tp):
        return from_json(tp, value)
    return value


def from_json(cls: type, data: dict[str, Any]) -> Any:
    """Build a message of class ``cls`` from values produced by :func:`to_json`."""
    if not isinstance(data, dict):
        raise TypeError(f"{cls.__name__} expects an object, got {type(data).__name__}")
    field_types = {f.name: f.type for f in fields(cls)}
    unknown = set(data) - set(field_types)
    if unknown:
        raise ValueError(f"unknown fields for {cls.__name__}: {sorted(unknown)}")
    return cls(**{name: _decode(field_types[name], value) for name, value in data.items()})