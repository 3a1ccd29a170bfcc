"""Conversion between scanner types and RPC messages."""

from __future__ import annotations

import logging
from typing import Iterable

from vulnscout.messages import (
    MissingBlobsRequest,
    PutArtifactRequest,
    PutBlobRequest,
    RpcApplication,
    RpcArtifactInfo,
    RpcBlobInfo,
    RpcCVSS,
    RpcDetectedMisconfiguration,
    RpcLayer,
    RpcLibrary,
    RpcMisconfiguration,
    RpcMisconfResult,
    RpcOS,
    RpcPackage,
    RpcPackageInfo,
    RpcResult,
    RpcVulnerability,
    ScanResponse,
)
from vulnscout.report import Result, ResultClass
from vulnscout.types import (
    BLOB_JSON_SCHEMA_VERSION,
    CVSS,
    OS,
    Application,
    ArtifactInfo,
    BlobInfo,
    DetectedMisconfiguration,
    DetectedVulnerability,
    Layer,
    Library,
    Misconfiguration,
    MisconfResult,
    MisconfStatus,
    Package,
    PackageInfo,
    Severity,
)

logger = logging.getLogger(__name__)


def _severity(name: str) -> Severity:
    try:
        return Severity.from_name(name)
    except ValueError as exc:
        logger.warning("%s", exc)
        return Severity.UNKNOWN


def to_rpc_layer(layer: Layer) -> RpcLayer:
    return RpcLayer(digest=layer.digest, diff_id=layer.diff_id)


def from_rpc_layer(rpc_layer: RpcLayer | None) -> Layer:
    if rpc_layer is None:
        return Layer()
    return Layer(digest=rpc_layer.digest, diff_id=rpc_layer.diff_id)


def to_rpc_packages(pkgs: Iterable[Package]) -> list[RpcPackage]:
    return [
        RpcPackage(
            name=p.name, version=p.version, release=p.release, epoch=p.epoch,
            arch=p.arch, src_name=p.src_name, src_version=p.src_version,
            src_release=p.src_release, src_epoch=p.src_epoch, license=p.license,
            layer=to_rpc_layer(p.layer),
        )
        for p in pkgs
    ]


def from_rpc_packages(rpc_pkgs: Iterable[RpcPackage]) -> list[Package]:
    return [
        Package(
            name=p.name, version=p.version, release=p.release, epoch=p.epoch,
            arch=p.arch, src_name=p.src_name, src_version=p.src_version,
            src_release=p.src_release, src_epoch=p.src_epoch, license=p.license,
            layer=from_rpc_layer(p.layer),
        )
        for p in rpc_pkgs
    ]


def from_rpc_libraries(rpc_libs: Iterable[RpcLibrary]) -> list[Package]:
    return [Package(name=l.name, version=l.version, license=l.license) for l in rpc_libs]


def to_rpc_libraries(libs: Iterable[Library | Package]) -> list[RpcLibrary]:
    return [
        RpcLibrary(name=l.name, version=l.version, license=getattr(l, "license", ""))
        for l in libs
    ]


def to_rpc_vulnerabilities(vulns: Iterable[DetectedVulnerability]) -> list[RpcVulnerability]:
    return [
        RpcVulnerability(
            vulnerability_id=v.vulnerability_id,
            vendor_ids=list(v.vendor_ids),
            pkg_name=v.pkg_name,
            installed_version=v.installed_version,
            fixed_version=v.fixed_version,
            title=v.title,
            description=v.description,
            severity=_severity(v.severity),
            references=list(v.references),
            layer=to_rpc_layer(v.layer),
            cvss={
                vendor: RpcCVSS(c.v2_vector, c.v3_vector, c.v2_score, c.v3_score)
                for vendor, c in v.cvss.items()
            },
            severity_source=v.severity_source,
            cwe_ids=list(v.cwe_ids),
            primary_url=v.primary_url,
            last_modified_date=v.last_modified_date,
            published_date=v.published_date,
            custom_advisory_data=v.custom,
            custom_vuln_data=v.vulnerability_custom,
        )
        for v in vulns
    ]


def to_rpc_misconfigurations(
    misconfs: Iterable[DetectedMisconfiguration],
) -> list[RpcDetectedMisconfiguration]:
    return [
        RpcDetectedMisconfiguration(
            type=m.type, id=m.id, title=m.title, description=m.description,
            message=m.message, namespace=m.namespace, resolution=m.resolution,
            severity=_severity(m.severity), primary_url=m.primary_url,
            references=list(m.references),
            status=m.status.value if m.status is not None else "",
            layer=to_rpc_layer(m.layer),
        )
        for m in misconfs
    ]


def from_rpc_vulnerabilities(rpc_vulns: Iterable[RpcVulnerability]) -> list[DetectedVulnerability]:
    return [
        DetectedVulnerability(
            vulnerability_id=v.vulnerability_id,
            vendor_ids=list(v.vendor_ids),
            pkg_name=v.pkg_name,
            installed_version=v.installed_version,
            fixed_version=v.fixed_version,
            title=v.title,
            description=v.description,
            severity=Severity(v.severity).name,
            cvss={
                vendor: CVSS(c.v2_vector, c.v3_vector, c.v2_score, c.v3_score)
                for vendor, c in v.cvss.items()
            },
            references=list(v.references),
            cwe_ids=list(v.cwe_ids),
            last_modified_date=v.last_modified_date,
            published_date=v.published_date,
            vulnerability_custom=v.custom_vuln_data,
            layer=from_rpc_layer(v.layer),
            severity_source=v.severity_source,
            primary_url=v.primary_url,
            custom=v.custom_advisory_data,
        )
        for v in rpc_vulns
    ]


def from_rpc_misconfigurations(
    rpc_misconfs: Iterable[RpcDetectedMisconfiguration],
) -> list[DetectedMisconfiguration]:
    return [
        DetectedMisconfiguration(
            type=m.type, id=m.id, title=m.title, description=m.description,
            message=m.message, namespace=m.namespace, resolution=m.resolution,
            severity=Severity(m.severity).name, primary_url=m.primary_url,
            references=list(m.references),
            status=MisconfStatus(m.status) if m.status else None,
            layer=from_rpc_layer(m.layer),
        )
        for m in rpc_misconfs
    ]


def from_rpc_results(rpc_results: Iterable[RpcResult]) -> list[Result]:
    return [
        Result(
            target=r.target,
            vulnerabilities=from_rpc_vulnerabilities(r.vulnerabilities),
            misconfigurations=from_rpc_misconfigurations(r.misconfigurations),
            result_class=ResultClass(r.result_class) if r.result_class else None,
            type=r.type,
            packages=from_rpc_packages(r.packages),
        )
        for r in rpc_results
    ]


def from_rpc_os(rpc_os: RpcOS | None) -> OS | None:
    if rpc_os is None:
        return None
    return OS(family=rpc_os.family, name=rpc_os.name, eosl=rpc_os.eosl)


def to_rpc_os(os_info: OS | None) -> RpcOS | None:
    if os_info is None:
        return None
    return RpcOS(family=os_info.family, name=os_info.name, eosl=os_info.eosl)


def from_rpc_package_infos(rpc_pkg_infos: Iterable[RpcPackageInfo]) -> list[PackageInfo]:
    return [
        PackageInfo(file_path=i.file_path, packages=from_rpc_packages(i.packages))
        for i in rpc_pkg_infos
    ]


def from_rpc_applications(rpc_apps: Iterable[RpcApplication]) -> list[Application]:
    return [
        Application(type=a.type, file_path=a.file_path,
                    libraries=from_rpc_libraries(a.libraries))
        for a in rpc_apps
    ]


def from_rpc_misconf_results(rpc_results: Iterable[RpcMisconfResult]) -> list[MisconfResult]:
    return [
        MisconfResult(namespace=r.namespace, message=r.message, id=r.id,
                      type=r.type, title=r.title, severity=r.severity)
        for r in rpc_results
    ]


def from_rpc_misconfig_files(
    rpc_misconfs: Iterable[RpcMisconfiguration],
) -> list[Misconfiguration]:
    return [
        Misconfiguration(
            file_type=m.file_type,
            file_path=m.file_path,
            successes=from_rpc_misconf_results(m.successes),
            warnings=from_rpc_misconf_results(m.warnings),
            failures=from_rpc_misconf_results(m.failures),
            exceptions=from_rpc_misconf_results(m.exceptions),
            layer=Layer(),
        )
        for m in rpc_misconfs
    ]


def to_rpc_misconf_results(results: Iterable[MisconfResult]) -> list[RpcMisconfResult]:
    return [
        RpcMisconfResult(namespace=r.namespace, message=r.message, id=r.id,
                         type=r.type, title=r.title, severity=r.severity)
        for r in results
    ]


def from_rpc_put_artifact_request(req: PutArtifactRequest) -> ArtifactInfo:
    info = req.artifact_info
    if info is None:
        raise ValueError("empty image info")
    return ArtifactInfo(
        schema_version=info.schema_version,
        architecture=info.architecture,
        created=info.created,
        docker_version=info.docker_version,
        os=info.os,
        history_packages=from_rpc_packages(info.history_packages),
    )


def from_rpc_put_blob_request(req: PutBlobRequest) -> BlobInfo:
    info = req.blob_info
    if info is None:
        raise ValueError("empty layer info")
    return BlobInfo(
        schema_version=info.schema_version,
        digest=info.digest,
        diff_id=info.diff_id,
        os=from_rpc_os(info.os),
        package_infos=from_rpc_package_infos(info.package_infos),
        applications=from_rpc_applications(info.applications),
        misconfigurations=from_rpc_misconfig_files(info.misconfigurations),
        opaque_dirs=list(info.opaque_dirs),
        whiteout_files=list(info.whiteout_files),
    )


def to_rpc_artifact_info(image_id: str, image_info: ArtifactInfo) -> PutArtifactRequest:
    if image_info.created is None:
        logger.warning("invalid timestamp: no creation time")
    return PutArtifactRequest(
        artifact_id=image_id,
        artifact_info=RpcArtifactInfo(
            schema_version=image_info.schema_version,
            architecture=image_info.architecture,
            created=image_info.created,
            docker_version=image_info.docker_version,
            os=image_info.os,
            history_packages=to_rpc_packages(image_info.history_packages),
        ),
    )


def to_rpc_blob_info(diff_id: str, blob_info: BlobInfo) -> PutBlobRequest:
    return PutBlobRequest(
        diff_id=diff_id,
        blob_info=RpcBlobInfo(
            schema_version=BLOB_JSON_SCHEMA_VERSION,
            digest=blob_info.digest,
            diff_id=blob_info.diff_id,
            os=to_rpc_os(blob_info.os),
            package_infos=[
                RpcPackageInfo(file_path=i.file_path, packages=to_rpc_packages(i.packages))
                for i in blob_info.package_infos
            ],
            applications=[
                RpcApplication(type=a.type, file_path=a.file_path,
                               libraries=to_rpc_libraries(a.libraries))
                for a in blob_info.applications
            ],
            misconfigurations=[
                RpcMisconfiguration(
                    file_type=m.file_type,
                    file_path=m.file_path,
                    successes=to_rpc_misconf_results(m.successes),
                    warnings=to_rpc_misconf_results(m.warnings),
                    failures=to_rpc_misconf_results(m.failures),
                    exceptions=to_rpc_misconf_results(m.exceptions),
                )
                for m in blob_info.misconfigurations
            ],
            opaque_dirs=list(blob_info.opaque_dirs),
            whiteout_files=list(blob_info.whiteout_files),
        ),
    )


def to_missing_blobs_request(image_id: str, layer_ids: list[str]) -> MissingBlobsRequest:
    return MissingBlobsRequest(artifact_id=image_id, blob_ids=list(layer_ids))


def to_rpc_scan_response(results: Iterable[Result], os_info: OS | None) -> ScanResponse:
    return ScanResponse(
        os=to_rpc_os(os_info),
        results=[
            RpcResult(
                target=r.target,
                result_class=r.result_class.value if r.result_class is not None else "",
                type=r.type,
                vulnerabilities=to_rpc_vulnerabilities(r.vulnerabilities),
                misconfigurations=to_rpc_misconfigurations(r.misconfigurations),
                packages=to_rpc_packages(r.packages),
            )
            for r in results
        ],
    )