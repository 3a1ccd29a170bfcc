"""Server-side handlers for scan and cache requests."""

from __future__ import annotations

from typing import Protocol

from vulnscout.convert import (
    from_rpc_put_artifact_request,
    from_rpc_put_blob_request,
    to_rpc_scan_response,
)
from vulnscout.messages import (
    MissingBlobsRequest,
    MissingBlobsResponse,
    PutArtifactRequest,
    PutBlobRequest,
    RpcScanOptions,
    ScanRequest,
    ScanResponse,
)
from vulnscout.scanner import Driver
from vulnscout.types import ArtifactInfo, BlobInfo, DetectedVulnerability, ScanOptions


class Cache(Protocol):
    """Storage of analysed artifacts and blobs."""

    def put_artifact(self, artifact_id: str, artifact_info: ArtifactInfo) -> None:
        ...

    def put_blob(self, blob_id: str, blob_info: BlobInfo) -> None:
        ...

    def missing_blobs(
        self, artifact_id: str, blob_ids: list[str]
    ) -> tuple[bool, list[str]]:
        ...


class VulnerabilityFiller(Protocol):
    """Fills detected vulnerabilities with details from the database."""

    def fill_vulnerability_info(
        self, vulns: list[DetectedVulnerability], result_type: str
    ) -> None:
        ...


class ServerError(Exception):
    """Raised when a server handler cannot complete a request."""


class ScanServer:
    """Handles scan requests with a local scan driver."""

    def __init__(self, local_scanner: Driver, result_client: VulnerabilityFiller) -> None:
        self.local_scanner = local_scanner
        self.result_client = result_client

    def scan(self, request: ScanRequest) -> ScanResponse:
        """Scan the requested artifact and return the filled-in results."""
        rpc_options = request.options if request.options is not None else RpcScanOptions()
        options = ScanOptions(
            vuln_type=list(rpc_options.vuln_type),
            security_checks=list(rpc_options.security_checks),
            list_all_packages=rpc_options.list_all_packages,
        )
        try:
            results, os_found = self.local_scanner.scan(
                request.target, request.artifact_id, request.blob_ids, options
            )
        except Exception as err:
            raise ServerError(f"failed scan, {request.target}: {err}") from err

        for result in results:
            self.result_client.fill_vulnerability_info(result.vulnerabilities, result.type)
        return to_rpc_scan_response(results, os_found)


class CacheServer:
    """Handles requests that read or write the analysis cache."""

    def __init__(self, cache: Cache) -> None:
        self.cache = cache

    def put_artifact(self, request: PutArtifactRequest) -> None:
        """Store artifact information in the cache."""
        if request.artifact_info is None:
            raise ServerError("empty image info")
        image_info = from_rpc_put_artifact_request(request)
        try:
            self.cache.put_artifact(request.artifact_id, image_info)
        except Exception as err:
            raise ServerError(f"unable to store image info in cache: {err}") from err

    def put_blob(self, request: PutBlobRequest) -> None:
        """Store layer information in the cache."""
        if request.blob_info is None:
            raise ServerError("empty layer info")
        layer_info = from_rpc_put_blob_request(request)
        try:
            self.cache.put_blob(request.diff_id, layer_info)
        except Exception as err:
            raise ServerError(f"unable to store layer info in cache: {err}") from err

    def missing_blobs(self, request: MissingBlobsRequest) -> MissingBlobsResponse:
        """Report whether the artifact and which blobs are absent from the cache."""
        try:
            missing_artifact, blob_ids = self.cache.missing_blobs(
                request.artifact_id, request.blob_ids
            )
        except Exception as err:
            raise ServerError(f"failed to get missing blobs: {err}") from err
        return MissingBlobsResponse(
            missing_artifact=missing_artifact, missing_blob_ids=list(blob_ids)
        )