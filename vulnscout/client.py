"""Scanning through a remote scanning server."""

from __future__ import annotations

import time
from typing import Callable, Mapping, Protocol, Sequence

from vulnscout.convert import from_rpc_os, from_rpc_results
from vulnscout.headers import with_custom_headers
from vulnscout.messages import RpcScanOptions, ScanRequest, ScanResponse
from vulnscout.report import Result
from vulnscout.retry import MAX_RETRIES, retry
from vulnscout.scanner import ScanError
from vulnscout.types import OS, ScanOptions


class ScannerClient(Protocol):
    """Transport that sends a scan request to the server."""

    def scan(
        self, headers: Mapping[str, Sequence[str]] | None, request: ScanRequest
    ) -> ScanResponse:
        ...


class RemoteScanner:
    """Scan driver that delegates the work to a remote server."""

    def __init__(
        self,
        custom_headers: Mapping[str, Sequence[str]],
        client: ScannerClient,
        sleep: Callable[[float], None] = time.sleep,
    ) -> None:
        self.custom_headers = custom_headers
        self.client = client
        self._sleep = sleep

    def scan(
        self,
        target: str,
        artifact_key: str,
        blob_keys: list[str],
        options: ScanOptions,
    ) -> tuple[list[Result], OS | None]:
        """Ask the server to scan the artifact and return its results and OS."""
        headers = with_custom_headers(None, self.custom_headers)
        request = ScanRequest(
            target=target,
            artifact_id=artifact_key,
            blob_ids=list(blob_keys),
            options=RpcScanOptions(
                vuln_type=list(options.vuln_type),
                security_checks=list(options.security_checks),
                list_all_packages=options.list_all_packages,
            ),
        )
        try:
            response = retry(
                lambda: self.client.scan(headers, request),
                MAX_RETRIES,
                self._sleep,
            )
        except Exception as err:
            raise ScanError(f"failed to detect vulnerabilities via RPC: {err}") from err
        return from_rpc_results(response.results), from_rpc_os(response.os)