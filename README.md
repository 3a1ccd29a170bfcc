# vulnscout

The core of a vulnerability and misconfiguration scanner, as a library.
It holds the data model for packages, vulnerabilities and configuration
findings, a local scanner that turns an analysed artifact into report
results, the conversion layer between that model and wire messages, and a
small client/server pair for scanning over HTTP.

The package has no runtime dependencies outside the standard library.

## Modules

| Module | Purpose |
| --- | --- |
| `vulnscout.types` | Packages, layers, OS info, detected vulnerabilities and misconfigurations, `Severity`, `ScanOptions`, and `get_docker_option` for registry options read from the environment |
| `vulnscout.report` | `Result`, `Metadata` and `Report`, the shape of a finished scan |
| `vulnscout.versions` | `format_version` and `format_src_version` for `epoch:version-release` strings |
| `vulnscout.utils` | Cache directory handling, `copy_file`, `load_tls_config` |
| `vulnscout.messages` | Wire messages (`ScanRequest`, `ScanResponse`, `PutBlobRequest`, ...) with `to_json` / `from_json` |
| `vulnscout.convert` | Conversion between the data model and the wire messages |
| `vulnscout.retry` | `retry`, which retries calls failing with an unavailable `TwirpError` using exponential back-off |
| `vulnscout.scanner` | `Scanner`, which inspects an artifact and hands it to a driver to build a `Report` |
| `vulnscout.local_scanner` | `LocalScanner`, the driver that detects OS-package and library vulnerabilities and collects configuration findings |
| `vulnscout.headers` | `with_custom_headers` for attaching extra request headers |
| `vulnscout.client` | `RemoteScanner`, a driver that asks a remote server to scan |
| `vulnscout.server` | `ScanServer` and `CacheServer`, the server-side request handlers |
| `vulnscout.listen` | `Router`, `DBWorker`, `RequestGate` and `Server` for serving over HTTP with token checks and database hot updates |

## Examples

Version strings follow the usual package-manager form:

```python
from vulnscout.types import Package
from vulnscout.versions import format_version

pkg = Package(name="openssl", version="1.2.3", release="alpha", epoch=2)
assert format_version(pkg) == "2:1.2.3-alpha"
```

Vulnerability types and security checks outside the known set become
`"unknown"`:

```python
from vulnscout.types import new_security_check, new_vuln_type

assert new_vuln_type("os") == "os"
assert new_vuln_type("kernel") == "unknown"
assert new_security_check("config") == "config"
```

Values going over the wire are converted with `vulnscout.convert`:

```python
from vulnscout.convert import from_rpc_packages, to_rpc_packages

rpc_pkgs = to_rpc_packages([pkg])
assert from_rpc_packages(rpc_pkgs) == [pkg]
```

`sort_by_severity` orders detected vulnerabilities by package name,
installed version, severity (most severe first) and then vulnerability ID.

## Scanning

A `Scanner` pairs an artifact (anything with an `inspect()` method returning
an `ArtifactReference`) with a driver such as `LocalScanner` or
`RemoteScanner`. `Scanner.scan_artifact(options)` returns a `Report`;
failures during inspection or scanning raise `ScanError`. For anything other
than a container image, layer information is cleared from the results.

`LocalScanner(applier, ospkg_detector, library_detector)` takes three
collaborators you provide: an `Applier` that merges layers into an
`ArtifactDetail`, an `OsPackageDetector` and a `LibraryDetector`.
`LocalScanner.scan` only reports what `ScanOptions.security_checks` and
`ScanOptions.vuln_type` ask for: OS-package vulnerabilities, library
vulnerabilities, configuration findings, or any mix of them. Library and
configuration results are sorted by target. An applier may raise
`UnknownOSError` or `NoPackagesDetectedError` carrying the detail it did
find, and the scan goes on with it; a detector may raise
`UnsupportedOSError`, which skips the OS-package result.

`RemoteScanner(custom_headers, client)` sends a `ScanRequest` through a
`ScannerClient` you provide, retrying while the client raises a
`TwirpError` with code `ErrorCode.UNAVAILABLE` (up to 10 retries).
Custom headers that would override `Accept`, `Content-Type` or
`Twirp-Version` are dropped with a warning.

## Serving

`Router.handle(method, path, headers, body)` answers `/healthz` with `ok`
and routes `POST` requests with a JSON body to the `ScanServer` (`Scan`)
and `CacheServer` (`PutArtifact`, `PutBlob`, `MissingBlobs`) handlers. When
a token is set, requests without it in the configured header get a 401.
Responses of 1400 bytes or more are gzip-compressed for clients that accept
it.

`Server(app_version, addr, cache_dir, token, token_header, db_worker)`
serves a `Router` on `addr` (`host:port`) with `listen_and_serve(scan_server,
cache_server)`. With a `DBWorker`, it checks for a newer database every
hour; during the swap a `RequestGate` holds new requests and waits for
running ones to finish.

`get_docker_option(insecure_tls_skip)` reads `TRIVY_USERNAME`,
`TRIVY_PASSWORD`, `TRIVY_REGISTRY_TOKEN` and `TRIVY_NON_SSL` from the
environment (or from a mapping passed as `environ`).

## What it does not do

This is a library, not a finished tool. It has no command-line program. It
does not analyse images, filesystems or repositories, and it ships no
vulnerability database, no vulnerability detectors and no cache store:
the `Applier`, detectors, `Cache`, `VulnerabilityFiller`, `ScannerClient`
transport and database client used by `DBWorker` are interfaces you supply.
The HTTP server speaks JSON only.