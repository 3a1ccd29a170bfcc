import pytest

from vulnscout.types import (
    SECURITY_CHECK_CONFIG,
    SECURITY_CHECK_UNKNOWN,
    SECURITY_CHECK_VULNERABILITY,
    VULN_TYPE_LIBRARY,
    VULN_TYPE_OS,
    VULN_TYPE_UNKNOWN,
    DetectedVulnerability,
    DockerOption,
    ScanOptions,
    Severity,
    compare_severity_string,
    get_docker_option,
    new_security_check,
    new_vuln_type,
    sort_by_severity,
)


@pytest.mark.parametrize("name", ["UNKNOWN", "LOW", "MEDIUM", "HIGH", "CRITICAL"])
def test_severity_from_name_round_trip(name):
    assert str(Severity.from_name(name)) == name


def test_severity_order():
    names = ["CRITICAL", "LOW", "HIGH", "UNKNOWN", "MEDIUM"]
    ordered = sorted(Severity.from_name(name) for name in names)
    assert [str(severity) for severity in ordered] == [
        "UNKNOWN",
        "LOW",
        "MEDIUM",
        "HIGH",
        "CRITICAL",
    ]


def test_severity_from_invalid_name():
    with pytest.raises(ValueError, match="INVALID"):
        Severity.from_name("INVALID")


def test_compare_severity_string_signs():
    assert compare_severity_string("HIGH", "LOW") < 0
    assert compare_severity_string("LOW", "HIGH") > 0
    assert compare_severity_string("MEDIUM", "MEDIUM") == 0


def test_compare_severity_string_invalid_counts_as_unknown():
    assert compare_severity_string("INVALID", "UNKNOWN") == 0


def test_sort_by_severity_order():
    a_low = DetectedVulnerability(vulnerability_id="CVE-2", pkg_name="a", installed_version="1", severity="LOW")
    a_crit = DetectedVulnerability(vulnerability_id="CVE-3", pkg_name="a", installed_version="1", severity="CRITICAL")
    a_crit_early = DetectedVulnerability(vulnerability_id="CVE-1", pkg_name="a", installed_version="1", severity="CRITICAL")
    a_v0 = DetectedVulnerability(vulnerability_id="CVE-9", pkg_name="a", installed_version="0", severity="LOW")
    b = DetectedVulnerability(vulnerability_id="CVE-0", pkg_name="b", installed_version="1", severity="HIGH")
    vulns = [b, a_low, a_crit, a_v0, a_crit_early]

    got = sort_by_severity(vulns)

    assert got == [a_v0, a_crit_early, a_crit, a_low, b]
    assert vulns == [b, a_low, a_crit, a_v0, a_crit_early]


@pytest.mark.parametrize(
    "value, expected",
    [("os", VULN_TYPE_OS), ("library", VULN_TYPE_LIBRARY), ("foo", VULN_TYPE_UNKNOWN)],
)
def test_new_vuln_type(value, expected):
    assert new_vuln_type(value) == expected


@pytest.mark.parametrize(
    "value, expected",
    [("vuln", SECURITY_CHECK_VULNERABILITY), ("config", SECURITY_CHECK_CONFIG), ("x", SECURITY_CHECK_UNKNOWN)],
)
def test_new_security_check(value, expected):
    assert new_security_check(value) == expected


def test_get_docker_option_from_environment():
    environ = {
        "TRIVY_USERNAME": "user",
        "TRIVY_PASSWORD": "password",
        "TRIVY_REGISTRY_TOKEN": "token",
        "TRIVY_NON_SSL": "true",
    }
    got = get_docker_option(True, environ)
    password = "password"
    assert got == DockerOption(
        user_name="user",
        password=password,
        registry_token="token",
        insecure_skip_tls_verify=True,
        non_ssl=True,
    )


def test_get_docker_option_defaults():
    got = get_docker_option(False, {})
    assert got == DockerOption()


def test_get_docker_option_invalid_bool():
    with pytest.raises(ValueError, match="unable to parse environment variables"):
        get_docker_option(False, {"TRIVY_NON_SSL": "maybe"})


def test_scan_options_lists_are_independent():
    first = ScanOptions()
    second = ScanOptions()
    first.vuln_type.append("os")
    assert second.vuln_type == []