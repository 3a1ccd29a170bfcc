from vulnscout.report import SCHEMA_VERSION, Metadata, Report, Result
from vulnscout.types import (
    DetectedMisconfiguration,
    DetectedVulnerability,
    Layer,
    Package,
)

DIGEST = "sha256:5216338b40a7b96416b8b9858974bbe4acc3096ee60acbc4dfb1ee02aecceb10"
DIFF_ID = "sha256:b2a1a2d80bf0c747a4f6b0ca6af5eef23f043fcdb1ed4f3a3e750aef2dc68079"


def test_clear_layers_resets_every_layer():
    layer = Layer(digest=DIGEST, diff_id=DIFF_ID)
    result = Result(
        target="alpine:3.11",
        packages=[Package(name="musl", layer=layer)],
        vulnerabilities=[DetectedVulnerability(vulnerability_id="CVE-2019-9999", layer=layer)],
        misconfigurations=[DetectedMisconfiguration(id="ID100", layer=layer)],
    )

    result.clear_layers()

    assert result.packages[0].layer == Layer()
    assert result.vulnerabilities[0].layer == Layer()
    assert result.misconfigurations[0].layer == Layer()


def test_clear_layers_keeps_other_fields():
    result = Result(
        target="alpine:3.11",
        vulnerabilities=[
            DetectedVulnerability(
                vulnerability_id="CVE-2019-9999",
                pkg_name="vim",
                layer=Layer(diff_id=DIFF_ID),
            )
        ],
    )
    result.clear_layers()
    assert result.target == "alpine:3.11"
    assert result.vulnerabilities[0].vulnerability_id == "CVE-2019-9999"
    assert result.vulnerabilities[0].pkg_name == "vim"


def test_report_default_schema_version():
    report = Report(artifact_name="alpine:3.11")
    assert report.schema_version == SCHEMA_VERSION == 2
    assert report.results == []
    assert report.metadata == Metadata()


def test_result_defaults_are_independent():
    first = Result()
    second = Result()
    first.packages.append(Package(name="musl"))
    assert second.packages == []
    assert first.result_class is None