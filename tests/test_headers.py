from vulnscout.headers import with_custom_headers


def test_custom_headers_are_attached():
    got = with_custom_headers(None, {"Trivy-Token": ["token"]})
    assert got == {"Trivy-Token": ["token"]}


def test_reserved_header_leaves_headers_unset():
    got = with_custom_headers(None, {"Content-Type": ["token"]})
    assert got is None


def test_reserved_header_keeps_existing_headers():
    existing = {"X-Existing": ["value"]}
    got = with_custom_headers(existing, {"accept": ["text/plain"]})
    assert got == {"X-Existing": ["value"]}


def test_values_are_copied():
    values = ["token"]
    got = with_custom_headers(None, {"Trivy-Token": values})
    values.append("other")
    assert got == {"Trivy-Token": ["token"]}