from phishfinder.core.mismatch_detector import detect_mismatches, label_domain, target_domain


def test_url_label_pointing_elsewhere_is_a_mismatch():
    html = '<a href="https://evil.test/x">https://bank.example.com/login</a>'

    mismatches = detect_mismatches(html)

    assert len(mismatches) == 1
    assert mismatches[0].actual_domain == "evil.test"
    assert mismatches[0].display_domain == "bank.example.com"
    assert mismatches[0].displayed_url == "https://bank.example.com/login"
    assert mismatches[0].actual_url == "https://evil.test/x"


def test_target_domain_inside_label_is_not_a_mismatch():
    html = '<a href="https://example.com/redirect?u=example.com">example.com</a>'

    assert detect_mismatches(html) == []


def test_www_prefix_is_ignored():
    html = '<a href="https://www.example.com/account">example.com/account</a>'

    assert detect_mismatches(html) == []


def test_mailto_target_with_different_domain():
    html = '<a href="mailto:support@evil.test?subject=Verify">support@bank.example.com</a>'

    mismatches = detect_mismatches(html)

    assert [(m.display_domain, m.actual_domain) for m in mismatches] == [("bank.example.com", "evil.test")]


def test_plain_text_labels_and_other_schemes_are_skipped():
    html = (
        '<a href="http://192.168.1.1/steal">Click here</a>'
        '<a href="javascript:void(0)">https://bank.example.com</a>'
        '<a href="https://evil.test/x"></a>'
        '<a>https://bank.example.com</a>'
    )

    assert detect_mismatches(html) == []


def test_each_offending_anchor_is_reported():
    html = (
        '<a href="https://one.test/">https://paypal.example.com</a>'
        '<a href="https://paypal.example.com/ok">paypal.example.com</a>'
        '<a href="https://two.test/">www.bank.example.org</a>'
    )

    mismatches = detect_mismatches(html)

    assert [m.actual_domain for m in mismatches] == ["one.test", "two.test"]


def test_label_and_target_helpers():
    assert label_domain("Sign in") is None
    assert label_domain("HTTPS://Bank.Example.com/") == "bank.example.com"
    assert label_domain("mailto:help@Example.org") == "example.org"
    assert target_domain("mailto:a@b.example.com?cc=x@y.test") == "b.example.com"
    assert target_domain("tel:+15550100") is None
    assert target_domain("https://Evil.Test:8443/path") == "evil.test"


def test_invalid_input_yields_no_mismatches():
    assert detect_mismatches("") == []
    assert detect_mismatches(None) == []
