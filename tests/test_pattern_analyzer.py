from phishfinder.core.pattern_analyzer import analyze, distinct_categories, requires_response


def by_key(patterns):
    return {(p.type, p.location): p.matches for p in patterns}


def test_urgent_subject_and_password_body():
    patterns = analyze("URGENT: verify your account now", "Please confirm your password to continue.")
    found = by_key(patterns)

    assert len(patterns) >= 2
    assert found[("Urgency/Threat", "subject")] == ["URGENT", "verify your account"]
    assert found[("Credential Harvesting", "body")] == ["password"]


def test_subject_entries_come_before_body_entries():
    patterns = analyze("You are a winner", "Claim your prize at the bank")

    assert [(p.type, p.location) for p in patterns] == [
        ("Prize/Reward", "subject"),
        ("Financial", "body"),
        ("Prize/Reward", "body"),
    ]


def test_matches_are_deduplicated_in_first_seen_order():
    patterns = analyze("", "Password reset: enter your PASSWORD, then your password again. Login now.")

    assert by_key(patterns)[("Credential Harvesting", "body")] == ["Password", "Login"]


def test_financial_amounts_and_keywords():
    patterns = analyze(None, "Transfer $1,500.00 via wire transfer to the account below")

    assert by_key(patterns)[("Financial", "body")] == ["Transfer", "$1,500.00", "account"]


def test_words_inside_other_words_do_not_match():
    assert analyze("Bankruptcy law update", "Our passwordless flow is wonderful") == []


def test_empty_text_yields_no_entries():
    assert analyze("", "") == []
    assert analyze(None, None) == []


def test_distinct_categories_across_locations():
    patterns = analyze("Urgent payment", "urgent payment required")

    assert distinct_categories(patterns) == ["Urgency/Threat", "Financial"]


def test_requires_response():
    assert requires_response("Quick question", "Please reply with the signed form.")
    assert requires_response("Kindly confirm your details", "")
    assert requires_response(None, "Let me know when you are free.")
    assert not requires_response("Monthly newsletter", "Here is what happened this month.")
    assert not requires_response(None, None)


def test_urgency_phrases_span_any_distance_within_a_line():
    body = (
        "Verification needed for your account. "
        "Please verify, at your earliest convenience and before the end of this week, the details on your account. "
        "Otherwise all accounts linked to you will be suspended. Respond urgently."
    )

    matches = by_key(analyze(None, body))[("Urgency/Threat", "body")]

    assert matches == [
        "Verification needed for your account",
        "verify, at your earliest convenience and before the end of this week, the details on your account",
        "accounts linked to you will be suspended",
        "urgently",
    ]
