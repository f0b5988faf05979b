from jobingest.services.pii import PIIRedactor


def test_redact_is_noop_when_disabled() -> None:
    text = "Mail jane.doe@example.com or call +1 555-123-4567"

    assert PIIRedactor(enabled=False).redact(text) == text


def test_redact_replaces_email_and_phone_with_placeholders() -> None:
    redacted = PIIRedactor(enabled=True).redact("Contact jane.doe@example.com or +1 555-123-4567")

    assert redacted == "Contact [redacted-email] or [redacted-phone]"


def test_redact_honors_configured_field_list() -> None:
    redacted = PIIRedactor(enabled=True, fields=["email"]).redact("hr@acme.io / 555-123-4567")

    assert redacted == "[redacted-email] / 555-123-4567"


def test_redact_passes_through_empty_values() -> None:
    redactor = PIIRedactor(enabled=True)

    assert redactor.redact(None) is None
    assert redactor.redact("") == ""
