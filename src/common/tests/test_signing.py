"""Tests for common.signing."""

import uuid

import pytest
from pytest_django.fixtures import SettingsWrapper

from common.signing import SIGNATURE_LENGTH, build_message, generate_signature, verify_signature


class TestGenerateSignature:
    def test_signature_is_truncated_hex(self) -> None:
        signature = generate_signature(uuid.uuid4(), uuid.uuid4(), uuid.uuid4())

        assert len(signature) == SIGNATURE_LENGTH
        int(signature, 16)

    def test_deterministic(self) -> None:
        parts = (uuid.uuid4(), uuid.uuid4(), uuid.uuid4())

        assert generate_signature(*parts) == generate_signature(*parts)

    def test_order_matters(self) -> None:
        a, b = uuid.uuid4(), uuid.uuid4()

        assert generate_signature(a, b) != generate_signature(b, a)

    def test_key_rotation_changes_signature(self, settings: SettingsWrapper) -> None:
        parts = ("ticket", "event", "user")
        before = generate_signature(*parts)

        settings.QR_SECRET = "rotated"

        assert generate_signature(*parts) != before


class TestVerifySignature:
    def test_valid(self) -> None:
        parts = (uuid.uuid4(), uuid.uuid4(), uuid.uuid4())

        assert verify_signature(generate_signature(*parts), *parts) is True

    def test_tampered_part(self) -> None:
        ticket_id, event_id, user_id = uuid.uuid4(), uuid.uuid4(), uuid.uuid4()
        signature = generate_signature(ticket_id, event_id, user_id)

        assert verify_signature(signature, ticket_id, event_id, uuid.uuid4()) is False

    @pytest.mark.parametrize("signature", [None, "", 1234])
    def test_missing_or_non_string(self, signature: object) -> None:
        assert verify_signature(signature, "a", "b") is False  # type: ignore[arg-type]


def test_build_message_joins_with_colons() -> None:
    assert build_message("a", 1, None) == "a:1:None"
