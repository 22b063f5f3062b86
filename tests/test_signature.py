"""
Tests for webhook signature verification (composite header and svix).
"""
import time
from datetime import datetime, timezone

import pytest
from svix.webhooks import Webhook

from identity_sync.webhooks import signature
from identity_sync.webhooks.exceptions import MalformedSignature, SignatureInvalid
from identity_sync.webhooks.signature import (
    compute_signature,
    parse_signature_header,
    sign_payload,
    verify_signature,
    verify_svix,
)

SECRET = "test-secret"
BODY = '{"id":"evt_1","event":"user.created","data":{"id":"usr_1"}}'


class TestCompositeSignature:

    @pytest.mark.parametrize(
        "secret,timestamp,body",
        [
            ("s", 0, ""),
            (SECRET, 1700000000, BODY),
            ("ünïcode-secret", "1700000000123", '{"name":"Zoë"}'),
            (SECRET, 1700000000, BODY.encode()),
        ],
    )
    def test_signed_payload_verifies(self, secret, timestamp, body):
        header = sign_payload(secret, timestamp, body)
        assert verify_signature(body, header, secret) is True

    def test_hmac_matches_timestamp_dot_body(self):
        import hashlib
        import hmac

        expected = hmac.new(b"k", b"123." + BODY.encode(), hashlib.sha256).hexdigest()
        assert compute_signature("k", "123", BODY) == expected

    def test_flipping_any_hash_character_fails(self):
        timestamp = "1700000000"
        digest = compute_signature(SECRET, timestamp, BODY)
        for index, char in enumerate(digest):
            flipped = "0" if char != "0" else "1"
            tampered = digest[:index] + flipped + digest[index + 1:]
            with pytest.raises(SignatureInvalid):
                verify_signature(BODY, f"t={timestamp},v1={tampered}", SECRET)

    def test_tampered_body_fails(self):
        header = sign_payload(SECRET, 1700000000, BODY)
        with pytest.raises(SignatureInvalid):
            verify_signature(BODY.replace("usr_1", "usr_2"), header, SECRET)

    def test_wrong_secret_fails(self):
        header = sign_payload(SECRET, 1700000000, BODY)
        with pytest.raises(SignatureInvalid):
            verify_signature(BODY, header, "other-secret")

    @pytest.mark.parametrize(
        "header",
        [None, "", "v1=abcdef", "t=1700000000", "t=,v1=abc", "t=1700000000,v1=", "garbage"],
    )
    def test_malformed_header_fails_before_hmac(self, header, monkeypatch):
        def fail_if_called(*args, **kwargs):
            raise AssertionError("HMAC computed for a malformed header")

        monkeypatch.setattr(signature, "compute_signature", fail_if_called)
        with pytest.raises(MalformedSignature):
            verify_signature(BODY, header, SECRET)

    def test_empty_secret_never_verifies(self):
        header = sign_payload("", 1700000000, BODY)
        with pytest.raises(SignatureInvalid):
            verify_signature(BODY, header, "")
        with pytest.raises(SignatureInvalid):
            verify_signature(BODY, header, None)

    def test_any_of_several_v1_signatures_may_match(self):
        good = compute_signature(SECRET, "1700000000", BODY)
        header = f"t=1700000000, v1={'0' * 64}, v1={good}"
        assert verify_signature(BODY, header, SECRET) is True

    def test_parse_header(self):
        parsed = parse_signature_header("t=123,v1=aa,v0=old")
        assert parsed.timestamp == "123"
        assert parsed.signatures == ["aa"]

    def test_tolerance_rejects_old_timestamp(self):
        header = sign_payload(SECRET, int(time.time()) - 3600, BODY)
        with pytest.raises(SignatureInvalid):
            verify_signature(BODY, header, SECRET, tolerance=300)

    def test_tolerance_accepts_fresh_millisecond_timestamp(self):
        header = sign_payload(SECRET, int(time.time() * 1000), BODY)
        assert verify_signature(BODY, header, SECRET, tolerance=300) is True

    def test_tolerance_needs_numeric_timestamp(self):
        header = sign_payload(SECRET, "yesterday", BODY)
        with pytest.raises(MalformedSignature):
            verify_signature(BODY, header, SECRET, tolerance=300)

    def test_non_utf8_body_is_invalid_not_an_error(self):
        body = BODY.encode() + b"\xff"
        with pytest.raises(SignatureInvalid):
            verify_signature(body, "t=1,v1=" + "0" * 64, SECRET)

    def test_non_utf8_body_signed_as_bytes_verifies(self):
        body = BODY.encode() + b"\xff\xfe"
        header = sign_payload(SECRET, 1700000000, body)
        assert verify_signature(body, header, SECRET) is True

    def test_text_and_utf8_bytes_sign_identically(self):
        body = '{"name":"Zoë"}'
        assert compute_signature(SECRET, "1", body) == compute_signature(SECRET, "1", body.encode("utf-8"))


class TestSvixSignature:

    def _headers(self, secret, msg_id="msg_1", body=BODY):
        now = datetime.now(timezone.utc)
        return {
            "svix-id": msg_id,
            "svix-timestamp": str(int(now.timestamp())),
            "svix-signature": Webhook(secret).sign(msg_id, now, body),
        }

    def test_valid_delivery(self, clerk_secret):
        headers = self._headers(clerk_secret)
        assert verify_svix(BODY.encode(), headers, clerk_secret) is True

    @pytest.mark.parametrize("missing", ["svix-id", "svix-timestamp", "svix-signature"])
    def test_missing_header_is_malformed(self, clerk_secret, missing):
        headers = self._headers(clerk_secret)
        headers[missing] = None
        with pytest.raises(MalformedSignature):
            verify_svix(BODY, headers, clerk_secret)

    def test_tampered_body_is_invalid(self, clerk_secret):
        headers = self._headers(clerk_secret)
        with pytest.raises(SignatureInvalid):
            verify_svix(BODY.replace("usr_1", "usr_9"), headers, clerk_secret)

    def test_empty_secret_is_invalid(self, clerk_secret):
        headers = self._headers(clerk_secret)
        with pytest.raises(SignatureInvalid):
            verify_svix(BODY, headers, "")

    def test_non_utf8_body_is_invalid(self, clerk_secret):
        headers = self._headers(clerk_secret)
        with pytest.raises(SignatureInvalid):
            verify_svix(BODY.encode() + b"\xff", headers, clerk_secret)

    def test_garbled_signature_list_is_invalid(self, clerk_secret):
        headers = self._headers(clerk_secret)
        headers["svix-signature"] = "not-a-versioned-signature"
        with pytest.raises(SignatureInvalid):
            verify_svix(BODY, headers, clerk_secret)
