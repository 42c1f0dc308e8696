"""
Webhook signature validation tests.
These protect the authentication boundary for all inbound data.
"""
import hashlib
import hmac

from tandril.utils.webhook_signatures import (
    SignatureCheck,
    check_signature,
    compute_hmac_base64,
    compute_payload_hash,
    verify,
    verify_query_hmac,
)
from tests.conftest import sign

SECRET = "test_secret"
BODY = b'{"shop_id": 954889, "shop_domain": "acme.myshopify.com"}'


class TestCheckSignature:
    def test_valid_signature(self):
        assert check_signature(BODY, sign(BODY, SECRET), SECRET) is SignatureCheck.VALID

    def test_matches_reference_digest(self):
        assert compute_hmac_base64(BODY, SECRET) == sign(BODY, SECRET)

    def test_single_byte_change_in_body_fails(self):
        tampered = BODY.replace(b"954889", b"954888")
        result = check_signature(tampered, sign(BODY, SECRET), SECRET)
        assert result is SignatureCheck.INVALID_SIGNATURE

    def test_flipped_signature_character_fails(self):
        signature = sign(BODY, SECRET)
        flipped = ("A" if signature[0] != "A" else "B") + signature[1:]
        assert check_signature(BODY, flipped, SECRET) is SignatureCheck.INVALID_SIGNATURE

    def test_wrong_secret_fails(self):
        assert check_signature(BODY, sign(BODY, "other"), SECRET) is SignatureCheck.INVALID_SIGNATURE

    def test_missing_header(self):
        assert check_signature(BODY, None, SECRET) is SignatureCheck.MISSING_SIGNATURE
        assert check_signature(BODY, "", SECRET) is SignatureCheck.MISSING_SIGNATURE

    def test_missing_secret_reported_before_signature(self):
        assert check_signature(BODY, None, "") is SignatureCheck.SECRET_NOT_CONFIGURED
        assert check_signature(BODY, sign(BODY, SECRET), None) is SignatureCheck.SECRET_NOT_CONFIGURED

    def test_empty_body(self):
        assert check_signature(b"", sign(b"", SECRET), SECRET) is SignatureCheck.EMPTY_BODY

    def test_hex_digest_is_not_accepted(self):
        hex_sig = hmac.new(SECRET.encode(), BODY, hashlib.sha256).hexdigest()
        assert check_signature(BODY, hex_sig, SECRET) is SignatureCheck.INVALID_SIGNATURE


class TestVerify:
    def test_true_only_when_valid(self):
        assert verify(BODY, sign(BODY, SECRET), SECRET) is True

    def test_false_for_every_failure(self):
        assert verify(BODY, None, SECRET) is False
        assert verify(BODY, sign(BODY, SECRET), "") is False
        assert verify(b"", sign(b"", SECRET), SECRET) is False
        assert verify(BODY, "bm90LWEtc2lnbmF0dXJl", SECRET) is False


class TestVerifyQueryHmac:
    def _signed(self, params: dict) -> dict:
        message = "&".join(f"{k}={params[k]}" for k in sorted(params))
        digest = hmac.new(SECRET.encode(), message.encode(), hashlib.sha256).hexdigest()
        return {**params, "hmac": digest}

    def test_valid_query(self):
        params = self._signed({
            "code": "abc123",
            "shop": "acme.myshopify.com",
            "state": "xyz",
            "timestamp": "1700000000",
        })
        assert verify_query_hmac(params, SECRET) is True

    def test_tampered_query(self):
        params = self._signed({"code": "abc123", "shop": "acme.myshopify.com", "state": "xyz"})
        params["shop"] = "evil.myshopify.com"
        assert verify_query_hmac(params, SECRET) is False

    def test_missing_hmac_or_secret(self):
        assert verify_query_hmac({"code": "abc"}, SECRET) is False
        params = self._signed({"code": "abc"})
        assert verify_query_hmac(params, "") is False


class TestComputePayloadHash:
    def test_sha256_hex(self):
        assert compute_payload_hash(BODY) == hashlib.sha256(BODY).hexdigest()
        assert len(compute_payload_hash(b"")) == 64
