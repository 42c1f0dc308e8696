"""
Webhook signature validation - verify incoming webhooks are authentic.

Supported schemes:
- Base64 HMAC-SHA256 over the raw body (Shopify X-Shopify-Hmac-Sha256, eBay relay)
- Hex HMAC-SHA256 over sorted query parameters (Shopify OAuth callback redirects)

All comparisons use hmac.compare_digest.
"""
import base64
import enum
import hashlib
import hmac
import logging
from typing import Mapping

logger = logging.getLogger(__name__)


class SignatureCheck(str, enum.Enum):
    VALID = "valid"
    MISSING_SIGNATURE = "missing_signature"
    SECRET_NOT_CONFIGURED = "secret_not_configured"
    EMPTY_BODY = "empty_body"
    INVALID_SIGNATURE = "invalid_signature"


def compute_hmac_base64(body: bytes, secret: str) -> str:
    digest = hmac.new(secret.encode("utf-8"), body, hashlib.sha256).digest()
    return base64.b64encode(digest).decode("ascii")


def check_signature(
    raw_body: bytes,
    signature_header: str | None,
    secret: str | None,
) -> SignatureCheck:
    """
    Validate a base64 HMAC-SHA256 signature over the exact raw body.
    The secret is checked first so a misconfigured deployment is never
    reported as a bad signature.
    """
    if not secret:
        return SignatureCheck.SECRET_NOT_CONFIGURED
    if not signature_header:
        return SignatureCheck.MISSING_SIGNATURE
    if not raw_body:
        return SignatureCheck.EMPTY_BODY

    expected = compute_hmac_base64(raw_body, secret)
    if hmac.compare_digest(expected.encode("ascii"), signature_header.strip().encode("utf-8")):
        return SignatureCheck.VALID
    return SignatureCheck.INVALID_SIGNATURE


def verify(raw_body: bytes, signature_header: str | None, secret: str | None) -> bool:
    """True only if the signature is present, the secret is set and the digest matches."""
    return check_signature(raw_body, signature_header, secret) is SignatureCheck.VALID


def verify_query_hmac(params: Mapping[str, str], secret: str | None) -> bool:
    """
    Validate Shopify's hex HMAC on an OAuth redirect.
    The message is every query parameter except hmac/signature, sorted by
    key and joined as key=value pairs with '&'.
    """
    signature = params.get("hmac")
    if not secret or not signature:
        return False

    message = "&".join(
        f"{key}={params[key]}"
        for key in sorted(params)
        if key not in ("hmac", "signature")
    )
    expected = hmac.new(
        secret.encode("utf-8"), message.encode("utf-8"), hashlib.sha256
    ).hexdigest()
    return hmac.compare_digest(expected, signature.lower())


def compute_payload_hash(body: bytes) -> str:
    """Compute SHA-256 hash of raw payload for audit."""
    return hashlib.sha256(body).hexdigest()
