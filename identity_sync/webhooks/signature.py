"""Webhook signature verification.

Two schemes are supported:

* a composite ``t=<unix>,v1=<hex>`` header carrying HMAC-SHA256 of
  ``timestamp + "." + body`` (WorkOS style);
* the three ``svix-*`` headers used by Clerk, checked with the svix library.

The body must be the raw request payload. Re-serialising parsed JSON changes
the bytes and breaks the signature.
"""

import hashlib
import hmac
import logging
import time
from dataclasses import dataclass
from typing import List, Mapping, Optional, Union

from svix.webhooks import Webhook, WebhookVerificationError

from .exceptions import MalformedSignature, SignatureInvalid

logger = logging.getLogger(__name__)

SVIX_HEADERS = ("svix-id", "svix-timestamp", "svix-signature")


@dataclass(frozen=True)
class SignatureHeader:
    timestamp: str
    signatures: List[str]


def _to_bytes(body: Union[bytes, str]) -> bytes:
    # The HMAC is always taken over bytes; text bodies are UTF-8 encoded once here
    if isinstance(body, str):
        return body.encode("utf-8")
    return body


def parse_signature_header(header: Optional[str]) -> SignatureHeader:
    """Split a ``t=...,v1=...`` header. Several ``v1`` entries may be present."""
    if not header:
        raise MalformedSignature("Missing signature header")

    timestamp = None
    signatures: List[str] = []
    for item in header.split(","):
        key, sep, value = item.strip().partition("=")
        if not sep or not value:
            continue
        if key == "t":
            timestamp = value
        elif key == "v1":
            signatures.append(value)

    if not timestamp or not signatures:
        raise MalformedSignature()
    return SignatureHeader(timestamp=timestamp, signatures=signatures)


def compute_signature(secret: str, timestamp: str, body: Union[bytes, str]) -> str:
    signed_payload = timestamp.encode("utf-8") + b"." + _to_bytes(body)
    return hmac.new(
        secret.encode("utf-8"),
        signed_payload,
        hashlib.sha256,
    ).hexdigest()


def sign_payload(secret: str, timestamp: Union[int, str], body: Union[bytes, str]) -> str:
    """Build the header a sender would attach to ``body``."""
    timestamp = str(timestamp)
    return f"t={timestamp},v1={compute_signature(secret, timestamp, body)}"


def _check_tolerance(timestamp: str, tolerance: int) -> None:
    try:
        sent_at = int(timestamp)
    except ValueError:
        raise MalformedSignature(f"Signature timestamp is not an integer: {timestamp}")
    # Millisecond timestamps are thirteen digits
    if sent_at > 10 ** 12:
        sent_at = sent_at // 1000
    if abs(time.time() - sent_at) > tolerance:
        raise SignatureInvalid("Signature timestamp outside the tolerance window")


def verify_signature(
    body: Union[bytes, str],
    header: Optional[str],
    secret: Optional[str],
    tolerance: Optional[int] = None,
) -> bool:
    """Verify a composite signature header against the raw body.

    Returns True or raises MalformedSignature / SignatureInvalid. The header is
    parsed before any HMAC is computed.
    """
    parsed = parse_signature_header(header)

    if not secret:
        logger.error("Webhook secret is empty; rejecting delivery")
        raise SignatureInvalid("Webhook secret is not configured")

    if tolerance is not None:
        _check_tolerance(parsed.timestamp, tolerance)

    expected = compute_signature(secret, parsed.timestamp, body)
    if not any(hmac.compare_digest(expected, candidate) for candidate in parsed.signatures):
        raise SignatureInvalid()
    return True


def verify_svix(body: Union[bytes, str], headers: Mapping[str, Optional[str]], secret: Optional[str]) -> bool:
    """Verify a Clerk (svix) delivery. Returns True or raises."""
    missing = [name for name in SVIX_HEADERS if not headers.get(name)]
    if missing:
        raise MalformedSignature(f"Missing svix headers: {', '.join(missing)}")

    if not secret:
        logger.error("Webhook secret is empty; rejecting delivery")
        raise SignatureInvalid("Webhook secret is not configured")

    try:
        wh = Webhook(secret)
        wh.verify(body, {name: headers[name] for name in SVIX_HEADERS})
    except WebhookVerificationError as e:
        raise SignatureInvalid(f"Webhook verification failed: {e}")
    except ValueError as e:
        # Non UTF-8 body or a garbled signature list, raised before any match
        raise SignatureInvalid(f"Webhook verification failed: {e.__class__.__name__}")
    return True
