# marketsync/core/security.py
import base64
import hashlib
import hmac


def compute_signatures(body: bytes, secret: str) -> tuple:
    """HMAC-SHA256 of the raw body, as (hex, base64)."""
    digest = hmac.new(secret.encode(), body, hashlib.sha256).digest()
    return digest.hex(), base64.b64encode(digest).decode()


def verify_webhook_signature(body: bytes, signature: str, secret: str) -> bool:
    """
    Check a marketplace webhook signature.

    Trendyol sends base64, Hepsiburada hex; both encodings of the same HMAC
    are accepted.
    """
    if not signature or not secret:
        return False

    expected_hex, expected_b64 = compute_signatures(body, secret)
    signature = signature.strip()
    return (
        hmac.compare_digest(signature.lower(), expected_hex)
        or hmac.compare_digest(signature, expected_b64)
    )
