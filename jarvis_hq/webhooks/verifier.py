"""
Inbound payment webhook signature verification

The signature header is a comma-separated list of key=value pairs carrying
a timestamp `t` and the expected signature `v1`. The signed message is
"{t}.{raw body}" and `v1` is its hex HMAC-SHA256 under the shared secret.
"""

import hashlib
import hmac
import logging
import time
from typing import Dict, Optional, Union

logger = logging.getLogger(__name__)


def _as_bytes(value: Union[str, bytes]) -> bytes:
    return value if isinstance(value, bytes) else value.encode("utf-8")


def parse_signature_header(header: str) -> Dict[str, str]:
    """Split "t=...,v1=..." into a dict; raises ValueError on malformed pairs"""
    elements: Dict[str, str] = {}
    for item in header.split(","):
        key, sep, value = item.strip().partition("=")
        if not sep or not key:
            raise ValueError(f"Malformed signature element: {item!r}")
        # Keep the first occurrence of a repeated key
        elements.setdefault(key, value)
    return elements


def compute_signature(payload: Union[str, bytes], secret: str, timestamp: Union[int, str]) -> str:
    signed_payload = _as_bytes(f"{timestamp}.") + _as_bytes(payload)
    return hmac.new(_as_bytes(secret), signed_payload, hashlib.sha256).hexdigest()


def build_signature_header(
    payload: Union[str, bytes],
    secret: str,
    timestamp: Optional[int] = None,
) -> str:
    """Header value a sender would attach to `payload`"""
    timestamp = int(time.time()) if timestamp is None else timestamp
    return f"t={timestamp},v1={compute_signature(payload, secret, timestamp)}"


def verify_signature(
    payload: Union[str, bytes],
    header: Optional[str],
    secret: str,
    tolerance: Optional[int] = None,
    now: Optional[float] = None,
) -> bool:
    """
    Verify a signed webhook body

    Args:
        payload: Raw request body, exactly as received
        header: Signature header value
        secret: Shared webhook secret
        tolerance: Maximum age of `t` in seconds; None disables the check

    Returns:
        True only when `t` and `v1` are present and `v1` matches
    """
    if not header or not secret:
        return False

    try:
        elements = parse_signature_header(header)
    except ValueError as e:
        logger.warning("[WEBHOOK] Unparseable signature header: %s", e)
        return False

    timestamp = elements.get("t")
    expected = elements.get("v1")
    if not timestamp or not expected:
        return False

    if tolerance is not None:
        try:
            age = (time.time() if now is None else now) - int(timestamp)
        except ValueError:
            return False
        if abs(age) > tolerance:
            logger.warning("[WEBHOOK] Signature timestamp outside tolerance (%ss)", int(age))
            return False

    computed = compute_signature(payload, secret, timestamp)
    return hmac.compare_digest(computed, expected)
