import hashlib
import hmac
from datetime import datetime, timedelta, timezone
from typing import Optional, Dict, Any
from jose import jwt, JWTError

from infrastructure.config import get_settings


def create_access_token(data: dict, expires_delta: Optional[timedelta] = None) -> str:
    """Create JWT access token in the auth provider's format"""
    settings = get_settings()
    to_encode = data.copy()
    if expires_delta:
        expire = datetime.now(timezone.utc) + expires_delta
    else:
        expire = datetime.now(timezone.utc) + timedelta(minutes=settings.access_token_expire_minutes)

    to_encode.update({"exp": expire, "aud": settings.jwt_audience})
    encoded_jwt = jwt.encode(to_encode, settings.jwt_secret, algorithm=settings.jwt_algorithm)
    return encoded_jwt


def decode_access_token(token: str) -> Dict[str, Any]:
    """Verify signature, expiry and audience; raises JWTError"""
    settings = get_settings()
    payload = jwt.decode(
        token,
        settings.jwt_secret,
        algorithms=[settings.jwt_algorithm],
        audience=settings.jwt_audience,
    )
    if not payload.get("sub"):
        raise JWTError("Token has no subject")
    return payload


def midtrans_signature(order_id: str, status_code: str, gross_amount: str, server_key: str) -> str:
    """Signature Midtrans puts on HTTP notifications"""
    raw = f"{order_id}{status_code}{gross_amount}{server_key}".encode("utf-8")
    return hashlib.sha512(raw).hexdigest()


def verify_midtrans_signature(payload: Dict[str, Any], server_key: str) -> bool:
    expected = midtrans_signature(
        str(payload.get("order_id", "")),
        str(payload.get("status_code", "")),
        str(payload.get("gross_amount", "")),
        server_key,
    )
    return hmac.compare_digest(expected, str(payload.get("signature_key", "")))
