"""Magic-link hashing helpers: tokens, identifiers and throttle scope keys."""

from __future__ import annotations

import hashlib
import secrets

from pydantic import EmailStr, TypeAdapter
from pydantic import ValidationError as PydanticValidationError

TOKEN_BYTES = 32  # 256 bits of entropy

_EMAIL_ADAPTER: TypeAdapter[str] = TypeAdapter(EmailStr)


def normalize_email(value: str) -> str:
    return value.strip().lower()


def parse_email(value: str) -> str | None:
    """Return the normalized address, or None when ``value`` is not an email."""
    try:
        return normalize_email(_EMAIL_ADAPTER.validate_python(normalize_email(value)))
    except PydanticValidationError:
        return None


def hash_identifier(value: str, pepper: str) -> str:
    """Peppered SHA-256; the pepper keeps leaked hashes from being brute-forced offline."""
    data = f"{pepper}:{value}" if pepper else value
    return hashlib.sha256(data.encode()).hexdigest()


def generate_token(pepper: str) -> tuple[str, str]:
    """Return ``(raw_token, token_hash)``. Only the hash is ever persisted."""
    raw_token = secrets.token_urlsafe(TOKEN_BYTES)
    return raw_token, hash_identifier(raw_token, pepper)


def email_scope_key(tenant_id: str, email_hash: str) -> str:
    return f"magic_link:email:{tenant_id}:{email_hash}"


def source_scope_key(tenant_id: str, ip_hash: str) -> str:
    return f"magic_link:ip:{tenant_id}:{ip_hash}"
