"""
trustplane.utils
----------------
Small helpers shared by the engine: base64/hex renderings, timestamps,
digests and the artifact naming rules for domains and e-mail identities.
"""

from __future__ import annotations
import base64, hashlib, time
from datetime import datetime, timezone


def b64e(b: bytes) -> str:
    return base64.b64encode(b).decode("ascii")

def now_ts() -> str:
    # RFC3339 / ISO 8601 in UTC, second precision
    return time.strftime("%Y-%m-%dT%H:%M:%SZ", time.gmtime())

def utcnow() -> datetime:
    return datetime.now(timezone.utc)

def backup_stamp() -> str:
    return time.strftime("%Y%m%d_%H%M%S", time.gmtime())

def sha256(data: bytes) -> str:
    return hashlib.sha256(data).hexdigest()

def fold(text: str, width: int) -> list[str]:
    return [text[i:i + width] for i in range(0, len(text), width)] or [""]

def safe_domain(domain: str) -> str:
    return domain.replace("*", "_wildcard_")

def safe_email(email: str) -> str:
    return email.replace("@", "_at_").replace(".", "_")

def split_email(email: str) -> tuple[str, str]:
    local, sep, domain = email.partition("@")
    if not sep or not local or not domain:
        raise ValueError(f"not an e-mail identity: {email!r}")
    return local, domain
