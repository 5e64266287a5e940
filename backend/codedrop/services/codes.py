"""Sharing codes and storage names."""
import re
import secrets
import string
import time
from pathlib import PurePosixPath
from typing import Optional

CODE_ALPHABET = string.ascii_uppercase + string.digits
CODE_LENGTH = 6
_CODE_RE = re.compile(r"^[A-Z0-9]{4,16}$")
_BASE36 = string.digits + string.ascii_lowercase


def generate_code(length: int = CODE_LENGTH) -> str:
    """Random upper-case alphanumeric code, e.g. ``K3X9QA``."""
    return "".join(secrets.choice(CODE_ALPHABET) for _ in range(length))


def normalize_code(raw: Optional[str]) -> str:
    """Codes are entered by hand; compare them trimmed and upper-cased."""
    return (raw or "").strip().upper()


def is_valid_code(code: str) -> bool:
    return bool(_CODE_RE.match(code))


def make_stored_name(original_name: str, now_ms: Optional[int] = None) -> str:
    """``<unix-millis>-<base36 suffix>.<ext>`` so names never collide or leak the original."""
    if now_ms is None:
        now_ms = int(time.time() * 1000)
    suffix = "".join(secrets.choice(_BASE36) for _ in range(11))
    ext = PurePosixPath(original_name.replace("\\", "/")).suffix.lstrip(".")
    ext = re.sub(r"[^A-Za-z0-9]", "", ext)[:16]
    return f"{now_ms}-{suffix}.{ext}" if ext else f"{now_ms}-{suffix}"
