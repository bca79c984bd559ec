from __future__ import annotations

import re

SECRET_PATTERNS = [
    re.compile(r"\bsk-[A-Za-z0-9_-]{20,}\b"),
    re.compile(r"\bgh[opsu]_[A-Za-z0-9]{20,}\b"),
    re.compile(r"\bBearer\s+[A-Za-z0-9._\-]{20,}\b", re.IGNORECASE),
    re.compile(r"\beyJ[A-Za-z0-9_-]{10,}\.[A-Za-z0-9_-]{10,}\.[A-Za-z0-9_-]*"),
    re.compile(r"([?&]key=)[^&\s]+"),
]


def mask_sensitive_text(text: str) -> str:
    masked = text
    for pattern in SECRET_PATTERNS:
        if pattern.groups:
            masked = pattern.sub(r"\1[REDACTED]", masked)
        else:
            masked = pattern.sub("[REDACTED]", masked)
    return masked


def mask_secret(value: str, *, visible: int = 4) -> str:
    stripped = value.strip()
    if not stripped:
        return ""
    if len(stripped) <= visible * 2:
        return "*" * len(stripped)
    return f"{stripped[:visible]}...{stripped[-visible:]}"
