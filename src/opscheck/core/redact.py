from __future__ import annotations

import re

REDACT_KEYS = ("SECRET", "PASSWORD", "PASS", "TOKEN", "KEY", "AUTH")
MASK = "***REDACTED***"

_ASSIGN_RE = re.compile(r"(?P<key>[A-Za-z_][A-Za-z0-9_.-]*)(?P<sep>\s*[=:]\s*)(?P<value>\S+)")
_URL_CRED_RE = re.compile(r"(://[^:/\s]+:)([^@/\s]+)(@)")


def _mask_assignment(m: re.Match[str]) -> str:
    if any(key in m.group("key").upper() for key in REDACT_KEYS):
        return f"{m.group('key')}{m.group('sep')}{MASK}"
    return m.group(0)


def redact_text(text: str) -> str:
    """Mask ``KEY=value`` secrets and credentials embedded in URLs."""
    if not text:
        return text
    text = _URL_CRED_RE.sub(rf"\1{MASK}\3", text)
    return _ASSIGN_RE.sub(_mask_assignment, text)
