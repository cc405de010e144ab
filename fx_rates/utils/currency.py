from __future__ import annotations

import re
from typing import Iterable, List, Tuple

_CODE_RE = re.compile(r"^[A-Z]{3}$")

Pair = Tuple[str, str]


def normalize_code(code: str) -> str:
    """Uppercase and strip an ISO 4217 code. Raises ValueError unless it is three letters."""
    c = (code or "").strip().upper()
    if not _CODE_RE.match(c):
        raise ValueError(f"invalid currency code: {code!r}")
    return c


def pair_label(base: str, quote: str) -> str:
    return f"{base}_{quote}"


def cross_pairs(codes: Iterable[str]) -> List[Pair]:
    """Every ordered (base, quote) pair of distinct codes, identity pairs excluded."""
    uniq: List[str] = []
    for c in codes:
        n = normalize_code(c)
        if n not in uniq:
            uniq.append(n)
    return [(b, q) for b in uniq for q in uniq if b != q]
