# backend/utils/text_normalize.py
import re

# keep +, #, /, &, . because they appear in tech terms (C++, C#, CI/CD, Node.js)
_PUNCT_RE = re.compile(r"[^\w\s\+\#/&\.-]")
_SPACE_RE = re.compile(r"\s+")


def normalize_keyword(s: str) -> str:
    """Lowercases, keeps tech punctuation, collapses whitespace."""
    s = (s or "").lower()
    s = _PUNCT_RE.sub(" ", s)
    s = _SPACE_RE.sub(" ", s).strip()
    return s


def normalize_key(s: str) -> str:
    """Cache-key form of a keyword/query: same as normalize_keyword, but '_' is reserved
    as the key-part separator so it becomes a space."""
    return normalize_keyword((s or "").replace("_", " "))
