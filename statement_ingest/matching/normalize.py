import re

_INSTITUTION_NOISE_RE = re.compile(r"[&,.]|\b(?:inc|llc|corp|co)\b")
_WHITESPACE_RE = re.compile(r"\s+")
_NON_DIGIT_RE = re.compile(r"\D")


def normalize_institution(name: str | None) -> str:
    """Lowercase, drop punctuation and corporate suffixes, collapse spaces.

    ``"Charles Schwab & Co., Inc."`` and ``"charles schwab"`` normalize equal.
    """
    if not name:
        return ""
    cleaned = _INSTITUTION_NOISE_RE.sub(" ", name.lower())
    return _WHITESPACE_RE.sub(" ", cleaned).strip()


def number_hint_key(hint: str | None) -> str:
    """Last four digits of an account number hint, or "" when it has none.

    Masked forms such as ``"...1234"``, ``"XXXX-1234"`` and ``"1234"`` compare equal.
    """
    if not hint:
        return ""
    digits = _NON_DIGIT_RE.sub("", hint)
    return digits[-4:]
