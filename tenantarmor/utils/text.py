"""Deterministic text truncation for prompt budgets."""
import re

ELLIPSIS = "..."

_CONTROL_RE = re.compile(r"[\x00-\x08\x0b\x0c\x0e-\x1f\x7f]")
_BLANK_RUN_RE = re.compile(r"\n{3,}")
_SPACE_RUN_RE = re.compile(r"[ \t]{2,}")


def truncate_text(text: str, max_chars: int) -> str:
    """Cut text to at most max_chars characters including a trailing '...'.
    Prefers the last whitespace boundary in the second half of the window so words are not split; falls back to a hard cut for long unbroken tokens. Same input always gives the same output."""
    text = (text or "").strip()
    if max_chars <= 0:
        return ""
    if len(text) <= max_chars:
        return text
    if max_chars <= len(ELLIPSIS):
        return text[:max_chars]

    window = text[: max_chars - len(ELLIPSIS)]
    cut = max(window.rfind(" "), window.rfind("\n"))
    if cut >= len(window) // 2:
        window = window[:cut]
    return window.rstrip() + ELLIPSIS


def normalize_document_text(text: str) -> str:
    """Drop control characters, collapse runs of spaces and blank lines, and strip."""
    text = (text or "").replace("\r\n", "\n").replace("\r", "\n")
    text = _CONTROL_RE.sub("", text)
    text = _SPACE_RUN_RE.sub(" ", text)
    text = _BLANK_RUN_RE.sub("\n\n", text)
    return text.strip()
