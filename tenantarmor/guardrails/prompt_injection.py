from typing import Tuple

INJECTION_PATTERNS = [
    "ignore previous instructions",
    "ignore all previous instructions",
    "disregard the above",
    "system prompt",
    "developer message",
    "you are chatgpt",
    "reveal your instructions",
    "exfiltrate",
    "api key",
]


def detect_prompt_injection(text: str) -> Tuple[bool, str]:
    """Lightweight heuristic detector: returns (True, pattern) if text contains typical injection phrasing (e.g. 'ignore previous instructions', 'system prompt').
    Chat questions that match are rejected; retrieved knowledge that matches is still used, with a security note prepended to the prompt block."""
    t = (text or "").lower()
    for p in INJECTION_PATTERNS:
        if p in t:
            return True, p
    return False, ""
