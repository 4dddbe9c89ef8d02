"""
Versioned prompt loader: reads prompts from tenantarmor/prompts/{version}/{component}.yaml.
The version comes from Settings.prompt_version and is passed in by the caller.
"""
import re
from pathlib import Path
from typing import Dict

import yaml

# Base path: tenantarmor/prompts/ (next to this file)
_PROMPTS_DIR = Path(__file__).resolve().parent
_PLACEHOLDER_RE = re.compile(r"<<([A-Z_]+)>>")


def load_prompts(component: str, version: str = "v1") -> Dict[str, str]:
    """Load prompt templates for a component. Returns dict with keys "system", "user" (user optional); values may contain placeholders like <<JURISDICTION>>, <<DOCUMENT>>, <<CONTEXT>>.
    Why available: Analysis, insights, and chat prompts can be revised per version without code changes."""
    path = _PROMPTS_DIR / version / f"{component}.yaml"
    if not path.exists():
        raise FileNotFoundError(f"Prompt file not found: {path}")

    with path.open(encoding="utf-8") as f:
        data = yaml.safe_load(f) or {}

    out: Dict[str, str] = {}
    for key in ("system", "user"):
        val = data.get(key)
        if val is not None:
            out[key] = val.strip() if isinstance(val, str) else str(val).strip()
    return out


def get_system_prompt(component: str, version: str = "v1") -> str:
    prompts = load_prompts(component, version=version)
    if "system" not in prompts:
        raise ValueError(f"Component {component} has no 'system' prompt in version {version}")
    return prompts["system"]


def get_user_prompt(component: str, version: str = "v1") -> str:
    prompts = load_prompts(component, version=version)
    if "user" not in prompts:
        raise ValueError(f"Component {component} has no 'user' prompt in version {version}")
    return prompts["user"]


def render(template: str, **values: str) -> str:
    """Fill <<NAME>> placeholders in one pass (NAME is the upper-cased keyword); unknown placeholders are left as-is."""
    lookup = {k.upper(): ("" if v is None else str(v)) for k, v in values.items()}
    return _PLACEHOLDER_RE.sub(lambda m: lookup.get(m.group(1), m.group(0)), template)
