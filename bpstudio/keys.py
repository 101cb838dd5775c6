"""API key loading for Blueprint Studio.

Keys are read from the environment. Before a request, this module loads
them with this priority:
  1. Environment variables (highest — already set in shell)
  2. ~/.bpstudio/keys.env (user-level keys)
  3. .env in current directory (project-level)

Saving and editing credentials is left to the settings front end.
"""

from __future__ import annotations

import logging
import os
from pathlib import Path

from bpstudio.schemas.providers import DEFAULT_KEY_ENVS, ProviderKind

logger = logging.getLogger(__name__)

# Directory for user-level configuration
STUDIO_HOME = Path.home() / ".bpstudio"
KEYS_FILE = STUDIO_HOME / "keys.env"

# Provider definitions: (env_var, display_name, signup_url)
PROVIDERS = [
    (
        DEFAULT_KEY_ENVS[ProviderKind.OPENAI],
        "OpenAI",
        "https://platform.openai.com/api-keys",
    ),
    (
        DEFAULT_KEY_ENVS[ProviderKind.ANTHROPIC],
        "Anthropic",
        "https://console.anthropic.com/settings/keys",
    ),
    (
        DEFAULT_KEY_ENVS[ProviderKind.GOOGLE],
        "Google (Gemini)",
        "https://aistudio.google.com/apikey",
    ),
    (
        DEFAULT_KEY_ENVS[ProviderKind.OPENROUTER],
        "OpenRouter",
        "https://openrouter.ai/keys",
    ),
]


def load_keys_env(files: list[Path] | None = None) -> None:
    """Load API keys from ~/.bpstudio/keys.env and .env into os.environ.

    Existing env vars are NOT overwritten, and earlier files win over
    later ones.
    """
    if files is None:
        files = [KEYS_FILE, Path.cwd() / ".env"]
    for env_file in files:
        if not env_file.is_file():
            continue
        try:
            entries = parse_env_file(env_file)
        except OSError:
            logger.debug("Could not read %s", env_file)
            continue
        for key, value in entries.items():
            if not os.environ.get(key):
                os.environ[key] = value
                logger.debug("Loaded %s from %s", key, env_file)


def parse_env_file(path: Path) -> dict[str, str]:
    """Read ``KEY=VALUE`` pairs from a dotenv-style file.

    Accepts an optional ``export`` prefix, strips one pair of matching
    quotes, and drops ``# comments`` after unquoted values. Lines without
    ``=`` are skipped. A key repeated later in the file wins.
    """
    entries: dict[str, str] = {}
    for raw in path.read_text(encoding="utf-8").splitlines():
        line = raw.strip()
        if not line or line.startswith("#") or "=" not in line:
            continue
        if line.startswith("export "):
            line = line[len("export "):]
        key, _, value = line.partition("=")
        key = key.strip()
        if not key:
            continue
        entries[key] = _unquote(value.strip())
    return entries


def _unquote(value: str) -> str:
    if len(value) >= 2 and value[0] == value[-1] and value[0] in "'\"":
        return value[1:-1]
    return value.split(" #", 1)[0].rstrip()


def get_configured_keys() -> dict[str, str]:
    """Return a dict of env_var -> value for all known provider keys."""
    load_keys_env()
    return {env_var: os.environ.get(env_var, "") for env_var, _, _ in PROVIDERS}


def mask_key(value: str) -> str:
    """Render a key for display, keeping only its last four characters."""
    if not value:
        return ""
    if len(value) <= 8:
        return "****"
    return f"****{value[-4:]}"
