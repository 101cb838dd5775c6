"""Provider list and studio configuration loaders.

Loads the user's provider list from providers.toml and studio defaults
from defaults.toml. The provider list is read once and handed to the
chat session as a snapshot; nothing downstream reads configuration files
or global state on its own.
"""

from __future__ import annotations

import os
import tomllib
from collections.abc import Sequence
from pathlib import Path

from pydantic import ValidationError

from bpstudio.keys import STUDIO_HOME
from bpstudio.schemas.config import StudioConfig
from bpstudio.schemas.providers import ProviderConfig

# Default config directory relative to the bpstudio package
_CONFIG_DIR = Path(__file__).parent.parent / "config"

PROVIDERS_ENV = "BPSTUDIO_PROVIDERS"

NO_PROVIDER_MESSAGE = "No AI provider configured. Please add one to providers.toml."


def default_providers_path() -> Path:
    """Return the providers.toml location, honouring $BPSTUDIO_PROVIDERS."""
    override = os.environ.get(PROVIDERS_ENV)
    if override:
        return Path(override).expanduser()
    return STUDIO_HOME / "providers.toml"


def load_providers(config_path: Path | None = None) -> list[ProviderConfig]:
    """Load the configured providers, in file order.

    Args:
        config_path: Path to providers.toml. Defaults to
                     ~/.bpstudio/providers.toml.

    Returns:
        The providers in the order they are listed. A missing file means
        no providers are configured and yields an empty list.

    Raises:
        ValueError: If the TOML structure or an entry is invalid.
    """
    path = config_path or default_providers_path()
    if not path.exists():
        return []

    with open(path, "rb") as f:
        try:
            raw = tomllib.load(f)
        except tomllib.TOMLDecodeError as e:
            raise ValueError(f"Invalid TOML in {path}: {e}") from e

    entries = raw.get("providers", [])
    if not isinstance(entries, list):
        raise ValueError(f"[[providers]] must be an array of tables in {path}")

    providers: list[ProviderConfig] = []
    for index, entry in enumerate(entries):
        if not isinstance(entry, dict):
            raise ValueError(f"Provider #{index + 1} in {path} is not a table")
        try:
            providers.append(ProviderConfig(**entry))
        except ValidationError as e:
            raise ValueError(f"Invalid provider #{index + 1} in {path}: {e}") from e
    return providers


def active_provider(providers: Sequence[ProviderConfig]) -> ProviderConfig:
    """Return the provider used for requests: the first one configured.

    Raises:
        ValueError: If no provider is configured.
    """
    if not providers:
        raise ValueError(NO_PROVIDER_MESSAGE)
    return providers[0]


def load_studio_config(config_path: Path | None = None) -> StudioConfig:
    """Load studio defaults from a TOML file.

    Args:
        config_path: Path to defaults.toml. Defaults to
                     bpstudio/config/defaults.toml.

    Raises:
        FileNotFoundError: If the config file does not exist.
        ValueError: If a value is out of range.
    """
    path = config_path or _CONFIG_DIR / "defaults.toml"
    if not path.exists():
        raise FileNotFoundError(f"Studio config not found: {path}")

    with open(path, "rb") as f:
        raw = tomllib.load(f)

    try:
        return StudioConfig(**raw.get("studio", {}))
    except ValidationError as e:
        raise ValueError(f"Invalid [studio] section in {path}: {e}") from e
