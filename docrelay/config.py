"""Runtime settings resolved from the environment and default locations."""
from __future__ import annotations

import os
from dataclasses import dataclass
from pathlib import Path
from typing import Mapping, Optional

from .bridge import DEFAULT_NAMESPACE
from .operations.engines import DEFAULT_MODEL

_TRUTHY = {"1", "true", "yes", "on"}


def get_default_data_dir() -> Path:
    return Path("~/.local/share/docrelay").expanduser()


def get_openrouter_config_path() -> Path:
    return Path("~/.config/openrouter/key").expanduser()


def load_openrouter_api_key(environ: Optional[Mapping[str, str]] = None) -> Optional[str]:
    environ = os.environ if environ is None else environ
    env_key = environ.get("OPENROUTER_API_KEY")
    if env_key and env_key.strip():
        return env_key.strip()

    config_path = get_openrouter_config_path()
    try:
        contents = config_path.read_text(encoding="utf-8").strip()
    except OSError:
        return None
    return contents or None


@dataclass(frozen=True)
class Settings:
    data_dir: Path
    namespace: str = DEFAULT_NAMESPACE
    model: str = DEFAULT_MODEL
    api_key: Optional[str] = None
    api_base: str = "https://openrouter.ai/api/v1"
    referer: Optional[str] = None
    title: Optional[str] = "docrelay"
    force_simulated: bool = False

    @property
    def history_path(self) -> Path:
        return self.data_dir / "history.json"

    @property
    def shared_dir(self) -> Path:
        return self.data_dir / "shared"

    @property
    def results_dir(self) -> Path:
        return self.data_dir / "results"

    @classmethod
    def from_env(cls, environ: Optional[Mapping[str, str]] = None) -> "Settings":
        environ = os.environ if environ is None else environ
        data_dir = environ.get("DOCRELAY_HOME")
        return cls(
            data_dir=Path(data_dir).expanduser() if data_dir else get_default_data_dir(),
            namespace=environ.get("DOCRELAY_NAMESPACE") or DEFAULT_NAMESPACE,
            model=environ.get("DOCRELAY_MODEL") or DEFAULT_MODEL,
            api_key=load_openrouter_api_key(environ),
            api_base=environ.get("OPENROUTER_API_BASE", "https://openrouter.ai/api/v1"),
            referer=environ.get("OPENROUTER_REFERER") or None,
            title=environ.get("OPENROUTER_TITLE", "docrelay") or None,
            force_simulated=environ.get("DOCRELAY_SIMULATE", "").strip().lower() in _TRUTHY,
        )
