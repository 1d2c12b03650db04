"""
mabrunner/config.py - Local configuration management

Reads user config from a platform-appropriate config directory:
  - macOS/Linux: ~/.mab-runner/config.toml
  - Windows: %APPDATA%\\mab-runner\\config.toml

Everything is optional. [model] and [convergence] values are only read by
`init`; after that the tournament keeps the parameters it started with.

Example:
    [state]
    path = "~/.cache/mab-runner/state.json"

    [model]
    prior_mean = 0.5
    prior_std = 1.0
    obs_variance = 0.1
    min_std = 0.01

    [convergence]
    threshold = 0.95
    budget_per_agent = 50
"""

import logging
import os
import sys
import tomllib
from dataclasses import dataclass, field
from pathlib import Path

from mabrunner.model import ModelParams
from mabrunner.state import default_state_path

logger = logging.getLogger(__name__)

# ============================================================================
# Constants
# ============================================================================

STATE_ENV_VAR = "MAB_RUNNER_STATE"


def _get_config_dir() -> Path:
    """Get platform-appropriate config directory."""
    if sys.platform == "win32":
        appdata = os.environ.get("APPDATA")
        if appdata:
            return Path(appdata) / "mab-runner"
    return Path.home() / ".mab-runner"


CONFIG_DIR = _get_config_dir()
CONFIG_PATH = CONFIG_DIR / "config.toml"


# ============================================================================
# Data Types
# ============================================================================


@dataclass
class RunnerConfig:
    """Top-level configuration."""

    state_path: str | None = None
    params: ModelParams = field(default_factory=ModelParams)


# ============================================================================
# Parsing
# ============================================================================


def _expand(path: str | None) -> str | None:
    """Expand ~ in a path string."""
    if path is None:
        return None
    return str(Path(path).expanduser())


def _parse_params(raw: dict) -> ModelParams:
    """Merge [model] and [convergence] over the defaults."""
    model = raw.get("model", {})
    convergence = raw.get("convergence", {})
    if not isinstance(model, dict):
        model = {}
    if not isinstance(convergence, dict):
        convergence = {}

    merged = dict(model)
    if "threshold" in convergence:
        merged["completion_threshold"] = convergence["threshold"]
    if "budget_per_agent" in convergence:
        merged["budget_per_agent"] = convergence["budget_per_agent"]
    return ModelParams.from_dict(merged)


def load_config(path: Path | None = None) -> RunnerConfig:
    """
    Read config from TOML file.

    Args:
        path: Override config file path (default: ~/.mab-runner/config.toml)

    Returns:
        RunnerConfig. Missing file, bad TOML or out-of-range values return
        defaults (with a warning for the last two).
    """
    config_path = path or CONFIG_PATH

    if not config_path.exists():
        return RunnerConfig()

    try:
        with open(config_path, "rb") as f:
            raw = tomllib.load(f)
    except Exception as e:
        logger.warning(f"Failed to parse {config_path}: {e}")
        return RunnerConfig()

    state_data = raw.get("state", {})
    state_path = state_data.get("path") if isinstance(state_data, dict) else None

    try:
        params = _parse_params(raw)
    except (TypeError, ValueError) as e:
        logger.warning(f"Ignoring invalid model settings in {config_path}: {e}")
        params = ModelParams()

    return RunnerConfig(state_path=_expand(state_path), params=params)


def resolve_state_path(cli_path: str | None, config: RunnerConfig) -> Path:
    """State file location. Precedence: --state-file > $MAB_RUNNER_STATE > config > tempdir."""
    if cli_path:
        return Path(cli_path).expanduser()
    env_path = os.environ.get(STATE_ENV_VAR)
    if env_path:
        return Path(env_path).expanduser()
    if config.state_path:
        return Path(config.state_path)
    return default_state_path()
