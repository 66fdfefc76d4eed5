"""ConfigManager — layered TOML config with deep merge and dot-notation access.

Merge order (last wins): bids_base.toml → profiles/profile_{name}.toml
"""

from __future__ import annotations

import copy
import sys
from dataclasses import dataclass
from pathlib import Path
from typing import Any

from bids_matrix.core.data_types import ReferenceWindow
from bids_matrix.core.types import SortKey

if sys.version_info >= (3, 11):
    import tomllib
else:
    import tomli as tomllib


DEFAULT_CONFIG_PATH = Path(__file__).parent / "bids_base.toml"


def _deep_merge(base: dict, override: dict) -> dict:
    """Deep merge override into base (last wins). Returns new dict."""
    result = copy.deepcopy(base)
    for key, value in override.items():
        if key in result and isinstance(result[key], dict) and isinstance(value, dict):
            result[key] = _deep_merge(result[key], value)
        else:
            result[key] = copy.deepcopy(value)
    return result


def _get_nested(d: dict, dotted_key: str, default: Any = None) -> Any:
    """Get a value from a nested dict using dot notation."""
    current = d
    for part in dotted_key.split("."):
        if isinstance(current, dict) and part in current:
            current = current[part]
        else:
            return default
    return current


def _set_nested(d: dict, dotted_key: str, value: Any) -> None:
    """Set a value in a nested dict using dot notation."""
    parts = dotted_key.split(".")
    current = d
    for part in parts[:-1]:
        current = current.setdefault(part, {})
    current[parts[-1]] = value


@dataclass(frozen=True)
class SelectionConfig:
    """Candidate filter, ranking and sizing parameters."""

    min_volume: float = 1_000_000.0
    min_price: float = 5.0
    max_gain_skip_pct: float = 1.0
    max_stocks: int = 10
    max_position_percent: float = 20.0
    prioritize_below_ref: bool = True
    sort_by: SortKey = SortKey.GAIN


@dataclass(frozen=True)
class ExecutionConfig:
    """Automaton parameters: attempts, waits, buffer tiers and exits."""

    take_profit_pct: float = 1.0
    stop_loss_pct: float = 3.0
    max_attempts: int = 10
    wait_seconds: float = 10.0
    cancel_pause_seconds: float = 1.0
    base_buffer_pct: float = 0.1
    tier1_attempt: int = 5
    tier1_buffer_pct: float = 0.3
    tier2_attempt: int = 8
    tier2_buffer_pct: float = 0.5
    enabled: bool = False


class ConfigManager:
    """Singleton config manager with layered TOML merge."""

    _instance: ConfigManager | None = None

    def __new__(cls) -> ConfigManager:
        if cls._instance is None:
            cls._instance = super().__new__(cls)
            cls._instance._initialized = False
        return cls._instance

    def __init__(self) -> None:
        if self._initialized:
            return
        self._config: dict[str, Any] = {}
        self._base_path: Path | None = None
        self._profile: str | None = None
        self._initialized = True

    @classmethod
    def reset(cls) -> None:
        """Reset singleton (for testing)."""
        cls._instance = None

    def load(self, base_path: str | Path = DEFAULT_CONFIG_PATH, profile: str | None = None) -> None:
        """Load and merge config layers.

        Args:
            base_path: Path to bids_base.toml
            profile: Profile name (e.g. 'paper') — loads profiles/profile_{name}.toml
        """
        self._base_path = Path(base_path)
        self._profile = profile

        self._config = self._load_toml(self._base_path)

        if profile:
            profile_path = self._base_path.parent / "profiles" / f"profile_{profile}.toml"
            if profile_path.exists():
                self._config = _deep_merge(self._config, self._load_toml(profile_path))
            else:
                raise FileNotFoundError(f"Unknown config profile: {profile} ({profile_path})")

    def _load_toml(self, path: Path) -> dict[str, Any]:
        with open(path, "rb") as f:
            return tomllib.load(f)

    def get(self, dotted_key: str, default: Any = None) -> Any:
        """Get config value using dot notation. E.g. get('execution.max_attempts')."""
        return _get_nested(self._config, dotted_key, default)

    def set(self, dotted_key: str, value: Any) -> None:
        """Override a value in the merged config (runtime only)."""
        if self.live_mode and dotted_key.startswith("system."):
            raise RuntimeError("System settings are locked in live mode.")
        _set_nested(self._config, dotted_key, value)

    @property
    def live_mode(self) -> bool:
        return bool(self.get("system.live_mode", False))

    def reload(self) -> None:
        """Hot-reload config. Only allowed when live_mode=false."""
        if self.live_mode:
            raise RuntimeError("Hot-reload is disabled in live mode.")
        if self._base_path is not None:
            self.load(self._base_path, self._profile)

    def reference_windows(self) -> list[ReferenceWindow]:
        """Named cutoffs from [windows]; first entry is the primary window."""
        windows = []
        for name, hhmm in self.get("windows.cutoffs", {}).items():
            hour, minute = (int(p) for p in str(hhmm).split(":"))
            windows.append(ReferenceWindow(name=name, hour=hour, minute=minute))
        return windows

    def selection_config(self) -> SelectionConfig:
        d = SelectionConfig()
        return SelectionConfig(
            min_volume=float(self.get("selection.min_volume", d.min_volume)),
            min_price=float(self.get("selection.min_price", d.min_price)),
            max_gain_skip_pct=float(self.get("selection.max_gain_skip_pct", d.max_gain_skip_pct)),
            max_stocks=int(self.get("selection.max_stocks", d.max_stocks)),
            max_position_percent=float(self.get("selection.max_position_percent", d.max_position_percent)),
            prioritize_below_ref=bool(self.get("selection.prioritize_below_ref", d.prioritize_below_ref)),
            sort_by=SortKey(self.get("selection.sort_by", d.sort_by.value)),
        )

    def execution_config(self) -> ExecutionConfig:
        d = ExecutionConfig()
        return ExecutionConfig(
            take_profit_pct=float(self.get("execution.take_profit_pct", d.take_profit_pct)),
            stop_loss_pct=float(self.get("execution.stop_loss_pct", d.stop_loss_pct)),
            max_attempts=int(self.get("execution.max_attempts", d.max_attempts)),
            wait_seconds=float(self.get("execution.wait_seconds", d.wait_seconds)),
            cancel_pause_seconds=float(self.get("execution.cancel_pause_seconds", d.cancel_pause_seconds)),
            base_buffer_pct=float(self.get("execution.buffer.base_pct", d.base_buffer_pct)),
            tier1_attempt=int(self.get("execution.buffer.tier1_attempt", d.tier1_attempt)),
            tier1_buffer_pct=float(self.get("execution.buffer.tier1_pct", d.tier1_buffer_pct)),
            tier2_attempt=int(self.get("execution.buffer.tier2_attempt", d.tier2_attempt)),
            tier2_buffer_pct=float(self.get("execution.buffer.tier2_pct", d.tier2_buffer_pct)),
            enabled=bool(self.get("execution.enabled", d.enabled)),
        )

    @property
    def raw(self) -> dict[str, Any]:
        """Access the raw merged config dict."""
        return self._config
