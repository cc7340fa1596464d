"""Configuration loader for the brain time pipeline.

Loads defaults from ``braintime_config.yaml`` and resolves caller options
into immutable per-step configuration records. Resolution happens once at
call entry; the rest of a call only reads the resolved record.
"""
from __future__ import annotations

import logging
import os
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Dict, Mapping, Optional, Tuple, Union

import yaml

from ..errors import ConfigError
from ..types import PhaseMethod, RefDim, WarpMethod

logger = logging.getLogger(__name__)

DEFAULT_CONFIG_PATH = Path(__file__).resolve().parent.parent / "braintime_config.yaml"


class _NestedDict:
    """Wrapper for nested dictionary access via attributes."""

    def __init__(self, data: Dict[str, Any]):
        self._data = data

    def __getattr__(self, key: str) -> Any:
        if key.startswith('_') or key not in self._data:
            raise AttributeError(f"'{type(self).__name__}' object has no attribute '{key}'")
        value = self._data[key]
        if isinstance(value, dict):
            return _NestedDict(value)
        return value

    def __getitem__(self, key: str) -> Any:
        return self.__getattr__(key)

    def __contains__(self, key: str) -> bool:
        return key in self._data

    def keys(self):
        return self._data.keys()

    def items(self):
        return self._data.items()


class BrainTimeConfig:
    """Configuration manager for the brain time pipeline.

    Loads configuration from a YAML file and provides dot-notation access.
    """

    def __init__(self, config_path: Optional[Union[str, Path]] = None):
        """Initialize configuration.

        Args:
            config_path: Path to YAML config file. If None, uses the
                        braintime_config.yaml shipped with the package.
        """
        self._data: Dict[str, Any] = {}
        self.config_path = Path(config_path) if config_path is not None else DEFAULT_CONFIG_PATH
        self.load()

    def load(self) -> None:
        """Load configuration from YAML file."""
        if not self.config_path.exists():
            raise ConfigError(f"Configuration file not found: {self.config_path}")

        try:
            with open(self.config_path, "r", encoding="utf-8") as f:
                self._data = yaml.safe_load(f) or {}
        except yaml.YAMLError as e:
            raise ConfigError(f"Failed to parse YAML config: {e}") from e
        except OSError as e:
            raise ConfigError(f"Failed to load config file: {e}") from e

        self.apply_thread_limits()

    def __getattr__(self, key: str) -> Any:
        if key.startswith('_'):
            raise AttributeError(f"'{type(self).__name__}' object has no attribute '{key}'")
        if key not in self._data:
            if key in {"output", "logging", "environment"}:
                return _NestedDict({})
            raise AttributeError(f"'{type(self).__name__}' object has no attribute '{key}'")
        value = self._data[key]
        if isinstance(value, dict):
            return _NestedDict(value)
        return value

    def get(self, key: str, default: Any = None) -> Any:
        """Get configuration value by dot-notation key.

        Args:
            key: Configuration key (e.g., 'warping.btsrate', 'statistics.numperms1')
            default: Default value if key not found

        Returns:
            Configuration value
        """
        value: Any = self._data
        for k in key.split('.'):
            if isinstance(value, dict) and k in value:
                value = value[k]
            else:
                return default
        return value

    def __getitem__(self, key: str) -> Any:
        return self._data[key]

    def __contains__(self, key: str) -> bool:
        return key in self._data

    @property
    def deriv_root(self) -> Path:
        root = Path(self.get("paths.deriv_root", "derivatives"))
        if not root.is_absolute():
            root = Path.cwd() / root
        return root

    def apply_thread_limits(self) -> None:
        """Apply thread limit environment variables."""
        limits = self.get("environment.thread_limits", {}) or {}
        for var, value in limits.items():
            os.environ.setdefault(var, str(value))


def load_config(config_path: Optional[Union[str, Path]] = None) -> BrainTimeConfig:
    """Load brain time pipeline configuration.

    Args:
        config_path: Path to YAML config file. If None, uses default location.

    Returns:
        Loaded configuration object
    """
    return BrainTimeConfig(config_path)


_default: Optional[BrainTimeConfig] = None


def default_config() -> BrainTimeConfig:
    global _default
    if _default is None:
        _default = load_config()
    return _default


def _pick(options: Mapping[str, Any], config: BrainTimeConfig, names: Tuple[str, ...], key: str, default: Any = None) -> Any:
    """Return the first non-null caller option among ``names``, else the YAML value at ``key``."""
    for name in names:
        if options.get(name) is not None:
            return options[name]
    value = config.get(key)
    return default if value is None else value


def _as_flag(value: Any, option: str, true_words=("yes", "on", "true"), false_words=("no", "off", "false")) -> bool:
    if isinstance(value, bool):
        return value
    s = str(value).strip().lower()
    if s in true_words:
        return True
    if s in false_words:
        return False
    raise ConfigError(f"Invalid value {value!r} for '{option}'; expected one of {true_words + false_words}.")


def _as_enum(enum_cls, value: Any, option: str):
    if isinstance(value, enum_cls):
        return value
    for member in enum_cls:
        if str(value).strip().lower() == member.value.lower():
            return member
    allowed = ", ".join(m.value for m in enum_cls)
    raise ConfigError(f"Invalid value {value!r} for '{option}'; expected one of: {allowed}.")


def _as_positive_int(value: Any, option: str) -> int:
    try:
        ivalue = int(value)
    except (TypeError, ValueError):
        raise ConfigError(f"'{option}' must be a positive integer, got {value!r}.") from None
    if ivalue <= 0 or ivalue != float(value):
        raise ConfigError(f"'{option}' must be a positive integer, got {value!r}.")
    return ivalue


@dataclass(frozen=True)
class FigureOutput:
    """Where and how figures of one call are saved."""

    root: Path
    formats: Tuple[str, ...] = ("png",)
    dpi: int = 300

    @classmethod
    def resolve(cls, out_dir: Any, config: BrainTimeConfig) -> "FigureOutput":
        root = Path(out_dir) if out_dir is not None else config.deriv_root / "braintime" / "plots"
        formats = config.get("output.save_formats", ["png"]) or ["png"]
        if isinstance(formats, str):
            formats = [formats]
        return cls(
            root=root,
            formats=tuple(str(ext).lstrip(".") for ext in formats),
            dpi=_as_positive_int(config.get("output.fig_dpi", 300), "fig_dpi"),
        )


@dataclass(frozen=True)
class WarpConfig:
    removecomp: Optional[bool]
    warp_method: WarpMethod
    phase_method: PhaseMethod
    visualcheck: bool
    btsrate: Optional[int]
    waveshape_smoothing: int = 25
    figures: Optional[FigureOutput] = None

    @classmethod
    def resolve(cls, options: Optional[Mapping[str, Any]] = None, config: Optional[BrainTimeConfig] = None) -> "WarpConfig":
        """Merge caller options (``removecomp``, ``warpmethod``/``method``,
        ``phasemethod``, ``visualcheck``, ``btsrate``) over YAML defaults."""
        options = dict(options or {})
        config = config or default_config()

        removecomp = _pick(options, config, ("removecomp",), "warping.removecomp")
        btsrate = _pick(options, config, ("btsrate",), "warping.btsrate")
        out_dir = options.get("out_dir")
        return cls(
            removecomp=None if removecomp is None else _as_flag(removecomp, "removecomp"),
            warp_method=_as_enum(WarpMethod, _pick(options, config, ("warpmethod", "method"), "warping.warpmethod", "stationary"), "warpmethod"),
            phase_method=_as_enum(PhaseMethod, _pick(options, config, ("phasemethod",), "warping.phasemethod", "FFT"), "phasemethod"),
            visualcheck=_as_flag(_pick(options, config, ("visualcheck",), "warping.visualcheck", "off"), "visualcheck"),
            btsrate=None if btsrate is None else _as_positive_int(btsrate, "btsrate"),
            waveshape_smoothing=_as_positive_int(config.get("warping.waveshape_smoothing", 25), "waveshape_smoothing"),
            figures=FigureOutput.resolve(out_dir, config),
        )


@dataclass(frozen=True)
class QuantifyConfig:
    refdimension: RefDim
    figure: bool
    figures: Optional[FigureOutput] = None

    @classmethod
    def resolve(cls, options: Optional[Mapping[str, Any]] = None, config: Optional[BrainTimeConfig] = None) -> "QuantifyConfig":
        options = dict(options or {})
        config = config or default_config()
        out_dir = options.get("out_dir")
        return cls(
            refdimension=_as_enum(RefDim, _pick(options, config, ("refdimension",), "quantification.refdimension", "braintime"), "refdimension"),
            figure=_as_flag(_pick(options, config, ("figure",), "quantification.figure", "no"), "figure"),
            figures=FigureOutput.resolve(out_dir, config),
        )


@dataclass(frozen=True)
class StatsConfig:
    statsrange: Tuple[int, int]
    normalize: bool
    numperms1: int
    numperms2: int
    ci_min_perms: int
    n_jobs: int
    seed: int
    figure: bool
    figures: Optional[FigureOutput] = None

    @classmethod
    def resolve(cls, options: Optional[Mapping[str, Any]] = None, config: Optional[BrainTimeConfig] = None) -> "StatsConfig":
        options = dict(options or {})
        config = config or default_config()

        statsrange = _pick(options, config, ("statsrange",), "statistics.statsrange", (1, 30))
        try:
            lo, hi = int(statsrange[0]), int(statsrange[-1])
        except (TypeError, ValueError, IndexError):
            raise ConfigError(f"'statsrange' must be an integer pair, got {statsrange!r}.") from None
        if lo > hi:
            raise ConfigError(f"'statsrange' must be increasing, got [{lo}, {hi}]; swap the bounds.")

        n_jobs = int(_pick(options, config, ("n_jobs",), "statistics.n_jobs", 1))
        if n_jobs == 0:
            raise ConfigError("'n_jobs' must be non-zero; use 1 for sequential permutations or -1 for all cores.")

        out_dir = options.get("out_dir")
        return cls(
            statsrange=(lo, hi),
            normalize=_as_flag(_pick(options, config, ("normalize",), "statistics.normalize", "yes"), "normalize"),
            numperms1=_as_positive_int(_pick(options, config, ("numperms1",), "statistics.numperms1", 100), "numperms1"),
            numperms2=_as_positive_int(_pick(options, config, ("numperms2",), "statistics.numperms2", 10000), "numperms2"),
            ci_min_perms=_as_positive_int(config.get("statistics.ci_min_perms", 20), "ci_min_perms"),
            n_jobs=n_jobs,
            seed=int(_pick(options, config, ("seed",), "statistics.seed", 0)),
            figure=_as_flag(_pick(options, config, ("figure",), "statistics.figure", "no"), "figure"),
            figures=FigureOutput.resolve(out_dir, config),
        )

    @property
    def statsrange_values(self):
        """Integer recurrence rates tested, ``statsrange[0]`` to ``statsrange[1]`` inclusive."""
        return list(range(self.statsrange[0], self.statsrange[1] + 1))


__all__ = [
    "BrainTimeConfig",
    "load_config",
    "default_config",
    "FigureOutput",
    "WarpConfig",
    "QuantifyConfig",
    "StatsConfig",
]
