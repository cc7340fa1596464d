"""
Brain time warping and TGM recurrence analysis.

Modules
- warping: clock to brain time warping of MNE epochs
- recurrence: AC map and spectral peak quantification of TGMs
- stats: first and second level permutation statistics
- spectral, autocorr: signal-processing building blocks
- decoding: default time generalization classifier
- reporting: optional figures
"""
from .errors import (
    BrainTimeError,
    CircularityWarning,
    ConfigError,
    GEDPhaseLengthMismatch,
    InsufficientSignalQuality,
    NoSpectralPeak,
    PhaseLengthMismatch,
    RecoverableWarning,
    UnsupportedRemoval,
)
from .recurrence import quantify_tgm
from .stats import tgm_stats_level1, tgm_stats_level2
from .types import (
    CutMethod,
    Level1Result,
    Level2Result,
    PhaseMethod,
    RefDim,
    RefDimension,
    TGMQuantification,
    WarpedData,
    WarpingSource,
    WarpMethod,
)
from .warping import clock_to_brain

__version__ = "0.1.0"

__all__ = [
    "clock_to_brain",
    "quantify_tgm",
    "tgm_stats_level1",
    "tgm_stats_level2",
    "WarpingSource",
    "WarpedData",
    "TGMQuantification",
    "Level1Result",
    "Level2Result",
    "RefDimension",
    "CutMethod",
    "WarpMethod",
    "PhaseMethod",
    "RefDim",
    "BrainTimeError",
    "ConfigError",
    "UnsupportedRemoval",
    "PhaseLengthMismatch",
    "GEDPhaseLengthMismatch",
    "InsufficientSignalQuality",
    "NoSpectralPeak",
    "RecoverableWarning",
    "CircularityWarning",
]
