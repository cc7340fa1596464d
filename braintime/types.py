"""
Typed records passed between the warping, quantification and statistics steps.

Each bundle carries one field per named quantity so that downstream code
never relies on positional ordering.
"""
from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, List, Optional, Tuple

import numpy as np


class CutMethod(str, Enum):
    """Windowing convention applied when the carrier phase was estimated."""

    CUTARTEFACT = "cutartefact"
    CONSISTENTTIME = "consistenttime"


class WarpMethod(str, Enum):
    STATIONARY = "stationary"
    WAVESHAPE = "waveshape"


class PhaseMethod(str, Enum):
    FFT = "FFT"
    GED = "GED"


class RefDim(str, Enum):
    """Unit of the recurrence axis: seconds or carrier cycles."""

    CLOCKTIME = "clocktime"
    BRAINTIME = "braintime"


@dataclass(frozen=True)
class RefDimension:
    dim: RefDim
    value: float

    @classmethod
    def from_window(cls, dim: RefDim, toi: Tuple[float, float], warp_freq: float) -> "RefDimension":
        """Normalize by the number of seconds (clock time) or cycles (brain time) in the window."""
        duration = float(toi[1] - toi[0])
        if dim is RefDim.BRAINTIME:
            return cls(dim=dim, value=duration * float(warp_freq))
        return cls(dim=dim, value=duration)


@dataclass
class WarpingSource:
    """Carrier phase and metadata produced by the carrier selection step.

    Parameters
    ----------
    phase : np.ndarray
        FFT-estimated carrier phase, trials x samples (radians, wrapped or unwrapped).
    times : np.ndarray
        Time vector (seconds) aligned to the phase samples.
    warp_freq : float
        Carrier frequency in Hz.
    cut_method : CutMethod
        Windowing convention used during phase estimation.
    ged_phase : np.ndarray, optional
        GED-estimated phase, same layout as ``phase``.
    waveshape : np.ndarray, optional
        Average waveshape of the carrier spanning two cycles.
    components : mne.preprocessing.ICA, optional
        Decomposition the carrier component was taken from.
    component : int, optional
        Index of the carrier component inside ``components``.
    """

    phase: np.ndarray
    times: np.ndarray
    warp_freq: float
    cut_method: CutMethod = CutMethod.CONSISTENTTIME
    ged_phase: Optional[np.ndarray] = None
    waveshape: Optional[np.ndarray] = None
    components: Any = None
    component: Optional[int] = None

    def __post_init__(self) -> None:
        self.phase = np.atleast_2d(np.asarray(self.phase, dtype=float))
        self.times = np.asarray(self.times, dtype=float)
        if self.ged_phase is not None:
            self.ged_phase = np.atleast_2d(np.asarray(self.ged_phase, dtype=float))
        if self.waveshape is not None:
            self.waveshape = np.asarray(self.waveshape, dtype=float).ravel()
        self.cut_method = CutMethod(self.cut_method)

    @property
    def sample_step(self) -> float:
        return float(self.times[1] - self.times[0])


@dataclass
class WarpedData:
    """Brain time warped trials.

    All trials share ``times`` (in cycles of the carrier) and have the same
    number of samples.
    """

    data: np.ndarray
    times: np.ndarray
    labels: np.ndarray
    ch_names: List[str]
    sfreq: float
    toi: Tuple[float, float]
    warp_freq: float
    warp_method: "WarpMethod"
    phase_method: "PhaseMethod"
    component_removed: bool = False
    diagnostics: List[Warning] = field(default_factory=list)

    @property
    def n_trials(self) -> int:
        return int(self.data.shape[0])


@dataclass
class TGMQuantification:
    tgm: np.ndarray
    ac_map: np.ndarray
    acfft: np.ndarray
    timevec: np.ndarray
    toi: Tuple[float, float]
    warp_freq: float
    refdimension: RefDimension

    @property
    def peak_amplitudes(self) -> np.ndarray:
        return self.acfft[0]

    @property
    def peak_frequencies(self) -> np.ndarray:
        return self.acfft[1]


@dataclass
class Level1Result:
    """Single-participant permutation statistics."""

    f: np.ndarray
    empspec: np.ndarray
    shuffspec: np.ndarray
    emp_tgm: np.ndarray
    shuff_tgm: np.ndarray
    refdimension: RefDimension
    warp_freq: float
    normalized: bool
    null_mean: Optional[float] = None
    null_sd: Optional[float] = None
    ci_low: Optional[np.ndarray] = None
    ci_high: Optional[np.ndarray] = None

    @property
    def numperms(self) -> int:
        return int(self.shuffspec.shape[0])

    @property
    def has_ci(self) -> bool:
        return self.ci_low is not None and self.ci_high is not None


@dataclass
class Level2Result:
    """Group-level permutation statistics."""

    f: np.ndarray
    emp_group: np.ndarray
    null_group: np.ndarray
    pvals: np.ndarray
    pvals_fdr: np.ndarray
    ci_low: Optional[np.ndarray]
    ci_high: Optional[np.ndarray]
    warp_freq_index: int
    p_warp_freq: float
    refdimension: RefDimension
    n_participants: int


__all__ = [
    "CutMethod",
    "WarpMethod",
    "PhaseMethod",
    "RefDim",
    "RefDimension",
    "WarpingSource",
    "WarpedData",
    "TGMQuantification",
    "Level1Result",
    "Level2Result",
]
