"""
Clock to brain time warping.

The unwrapped phase of the carrier in every trial is dynamically time warped
onto a template phase (a stationary sinusoid or the carrier's average
waveshape). The warping path marks where each template cycle starts and
ends in the trial; every cycle of the trial is then resampled to the same
number of samples, so the carrier's phase becomes linear in the new time
axis. Finally each trial is resized to the requested output length.

Output time is expressed in cycles of the carrier: one unit of brain time
is one carrier cycle.
"""
from __future__ import annotations

import logging
import warnings
from typing import Any, List, Mapping, Optional, Tuple

import mne
import numpy as np
from scipy.interpolate import interp1d
from scipy.ndimage import gaussian_filter1d
from scipy.signal import find_peaks, hilbert

from . import reporting
from .errors import (
    CircularityWarning,
    ConfigError,
    GEDPhaseLengthMismatch,
    InsufficientSignalQuality,
    PhaseLengthMismatch,
    RecoverableWarning,
    UnsupportedRemoval,
)
from .spectral import nearest
from .types import CutMethod, PhaseMethod, WarpedData, WarpingSource, WarpMethod
from .utils.config_loader import BrainTimeConfig, WarpConfig

logger = logging.getLogger(__name__)

# Phase/data length differences (in samples) tolerated silently and with a warning
_SILENT_LENGTH_DIFF = 1
_MAX_LENGTH_DIFF = 10
# Relative length difference tolerated between GED and FFT phase estimates
_GED_LENGTH_TOLERANCE = 0.05
# Number of trials shown when visualcheck is enabled
_N_CHECK_TRIALS = 3


def resize(x: np.ndarray, n: int) -> np.ndarray:
    """Linearly resample ``x`` to ``n`` samples along its last axis.

    Sample centres are aligned the way image resizing aligns pixel centres,
    so the first and last samples map onto the first and last outputs when
    stretching. A single-sample input is repeated.
    """
    x = np.atleast_2d(np.asarray(x, dtype=float))
    k = x.shape[-1]
    if k == n:
        return x.copy()
    if k == 1:
        return np.repeat(x, n, axis=-1)
    u = (np.arange(n) + 0.5) * (k / n) - 0.5
    u = np.clip(u, 0, k - 1)
    return interp1d(np.arange(k), x, axis=-1, kind="linear", assume_sorted=True)(u)


def dtw_path(x: np.ndarray, y: np.ndarray) -> Tuple[np.ndarray, np.ndarray, float]:
    """Dynamic time warping of two 1-D sequences under absolute-difference cost.

    Steps are restricted to (1, 0), (0, 1) and (1, 1), so the path is
    monotonic, starts at ``(0, 0)`` and ends at ``(len(x) - 1, len(y) - 1)``.

    Returns
    -------
    ix : np.ndarray
        Indices into ``x`` along the path.
    iy : np.ndarray
        Indices into ``y`` along the path, same length as ``ix``.
    dist : float
        Cumulative cost of the path.
    """
    x = np.asarray(x, dtype=float).ravel()
    y = np.asarray(y, dtype=float).ravel()
    n, m = x.size, y.size
    if n == 0 or m == 0:
        raise ValueError("dtw_path requires two non-empty sequences")

    cost = np.abs(x[:, None] - y[None, :])
    acc = np.empty((n, m))
    acc[0] = np.cumsum(cost[0])
    reach = np.empty(m)
    for i in range(1, n):
        prev = acc[i - 1]
        reach[0] = prev[0]
        np.minimum(prev[:-1], prev[1:], out=reach[1:])
        # acc[i, j] = cost[i, j] + min(reach[j], acc[i, j - 1]), solved as a running minimum
        csum = np.cumsum(cost[i])
        shifted = np.concatenate(([0.0], csum[:-1]))
        acc[i] = csum + np.minimum.accumulate(reach - shifted)

    i, j = n - 1, m - 1
    ix: List[int] = [i]
    iy: List[int] = [j]
    while i > 0 or j > 0:
        if i == 0:
            j -= 1
        elif j == 0:
            i -= 1
        else:
            step = int(np.argmin((acc[i - 1, j - 1], acc[i - 1, j], acc[i, j - 1])))
            if step == 0:
                i, j = i - 1, j - 1
            elif step == 1:
                i -= 1
            else:
                j -= 1
        ix.append(i)
        iy.append(j)
    return np.asarray(ix[::-1]), np.asarray(iy[::-1]), float(acc[-1, -1])


def stationary_template(n_cycles: float, length: int) -> np.ndarray:
    """Linear phase ramp from -pi over ``n_cycles`` full cycles."""
    return np.linspace(-np.pi, 2 * np.pi * n_cycles - np.pi, int(length))


def _smooth(waveshape: np.ndarray, window: int) -> np.ndarray:
    sigma = window / 5.0
    return gaussian_filter1d(np.asarray(waveshape, dtype=float), sigma=sigma, mode="nearest",
                             truncate=((window - 1) / 2.0) / sigma)


def waveshape_signal(waveshape: np.ndarray, n_cycles: float, smoothing: int = 25) -> np.ndarray:
    """Repeat one smoothed cycle of the average waveshape ``n_cycles`` times.

    The waveshape is cut between its two troughs. Whole cycles are tiled and
    the fractional remainder is appended from the start of the cut cycle.
    """
    smoothed = _smooth(waveshape, smoothing)
    troughs, _ = find_peaks(-smoothed)
    if troughs.size != 2:
        raise InsufficientSignalQuality(
            f"The waveshape of the warping signal is too noisy ({troughs.size} troughs after smoothing, "
            "expected 2). Please set warpmethod='stationary' and try again."
        )
    cycle = smoothed[troughs[0] + 1:troughs[1] + 1]
    whole = int(np.floor(n_cycles))
    signal = np.tile(cycle, whole)
    missing = n_cycles - whole
    extra = int(round(cycle.size * missing))
    if missing > 0 and extra > 0:
        signal = np.concatenate([signal, cycle[:extra]])
    return signal


def waveshape_template(waveshape: np.ndarray, n_cycles: float, length: int, smoothing: int = 25) -> np.ndarray:
    """Unwrapped Hilbert phase of the repeated average waveshape, resized to ``length``."""
    signal = waveshape_signal(waveshape, n_cycles, smoothing)
    phase = np.unwrap(np.angle(hilbert(signal)))
    return resize(phase, int(length))[0]


def cycle_boundaries(iy: np.ndarray, cycledur: int) -> np.ndarray:
    """Positions along the warping path where a template cycle ends.

    A position is a boundary when its template index is the last sample of a
    cycle (``(iy + 1) % cycledur == 0``) and the path moves on to the next
    template sample afterwards. The final position always closes a cycle.
    """
    iy = np.asarray(iy)
    marks = np.zeros(iy.size, dtype=bool)
    marks[-1] = True
    if iy.size > 1:
        marks[:-1] = ((iy[:-1] + 1) % cycledur == 0) & (iy[:-1] != iy[1:])
    return np.flatnonzero(marks)


def warp_trial(
    trial: np.ndarray,
    phase: np.ndarray,
    template: np.ndarray,
    cycledur: int,
    n_cycles: int,
    out_len: int,
) -> Tuple[np.ndarray, np.ndarray, np.ndarray]:
    """Warp one trial (channels x samples) so each carrier cycle spans ``cycledur`` samples.

    Returns the warped trial resized to ``out_len`` samples, plus the
    warping path indices ``ix`` (trial) and ``iy`` (template).
    """
    trial = np.atleast_2d(np.asarray(trial, dtype=float))
    ix, iy, _ = dtw_path(np.unwrap(np.asarray(phase, dtype=float)), template)
    bounds = cycle_boundaries(iy, cycledur)
    if bounds.size < n_cycles:
        raise ValueError(
            f"Warping path resolved {bounds.size} cycles but {n_cycles} were expected; "
            "check that the template spans the same number of cycles as the trial."
        )
    bounds = bounds[:n_cycles]
    starts = np.concatenate(([0], bounds[:-1] + 1))
    cycles = [resize(trial[:, ix[s:e + 1]], cycledur) for s, e in zip(starts, bounds)]
    warped = resize(np.concatenate(cycles, axis=1), out_len)
    return warped, ix, iy


def _emit(diagnostics: List[Warning], warning: Warning) -> None:
    logger.warning(str(warning))
    warnings.warn(warning, stacklevel=3)
    diagnostics.append(warning)


def _is_ica(components: Any) -> bool:
    return isinstance(components, mne.preprocessing.ICA)


def _remove_component(
    epochs: mne.BaseEpochs, source: WarpingSource, removecomp: Optional[bool]
) -> Tuple[mne.BaseEpochs, bool]:
    removable = _is_ica(source.components) and source.component is not None
    if removecomp is False:
        return epochs, False
    if removecomp is True and not removable:
        raise UnsupportedRemoval(
            "It is not possible to remove the warping component, because the warping sources are "
            "not ICA components. Set removecomp='no' to keep the data as is."
        )
    if not removable:
        return epochs, False
    cleaned = source.components.apply(epochs.copy(), exclude=[int(source.component)])
    logger.info(f"Removed carrier component {source.component} from the clock time data")
    return cleaned, True


def _select_phase(fft_phs: np.ndarray, ged_phs: Optional[np.ndarray], method: PhaseMethod) -> np.ndarray:
    if method is PhaseMethod.FFT:
        return fft_phs
    if ged_phs is None:
        raise ConfigError("phasemethod='GED' requires a GED phase estimate in the warping source; set phasemethod='FFT'.")
    n_fft, n_ged = fft_phs.shape[1], ged_phs.shape[1]
    if abs(n_fft - n_ged) > _GED_LENGTH_TOLERANCE * max(n_fft, n_ged):
        raise GEDPhaseLengthMismatch(
            f"The length of the GED estimated phase ({n_ged}) substantially differs from the length of the "
            f"FFT estimated phase ({n_fft}). Please set phasemethod='FFT' or change the time window tested "
            "during carrier selection."
        )
    return ged_phs


def clock_to_brain(
    epochs: mne.BaseEpochs,
    source: WarpingSource,
    options: Optional[Mapping[str, Any]] = None,
    labels: Optional[np.ndarray] = None,
    config: Optional[BrainTimeConfig] = None,
) -> WarpedData:
    """Warp clock time epochs to brain time.

    Parameters
    ----------
    epochs : mne.BaseEpochs
        Preprocessed clock time data of all classes.
    source : WarpingSource
        Carrier phase (one row per epoch) and metadata from carrier selection.
    options : mapping, optional
        Call options: ``removecomp``, ``warpmethod`` (or ``method``),
        ``phasemethod``, ``visualcheck``, ``btsrate``, ``out_dir``.
    labels : np.ndarray, optional
        Class label per epoch. Defaults to ``epochs.events[:, 2]``.
    config : BrainTimeConfig, optional
        Configuration providing defaults for unset options.

    Returns
    -------
    WarpedData
        Brain time trials sharing one cycle-indexed time axis.
    """
    cfg = WarpConfig.resolve(options, config)
    diagnostics: List[Warning] = []

    labels = np.asarray(epochs.events[:, 2] if labels is None else labels)
    if labels.shape[0] != len(epochs):
        raise ValueError(f"Got {labels.shape[0]} labels for {len(epochs)} epochs.")
    if source.phase.shape[0] != len(epochs):
        raise ValueError(f"Warping source holds phase for {source.phase.shape[0]} trials but the data has {len(epochs)}.")

    warp_freq = float(source.warp_freq)
    t0_src, t1_src = float(source.times[0]), float(source.times[-1])
    if source.cut_method is CutMethod.CUTARTEFACT:
        mintime, maxtime = t0_src + 0.5, t1_src - 0.5
    else:
        mintime, maxtime = t0_src, t1_src
    mintime_ind = nearest(source.times, mintime)
    maxtime_ind = nearest(source.times, maxtime)

    phs_sr = cfg.btsrate if cfg.btsrate is not None else int(round(epochs.info["sfreq"]))
    logger.info(
        f"Warping {len(epochs)} trials to brain time: carrier {warp_freq:.2f} Hz, "
        f"method={cfg.warp_method.value}, phase={cfg.phase_method.value}, output rate={phs_sr}"
    )

    epochs, removed = _remove_component(epochs, source, cfg.removecomp)

    # Cut to the window used for phase estimation (plus one cycle per side for cutartefact)
    fft_phs = source.phase
    ged_phs = source.ged_phase
    if source.cut_method is CutMethod.CUTARTEFACT:
        cyclesample = int(round((1.0 / warp_freq) / source.sample_step))
        lo, hi = mintime_ind - cyclesample, maxtime_ind + cyclesample + 1
        if lo < 0 or hi > fft_phs.shape[1]:
            raise PhaseLengthMismatch(
                "The carrier phase does not extend one cycle beyond the window of interest, which "
                "cutmethod='cutartefact' requires. Re-run carrier selection with a longer window."
            )
        tmin, tmax = mintime - 1.0 / warp_freq, maxtime + 1.0 / warp_freq
        fft_phs = fft_phs[:, lo:hi]
        if ged_phs is not None:
            ged_phs = ged_phs[:, lo:hi]
    else:
        tmin, tmax = t0_src, t1_src
    epochs = epochs.copy().crop(tmin=tmin, tmax=tmax, include_tmax=True)
    data = epochs.get_data()
    times = epochs.times.copy()

    phs = _select_phase(fft_phs, ged_phs, cfg.phase_method)

    n_data, n_phs = data.shape[-1], phs.shape[1]
    diff = abs(n_data - n_phs)
    if diff > _MAX_LENGTH_DIFF:
        raise PhaseLengthMismatch(
            f"The phase ({n_phs} samples) and data ({n_data} samples) differ in length by more than "
            f"{_MAX_LENGTH_DIFF} samples. This may mean the wrong parameters were used during carrier "
            "selection; check its time window and the sampling rate of the data."
        )
    if diff > _SILENT_LENGTH_DIFF:
        _emit(diagnostics, RecoverableWarning(
            f"The phase ({n_phs} samples) and data ({n_data} samples) differ in length by {diff} samples; "
            "truncating to the shorter one. This may mean the wrong parameters were used during carrier selection."
        ))
    n = min(n_data, n_phs)
    phs = phs[:, :n]
    data = data[..., :n]
    times = times[:n]

    nsec = float(times[-1] - times[0])
    n_cycles_exact = warp_freq * nsec
    cycledur = int(round(phs_sr * nsec / n_cycles_exact))
    temp_len = int(round(n_cycles_exact * cycledur))
    out_len = int(round(phs_sr * nsec))
    n_cycles = int(np.floor(n_cycles_exact + 1e-9))
    timephs = np.linspace(0, n_cycles_exact, out_len)
    logger.info(f"{n_cycles_exact:.2f} cycles of {cycledur} samples; {out_len} samples per warped trial")

    if cfg.warp_method is WarpMethod.WAVESHAPE:
        if source.waveshape is None:
            raise ConfigError("warpmethod='waveshape' requires the average waveshape in the warping source; set warpmethod='stationary'.")
        template = waveshape_template(source.waveshape, n_cycles_exact, temp_len, cfg.waveshape_smoothing)
        if cfg.visualcheck:
            signal = waveshape_signal(source.waveshape, n_cycles_exact, cfg.waveshape_smoothing)
            fig = reporting.plot_waveshape_template(signal, timephs)
            reporting.finalize(fig, cfg.figures, "warping_template")
    else:
        template = stationary_template(n_cycles_exact, temp_len)

    warped = np.empty((data.shape[0], data.shape[1], out_len))
    for nt in range(data.shape[0]):
        trial_phase = np.unwrap(phs[nt])
        warped[nt], ix, iy = warp_trial(data[nt], trial_phase, template, cycledur, n_cycles, out_len)
        if cfg.visualcheck and nt < _N_CHECK_TRIALS:
            fig = reporting.plot_alignment(trial_phase, template, ix, iy, nt, cfg.warp_method.value)
            reporting.finalize(fig, cfg.figures, f"warping_alignment_trial{nt + 1}")

    if source.cut_method is CutMethod.CUTARTEFACT:
        startind = nearest(timephs, 1)
        endind = nearest(timephs, warp_freq * (maxtime - mintime) + 1)
        warped = warped[..., startind:endind + 1]
        timephs = timephs[startind:endind + 1] - 1
    toi = (mintime, maxtime)

    if not removed:
        if _is_ica(source.components):
            msg = ("The warping sources look like ICA components obtained from the clock time data. When using "
                   "brain time data for analyses outside of this package, it is strongly recommended to remove "
                   "the component by setting removecomp='yes'.")
        else:
            msg = ("When using brain time data for analyses outside of this package, please ensure that the clock "
                   "time data and warping sources were sufficiently independent to avoid circularity.")
        _emit(diagnostics, CircularityWarning(msg))

    return WarpedData(
        data=warped,
        times=timephs,
        labels=labels,
        ch_names=list(epochs.ch_names),
        sfreq=float(phs_sr),
        toi=toi,
        warp_freq=warp_freq,
        warp_method=cfg.warp_method,
        phase_method=cfg.phase_method,
        component_removed=removed,
        diagnostics=diagnostics,
    )


__all__ = [
    "resize",
    "dtw_path",
    "stationary_template",
    "waveshape_signal",
    "waveshape_template",
    "cycle_boundaries",
    "warp_trial",
    "clock_to_brain",
]
