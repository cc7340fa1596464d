"""
Hanning-tapered power spectra used for recurrence quantification.

The effective sampling ``rate`` is expressed per unit of the reference
dimension: samples per second in clock time, samples per cycle in brain
time. Frequency resolution is ``rate / n_samples``; range selection always
snaps to the nearest bins, never interpolating between them.
"""
from __future__ import annotations

from typing import Sequence, Tuple

import numpy as np
from scipy.signal import find_peaks, periodogram

from .errors import NoSpectralPeak


def nearest(values: Sequence[float], target: float) -> int:
    """Index of the element of ``values`` closest to ``target`` (first one on ties)."""
    values = np.asarray(values, dtype=float)
    return int(np.argmin(np.abs(values - float(target))))


def power_spectrum(x: np.ndarray, rate: float) -> Tuple[np.ndarray, np.ndarray]:
    """One-sided Hanning-tapered PSD of a single vector.

    The mean is removed before tapering.

    Returns
    -------
    ps : np.ndarray
        Power spectral density.
    f : np.ndarray
        Frequency of each bin, from 0 to ``rate / 2``.
    """
    x = np.asarray(x, dtype=float).ravel()
    f, ps = periodogram(x, fs=float(rate), window="hann", detrend="constant", scaling="density")
    return ps, f


def band_spectrum(mp: np.ndarray, rate: float, foi: Sequence[float]) -> Tuple[np.ndarray, np.ndarray]:
    """Average power spectrum of a vector or matrix restricted to ``foi``.

    A single row or column is treated as one observation. For a matrix
    (TGM or AC map) every row and every column is an observation and the
    spectra are averaged.

    Parameters
    ----------
    mp : np.ndarray
        Vector, or square matrix.
    rate : float
        Samples per unit of the reference dimension.
    foi : sequence of float
        Frequency range of interest; first and last elements are used.

    Returns
    -------
    ps : np.ndarray
        Power between the bins nearest ``foi[0]`` and ``foi[-1]`` (inclusive).
    f : np.ndarray
        Frequencies of those bins.
    """
    mp = np.asarray(mp, dtype=float)
    if mp.ndim == 1 or 1 in mp.shape:
        observations = [mp.ravel()]
    elif mp.ndim == 2:
        if mp.shape[0] != mp.shape[1]:
            raise ValueError(
                f"Rows and columns must share a frequency axis; got a {mp.shape[0]}x{mp.shape[1]} matrix. "
                "Pass a square TGM/AC map or a single vector."
            )
        observations = list(mp) + list(mp.T)
    else:
        raise ValueError(f"Expected a vector or a matrix, got an array with {mp.ndim} dimensions.")

    spectra = []
    f = None
    for obs in observations:
        ps, f = power_spectrum(obs, rate)
        spectra.append(ps)
    ps_mean = np.mean(np.vstack(spectra), axis=0)

    lo = nearest(f, foi[0])
    hi = nearest(f, foi[-1])
    return ps_mean[lo:hi + 1], f[lo:hi + 1]


def dominant_peak(ps: np.ndarray, f: np.ndarray) -> Tuple[float, float]:
    """Amplitude and frequency of the largest local maximum of ``ps``.

    Raises
    ------
    NoSpectralPeak
        If the spectrum has no local maximum (e.g. monotonic or flat).
    """
    ps = np.asarray(ps, dtype=float)
    locs, _ = find_peaks(ps)
    if locs.size == 0:
        raise NoSpectralPeak(
            "No local maximum found in the recurrence spectrum. This usually means the TGM is "
            "flat or too short for the chosen 'refdimension'; check the classifier output and the "
            "time window of the brain time data."
        )
    best = locs[int(np.argmax(ps[locs]))]
    return float(ps[best]), float(np.asarray(f)[best])


__all__ = [
    "nearest",
    "power_spectrum",
    "band_spectrum",
    "dominant_peak",
]
