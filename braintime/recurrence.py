"""
Cross-time recurrence quantification of time generalization matrices.

The TGM's autocorrelation map (AC map) is analysed row by row and column by
column; the dominant spectral peak of each vector indicates the rate at
which decoded patterns recur, in Hz (clock time) or in multiples of the
carrier frequency (brain time).
"""
from __future__ import annotations

import logging
from typing import Any, Mapping, Optional

import numpy as np

from . import reporting
from .autocorr import autocorr2d
from .spectral import dominant_peak, power_spectrum
from .types import RefDim, RefDimension, TGMQuantification, WarpedData
from .utils.config_loader import BrainTimeConfig, QuantifyConfig

logger = logging.getLogger(__name__)


def recurrence_peaks(ac: np.ndarray, rate: float) -> np.ndarray:
    """Dominant peak of every row and every column of an AC map.

    Returns
    -------
    np.ndarray
        2 x (2 * n) array. Row 0 holds peak amplitudes, row 1 peak
        frequencies; the first n columns come from AC rows, the last n from
        AC columns.
    """
    ac = np.asarray(ac, dtype=float)
    nvecs = ac.shape[0]
    dim1 = np.zeros((2, nvecs))
    dim2 = np.zeros((2, nvecs))
    for vec in range(nvecs):
        ps, f = power_spectrum(ac[vec, :], rate)
        dim1[:, vec] = dominant_peak(ps, f)

        ps, f = power_spectrum(ac[:, vec], rate)
        dim2[:, vec] = dominant_peak(ps, f)
    return np.hstack([dim1, dim2])


def quantify_tgm(
    tgm: np.ndarray,
    warped: WarpedData,
    options: Optional[Mapping[str, Any]] = None,
    config: Optional[BrainTimeConfig] = None,
) -> TGMQuantification:
    """Quantify recurrence in a TGM obtained from brain time data.

    Parameters
    ----------
    tgm : np.ndarray
        Square time generalization matrix (train time x test time).
    warped : WarpedData
        Brain time data the TGM was computed from; provides the time window,
        carrier frequency and time axis.
    options : mapping, optional
        ``refdimension`` ('clocktime' or 'braintime'), ``figure``, ``out_dir``.
    config : BrainTimeConfig, optional
        Configuration providing defaults for unset options.
    """
    cfg = QuantifyConfig.resolve(options, config)
    tgm = np.asarray(tgm, dtype=float)
    if tgm.ndim != 2 or tgm.shape[0] != tgm.shape[1]:
        raise ValueError(f"Expected a square TGM, got shape {tgm.shape}")

    toi = (float(warped.toi[0]), float(warped.toi[1]))
    refdimension = RefDimension.from_window(cfg.refdimension, toi, warped.warp_freq)
    if refdimension.dim is RefDim.BRAINTIME:
        timevec = np.asarray(warped.times, dtype=float)
    else:
        timevec = np.linspace(toi[0], toi[1], len(warped.times))

    ac = autocorr2d(tgm)
    rate = ac.shape[0] / refdimension.value
    acfft = recurrence_peaks(ac, rate)
    logger.info(
        f"Quantified {tgm.shape[0]}x{tgm.shape[1]} TGM ({refdimension.dim.value}); "
        f"median peak frequency rows={np.median(acfft[1, :tgm.shape[0]]):.3f}, "
        f"columns={np.median(acfft[1, tgm.shape[0]:]):.3f}"
    )

    if cfg.figure:
        fig = reporting.plot_quantification(tgm, ac, timevec, refdimension)
        reporting.finalize(fig, cfg.figures, f"tgm_quantification_{refdimension.dim.value}")

    return TGMQuantification(
        tgm=tgm,
        ac_map=ac,
        acfft=acfft,
        timevec=timevec,
        toi=toi,
        warp_freq=float(warped.warp_freq),
        refdimension=refdimension,
    )


__all__ = ["recurrence_peaks", "quantify_tgm"]
