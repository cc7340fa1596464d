"""2-D autocorrelation of time generalization matrices."""
from __future__ import annotations

import numpy as np


def autocorr2d(m: np.ndarray) -> np.ndarray:
    """Circular 2-D autocorrelation of ``m``.

    Computed through the Wiener-Khinchin relation on the mean-removed
    matrix and divided by the zero-lag value, so the centre of the map
    (zero shift, after ``fftshift``) equals 1. Cell ``(i, j)`` holds the
    correlation of the matrix with itself shifted by
    ``(i - n // 2, j - m // 2)``. A constant input yields zeros.
    """
    m = np.asarray(m, dtype=float)
    if m.ndim != 2:
        raise ValueError(f"autocorr2d expects a 2-D matrix, got shape {m.shape}")
    if np.ptp(m) == 0:
        return np.zeros_like(m)
    x = m - m.mean()
    spec = np.fft.fft2(x)
    raw = np.real(np.fft.ifft2(spec * np.conj(spec)))
    return np.fft.fftshift(raw / raw[0, 0])


__all__ = ["autocorr2d"]
