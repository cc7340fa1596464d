"""
Figures for warping checks, TGM quantification and permutation statistics.

Only called when ``visualcheck`` or ``figure`` is enabled; nothing here
feeds back into returned results. Figures are written to the resolved
:class:`FigureOutput` (``out_dir`` or ``<deriv_root>/braintime/plots``) and closed.
"""
from __future__ import annotations

import logging
from pathlib import Path

import matplotlib
matplotlib.use("Agg")
import matplotlib.pyplot as plt
import numpy as np
import seaborn as sns

from .spectral import nearest
from .types import Level1Result, Level2Result, RefDim, RefDimension
from .utils.config_loader import FigureOutput

logger = logging.getLogger(__name__)

_EMP_COLOR = "tab:blue"
_PERM_COLOR = "0.3"
_WARP_COLOR = (1.0, 0.0, 1.0, 0.45)
_TEMPLATE_COLOR = (0.8, 0.1, 0.1)


def _setup_style() -> None:
    sns.set_theme(context="paper", style="white", font_scale=1.05)
    plt.rcParams.update({
        "axes.spines.top": False,
        "axes.spines.right": False,
        "axes.linewidth": 0.8,
        "font.family": "sans-serif",
        "font.sans-serif": ["Arial", "DejaVu Sans"],
    })


_setup_style()


def _ensure_dir(p: Path) -> None:
    p.mkdir(parents=True, exist_ok=True)


def finalize(fig: plt.Figure, output: FigureOutput, name: str) -> Path:
    """Save ``fig`` in every format of ``output`` and close it. Returns the base path."""
    _ensure_dir(output.root)
    base = output.root / name
    for ext in output.formats:
        fig.savefig(base.with_suffix(f".{ext}"), dpi=output.dpi, bbox_inches="tight")
    plt.close(fig)
    logger.info(f"Saved figure: {base}")
    return base


def _axis_labels(refdimension: RefDimension):
    if refdimension.dim is RefDim.BRAINTIME:
        return "cycles", "x-cycle", "y-cycle"
    return "seconds", "x-sec", "y-sec"


def plot_waveshape_template(signal: np.ndarray, timephs: np.ndarray) -> plt.Figure:
    """Repeated waveshape, its Hilbert phase and the unwrapped template phase."""
    from scipy.signal import hilbert
    from .warping import resize

    wrapped = np.angle(hilbert(signal))
    n = timephs.size
    fig, axes = plt.subplots(3, 1, figsize=(8, 8), sharex=True)
    panels = (
        (resize(signal, n)[0], "Smoothed repeated waveshape", "Amplitude"),
        (resize(wrapped, n)[0], "Phase (Hilbert transform)", "Phase (-pi to pi)"),
        (resize(np.unwrap(wrapped), n)[0], "Unwrapped phase", "Unwrapped phase"),
    )
    for ax, (values, title, ylabel) in zip(axes, panels):
        ax.plot(timephs, values, linewidth=3, color=_TEMPLATE_COLOR)
        ax.set_title(title)
        ax.set_ylabel(ylabel)
    axes[-1].set_xlabel("Time (cycles)")
    fig.tight_layout()
    return fig


def plot_alignment(
    trial_phase: np.ndarray, template: np.ndarray, ix: np.ndarray, iy: np.ndarray, trial: int, method: str
) -> plt.Figure:
    """Trial and template phase before and after alignment along the warping path."""
    fig, (ax_raw, ax_aligned) = plt.subplots(2, 1, figsize=(8, 6))
    ax_raw.plot(trial_phase, label="Clock time phase")
    ax_raw.plot(template, label=f"Template phase (method: {method})")
    ax_raw.set_title(f"Before alignment (trial {trial + 1})")
    ax_raw.set_ylabel("Unwrapped phase")
    ax_raw.legend(loc="upper left", frameon=False)

    ax_aligned.plot(trial_phase[ix], linewidth=1.5, label="Clock time phase")
    ax_aligned.plot(template[iy], linewidth=1.5, label="Template phase")
    ax_aligned.set_title(f"Alignment after warping (trial {trial + 1})")
    ax_aligned.set_xlabel("Warping path sample")
    ax_aligned.set_ylabel("Unwrapped phase")
    fig.tight_layout()
    return fig


def plot_quantification(tgm: np.ndarray, ac: np.ndarray, timevec: np.ndarray, refdimension: RefDimension) -> plt.Figure:
    """TGM and AC map side by side; the AC colour range ignores |z| >= 5 outliers."""
    unit, xshift, yshift = _axis_labels(refdimension)
    n = min(len(timevec), tgm.shape[0])
    tv = np.asarray(timevec)[:n]

    fig, (ax_tgm, ax_ac) = plt.subplots(1, 2, figsize=(12, 5))
    mesh = ax_tgm.pcolormesh(tv, tv, tgm[:n, :n], shading="auto", cmap="RdBu_r")
    fig.colorbar(mesh, ax=ax_tgm, label="performance")
    ax_tgm.set_title("Time Generalization Matrix")
    ax_tgm.set_xlabel(f"Test data ({unit})")
    ax_tgm.set_ylabel(f"Training data ({unit})")

    sd = np.std(ac)
    ac_z = (ac - np.median(ac)) / sd if sd > 0 else np.zeros_like(ac)
    inliers = ac[np.abs(ac_z) < 5]
    clim = float(np.max(inliers)) if inliers.size else 1.0
    mesh = ax_ac.pcolormesh(tv, tv, ac[:n, :n], shading="gouraud", cmap="RdBu_r", vmin=-clim, vmax=clim)
    fig.colorbar(mesh, ax=ax_ac, label="corr")
    ax_ac.set_title("Autocorrelation map")
    ax_ac.set_xlabel(f"Shift by {xshift}")
    ax_ac.set_ylabel(f"Shift by {yshift}")
    fig.tight_layout()
    return fig


def _spectrum_panel(ax, f, emp, null, ci_low, ci_high, warp_x: float, refdimension: RefDimension, title: str) -> None:
    ax.plot(f, emp, linewidth=3, color=_EMP_COLOR, label="Average emp spectrum")
    ax.plot(f, np.mean(null, axis=0), linewidth=2, color=_PERM_COLOR, label="Average perm spectrum")
    ax.axvline(warp_x, color=_WARP_COLOR, linewidth=4, label="Warped frequency")
    if ci_low is not None and ci_high is not None:
        ax.fill_between(f, ci_low, ci_high, color="black", alpha=0.15, linewidth=0, label="Conf. interv. perm spectrum")
    if refdimension.dim is RefDim.BRAINTIME:
        ax.set_xlabel("Recurrence frequency (factor of warped freq)")
    else:
        ax.set_xlabel("Recurrence frequency")
    ax.set_ylabel("Recurrence power")
    ax.set_title(title)
    ax.legend(loc="best", frameon=False)


def plot_level1(result: Level1Result) -> plt.Figure:
    """Empirical vs permuted recurrence spectra; in brain time also the null at 1 cycle."""
    emp = np.ravel(result.empspec)
    braintime = result.refdimension.dim is RefDim.BRAINTIME
    warp_x = 1.0 if braintime else result.warp_freq

    if braintime:
        fig, (ax_violin, ax_spec) = plt.subplots(1, 2, figsize=(16, 6), gridspec_kw={"width_ratios": [1, 2]})
        wfreq = nearest(result.f, 1.0)
        sns.violinplot(y=result.shuffspec[:, wfreq], ax=ax_violin, color="0.8", inner="box")
        ax_violin.plot(0, emp[wfreq], "o", markersize=6, color=_EMP_COLOR, label="Empirical recurrence power")
        ax_violin.set_ylabel("Recurrence power")
        ax_violin.set_xlabel("Warped frequency (1 Hz)")
        ax_violin.set_title("1st level recurrence at warped frequency")
        ax_violin.legend(loc="best", frameon=False)
    else:
        fig, ax_spec = plt.subplots(figsize=(10, 6))

    _spectrum_panel(ax_spec, result.f, emp, result.shuffspec, result.ci_low, result.ci_high, warp_x,
                    result.refdimension, "Recurrence power spectra (1st level stats)")
    fig.tight_layout()
    return fig


def plot_level2(result: Level2Result) -> plt.Figure:
    """Group spectra with the permutation interval and frequency-wise p-values."""
    warp_x = float(result.f[result.warp_freq_index])
    fig, (ax_spec, ax_p) = plt.subplots(2, 1, figsize=(10, 8), sharex=True)
    _spectrum_panel(ax_spec, result.f, result.emp_group, result.null_group, result.ci_low, result.ci_high, warp_x,
                    result.refdimension, f"Recurrence power spectra (2nd level stats, N={result.n_participants})")
    ax_p.plot(result.f, result.pvals, color=_EMP_COLOR, label="p")
    ax_p.plot(result.f, result.pvals_fdr, color=_PERM_COLOR, linestyle="--", label="p (FDR)")
    ax_p.axhline(0.05, color="k", linewidth=0.8, linestyle=":")
    ax_p.set_yscale("log")
    ax_p.set_ylabel("p-value")
    ax_p.legend(loc="best", frameon=False)
    fig.tight_layout()
    return fig


__all__ = [
    "finalize",
    "plot_waveshape_template",
    "plot_alignment",
    "plot_quantification",
    "plot_level1",
    "plot_level2",
]
