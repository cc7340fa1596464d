"""
Persistence helpers for brain time result bundles.

Arrays are stored in ``.npz`` archives under the field names of the result
records; tabular summaries are written as TSV with pandas.
"""
from __future__ import annotations

from pathlib import Path
from typing import Union

import numpy as np
import pandas as pd

from ..types import (
    Level1Result,
    Level2Result,
    PhaseMethod,
    RefDim,
    RefDimension,
    TGMQuantification,
    WarpedData,
    WarpMethod,
)

PathLike = Union[str, Path]


def _ensure_dir(p: Path) -> None:
    p.mkdir(parents=True, exist_ok=True)


def _prepare(path: PathLike, suffix: str) -> Path:
    path = Path(path)
    if path.suffix != suffix:
        path = path.with_suffix(suffix)
    _ensure_dir(path.parent)
    return path


def save_warped(warped: WarpedData, path: PathLike) -> Path:
    """Save brain time data (trials, time axis, labels and warping metadata)."""
    path = _prepare(path, ".npz")
    np.savez_compressed(
        path,
        data=warped.data,
        times=warped.times,
        labels=warped.labels,
        ch_names=np.asarray(warped.ch_names, dtype=str),
        sfreq=warped.sfreq,
        toi=np.asarray(warped.toi, dtype=float),
        warp_freq=warped.warp_freq,
        warp_method=warped.warp_method.value,
        phase_method=warped.phase_method.value,
        component_removed=warped.component_removed,
    )
    return path


def load_warped(path: PathLike) -> WarpedData:
    with np.load(Path(path), allow_pickle=False) as npz:
        return WarpedData(
            data=np.asarray(npz["data"], dtype=float),
            times=np.asarray(npz["times"], dtype=float),
            labels=np.asarray(npz["labels"]),
            ch_names=[str(c) for c in npz["ch_names"]],
            sfreq=float(npz["sfreq"]),
            toi=tuple(float(t) for t in npz["toi"]),
            warp_freq=float(npz["warp_freq"]),
            warp_method=WarpMethod(str(npz["warp_method"])),
            phase_method=PhaseMethod(str(npz["phase_method"])),
            component_removed=bool(npz["component_removed"]),
        )


def save_quantification(quant: TGMQuantification, path: PathLike) -> Path:
    """Save a TGM quantification archive plus a per-vector peak table next to it."""
    path = _prepare(path, ".npz")
    np.savez_compressed(
        path,
        tgm=quant.tgm,
        ac_map=quant.ac_map,
        acfft=quant.acfft,
        timevec=quant.timevec,
        toi=np.asarray(quant.toi, dtype=float),
        warp_freq=quant.warp_freq,
        refdimension_dim=quant.refdimension.dim.value,
        refdimension_value=quant.refdimension.value,
    )
    n = quant.acfft.shape[1] // 2
    table = pd.DataFrame({
        "dimension": ["row"] * n + ["column"] * n,
        "index": list(range(n)) * 2,
        "peak_amplitude": quant.acfft[0],
        "peak_frequency": quant.acfft[1],
    })
    table.to_csv(path.with_suffix(".tsv"), sep="\t", index=False)
    return path


def save_level1(result: Level1Result, path: PathLike) -> Path:
    path = _prepare(path, ".npz")
    extras = {}
    if result.has_ci:
        extras["ci_low"] = result.ci_low
        extras["ci_high"] = result.ci_high
    np.savez_compressed(
        path,
        f=result.f,
        empspec=result.empspec,
        shuffspec=result.shuffspec,
        emp_tgm=result.emp_tgm,
        shuff_tgm=result.shuff_tgm,
        refdimension_dim=result.refdimension.dim.value,
        refdimension_value=result.refdimension.value,
        warp_freq=result.warp_freq,
        normalized=result.normalized,
        null_mean=np.nan if result.null_mean is None else result.null_mean,
        null_sd=np.nan if result.null_sd is None else result.null_sd,
        **extras,
    )
    return path


def load_level1(path: PathLike) -> Level1Result:
    """Load a participant's first level statistics saved with :func:`save_level1`."""
    with np.load(Path(path), allow_pickle=False) as npz:
        null_mean = float(npz["null_mean"])
        null_sd = float(npz["null_sd"])
        return Level1Result(
            f=np.asarray(npz["f"], dtype=float),
            empspec=np.atleast_2d(np.asarray(npz["empspec"], dtype=float)),
            shuffspec=np.atleast_2d(np.asarray(npz["shuffspec"], dtype=float)),
            emp_tgm=np.asarray(npz["emp_tgm"], dtype=float),
            shuff_tgm=np.asarray(npz["shuff_tgm"], dtype=float),
            refdimension=RefDimension(
                dim=RefDim(str(npz["refdimension_dim"])),
                value=float(npz["refdimension_value"]),
            ),
            warp_freq=float(npz["warp_freq"]),
            normalized=bool(npz["normalized"]),
            null_mean=None if np.isnan(null_mean) else null_mean,
            null_sd=None if np.isnan(null_sd) else null_sd,
            ci_low=np.asarray(npz["ci_low"]) if "ci_low" in npz.files else None,
            ci_high=np.asarray(npz["ci_high"]) if "ci_high" in npz.files else None,
        )


def save_level2_tsv(result: Level2Result, path: PathLike) -> Path:
    """Write the frequency-wise group statistics table."""
    path = _prepare(path, ".tsv")
    nan = np.full(result.f.shape, np.nan)
    df = pd.DataFrame({
        "f": result.f,
        "emp": result.emp_group,
        "null_mean": result.null_group.mean(axis=0),
        "ci_low": result.ci_low if result.ci_low is not None else nan,
        "ci_high": result.ci_high if result.ci_high is not None else nan,
        "p": result.pvals,
        "p_fdr": result.pvals_fdr,
    })
    df["refdimension"] = result.refdimension.dim.value
    df["n_participants"] = int(result.n_participants)
    df.to_csv(path, sep="\t", index=False)
    return path


__all__ = [
    "save_warped",
    "load_warped",
    "save_quantification",
    "save_level1",
    "load_level1",
    "save_level2_tsv",
]
