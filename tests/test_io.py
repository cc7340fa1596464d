import numpy as np
import pandas as pd

from braintime.stats import tgm_stats_level2
from braintime.types import (
    Level1Result,
    PhaseMethod,
    RefDim,
    RefDimension,
    TGMQuantification,
    WarpedData,
    WarpMethod,
)
from braintime.utils.io_utils import (
    load_level1,
    load_warped,
    save_level1,
    save_level2_tsv,
    save_quantification,
    save_warped,
)


def _level1(seed=0, with_ci=False):
    rng = np.random.default_rng(seed)
    shuffspec = rng.random((25, 6))
    return Level1Result(
        f=np.linspace(0.125, 0.75, 6),
        empspec=rng.random((1, 6)),
        shuffspec=shuffspec,
        emp_tgm=rng.random((8, 8)),
        shuff_tgm=rng.random((25, 8, 8)),
        refdimension=RefDimension(RefDim.BRAINTIME, 24.0),
        warp_freq=8.0,
        normalized=with_ci,
        null_mean=0.5 if with_ci else None,
        null_sd=0.1 if with_ci else None,
        ci_low=np.percentile(shuffspec, 2.5, axis=0) if with_ci else None,
        ci_high=np.percentile(shuffspec, 97.5, axis=0) if with_ci else None,
    )


def test_level1_archive_round_trip(tmp_path):
    res = _level1(with_ci=True)
    path = save_level1(res, tmp_path / "sub-01" / "level1")
    assert path.suffix == ".npz"
    loaded = load_level1(path)
    assert np.allclose(loaded.shuffspec, res.shuffspec)
    assert np.allclose(loaded.ci_high, res.ci_high)
    assert loaded.refdimension == res.refdimension
    assert loaded.null_sd == 0.1
    assert loaded.normalized


def test_level1_archive_without_optional_fields(tmp_path):
    loaded = load_level1(save_level1(_level1(), tmp_path / "level1.npz"))
    assert loaded.null_mean is None and loaded.null_sd is None
    assert not loaded.has_ci


def test_warped_archive_round_trip(tmp_path):
    warped = WarpedData(
        data=np.ones((3, 2, 16)),
        times=np.linspace(0, 2, 16),
        labels=np.array([1, 2, 1]),
        ch_names=["Cz", "Pz"],
        sfreq=128.0,
        toi=(0.5, 0.75),
        warp_freq=8.0,
        warp_method=WarpMethod.WAVESHAPE,
        phase_method=PhaseMethod.GED,
        component_removed=True,
    )
    loaded = load_warped(save_warped(warped, tmp_path / "warped.npz"))
    assert loaded.ch_names == ["Cz", "Pz"]
    assert loaded.toi == (0.5, 0.75)
    assert loaded.warp_method is WarpMethod.WAVESHAPE
    assert loaded.phase_method is PhaseMethod.GED
    assert loaded.component_removed
    assert np.array_equal(loaded.labels, warped.labels)


def test_quantification_peak_table(tmp_path):
    acfft = np.vstack([np.arange(8.0), np.full(8, 0.5)])
    quant = TGMQuantification(
        tgm=np.zeros((4, 4)),
        ac_map=np.zeros((4, 4)),
        acfft=acfft,
        timevec=np.arange(4.0),
        toi=(0.0, 0.5),
        warp_freq=8.0,
        refdimension=RefDimension(RefDim.BRAINTIME, 4.0),
    )
    path = save_quantification(quant, tmp_path / "quant.npz")
    table = pd.read_csv(path.with_suffix(".tsv"), sep="\t")
    assert list(table["dimension"]) == ["row"] * 4 + ["column"] * 4
    assert np.allclose(table["peak_amplitude"], acfft[0])


def test_level2_table(tmp_path):
    group = tgm_stats_level2([_level1(1), _level1(2)], {"numperms2": 30, "seed": 1})
    path = save_level2_tsv(group, tmp_path / "group" / "level2.tsv")
    df = pd.read_csv(path, sep="\t")
    assert list(df.columns[:7]) == ["f", "emp", "null_mean", "ci_low", "ci_high", "p", "p_fdr"]
    assert len(df) == 6
    assert (df["n_participants"] == 2).all()
