import numpy as np
import pytest

from braintime.autocorr import autocorr2d
from braintime.spectral import power_spectrum
from braintime.stats import (
    confidence_interval,
    normalize_by_null,
    recurrence_spectrum,
    tgm_stats_level1,
    tgm_stats_level2,
)
from braintime.types import Level1Result, RefDim, RefDimension, TGMQuantification

N_TRIALS, N_CH, N_TIMES = 20, 2, 32


def _pattern_classifier(X, y):
    """Cheap stand-in for a decoder: outer product of the class-contrast time course."""
    w = np.where(y == y[0], 1.0, -1.0)
    pattern = np.tensordot(w, X.mean(axis=1), axes=1) / len(y)
    return np.outer(pattern, pattern)


def _data(seed=0):
    rng = np.random.default_rng(seed)
    X = rng.standard_normal((N_TRIALS, N_CH, N_TIMES))
    labels = np.repeat([1, 2], N_TRIALS // 2)
    X[labels == 2] += np.sin(2 * np.pi * 4 * np.arange(N_TIMES) / N_TIMES)
    return X, labels


def _quant(tgm, dim=RefDim.CLOCKTIME, warp_freq=8.0):
    refdimension = RefDimension.from_window(dim, (0.0, 1.0), warp_freq)
    return TGMQuantification(
        tgm=tgm,
        ac_map=autocorr2d(tgm),
        acfft=np.zeros((2, 2 * tgm.shape[0])),
        timevec=np.linspace(0, 1, tgm.shape[0]),
        toi=(0.0, 1.0),
        warp_freq=warp_freq,
        refdimension=refdimension,
    )


def _level1(empspec, shuffspec, f=None, dim=RefDim.BRAINTIME):
    f = np.arange(1, len(empspec) + 1) / 8.0 if f is None else f
    return Level1Result(
        f=f,
        empspec=np.atleast_2d(empspec),
        shuffspec=shuffspec,
        emp_tgm=np.zeros((4, 4)),
        shuff_tgm=np.zeros((shuffspec.shape[0], 4, 4)),
        refdimension=RefDimension(dim=dim, value=8.0),
        warp_freq=8.0,
        normalized=False,
    )


def test_normalizing_a_normalized_null_is_a_no_op():
    rng = np.random.default_rng(0)
    null = rng.normal(3.0, 2.0, (10, 5, 5))
    emp = rng.normal(3.0, 2.0, (5, 5))
    emp_z, null_z, mn, sd = normalize_by_null(emp, null)
    assert mn == pytest.approx(np.mean(null))
    emp_zz, null_zz, mn2, sd2 = normalize_by_null(emp_z, null_z)
    assert mn2 == pytest.approx(0.0, abs=1e-12)
    assert sd2 == pytest.approx(1.0)
    assert np.allclose(null_zz, null_z)
    assert np.allclose(emp_zz, emp_z)


def test_normalizing_by_constant_null_fails():
    with pytest.raises(ValueError):
        normalize_by_null(np.ones((3, 3)), np.ones((4, 3, 3)))


def test_confidence_interval_needs_twenty_permutations():
    rng = np.random.default_rng(1)
    assert confidence_interval(rng.random((19, 8)), 20) == (None, None)
    low, high = confidence_interval(rng.random((20, 8)), 20)
    assert low.shape == high.shape == (8,)
    assert np.all(low <= high)


def test_level1_shapes_without_normalization():
    X, labels = _data()
    quant = _quant(_pattern_classifier(X, labels))
    res = tgm_stats_level1(quant, X, labels, _pattern_classifier,
                           {"numperms1": 5, "normalize": "no", "n_jobs": 1, "seed": 3})
    # clock time: rate 32 per second, statsrange 1..30 snaps to bins 1..16
    assert res.f.shape == (16,)
    assert res.f[0] == pytest.approx(1.0)
    assert res.shuffspec.shape == (5, 16)
    assert res.empspec.shape == (1, 16)
    assert res.shuff_tgm.shape == (5, N_TIMES, N_TIMES)
    assert res.numperms == 5
    assert not res.has_ci
    assert res.null_mean is None and not res.normalized
    assert np.allclose(res.emp_tgm, quant.tgm)


def test_level1_is_reproducible_for_a_seed():
    X, labels = _data()
    quant = _quant(_pattern_classifier(X, labels))
    opts = {"numperms1": 4, "normalize": "yes", "seed": 11}
    first = tgm_stats_level1(quant, X, labels, _pattern_classifier, opts)
    second = tgm_stats_level1(quant, X, labels, _pattern_classifier, opts)
    assert np.allclose(first.shuffspec, second.shuffspec)
    assert first.normalized and first.null_sd > 0
    other = tgm_stats_level1(quant, X, labels, _pattern_classifier, {**opts, "seed": 12})
    assert not np.allclose(first.shuffspec, other.shuffspec)


def test_level1_brain_time_range_and_figure(tmp_path):
    X, labels = _data()
    quant = _quant(_pattern_classifier(X, labels), dim=RefDim.BRAINTIME)
    res = tgm_stats_level1(quant, X, labels, _pattern_classifier,
                           {"numperms1": 20, "normalize": "no", "figure": "yes", "out_dir": tmp_path})
    # brain time: 4 samples per cycle, bins of 1/8 cycle, statsrange divided by the warped frequency
    assert res.f[0] == pytest.approx(1 / 8.0)
    assert res.f[-1] == pytest.approx(2.0)
    assert res.has_ci
    assert (tmp_path / "tgm_stats_level1_braintime.png").exists()


def test_level1_rejects_label_count_mismatch():
    X, labels = _data()
    quant = _quant(_pattern_classifier(X, labels))
    with pytest.raises(ValueError):
        tgm_stats_level1(quant, X, labels[:-1], _pattern_classifier, {"numperms1": 2})


def test_level2_pvalues():
    rng = np.random.default_rng(2)
    results = [_level1(rng.random(10), rng.random((30, 10))) for _ in range(3)]
    group = tgm_stats_level2(results, {"numperms2": 50, "seed": 5})
    assert group.null_group.shape == (50, 10)
    assert group.pvals.shape == group.pvals_fdr.shape == (10,)
    assert np.all((group.pvals > 0) & (group.pvals <= 1))
    assert np.all(group.pvals_fdr >= group.pvals - 1e-12)
    assert group.ci_low is not None and group.ci_low.shape == (10,)
    assert group.n_participants == 3
    # brain time: warped frequency is the bin nearest 1 cycle
    assert group.f[group.warp_freq_index] == pytest.approx(1.0)

    again = tgm_stats_level2(results, {"numperms2": 50, "seed": 5})
    assert np.array_equal(group.pvals, again.pvals)


def test_level2_extreme_effects():
    rng = np.random.default_rng(3)
    strong = [_level1(np.full(10, 5.0), rng.random((30, 10))) for _ in range(2)]
    group = tgm_stats_level2(strong, {"numperms2": 99})
    assert np.allclose(group.pvals, 1 / 100)

    weak = [_level1(np.full(10, -1.0), rng.random((30, 10))) for _ in range(2)]
    assert np.allclose(tgm_stats_level2(weak, {"numperms2": 99}).pvals, 1.0)


def test_level2_rejects_mixed_reference_dimensions():
    rng = np.random.default_rng(4)
    results = [
        _level1(rng.random(10), rng.random((5, 10))),
        _level1(rng.random(10), rng.random((5, 10)), dim=RefDim.CLOCKTIME),
    ]
    with pytest.raises(ValueError):
        tgm_stats_level2(results, {"numperms2": 10})


def test_level2_needs_participants():
    with pytest.raises(ValueError):
        tgm_stats_level2([], {"numperms2": 10})


def test_recurrence_spectrum_sums_row_and_column_means():
    rng = np.random.default_rng(7)
    ac = autocorr2d(rng.standard_normal((16, 16)))
    ps, f = recurrence_spectrum(ac, 16.0, (1, 6))
    rows = np.mean([power_spectrum(v, 16.0)[0] for v in ac], axis=0)
    cols = np.mean([power_spectrum(v, 16.0)[0] for v in ac.T], axis=0)
    assert np.allclose(f, np.arange(1.0, 7.0))
    assert np.allclose(ps, (rows + cols)[1:7])


def test_level1_shuffles_do_not_depend_on_worker_count():
    from braintime.decoding import make_tgm_classifier

    rng = np.random.default_rng(8)
    X = rng.standard_normal((16, 2, 8))
    labels = np.repeat([0, 1], 8)
    X[labels == 1, 0] += 1.0
    classifier = make_tgm_classifier(n_splits=2, seed=0)
    quant = _quant(classifier(X, labels))
    opts = {"numperms1": 4, "normalize": "no", "seed": 21}
    sequential = tgm_stats_level1(quant, X, labels, classifier, {**opts, "n_jobs": 1})
    parallel = tgm_stats_level1(quant, X, labels, classifier, {**opts, "n_jobs": 2})
    assert np.allclose(sequential.shuff_tgm, parallel.shuff_tgm)
    assert np.allclose(sequential.shuffspec, parallel.shuffspec)
