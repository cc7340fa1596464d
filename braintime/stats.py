"""
Permutation statistics for TGM recurrence.

Level 1 (single participant): class labels are shuffled ``numperms1`` times,
a TGM is recomputed for every shuffle and the recurrence power spectrum of
its AC map forms the null distribution.

Level 2 (group): one shuffled spectrum per participant is drawn at random
and averaged, ``numperms2`` times, to build a group null distribution for
the average empirical spectrum. P-values are frequency-wise.
"""
from __future__ import annotations

import logging
from typing import Any, Callable, Mapping, Optional, Sequence, Tuple

import numpy as np
from joblib import Parallel, delayed
from statsmodels.stats.multitest import fdrcorrection
from threadpoolctl import threadpool_limits

from . import reporting
from .autocorr import autocorr2d
from .spectral import band_spectrum, nearest
from .types import Level1Result, Level2Result, RefDim, TGMQuantification
from .utils.config_loader import BrainTimeConfig, StatsConfig

logger = logging.getLogger(__name__)

Classifier = Callable[[np.ndarray, np.ndarray], np.ndarray]


def normalize_by_null(emp_tgm: np.ndarray, null_tgms: np.ndarray) -> Tuple[np.ndarray, np.ndarray, float, float]:
    """Z-score empirical and permuted TGMs by the mean and SD of the whole null tensor.

    Returns
    -------
    emp_z, null_z : np.ndarray
        Normalized empirical TGM and permuted TGMs.
    mean, sd : float
        Statistics of ``null_tgms`` used for normalization.
    """
    null_tgms = np.asarray(null_tgms, dtype=float)
    mn = float(np.mean(null_tgms))
    sd = float(np.std(null_tgms, ddof=1)) if null_tgms.size > 1 else 0.0
    if not np.isfinite(sd) or sd <= 0:
        raise ValueError(
            "The permuted TGMs have zero variance and cannot be used for normalization; "
            "set normalize='no' or check the classifier configuration."
        )
    return (np.asarray(emp_tgm, dtype=float) - mn) / sd, (null_tgms - mn) / sd, mn, sd


def confidence_interval(
    spectra: np.ndarray, min_perms: int = 20
) -> Tuple[Optional[np.ndarray], Optional[np.ndarray]]:
    """2.5 and 97.5 percentiles per frequency bin of permutation spectra.

    Returns ``(None, None)`` when fewer than ``min_perms`` spectra are given.
    """
    spectra = np.atleast_2d(np.asarray(spectra, dtype=float))
    if spectra.shape[0] < min_perms:
        logger.warning(
            f"No confidence interval computed: only {spectra.shape[0]} permutations "
            f"(at least {min_perms} required)"
        )
        return None, None
    return np.percentile(spectra, 2.5, axis=0), np.percentile(spectra, 97.5, axis=0)


def recurrence_spectrum(ac: np.ndarray, rate: float, foi: Sequence[float]) -> Tuple[np.ndarray, np.ndarray]:
    """Mean row spectrum plus mean column spectrum of a square AC map within ``foi``.

    Returns the spectrum and its frequency bins.
    """
    ps, f = band_spectrum(ac, rate, foi)
    # band_spectrum averages rows and columns together; both groups have the same size
    return 2.0 * ps, f


def _run_permutation_worker(pi: int, child_seed, X: np.ndarray, labels: np.ndarray, classifier: Classifier) -> dict:
    rng = np.random.default_rng(child_seed)
    y_perm = rng.permutation(np.asarray(labels))
    with threadpool_limits(1):
        tgm = np.asarray(classifier(X, y_perm), dtype=float)
    return {"index": int(pi), "tgm": tgm}


def _permuted_tgms(
    X: np.ndarray, labels: np.ndarray, classifier: Classifier, numperms: int, seed: int, n_jobs: int
) -> np.ndarray:
    """TGMs for ``numperms`` label shuffles, ordered by permutation index."""
    child_sequences = np.random.SeedSequence(int(seed)).spawn(numperms)
    perm_args = [(pi, child_sequences[pi], X, labels, classifier) for pi in range(numperms)]

    if n_jobs == 1:
        outputs = []
        for call_args in perm_args:
            logger.info(f"First level permutation number {call_args[0] + 1}")
            outputs.append(_run_permutation_worker(*call_args))
    else:
        outputs = Parallel(n_jobs=int(n_jobs), backend="loky", prefer="processes", pre_dispatch="n_jobs")(
            delayed(_run_permutation_worker)(*call_args) for call_args in perm_args
        )
    outputs = sorted(outputs, key=lambda r: r["index"])
    return np.stack([r["tgm"] for r in outputs], axis=0)


def tgm_stats_level1(
    quant: TGMQuantification,
    X: np.ndarray,
    labels: np.ndarray,
    classifier: Classifier,
    options: Optional[Mapping[str, Any]] = None,
    config: Optional[BrainTimeConfig] = None,
) -> Level1Result:
    """Single participant permutation statistics of TGM recurrence.

    Parameters
    ----------
    quant : TGMQuantification
        Output of :func:`braintime.recurrence.quantify_tgm` for the empirical TGM.
    X : np.ndarray
        Trials x channels x samples, the data the empirical TGM was computed from.
    labels : np.ndarray
        Class label per trial.
    classifier : callable
        ``classifier(X, y) -> TGM``. Must use the same settings as for the
        empirical TGM, so that empirical and shuffled TGMs only differ in labels.
    options : mapping, optional
        ``numperms1``, ``normalize``, ``statsrange``, ``n_jobs``, ``seed``,
        ``figure``, ``out_dir``.
    """
    cfg = StatsConfig.resolve(options, config)
    X = np.asarray(X)
    labels = np.asarray(labels)
    if X.shape[0] != labels.shape[0]:
        raise ValueError(f"Got {labels.shape[0]} labels for {X.shape[0]} trials.")

    refdimension = quant.refdimension
    statsrange = np.asarray(cfg.statsrange_values, dtype=float)
    if refdimension.dim is RefDim.BRAINTIME:
        statsrange = statsrange / quant.warp_freq

    logger.info(f"Running {cfg.numperms1} first level permutations (n_jobs={cfg.n_jobs})")
    perm_tgms = _permuted_tgms(X, labels, classifier, cfg.numperms1, cfg.seed, cfg.n_jobs)
    if perm_tgms.shape[1:] != quant.tgm.shape:
        raise ValueError(
            f"Permuted TGMs have shape {perm_tgms.shape[1:]} but the empirical TGM is {quant.tgm.shape}; "
            "use the same classifier configuration for both."
        )

    emp_tgm = quant.tgm
    null_mean = null_sd = None
    if cfg.normalize:
        emp_tgm, perm_tgms, null_mean, null_sd = normalize_by_null(emp_tgm, perm_tgms)
        logger.info(f"Normalized TGMs by permutation mean={null_mean:.4f}, sd={null_sd:.4f}")

    nvecs = emp_tgm.shape[0]
    rate = nvecs / refdimension.value
    foi = (statsrange[0], statsrange[-1])

    shuffspec = np.vstack([recurrence_spectrum(autocorr2d(tgm), rate, foi)[0] for tgm in perm_tgms])
    empspec, f = recurrence_spectrum(autocorr2d(emp_tgm), rate, foi)
    empspec = empspec[np.newaxis, :]

    ci_low, ci_high = confidence_interval(shuffspec, cfg.ci_min_perms)

    result = Level1Result(
        f=f,
        empspec=empspec,
        shuffspec=shuffspec,
        emp_tgm=emp_tgm,
        shuff_tgm=perm_tgms,
        refdimension=refdimension,
        warp_freq=float(quant.warp_freq),
        normalized=cfg.normalize,
        null_mean=null_mean,
        null_sd=null_sd,
        ci_low=ci_low,
        ci_high=ci_high,
    )

    if cfg.figure:
        fig = reporting.plot_level1(result)
        reporting.finalize(fig, cfg.figures, f"tgm_stats_level1_{refdimension.dim.value}")
        logger.info("p-values are calculated in the second level statistics (tgm_stats_level2)")
    return result


def tgm_stats_level2(
    results: Sequence[Level1Result],
    options: Optional[Mapping[str, Any]] = None,
    config: Optional[BrainTimeConfig] = None,
) -> Level2Result:
    """Group level statistics from participants' first level results.

    Each of ``numperms2`` group null spectra averages one randomly drawn
    shuffled spectrum per participant. The p-value of a frequency bin is the
    proportion of group null spectra at least as large as the average
    empirical spectrum, with the empirical observation counted once.
    """
    cfg = StatsConfig.resolve(options, config)
    results = list(results)
    if not results:
        raise ValueError("tgm_stats_level2 needs at least one participant's first level result.")

    ref = results[0]
    for i, res in enumerate(results[1:], start=2):
        if res.refdimension.dim is not ref.refdimension.dim:
            raise ValueError(
                f"Participant {i} uses refdimension '{res.refdimension.dim.value}' but participant 1 uses "
                f"'{ref.refdimension.dim.value}'; rerun first level statistics with one refdimension."
            )
        if res.f.shape != ref.f.shape or not np.allclose(res.f, ref.f):
            raise ValueError(
                f"Participant {i} has a different frequency axis; use the same 'statsrange' and TGM size "
                "for all participants."
            )

    f = ref.f
    emp_group = np.mean(np.vstack([np.ravel(r.empspec) for r in results]), axis=0)

    rng = np.random.default_rng(cfg.seed)
    null_group = np.zeros((cfg.numperms2, f.size))
    for res in results:
        draws = rng.integers(0, res.shuffspec.shape[0], size=cfg.numperms2)
        null_group += res.shuffspec[draws]
    null_group /= len(results)

    exceed = np.sum(null_group >= emp_group[np.newaxis, :], axis=0)
    pvals = (exceed + 1) / (cfg.numperms2 + 1)
    _, pvals_fdr = fdrcorrection(pvals, alpha=0.05)

    ci_low, ci_high = confidence_interval(null_group, cfg.ci_min_perms)

    if ref.refdimension.dim is RefDim.BRAINTIME:
        warp_idx = nearest(f, 1.0)
    else:
        warp_idx = nearest(f, float(np.mean([r.warp_freq for r in results])))
    p_warp = float(pvals[warp_idx])
    logger.info(
        f"Group statistics over {len(results)} participants, {cfg.numperms2} permutations: "
        f"p={p_warp:.4f} at the warped frequency (f={f[warp_idx]:.3f})"
    )

    result = Level2Result(
        f=f,
        emp_group=emp_group,
        null_group=null_group,
        pvals=pvals,
        pvals_fdr=np.asarray(pvals_fdr),
        ci_low=ci_low,
        ci_high=ci_high,
        warp_freq_index=int(warp_idx),
        p_warp_freq=p_warp,
        refdimension=ref.refdimension,
        n_participants=len(results),
    )

    if cfg.figure:
        fig = reporting.plot_level2(result)
        reporting.finalize(fig, cfg.figures, f"tgm_stats_level2_{ref.refdimension.dim.value}")
    return result


__all__ = [
    "normalize_by_null",
    "confidence_interval",
    "recurrence_spectrum",
    "tgm_stats_level1",
    "tgm_stats_level2",
]
