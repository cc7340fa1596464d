import numpy as np
import pandas as pd

from braintime.cli import main
from braintime.types import Level1Result, PhaseMethod, RefDim, RefDimension, WarpedData, WarpMethod
from braintime.utils.io_utils import save_level1, save_warped


def _level1(seed):
    rng = np.random.default_rng(seed)
    return Level1Result(
        f=np.arange(1.0, 9.0),
        empspec=rng.random((1, 8)),
        shuffspec=rng.random((10, 8)),
        emp_tgm=rng.random((16, 16)),
        shuff_tgm=rng.random((10, 16, 16)),
        refdimension=RefDimension(RefDim.CLOCKTIME, 1.0),
        warp_freq=6.0,
        normalized=False,
    )


def test_group_stats_command(tmp_path, monkeypatch):
    monkeypatch.chdir(tmp_path)
    files = [save_level1(_level1(s), tmp_path / f"sub-0{s}_level1.npz") for s in (1, 2, 3)]
    out = tmp_path / "group" / "level2.tsv"
    code = main(["group-stats", *map(str, files), "--numperms2", "40", "--seed", "3", "--out", str(out)])
    assert code == 0
    df = pd.read_csv(out, sep="\t")
    assert len(df) == 8
    assert df["p"].between(0, 1).all()


def test_quantify_command(tmp_path, monkeypatch):
    monkeypatch.chdir(tmp_path)
    n = 32
    t = np.arange(n) / n
    tgm = np.cos(2 * np.pi * 3 * t)[np.newaxis, :] + np.cos(2 * np.pi * 5 * t)[:, np.newaxis]
    np.save(tmp_path / "tgm.npy", tgm)
    warped = WarpedData(
        data=np.zeros((2, 1, n)),
        times=np.linspace(0, 8, n),
        labels=np.array([1, 2]),
        ch_names=["Oz"],
        sfreq=32.0,
        toi=(0.0, 1.0),
        warp_freq=8.0,
        warp_method=WarpMethod.STATIONARY,
        phase_method=PhaseMethod.FFT,
    )
    save_warped(warped, tmp_path / "warped.npz")

    out = tmp_path / "quant.npz"
    code = main([
        "quantify", "--tgm", str(tmp_path / "tgm.npy"), "--warped", str(tmp_path / "warped.npz"),
        "--refdimension", "clocktime", "--subject", "01", "--out", str(out),
    ])
    assert code == 0
    assert out.exists()
    assert (tmp_path / "derivatives" / "sub-01" / "braintime" / "logs" / "braintime_cli.log").exists()
    table = pd.read_csv(out.with_suffix(".tsv"), sep="\t")
    assert np.allclose(table.loc[table["dimension"] == "row", "peak_frequency"], 3.0)


def test_missing_input_returns_error_code(tmp_path, monkeypatch):
    monkeypatch.chdir(tmp_path)
    code = main(["group-stats", str(tmp_path / "nope.npz"), "--out", str(tmp_path / "x.tsv")])
    assert code == 1


def test_mixed_participants_return_error_code(tmp_path, monkeypatch):
    monkeypatch.chdir(tmp_path)
    other = _level1(2)
    other.refdimension = RefDimension(RefDim.BRAINTIME, 6.0)
    files = [save_level1(_level1(1), tmp_path / "a.npz"), save_level1(other, tmp_path / "b.npz")]
    code = main(["group-stats", *map(str, files), "--numperms2", "20", "--out", str(tmp_path / "g.tsv")])
    assert code == 1
    assert not (tmp_path / "g.tsv").exists()


def test_incomplete_archive_returns_error_code(tmp_path, monkeypatch):
    monkeypatch.chdir(tmp_path)
    np.savez(tmp_path / "partial.npz", f=np.arange(3.0))
    code = main(["group-stats", str(tmp_path / "partial.npz"), "--out", str(tmp_path / "g.tsv")])
    assert code == 1


def test_config_file_controls_figure_output(tmp_path, monkeypatch):
    monkeypatch.chdir(tmp_path)
    cfg = tmp_path / "custom.yaml"
    cfg.write_text("output:\n  fig_dpi: 50\n  save_formats: [pdf]\n", encoding="utf-8")
    files = [save_level1(_level1(s), tmp_path / f"sub-0{s}.npz") for s in (1, 2)]
    out_dir = tmp_path / "group"
    code = main(["--config", str(cfg), "group-stats", *map(str, files), "--numperms2", "25",
                 "--figure", "yes", "--out", str(out_dir / "level2.tsv")])
    assert code == 0
    assert (out_dir / "tgm_stats_level2_clocktime.pdf").exists()
    assert not (out_dir / "tgm_stats_level2_clocktime.png").exists()
