from pathlib import Path

import pytest

from braintime.errors import ConfigError
from braintime.types import PhaseMethod, RefDim, WarpMethod
from braintime.utils.config_loader import (
    QuantifyConfig,
    StatsConfig,
    WarpConfig,
    load_config,
)


def _write_config(tmp_path, text):
    path = tmp_path / "braintime_config.yaml"
    path.write_text(text, encoding="utf-8")
    return path


def test_packaged_defaults():
    config = load_config()
    assert config.get("statistics.numperms1") == 100
    assert config.get("statistics.statsrange") == [1, 30]
    assert config.get("warping.btsrate") is None
    assert config.get("does.not.exist", "fallback") == "fallback"
    assert config.statistics.seed == 42


def test_warp_options_override_yaml():
    cfg = WarpConfig.resolve({"method": "waveshape", "phasemethod": "ged", "visualcheck": "on", "btsrate": 128})
    assert cfg.warp_method is WarpMethod.WAVESHAPE
    assert cfg.phase_method is PhaseMethod.GED
    assert cfg.visualcheck is True
    assert cfg.btsrate == 128
    assert cfg.removecomp is None

    defaults = WarpConfig.resolve()
    assert defaults.warp_method is WarpMethod.STATIONARY
    assert defaults.visualcheck is False


def test_false_options_are_kept():
    cfg = StatsConfig.resolve({"normalize": False, "numperms1": 7})
    assert cfg.normalize is False
    assert cfg.numperms1 == 7
    assert StatsConfig.resolve({"normalize": None}).normalize is True


def test_statsrange_values_are_inclusive():
    cfg = StatsConfig.resolve({"statsrange": [2, 5]})
    assert cfg.statsrange_values == [2, 3, 4, 5]


@pytest.mark.parametrize(
    "options",
    [
        {"numperms1": 0},
        {"numperms2": 2.5},
        {"statsrange": [30, 1]},
        {"normalize": "maybe"},
        {"n_jobs": 0},
    ],
)
def test_invalid_stats_options(options):
    with pytest.raises(ConfigError):
        StatsConfig.resolve(options)


def test_invalid_enum_names_the_option():
    with pytest.raises(ConfigError, match="refdimension"):
        QuantifyConfig.resolve({"refdimension": "walltime"})
    with pytest.raises(ConfigError, match="btsrate"):
        WarpConfig.resolve({"btsrate": -5})


def test_custom_yaml(tmp_path):
    path = _write_config(tmp_path, "quantification:\n  refdimension: clocktime\n  figure: 'yes'\n")
    config = load_config(path)
    cfg = QuantifyConfig.resolve({"out_dir": tmp_path}, config)
    assert cfg.refdimension is RefDim.CLOCKTIME
    assert cfg.figure is True
    assert cfg.figures.root == Path(tmp_path)
    assert StatsConfig.resolve(None, config).numperms1 == 100
    # sections missing from the file fall back to built-in defaults
    assert WarpConfig.resolve(None, config).warp_method is WarpMethod.STATIONARY


def test_missing_or_broken_yaml(tmp_path):
    with pytest.raises(ConfigError):
        load_config(tmp_path / "missing.yaml")
    with pytest.raises(ConfigError):
        load_config(_write_config(tmp_path, "statistics: [unclosed\n"))


def test_figure_output_follows_yaml(tmp_path, monkeypatch):
    monkeypatch.chdir(tmp_path)
    path = _write_config(tmp_path, "paths:\n  deriv_root: out\noutput:\n  fig_dpi: 50\n  save_formats: [pdf, svg]\n")
    cfg = StatsConfig.resolve(None, load_config(path))
    assert cfg.figures.formats == ("pdf", "svg")
    assert cfg.figures.dpi == 50
    assert cfg.figures.root == Path.cwd() / "out" / "braintime" / "plots"
