# -*- coding: utf-8 -*-
"""
Tests for the configuration model and the command line driver.

* ``ATConfig`` clamps an inconsistent λ schedule and rejects invalid values.
* JSON save/load round trips and falls back to defaults.
* ``main`` returns 1 on help and on bad input, 0 after a complete run that
  wrote the report and one u/v raster pair per λ value.
"""
import numpy as np
import pytest
from PIL import Image
from pydantic import ValidationError

from at_config import SQRT2, ATConfig, load_params, save_params
from run_at import build_parser, config_from_args, main


# ---------------------------- Configuration --------------------------------
def test_config_defaults():
    cfg = ATConfig()
    assert cfg.lambda_1 == 0.3125
    assert cfg.lambda_2 == 0.00005
    assert cfg.lambda_ratio == pytest.approx(SQRT2)
    assert (cfg.alpha, cfg.epsilon, cfg.gridstep, cfg.nbiter) == (1.0, 1.0, 1.0, 10)


def test_config_clamps_schedule():
    cfg = ATConfig(lambda_1=0.1, lambda_2=0.5, lambda_ratio=0.9)
    assert cfg.lambda_2 == 0.1
    assert cfg.lambda_ratio == pytest.approx(SQRT2)


@pytest.mark.parametrize("bad", [dict(alpha=0.0), dict(epsilon=-1.0), dict(gridstep=0.0),
                                 dict(nbiter=-1), dict(solver="qr")])
def test_config_rejects_invalid_values(bad):
    with pytest.raises(ValidationError):
        ATConfig(**bad)


def test_single_lambda():
    cfg = ATConfig(alpha=0.5).single_lambda(0.02)
    assert cfg.lambda_1 == cfg.lambda_2 == 0.02
    assert cfg.alpha == 0.5


def test_save_and_load(tmp_path):
    path = str(tmp_path / "cfg.json")
    save_params(ATConfig(alpha=0.25, nbiter=3, solver="CG"), path)
    loaded = load_params(path)
    assert loaded.alpha == 0.25
    assert loaded.nbiter == 3
    assert loaded.solver == "cg"


def test_missing_config_gives_defaults(tmp_path, capsys):
    cfg = load_params(str(tmp_path / "absent.json"))
    assert cfg == ATConfig()
    assert "default parameters" in capsys.readouterr().out


def test_flags_override_config_file(tmp_path):
    path = str(tmp_path / "cfg.json")
    save_params(ATConfig(alpha=0.5, nbiter=2), path)
    args = build_parser().parse_args(["-i", "x.pgm", "-c", path, "-a", "2", "-l", "0.01"])
    cfg = config_from_args(args)
    assert cfg.alpha == 2.0
    assert cfg.nbiter == 2
    assert cfg.lambda_1 == cfg.lambda_2 == 0.01


def test_single_lambda_flag_wins_over_schedule():
    args = build_parser().parse_args(["-i", "x.pgm", "-1", "0.5", "-2", "0.01", "-r", "3", "-l", "0.2"])
    cfg = config_from_args(args)
    assert cfg.lambda_1 == cfg.lambda_2 == 0.2
    assert cfg.lambda_ratio == 3.0


def test_updated_validates():
    cfg = ATConfig().updated(alpha=0.5, lambda_2=1.0)
    assert cfg.alpha == 0.5
    assert cfg.lambda_2 == cfg.lambda_1
    with pytest.raises(ValidationError):
        ATConfig().updated(nbiter=-3)


# ------------------------------- CLI ----------------------------------------
@pytest.mark.parametrize("argv", [["-h"], [], ["--bogus"], ["-i"]])
def test_usage_returns_one(argv, capsys):
    assert main(argv) == 1
    assert "Usage" in capsys.readouterr().err


def test_invalid_parameter_returns_one(tmp_path, capsys):
    assert main(["-i", str(tmp_path / "x.pgm"), "-a", "0"]) == 1
    assert "invalid parameters" in capsys.readouterr().err


def test_missing_image_returns_one(tmp_path):
    assert main(["-i", str(tmp_path / "absent.pgm"), "-o", str(tmp_path / "AT"), "-q"]) == 1


@pytest.fixture
def step_png(tmp_path):
    image = np.zeros((5, 6), dtype=np.uint8)
    image[:, 3:] = 255
    path = tmp_path / "step.png"
    Image.fromarray(image).save(path)
    return str(path)


def test_single_lambda_run(tmp_path, step_png):
    out = str(tmp_path / "AT")
    assert main(["-i", step_png, "-o", out, "-l", "0.1", "-n", "3", "-q"]) == 0

    lines = (tmp_path / "AT.txt").read_text().splitlines()
    assert len(lines) == 2
    assert lines[0].startswith("#  l")
    assert lines[1].split("\t")[0] == "0.1"

    with Image.open(tmp_path / "AT-l0.1000000-u.pgm") as u_img:
        assert u_img.size == (6, 5)
    with Image.open(tmp_path / "AT-l0.1000000-v.pgm") as v_img:
        assert v_img.size == (11, 9)


@pytest.mark.parametrize("shape", [(1, 5), (5, 1), (1, 1)])
def test_thin_image_run(tmp_path, shape):
    image = np.zeros(shape, dtype=np.uint8)
    image.flat[image.size // 2:] = 255
    path = tmp_path / "thin.png"
    Image.fromarray(image).save(path)
    out = str(tmp_path / "AT")
    assert main(["-i", str(path), "-o", out, "-l", "0.1", "-q"]) == 0

    height, width = shape
    assert len((tmp_path / "AT.txt").read_text().splitlines()) == 2
    with Image.open(tmp_path / "AT-l0.1000000-u.pgm") as u_img:
        assert u_img.size == (width, height)
    with Image.open(tmp_path / "AT-l0.1000000-v.pgm") as v_img:
        assert v_img.size == (2 * width - 1, 2 * height - 1)


def test_schedule_run_with_plot(tmp_path, step_png):
    out = str(tmp_path / "AT")
    argv = ["-i", step_png, "-o", out, "-1", "0.2", "-2", "0.1", "-r", "2", "-n", "2", "-p", "-q"]
    assert main(argv) == 0
    lines = (tmp_path / "AT.txt").read_text().splitlines()
    assert len(lines) == 3
    assert (tmp_path / "AT-energies.png").exists()
    assert len(list(tmp_path.glob("AT-l*-u.pgm"))) == 2
    assert len(list(tmp_path.glob("AT-l*-v.pgm"))) == 2


if __name__ == "__main__":
    pytest.main([__file__, "-v", "-s", "--tb=short"])
