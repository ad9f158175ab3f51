from __future__ import annotations

import logging

import pytest
import yaml
from rich.logging import RichHandler

from dpmix.utils.config_parser import SplitMergeConfig, load_config, merge_overrides
from dpmix.utils.logging_utils import Timer, log_config, setup_logging


def test_split_merge_config_from_yaml(tmp_path):
    path = tmp_path / "sampler.yaml"
    path.write_text(
        yaml.safe_dump({"split_merge": {"annealing_factor": 0.6, "iterations": 25, "seed": 3}}),
        encoding="utf-8",
    )

    cfg = SplitMergeConfig.from_yaml(path)

    assert cfg.annealing_factor == 0.6
    assert cfg.iterations == 25
    assert cfg.seed == 3
    assert cfg.num_parameter_draws == 10
    assert cfg.to_dict()["iterations"] == 25


def test_split_merge_config_rejects_bad_values():
    with pytest.raises(ValueError, match="Unknown"):
        SplitMergeConfig.from_dict({"split_merge": {"temperature": 2.0}})
    with pytest.raises(ValueError):
        SplitMergeConfig(annealing_factor=0.0)
    with pytest.raises(ValueError):
        SplitMergeConfig(num_parameter_draws=0)


def test_load_config_requires_mapping(tmp_path):
    path = tmp_path / "list.yaml"
    path.write_text("- 1\n- 2\n", encoding="utf-8")
    with pytest.raises(ValueError):
        load_config(path)


def test_merge_overrides_handles_dotted_keys():
    base = {"split_merge": {"seed": 1, "iterations": 10}, "name": "run"}
    merged = merge_overrides(base, {"split_merge.seed": 7, "output.dir": "out"})
    assert merged["split_merge"] == {"seed": 7, "iterations": 10}
    assert merged["output"] == {"dir": "out"}
    assert base["split_merge"]["seed"] == 1


def test_setup_logging_installs_rich_and_file_handlers(tmp_path):
    log_file = tmp_path / "logs" / "run.log"
    logger = setup_logging(logging.INFO, str(log_file))
    try:
        assert any(isinstance(h, RichHandler) for h in logger.handlers)
        logger.info("hello from the sampler")
        for h in logger.handlers:
            h.flush()
        assert "hello from the sampler" in log_file.read_text(encoding="utf-8")
    finally:
        for h in list(logger.handlers):
            h.close()
            logger.removeHandler(h)
        logger.setLevel(logging.NOTSET)
        logger.propagate = True


def test_log_config_and_timer(caplog):
    logger = logging.getLogger("dpmix.test")
    with caplog.at_level(logging.DEBUG, logger="dpmix.test"):
        log_config(logger, {"split_merge": {"seed": 1}})
        with Timer("block", logger) as timer:
            pass
    assert "split_merge.seed: 1" in caplog.text
    assert "[block] finished" in caplog.text
    assert timer.elapsed >= 0.0


def test_split_merge_config_from_yaml_with_overrides(tmp_path):
    path = tmp_path / "sampler.yaml"
    path.write_text(yaml.safe_dump({"split_merge": {"seed": 3, "iterations": 25}}), encoding="utf-8")

    cfg = SplitMergeConfig.from_yaml(path, {"split_merge.seed": 8, "split_merge.annealing_factor": 0.5})

    assert cfg.seed == 8
    assert cfg.annealing_factor == 0.5
    assert cfg.iterations == 25
