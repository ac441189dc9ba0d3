from loguru import logger

from learned_rmi.config.network_config import LogConfig
from learned_rmi.utils.logger import init_logging


def test_retrain_is_logged_to_file(tmp_path, make_index):
    log_file = tmp_path / "rmi.log"
    init_logging(LogConfig(level="DEBUG", sink=str(log_file)), force=True)
    try:
        index = make_index(second_stage_size=2)
        for key in [3, 1, 2]:
            index.insert(key, key)
        index.train()
        logger.complete()
    finally:
        init_logging(LogConfig(), force=True)

    text = log_file.read_text()
    assert "Retraining..." in text
    assert "First stage Epoch: 0 Loss:" in text
    assert "| DEBUG |" in text


def test_init_logging_runs_once():
    init_logging(LogConfig(), force=True)
    # a second call without force is a no-op
    init_logging(LogConfig(level="ERROR"))
    logger.info("still configured")
