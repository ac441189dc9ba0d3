import pytest

from learned_rmi.config.network_config import NetworkParameters, build_config
from learned_rmi.indexes.rmi import RecursiveModelIndex
from learned_rmi.utils.errors import ConfigurationError

GOOD = {"batch_size": 4, "max_num_epochs": 2, "learning_rate": 0.01, "num_neurons": 4}


@pytest.mark.parametrize(
    "field, value",
    [
        ("batch_size", 0),
        ("batch_size", -3),
        ("max_num_epochs", 0),
        ("learning_rate", 0.0),
        ("learning_rate", -0.1),
        ("num_neurons", 0),
    ],
)
def test_non_positive_network_parameters_fail_fast(field, value):
    bad = dict(GOOD, **{field: value})
    with pytest.raises(ConfigurationError):
        RecursiveModelIndex(bad, GOOD)
    with pytest.raises(ConfigurationError):
        RecursiveModelIndex(GOOD, bad)


@pytest.mark.parametrize(
    "kwargs",
    [
        {"max_overflow_size": 0},
        {"second_stage_size": 0},
        {"search_safety": -1},
    ],
)
def test_invalid_index_options_fail_fast(kwargs):
    with pytest.raises(ConfigurationError):
        RecursiveModelIndex(GOOD, GOOD, **kwargs)


def test_configuration_error_is_a_value_error():
    with pytest.raises(ValueError):
        NetworkParameters(batch_size=0, max_num_epochs=1, learning_rate=0.1)
    assert issubclass(ConfigurationError, ValueError)


def test_defaults():
    config = build_config(first_stage=GOOD, second_stage={"batch_size": 2, "max_num_epochs": 1, "learning_rate": 0.1})
    assert config.max_overflow_size == 10000
    assert config.second_stage.num_neurons == 1
    assert config.seed is None
    assert isinstance(config.first_stage, NetworkParameters)
