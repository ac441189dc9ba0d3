# tests/conftest.py
from __future__ import annotations

import matplotlib

matplotlib.use("Agg")

import numpy as np
import pytest

from learned_rmi.indexes.rmi import RecursiveModelIndex


FIRST_STAGE = {"batch_size": 8, "max_num_epochs": 20, "learning_rate": 0.01, "num_neurons": 8}
SECOND_STAGE = {"batch_size": 4, "max_num_epochs": 10, "learning_rate": 0.01}


@pytest.fixture
def make_index():
    """Factory for small, fast, seeded indexes."""

    def _make(max_overflow_size: int = 10000, second_stage_size: int = 4, seed: int = 7, **kwargs):
        return RecursiveModelIndex(
            kwargs.pop("first_stage_params", FIRST_STAGE),
            kwargs.pop("second_stage_params", SECOND_STAGE),
            max_overflow_size=max_overflow_size,
            second_stage_size=second_stage_size,
            seed=seed,
            **kwargs,
        )

    return _make


@pytest.fixture
def uniform_keys() -> np.ndarray:
    rng = np.random.default_rng(42)
    return np.sort(rng.uniform(0, 1000, 200))
