"""
===============================================================================
DATA LOADER MODULE
===============================================================================
This module generates synthetic datasets for training and benchmarking the
Recursive Model Index, and the random batch sampler both model stages train
with.

The DatasetGenerator class provides functions to create key sets in different
distributions:
    • Sequential — ordered numbers (best-case data)
    • Uniform — random spread across a range
    • Mixed — clustered/random blend to simulate real-world skew

`generate_entries` pairs a key set with payloads, shuffled, which is the
insert order an index sees in practice.

Usage:
    from learned_rmi.utils.data_loader import DatasetGenerator

    keys = DatasetGenerator.generate_uniform(10000)
    entries = DatasetGenerator.generate_entries(keys)
    print(entries[:3])
===============================================================================
"""

from typing import List, Optional, Tuple

import numpy as np
import matplotlib.pyplot as plt


class DatasetGenerator:
    """Generate key sets (and key/value entries) for RMI experiments."""

    @staticmethod
    def generate_uniform(size: int, min_val: int = 0, max_val: int = 1_000_000,
                         rng: Optional[np.random.Generator] = None) -> np.ndarray:
        """Uniformly distributed random keys."""
        rng = rng or np.random.default_rng()
        keys = rng.uniform(min_val, max_val, size)
        return np.sort(keys)

    @staticmethod
    def generate_sequential(size: int, start: int = 0, step: int = 1) -> np.ndarray:
        """Sequential keys (0, 1, 2, …)."""
        return np.arange(start, start + size * step, step, dtype=np.float64)

    @staticmethod
    def generate_mixed(size: int, rng: Optional[np.random.Generator] = None) -> np.ndarray:
        """Mixed distribution: uniform + two clusters."""
        rng = rng or np.random.default_rng()
        uniform = rng.uniform(0, 1_000_000, int(size * 0.4))
        cluster1 = rng.normal(250_000, 10_000, int(size * 0.3))
        cluster2 = rng.normal(750_000, 10_000, int(size * 0.3))
        keys = np.concatenate([uniform, cluster1, cluster2])
        return np.sort(np.unique(keys))[:size]

    @staticmethod
    def generate_entries(keys: np.ndarray, rng: Optional[np.random.Generator] = None) -> List[Tuple[float, str]]:
        """Pair each key with a string payload and shuffle into insert order."""
        rng = rng or np.random.default_rng()
        order = rng.permutation(len(keys))
        return [(float(keys[i]), f"value-{i}") for i in order]


def random_batch(batch_size: int, dataset_size: int, rng: np.random.Generator) -> np.ndarray:
    """
    Uniformly sample `batch_size` positions out of `dataset_size`.

    Positions within one batch are distinct when the dataset is large enough;
    smaller datasets are sampled with replacement.
    """
    if dataset_size <= 0:
        raise ValueError("Cannot sample a batch from an empty dataset")
    replace = batch_size > dataset_size
    return rng.choice(dataset_size, size=batch_size, replace=replace)


def plot_positions(keys: np.ndarray, predicted: np.ndarray, title: str, path: str) -> str:
    """Save a key -> position plot of true vs. predicted positions."""
    fig = plt.figure(figsize=(10, 4))
    plt.plot(keys, np.arange(len(keys)), '.', markersize=1, label="true position")
    plt.plot(keys, predicted, '.', markersize=1, label="predicted position")
    plt.title(title)
    plt.xlabel("Key Value")
    plt.ylabel("Position")
    plt.legend()
    plt.tight_layout()
    fig.savefig(path)
    plt.close(fig)
    return path


# -----------------------------------------------------------------------------
# Quick-run tester: show the key distributions
# -----------------------------------------------------------------------------
if __name__ == "__main__":
    print("Generating datasets and plotting\n")

    size = 100_000

    seq = DatasetGenerator.generate_sequential(size)
    uniform = DatasetGenerator.generate_uniform(size)
    mixed = DatasetGenerator.generate_mixed(size)

    print("Datasets generated.")

    def plot_data(data, title):
        plt.figure(figsize=(10, 4))
        plt.plot(data, '.', markersize=1)
        plt.title(f"{title} ({len(data):,} points)")
        plt.xlabel("Index")
        plt.ylabel("Key Value")
        plt.tight_layout()
        plt.show()

    plot_data(seq, "Sequential Dataset")
    plot_data(uniform, "Uniform Dataset")
    plot_data(mixed, "Mixed Dataset")
