import time
from typing import Dict, Optional

import numpy as np

from learned_rmi.indexes.btree import BTree
from learned_rmi.indexes.rmi import RecursiveModelIndex
from learned_rmi.utils.data_loader import DatasetGenerator, plot_positions

DEFAULT_FIRST_STAGE = {"batch_size": 256, "max_num_epochs": 200, "learning_rate": 0.01, "num_neurons": 16}
DEFAULT_SECOND_STAGE = {"batch_size": 64, "max_num_epochs": 100, "learning_rate": 0.01}


class Benchmark:
    """Benchmark tool for the RMI against the B-Tree baseline."""

    @staticmethod
    def measure_insert_time(index: RecursiveModelIndex, entries) -> float:
        start = time.perf_counter()
        for key, value in entries:
            index.insert(key, value)
        end = time.perf_counter()
        return (end - start) * 1000  # ms

    @staticmethod
    def measure_train_time(index: RecursiveModelIndex) -> float:
        start = time.perf_counter()
        index.train()
        end = time.perf_counter()
        return (end - start) * 1000  # ms

    @staticmethod
    def measure_lookup_time(index, queries: np.ndarray) -> float:
        # Warmup
        for q in queries[:50]:
            index.find(q)
        start = time.perf_counter()
        for q in queries:
            index.find(q)
        end = time.perf_counter()
        return (end - start) * 1e9 / len(queries)  # ns per query

    @staticmethod
    def run(dataset_name: str, keys: np.ndarray, num_queries: int = 1000,
            second_stage_size: int = 16, seed: int = 0,
            first_stage_params: Optional[dict] = None,
            second_stage_params: Optional[dict] = None,
            plot_path: Optional[str] = None) -> Dict[str, dict]:
        print(f"\n{'='*70}")
        print(f"Dataset: {dataset_name}  ({len(keys):,} keys)")
        print(f"{'='*70}")

        rng = np.random.default_rng(seed)
        entries = DatasetGenerator.generate_entries(keys, rng=rng)

        # Generate random search queries (half existing, half random)
        existing = rng.choice(keys, num_queries // 2)
        randoms = rng.uniform(keys.min(), keys.max(), num_queries - num_queries // 2)
        queries = np.concatenate([existing, randoms])
        rng.shuffle(queries)

        results = {}

        # ------------------------------------------------------------
        # B-TREE BASELINE
        # ------------------------------------------------------------
        print("\n-- B-Tree Benchmarks --")
        for order in [32, 128]:
            tree = BTree(order=order)
            start = time.perf_counter()
            tree.build(entries)
            build = (time.perf_counter() - start) * 1000
            lookup = Benchmark.measure_lookup_time(tree, queries)
            mem = tree.get_memory_usage() / (1024 * 1024)

            print(f"Order {order:<3} | Build: {build:>8.2f} ms | "
                  f"Lookup: {lookup:>8.2f} ns | Mem: {mem:>6.3f} MB")

            results[f"BTree_{order}"] = {
                "build_ms": build,
                "lookup_ns": lookup,
                "memory_mb": mem,
            }

        # ------------------------------------------------------------
        # TWO-STAGE RMI
        # ------------------------------------------------------------
        print("\n-- Two-Stage RMI --")
        rmi = RecursiveModelIndex(
            first_stage_params or DEFAULT_FIRST_STAGE,
            second_stage_params or DEFAULT_SECOND_STAGE,
            # Large enough that the benchmark controls when training happens
            max_overflow_size=len(entries) + 1,
            second_stage_size=second_stage_size,
            seed=seed,
        )
        insert = Benchmark.measure_insert_time(rmi, entries)
        train = Benchmark.measure_train_time(rmi)
        lookup = Benchmark.measure_lookup_time(rmi, queries)
        mem = rmi.get_memory_usage() / (1024 * 1024)

        print(f"RMI_2Stage  | Insert: {insert:>8.2f} ms | Train: {train:>8.2f} ms | "
              f"Lookup: {lookup:>8.2f} ns | Mem: {mem:>6.3f} MB")
        print(f"Queries: {rmi.total_queries} | Correct: {rmi.correct_predictions} | "
              f"Fallbacks: {rmi.fallbacks} | Not Found: {rmi.not_found} | "
              f"Degenerate stages: {rmi.degenerate_stages}")

        results["RMI_2Stage"] = {
            "insert_ms": insert,
            "train_ms": train,
            "lookup_ns": lookup,
            "memory_mb": mem,
            "correct_predictions": rmi.correct_predictions,
            "fallbacks": rmi.fallbacks,
            "not_found": rmi.not_found,
            "degenerate_stages": list(rmi.degenerate_stages),
        }

        if plot_path is not None:
            sorted_keys = np.asarray([e.key for e in rmi.sorted_entries])
            predicted = np.asarray([rmi.predict_position(k) for k in sorted_keys])
            plot_positions(sorted_keys, predicted, f"RMI predictions: {dataset_name}", plot_path)
            results["RMI_2Stage"]["plot"] = plot_path

        return results


if __name__ == "__main__":
    n = 50_000  # number of keys to test
    keys = np.sort(np.random.default_rng(0).uniform(0, 1_000_000, n))
    Benchmark.run("Uniform_50k", keys)
