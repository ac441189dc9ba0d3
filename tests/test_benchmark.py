import numpy as np

from learned_rmi.benchmarks.benchmark_runner import Benchmark
from learned_rmi.utils.data_loader import DatasetGenerator

SMALL_FIRST = {"batch_size": 16, "max_num_epochs": 10, "learning_rate": 0.01, "num_neurons": 4}
SMALL_SECOND = {"batch_size": 8, "max_num_epochs": 5, "learning_rate": 0.01}


def test_run_reports_both_indexes(tmp_path):
    keys = DatasetGenerator.generate_uniform(300, rng=np.random.default_rng(0))
    plot = str(tmp_path / "rmi.png")
    results = Benchmark.run(
        "Uniform_300", keys, num_queries=100, second_stage_size=4,
        first_stage_params=SMALL_FIRST, second_stage_params=SMALL_SECOND,
        plot_path=plot,
    )

    assert {"BTree_32", "BTree_128", "RMI_2Stage"} <= set(results)
    rmi = results["RMI_2Stage"]
    assert rmi["train_ms"] > 0
    # 50 warmup + 100 timed lookups; random half of the queries miss
    assert rmi["correct_predictions"] + rmi["fallbacks"] == 150
    assert rmi["not_found"] > 0
    assert (tmp_path / "rmi.png").exists()
