from learned_rmi.config.network_config import LogConfig
from learned_rmi.utils.data_loader import DatasetGenerator
from learned_rmi.utils.logger import init_logging
from learned_rmi.benchmarks.benchmark_runner import Benchmark

def main():
    init_logging(LogConfig(level="INFO"))
    print("🧠 Recursive Model Index vs. B-Tree\n")
    size = 100_000
    print("#"*70)
    print(f"Testing {size:,} keys")
    print("#"*70)

    for name, gen_func in [
        ("Sequential", DatasetGenerator.generate_sequential),
        ("Uniform", DatasetGenerator.generate_uniform),
        ("Mixed", DatasetGenerator.generate_mixed),
    ]:
        keys = gen_func(size)
        Benchmark.run(f"{name} ({len(keys):,})", keys, plot_path=f"rmi_{name.lower()}.png")

if __name__ == "__main__":
    main()
