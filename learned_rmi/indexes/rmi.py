"""
===============================================================================
TWO-STAGE RECURSIVE MODEL INDEX (RMI)
===============================================================================
A learned index over (key, value) entries:
  -Stage 0 (first stage): one small neural network predicting a key's position
   in the sorted dataset, as a fraction of the dataset size.
  -Stage 1 (second stage): a fixed number of linear "experts", each refining the
   position for the bucket of positions routed to it by the first stage.
  -Overflow buffer: unsorted inserts since the last fit, scanned linearly.

Insert:
  Append to the overflow buffer. Once the buffer holds more than
  `max_overflow_size` entries, retrain synchronously before returning.

Train:
  1) Merge overflow into the sorted dataset and re-sort (stable, by key).
  2) Fit a fresh first-stage network: random batches of keys, output scaled
     by the dataset size, Huber loss against true positions, gradient scaled
     back down by the dataset size, one Adam step per epoch.
  3) Route every entry to an expert with the first stage's own prediction
     (expert id = floor(predicted position / number of experts)), then fit each non-empty expert
     the same way on its routed subset. Record each expert's max absolute
     training error as its search window.
  4) Swap in the new dataset and models and clear the overflow buffer.

Find(key):
  -First stage -> bucket -> expert -> predicted position, clamped.
  -Binary-search only within [pred - window, pred + window].
  -Fall back to a full binary search, then to the overflow buffer.
===============================================================================
"""

import bisect
import time
from enum import Enum
from typing import Any, List, Optional, Tuple

import numpy as np
import torch
from loguru import logger

from learned_rmi.config.network_config import NetworkParameters, ParamsLike, RMIConfig, build_config
from learned_rmi.indexes.overflow import Entry, OverflowBuffer
from learned_rmi.models.loss import HuberLoss
from learned_rmi.models.regressor import Regressor
from learned_rmi.utils.data_loader import random_batch


class IndexState(Enum):
    IDLE = "idle"
    TRAINING = "training"


class RecursiveModelIndex:
    """Two-stage Recursive Model Index with an overflow buffer for fresh inserts."""

    def __init__(
        self,
        first_stage_params: ParamsLike,
        second_stage_params: ParamsLike,
        max_overflow_size: int = 10000,
        second_stage_size: int = 8,
        search_safety: int = 8,
        seed: Optional[int] = None,
    ):
        """
        Args:
            first_stage_params: batch size / epochs / learning rate / hidden
                    width of the first-stage network.
            second_stage_params: batch size / epochs / learning rate shared by
                    every second-stage expert.
            max_overflow_size: overflow entries tolerated before an insert
                    forces a retrain.
            second_stage_size: number of second-stage experts.
            search_safety: extra indices added to each expert's error window.
            seed: seeds batch sampling and weight initialization.

        Raises:
            ConfigurationError: if any parameter is malformed.
        """
        self.config: RMIConfig = build_config(
            first_stage=first_stage_params,
            second_stage=second_stage_params,
            max_overflow_size=max_overflow_size,
            second_stage_size=second_stage_size,
            search_safety=search_safety,
            seed=seed,
        )
        self._rng = np.random.default_rng(seed)
        self._generator = torch.Generator()
        if seed is not None:
            self._generator.manual_seed(seed)
        else:
            self._generator.seed()

        self.state = IndexState.IDLE
        self.train_count = 0

        # Sorted dataset and its key column (original key objects, for bisect)
        self._data: List[Entry] = []
        self._keys: List[Any] = []

        self._overflow = OverflowBuffer(self.config.max_overflow_size)

        # Models; rebuilt from scratch on every retrain
        self.first_stage: Regressor = self._new_first_stage()
        self.second_stage: List[Regressor] = [
            self._new_expert(self.config.second_stage.batch_size)
            for _ in range(self.num_experts)
        ]
        self._fitted = False
        self.stage_sizes = np.zeros(self.num_experts, dtype=np.int64)
        self.stage_errors = np.zeros(self.num_experts, dtype=np.int64)
        # Sorted-dataset positions routed to each expert by the last retrain
        self.stage_members: List[np.ndarray] = [np.empty(0, dtype=np.int64)] * self.num_experts
        self.degenerate_stages: List[int] = []

        # Lookup statistics
        self.total_queries = 0
        self.correct_predictions = 0
        self.fallbacks = 0
        self.not_found = 0

    @classmethod
    def from_config(cls, config: RMIConfig) -> "RecursiveModelIndex":
        return cls(
            config.first_stage,
            config.second_stage,
            max_overflow_size=config.max_overflow_size,
            second_stage_size=config.second_stage_size,
            search_safety=config.search_safety,
            seed=config.seed,
        )

    @property
    def num_experts(self) -> int:
        return self.config.second_stage_size

    # ------------------------------------------------------------------
    # Model construction
    # ------------------------------------------------------------------
    def _new_first_stage(self) -> Regressor:
        params = self.config.first_stage
        net = Regressor(params.batch_size, 1, 1, True, "glorot_normal", generator=self._generator)
        net.add(params.num_neurons, "relu")
        net.build()
        return net

    def _new_expert(self, batch_size: int) -> Regressor:
        net = Regressor(batch_size, 1, 1, True, "glorot_normal", generator=self._generator)
        net.build()
        return net

    # ------------------------------------------------------------------
    # Insert / train
    # ------------------------------------------------------------------
    def insert(self, key, value) -> None:
        """Add an entry; retrains inline once the overflow buffer is over capacity."""
        self._overflow.append(key, value)

        # TODO: run the retrain on a background worker and swap results in under a lock
        if self._overflow.is_over_capacity():
            self.train()

    def train(self) -> None:
        """Merge overflow into the sorted dataset and refit both stages from scratch."""
        self.state = IndexState.TRAINING
        start = time.perf_counter()
        try:
            overflow = self._overflow.snapshot()
            logger.info(
                f"Retraining... ({len(self._data)} sorted + {len(overflow)} overflow entries)"
            )
            merged = sorted(self._data + overflow, key=lambda entry: entry.key)
            keys = np.asarray([float(entry.key) for entry in merged], dtype=np.float64)

            if len(merged) == 0:
                logger.warning("Retrain on an empty dataset: no models were fit")
                first_stage = self.first_stage
                experts = list(self.second_stage)
                sizes = np.zeros(self.num_experts, dtype=np.int64)
                errors = np.zeros(self.num_experts, dtype=np.int64)
                members = [np.empty(0, dtype=np.int64)] * self.num_experts
                degenerate = list(range(self.num_experts))
            else:
                first_stage = self._train_first_stage(keys)
                experts, sizes, errors, members, degenerate = self._train_second_stage(first_stage, keys)

            # Commit only once both stages are fit
            self._data = merged
            self._keys = [entry.key for entry in merged]
            self.first_stage = first_stage
            self.second_stage = experts
            self.stage_sizes = sizes
            self.stage_errors = errors
            self.stage_members = members
            self.degenerate_stages = degenerate
            self._fitted = len(merged) > 0
            self._overflow.clear()
            self.train_count += 1
        finally:
            self.state = IndexState.IDLE

        logger.info(
            f"Retrain #{self.train_count} done: {len(self._data)} entries, "
            f"{len(self.degenerate_stages)} degenerate stages, "
            f"{(time.perf_counter() - start) * 1000:.2f} ms"
        )

    def _fit(self, net: Regressor, keys: np.ndarray, positions: np.ndarray,
             params: NetworkParameters, label: str) -> None:
        """Run the fixed epoch budget on (keys -> positions); positions are global."""
        dataset_size = len(keys)
        loss_fn = HuberLoss()
        net.register_optimizer(params.learning_rate)

        for epoch in range(params.max_num_epochs):
            batch = random_batch(net.batch_size, dataset_size, self._rng)
            labels = positions[batch].reshape(-1, 1)

            # Model predicts position as a fraction of the dataset size
            result = net.forward(keys[batch]).astype(np.float64) * dataset_size

            loss = loss_fn.loss(result, labels)
            logger.debug(f"{label} Epoch: {epoch} Loss: {loss:.4f}")

            # Undo the forward scaling so the learning rate does not depend on dataset size
            loss_back = loss_fn.backward(result, labels) / dataset_size
            net.backward(loss_back)
            net.step()

    def _train_first_stage(self, keys: np.ndarray) -> Regressor:
        logger.info("Training first stage")
        net = self._new_first_stage()
        positions = np.arange(len(keys), dtype=np.float64)
        self._fit(net, keys, positions, self.config.first_stage, "First stage")
        return net

    def _train_second_stage(self, first_stage: Regressor, keys: np.ndarray
                            ) -> Tuple[List[Regressor], np.ndarray, np.ndarray, List[np.ndarray], List[int]]:
        n = len(keys)
        params = self.config.second_stage

        logger.info("Creating per stage dataset")
        predicted = first_stage.predict(keys).ravel().astype(np.float64) * n
        stages = self._stage_for(predicted)

        logger.info("Training second stage")
        experts = list(self.second_stage)
        sizes = np.zeros(self.num_experts, dtype=np.int64)
        errors = np.zeros(self.num_experts, dtype=np.int64)
        routed: List[np.ndarray] = []
        degenerate: List[int] = []

        for stage in range(self.num_experts):
            members = np.flatnonzero(stages == stage)
            routed.append(members)
            if members.size == 0:
                logger.warning(f"Dataset for stage: {stage} is empty")
                degenerate.append(stage)
                continue

            # Experts need a fixed batch shape, so shrink it for small subsets
            batch_size = min(params.batch_size, int(members.size))
            expert = self._new_expert(batch_size)

            stage_keys = keys[members]
            stage_positions = members.astype(np.float64)
            self._fit(expert, stage_keys, stage_positions, params, f"Stage: {stage}")

            refined = expert.predict(stage_keys).ravel().astype(np.float64) * members.size
            abs_err = np.abs(refined - stage_positions)
            abs_err = np.where(np.isfinite(abs_err), abs_err, n)

            experts[stage] = expert
            sizes[stage] = members.size
            errors[stage] = int(min(n, np.ceil(np.max(abs_err))))

        return experts, sizes, errors, routed, degenerate

    def _stage_for(self, predicted_positions: np.ndarray) -> np.ndarray:
        """Expert id = floor(predicted position / number of experts), clamped to [0, k - 1]."""
        scaled = np.nan_to_num(np.asarray(predicted_positions, dtype=np.float64) / self.num_experts,
                               nan=0.0, posinf=self.num_experts, neginf=0.0)
        return np.clip(np.floor(scaled), 0, self.num_experts - 1).astype(np.int64)

    # ------------------------------------------------------------------
    # Lookup
    # ------------------------------------------------------------------
    def _estimate(self, key) -> Tuple[int, Optional[int]]:
        """(stage, clamped predicted position); position is None for an unfit stage."""
        n = len(self._data)
        query = np.asarray([[float(key)]], dtype=np.float32)
        pos0 = float(self.first_stage.predict(query)[0, 0]) * n
        stage = int(self._stage_for(np.asarray([pos0]))[0])
        if stage in self.degenerate_stages:
            return stage, None

        pred = float(self.second_stage[stage].predict(query)[0, 0]) * int(self.stage_sizes[stage])
        if not np.isfinite(pred):
            return stage, None
        return stage, int(min(n - 1, max(0, round(pred))))

    def predict_position(self, key) -> int:
        """Clamped two-stage position estimate; -1 when nothing has been trained."""
        n = len(self._data)
        if n == 0 or not self._fitted:
            return -1
        _, pred = self._estimate(key)
        if pred is None:
            # Unfit expert: fall back to the coarse first-stage estimate
            pos0 = float(self.first_stage.predict(np.asarray([[float(key)]]))[0, 0]) * n
            pred = int(min(n - 1, max(0, round(pos0)))) if np.isfinite(pos0) else 0
        return pred

    def _find_sorted(self, key) -> Optional[Entry]:
        n = len(self._data)
        if n == 0:
            return None

        if self._fitted:
            stage, pred = self._estimate(key)
            if pred is not None:
                w = int(self.stage_errors[stage]) + self.config.search_safety
                left = max(0, pred - w)
                right = min(n, pred + w + 1)
                idx = bisect.bisect_left(self._keys, key, left, right)
                if idx < right and self._keys[idx] == key:
                    if idx == left:
                        # The window may start inside a run of duplicates
                        idx = bisect.bisect_left(self._keys, key, 0, idx)
                    self.correct_predictions += 1
                    return self._data[idx]

        # Fall back to full search
        self.fallbacks += 1
        idx = bisect.bisect_left(self._keys, key)
        if idx < n and self._keys[idx] == key:
            return self._data[idx]
        return None

    def find(self, key) -> Optional[Entry]:
        """
        Look a key up in the sorted dataset, then in the overflow buffer.

        Returns:
            The first matching Entry by position (earliest insert among
            overflow duplicates), or None when the key is absent.
        """
        self.total_queries += 1
        entry = self._find_sorted(key)
        if entry is None:
            entry = self._overflow.find(key)
        if entry is None:
            self.not_found += 1
        return entry

    # ------------------------------------------------------------------
    # Introspection
    # ------------------------------------------------------------------
    @property
    def sorted_entries(self) -> Tuple[Entry, ...]:
        return tuple(self._data)

    @property
    def overflow_entries(self) -> Tuple[Entry, ...]:
        return tuple(self._overflow)

    @property
    def overflow_size(self) -> int:
        return self._overflow.size

    def __len__(self) -> int:
        return len(self._data) + len(self._overflow)

    def get_memory_usage(self) -> int:
        """Approximate memory usage in bytes for the keys + model weights."""
        total = len(self._data) * 8 + len(self._overflow) * 8
        total += self.first_stage.num_parameters() * 4
        total += sum(expert.num_parameters() * 4 for expert in self.second_stage)
        total += self.stage_sizes.nbytes + self.stage_errors.nbytes
        # Object overhead fudge factor
        total += 256
        return int(total)
