"""
earthspace - Federated Learning

Per-node federated clients and the central gradient aggregator.

Clients compress their local gradients (see ``earthspace.compression``)
before handing them to transport; the aggregator combines whatever has
arrived into one dense update.

References:
- "Communication-Efficient Learning of Deep Networks from Decentralized Data"
  (McMahan et al., 2017)
"""

from enum import Enum
from typing import Optional, Dict, List, Callable, Any, Sequence, Tuple
import logging
import random
import threading

from .compression import CompressionConfig, CompressedGradient, GradientCompressor
from .core import NodeType, TrainingMetrics
from .errors import AggregationError

logger = logging.getLogger(__name__)

GradientFn = Callable[[Sequence[float], Sequence[Any]], List[float]]


class AggregationStrategy(Enum):
    """Strategy for aggregating gradients from multiple nodes."""
    FEDAVG = "fedavg"
    ASYNC_FEDAVG = "async_fedavg"
    WEIGHTED_AVG = "weighted_avg"


class FederatedClient:
    """Federated learning client for one Earth or orbital node.

    Gradient computation belongs to the training framework; pass it in as
    ``gradient_fn(model_params, local_data)``. Without one the client
    produces seeded Gaussian noise, which is enough for planning runs.

    Example:
        >>> client = FederatedClient("orbital-1", CompressionConfig.balanced())
        >>> gradients = client.compute_gradients([0.0] * 1000, local_data=[])
        >>> compressed = client.compress(gradients)
        >>> len(compressed.indices)
        10
    """

    def __init__(
        self,
        node_id: str,
        compression: Optional[CompressionConfig] = None,
        node_type: NodeType = NodeType.ORBITAL,
        gradient_fn: Optional[GradientFn] = None,
        seed: Optional[int] = None,
    ):
        self.node_id = node_id
        self.node_type = node_type
        self.compression = compression or CompressionConfig.balanced()
        self.metrics = TrainingMetrics()
        self._compressor = GradientCompressor(self.compression)
        self._gradient_fn = gradient_fn
        self._rng = random.Random(seed)
        self._local_steps = 0
        self._sync_round = 0

    @property
    def local_steps(self) -> int:
        return self._local_steps

    @property
    def sync_round(self) -> int:
        return self._sync_round

    def compute_gradients(
        self,
        model_params: Sequence[float],
        local_data: Sequence[Any],
        loss: Optional[float] = None,
    ) -> List[float]:
        """Run one local step and return its gradient vector."""
        self.metrics.start_step()
        if self._gradient_fn is not None:
            gradients = list(self._gradient_fn(model_params, local_data))
        else:
            gradients = [self._rng.gauss(0, 0.1) for _ in model_params]
        self.metrics.end_step(loss=loss, samples=len(local_data))
        self._local_steps += 1
        return gradients

    def compress(self, gradients: Sequence[float]) -> CompressedGradient:
        """Compress gradients for transmission; counts as one sync round."""
        compressed = self._compressor.compress(gradients)
        self._sync_round += 1
        self.metrics.record_sync(bytes_up=compressed.compressed_size)
        self.metrics.compression_ratio = compressed.compression_ratio
        logger.debug(
            "%s round %d: %d bytes queued for upload",
            self.node_id, self._sync_round, compressed.compressed_size,
        )
        return compressed

    def apply_update(
        self,
        model_params: Sequence[float],
        update: Sequence[float],
        learning_rate: float = 0.01,
    ) -> List[float]:
        """Apply an aggregated update to local parameters."""
        return [p - u * learning_rate for p, u in zip(model_params, update)]

    def get_stats(self) -> Dict:
        """Get client statistics."""
        return {
            "node_id": self.node_id,
            "node_type": self.node_type.value,
            "local_steps": self._local_steps,
            "sync_rounds": self._sync_round,
            "bytes_uploaded": self.metrics.bytes_uploaded,
            "compression_method": self.compression.method.value,
            "compression_ratio": self.compression.theoretical_compression_ratio,
        }


class GradientAggregator:
    """Central aggregator for gradient synchronization.

    Contributions are keyed by node id; a second contribution from the same
    node before ``aggregate()`` replaces the first. ``aggregate()`` does not
    check readiness, callers should consult ``ready_to_aggregate()`` first.

    Example:
        >>> aggregator = GradientAggregator(min_participants=2)
        >>> aggregator.receive_gradients("node-1", grads_1, samples=1000)
        >>> aggregator.receive_gradients("node-2", grads_2, samples=500)
        >>> if aggregator.ready_to_aggregate():
        ...     update = aggregator.aggregate()
    """

    def __init__(
        self,
        strategy: AggregationStrategy = AggregationStrategy.FEDAVG,
        min_participants: int = 1,
        model_size: Optional[int] = None,
    ):
        self.strategy = strategy
        self.min_participants = min_participants
        self.model_size = model_size
        self._pending: Dict[str, Tuple[CompressedGradient, int]] = {}
        self._round = 0
        self._lock = threading.Lock()

    @property
    def round(self) -> int:
        """Number of completed aggregate() calls."""
        return self._round

    def receive_gradients(
        self,
        node_id: str,
        gradients: CompressedGradient,
        samples: int = 1,
    ) -> None:
        """Record a node's contribution for the current round."""
        with self._lock:
            if node_id in self._pending:
                logger.debug("Replacing pending contribution from %s", node_id)
            self._pending[node_id] = (gradients, samples)

    @property
    def num_participants(self) -> int:
        """Number of nodes that have submitted gradients."""
        return len(self._pending)

    @property
    def pending_nodes(self) -> List[str]:
        return list(self._pending)

    def ready_to_aggregate(self) -> bool:
        """Check if enough participants for aggregation."""
        return self.num_participants >= self.min_participants

    def aggregate(self) -> List[float]:
        """Combine all pending contributions into one dense update."""
        with self._lock:
            if not self._pending:
                raise AggregationError("No gradients to aggregate")

            first, _ = next(iter(self._pending.values()))
            model_size = self.model_size or first.original_size

            if self.strategy in (AggregationStrategy.FEDAVG, AggregationStrategy.WEIGHTED_AVG):
                weights = self._sample_weights()
            elif self.strategy == AggregationStrategy.ASYNC_FEDAVG:
                weights = {node_id: 1.0 / len(self._pending) for node_id in self._pending}
            else:
                raise AggregationError(f"Unknown aggregation strategy: {self.strategy}")

            aggregated = [0.0] * model_size
            for node_id, (grad, _) in self._pending.items():
                weight = weights[node_id]
                for i, v in enumerate(grad.to_dense(model_size)):
                    aggregated[i] += v * weight

            participants = len(self._pending)
            self._pending.clear()
            self._round += 1

        logger.info(
            "Aggregated round %d from %d participants (%s)",
            self._round, participants, self.strategy.value,
        )
        return aggregated

    def _sample_weights(self) -> Dict[str, float]:
        total_samples = sum(s for _, s in self._pending.values())
        if total_samples <= 0:
            return {node_id: 1.0 / len(self._pending) for node_id in self._pending}
        return {node_id: s / total_samples for node_id, (_, s) in self._pending.items()}

    def get_stats(self) -> Dict:
        """Get aggregator statistics."""
        return {
            "strategy": self.strategy.value,
            "round": self._round,
            "pending_participants": self.num_participants,
            "min_participants": self.min_participants,
        }
