"""
earthspace - Model Partitioning

Split a layered model between a ground compute pool and an orbital pool.

This is pipeline parallelism with a very slow stage boundary: crossing from
ground to orbit costs tens of milliseconds plus the transfer time of the
activation tensor, against sub-millisecond hops inside a datacenter. A plan
therefore has a single split index s: layers [0, s) run on the ground and
layers [s, n) run in orbit, with at most one boundary crossing.

Search is exhaustive where it needs to be. A 12-layer transformer profile has
26 layers and 27 candidate splits, so brute force is cheap; switch to
prefix sums if profiles ever reach hundreds of layers.
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import Optional, Dict, List, Tuple
import logging

from .config import get_default_config
from .core import Topology
from .errors import ValidationError
from .mesh import propagation_delay_ms

logger = logging.getLogger(__name__)


class LayerType(Enum):
    """Type of neural network layer."""
    LINEAR = "linear"
    CONV2D = "conv2d"
    ATTENTION = "attention"
    EMBEDDING = "embedding"
    NORMALIZATION = "normalization"
    ACTIVATION = "activation"
    POOLING = "pooling"
    OTHER = "other"


class PlacementLocation(Enum):
    """Where a layer executes."""
    GROUND = "ground"
    ORBITAL = "orbital"


class OptimizationObjective(Enum):
    """Objective for partition optimization."""
    MINIMIZE_LATENCY = "minimize_latency"
    MINIMIZE_BANDWIDTH = "minimize_bandwidth"
    BALANCE = "balance"
    MAXIMIZE_THROUGHPUT = "maximize_throughput"


@dataclass
class LayerProfile:
    """Compute and I/O profile of a single layer.

    Attributes:
        name: Layer name
        layer_type: Type of layer
        params: Number of parameters
        flops: FLOPs for one forward pass
        input_size: Input tensor size in bytes
        output_size: Output tensor size in bytes
        activation_memory: Memory for activations in bytes
    """
    name: str
    layer_type: LayerType
    params: int
    flops: int
    input_size: int
    output_size: int
    activation_memory: int = 0

    @property
    def compute_intensity(self) -> float:
        """FLOPs per byte of memory access."""
        memory_access = self.input_size + self.output_size
        if memory_access == 0:
            return 0.0
        return self.flops / memory_access


@dataclass
class ModelProfile:
    """Ordered layer profiles for one model.

    Example:
        >>> profile = ModelProfile.from_layers([
        ...     LayerProfile("embed", LayerType.EMBEDDING, 50000, 1000000, 1024, 4096),
        ...     LayerProfile("attn", LayerType.ATTENTION, 100000, 5000000, 4096, 4096),
        ...     LayerProfile("fc", LayerType.LINEAR, 200000, 2000000, 4096, 1024),
        ... ])
        >>> profile.total_params
        350000
    """
    layers: List[LayerProfile] = field(default_factory=list)
    name: str = "model"

    @classmethod
    def from_layers(cls, layers: List[LayerProfile], name: str = "model") -> "ModelProfile":
        """Create profile from layer list."""
        return cls(layers=list(layers), name=name)

    @classmethod
    def create_transformer(
        cls,
        num_layers: int = 12,
        hidden_size: int = 768,
        vocab_size: int = 50000,
        seq_length: int = 512,
        name: str = "transformer"
    ) -> "ModelProfile":
        """Profile of a decoder-style transformer.

        Produces an embedding layer, an attention and an FFN layer per block,
        and an output projection: ``2 * num_layers + 2`` layers in total.
        """
        activation_bytes = seq_length * hidden_size * 4
        layers = [LayerProfile(
            name="embedding",
            layer_type=LayerType.EMBEDDING,
            params=vocab_size * hidden_size,
            flops=seq_length * hidden_size,
            input_size=seq_length * 4,
            output_size=activation_bytes,
        )]

        for i in range(num_layers):
            layers.append(LayerProfile(
                name=f"layer_{i}_attention",
                layer_type=LayerType.ATTENTION,
                params=4 * hidden_size * hidden_size,
                flops=2 * seq_length * seq_length * hidden_size + 4 * seq_length * hidden_size * hidden_size,
                input_size=activation_bytes,
                output_size=activation_bytes,
            ))
            layers.append(LayerProfile(
                name=f"layer_{i}_ffn",
                layer_type=LayerType.LINEAR,
                params=8 * hidden_size * hidden_size,
                flops=8 * seq_length * hidden_size * hidden_size,
                input_size=activation_bytes,
                output_size=activation_bytes,
            ))

        layers.append(LayerProfile(
            name="output",
            layer_type=LayerType.LINEAR,
            params=hidden_size * vocab_size,
            flops=seq_length * hidden_size * vocab_size,
            input_size=activation_bytes,
            output_size=seq_length * vocab_size * 4,
        ))

        return cls(layers=layers, name=name)

    @property
    def total_params(self) -> int:
        return sum(layer.params for layer in self.layers)

    @property
    def total_flops(self) -> int:
        return sum(layer.flops for layer in self.layers)

    @property
    def num_layers(self) -> int:
        return len(self.layers)

    def summary(self) -> Dict:
        """Get model summary."""
        return {
            "name": self.name,
            "num_layers": self.num_layers,
            "total_params": self.total_params,
            "total_params_millions": round(self.total_params / 1e6, 2),
            "total_flops": self.total_flops,
            "total_gflops": round(self.total_flops / 1e9, 2),
        }


@dataclass
class LayerPlacement:
    """Placement decision for a single layer.

    Attributes:
        layer_name: Name of the layer
        location: Where the layer runs
        estimated_latency_ms: Compute time, plus the crossing cost for the
            first layer after the split
        data_transfer_bytes: Bytes sent across the boundary before this layer
    """
    layer_name: str
    location: PlacementLocation
    estimated_latency_ms: float = 0.0
    data_transfer_bytes: int = 0


@dataclass
class PartitionPlan:
    """Complete partitioning plan for a model.

    Attributes:
        model_name: Name of the model
        placements: One placement per layer, in model order
        split_index: First orbital layer (0 = all orbital, n = all ground)
        total_latency_ms: Sum of per-layer latencies
        ground_orbital_transfers: Boundary crossings (0 or 1)
        total_transfer_bytes: Bytes crossing the boundary
        transfer_latency_ms: Crossing cost included in total_latency_ms
        objective: Optimization objective used
    """
    model_name: str
    placements: List[LayerPlacement]
    split_index: int
    total_latency_ms: float
    ground_orbital_transfers: int
    total_transfer_bytes: int
    transfer_latency_ms: float
    objective: OptimizationObjective

    @property
    def ground_layers(self) -> List[LayerPlacement]:
        return [p for p in self.placements if p.location == PlacementLocation.GROUND]

    @property
    def orbital_layers(self) -> List[LayerPlacement]:
        return [p for p in self.placements if p.location == PlacementLocation.ORBITAL]

    def stage_latencies(self) -> Tuple[float, float, float]:
        """(ground compute, boundary transfer, orbital compute) in ms."""
        ground = sum(p.estimated_latency_ms for p in self.ground_layers)
        orbital = sum(p.estimated_latency_ms for p in self.orbital_layers) - self.transfer_latency_ms
        return ground, self.transfer_latency_ms, orbital

    @property
    def bottleneck_ms(self) -> float:
        """Slowest pipeline stage; bounds steady-state throughput."""
        return max(self.stage_latencies(), default=0.0)

    def summary(self) -> Dict:
        """Get partition plan summary."""
        return {
            "model_name": self.model_name,
            "total_layers": len(self.placements),
            "split_index": self.split_index,
            "ground_layers": len(self.ground_layers),
            "orbital_layers": len(self.orbital_layers),
            "total_latency_ms": round(self.total_latency_ms, 2),
            "bottleneck_ms": round(self.bottleneck_ms, 2),
            "ground_orbital_transfers": self.ground_orbital_transfers,
            "total_transfer_mb": round(self.total_transfer_bytes / 1e6, 2),
            "objective": self.objective.value,
        }


class LatencyEstimator:
    """Latency of a ground-orbital exchange.

    Propagation uses the same free-space model as the ISL mesh.
    """

    DEFAULT_PROCESSING_OVERHEAD_MS = 5.0

    def __init__(
        self,
        orbit_altitude_km: float = 550.0,
        uplink_bandwidth_mbps: float = 100.0,
        downlink_bandwidth_mbps: float = 200.0,
        processing_overhead_ms: float = DEFAULT_PROCESSING_OVERHEAD_MS
    ):
        self.orbit_altitude_km = orbit_altitude_km
        self.uplink_bandwidth_mbps = uplink_bandwidth_mbps
        self.downlink_bandwidth_mbps = downlink_bandwidth_mbps
        self.processing_overhead_ms = processing_overhead_ms

    @property
    def propagation_delay_ms(self) -> float:
        """One-way propagation delay straight up to the orbit."""
        return propagation_delay_ms(self.orbit_altitude_km)

    def estimate_transfer_time_ms(self, bytes_size: int, is_uplink: bool = True) -> float:
        """Serialization time for ``bytes_size`` on the up- or downlink."""
        bandwidth = self.uplink_bandwidth_mbps if is_uplink else self.downlink_bandwidth_mbps
        return bytes_size * 8 / (bandwidth * 1e6) * 1000

    def estimate_round_trip_ms(self, uplink_bytes: int, downlink_bytes: int) -> float:
        """Upload, download, both propagation legs and processing overhead."""
        return (
            self.estimate_transfer_time_ms(uplink_bytes, is_uplink=True)
            + self.estimate_transfer_time_ms(downlink_bytes, is_uplink=False)
            + 2 * self.propagation_delay_ms
            + 2 * self.processing_overhead_ms
        )


class PartitionOptimizer:
    """Choose where to split a model between ground and orbital compute.

    Example:
        >>> model = ModelProfile.create_transformer(num_layers=12)
        >>> optimizer = PartitionOptimizer(
        ...     ground_compute_tflops=100.0,
        ...     orbital_compute_tflops=10.0,
        ... )
        >>> plan = optimizer.optimize(model, OptimizationObjective.MINIMIZE_LATENCY)
        >>> print(plan.summary())
    """

    def __init__(
        self,
        ground_compute_tflops: Optional[float] = None,
        orbital_compute_tflops: Optional[float] = None,
        orbit_altitude_km: Optional[float] = None,
        uplink_bandwidth_mbps: Optional[float] = None,
        downlink_bandwidth_mbps: Optional[float] = None
    ):
        config = get_default_config()
        self.ground_compute_tflops = (
            ground_compute_tflops if ground_compute_tflops is not None else config.ground_compute_tflops
        )
        self.orbital_compute_tflops = (
            orbital_compute_tflops if orbital_compute_tflops is not None else config.orbital_compute_tflops
        )
        self.latency_estimator = LatencyEstimator(
            orbit_altitude_km=orbit_altitude_km if orbit_altitude_km is not None else config.orbit_altitude_km,
            uplink_bandwidth_mbps=(
                uplink_bandwidth_mbps if uplink_bandwidth_mbps is not None else config.uplink_bandwidth_mbps
            ),
            downlink_bandwidth_mbps=(
                downlink_bandwidth_mbps if downlink_bandwidth_mbps is not None else config.downlink_bandwidth_mbps
            ),
        )

    @classmethod
    def from_topology(cls, topology: Topology, **kwargs) -> "PartitionOptimizer":
        """Use a topology's ground and orbital TFLOPS totals as the two pools."""
        return cls(
            ground_compute_tflops=topology.ground_compute_tflops,
            orbital_compute_tflops=topology.orbital_compute_tflops,
            **kwargs,
        )

    def optimize(
        self,
        model: ModelProfile,
        objective: OptimizationObjective = OptimizationObjective.BALANCE
    ) -> PartitionPlan:
        """Find the split for ``model`` under ``objective``."""
        if objective == OptimizationObjective.MINIMIZE_LATENCY:
            plan = self._best_plan(model, objective, key=lambda p: p.total_latency_ms)
        elif objective == OptimizationObjective.MAXIMIZE_THROUGHPUT:
            plan = self._best_plan(model, objective, key=lambda p: p.bottleneck_ms)
        elif objective == OptimizationObjective.MINIMIZE_BANDWIDTH:
            plan = self.create_plan(model, self._smallest_activation_split(model), objective)
        elif objective == OptimizationObjective.BALANCE:
            plan = self.create_plan(model, self._compute_share_split(model), objective)
        else:
            raise ValidationError("objective", f"Unknown objective: {objective}")

        logger.debug(
            "%s/%s: split at %d of %d, %.2f ms",
            model.name, objective.value, plan.split_index, model.num_layers, plan.total_latency_ms,
        )
        return plan

    def _best_plan(self, model: ModelProfile, objective: OptimizationObjective, key) -> PartitionPlan:
        # Strict comparison keeps the earliest split among equal scores
        best = self.create_plan(model, 0, objective)
        for split_idx in range(1, model.num_layers + 1):
            plan = self.create_plan(model, split_idx, objective)
            if key(plan) < key(best):
                best = plan
        return best

    @staticmethod
    def _smallest_activation_split(model: ModelProfile) -> int:
        if not model.layers:
            return 0
        smallest = min(range(model.num_layers), key=lambda i: model.layers[i].output_size)
        return smallest + 1

    def _compute_share_split(self, model: ModelProfile) -> int:
        total_pool = self.ground_compute_tflops + self.orbital_compute_tflops
        if total_pool <= 0:
            return 0
        target_ground_flops = model.total_flops * self.ground_compute_tflops / total_pool
        if target_ground_flops <= 0:
            return 0

        cumulative_flops = 0
        for i, layer in enumerate(model.layers):
            cumulative_flops += layer.flops
            if cumulative_flops >= target_ground_flops:
                return i + 1
        return model.num_layers

    def create_plan(
        self,
        model: ModelProfile,
        split_idx: int,
        objective: OptimizationObjective
    ) -> PartitionPlan:
        """Evaluate one split index."""
        if not 0 <= split_idx <= model.num_layers:
            raise ValidationError("split_idx", f"Must be within 0..{model.num_layers}")

        crosses = 0 < split_idx < model.num_layers
        placements = []
        transfer_bytes = 0
        transfer_latency_ms = 0.0

        for i, layer in enumerate(model.layers):
            if i < split_idx:
                location = PlacementLocation.GROUND
                tflops = self.ground_compute_tflops
            else:
                location = PlacementLocation.ORBITAL
                tflops = self.orbital_compute_tflops

            layer_latency_ms = self._compute_time_ms(layer.flops, tflops)
            layer_transfer = 0
            if crosses and i == split_idx:
                layer_transfer = layer.input_size
                transfer_latency_ms = (
                    self.latency_estimator.estimate_transfer_time_ms(layer_transfer, is_uplink=True)
                    + self.latency_estimator.propagation_delay_ms
                )
                layer_latency_ms += transfer_latency_ms
                transfer_bytes = layer_transfer

            placements.append(LayerPlacement(
                layer_name=layer.name,
                location=location,
                estimated_latency_ms=layer_latency_ms,
                data_transfer_bytes=layer_transfer,
            ))

        return PartitionPlan(
            model_name=model.name,
            placements=placements,
            split_index=split_idx,
            total_latency_ms=sum(p.estimated_latency_ms for p in placements),
            ground_orbital_transfers=1 if crosses else 0,
            total_transfer_bytes=transfer_bytes,
            transfer_latency_ms=transfer_latency_ms,
            objective=objective,
        )

    @staticmethod
    def _compute_time_ms(flops: int, tflops: float) -> float:
        if tflops <= 0:
            return float('inf') if flops > 0 else 0.0
        return flops / (tflops * 1e12) * 1000

    def compare_strategies(self, model: ModelProfile) -> Dict[str, PartitionPlan]:
        """One plan per objective, keyed by objective value."""
        return {
            objective.value: self.optimize(model, objective)
            for objective in OptimizationObjective
        }
