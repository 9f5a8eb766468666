"""
earthspace - Core Types

Node, topology and metrics types shared by the coordination components.

Units follow aerospace convention throughout the package: kilometres for
distance, degrees for angles, TFLOPS for compute, Mbps/Gbps for links.
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import Optional, Dict, List, Tuple
import logging
import time

from .errors import TopologyError, ValidationError

logger = logging.getLogger(__name__)


# Physical constants
SPEED_OF_LIGHT_KM_S = 299792.458
# NOTE: mean Earth radius, matches the simplified circular-orbit geometry
EARTH_RADIUS_KM = 6371.0
EARTH_MU = 398600.4418  # km^3/s^2


class NodeType(Enum):
    """Type of compute node in the Earth-space infrastructure."""
    GROUND = "ground"
    ORBITAL = "orbital"


@dataclass
class OrbitalElements:
    """Circular-orbit elements for an orbital node.

    Attributes:
        altitude_km: Altitude above mean Earth radius
        inclination_deg: Orbital inclination (0-180)
        raan_deg: Right ascension of the ascending node
        mean_anomaly_deg: Position along the orbit
    """
    altitude_km: float = 550.0
    inclination_deg: float = 51.6
    raan_deg: float = 0.0
    mean_anomaly_deg: float = 0.0

    def __post_init__(self):
        if self.altitude_km <= 0:
            raise ValidationError("altitude_km", "Must be positive")
        if not 0 <= self.inclination_deg <= 180:
            raise ValidationError("inclination_deg", "Must be between 0 and 180 degrees")


@dataclass
class NodeConfig:
    """Configuration for a compute node.

    Orbital nodes carry orbital elements and no ground location; ground
    nodes carry a (lat, lon) location and no orbit. An orbital node created
    without elements gets a default 550 km circular orbit.

    Attributes:
        node_id: Unique identifier for the node
        node_type: Type of node (ground or orbital)
        compute_tflops: Compute capacity in TFLOPS
        memory_gb: Memory capacity in GB
        bandwidth_mbps: Network bandwidth in Mbps
        orbit: Orbital elements (orbital nodes only)
        location: Ground location tuple (lat, lon) (ground nodes only)
    """
    node_id: str
    node_type: NodeType
    compute_tflops: float = 10.0
    memory_gb: float = 32.0
    bandwidth_mbps: float = 100.0
    orbit: Optional[OrbitalElements] = None
    location: Optional[Tuple[float, float]] = None

    def __post_init__(self):
        if not self.node_id:
            raise ValidationError("node_id", "Must be a non-empty string")
        if self.compute_tflops < 0:
            raise ValidationError("compute_tflops", "Must be non-negative")

        if self.node_type == NodeType.ORBITAL:
            if self.location is not None:
                raise ValidationError("location", "Orbital nodes have no ground location")
            if self.orbit is None:
                self.orbit = OrbitalElements()
        else:
            if self.orbit is not None:
                raise ValidationError("orbit", "Ground nodes have no orbital elements")
            if self.location is None:
                raise ValidationError("location", "Ground nodes need a (lat, lon) location")
            lat, lon = self.location
            if not -90 <= lat <= 90:
                raise ValidationError("location", "Latitude must be between -90 and 90 degrees")
            if not -180 <= lon <= 180:
                raise ValidationError("location", "Longitude must be between -180 and 180 degrees")

    @property
    def orbit_altitude_km(self) -> Optional[float]:
        """Orbital altitude, or None for ground nodes."""
        return self.orbit.altitude_km if self.orbit is not None else None

    @classmethod
    def orbital(cls, node_id: str, altitude_km: float = 550.0,
                compute_tflops: float = 10.0, inclination_deg: float = 51.6,
                raan_deg: float = 0.0, mean_anomaly_deg: float = 0.0) -> "NodeConfig":
        """Create an orbital node configuration."""
        return cls(
            node_id=node_id,
            node_type=NodeType.ORBITAL,
            compute_tflops=compute_tflops,
            orbit=OrbitalElements(altitude_km, inclination_deg, raan_deg, mean_anomaly_deg),
        )

    @classmethod
    def ground(cls, node_id: str, lat: float, lon: float,
               compute_tflops: float = 100.0) -> "NodeConfig":
        """Create a ground node configuration."""
        return cls(
            node_id=node_id,
            node_type=NodeType.GROUND,
            compute_tflops=compute_tflops,
            memory_gb=256.0,
            bandwidth_mbps=1000.0,
            location=(lat, lon),
        )


@dataclass
class Topology:
    """Ground and orbital nodes plus their declared connections.

    Node ids are unique; re-adding an id replaces the node. Removing a node
    removes every connection that touches it.
    """
    nodes: Dict[str, NodeConfig] = field(default_factory=dict)
    connections: List[Tuple[str, str, float]] = field(default_factory=list)  # (node1, node2, bandwidth)

    def add_node(self, node: NodeConfig) -> None:
        """Add a node to the topology."""
        self.nodes[node.node_id] = node

    def remove_node(self, node_id: str) -> None:
        """Remove a node and all of its connections."""
        if self.nodes.pop(node_id, None) is None:
            return
        before = len(self.connections)
        self.connections = [c for c in self.connections if node_id not in (c[0], c[1])]
        logger.debug("Removed node %s and %d connections", node_id, before - len(self.connections))

    def add_connection(self, node1_id: str, node2_id: str, bandwidth_mbps: float) -> None:
        """Add a connection between two nodes."""
        missing = [n for n in (node1_id, node2_id) if n not in self.nodes]
        if missing:
            raise TopologyError("Both nodes must exist in topology", missing)
        self.connections.append((node1_id, node2_id, bandwidth_mbps))

    def get_node(self, node_id: str) -> Optional[NodeConfig]:
        """Look up a node by id."""
        return self.nodes.get(node_id)

    def get_ground_nodes(self) -> List[NodeConfig]:
        """Get all ground nodes."""
        return [n for n in self.nodes.values() if n.node_type == NodeType.GROUND]

    def get_orbital_nodes(self) -> List[NodeConfig]:
        """Get all orbital nodes."""
        return [n for n in self.nodes.values() if n.node_type == NodeType.ORBITAL]

    @property
    def node_count(self) -> int:
        return len(self.nodes)

    @property
    def total_compute_tflops(self) -> float:
        """Total compute capacity across all nodes."""
        return sum(n.compute_tflops for n in self.nodes.values())

    @property
    def ground_compute_tflops(self) -> float:
        """Total ground compute capacity."""
        return sum(n.compute_tflops for n in self.get_ground_nodes())

    @property
    def orbital_compute_tflops(self) -> float:
        """Total orbital compute capacity."""
        return sum(n.compute_tflops for n in self.get_orbital_nodes())


@dataclass
class TrainingMetrics:
    """Per-node training and communication accounting.

    Purely for reporting; nothing in the engine makes decisions from it.
    """
    total_steps: int = 0
    total_samples: int = 0

    bytes_uploaded: int = 0
    bytes_downloaded: int = 0
    sync_count: int = 0

    compute_time_s: float = 0.0
    communication_time_s: float = 0.0
    idle_time_s: float = 0.0

    loss_history: List[float] = field(default_factory=list)
    compression_ratio: float = 1.0

    _start_time: Optional[float] = field(default=None, repr=False)

    def start_step(self) -> None:
        self._start_time = time.monotonic()

    def end_step(self, loss: Optional[float] = None, samples: int = 0) -> None:
        if self._start_time is not None:
            self.compute_time_s += time.monotonic() - self._start_time
        self.total_steps += 1
        self.total_samples += samples
        if loss is not None:
            self.loss_history.append(loss)
        self._start_time = None

    def record_idle(self, duration_s: float) -> None:
        """Record time spent waiting, e.g. for the next contact window."""
        if duration_s < 0:
            raise ValidationError("duration_s", "Must be non-negative")
        self.idle_time_s += duration_s

    def record_sync(self, bytes_up: int, bytes_down: int = 0, duration_s: float = 0.0) -> None:
        """Record a synchronization event."""
        self.bytes_uploaded += bytes_up
        self.bytes_downloaded += bytes_down
        self.communication_time_s += duration_s
        self.sync_count += 1

    @property
    def total_bytes_transferred(self) -> int:
        return self.bytes_uploaded + self.bytes_downloaded

    @property
    def compute_efficiency(self) -> float:
        """Ratio of compute time to total time."""
        total = self.compute_time_s + self.communication_time_s + self.idle_time_s
        if total == 0:
            return 0.0
        return self.compute_time_s / total

    @property
    def average_loss(self) -> Optional[float]:
        if not self.loss_history:
            return None
        return sum(self.loss_history) / len(self.loss_history)

    @property
    def latest_loss(self) -> Optional[float]:
        return self.loss_history[-1] if self.loss_history else None

    def summary(self) -> Dict:
        """Get a summary of training metrics."""
        return {
            "total_steps": self.total_steps,
            "total_samples": self.total_samples,
            "compute_time_s": round(self.compute_time_s, 2),
            "communication_time_s": round(self.communication_time_s, 2),
            "idle_time_s": round(self.idle_time_s, 2),
            "compute_efficiency": round(self.compute_efficiency, 4),
            "total_bytes_transferred": self.total_bytes_transferred,
            "sync_count": self.sync_count,
            "compression_ratio": round(self.compression_ratio, 4),
            "latest_loss": self.latest_loss,
        }
