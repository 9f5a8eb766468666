"""
earthspace - Space Mesh

Inter-satellite link (ISL) topology and routing for orbital nodes.

Connectivity is distance based rather than a fixed neighbour count: two
satellites are linked when they are within both terminals' range and the
chord between them clears the Earth. Positions come from a circular-orbit
model, which is adequate for planning but not for pointing.

Routing is plain Dijkstra over active links. That is fine for constellations
up to roughly a thousand nodes; beyond that, precompute tables per topology
snapshot.
"""

from dataclasses import dataclass
from enum import Enum
from typing import Optional, Dict, List, Set, Tuple
import heapq
import logging
import math

from .config import get_default_config
from .core import EARTH_RADIUS_KM, SPEED_OF_LIGHT_KM_S, NodeConfig, NodeType, Topology
from .errors import TopologyError, ValidationError

logger = logging.getLogger(__name__)

ROUTE_OBJECTIVES = ("latency", "bandwidth")


class LinkType(Enum):
    """Type of communication link."""
    OPTICAL = "optical"  # Laser ISL
    RF = "rf"


@dataclass
class OrbitalNode:
    """An orbital compute node in the mesh.

    Attributes:
        node_id: Unique identifier
        orbit_altitude_km: Orbital altitude
        orbit_inclination_deg: Orbital inclination
        raan_deg: Right ascension of ascending node
        mean_anomaly_deg: Mean anomaly (position in orbit)
        isl_range_km: Maximum ISL range (None = the owning mesh's default)
        isl_bandwidth_gbps: ISL bandwidth capacity
        compute_tflops: Compute capacity
    """
    node_id: str
    orbit_altitude_km: float = 550.0
    orbit_inclination_deg: float = 51.6
    raan_deg: float = 0.0
    mean_anomaly_deg: float = 0.0
    isl_range_km: Optional[float] = None
    isl_bandwidth_gbps: float = 10.0
    compute_tflops: float = 10.0

    @classmethod
    def from_config(
        cls,
        config: NodeConfig,
        isl_range_km: Optional[float] = None,
        isl_bandwidth_gbps: float = 10.0,
    ) -> "OrbitalNode":
        """Build a mesh node from an orbital NodeConfig."""
        if config.node_type != NodeType.ORBITAL or config.orbit is None:
            raise ValidationError("node_type", f"{config.node_id} is not an orbital node")
        orbit = config.orbit
        return cls(
            node_id=config.node_id,
            orbit_altitude_km=orbit.altitude_km,
            orbit_inclination_deg=orbit.inclination_deg,
            raan_deg=orbit.raan_deg,
            mean_anomaly_deg=orbit.mean_anomaly_deg,
            isl_range_km=isl_range_km,
            isl_bandwidth_gbps=isl_bandwidth_gbps,
            compute_tflops=config.compute_tflops,
        )

    def position_km(self) -> Tuple[float, float, float]:
        """Inertial (x, y, z) position on a circular orbit."""
        r = EARTH_RADIUS_KM + self.orbit_altitude_km
        u = math.radians(self.mean_anomaly_deg)
        inc = math.radians(self.orbit_inclination_deg)
        raan = math.radians(self.raan_deg)

        x = r * (math.cos(raan) * math.cos(u) - math.sin(raan) * math.sin(u) * math.cos(inc))
        y = r * (math.sin(raan) * math.cos(u) + math.cos(raan) * math.sin(u) * math.cos(inc))
        z = r * math.sin(u) * math.sin(inc)
        return x, y, z


@dataclass
class ISLLink:
    """One direction of an inter-satellite link.

    Attributes:
        source_id: Source node ID
        target_id: Target node ID
        distance_km: Current distance
        bandwidth_gbps: Available bandwidth
        latency_ms: One-way propagation latency
        link_type: Type of link (optical/RF)
        active: Whether link is currently usable
    """
    source_id: str
    target_id: str
    distance_km: float
    bandwidth_gbps: float
    latency_ms: float
    link_type: LinkType = LinkType.OPTICAL
    active: bool = True


@dataclass
class Route:
    """A route through the mesh between two nodes.

    An empty ``path`` means no route exists (unknown or unreachable node).
    A single-element path is the trivial route from a node to itself. Check
    ``found`` rather than ``num_hops`` to tell the two apart.

    Attributes:
        source_id: Starting node
        destination_id: Ending node
        path: Node IDs from source to destination
        total_distance_km: Sum of hop distances
        total_latency_ms: Sum of hop latencies
        min_bandwidth_gbps: Bottleneck bandwidth
        num_hops: Number of ISL hops
    """
    source_id: str
    destination_id: str
    path: List[str]
    total_distance_km: float
    total_latency_ms: float
    min_bandwidth_gbps: float
    num_hops: int

    @classmethod
    def not_found(cls, source_id: str, destination_id: str) -> "Route":
        return cls(source_id, destination_id, [], 0.0, 0.0, 0.0, 0)

    @property
    def found(self) -> bool:
        """True when a path exists, including the trivial self route."""
        return len(self.path) > 0

    @property
    def is_valid(self) -> bool:
        """True when the route crosses at least one link."""
        return len(self.path) >= 2

    def summary(self) -> Dict:
        return {
            "source_id": self.source_id,
            "destination_id": self.destination_id,
            "path": list(self.path),
            "num_hops": self.num_hops,
            "total_distance_km": round(self.total_distance_km, 2),
            "total_latency_ms": round(self.total_latency_ms, 3),
            "min_bandwidth_gbps": self.min_bandwidth_gbps,
        }


def propagation_delay_ms(distance_km: float) -> float:
    """Free-space one-way propagation delay."""
    return (distance_km / SPEED_OF_LIGHT_KM_S) * 1000


def line_of_sight_limit_km(altitude1_km: float, altitude2_km: float) -> float:
    """Longest chord between two shells that stays clear of the Earth.

    Uses twice the horizon distance of the lower shell, which is exact for
    equal altitudes and conservative otherwise.
    """
    r_low = EARTH_RADIUS_KM + min(altitude1_km, altitude2_km)
    return 2 * math.sqrt(r_low ** 2 - EARTH_RADIUS_KM ** 2)


class SpaceMesh:
    """ISL routing mesh for orbital node communication.

    The link table is derived state. ``add_node`` marks it stale and the next
    query rebuilds it; ``remove_node`` sweeps the node's links out directly.
    Call ``update_topology()`` after moving nodes.

    Example:
        >>> mesh = SpaceMesh()
        >>> mesh.add_node(OrbitalNode("sat-1", mean_anomaly_deg=0))
        >>> mesh.add_node(OrbitalNode("sat-2", mean_anomaly_deg=15))
        >>> mesh.add_node(OrbitalNode("sat-3", mean_anomaly_deg=30))
        >>> route = mesh.find_route("sat-1", "sat-3")
        >>> print(f"Route: {route.path}, Latency: {route.total_latency_ms:.1f}ms")
    """

    def __init__(self, default_isl_range_km: Optional[float] = None):
        if default_isl_range_km is None:
            default_isl_range_km = get_default_config().isl_range_km
        self.default_isl_range_km = default_isl_range_km
        self.nodes: Dict[str, OrbitalNode] = {}
        self.links: Dict[Tuple[str, str], ISLLink] = {}
        self._adjacency: Dict[str, Set[str]] = {}
        self._stale = False

    @classmethod
    def from_topology(cls, topology: Topology, isl_range_km: Optional[float] = None) -> "SpaceMesh":
        """Build a mesh from the orbital nodes of a topology."""
        mesh = cls(default_isl_range_km=isl_range_km)
        for config in topology.get_orbital_nodes():
            mesh.add_node(OrbitalNode.from_config(config, isl_range_km=mesh.default_isl_range_km))
        mesh.update_topology()
        return mesh

    @property
    def needs_rebuild(self) -> bool:
        """True when nodes were added since the last topology rebuild."""
        return self._stale

    def add_node(self, node: OrbitalNode) -> None:
        """Add an orbital node; a node without its own ISL range takes the mesh default."""
        if node.node_id in self.nodes:
            raise TopologyError(f"Node already in mesh: {node.node_id}", [node.node_id])
        if node.isl_range_km is None:
            node.isl_range_km = self.default_isl_range_km
        self.nodes[node.node_id] = node
        self._adjacency[node.node_id] = set()
        self._stale = True

    def remove_node(self, node_id: str) -> None:
        """Remove a node and every link touching it."""
        if node_id not in self.nodes:
            return

        for neighbor_id in self._adjacency.pop(node_id):
            self._adjacency[neighbor_id].discard(node_id)
            self.links.pop((node_id, neighbor_id), None)
            self.links.pop((neighbor_id, node_id), None)
        del self.nodes[node_id]

    def update_topology(self) -> None:
        """Rebuild all links from current node positions."""
        self.links.clear()
        for neighbors in self._adjacency.values():
            neighbors.clear()

        positions = {node_id: node.position_km() for node_id, node in self.nodes.items()}
        node_ids = list(self.nodes)
        for i, id1 in enumerate(node_ids):
            for id2 in node_ids[i + 1:]:
                node1 = self.nodes[id1]
                node2 = self.nodes[id2]
                distance = math.dist(positions[id1], positions[id2])
                if distance > min(node1.isl_range_km, node2.isl_range_km):
                    continue
                if distance > line_of_sight_limit_km(node1.orbit_altitude_km, node2.orbit_altitude_km):
                    continue
                self._link(node1, node2, distance)

        self._stale = False
        logger.debug("Rebuilt mesh: %d nodes, %d links", len(self.nodes), len(self.links) // 2)

    def _link(self, node1: OrbitalNode, node2: OrbitalNode, distance: float) -> None:
        bandwidth = min(node1.isl_bandwidth_gbps, node2.isl_bandwidth_gbps)
        latency = propagation_delay_ms(distance)
        for src, dst in ((node1.node_id, node2.node_id), (node2.node_id, node1.node_id)):
            self.links[(src, dst)] = ISLLink(
                source_id=src,
                target_id=dst,
                distance_km=distance,
                bandwidth_gbps=bandwidth,
                latency_ms=latency,
            )
            self._adjacency[src].add(dst)

    def set_link_active(self, node1_id: str, node2_id: str, active: bool) -> None:
        """Enable or disable both directions of a link."""
        self._ensure_topology()
        keys = [(node1_id, node2_id), (node2_id, node1_id)]
        if any(key not in self.links for key in keys):
            raise TopologyError(f"No link between {node1_id} and {node2_id}", [node1_id, node2_id])
        for key in keys:
            self.links[key].active = active

    def _ensure_topology(self) -> None:
        if self._stale:
            self.update_topology()

    def find_route(
        self,
        source_id: str,
        destination_id: str,
        optimize_for: str = "latency"
    ) -> Route:
        """Find the best route between two nodes.

        Args:
            source_id: Starting node
            destination_id: Destination node
            optimize_for: "latency" (sum of ms) or "bandwidth" (sum of 1/Gbps)

        Returns:
            Route with path and metrics. Unknown or unreachable nodes give an
            empty path instead of raising.
        """
        if optimize_for not in ROUTE_OBJECTIVES:
            raise ValidationError("optimize_for", f"Must be one of {ROUTE_OBJECTIVES}")

        if source_id not in self.nodes or destination_id not in self.nodes:
            return Route.not_found(source_id, destination_id)

        if source_id == destination_id:
            return Route(source_id, destination_id, [source_id], 0.0, 0.0, float('inf'), 0)

        self._ensure_topology()

        distances: Dict[str, float] = {source_id: 0.0}
        predecessors: Dict[str, str] = {}
        visited: Set[str] = set()
        # (cost, node_id): equal costs pop in node id order
        pq: List[Tuple[float, str]] = [(0.0, source_id)]

        while pq:
            current_dist, current_id = heapq.heappop(pq)
            if current_id in visited:
                continue
            visited.add(current_id)
            if current_id == destination_id:
                break

            for neighbor_id in sorted(self._adjacency[current_id]):
                if neighbor_id in visited:
                    continue
                link = self.links[(current_id, neighbor_id)]
                if not link.active:
                    continue

                weight = self._edge_weight(link, optimize_for)
                new_dist = current_dist + weight
                if new_dist < distances.get(neighbor_id, float('inf')):
                    distances[neighbor_id] = new_dist
                    predecessors[neighbor_id] = current_id
                    heapq.heappush(pq, (new_dist, neighbor_id))

        if destination_id not in visited:
            logger.debug("No route from %s to %s", source_id, destination_id)
            return Route.not_found(source_id, destination_id)

        path = [destination_id]
        while path[-1] != source_id:
            path.append(predecessors[path[-1]])
        path.reverse()

        hops = [self.links[(a, b)] for a, b in zip(path, path[1:])]
        return Route(
            source_id=source_id,
            destination_id=destination_id,
            path=path,
            total_distance_km=sum(link.distance_km for link in hops),
            total_latency_ms=sum(link.latency_ms for link in hops),
            min_bandwidth_gbps=min(link.bandwidth_gbps for link in hops),
            num_hops=len(hops),
        )

    @staticmethod
    def _edge_weight(link: ISLLink, optimize_for: str) -> float:
        if optimize_for == "latency":
            return link.latency_ms
        if link.bandwidth_gbps <= 0:
            return float('inf')
        return 1.0 / link.bandwidth_gbps

    def get_all_routes_from(self, source_id: str, optimize_for: str = "latency") -> Dict[str, Route]:
        """Get routes from a node to every other node."""
        return {
            dest_id: self.find_route(source_id, dest_id, optimize_for)
            for dest_id in self.nodes
            if dest_id != source_id
        }

    def get_mesh_stats(self) -> Dict:
        """Get statistics about the mesh network (active links only)."""
        self._ensure_topology()
        undirected = [
            link for (src, dst), link in self.links.items()
            if src < dst and link.active
        ]
        active_links = len(undirected)
        total_bandwidth = sum(link.bandwidth_gbps for link in undirected)
        total_distance = sum(link.distance_km for link in undirected)

        return {
            "total_nodes": len(self.nodes),
            "active_links": active_links,
            "avg_links_per_node": round(2 * active_links / len(self.nodes), 2) if self.nodes else 0,
            "total_bandwidth_gbps": round(total_bandwidth, 2),
            "avg_bandwidth_gbps": round(total_bandwidth / active_links, 2) if active_links else 0,
            "avg_link_distance_km": round(total_distance / active_links, 2) if active_links else 0,
        }


def create_constellation(
    name: str,
    num_planes: int,
    sats_per_plane: int,
    altitude_km: float = 550.0,
    inclination_deg: float = 53.0,
    isl_range_km: float = 5000.0
) -> SpaceMesh:
    """Create a Walker constellation mesh with its links built.

    Planes are spread evenly in RAAN and each plane is phased by
    ``360 / (planes * sats)`` degrees relative to the previous one.

    Example:
        >>> mesh = create_constellation("test", num_planes=4, sats_per_plane=10)
        >>> print(mesh.get_mesh_stats())
    """
    if num_planes < 1:
        raise ValidationError("num_planes", "Constellation needs at least one plane")
    if sats_per_plane < 1:
        raise ValidationError("sats_per_plane", "Each plane needs at least one satellite")

    mesh = SpaceMesh(default_isl_range_km=isl_range_km)
    phase_step = 360.0 / (num_planes * sats_per_plane)

    for plane in range(num_planes):
        raan = (360.0 / num_planes) * plane
        for sat in range(sats_per_plane):
            mesh.add_node(OrbitalNode(
                node_id=f"{name}_P{plane}_S{sat}",
                orbit_altitude_km=altitude_km,
                orbit_inclination_deg=inclination_deg,
                raan_deg=raan,
                mean_anomaly_deg=(360.0 / sats_per_plane) * sat + phase_step * plane,
                isl_range_km=isl_range_km,
            ))

    mesh.update_topology()
    logger.info("Created constellation %s: %d satellites", name, len(mesh.nodes))
    return mesh
