"""Tests for the ISL mesh: link construction, routing and bookkeeping."""

import math

import pytest

from earthspace.config import reset_default_config
from earthspace.core import EARTH_RADIUS_KM, SPEED_OF_LIGHT_KM_S, NodeConfig, Topology
from earthspace.errors import TopologyError, ValidationError
from earthspace.mesh import (
    OrbitalNode,
    Route,
    SpaceMesh,
    create_constellation,
    line_of_sight_limit_km,
    propagation_delay_ms,
)

RADIUS_550 = EARTH_RADIUS_KM + 550.0


def anomaly_for_chord(chord_km, radius_km=RADIUS_550):
    """Mean anomaly separation that puts two same-plane satellites chord_km apart."""
    return math.degrees(2 * math.asin(chord_km / (2 * radius_km)))


def make_mesh(*nodes, isl_range_km=5000.0):
    mesh = SpaceMesh(default_isl_range_km=isl_range_km)
    for node in nodes:
        mesh.add_node(node)
    mesh.update_topology()
    return mesh


@pytest.fixture
def chain():
    """sat-a - sat-b - sat-c, 20 degrees apart; a and c are out of range."""
    return make_mesh(
        OrbitalNode("sat-a", mean_anomaly_deg=0, isl_range_km=4000),
        OrbitalNode("sat-b", mean_anomaly_deg=20, isl_range_km=4000),
        OrbitalNode("sat-c", mean_anomaly_deg=40, isl_range_km=4000),
    )


def floyd_warshall(mesh):
    ids = list(mesh.nodes)
    dist = {(a, b): (0.0 if a == b else math.inf) for a in ids for b in ids}
    for (a, b), link in mesh.links.items():
        if link.active:
            dist[(a, b)] = min(dist[(a, b)], link.latency_ms)
    for k in ids:
        for i in ids:
            for j in ids:
                through = dist[(i, k)] + dist[(k, j)]
                if through < dist[(i, j)]:
                    dist[(i, j)] = through
    return dist


# =============================================================================
# GEOMETRY
# =============================================================================


class TestGeometry:
    def test_propagation_delay(self):
        assert propagation_delay_ms(SPEED_OF_LIGHT_KM_S) == pytest.approx(1000.0)

    def test_line_of_sight_at_550(self):
        assert line_of_sight_limit_km(550.0, 550.0) == pytest.approx(5407.5, abs=1.0)

    def test_line_of_sight_uses_lower_shell(self):
        assert line_of_sight_limit_km(550.0, 1200.0) == line_of_sight_limit_km(550.0, 550.0)

    def test_position_radius(self):
        node = OrbitalNode("sat", raan_deg=33.0, mean_anomaly_deg=71.0)
        assert math.hypot(*node.position_km()) == pytest.approx(RADIUS_550)


class TestOrbitalNode:
    def test_from_config(self):
        config = NodeConfig.orbital("sat-1", altitude_km=600.0, compute_tflops=7.0, raan_deg=45.0)
        node = OrbitalNode.from_config(config, isl_range_km=3000.0)

        assert node.node_id == "sat-1"
        assert node.orbit_altitude_km == 600.0
        assert node.raan_deg == 45.0
        assert node.compute_tflops == 7.0
        assert node.isl_range_km == 3000.0

    def test_from_config_rejects_ground_node(self):
        with pytest.raises(ValidationError):
            OrbitalNode.from_config(NodeConfig.ground("dc", 0.0, 0.0))


# =============================================================================
# LINKS
# =============================================================================


class TestTopology:
    def test_two_nodes_4000km_apart(self):
        mesh = make_mesh(
            OrbitalNode("sat-1", mean_anomaly_deg=0.0),
            OrbitalNode("sat-2", mean_anomaly_deg=anomaly_for_chord(4000.0)),
        )

        assert set(mesh.links) == {("sat-1", "sat-2"), ("sat-2", "sat-1")}
        assert mesh.links[("sat-1", "sat-2")].distance_km == pytest.approx(4000.0)

        route = mesh.find_route("sat-1", "sat-2")
        assert route.path == ["sat-1", "sat-2"]
        assert route.num_hops == 1
        assert route.total_latency_ms == pytest.approx(4000.0 / 299792.458 * 1000)
        assert route.total_latency_ms == pytest.approx(13.34, abs=0.01)

    def test_range_uses_smaller_terminal(self):
        mesh = make_mesh(
            OrbitalNode("sat-1", mean_anomaly_deg=0.0, isl_range_km=5000.0),
            OrbitalNode("sat-2", mean_anomaly_deg=anomaly_for_chord(4000.0), isl_range_km=3000.0),
        )
        assert mesh.links == {}

    def test_earth_blocks_long_chords(self):
        # within range, but the chord passes through the Earth
        mesh = make_mesh(
            OrbitalNode("sat-1", mean_anomaly_deg=0.0, isl_range_km=20000.0),
            OrbitalNode("sat-2", mean_anomaly_deg=anomaly_for_chord(6000.0), isl_range_km=20000.0),
        )
        assert mesh.links == {}

    def test_links_are_symmetric(self):
        mesh = create_constellation("t", num_planes=2, sats_per_plane=10)

        for (src, dst), link in mesh.links.items():
            reverse = mesh.links[(dst, src)]
            assert reverse.distance_km == link.distance_km
            assert reverse.bandwidth_gbps == link.bandwidth_gbps

    def test_add_node_marks_stale_and_query_rebuilds(self):
        mesh = SpaceMesh(default_isl_range_km=5000.0)
        mesh.add_node(OrbitalNode("sat-1", mean_anomaly_deg=0))
        mesh.add_node(OrbitalNode("sat-2", mean_anomaly_deg=20))
        assert mesh.needs_rebuild

        route = mesh.find_route("sat-1", "sat-2")

        assert route.is_valid
        assert not mesh.needs_rebuild

    def test_duplicate_node_rejected(self, chain):
        with pytest.raises(TopologyError) as exc:
            chain.add_node(OrbitalNode("sat-b"))
        assert exc.value.node_ids == ["sat-b"]

    def test_remove_node_cascades(self, chain):
        chain.remove_node("sat-b")

        assert "sat-b" not in chain.nodes
        assert all("sat-b" not in key for key in chain.links)
        assert not chain.find_route("sat-a", "sat-c").found

    def test_remove_unknown_is_noop(self, chain):
        chain.remove_node("ghost")
        assert len(chain.nodes) == 3

    def test_set_link_active(self, chain):
        chain.set_link_active("sat-b", "sat-a", False)

        assert not chain.links[("sat-a", "sat-b")].active
        assert not chain.links[("sat-b", "sat-a")].active
        assert not chain.find_route("sat-a", "sat-c").found
        assert chain.get_mesh_stats()["active_links"] == 1

        chain.set_link_active("sat-a", "sat-b", True)
        assert chain.find_route("sat-a", "sat-c").path == ["sat-a", "sat-b", "sat-c"]

    def test_set_unknown_link(self, chain):
        with pytest.raises(TopologyError):
            chain.set_link_active("sat-a", "sat-c", False)

    def test_nodes_without_range_take_mesh_default(self):
        mesh = make_mesh(
            OrbitalNode("sat-1", mean_anomaly_deg=0),
            OrbitalNode("sat-2", mean_anomaly_deg=20),
            isl_range_km=1000.0,
        )

        assert mesh.nodes["sat-1"].isl_range_km == 1000.0
        assert mesh.links == {}

    def test_nodes_without_range_take_configured_default(self, monkeypatch):
        monkeypatch.setenv("EARTHSPACE_ISL_RANGE_KM", "1000")
        reset_default_config()

        mesh = SpaceMesh()
        mesh.add_node(OrbitalNode("sat-1", mean_anomaly_deg=0))
        mesh.add_node(OrbitalNode("sat-2", mean_anomaly_deg=20))

        assert mesh.default_isl_range_km == 1000.0
        assert mesh.get_mesh_stats()["active_links"] == 0

    def test_explicit_node_range_is_kept(self):
        mesh = make_mesh(
            OrbitalNode("sat-1", mean_anomaly_deg=0, isl_range_km=3000.0),
            OrbitalNode("sat-2", mean_anomaly_deg=20, isl_range_km=3000.0),
            isl_range_km=1000.0,
        )

        assert mesh.nodes["sat-2"].isl_range_km == 3000.0
        assert ("sat-1", "sat-2") in mesh.links

    def test_from_topology_uses_orbital_nodes_only(self):
        topology = Topology()
        topology.add_node(NodeConfig.ground("dc-1", 40.0, -74.0))
        topology.add_node(NodeConfig.orbital("sat-1", mean_anomaly_deg=0.0))
        topology.add_node(NodeConfig.orbital("sat-2", mean_anomaly_deg=20.0))

        mesh = SpaceMesh.from_topology(topology, isl_range_km=4000.0)

        assert set(mesh.nodes) == {"sat-1", "sat-2"}
        assert mesh.nodes["sat-1"].isl_range_km == 4000.0
        assert not mesh.needs_rebuild
        assert mesh.find_route("sat-1", "sat-2").is_valid

    def test_stats(self, chain):
        stats = chain.get_mesh_stats()

        assert stats["total_nodes"] == 3
        assert stats["active_links"] == 2
        assert stats["avg_links_per_node"] == 1.33
        assert stats["total_bandwidth_gbps"] == 20.0
        assert stats["avg_bandwidth_gbps"] == 10.0
        assert stats["avg_link_distance_km"] == pytest.approx(2 * RADIUS_550 * math.sin(math.radians(10)), abs=0.01)

    def test_empty_stats(self):
        stats = SpaceMesh(default_isl_range_km=5000.0).get_mesh_stats()
        assert stats["active_links"] == 0
        assert stats["avg_links_per_node"] == 0


# =============================================================================
# ROUTING
# =============================================================================


class TestRouting:
    def test_multi_hop_metrics(self, chain):
        route = chain.find_route("sat-a", "sat-c")
        hops = [chain.links[("sat-a", "sat-b")], chain.links[("sat-b", "sat-c")]]

        assert route.path == ["sat-a", "sat-b", "sat-c"]
        assert route.num_hops == 2
        assert route.total_latency_ms == pytest.approx(sum(h.latency_ms for h in hops))
        assert route.total_distance_km == pytest.approx(sum(h.distance_km for h in hops))
        assert route.min_bandwidth_gbps == 10.0

    def test_bottleneck_bandwidth(self):
        mesh = make_mesh(
            OrbitalNode("sat-a", mean_anomaly_deg=0, isl_range_km=4000),
            OrbitalNode("sat-b", mean_anomaly_deg=20, isl_range_km=4000, isl_bandwidth_gbps=2.5),
            OrbitalNode("sat-c", mean_anomaly_deg=40, isl_range_km=4000),
        )
        assert mesh.find_route("sat-a", "sat-c").min_bandwidth_gbps == 2.5

    def test_routes_are_optimal(self):
        mesh = create_constellation("t", num_planes=2, sats_per_plane=10)
        best = floyd_warshall(mesh)
        source = "t_P0_S0"

        for dest, route in mesh.get_all_routes_from(source).items():
            if math.isinf(best[(source, dest)]):
                assert not route.found
                continue
            assert route.total_latency_ms == pytest.approx(best[(source, dest)])
            assert route.path[0] == source
            assert route.path[-1] == dest
            assert route.num_hops == len(route.path) - 1

    def test_equal_cost_ties_pick_smallest_id(self):
        # two equal-bandwidth detours around an out-of-range pair
        mesh = make_mesh(
            OrbitalNode("sat-a", mean_anomaly_deg=0, isl_range_km=4000),
            OrbitalNode("sat-c", mean_anomaly_deg=20, isl_range_km=4000),
            OrbitalNode("sat-b", raan_deg=10, mean_anomaly_deg=20, isl_range_km=4000),
            OrbitalNode("sat-d", mean_anomaly_deg=40, isl_range_km=4000),
        )
        assert ("sat-a", "sat-d") not in mesh.links

        first = mesh.find_route("sat-a", "sat-d", optimize_for="bandwidth")
        second = mesh.find_route("sat-a", "sat-d", optimize_for="bandwidth")

        assert first.path == ["sat-a", "sat-b", "sat-d"]
        assert second.path == first.path

    def test_unreachable(self):
        mesh = make_mesh(
            OrbitalNode("sat-1", mean_anomaly_deg=0),
            OrbitalNode("sat-2", mean_anomaly_deg=180),
        )
        route = mesh.find_route("sat-1", "sat-2")

        assert route == Route.not_found("sat-1", "sat-2")
        assert not route.found
        assert not route.is_valid

    def test_unknown_node(self, chain):
        route = chain.find_route("sat-a", "ghost")

        assert route.path == []
        assert route.num_hops == 0

    def test_route_to_self(self, chain):
        route = chain.find_route("sat-b", "sat-b")

        assert route.path == ["sat-b"]
        assert route.found
        assert not route.is_valid
        assert route.num_hops == 0
        assert route.total_latency_ms == 0.0

    def test_bad_objective(self, chain):
        with pytest.raises(ValidationError):
            chain.find_route("sat-a", "sat-c", optimize_for="cheapest")

    def test_summary(self, chain):
        summary = chain.find_route("sat-a", "sat-c").summary()

        assert summary["path"] == ["sat-a", "sat-b", "sat-c"]
        assert summary["num_hops"] == 2


# =============================================================================
# CONSTELLATIONS
# =============================================================================


class TestConstellation:
    def test_walker_layout(self):
        mesh = create_constellation("t", num_planes=4, sats_per_plane=10, inclination_deg=53.0)

        assert len(mesh.nodes) == 40
        assert mesh.nodes["t_P1_S0"].raan_deg == 90.0
        assert mesh.nodes["t_P1_S0"].mean_anomaly_deg == pytest.approx(9.0)
        assert mesh.nodes["t_P0_S3"].mean_anomaly_deg == pytest.approx(108.0)
        assert not mesh.needs_rebuild
        assert mesh.get_mesh_stats()["active_links"] > 0

    def test_in_plane_neighbours_are_linked(self):
        mesh = create_constellation("t", num_planes=1, sats_per_plane=10)

        for sat in range(10):
            neighbour = (sat + 1) % 10
            assert (f"t_P0_S{sat}", f"t_P0_S{neighbour}") in mesh.links

    @pytest.mark.parametrize("planes,sats,field", [(0, 10, "num_planes"), (3, 0, "sats_per_plane")])
    def test_validation(self, planes, sats, field):
        with pytest.raises(ValidationError) as exc:
            create_constellation("t", num_planes=planes, sats_per_plane=sats)
        assert exc.value.field == field
