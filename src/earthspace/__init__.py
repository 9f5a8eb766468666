"""
earthspace - Earth-Space Distributed Coordination

Plan AI workloads that span ground and orbital compute: compress and
aggregate federated gradients, split models between ground and orbit,
schedule transfers into ground station passes, and route over the
inter-satellite mesh.

Example:
    >>> from earthspace import (
    ...     FederatedClient, CompressionConfig, GradientAggregator,
    ...     ModelProfile, PartitionOptimizer,
    ...     SyncScheduler, Priority,
    ...     create_constellation,
    ... )
    >>>
    >>> # Federated learning with gradient compression
    >>> client = FederatedClient("orbital-1", CompressionConfig.balanced())
    >>> compressed = client.compress(client.compute_gradients(params, local_data))
    >>>
    >>> # Model partitioning
    >>> plan = PartitionOptimizer().optimize(ModelProfile.create_transformer(num_layers=12))
    >>>
    >>> # Sync scheduling
    >>> scheduler = SyncScheduler()
    >>> scheduler.schedule_gradient_sync("orbital-1", compressed, Priority.HIGH)
    >>> schedule = scheduler.optimize(hours=24)
    >>>
    >>> # Space mesh routing
    >>> mesh = create_constellation("test", num_planes=4, sats_per_plane=10)
    >>> route = mesh.find_route("test_P0_S0", "test_P2_S5")
"""

__version__ = "0.1.0"

# Errors
from .errors import (
    EarthSpaceError,
    ValidationError,
    TopologyError,
    AggregationError,
)

# Configuration
from .config import (
    Config,
    get_default_config,
    set_default_config,
    reset_default_config,
    configure_logging,
)

# Core types
from .core import (
    SPEED_OF_LIGHT_KM_S,
    EARTH_RADIUS_KM,
    EARTH_MU,
    NodeType,
    OrbitalElements,
    NodeConfig,
    Topology,
    TrainingMetrics,
)

# Gradient compression
from .compression import (
    CompressionMethod,
    CompressionConfig,
    CompressedGradient,
    GradientCompressor,
    quantize,
)

# Federated learning
from .federated import (
    FederatedClient,
    AggregationStrategy,
    GradientAggregator,
)

# Model partitioning
from .partitioning import (
    LayerType,
    LayerProfile,
    ModelProfile,
    PlacementLocation,
    LayerPlacement,
    PartitionPlan,
    OptimizationObjective,
    LatencyEstimator,
    PartitionOptimizer,
)

# Sync scheduling
from .sync import (
    Priority,
    GroundStation,
    ContactWindow,
    SyncTask,
    PriorityQueue,
    ScheduledContact,
    SyncScheduler,
)

# Space mesh
from .mesh import (
    LinkType,
    OrbitalNode,
    ISLLink,
    Route,
    SpaceMesh,
    create_constellation,
    propagation_delay_ms,
    line_of_sight_limit_km,
)

__all__ = [
    "__version__",
    # Errors
    "EarthSpaceError",
    "ValidationError",
    "TopologyError",
    "AggregationError",
    # Config
    "Config",
    "get_default_config",
    "set_default_config",
    "reset_default_config",
    "configure_logging",
    # Core
    "SPEED_OF_LIGHT_KM_S",
    "EARTH_RADIUS_KM",
    "EARTH_MU",
    "NodeType",
    "OrbitalElements",
    "NodeConfig",
    "Topology",
    "TrainingMetrics",
    # Compression
    "CompressionMethod",
    "CompressionConfig",
    "CompressedGradient",
    "GradientCompressor",
    "quantize",
    # Federated
    "FederatedClient",
    "AggregationStrategy",
    "GradientAggregator",
    # Partitioning
    "LayerType",
    "LayerProfile",
    "ModelProfile",
    "PlacementLocation",
    "LayerPlacement",
    "PartitionPlan",
    "OptimizationObjective",
    "LatencyEstimator",
    "PartitionOptimizer",
    # Sync
    "Priority",
    "GroundStation",
    "ContactWindow",
    "SyncTask",
    "PriorityQueue",
    "ScheduledContact",
    "SyncScheduler",
    # Mesh
    "LinkType",
    "OrbitalNode",
    "ISLLink",
    "Route",
    "SpaceMesh",
    "create_constellation",
    "propagation_delay_ms",
    "line_of_sight_limit_km",
]
