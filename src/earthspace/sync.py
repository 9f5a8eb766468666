"""
earthspace - Sync Scheduler

Schedule data transfers into ground station contact windows.

A LEO satellite typically sees a given station 4-6 times a day for 8-12
minutes at 100-200 Mbps. Pending transfers wait in a priority queue ordered
by (priority, deadline); each window is filled greedily in that order, and a
task that doesn't fit is skipped rather than blocking the ones behind it.
This is first-fit bin packing: not optimal, but deterministic and
O(windows x tasks).

Pass prediction here is a latitude-vs-inclination heuristic, good enough for
capacity planning. Feed real windows (from SGP4 or a ground-segment provider)
into ``SyncScheduler.optimize(windows=...)`` when you have them.
"""

from dataclasses import dataclass, field
from datetime import datetime, timedelta
from enum import Enum
from typing import Optional, Dict, List, Callable, Tuple
import heapq
import logging
import math

from .compression import CompressedGradient
from .config import get_default_config
from .core import EARTH_MU, EARTH_RADIUS_KM
from .errors import ValidationError
from .partitioning import PartitionPlan

logger = logging.getLogger(__name__)

BYTES_PER_MB = 1024 * 1024


def _is_aware(value: datetime) -> bool:
    return value.tzinfo is not None and value.utcoffset() is not None


class Priority(Enum):
    """Priority level for sync operations (lower value = more urgent)."""
    CRITICAL = 0  # Must go out on the next pass
    HIGH = 1
    NORMAL = 2
    LOW = 3

    @property
    def default_deadline(self) -> timedelta:
        """Deadline offset applied when the caller doesn't give one."""
        return _DEFAULT_DEADLINES[self]


_DEFAULT_DEADLINES = {
    Priority.CRITICAL: timedelta(hours=1),
    Priority.HIGH: timedelta(hours=4),
    Priority.NORMAL: timedelta(hours=12),
    Priority.LOW: timedelta(hours=48),
}


@dataclass
class GroundStation:
    """A fixed ground contact point.

    Attributes:
        name: Station name/identifier
        latitude: Latitude in degrees
        longitude: Longitude in degrees
        elevation_m: Elevation above sea level in meters
        bandwidth_mbps: Available bandwidth in Mbps
        min_elevation_deg: Minimum usable elevation angle
    """
    name: str
    latitude: float
    longitude: float
    elevation_m: float = 0.0
    bandwidth_mbps: float = 100.0
    min_elevation_deg: float = 5.0

    def __post_init__(self):
        if not -90 <= self.latitude <= 90:
            raise ValidationError("latitude", "Must be between -90 and 90 degrees")
        if not -180 <= self.longitude <= 180:
            raise ValidationError("longitude", "Must be between -180 and 180 degrees")
        if self.bandwidth_mbps <= 0:
            raise ValidationError("bandwidth_mbps", "Must be positive")

    @classmethod
    def svalbard(cls) -> "GroundStation":
        """Svalbard Satellite Station (high Arctic coverage)."""
        return cls("Svalbard", 78.2306, 15.3894, 450.0, 200.0)

    @classmethod
    def kourou(cls) -> "GroundStation":
        """Kourou, French Guiana (equatorial)."""
        return cls("Kourou", 5.2378, -52.7683, 0.0, 150.0)

    @classmethod
    def perth(cls) -> "GroundStation":
        return cls("Perth", -31.9474, 115.8648, 30.0, 100.0)

    @classmethod
    def fairbanks(cls) -> "GroundStation":
        """Fairbanks, Alaska (polar coverage)."""
        return cls("Fairbanks", 64.8401, -147.7200, 135.0, 150.0)

    @classmethod
    def default_network(cls) -> List["GroundStation"]:
        """Default global ground station network."""
        return [cls.svalbard(), cls.kourou(), cls.perth(), cls.fairbanks()]


@dataclass
class ContactWindow:
    """A time-boxed transfer opportunity through one station.

    Attributes:
        station: Ground station for this contact
        start_time: Start of contact window
        end_time: End of contact window (after start_time)
        max_elevation_deg: Maximum elevation during pass
        available_bandwidth_mbps: Bandwidth available during this window
    """
    station: GroundStation
    start_time: datetime
    end_time: datetime
    max_elevation_deg: float
    available_bandwidth_mbps: float

    def __post_init__(self):
        if self.end_time <= self.start_time:
            raise ValidationError("end_time", "Must be after start_time")

    @property
    def duration_seconds(self) -> float:
        return (self.end_time - self.start_time).total_seconds()

    @property
    def duration_minutes(self) -> float:
        return self.duration_seconds / 60.0

    @property
    def capacity_bytes(self) -> int:
        """Bytes transferable in this window (bandwidth x duration)."""
        return int(self.available_bandwidth_mbps * 1e6 / 8 * self.duration_seconds)

    @property
    def capacity_mb(self) -> float:
        return self.capacity_bytes / BYTES_PER_MB


@dataclass
class SyncTask:
    """A pending transfer request.

    Attributes:
        task_id: Unique id within its queue
        node_id: Node that owns the data
        data_size_bytes: Payload size
        priority: Priority level
        deadline: Latest acceptable transfer time
        description: Free-form label
        created_at: Enqueue time
    """
    task_id: str
    node_id: str
    data_size_bytes: int
    priority: Priority
    deadline: datetime
    description: str = ""
    created_at: datetime = field(default_factory=datetime.now)


class PriorityQueue:
    """Pending sync tasks ordered by (priority, deadline, arrival).

    Example:
        >>> queue = PriorityQueue()
        >>> queue.add_task("node-1", 1024*1024, Priority.HIGH, "Upload gradients")
        'task_1'
        >>> queue.add_task("node-2", 512*1024, Priority.NORMAL, "Sync checkpoints")
        'task_2'
        >>> queue.pop_task().description
        'Upload gradients'
    """

    def __init__(self, clock: Callable[[], datetime] = datetime.now):
        self._clock = clock
        self._heap: List[Tuple[int, datetime, int, SyncTask]] = []
        self._task_counter = 0

    def add_task(
        self,
        node_id: str,
        data_size_bytes: int,
        priority: Priority = Priority.NORMAL,
        description: str = "",
        deadline: Optional[datetime] = None
    ) -> str:
        """Enqueue a task and return its id."""
        if data_size_bytes < 0:
            raise ValidationError("data_size_bytes", "Must be non-negative")

        now = self._clock()
        if deadline is not None and _is_aware(deadline) != _is_aware(now):
            raise ValidationError(
                "deadline", "Must be timezone-aware exactly when the queue clock is"
            )
        self._task_counter += 1
        task = SyncTask(
            task_id=f"task_{self._task_counter}",
            node_id=node_id,
            data_size_bytes=data_size_bytes,
            priority=priority,
            deadline=deadline if deadline is not None else now + priority.default_deadline,
            description=description,
            created_at=now,
        )
        heapq.heappush(self._heap, (priority.value, task.deadline, self._task_counter, task))
        return task.task_id

    def pop_task(self) -> Optional[SyncTask]:
        """Remove and return the most urgent task."""
        if self._heap:
            return heapq.heappop(self._heap)[-1]
        return None

    def peek_task(self) -> Optional[SyncTask]:
        if self._heap:
            return self._heap[0][-1]
        return None

    def is_empty(self) -> bool:
        return not self._heap

    def __len__(self) -> int:
        return len(self._heap)

    @property
    def size(self) -> int:
        return len(self._heap)

    @property
    def total_bytes_pending(self) -> int:
        return sum(entry[-1].data_size_bytes for entry in self._heap)

    def pending_tasks(self) -> List[SyncTask]:
        """Pending tasks in scheduling order."""
        return [entry[-1] for entry in sorted(self._heap)]

    def get_tasks_for_window(self, capacity_bytes: int) -> List[SyncTask]:
        """Remove and return the tasks that fit into ``capacity_bytes``.

        Walks the queue in priority order and takes every task that still
        fits; larger tasks are skipped and stay queued.
        """
        selected = []
        remaining = []
        free = capacity_bytes

        for entry in sorted(self._heap):
            task = entry[-1]
            if task.data_size_bytes <= free:
                selected.append(task)
                free -= task.data_size_bytes
            else:
                remaining.append(entry)

        if selected:
            self._heap = remaining
            heapq.heapify(self._heap)
        return selected


@dataclass
class ScheduledContact:
    """Tasks assigned to one contact window."""
    window: ContactWindow
    tasks: List[SyncTask]

    @property
    def bytes_scheduled(self) -> int:
        return sum(t.data_size_bytes for t in self.tasks)

    @property
    def utilization(self) -> float:
        """Fraction of the window's capacity in use."""
        capacity = self.window.capacity_bytes
        return self.bytes_scheduled / capacity if capacity else 0.0

    @property
    def late_tasks(self) -> List[SyncTask]:
        """Tasks whose deadline passes before this window opens."""
        return [t for t in self.tasks if t.deadline < self.window.start_time]


class SyncScheduler:
    """Plan transfers across upcoming ground station passes.

    Example:
        >>> scheduler = SyncScheduler(GroundStation.default_network(), orbit_altitude_km=550.0)
        >>> scheduler.schedule_sync("orbital-1", 10_000_000, Priority.HIGH)
        'task_1'
        >>> schedule = scheduler.optimize(hours=24)
        >>> scheduler.get_schedule_summary()["pending_tasks"]
        0
    """

    def __init__(
        self,
        ground_stations: Optional[List[GroundStation]] = None,
        orbit_altitude_km: Optional[float] = None,
        orbit_inclination_deg: Optional[float] = None,
        clock: Callable[[], datetime] = datetime.now,
    ):
        config = get_default_config()
        self.ground_stations = ground_stations or GroundStation.default_network()
        self.orbit_altitude_km = (
            orbit_altitude_km if orbit_altitude_km is not None else config.orbit_altitude_km
        )
        self.orbit_inclination_deg = (
            orbit_inclination_deg if orbit_inclination_deg is not None else config.orbit_inclination_deg
        )
        self._clock = clock
        self.queue = PriorityQueue(clock=clock)
        self._schedule: List[ScheduledContact] = []

    @property
    def orbital_period_minutes(self) -> float:
        """Circular-orbit period in minutes."""
        a = EARTH_RADIUS_KM + self.orbit_altitude_km
        return 2 * math.pi * math.sqrt(a ** 3 / EARTH_MU) / 60.0

    @property
    def orbits_per_day(self) -> float:
        return (24.0 * 60.0) / self.orbital_period_minutes

    @property
    def schedule(self) -> List[ScheduledContact]:
        """Result of the last optimize() call."""
        return list(self._schedule)

    def get_contact_windows(
        self,
        start_time: Optional[datetime] = None,
        hours: float = 24
    ) -> List[ContactWindow]:
        """Predict contact windows over the next ``hours``.

        Passes are spaced evenly over the day for each station. Stations
        more than 10 degrees poleward of the inclination get none.
        """
        now = self._clock()
        if start_time is not None and _is_aware(start_time) != _is_aware(now):
            raise ValidationError("start_time", "Must be timezone-aware exactly when the clock is")
        start = start_time or now
        end = start + timedelta(hours=hours)
        windows = []

        for station in self.ground_stations:
            passes_per_day = self._estimate_passes_per_day(station.latitude)
            if passes_per_day <= 0:
                continue
            max_elevation = self._estimate_max_elevation(station.latitude)
            if max_elevation <= station.min_elevation_deg:
                continue

            interval = timedelta(hours=24.0 / passes_per_day)
            duration = timedelta(minutes=self._estimate_pass_duration(station.latitude))
            current = start
            while current < end:
                windows.append(ContactWindow(
                    station=station,
                    start_time=current,
                    end_time=current + duration,
                    max_elevation_deg=max_elevation,
                    available_bandwidth_mbps=station.bandwidth_mbps,
                ))
                current += interval

        windows.sort(key=lambda w: (w.start_time, w.station.name))
        return windows

    def schedule_sync(
        self,
        node_id: str,
        data_size_bytes: int,
        priority: Priority = Priority.NORMAL,
        description: str = "",
        deadline: Optional[datetime] = None
    ) -> str:
        """Queue a transfer; returns the task id."""
        return self.queue.add_task(
            node_id=node_id,
            data_size_bytes=data_size_bytes,
            priority=priority,
            description=description,
            deadline=deadline,
        )

    def schedule_gradient_sync(
        self,
        node_id: str,
        compressed: CompressedGradient,
        priority: Priority = Priority.HIGH,
        deadline: Optional[datetime] = None,
    ) -> str:
        """Queue the upload of a compressed gradient."""
        return self.schedule_sync(
            node_id,
            compressed.compressed_size,
            priority,
            description=f"gradients ({compressed.num_selected}/{compressed.original_size})",
            deadline=deadline,
        )

    def schedule_partition_transfer(
        self,
        node_id: str,
        plan: PartitionPlan,
        priority: Priority = Priority.NORMAL,
        deadline: Optional[datetime] = None,
    ) -> Optional[str]:
        """Queue a plan's boundary activations; None if nothing crosses."""
        if plan.total_transfer_bytes <= 0:
            return None
        return self.schedule_sync(
            node_id,
            plan.total_transfer_bytes,
            priority,
            description=f"{plan.model_name} activations at split {plan.split_index}",
            deadline=deadline,
        )

    def optimize(
        self,
        hours: float = 24,
        start_time: Optional[datetime] = None,
        windows: Optional[List[ContactWindow]] = None,
    ) -> List[ScheduledContact]:
        """Fill contact windows, earliest first, from the pending queue.

        Tasks that find no room stay queued for the next call.
        """
        if windows is None:
            windows = self.get_contact_windows(start_time=start_time, hours=hours)
        else:
            clock_aware = _is_aware(self._clock())
            if any(_is_aware(w.start_time) != clock_aware for w in windows):
                raise ValidationError("windows", "Must be timezone-aware exactly when the clock is")
        schedule = []

        for window in sorted(windows, key=lambda w: (w.start_time, w.station.name)):
            if self.queue.is_empty():
                break
            tasks = self.queue.get_tasks_for_window(window.capacity_bytes)
            if tasks:
                contact = ScheduledContact(window, tasks)
                schedule.append(contact)
                logger.debug(
                    "%s @ %s: %d tasks, %.1f%% of capacity",
                    window.station.name, window.start_time.isoformat(),
                    len(tasks), contact.utilization * 100,
                )

        self._schedule = schedule
        logger.info(
            "Scheduled %d tasks into %d windows; %d pending",
            sum(len(c.tasks) for c in schedule), len(schedule), self.queue.size,
        )
        return schedule

    def get_schedule_summary(self) -> Dict:
        """Summary of the last optimize() call and the remaining backlog."""
        total_data = sum(c.bytes_scheduled for c in self._schedule)
        return {
            "scheduled_windows": len(self._schedule),
            "total_tasks_scheduled": sum(len(c.tasks) for c in self._schedule),
            "total_data_mb": round(total_data / BYTES_PER_MB, 2),
            "late_tasks": sum(len(c.late_tasks) for c in self._schedule),
            "pending_tasks": self.queue.size,
            "pending_data_mb": round(self.queue.total_bytes_pending / BYTES_PER_MB, 2),
        }

    def _estimate_passes_per_day(self, station_lat: float) -> float:
        abs_lat = abs(station_lat)
        if abs_lat > self.orbit_inclination_deg + 10:
            return 0.0
        # Ground tracks bunch up near the inclination latitude
        if abs_lat > self.orbit_inclination_deg - 10:
            return self.orbits_per_day * 0.3
        return self.orbits_per_day * 0.15

    def _estimate_pass_duration(self, station_lat: float) -> float:
        """Average pass length in minutes."""
        base_duration = 8.0
        if abs(station_lat) > self.orbit_inclination_deg - 5:
            return base_duration * 1.2
        return base_duration

    def _estimate_max_elevation(self, station_lat: float) -> float:
        lat_diff = abs(abs(station_lat) - self.orbit_inclination_deg)
        if lat_diff < 5:
            return 70.0
        elif lat_diff < 15:
            return 45.0
        elif lat_diff < 25:
            return 25.0
        return 10.0
