"""
Station Registry - authoritative station list for the selected floor map.

Responsibilities:
- Expose the active map's stations for rendering and editing
- Normalize tap/drag pixel positions into [0, 1] map coordinates
- Allocate station ids (max existing id + 1)
- Hand the edited layout back to the backend via updateCustomer
"""

import logging
from dataclasses import dataclass
from typing import Any, Dict, List, Optional

from services.visit_models import (
    CommitResult,
    Customer,
    DEFAULT_STATION_TYPE,
    FloorMap,
    Station,
    STATION_TYPES,
    clamp_unit,
)

logger = logging.getLogger(__name__)

# Both axes are fractions of the reference width (stored data uses this).
COORDINATE_SCHEME_LEGACY = 'legacy'
# y is a fraction of the rendered image height when one is supplied.
COORDINATE_SCHEME_INDEPENDENT = 'independent'
COORDINATE_SCHEMES = {COORDINATE_SCHEME_LEGACY, COORDINATE_SCHEME_INDEPENDENT}


@dataclass
class LayoutSnapshot:
    """Layout frozen for one updateCustomer call."""
    customer: Customer
    map_id: str
    stations: List[Station]
    payload: Dict[str, Any]


class StationRegistry:
    """Owns the station sequence of the currently selected map."""

    def __init__(self, coordinate_scheme: str = COORDINATE_SCHEME_LEGACY):
        if coordinate_scheme not in COORDINATE_SCHEMES:
            raise ValueError(f"Unknown coordinate scheme: {coordinate_scheme}")
        self.coordinate_scheme = coordinate_scheme
        self.customer: Optional[Customer] = None
        self.active_map: Optional[FloorMap] = None
        self.stations: List[Station] = []

    @property
    def active_map_id(self) -> Optional[str]:
        return self.active_map.map_id if self.active_map else None

    def select_customer(self, customer: Customer):
        """Switch customer; clears the map selection."""
        self.customer = customer
        self.active_map = None
        self.stations = []

    def select_map(self, floor_map: FloorMap):
        """
        Replace the active station set with the map's stations.

        The registry works on copies so that uncommitted edits never leak
        into the customer's map until commit() succeeds. Stored layouts with
        repeated (or missing) ids get fresh ids past the current maximum; the
        first station keeps a repeated id, and the fix is saved with the next
        commit.
        """
        self.active_map = floor_map
        source = floor_map.stations if isinstance(floor_map.stations, list) else []
        stations = [Station(id=s.id, x=s.x, y=s.y, type=s.type) for s in source]

        seen = set()
        next_id = max([s.id for s in stations] + [0]) + 1
        for station in stations:
            if station.id < 1 or station.id in seen:
                logger.warning(f"⚠️ Map {floor_map.map_id}: station {station.label} has a "
                               f"repeated or invalid id, renumbered to {next_id}")
                station.id = next_id
                next_id += 1
            seen.add(station.id)

        self.stations = stations
        logger.debug(f"Selected map {floor_map.map_id} with {len(self.stations)} stations")

    def get_station(self, station_id: int) -> Optional[Station]:
        for station in self.stations:
            if station.id == station_id:
                return station
        return None

    def next_station_id(self) -> int:
        if not self.stations:
            return 1
        return max(s.id for s in self.stations) + 1

    def _normalize(self, value: float, dimension: float) -> float:
        if not dimension or dimension <= 0:
            raise ValueError("Reference dimension must be positive")
        return clamp_unit(value / dimension)

    def _y_dimension(self, reference_dimension: float, reference_height: Optional[float]) -> float:
        if self.coordinate_scheme == COORDINATE_SCHEME_INDEPENDENT and reference_height:
            return reference_height
        return reference_dimension

    def add_station(self, tap_x: float, tap_y: float, reference_dimension: float,
                    station_type: str = DEFAULT_STATION_TYPE,
                    reference_height: Optional[float] = None,
                    scale: float = 1.0) -> Station:
        """
        Place a new station where the map was tapped.

        Args:
            tap_x: Tap x position in rendered pixels
            tap_y: Tap y position in rendered pixels
            reference_dimension: Rendered image width at scale 1
            station_type: One of STATION_TYPES
            reference_height: Rendered image height (independent scheme only)
            scale: Current zoom factor

        Returns:
            The created station
        """
        if station_type not in STATION_TYPES:
            raise ValueError(f"Unknown station type: {station_type}")
        width = reference_dimension * scale
        height = self._y_dimension(reference_dimension, reference_height) * scale
        station = Station(
            id=self.next_station_id(),
            x=self._normalize(tap_x, width),
            y=self._normalize(tap_y, height),
            type=station_type,
        )
        self.stations.append(station)
        logger.debug(f"Added station {station.label} at ({station.x:.4f}, {station.y:.4f})")
        return station

    def remove_station(self, station_id: int) -> Optional[Station]:
        """Remove a station; unknown ids are ignored."""
        station = self.get_station(station_id)
        if station is None:
            logger.debug(f"Remove ignored, no station {station_id}")
            return None
        self.stations = [s for s in self.stations if s.id != station_id]
        return station

    def reposition_station(self, station_id: int, raw_x: float, raw_y: float,
                           reference_dimension: float, offset_x: float = 0.0,
                           offset_y: float = 0.0,
                           reference_height: Optional[float] = None,
                           scale: float = 1.0) -> Optional[Station]:
        """Move a station to a drag position; the result is always clamped to [0, 1]."""
        station = self.get_station(station_id)
        if station is None:
            logger.debug(f"Reposition ignored, no station {station_id}")
            return None
        width = reference_dimension * scale
        height = self._y_dimension(reference_dimension, reference_height) * scale
        station.x = self._normalize(raw_x - offset_x, width)
        station.y = self._normalize(raw_y - offset_y, height)
        return station

    def prepare_commit(self) -> Optional[LayoutSnapshot]:
        """Freeze the current layout into an updateCustomer payload; None without a map."""
        if self.customer is None or self.active_map is None:
            return None
        map_id = self.active_map.map_id
        committed = [Station(id=s.id, x=s.x, y=s.y, type=s.type) for s in self.stations]
        payload = self.customer.to_payload()
        for map_payload in payload['maps']:
            if map_payload['mapId'] == map_id:
                map_payload['stations'] = [s.to_dict() for s in committed]
        return LayoutSnapshot(customer=self.customer, map_id=map_id,
                              stations=committed, payload=payload)

    def apply_commit(self, snapshot: LayoutSnapshot, response) -> CommitResult:
        """
        Apply an updateCustomer response to the customer the snapshot was taken from.

        The customer object is refreshed in place so every holder of it (the
        loaded customer list included) sees the saved layout. On failure the
        local station list is left as is so the edit can be retried.
        """
        map_id = snapshot.map_id
        count = len(snapshot.stations)
        if not response or not response.get('success'):
            error = (response or {}).get('error') or 'Failed to save stations'
            logger.error(f"Station save failed for map {map_id}: {error}")
            return CommitResult(success=False, map_id=map_id, station_count=count, error=error)

        customer = snapshot.customer
        saved_map = customer.get_map(map_id)
        if saved_map is not None:
            saved_map.stations = snapshot.stations

        returned = response.get('customer')
        if isinstance(returned, dict):
            refreshed = Customer.from_dict(returned)
            if refreshed.get_map(map_id) is not None:
                customer.update_from(refreshed)

        if self.customer is customer and self.active_map_id == map_id:
            self.active_map = customer.get_map(map_id)

        logger.info(f"✅ Station layout saved for map {map_id}")
        return CommitResult(success=True, map_id=map_id, station_count=count)

    def commit(self, gateway) -> CommitResult:
        """Persist the station layout through updateCustomer."""
        snapshot = self.prepare_commit()
        if snapshot is None:
            return CommitResult(success=False, error='No map selected')
        logger.info(f"Saving {len(snapshot.stations)} stations for map {snapshot.map_id}")
        response = gateway.update_customer(snapshot.customer.customer_id, snapshot.payload)
        return self.apply_commit(snapshot, response)
