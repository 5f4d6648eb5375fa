"""
Field Visit Engine - owned state for one technician device.

Wires together the station registry, the work session controller, the visit
logger and the backend gateway, and makes the screen mode explicit:

    Viewing                  browse customer maps
    Editing(tool)            add / remove / move stations, save layout
    LoggingSession(session)  timed visit, station inspections recorded

Layout edits are refused outside Editing and station logging outside
LoggingSession. Refused calls return None (or False) instead of raising.
"""

import logging
import threading
from typing import Any, Dict, List, Optional

from services.backend_client import GatewayError
from services.clock import SystemClock, format_elapsed
from services.event_logger import EventLogger
from services.station_registry import COORDINATE_SCHEME_LEGACY, StationRegistry
from services.visit_logger import VisitLogger, VisitSubmitter
from services.visit_models import (
    CommitResult,
    Customer,
    EditTool,
    Editing,
    FloorMap,
    LoggingSession,
    Mode,
    SessionState,
    Station,
    StationLogEntry,
    SubmissionResult,
    VisitContext,
    Viewing,
)
from services.work_session import SessionController

logger = logging.getLogger(__name__)


class FieldVisitEngine:
    """
    Everything a technician screen needs to map stations and run a visit.

    Mode checks and the state changes they guard run under one lock, since
    Flask serves requests on several threads. Backend calls (layout save,
    immediate station push, visit submission) happen outside it.
    """

    def __init__(self, gateway, clock=None, events: Optional[EventLogger] = None,
                 coordinate_scheme: str = COORDINATE_SCHEME_LEGACY,
                 sync_station_logs: bool = False,
                 uploads_url: str = ''):
        self.gateway = gateway
        self.clock = clock or SystemClock()
        self.events = events or EventLogger()
        self.sync_station_logs = sync_station_logs
        self.uploads_url = uploads_url

        self.registry = StationRegistry(coordinate_scheme=coordinate_scheme)
        self.visit_logger = VisitLogger()
        self.controller = SessionController(
            visit_logger=self.visit_logger,
            submitter=VisitSubmitter(gateway),
            clock=self.clock,
            events=self.events,
        )
        self.customers: List[Customer] = []
        self._editing: Optional[Editing] = None
        self._saving = False
        self._lock = threading.RLock()

    # =========================================================================
    # MODE
    # =========================================================================

    @property
    def mode(self) -> Mode:
        session = self.controller.session
        if self.controller.state != SessionState.IDLE and session is not None:
            return LoggingSession(session)
        if self._editing is not None:
            return self._editing
        return Viewing()

    def enter_edit_mode(self, tool: Optional[EditTool] = None) -> bool:
        """Switch to layout editing; only from Viewing with a map selected."""
        with self._lock:
            if not isinstance(self.mode, (Viewing, Editing)):
                logger.debug("Edit mode refused during a work session")
                return False
            if self.registry.active_map is None:
                logger.debug("Edit mode refused, no map selected")
                return False
            self._editing = Editing(tool=tool)
            return True

    def exit_edit_mode(self) -> bool:
        """Back to Viewing. Unsaved layout edits stay pending locally."""
        with self._lock:
            if self._editing is None:
                return False
            self._editing = None
            return True

    def _is_editing(self) -> bool:
        return isinstance(self.mode, Editing)

    # =========================================================================
    # CUSTOMERS & MAPS
    # =========================================================================

    def load_customers(self) -> List[Customer]:
        """Fetch customers and their maps. Raises GatewayError on failure."""
        rows = self.gateway.get_customers()
        if not isinstance(rows, list):
            raise GatewayError('Unexpected customers response', payload=rows)
        customers = [Customer.from_dict(row) for row in rows if isinstance(row, dict)]
        with self._lock:
            self.customers = customers
        logger.info(f"Loaded {len(customers)} customers")
        return customers

    def get_customer(self, customer_id: str) -> Optional[Customer]:
        for customer in self.customers:
            if customer.customer_id == customer_id:
                return customer
        return None

    def select_customer(self, customer_id: str) -> Optional[Customer]:
        with self._lock:
            if not isinstance(self.mode, Viewing):
                logger.debug("Customer change refused outside Viewing mode")
                return None
            customer = self.get_customer(customer_id)
            if customer is None:
                return None
            self.registry.select_customer(customer)
            return customer

    def select_map(self, map_id: str) -> Optional[FloorMap]:
        """Select one of the current customer's maps (allowed during a session)."""
        with self._lock:
            if self._is_editing() or self.registry.customer is None:
                return None
            floor_map = self.registry.customer.get_map(map_id)
            if floor_map is None:
                return None
            self.registry.select_map(floor_map)
            return floor_map

    # =========================================================================
    # STATION LAYOUT (Editing only)
    # =========================================================================

    def add_station(self, tap_x: float, tap_y: float, reference_dimension: float,
                    station_type: str = 'BS', reference_height: Optional[float] = None,
                    scale: float = 1.0) -> Optional[Station]:
        with self._lock:
            if not self._is_editing():
                logger.debug("Add station refused outside Editing mode")
                return None
            station = self.registry.add_station(
                tap_x, tap_y, reference_dimension,
                station_type=station_type,
                reference_height=reference_height,
                scale=scale,
            )
            if self._editing.tool == EditTool.ADD:
                self._editing = Editing(tool=None)
            return station

    def remove_station(self, station_id: int) -> Optional[Station]:
        with self._lock:
            if not self._is_editing():
                return None
            return self.registry.remove_station(station_id)

    def reposition_station(self, station_id: int, raw_x: float, raw_y: float,
                           reference_dimension: float, offset_x: float = 0.0,
                           offset_y: float = 0.0, reference_height: Optional[float] = None,
                           scale: float = 1.0) -> Optional[Station]:
        with self._lock:
            if not self._is_editing():
                return None
            return self.registry.reposition_station(
                station_id, raw_x, raw_y, reference_dimension,
                offset_x=offset_x, offset_y=offset_y,
                reference_height=reference_height, scale=scale,
            )

    def commit_stations(self) -> Optional[CommitResult]:
        """
        Save the selected map's layout. None during a work session.

        A second save while one is in flight fails without calling the backend.
        """
        with self._lock:
            if isinstance(self.mode, LoggingSession):
                return None
            if self._saving:
                return CommitResult(success=False, map_id=self.registry.active_map_id,
                                    error='A layout save is already in progress')
            snapshot = self.registry.prepare_commit()
            if snapshot is None:
                return CommitResult(success=False, error='No map selected')
            self._saving = True

        try:
            logger.info(f"Saving {len(snapshot.stations)} stations for map {snapshot.map_id}")
            response = self.gateway.update_customer(snapshot.customer.customer_id,
                                                    snapshot.payload)
        finally:
            with self._lock:
                self._saving = False

        with self._lock:
            result = self.registry.apply_commit(snapshot, response)
            if result.success:
                self._editing = None
        self.events.stations_saved(result)
        return result

    # =========================================================================
    # WORK SESSION
    # =========================================================================

    def start_session(self, technician_id: str, technician_name: str = '',
                      appointment_id: Optional[str] = None):
        """Start the work session for the selected customer. Ignored unless Viewing."""
        with self._lock:
            if isinstance(self.mode, LoggingSession):
                logger.debug("Start ignored, a session is already in progress")
                return None
            if not isinstance(self.mode, Viewing) or self.registry.customer is None:
                logger.debug("Start refused, leave edit mode and select a customer first")
                return None
            customer = self.registry.customer
            context = VisitContext(
                customer_id=customer.customer_id,
                customer_name=customer.customer_name,
                technician_id=technician_id,
                technician_name=technician_name,
                appointment_id=appointment_id or None,
            )
            return self.controller.start(context)

    def record_station_log(self, station_id: int, station_type: Optional[str] = None,
                           **fields) -> Optional[StationLogEntry]:
        """
        Record an inspection of a station on the selected map during the session.

        Args:
            station_id: Station id on the selected map
            station_type: Must match the station's type when given
            **fields: Form fields of the station type (access, consumption,
                bait_type, capture, rodents_captured, mosquitoes, condition, ...)

        Returns:
            The entry, or None when no session is active or the station is
            not on the selected map
        """
        with self._lock:
            station = self.registry.get_station(station_id)
            if station is None:
                logger.debug(f"Station {station_id} log refused, not on the selected map")
                return None
            if station_type is not None and station_type != station.type:
                logger.debug(f"Station {station.label} log refused, logged as {station_type}")
                return None
            entry = self.controller.log_station(station_id, station_type=station.type, **fields)

        if entry is not None and self.sync_station_logs:
            self._push_station_log(entry)
        return entry

    def _push_station_log(self, entry: StationLogEntry):
        response = self.gateway.log_bait_station(entry.to_payload())
        if not response or not response.get('success'):
            logger.warning(f"⚠️ Immediate log of {entry.label} failed: "
                           f"{(response or {}).get('error')}; kept for final submission")

    def finish_session(self, confirm_empty: bool = False, notes: str = '') -> Optional[SubmissionResult]:
        return self.controller.finish(confirm_empty=confirm_empty, notes=notes)

    def retry_submission(self) -> Optional[SubmissionResult]:
        return self.controller.retry_submission()

    def cancel_session(self) -> bool:
        return self.controller.cancel()

    # =========================================================================
    # STATUS
    # =========================================================================

    def status(self) -> Dict[str, Any]:
        """Snapshot for the hosting screen."""
        with self._lock:
            snap = self.controller.snapshot()
            customer = self.registry.customer
            active_map = self.registry.active_map
            editing = self._editing

        session = snap['session']
        if snap['state'] != SessionState.IDLE and session is not None:
            mode = LoggingSession(session)
        else:
            mode = editing or Viewing()
        pending = snap['pending']
        elapsed = snap['elapsed']
        return {
            'mode': mode.name,
            'editTool': editing.tool.value if mode is editing and editing.tool else None,
            'state': snap['state'].value,
            'inFlight': snap['in_flight'],
            'customerId': customer.customer_id if customer else None,
            'mapId': active_map.map_id if active_map else None,
            'mapImageUrl': active_map.image_url(self.uploads_url) if active_map else None,
            'appointmentId': session.appointment_id if session else None,
            'startTime': session.start_time.isoformat() if session else None,
            'elapsedSeconds': elapsed,
            'elapsedFormatted': format_elapsed(elapsed),
            'entries': [entry.to_payload() for entry in snap['entries']],
            'pendingVisitId': pending.visit_id if pending else None,
        }
