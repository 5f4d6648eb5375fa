"""
Field Visit Data Model

Plain data types shared by the station registry, the work session
controller and the visit logger:
- Station / FloorMap / Customer: floor-plan layout owned by a customer
- VisitContext: who is visiting whom (and for which appointment)
- WorkSession: the timed session state
- StationLogEntry / VisitSummary: what gets submitted to the backend
- Mode variants: Viewing | Editing | LoggingSession
"""
import uuid
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, Dict, List, Optional, Tuple, Union


STATION_TYPES = {
    'BS': 'Bait Station',
    'RM': 'Multicatch',
    'ST': 'Snap Trap',
    'LT': 'Light Trap',
}
DEFAULT_STATION_TYPE = 'BS'

# station types sharing the capture form (Multicatch, Snap Trap)
CAPTURE_STATION_TYPES = ('RM', 'ST')

WORK_TYPE_SCHEDULED = 'Scheduled Appointment'
WORK_TYPE_MANUAL = 'Manual Visit'


def clamp_unit(value: float) -> float:
    """Clamp a coordinate into the closed unit interval."""
    return max(0.0, min(1.0, float(value)))


def epoch_ms(dt: Optional[datetime]) -> Optional[int]:
    if dt is None:
        return None
    return int(dt.timestamp() * 1000)


@dataclass
class Station:
    """A bait/monitoring point as fractions of the map's reference dimension."""
    id: int
    x: float
    y: float
    type: str = DEFAULT_STATION_TYPE

    def __post_init__(self):
        self.x = clamp_unit(self.x)
        self.y = clamp_unit(self.y)

    @property
    def label(self) -> str:
        return f"{self.type}{self.id}"

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'Station':
        return cls(
            id=int(data.get('id') or 0),
            x=float(data.get('x') or 0.0),
            y=float(data.get('y') or 0.0),
            type=data.get('type') or DEFAULT_STATION_TYPE,
        )

    def to_dict(self) -> Dict[str, Any]:
        return {'id': self.id, 'type': self.type, 'x': self.x, 'y': self.y}


@dataclass
class FloorMap:
    """A floor-plan image of a customer site and the stations placed on it."""
    map_id: str
    name: str
    image: Optional[str] = None
    stations: List[Station] = field(default_factory=list)

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'FloorMap':
        raw_stations = data.get('stations')
        if not isinstance(raw_stations, list):
            raw_stations = []
        return cls(
            map_id=str(data.get('mapId') or data.get('map_id') or data.get('id') or ''),
            name=data.get('name') or '',
            image=data.get('image'),
            stations=[Station.from_dict(s) for s in raw_stations if isinstance(s, dict)],
        )

    def image_url(self, uploads_url: str) -> Optional[str]:
        if not self.image:
            return None
        return f"{uploads_url.rstrip('/')}/{self.image}"

    def to_dict(self) -> Dict[str, Any]:
        return {
            'mapId': self.map_id,
            'name': self.name,
            'image': self.image,
            'stations': [s.to_dict() for s in self.stations],
        }


@dataclass
class Customer:
    """Customer record as served by the backend, reduced to what visits need."""
    customer_id: str
    customer_name: str
    maps: List[FloorMap] = field(default_factory=list)
    extra: Dict[str, Any] = field(default_factory=dict)

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'Customer':
        known = {'customerId', 'customer_id', 'id', 'customerName', 'name', 'maps'}
        raw_maps = data.get('maps')
        if not isinstance(raw_maps, list):
            raw_maps = []
        return cls(
            customer_id=str(data.get('customerId') or data.get('customer_id') or data.get('id') or ''),
            customer_name=data.get('customerName') or data.get('name') or '',
            maps=[FloorMap.from_dict(m) for m in raw_maps if isinstance(m, dict)],
            extra={k: v for k, v in data.items() if k not in known},
        )

    def get_map(self, map_id: str) -> Optional[FloorMap]:
        for floor_map in self.maps:
            if floor_map.map_id == map_id:
                return floor_map
        return None

    def update_from(self, other: 'Customer'):
        """Take over name, maps and extra fields of a fresher copy of this customer."""
        self.customer_name = other.customer_name or self.customer_name
        self.maps = other.maps
        self.extra = other.extra

    def to_payload(self) -> Dict[str, Any]:
        """Payload for updateCustomer, keeping fields this service does not model."""
        payload = dict(self.extra)
        payload.update({
            'customerId': self.customer_id,
            'customerName': self.customer_name,
            'maps': [m.to_dict() for m in self.maps],
        })
        return payload


@dataclass
class VisitContext:
    """Customer/technician context a work session is started with."""
    customer_id: str
    technician_id: str
    customer_name: str = ''
    technician_name: str = ''
    appointment_id: Optional[str] = None

    @property
    def work_type(self) -> str:
        return WORK_TYPE_SCHEDULED if self.appointment_id else WORK_TYPE_MANUAL


class SessionState(Enum):
    """Work session lifecycle states."""
    IDLE = "idle"
    ACTIVE = "active"
    FINALIZING = "finalizing"


@dataclass
class WorkSession:
    """Timing state of one technician visit."""
    context: VisitContext
    start_time: datetime
    started_monotonic: float
    elapsed_time: float = 0.0
    active: bool = True

    @property
    def appointment_id(self) -> Optional[str]:
        return self.context.appointment_id


@dataclass(frozen=True)
class StationLogEntry:
    """One inspection record for a single station. Never mutated once created."""
    station_id: int
    customer_id: str
    technician_id: str
    timestamp: datetime
    start_time: datetime
    end_time: datetime
    duration: float
    station_type: str = DEFAULT_STATION_TYPE
    consumption: Optional[str] = None
    bait_type: Optional[str] = None
    condition: Optional[str] = None
    access: Optional[str] = None
    dosage_g: Optional[int] = None
    # RM / ST
    capture: Optional[str] = None
    rodents_captured: Optional[int] = None
    triggered: Optional[str] = None
    replaced_surface: Optional[str] = None
    # LT
    mosquitoes: Optional[int] = None
    lepidoptera: Optional[int] = None
    drosophila: Optional[int] = None
    flies: Optional[int] = None
    others: Optional[Tuple[str, ...]] = None
    replace_bulb: Optional[str] = None
    appointment_id: Optional[str] = None
    customer_name: str = ''
    technician_name: str = ''

    @property
    def label(self) -> str:
        return f"{self.station_type}{self.station_id}"

    def to_payload(self) -> Dict[str, Any]:
        return {
            'stationId': self.station_id,
            'stationType': self.station_type,
            'customerId': self.customer_id,
            'customerName': self.customer_name,
            'technicianId': self.technician_id,
            'technicianName': self.technician_name,
            'timestamp': self.timestamp.isoformat(),
            'consumption': self.consumption,
            'baitType': self.bait_type,
            'condition': self.condition,
            'access': self.access,
            'dosage_g': self.dosage_g,
            'capture': self.capture,
            'rodentsCaptured': self.rodents_captured,
            'triggered': self.triggered,
            'replacedSurface': self.replaced_surface,
            'mosquitoes': self.mosquitoes,
            'lepidoptera': self.lepidoptera,
            'drosophila': self.drosophila,
            'flies': self.flies,
            'others': list(self.others) if self.others is not None else None,
            'replaceBulb': self.replace_bulb,
            'startTime': epoch_ms(self.start_time),
            'endTime': epoch_ms(self.end_time),
            'duration': int(round(self.duration * 1000)),
            'appointmentId': self.appointment_id or '',
        }


@dataclass(frozen=True)
class VisitSummary:
    """The single finalized record of a work session."""
    visit_id: str
    start_time: datetime
    end_time: datetime
    duration: float
    customer_id: str
    technician_id: str
    appointment_id: Optional[str]
    work_type: str
    customer_name: str = ''
    technician_name: str = ''
    notes: str = ''
    station_count: int = 0

    @staticmethod
    def new_visit_id() -> str:
        return str(uuid.uuid4())

    def to_payload(self) -> Dict[str, Any]:
        return {
            'visitId': self.visit_id,
            'startTime': epoch_ms(self.start_time),
            'endTime': epoch_ms(self.end_time),
            'duration': int(round(self.duration * 1000)),
            'customerId': self.customer_id,
            'customerName': self.customer_name,
            'technicianId': self.technician_id,
            'technicianName': self.technician_name,
            'appointmentId': self.appointment_id or '',
            'workType': self.work_type,
            'notes': self.notes,
            'stationCount': self.station_count,
        }


@dataclass
class SubmissionResult:
    """Outcome of submitting a finished visit."""
    success: bool
    visit_id: Optional[str] = None
    station_count: int = 0
    error: Optional[str] = None
    needs_confirmation: bool = False
    message: str = ''

    def to_dict(self) -> Dict[str, Any]:
        data = {
            'success': self.success,
            'visitId': self.visit_id,
            'stationCount': self.station_count,
            'needsConfirmation': self.needs_confirmation,
        }
        if self.error:
            data['error'] = self.error
        if self.message:
            data['message'] = self.message
        return data


@dataclass
class CommitResult:
    """Outcome of persisting a station layout."""
    success: bool
    map_id: Optional[str] = None
    station_count: int = 0
    error: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        data = {'success': self.success, 'mapId': self.map_id, 'stationCount': self.station_count}
        if self.error:
            data['error'] = self.error
        return data


# =============================================================================
# MODES
# =============================================================================

class EditTool(Enum):
    """Layout editing tool currently armed."""
    ADD = "add"
    REMOVE = "remove"


@dataclass(frozen=True)
class Viewing:
    name = 'viewing'


@dataclass(frozen=True)
class Editing:
    tool: Optional[EditTool] = None
    name = 'editing'


@dataclass(frozen=True)
class LoggingSession:
    session: WorkSession
    name = 'logging'


Mode = Union[Viewing, Editing, LoggingSession]
