"""
Event Logger Service - Tracks work session activity for the hosting screen.

This service:
- Keeps a bounded audit trail of session events (start, station logged,
  finish, cancel, submission failures, layout saves)
- Notifies registered listeners so the surrounding UI can update its own
  presentation state
"""

import logging
from collections import deque
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

logger = logging.getLogger(__name__)

# Event types for session operations
EVENT_TYPES = {
    'SESSION_STARTED': 'Work session started',
    'STATION_LOGGED': 'Station inspection logged',
    'SESSION_FINISHED': 'Work session finished and saved',
    'SESSION_CANCELLED': 'Work session cancelled, nothing saved',
    'SUBMISSION_FAILED': 'Visit submission failed, kept for retry',
    'STATIONS_SAVED': 'Station layout saved',
    'STATIONS_SAVE_FAILED': 'Station layout save failed',
}


class SessionListener:
    """
    Callback interface for the hosting screen.

    Subclass and override the hooks of interest.
    """

    def on_session_start(self, context):
        pass

    def on_station_logged(self, entry):
        pass

    def on_session_finish(self, result):
        pass

    def on_session_cancel(self):
        pass


class EventLogger:
    """In-memory session event trail with listener dispatch."""

    def __init__(self, max_events: int = 200):
        self.events = deque(maxlen=max_events)
        self.listeners: List[SessionListener] = []

    def add_listener(self, listener: SessionListener):
        self.listeners.append(listener)

    def remove_listener(self, listener: SessionListener):
        if listener in self.listeners:
            self.listeners.remove(listener)

    def log(self, event_type: str, entity_id: Optional[str] = None,
            description: str = None, metadata: Dict = None) -> Dict[str, Any]:
        """
        Record an event.

        Args:
            event_type: Key of EVENT_TYPES
            entity_id: Visit, appointment or map id the event concerns
            description: Human-readable description of the event
            metadata: Additional data about the event

        Returns:
            The recorded event
        """
        event = {
            'timestamp': datetime.now(timezone.utc).isoformat(),
            'event_type': event_type,
            'entity_id': entity_id,
            'description': description or EVENT_TYPES.get(event_type, event_type),
            'metadata': metadata or {},
        }
        self.events.append(event)
        logger.debug(f"Event logged: {event_type} on {entity_id}")
        return event

    def _dispatch(self, hook: str, *args):
        for listener in list(self.listeners):
            try:
                getattr(listener, hook)(*args)
            except Exception as e:
                logger.error(f"Listener {type(listener).__name__}.{hook} failed: {e}")

    def session_started(self, context):
        self.log('SESSION_STARTED', context.appointment_id, metadata={
            'customerId': context.customer_id,
            'technicianId': context.technician_id,
            'workType': context.work_type,
        })
        self._dispatch('on_session_start', context)

    def station_logged(self, entry):
        self.log('STATION_LOGGED', str(entry.station_id), metadata={
            'station': entry.label,
            'access': entry.access,
        })
        self._dispatch('on_station_logged', entry)

    def session_finished(self, result):
        self.log('SESSION_FINISHED', result.visit_id, metadata={
            'stationCount': result.station_count,
        })
        self._dispatch('on_session_finish', result)

    def session_cancelled(self, discarded_entries: int):
        self.log('SESSION_CANCELLED', metadata={'discardedEntries': discarded_entries})
        self._dispatch('on_session_cancel')

    def submission_failed(self, result):
        self.log('SUBMISSION_FAILED', result.visit_id, metadata={'error': result.error})

    def stations_saved(self, result):
        event_type = 'STATIONS_SAVED' if result.success else 'STATIONS_SAVE_FAILED'
        self.log(event_type, result.map_id, metadata={
            'stationCount': result.station_count,
            'error': result.error,
        })

    def get_recent_events(self, limit: int = 50) -> List[Dict[str, Any]]:
        """Most recent events first."""
        return list(reversed(self.events))[:limit]
