"""
Visit Logger - accumulates station inspections and submits a finished visit.

VisitLogger is an append-only list of StationLogEntry records for the
current work session. VisitSubmitter sends the VisitSummary and those
entries to the backend in one logCompleteVisit call.
"""

import logging
from typing import List, Sequence

from services.clock import format_elapsed
from services.visit_models import StationLogEntry, SubmissionResult, VisitSummary

logger = logging.getLogger(__name__)

EMPTY_VISIT_MESSAGE = (
    "No station data was logged. Confirm to save the visit without stations."
)


class VisitLogger:
    """Entries collected so far, in recording order. Duplicate stations are kept."""

    def __init__(self):
        self._entries: List[StationLogEntry] = []

    def record(self, entry: StationLogEntry) -> StationLogEntry:
        self._entries.append(entry)
        return entry

    @property
    def entries(self) -> List[StationLogEntry]:
        return list(self._entries)

    def clear(self):
        self._entries = []

    def __len__(self):
        return len(self._entries)


class VisitSubmitter:
    """Submits a frozen visit through the backend gateway."""

    def __init__(self, gateway):
        self.gateway = gateway

    @staticmethod
    def requires_confirmation(entries: Sequence[StationLogEntry], confirm_empty: bool) -> bool:
        return len(entries) == 0 and not confirm_empty

    def submit(self, summary: VisitSummary, entries: Sequence[StationLogEntry],
               confirm_empty: bool = False) -> SubmissionResult:
        """
        Send the visit summary and its station entries in a single call.

        Args:
            summary: Frozen visit summary
            entries: Station entries in recording order
            confirm_empty: Caller confirmed saving a visit with no stations

        Returns:
            SubmissionResult; on failure the caller keeps summary and entries
            for a retry with the same visitId
        """
        if self.requires_confirmation(entries, confirm_empty):
            logger.info(f"Visit {summary.visit_id} has no stations, confirmation required")
            return SubmissionResult(
                success=False,
                visit_id=summary.visit_id,
                needs_confirmation=True,
                error=EMPTY_VISIT_MESSAGE,
            )

        station_payloads = [entry.to_payload() for entry in entries]
        logger.info(f"📤 Submitting visit {summary.visit_id} with {len(station_payloads)} stations")

        try:
            response = self.gateway.log_complete_visit(summary.to_payload(), station_payloads)
        except Exception as e:
            logger.error(f"Visit submission raised: {e}")
            response = {'success': False, 'error': str(e)}

        if not response or not response.get('success'):
            error = (response or {}).get('error') or 'Save failed'
            logger.error(f"❌ Visit {summary.visit_id} submission failed: {error}")
            return SubmissionResult(success=False, visit_id=summary.visit_id,
                                    station_count=len(station_payloads), error=error)

        visit_id = response.get('visitId') or summary.visit_id
        station_count = response.get('stationCount', len(station_payloads))

        if summary.appointment_id:
            self._complete_appointment(summary.appointment_id, visit_id)

        return SubmissionResult(
            success=True,
            visit_id=visit_id,
            station_count=station_count,
            message=completion_message(summary, entries),
        )

    def _complete_appointment(self, appointment_id: str, visit_id: str):
        """Mark the scheduled appointment completed; failure does not fail the visit."""
        try:
            response = self.gateway.update_appointment(appointment_id, {
                'status': 'completed',
                'visitId': visit_id,
            })
            if not response or not response.get('success'):
                logger.warning(f"⚠️ Could not update appointment {appointment_id}: "
                               f"{(response or {}).get('error')}")
        except Exception as e:
            logger.warning(f"⚠️ Could not update appointment {appointment_id}: {e}")


def completion_message(summary: VisitSummary, entries: Sequence[StationLogEntry]) -> str:
    labels = ', '.join(entry.label for entry in entries) or 'none'
    return (
        f"WORK COMPLETED\n"
        f"Duration: {format_elapsed(summary.duration)}\n"
        f"Stations logged: {labels}"
    )
