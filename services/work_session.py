"""
Work Session Controller - single-flight timed visit state machine.

    IDLE --start--> ACTIVE --cancel--> IDLE
                    ACTIVE --finish--> FINALIZING --(submitted)--> IDLE
                                       FINALIZING --(failed)--> FINALIZING (retry/cancel)

Station logging is accepted only while ACTIVE. finish() freezes the
elapsed time before anything is sent, so the submitted duration matches the
last displayed value. Redundant calls (start while active, cancel while
idle, ...) are no-ops and return None.
"""

import logging
import threading
from typing import Any, Dict, Optional

from services.clock import SystemClock
from services.event_logger import EventLogger
from services.visit_logger import EMPTY_VISIT_MESSAGE, VisitLogger, VisitSubmitter
from services.visit_models import (
    DEFAULT_STATION_TYPE,
    SessionState,
    StationLogEntry,
    SubmissionResult,
    VisitContext,
    VisitSummary,
    WorkSession,
)

logger = logging.getLogger(__name__)


class SessionController:
    """Owns the one work session of a technician device."""

    def __init__(self, visit_logger: VisitLogger, submitter: VisitSubmitter,
                 clock=None, events: Optional[EventLogger] = None):
        self.visit_logger = visit_logger
        self.submitter = submitter
        self.clock = clock or SystemClock()
        self.events = events or EventLogger()

        self.state = SessionState.IDLE
        self.session: Optional[WorkSession] = None
        self.pending_summary: Optional[VisitSummary] = None
        self.in_flight = False
        self._confirmed_empty = False
        self._generation = 0
        self._lock = threading.RLock()

    @property
    def is_active(self) -> bool:
        return self.state == SessionState.ACTIVE

    @property
    def elapsed_time(self) -> float:
        """Seconds since start; frozen once finishing, 0.0 when idle."""
        with self._lock:
            if self.session is None:
                return 0.0
            if self.state == SessionState.ACTIVE:
                sample = self.clock.monotonic() - self.session.started_monotonic
                # never report a smaller value than one already shown
                self.session.elapsed_time = max(self.session.elapsed_time, sample)
            return self.session.elapsed_time

    def snapshot(self) -> Dict[str, Any]:
        """State, session, elapsed time, pending summary and entries read together."""
        with self._lock:
            return {
                'state': self.state,
                'session': self.session,
                'elapsed': self.elapsed_time,
                'pending': self.pending_summary,
                'in_flight': self.in_flight,
                'entries': self.visit_logger.entries,
            }

    def start(self, context: VisitContext) -> Optional[WorkSession]:
        """Begin a session. Ignored unless IDLE."""
        with self._lock:
            if self.state != SessionState.IDLE:
                logger.debug("Start ignored, a session is already in progress")
                return None

            self.visit_logger.clear()
            self.pending_summary = None
            self._confirmed_empty = False
            self.session = WorkSession(
                context=context,
                start_time=self.clock.now(),
                started_monotonic=self.clock.monotonic(),
            )
            self.state = SessionState.ACTIVE
            self._generation += 1

        logger.info(f"▶️ Work session started for customer {context.customer_id} "
                    f"({context.work_type})")
        self.events.session_started(context)
        return self.session

    def log_station(self, station_id: int, station_type: str = DEFAULT_STATION_TYPE,
                    **measurements) -> Optional[StationLogEntry]:
        """
        Record one station inspection. Ignored unless ACTIVE.

        Args:
            station_id: Station on the current map
            station_type: BS, RM, ST or LT
            **measurements: Form fields of that type (access, consumption,
                capture, mosquitoes, condition, ...) as StationLogEntry fields
        """
        with self._lock:
            if self.state != SessionState.ACTIVE:
                logger.debug(f"Station {station_id} log ignored, no active session")
                return None

            elapsed = self.elapsed_time
            context = self.session.context
            now = self.clock.now()
            entry = StationLogEntry(
                station_id=station_id,
                station_type=station_type,
                customer_id=context.customer_id,
                customer_name=context.customer_name,
                technician_id=context.technician_id,
                technician_name=context.technician_name,
                appointment_id=context.appointment_id,
                timestamp=now,
                start_time=self.session.start_time,
                end_time=now,
                duration=elapsed,
                **measurements,
            )
            self.visit_logger.record(entry)

        self.events.station_logged(entry)
        return entry

    def cancel(self) -> bool:
        """
        Discard the session and every logged entry without contacting the backend.

        Takes effect immediately, even while a submission is in flight; that
        submission's outcome is then ignored. Station log calls already sent
        are not retracted server-side.
        """
        with self._lock:
            if self.state == SessionState.IDLE:
                logger.debug("Cancel ignored, no session in progress")
                return False

            discarded = len(self.visit_logger)
            self.visit_logger.clear()
            self.session = None
            self.pending_summary = None
            self.in_flight = False
            self._confirmed_empty = False
            self.state = SessionState.IDLE
            self._generation += 1

        logger.info(f"⏹️ Work session cancelled, {discarded} entries discarded")
        self.events.session_cancelled(discarded)
        return True

    def finish(self, confirm_empty: bool = False, notes: str = '') -> Optional[SubmissionResult]:
        """
        Stop the clock, build the visit summary and submit it.

        A visit without station entries is only submitted when confirm_empty
        is set; otherwise the session stays ACTIVE and a result asking for
        confirmation is returned.
        """
        with self._lock:
            if self.state != SessionState.ACTIVE:
                logger.debug("Finish ignored, no active session")
                return None

            if VisitSubmitter.requires_confirmation(self.visit_logger.entries, confirm_empty):
                return SubmissionResult(success=False, needs_confirmation=True,
                                        error=EMPTY_VISIT_MESSAGE)

            duration = self.elapsed_time
            self.session.active = False
            context = self.session.context
            entries = self.visit_logger.entries
            summary = VisitSummary(
                visit_id=VisitSummary.new_visit_id(),
                start_time=self.session.start_time,
                end_time=self.clock.now(),
                duration=duration,
                customer_id=context.customer_id,
                customer_name=context.customer_name,
                technician_id=context.technician_id,
                technician_name=context.technician_name,
                appointment_id=context.appointment_id,
                work_type=context.work_type,
                notes=notes or '',
                station_count=len(entries),
            )
            self.pending_summary = summary
            self._confirmed_empty = confirm_empty
            self.state = SessionState.FINALIZING

        logger.info(f"Finishing visit {summary.visit_id} after {duration:.1f}s")
        return self._submit_pending()

    def retry_submission(self) -> Optional[SubmissionResult]:
        """Resubmit the frozen summary and entries of a failed finish()."""
        with self._lock:
            if self.state != SessionState.FINALIZING:
                logger.debug("Retry ignored, nothing pending")
                return None
            logger.info(f"Retrying submission of visit {self.pending_summary.visit_id}")
        return self._submit_pending()

    def _submit_pending(self) -> Optional[SubmissionResult]:
        with self._lock:
            if self.in_flight or self.pending_summary is None:
                logger.debug("Submission already in flight")
                return None
            self.in_flight = True
            generation = self._generation
            summary = self.pending_summary
            entries = self.visit_logger.entries
            confirm_empty = self._confirmed_empty

        # network call happens outside the lock
        result = self.submitter.submit(summary, entries, confirm_empty=confirm_empty)

        with self._lock:
            if generation != self._generation:
                logger.warning(f"Visit {summary.visit_id} submission returned after cancel, ignored")
                return result
            self.in_flight = False
            if not result.success:
                self.events.submission_failed(result)
                return result

            self.visit_logger.clear()
            self.session = None
            self.pending_summary = None
            self._confirmed_empty = False
            self.state = SessionState.IDLE

        logger.info(f"✅ Visit {result.visit_id} saved with {result.station_count} stations")
        self.events.session_finished(result)
        return result
