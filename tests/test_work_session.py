"""
Tests for the work session state machine
"""
import pytest
from services.event_logger import EventLogger, SessionListener
from services.visit_logger import VisitLogger, VisitSubmitter
from services.visit_models import SessionState, VisitContext
from services.work_session import SessionController


def make_controller(gateway, clock, events=None):
    return SessionController(
        visit_logger=VisitLogger(),
        submitter=VisitSubmitter(gateway),
        clock=clock,
        events=events,
    )


def manual_visit():
    return VisitContext(customer_id='cust-1', technician_id='tech-9',
                        customer_name='Harbor Foods', technician_name='Sam Reyes')


def scheduled_visit():
    return VisitContext(customer_id='cust-1', technician_id='tech-9', appointment_id='appt-77')


@pytest.mark.unit
class TestStart:
    """Tests for starting a session"""

    def test_start_from_idle(self, gateway, clock):
        """Test start creates an active session at the current time"""
        controller = make_controller(gateway, clock)
        session = controller.start(manual_visit())

        assert controller.state == SessionState.ACTIVE
        assert session.start_time == clock.now()
        assert controller.elapsed_time == 0.0

    def test_start_while_active_is_noop(self, gateway, clock):
        """Test a second start keeps the original session and start time"""
        controller = make_controller(gateway, clock)
        first = controller.start(manual_visit())
        clock.advance(30)

        assert controller.start(scheduled_visit()) is None
        assert controller.session is first
        assert controller.session.context.appointment_id is None

    def test_start_during_finalizing_is_noop(self, gateway, clock):
        """Test start is refused while a failed submission is pending"""
        gateway.complete_visit_responses = [{'success': False, 'error': 'offline'}]
        controller = make_controller(gateway, clock)
        controller.start(manual_visit())
        controller.log_station(1)
        controller.finish()

        assert controller.start(manual_visit()) is None
        assert controller.state == SessionState.FINALIZING

    def test_work_type_from_appointment(self):
        """Test work type follows the presence of an appointment"""
        assert manual_visit().work_type == 'Manual Visit'
        assert scheduled_visit().work_type == 'Scheduled Appointment'


@pytest.mark.unit
class TestElapsedTime:
    """Tests for the session clock"""

    def test_elapsed_is_zero_when_idle(self, gateway, clock):
        """Test elapsed time without a session"""
        assert make_controller(gateway, clock).elapsed_time == 0.0

    def test_elapsed_follows_clock(self, gateway, clock):
        """Test elapsed time tracks the monotonic clock"""
        controller = make_controller(gateway, clock)
        controller.start(manual_visit())
        clock.advance(65.5)
        assert controller.elapsed_time == pytest.approx(65.5)

    def test_elapsed_never_decreases(self, gateway, clock):
        """Test successive reads are non-decreasing even if the clock steps back"""
        controller = make_controller(gateway, clock)
        controller.start(manual_visit())
        clock.advance(10)
        first = controller.elapsed_time
        clock.mono -= 3
        assert controller.elapsed_time >= first

    def test_wall_clock_jump_does_not_change_elapsed(self, gateway, clock):
        """Test elapsed time ignores wall clock adjustments"""
        controller = make_controller(gateway, clock)
        controller.start(manual_visit())
        clock.advance(5)
        clock.wall = clock.wall.replace(year=2030)
        assert controller.elapsed_time == pytest.approx(5)


@pytest.mark.unit
class TestLogStation:
    """Tests for station logging"""

    def test_log_without_session_is_ignored(self, gateway, clock):
        """Test entries are only accepted while active"""
        controller = make_controller(gateway, clock)
        assert controller.log_station(1) is None
        assert len(controller.visit_logger) == 0

    def test_entry_carries_session_context(self, gateway, clock):
        """Test entry fields are filled from the session"""
        controller = make_controller(gateway, clock)
        controller.start(scheduled_visit())
        clock.advance(8)
        entry = controller.log_station(3, station_type='RM', consumption='25%',
                                       bait_type='Rodenticide Block', condition='Good',
                                       access='Yes', dosage_g=60)

        assert entry.customer_id == 'cust-1'
        assert entry.technician_id == 'tech-9'
        assert entry.appointment_id == 'appt-77'
        assert entry.duration == pytest.approx(8)
        assert entry.start_time == controller.session.start_time
        assert entry.label == 'RM3'

    def test_same_station_logged_twice(self, gateway, clock):
        """Test repeat inspections of a station are both kept"""
        controller = make_controller(gateway, clock)
        controller.start(manual_visit())
        controller.log_station(4)
        controller.log_station(4)
        assert [e.station_id for e in controller.visit_logger.entries] == [4, 4]


@pytest.mark.unit
class TestCancel:
    """Tests for cancelling a session"""

    def test_cancel_discards_everything_without_network(self, gateway, clock):
        """Test cancel makes no backend calls and leaves nothing behind"""
        controller = make_controller(gateway, clock)
        controller.start(manual_visit())
        controller.log_station(1)
        controller.log_station(2)

        assert controller.cancel() is True
        assert gateway.calls == []
        assert len(controller.visit_logger) == 0
        assert controller.session is None
        assert controller.state == SessionState.IDLE

    def test_cancel_when_idle(self, gateway, clock):
        """Test cancel without a session is a no-op"""
        assert make_controller(gateway, clock).cancel() is False

    def test_cancel_after_failed_submit(self, gateway, clock):
        """Test a failed visit can be abandoned"""
        gateway.complete_visit_responses = [{'success': False, 'error': 'offline'}]
        controller = make_controller(gateway, clock)
        controller.start(manual_visit())
        controller.log_station(1)
        controller.finish()

        assert controller.cancel() is True
        assert controller.pending_summary is None
        assert controller.state == SessionState.IDLE

    def test_cancel_during_submission_wins(self, gateway, clock):
        """Test a cancel that lands while the submission is in flight is not undone"""
        controller = make_controller(gateway, clock)
        gateway.on_complete_visit = controller.cancel
        controller.start(manual_visit())
        controller.log_station(1)

        controller.finish()

        assert controller.state == SessionState.IDLE
        assert controller.session is None
        assert controller.in_flight is False
        assert len(controller.visit_logger) == 0


@pytest.mark.unit
class TestFinish:
    """Tests for finishing and submitting"""

    def test_finish_without_session(self, gateway, clock):
        """Test finish while idle does nothing"""
        assert make_controller(gateway, clock).finish() is None
        assert gateway.calls == []

    def test_empty_visit_requires_confirmation(self, gateway, clock):
        """Test finishing with no entries asks for confirmation and keeps the clock running"""
        controller = make_controller(gateway, clock)
        controller.start(manual_visit())
        clock.advance(4)

        result = controller.finish()

        assert result.success is False
        assert result.needs_confirmation is True
        assert gateway.calls == []
        assert controller.state == SessionState.ACTIVE
        clock.advance(1)
        assert controller.elapsed_time == pytest.approx(5)

    def test_empty_visit_confirmed(self, gateway, clock):
        """Test a confirmed empty visit is submitted with no stations"""
        controller = make_controller(gateway, clock)
        controller.start(manual_visit())

        result = controller.finish(confirm_empty=True)

        assert result.success is True
        _, summary, stations = gateway.calls_to('log_complete_visit')[0]
        assert stations == []
        assert summary['stationCount'] == 0

    def test_full_visit_scenario(self, gateway, clock):
        """Test start at 0s, log at 5s and 12s, finish at 20s"""
        controller = make_controller(gateway, clock)
        controller.start(manual_visit())
        clock.advance(5)
        controller.log_station(1)
        clock.advance(7)
        controller.log_station(2)
        clock.advance(8)

        result = controller.finish(notes='Gate code 1234')

        assert result.success is True
        assert result.station_count == 2
        _, summary, stations = gateway.calls_to('log_complete_visit')[0]
        assert summary['duration'] == 20000
        assert summary['workType'] == 'Manual Visit'
        assert summary['notes'] == 'Gate code 1234'
        assert [s['stationId'] for s in stations] == [1, 2]
        assert [s['duration'] for s in stations] == [5000, 12000]
        assert controller.state == SessionState.IDLE
        assert controller.session is None
        assert len(controller.visit_logger) == 0

    def test_duration_frozen_before_submission(self, gateway, clock):
        """Test time spent waiting on the backend is not added to the visit"""
        gateway.complete_visit_responses = [{'success': False, 'error': 'slow network'}]
        gateway.on_complete_visit = lambda: clock.advance(45)
        controller = make_controller(gateway, clock)
        controller.start(manual_visit())
        controller.log_station(1)
        clock.advance(20)

        controller.finish()

        _, summary, _ = gateway.calls_to('log_complete_visit')[0]
        assert summary['duration'] == 20000
        assert controller.elapsed_time == pytest.approx(20)

    def test_log_refused_while_finalizing(self, gateway, clock):
        """Test entries cannot be added after the clock stopped"""
        gateway.complete_visit_responses = [{'success': False, 'error': 'offline'}]
        controller = make_controller(gateway, clock)
        controller.start(manual_visit())
        controller.log_station(1)
        controller.finish()

        assert controller.log_station(2) is None
        assert len(controller.visit_logger) == 1

    def test_failed_submit_keeps_data_and_retry_reuses_visit_id(self, gateway, clock):
        """Test failure retains the visit and retry sends the same visitId"""
        gateway.complete_visit_responses = [
            {'success': False, 'error': 'Network request failed'},
            {'success': True, 'stationCount': 1},
        ]
        controller = make_controller(gateway, clock)
        controller.start(manual_visit())
        controller.log_station(1)

        failed = controller.finish()
        assert failed.success is False
        assert failed.error == 'Network request failed'
        assert controller.state == SessionState.FINALIZING
        assert len(controller.visit_logger) == 1

        clock.advance(60)
        retried = controller.retry_submission()

        first_call, second_call = gateway.calls_to('log_complete_visit')
        assert retried.success is True
        assert first_call[1]['visitId'] == second_call[1]['visitId']
        assert first_call[1]['duration'] == second_call[1]['duration']
        assert controller.state == SessionState.IDLE

    def test_retry_without_pending_visit(self, gateway, clock):
        """Test retry does nothing unless a submission failed"""
        controller = make_controller(gateway, clock)
        controller.start(manual_visit())
        assert controller.retry_submission() is None

    def test_gateway_exception_becomes_failure(self, gateway, clock):
        """Test a raising gateway leaves the visit pending"""
        def boom():
            raise ConnectionError('socket closed')
        gateway.on_complete_visit = boom
        controller = make_controller(gateway, clock)
        controller.start(manual_visit())
        controller.log_station(1)

        result = controller.finish()

        assert result.success is False
        assert 'socket closed' in result.error
        assert controller.state == SessionState.FINALIZING
        assert controller.in_flight is False

    def test_backend_visit_id_is_reported(self, gateway, clock):
        """Test a visitId returned by the backend wins"""
        gateway.complete_visit_responses = [{'success': True, 'visitId': 'srv-123'}]
        controller = make_controller(gateway, clock)
        controller.start(manual_visit())
        controller.log_station(1)
        assert controller.finish().visit_id == 'srv-123'

    def test_next_session_starts_fresh(self, gateway, clock):
        """Test a new session after finishing has no leftover entries"""
        controller = make_controller(gateway, clock)
        controller.start(manual_visit())
        controller.log_station(1)
        controller.finish()
        clock.advance(100)

        controller.start(manual_visit())

        assert len(controller.visit_logger) == 0
        assert controller.elapsed_time == 0.0


@pytest.mark.unit
class TestEvents:
    """Tests for session events and listeners"""

    def test_listener_sees_lifecycle(self, gateway, clock):
        """Test listener hooks fire for start, log and finish"""
        seen = []

        class Recorder(SessionListener):
            def on_session_start(self, context):
                seen.append('start')

            def on_station_logged(self, entry):
                seen.append(f'log:{entry.label}')

            def on_session_finish(self, result):
                seen.append('finish')

        events = EventLogger()
        events.add_listener(Recorder())
        controller = make_controller(gateway, clock, events=events)
        controller.start(manual_visit())
        controller.log_station(2)
        controller.finish()

        assert seen == ['start', 'log:BS2', 'finish']

    def test_failing_listener_does_not_break_session(self, gateway, clock):
        """Test listener errors are contained"""
        class Broken(SessionListener):
            def on_session_cancel(self):
                raise RuntimeError('screen gone')

        events = EventLogger()
        events.add_listener(Broken())
        controller = make_controller(gateway, clock, events=events)
        controller.start(manual_visit())

        assert controller.cancel() is True
        assert events.get_recent_events(1)[0]['event_type'] == 'SESSION_CANCELLED'

    def test_recent_events_bounded_and_newest_first(self):
        """Test event history keeps only the newest entries"""
        events = EventLogger(max_events=2)
        events.log('STATIONS_SAVED', 'm1')
        events.log('STATIONS_SAVED', 'm2')
        events.log('STATIONS_SAVED', 'm3')
        assert [e['entity_id'] for e in events.get_recent_events()] == ['m3', 'm2']
