"""
Pytest configuration and shared fixtures
"""
import sys
import pytest
from datetime import datetime, timedelta, timezone
from pathlib import Path

# Add project root to Python path
project_root = Path(__file__).parent.parent
sys.path.insert(0, str(project_root))


class ManualClock:
    """Clock that only moves when a test advances it."""

    def __init__(self):
        self.wall = datetime(2025, 3, 1, 8, 0, 0, tzinfo=timezone.utc)
        self.mono = 1000.0

    def now(self):
        return self.wall

    def monotonic(self):
        return self.mono

    def advance(self, seconds):
        self.wall += timedelta(seconds=seconds)
        self.mono += seconds


class StubGateway:
    """Backend gateway that records every call."""

    def __init__(self, customers=None):
        self.customers = customers or []
        self.calls = []
        self.complete_visit_responses = []
        self.update_customer_response = {'success': True}
        self.update_appointment_response = {'success': True}
        self.log_station_response = {'success': True}
        self.on_complete_visit = None
        self.on_log_station = None
        self.on_update_customer = None
        # answer updateCustomer with the saved customer, as the backend does
        self.echo_customer = False

    def calls_to(self, name):
        return [c for c in self.calls if c[0] == name]

    def get_customers(self):
        self.calls.append(('get_customers',))
        return self.customers

    def update_customer(self, customer_id, payload):
        self.calls.append(('update_customer', customer_id, payload))
        if self.on_update_customer:
            self.on_update_customer()
        if self.echo_customer and self.update_customer_response.get('success'):
            return {'success': True, 'customer': payload}
        return self.update_customer_response

    def log_bait_station(self, entry):
        self.calls.append(('log_bait_station', entry))
        if self.on_log_station:
            self.on_log_station()
        return self.log_station_response

    def log_complete_visit(self, visit_summary, stations):
        self.calls.append(('log_complete_visit', visit_summary, stations))
        if self.on_complete_visit:
            self.on_complete_visit()
        if self.complete_visit_responses:
            return self.complete_visit_responses.pop(0)
        return {'success': True, 'stationCount': len(stations)}

    def update_appointment(self, appointment_id, payload):
        self.calls.append(('update_appointment', appointment_id, payload))
        return self.update_appointment_response


@pytest.fixture
def clock():
    return ManualClock()


@pytest.fixture
def sample_customers():
    """Fixture providing customers as served by GET /customers"""
    return [
        {
            'customerId': 'cust-1',
            'customerName': 'Harbor Foods Warehouse',
            'address': '12 Dock Road',
            'maps': [
                {
                    'mapId': 'map-ground',
                    'name': 'Ground Floor',
                    'image': 'ground.png',
                    'stations': [
                        {'id': 1, 'type': 'BS', 'x': 0.1, 'y': 0.2},
                        {'id': 2, 'type': 'BS', 'x': 0.5, 'y': 0.5},
                    ],
                },
                {
                    'mapId': 'map-storage',
                    'name': 'Storage Area',
                    'image': None,
                },
            ],
        },
        {
            'customer_id': 'cust-2',
            'name': 'Olive Bakery',
            'maps': [],
        },
    ]


@pytest.fixture
def gateway(sample_customers):
    return StubGateway(customers=sample_customers)


@pytest.fixture
def engine(gateway, clock):
    from services.field_visit import FieldVisitEngine
    return FieldVisitEngine(gateway, clock=clock, uploads_url='http://backend.test/uploads')


@pytest.fixture
def ready_engine(engine):
    """Engine with customers loaded and the ground floor map selected"""
    engine.load_customers()
    engine.select_customer('cust-1')
    engine.select_map('map-ground')
    return engine


@pytest.fixture
def app(gateway, clock):
    from app_init import create_app
    from config import TestingConfig
    return create_app(TestingConfig, gateway=gateway, clock=clock)


@pytest.fixture
def client(app):
    return app.test_client()
