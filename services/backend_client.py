"""
Backend API Client

Thin JSON client for the field-service backend. Every call returns the
backend's JSON body, or a failure dict:
    {'success': False, 'error': ..., 'status': <http status>}
    {'success': False, 'error': ..., 'networkError': True}
Calls never raise on HTTP or transport errors; the visit engine decides what
to retain for retry.
"""

import logging
from typing import Any, Dict, List, Optional

import requests

logger = logging.getLogger(__name__)

TYPE_SPECIFIC_FIELDS = (
    'dosage_g', 'capture', 'rodentsCaptured', 'triggered', 'replacedSurface',
    'mosquitoes', 'lepidoptera', 'drosophila', 'flies', 'others', 'replaceBulb',
)


class GatewayError(Exception):
    """Raised by read paths when the backend cannot provide data"""
    def __init__(self, message: str, status: Optional[int] = None, payload: Any = None):
        self.message = message
        self.status = status
        self.payload = payload
        super().__init__(self.message)


class BackendClient:
    """
    HTTP implementation of the submission gateway.

    Methods mirror the backend contract:
    - get_customers() -> list of customer dicts
    - update_customer(customer_id, payload) -> {success, customer?, error?}
    - log_bait_station(entry) -> {success, error?}
    - log_complete_visit(visit_summary, stations) -> {success, stationCount?, visitId?, error?}
    - update_appointment(appointment_id, payload) -> {success, error?}
    """

    def __init__(self, base_url: str, timeout: float = 30, session: requests.Session = None):
        self.base_url = base_url.rstrip('/')
        self.timeout = timeout
        self.session = session or requests.Session()
        self.session.headers.update({'Content-Type': 'application/json'})

    def _request(self, method: str, endpoint: str, body: Dict = None) -> Any:
        url = f"{self.base_url}{endpoint}"
        logger.debug(f"🌐 API Request: {method} {url}")

        try:
            response = self.session.request(method, url, json=body, timeout=self.timeout)
        except requests.exceptions.RequestException as e:
            logger.error(f"❌ API Error for {endpoint}: {e}")
            return {'success': False, 'error': str(e), 'networkError': True}

        data = None
        if response.content:
            try:
                data = response.json()
            except ValueError:
                logger.warning(f"⚠️ Could not parse JSON for {endpoint}")

        logger.debug(f"📥 API Response for {endpoint}: status={response.status_code}")

        if not response.ok:
            error = None
            if isinstance(data, dict):
                error = data.get('error')
            return {
                'success': False,
                'error': error or f"Request failed with status {response.status_code}",
                'status': response.status_code,
            }

        return data if data is not None else {'success': True}

    def get_customers(self) -> List[Dict[str, Any]]:
        result = self._request('GET', '/customers')
        if isinstance(result, list):
            return result
        if isinstance(result, dict) and isinstance(result.get('customers'), list):
            return result['customers']
        error = result.get('error') if isinstance(result, dict) else None
        raise GatewayError(error or 'Unexpected customers response',
                           status=result.get('status') if isinstance(result, dict) else None,
                           payload=result)

    def update_customer(self, customer_id: str, payload: Dict[str, Any]) -> Dict[str, Any]:
        return self._request('PUT', f"/customers/{customer_id}", payload)

    def log_bait_station(self, entry: Dict[str, Any]) -> Dict[str, Any]:
        station_data = {
            'timestamp': entry.get('timestamp'),
            'customerId': entry.get('customerId'),
            'customerName': entry.get('customerName') or '',
            'stationId': entry.get('stationId'),
            'stationType': entry.get('stationType'),
            'consumption': entry.get('consumption') or '',
            'baitType': entry.get('baitType') or '',
            'condition': entry.get('condition') or '',
            'access': entry.get('access') or '',
            'technicianId': entry.get('technicianId'),
            'technicianName': entry.get('technicianName') or '',
            'appointmentId': entry.get('appointmentId') or '',
            'isVisitSummary': False,
        }
        # capture and light trap readings go along only when present
        for key in TYPE_SPECIFIC_FIELDS:
            if entry.get(key) is not None:
                station_data[key] = entry[key]
        return self._request('POST', '/log', station_data)

    def log_complete_visit(self, visit_summary: Dict[str, Any],
                           stations: List[Dict[str, Any]]) -> Dict[str, Any]:
        return self._request('POST', '/log-complete', {
            'visitSummary': visit_summary,
            'stations': stations,
            'action': 'complete-visit',
        })

    def update_appointment(self, appointment_id: str, payload: Dict[str, Any]) -> Dict[str, Any]:
        body = dict(payload)
        body['id'] = appointment_id
        return self._request('PUT', f"/appointments/{appointment_id}", body)
