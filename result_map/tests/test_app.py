"""HTTP surface tests using Flask's test client with provider fakes injected."""

import importlib
from unittest.mock import MagicMock

import pytest

from fakes import detail, entry
from result_map import app as app_module
from result_map.models import LatLng


@pytest.fixture
def client(monkeypatch, place_service, geocoder, distance_service, storage):
    monkeypatch.setattr(app_module, 'maps_service', None)
    app_module.init_session(place_service, geocoder, distance_service, storage)
    app_module.app.config['TESTING'] = True
    with app_module.app.test_client() as test_client:
        yield test_client
    if app_module.session is not None:
        app_module.engine.run(app_module.session.close(), timeout=5)
        app_module.session = None


def test_health_check(client):
    response = client.get('/')
    assert response.status_code == 200
    body = response.get_json()
    assert body['status'] == 'healthy'
    assert body['endpoints']['search'] == '/api/search'


def test_config(client):
    data = client.get('/api/config').get_json()['data']
    assert data['defaultCity'] == 'Boston, MA'
    assert data['searchRadius'] == 5000


def test_unknown_endpoint(client):
    response = client.get('/api/nothing-here')
    assert response.status_code == 404
    assert response.get_json()['error'] == 'Endpoint not found'


def test_not_configured(monkeypatch):
    monkeypatch.setattr(app_module, 'session', None)
    response = app_module.app.test_client().post('/api/search', json={'query': 'tacos'})
    assert response.status_code == 500
    assert response.get_json()['success'] is False


class TestSearch:

    def test_query_required(self, client):
        assert client.post('/api/search', json={}).status_code == 400
        assert client.post('/api/search', json={'query': '  '}).status_code == 400

    def test_search_returns_visible_results_and_markers(self, client, place_service):
        place_service.results = [entry('a', 42.36, -71.06, name='Taco Spot', rating=4.8)]
        response = client.post('/api/search', json={'query': 'tacos'})
        assert response.status_code == 200
        assert 'X-Compute-Time-ms' in response.headers
        data = response.get_json()['data']
        assert [r['id'] for r in data['visible_results']] == ['a']
        assert data['live_markers'] == ['a']
        kinds = sorted(m['kind'] for m in data['markers'])
        assert kinds == ['label', 'marker']
        marker = next(m for m in data['markers'] if m['kind'] == 'marker')
        assert marker['fill_color'] == '#9B87F5'


class TestViewport:

    def test_bounds_required(self, client):
        response = client.post('/api/viewport', json={'south': 42.35})
        assert response.status_code == 400

    def test_viewport_filters_markers(self, client, place_service):
        place_service.results = [entry('in', 42.36, -71.06), entry('out', 42.50, -71.30)]
        client.post('/api/search', json={'query': 'tacos'})
        response = client.post('/api/viewport', json={
            'south': 42.35, 'west': -71.07, 'north': 42.37, 'east': -71.05, 'zoom': 16,
        })
        data = response.get_json()['data']
        assert data['live_markers'] == ['in']
        assert data['map']['zoom'] == 16


class TestPreload:

    def test_results_must_be_list(self, client):
        assert client.post('/api/preload', json={'results': 'nope'}).status_code == 400

    def test_ranked_markers(self, client):
        response = client.post('/api/preload', json={
            'results': [
                {'place_id': 'a', 'name': 'First', 'latitude': 42.36, 'longitude': -71.06},
                {'place_id': 'b', 'name': 'Second', 'latitude': 42.37, 'longitude': -71.05},
            ],
        })
        data = response.get_json()['data']
        assert data['ranked'] is True
        labels = sorted(m['text'] for m in data['markers'] if m['kind'] == 'marker')
        assert labels == ['1', '2']

    def test_invalid_location(self, client):
        response = client.post('/api/preload', json={'results': [], 'user_location': {'lat': 'x'}})
        assert response.status_code == 400


class TestSelect:

    def test_id_required(self, client):
        assert client.post('/api/select', json={}).status_code == 400

    def test_unknown_id_maps_to_404(self, client):
        response = client.post('/api/select', json={'id': 'missing'})
        assert response.status_code == 404
        body = response.get_json()
        assert body['code'] == 'NotFound'
        assert body['id'] == 'missing'

    def test_resolved_details(self, client, place_service):
        place_service.results = [entry('a', 42.36, -71.06)]
        place_service.details['a'] = detail('a', 42.36, -71.06, phone='555-0100')
        client.post('/api/search', json={'query': 'tacos'})
        data = client.post('/api/select', json={'id': 'a'}).get_json()['data']
        assert data['state'] == 'resolved'
        assert data['detail']['phone'] == '555-0100'

    def test_marker_click(self, client, place_service):
        place_service.results = [entry('a', 42.36, -71.06)]
        client.post('/api/search', json={'query': 'tacos'})
        markers = client.get('/api/state').get_json()['data']['markers']
        marker_id = next(m['id'] for m in markers if m['kind'] == 'marker')
        assert client.post(f'/api/markers/{marker_id}/click').status_code == 200
        assert client.post('/api/markers/9999/click').status_code == 404


class TestLocationAndMapType:

    def test_location_required(self, client):
        assert client.post('/api/location', json={'lat': 42.0}).status_code == 400

    def test_location_sets_user_marker(self, client):
        data = client.post('/api/location', json={'lat': 42.3601, 'lng': -71.0589}).get_json()['data']
        assert data['user_location'] == LatLng(42.3601, -71.0589).to_dict()
        assert any(m['kind'] == 'circle' for m in data['markers'])

    def test_3d_map_type(self, client, storage):
        data = client.post('/api/map-type', json={'type': '3d'}).get_json()['data']
        assert data['map_type'] == 'satellite'
        assert data['tilt'] == 67.5
        assert storage.get('preferred_map_type') == '3d'

    def test_unknown_map_type(self, client):
        assert client.post('/api/map-type', json={'type': 'hybrid'}).status_code == 400


def test_shutdown_stops_pulse_engine_and_provider(client, monkeypatch):
    provider = MagicMock()
    monkeypatch.setattr(app_module, 'maps_service', provider)
    client.post('/api/location', json={'lat': 42.3601, 'lng': -71.0589})
    session = app_module.session
    engine = app_module.engine
    assert session.pulse.running

    app_module.shutdown()

    assert not session.pulse.running
    assert not engine.thread.is_alive()
    provider.cleanup.assert_called_once_with()
    assert app_module.session is None
    assert app_module.engine is None


def test_demo_targets_dev_server_port(monkeypatch):
    monkeypatch.delenv('RESULT_MAP_BASE_URL', raising=False)
    monkeypatch.delenv('PORT', raising=False)
    demo = importlib.reload(importlib.import_module('demo'))
    assert demo.BASE_URL == 'http://localhost:5001'
