from flask import Flask, request, jsonify, g
from flask_cors import CORS
from dotenv import load_dotenv
import asyncio
import atexit
import os
import logging
import threading
from time import perf_counter

from .errors import EngineError
from .maps_service import GoogleMapsService
from .models import Bounds, LatLng, ResultEntry
from .search_session import DEFAULT_CITY, SEARCH_RADIUS_M, SearchSessionController
from .surface import MemoryStore, RecordingMarkerFactory, SessionMapSurface

# Load environment variables
load_dotenv()

# Configure logging
logging.basicConfig(
    level=logging.INFO,
    format='%(asctime)s - %(name)s - %(levelname)s - %(message)s',
    handlers=[
        logging.FileHandler('app.log'),
        logging.StreamHandler()
    ]
)
logger = logging.getLogger(__name__)

app = Flask(__name__)
CORS(app)  # Enable CORS for all routes


class EngineLoop:
    """Runs the engine's asyncio loop on a background thread.

    All session state is touched only from this loop; request handlers hand
    work over with run() / call().
    """

    def __init__(self):
        self.loop = asyncio.new_event_loop()
        self.thread = threading.Thread(target=self._run, name='engine-loop', daemon=True)
        self.thread.start()

    def _run(self):
        asyncio.set_event_loop(self.loop)
        self.loop.run_forever()

    def run(self, coro, timeout=None):
        return asyncio.run_coroutine_threadsafe(coro, self.loop).result(timeout)

    def call(self, fn, *args, **kwargs):
        async def _invoke():
            return fn(*args, **kwargs)
        return self.run(_invoke())

    def stop(self):
        self.loop.call_soon_threadsafe(self.loop.stop)
        self.thread.join(timeout=5)


# Per-request timing: record start time and log duration on completion
@app.before_request
def _start_timer():
    g._start_time = perf_counter()


@app.after_request
def _log_request_duration(response):
    start = getattr(g, '_start_time', None)
    if start is not None:
        duration_ms = (perf_counter() - start) * 1000.0
        response.headers['X-Process-Time-ms'] = f"{duration_ms:.1f}"
        logger.info(
            "request completed: method=%s path=%s status=%s duration_ms=%.1f",
            request.method,
            request.path,
            response.status_code,
            duration_ms,
        )
    return response


# Initialize services
api_key = os.getenv('GOOGLE_MAPS_API_KEY')
default_city = os.getenv('RESULT_MAP_DEFAULT_CITY', DEFAULT_CITY)
search_radius = int(os.getenv('RESULT_MAP_SEARCH_RADIUS', str(SEARCH_RADIUS_M)))

engine = None
maps_service = None
session = None
surface = None
marker_factory = None


def init_session(place_service, geocoder, distance_service, storage=None):
    """Build the engine loop, map surface and search session"""
    global engine, session, surface, marker_factory
    if engine is None:
        engine = EngineLoop()
    surface = SessionMapSurface()
    marker_factory = RecordingMarkerFactory()
    session = SearchSessionController(
        place_service,
        geocoder,
        distance_service,
        marker_factory,
        storage if storage is not None else MemoryStore(),
        default_city=default_city or None,
        search_radius=search_radius,
    )
    engine.call(session.attach_map, surface)
    engine.call(session.restore_map_type)
    return session


if not api_key or api_key == "your_api_key_here":
    logger.warning("GOOGLE_MAPS_API_KEY not found or not configured in environment variables")
else:
    try:
        logger.info("Initializing Google Maps service...")
        maps_service = GoogleMapsService(api_key)
        init_session(maps_service, maps_service, maps_service)
        logger.info("Google Maps service initialized successfully")
    except ValueError as e:
        logger.error(f"Error initializing Google Maps service: {e}")
        maps_service = None
        session = None


def shutdown():
    """Stop the session's pulse and background tasks, then the engine loop and provider executor"""
    global engine, session
    if engine is not None:
        if session is not None:
            try:
                engine.run(session.close(), timeout=5)
            except Exception as e:
                logger.warning(f"Error closing session during shutdown: {e}")
        engine.stop()
        logger.info("Engine loop stopped")
    if maps_service is not None:
        maps_service.cleanup()
    engine = None
    session = None


atexit.register(shutdown)


def _not_configured():
    logger.error("Google Maps API key not configured - cannot process request")
    return jsonify({'success': False, 'error': 'Google Maps API key not configured'}), 500


def _state():
    data = engine.call(session.snapshot)
    data['map'] = engine.call(surface.to_dict)
    data['markers'] = engine.call(marker_factory.to_list)
    return data


def _parse_bounds(data):
    try:
        return Bounds(
            south=float(data['south']),
            west=float(data['west']),
            north=float(data['north']),
            east=float(data['east']),
        )
    except (KeyError, TypeError, ValueError):
        return None


@app.errorhandler(EngineError)
def engine_error(error):
    logger.warning("Engine error: %s", error)
    return jsonify(error.to_dict()), error.http_status


@app.route('/', methods=['GET'])
def health_check():
    """Health check endpoint"""
    return jsonify({
        'message': 'Result map engine is running!',
        'endpoints': {
            'search': '/api/search',
            'viewport': '/api/viewport',
            'preload': '/api/preload',
            'select': '/api/select',
            'location': '/api/location',
            'map_type': '/api/map-type',
            'state': '/api/state',
            'config': '/api/config',
            'health': '/'
        },
        'status': 'healthy'
    })


@app.route('/api/search', methods=['POST'])
def search():
    """
    Submit a free-text query
    Expected JSON: {"query": "tacos near Harvard Square"}
    """
    if not session:
        return _not_configured()
    data = request.get_json(silent=True)
    if not data or not str(data.get('query', '')).strip():
        return jsonify({'success': False, 'error': 'query is required'}), 400

    query = str(data['query'])
    logger.info(f"Search request: {query!r}")
    _start = perf_counter()
    engine.run(session.submit(query))
    compute_ms = (perf_counter() - _start) * 1000.0
    logger.info("Search completed in %.1f ms", compute_ms)

    response = jsonify({'success': True, 'data': _state()})
    response.headers['X-Compute-Time-ms'] = f"{compute_ms:.1f}"
    return response


@app.route('/api/viewport', methods=['POST'])
def viewport():
    """
    Report the visible map bounds after a pan/zoom
    Expected JSON: {"south": .., "west": .., "north": .., "east": .., "zoom": 15}
    """
    if not session:
        return _not_configured()
    data = request.get_json(silent=True) or {}
    bounds = _parse_bounds(data)
    if bounds is None:
        return jsonify({'success': False, 'error': 'south, west, north and east are required'}), 400
    engine.call(surface.update_viewport, bounds, data.get('zoom'))
    return jsonify({'success': True, 'data': _state()})


@app.route('/api/preload', methods=['POST'])
def preload():
    """
    Show a result set handed off from another screen
    Expected JSON: {
        "results": [{"place_id": "...", "name": "...", "latitude": 42.3, "longitude": -71.1}],
        "user_location": {"lat": 42.36, "lng": -71.06}  // optional
    }
    """
    if not session:
        return _not_configured()
    data = request.get_json(silent=True) or {}
    raw_results = data.get('results')
    if not isinstance(raw_results, list):
        return jsonify({'success': False, 'error': 'results must be a list'}), 400
    try:
        entries = [ResultEntry.from_handoff(item) for item in raw_results]
        location = LatLng.from_dict(data['user_location']) if data.get('user_location') else None
    except (KeyError, TypeError, ValueError) as e:
        return jsonify({'success': False, 'error': f'Invalid preload payload: {e}'}), 400

    rendered = engine.run(session.load_preloaded(entries, location))
    logger.info(f"Preloaded {len(entries)} results, {rendered} rendered immediately")
    return jsonify({'success': True, 'data': _state()})


@app.route('/api/select', methods=['POST'])
def select():
    """
    Select a result and resolve its details
    Expected JSON: {"id": "<place id>"}
    """
    if not session:
        return _not_configured()
    data = request.get_json(silent=True) or {}
    entry_id = data.get('id')
    if not entry_id:
        return jsonify({'success': False, 'error': 'id is required'}), 400

    state = engine.run(session.select(str(entry_id)))
    payload = state.to_dict()
    if maps_service and state.detail is not None:
        payload['photo_urls'] = [maps_service.photo_url(ref) for ref in state.detail.photo_refs]
    return jsonify({'success': True, 'data': payload})


@app.route('/api/markers/<int:marker_id>/click', methods=['POST'])
def marker_click(marker_id):
    """Forward a marker click from the frontend"""
    if not session:
        return _not_configured()
    if not engine.call(marker_factory.click, marker_id):
        return jsonify({'success': False, 'error': 'Unknown marker'}), 404
    return jsonify({'success': True})


@app.route('/api/location', methods=['POST'])
def location():
    """
    Set the user location
    Expected JSON: {"lat": 42.36, "lng": -71.06}
    """
    if not session:
        return _not_configured()
    data = request.get_json(silent=True) or {}
    try:
        loc = LatLng.from_dict(data)
    except (KeyError, TypeError, ValueError):
        return jsonify({'success': False, 'error': 'lat and lng are required'}), 400
    engine.run(session.set_user_location(loc))
    return jsonify({'success': True, 'data': _state()})


@app.route('/api/map-type', methods=['POST'])
def map_type():
    """
    Change the map type
    Expected JSON: {"type": "roadmap" | "satellite" | "3d"}
    """
    if not session:
        return _not_configured()
    data = request.get_json(silent=True) or {}
    try:
        engine.call(session.set_map_type, data.get('type'))
    except ValueError as e:
        return jsonify({'success': False, 'error': str(e)}), 400
    return jsonify({'success': True, 'data': engine.call(surface.to_dict)})


@app.route('/api/state', methods=['GET'])
def state():
    """Current viewport, markers, visible results, selection and distance summary"""
    if not session:
        return _not_configured()
    return jsonify({'success': True, 'data': _state()})


@app.route('/api/config', methods=['GET'])
def get_config():
    """
    Get frontend configuration including Google Maps API key
    """
    return jsonify({
        'success': True,
        'data': {
            'googleMapsApiKey': api_key if api_key and api_key != "your_api_key_here" else None,
            'apiBaseUrl': request.host_url.rstrip('/'),
            'defaultCity': default_city,
            'searchRadius': search_radius,
        }
    })


@app.errorhandler(404)
def not_found(error):
    return jsonify({'error': 'Endpoint not found'}), 404


@app.errorhandler(500)
def internal_error(error):
    return jsonify({'error': 'Internal server error'}), 500
