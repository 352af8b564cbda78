#!/usr/bin/env python3
"""
Production runner for the result map engine
- Serves the Flask API (result_map.app) behind optional reverse-proxy headers
- Loads .env for GOOGLE_MAPS_API_KEY and other settings

Usage:
  python3 run_prod.py

Environment:
  PORT=8000 (default)          # Port to bind
  HOST=0.0.0.0 (default)       # Host interface
  GOOGLE_MAPS_API_KEY=...      # Required for full functionality
  RESULT_MAP_DEFAULT_CITY=...  # optional: suffix for "near X" geocoding
  RESULT_MAP_SEARCH_RADIUS=... # optional: search radius in meters
"""

import os
import ssl
from pathlib import Path

from dotenv import load_dotenv
from werkzeug.middleware.proxy_fix import ProxyFix
from werkzeug.serving import run_simple

PROJECT_ROOT = Path(__file__).resolve().parent

# Load env from .env if present, before the app reads its settings
load_dotenv(dotenv_path=PROJECT_ROOT / '.env')

from result_map.app import app  # noqa: E402

# Respect reverse proxy headers (X-Forwarded-*) when behind a proxy/HTTPS terminator
if os.getenv('TRUST_PROXY_HEADERS', '1') not in ('0', 'false', 'False', 'no', 'off'):
    x_for = int(os.getenv('PROXY_FIX_X_FOR', '1'))
    x_proto = int(os.getenv('PROXY_FIX_X_PROTO', '1'))
    x_host = int(os.getenv('PROXY_FIX_X_HOST', '1'))
    app.wsgi_app = ProxyFix(app.wsgi_app, x_for=x_for, x_proto=x_proto, x_host=x_host)


def main():
    host = os.getenv('HOST', '0.0.0.0')
    try:
        port = int(os.getenv('PORT', '8000'))
    except ValueError:
        port = 8000

    api_key = os.getenv('GOOGLE_MAPS_API_KEY')
    if not api_key or api_key == 'your_api_key_here':
        print("\n" + "="*60)
        print("Warning: GOOGLE_MAPS_API_KEY is not configured.")
        print("Only /api/config and the health check will respond.")
        print("="*60 + "\n")

    ssl_cert = os.getenv('SSL_CERTFILE')
    ssl_key = os.getenv('SSL_KEYFILE')

    context = None
    scheme = 'http'
    if ssl_cert and ssl_key:
        scheme = 'https'
        context = ssl.SSLContext(ssl.PROTOCOL_TLS_SERVER)
        context.load_cert_chain(certfile=ssl_cert, keyfile=ssl_key)

    print(f"\n🚀 Starting result map engine (prod) on {scheme}://{host}:{port}")
    # Single process: the engine loop and its session live in this interpreter
    run_simple(hostname=host, port=port, application=app, ssl_context=context, threaded=True)


if __name__ == '__main__':
    main()
