#!/usr/bin/env python3
"""
Main entry point for the result map engine API
"""

import os

from result_map.app import app

if __name__ == '__main__':
    port = int(os.getenv('PORT', '5001'))
    host = os.getenv('HOST', '0.0.0.0')
    # The engine loop runs on its own thread; the reloader would start a second one
    app.run(debug=True, host=host, port=port, use_reloader=False)
