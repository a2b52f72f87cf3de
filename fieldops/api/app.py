"""
Flask application factory and server entry-point.
"""

import logging
import os
import sys
import traceback

from flask import Flask
from flask_cors import CORS

from fieldops.cache import result_cache
from fieldops.config import CACHE_TTL_SECONDS, STORE_BACKEND, TOKEN_EXPIRY_HOURS
from fieldops.store import init_store
from fieldops.api.routes import register_routes


def create_app(store=None, cache=None, state_file=None):
    """Build and return a fully configured Flask application."""
    app = Flask(__name__)
    CORS(app)

    # ── Initialise shared resources ──────────────────────────────────
    if store is None:
        try:
            print(f"[init] Initializing {STORE_BACKEND} store...")
            store = init_store()
            print("[init] ✓ API server ready")
        except Exception as e:
            print(f"[FATAL] Failed to initialize: {e}", file=sys.stderr)
            traceback.print_exc()
            sys.exit(1)

    # ── Register routes ──────────────────────────────────────────────
    register_routes(app, store, cache if cache is not None else result_cache, state_file)

    return app


def main():
    """Run the development server."""
    logging.basicConfig(
        level=os.getenv("LOG_LEVEL", "INFO"),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
    print("=" * 60)
    print("Field Operations Data API")
    print("=" * 60)

    app = create_app()

    host = os.getenv("API_HOST", "0.0.0.0")
    port = int(os.getenv("API_PORT", "8000"))
    debug = os.getenv("FLASK_ENV") == "development"

    print(f"\n[server] Starting Flask API on {host}:{port}")
    print(f"[server] Debug mode: {debug}")
    print(f"[server] CORS enabled: True")
    print(f"[server] Cache TTL: {CACHE_TTL_SECONDS} seconds")
    print(f"[server] Token expiry: {TOKEN_EXPIRY_HOURS} hours")
    print("\nAPI Endpoints:")
    print(f"  - GET    http://{host}:{port}/api/me")
    print(f"  - GET    http://{host}:{port}/api/collections/<name>")
    print(f"  - GET    http://{host}:{port}/api/collections/<name>/statistics")
    print(f"  - GET    http://{host}:{port}/api/collections/<name>/export")
    print(f"  - POST   http://{host}:{port}/api/collections/<name>")
    print(f"  - PATCH  http://{host}:{port}/api/collections/<name>/<id>")
    print(f"  - DELETE http://{host}:{port}/api/collections/<name>/<id>")
    print(f"  - GET    http://{host}:{port}/api/pricing")
    print(f"  - PUT    http://{host}:{port}/api/pricing")
    print(f"  - GET    http://{host}:{port}/health")
    print("\n" + "=" * 60)

    app.run(host=host, port=port, debug=debug, threaded=True)


if __name__ == "__main__":
    main()
