#!/usr/bin/env python3
"""
Attendance Assistant - Classroom Attendance API
===============================================
Run: python -m backend.app
Then point the frontend at: http://localhost:3000
"""

import logging

from flask import Flask, jsonify
from flask_cors import CORS

from backend import __version__
from backend import config as app_config
from backend.auth import init_auth
from backend.routes import register_routes
from backend.services.assistant_session import SessionRegistry
from backend.services.completion_service import complete as default_complete
from backend.store import get_store

logger = logging.getLogger(__name__)


def create_app(store=None, complete=None):
    """Build the Flask app around a record store and a completion callable."""
    app = Flask(__name__)
    CORS(app)

    app.config['RECORD_STORE'] = store or get_store()
    app.config['COMPLETION_FN'] = complete or default_complete
    app.config['ASSISTANT_SESSIONS'] = SessionRegistry()

    # ══════════════════════════════════════════════════════════════
    # AUTHENTICATION
    # ══════════════════════════════════════════════════════════════
    init_auth(app)

    @app.route('/api/health')
    @app.route('/api/status')
    def health():
        return jsonify({
            "status": "ok",
            "version": __version__,
            "store": app_config.config.store_backend,
            "assistant_model": app_config.config.assistant_model,
        })

    register_routes(app)
    return app


# ══════════════════════════════════════════════════════════════
# MAIN
# ══════════════════════════════════════════════════════════════

def main():
    logging.basicConfig(level=logging.INFO, format="%(asctime)s %(levelname)s %(name)s: %(message)s")
    app = create_app()

    print()
    print("+" + "=" * 50 + "+")
    print("|  Attendance Assistant                            |")
    print("+" + "=" * 50 + "+")
    print(f"|  API: http://localhost:{app_config.PORT:<26}|")
    print("|  Press Ctrl+C to stop                            |")
    print("+" + "=" * 50 + "+")
    print()

    app.run(host=app_config.HOST, port=app_config.PORT, debug=app_config.DEBUG)


if __name__ == '__main__':
    main()
