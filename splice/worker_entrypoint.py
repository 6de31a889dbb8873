"""Render worker entrypoint.

Creates the export job table, then runs a health check server beside the
Celery worker.
"""

import logging
import os
import shutil
import subprocess
import threading
from http.server import BaseHTTPRequestHandler, HTTPServer

from splice.config import get_settings
from splice.logging_config import configure_logging
from splice.models.database import init_db

logger = logging.getLogger(__name__)


class HealthHandler(BaseHTTPRequestHandler):
    """Health check: OK only while the ffmpeg binary is reachable."""

    def do_GET(self):
        if self.path not in ("/health", "/"):
            self.send_response(404)
            self.end_headers()
            return

        ok = shutil.which(get_settings().ffmpeg_path) is not None
        self.send_response(200 if ok else 503)
        self.send_header("Content-type", "text/plain")
        self.end_headers()
        self.wfile.write(b"OK" if ok else b"ffmpeg not found")

    def log_message(self, format, *args):
        # Suppress access logs
        pass


def run_health_server():
    """Run the health check server."""
    port = int(os.environ.get("PORT", 8080))
    server = HTTPServer(("0.0.0.0", port), HealthHandler)
    logger.info(f"Health server running on port {port}")
    server.serve_forever()


def run_celery_worker():
    """Run the Celery worker."""
    settings = get_settings()
    subprocess.run([
        "celery",
        "-A", "splice.celery_app",
        "worker",
        f"--loglevel={settings.log_level.lower()}",
        f"--concurrency={settings.render_max_concurrency}",
    ])


if __name__ == "__main__":
    configure_logging()
    init_db()

    # Start health server in background thread
    health_thread = threading.Thread(target=run_health_server, daemon=True)
    health_thread.start()

    # Run Celery worker in main thread
    run_celery_worker()
