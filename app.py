#!/usr/bin/env python3
"""
24/7 playlist broadcaster: control surface + process entry point.

- Config via .env (HOST, PORT, CONTROL_TOKEN, FFMPEG_PATH, PUBLIC_DIR,
  VIDEOS_DIR, BACKGROUND_AUDIO_PATH, SUPABASE_URL, SUPABASE_SERVICE_KEY,
  CONFIG_PATH, POLL_INTERVAL_SEC, ...; see broadcast/config.py)
- Start/stop is driven only by the polled stream config (is_active); this
  server exposes status, manual skip and the engine's log buffer
- When CONTROL_TOKEN is set every route except /health requires
  "Authorization: Bearer <CONTROL_TOKEN>"
- SIGINT/SIGTERM stop the feeder and master encoder before exiting
"""
import os
import secrets
import signal
import sys

from flask import Flask, request, jsonify
from dotenv import load_dotenv

# Load .env if present
load_dotenv()

from broadcast import config
from broadcast.engine import BroadcastEngine
from broadcast.store import JsonFileConfigStore, SupabaseConfigStore


def build_store():
    """Supabase when credentials are configured, else the local JSON file."""
    if config.SUPABASE_URL and config.SUPABASE_SERVICE_KEY:
        return SupabaseConfigStore(
            config.SUPABASE_URL,
            config.SUPABASE_SERVICE_KEY,
            table=config.STREAM_CONFIG_TABLE,
            timeout=config.STORE_TIMEOUT_SEC,
        )
    return JsonFileConfigStore(config.CONFIG_PATH)


def create_app(engine: BroadcastEngine, control_token: str | None = None) -> Flask:
    app = Flask(__name__)
    token_required = control_token if control_token is not None else os.getenv("CONTROL_TOKEN", "")

    def _get_token_from_header() -> str | None:
        auth = request.headers.get("Authorization", "")
        if not auth.startswith("Bearer "):
            return None
        return auth.split(" ", 1)[1]

    def _authorized() -> bool:
        if not token_required:
            return True
        token = _get_token_from_header()
        return bool(token) and secrets.compare_digest(token, token_required)

    def _unauthorized():
        return jsonify({"detail": "Unauthorized"}), 401

    @app.get("/health")
    def health():
        return jsonify({"status": "ok", "isStreaming": engine.is_streaming})

    @app.get("/stream/status")
    def stream_status():
        if not _authorized():
            return _unauthorized()
        return jsonify(engine.get_status())

    @app.post("/stream/skip")
    def stream_skip():
        if not _authorized():
            return _unauthorized()
        data = request.get_json(silent=True) or {}
        direction = data.get("direction", "next")
        if direction not in ("next", "previous"):
            return jsonify({"detail": "direction must be 'next' or 'previous'"}), 400
        if not engine.skip(direction):
            return jsonify({"detail": "not streaming"}), 409
        return jsonify({"ok": True, "direction": direction, "status": engine.get_status()})

    @app.get("/logs")
    def get_logs():
        if not _authorized():
            return _unauthorized()
        try:
            limit = int(request.args.get("limit", "200"))
        except ValueError:
            limit = 200
        return jsonify({"lines": engine.get_logs(limit)})

    return app


def install_signal_handlers(engine: BroadcastEngine) -> None:
    def _handle(signum, frame):
        print(f"\n[App] Received {signal.Signals(signum).name}, shutting down...")
        engine.shutdown()
        sys.exit(0)

    signal.signal(signal.SIGINT, _handle)
    signal.signal(signal.SIGTERM, _handle)


if __name__ == "__main__":
    host = os.getenv("HOST", "127.0.0.1")
    port = int(os.getenv("PORT", "3000"))

    config.VIDEOS_DIR.mkdir(parents=True, exist_ok=True)

    engine = BroadcastEngine(build_store())
    install_signal_handlers(engine)

    # Poll once per interval on a background thread
    engine.start_poller()

    print(f"[App] Videos: {config.VIDEOS_DIR}")
    print(f"[App] Background audio: {config.BACKGROUND_AUDIO_PATH}")
    print(f"[App] Starting Flask server on {host}:{port}")
    create_app(engine).run(host=host, port=port, threaded=True)
