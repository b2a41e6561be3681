"""
GenSyn Playground Node Runner

This is the main entry point for running a playground node.
The node:
1. Lets a dashboard pick a simulated GPU
2. Runs an endless stream of fake training jobs while started
3. Pays itself $SY for every verified proof

The dashboard talks to the node over HTTP: commands are POSTs, and the
node's event stream and process log are polled with `since_id`.
"""

import argparse
import logging
import sys
import threading
from collections import deque
from contextlib import asynccontextmanager
from datetime import datetime
from typing import Optional

import uvicorn
from fastapi import FastAPI, HTTPException
from fastapi.middleware.cors import CORSMiddleware
from pydantic import BaseModel

from gensyn_playground.config import NodeConfig, load_config, SIMULATOR_BACKENDS
from gensyn_playground.core.jobs.catalog import DEVICES
from gensyn_playground.core.node.controller import NodeController
from gensyn_playground.core.node.errors import InvalidTransition
from gensyn_playground.version import __version__

# --- In-memory log buffer for dashboard ---

# Circular buffer to store recent logs (max 500 entries)
_LOG_BUFFER = deque(maxlen=500)
_LOG_BUFFER_LOCK = threading.Lock()


class MemoryLogHandler(logging.Handler):
    """Custom handler that stores logs in memory for dashboard API."""

    # Auto-incrementing log ID for reliable polling
    _log_id_counter = 0

    def emit(self, record):
        try:
            msg = self.format(record)
            epoch_ms = int(record.created * 1000)
            timestamp = datetime.fromtimestamp(record.created).strftime('%H:%M:%S')

            # Determine log type for filtering
            log_type = 'info'
            msg_lower = msg.lower()
            if '$sy' in msg_lower and 'earned' in msg_lower:
                log_type = 'reward'
            elif 'error' in msg_lower or record.levelno >= logging.ERROR:
                log_type = 'error'
            elif 'epoch' in msg_lower or 'job' in msg_lower:
                log_type = 'training'
            elif record.levelno >= logging.WARNING:
                log_type = 'warning'

            with _LOG_BUFFER_LOCK:
                MemoryLogHandler._log_id_counter += 1
                _LOG_BUFFER.append({
                    'id': MemoryLogHandler._log_id_counter,
                    'epoch': epoch_ms,
                    'timestamp': timestamp,
                    'message': msg,
                    'type': log_type,
                    'level': record.levelname,
                })
        except Exception:
            self.handleError(record)


_LOGGING_CONFIGURED = False


def configure_logging(level: str = "INFO"):
    """Attach the console and dashboard handlers to the root logger (once)."""
    global _LOGGING_CONFIGURED
    root_logger = logging.getLogger()
    root_logger.setLevel(level)
    if _LOGGING_CONFIGURED:
        return

    handler = logging.StreamHandler(sys.stdout)
    handler.setFormatter(logging.Formatter('[NODE] %(message)s'))
    root_logger.addHandler(handler)

    # Also add memory handler for dashboard logs API
    memory_handler = MemoryLogHandler()
    memory_handler.setFormatter(logging.Formatter('%(message)s'))
    memory_handler.setLevel(logging.INFO)
    root_logger.addHandler(memory_handler)

    _LOGGING_CONFIGURED = True


logger = logging.getLogger(__name__)

# Shared State
NODE: Optional[NodeController] = None
_UVICORN_SERVER: Optional[uvicorn.Server] = None
_AUTOSTART = False


def init_node(config: Optional[NodeConfig] = None, autostart: bool = False) -> NodeController:
    """Create the node served by `node_app`. Replaces any previous node."""
    global NODE, _AUTOSTART
    NODE = NodeController(config or load_config())
    _AUTOSTART = autostart
    return NODE


def get_node() -> NodeController:
    if NODE is None:
        raise HTTPException(status_code=503, detail="Node not ready")
    return NODE


@asynccontextmanager
async def lifespan(app: FastAPI):
    if NODE is not None and _AUTOSTART and not NODE.state.is_active:
        NODE.start()
    yield
    if NODE is not None:
        logger.info("Shutting down node...")
        await NODE.aclose()


# --- Main API App ---
node_app = FastAPI(title="GenSyn Playground Node", version=__version__, lifespan=lifespan)


class DeviceRequest(BaseModel):
    name: str


def _command(name: str):
    node = get_node()
    try:
        getattr(node, name)()
    except InvalidTransition as e:
        raise HTTPException(status_code=409, detail=str(e))
    return {"success": True, "state": node.state.value}


# ==================== STATUS ENDPOINTS ====================

@node_app.get("/api/status")
async def get_status():
    """Current session: state, device, job in flight, earnings and log."""
    return get_node().snapshot()


@node_app.get("/api/devices")
async def get_devices():
    return {"devices": [d.to_dict() for d in DEVICES]}


@node_app.get("/api/jobs")
async def get_jobs():
    return {"jobs": [j.to_dict() for j in get_node().catalog.jobs()]}


@node_app.get("/api/share")
async def get_share_message():
    """Text for the 'Copy Share Link' button."""
    node = get_node()
    return {"message": node.share_message(), "earnings": node.session.earnings}


# ==================== COMMAND ENDPOINTS ====================

@node_app.post("/api/device")
async def set_device(req: DeviceRequest):
    """Pick the GPU for the next run (only while idle or stopped)."""
    node = get_node()
    try:
        device = node.set_device(req.name)
    except InvalidTransition as e:
        raise HTTPException(status_code=409, detail=str(e))
    except KeyError:
        raise HTTPException(status_code=404, detail=f"Unknown device: {req.name}")
    return {"success": True, "device": device.to_dict()}


@node_app.post("/api/start")
async def start_node():
    return _command("start")


@node_app.post("/api/pause")
async def pause_node():
    return _command("pause")


@node_app.post("/api/resume")
async def resume_node():
    return _command("resume")


@node_app.post("/api/stop")
async def stop_node():
    return _command("stop")


# ==================== STREAM ENDPOINTS ====================

@node_app.get("/api/events")
async def get_events(since_id: Optional[int] = None, limit: int = 100):
    """
    Get node events (log lines, progress, payouts, state changes).

    Args:
        since_id: Return events with ID greater than this (for polling).
                  Use 0 or omit to get all buffered events on initial load.
        limit: Maximum number of events to return (default 100)
    """
    node = get_node()
    events = node.events.since(since_id=since_id, limit=limit)
    latest_id = events[-1].id if events else (since_id or 0)
    return {
        "events": [e.to_dict() for e in events],
        "total": len(node.events),
        "latest_id": latest_id,  # Client should use this for next poll
    }


@node_app.get("/api/logs")
async def get_logs(since_id: Optional[int] = None, limit: int = 100):
    """
    Get recent process logs from the node.

    Returns:
        List of log entries with id, epoch, timestamp, message, type, and level
    """
    with _LOG_BUFFER_LOCK:
        logs = list(_LOG_BUFFER)

    if since_id is not None and since_id > 0:
        logs = [log for log in logs if log.get('id', 0) > since_id]

    if len(logs) > limit:
        logs = logs[-limit:]

    latest_id = logs[-1]['id'] if logs else (since_id or 0)

    return {
        "logs": logs,
        "total": len(_LOG_BUFFER),
        "latest_id": latest_id,
    }


@node_app.get("/api/v1/health")
async def health_check_v1():
    """Health check endpoint."""
    checks = {
        "node": "ok" if NODE else "error",
        "loop": "ok" if NODE and (not NODE.state.is_active or NODE.loop_alive) else "error",
    }
    return {
        "healthy": all(v == "ok" for v in checks.values()),
        "checks": checks,
        "version": __version__,
    }


@node_app.post("/api/shutdown")
async def shutdown_node():
    """Gracefully stop the node and the HTTP server."""
    logger.info("Shutdown requested via API")
    request_shutdown()
    return {"status": "shutting_down"}


def request_shutdown():
    """Ask uvicorn to exit; the lifespan handler stops the node."""
    if _UVICORN_SERVER is not None:
        _UVICORN_SERVER.should_exit = True


def run_node(config: NodeConfig, autostart: bool = False):
    """
    Start a playground node and serve its dashboard API.

    Args:
        config: Validated node configuration
        autostart: Start the job loop as soon as the server is up
    """
    global _UVICORN_SERVER

    configure_logging(config.log_level)
    init_node(config, autostart=autostart)

    node_app.add_middleware(
        CORSMiddleware,
        allow_origins=config.cors_origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    logger.info(f"Starting GenSyn Playground Node {__version__} on {config.host}:{config.port}")
    logger.info(f"Device: {NODE.session.device.label}, backend: {config.backend}, "
                f"{config.steps_per_job} epochs/job, step delay {config.step_delay}s")

    server_config = uvicorn.Config(node_app, host=config.host, port=config.port, log_level=config.log_level.lower())
    _UVICORN_SERVER = uvicorn.Server(server_config)
    _UVICORN_SERVER.run()


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="GenSyn Playground Node - simulated compute node")
    parser.add_argument("--host", type=str, default=None)
    parser.add_argument("--port", type=int, default=None)
    parser.add_argument("--device", type=str, default=None,
                        help=f"GPU to simulate ({', '.join(d.name for d in DEVICES)})")
    parser.add_argument("--backend", type=str, default=None, choices=SIMULATOR_BACKENDS,
                        help="Step simulator backend (default: torch)")
    parser.add_argument("--steps", type=int, default=None, dest="steps_per_job",
                        help="Epochs per job (default: 12)")
    parser.add_argument("--step-delay", type=float, default=None,
                        help="Seconds between epochs on a speed-1.0 device (default: 0.4)")
    parser.add_argument("--bid-delay", type=float, default=None,
                        help="Seconds spent bidding for each job (default: 0, no bidding)")
    parser.add_argument("--seed", type=int, default=None, help="Seed for job selection and training data")
    parser.add_argument("--max-failures", type=int, default=None, dest="max_consecutive_failures",
                        help="Stop after this many failed jobs in a row (default: 3)")
    parser.add_argument("--log-level", type=str, default=None)
    parser.add_argument("--autostart", action="store_true", help="Start the node immediately")
    return parser


def main(argv=None):
    args = build_parser().parse_args(argv)
    overrides = vars(args)
    autostart = overrides.pop("autostart")
    if overrides.get("log_level"):
        overrides["log_level"] = overrides["log_level"].upper()

    try:
        config = load_config(**overrides)
    except ValueError as e:
        print(f"Invalid configuration: {e}", file=sys.stderr)
        sys.exit(2)

    run_node(config, autostart=autostart)


if __name__ == "__main__":
    main()
