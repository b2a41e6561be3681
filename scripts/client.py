"""
GenSyn Playground Client

A terminal dashboard for a running playground node.
Picks a GPU, starts the node, streams its log and payouts, then stops it
and prints the share message.

Usage:
    python client.py --device H100 --duration 30
    python client.py --status
"""

import requests
import argparse
import sys
import time


def _post(node_url: str, path: str, **kwargs):
    response = requests.post(f"{node_url}{path}", timeout=10, **kwargs)
    if response.status_code != 200:
        detail = response.json().get("detail", response.text) if response.content else response.status_code
        raise RuntimeError(f"{path} failed ({response.status_code}): {detail}")
    return response.json()


def print_event(event: dict):
    """Render one node event as a terminal line."""
    kind = event.get("type")
    payload = event.get("payload", {})

    if kind == "log":
        print(payload.get("text", ""))
    elif kind == "progress":
        percent = payload.get("percent", 0.0)
        filled = int(percent / 5)
        print(f"   [{'#' * filled}{'.' * (20 - filled)}] {percent:5.1f}%")
    elif kind == "earnings_changed":
        print(f"💰 Total: {payload.get('total', 0.0):.2f} $SY")
    elif kind == "celebrate" and payload.get("active"):
        print("🎉🎉🎉")
    elif kind == "state_changed":
        print(f"-- node is {payload.get('state')} --")


def run_client(node_url: str, device: str = None, duration: float = 30.0, poll_interval: float = 0.5):
    """
    Drive a node for `duration` seconds and stream what it does.

    Args:
        node_url: Base URL of the node
        device: GPU to select before starting (node default if None)
        duration: Seconds to let the node run
        poll_interval: Seconds between event polls
    """
    print(f"🌍 Connecting to: {node_url}")

    try:
        status = requests.get(f"{node_url}/api/status", timeout=5).json()
        last_id = status.get("latest_event_id", 0)

        if device:
            data = _post(node_url, "/api/device", json={"name": device})
            print(f"🖥️  Device: {data['device']['label']}")

        _post(node_url, "/api/start")
        deadline = time.time() + duration

        while time.time() < deadline:
            resp = requests.get(f"{node_url}/api/events", params={"since_id": last_id, "limit": 500}, timeout=5)
            data = resp.json()
            for event in data.get("events", []):
                print_event(event)
            last_id = data.get("latest_id", last_id)
            time.sleep(poll_interval)

        status = requests.get(f"{node_url}/api/status", timeout=5).json()
        if status.get("state") in ("running", "paused"):
            _post(node_url, "/api/stop")
        else:
            print(f"-- node already {status.get('state')} --")

        share = requests.get(f"{node_url}/api/share", timeout=5).json()
        print(f"\n{'='*60}")
        print(share["message"])
        print(f"{'='*60}")

    except requests.exceptions.ConnectionError:
        print(f"❌ Could not connect to {node_url}")
        print("   Make sure a playground node is running (gensyn-node).")
        sys.exit(1)
    except RuntimeError as e:
        print(f"❌ {e}")
        sys.exit(1)


def show_status(node_url: str):
    """Print the node's current session."""
    try:
        status = requests.get(f"{node_url}/api/status", timeout=5).json()
    except requests.exceptions.ConnectionError:
        print(f"❌ Could not connect to {node_url}")
        sys.exit(1)

    print("📊 Node Status")
    print("="*60)
    print(f"State:    {status['state']}")
    print(f"Device:   {status['device']['label']}")
    print(f"Earnings: {status['earnings']:.2f} $SY ({status['jobs_completed']} jobs, {status['jobs_failed']} failed)")
    job = status.get("current_job")
    if job:
        print(f"Job:      {job['name']} ({job['completed_steps']}/{job['total_steps']})")


if __name__ == "__main__":
    parser = argparse.ArgumentParser(description="GenSyn Playground Client")
    parser.add_argument("--node", type=str, default="http://localhost:8000",
                        help="Node URL")
    parser.add_argument("--device", type=str, default=None,
                        help="GPU to simulate (e.g. 'H100')")
    parser.add_argument("--duration", type=float, default=30.0,
                        help="Seconds to run the node")
    parser.add_argument("--status", action="store_true",
                        help="Show node status and exit")

    args = parser.parse_args()

    if args.status:
        show_status(args.node)
    else:
        run_client(args.node, args.device, args.duration)
