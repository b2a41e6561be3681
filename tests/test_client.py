"""
Test the terminal client against a mocked node.
"""
import importlib.util
import os

import pytest
import requests
from unittest.mock import MagicMock

CLIENT_PATH = os.path.join(os.path.dirname(__file__), '..', 'scripts', 'client.py')

SHARE = "I earned 2.88 $SY on GenSyn Playground! https://gensynplayground.vercel.app"


@pytest.fixture
def client_module():
    spec = importlib.util.spec_from_file_location("playground_client", CLIENT_PATH)
    module = importlib.util.module_from_spec(spec)
    spec.loader.exec_module(module)
    return module


def mock_requests(state_after_run):
    """A requests stand-in for a node that ends up in `state_after_run`."""
    mock = MagicMock()
    mock.exceptions = requests.exceptions
    statuses = iter([{"state": "idle", "latest_event_id": 0}, {"state": state_after_run}])

    def get(url, **kwargs):
        response = MagicMock()
        if url.endswith("/api/status"):
            response.json.return_value = next(statuses)
        elif url.endswith("/api/share"):
            response.json.return_value = {"message": SHARE, "earnings": 2.88}
        else:
            response.json.return_value = {"events": [], "latest_id": 0}
        return response

    def post(url, **kwargs):
        response = MagicMock(status_code=200)
        response.json.return_value = {"success": True, "state": "running"}
        return response

    mock.get.side_effect = get
    mock.post.side_effect = post
    return mock


class TestRunClient:

    def test_stops_running_node_and_prints_share(self, client_module, capsys):
        client_module.requests = mock_requests("running")

        client_module.run_client("http://node", duration=0)

        posted = [call.args[0] for call in client_module.requests.post.call_args_list]
        assert posted == ["http://node/api/start", "http://node/api/stop"]
        assert SHARE in capsys.readouterr().out

    def test_node_that_halted_itself_is_not_stopped_again(self, client_module, capsys):
        client_module.requests = mock_requests("stopped")

        client_module.run_client("http://node", duration=0)

        posted = [call.args[0] for call in client_module.requests.post.call_args_list]
        assert posted == ["http://node/api/start"]
        out = capsys.readouterr().out
        assert "-- node already stopped --" in out
        assert SHARE in out


class TestPrintEvent:

    def test_earnings_line(self, client_module, capsys):
        client_module.print_event({"type": "earnings_changed", "payload": {"total": 3.456}})
        assert capsys.readouterr().out == "💰 Total: 3.46 $SY\n"

    def test_log_line(self, client_module, capsys):
        client_module.print_event({"type": "log", "payload": {"text": "📦 New job: GPT-2 from scratch"}})
        assert capsys.readouterr().out == "📦 New job: GPT-2 from scratch\n"
