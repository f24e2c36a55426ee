"""
Smoke tests for bin/simulate_design.py.
"""

import importlib.util
import json
import sys
from pathlib import Path
from unittest.mock import patch

import pytest
import yaml

SCRIPT = Path(__file__).parent.parent / "bin" / "simulate_design.py"


@pytest.fixture(scope="module")
def cli():
    spec = importlib.util.spec_from_file_location("simulate_design", SCRIPT)
    module = importlib.util.module_from_spec(spec)
    spec.loader.exec_module(module)
    return module


def _run(cli, *argv):
    with patch.object(sys, "argv", ["simulate_design.py", *argv]):
        return cli.main()


class TestSimulateDesignCli:

    def test_batch_exports_json(self, cli, tmp_path, web_graph_dict):
        graph_file = tmp_path / "design.yaml"
        graph_file.write_text(yaml.safe_dump(web_graph_dict))
        scenario_file = tmp_path / "load.json"
        scenario_file.write_text(json.dumps([{"name": "Smoke", "durationTicks": 5}]))
        out = tmp_path / "out.json"

        code = _run(cli, "batch", str(graph_file), "--scenarios", str(scenario_file),
                    "--seed", "3", "-o", str(out), "-q")

        assert code == 0
        data = json.loads(out.read_text())
        assert data["scenarios"][0]["scenarioName"] == "Smoke"
        assert data["seed"] == 3

    def test_validate_prints_report(self, cli, tmp_path, web_graph_dict, capsys):
        graph_file = tmp_path / "design.json"
        graph_file.write_text(json.dumps(web_graph_dict))
        assert _run(cli, "validate", str(graph_file), "--json", "-q") == 0
        assert json.loads(capsys.readouterr().out)["valid"] is True

    def test_check_connection(self, cli, capsys):
        assert _run(cli, "check", "object_store", "app_server", "--json", "-q") == 0
        result = json.loads(capsys.readouterr().out)
        assert result["valid"] is False
        assert result["suggestion"] == "Remove connection to app_server"

    def test_invalid_graph_exits_nonzero(self, cli, tmp_path, no_entry_graph):
        graph_file = tmp_path / "design.json"
        graph_file.write_text(json.dumps(no_entry_graph.to_dict()))
        assert _run(cli, "batch", str(graph_file), "-q") == 1

    def test_replay(self, cli, tmp_path):
        traces = [{
            "id": "r1",
            "hops": [
                {"componentId": "A", "arrivalMs": 0, "departureMs": 0},
                {"componentId": "B", "arrivalMs": 10, "departureMs": 25},
            ],
        }]
        traces_file = tmp_path / "traces.json"
        traces_file.write_text(json.dumps({"traces": traces}))
        out = tmp_path / "frames.json"
        assert _run(cli, "replay", str(traces_file), "--frame-ms", "10", "-o", str(out), "-q") == 0
        frames = json.loads(out.read_text())["frames"]
        assert frames[-1]["finished"] is True
        assert [f["clockMs"] for f in frames] == [0, 10, 20, 30]
