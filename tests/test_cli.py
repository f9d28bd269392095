"""Tests for the fleetmon command-line interface."""

import httpx
import pytest
import yaml

from fleetmon.cli import main as cli
from fleetmon.services import central_stack
from fleetmon.services.verifier import CentralHealth, EndpointHealth, Verifier
from tests.mock_executors import ScriptedExecutor, failed, fresh_host, ok


def run(inventory_file, *args):
    return cli.main(["--inventory", str(inventory_file), *args])


def last_line(capsys):
    return capsys.readouterr().out.strip().splitlines()[-1]


class TestInventoryCommands:
    def test_list(self, inventory_file, capsys):
        assert run(inventory_file, "list") == 0

        out = capsys.readouterr().out
        assert "monitoring-01" in out
        assert "db01-host" in out
        assert out.strip().splitlines()[-1] == "SUCCESS: 2 server(s) listed"

    def test_list_missing_inventory(self, tmp_path, capsys):
        assert run(tmp_path / "absent.yml", "list") == 1
        assert last_line(capsys).startswith("FAILED:")

    def test_inventory_from_environment(self, inventory_file, monkeypatch, capsys):
        monkeypatch.setenv("FLEETMON_INVENTORY", str(inventory_file))

        assert cli.main(["list"]) == 0
        assert last_line(capsys).startswith("SUCCESS:")

    def test_add(self, inventory_file, capsys):
        code = run(
            inventory_file, "add", "web-01", "web01-host", "10.0.7.31", "production",
            "web-application", "docker+system",
        )

        assert code == 0
        servers = yaml.safe_load(inventory_file.read_text())["servers"]
        added = servers[-1]
        assert added["name"] == "web-01"
        assert added["cadvisor_port"] == 8080
        assert added["tags"] == ["web-application", "production"]
        assert run(inventory_file, "validate") == 0

    def test_add_duplicate_leaves_file_untouched(self, inventory_file, capsys):
        before = inventory_file.read_bytes()

        code = run(
            inventory_file, "add", "db-01", "other-host", "10.0.7.99", "staging", "database", "system"
        )

        assert code == 1
        assert inventory_file.read_bytes() == before
        assert last_line(capsys) == "FAILED: Server 'db-01' already exists"

    def test_add_unknown_type(self, inventory_file, capsys):
        before = inventory_file.read_bytes()

        code = run(inventory_file, "add", "x-01", "x-host", "10.0.7.5", "production", "web", "vm")

        assert code == 1
        assert inventory_file.read_bytes() == before

    def test_add_blank_arguments_leave_file_untouched(self, inventory_file, capsys):
        before = inventory_file.read_bytes()

        code = run(inventory_file, "add", "", "h", "1.2.3.4", "production", " ", "system")

        assert code == 1
        assert inventory_file.read_bytes() == before
        assert last_line(capsys) == "FAILED: Missing required argument(s): name, role"

    def test_add_missing_arguments(self, inventory_file, capsys):
        with pytest.raises(SystemExit) as exc_info:
            run(inventory_file, "add", "web-01", "web01-host")

        assert exc_info.value.code == 1
        assert last_line(capsys).startswith("FAILED:")

    def test_remove_absent_leaves_file_untouched(self, inventory_file, capsys):
        before = inventory_file.read_bytes()

        assert run(inventory_file, "remove", "ghost-01") == 0
        assert inventory_file.read_bytes() == before
        assert last_line(capsys).startswith("SUCCESS:")

    def test_remove(self, inventory_file):
        assert run(inventory_file, "remove", "db-01") == 0

        data = yaml.safe_load(inventory_file.read_text())
        assert [s["name"] for s in data["servers"]] == ["monitoring-01"]
        assert data["global_labels"] == {"owner": "platform"}

    def test_update(self, inventory_file):
        assert run(inventory_file, "update", "db-01", "prometheus_port", "9200") == 0

        db = yaml.safe_load(inventory_file.read_text())["servers"][1]
        assert db["prometheus_port"] == 9200
        assert db["rack"] == "b4"

    @pytest.mark.parametrize(
        "args",
        [
            ("ghost-01", "role", "web"),
            ("db-01", "colour", "blue"),
            ("db-01", "prometheus_port", "ninety"),
        ],
    )
    def test_update_errors(self, inventory_file, capsys, args):
        before = inventory_file.read_bytes()

        assert run(inventory_file, "update", *args) == 1
        assert inventory_file.read_bytes() == before
        assert last_line(capsys).startswith("FAILED:")

    def test_validate_reports_every_issue(self, inventory_file, capsys):
        data = yaml.safe_load(inventory_file.read_text())
        data["servers"][0]["hostname"] = ""
        data["servers"][1]["docker_enabled"] = True
        inventory_file.write_text(yaml.safe_dump(data, sort_keys=False))

        assert run(inventory_file, "validate") == 1

        out = capsys.readouterr().out
        assert "monitoring-01: hostname:" in out
        assert "db-01: cadvisor_port:" in out
        assert "db-01: monitoring_type:" in out
        assert out.strip().splitlines()[-1] == "FAILED: 3 validation issue(s)"


class TestGenerateConfig:
    def test_writes_config(self, inventory_file, tmp_path, capsys):
        output = tmp_path / "out" / "prometheus.yml"

        assert run(inventory_file, "generate-config", "--output", str(output)) == 0

        document = yaml.safe_load(output.read_text())
        jobs = {job["job_name"]: job for job in document["scrape_configs"]}
        assert [c["targets"] for c in jobs["node-exporter"]["static_configs"]] == [
            ["monitor.example.com:9100"],
            ["db01-host:9100"],
        ]
        assert last_line(capsys).startswith("SUCCESS:")

    def test_refuses_invalid_inventory(self, inventory_file, tmp_path, capsys):
        data = yaml.safe_load(inventory_file.read_text())
        data["servers"][1]["prometheus_port"] = None
        inventory_file.write_text(yaml.safe_dump(data, sort_keys=False))
        output = tmp_path / "prometheus.yml"

        assert run(inventory_file, "generate-config", "--output", str(output)) == 1
        assert not output.exists()
        assert last_line(capsys).startswith("FAILED:")


class AlwaysUpVerifier(Verifier):
    def __init__(self, settings):
        super().__init__(
            settings,
            transport=httpx.MockTransport(lambda request: httpx.Response(200)),
            sleep=lambda s: None,
        )


class TestDeploy:
    @pytest.fixture(autouse=True)
    def fake_network(self, monkeypatch):
        monkeypatch.setattr(cli, "Verifier", AlwaysUpVerifier)

    def use_hosts(self, monkeypatch, factory):
        monkeypatch.setattr(cli, "ssh_executor_factory", lambda settings: factory)

    def test_agents_only_success(self, inventory_file, monkeypatch, capsys):
        self.use_hosts(monkeypatch, lambda server: fresh_host(host=server.hostname))

        assert run(inventory_file, "deploy", "--agents-only", "--parallel", "2") == 0

        out = capsys.readouterr().out
        assert "Done: 2" in out
        assert out.strip().splitlines()[-1] == "SUCCESS: deployment complete"

    def test_failed_server_exits_1(self, inventory_file, monkeypatch, capsys):
        def factory(server):
            if server.name == "db-01":
                return ScriptedExecutor(connect_success=False)
            return fresh_host()

        self.use_hosts(monkeypatch, factory)

        assert run(inventory_file, "deploy", "--agents-only") == 1

        out = capsys.readouterr().out
        assert "Failed: 1" in out
        assert out.strip().splitlines()[-1] == "FAILED: 1 server(s) failed"

    def test_verify_only(self, inventory_file, capsys):
        assert run(inventory_file, "deploy", "--verify-only") == 0
        assert "Healthy servers: 2" in capsys.readouterr().out

    def test_central_only_without_compose_file(self, inventory_file, tmp_path, monkeypatch, capsys):
        monkeypatch.setenv("FLEETMON_COMPOSE_FILE", str(tmp_path / "docker-compose.yml"))

        assert run(inventory_file, "deploy", "--central-only") == 1
        assert last_line(capsys) == "FAILED: central stack"

    def test_modes_are_exclusive(self, inventory_file, capsys):
        with pytest.raises(SystemExit) as exc_info:
            run(inventory_file, "deploy", "--central-only", "--agents-only")

        assert exc_info.value.code == 1

    def test_invalid_parallel(self, inventory_file, capsys):
        assert run(inventory_file, "deploy", "--agents-only", "--parallel", "0") == 1
        assert last_line(capsys).startswith("FAILED: invalid settings")


class TestHealthCheck:
    @pytest.fixture(autouse=True)
    def local_docker(self, monkeypatch):
        executor = ScriptedExecutor().on(
            "{{.Names}}", ok("prometheus\ngrafana\nalertmanager\nnode-exporter\ncadvisor")
        )
        executor.connect()
        monkeypatch.setattr(central_stack, "LocalExecutor", lambda config: executor)
        return executor

    def test_healthy(self, inventory_file, monkeypatch, capsys):
        health = CentralHealth(
            endpoints=[EndpointHealth("Prometheus", "http://localhost:9090/-/healthy", True, "HTTP 200")],
            active_targets=4,
            up_targets=4,
        )
        monkeypatch.setattr(central_stack, "check_central_stack", lambda settings, transport=None: health)

        assert run(inventory_file, "health-check") == 0
        out = capsys.readouterr().out
        assert "4/4 up" in out

    def test_unhealthy(self, inventory_file, monkeypatch, capsys):
        health = CentralHealth(
            endpoints=[EndpointHealth("Grafana", "http://localhost:3000/api/health", False, "HTTP 503")]
        )
        monkeypatch.setattr(central_stack, "check_central_stack", lambda settings, transport=None: health)

        assert run(inventory_file, "health-check") == 1
        assert last_line(capsys) == "FAILED: unhealthy: Grafana"

    def test_stopped_container(self, inventory_file, monkeypatch, local_docker, capsys):
        health = CentralHealth(
            endpoints=[EndpointHealth("Prometheus", "http://localhost:9090/-/healthy", True, "HTTP 200")]
        )
        monkeypatch.setattr(central_stack, "check_central_stack", lambda settings, transport=None: health)
        local_docker.on("{{.Names}}", ok("prometheus\ngrafana\nalertmanager"))

        assert run(inventory_file, "health-check") == 1
        out = capsys.readouterr().out
        assert "not running: node-exporter, cadvisor" in out
        assert out.strip().splitlines()[-1] == "FAILED: unhealthy: containers"

    def test_docker_unavailable(self, inventory_file, monkeypatch, local_docker, capsys):
        health = CentralHealth(
            endpoints=[EndpointHealth("Prometheus", "http://localhost:9090/-/healthy", True, "HTTP 200")]
        )
        monkeypatch.setattr(central_stack, "check_central_stack", lambda settings, transport=None: health)
        local_docker.on("{{.Names}}", failed("Cannot connect to the Docker daemon"))

        assert run(inventory_file, "health-check") == 1
        assert last_line(capsys) == "FAILED: unhealthy: containers"
