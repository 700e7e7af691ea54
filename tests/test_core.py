import os
import shutil
import threading

import pytest
import requests
import yaml

from clusterup.core import StartupOrchestrator
from clusterup.errors import (
    CommandError,
    ConfigGenerationError,
    ConfigUpdateError,
    DaemonStartError,
    DialTimeoutError,
    FailedToStartError,
    PortCheckError,
    PortConflictError,
    StageError,
    ReadinessError,
    StartupCancelled,
    StateQueryError,
    TimedOutWaitingForStartError,
)
from clusterup.models import StartOptions, StartPolicy
from clusterup.services.observer import RecordingObserver
from clusterup.services.readiness import ReadinessPoller

MASTER_CONFIG = """\
kind: MasterConfig
apiVersion: v1
routingConfig:
  subdomain: ''
"""


class DummyLogger:
    def info(self, *_args, **_kwargs):
        return None

    def debug(self, *_args, **_kwargs):
        return None

    def warning(self, *_args, **_kwargs):
        return None


class FakeRuntime:
    """Docker stand-in; `docker run` of the write-config command populates the host dir."""

    def __init__(self, running=True, state_error=None, start_error=None, run_error=None, config=MASTER_CONFIG):
        self.running = running
        self.state_error = state_error
        self.start_error = start_error
        self.run_error = run_error
        self.config = config
        self.run_specs = []
        self.started_specs = []
        self.removed = []
        self.port_data = ""

    def run(self, spec):
        self.run_specs.append(spec)
        if self.run_error:
            raise self.run_error
        host_config_dir = next(
            bind.split(":")[0] for bind in spec.binds if ":/var/lib/origin/openshift.local.config" in bind
        )
        master_dir = os.path.join(host_config_dir, "master")
        os.makedirs(master_dir, exist_ok=True)
        with open(os.path.join(master_dir, "master-config.yaml"), "w", encoding="utf-8") as file_obj:
            file_obj.write(self.config)
        with open(os.path.join(master_dir, "ca.crt"), "w", encoding="utf-8") as file_obj:
            file_obj.write("-----BEGIN CERTIFICATE-----\n")

    def output(self, spec):
        if spec.entrypoint == "hostname":
            return "10.0.0.5 172.17.0.1 fe80::1 192.168.1.4\n"
        return "10.0.0.5\n"

    def combined_output(self, spec):
        self.run_specs.append(spec)
        if isinstance(self.port_data, Exception):
            raise self.port_data
        return self.port_data

    def start(self, spec):
        self.started_specs.append(spec)
        if self.start_error:
            raise self.start_error
        return "container-id"

    def get_container_state(self, name):
        if self.state_error:
            raise self.state_error
        return self.running

    def stop_and_remove_container(self, container):
        self.removed.append(container)


class FakeHostHelper:
    """Treats host paths as local directories."""

    def __init__(self, hostname="node1", hostname_error=None, fail_copy_number=None):
        self._hostname = hostname
        self.hostname_error = hostname_error
        self.fail_copy_number = fail_copy_number
        self.staged_dirs = []
        self.commits = []

    def hostname(self):
        if self.hostname_error:
            raise self.hostname_error
        return self._hostname

    def copy_from_host(self, host_dir, local_dir):
        self.staged_dirs.append(local_dir)
        if len(self.staged_dirs) == self.fail_copy_number:
            raise CommandError("docker cp failed")
        if not os.path.isdir(host_dir):
            raise CommandError(f"No such directory: {host_dir}")
        shutil.copytree(host_dir, local_dir, dirs_exist_ok=True)

    def copy_file_to_host(self, local_file, host_dir, relative_path):
        self.commits.append(relative_path)
        shutil.copy(local_file, os.path.join(host_dir, relative_path))


class FakeProbe:
    def __init__(self, error=None):
        self.calls = []
        self.error = error

    def wait_for_successful_dial(self, address, verbose, timeout, interval, attempts, cancel_event=None):
        self.calls.append((address, verbose, attempts))
        if self.error:
            raise self.error
        return 1


class FakeResponse:
    def __init__(self, status_code, text=""):
        self.status_code = status_code
        self.text = text


class FakeRequestsModule:
    RequestException = requests.RequestException

    def __init__(self, responses):
        self.responses = list(responses)
        self.urls = []
        module = self

        class Session:
            verify = True

            def get(self, url, timeout=None):
                module.urls.append(url)
                return module.responses.pop(0)

            def close(self):
                return None

        self.Session = Session


POLICY = StartPolicy(initial_status_check_wait=0, dial_interval=0, readiness_interval=0)


def _options(tmp_path, **kwargs):
    defaults = {
        "server_ip": "10.0.0.5",
        "host_config_dir": str(tmp_path / "host-config"),
        "host_volumes_dir": "/var/lib/origin/openshift.local.volumes",
    }
    defaults.update(kwargs)
    return StartOptions(**defaults)


def _orchestrator(runtime=None, host=None, probe=None, responses=None, policy=POLICY, **kwargs):
    fake_requests = FakeRequestsModule(responses if responses is not None else [FakeResponse(200)])
    orchestrator = StartupOrchestrator(
        image="openshift/origin:v3.6.0",
        container_name="origin",
        policy=policy,
        observer=RecordingObserver(),
        runtime=runtime or FakeRuntime(),
        host_helper=host or FakeHostHelper(),
        network_probe=probe or FakeProbe(),
        readiness_poller=ReadinessPoller(logger=DummyLogger(), interval=0, requests_module=fake_requests),
        **kwargs,
    )
    orchestrator.fake_requests = fake_requests
    return orchestrator


def test_start_generates_config_and_returns_staged_dir(tmp_path):
    runtime = FakeRuntime()
    host = FakeHostHelper()
    probe = FakeProbe()
    orchestrator = _orchestrator(runtime=runtime, host=host, probe=probe)

    config_dir = orchestrator.start(_options(tmp_path))

    try:
        assert len(runtime.run_specs) == 1
        assert os.path.isfile(os.path.join(config_dir, "master", "master-config.yaml"))
        host_config = yaml.safe_load((tmp_path / "host-config" / "master" / "master-config.yaml").read_text())
        assert host_config["routingConfig"]["subdomain"] == "10.0.0.5.xip.io"
        assert host.commits == ["master/master-config.yaml"]
        assert probe.calls == [("10.0.0.5:8443", True, POLICY.server_up_attempts)]
        assert orchestrator.fake_requests.urls == ["https://10.0.0.5:8443/healthz/ready"]
        assert orchestrator.state.value == "done"
        assert orchestrator.observer.stages("succeeded") == [
            "config_resolved",
            "container_starting",
            "container_running",
            "listener_ready",
            "service_ready",
        ]
        entered = [event for event in orchestrator.observer.events if event[0] == "entered"]
        assert ("entered", "container_running", "Waiting for OpenShift container to keep running") in entered
        assert all(message for _, _, message in entered)
    finally:
        shutil.rmtree(config_dir)


def test_generation_command_uses_image_repository_and_binds(tmp_path):
    runtime = FakeRuntime()
    orchestrator = _orchestrator(runtime=runtime, public_hostname="master.example.com")

    config_dir = orchestrator.start(_options(tmp_path, image_tag="v3.6.0", environment=("FOO=bar",)))
    shutil.rmtree(config_dir)

    spec = runtime.run_specs[0]
    assert spec.command == (
        "start",
        "--images=openshift/origin-${component}:v3.6.0",
        "--master=10.0.0.5",
        "--volume-dir=/var/lib/origin/openshift.local.volumes",
        "--dns=0.0.0.0:53",
        "--write-config=/var/lib/origin/openshift.local.config",
        "--public-master=https://master.example.com:8443",
    )
    assert spec.privileged and spec.host_network and spec.host_pid and spec.discard
    assert spec.binds[:4] == POLICY.base_binds
    assert "/var/lib/origin/openshift.local.volumes:/var/lib/origin/openshift.local.volumes" in spec.binds
    assert spec.env == ("FOO=bar",)


def test_daemon_container_command_and_mounts(tmp_path):
    runtime = FakeRuntime()
    orchestrator = _orchestrator(runtime=runtime)

    options = _options(tmp_path, use_shared_volume=True, host_data_dir="/var/lib/origin/etcd", log_level=4)
    shutil.rmtree(orchestrator.start(options))

    spec = runtime.started_specs[0]
    assert spec.name == "origin"
    assert spec.command == (
        "start",
        "--master-config=/var/lib/origin/openshift.local.config/master/master-config.yaml",
        "--node-config=/var/lib/origin/openshift.local.config/node-node1/node-config.yaml",
        "--loglevel=4",
    )
    assert not spec.discard
    assert "/var/lib/origin/openshift.local.volumes:/var/lib/origin/openshift.local.volumes:shared" in spec.binds
    assert "/var/lib/origin/etcd:/var/lib/origin/openshift.local.etcd:z" in spec.binds
    assert f"{options.host_config_dir}:/var/lib/origin/openshift.local.config:z" in spec.binds
    assert spec.env == ("OPENSHIFT_CONTAINERIZED=false",)


def test_container_not_running_fails_and_removes_staged_dir(tmp_path):
    runtime = FakeRuntime(running=False)
    host = FakeHostHelper()
    orchestrator = _orchestrator(runtime=runtime, host=host)

    with pytest.raises(FailedToStartError) as exc_info:
        orchestrator.start(_options(tmp_path))

    assert exc_info.value.kind == "FailedToStart"
    assert "docker logs origin" in str(exc_info.value)
    assert host.staged_dirs and not any(os.path.exists(path) for path in host.staged_dirs)
    assert runtime.removed == []
    assert orchestrator.state.value == "failed"
    assert orchestrator.observer.stages("failed") == ["container_running"]


def test_existing_config_skips_generation(tmp_path):
    master_dir = tmp_path / "host-config" / "master"
    master_dir.mkdir(parents=True)
    (master_dir / "master-config.yaml").write_text(MASTER_CONFIG, encoding="utf-8")
    (master_dir / "ca.crt").write_text("cert", encoding="utf-8")
    runtime = FakeRuntime()
    host = FakeHostHelper()

    config_dir = _orchestrator(runtime=runtime, host=host).start(_options(tmp_path, use_existing_config=True))
    shutil.rmtree(config_dir)

    assert runtime.run_specs == []
    assert host.commits == []
    assert len(host.staged_dirs) == 1


def test_existing_config_probe_failure_falls_back_to_generation(tmp_path):
    runtime = FakeRuntime()
    host = FakeHostHelper()

    config_dir = _orchestrator(runtime=runtime, host=host).start(_options(tmp_path, use_existing_config=True))

    try:
        assert len(runtime.run_specs) == 1
        assert len(host.staged_dirs) == 2
        assert not os.path.exists(host.staged_dirs[0])
        assert host.staged_dirs[1] == config_dir
    finally:
        shutil.rmtree(config_dir)


def test_existing_config_without_master_file_is_regenerated(tmp_path):
    (tmp_path / "host-config").mkdir()
    runtime = FakeRuntime()
    host = FakeHostHelper()

    config_dir = _orchestrator(runtime=runtime, host=host).start(_options(tmp_path, use_existing_config=True))
    shutil.rmtree(config_dir)

    assert len(runtime.run_specs) == 1
    assert not os.path.exists(host.staged_dirs[0])


def test_generation_failure_is_classified(tmp_path):
    runtime = FakeRuntime(run_error=CommandError("exit status 255"))
    host = FakeHostHelper()

    with pytest.raises(ConfigGenerationError, match="exit status 255") as exc_info:
        _orchestrator(runtime=runtime, host=host).start(_options(tmp_path))

    assert isinstance(exc_info.value.__cause__, CommandError)
    assert host.staged_dirs == []
    assert runtime.started_specs == []


def test_patch_failure_removes_staged_dir(tmp_path):
    runtime = FakeRuntime(config="- not\n- a mapping\n")
    host = FakeHostHelper()

    with pytest.raises(ConfigUpdateError):
        _orchestrator(runtime=runtime, host=host).start(_options(tmp_path))

    assert len(host.staged_dirs) == 1
    assert not os.path.exists(host.staged_dirs[0])
    assert runtime.started_specs == []


def test_restage_failure_after_generation_is_fatal(tmp_path):
    (tmp_path / "host-config").mkdir()
    runtime = FakeRuntime()
    host = FakeHostHelper(fail_copy_number=2)
    orchestrator = _orchestrator(runtime=runtime, host=host)

    with pytest.raises(StageError) as exc_info:
        orchestrator.start(_options(tmp_path, use_existing_config=True))

    assert exc_info.value.kind == "StageFailure"
    assert len(runtime.run_specs) == 1
    assert len(host.staged_dirs) == 2
    assert not any(os.path.exists(path) for path in host.staged_dirs)
    assert runtime.started_specs == []
    assert orchestrator.observer.stages("failed") == ["config_resolved"]


def test_hostname_failure_is_config_update_error_and_removes_staged_dir(tmp_path):
    runtime = FakeRuntime()
    host = FakeHostHelper(hostname_error=CommandError("hostname: container exited"))
    orchestrator = _orchestrator(runtime=runtime, host=host)

    with pytest.raises(ConfigUpdateError, match="configuration file paths") as exc_info:
        orchestrator.start(_options(tmp_path))

    assert exc_info.value.kind == "ConfigUpdateFailed"
    assert isinstance(exc_info.value.__cause__, CommandError)
    assert len(host.staged_dirs) == 1
    assert not os.path.exists(host.staged_dirs[0])
    assert runtime.started_specs == []
    assert orchestrator.observer.stages("failed") == ["container_starting"]


def test_daemon_start_failure(tmp_path):
    runtime = FakeRuntime(start_error=CommandError("name already in use"))
    host = FakeHostHelper()

    with pytest.raises(DaemonStartError, match="container origin"):
        _orchestrator(runtime=runtime, host=host).start(_options(tmp_path))

    assert not os.path.exists(host.staged_dirs[0])


def test_state_query_failure(tmp_path):
    runtime = FakeRuntime(state_error=CommandError("daemon unreachable"))

    with pytest.raises(StateQueryError, match="Cannot get state of OpenShift container origin"):
        _orchestrator(runtime=runtime).start(_options(tmp_path))


def test_listener_timeout_is_distinct_and_can_remove_container(tmp_path):
    runtime = FakeRuntime()
    host = FakeHostHelper()
    probe = FakeProbe(error=DialTimeoutError("10.0.0.5:8443", 35))
    policy = StartPolicy(
        initial_status_check_wait=0,
        dial_interval=0,
        readiness_interval=0,
        remove_container_on_failure=True,
    )

    with pytest.raises(TimedOutWaitingForStartError) as exc_info:
        _orchestrator(runtime=runtime, host=host, probe=probe, policy=policy).start(_options(tmp_path))

    assert not isinstance(exc_info.value, FailedToStartError)
    assert isinstance(exc_info.value.__cause__, DialTimeoutError)
    assert runtime.removed == ["origin"]
    assert not os.path.exists(host.staged_dirs[0])


def test_readiness_failure_is_surfaced_verbatim(tmp_path):
    host = FakeHostHelper()
    orchestrator = _orchestrator(host=host, responses=[FakeResponse(503), FakeResponse(500, "boom")])

    with pytest.raises(ReadinessError) as exc_info:
        orchestrator.start(_options(tmp_path))

    assert exc_info.value.status_code == 500
    assert exc_info.value.body == "boom"
    assert not os.path.exists(host.staged_dirs[0])


def test_start_honours_cancel_event(tmp_path):
    cancel_event = threading.Event()
    cancel_event.set()
    runtime = FakeRuntime()

    with pytest.raises(StartupCancelled):
        _orchestrator(runtime=runtime).start(_options(tmp_path), cancel_event=cancel_event)

    assert runtime.run_specs == []


def test_test_ports_reports_conflicts():
    runtime = FakeRuntime()
    runtime.port_data = "   0: 00000000:20FB 00000000:0000 0A 00000000:00000000 00:00000000 00000000 0 0 1 1\n"

    with pytest.raises(PortConflictError) as exc_info:
        _orchestrator(runtime=runtime).test_ports()

    assert exc_info.value.ports == [8443]
    spec = runtime.run_specs[0]
    assert spec.entrypoint == "/bin/bash"
    assert spec.command == ("-c", "cat /proc/net/tcp /proc/net/tcp6")
    assert spec.host_pid and spec.discard


def test_test_ports_wraps_runtime_failure():
    runtime = FakeRuntime()
    runtime.port_data = CommandError("cannot run container")

    with pytest.raises(PortCheckError, match="Cannot get TCP port information"):
        _orchestrator(runtime=runtime).test_ports()


def test_test_ip_always_removes_test_server():
    runtime = FakeRuntime()
    probe = FakeProbe(error=DialTimeoutError("10.0.0.9:8443", 10))

    with pytest.raises(DialTimeoutError):
        _orchestrator(runtime=runtime, probe=probe).test_ip("10.0.0.9")

    assert runtime.started_specs[0].entrypoint == "socat"
    assert probe.calls == [("10.0.0.9:8443", False, 10)]
    assert runtime.removed == ["container-id"]


def test_server_ip_and_other_ips():
    orchestrator = _orchestrator()

    assert orchestrator.server_ip() == "10.0.0.5"
    assert orchestrator.other_ips("10.0.0.5") == ["172.17.0.1", "192.168.1.4"]


def test_urls():
    orchestrator = _orchestrator()

    assert orchestrator.master_url("10.0.0.5") == "https://10.0.0.5:8443"
    assert orchestrator.healthz_ready_url("10.0.0.5") == "https://10.0.0.5:8443/healthz/ready"
