import os
import sys
import time
import pytest
from forge.build.runner import BuildRunner, DockerBuildRunner, MockBuildRunner
from forge.config import APK_RELATIVE_PATH

def _py(code):
    return [sys.executable, "-c", code]

def test_successful_process_captures_merged_output():
    result = DockerBuildRunner().run_process(
        _py("import sys; print('to stdout'); print('to stderr', file=sys.stderr)"), timeout_ms=30_000)
    assert result.ok
    assert result.exit_code == 0
    assert "to stdout" in result.output
    assert "to stderr" in result.output

def test_nonzero_exit_is_not_ok():
    result = DockerBuildRunner().run_process(_py("import sys; print('FAILURE: boom'); sys.exit(3)"), timeout_ms=30_000)
    assert not result.ok
    assert result.exit_code == 3
    assert not result.timed_out
    assert "FAILURE: boom" in result.output

def test_timeout_kills_process():
    runner = DockerBuildRunner()
    result = runner.run_process(_py("import time; time.sleep(60)"), timeout_ms=500)
    assert not result.ok
    assert result.timed_out
    assert result.output.endswith("[timeout] exceeded 500ms\n")

def _alive(pid):
    try:
        with open(f"/proc/{pid}/stat") as f:
            return f.read().rsplit(")", 1)[-1].split()[0] not in ("Z", "X")
    except FileNotFoundError:
        return False

@pytest.mark.skipif(not os.path.isdir("/proc"), reason="needs /proc")
def test_timeout_kills_whole_process_group(tmp_path):
    pid_file = tmp_path / "child.pid"
    code = (
        "import subprocess, sys, time;"
        "p = subprocess.Popen([sys.executable, '-c', 'import time; time.sleep(60)']);"
        f"open({str(pid_file)!r}, 'w').write(str(p.pid));"
        "time.sleep(60)"
    )
    result = DockerBuildRunner().run_process(_py(code), timeout_ms=3_000)
    assert result.timed_out
    child = int(pid_file.read_text())
    deadline = time.time() + 5
    while _alive(child) and time.time() < deadline:
        time.sleep(0.05)
    assert not _alive(child)

def test_output_is_tail_bounded():
    result = DockerBuildRunner(log_limit=100).run_process(_py("print('x' * 5000 + 'END')"), timeout_ms=30_000)
    assert result.ok
    assert len(result.output) <= 100
    assert "END" in result.output

def test_missing_binary_is_a_failed_result():
    result = DockerBuildRunner().run_process(["/nonexistent/build-tool"], timeout_ms=1_000)
    assert not result.ok
    assert result.exit_code is None
    assert "[error]" in result.output

def test_timeout_hook_runs_before_kill():
    calls = []
    result = DockerBuildRunner().run_process(
        _py("import time; time.sleep(60)"), timeout_ms=300, on_timeout=lambda: calls.append("hook"))
    assert result.timed_out
    assert calls == ["hook"]

def test_no_timeout_hook_on_normal_exit():
    calls = []
    result = DockerBuildRunner().run_process(_py("pass"), timeout_ms=30_000, on_timeout=lambda: calls.append("hook"))
    assert result.ok
    assert calls == []

def test_runner_needs_run_override():
    class Incomplete(BuildRunner):
        pass

    with pytest.raises(TypeError):
        Incomplete()

def test_docker_command_line_names_container(tmp_path):
    argv = DockerBuildRunner(docker_bin="podman").command_line(
        "android-builder:latest", str(tmp_path), "gradle assembleRelease", "appforge-build-abc")
    assert argv[:3] == ["podman", "run", "--rm"]
    assert argv[argv.index("--name") + 1] == "appforge-build-abc"
    assert f"{tmp_path}:/work" in argv
    assert argv[-4:] == ["android-builder:latest", "bash", "-lc", "gradle assembleRelease"]

def test_docker_timeout_removes_container(mocker, tmp_path):
    runner = DockerBuildRunner()
    run_process = mocker.patch.object(runner, "run_process")
    docker = mocker.patch("forge.build.runner.subprocess.run")
    docker.return_value.returncode = 0

    runner.run("img", str(tmp_path), "gradle assembleRelease", 1234)

    argv, timeout_ms = run_process.call_args[0]
    name = argv[argv.index("--name") + 1]
    assert name.startswith("appforge-build-")
    assert timeout_ms == 1234
    docker.assert_not_called()

    run_process.call_args.kwargs["on_timeout"]()
    assert docker.call_args[0][0] == ["docker", "rm", "-f", name]

def test_container_names_are_unique():
    assert DockerBuildRunner.container_name() != DockerBuildRunner.container_name()

def test_failed_container_removal_is_logged(mocker, caplog):
    mocker.patch("forge.build.runner.subprocess.run", side_effect=FileNotFoundError("docker"))
    DockerBuildRunner().kill_container("appforge-build-abc")
    assert "Could not remove timed out container appforge-build-abc" in caplog.text

def test_mock_runner_writes_placeholder_apk(tmp_path):
    result = MockBuildRunner().run("img", str(tmp_path), "gradle assembleRelease", 1000)
    assert result.ok
    assert os.path.getsize(tmp_path / APK_RELATIVE_PATH) > 0
    assert "MOCK_BUILD" in result.output

def test_mock_runner_fail_once_per_project(tmp_path):
    runner = MockBuildRunner(fail_once=True)
    first = runner.run("img", str(tmp_path / "app-1"), "gradle", 1000)
    assert not first.ok
    assert first.exit_code == 1
    assert not (tmp_path / "app-1" / APK_RELATIVE_PATH).exists()

    assert runner.run("img", str(tmp_path / "app-1"), "gradle", 1000).ok
    assert not runner.run("img", str(tmp_path / "app-2"), "gradle", 1000).ok
