"""Build execution boundary.

Runs the build toolchain in a child process group, captures merged
stdout/stderr into a bounded tail and turns every failure mode (non-zero exit,
timeout, spawn error) into a BuildResult. Nothing in here raises to callers.
"""
import logging
import os
import signal
import subprocess
import threading
import uuid
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Callable, List, Optional, Set
from forge.build.logs import LogTail
from forge.config import APK_RELATIVE_PATH, BUILD_LOG_TAIL_CHARS

logger = logging.getLogger(__name__)

DOCKER_KILL_TIMEOUT_S = 30

@dataclass
class BuildResult:
    ok: bool
    output: str
    exit_code: Optional[int] = None
    timed_out: bool = False

class BuildRunner(ABC):
    """Process-level runner; subclasses decide what command line to spawn."""

    def __init__(self, log_limit: int = BUILD_LOG_TAIL_CHARS):
        self.log_limit = log_limit

    @abstractmethod
    def run(self, image: str, project_dir: str, command: str, timeout_ms: int) -> BuildResult:
        ...

    def run_process(
        self,
        argv: List[str],
        timeout_ms: int,
        cwd: Optional[str] = None,
        on_timeout: Optional[Callable[[], None]] = None,
    ) -> BuildResult:
        out = LogTail(self.log_limit)
        try:
            proc = subprocess.Popen(
                argv,
                cwd=cwd,
                stdin=subprocess.DEVNULL,
                stdout=subprocess.PIPE,
                stderr=subprocess.STDOUT,
                start_new_session=True,
            )
        except OSError as e:
            out.write(f"\n[error] {e}\n")
            logger.error("Could not start build process %s: %s", argv[0], e)
            return BuildResult(ok=False, output=out.getvalue())

        reader = threading.Thread(target=self._pump, args=(proc.stdout, out), daemon=True)
        reader.start()

        timed_out = False
        try:
            exit_code = proc.wait(timeout=timeout_ms / 1000.0)
        except subprocess.TimeoutExpired:
            timed_out = True
            # Work owned by someone other than our process group (a container) goes first
            if on_timeout is not None:
                on_timeout()
            self._kill_tree(proc)
            exit_code = proc.wait()
            logger.warning("Build process %d killed after %dms", proc.pid, timeout_ms)

        reader.join(timeout=5)
        if timed_out:
            out.write(f"\n[timeout] exceeded {timeout_ms}ms\n")

        ok = exit_code == 0 and not timed_out
        return BuildResult(ok=ok, output=out.getvalue(), exit_code=exit_code, timed_out=timed_out)

    @staticmethod
    def _pump(stream, out: LogTail) -> None:
        with stream:
            for chunk in iter(lambda: stream.read1(4096), b""):
                out.write(chunk.decode("utf-8", errors="replace"))

    @staticmethod
    def _kill_tree(proc: subprocess.Popen) -> None:
        try:
            os.killpg(proc.pid, signal.SIGKILL)
        except ProcessLookupError:
            pass

class DockerBuildRunner(BuildRunner):
    """Runs the build in a named, throwaway container.

    The container belongs to the docker daemon, not to our process group, so a
    timeout removes it by name before the client process is killed.
    """

    def __init__(self, docker_bin: str = "docker", log_limit: int = BUILD_LOG_TAIL_CHARS):
        super().__init__(log_limit)
        self.docker_bin = docker_bin

    @staticmethod
    def container_name() -> str:
        return f"appforge-build-{uuid.uuid4().hex[:12]}"

    def command_line(self, image: str, project_dir: str, command: str, name: str) -> List[str]:
        return [
            self.docker_bin,
            "run",
            "--rm",
            "--name", name,
            "--user", "root",
            "-v", f"{os.path.abspath(project_dir)}:/work",
            "-w", "/work",
            image,
            "bash", "-lc", command,
        ]

    def kill_container(self, name: str) -> None:
        try:
            proc = subprocess.run(
                [self.docker_bin, "rm", "-f", name],
                stdin=subprocess.DEVNULL,
                stdout=subprocess.PIPE,
                stderr=subprocess.STDOUT,
                timeout=DOCKER_KILL_TIMEOUT_S,
            )
        except (OSError, subprocess.SubprocessError) as e:
            logger.error("Could not remove timed out container %s: %s", name, e)
            return
        if proc.returncode != 0:
            logger.error("docker rm -f %s exited %d: %s", name, proc.returncode,
                         proc.stdout.decode("utf-8", errors="replace").strip())
        else:
            logger.info("Removed timed out container %s", name)

    def run(self, image: str, project_dir: str, command: str, timeout_ms: int) -> BuildResult:
        name = self.container_name()
        logger.info("Running %r in %s as %s (timeout %dms)", command, image, name, timeout_ms)
        return self.run_process(
            self.command_line(image, project_dir, command, name),
            timeout_ms,
            on_timeout=lambda: self.kill_container(name),
        )

class MockBuildRunner(BuildRunner):
    """Stands in for the toolchain: writes a placeholder APK and succeeds.

    With fail_once, the first build of each project seen by this runner fails
    so the failure path can be exercised without Docker.
    """

    def __init__(self, fail_once: bool = False, log_limit: int = BUILD_LOG_TAIL_CHARS):
        super().__init__(log_limit)
        self.fail_once = fail_once
        self._failed: Set[str] = set()
        self._lock = threading.Lock()

    def run(self, image: str, project_dir: str, command: str, timeout_ms: int) -> BuildResult:
        project = os.path.basename(project_dir)
        if self.fail_once:
            with self._lock:
                first = project not in self._failed
                self._failed.add(project)
            if first:
                return BuildResult(ok=False, output="[mock] forced failure (first attempt)\n", exit_code=1)

        apk = os.path.join(project_dir, APK_RELATIVE_PATH)
        try:
            os.makedirs(os.path.dirname(apk), exist_ok=True)
            with open(apk, "wb") as f:
                f.write(f"APPFORGE-MOCK-APK\nproject={project}\n".encode("utf-8"))
        except OSError as e:
            return BuildResult(ok=False, output=f"[mock] could not write {apk}\n[error] {e}\n")
        return BuildResult(ok=True, output=f"[mock] MOCK_BUILD enabled, skipped {command!r}\n", exit_code=0)
