import subprocess
import threading
from typing import Callable, List, Optional

from .models import ProcState


class ManagedProcess:
    """
    One owned ffmpeg child process.

    - ``state`` moves spawned -> running -> exited | killed and never back.
    - stderr is drained continuously on a daemon thread; an unread stderr pipe
      fills up and blocks the child, which would stall the whole broadcast.
    - A waiter thread blocks in ``wait()`` and reports the exit through
      ``on_exit(handle, returncode)``. ``kill()`` marks the handle first, so
      the callback can tell a deliberate kill from a natural exit.
    """

    def __init__(
        self,
        name: str,
        cmd: List[str],
        *,
        on_exit: Optional[Callable[["ManagedProcess", int], None]] = None,
        on_line: Optional[Callable[[str], None]] = None,
        stdin=subprocess.DEVNULL,
        stdout=subprocess.DEVNULL,
    ) -> None:
        self.name = name
        self.cmd = list(cmd)
        self.on_exit = on_exit
        self.on_line = on_line
        self._stdin = stdin
        self._stdout = stdout

        self.proc: Optional[subprocess.Popen] = None
        self.state: ProcState = ProcState.SPAWNED
        self.exit_code: Optional[int] = None
        self._state_lock = threading.Lock()
        self._stderr_thread: Optional[threading.Thread] = None
        self._wait_thread: Optional[threading.Thread] = None

    def __repr__(self) -> str:
        return f"<ManagedProcess {self.name} pid={self.pid} state={self.state.value}>"

    @property
    def pid(self) -> Optional[int]:
        return self.proc.pid if self.proc is not None else None

    @property
    def stdin(self):
        return self.proc.stdin if self.proc is not None else None

    @property
    def alive(self) -> bool:
        return self.state is ProcState.RUNNING

    def start(self) -> None:
        """Spawn the child. Raises OSError if the executable cannot be run."""
        self.proc = subprocess.Popen(
            self.cmd,
            stdin=self._stdin,
            stdout=self._stdout,
            stderr=subprocess.PIPE,
            bufsize=0,
        )
        self.state = ProcState.RUNNING

        self._stderr_thread = threading.Thread(
            target=self._drain_stderr,
            name=f"{self.name}-stderr",
            daemon=True,
        )
        self._stderr_thread.start()

        self._wait_thread = threading.Thread(
            target=self._wait_for_exit,
            name=f"{self.name}-wait",
            daemon=True,
        )
        self._wait_thread.start()

    def _drain_stderr(self) -> None:
        proc = self.proc
        err = proc.stderr if proc is not None else None
        if err is None:
            return
        try:
            for raw in iter(err.readline, b""):
                line = raw.decode("utf-8", errors="replace").rstrip()
                if line and self.on_line is not None:
                    self.on_line(line)
        except (OSError, ValueError):
            # pipe closed underneath us during kill
            pass
        finally:
            try:
                err.close()
            except OSError:
                pass

    def _wait_for_exit(self) -> None:
        proc = self.proc
        if proc is None:
            return
        code = proc.wait()
        with self._state_lock:
            self.exit_code = code
            if self.state is not ProcState.KILLED:
                self.state = ProcState.EXITED
        if self.on_exit is not None:
            self.on_exit(self, code)

    def kill(self, timeout: float = 5.0) -> None:
        """
        Terminate the child (SIGTERM, then SIGKILL after ``timeout``).
        No-op once the process has already exited.
        """
        with self._state_lock:
            if self.state in (ProcState.EXITED, ProcState.KILLED):
                return
            self.state = ProcState.KILLED

        proc = self.proc
        if proc is None:
            return
        if proc.stdin is not None:
            try:
                proc.stdin.close()
            except OSError:
                pass
        if proc.poll() is None:
            try:
                proc.terminate()
                proc.wait(timeout=timeout)
            except subprocess.TimeoutExpired:
                proc.kill()
                proc.wait()
