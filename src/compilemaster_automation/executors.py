from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path, PurePosixPath
from typing import Optional, Sequence, Union
import logging
import os
import shlex
import shutil
import stat
import subprocess

from .types import HostConfig

logger = logging.getLogger(__name__)

PathLike = Union[str, Path, PurePosixPath]


class SSHConnectionError(RuntimeError):
    """The ssh client could not reach the target (exit status 255)."""


@dataclass
class CommandResult:
    command: list[str]
    stdout: str
    stderr: str
    returncode: int

    @property
    def output(self) -> str:
        parts = [text.strip() for text in (self.stdout, self.stderr) if text and text.strip()]
        return "\n".join(parts)


class Executor:
    """Base executor abstraction used by operations."""

    def __init__(self, host: HostConfig):
        self.host = host

    def run(
        self,
        command: Sequence[str],
        *,
        check: bool = True,
        env: Optional[dict[str, str]] = None,
        cwd: Optional[PathLike] = None,
        timeout: Optional[float] = None,
        input: Optional[str] = None,
    ) -> CommandResult:
        """Run ``command`` on the executor's host."""

        cmd_list = list(command)
        exec_env = None
        if env:
            exec_env = os.environ.copy()
            exec_env.update(env)

        proc = subprocess.run(
            cmd_list,
            capture_output=True,
            text=True,
            check=False,
            env=exec_env,
            cwd=str(cwd) if cwd is not None else None,
            timeout=timeout,
            input=input,
        )
        if check and proc.returncode != 0:
            raise subprocess.CalledProcessError(
                proc.returncode,
                cmd_list,
                proc.stdout,
                proc.stderr,
            )
        return CommandResult(cmd_list, proc.stdout, proc.stderr, proc.returncode)

    def which(self, binary: str) -> bool:
        result = self.run(["sh", "-c", f"command -v {shlex.quote(binary)}"], check=False)
        return result.returncode == 0

    def set_ownership(
        self, path: PathLike, *, owner: Optional[str], group: Optional[str]
    ) -> tuple[bool, str]:
        if owner is None and group is None:
            return False, "noop"
        spec = owner or ""
        if group:
            spec = f"{spec}:{group}"
        self.run(["chown", spec, str(path)])
        return True, f"owner->{spec}"

    # File primitives -----------------------------------------------------
    def read_file(self, path: PathLike) -> Optional[str]:
        raise NotImplementedError

    def write_file(self, path: PathLike, *, content: str, mode: Optional[int]) -> tuple[bool, str]:
        raise NotImplementedError

    def append_line(self, path: PathLike, line: str) -> str:
        raise NotImplementedError

    def copy_file(self, source: PathLike, dest: PathLike, *, mode: Optional[int]) -> tuple[bool, str]:
        raise NotImplementedError

    def ensure_directory(self, path: PathLike, *, mode: Optional[int]) -> tuple[bool, str]:
        raise NotImplementedError

    def remove_path(self, path: PathLike) -> bool:
        raise NotImplementedError


class LocalExecutor(Executor):
    """Executor that acts directly on the local host."""

    def read_file(self, path: PathLike) -> Optional[str]:
        try:
            return Path(path).read_text()
        except FileNotFoundError:
            return None

    def write_file(self, path: PathLike, *, content: str, mode: Optional[int]) -> tuple[bool, str]:
        path = Path(path)
        current = self.read_file(path)
        reasons: list[str] = []

        if current != content:
            reasons.append("content")
            path.parent.mkdir(parents=True, exist_ok=True)
            path.write_text(content)

        if mode is not None and self._file_mode(path) != mode:
            reasons.append(f"mode->{mode:04o}")
            os.chmod(path, mode)
        return bool(reasons), ", ".join(reasons) if reasons else "noop"

    def append_line(self, path: PathLike, line: str) -> str:
        path = Path(path)
        path.parent.mkdir(parents=True, exist_ok=True)
        with path.open("a") as handle:
            handle.write(line.rstrip("\n") + "\n")
        return "appended"

    def copy_file(self, source: PathLike, dest: PathLike, *, mode: Optional[int]) -> tuple[bool, str]:
        source = Path(source)
        if not source.exists():
            raise FileNotFoundError(f"Source {source} not found")
        dest = Path(dest)
        if dest.is_dir():
            dest = dest / source.name
        return self.write_file(dest, content=source.read_text(), mode=mode)

    def ensure_directory(self, path: PathLike, *, mode: Optional[int]) -> tuple[bool, str]:
        path = Path(path)
        reasons: list[str] = []

        if not path.exists():
            reasons.append("created")
            path.mkdir(parents=True, exist_ok=True)
        elif not path.is_dir():
            reasons.append("replaced-non-dir")
            self.remove_path(path)
            path.mkdir(parents=True, exist_ok=True)

        if mode is not None and self._file_mode(path) != mode:
            reasons.append(f"mode->{mode:04o}")
            os.chmod(path, mode)
        return bool(reasons), ", ".join(reasons) if reasons else "noop"

    def remove_path(self, path: PathLike) -> bool:
        path = Path(path)
        if not path.exists():
            return False
        if path.is_dir():
            shutil.rmtree(path)
        else:
            path.unlink()
        return True

    @staticmethod
    def _file_mode(path: Path) -> Optional[int]:
        try:
            return stat.S_IMODE(path.stat().st_mode)
        except FileNotFoundError:
            return None


class SshExecutor(Executor):
    """Executor that runs every command on the host through the ``ssh`` client.

    File primitives are expressed as shell commands so that they behave the
    same way on any POSIX target. With ``sudo`` enabled each command is
    wrapped in ``sudo -n``, so the remote account needs passwordless sudo.
    """

    def __init__(
        self,
        host: HostConfig,
        *,
        options: Sequence[str] = (),
        sudo: bool = False,
        connect_timeout: Optional[float] = None,
    ):
        super().__init__(host)
        self.options = list(options)
        self.sudo = sudo
        self.connect_timeout = connect_timeout

    @property
    def destination(self) -> str:
        address = self.host.address or self.host.name
        if self.host.user:
            return f"{self.host.user}@{address}"
        return address

    def build_command(
        self,
        command: Sequence[str],
        *,
        env: Optional[dict[str, str]] = None,
        cwd: Optional[PathLike] = None,
    ) -> list[str]:
        remote = shlex.join([str(part) for part in command])
        if env:
            assignments = " ".join(f"{k}={shlex.quote(v)}" for k, v in env.items())
            remote = f"env {assignments} {remote}"
        if self.sudo:
            remote = f"sudo -n sh -c {shlex.quote(remote)}"
        if cwd is not None:
            remote = f"cd {shlex.quote(str(cwd))} && {remote}"
        options = ["-oBatchMode=yes", *self.options]
        if self.connect_timeout is not None:
            options.append(f"-oConnectTimeout={int(self.connect_timeout)}")
        return ["ssh", *options, self.destination, remote]

    def run(
        self,
        command: Sequence[str],
        *,
        check: bool = True,
        env: Optional[dict[str, str]] = None,
        cwd: Optional[PathLike] = None,
        timeout: Optional[float] = None,
        input: Optional[str] = None,
    ) -> CommandResult:
        cmd_list = [str(part) for part in command]
        full = self.build_command(cmd_list, env=env, cwd=cwd)
        logger.debug("ssh host=%s cmd=%s", self.destination, shlex.join(cmd_list))
        proc = subprocess.run(
            full,
            capture_output=True,
            text=True,
            check=False,
            timeout=timeout,
            input=input,
            # Without stdin the client may hang waiting for input that never comes.
            stdin=None if input is not None else subprocess.DEVNULL,
        )
        if proc.returncode == 255:
            raise SSHConnectionError(
                f"ssh to {self.destination} failed: {proc.stderr.strip() or 'connection error'}"
            )
        if check and proc.returncode != 0:
            raise subprocess.CalledProcessError(proc.returncode, cmd_list, proc.stdout, proc.stderr)
        return CommandResult(cmd_list, proc.stdout, proc.stderr, proc.returncode)

    def read_file(self, path: PathLike) -> Optional[str]:
        result = self.run(["cat", str(path)], check=False)
        if result.returncode != 0:
            return None
        return result.stdout

    def write_file(self, path: PathLike, *, content: str, mode: Optional[int]) -> tuple[bool, str]:
        path = PurePosixPath(str(path))
        reasons: list[str] = []
        if self.read_file(path) != content:
            reasons.append("content")
            script = f"mkdir -p {shlex.quote(str(path.parent))} && cat > {shlex.quote(str(path))}"
            self.run(["sh", "-c", script], input=content)
        if mode is not None and self._remote_mode(path) != mode:
            reasons.append(f"mode->{mode:04o}")
            self.run(["chmod", f"{mode:04o}", str(path)])
        return bool(reasons), ", ".join(reasons) if reasons else "noop"

    def append_line(self, path: PathLike, line: str) -> str:
        script = f"cat >> {shlex.quote(str(path))}"
        self.run(["sh", "-c", script], input=line.rstrip("\n") + "\n")
        return "appended"

    def copy_file(self, source: PathLike, dest: PathLike, *, mode: Optional[int]) -> tuple[bool, str]:
        self.run(["cp", "-p", str(source), str(dest)])
        reasons = ["copied"]
        if mode is not None:
            self.run(["chmod", f"{mode:04o}", str(dest)])
            reasons.append(f"mode->{mode:04o}")
        return True, ", ".join(reasons)

    def ensure_directory(self, path: PathLike, *, mode: Optional[int]) -> tuple[bool, str]:
        reasons: list[str] = []
        check = self.run(["test", "-d", str(path)], check=False)
        if check.returncode != 0:
            reasons.append("created")
            self.run(["mkdir", "-p", str(path)])
        if mode is not None and self._remote_mode(path) != mode:
            reasons.append(f"mode->{mode:04o}")
            self.run(["chmod", f"{mode:04o}", str(path)])
        return bool(reasons), ", ".join(reasons) if reasons else "noop"

    def remove_path(self, path: PathLike) -> bool:
        check = self.run(["test", "-e", str(path)], check=False)
        if check.returncode != 0:
            return False
        self.run(["rm", "-rf", str(path)])
        return True

    def _remote_mode(self, path: PathLike) -> Optional[int]:
        result = self.run(["stat", "-c", "%a", str(path)], check=False)
        if result.returncode != 0:
            return None
        try:
            return int(result.stdout.strip(), 8)
        except ValueError:
            return None
