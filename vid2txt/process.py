"""Child-process runner that consumes output incrementally."""

import logging
import subprocess
import threading
from dataclasses import dataclass, field
from typing import Callable, Optional

logger = logging.getLogger(__name__)

LineCallback = Optional[Callable[[str], None]]


@dataclass
class ProcessResult:
    returncode: int
    stdout_lines: list[str] = field(default_factory=list)
    stderr_lines: list[str] = field(default_factory=list)

    @property
    def stderr(self) -> str:
        return "\n".join(self.stderr_lines)


def run_streaming(
    cmd: list[str],
    on_stdout: LineCallback = None,
    on_stderr: LineCallback = None,
) -> ProcessResult:
    """
    Run a command, handing each stdout/stderr line to a callback as it arrives.

    stderr is drained on a helper thread so neither pipe can fill up and
    block the child. OSError from starting the process propagates.
    """
    logger.debug("Executing: %s", " ".join(cmd))
    proc = subprocess.Popen(
        cmd,
        stdout=subprocess.PIPE,
        stderr=subprocess.PIPE,
        stdin=subprocess.DEVNULL,
        text=True,
        encoding="utf-8",
        errors="replace",
        bufsize=1,
    )
    result = ProcessResult(returncode=-1)

    def drain_stderr():
        for raw in proc.stderr:
            line = raw.rstrip("\r\n")
            result.stderr_lines.append(line)
            if on_stderr and line:
                on_stderr(line)

    stderr_thread = threading.Thread(target=drain_stderr, daemon=True)
    stderr_thread.start()
    try:
        for raw in proc.stdout:
            line = raw.rstrip("\r\n")
            result.stdout_lines.append(line)
            if on_stdout and line:
                on_stdout(line)
    finally:
        proc.wait()
        stderr_thread.join()
        proc.stdout.close()
        proc.stderr.close()
    result.returncode = proc.returncode
    return result
