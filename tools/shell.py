import os
import signal
import logging
import subprocess
from typing import Any, Dict

logger = logging.getLogger("app")


def run_command(command: str, timeout_seconds: float) -> Dict[str, Any]:
    """Run `command` through the shell, killing its whole process group on timeout."""
    proc = subprocess.Popen(
        command,
        shell=True,
        stdout=subprocess.PIPE,
        stderr=subprocess.PIPE,
        text=True,
        start_new_session=True,
    )
    timed_out = False
    try:
        stdout, stderr = proc.communicate(timeout=timeout_seconds)
    except subprocess.TimeoutExpired:
        timed_out = True
        try:
            os.killpg(proc.pid, signal.SIGKILL)
        except ProcessLookupError:
            pass
        stdout, stderr = proc.communicate()
        logger.warning(f"Command killed after {timeout_seconds:g}s", extra={"extra_data": {"command": command}})
    return {
        "stdout": stdout,
        "stderr": stderr,
        "exitCode": proc.returncode,
        "timedOut": timed_out,
    }
