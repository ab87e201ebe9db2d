import asyncio
from asyncio.subprocess import PIPE
from dataclasses import dataclass
from typing import Optional, Sequence

from memoryhaven.core.exceptions import ToolError, ToolNotFoundError, ToolTimeoutError
from memoryhaven.core.logger import logger


@dataclass
class ToolResult:
    returncode: int
    stdout: str
    stderr: str


async def run_tool(cmd: Sequence[str], timeout: Optional[float] = None, cwd: Optional[str] = None) -> ToolResult:
    """
    Run an external binary to completion and capture its output.

    Raises ToolNotFoundError if the binary is missing, ToolTimeoutError if it
    outlives ``timeout`` (the process is killed), and ToolError when it
    cannot be started or exits non-zero.
    """
    logger.debug("Executing: {}", " ".join(str(c) for c in cmd))
    try:
        process = await asyncio.create_subprocess_exec(*[str(c) for c in cmd], stdout=PIPE, stderr=PIPE, cwd=cwd)
    except FileNotFoundError as e:
        raise ToolNotFoundError(f"{cmd[0]} not found. Install it or set its path in the configuration.") from e
    except OSError as e:
        # Not executable, bad interpreter line, too many open files
        raise ToolError(f"{cmd[0]} could not be started: {e}") from e

    try:
        stdout, stderr = await asyncio.wait_for(process.communicate(), timeout=timeout)
    except asyncio.TimeoutError:
        await kill_process(process)
        raise ToolTimeoutError(f"{cmd[0]} timed out after {timeout}s")
    except asyncio.CancelledError:
        await kill_process(process)
        raise

    result = ToolResult(
        returncode=process.returncode,
        stdout=(stdout or b"").decode(errors="ignore"),
        stderr=(stderr or b"").decode(errors="ignore"),
    )
    if result.returncode != 0:
        tail = result.stderr.strip()[-2000:]
        raise ToolError(
            f"{cmd[0]} exited with {result.returncode}: {tail}",
            returncode=result.returncode,
            stderr=tail,
        )
    return result


async def kill_process(process: asyncio.subprocess.Process):
    if process.returncode is None:
        try:
            process.kill()
        except ProcessLookupError:
            pass
    await process.wait()
