import asyncio
import logging
from dataclasses import dataclass
from typing import List

logger = logging.getLogger(__name__)


@dataclass
class CommandResult:
    returncode: int
    stdout: str
    stderr: str


async def run_command(cmd: List[str], timeout: float) -> CommandResult:
    """Runs an argument vector (never a shell string) with a hard timeout.

    Raises asyncio.TimeoutError after terminating the child when the timeout
    expires, and FileNotFoundError when the executable is missing.
    """
    process = await asyncio.create_subprocess_exec(
        *cmd,
        stdin=asyncio.subprocess.DEVNULL,
        stdout=asyncio.subprocess.PIPE,
        stderr=asyncio.subprocess.PIPE,
    )
    try:
        stdout, stderr = await asyncio.wait_for(process.communicate(), timeout=timeout)
    except asyncio.TimeoutError:
        await _terminate(process, cmd[0])
        raise
    except asyncio.CancelledError:
        await _terminate(process, cmd[0])
        raise

    return CommandResult(
        returncode=process.returncode if process.returncode is not None else -1,
        stdout=stdout.decode("utf-8", errors="replace"),
        stderr=stderr.decode("utf-8", errors="replace"),
    )


async def _terminate(process: asyncio.subprocess.Process, name: str) -> None:
    if process.returncode is not None:
        return
    logger.debug(f"Terminating {name} (pid {process.pid})")
    try:
        process.terminate()
    except ProcessLookupError:
        return
    try:
        await asyncio.wait_for(process.wait(), timeout=3)
    except asyncio.TimeoutError:
        process.kill()
        await process.wait()
