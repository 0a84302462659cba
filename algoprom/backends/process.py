"""Shell subprocess helper shared by the script-based backends."""

from __future__ import annotations

import asyncio
import logging
import os
from pathlib import Path

logger = logging.getLogger(__name__)


async def run_shell(
    command: str,
    cwd: Path,
    env_override: dict[str, str] | None = None,
) -> tuple[int, str]:
    """Run ``sh -c command`` and return (exit code, combined stdout+stderr).

    Cancelling the calling task kills the child before re-raising.
    """
    env = dict(os.environ)
    env.update(env_override or {})

    proc = await asyncio.create_subprocess_exec(
        "sh", "-c", command,
        cwd=str(cwd),
        env=env,
        stdout=asyncio.subprocess.PIPE,
        stderr=asyncio.subprocess.STDOUT,
    )
    try:
        out_b, _ = await proc.communicate()
    except asyncio.CancelledError:
        try:
            proc.kill()
        except ProcessLookupError:
            pass
        await proc.wait()
        logger.debug("Killed pid %s after cancellation", proc.pid)
        raise

    return proc.returncode, (out_b or b"").decode("utf-8", errors="replace")
