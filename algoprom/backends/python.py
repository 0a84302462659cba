"""Python script backends.

Algorithms live at ``<directory>/<algorithm>.py`` and are invoked as::

    python <directory>/<algorithm>.py --inputs inputs.json --params params.json

inside the per-run working directory. Actions are invoked the same way
with ``--check-output check_output.txt``. The exit code decides the
outcome: 0 passes, anything else fails.
"""

from __future__ import annotations

import json
import logging
import shlex
from pathlib import Path
from typing import Any

from algoprom.backends.base import Actioner, Algorithmer
from algoprom.backends.process import run_shell
from algoprom.checks.output import Output
from algoprom.engine.context import RunContext
from algoprom.measure import MeasurementResult

logger = logging.getLogger(__name__)


class _PythonScriptMixin:
    """Shared venv / directory / env handling."""

    def __init__(
        self,
        directory: str = ".",
        venv: str = "",
        env: dict[str, str] | None = None,
        python: str = "python",
    ) -> None:
        # Scripts run with the per-run working dir as cwd.
        self.directory = str(Path(directory).expanduser().resolve())
        self.venv = venv
        self.env = {str(k): str(v) for k, v in (env or {}).items()}
        self.python = python

    @classmethod
    def from_settings(cls, settings: dict[str, Any]):
        return cls(
            directory=settings.get("directory", "."),
            venv=settings.get("venv", ""),
            env=settings.get("env") or settings.get("envoverride") or {},
            python=settings.get("python", "python"),
        )

    def _command(self, script: str, *args: str) -> str:
        cmd = ""
        if self.venv:
            cmd = f". {shlex.quote(str(Path(self.venv) / 'bin' / 'activate'))}; "
        path = Path(self.directory) / f"{script}.py"
        cmd += " ".join([shlex.quote(self.python), shlex.quote(str(path)), *(shlex.quote(a) for a in args)])
        return cmd

    async def _run(self, ctx: RunContext, out: Output, command: str, working_dir: Path) -> Output:
        env = dict(self.env)
        env.setdefault("ALGOPROM_CHECK", ctx.check)
        env.setdefault("ALGOPROM_RUN_ID", ctx.run_id)
        try:
            rc, combined = await run_shell(command, working_dir, env)
        except OSError as e:
            return out.finish(error=f"failed to start: {e}")

        error = f"exit status {rc}" if rc != 0 else ""
        return out.finish(rc=rc, combined_out=combined, error=error)


class PythonAlgorithmer(_PythonScriptMixin, Algorithmer):
    backend_type = "python"

    async def apply(
        self,
        ctx: RunContext,
        algorithm: str,
        params: dict[str, str],
        inputs: dict[str, MeasurementResult],
        working_dir: Path,
    ) -> Output:
        out = Output()
        try:
            inputs_data = json.dumps({k: v.to_dict() for k, v in inputs.items()})
            params_data = json.dumps(params)
        except (TypeError, ValueError) as e:
            return out.finish(error=f"Error marshalling inputs to JSON: {e}")

        try:
            (working_dir / "inputs.json").write_text(inputs_data, encoding="utf-8")
            (working_dir / "params.json").write_text(params_data, encoding="utf-8")
        except OSError as e:
            return out.finish(error=f"Error writing input files: {e}")

        command = self._command(algorithm, "--inputs", "inputs.json", "--params", "params.json")
        logger.debug("[%s] %s", ctx.check, command)
        return await self._run(ctx, out, command, working_dir)


class PythonActioner(_PythonScriptMixin, Actioner):
    backend_type = "python"

    async def act(
        self,
        ctx: RunContext,
        action: str,
        check_output: str,
        params: dict[str, str],
        working_dir: Path,
    ) -> Output:
        out = Output()
        try:
            (working_dir / "check_output.txt").write_text(check_output, encoding="utf-8")
            (working_dir / "params.json").write_text(json.dumps(params), encoding="utf-8")
        except OSError as e:
            return out.finish(error=f"Error writing action files: {e}")

        command = self._command(
            action, "--check-output", "check_output.txt", "--params", "params.json",
        )
        logger.debug("[%s] %s", ctx.check, command)
        return await self._run(ctx, out, command, working_dir)
