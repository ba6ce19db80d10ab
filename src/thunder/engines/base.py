"""Base class for AI engine adapters."""

from __future__ import annotations

import asyncio
import json
import subprocess
import time
from abc import ABC, abstractmethod
from dataclasses import dataclass
from pathlib import Path

from thunder.engine_errors import classify_engine_error
from thunder.io_utils import open_text

TIER_NAMES = ("fast", "standard", "extended")


@dataclass
class EngineResult:
    """Uniform result from a synchronous engine invocation."""

    text: str = ""
    input_tokens: int = 0
    output_tokens: int = 0
    duration_ms: int = 0
    error: str = ""
    return_code: int = 0


class EngineBase(ABC):
    """Abstract engine adapter.  Subclasses implement ``build_cmd``."""

    name: str = "base"
    #: tier name -> engine-specific model id
    model_tiers: dict[str, str] = {}

    @abstractmethod
    def build_cmd(self, prompt: str, *, model: str = "") -> list[str]:
        """Return the CLI command list for the given prompt."""
        ...

    @abstractmethod
    def parse_output(self, raw: str) -> EngineResult:
        """Parse raw stdout into an :class:`EngineResult`."""
        ...

    @abstractmethod
    def check_available(self) -> str | None:
        """Return an error message if the engine CLI is not available, else None."""
        ...

    def resolve_model(self, suggested: str) -> str:
        """Map a tier name to this engine's model id.

        Tier names the engine has no mapping for resolve to ``""`` (use the
        CLI default); anything else is treated as an explicit model id.
        """
        if not suggested:
            return ""
        if suggested in self.model_tiers:
            return self.model_tiers[suggested]
        if suggested in TIER_NAMES:
            return ""
        return suggested

    def run_sync(
        self,
        prompt: str,
        *,
        cwd: Path | None = None,
        timeout: int | None = None,
        model: str = "",
    ) -> EngineResult:
        """Execute the engine synchronously and return parsed result."""
        cmd = self.build_cmd(prompt, model=self.resolve_model(model))
        start = time.monotonic()

        try:
            proc = subprocess.Popen(
                cmd,
                stdin=subprocess.DEVNULL,
                stdout=subprocess.PIPE,
                stderr=subprocess.PIPE,
                text=True,
                encoding="utf-8",
                errors="replace",
                cwd=cwd,
            )
        except FileNotFoundError:
            return EngineResult(error=f"{cmd[0]} not found", return_code=-1)

        try:
            proc_stdout, proc_stderr = self._communicate_with_interrupts(proc, timeout=timeout)
        except subprocess.TimeoutExpired:
            self._terminate_process(proc)
            return EngineResult(error="timeout", return_code=-1)
        except KeyboardInterrupt:
            self._terminate_process(proc)
            raise

        result = self.parse_output(proc_stdout or "")
        result.return_code = proc.returncode
        if not result.duration_ms:
            result.duration_ms = int((time.monotonic() - start) * 1000)

        error = self._check_errors(proc_stdout or "")
        if error and not result.error:
            result.error = error

        if proc.returncode != 0 and not result.error:
            stderr = (proc_stderr or "").strip()
            result.error = stderr.splitlines()[0] if stderr else f"exit code {proc.returncode}"

        return result

    async def launch(
        self,
        prompt: str,
        *,
        cwd: Path,
        model: str = "",
        stdout_file: Path | None = None,
        stderr_file: Path | None = None,
    ) -> asyncio.subprocess.Process:
        """Start the engine in *cwd* and return without waiting for it to finish."""
        cmd = self.build_cmd(prompt, model=self.resolve_model(model))
        stdout = open_text(stdout_file, "w") if stdout_file else subprocess.DEVNULL
        stderr = open_text(stderr_file, "a") if stderr_file else subprocess.DEVNULL
        try:
            return await asyncio.create_subprocess_exec(
                *cmd,
                stdin=subprocess.DEVNULL,
                stdout=stdout,
                stderr=stderr,
                cwd=cwd,
            )
        finally:
            # The child holds its own descriptors once spawned.
            for fh in (stdout, stderr):
                if not isinstance(fh, int):
                    fh.close()

    @staticmethod
    def _communicate_with_interrupts(
        proc: subprocess.Popen[str],
        *,
        timeout: int | None,
    ) -> tuple[str, str]:
        """Read process output while remaining responsive to KeyboardInterrupt."""
        if timeout is None:
            return proc.communicate()

        deadline = time.monotonic() + timeout
        while True:
            remaining = deadline - time.monotonic()
            if remaining <= 0:
                raise subprocess.TimeoutExpired(proc.args, timeout)
            try:
                return proc.communicate(timeout=min(0.2, remaining))
            except subprocess.TimeoutExpired:
                continue

    @staticmethod
    def _terminate_process(proc: subprocess.Popen[str]) -> None:
        """Terminate a subprocess promptly (best effort)."""
        try:
            if proc.poll() is None:
                proc.terminate()
            proc.wait(timeout=2)
            return
        except (OSError, subprocess.TimeoutExpired):
            pass

        try:
            if proc.poll() is None:
                proc.kill()
            proc.wait(timeout=2)
        except (OSError, subprocess.TimeoutExpired):
            pass

    @staticmethod
    def _check_errors(raw: str) -> str:
        """Detect structured error events in engine output."""
        for line in raw.splitlines():
            stripped = line.strip()
            if not stripped:
                continue
            try:
                obj = json.loads(stripped)
            except json.JSONDecodeError:
                continue
            if not isinstance(obj, dict):
                continue

            err = obj.get("error")
            if isinstance(err, dict):
                err = str(err.get("message", "")).strip()
            if isinstance(err, str) and err.strip():
                return classify_engine_error(err) or err.strip()

            if str(obj.get("type", "")).lower() == "error":
                msg = obj.get("message") or obj.get("text") or ""
                return str(msg).strip() or "Unknown error"

        return ""
