"""Pipeline invocation: run the external analysis process for one image.

Each invocation gets a fresh process so the pipeline starts from fresh
internal state. The process inherits this process's environment as-is:
API credentials reach it through the ambient environment and are never
injected or logged here.

The pipeline resets a shared knowledge-graph store at the start of every
run, so two overlapping runs corrupt each other. Attachments of one
message are already processed one at a time; ``exclusive=True`` extends
that to every caller sharing the invoker instance.
"""

import asyncio
import codecs
import logging
import os
from dataclasses import dataclass, field
from typing import Optional

from .errors import InvocationError

logger = logging.getLogger("chronos_relay.pipeline")

_READ_SIZE = 4096


@dataclass
class PipelineInvocation:
    """One run of the external pipeline and everything it produced."""
    argv: list[str]
    cwd: Optional[str] = None
    stdout: str = ""
    stderr: str = ""
    exit_code: Optional[int] = None
    launch_error: Optional[str] = None
    timed_out: bool = False
    consumed: bool = field(default=False, repr=False)

    @property
    def succeeded(self) -> bool:
        return self.launch_error is None and not self.timed_out and self.exit_code == 0

    @property
    def status(self) -> str:
        if self.launch_error is not None:
            return "launch_error"
        return "completed" if self.succeeded else "failed"

    def raise_for_status(self) -> "PipelineInvocation":
        """Raise InvocationError unless the pipeline exited with code 0."""
        if self.launch_error is not None:
            raise InvocationError(f"Pipeline could not be started: {self.launch_error}")
        if self.timed_out:
            raise InvocationError(
                "Pipeline timed out and was terminated",
                exit_code=self.exit_code,
                stderr=self.stderr,
                timed_out=True,
            )
        if self.exit_code != 0:
            raise InvocationError(
                f"Pipeline failed with exit code {self.exit_code}",
                exit_code=self.exit_code,
                stderr=self.stderr,
            )
        return self

    def take_stdout(self) -> str:
        """Hand stdout to the result extractor. Allowed once per invocation."""
        if self.consumed:
            raise RuntimeError("pipeline output already consumed")
        self.consumed = True
        return self.stdout


class PipelineInvoker:
    """Launches ``<python> <script> <image_path> <user_id>`` and collects output."""

    def __init__(
        self,
        python: str,
        script: str,
        cwd: Optional[str] = None,
        timeout: Optional[float] = None,
        exclusive: bool = False,
    ):
        self.python = python
        self.script = script
        self.cwd = cwd
        self.timeout = timeout
        self._lock: Optional[asyncio.Lock] = asyncio.Lock() if exclusive else None

    @property
    def exclusive(self) -> bool:
        return self._lock is not None

    @property
    def script_path(self) -> str:
        """Where the child process will find the script (relative to ``cwd`` if set)."""
        if self.cwd and not os.path.isabs(self.script):
            return os.path.join(self.cwd, self.script)
        return self.script

    def build_argv(self, image_path: str, user_id: str) -> list[str]:
        return [self.python, self.script, image_path, user_id]

    async def invoke(self, image_path: str, user_id: str) -> PipelineInvocation:
        """Run the pipeline to completion. Never raises for pipeline failures.

        Launch failures, non-zero exits and timeouts are all recorded on the
        returned invocation; call ``raise_for_status()`` to turn them into
        an InvocationError.
        """
        if self._lock is None:
            return await self._run(image_path, user_id)
        if self._lock.locked():
            logger.info("Pipeline busy, waiting for the running analysis to finish")
        async with self._lock:
            return await self._run(image_path, user_id)

    @staticmethod
    async def _drain(stream: asyncio.StreamReader, sink: list[str], level: int, label: str):
        decoder = codecs.getincrementaldecoder("utf-8")(errors="replace")
        while True:
            data = await stream.read(_READ_SIZE)
            if not data:
                break
            text = decoder.decode(data)
            if text:
                sink.append(text)
                if text.strip():
                    logger.log(level, f"[{label}] {text.strip()}")
        tail = decoder.decode(b"", final=True)
        if tail:
            sink.append(tail)

    async def _run(self, image_path: str, user_id: str) -> PipelineInvocation:
        argv = self.build_argv(image_path, user_id)
        invocation = PipelineInvocation(argv=argv, cwd=self.cwd)
        logger.info(f"Running pipeline: {' '.join(argv)}")

        if not os.path.isfile(self.script_path):
            invocation.launch_error = f"pipeline script not found: {self.script_path}"
            logger.error(f"Failed to start pipeline: {invocation.launch_error}")
            return invocation

        try:
            proc = await asyncio.create_subprocess_exec(
                *argv,
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.PIPE,
                cwd=self.cwd,
            )
        except OSError as e:
            invocation.launch_error = f"{type(e).__name__}: {e}"
            logger.error(f"Failed to start pipeline ({self.python}): {e}")
            return invocation

        out: list[str] = []
        err: list[str] = []
        collect = asyncio.gather(
            self._drain(proc.stdout, out, logging.INFO, "pipeline"),
            self._drain(proc.stderr, err, logging.WARNING, "pipeline stderr"),
            proc.wait(),
        )
        try:
            if self.timeout:
                await asyncio.wait_for(collect, timeout=self.timeout)
            else:
                await collect
        except asyncio.TimeoutError:
            invocation.timed_out = True
            logger.error(f"Pipeline exceeded {self.timeout}s, terminating pid {proc.pid}")
            await self._kill(proc)
        except asyncio.CancelledError:
            await self._kill(proc)
            raise

        invocation.stdout = "".join(out)
        invocation.stderr = "".join(err)
        invocation.exit_code = proc.returncode

        logger.info(f"Pipeline exited with code {invocation.exit_code}")
        if not invocation.succeeded:
            logger.error(f"Pipeline failed ({invocation.status}), stderr: {invocation.stderr[-2000:]}")
        return invocation

    @staticmethod
    async def _kill(proc: asyncio.subprocess.Process):
        try:
            proc.kill()
        except ProcessLookupError:
            pass
        await proc.wait()
