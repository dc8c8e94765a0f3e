"""Pool of pre-warmed classifier subprocesses."""

import asyncio
import json
import logging
from collections import deque
from typing import Any

from feed_shield.adapters.oracle.prompt import SYSTEM_PROMPT, parse_verdict_array
from feed_shield.core.errors import ClassifierError, DecodeError

logger = logging.getLogger(__name__)


class ClassifierPool:
    """Keep a few classifier processes spawned and waiting on stdin.

    Spawning the CLI costs seconds, so processes are started ahead of
    time. Each one serves a single prompt; after every use the pool is
    topped up in the background. When the pool is empty a process is
    spawned on demand instead of waiting.
    """

    def __init__(
        self,
        command: str = "claude",
        model: str = "sonnet",
        size: int = 3,
        timeout: float = 60.0,
        system_prompt: str = SYSTEM_PROMPT,
    ) -> None:
        self.command = command
        self.model = model
        self.size = size
        self.timeout = timeout
        self.system_prompt = system_prompt
        self._warm: deque[asyncio.subprocess.Process] = deque()
        self._tasks: set[asyncio.Task] = set()
        self._started = False

    @property
    def warm_count(self) -> int:
        return sum(1 for proc in self._warm if proc.returncode is None)

    @property
    def is_warm(self) -> bool:
        return self._started and (self.warm_count > 0 or bool(self._tasks))

    def build_args(self) -> list[str]:
        # Prompt goes through stdin: post text starting with dashes
        # would otherwise be parsed as CLI flags
        return [
            self.command,
            "-p",
            "--system-prompt", self.system_prompt,
            "--output-format", "json",
            "--model", self.model,
            "--no-session-persistence",
            "--tools", "",
        ]

    async def start(self) -> None:
        """Fill the pool."""
        self._started = True
        await self._replenish()
        logger.info("Classifier pool started with %d warm processes", self.warm_count)

    async def stop(self) -> None:
        """Cancel replenishment and kill idle processes."""
        for task in list(self._tasks):
            task.cancel()
        if self._tasks:
            await asyncio.gather(*self._tasks, return_exceptions=True)
        while self._warm:
            proc = self._warm.popleft()
            if proc.returncode is None:
                proc.kill()
                await proc.wait()
        self._started = False

    async def classify(self, prompt: str) -> list[Any]:
        """Run one prompt through a pooled process.

        Raises:
            ClassifierError: On spawn failure, timeout, non-zero exit or
                unparseable output
        """
        proc = await self._acquire()
        self._schedule_replenish()

        try:
            stdout, stderr = await asyncio.wait_for(
                proc.communicate(prompt.encode("utf-8")), timeout=self.timeout
            )
        except asyncio.TimeoutError as e:
            proc.kill()
            await proc.wait()
            raise ClassifierError(f"classifier timed out after {self.timeout:.0f}s") from e

        if proc.returncode != 0:
            raise ClassifierError(
                f"classifier exited with code {proc.returncode}: {stderr.decode('utf-8', 'replace')}"
            )

        return parse_classifier_output(stdout.decode("utf-8", "replace"))

    async def _acquire(self) -> asyncio.subprocess.Process:
        while self._warm:
            proc = self._warm.popleft()
            if proc.returncode is None:
                return proc
        logger.info("Classifier pool empty, spawning on demand")
        return await self._spawn()

    async def _spawn(self) -> asyncio.subprocess.Process:
        try:
            return await asyncio.create_subprocess_exec(
                *self.build_args(),
                stdin=asyncio.subprocess.PIPE,
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.PIPE,
            )
        except OSError as e:
            raise ClassifierError(f"Failed to spawn {self.command}: {e}") from e

    def _schedule_replenish(self) -> None:
        if self._tasks:
            # A running top-up loop already fills up to size
            return
        task = asyncio.create_task(self._replenish())
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)

    async def _replenish(self) -> None:
        while self._started and len(self._warm) < self.size:
            try:
                proc = await self._spawn()
            except ClassifierError as e:
                logger.error("Could not replenish classifier pool: %s", e)
                return
            self._warm.append(proc)


def parse_classifier_output(stdout: str) -> list[Any]:
    """Unwrap the CLI's JSON envelope and parse the verdict array.

    Raises:
        ClassifierError: If the output cannot be parsed
    """
    try:
        outer = json.loads(stdout)
    except json.JSONDecodeError:
        outer = None

    # --output-format json wraps the reply in {"result": "..."}
    result_text = outer.get("result") if isinstance(outer, dict) else None
    if not isinstance(result_text, str):
        result_text = stdout

    try:
        return parse_verdict_array(result_text)
    except DecodeError as e:
        raise ClassifierError(f"Failed to parse classifier output: {e}") from e
