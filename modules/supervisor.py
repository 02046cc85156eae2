"""
Process supervision.

The storage API listener and the mock engine child run side by side on one
asyncio loop. Whichever goes first takes the other down with it:

  STARTING → RUNNING        child spawned, listener serving
  RUNNING  → SHUTTING_DOWN  SIGINT/SIGTERM, child exit, uncaught error,
                            or the listener closing on its own
  SHUTTING_DOWN → TERMINATED  listener finished closing; exit callback fires

The shutdown body runs once no matter how many triggers fire. The child is
sent SIGTERM and never awaited, so a hung engine cannot hold the listener open.
"""

import asyncio
import contextlib
import enum
import logging
import signal
from typing import Awaitable, Callable, Protocol

import uvicorn
from fastapi import FastAPI

from modules.engine import exit_code_for

logger = logging.getLogger(__name__)

TERMINATION_SIGNALS = (signal.SIGINT, signal.SIGTERM)


class State(enum.Enum):
    STARTING = "starting"
    RUNNING = "running"
    SHUTTING_DOWN = "shutting_down"
    TERMINATED = "terminated"


class Listener(Protocol):
    async def serve(self) -> None: ...

    def close(self) -> None: ...


class Child(Protocol):
    returncode: int | None

    async def wait(self) -> int: ...

    def terminate(self) -> None: ...


class _Server(uvicorn.Server):
    """uvicorn server that leaves signal handling to the supervisor."""

    @contextlib.contextmanager
    def capture_signals(self):
        yield

    def install_signal_handlers(self) -> None:
        pass


class UvicornListener:
    def __init__(self, app: FastAPI, host: str, port: int):
        self._server = _Server(uvicorn.Config(app, host=host, port=port, log_config=None))

    async def serve(self) -> None:
        await self._server.serve()

    def close(self) -> None:
        self._server.should_exit = True


def spawn_engine(binary: str, args: list[str]) -> Callable[[], Awaitable[Child]]:
    """Factory for the engine child; stdio is inherited."""

    async def spawn() -> Child:
        logger.info("Starting %s %s", binary, " ".join(args))
        return await asyncio.create_subprocess_exec(binary, *args)

    return spawn


class Supervisor:
    def __init__(
        self,
        listener: Listener,
        spawn_child: Callable[[], Awaitable[Child]],
        exit_func: Callable[[int], None] | None = None,
        install_signal_handlers: bool = True,
    ):
        self.listener = listener
        self.state = State.STARTING
        self.exit_code = 0
        self._spawn_child = spawn_child
        self._exit_func = exit_func
        self._install_signals = install_signal_handlers
        self._child: Child | None = None

    # ── Triggers ──────────────────────────────────────────────────────────────

    def shutdown(self, exit_code: int = 0) -> None:
        if self.state in (State.SHUTTING_DOWN, State.TERMINATED):
            return
        self.state = State.SHUTTING_DOWN
        self.exit_code = exit_code
        logger.info("Shutting down (exit code %d)", exit_code)

        self.listener.close()

        child = self._child
        if child is not None and child.returncode is None:
            try:
                child.terminate()
            except ProcessLookupError:
                pass

    def handle_signal(self, signum: int) -> None:
        logger.info("Received %s", signal.Signals(signum).name)
        self.shutdown(0)

    def handle_error(self, exc: BaseException | None, message: str = "Uncaught exception") -> None:
        logger.error(message, exc_info=exc)
        self.shutdown(1)

    def listener_closed(self) -> None:
        if self.state is State.TERMINATED:
            return
        self.shutdown(self.exit_code)
        self.state = State.TERMINATED
        if self._exit_func is not None:
            self._exit_func(self.exit_code)

    # ── Loop wiring ───────────────────────────────────────────────────────────

    async def _watch_child(self, child: Child) -> None:
        returncode = await child.wait()
        if self.state is not State.RUNNING:
            return
        logger.info("Engine exited with code %s", returncode)
        self.shutdown(exit_code_for(returncode))

    def _loop_exception(self, loop: asyncio.AbstractEventLoop, context: dict) -> None:
        self.handle_error(context.get("exception"), context.get("message", "Unhandled error in event loop"))

    def _add_signal_handlers(self, loop: asyncio.AbstractEventLoop) -> None:
        for sig in TERMINATION_SIGNALS:
            try:
                loop.add_signal_handler(sig, self.handle_signal, sig)
            except NotImplementedError:
                signal.signal(sig, lambda s, _frame: loop.call_soon_threadsafe(self.handle_signal, s))

    def _remove_signal_handlers(self, loop: asyncio.AbstractEventLoop) -> None:
        for sig in TERMINATION_SIGNALS:
            with contextlib.suppress(NotImplementedError, ValueError):
                loop.remove_signal_handler(sig)

    async def run(self) -> int:
        """Spawn the child, serve until shutdown, return the chosen exit code."""
        loop = asyncio.get_running_loop()
        loop.set_exception_handler(self._loop_exception)
        if self._install_signals:
            self._add_signal_handlers(loop)

        self._child = await self._spawn_child()
        watcher = asyncio.create_task(self._watch_child(self._child))
        if self.state is State.STARTING:
            self.state = State.RUNNING
        else:
            # A trigger fired while the child was being spawned.
            self._child.terminate()

        try:
            await self.listener.serve()
        except (Exception, SystemExit) as exc:
            # uvicorn exits through SystemExit when it cannot bind
            self.handle_error(exc, "Storage API listener failed")
        finally:
            self.listener_closed()
            watcher.cancel()
            if self._install_signals:
                self._remove_signal_handlers(loop)

        return self.exit_code
