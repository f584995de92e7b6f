"""Single-use isolated execution context for one engine operation.

Lifecycle::

    session = WorkerSession(Stage.PROVE, "fibonacci")
    try:
        session.initialize()            # isolated context loads the engine
        session.dispatch(request)       # exactly one request
        response = session.wait()       # exactly one StageResponse
    finally:
        session.terminate()             # always, on every path

The isolated context is a ``multiprocessing`` process (``spawn`` by default,
so nothing leaks in from the coordinator) or, for in-process engines, a
daemon thread. Everything the engine raises is converted into a failure
response inside the context; the coordinator only ever sees messages.
"""
from __future__ import annotations

import logging
import multiprocessing
import threading
import time
import uuid
from multiprocessing.process import BaseProcess
from typing import Any, Optional

from .engine import EngineSpec, execute, load_engine
from .protocol import ErrorKind, ProtocolError, StageError, StageRequest, StageResponse
from .stages import Stage

logger = logging.getLogger(__name__)

ISOLATION_MODES = ("process", "thread")

_READY = "ready"
_RESPONSE = "response"


class SessionError(RuntimeError):
    """The session was driven out of order (e.g. dispatched twice)."""


class SessionFailure(Exception):
    """The session could not produce a response; carries the typed error."""

    def __init__(self, error: StageError) -> None:
        super().__init__(str(error))
        self.error = error


def _send(conn: Any, message: tuple[str, Any]) -> bool:
    try:
        conn.send(message)
    except (BrokenPipeError, EOFError, OSError):
        return False
    return True


def _session_main(stage_value: str, engine_spec: EngineSpec, conn: Any) -> None:
    """Body of the isolated context: load, receive one request, answer once."""
    stage = Stage(stage_value)
    try:
        try:
            engine = load_engine(engine_spec)
            engine.initialize()
        except Exception as exc:
            failure = StageResponse(error=StageError.from_exception(exc, ErrorKind.INITIALIZATION))
            _send(conn, (_RESPONSE, failure.to_wire(stage)))
            return
        if not _send(conn, (_READY, {"engine": engine.name, "version": engine.version})):
            return

        try:
            message = conn.recv()
        except (EOFError, OSError):
            return

        try:
            response = execute(engine, stage, StageRequest.from_wire(message))
        except Exception as exc:
            response = StageResponse(error=StageError.from_exception(exc))

        try:
            conn.send((_RESPONSE, response.to_wire(stage)))
        except (BrokenPipeError, EOFError, OSError):
            return
        except Exception as exc:  # payload could not be pickled
            failure = StageResponse.failure(ErrorKind.COMPUTATION, f"unserializable response: {exc}")
            _send(conn, (_RESPONSE, failure.to_wire(stage)))
    finally:
        conn.close()


class WorkerSession:
    """Isolated, single-use handle hosting exactly one engine operation."""

    def __init__(
        self,
        stage: Stage | str,
        engine: EngineSpec,
        *,
        isolation: str = "process",
        start_method: str = "spawn",
        poll_interval: float = 0.05,
        session_id: str | None = None,
    ) -> None:
        if isolation not in ISOLATION_MODES:
            raise ValueError(f"isolation must be one of {ISOLATION_MODES}, got {isolation!r}")
        self.stage = Stage.parse(stage)
        self.engine = engine
        self.isolation = isolation
        self.start_method = start_method
        self.poll_interval = poll_interval
        self.session_id = session_id or uuid.uuid4().hex[:12]
        self.engine_info: dict[str, Any] = {}

        self._conn: Any = None
        self._worker: BaseProcess | threading.Thread | None = None
        self._ready = False
        self._dispatched = False
        self._response: Optional[StageResponse] = None
        self._closed = False

    def __repr__(self) -> str:
        return f"WorkerSession({self.stage.value}, id={self.session_id}, isolation={self.isolation})"

    def __enter__(self) -> "WorkerSession":
        return self

    def __exit__(self, *exc_info: Any) -> None:
        self.terminate()

    @property
    def closed(self) -> bool:
        return self._closed

    @property
    def alive(self) -> bool:
        return self._worker is not None and self._worker.is_alive()

    def _start(self) -> None:
        name = f"proofpipe-{self.stage.value}-{self.session_id}"
        if self.isolation == "process":
            ctx = multiprocessing.get_context(self.start_method)
            parent_conn, child_conn = ctx.Pipe()
            worker = ctx.Process(
                target=_session_main,
                args=(self.stage.value, self.engine, child_conn),
                name=name,
                daemon=True,
            )
        else:
            parent_conn, child_conn = multiprocessing.Pipe()
            worker = threading.Thread(
                target=_session_main,
                args=(self.stage.value, self.engine, child_conn),
                name=name,
                daemon=True,
            )
        try:
            worker.start()
        except Exception as exc:
            # e.g. an engine factory that cannot be pickled for spawn
            parent_conn.close()
            child_conn.close()
            raise SessionFailure(
                StageError.from_exception(exc, ErrorKind.INITIALIZATION)
            ) from exc
        self._conn, self._worker = parent_conn, worker
        if isinstance(worker, BaseProcess):
            # the child holds its own copy; dropping ours lets EOF surface if it dies
            child_conn.close()

    def _receive(self, timeout: float | None, abort: threading.Event | None) -> tuple[str, Any]:
        deadline = None if timeout is None else time.monotonic() + timeout
        while True:
            if abort is not None and abort.is_set():
                raise SessionFailure(StageError(ErrorKind.CANCELLED, f"{self.stage.value} cancelled"))
            wait_for = self.poll_interval
            if deadline is not None:
                remaining = deadline - time.monotonic()
                if remaining <= 0:
                    raise SessionFailure(
                        StageError(ErrorKind.TIMEOUT, f"{self.stage.value} produced no response within {timeout:g}s")
                    )
                wait_for = min(wait_for, remaining)
            try:
                if self._conn.poll(wait_for):
                    return self._conn.recv()
                if not self.alive and not self._conn.poll(0):
                    raise SessionFailure(
                        StageError(ErrorKind.CHANNEL, f"{self.stage.value} worker exited without responding")
                    )
            except (EOFError, OSError) as exc:
                raise SessionFailure(
                    StageError(ErrorKind.CHANNEL, f"{self.stage.value} channel closed: {str(exc) or type(exc).__name__}")
                ) from exc

    def initialize(self, timeout: float | None = None, abort: threading.Event | None = None) -> None:
        """Start the isolated context and wait until the engine is loaded.

        Raises :class:`SessionFailure` if the engine cannot be prepared.
        """
        if self._closed:
            raise SessionError("session already terminated")
        if self._worker is not None:
            raise SessionError("session already initialized")
        self._start()
        logger.debug("session %s started for %s", self.session_id, self.stage.value)
        kind, body = self._receive(timeout, abort)
        if kind == _READY:
            self._ready = True
            self.engine_info = dict(body or {})
            return
        try:
            response = StageResponse.from_wire(self.stage, body)
        except ProtocolError as exc:
            raise SessionFailure(StageError(ErrorKind.CHANNEL, f"malformed handshake: {exc}")) from exc
        error = response.error or StageError(ErrorKind.CHANNEL, "session answered before receiving a request")
        raise SessionFailure(error)

    def dispatch(self, request: StageRequest) -> None:
        """Send the session's one and only request."""
        if self._closed:
            raise SessionError("session already terminated")
        if not self._ready:
            raise SessionError("session must be initialized before dispatch")
        if self._dispatched:
            raise SessionError("a session dispatches exactly one request")
        self._dispatched = True
        try:
            self._conn.send(request.to_wire())
        except (BrokenPipeError, EOFError, OSError) as exc:
            raise SessionFailure(StageError(ErrorKind.CHANNEL, f"failed to send request: {exc}")) from exc

    def wait(self, timeout: float | None = None, abort: threading.Event | None = None) -> StageResponse:
        """Block until the single response arrives (or timeout/abort/channel loss)."""
        if self._response is not None:
            return self._response
        if not self._dispatched:
            raise SessionError("nothing dispatched")
        try:
            kind, body = self._receive(timeout, abort)
            if kind != _RESPONSE:
                raise SessionFailure(StageError(ErrorKind.CHANNEL, f"unexpected {kind!r} message"))
            response = StageResponse.from_wire(self.stage, body)
        except SessionFailure as failure:
            response = StageResponse(error=failure.error)
        except ProtocolError as exc:
            response = StageResponse.failure(ErrorKind.CHANNEL, f"malformed response: {exc}")
        self._response = response
        return response

    def terminate(self) -> None:
        """Tear the isolated context down. Safe to call more than once."""
        if self._closed:
            return
        self._closed = True
        if self._conn is not None:
            self._conn.close()
        worker = self._worker
        if isinstance(worker, BaseProcess) and worker.pid is not None:
            if worker.is_alive():
                worker.terminate()
            worker.join(timeout=5)
            if worker.is_alive():  # pragma: no cover - SIGTERM ignored
                worker.kill()
                worker.join()
        # threads cannot be killed; a thread still computing exits once its
        # send hits the closed channel
        logger.debug("session %s terminated", self.session_id)


__all__ = [
    "ISOLATION_MODES",
    "SessionError",
    "SessionFailure",
    "WorkerSession",
]
