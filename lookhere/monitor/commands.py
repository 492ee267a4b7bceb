"""Operator command queue.

UI-originated actions are immutable command objects placed on one queue and
carried out by a single dispatcher thread. ``submit`` returns a future that
resolves to the command's result or raises its :class:`OperatorError`.
"""

from __future__ import annotations

import logging
import queue
import threading
from concurrent.futures import Future
from dataclasses import dataclass
from typing import Any, Callable

from lookhere.errors import OperatorError
from lookhere.monitor.manager import SessionManager

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class SelectAgent:
    session_id: str


@dataclass(frozen=True)
class ToggleStream:
    pass


@dataclass(frozen=True)
class SendNotice:
    text: str


@dataclass(frozen=True)
class Shutdown:
    pass


Command = SelectAgent | ToggleStream | SendNotice | Shutdown

_STOP = object()


class CommandDispatcher:
    """Consumes operator commands and applies them to the session manager."""

    def __init__(
        self,
        manager: SessionManager,
        on_shutdown: Callable[[], None] | None = None,
    ) -> None:
        self.manager = manager
        self.on_shutdown = on_shutdown
        self._queue: queue.Queue = queue.Queue()
        self._thread: threading.Thread | None = None

    def start(self) -> None:
        self._thread = threading.Thread(
            target=self._run, name="command-dispatcher", daemon=True
        )
        self._thread.start()

    def stop(self) -> None:
        self._queue.put((_STOP, None))
        if self._thread and self._thread is not threading.current_thread():
            self._thread.join(timeout=2.0)

    def submit(self, command: Command) -> Future:
        future: Future = Future()
        self._queue.put((command, future))
        return future

    def _run(self) -> None:
        while True:
            command, future = self._queue.get()
            if command is _STOP:
                break
            if not future.set_running_or_notify_cancel():
                continue
            try:
                future.set_result(self.execute(command))
            except OperatorError as e:
                self.manager.notifier.notify(e.level, str(e))
                future.set_exception(e)
            except Exception as e:
                logger.exception("Command %r failed", command)
                future.set_exception(e)

    def execute(self, command: Command) -> Any:
        if isinstance(command, SelectAgent):
            return self.manager.select(command.session_id).to_dict()
        if isinstance(command, ToggleStream):
            return self.manager.toggle_stream()
        if isinstance(command, SendNotice):
            self.manager.send_notice(command.text)
            return None
        if isinstance(command, Shutdown):
            removed = self.manager.shutdown()
            if self.on_shutdown:
                self.on_shutdown()
            return removed
        raise TypeError(f"Unknown command: {command!r}")
