# observer.py
# Progress notifications to the surrounding application.
#
# The core calls these hooks synchronously and ignores their return values.
# A hook that raises is logged and otherwise ignored: observers can never
# break a run or a registry operation.

import logging
from typing import Any, Protocol

from mcp_relay import display
from mcp_relay.models import SessionInfo

logger = logging.getLogger(__name__)


class ProgressObserver(Protocol):
    def on_tool_call(self, name: str, arguments: dict[str, Any]) -> None: ...

    def on_tool_result(self, name: str, result: Any) -> None: ...

    def on_final_response(self, text: str) -> None: ...

    def on_session_list_changed(self, sessions: list[SessionInfo]) -> None: ...


class NullObserver:
    """Default observer. Every hook is a no-op."""

    def on_tool_call(self, name: str, arguments: dict[str, Any]) -> None:
        pass

    def on_tool_result(self, name: str, result: Any) -> None:
        pass

    def on_final_response(self, text: str) -> None:
        pass

    def on_session_list_changed(self, sessions: list[SessionInfo]) -> None:
        pass


class ConsoleObserver(NullObserver):
    """Renders progress to the terminal through display.py."""

    def on_tool_call(self, name: str, arguments: dict[str, Any]) -> None:
        display.tool_call(name, arguments)

    def on_tool_result(self, name: str, result: Any) -> None:
        display.tool_result(name, result)

    def on_final_response(self, text: str) -> None:
        display.final_result(text)

    def on_session_list_changed(self, sessions: list[SessionInfo]) -> None:
        display.session_list(sessions)


def notify(observer: ProgressObserver | None, hook: str, *args: Any) -> None:
    """Invoke `observer.<hook>(*args)` best-effort."""
    if observer is None:
        return
    callback = getattr(observer, hook, None)
    if callback is None:
        return
    try:
        callback(*args)
    except Exception:
        logger.exception("Observer hook %s failed; continuing.", hook)
