"""
Named callback hooks derived from the raw event stream.

Hooks and their callback arguments:
- run_started(run)
- run_finished(run)
- run_error(code, message)
- message_content_appended(message_id, delta)
- message_completed(message)
- tool_call_resolved(name, arguments)
- state_changed(state, ok, error)
- step_started(step_name)
- step_finished(step_name)
- protocol_error(error)

Custom events are routed to channels keyed by their application-defined
name (e.g. "suggested_questions"); channel callbacks receive the event value.
"""
from enum import Enum
from typing import Any, Callable

from agui_runtime.protocols.agui.dispatcher import ListenerSet, SubscriptionHandle


class HookName(str, Enum):
    RUN_STARTED = "run_started"
    RUN_FINISHED = "run_finished"
    RUN_ERROR = "run_error"
    MESSAGE_CONTENT_APPENDED = "message_content_appended"
    MESSAGE_COMPLETED = "message_completed"
    TOOL_CALL_RESOLVED = "tool_call_resolved"
    STATE_CHANGED = "state_changed"
    STEP_STARTED = "step_started"
    STEP_FINISHED = "step_finished"
    PROTOCOL_ERROR = "protocol_error"


class RunHooks:
    """Registry of hook and custom channel callbacks for one run."""

    def __init__(self):
        self._hooks: dict[HookName, ListenerSet] = {
            hook: ListenerSet(hook.value) for hook in HookName
        }
        self._custom: dict[str, ListenerSet] = {}
        self._owners: dict[SubscriptionHandle, ListenerSet] = {}

    def attach(self, hook: HookName | str, callback: Callable[..., Any]) -> SubscriptionHandle:
        """
        Attach a callback to a named hook.

        Raises:
            ValueError: If the hook name is unknown
        """
        listeners = self._hooks[HookName(hook)]
        handle = listeners.attach(callback)
        self._owners[handle] = listeners
        return handle

    def attach_custom(self, name: str, callback: Callable[[Any], Any]) -> SubscriptionHandle:
        """Attach a callback to a custom event channel."""
        listeners = self._custom.setdefault(name, ListenerSet(f"custom:{name}"))
        handle = listeners.attach(callback)
        self._owners[handle] = listeners
        return handle

    def detach(self, handle: SubscriptionHandle) -> bool:
        listeners = self._owners.pop(handle, None)
        return listeners.detach(handle) if listeners is not None else False

    def emit(self, hook: HookName, *args: Any) -> None:
        self._hooks[hook].notify(*args)

    def emit_custom(self, name: str, value: Any) -> None:
        listeners = self._custom.get(name)
        if listeners is not None:
            listeners.notify(value)

    def clear(self) -> None:
        for listeners in self._hooks.values():
            listeners.clear()
        self._custom.clear()
        self._owners.clear()
