"""
AG-UI state synchronization.

Maintains the agent's JSON-like state for one run. Snapshots replace the
state wholesale; deltas apply an ordered batch of add/replace/remove
operations all-or-nothing.
"""
from copy import deepcopy
from typing import Any, Iterable, Mapping

from pydantic import ValidationError

from agui_runtime.domain.exceptions import PatchApplicationError
from agui_runtime.infrastructure.observability.logging import get_logger
from agui_runtime.protocols.agui.events import PatchOp, PatchOperation

logger = get_logger(__name__)


def parse_path(path: str) -> list[str]:
    """
    Split a state path into tokens.

    Paths starting with "/" are JSON pointers (with ~1 and ~0 escapes);
    anything else is a dot path. The empty string addresses the root.
    """
    if path == "":
        return []
    if path.startswith("/"):
        return [t.replace("~1", "/").replace("~0", "~") for t in path[1:].split("/")]
    return path.split(".")


class StateSynchronizer:
    """
    Owner of one run's agent state.

    Features:
    - Full state snapshots
    - Atomic patch batches (the whole batch is rejected on any failure)
    - Copy-on-read access
    - State versioning
    """

    def __init__(self, initial: Mapping[str, Any] | None = None):
        self._state: dict[str, Any] = deepcopy(dict(initial)) if initial else {}
        self._version: int = 1

    @property
    def version(self) -> int:
        return self._version

    def read(self) -> dict[str, Any]:
        """
        Get current state.

        Returns:
            A deep copy of the state; mutating it does not affect the runtime
        """
        return deepcopy(self._state)

    def get_value(self, path: str, default: Any = None) -> Any:
        """
        Get value from state by path.

        Args:
            path: Dot path or JSON pointer (e.g., "user.settings.theme")
            default: Default value if path doesn't exist

        Returns:
            Copy of the value at path or default
        """
        try:
            return deepcopy(_resolve(self._state, parse_path(path), path))
        except PatchApplicationError:
            return default

    def apply_snapshot(self, snapshot: Mapping[str, Any]) -> dict[str, Any]:
        """
        Replace the state wholesale.

        Args:
            snapshot: New state mapping

        Returns:
            Copy of the new state
        """
        self._state = deepcopy(dict(snapshot))
        self._version += 1
        logger.debug("state snapshot applied", version=self._version, keys=len(self._state))
        return self.read()

    def apply_delta(self, operations: Iterable[PatchOperation | Mapping[str, Any]]) -> dict[str, Any]:
        """
        Apply an ordered batch of patch operations atomically.

        Args:
            operations: Patch operations, applied in order

        Returns:
            Copy of the new state

        Raises:
            PatchApplicationError: If any operation fails; the state is unchanged
        """
        working = deepcopy(self._state)

        for index, raw in enumerate(operations):
            operation = _coerce_operation(raw, index)
            try:
                working = _apply_operation(working, operation)
            except PatchApplicationError as e:
                e.details.setdefault("operation_index", index)
                e.details.setdefault("op", operation.op.value)
                e.details.setdefault("path", operation.path)
                logger.warning("state delta rejected", version=self._version, **e.details)
                raise

        self._state = working
        self._version += 1
        logger.debug("state delta applied", version=self._version)
        return self.read()

    def reset(self) -> None:
        """Reset state to empty."""
        self._state = {}
        self._version = 1


def _coerce_operation(raw: PatchOperation | Mapping[str, Any], index: int) -> PatchOperation:
    if isinstance(raw, PatchOperation):
        return raw
    try:
        return PatchOperation.model_validate(raw)
    except ValidationError as e:
        raise PatchApplicationError(
            "Malformed patch operation",
            details={"operation_index": index, "errors": e.errors(include_url=False, include_context=False)},
        ) from e


def _apply_operation(doc: dict[str, Any], operation: PatchOperation) -> dict[str, Any]:
    tokens = parse_path(operation.path)

    if not tokens:
        if operation.op == PatchOp.REMOVE:
            raise PatchApplicationError("Cannot remove the state root")
        if not isinstance(operation.value, Mapping):
            raise PatchApplicationError("State root must be an object")
        return deepcopy(dict(operation.value))

    parent = _resolve(doc, tokens[:-1], operation.path)
    key = tokens[-1]

    if isinstance(parent, dict):
        if operation.op == PatchOp.ADD:
            parent[key] = deepcopy(operation.value)
        elif key not in parent:
            raise PatchApplicationError(f"Path does not exist: {operation.path}")
        elif operation.op == PatchOp.REPLACE:
            parent[key] = deepcopy(operation.value)
        else:
            del parent[key]

    elif isinstance(parent, list):
        position = _list_index(key, len(parent), operation)
        if operation.op == PatchOp.ADD:
            parent.insert(position, deepcopy(operation.value))
        elif operation.op == PatchOp.REPLACE:
            parent[position] = deepcopy(operation.value)
        else:
            del parent[position]

    else:
        raise PatchApplicationError(f"Parent of {operation.path} is not a container")

    return doc


def _resolve(doc: Any, tokens: list[str], path: str) -> Any:
    current = doc
    for token in tokens:
        if isinstance(current, dict):
            if token not in current:
                raise PatchApplicationError(f"Path does not exist: {path}")
            current = current[token]
        elif isinstance(current, list):
            if not _is_index(token) or int(token) >= len(current):
                raise PatchApplicationError(f"Path does not exist: {path}")
            current = current[int(token)]
        else:
            raise PatchApplicationError(f"Path does not exist: {path}")
    return current


def _is_index(token: str) -> bool:
    return token.isdigit() and (token == "0" or not token.startswith("0"))


def _list_index(token: str, length: int, operation: PatchOperation) -> int:
    if operation.op == PatchOp.ADD:
        if token == "-":
            return length
        if _is_index(token) and int(token) <= length:
            return int(token)
    elif _is_index(token) and int(token) < length:
        return int(token)
    raise PatchApplicationError(f"Invalid array index in {operation.path}")
