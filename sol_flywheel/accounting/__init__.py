"""
Accounting module for the SOL Flywheel.

This module provides the StateManager, the sole owner of the in-memory
FlywheelState. Every mutation goes through ``mutate`` and is followed by a
synchronous, atomic full-file write of the state JSON, so readers of the file
never observe a partial write.
"""

import json
import os
import tempfile
from collections.abc import Callable
from pathlib import Path
from typing import Any

from pydantic import ValidationError

from sol_flywheel.core.exceptions import StateCorruptedError
from sol_flywheel.core.logger import logger
from sol_flywheel.core.models import FlywheelState


class StateManager:
    """
    Durable store for the flywheel state.

    Not safe for concurrent writers across processes. Within the process, all
    writers run on one event loop and ``mutate`` never awaits, so each
    mutation-and-save is atomic with respect to other coroutines.
    """

    def __init__(self, path: str | Path):
        """
        Initialize the state manager.

        Args:
            path: Location of the state JSON file
        """
        self.path = Path(path)
        self._state: FlywheelState | None = None

    @property
    def state(self) -> FlywheelState:
        if self._state is None:
            self._state = self.load()
        return self._state

    def load(self) -> FlywheelState:
        """
        Load the persisted state.

        Returns:
            The stored state, or a zero-value state on first run

        Raises:
            StateCorruptedError: If the file exists but cannot be parsed
        """
        if not self.path.exists():
            logger.info("No persisted state found, starting fresh", path=str(self.path))
            self._state = FlywheelState()
            return self._state

        try:
            data = json.loads(self.path.read_text(encoding="utf-8"))
            self._state = FlywheelState.model_validate(data)
        except (json.JSONDecodeError, ValidationError) as e:
            logger.error("Persisted state is corrupted", path=str(self.path), error=str(e))
            raise StateCorruptedError(f"Cannot parse state file {self.path}: {str(e)}") from e

        logger.info(
            "Persisted state loaded",
            path=str(self.path),
            running=self._state.running,
            history=len(self._state.history),
        )
        return self._state

    def save(self, state: FlywheelState) -> None:
        """
        Overwrite the state file with ``state``.

        The document is written to a temporary file in the same directory and
        moved into place, so the file is always either the old or the new state.
        """
        self.path.parent.mkdir(parents=True, exist_ok=True)
        payload = json.dumps(state.model_dump(mode="json", by_alias=True), indent=2)

        fd, tmp_path = tempfile.mkstemp(
            dir=self.path.parent, prefix=f".{self.path.name}.", suffix=".tmp"
        )
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as f:
                f.write(payload)
                f.flush()
                os.fsync(f.fileno())
            os.replace(tmp_path, self.path)
        except BaseException:
            Path(tmp_path).unlink(missing_ok=True)
            raise

        self._state = state

    def mutate(self, fn: Callable[[FlywheelState], Any]) -> FlywheelState:
        """
        Apply ``fn`` to a copy of the state and persist the result immediately.

        The in-memory state is replaced only once the write succeeded.

        Args:
            fn: Function that mutates the state in place

        Returns:
            The mutated state
        """
        state = self.state.model_copy(deep=True)
        fn(state)
        self.save(state)
        return state

    def set_running(self, running: bool) -> FlywheelState:
        """Flip the running flag and persist it."""
        state = self.mutate(lambda s: setattr(s, "running", running))
        logger.info("Flywheel running flag changed", running=running)
        return state

    def snapshot(self) -> FlywheelState:
        """A deep copy of the current state for readers."""
        return self.state.model_copy(deep=True)
