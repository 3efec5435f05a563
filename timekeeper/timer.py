"""Running timer with a local slot that survives reloads.

The slot holds the serialized state of a running timer. It is rewritten on
every change while the timer runs and removed once a stop has been saved or
the timer is reset. A saved state older than ``TIMER_MAX_AGE_HOURS`` is
dropped instead of resumed.
"""
import json
import logging
from datetime import datetime, timedelta
from pathlib import Path
from typing import Any, Callable, Dict, List, Optional

from .config import TIMER_MAX_AGE_HOURS
from .errors import TimerValidationError
from .periods import parse_timestamp

logger = logging.getLogger(__name__)

DESCRIPTION_REQUIRED = "Please enter a description of what you are working on"
NOT_STARTED = "Timer was not started properly"


class TimerSlot:
    """A single named JSON slot on local disk."""

    def __init__(self, path):
        self.path = Path(path)

    def load(self) -> Optional[Dict[str, Any]]:
        try:
            raw = self.path.read_text(encoding="utf-8")
        except FileNotFoundError:
            return None
        try:
            state = json.loads(raw)
        except ValueError:
            logger.error("Discarding unreadable timer state in %s", self.path)
            self.clear()
            return None
        if not isinstance(state, dict):
            logger.error("Discarding malformed timer state in %s", self.path)
            self.clear()
            return None
        return state

    def save(self, state: Dict[str, Any]) -> None:
        self.path.parent.mkdir(parents=True, exist_ok=True)
        self.path.write_text(json.dumps(state), encoding="utf-8")

    def clear(self) -> None:
        try:
            self.path.unlink()
        except FileNotFoundError:
            pass


def slot_for_user(directory, user_id: str) -> TimerSlot:
    return TimerSlot(Path(directory) / f"{user_id}.json")


class TimeTracker:
    def __init__(self, slot: TimerSlot, clock: Callable[[], datetime] = datetime.now):
        self.slot = slot
        self.clock = clock
        self.restored = False
        self._clear_fields()

    def _clear_fields(self) -> None:
        self.is_running = False
        self.start_time: Optional[datetime] = None
        self.description = ""
        self.project_id: Optional[str] = None
        self.task_id: Optional[str] = None
        self.tags: List[str] = []
        self.is_billable = True

    def to_state(self) -> Dict[str, Any]:
        return {
            "isRunning": self.is_running,
            "startTime": self.start_time.isoformat() if self.start_time else None,
            "description": self.description,
            "projectId": self.project_id,
            "taskId": self.task_id,
            "tags": list(self.tags),
            "isBillable": self.is_billable,
        }

    def _persist(self) -> None:
        if self.is_running:
            self.slot.save(self.to_state())

    def restore(self, now: Optional[datetime] = None) -> bool:
        """Resume a saved running timer if it is recent enough."""
        state = self.slot.load()
        if not state or not state.get("isRunning") or not state.get("startTime"):
            return False

        started = parse_timestamp(state["startTime"])
        if started is None:
            logger.error("Discarding timer state with bad start time %r", state.get("startTime"))
            self.slot.clear()
            return False

        if now is None:
            now = self.clock()
        if started > now:
            logger.error("Discarding timer state that starts in the future (%s)", started.isoformat())
            self.slot.clear()
            return False
        if now - started >= timedelta(hours=TIMER_MAX_AGE_HOURS):
            logger.info("Saved timer from %s is too old, clearing it", started.isoformat())
            self.slot.clear()
            return False

        self.is_running = True
        self.start_time = started
        self.description = state.get("description") or ""
        self.project_id = state.get("projectId")
        self.task_id = state.get("taskId")
        self.tags = list(state.get("tags") or [])
        self.is_billable = state.get("isBillable", True) is not False
        self.restored = True
        logger.info("Timer state restored")
        return True

    def start(self, now: Optional[datetime] = None) -> None:
        if self.is_running:
            return
        self.start_time = now or self.clock()
        self.is_running = True
        self._persist()

    def update(self, **fields) -> None:
        for key in ("description", "project_id", "task_id", "tags", "is_billable"):
            if key in fields:
                setattr(self, key, fields[key])
        if "project_id" in fields and "task_id" not in fields:
            # a task only makes sense inside its project
            self.task_id = None
        self._persist()

    def elapsed(self, now: Optional[datetime] = None) -> int:
        if not self.is_running or self.start_time is None:
            return 0
        now = now or self.clock()
        return max(0, int((now - self.start_time).total_seconds()))

    def stop(self, now: Optional[datetime] = None, persist: Optional[Callable[[Dict[str, Any]], Any]] = None) -> Dict[str, Any]:
        """Finish the running timer and return the new time entry's fields.

        A blank description or a timer that never started is rejected with
        ``TimerValidationError`` and leaves the saved slot as it was. When
        ``persist`` is given it receives the entry fields; the slot is cleared
        only after it returns.
        """
        if not self.description.strip():
            raise TimerValidationError(DESCRIPTION_REQUIRED)
        if not self.is_running or self.start_time is None:
            raise TimerValidationError(NOT_STARTED)

        end = now or self.clock()
        entry = {
            "description": self.description.strip(),
            "project_id": self.project_id,
            "task_id": self.task_id,
            "start_time": self.start_time,
            "end_time": end,
            "duration": max(0, int((end - self.start_time).total_seconds())),
            "is_billable": self.is_billable,
            "tags": list(self.tags),
        }
        if persist is not None:
            persist(entry)
        self._clear_fields()
        self.slot.clear()
        return entry

    def reset(self, confirmed: bool = False) -> bool:
        if not confirmed:
            return False
        self._clear_fields()
        self.slot.clear()
        return True
