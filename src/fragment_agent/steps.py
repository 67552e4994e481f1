# steps.py
# Durable step execution.
#
# Guarantees: a step name maps to at most one committed outcome per run.
# Once committed, re-running the step returns that outcome and never calls
# the action again. A failed action commits nothing and propagates.

import json
import os
from typing import Any, Callable

from pydantic import BaseModel, ConfigDict, ValidationError

from fragment_agent import display


class StepLogError(Exception):
    """Raised when the step log cannot be read, written, or would be overwritten."""


class StepRecord(BaseModel):
    """A committed (name, outcome) pair. Immutable once created."""

    model_config = ConfigDict(frozen=True)

    name: str
    outcome: Any = None


# ---------------------------------------------------------------------------
# Logs
# ---------------------------------------------------------------------------


class StepLog:
    """In-memory durability log. Private to one run."""

    def __init__(self) -> None:
        self._records: dict[str, StepRecord] = {}

    def get(self, name: str) -> StepRecord | None:
        return self._records.get(name)

    def commit(self, record: StepRecord) -> None:
        if record.name in self._records:
            raise StepLogError(f"Step '{record.name}' is already committed.")
        self._records[record.name] = record

    def records(self) -> list[StepRecord]:
        return list(self._records.values())


class JsonStepLog(StepLog):
    """
    Step log persisted as one JSON file per run.

    The file is loaded on construction, so a new process given the same
    run id replays every step the previous process committed.
    """

    def __init__(self, directory: str, run_id: str) -> None:
        super().__init__()
        self._path = os.path.join(directory, f"{run_id}.json")
        if os.path.exists(self._path):
            try:
                with open(self._path, encoding="utf-8") as fh:
                    raw = json.load(fh)
            except (OSError, json.JSONDecodeError) as exc:
                raise StepLogError(f"Cannot load step log {self._path}: {exc}") from exc
            if not isinstance(raw, list):
                raise StepLogError(f"Step log {self._path} is not a list of records.")
            try:
                records = [StepRecord.model_validate(item) for item in raw]
            except ValidationError as exc:
                raise StepLogError(f"Malformed record in step log {self._path}: {exc}") from exc
            for record in records:
                self._records[record.name] = record

    @property
    def path(self) -> str:
        return self._path

    def commit(self, record: StepRecord) -> None:
        super().commit(record)
        tmp_path = self._path + ".tmp"
        try:
            payload = [r.model_dump(mode="json") for r in self._records.values()]
            os.makedirs(os.path.dirname(os.path.abspath(self._path)), exist_ok=True)
            with open(tmp_path, "w", encoding="utf-8") as fh:
                json.dump(payload, fh, ensure_ascii=False, indent=2)
            os.replace(tmp_path, self._path)
        except (OSError, TypeError, ValueError) as exc:
            del self._records[record.name]
            raise StepLogError(f"Cannot persist step '{record.name}': {exc}") from exc


# ---------------------------------------------------------------------------
# Executor
# ---------------------------------------------------------------------------


class StepExecutor:
    """Runs named actions at most once per run, replaying committed outcomes."""

    def __init__(self, log: StepLog | None = None) -> None:
        self._log = log if log is not None else StepLog()

    @property
    def log(self) -> StepLog:
        return self._log

    def run(self, name: str, action: Callable[[], Any]) -> Any:
        committed = self._log.get(name)
        if committed is not None:
            display.step_replayed(name)
            return committed.outcome

        result = action()
        self._log.commit(StepRecord(name=name, outcome=result))
        return result
