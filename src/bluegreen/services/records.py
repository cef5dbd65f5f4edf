"""Append-only deployment history for bluegreen."""

import json
import os
import tempfile
from typing import Any, Dict, List, Optional

from bluegreen.errors import PreflightError
from bluegreen.models import DeploymentRecord, Outcome


class DeploymentRecordService:
    """Persists one DeploymentRecord per attempted release.

    Earlier records are never modified; only the record of the running release is
    rewritten as it gains transitions.
    """

    def __init__(self, history_file: str, logger):
        self.history_file = history_file
        self.logger = logger
        self._history: Optional[List[Dict[str, Any]]] = None
        self._current_index: Optional[int] = None

    def load(self) -> List[Dict[str, Any]]:
        if self._history is not None:
            return self._history

        if not os.path.exists(self.history_file):
            self._history = []
            return self._history

        try:
            with open(self.history_file, "r", encoding="utf-8") as file_obj:
                data = json.load(file_obj)
        except (OSError, json.JSONDecodeError) as exc:
            raise PreflightError(
                f"Could not read deployment history '{self.history_file}': {exc}"
            ) from exc

        if not isinstance(data, list):
            raise PreflightError(f"Deployment history '{self.history_file}' has invalid format.")

        self._history = data
        return self._history

    def begin(self, record: DeploymentRecord):
        history = self.load()
        history.append(record.to_dict())
        self._current_index = len(history) - 1
        self.write()

    def save(self, record: DeploymentRecord):
        history = self.load()
        if self._current_index is None:
            self.begin(record)
            return
        history[self._current_index] = record.to_dict()
        self.write()

    def last_successful(self) -> Optional[Dict[str, Any]]:
        for entry in reversed(self.load()):
            if entry.get("outcome") == Outcome.SUCCESS.value:
                return entry
        return None

    def write(self):
        os.makedirs(os.path.dirname(self.history_file) or ".", exist_ok=True)

        fd, temp_path = tempfile.mkstemp(
            prefix="deployments-",
            suffix=".json",
            dir=os.path.dirname(self.history_file) or ".",
        )
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as file_obj:
                json.dump(self._history or [], file_obj, indent=2, sort_keys=True)
                file_obj.write("\n")
            os.replace(temp_path, self.history_file)
        except OSError as exc:
            self.logger.warning("Could not write deployment history '%s': %s", self.history_file, exc)
            try:
                os.remove(temp_path)
            except OSError:
                pass
