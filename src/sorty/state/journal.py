"""Append-only on-disk journal for operation ledgers."""

from __future__ import annotations

import json
import logging
import os
from pathlib import Path
from typing import Any

from pydantic import ValidationError

from .errors import MissingStateError, StateError
from .models import ACTION_ADAPTER, OperationLedger, PrimitiveAction, SkippedItem

LOGGER = logging.getLogger(__name__)

LEDGER_DIRNAME = "ledgers"


class LedgerJournal:
    """Write ledger records as JSON lines, syncing each one to disk.

    The first line holds the run header; every following line is either an
    action or a skipped item. Loading tolerates a truncated final line left by
    an interrupted write.
    """

    def __init__(self, path: Path) -> None:
        self.path = path

    @classmethod
    def for_run(cls, state_dir: Path, run_id: str) -> "LedgerJournal":
        """Return the journal for ``run_id`` below ``state_dir``."""
        return cls(state_dir / LEDGER_DIRNAME / f"{run_id}.jsonl")

    def start(self, ledger: OperationLedger) -> None:
        """Create the journal file and write the run header.

        Args:
            ledger: Ledger whose header fields are recorded.
        """
        self.path.parent.mkdir(parents=True, exist_ok=True)
        header = {
            "record": "header",
            "run_id": ledger.run_id,
            "root": str(ledger.root),
            "created_at": ledger.created_at.isoformat(),
        }
        with self.path.open("w", encoding="utf-8") as handle:
            self._write_line(handle, header)
        for action in ledger.actions:
            self.append_action(action)
        for item in ledger.skipped:
            self.append_skipped(item)

    def append_action(self, action: PrimitiveAction) -> None:
        """Durably append one completed action."""
        self._append({"record": "action", "data": action.model_dump(mode="json")})

    def append_skipped(self, item: SkippedItem) -> None:
        """Durably append one skipped item."""
        self._append({"record": "skipped", "data": item.model_dump(mode="json")})

    def load(self) -> OperationLedger:
        """Rebuild the ledger from the journal.

        Returns:
            OperationLedger: Ledger covering every fully written record.

        Raises:
            MissingStateError: If the journal file does not exist.
            StateError: If the header is missing or a record other than the last is corrupt.
        """
        if not self.path.exists():
            raise MissingStateError(f"No ledger journal found at {self.path}")

        text = self.path.read_text(encoding="utf-8")
        lines = [line for line in text.splitlines() if line.strip()]
        records: list[dict[str, Any]] = []
        for position, line in enumerate(lines):
            try:
                payload = json.loads(line)
            except json.JSONDecodeError as exc:
                if position == len(lines) - 1:
                    LOGGER.warning("Ignoring truncated final record in %s", self.path)
                    break
                raise StateError(f"Corrupt ledger journal {self.path}: {exc}") from exc
            if not isinstance(payload, dict):
                raise StateError(f"Corrupt ledger journal {self.path}: unexpected record")
            records.append(payload)

        if not records or records[0].get("record") != "header":
            raise StateError(f"Ledger journal {self.path} has no header")

        header = records[0]
        try:
            ledger = OperationLedger(
                run_id=header["run_id"],
                root=Path(header["root"]),
                created_at=header["created_at"],
            )
            for record in records[1:]:
                kind = record.get("record")
                if kind == "action":
                    ledger.actions.append(ACTION_ADAPTER.validate_python(record["data"]))
                elif kind == "skipped":
                    ledger.skipped.append(SkippedItem.model_validate(record["data"]))
                else:
                    raise StateError(f"Unknown journal record type: {kind!r}")
        except (KeyError, ValidationError) as exc:
            raise StateError(f"Invalid ledger journal {self.path}: {exc}") from exc
        return ledger

    # ------------------------------------------------------------------ #
    # Helpers                                                            #
    # ------------------------------------------------------------------ #

    def _append(self, payload: dict[str, Any]) -> None:
        with self.path.open("a", encoding="utf-8") as handle:
            self._write_line(handle, payload)

    @staticmethod
    def _write_line(handle: Any, payload: dict[str, Any]) -> None:
        handle.write(json.dumps(payload) + "\n")
        handle.flush()
        os.fsync(handle.fileno())


__all__ = ["LedgerJournal", "LEDGER_DIRNAME"]
