"""BackendDirectory — the set of relayer descriptors known to the client.

Descriptors are handed to the aggregator as raw mappings: a malformed
entry is the aggregator's business (it classifies it as skipped), not
the directory's.
"""

from __future__ import annotations

import json
from collections.abc import Mapping
from pathlib import Path
from typing import Any

import structlog

from models.state import DelegationState

logger = structlog.get_logger("data.backend_directory")


class BackendDirectory:
    """Static directory of backend descriptors.

    An entry may carry a ``contracts`` list; it is then only offered for
    those contract addresses (case-insensitive).  Entries without one are
    offered for every contract.

    Usage::

        directory = BackendDirectory.from_file("backends.json")
        descriptors = directory(store.state)
    """

    def __init__(self, entries: list[Any] | None = None) -> None:
        self._entries: list[Any] = list(entries or [])

    @classmethod
    def from_file(cls, path: str | Path) -> BackendDirectory:
        """Load a JSON list of descriptors from *path*."""
        raw = json.loads(Path(path).read_text(encoding="utf-8"))
        if not isinstance(raw, list):
            raise ValueError(f"{path}: expected a JSON list of backend descriptors")
        logger.info("backend_directory.loaded", path=str(path), count=len(raw))
        return cls(raw)

    @property
    def entries(self) -> list[Any]:
        return list(self._entries)

    def for_contract(self, contract_address: str) -> list[Any]:
        """Entries applicable to *contract_address*, in directory order."""
        wanted = contract_address.lower()
        selected: list[Any] = []
        for entry in self._entries:
            contracts = entry.get("contracts") if isinstance(entry, Mapping) else None
            if contracts and wanted not in {str(c).lower() for c in contracts}:
                continue
            selected.append(entry)
        return selected

    def __call__(self, state: DelegationState) -> list[Any]:
        return self.for_contract(state.contract_address)
