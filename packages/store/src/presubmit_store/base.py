"""Abstract snapshot store interface.

The query pipeline keeps exactly one piece of state between polls: the set of
open changes seen by the last successful poll, as JSON-able dicts keyed by
change reference. Any backend that can load and overwrite that mapping
implements BaseStore, so the CLI can swap backends without touching the
pipeline.
"""

from __future__ import annotations

from abc import ABC, abstractmethod


class StoreError(Exception):
    """The snapshot exists but cannot be read or written."""


class BaseStore(ABC):
    """Pluggable persistence for the change snapshot.

    The store is read once at the start of a poll and overwritten once after
    Gerrit has been queried. There is no locking: overlapping invocations of
    the same poll race, and the last writer wins.
    """

    @abstractmethod
    def load(self) -> dict[str, dict]:
        """Return the last saved snapshot.

        Returns an empty dict if nothing has been saved yet. A missing
        snapshot is not an error.
        """

    @abstractmethod
    def save(self, snapshot: dict[str, dict]) -> None:
        """Replace the stored snapshot with `snapshot`."""

    def close(self) -> None:
        """Release any resources held by the store (connections, file handles).

        Optional. Subclasses that need cleanup should override this.
        Default is a no-op so callers can always call close() safely.
        """
