"""
Peer registry: the ordered set of launchers that can take part in an election.

Every launcher observing the same set of client advertisements derives the
same order, so the first record is the agreed host candidate.
"""

import logging
from typing import NamedTuple

from discovery.models import AdvertisementKey, RecordFlags, RemoteAdvertisement

logger = logging.getLogger(__name__)


class UpsertResult(NamedTuple):
    is_new: bool
    replaced_foreign: bool


class RemoveResult(NamedTuple):
    existed: bool
    was_foreign: bool


def election_order(record: RemoteAdvertisement) -> tuple[bool, str]:
    """Sort key: hosting-capable peers first, then by instance name."""
    return (not record.can_host, record.name)


class PeerRegistry:
    """Client advertisements keyed by identity, iterated in election order."""

    def __init__(self) -> None:
        self._peers: dict[AdvertisementKey, RemoteAdvertisement] = {}
        self._ordered: list[RemoteAdvertisement] = []

    def __len__(self) -> int:
        return len(self._peers)

    def __contains__(self, key: AdvertisementKey) -> bool:
        return key in self._peers

    def get(self, key: AdvertisementKey) -> RemoteAdvertisement | None:
        return self._peers.get(key)

    def peers(self) -> list[RemoteAdvertisement]:
        """Return the records in election order."""
        return list(self._ordered)

    def upsert(self, record: RemoteAdvertisement) -> UpsertResult:
        """Insert a record, replacing any previous record with the same key."""
        previous = self._peers.pop(record.key, None)
        if previous is not None:
            self._ordered.remove(previous)
            logger.debug(f"Replacing client {previous.name}")

        self._peers[record.key] = record
        self._ordered.append(record)
        self._ordered.sort(key=election_order)

        return UpsertResult(
            is_new=previous is None,
            replaced_foreign=previous is not None and not previous.is_self,
        )

    def remove(self, key: AdvertisementKey) -> RemoveResult:
        """Remove the record with the given key, if present."""
        previous = self._peers.pop(key, None)
        if previous is None:
            return RemoveResult(existed=False, was_foreign=False)

        self._ordered.remove(previous)
        return RemoveResult(existed=True, was_foreign=not previous.is_self)

    def mark_foreign(self, names: list[str]) -> int:
        """Clear is_self on records named in names. Returns how many changed."""
        changed = 0
        for record in list(self._ordered):
            if record.is_self and record.name in names:
                self.upsert(record.model_copy(
                    update={"flags": RecordFlags(is_self=False, is_cached=record.flags.is_cached)}
                ))
                changed += 1
        return changed

    def best_candidate(self) -> RemoteAdvertisement | None:
        """Return the first record in election order."""
        return self._ordered[0] if self._ordered else None

    def foreign_count(self) -> int:
        """Number of records not published by this launcher."""
        return sum(1 for record in self._ordered if not record.is_self)
