"""
shuffle.py

Basic Shuffle peer-sampling protocol (Stavrou et al., "A Lightweight, Robust
P2P System to Handle Flash Crowds").

Each node keeps a small bounded cache of neighbors and, once per cycle,
contacts one random neighbor to swap a subset of their caches:
1. PeerEntry / PeerCache: bounded view with pending-destination tags
2. ShuffleMessage: SHUFFLE_REQUEST / SHUFFLE_REPLY / SHUFFLE_REJECTED
3. select_subset: random tagged subset, excluding the exchange partner
4. merge_into_cache: no duplicates, fill empty slots, swap tagged slots
5. BasicShuffle: per-node driver (on_tick / on_message)

Scheduling and transport are external: the node is handed a transport with
send(sender, dest, message) and the scheduler calls on_tick() once per cycle
and on_message() once per delivered message, never concurrently for the
same node.
"""

import logging
import random
from dataclasses import dataclass
from enum import Enum
from typing import Hashable, List, Optional, Sequence, Tuple

logger = logging.getLogger(__name__)

PeerId = Hashable


class ShuffleConfigError(ValueError):
    """Raised when a node is constructed with invalid parameters."""


class MessageType(Enum):
    SHUFFLE_REQUEST = "request"
    SHUFFLE_REPLY = "reply"
    SHUFFLE_REJECTED = "rejected"


class ShuffleState(Enum):
    IDLE = "idle"
    AWAITING_REPLY = "awaiting_reply"


# ============================================================
# Cache
# ============================================================

class PeerEntry:
    """A neighbor reference plus the peer it was last offered to."""

    __slots__ = ("peer", "pending_destination")

    def __init__(self, peer: PeerId, pending_destination: Optional[PeerId] = None):
        self.peer = peer
        self.pending_destination = pending_destination

    def copy(self, pending_destination: Optional[PeerId] = None) -> "PeerEntry":
        return PeerEntry(self.peer, pending_destination)

    def __eq__(self, other):
        if not isinstance(other, PeerEntry):
            return NotImplemented
        return self.peer == other.peer

    def __hash__(self):
        return hash(self.peer)

    def __repr__(self):
        if self.pending_destination is None:
            return f"PeerEntry({self.peer!r})"
        return f"PeerEntry({self.peer!r}, sent_to={self.pending_destination!r})"


class PeerCache:
    """
    Bounded ordered view of neighbors.

    Entries are stored as private copies. The cache never holds two entries
    for the same peer, never holds more than `capacity` entries, and never
    holds an entry for `owner` (the node that owns the cache).
    """

    def __init__(self, capacity: int, owner: Optional[PeerId] = None):
        if capacity <= 0:
            raise ShuffleConfigError(f"cache capacity must be positive, got {capacity}")
        self.capacity = int(capacity)
        self.owner = owner
        self._entries: List[PeerEntry] = []

    def size(self) -> int:
        return len(self._entries)

    def is_full(self) -> bool:
        return len(self._entries) >= self.capacity

    def contains(self, peer: PeerId) -> bool:
        return any(e.peer == peer for e in self._entries)

    def index_of(self, peer: PeerId) -> int:
        """Index of the entry for `peer`, or -1."""
        for i, e in enumerate(self._entries):
            if e.peer == peer:
                return i
        return -1

    def get(self, i: int) -> PeerEntry:
        return self._entries[i]

    def add(self, entry: PeerEntry) -> bool:
        """Append a copy of `entry`; False if duplicate, self or full."""
        if entry.peer == self.owner or self.contains(entry.peer) or self.is_full():
            return False
        self._entries.append(entry.copy(entry.pending_destination))
        return True

    def remove_at(self, i: int) -> PeerEntry:
        return self._entries.pop(i)

    def replace_at(self, i: int, entry: PeerEntry):
        self._entries[i] = entry.copy(entry.pending_destination)

    def clear_tags(self):
        for e in self._entries:
            e.pending_destination = None

    def peers(self) -> List[PeerId]:
        return [e.peer for e in self._entries]

    def __len__(self):
        return len(self._entries)

    def __getitem__(self, i):
        return self._entries[i]

    def __iter__(self):
        return iter(self._entries)

    def __contains__(self, peer):
        return self.contains(peer)

    def __repr__(self):
        return f"PeerCache({self._entries!r}, capacity={self.capacity})"


# ============================================================
# Messages
# ============================================================

@dataclass(frozen=True)
class ShuffleMessage:
    """Protocol message: originating node plus the shuffle list."""
    kind: MessageType
    origin: PeerId
    payload: Tuple[PeerEntry, ...] = ()

    @classmethod
    def request(cls, origin: PeerId, entries: Sequence[PeerEntry]) -> "ShuffleMessage":
        return cls(MessageType.SHUFFLE_REQUEST, origin, _frozen_copy(entries))

    @classmethod
    def reply(cls, origin: PeerId, entries: Sequence[PeerEntry]) -> "ShuffleMessage":
        return cls(MessageType.SHUFFLE_REPLY, origin, _frozen_copy(entries))

    @classmethod
    def rejected(cls, origin: PeerId) -> "ShuffleMessage":
        return cls(MessageType.SHUFFLE_REJECTED, origin, ())

    def shuffle_list(self) -> List[PeerEntry]:
        """Receiver-owned copy of the payload."""
        return [e.copy(e.pending_destination) for e in self.payload]


def _frozen_copy(entries):
    return tuple(e.copy(e.pending_destination) for e in entries)


# ============================================================
# Subset selection and cache reconciliation
# ============================================================

def select_subset(cache: PeerCache, exclude: PeerId, size: int,
                  rng: random.Random) -> List[PeerEntry]:
    """
    Pick up to `size` entries uniformly without replacement, never `exclude`.

    The chosen cache entries are tagged with `exclude` so a later reply from
    that peer may overwrite them. The returned entries are independent copies
    carrying the same tag.
    """
    eligible = [i for i, e in enumerate(cache) if e.peer != exclude]
    if size <= 0 or not eligible:
        return []
    if len(eligible) > size:
        chosen = rng.sample(eligible, size)
    else:
        chosen = eligible

    subset = []
    for i in chosen:
        entry = cache[i]
        entry.pending_destination = exclude
        subset.append(entry.copy(exclude))
    return subset


def merge_into_cache(cache: PeerCache, sender: PeerId,
                     incoming: Sequence[PeerEntry]) -> int:
    """
    Absorb a received shuffle list into `cache`.

    For each incoming entry, in order:
    - already known (or the cache owner itself): dropped
    - free slot: appended
    - cache full: overwrites the next slot that was offered to `sender`
    - no such slot left: dropped

    Entries not offered to `sender` are never overwritten. Returns the
    number of dropped entries that were not duplicates.
    """
    swap_candidates = [i for i, e in enumerate(cache) if e.pending_destination == sender]
    discarded = 0

    for entry in incoming:
        if entry.peer == cache.owner or cache.contains(entry.peer):
            continue
        fresh = entry.copy()
        if not cache.is_full():
            cache.add(fresh)
        elif swap_candidates:
            cache.replace_at(swap_candidates.pop(0), fresh)
        else:
            discarded += 1

    if discarded:
        logger.debug("cache of %r full: dropped %d entries from %r",
                     cache.owner, discarded, sender)
    return discarded


# ============================================================
# Protocol driver
# ============================================================

class BasicShuffle:
    """
    Basic shuffling protocol for one node.

    Key behavior:
    - At most one shuffle in flight: a node awaiting a reply rejects requests
    - Speculative eviction: with a full cache the chosen partner is removed
      before the request, making room for the reply
    - Rejection restores the evicted partner
    - Passive responders never enter AWAITING_REPLY
    """

    def __init__(self, node_id: PeerId, cache_size: int, shuffle_length: int,
                 transport, rng: Optional[random.Random] = None):
        if cache_size <= 0:
            raise ShuffleConfigError(f"cache_size must be positive, got {cache_size}")
        if shuffle_length <= 0:
            raise ShuffleConfigError(f"shuffle_length must be positive, got {shuffle_length}")
        if shuffle_length > cache_size:
            logger.warning("node %r: shuffle_length=%d exceeds cache_size=%d",
                           node_id, shuffle_length, cache_size)

        self.node_id = node_id
        self.shuffle_length = int(shuffle_length)
        self.transport = transport
        self.rng = rng or random.Random()

        self.cache = PeerCache(cache_size, owner=node_id)
        self.awaiting_reply = False
        self.evicted_candidate: Optional[PeerId] = None

        # Counters
        self.requests_sent = 0
        self.replies_sent = 0
        self.rejections_sent = 0
        self.rejections_received = 0
        self.entries_discarded = 0

    @property
    def state(self) -> ShuffleState:
        return ShuffleState.AWAITING_REPLY if self.awaiting_reply else ShuffleState.IDLE

    @property
    def capacity(self) -> int:
        return self.cache.capacity

    # --------------------------------------------------------
    # Scheduler entry points
    # --------------------------------------------------------

    def on_tick(self):
        """Start a shuffle with a random neighbor, once per cycle."""
        if self.awaiting_reply or self.cache.size() == 0:
            return

        q_index = self.rng.randrange(self.cache.size())
        partner = self.cache[q_index].peer

        if self.cache.is_full():
            self.cache.remove_at(q_index)
            self.evicted_candidate = partner
        else:
            self.evicted_candidate = None

        subset = select_subset(self.cache, partner, self.shuffle_length - 1, self.rng)
        subset.append(PeerEntry(self.node_id))

        self.awaiting_reply = True
        self.requests_sent += 1
        logger.debug("node %r -> %r: SHUFFLE_REQUEST with %d entries",
                     self.node_id, partner, len(subset))
        self.transport.send(self.node_id, partner, ShuffleMessage.request(self.node_id, subset))

    def on_message(self, message: ShuffleMessage):
        """Handle a message delivered to this node."""
        sender = message.origin
        if message.kind is MessageType.SHUFFLE_REQUEST:
            self._handle_request(sender, message.shuffle_list())
        elif message.kind is MessageType.SHUFFLE_REPLY:
            self._handle_reply(sender, message.shuffle_list())
        elif message.kind is MessageType.SHUFFLE_REJECTED:
            self._handle_rejected(sender)

    def _handle_request(self, sender, shuffle_list):
        if self.awaiting_reply:
            self.rejections_sent += 1
            logger.debug("node %r busy: rejecting shuffle from %r", self.node_id, sender)
            self.transport.send(self.node_id, sender, ShuffleMessage.rejected(self.node_id))
            return

        subset = select_subset(self.cache, sender, self.shuffle_length, self.rng)
        self.replies_sent += 1
        self.transport.send(self.node_id, sender, ShuffleMessage.reply(self.node_id, subset))

        self.entries_discarded += merge_into_cache(self.cache, sender, shuffle_list)
        # Not awaiting anything, so no tag can be a legitimate swap candidate
        self.cache.clear_tags()

    def _handle_reply(self, sender, shuffle_list):
        if not self.awaiting_reply:
            logger.warning("node %r: unexpected SHUFFLE_REPLY from %r while idle",
                           self.node_id, sender)

        self.entries_discarded += merge_into_cache(self.cache, sender, shuffle_list)
        self.awaiting_reply = False
        self.evicted_candidate = None
        self.cache.clear_tags()

    def _handle_rejected(self, sender):
        self.rejections_received += 1
        if not self.awaiting_reply:
            logger.warning("node %r: unexpected SHUFFLE_REJECTED from %r while idle",
                           self.node_id, sender)

        self.cache.clear_tags()
        if self.evicted_candidate is not None:
            if not self.cache.add(PeerEntry(self.evicted_candidate)):
                logger.warning("node %r: could not restore evicted peer %r",
                               self.node_id, self.evicted_candidate)
            self.evicted_candidate = None
        self.awaiting_reply = False

    # --------------------------------------------------------
    # Overlay membership (used by bootstrap and observers)
    # --------------------------------------------------------

    def degree(self) -> int:
        return self.cache.size()

    def get_neighbor(self, i: int) -> PeerId:
        return self.cache[i].peer

    def add_neighbor(self, peer: PeerId) -> bool:
        return self.cache.add(PeerEntry(peer))

    def contains(self, peer: PeerId) -> bool:
        return self.cache.contains(peer)

    def neighbors(self) -> List[PeerId]:
        return self.cache.peers()

    def __repr__(self):
        return (f"BasicShuffle(node_id={self.node_id!r}, state={self.state.value}, "
                f"cache={self.cache.peers()!r})")
