import logging
import queue
import threading
from dataclasses import dataclass
from typing import Callable, Dict, List, Optional

from .models import BandStatus, CacheEntry, SourceRequest, ToneBand

logger = logging.getLogger(__name__)

NATIVE_MARKER = "native"

EVENT_ENTRY = "entry"
EVENT_STATUS = "status"


def build_cache_key(request: SourceRequest, band: ToneBand) -> str:
    """'{promptVersion}|{src}->{tgt}|{text}|{tone}_{level}[_{customStyle}][_native]'"""
    key = f"{request.prompt_version}|{request.source_lang}->{request.target_lang}|{request.text}|{band.name}"
    if band.custom_style:
        key += f"_{band.custom_style}"
    if request.native_mode:
        key += f"_{NATIVE_MARKER}"
    return key


@dataclass(frozen=True)
class CacheEvent:
    kind: str
    key: str
    entry: Optional[CacheEntry] = None
    status: Optional[BandStatus] = None


class EventChannel:
    """Append-only fan-out of events to subscriber queues."""

    def __init__(self):
        self._subscribers: List[queue.Queue] = []
        self._lock = threading.Lock()

    def subscribe(self) -> queue.Queue:
        q: queue.Queue = queue.Queue()
        with self._lock:
            self._subscribers.append(q)
        return q

    def unsubscribe(self, q: queue.Queue):
        with self._lock:
            if q in self._subscribers:
                self._subscribers.remove(q)

    def publish(self, event: CacheEvent):
        with self._lock:
            subscribers = list(self._subscribers)
        for q in subscribers:
            q.put(event)


class BandCache:
    """
    CacheKey -> CacheEntry. Entries are immutable and always replaced whole, so a reader
    never sees half of a write. Last writer wins; nothing is ever evicted.
    """

    def __init__(self, events: Optional[EventChannel] = None):
        self._entries: Dict[str, CacheEntry] = {}
        self._lock = threading.RLock()
        self.events = events or EventChannel()

    def get(self, key: str) -> Optional[CacheEntry]:
        with self._lock:
            return self._entries.get(key)

    def __contains__(self, key: str) -> bool:
        return self.get(key) is not None

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)

    def put(self, key: str, entry: CacheEntry):
        self.put_many({key: entry})

    def put_many(self, entries: Dict[str, CacheEntry]):
        with self._lock:
            self._entries.update(entries)
            for key, entry in entries.items():
                self.events.publish(CacheEvent(EVENT_ENTRY, key, entry=entry))

    def transact(self, fn: Callable[[Callable[[str], Optional[CacheEntry]]], Optional[Dict[str, CacheEntry]]]
                 ) -> Dict[str, CacheEntry]:
        """
        Atomic read-modify-write over several keys. fn receives a reader and returns the
        entries to write; no other write can interleave between its reads and the write-back.
        """
        with self._lock:
            updates = fn(self._entries.get) or {}
            self.put_many(updates)
            return updates

    def subscribe(self) -> queue.Queue:
        return self.events.subscribe()

    def unsubscribe(self, q: queue.Queue):
        self.events.unsubscribe(q)


class BandStatusTracker:
    """Per-band verification status. Transient; unknown keys read as idle."""

    def __init__(self, events: Optional[EventChannel] = None):
        self._statuses: Dict[str, BandStatus] = {}
        self._lock = threading.Lock()
        self.events = events or EventChannel()

    def get(self, key: str) -> BandStatus:
        with self._lock:
            return self._statuses.get(key, BandStatus.IDLE)

    def set(self, key: str, status: BandStatus):
        with self._lock:
            self._statuses[key] = status
        logger.debug(f"Band status {key} -> {status.value}")
        self.events.publish(CacheEvent(EVENT_STATUS, key, status=status))

    def subscribe(self) -> queue.Queue:
        return self.events.subscribe()

    def unsubscribe(self, q: queue.Queue):
        self.events.unsubscribe(q)
