import json
import logging
import os
import threading
from concurrent.futures import Future, ThreadPoolExecutor
from typing import Optional

from .cache import BandStatusTracker
from .cancellation import CancelToken
from .errors import CancellationError
from .models import BASE_BAND, BUSINESS, CASUAL, CUSTOM, PROMPT_VERSION, SLIDER_TONES, BandStatus, CacheEntry, \
    SourceRequest, ToneBand
from .workflow import ToneBandWorkflow

logger = logging.getLogger(__name__)


def slider_to_band(position: float) -> ToneBand:
    if position < -75:
        return ToneBand(CASUAL, 100)
    if position < -25:
        return ToneBand(CASUAL, 50)
    if position <= 25:
        return BASE_BAND
    if position <= 75:
        return ToneBand(BUSINESS, 50)
    return ToneBand(BUSINESS, 100)


def slider_bucket(position: float) -> int:
    """Snap point (-100, -50, 0, 50, 100) used for labels."""
    return slider_to_band(position).slider_level


class LockedPositionStore:
    """The one persisted value: a slider position that survives restarts."""

    def __init__(self, path: str):
        self.path = os.path.expanduser(path)

    def load(self) -> Optional[float]:
        if not os.path.exists(self.path):
            return None
        try:
            with open(self.path, "r", encoding="utf-8") as f:
                value = json.load(f).get("locked_slider_position")
        except (OSError, ValueError, AttributeError) as e:
            logger.warning(f"Failed to load locked position: {e}")
            return None
        return float(value) if isinstance(value, (int, float)) else None

    def save(self, position: float):
        directory = os.path.dirname(self.path)
        if directory:
            os.makedirs(directory, exist_ok=True)
        with open(self.path, "w", encoding="utf-8") as f:
            json.dump({"locked_slider_position": position}, f)

    def clear(self):
        if os.path.exists(self.path):
            os.remove(self.path)


class ToneSession:
    """
    One conversation context: a language pair and at most one active source text.
    Submitting new text or changing languages cancels the previous generation scope;
    verification tasks already scheduled keep running.
    """

    def __init__(self, workflow: ToneBandWorkflow, statuses: BandStatusTracker, source_lang: str, target_lang: str,
                 native_mode: bool = False, locked_store: Optional[LockedPositionStore] = None,
                 prompt_version: str = PROMPT_VERSION):
        self.workflow = workflow
        self.statuses = statuses
        self.source_lang = source_lang
        self.target_lang = target_lang
        self.native_mode = native_mode
        self.locked_store = locked_store
        self.prompt_version = prompt_version
        self.request: Optional[SourceRequest] = None
        self._token = CancelToken()
        self._pregeneration: Optional[Future] = None
        self._executor = ThreadPoolExecutor(max_workers=1, thread_name_prefix="tone-pregen")
        self._lock = threading.Lock()

    def _new_scope(self, reason: str) -> CancelToken:
        with self._lock:
            self._token.cancel(reason)
            self._token = CancelToken()
            return self._token

    @property
    def locked_position(self) -> Optional[float]:
        return self.locked_store.load() if self.locked_store else None

    def lock(self, position: float):
        if self.locked_store is None:
            raise ValueError("This session has no locked-position store")
        self.locked_store.save(position)

    def unlock(self):
        if self.locked_store is not None:
            self.locked_store.clear()

    def submit(self, text: str) -> CacheEntry:
        """
        Translates new source text and returns the entry to display: the base band, or
        the locked band when a position is locked (then every band is generated first).
        """
        token = self._new_scope("new source text")
        self.request = SourceRequest(text.strip(), self.source_lang, self.target_lang, self.native_mode,
                                     self.prompt_version)
        locked = self.locked_position
        if locked is not None:
            self.workflow.generate_tones(self.request, SLIDER_TONES, token)
            return self.workflow.get(self.request, slider_to_band(locked)) or self.workflow.get(self.request, BASE_BAND)

        entry = self.workflow.generate_base(self.request, token)
        self._pregeneration = self._executor.submit(self._pregenerate, self.request, token)
        return entry

    def _pregenerate(self, request: SourceRequest, token: CancelToken):
        try:
            self.workflow.generate_tones(request, SLIDER_TONES, token)
        except CancellationError:
            logger.debug(f"Pre-generation cancelled for {request.text!r}")
        except Exception as e:
            logger.error(f"Pre-generation failed for {request.text!r}: {e}")

    def wait_pregeneration(self, timeout: Optional[float] = None):
        if self._pregeneration is not None:
            self._pregeneration.result(timeout=timeout)

    def select(self, position: float, wait: bool = False) -> Optional[CacheEntry]:
        """
        Entry for a slider position. A band still being generated reads as None unless
        wait=True, in which case its tone is generated in this thread.
        """
        if self.request is None:
            return None
        band = slider_to_band(position)
        entry = self.workflow.get(self.request, band)
        if entry is None and wait:
            if band.tone in SLIDER_TONES:
                self.workflow.generate_tones(self.request, [band.tone], self._token)
            else:
                self.workflow.generate_base(self.request, self._token)
            entry = self.workflow.get(self.request, band)
        return entry

    def generate_custom(self, style: str) -> Optional[CacheEntry]:
        if self.request is None:
            return None
        return self.workflow.generate_custom(self.request, style, self._token)

    def status(self, band: ToneBand) -> BandStatus:
        if self.request is None or band.tone == CUSTOM:
            return BandStatus.IDLE
        return self.statuses.get(self.workflow.key(self.request, band))

    def change_languages(self, source_lang: str, target_lang: str):
        self._new_scope("language pair changed")
        self.source_lang = source_lang
        self.target_lang = target_lang
        self.request = None

    def close(self):
        self._new_scope("session closed")
        self._executor.shutdown(wait=False)
