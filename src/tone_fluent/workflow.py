from typing import Dict, Iterable, List, Optional
from dataclasses import dataclass, field
from concurrent.futures import ThreadPoolExecutor
import logging
import threading

from .analyzer import StructuralAnalyzer
from .anchors import (
    MeaningAnchorBuilder,
    build_meaning_constraint_text,
    extract_flexible_words,
    structure_to_prompt_text,
)
from .cache import BandCache, build_cache_key
from .cancellation import CancelToken, check_cancelled
from .errors import CancellationError, ToneFluentError
from .languages import lang_code_from_name
from .models import (
    BASE_BAND,
    BUSINESS,
    CASUAL,
    CUSTOM,
    LEVELS,
    RISK_HIGH,
    RISK_LOW,
    SLIDER_TONES,
    CacheEntry,
    SourceRequest,
    ToneBand,
    TranslationResult,
)
from .prompts import build_floor_instruction
from .translator import ToneTranslator
from .verification import RepairJob, RepairScheduler

logger = logging.getLogger(__name__)

STRATEGY_PARTIAL = "partial"
STRATEGY_FULL_SIMPLE = "full_simple"

# How each tone reaches level 100 from its 50% result
LEVEL_100_STRATEGY = {
    CASUAL: STRATEGY_FULL_SIMPLE,
    BUSINESS: STRATEGY_PARTIAL,
}


@dataclass
class BaseContext:
    """Structure and meaning anchors derived once from a base translation."""
    base: TranslationResult
    structure_text: str = ""
    definitions: Dict[str, str] = field(default_factory=dict)

    @property
    def meaning_constraint(self) -> str:
        return build_meaning_constraint_text(self.definitions)


class ToneBandWorkflow:
    """
    The one tone-band generator: base -> structure/anchors -> level 50 (tones in parallel)
    -> level 100 (tones in parallel) -> no-change flags -> cache write -> detached verification.
    """

    def __init__(self, translator: ToneTranslator, anchor_builder: MeaningAnchorBuilder, cache: BandCache,
                 repair_scheduler: Optional[RepairScheduler] = None, analyzer: Optional[StructuralAnalyzer] = None,
                 max_workers: int = 2):
        self.translator = translator
        self.anchor_builder = anchor_builder
        self.cache = cache
        self.repair_scheduler = repair_scheduler
        self.analyzer = analyzer or translator.analyzer
        self.max_workers = max_workers
        self._contexts: Dict[str, BaseContext] = {}
        self._risks: Dict[str, str] = {}
        self._lock = threading.Lock()

    def key(self, request: SourceRequest, band: ToneBand) -> str:
        return build_cache_key(request, band)

    def get(self, request: SourceRequest, band: ToneBand) -> Optional[CacheEntry]:
        """Cached entry or None. Never waits for an in-flight generation."""
        return self.cache.get(self.key(request, band))

    def get_risk(self, request: SourceRequest, band: ToneBand) -> str:
        with self._lock:
            return self._risks.get(self.key(request, band), RISK_LOW)

    def _write(self, entries: Dict[str, CacheEntry], risks: Dict[str, str], cancel_token: Optional[CancelToken]):
        # Last check: a cancelled generation must never reach the cache
        check_cancelled(cancel_token)
        self.cache.put_many(entries)
        with self._lock:
            self._risks.update(risks)

    # ---------------------------------------------------------------- base

    def generate_base(self, request: SourceRequest, cancel_token: Optional[CancelToken] = None) -> CacheEntry:
        base_key = self.key(request, BASE_BAND)
        cached = self.cache.get(base_key)
        if cached is not None:
            return cached

        result = self.translator.translate_base(request, cancel_token)
        entry = CacheEntry(result.translation, result.reverse_translation)
        # The base is also level 0 of every slider tone
        keys = [base_key] + [self.key(request, ToneBand(tone, 0)) for tone in SLIDER_TONES]
        self._write({k: entry for k in keys}, {k: result.risk for k in keys}, cancel_token)
        logger.info(f"Base translation cached: {entry.translation}")
        return entry

    def _context(self, request: SourceRequest, base_entry: CacheEntry,
                 cancel_token: Optional[CancelToken]) -> BaseContext:
        memo_key = f"{self.key(request, BASE_BAND)}|{base_entry.translation}"
        with self._lock:
            context = self._contexts.get(memo_key)
        if context is not None:
            return context

        base = TranslationResult(base_entry.translation, base_entry.reverse_translation)
        analysis = self.analyzer.analyze(base.translation, lang_code_from_name(request.target_lang), cancel_token)
        definitions = self.anchor_builder.build(request.text, base.translation, extract_flexible_words(analysis),
                                                request.source_lang, cancel_token)
        context = BaseContext(base, structure_to_prompt_text(analysis), definitions)
        with self._lock:
            self._contexts[memo_key] = context
        return context

    # ---------------------------------------------------------------- tones

    def _retry_full_simple(self, request: SourceRequest, tone: str, level: int, floor_text: str,
                           context: BaseContext, fallback: Optional[TranslationResult],
                           cancel_token: Optional[CancelToken]) -> Optional[TranslationResult]:
        try:
            result = self.translator.translate_full_simple(
                request,
                meaning_constraint=context.meaning_constraint,
                tone_instruction=build_floor_instruction(tone, level, floor_text),
                tone=tone,
                cancel_token=cancel_token,
            )
        except CancellationError:
            raise
        except ToneFluentError as e:
            logger.warning(f"Full-simple generation failed for {tone}_{level}: {e}")
            return None
        return self.translator.guard_modality(request, result, context.base, context.meaning_constraint, fallback,
                                              cancel_token)

    def _generate_50(self, request: SourceRequest, tone: str, context: BaseContext,
                     cancel_token: Optional[CancelToken]) -> TranslationResult:
        base = context.base
        result = self.translator.translate_partial(request, base, context.structure_text, tone, 50,
                                                   context.meaning_constraint, cancel_token=cancel_token)
        if result.translation == base.translation:
            logger.info(f"{tone}_50 did not move from base, retrying with full-simple")
            retried = self._retry_full_simple(request, tone, 50, base.translation, context, None, cancel_token)
            if retried is not None:
                result = retried
        return result

    def _generate_100(self, request: SourceRequest, tone: str, context: BaseContext, reference: TranslationResult,
                      cancel_token: Optional[CancelToken]) -> TranslationResult:
        strategy = LEVEL_100_STRATEGY.get(tone, STRATEGY_PARTIAL)
        if strategy == STRATEGY_FULL_SIMPLE:
            result = self._retry_full_simple(request, tone, 100, reference.translation, context, reference,
                                             cancel_token)
            return result if result is not None else reference.with_risk(RISK_HIGH)

        result = self.translator.translate_partial(request, context.base, context.structure_text, tone, 100,
                                                   context.meaning_constraint,
                                                   reference_translation=reference.translation,
                                                   fallback=reference, cancel_token=cancel_token)
        if result.translation == reference.translation:
            logger.info(f"{tone}_100 collapsed onto its 50% reference, retrying with full-simple")
            retried = self._retry_full_simple(request, tone, 100, reference.translation, context, reference,
                                              cancel_token)
            if retried is not None:
                result = retried
        return result

    def _required_bands(self, tones: Iterable[str]) -> List[ToneBand]:
        return [ToneBand(tone, level) for tone in tones for level in LEVELS if level]

    def generate_tones(self, request: SourceRequest, tones: Iterable[str] = SLIDER_TONES,
                       cancel_token: Optional[CancelToken] = None) -> Dict[ToneBand, CacheEntry]:
        """Generates (or reads back) the 50 and 100 bands of the given slider tones."""
        tones = [t for t in tones if t in SLIDER_TONES]
        missing = [t for t in tones if any(self.get(request, b) is None for b in self._required_bands([t]))]
        if missing:
            self._generate_tones(request, missing, cancel_token)
        return {band: self.get(request, band) for band in self._required_bands(tones)}

    def _generate_tones(self, request: SourceRequest, tones: List[str], cancel_token: Optional[CancelToken]):
        base_entry = self.generate_base(request, cancel_token)
        context = self._context(request, base_entry, cancel_token)

        with ThreadPoolExecutor(max_workers=self.max_workers) as executor:
            futures = {tone: executor.submit(self._generate_50, request, tone, context, cancel_token) for tone in tones}
            results_50 = {tone: future.result() for tone, future in futures.items()}

        with ThreadPoolExecutor(max_workers=self.max_workers) as executor:
            futures = {
                tone: executor.submit(self._generate_100, request, tone, context, results_50[tone], cancel_token)
                for tone in tones
            }
            results_100 = {tone: future.result() for tone, future in futures.items()}

        entries: Dict[str, CacheEntry] = {}
        risks: Dict[str, str] = {}
        jobs: List[RepairJob] = []
        base = context.base
        for tone in tones:
            r50, r100 = results_50[tone], results_100[tone]
            no_change_50 = r50.translation == base.translation
            no_change_100 = r100.translation == r50.translation
            entry_50 = CacheEntry(r50.translation,
                                  base.reverse_translation if no_change_50 else r50.reverse_translation,
                                  no_change_50)
            entry_100 = CacheEntry(r100.translation,
                                   entry_50.reverse_translation if no_change_100 else r100.reverse_translation,
                                   no_change_100)
            for level, entry, result in ((50, entry_50, r50), (100, entry_100, r100)):
                band = ToneBand(tone, level)
                key = self.key(request, band)
                entries[key] = entry
                risks[key] = result.risk
                if not entry.no_change:
                    jobs.append(RepairJob(request, band, entry.translation, entry.reverse_translation,
                                          dict(context.definitions)))
            logger.info(f"{tone}: 50 no_change={no_change_50}, 100 no_change={no_change_100}")

        self._write(entries, risks, cancel_token)
        if self.repair_scheduler is not None:
            for job in jobs:
                self.repair_scheduler.schedule(job)

    # ---------------------------------------------------------------- custom

    def generate_custom(self, request: SourceRequest, style: str,
                        cancel_token: Optional[CancelToken] = None) -> CacheEntry:
        """
        One call for a free-text style; levels 0/50/100 share the result. Custom bands
        take no part in no-change propagation and are not verified.
        """
        band = ToneBand(CUSTOM, 0, style)
        cached = self.get(request, band)
        if cached is not None:
            return cached

        try:
            result = self.translator.translate_full(request, CUSTOM, 0, custom_style=style, cancel_token=cancel_token)
        except CancellationError:
            raise
        except ToneFluentError as e:
            logger.warning(f"Custom style '{style}' failed, showing base instead: {e}")
            base_entry = self.generate_base(request, cancel_token)
            with self._lock:
                self._risks[self.key(request, band)] = RISK_HIGH
            return base_entry

        entry = CacheEntry(result.translation, result.reverse_translation)
        keys = [self.key(request, ToneBand(CUSTOM, level, style)) for level in LEVELS]
        self._write({k: entry for k in keys}, {k: result.risk for k in keys}, cancel_token)
        return entry
