import json
import logging
import threading
from concurrent.futures import Future, ThreadPoolExecutor, wait
from dataclasses import dataclass, field
from typing import Dict, List, Optional, Set

from .cache import BandCache, BandStatusTracker, build_cache_key
from .errors import CancellationError, ToneFluentError, VerificationUnavailable
from .guards import apply_guards
from .llm import CompletionClient
from .modality import ModalityClassifier, check_modality_consistency, default_classifier
from .models import (
    BandStatus,
    CacheEntry,
    SourceRequest,
    ToneBand,
    TranslationResult,
    VerificationIssue,
    VerificationResult,
)
from .prompts import (
    FIX_MEANING_SYSTEM_PROMPT,
    FIX_NATURALNESS_SYSTEM_PROMPT,
    VERIFY_REVERSE_CHECKS,
    VERIFY_SYSTEM_PROMPT,
    build_fix_meaning_user_prompt,
    build_fix_naturalness_user_prompt,
    build_verify_user_prompt,
    get_reverse_translation_instruction,
    get_tone_instruction,
)
from .translator import prompt_language
from .utils import parse_json_response

logger = logging.getLogger(__name__)


@dataclass
class RepairJob:
    request: SourceRequest
    band: ToneBand
    translation: str
    reverse_translation: str
    definitions: Dict[str, str] = field(default_factory=dict)


class BandVerifier:
    """Quality check and targeted repair calls, run on the (stronger) verification model."""

    def __init__(self, client: CompletionClient, model: Optional[str] = None,
                 modality_classifier: Optional[ModalityClassifier] = None):
        self.client = client
        self.model = model
        self.modality_classifier = modality_classifier or default_classifier()

    def _verify_call(self, original_text: str, translation: str, reverse_translation: str,
                     definitions: Dict[str, str], tone_label: Optional[str]) -> VerificationResult:
        system_prompt = VERIFY_SYSTEM_PROMPT.format(
            tone_context=f"\nThis translation is tone-adjusted to {tone_label}." if tone_label else "",
            reverse_checks=VERIFY_REVERSE_CHECKS if reverse_translation else "",
        )
        user_prompt = build_verify_user_prompt(original_text, translation, reverse_translation, definitions)
        try:
            response = self.client.complete(system_prompt, user_prompt, temperature=0.1, model=self.model)
            data = parse_json_response(response)
        except CancellationError:
            raise
        except ToneFluentError as e:
            raise VerificationUnavailable(str(e)) from e

        issues = [VerificationIssue.from_dict(i) for i in data.get("issues") or [] if isinstance(i, dict)]
        passed = data.get("pass")
        return VerificationResult(passed=True if passed is None else bool(passed), issues=issues)

    def verify(self, original_text: str, translation: str, reverse_translation: str = "",
               definitions: Optional[Dict[str, str]] = None, tone_label: Optional[str] = None) -> VerificationResult:
        """Never fails: an unavailable verifier counts as a pass."""
        try:
            return self._verify_call(original_text, translation, reverse_translation, definitions or {}, tone_label)
        except VerificationUnavailable as e:
            logger.warning(f"Verification unavailable, treating as pass: {e}")
            return VerificationResult(passed=True)

    def _fix(self, template: str, user_prompt: str, request: SourceRequest, band: ToneBand,
             current: TranslationResult) -> Optional[TranslationResult]:
        source = prompt_language(request.source_lang)
        target = prompt_language(request.target_lang)
        tone_definition = get_tone_instruction(band.tone, band.level, band.custom_style) if band.level else ""
        system_prompt = template.format(
            tone_block=f"\n{tone_definition}" if tone_definition else "",
            target_lang=target,
            source_lang=source,
            reverse_instruction=get_reverse_translation_instruction(source, target, band.tone),
        )
        try:
            response = self.client.complete(system_prompt, user_prompt, temperature=0.1, model=self.model)
            data = parse_json_response(response)
        except CancellationError:
            raise
        except ToneFluentError as e:
            logger.warning(f"Fix failed for {band.name}, keeping current text: {e}")
            return None

        fixed = TranslationResult.from_dict(data, current.translation, current.reverse_translation)
        fixed = apply_guards(request.text, request.source_lang, request.target_lang, fixed)
        check = check_modality_consistency(request.text, fixed.translation, self.modality_classifier)
        if not check.passed:
            logger.warning(f"Fix for {band.name} rejected ({check.reason}), keeping current text")
            return None
        return fixed

    def fix_meaning_issues(self, request: SourceRequest, band: ToneBand, current: TranslationResult,
                           issues: List[VerificationIssue]) -> Optional[TranslationResult]:
        issues_json = json.dumps([i.to_dict() for i in issues], ensure_ascii=False, indent=2)
        user_prompt = build_fix_meaning_user_prompt(request.text, current.translation, issues_json,
                                                    prompt_language(request.source_lang),
                                                    prompt_language(request.target_lang))
        return self._fix(FIX_MEANING_SYSTEM_PROMPT, user_prompt, request, band, current)

    def fix_naturalness(self, request: SourceRequest, band: ToneBand, current: TranslationResult,
                        issues: List[VerificationIssue]) -> Optional[TranslationResult]:
        user_prompt = build_fix_naturalness_user_prompt(request.text, current.translation, issues,
                                                        prompt_language(request.source_lang),
                                                        prompt_language(request.target_lang))
        return self._fix(FIX_NATURALNESS_SYSTEM_PROMPT, user_prompt, request, band, current)


def apply_fix(cache: BandCache, request: SourceRequest, band: ToneBand, fixed: TranslationResult) -> Dict[str, CacheEntry]:
    """
    Writes a repaired band and keeps the no-change flags of its tone consistent, in one
    atomic cache transaction. Returns the entries written.
    """
    key = build_cache_key(request, band)
    sibling = band.sibling()
    sibling_key = build_cache_key(request, sibling) if sibling else None
    lower = band.lower_neighbor()
    lower_key = build_cache_key(request, lower) if lower else None

    def update(read):
        sibling_entry = read(sibling_key) if sibling_key else None
        if sibling_entry is not None and sibling_entry.translation == fixed.translation:
            return {
                sibling_key: CacheEntry(sibling_entry.translation, fixed.reverse_translation, True),
                key: CacheEntry(fixed.translation, fixed.reverse_translation, True),
            }

        updates = {}
        lower_entry = read(lower_key) if lower_key else None
        if lower_entry is not None and lower_entry.translation == fixed.translation:
            updates[key] = CacheEntry(fixed.translation, lower_entry.reverse_translation, True)
        else:
            updates[key] = CacheEntry(fixed.translation, fixed.reverse_translation, False)

        # A change to the 50% band can flip the 100% band's flag, never the reverse
        if band.level == 50 and sibling_entry is not None and sibling_entry.no_change:
            updates[sibling_key] = CacheEntry(sibling_entry.translation, sibling_entry.reverse_translation, False)
        return updates

    written = cache.transact(update)
    logger.info(f"Applied fix to {band.name}: {fixed.translation}")
    return written


class RepairScheduler:
    """
    Detached verify-and-repair tasks on their own executor. Tasks never see a generation
    cancel token, so switching source text does not stop them.
    """

    def __init__(self, verifier: BandVerifier, cache: BandCache, statuses: BandStatusTracker, max_workers: int = 2):
        self.verifier = verifier
        self.cache = cache
        self.statuses = statuses
        self._executor = ThreadPoolExecutor(max_workers=max_workers, thread_name_prefix="tone-verify")
        self._pending: Set[Future] = set()
        self._lock = threading.Lock()

    def schedule(self, job: RepairJob) -> Future:
        future = self._executor.submit(self._run, job)
        with self._lock:
            self._pending.add(future)
        future.add_done_callback(self._discard)
        return future

    def _discard(self, future: Future):
        with self._lock:
            self._pending.discard(future)

    def _run(self, job: RepairJob):
        key = build_cache_key(job.request, job.band)
        self.statuses.set(key, BandStatus.VERIFYING)
        try:
            self._verify_and_fix(job, key)
        except Exception as e:
            logger.warning(f"Verification of {job.band.name} failed, treating as pass: {e}")
        self.statuses.set(key, BandStatus.PASSED)

    def _verify_and_fix(self, job: RepairJob, key: str):
        band = job.band
        result = self.verifier.verify(job.request.text, job.translation, job.reverse_translation, job.definitions,
                                      tone_label=f"{band.tone} {band.level}%")
        actionable = result.actionable_issues
        if not actionable:
            return

        meaning_issues = [i for i in actionable if not i.is_naturalness]
        natural_issues = [i for i in actionable if i.is_naturalness]
        logger.info(f"{band.name}: {len(meaning_issues)} meaning / {len(natural_issues)} naturalness issues")
        self.statuses.set(key, BandStatus.FIXING)

        current = TranslationResult(job.translation, job.reverse_translation)
        if meaning_issues:
            fixed = self.verifier.fix_meaning_issues(job.request, band, current, meaning_issues)
            if fixed is not None:
                apply_fix(self.cache, job.request, band, fixed)
                current = fixed
        # Sequential: the naturalness fix must see the meaning-fixed text
        if natural_issues:
            fixed = self.verifier.fix_naturalness(job.request, band, current, natural_issues)
            if fixed is not None:
                apply_fix(self.cache, job.request, band, fixed)

    def wait(self, timeout: Optional[float] = None) -> bool:
        """Blocks until every scheduled task finished. Returns False on timeout."""
        with self._lock:
            pending = list(self._pending)
        if not pending:
            return True
        _, not_done = wait(pending, timeout=timeout)
        return not not_done

    def shutdown(self, wait_for_tasks: bool = True):
        self._executor.shutdown(wait=wait_for_tasks)
