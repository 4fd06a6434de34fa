import queue
from typing import Dict, Iterable, Optional

from loguru import logger

from .analyzer import DEFAULT_TIMEOUT, StructuralAnalyzer
from .anchors import MeaningAnchorBuilder
from .cache import BandCache, BandStatusTracker, EventChannel
from .cancellation import CancelToken
from .config import ToneFluentConfig, default_config
from .explain import Explainer, Explanation, translate_partner_message
from .i18n import difference_from_text, not_yet_generated_text
from .languages import lang_code_from_name
from .llm import CompletionClient, LLMBase, LLMFactory
from .models import BASE_BAND, CUSTOM, LEVELS, SLIDER_TONES, CacheEntry, SourceRequest, ToneBand
from .session import LockedPositionStore, ToneSession
from .translator import ToneTranslator
from .utils import extract_changed_parts
from .verification import BandVerifier, RepairScheduler
from .workflow import ToneBandWorkflow


class ToneSDK:
    """
    Wires the pipeline together from a configuration. One SDK owns one band cache;
    sessions created from it share that cache.
    """

    def __init__(self, config: Optional[ToneFluentConfig] = None, generation_llm: Optional[LLMBase] = None,
                 verification_llm: Optional[LLMBase] = None, analyzer: Optional[StructuralAnalyzer] = None):
        self.config = config or default_config()
        generation_config = self.config.generation_config
        verification_config = self.config.verification_config

        self.generation_client = CompletionClient(
            generation_llm or LLMFactory.create(**generation_config),
            system_prefix=generation_config.get("system_prefix", ""),
        )
        self.verification_client = CompletionClient(
            verification_llm or LLMFactory.create(**verification_config),
            system_prefix=verification_config.get("system_prefix", ""),
        )
        self.analyzer = analyzer or StructuralAnalyzer(
            url=self.config.analyzer_config.get("url"),
            timeout=float(self.config.analyzer_config.get("timeout", DEFAULT_TIMEOUT)),
        )

        # entry and status events share one channel
        self.events = EventChannel()
        self.cache = BandCache(self.events)
        self.statuses = BandStatusTracker(self.events)
        self.translator = ToneTranslator(self.generation_client, self.analyzer)
        self.anchor_builder = MeaningAnchorBuilder(self.generation_client)
        self.verifier = BandVerifier(self.verification_client)
        self.repair_scheduler = RepairScheduler(self.verifier, self.cache, self.statuses,
                                                max_workers=self.config.verification_workers)
        self.workflow = ToneBandWorkflow(self.translator, self.anchor_builder, self.cache, self.repair_scheduler,
                                         self.analyzer, max_workers=self.config.generation_workers)
        self.explainer = Explainer(self.generation_client)
        self.locked_store = LockedPositionStore(self.config.locked_position_path)
        logger.info(f"ToneSDK ready: generation={self.generation_client.model} "
                    f"verification={self.verification_client.model}")

    def session(self, source_lang: str, target_lang: str, native_mode: bool = False) -> ToneSession:
        return ToneSession(self.workflow, self.statuses, source_lang, target_lang, native_mode,
                           locked_store=self.locked_store, prompt_version=self.config.prompt_version)

    def request(self, text: str, source_lang: str, target_lang: str, native_mode: bool = False) -> SourceRequest:
        return SourceRequest(text.strip(), source_lang, target_lang, native_mode, self.config.prompt_version)

    def translate(self, text: str, source_lang: str, target_lang: str, native_mode: bool = False,
                  tones: Iterable[str] = SLIDER_TONES, custom_style: Optional[str] = None,
                  cancel_token: Optional[CancelToken] = None) -> Dict[ToneBand, CacheEntry]:
        """Base plus the requested tones (and custom style), as band -> entry."""
        request = self.request(text, source_lang, target_lang, native_mode)
        bands: Dict[ToneBand, CacheEntry] = {}
        base = self.workflow.generate_base(request, cancel_token)
        bands[BASE_BAND] = base
        tones = list(tones)
        if tones:
            bands.update(self.workflow.generate_tones(request, tones, cancel_token))
        if custom_style:
            entry = self.workflow.generate_custom(request, custom_style, cancel_token)
            for level in LEVELS:
                bands[ToneBand(CUSTOM, level, custom_style)] = entry
        return bands

    def explain(self, translation: str, target_lang: str, output_lang_code: str = "ja") -> Explanation:
        return self.explainer.generate_explanation(translation, target_lang, output_lang_code)

    def explain_difference(self, text: str, source_lang: str, target_lang: str, previous: ToneBand,
                           current: ToneBand, native_mode: bool = False,
                           source_lang_code: Optional[str] = None) -> Explanation:
        """
        Explains how `current` differs from `previous` for a source text. Bands that are not
        in the cache yet answer with the localized "not yet generated" text.
        """
        source_lang_code = source_lang_code or lang_code_from_name(source_lang)
        request = self.request(text, source_lang, target_lang, native_mode)
        previous_entry = self.workflow.get(request, previous)
        current_entry = self.workflow.get(request, current)
        if previous_entry is None or current_entry is None:
            return Explanation(difference_from_text(source_lang_code, previous.slider_level),
                               not_yet_generated_text(source_lang_code))

        changed_keywords = extract_changed_parts(previous_entry.translation, current_entry.translation)
        return self.explainer.generate_tone_difference_explanation(
            previous_entry.translation, current_entry.translation, previous.slider_level, current.slider_level,
            source_lang_code, changed_keywords)

    def translate_partner_message(self, text: str, partner_lang: str) -> Dict[str, object]:
        return translate_partner_message(self.translator, self.explainer, text, partner_lang)

    def subscribe(self) -> queue.Queue:
        """Entry and status events for every band this SDK writes."""
        return self.events.subscribe()

    def wait_for_verification(self, timeout: Optional[float] = None) -> bool:
        return self.repair_scheduler.wait(timeout)

    def usage_report(self) -> Dict[str, Dict[str, int]]:
        return {
            "generation": self.generation_client.usage_report(),
            "verification": self.verification_client.usage_report(),
        }

    def close(self):
        self.repair_scheduler.shutdown(wait_for_tasks=False)
