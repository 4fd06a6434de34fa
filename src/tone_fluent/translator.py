from typing import Optional
import logging

from .analyzer import StructuralAnalyzer
from .anchors import extract_content_words
from .cancellation import CancelToken
from .errors import CancellationError, MalformedResponseError, ToneFluentError
from .guards import apply_guards
from .languages import lang_code_from_name, lang_name_from_code
from .llm import CompletionClient
from .modality import ModalityClassifier, check_modality_consistency, default_classifier
from .models import CUSTOM, RISK_HIGH, RISK_LOW, SourceRequest, TranslationResult
from .prompts import (
    build_full_system_prompt,
    build_full_user_prompt,
    build_partial_system_prompt,
    build_partial_user_prompt,
    build_simple_system_prompt,
    get_reverse_translation_instruction,
    get_simple_full_gen_prompt,
)
from .utils import parse_json_response

logger = logging.getLogger(__name__)

PARTIAL_MAX_TOKENS = 150


def prompt_language(name: str) -> str:
    """English language name used inside prompts, whatever form the caller used."""
    return lang_name_from_code(lang_code_from_name(name))


class ToneTranslator:
    """
    Single generation calls: full (custom styles), full-simple (base and unconstrained
    retries) and partial (structure-constrained tone edits). Every result goes through the guards.
    """

    def __init__(self, client: CompletionClient, analyzer: Optional[StructuralAnalyzer] = None,
                 modality_classifier: Optional[ModalityClassifier] = None,
                 full_model: Optional[str] = None, partial_model: Optional[str] = None):
        self.client = client
        self.analyzer = analyzer or StructuralAnalyzer()
        self.modality_classifier = modality_classifier or default_classifier()
        self.full_model = full_model
        self.partial_model = partial_model or full_model

    def _parse(self, response: str, request: SourceRequest, fallback_translation: str = "",
               fallback_reverse: str = "") -> TranslationResult:
        data = parse_json_response(response)
        result = TranslationResult.from_dict(data, fallback_translation, fallback_reverse)
        if not result.translation:
            raise MalformedResponseError(f"response has no translation: {response[:200]}")
        return apply_guards(request.text, request.source_lang, request.target_lang, result)

    def translate_full(self, request: SourceRequest, tone: Optional[str] = None, level: int = 0,
                       custom_style: Optional[str] = None,
                       cancel_token: Optional[CancelToken] = None) -> TranslationResult:
        source = prompt_language(request.source_lang)
        target = prompt_language(request.target_lang)
        system_prompt = build_full_system_prompt(source, target, request.native_mode, tone, level, custom_style)
        user_prompt = build_full_user_prompt(request.text, custom_style if tone == CUSTOM else tone, level)
        logger.info(f"Full generation: tone={tone} level={level} style={custom_style}")
        response = self.client.complete(system_prompt, user_prompt, temperature=0.3, cancel_token=cancel_token,
                                        model=self.full_model)
        return self._parse(response, request)

    def translate_full_simple(self, request: SourceRequest, content_words: str = "", meaning_constraint: str = "",
                              tone_instruction: str = "", tone: Optional[str] = None,
                              cancel_token: Optional[CancelToken] = None) -> TranslationResult:
        source = prompt_language(request.source_lang)
        target = prompt_language(request.target_lang)
        simple_prompt = get_simple_full_gen_prompt(target, source, content_words,
                                                   has_tone_instruction=bool(tone_instruction),
                                                   native_mode=request.native_mode)
        system_prompt = build_simple_system_prompt(
            simple_prompt, tone_instruction, meaning_constraint,
            get_reverse_translation_instruction(source, target, tone),
        )
        logger.info(f"Full-simple generation: tone={tone or 'base'}")
        response = self.client.complete(system_prompt, request.text, temperature=0.3, cancel_token=cancel_token,
                                        model=self.full_model)
        return self._parse(response, request)

    def translate_base(self, request: SourceRequest, cancel_token: Optional[CancelToken] = None) -> TranslationResult:
        """Base(0) translation, anchored on the content words of the source sentence when available."""
        analysis = self.analyzer.analyze(request.text, lang_code_from_name(request.source_lang), cancel_token)
        return self.translate_full_simple(request, content_words=extract_content_words(analysis),
                                          cancel_token=cancel_token)

    def translate_partial(self, request: SourceRequest, base: TranslationResult, structure_text: str, tone: str,
                          level: int, meaning_constraint: str = "", reference_translation: Optional[str] = None,
                          fallback: Optional[TranslationResult] = None,
                          cancel_token: Optional[CancelToken] = None) -> TranslationResult:
        """
        Edits the base translation toward a tone while holding Fixed words. Completion failures
        degrade to the base translation with risk=high; cancellation propagates.
        """
        source = prompt_language(request.source_lang)
        target = prompt_language(request.target_lang)
        system_prompt = build_partial_system_prompt(structure_text)
        user_prompt = build_partial_user_prompt(base.translation, request.text, tone, level, source, target,
                                                meaning_constraint, reference_translation)
        logger.info(f"Partial generation: tone={tone} level={level} reference={reference_translation is not None}")
        try:
            response = self.client.complete(system_prompt, user_prompt, temperature=0, cancel_token=cancel_token,
                                            max_output_tokens=PARTIAL_MAX_TOKENS, model=self.partial_model)
            data = parse_json_response(response)
            candidate = TranslationResult.from_dict(data, base.translation, request.text).with_risk(RISK_LOW)
            candidate = apply_guards(request.text, request.source_lang, request.target_lang, candidate)
        except CancellationError:
            raise
        except ToneFluentError as e:
            logger.warning(f"Partial generation failed for {tone}_{level}, falling back to base: {e}")
            return base.with_risk(RISK_HIGH)

        return self.guard_modality(request, candidate, base, meaning_constraint, fallback, cancel_token)

    def guard_modality(self, request: SourceRequest, candidate: TranslationResult, base: TranslationResult,
                       meaning_constraint: str = "", fallback: Optional[TranslationResult] = None,
                       cancel_token: Optional[CancelToken] = None) -> TranslationResult:
        """
        Keeps the speech act of the source. On drift: the previously accepted level if given,
        else an anchor-only regeneration, else the base translation flagged risk=high.
        """
        check = check_modality_consistency(request.text, candidate.translation, self.modality_classifier)
        if check.passed:
            return candidate

        if fallback is not None:
            logger.warning(f"Modality guard: {check.reason}, using previous level")
            return fallback

        logger.warning(f"Modality guard: {check.reason}, regenerating with meaning anchors only")
        try:
            regenerated = self.translate_full_simple(request, meaning_constraint=meaning_constraint,
                                                     cancel_token=cancel_token)
        except CancellationError:
            raise
        except ToneFluentError as e:
            logger.warning(f"Anchor-only regeneration failed: {e}")
            return base.with_risk(RISK_HIGH)

        if check_modality_consistency(request.text, regenerated.translation, self.modality_classifier).passed:
            return regenerated
        logger.warning("Anchor-only regeneration also changed modality, using base")
        return base.with_risk(RISK_HIGH)
