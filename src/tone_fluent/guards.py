"""
Deterministic post-processing applied to every generated translation.
Guards never raise; a violation is repaired in place and the result flagged risk=high.
"""
import logging
import re
from typing import List, Tuple

from .languages import lang_code_from_name
from .models import RISK_HIGH, TranslationResult

logger = logging.getLogger(__name__)

JAPANESE_CHARS_RE = re.compile(r"[ぁ-んァ-ン一-龯]")
KANA_RE = re.compile(r"[ぁ-んァ-ン]+")
JAPANESE_WITH_PUNCT_RE = re.compile(r"[ぁ-んァ-ン一-龯！？。、「」『』（）]+")

GENERAL_CLOTHING_TERMS = ("洋服", "服装", "服", "コーデ", "装い")
EXPLICIT_DRESS_TERMS = ("ドレス", "ワンピース")

# Doubled sentence endings that stacked politeness rewrites leave behind, in application order
DOUBLE_ENDINGS: List[Tuple[str, str]] = [
    (r"ですねね[。！!]?$", "ですね。"),
    (r"ますねね[。！!]?$", "ますね。"),
    (r"だね[！!]+ですね[。]?$", "だね！"),
    (r"だよ[！!]+ですね[。]?$", "だよ！"),
    (r"よね[！!]+ですね[。]?$", "よね！"),
    (r"じゃん[！!]+ですね[。]?$", "じゃん！"),
    (r"ございますございます", "ございます"),
    (r"だよね?じゃん[！!]*$", "じゃん！"),
    (r"じゃん[！!]*だよね?[！!]*$", "じゃん！！"),
    (r"だよ[！!]+じゃん[！!]*$", "じゃん！"),
    (r"じゃん[！!]+だよ[！!]*$", "じゃん！！"),
    (r"よね[！!]+じゃん[！!]*$", "じゃん！"),
    (r"じゃん[！!]+よね[！!]*$", "じゃん！！"),
    (r"だね[！!]+じゃん[！!]*$", "じゃん！"),
    (r"だよ[！!]+だね[！!]*$", "だね！"),
    (r"よね[！!]+だね[！!]*$", "だね！"),
    (r"だね[！!]+だよ[！!]*$", "だよ！"),
    (r"ですね[。]?だね[！!]*$", "だね！"),
    (r"ますね[。]?だね[！!]*$", "だね！"),
    (r"よじゃん[！!]*$", "じゃん！"),
    (r"ないよじゃん[！!]*$", "ないじゃん！"),
    (r"だよじゃん[！!]*$", "じゃん！"),
    (r"よ[！!]+じゃん[！!]*$", "じゃん！"),
    (r"ですねでございます[。]?$", "でございます。"),
    (r"ますねでございます[。]?$", "でございます。"),
    (r"ですねございます[。]?$", "でございます。"),
    (r"ですでございます[。]?$", "でございます。"),
    (r"ますでございます[。]?$", "でございます。"),
    (r"ですねですね[。]?$", "ですね。"),
    (r"ますねますね[。]?$", "ますね。"),
    (r"ございますね[。]?でございます[。]?$", "でございます。"),
    (r"でございます[。]?ございますね[。]?$", "でございますね。"),
    (r"ませんですね[。]?$", "ませんね。"),
    (r"ませんでございます[。]?$", "ません。"),
    (r"ございませんでございます[。]?$", "ございません。"),
    (r"ないねですね[。]?$", "ないですね。"),
    (r"いいえいいえ[、,]?", "いいえ、"),
    (r"です[。]?です[。]?$", "です。"),
    (r"ます[。]?ます[。]?$", "ます。"),
    (r"ですね[。]?ますね[。]?$", "ますね。"),
    (r"ますね[。]?ですね[。]?$", "ですね。"),
]
_DOUBLE_ENDINGS = [(re.compile(p), r) for p, r in DOUBLE_ENDINGS]


def has_japanese_characters(text: str) -> bool:
    return bool(JAPANESE_CHARS_RE.search(text or ""))


def fix_double_ending(text: str) -> str:
    for pattern, replacement in _DOUBLE_ENDINGS:
        text = pattern.sub(replacement, text, count=1)
    return text


def apply_evaluation_word_guard(source_text: str, result: TranslationResult) -> TranslationResult:
    """Flags results that silently drop an evaluative word or narrow general clothing to 'dress'."""
    if "素敵" in source_text and "素敵" not in result.reverse_translation:
        return result.with_risk(RISK_HIGH)
    has_general = any(term in source_text for term in GENERAL_CLOTHING_TERMS)
    has_dress = any(term in source_text for term in EXPLICIT_DRESS_TERMS)
    if has_general and not has_dress and re.search(r"dress", result.translation, re.IGNORECASE):
        return result.with_risk(RISK_HIGH)
    return result


def apply_reverse_translation_guard(source_lang: str, result: TranslationResult) -> TranslationResult:
    reverse = (result.reverse_translation or "").strip()
    code = lang_code_from_name(source_lang)

    if code != "ja":
        if code in ("zh", "ko"):
            # Han and Hangul are legitimate here; only kana is foreign
            if KANA_RE.search(reverse):
                logger.warning(f"Japanese kana found in reverse translation for {source_lang} source: {reverse}")
                return TranslationResult(result.translation, KANA_RE.sub("", reverse).strip(), RISK_HIGH,
                                         result.detected_language)
            return result
        if has_japanese_characters(reverse):
            logger.warning(f"Japanese found in reverse translation for {source_lang} source: {reverse}")
            return TranslationResult(result.translation, JAPANESE_WITH_PUNCT_RE.sub("", reverse).strip(), RISK_HIGH,
                                     result.detected_language)
        return result

    reverse = fix_double_ending(reverse)
    risk = result.risk
    if not reverse or not has_japanese_characters(reverse):
        logger.warning(f"Reverse translation is not Japanese: {reverse!r}")
        risk = RISK_HIGH
    return TranslationResult(result.translation, reverse, risk, result.detected_language)


def apply_translation_language_guard(target_lang: str, result: TranslationResult) -> TranslationResult:
    # Han characters are shared with Chinese, so only kana counts as leakage
    if lang_code_from_name(target_lang) in ("ja", "zh"):
        return result
    if KANA_RE.search(result.translation):
        logger.warning(f"Japanese detected in translation: {result.translation}")
        cleaned = KANA_RE.sub("", result.translation).strip()
        return TranslationResult(cleaned or result.translation, result.reverse_translation, RISK_HIGH,
                                 result.detected_language)
    return result


def apply_guards(source_text: str, source_lang: str, target_lang: str, result: TranslationResult) -> TranslationResult:
    result = apply_translation_language_guard(target_lang, result)
    result = apply_reverse_translation_guard(source_lang, result)
    return apply_evaluation_word_guard(source_text, result)
