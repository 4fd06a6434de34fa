from dataclasses import dataclass
from typing import List, Optional
import logging

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Language:
    code: str
    name: str          # display name, as the user picks it
    english_name: str
    locale: str


LANGUAGES: List[Language] = [
    Language("ja", "日本語", "Japanese", "ja-JP"),
    Language("en", "英語", "English", "en-US"),
    Language("fr", "フランス語", "French", "fr-FR"),
    Language("es", "スペイン語", "Spanish", "es-ES"),
    Language("ko", "韓国語", "Korean", "ko-KR"),
    Language("zh", "中国語", "Chinese", "zh-CN"),
    Language("de", "ドイツ語", "German", "de-DE"),
    Language("it", "イタリア語", "Italian", "it-IT"),
    Language("pt", "ポルトガル語", "Portuguese", "pt-BR"),
    Language("cs", "チェコ語", "Czech", "cs-CZ"),
]

_BY_NAME = {}
for _lang in LANGUAGES:
    _BY_NAME[_lang.name] = _lang
    _BY_NAME[_lang.english_name] = _lang
    _BY_NAME[_lang.english_name.lower()] = _lang
    _BY_NAME[_lang.code] = _lang


def find_language(name: str) -> Optional[Language]:
    return _BY_NAME.get(name) or _BY_NAME.get((name or "").strip().lower())


def lang_code_from_name(name: str) -> str:
    lang = find_language(name)
    if lang is None:
        logger.warning(f"Unknown language name '{name}', defaulting to 'en'")
        return "en"
    return lang.code


def lang_name_from_code(code: str) -> str:
    """English language name for prompts."""
    for lang in LANGUAGES:
        if lang.code == code:
            return lang.english_name
    return "English"


def detection_choices() -> str:
    return ", ".join(lang.english_name for lang in LANGUAGES)
