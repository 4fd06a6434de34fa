import logging
import re
from dataclasses import dataclass, field
from typing import Dict, List, Optional

from .analyzer import StructuralAnalysis
from .cancellation import CancelToken
from .errors import CancellationError, ToneFluentError
from .llm import CompletionClient
from .prompts import MEANING_DEFINITIONS_SYSTEM_PROMPT, build_meaning_definitions_user_prompt
from .utils import parse_json_response

logger = logging.getLogger(__name__)

FIXED_UPOS = {"NOUN", "PROPN", "NUM", "PRON"}
FLEXIBLE_UPOS = {"VERB", "ADJ", "ADV", "AUX"}
CONTENT_UPOS = {"NOUN", "VERB", "ADJ", "ADV", "PROPN", "NUM", "PRON", "AUX"}

POSSESSIVE_RE = re.compile(r"^['’ʼ]s$", re.IGNORECASE)
CLITIC_RE = re.compile(r"^['’ʼ](?:m|ll|re|ve|d)$", re.IGNORECASE)


@dataclass
class WordClasses:
    fixed: List[str] = field(default_factory=list)
    flexible: List[str] = field(default_factory=list)
    free: List[str] = field(default_factory=list)

    @property
    def empty(self) -> bool:
        return not (self.fixed or self.flexible or self.free)


def _skipped(token) -> bool:
    return bool(POSSESSIVE_RE.match(token.text)) or token.upos == "PUNCT"


def classify_tokens(analysis: StructuralAnalysis) -> WordClasses:
    """
    Fixed: nouns, names, numbers, pronouns. Flexible: verbs, adjectives, adverbs, auxiliaries.
    Free: everything else. Contractions like I + 'm are merged back into one Free word.
    """
    classes = WordClasses()
    tokens = analysis.tokens
    for i, token in enumerate(tokens):
        if _skipped(token):
            continue

        if CLITIC_RE.match(token.text) and i > 0:
            previous = tokens[i - 1].text
            for words in (classes.fixed, classes.flexible, classes.free):
                if previous in words:
                    # remove the most recent occurrence
                    del words[len(words) - 1 - words[::-1].index(previous)]
                    break
            classes.free.append(previous + token.text)
            continue

        if token.upos in FIXED_UPOS:
            classes.fixed.append(token.text)
        elif token.upos in FLEXIBLE_UPOS:
            classes.flexible.append(token.text)
        else:
            classes.free.append(token.text)
    return classes


def structure_to_prompt_text(analysis: StructuralAnalysis) -> str:
    if analysis.empty:
        return ""
    classes = classify_tokens(analysis)
    lines = []
    if classes.fixed:
        lines.append(f"[Fixed] (keep unchanged): {', '.join(classes.fixed)}")
    if classes.flexible:
        lines.append(f"[Rephrase keeping meaning] (content words): {', '.join(classes.flexible)}")
    if classes.free:
        lines.append(f"[Free] (function words): {', '.join(classes.free)}")
    return "\n".join(lines)


def extract_flexible_words(analysis: StructuralAnalysis) -> List[str]:
    return [
        t.text for t in analysis.tokens
        if not _skipped(t) and not CLITIC_RE.match(t.text) and t.upos in FLEXIBLE_UPOS
    ]


def extract_content_words(analysis: StructuralAnalysis) -> str:
    """Comma-separated content words of the source text, used to anchor the base translation."""
    return ", ".join(t.text for t in analysis.tokens if t.upos in CONTENT_UPOS)


def build_meaning_constraint_text(definitions: Dict[str, str]) -> str:
    return "\n".join(f"- {word} = {definition}" for word, definition in definitions.items())


class MeaningAnchorBuilder:
    def __init__(self, client: CompletionClient, model: Optional[str] = None):
        self.client = client
        self.model = model

    def build(self, original_text: str, base_translation: str, flexible_words: List[str], source_lang: str,
              cancel_token: Optional[CancelToken] = None) -> Dict[str, str]:
        """
        One completion call defining each Flexible word as used in this sentence.
        Returns {} when there is nothing to define or the call fails.
        """
        if not flexible_words:
            return {}
        user_prompt = build_meaning_definitions_user_prompt(original_text, base_translation, flexible_words, source_lang)
        try:
            response = self.client.complete(MEANING_DEFINITIONS_SYSTEM_PROMPT, user_prompt, temperature=0.1,
                                            cancel_token=cancel_token, model=self.model)
            definitions = parse_json_response(response).get("definitions") or {}
        except CancellationError:
            raise
        except ToneFluentError as e:
            logger.warning(f"Meaning definitions failed, continuing without them: {e}")
            return {}
        if not isinstance(definitions, dict):
            logger.warning(f"Meaning definitions had unexpected shape: {definitions!r}")
            return {}
        return {str(k): str(v) for k, v in definitions.items()}
