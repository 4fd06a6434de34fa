"""
Speech-act (modality) classification.

Rules live in data/modality_rules.json as {class: {lang: [regex, ...]}}; adding a
language only means adding entries to that table.
"""
import json
import logging
import re
from dataclasses import dataclass
from importlib import resources
from typing import Dict, List, Optional, Pattern, Protocol

logger = logging.getLogger(__name__)

REQUEST = "request"
CONFIRMATION = "confirmation"
SUGGESTION = "suggestion"
OBLIGATION = "obligation"
STATEMENT = "statement"


class ModalityClassifier(Protocol):
    def classify(self, text: str) -> str:
        ...


def load_rule_table(path: Optional[str] = None) -> Dict:
    if path:
        with open(path, "r", encoding="utf-8") as f:
            return json.load(f)
    raw = resources.files("tone_fluent").joinpath("data/modality_rules.json").read_text(encoding="utf-8")
    return json.loads(raw)


class PatternModalityClassifier:
    """Regex-table classifier. The first class in priority order with a matching pattern wins."""

    def __init__(self, table: Optional[Dict] = None):
        table = table or load_rule_table()
        self.priority: List[str] = list(table.get("priority") or [REQUEST, CONFIRMATION, SUGGESTION, OBLIGATION])
        self.patterns: Dict[str, List[Pattern]] = {}
        for modality in self.priority:
            compiled = []
            for lang_patterns in (table.get("rules", {}).get(modality) or {}).values():
                compiled.extend(re.compile(p, re.IGNORECASE) for p in lang_patterns)
            self.patterns[modality] = compiled

    def classify(self, text: str) -> str:
        normalized = (text or "").strip().lower()
        for modality in self.priority:
            if any(p.search(normalized) for p in self.patterns.get(modality, [])):
                return modality
        return STATEMENT


_default_classifier: Optional[PatternModalityClassifier] = None


def default_classifier() -> PatternModalityClassifier:
    global _default_classifier
    if _default_classifier is None:
        _default_classifier = PatternModalityClassifier()
    return _default_classifier


@dataclass
class ModalityCheck:
    passed: bool
    reason: Optional[str] = None


def check_modality_consistency(original_text: str, translated_text: str,
                               classifier: Optional[ModalityClassifier] = None) -> ModalityCheck:
    classifier = classifier or default_classifier()
    original = classifier.classify(original_text)
    # statement -> anything is a natural shift across languages
    if original == STATEMENT:
        return ModalityCheck(True)

    translated = classifier.classify(translated_text)
    if original != translated:
        reason = f"modality_violation: {original} → {translated}"
        logger.warning(f"{reason} ({original_text!r} -> {translated_text!r})")
        return ModalityCheck(False, reason)
    return ModalityCheck(True)
