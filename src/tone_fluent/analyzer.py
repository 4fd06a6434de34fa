from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional
import os
import logging

import requests

from .cancellation import CancelToken, check_cancelled
from .errors import StructuralAnalysisUnavailable

logger = logging.getLogger(__name__)

DEFAULT_TIMEOUT = 3.0


@dataclass
class AnalyzedToken:
    text: str
    lemma: str = ""
    upos: str = "X"
    protect: bool = False


@dataclass
class StructuralAnalysis:
    tokens: List[AnalyzedToken] = field(default_factory=list)
    summary: Dict[str, int] = field(default_factory=lambda: {"total": 0, "protected": 0, "unprotected": 0})
    lang: str = ""
    model: str = "fallback"

    @property
    def empty(self) -> bool:
        return not self.tokens

    @classmethod
    def empty_for(cls, lang: str) -> "StructuralAnalysis":
        return cls(lang=lang)

    @classmethod
    def from_dict(cls, data: Dict[str, Any], lang: str) -> "StructuralAnalysis":
        tokens = [
            AnalyzedToken(
                text=str(t.get("text", "")),
                lemma=str(t.get("lemma", "")),
                upos=str(t.get("upos", "X")),
                protect=bool(t.get("protect", False)),
            )
            for t in data.get("tokens") or []
            if t.get("text")
        ]
        summary = data.get("summary") or {}
        return cls(
            tokens=tokens,
            summary={
                "total": int(summary.get("total", len(tokens))),
                "protected": int(summary.get("protected", 0)),
                "unprotected": int(summary.get("unprotected", 0)),
            },
            lang=data.get("lang") or lang,
            model=data.get("model") or "unknown",
        )


class StructuralAnalyzer:
    """
    Client for the part-of-speech tagging service (POST {url}/analyze).
    Never raises for service problems: an empty analysis means "no structural constraint".
    """

    def __init__(self, url: Optional[str] = None, timeout: float = DEFAULT_TIMEOUT):
        self.url = (url or os.getenv("TONE_FLUENT_ANALYZER_URL", "http://localhost:8000")).rstrip("/")
        self.timeout = timeout

    def _request(self, text: str, lang: str) -> StructuralAnalysis:
        try:
            response = requests.post(f"{self.url}/analyze", json={"text": text, "lang": lang}, timeout=self.timeout)
        except requests.RequestException as e:
            raise StructuralAnalysisUnavailable(str(e)) from e
        if not response.ok:
            raise StructuralAnalysisUnavailable(f"analysis service error: {response.status_code} {response.reason}")
        try:
            return StructuralAnalysis.from_dict(response.json(), lang)
        except (ValueError, AttributeError, TypeError) as e:
            raise StructuralAnalysisUnavailable(f"bad analysis payload: {e}") from e

    def analyze(self, text: str, lang: str, cancel_token: Optional[CancelToken] = None) -> StructuralAnalysis:
        check_cancelled(cancel_token)
        try:
            analysis = self._request(text, lang)
        except StructuralAnalysisUnavailable as e:
            logger.warning(f"Structural analysis unavailable, continuing without it: {e}")
            analysis = StructuralAnalysis.empty_for(lang)
        check_cancelled(cancel_token)
        return analysis
