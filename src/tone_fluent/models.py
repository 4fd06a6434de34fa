from dataclasses import dataclass, field, asdict
from enum import Enum
from typing import Any, Dict, List, Optional

# Bump whenever prompt wording changes output semantics; every cache key embeds it.
PROMPT_VERSION = "2026-10-01-tone-bands-3"

BASE = "base"
CASUAL = "casual"
BUSINESS = "business"
CUSTOM = "custom"

TONES = (BASE, CASUAL, BUSINESS, CUSTOM)
SLIDER_TONES = (CASUAL, BUSINESS)
LEVELS = (0, 50, 100)

RISK_LOW = "low"
RISK_MED = "med"
RISK_HIGH = "high"

MEANING_ISSUE_TYPES = ("meaning_shift", "meaning_loss", "meaning_addition")
NATURALNESS_ISSUE_TYPES = ("unnatural", "reverse_subject", "reverse_unnatural")
ACTIONABLE_SEVERITIES = ("high", "medium")


@dataclass(frozen=True)
class SourceRequest:
    text: str
    source_lang: str
    target_lang: str
    native_mode: bool = False
    prompt_version: str = PROMPT_VERSION


@dataclass(frozen=True)
class ToneBand:
    tone: str
    level: int = 0
    custom_style: Optional[str] = None

    def __post_init__(self):
        if self.tone not in TONES:
            raise ValueError(f"Unknown tone: {self.tone}")
        if self.level not in LEVELS:
            raise ValueError(f"Unknown level: {self.level}")
        if self.tone == CUSTOM and not self.custom_style:
            raise ValueError("Custom bands need a style descriptor")

    @property
    def name(self) -> str:
        return f"{self.tone}_{self.level}"

    @property
    def slider_level(self) -> int:
        """Signed position on the casual(-)/polite(+) scale."""
        if self.tone == CASUAL:
            return -self.level
        if self.tone == BUSINESS:
            return self.level
        return 0

    def lower_neighbor(self) -> Optional["ToneBand"]:
        """The adjacent, less extreme band this one is compared against for no-change."""
        if self.tone not in SLIDER_TONES or self.level == 0:
            return None
        if self.level == 50:
            return BASE_BAND
        return ToneBand(self.tone, 50)

    def sibling(self) -> Optional["ToneBand"]:
        if self.tone not in SLIDER_TONES or self.level == 0:
            return None
        return ToneBand(self.tone, 100 if self.level == 50 else 50)


BASE_BAND = ToneBand(BASE, 0)


@dataclass
class TranslationResult:
    translation: str
    reverse_translation: str = ""
    risk: str = RISK_LOW
    detected_language: Optional[str] = None

    @classmethod
    def from_dict(cls, data: Dict[str, Any], fallback_translation: str = "", fallback_reverse: str = "") -> "TranslationResult":
        risk = data.get("risk") or RISK_LOW
        if risk not in (RISK_LOW, RISK_MED, RISK_HIGH):
            risk = RISK_MED
        return cls(
            translation=str(data.get("translation") or fallback_translation).strip(),
            reverse_translation=str(data.get("reverse_translation") or fallback_reverse).strip(),
            risk=risk,
            detected_language=data.get("detected_language"),
        )

    def with_risk(self, risk: str) -> "TranslationResult":
        return TranslationResult(self.translation, self.reverse_translation, risk, self.detected_language)


@dataclass(frozen=True)
class CacheEntry:
    translation: str
    reverse_translation: str
    no_change: bool = False


@dataclass
class VerificationIssue:
    type: str
    severity: str
    word: Optional[str] = None
    expected: Optional[str] = None
    got: Optional[str] = None
    phrase: Optional[str] = None
    reason: Optional[str] = None

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "VerificationIssue":
        return cls(
            type=str(data.get("type", "")),
            severity=str(data.get("severity", "low")).lower(),
            word=data.get("word"),
            expected=data.get("expected"),
            got=data.get("got"),
            phrase=data.get("phrase"),
            reason=data.get("reason"),
        )

    def to_dict(self) -> Dict[str, Any]:
        return {k: v for k, v in asdict(self).items() if v is not None}

    @property
    def actionable(self) -> bool:
        return self.severity in ACTIONABLE_SEVERITIES

    @property
    def is_meaning(self) -> bool:
        return self.type in MEANING_ISSUE_TYPES

    @property
    def is_naturalness(self) -> bool:
        return self.type in NATURALNESS_ISSUE_TYPES


@dataclass
class VerificationResult:
    passed: bool
    issues: List[VerificationIssue] = field(default_factory=list)

    @property
    def actionable_issues(self) -> List[VerificationIssue]:
        return [i for i in self.issues if i.actionable]


class BandStatus(str, Enum):
    IDLE = "idle"
    VERIFYING = "verifying"
    FIXING = "fixing"
    PASSED = "passed"
