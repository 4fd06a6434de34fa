"""Shared fakes: a scripted completion backend and an in-memory structural analyzer."""

import json
import threading
from dataclasses import dataclass
from typing import Callable, Dict, List, Optional

import pytest

from tone_fluent.analyzer import AnalyzedToken, StructuralAnalysis, StructuralAnalyzer
from tone_fluent.anchors import MeaningAnchorBuilder
from tone_fluent.cache import BandCache, BandStatusTracker
from tone_fluent.cancellation import check_cancelled
from tone_fluent.llm import CompletionClient, GenerationResult, LLMBase
from tone_fluent.translator import ToneTranslator
from tone_fluent.verification import BandVerifier, RepairScheduler
from tone_fluent.workflow import ToneBandWorkflow

JA = "日本語"
EN = "英語"


def reply(translation: str, reverse: str = "", risk: str = "low") -> Dict[str, str]:
    return {"translation": translation, "reverse_translation": reverse, "risk": risk}


class ScriptedLLM(LLMBase):
    """
    Backend whose answer comes from handler(system_prompt, user_prompt). The handler may
    return a string, a dict (sent as JSON) or an exception instance (raised).
    """

    def __init__(self, handler: Callable[[str, str], object], model: str = "scripted"):
        self.handler = handler
        self.model = model
        self.calls: List[Dict[str, object]] = []
        self._lock = threading.Lock()

    def generate(self, prompt, system_prompt=None, temperature=0.3, max_tokens=None, model=None):
        with self._lock:
            self.calls.append({
                "system": system_prompt or "",
                "user": prompt,
                "temperature": temperature,
                "max_tokens": max_tokens,
            })
        answer = self.handler(system_prompt or "", prompt)
        if isinstance(answer, Exception):
            raise answer
        if isinstance(answer, dict):
            answer = json.dumps(answer, ensure_ascii=False)
        return GenerationResult(text=answer, prompt_tokens=5, completion_tokens=5, total_tokens=10)

    def calls_with(self, marker: str) -> List[Dict[str, object]]:
        with self._lock:
            return [c for c in self.calls if marker in c["system"] or marker in c["user"]]


class FakeAnalyzer(StructuralAnalyzer):
    """Returns canned analyses by text; anything else analyses as empty."""

    def __init__(self, analyses: Optional[Dict[str, StructuralAnalysis]] = None):
        super().__init__(url="http://analyzer.invalid")
        self.analyses = analyses or {}
        self.calls: List[str] = []

    def analyze(self, text, lang, cancel_token=None):
        check_cancelled(cancel_token)
        self.calls.append(text)
        return self.analyses.get(text) or StructuralAnalysis.empty_for(lang)


def analysis(*tokens) -> StructuralAnalysis:
    """analysis(("The", "DET"), ("weather", "NOUN"), ...)"""
    items = [AnalyzedToken(text=t, lemma=t.lower(), upos=pos) for t, pos in tokens]
    return StructuralAnalysis(tokens=items, summary={"total": len(items), "protected": 0, "unprotected": len(items)},
                              lang="en", model="test")


def tone_handler(base, c50=None, c100=None, b50=None, b100=None, floors=None, definitions=None, custom=None,
                 regenerated=None):
    """
    Routes generation prompts to fixed answers:
      base / regenerated: full-simple without a tone (first call is the base, later ones regenerations)
      c50, b50, b100: partial edits; c100: the casual full-simple call
      floors: {"casual_50": ..., "business_50": ..., "business_100": ...} for full-simple retries
    """
    floors = floors or {}
    counter = {"plain": 0}
    lock = threading.Lock()

    def handler(system, user):
        if "define the meaning" in system:
            return {"definitions": definitions or {}}
        if "expert translator" in system:
            return custom if custom is not None else reply("Custom", "カスタム")
        if "tone adjustment engine" in system:
            if "highly polite and formal" in user:
                return b100
            if "polite and respectful" in user:
                return b50
            return c50
        if "noticeably more casual" in system:
            return c100
        if "make yours more casual than this" in system:
            return floors.get("casual_50", c50)
        if "50% business version" in system:
            return floors.get("business_100", b100)
        if "make yours more formal than this" in system:
            return floors.get("business_50", b50)
        if "Translate to" in system:
            with lock:
                counter["plain"] += 1
                first = counter["plain"] == 1
            return base if first or regenerated is None else regenerated
        raise AssertionError(f"unexpected prompt: {system[:80]}")

    return handler


def passing_verifier(system, user):
    if "translation quality checker" in system:
        return {"pass": True, "issues": []}
    raise AssertionError(f"unexpected verification prompt: {system[:80]}")


@dataclass
class Stack:
    llm: ScriptedLLM
    verification_llm: ScriptedLLM
    analyzer: FakeAnalyzer
    cache: BandCache
    statuses: BandStatusTracker
    translator: ToneTranslator
    scheduler: RepairScheduler
    workflow: ToneBandWorkflow


def build_stack(handler, verification_handler=passing_verifier, analyzer: Optional[FakeAnalyzer] = None) -> Stack:
    llm = ScriptedLLM(handler)
    verification_llm = ScriptedLLM(verification_handler)
    client = CompletionClient(llm, attempts=1, retry_wait=0)
    verification_client = CompletionClient(verification_llm, attempts=1, retry_wait=0)
    analyzer = analyzer or FakeAnalyzer()
    cache = BandCache()
    statuses = BandStatusTracker()
    translator = ToneTranslator(client, analyzer)
    scheduler = RepairScheduler(BandVerifier(verification_client), cache, statuses)
    workflow = ToneBandWorkflow(translator, MeaningAnchorBuilder(client), cache, scheduler, analyzer)
    return Stack(llm, verification_llm, analyzer, cache, statuses, translator, scheduler, workflow)


@pytest.fixture
def make_stack():
    stacks: List[Stack] = []

    def factory(handler, verification_handler=passing_verifier, analyzer=None) -> Stack:
        stack = build_stack(handler, verification_handler, analyzer)
        stacks.append(stack)
        return stack

    yield factory
    for stack in stacks:
        stack.scheduler.shutdown(wait_for_tasks=True)
