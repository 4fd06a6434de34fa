import pytest

from tone_fluent.analyzer import StructuralAnalysis
from tone_fluent.anchors import (
    MeaningAnchorBuilder,
    build_meaning_constraint_text,
    classify_tokens,
    extract_content_words,
    extract_flexible_words,
    structure_to_prompt_text,
)
from tone_fluent.cancellation import CancelToken
from tone_fluent.errors import CancellationError
from tone_fluent.llm import CompletionClient

from conftest import ScriptedLLM, analysis

SENTENCE = analysis(
    ("I", "PRON"), ("'m", "AUX"), ("happy", "ADJ"), ("to", "PART"), ("see", "VERB"),
    ("John", "PROPN"), ("'s", "PART"), ("dog", "NOUN"), (".", "PUNCT"),
)


def test_classify_tokens_merges_clitics_and_skips_possessives():
    classes = classify_tokens(SENTENCE)
    assert classes.fixed == ["John", "dog"]
    assert classes.flexible == ["happy", "see"]
    assert classes.free == ["I'm", "to"]


def test_structure_prompt_text():
    text = structure_to_prompt_text(SENTENCE)
    assert text.splitlines() == [
        "[Fixed] (keep unchanged): John, dog",
        "[Rephrase keeping meaning] (content words): happy, see",
        "[Free] (function words): I'm, to",
    ]


def test_empty_analysis_gives_no_structure():
    assert structure_to_prompt_text(StructuralAnalysis.empty_for("en")) == ""


def test_word_extraction():
    assert extract_flexible_words(SENTENCE) == ["happy", "see"]
    assert extract_content_words(SENTENCE) == "I, 'm, happy, see, John, dog"


def test_meaning_constraint_text():
    assert build_meaning_constraint_text({"happy": "glad", "see": "meet"}) == "- happy = glad\n- see = meet"
    assert build_meaning_constraint_text({}) == ""


def _builder(handler):
    llm = ScriptedLLM(handler)
    return MeaningAnchorBuilder(CompletionClient(llm, attempts=1, retry_wait=0)), llm


def test_build_definitions():
    builder, llm = _builder(lambda s, u: {"definitions": {"happy": "glad", "see": "meet"}})
    definitions = builder.build("ジョンの犬に会えて嬉しい", "I'm happy to see John's dog.", ["happy", "see"], "日本語")
    assert definitions == {"happy": "glad", "see": "meet"}
    assert llm.calls[0]["temperature"] == 0.1
    assert "Words to define: happy, see" in llm.calls[0]["user"]


def test_no_words_makes_no_call():
    builder, llm = _builder(lambda s, u: {"definitions": {"x": "y"}})
    assert builder.build("原文", "text", [], "日本語") == {}
    assert llm.calls == []


def test_bad_response_degrades_to_empty():
    builder, _ = _builder(lambda s, u: "I cannot help with that")
    assert builder.build("原文", "text", ["happy"], "日本語") == {}
    builder, _ = _builder(lambda s, u: {"definitions": ["happy"]})
    assert builder.build("原文", "text", ["happy"], "日本語") == {}


def test_cancellation_propagates():
    token = CancelToken()
    token.cancel("new text")
    builder, llm = _builder(lambda s, u: {"definitions": {}})
    with pytest.raises(CancellationError):
        builder.build("原文", "text", ["happy"], "日本語", token)
    assert llm.calls == []
