from tone_fluent.llm import CompletionClient
from tone_fluent.models import BUSINESS, CASUAL, CUSTOM, RISK_HIGH, RISK_LOW, SourceRequest, TranslationResult
from tone_fluent.translator import PARTIAL_MAX_TOKENS, ToneTranslator, prompt_language

from conftest import EN, JA, FakeAnalyzer, ScriptedLLM, analysis, reply

REQUEST = SourceRequest("資料を送ってください。", JA, EN)
BASE = TranslationResult("Please send the documents.", "資料を送ってください。")


def _translator(handler, analyzer=None):
    llm = ScriptedLLM(handler)
    return ToneTranslator(CompletionClient(llm, attempts=1, retry_wait=0), analyzer or FakeAnalyzer()), llm


def test_prompt_language_accepts_any_name_form():
    assert prompt_language("日本語") == "Japanese"
    assert prompt_language("english") == "English"
    assert prompt_language("ko") == "Korean"


def test_base_is_anchored_on_source_content_words():
    source = analysis(("資料", "NOUN"), ("を", "ADP"), ("送っ", "VERB"), ("て", "SCONJ"))
    analyzer = FakeAnalyzer({REQUEST.text: source})
    translator, llm = _translator(lambda s, u: reply("Please send the documents.", "資料を送ってください。"), analyzer)
    result = translator.translate_base(REQUEST)
    assert result.translation == "Please send the documents."
    system = llm.calls[0]["system"]
    assert system.startswith("Translate to English naturally.")
    assert "[Translation constraint]" in system and "資料, 送っ" in system
    assert "Preserve the original text's level of politeness" in system
    assert llm.calls[0]["user"] == REQUEST.text


def test_full_custom_prompt_uses_preset():
    translator, llm = _translator(lambda s, u: reply("OMG like send the docs 💅✨", "ねえ資料送って💅✨"))
    result = translator.translate_full(REQUEST, CUSTOM, 0, custom_style="ギャル")
    assert result.translation.startswith("OMG")
    assert "[Custom tone: gyaru]" in llm.calls[0]["system"]
    assert "ギャル style" in llm.calls[0]["user"]
    assert llm.calls[0]["temperature"] == 0.3


def test_partial_call_shape():
    translator, llm = _translator(lambda s, u: reply("Could you kindly send the documents?", "資料をお送りいただけますか？"))
    result = translator.translate_partial(REQUEST, BASE, "[Fixed] (keep unchanged): documents", BUSINESS, 50,
                                          "- send = deliver")
    assert result.translation == "Could you kindly send the documents?"
    assert result.risk == RISK_LOW
    call = llm.calls[0]
    assert call["temperature"] == 0
    assert call["max_tokens"] == PARTIAL_MAX_TOKENS
    assert "[Structure constraints]" in call["system"]
    assert "[Fixed] (keep unchanged): documents" in call["system"]
    assert "Base translation (English): Please send the documents." in call["user"]
    assert "- send = deliver" in call["user"]


def test_partial_with_reference_refines_50_percent_version():
    translator, llm = _translator(lambda s, u: reply("Would you kindly send the documents?", "資料をお送りいただけますでしょうか。"))
    translator.translate_partial(REQUEST, BASE, "", BUSINESS, 100,
                                 reference_translation="Could you send the documents?")
    user = llm.calls[0]["user"]
    assert '50% version: "Could you send the documents?"' in user
    assert "Keep the same vocabulary" in user


def test_partial_failure_returns_base_with_high_risk():
    translator, _ = _translator(lambda s, u: "Sorry, I can't do that.")
    result = translator.translate_partial(REQUEST, BASE, "", CASUAL, 50)
    assert result.translation == BASE.translation
    assert result.risk == RISK_HIGH


def test_modality_drift_uses_previous_level():
    translator, llm = _translator(lambda s, u: reply("Did you send the documents?", "資料送った？"))
    previous = TranslationResult("Could you send the documents?", "資料を送っていただけますか？")
    result = translator.translate_partial(REQUEST, BASE, "", BUSINESS, 100, fallback=previous)
    assert result == previous
    assert len(llm.calls) == 1


def test_modality_drift_regenerates_with_anchors_only():
    def handler(system, user):
        if "tone adjustment engine" in system:
            return reply("Did you send the documents?", "資料送った？")
        return reply("Can you send the documents?", "資料を送ってくれる？")

    translator, llm = _translator(handler)
    result = translator.translate_partial(REQUEST, BASE, "", CASUAL, 50, meaning_constraint="- send = deliver")
    assert result.translation == "Can you send the documents?"
    regeneration = llm.calls[1]["system"]
    assert regeneration.startswith("Translate to English naturally.")
    assert "- send = deliver" in regeneration
    assert "[Tone instruction]" not in regeneration


def test_modality_drift_twice_returns_base_high_risk():
    translator, _ = _translator(lambda s, u: reply("Did you send the documents?", "資料送った？"))
    result = translator.translate_partial(REQUEST, BASE, "", CASUAL, 50)
    assert result.translation == BASE.translation
    assert result.risk == RISK_HIGH


def test_guards_apply_to_partial_output():
    translator, _ = _translator(lambda s, u: reply("Please send the documents ね", "資料送ってね"))
    result = translator.translate_partial(REQUEST, BASE, "", CASUAL, 50)
    assert result.translation == "Please send the documents"
    assert result.risk == RISK_HIGH
