import pytest

from tone_fluent.cancellation import CancelToken
from tone_fluent.errors import CancellationError, ToneFluentError
from tone_fluent.guards import has_japanese_characters
from tone_fluent.modality import CONFIRMATION, REQUEST, default_classifier
from tone_fluent.models import BASE_BAND, BUSINESS, CASUAL, CUSTOM, RISK_HIGH, RISK_LOW, BandStatus, SourceRequest, \
    ToneBand

from conftest import EN, JA, FakeAnalyzer, analysis, reply, tone_handler

SOURCE = "今日は天気がいいです。"
BASE = reply("The weather is nice today.", "今日は天気がいいです。")
C50 = reply("The weather's nice today.", "今日天気いいね。")
C100 = reply("Weather's awesome today!", "今日めっちゃ天気いい！")
B50 = reply("The weather is quite pleasant today.", "本日は天気が大変良いです。")
B100 = reply("The weather is exceptionally pleasant today.", "本日は誠に良いお天気でございます。")

REQUEST_SOURCE = "資料を送ってください。"
REQUEST_BASE = reply("Please send the documents.", "資料を送ってください。")


def _handler(**overrides):
    answers = dict(base=BASE, c50=C50, c100=C100, b50=B50, b100=B100)
    answers.update(overrides)
    return tone_handler(**answers)


def _request(text=SOURCE, source=JA, target=EN):
    return SourceRequest(text, source, target)


def test_base_is_shared_by_level_zero_of_every_tone(make_stack):
    stack = make_stack(_handler())
    request = _request()
    entry = stack.workflow.generate_base(request)
    assert entry.translation == "The weather is nice today."
    assert entry.reverse_translation == "今日は天気がいいです。"
    assert not entry.no_change
    for band in (BASE_BAND, ToneBand(CASUAL, 0), ToneBand(BUSINESS, 0)):
        assert stack.workflow.get(request, band) == entry
    assert len(stack.cache) == 3


def test_base_cache_hit_makes_no_call(make_stack):
    stack = make_stack(_handler())
    request = _request()
    stack.workflow.generate_base(request)
    stack.workflow.generate_base(request)
    assert len(stack.llm.calls) == 1


def test_all_bands_end_to_end(make_stack):
    stack = make_stack(_handler())
    request = _request()
    bands = stack.workflow.generate_tones(request)

    assert {band.name: entry.translation for band, entry in bands.items()} == {
        "casual_50": "The weather's nice today.",
        "casual_100": "Weather's awesome today!",
        "business_50": "The weather is quite pleasant today.",
        "business_100": "The weather is exceptionally pleasant today.",
    }
    assert bands[ToneBand(BUSINESS, 100)].reverse_translation == "本日は誠に良いお天気でございます。"
    assert not any(entry.no_change for entry in bands.values())

    # base + three partial edits + the casual 100 full-simple call
    assert len(stack.llm.calls) == 5
    business_100 = [c for c in stack.llm.calls_with("tone adjustment engine") if "highly polite" in c["user"]]
    assert '50% version: "The weather is quite pleasant today."' in business_100[0]["user"]
    casual_100 = stack.llm.calls_with("noticeably more casual")
    assert '"The weather\'s nice today."' in casual_100[0]["system"]

    assert stack.scheduler.wait(5)
    assert len(stack.verification_llm.calls) == 4
    for band in bands:
        assert stack.statuses.get(stack.workflow.key(request, band)) == BandStatus.PASSED


def test_generated_tones_are_cache_hits(make_stack):
    stack = make_stack(_handler())
    request = _request()
    first = stack.workflow.generate_tones(request)
    calls = len(stack.llm.calls)
    second = stack.workflow.generate_tones(request)
    assert second == first
    assert len(stack.llm.calls) == calls


def test_only_missing_tones_are_generated(make_stack):
    stack = make_stack(_handler())
    request = _request()
    stack.workflow.generate_tones(request, [CASUAL])
    assert stack.workflow.get(request, ToneBand(BUSINESS, 50)) is None
    stack.workflow.generate_tones(request, [CASUAL, BUSINESS])
    casual_edits = [c for c in stack.llm.calls_with("tone adjustment engine") if "casual email" in c["user"]]
    assert len(casual_edits) == 1


def test_no_change_at_50_copies_base_reverse(make_stack):
    unchanged = reply("The weather is nice today.", "本日は天気が良いです。")
    stack = make_stack(_handler(b50=unchanged, floors={"business_50": unchanged}))
    request = _request()
    bands = stack.workflow.generate_tones(request, [BUSINESS])

    entry_50 = bands[ToneBand(BUSINESS, 50)]
    assert entry_50.no_change
    assert entry_50.translation == "The weather is nice today."
    assert entry_50.reverse_translation == "今日は天気がいいです。"
    assert not bands[ToneBand(BUSINESS, 100)].no_change

    # the partial edit did not move, so the full-simple floor retry ran once
    assert len(stack.llm.calls_with("make yours more formal than this")) == 1
    assert stack.scheduler.wait(5)
    assert len(stack.verification_llm.calls) == 1


def test_no_change_at_100_copies_50_reverse(make_stack):
    collapsed = reply("The weather is quite pleasant today.", "本日はとても良い天気です。")
    stack = make_stack(_handler(b100=collapsed, floors={"business_100": collapsed}))
    request = _request()
    bands = stack.workflow.generate_tones(request, [BUSINESS])

    entry_100 = bands[ToneBand(BUSINESS, 100)]
    assert entry_100.no_change
    assert entry_100.translation == "The weather is quite pleasant today."
    assert entry_100.reverse_translation == "本日は天気が大変良いです。"
    assert len(stack.llm.calls_with("50% business version")) == 1


def test_request_never_becomes_confirmation_at_50(make_stack):
    stack = make_stack(tone_handler(
        base=REQUEST_BASE,
        b50=reply("Did you send the documents?", "資料は送りましたか？"),
        b100=reply("Would you kindly send the documents?", "資料をお送りいただけますでしょうか。"),
        regenerated=reply("Could you please send the documents?", "資料を送っていただけますか。"),
    ))
    request = _request(REQUEST_SOURCE)
    bands = stack.workflow.generate_tones(request, [BUSINESS])

    assert bands[ToneBand(BUSINESS, 50)].translation == "Could you please send the documents?"
    assert bands[ToneBand(BUSINESS, 100)].translation == "Would you kindly send the documents?"
    assert not any("Did you" in entry.translation for entry in bands.values())


def test_request_never_becomes_confirmation_at_100(make_stack):
    drifted = reply("Did you send the documents?", "資料は送りましたか？")
    stack = make_stack(tone_handler(
        base=REQUEST_BASE,
        b50=reply("Could you please send the documents?", "資料を送っていただけますか。"),
        b100=drifted,
        floors={"business_100": drifted},
    ))
    request = _request(REQUEST_SOURCE)
    bands = stack.workflow.generate_tones(request, [BUSINESS])

    entry_100 = bands[ToneBand(BUSINESS, 100)]
    assert entry_100.translation == "Could you please send the documents?"
    assert entry_100.no_change
    assert stack.scheduler.wait(5)
    # only the 50% band changed, so only it is verified
    assert len(stack.verification_llm.calls) == 1


def test_kana_stripped_and_flagged(make_stack):
    stack = make_stack(_handler(c50=reply("The weather's nice today ね", "今日天気いいね。")))
    request = _request()
    bands = stack.workflow.generate_tones(request, [CASUAL])
    assert bands[ToneBand(CASUAL, 50)].translation == "The weather's nice today"
    assert stack.workflow.get_risk(request, ToneBand(CASUAL, 50)) == RISK_HIGH
    assert stack.workflow.get_risk(request, ToneBand(CASUAL, 100)) == RISK_LOW


def test_japanese_in_english_reverse_flagged(make_stack):
    stack = make_stack(_handler(base=reply("今日はいい天気です。", "Today 天気 is nice.")))
    request = _request("The weather is nice today.", EN, JA)
    entry = stack.workflow.generate_base(request)
    assert "天気" not in entry.reverse_translation
    assert entry.reverse_translation.startswith("Today")
    assert stack.workflow.get_risk(request, BASE_BAND) == RISK_HIGH


def test_partial_failure_falls_back_to_base(make_stack):
    stack = make_stack(_handler(c50="not json at all", floors={"casual_50": "still not json"}))
    request = _request()
    bands = stack.workflow.generate_tones(request, [CASUAL])
    entry_50 = bands[ToneBand(CASUAL, 50)]
    assert entry_50.translation == "The weather is nice today."
    assert entry_50.no_change
    assert stack.workflow.get_risk(request, ToneBand(CASUAL, 50)) == RISK_HIGH


def test_base_failure_raises(make_stack):
    stack = make_stack(_handler(base="no translation here"))
    with pytest.raises(ToneFluentError):
        stack.workflow.generate_base(_request())
    assert len(stack.cache) == 0


def test_cancelled_generation_writes_nothing(make_stack):
    token = CancelToken()
    handler = _handler()

    def cancelling(system, user):
        if "tone adjustment engine" in system:
            token.cancel("new source text")
        return handler(system, user)

    stack = make_stack(cancelling)
    request = _request()
    stack.workflow.generate_base(request)
    with pytest.raises(CancellationError):
        stack.workflow.generate_tones(request, cancel_token=token)

    assert len(stack.cache) == 3
    for tone in (CASUAL, BUSINESS):
        assert stack.workflow.get(request, ToneBand(tone, 50)) is None
    assert stack.scheduler.wait(5)
    assert stack.verification_llm.calls == []


def test_cancelled_before_base(make_stack):
    stack = make_stack(_handler())
    token = CancelToken()
    token.cancel()
    with pytest.raises(CancellationError):
        stack.workflow.generate_base(_request(), token)
    assert stack.llm.calls == []
    assert len(stack.cache) == 0


def test_structure_and_anchors_derived_once(make_stack):
    base_analysis = analysis(("The", "DET"), ("weather", "NOUN"), ("is", "AUX"), ("nice", "ADJ"),
                             ("today", "NOUN"), (".", "PUNCT"))
    analyzer = FakeAnalyzer({"The weather is nice today.": base_analysis})
    stack = make_stack(_handler(definitions={"is": "to be", "nice": "pleasant"}), analyzer=analyzer)
    request = _request()
    stack.workflow.generate_tones(request)

    assert len(stack.llm.calls_with("define the meaning")) == 1
    edits = stack.llm.calls_with("tone adjustment engine")
    assert edits
    for call in edits:
        assert "[Fixed] (keep unchanged): weather, today" in call["system"]
        assert "- nice = pleasant" in call["user"]
    assert stack.scheduler.wait(5)
    assert all('"nice": pleasant' in c["user"] for c in stack.verification_llm.calls)


def test_custom_style_shared_across_levels(make_stack):
    stack = make_stack(_handler(custom=reply("OMG the weather is literally iconic today ✨💅", "今日の天気まじ最高✨💅")))
    request = _request()
    entry = stack.workflow.generate_custom(request, "ギャル")
    assert entry.translation.startswith("OMG")
    for level in (0, 50, 100):
        assert stack.workflow.get(request, ToneBand(CUSTOM, level, "ギャル")) == entry
    stack.workflow.generate_custom(request, "ギャル")
    assert len(stack.llm.calls_with("expert translator")) == 1
    assert stack.scheduler.wait(5)
    assert stack.verification_llm.calls == []


def test_custom_failure_shows_base_uncached(make_stack):
    stack = make_stack(_handler(custom="broken"))
    request = _request()
    entry = stack.workflow.generate_custom(request, "ギャル")
    assert entry.translation == "The weather is nice today."
    assert stack.workflow.get(request, ToneBand(CUSTOM, 0, "ギャル")) is None
    assert stack.workflow.get_risk(request, ToneBand(CUSTOM, 0, "ギャル")) == RISK_HIGH


def test_help_request_keeps_request_mood(make_stack):
    stack = make_stack(tone_handler(
        base=reply("Can you help me a bit?", "ちょっと手伝ってくれる？"),
        c50=reply("Did you help me?", "手伝ってくれた？"),
        c100=reply("Can you help me out real quick?", "ちょっと手伝ってくれない？頼む！"),
        b50=reply("Could you help me for a moment?", "少し手伝っていただけますか。"),
        b100=reply("Would you be so kind as to assist me briefly?", "少しお手伝いいただけますでしょうか。"),
        regenerated=reply("Can you give me a hand?", "ちょっと手を貸してくれる？"),
    ))
    request = _request("ちょっと手伝ってくれる?")
    bands = stack.workflow.generate_tones(request)

    assert bands[ToneBand(CASUAL, 50)].translation == "Can you give me a hand?"
    for entry in bands.values():
        assert default_classifier().classify(entry.translation) != CONFIRMATION


def test_english_request_end_to_end(make_stack):
    stack = make_stack(tone_handler(
        base=reply("明日送ってもらえる？", "Can you send it tomorrow?"),
        c50=reply("明日送ってくれる？", "Can you send it tomorrow?"),
        c100=reply("明日送ってくれよ", "Send it tomorrow, will ya?"),
        b50=reply("明日送っていただけますか？お願いします。", "Could you please send it tomorrow?"),
        b100=reply("明日お送りいただけますでしょうか。お願いいたします。", "Could you kindly send it tomorrow?"),
    ))
    request = _request("Can you send it tomorrow?", EN, JA)
    bands = stack.workflow.generate_tones(request)

    for band in (ToneBand(CASUAL, 50), ToneBand(BUSINESS, 50)):
        assert default_classifier().classify(bands[band].translation) == REQUEST
    reverse_100 = bands[ToneBand(BUSINESS, 100)].reverse_translation
    assert reverse_100 == "Could you kindly send it tomorrow?"
    assert not has_japanese_characters(reverse_100)
    assert stack.workflow.get_risk(request, ToneBand(BUSINESS, 100)) == RISK_LOW


def test_cancelled_in_flight_base_is_not_cached(make_stack):
    token = CancelToken()
    handler = _handler()

    def cancelling(system, user):
        token.cancel("user left")
        return handler(system, user)

    stack = make_stack(cancelling)
    request = _request()
    with pytest.raises(CancellationError):
        stack.workflow.generate_base(request, token)
    assert stack.workflow.get(request, BASE_BAND) is None
    assert len(stack.cache) == 0
