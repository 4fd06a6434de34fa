"""
Prompt text for every model call. Any wording change that alters output semantics
must come with a PROMPT_VERSION bump in models.py.
"""
from typing import Dict, Optional

from .languages import lang_code_from_name, lang_name_from_code, detection_choices
from .models import BUSINESS, CASUAL, CUSTOM

TONE_BOUNDARY_RULES = """[Tone boundaries]
- Tone changes only the manner of speaking. Keep every structural value.
- Only vocabulary register, sentence style and politeness may change.
- Nouns may only be rephrased within the same category."""

# Goal scenes rather than edit operations: the model picks the degree itself.
TONE_TABLE: Dict[str, Dict[int, str]] = {
    CASUAL: {
        50: "Rewrite as if writing a casual email to a friend.",
        100: "Translate naturally using native expressions and slang where appropriate.",
    },
    BUSINESS: {
        50: "Write in a polite and respectful tone. Use courteous expressions appropriate for the target language. "
            "Do not replace everyday vocabulary with literary or archaic words.",
        100: "Write in a highly polite and formal tone. Use courteous expressions, honorifics, and refined sentence "
             "structure appropriate for the target language. Do not replace everyday vocabulary with literary or archaic words.",
    },
}

APPLY_TO_BASE = "Apply these to the base translation."
REFINE_REFERENCE = ("Adjust the 50% version to match this tone. Keep the same vocabulary. "
                    "Add polite expressions to increase formality, do not upgrade word choices.")

CUSTOM_PRESETS: Dict[str, str] = {
    "オジサン構文": """[Custom tone: middle-aged man texting style]
Apply the style to BOTH the translation and the reverse translation.
- Address the reader once by name or nickname (e.g. "-chan", "-san")
- 3 to 8 emoji (😊😅✨💦👍💓❄️😂), required on both sides
- Use "..." at least twice
- At least one line break, to feel like a letter
- One caring phrase (don't overdo it / aren't you tired? / feeling ok?)
- Close softly (see you 😊 / waiting for your reply ✨)
- Talk about yourself once ("back in my day...")
- At least three ! or ? in total
- Never zero emoji""",
    "限界オタク": """[Custom tone: overwhelmed superfan]
Apply the style to BOTH the translation and the reverse translation.
- Start with an emotional trigger (wait / I can't / huh? love)
- Use "?????" or "!!!!!!" once
- At least three !, ? or "..." in total
- One burst of very short sentences (Wait. No. Love. Seriously.)
- One bracketed reaction ((crying) (dead) (help))
- A verdict-style ending (conclusion: winner / literally divine)
- 1 to 4 emoji (🙏✨🔥😭😇)
- English side in all-caps bursts (I CAN'T... TOO PRECIOUS... HELP...)
- No calm phrasing""",
    "赤ちゃん言葉": """[Custom tone: baby talk]
Apply the style to BOTH the translation and the reverse translation.
- Babify sentence endings at least twice
- At least one sound/feeling word (waah / hehe / squish / sleepy-sleepy)
- Repeat a word at least once (yummy yummy)
- At least one very short sentence
- One bracketed feeling ((hehe) (pout) (sniff))
- End with a baby-style conclusion (all done. / did my best.)
- English side babyish too (pwease / sowwy / vewy nice / dis is so good)
- No stiff adult phrasing""",
    "ギャル": """[Custom tone: gyaru]
Apply the style to BOTH the translation and the reverse translation.
- Open with an intro phrase (wait / like / totally)
- At least two intensifiers (so / literally / super / insane)
- One agreement interjection (same / so true)
- At least three symbols in total (! ? lol)
- 2 to 6 emoji (💅✨🥺💕🔥)
- One burst of short sentences
- Close with a light verdict (iconic / nothing beats this)
- English side gyaru-like (like, totally, omg, so cute, literally, vibes, slay)
- No stiff or honorific phrasing""",
}

PARTIAL_SYSTEM_PROMPT = """You are a tone adjustment engine for translations.

[Output]
translation must be in the requested output language; reverse_translation must be in the language of the original text.
JSON only: {"translation":"...","reverse_translation":"...(in the original's language)..."}"""

PARTIAL_RULES = """[Rules]
- Keep every word listed under [Fixed] exactly as it is
- For each word under [Rephrase keeping meaning], choose a word that fits the definition next to it
- Words under [Free] may be adjusted freely
- Keep the content and the events exactly the same
- Do not change the subject of the sentence (e.g. "I" must stay "I", not "we")
- If the original uses casual words, do not upgrade their register. Express politeness through polite phrasing and sentence structure"""

CASUAL_FREEDOM = "Keep the same meaning, but you are free to use completely different words and phrasing."

MEANING_DEFINITIONS_SYSTEM_PROMPT = """You are a translation assistant. Given an original sentence and its base translation, define the meaning of each listed word as used in THIS specific sentence.
Be specific enough that a translator can distinguish this meaning from similar words.
Explain the meaning of each word as a descriptive phrase about the state, action, or feeling. Do not define a word by simply listing synonyms.
If the word involves an action or relationship between people, include who does what to whom.
If a person's name appears, note their likely role (e.g. child, colleague, friend) based on context.
Output JSON only: {"definitions": {"word": "definition", ...}}"""

VERIFY_REVERSE_CHECKS = """
5. Reverse translation subject/perspective: Does the reverse translation preserve the subject and perspective of the original? If the original uses first person ("I"), the reverse translation must also use first person. Using honorific forms that shift the subject (e.g. Japanese respectful forms turning "I did X" into "someone did X for you") is a high severity issue.
6. Reverse translation naturalness: Is the reverse translation natural and idiomatic in the original language? Overly literal, awkward, or unnatural phrasing in the reverse translation is an issue."""

VERIFY_SYSTEM_PROMPT = """You are a translation quality checker.
Judge based on the target language's own grammar rules.{tone_context}

Check for:
1. Meaning shift: Does any word's meaning change from the definition?
2. Meaning loss: Is any defined meaning missing in the translation?
3. Meaning addition: Does the translation convey any intent or nuance not present in the original? Judge by the overall message, not by individual words.
4. Unnatural expression: Is any part grammatically awkward or unnatural in the target language?{reverse_checks}

Severity:
- high: Grammatically wrong, clearly unnatural, or meaning is wrong
- medium: Slightly odd but native speakers might use it
- low: Style preference

Respond in JSON:
{{
  "pass": true/false,
  "issues": [
    {{
      "type": "meaning_shift|meaning_loss|meaning_addition|unnatural|reverse_subject|reverse_unnatural",
      "severity": "high|medium|low",
      "word": "(for meaning issues) the problematic word",
      "expected": "(for meaning issues) what it should mean",
      "got": "(for meaning issues) what it actually conveys",
      "phrase": "(for unnatural/reverse issues) the awkward phrase",
      "reason": "why it is an issue"
    }}
  ]
}}
Set pass to false only if there are high severity issues. If all issues are medium or low, set pass to true."""

FIX_MEANING_SYSTEM_PROMPT = """You are a translation fixer.
Fix based on the issues provided. The expected field shows the correct meaning for each word.
Keep everything else, including the tone level, exactly the same.{tone_block}
The translation MUST be in {target_lang}. Do NOT output in the original language.
{reverse_instruction}
Respond in JSON:
{{
  "translation": "...in {target_lang}...",
  "reverse_translation": "...in {source_lang}..."
}}"""

FIX_NATURALNESS_SYSTEM_PROMPT = """You are a translation fixer.
The translation has unnatural expressions. Rewrite the sentence fixing ONLY the unnatural parts.
Do not change anything else. Keep the meaning and tone level exactly the same.{tone_block}
The translation MUST be in {target_lang}. Do NOT output in the original language.
{reverse_instruction}
Respond in JSON:
{{
  "translation": "...in {target_lang}...",
  "reverse_translation": "...in {source_lang}..."
}}"""


def get_language_specific_rules(target_lang: str) -> str:
    if lang_code_from_name(target_lang) == "en":
        return """[English-specific rules]
- Translate second-person pronouns as "you"
- Use clothes/outfit for general clothing words ("dress" only when a dress is explicitly mentioned)"""
    return ""


def get_japanese_honorific_rules(source_lang: str, target_lang: str, tone: Optional[str]) -> str:
    if "ja" not in (lang_code_from_name(source_lang), lang_code_from_name(target_lang)):
        return ""
    lines = [
        "[Japanese honorific rules]",
        "- Use correct honorific verbs (e.g. おっしゃる, ご覧になる, 召し上がる)",
        "- Avoid double honorifics; use the single correct honorific form",
    ]
    if tone == BUSINESS:
        lines.append("- In business/polite tone always use です/ます/ございます forms")
    if not tone:
        lines.append("- Keep the formality of the original: polite original -> honorific, casual original -> plain speech")
    return "\n".join(lines)


def get_tone_instruction(tone: Optional[str], level: int = 0, custom_style: Optional[str] = None) -> str:
    if tone == CUSTOM:
        preset = CUSTOM_PRESETS.get(custom_style or "")
        if preset:
            return preset
        return f'[Tone instruction]\nRephrase the base translation in the style of "{custom_style or ""}".'

    if not tone or level == 0:
        return ""
    instructions = TONE_TABLE.get(tone)
    if not instructions:
        return ""
    bucket = 50 if level < 75 else 100
    return f"[Tone instruction]\n{instructions[bucket]}\n{APPLY_TO_BASE}"


def _reverse_rules_common() -> str:
    return """- Reflect every expression added by the tone adjustment (reverse translations of different levels must differ in tone)
- Reuse the original's vocabulary for words with the same meaning wherever possible
- Keep the subject and perspective of the original. If the original is first person, so is the reverse translation
- Match the honorific level used for each person in the original
- Follow the original for name honorifics; add none the original does not have"""


def get_reverse_translation_instruction(source_lang: str, target_lang: str, tone: Optional[str] = None) -> str:
    polite = tone == BUSINESS
    code = lang_code_from_name(source_lang)
    if code == "ja":
        register = ("- Translate the tone-adjusted translation into Japanese using correct keigo (です/ます, humble and "
                    "respectful forms), never using respectful forms for the speaker's own actions"
                    if polite else
                    "- Translate the tone-adjusted translation into plain Japanese as if talking to a friend; no です/ます")
        return f"[Reverse translation]\n- reverse_translation must be in Japanese\n{register}\n{_reverse_rules_common()}"
    if code == "ko":
        register = "- Use the formal 합니다 style" if polite else "- Use the casual 해체 style"
        return (f"[Reverse translation]\n- reverse_translation must be in Korean\n"
                f"- Translate the tone-adjusted {target_lang} into Korean\n{register}\n{_reverse_rules_common()}")
    register = (f"- Use formal, polite {source_lang} expressions" if polite
                else f"- Use casual, colloquial {source_lang} expressions")
    return (f"[Reverse translation]\n- reverse_translation must be in {source_lang}\n"
            f"- Translate the tone-adjusted {target_lang} into {source_lang}\n{register}\n"
            f"- Use only {source_lang} vocabulary\n{_reverse_rules_common()}")


def get_simple_full_gen_prompt(target_lang: str, source_lang: str, content_words: str = "",
                               has_tone_instruction: bool = False, native_mode: bool = False) -> str:
    politeness = "" if has_tone_instruction else (
        "\nPreserve the original text's level of politeness: if the original is polite, keep the translation polite; "
        "if casual, keep it casual.")
    native = "\nUse natural, native-sounding expressions." if native_mode else ""
    constraint = (f"\n\n[Translation constraint]\nThe meaning of these words of the original must be reflected:\n{content_words}"
                  if content_words else "")
    return (f"Translate to {target_lang} naturally.{politeness}{native}{constraint}\n"
            f'Output JSON only: {{"translation":"...","reverse_translation":"...in {source_lang}...",'
            f'"risk":"low|med|high","detected_language":"..."}}')


def meaning_constraint_block(meaning_constraint: str) -> str:
    if not meaning_constraint:
        return ""
    return f"[Meaning constraints]\nThe translation must reflect these meanings:\n{meaning_constraint}"


def build_full_system_prompt(source_lang: str, target_lang: str, native_mode: bool, tone: Optional[str],
                             level: int, custom_style: Optional[str]) -> str:
    parts = [
        f"You are an expert translator from {source_lang} to {target_lang}.",
        f"[Output languages]\n- translation: {target_lang}\n- reverse_translation: {source_lang}",
        TONE_BOUNDARY_RULES,
        get_japanese_honorific_rules(source_lang, target_lang, tone),
        get_language_specific_rules(target_lang),
        "[Native mode] Use natural, native-sounding expressions." if native_mode else "",
        get_tone_instruction(tone, level, custom_style),
        get_reverse_translation_instruction(source_lang, target_lang, tone),
        f"[Language detection]\nDetect the language of the original and put it in detected_language.\nChoices: {detection_choices()}",
        'Output JSON:\n{\n  "translation": "...",\n  "reverse_translation": "...",\n  "risk": "low|med|high",\n  "detected_language": "..."\n}',
    ]
    return "\n\n".join(p for p in parts if p)


def build_partial_user_prompt(base_translation: str, original_text: str, tone: str, level: int, source_lang: str,
                              target_lang: str, meaning_constraint: str = "",
                              reference_translation: Optional[str] = None) -> str:
    tone_instruction = get_tone_instruction(tone, level)
    lines = [f"Output language: {lang_name_from_code(lang_code_from_name(target_lang))}"]
    if reference_translation is not None:
        # Refine the 50% version instead of rewriting the base; avoids vocabulary escalation
        tone_instruction = tone_instruction.replace(APPLY_TO_BASE, REFINE_REFERENCE)
        lines.append(f'Base (0%): "{base_translation}"')
        lines.append(f'50% version: "{reference_translation}"')
    else:
        lines.append(f"Base translation ({target_lang}): {base_translation}")
    lines.append(f"Original: {original_text}")
    lines.extend(["", PARTIAL_RULES, "", meaning_constraint_block(meaning_constraint)])
    if tone == CASUAL:
        lines.append(CASUAL_FREEDOM)
    lines.extend(["", tone_instruction, "", get_reverse_translation_instruction(source_lang, target_lang, tone)])
    return "\n".join(lines)


def build_floor_instruction(tone: str, level: int, floor_text: str) -> str:
    """Tone instruction for the full-simple strategy: beat the given floor in the tone's direction."""
    if tone == CASUAL and level == 50:
        return (f"{TONE_TABLE[CASUAL][50]}\nHere is the base translation for reference - make yours more casual than this:\n"
                f'"{floor_text}"\n{CASUAL_FREEDOM}')
    if tone == CASUAL:
        return ("Translate as if texting a close friend. Be more casual than the 50% version below - use slang, "
                "abbreviations, and a relaxed tone.\nHere is the 50% casual version - make yours noticeably more casual:\n"
                f'"{floor_text}"\n{CASUAL_FREEDOM}')
    if level == 50:
        return (f"{TONE_TABLE[BUSINESS][50]}\nHere is the base translation for reference - make yours more formal than this:\n"
                f'"{floor_text}"')
    return (f"{TONE_TABLE[BUSINESS][100]}\nHere is the 50% business version for reference - make yours more formal than this:\n"
            f'"{floor_text}"')


def build_meaning_definitions_user_prompt(original_text: str, base_translation: str, words, source_lang: str) -> str:
    return (f"Original ({source_lang}): 「{original_text}」\n"
            f'Base translation: "{base_translation}"\n'
            f"Words to define: {', '.join(words)}")


def build_full_user_prompt(source_text: str, tone: Optional[str], level: int) -> str:
    description = f"{tone} style, strength {level}%" if tone else "natural translation"
    return f"Translate the following text ({description}):\n\n{source_text}"


def build_verify_user_prompt(original_text: str, translation: str, reverse_translation: str,
                             definitions: Dict[str, str]) -> str:
    reverse_line = f'\nReverse translation: "{reverse_translation}"' if reverse_translation else ""
    definitions_list = "\n".join(f'- "{word}": {definition}' for word, definition in definitions.items())
    return (f'Original: "{original_text}"\nTranslation: "{translation}"{reverse_line}\n\n'
            f"Intended meanings:\n{definitions_list}")


def build_fix_meaning_user_prompt(original_text: str, translation: str, issues_json: str, source_lang: str,
                                  target_lang: str) -> str:
    return (f'Original text ({source_lang}):\n"{original_text}"\n'
            f'Translation ({target_lang}):\n"{translation}"\n'
            f"Issues found:\n{issues_json}")


def build_fix_naturalness_user_prompt(original_text: str, translation: str, issues, source_lang: str,
                                      target_lang: str) -> str:
    issues_list = "\n".join(f'- "{i.phrase}" is {i.reason}' for i in issues)
    return (f'Original text ({source_lang}):\n"{original_text}"\n'
            f'Translation with unnatural expressions ({target_lang}):\n"{translation}"\n'
            f"Issues:\n{issues_list}")


def build_partial_system_prompt(structure_text: str) -> str:
    if not structure_text:
        return PARTIAL_SYSTEM_PROMPT
    return f"{PARTIAL_SYSTEM_PROMPT}\n\n[Structure constraints]\n{structure_text}"


def build_simple_system_prompt(simple_prompt: str, tone_instruction: str, meaning_constraint: str,
                               reverse_instruction: str) -> str:
    parts = [simple_prompt, tone_instruction, meaning_constraint_block(meaning_constraint), reverse_instruction]
    return "\n\n".join(p for p in parts if p)
