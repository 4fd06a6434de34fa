"""
Learner-facing explanations: what a translation means, and what changed between two
tone levels. These are conveniences around the band pipeline, not part of it.
"""
import logging
import re
from dataclasses import dataclass
from typing import Dict, Optional

from .errors import CancellationError, ToneFluentError
from .i18n import difference_from_text, failed_to_generate_text, level_label, no_change_text
from .languages import lang_code_from_name, lang_name_from_code
from .llm import CompletionClient
from .models import SourceRequest, TranslationResult
from .translator import ToneTranslator
from .utils import parse_json_response

logger = logging.getLogger(__name__)

PART_LABEL_RE = re.compile(r"([1-2１-２]文目|パート[1-2１-２]|Sentence\s*[1-2]|Part\s*[1-2])[:：]\s*", re.IGNORECASE)

JA_EXPLANATION_SYSTEM = """あなたは{target}表現の専門家です。
翻訳結果について解説してください。

【出力ルール】
1. point: 核となる単語やフレーズを「{target}表現 = 日本語の意味」形式で1つ書く
2. explanation: どんなニュアンスか、どんな場面で使えるかを自然な文章で2〜3文書く。項目分けしない。
3. 文体: 必ず「です・ます調」で統一すること

必ず以下のJSON形式で出力：
{{"point": "{target}表現 = 意味", "explanation": "です・ます調で2〜3文の解説"}}"""

EXPLANATION_SYSTEM = """You are an expert in {target} expressions.
Explain the translation result.

[Output rules - write everything in {output}]
1. point: the key word/phrase in "{target} expression = meaning in {output}" format
2. explanation: 2-3 sentences about the nuance and usage scenarios. No bullet points.

Output ONLY valid JSON:
{{"point": "{target} expression = meaning", "explanation": "2-3 sentences explanation in {output}"}}"""

JA_DIFFERENCE_SYSTEM = """あなたはやさしい語学の先生です。わかりやすく丁寧に解説してください。

【出力形式】
変化の中で相手への伝わり方に一番影響する箇所を1つだけ選び、「」で囲んで、どう変わったかを1〜2文で説明する。
---
この文に出てくる表現を1〜2個選んで「表現」→ その表現だけの説明、の形式で書く。他の表現と比べない。

【ルール】
- 2つのパートの間に必ず「---」だけの行を入れ、ラベルは付けない
- 必ず「です・ます調」で書き、文末には「。」をつける
- JSON不要、テキストのみ
- 変化の方向はユーザーメッセージのラベルに従うこと
- 専門用語や抽象的な形容詞だけの説明は使わない"""

DIFFERENCE_SYSTEM = """You are a kind language teacher. Explain clearly and simply.

[Output format - write everything in {lang}]
Pick the 1 change that most affects how the message comes across. Wrap it in 「」 and explain it in 1-2 sentences.
---
Pick 1-2 expressions from this sentence and explain each on its own line as 「expression」→ explanation. Do not compare expressions.

[Rules]
- Separate the two parts with a line containing only "---" and add no labels
- No JSON, plain text only. MUST write in {lang}
- Explain the change in the direction indicated by the labels in the user message
- No linguistic jargon, and do not end with just "polite", "formal" or "casual\""""


@dataclass
class Explanation:
    point: str
    explanation: str

    def to_dict(self) -> Dict[str, str]:
        return {"point": self.point, "explanation": self.explanation}


class Explainer:
    def __init__(self, client: CompletionClient, model: Optional[str] = None):
        self.client = client
        self.model = model

    def generate_explanation(self, translation: str, target_lang: str, output_lang_code: str = "ja") -> Explanation:
        target = lang_name_from_code(lang_code_from_name(target_lang))
        if output_lang_code == "ja":
            system_prompt = JA_EXPLANATION_SYSTEM.format(target=target)
            user_prompt = f"{target}翻訳: {translation}\n\nこの{target}表現について日本語（です・ます調）で解説して。"
        else:
            output = lang_name_from_code(output_lang_code)
            system_prompt = EXPLANATION_SYSTEM.format(target=target, output=output)
            user_prompt = f"{target} translation: {translation}\n\nExplain this {target} expression in {output}."
        data = parse_json_response(self.client.complete(system_prompt, user_prompt, model=self.model))
        return Explanation(str(data.get("point") or ""), str(data.get("explanation") or ""))

    def generate_tone_difference_explanation(self, previous: str, current: str, previous_level: int,
                                             current_level: int, source_lang_code: str,
                                             changed_keywords: Optional[Dict[str, str]] = None) -> Explanation:
        """
        Two-part explanation separated by '---'. Identical texts short-circuit to the
        localized no-change text; failures return the localized failure text.
        """
        point = difference_from_text(source_lang_code, previous_level)
        if previous == current:
            return Explanation(point, no_change_text(source_lang_code))

        prev_label = level_label(previous_level)
        curr_label = level_label(current_level)
        if source_lang_code == "ja":
            system_prompt = JA_DIFFERENCE_SYSTEM
            keywords = (f"\n変化したキーワード: {changed_keywords['prev']} → {changed_keywords['curr']}\n"
                        f"このキーワードに合わせて解説してください。" if changed_keywords else "")
            closing = f"{prev_label}から{curr_label}への変化を解説してください。"
        else:
            lang = lang_name_from_code(source_lang_code)
            system_prompt = DIFFERENCE_SYSTEM.format(lang=lang)
            keywords = (f"\nChanged keywords: {changed_keywords['prev']} → {changed_keywords['curr']}\n"
                        f"Focus your explanation on these keywords." if changed_keywords else "")
            closing = f"Explain the change from {prev_label} to {curr_label} in {lang}."
        user_prompt = f'{prev_label}: "{previous}"\n{curr_label}: "{current}"\n{keywords}\n{closing}'

        try:
            response = self.client.complete(system_prompt, user_prompt, model=self.model)
        except CancellationError:
            raise
        except ToneFluentError as e:
            logger.error(f"Tone difference explanation failed: {e}")
            return Explanation(point, failed_to_generate_text(source_lang_code))
        return Explanation(point, PART_LABEL_RE.sub("", response.strip()))


def translate_partner_message(translator: ToneTranslator, explainer: Explainer, text: str,
                              partner_lang: str) -> Dict[str, object]:
    """A message from the partner: translated into Japanese and explained."""
    request = SourceRequest(text, partner_lang, "日本語")
    result: TranslationResult = translator.translate_full(request)
    explanation = explainer.generate_explanation(text, partner_lang, "ja")
    return {
        "translation": result.translation,
        "reverse_translation": result.reverse_translation,
        "risk": result.risk,
        "detected_language": result.detected_language,
        "explanation": explanation.to_dict(),
    }
