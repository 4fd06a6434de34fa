"""Localized UI strings keyed by ISO 639-1 code. English is the fallback everywhere."""

DIFFERENCE_FROM = {
    "ja": {-100: "もっとカジュアルとの違い", -50: "カジュアルとの違い", 0: "ベースとの違い", 50: "ていねいとの違い", 100: "もっとていねいとの違い"},
    "en": {-100: "Difference from More Casual", -50: "Difference from Casual", 0: "Difference from Base", 50: "Difference from Polite", 100: "Difference from More Polite"},
    "es": {-100: "Diferencia con Más Casual", -50: "Diferencia con Casual", 0: "Diferencia con Base", 50: "Diferencia con Cortés", 100: "Diferencia con Formal"},
    "fr": {-100: "Différence avec Plus Décontracté", -50: "Différence avec Décontracté", 0: "Différence avec Base", 50: "Différence avec Poli", 100: "Différence avec Formel"},
    "zh": {-100: "与更随意的差异", -50: "与随意的差异", 0: "与基础的差异", 50: "与礼貌的差异", 100: "与正式的差异"},
    "ko": {-100: "더 캐주얼과의 차이", -50: "캐주얼과의 차이", 0: "기본과의 차이", 50: "정중과의 차이", 100: "포멀과의 차이"},
    "de": {-100: "Unterschied zu Lockerer", -50: "Unterschied zu Locker", 0: "Unterschied zu Basis", 50: "Unterschied zu Höflich", 100: "Unterschied zu Formell"},
    "it": {-100: "Differenza da Più Informale", -50: "Differenza da Informale", 0: "Differenza da Base", 50: "Differenza da Cortese", 100: "Differenza da Formale"},
    "pt": {-100: "Diferença de Mais Casual", -50: "Diferença de Casual", 0: "Diferença de Base", 50: "Diferença de Educado", 100: "Diferença de Formal"},
    "cs": {-100: "Rozdíl od Neformálnější", -50: "Rozdíl od Neformální", 0: "Rozdíl od Základ", 50: "Rozdíl od Zdvořilý", 100: "Rozdíl od Formální"},
}

LEVEL_LABELS = {-100: "More Casual", -50: "Casual", 0: "Base", 50: "Polite", 100: "More Polite"}

NOT_YET_GENERATED = {
    "ja": "前のレベルの翻訳がまだ生成されていません。",
    "en": "Previous level translation not yet generated.",
    "es": "La traducción del nivel anterior aún no se ha generado.",
    "fr": "La traduction du niveau précédent n'a pas encore été générée.",
    "zh": "上一级别的翻译尚未生成。",
    "ko": "이전 레벨의 번역이 아직 생성되지 않았습니다.",
    "de": "Die Übersetzung der vorherigen Stufe wurde noch nicht generiert.",
    "it": "La traduzione del livello precedente non è stata ancora generata.",
    "pt": "A tradução do nível anterior ainda não foi gerada.",
    "cs": "Překlad předchozí úrovně ještě nebyl vygenerován.",
}

FAILED_TO_GENERATE = {
    "ja": "解説の生成に失敗しました。",
    "en": "Failed to generate explanation.",
    "es": "Error al generar la explicación.",
    "fr": "Échec de la génération de l'explication.",
    "zh": "生成解释失败。",
    "ko": "설명 생성에 실패했습니다.",
    "de": "Erklärung konnte nicht generiert werden.",
    "it": "Impossibile generare la spiegazione.",
    "pt": "Falha ao gerar a explicação.",
    "cs": "Generování vysvětlení se nezdařilo.",
}

NO_CHANGE = {
    "ja": "このレベルでは前のレベルと同じ表現になりました。",
    "en": "No change from the previous level.",
    "es": "Sin cambios respecto al nivel anterior.",
    "fr": "Pas de changement par rapport au niveau précédent.",
    "zh": "与上一级别相同，没有变化。",
    "ko": "이전 레벨과 동일하여 변화가 없습니다.",
    "de": "Keine Änderung gegenüber der vorherigen Stufe.",
    "it": "Nessun cambiamento rispetto al livello precedente.",
    "pt": "Sem alteração em relação ao nível anterior.",
    "cs": "Žádná změna oproti předchozí úrovni.",
}

VERIFYING = {
    "ja": "検証中...", "en": "Checking...", "es": "Verificando...", "fr": "Vérification...", "zh": "验证中...",
    "ko": "검증 중...", "de": "Prüfung...", "it": "Verifica...", "pt": "Verificando...", "cs": "Ověřování...",
}

FIXING = {
    "ja": "修正中...", "en": "Fixing...", "es": "Corrigiendo...", "fr": "Correction...", "zh": "修正中...",
    "ko": "수정 중...", "de": "Korrektur...", "it": "Correzione...", "pt": "Corrigindo...", "cs": "Oprava...",
}

NATURAL = {
    "ja": "文の自然さ ✅", "en": "Natural ✅", "es": "Natural ✅", "fr": "Naturel ✅", "zh": "自然度 ✅",
    "ko": "자연스러움 ✅", "de": "Natürlich ✅", "it": "Naturale ✅", "pt": "Natural ✅", "cs": "Přirozené ✅",
}


def difference_from_text(lang_code: str, level: int) -> str:
    labels = DIFFERENCE_FROM.get(lang_code, DIFFERENCE_FROM["en"])
    return labels.get(level, f"Difference from {level}%")


def level_label(level: int) -> str:
    return LEVEL_LABELS.get(level, f"{level}%")


def not_yet_generated_text(lang_code: str) -> str:
    return NOT_YET_GENERATED.get(lang_code, NOT_YET_GENERATED["en"])


def failed_to_generate_text(lang_code: str) -> str:
    return FAILED_TO_GENERATE.get(lang_code, FAILED_TO_GENERATE["en"])


def no_change_text(lang_code: str) -> str:
    return NO_CHANGE.get(lang_code, NO_CHANGE["en"])


def status_text(lang_code: str, status: str) -> str:
    table = {"verifying": VERIFYING, "fixing": FIXING, "passed": NATURAL}.get(status)
    if table is None:
        return ""
    return table.get(lang_code, table["en"])
