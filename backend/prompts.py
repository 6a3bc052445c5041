"""Prompt constants and fixed messages used by the external text/image calls."""

ASSISTANT_SYSTEM_PROMPT = (
    "당신은 한국의 전통 제례와 지방(Jibang) 작성법에 정통한 전문가입니다. "
    "사용자가 본관이나 성씨의 한자를 묻거나, 지방 작성법을 물어보면 친절하고 정확하게 "
    "한자를 포함하여 답변해주세요. 답변은 간결하게 핵심만 전달하세요."
)

ASSISTANT_GREETING = "안녕하세요. 지방 작성이나 본관 한자에 대해 궁금한 점이 있으신가요?"
ASSISTANT_EMPTY_ANSWER = "죄송합니다. 답변을 생성할 수 없습니다."
ASSISTANT_SERVICE_ERROR = "AI 서비스 연결에 문제가 발생했습니다. 잠시 후 다시 시도해주세요."

HANJA_SYSTEM_PROMPT = "Follow the user prompt exactly. Reply with Hanja characters only."

HANJA_CONVERSION_TEMPLATE = """Convert the following Korean Jibang (Ancestral Tablet) text into traditional Hanja.

Rules:
1. '현고' -> '顯考', '현비' -> '顯妣', '학생' -> '學生', '부군' -> '府君', '신위' -> '神位', '유인' -> '孺人'.
2. Convert Clan names and Surnames to their most common Hanja (e.g., 김해 -> 金海, 김 -> 金, 이 -> 李).
3. Return ONLY the converted Hanja string. No explanations.

Input: "{korean_text}{hint_text}"
"""

HINT_TEMPLATE = " (참고 정보 - {hints})"

GLYPH_IMAGE_TEMPLATE = (
    "A traditional black brush calligraphy of the Chinese character '{char}' on a plain white background. "
    "The character should be centered, high contrast, and clearly written in a standard Kaishu style. "
    "Square composition, a single character only, no other marks."
)
