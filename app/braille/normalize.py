from __future__ import annotations

import logging

from app.config import get_settings
from app.openai_client import get_sync_client

logger = logging.getLogger(__name__)

NORMALIZE_SYSTEM_PROMPT = (
    "You are an educational content adapter for blind students. "
    "Rewrite the lesson so it is clear and ready for braille conversion.\n"
    "Rules:\n"
    "1. Wrap ALL mathematical expressions, formulas and equations in dollar signs: $...$\n"
    "2. Use LaTeX notation inside math: $F = ma$, $\\sin(\\theta)$, $E = mc^2$\n"
    "3. Keep regular text outside dollar signs and explain variables there\n"
    "4. Short sentences (15-20 words), active voice\n"
    "5. Add clear section markers such as 'Section:', 'Key Point:', 'Example:'\n"
    "Return ONLY the rewritten content, no explanations."
)


def normalize_lesson(lesson: str) -> str:
    """
    Asks the chat model to delimit math and simplify prose before transcription.
    Falls back to the original lesson on any failure.
    """
    settings = get_settings()
    try:
        client = get_sync_client()
        completion = client.chat.completions.create(
            model=settings.chat_model,
            messages=[
                {"role": "system", "content": NORMALIZE_SYSTEM_PROMPT},
                {"role": "user", "content": lesson},
            ],
            timeout=settings.openai_timeout_seconds,
        )
        text = completion.choices[0].message.content
        if not text or not text.strip():
            raise ValueError("Empty response from normalization")
        return text.strip()
    except Exception as e:
        logger.warning("Lesson normalization failed, using original: %s", e)
        return lesson
