from __future__ import annotations

import base64
import json
import logging
import re
from typing import Any, Dict, List

from ..config import get_settings
from ..errors import GenerationFailure
from ..openai_client import get_sync_client

logger = logging.getLogger(__name__)

MAX_STORY_SLIDES = 8

# --- Prompt Factory ---

class PromptFactory:
    """
    System prompts for each generation task.
    """
    _PROMPTS = {
        "translate": (
            "You are a professional translator of school lessons. "
            "Translate every human-readable string value of the JSON payload into the target locale. "
            "Keep keys, numbers, identifiers and LaTeX math ($...$) unchanged. "
            "Return strictly valid JSON with the same structure."
        ),
        "story_plan": (
            "You turn a lesson into a short illustrated story for students. "
            f"Plan at most {MAX_STORY_SLIDES} slides. "
            "Return strictly valid JSON: "
            '{"style": str, "slides": [{"index": int, "caption": str, "imagePrompt": str, "onScreenText": str}]}. '
            "Captions are narrated aloud and must be written in the requested locale."
        ),
    }

    @classmethod
    def get_prompt(cls, task: str) -> str:
        return cls._PROMPTS[task]


def _parse_json(text: str) -> Any:
    """Parses model output, tolerating markdown code fences."""
    if not text:
        raise GenerationFailure("Empty response from model")
    fenced = re.search(r"```(?:json)?\s*([\s\S]*?)```", text, flags=re.IGNORECASE)
    if fenced:
        text = fenced.group(1)
    try:
        return json.loads(text.strip())
    except json.JSONDecodeError as e:
        raise GenerationFailure(f"Model returned invalid JSON: {e}") from e


def normalize_story_plan(raw: Any) -> Dict[str, Any]:
    """
    Keeps at most MAX_STORY_SLIDES slides, re-indexes them from 0 and
    guarantees caption / imagePrompt are strings.
    """
    if not isinstance(raw, dict):
        raise GenerationFailure("Story plan is not a JSON object")
    slides = raw.get("slides")
    if not isinstance(slides, list) or not slides:
        raise GenerationFailure("Story plan has no slides")

    normalized: List[Dict[str, Any]] = []
    for position, slide in enumerate(s for s in slides if isinstance(s, dict)):
        if position >= MAX_STORY_SLIDES:
            break
        normalized.append({
            "index": position,
            "caption": str(slide.get("caption") or ""),
            "imagePrompt": str(slide.get("imagePrompt") or slide.get("image_prompt") or ""),
            "onScreenText": str(slide.get("onScreenText") or slide.get("on_screen_text") or ""),
        })
    if not normalized:
        raise GenerationFailure("Story plan has no usable slides")

    return {"style": str(raw.get("style") or ""), "slides": normalized}


# --- Generation Service ---

class OpenAIGenerator:
    """
    External generation functions used by the worker.
    Every failure is reported as GenerationFailure.
    """

    provider = "openai"

    def __init__(self, client=None):
        self._client = client
        self.settings = get_settings()

    @property
    def client(self):
        if self._client is None:
            self._client = get_sync_client()
        return self._client

    @property
    def model_name(self) -> str:
        return self.settings.chat_model

    def _chat_json(self, system_prompt: str, user_content: str) -> Any:
        try:
            completion = self.client.chat.completions.create(
                model=self.settings.chat_model,
                messages=[
                    {"role": "system", "content": system_prompt},
                    {"role": "user", "content": user_content},
                ],
                response_format={"type": "json_object"},
            )
            text = completion.choices[0].message.content
        except GenerationFailure:
            raise
        except Exception as e:
            raise GenerationFailure(f"Chat completion failed: {e}") from e
        return _parse_json(text)

    def translate(self, payload: Any, locale: str) -> Any:
        prompt_content = (
            f"Target locale: {locale}\n"
            f"Payload:\n{json.dumps(payload, ensure_ascii=False)}"
        )
        translated = self._chat_json(PromptFactory.get_prompt("translate"), prompt_content)
        if translated in (None, {}, []):
            raise GenerationFailure("Translation came back empty")
        return translated

    def plan_story(self, payload: Any, locale: str) -> Dict[str, Any]:
        prompt_content = (
            f"Locale: {locale}\n"
            f"Lesson payload:\n{json.dumps(payload, ensure_ascii=False)}"
        )
        return normalize_story_plan(self._chat_json(PromptFactory.get_prompt("story_plan"), prompt_content))

    def generate_image(self, prompt: str) -> bytes:
        if not prompt.strip():
            raise GenerationFailure("Slide has no image prompt")
        try:
            response = self.client.images.generate(
                model=self.settings.image_model,
                prompt=prompt,
                n=1,
                size="1024x1024",
            )
            b64 = response.data[0].b64_json if response.data else None
        except Exception as e:
            raise GenerationFailure(f"Image generation failed: {e}") from e
        if not b64:
            raise GenerationFailure("Image generation returned no image data")
        return base64.b64decode(b64)

    def synthesize_speech(self, text: str, locale: str) -> bytes:
        if not text.strip():
            raise GenerationFailure("Slide has no caption to narrate")
        kwargs = {
            "model": self.settings.tts_model,
            "voice": self.settings.tts_voice,
            "input": text,
            "response_format": "wav",
        }
        # tts-1 models take no instructions; the language then follows the text
        if self.settings.tts_model.startswith("gpt-4o"):
            kwargs["instructions"] = f"Narrate clearly for students, in the language of locale {locale}."
        try:
            response = self.client.audio.speech.create(**kwargs)
            audio = response.content
        except Exception as e:
            raise GenerationFailure(f"Speech synthesis failed: {e}") from e
        if not audio:
            raise GenerationFailure("Speech synthesis returned no audio")
        return audio
