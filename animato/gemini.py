"""
Gemini integration for character extraction.

Reads the story text and returns an ordered cast as CharacterDraft records
(no ids yet; the orchestrator assigns ownership). Uses the Gemini REST
generateContent endpoint over httpx.
"""

import os
import json
import logging

import httpx
from pydantic import ValidationError as ModelValidationError

from .pipeline.errors import TransientProviderError
from .pipeline.models import CharacterDraft, CharacterGenerationRequest

logger = logging.getLogger(__name__)

GEMINI_API_KEY = os.environ.get("GEMINI_API_KEY") or os.environ.get("GOOGLE_API_KEY", "")
GEMINI_MODEL = os.environ.get("GEMINI_MODEL", "gemini-2.0-flash")
API_BASE = "https://generativelanguage.googleapis.com/v1beta"

MAX_STORY_CHARS = 8000


def is_configured() -> bool:
    return bool(GEMINI_API_KEY)


def _api_url(model: str) -> str:
    return f"{API_BASE}/models/{model}:generateContent?key={GEMINI_API_KEY}"


def _parse_json_response(text: str):
    """Parse JSON from Gemini response, handling markdown code blocks."""
    text = text.strip()
    try:
        return json.loads(text)
    except json.JSONDecodeError:
        if "```" in text:
            json_block = text.split("```")[1]
            if json_block.startswith("json"):
                json_block = json_block[4:]
            return json.loads(json_block.strip())
        raise TransientProviderError(f"Gemini returned invalid JSON: {text[:200]}")


async def _generate_content(model: str, parts: list, config: dict | None = None) -> dict:
    """Call Gemini generateContent REST endpoint."""
    if not GEMINI_API_KEY:
        raise TransientProviderError("GEMINI_API_KEY not set")

    body: dict = {"contents": [{"parts": parts}]}
    if config:
        body["generationConfig"] = config

    async with httpx.AsyncClient(timeout=60) as client:
        resp = await client.post(_api_url(model), json=body)

    if resp.status_code != 200:
        raise TransientProviderError(f"Gemini API error {resp.status_code}: {resp.text[:500]}")
    return resp.json()


CHARACTER_PROMPT = """You are a casting director for an animated short film.

Read the {theme} story below and identify its main characters (2 to 5).

Return a JSON array (no markdown, just raw JSON). Each element must have this EXACT structure:
{{
  "name": "character name",
  "description": "one sentence describing who they are in the story",
  "personality": ["trait", "trait", "trait"],
  "appearance": {{
    "age": "", "gender": "", "ethnicity": "",
    "hair_color": "", "eye_color": "", "style": "clothing / visual style"
  }},
  "role": "protagonist" | "antagonist" | "supporting"
}}

Order the array by importance, protagonist first.

STORY:
{story}"""


async def extract_characters(request: CharacterGenerationRequest) -> list[CharacterDraft]:
    """Ask Gemini for the story's cast. Raises TransientProviderError on any bad answer."""
    prompt = CHARACTER_PROMPT.format(
        theme=request.theme.value,
        story=request.story_text[:MAX_STORY_CHARS],
    )
    result = await _generate_content(
        GEMINI_MODEL,
        [{"text": prompt}],
        {"temperature": 0.4, "responseMimeType": "application/json"},
    )

    try:
        text = result["candidates"][0]["content"]["parts"][0]["text"]
    except (KeyError, IndexError) as e:
        raise TransientProviderError(f"Gemini response missing content: {e}")

    data = _parse_json_response(text)
    if isinstance(data, dict):
        data = data.get("characters", [])
    if not isinstance(data, list) or not data:
        raise TransientProviderError("Gemini returned no characters")

    try:
        drafts = [CharacterDraft(**item) for item in data]
    except (TypeError, ModelValidationError) as e:
        raise TransientProviderError(f"Gemini returned malformed characters: {e}")

    logger.info(f"Gemini extracted {len(drafts)} character(s) for story {request.story_id}")
    return drafts
