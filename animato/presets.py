"""
Prompt Library — modifiers injected into every provider prompt.
Callers pick a style and aspect ratio; we append the actual cinematic wording.
"""

from .pipeline.models import Appearance, AspectRatio, StoryTheme, VideoGenerationRequest, VideoStyle

QUALITY_MODIFIERS = "high quality, professional cinematography, smooth motion, detailed animation"

STYLE_MODIFIERS = {
    VideoStyle.CINEMATIC: "cinematic style",
    VideoStyle.DRAMATIC: "dramatic style",
    VideoStyle.ARTISTIC: "artistic style",
    VideoStyle.REALISTIC: "realistic style",
}

ASPECT_RATIO_MODIFIERS = {
    AspectRatio.VERTICAL: "vertical format, mobile-optimized",
    AspectRatio.SQUARE: "square format, social media optimized",
    AspectRatio.WIDESCREEN: "widescreen format, cinematic presentation",
}

# Width x height sent to providers that take explicit dimensions.
FRAME_SIZES = {
    AspectRatio.VERTICAL: (576, 1024),
    AspectRatio.SQUARE: (768, 768),
    AspectRatio.WIDESCREEN: (1024, 576),
}

NEGATIVE_PROMPT = "low quality, blurry, distorted, watermark, text"

# ── Story-level prompt fragments ─────────────────────────────────────────────

STORY_PROMPT_CHARS = 300
SCENE_DESCRIPTION_CHARS = 200
DEFAULT_SCENE_DESCRIPTION = "A cinematic story scene"


def story_prompt(theme: StoryTheme, content: str) -> str:
    """Top-level prompt for a whole story video."""
    body = (content or "")[:STORY_PROMPT_CHARS] or "Story content"
    return f"{theme.value} story: {body}"


def segment_visual_prompt(content: str) -> str:
    return f"{content}. Cinematic style, high quality."


def synthetic_scene_visual_prompt(theme: StoryTheme) -> str:
    return f"{theme.value} themed story scene. Professional cinematography."


def scene_visual_prompt(names: list[str], setting: str, actions: list[str]) -> str:
    """Prompt for a scene cut from the story text."""
    cast = " and ".join(names) if names else "characters"
    action = ", ".join(actions) if actions else "interacting"
    return f"{cast} in {setting}, {action}. Cinematic lighting, detailed animation."


def build_video_prompt(request: VideoGenerationRequest) -> str:
    """Full provider prompt: story prompt + style + quality + framing."""
    parts = [request.prompt, STYLE_MODIFIERS[request.style], QUALITY_MODIFIERS]
    parts.append(ASPECT_RATIO_MODIFIERS[request.aspect_ratio])
    if request.scenes:
        scenes = " ".join(s.visual_prompt for s in request.scenes)
        parts.append(f"Story progression: {scenes}")
    if request.characters:
        cast = "; ".join(f"{c.name}: {c.description}" for c in request.characters)
        parts.append(f"Characters: {cast}")
    return ", ".join(parts)


# ── Character portraits ──────────────────────────────────────────────────────

PORTRAIT_QUALITY_MODIFIERS = (
    "high resolution, detailed facial features, professional photography, "
    "studio lighting, cinematic quality, photorealistic"
)
PORTRAIT_NEGATIVE_PROMPT = (
    "blurry, low quality, distorted, deformed, low resolution, watermark, text, signature, logo"
)

_PORTRAIT_URL = "https://images.unsplash.com/photo-{}?auto=format&fit=crop&w=400&h=600&q=80"

# Designed portraits used when no image provider produced one, keyed by gender-ethnicity.
DESIGNED_PORTRAITS = {
    "male-caucasian": ["1472099645785-5658abf4ff4e", "1507003211169-0a1dd7228f2d",
                       "1566492031773-4f4e44671d66", "1519345182560-3f2917c472ef"],
    "male-african": ["1506794778202-cad84cf45f1d", "1500648767791-00dcc994a43e",
                     "1507591064344-4c6ce005b128", "1521119989659-a83eee488004"],
    "male-asian": ["1582750433449-648ed127bb54", "1531891437562-4301cf35b7e4",
                   "1558618047-3c8c76ca7d13", "1597223557154-721c1cecc4b0"],
    "male-hispanic": ["1622253692010-333f2da6031d", "1612349317150-e413f6a5b16d",
                      "1608681299041-cc19878f79df", "1556157382-97eda2d62296"],
    "female-caucasian": ["1494790108755-2616b612b1e5", "1507101105822-7472b28e22ac",
                         "1502823403499-6ccfcf4fb453", "1517841905240-472988babdf9"],
    "female-african": ["1531123897727-8f129e1688ce", "1588361035994-295e21daa761",
                       "1526510747491-58f928ec870f", "1487412720507-e7ab37603c6f"],
    "female-asian": ["1488426862026-3ee34a7d66df", "1601233749202-95d04d5b3c00",
                     "1573497019940-1c28c88b4f3e", "1590086782957-93c06ef21604"],
    "female-hispanic": ["1615109398623-88346a601842", "1580489944761-15a19d654956",
                        "1512310604669-443f26c35f52", "1529258283598-8d6fe60b27f4"],
}
DEFAULT_PORTRAIT_KEY = "female-caucasian"


def character_portrait_prompt(name: str, appearance: Appearance) -> str:
    details = [
        " ".join(p for p in (appearance.age, appearance.gender) if p),
        appearance.ethnicity,
        f"{appearance.hair_color} hair" if appearance.hair_color else "",
        f"{appearance.eye_color} eyes" if appearance.eye_color else "",
        appearance.style,
    ]
    parts = [f"Professional character portrait of {name}"]
    parts += [d for d in details if d]
    parts += ["confident and approachable expression", PORTRAIT_QUALITY_MODIFIERS]
    return ", ".join(parts)


def designed_portrait_url(name: str, appearance: Appearance) -> str:
    """Same character attributes always pick the same portrait."""
    gender = appearance.gender.lower()
    ethnicity = appearance.ethnicity.lower()
    photos = DESIGNED_PORTRAITS.get(f"{gender}-{ethnicity}", DESIGNED_PORTRAITS[DEFAULT_PORTRAIT_KEY])
    seed = sum(ord(ch) for ch in name + gender[:1] + ethnicity + appearance.hair_color) % 1000
    return _PORTRAIT_URL.format(photos[seed % len(photos)])
