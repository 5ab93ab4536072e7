"""
coredna/features/providers/catalog.py

Static provider catalog: every provider a user may store a key for, with the
minimum tier that unlocks it. Order within a category is display order.

Which providers a tier may call is read from the capability matrix
(category_providers); this table carries no allowance data of its own.
"""

from typing import Dict, List, Optional, Tuple

from coredna.models.provider import CatalogEntry
from coredna.models.tier import Category, Tier

_LLM: Tuple[Tuple[str, str, Tier], ...] = (
    ("google", "Google Gemini", Tier.FREE),
    ("openai", "OpenAI (GPT-4o)", Tier.FREE),
    ("anthropic", "Anthropic Claude", Tier.FREE),
    ("mistral", "Mistral AI", Tier.FREE),
    ("xai", "xAI (Grok)", Tier.FREE),
    ("deepseek", "DeepSeek", Tier.FREE),
    ("groq", "Groq", Tier.FREE),
    ("together", "Together AI", Tier.FREE),
    ("openrouter", "OpenRouter", Tier.FREE),
    ("perplexity", "Perplexity", Tier.FREE),
    ("cohere", "Cohere", Tier.FREE),
    ("ollama", "Ollama (Local)", Tier.FREE),
)

_IMAGE: Tuple[Tuple[str, str, Tier], ...] = (
    ("google", "Google Imagen 3", Tier.FREE),
    ("openai", "DALL-E 3 (OpenAI)", Tier.FREE),
    ("openai_dalle_next", "GPT Image / DALL-E Next", Tier.FREE),
    ("stability", "Stability AI", Tier.FREE),
    ("sd3", "Stable Diffusion 3", Tier.FREE),
    ("fal_flux", "fal.ai (Flux)", Tier.FREE),
    ("black_forest_labs", "Black Forest Labs (Flux)", Tier.FREE),
    ("runware", "Runware", Tier.FREE),
    ("leonardo", "Leonardo.ai", Tier.FREE),
    ("ideogram", "Ideogram", Tier.FREE),
    ("replicate", "Replicate", Tier.FREE),
)

_VOICE: Tuple[Tuple[str, str, Tier], ...] = (
    ("elevenlabs", "ElevenLabs", Tier.FREE),
    ("openai", "OpenAI TTS", Tier.FREE),
    ("playht", "PlayHT", Tier.FREE),
    ("cartesia", "Cartesia", Tier.FREE),
    ("deepgram", "Deepgram", Tier.FREE),
    ("google_tts", "Google Cloud TTS", Tier.FREE),
)

_VIDEO: Tuple[Tuple[str, str, Tier], ...] = (
    ("sora2", "OpenAI Sora 2", Tier.HUNTER),
    ("veo3", "Google Veo 3", Tier.HUNTER),
    ("runway", "Runway Gen-4", Tier.PRO),
    ("kling", "Kling AI", Tier.PRO),
    ("luma", "Luma Dream Machine", Tier.PRO),
    ("ltx2", "Lightricks LTX-2", Tier.FREE),
    ("wan", "Wan (open-source)", Tier.FREE),
    ("hunyuan", "HunyuanVideo", Tier.FREE),
    ("mochi", "Mochi (Genmo)", Tier.FREE),
    ("seedance", "Seedance Pro", Tier.PRO),
    ("pika", "Pika Labs", Tier.PRO),
    ("hailuo", "Hailuo (MiniMax)", Tier.PRO),
    ("pixverse", "Pixverse", Tier.FREE),
    ("higgsfield", "Higgsfield", Tier.PRO),
    ("heygen", "HeyGen", Tier.PRO),
    ("synthesia", "Synthesia", Tier.PRO),
    ("deepbrain", "DeepBrain AI", Tier.PRO),
    ("colossyan", "Colossyan", Tier.PRO),
    ("replicate", "Replicate", Tier.FREE),
    ("fal", "fal.ai", Tier.FREE),
    ("fireworks", "Fireworks.ai", Tier.FREE),
    ("wavespeed", "WaveSpeedAI", Tier.PRO),
)


def _build(category: Category, rows) -> List[CatalogEntry]:
    return [
        CatalogEntry(id=pid, category=category, name=name, min_tier=min_tier)
        for pid, name, min_tier in rows
    ]


PROVIDER_CATALOG: Dict[Category, List[CatalogEntry]] = {
    Category.LLM: _build(Category.LLM, _LLM),
    Category.IMAGE: _build(Category.IMAGE, _IMAGE),
    Category.VOICE: _build(Category.VOICE, _VOICE),
    Category.VIDEO: _build(Category.VIDEO, _VIDEO),
}


def catalog_for(category: Category) -> List[CatalogEntry]:
    return list(PROVIDER_CATALOG.get(category, []))


def get_entry(category: Category, provider_id: str) -> Optional[CatalogEntry]:
    for entry in PROVIDER_CATALOG.get(category, []):
        if entry.id == provider_id:
            return entry
    return None


def min_tier_for(category: Category, provider_id: str) -> Tier:
    """Minimum tier for a provider; providers outside the catalog are open to every tier."""
    entry = get_entry(category, provider_id)
    return entry.min_tier if entry else Tier.FREE
