"""
coredna/features/generation/adapters.py

Provider adapters.

Every vendor sits behind the same call:
    await adapter.generate(credentials, prompt, options) -> asset reference

Asset references are URLs (https or data:) for image, voice and video, and
the generated text for llm. Adapters raise ProviderCallFailedError on any
transport, status or payload problem; they never return an empty reference.

The reference adapters are deliberately thin: one request shape per vendor
family, no retries. Callers own fallback policy.
"""

import asyncio
import base64
import logging
from typing import Any, Dict, Optional, Protocol, Tuple
from urllib.parse import quote

import httpx

from coredna.core.config import settings
from coredna.core.errors import ProviderCallFailedError
from coredna.models.tier import Category, coerce_category

logger = logging.getLogger(__name__)


class GenerationAdapter(Protocol):
    """
    Protocol for generation providers.

    Implementations must:
    - read the API key (and optional base_url / default_model) from credentials
    - return a non-empty asset reference
    - raise ProviderCallFailedError on failure
    """

    provider_id: str

    async def generate(self, credentials: Dict[str, str], prompt: str, options: Dict[str, Any]) -> str:
        ...


def _data_url(mime: str, payload: bytes) -> str:
    return f"data:{mime};base64,{base64.b64encode(payload).decode('ascii')}"


class HttpAdapter:
    """Shared httpx plumbing and error mapping."""

    provider_id = "http"

    def __init__(self, provider_id: Optional[str] = None, *, transport: Optional[httpx.AsyncBaseTransport] = None, timeout: Optional[float] = None):
        if provider_id:
            self.provider_id = provider_id
        self.transport = transport
        self.timeout = timeout or settings.PROVIDER_TIMEOUT_SECONDS

    def _client(self) -> httpx.AsyncClient:
        return httpx.AsyncClient(timeout=self.timeout, transport=self.transport)

    def _api_key(self, credentials: Dict[str, str]) -> str:
        key = (credentials or {}).get("api_key", "").strip()
        if not key:
            raise ProviderCallFailedError(self.provider_id, "missing API key")
        return key

    async def _request(self, client: httpx.AsyncClient, method: str, url: str, **kwargs) -> httpx.Response:
        try:
            response = await client.request(method, url, **kwargs)
            response.raise_for_status()
            return response
        except httpx.HTTPStatusError as exc:
            status = exc.response.status_code
            raise ProviderCallFailedError(
                self.provider_id,
                f"HTTP {status}",
                details={"status": status, "rate_limited": status == 429},
            ) from exc
        except httpx.HTTPError as exc:
            raise ProviderCallFailedError(self.provider_id, type(exc).__name__) from exc

    def _malformed(self, exc: Exception) -> ProviderCallFailedError:
        return ProviderCallFailedError(self.provider_id, f"malformed response ({type(exc).__name__})")


class OpenAICompatibleChatAdapter(HttpAdapter):
    """Chat completions for OpenAI and every vendor exposing the same API."""

    def __init__(self, provider_id: str, base_url: str, default_model: str, **kwargs):
        super().__init__(provider_id, **kwargs)
        self.base_url = base_url.rstrip("/")
        self.default_model = default_model

    async def generate(self, credentials: Dict[str, str], prompt: str, options: Dict[str, Any]) -> str:
        key = self._api_key(credentials)
        base_url = (credentials.get("base_url") or self.base_url).rstrip("/")
        messages = []
        if options.get("system"):
            messages.append({"role": "system", "content": options["system"]})
        messages.append({"role": "user", "content": prompt})
        body = {
            "model": options.get("model") or credentials.get("default_model") or self.default_model,
            "messages": messages,
        }
        if "temperature" in options:
            body["temperature"] = options["temperature"]

        async with self._client() as client:
            response = await self._request(
                client,
                "POST",
                f"{base_url}/chat/completions",
                json=body,
                headers={"Authorization": f"Bearer {key}"},
            )
        try:
            return response.json()["choices"][0]["message"]["content"] or ""
        except (KeyError, IndexError, TypeError, ValueError) as exc:
            raise self._malformed(exc) from exc


class OpenAIImageAdapter(HttpAdapter):
    provider_id = "openai"

    def __init__(self, provider_id: str = "openai", model: str = "dall-e-3", base_url: str = "https://api.openai.com/v1", **kwargs):
        super().__init__(provider_id, **kwargs)
        self.model = model
        self.base_url = base_url

    async def generate(self, credentials: Dict[str, str], prompt: str, options: Dict[str, Any]) -> str:
        key = self._api_key(credentials)
        body = {
            "model": options.get("model") or self.model,
            "prompt": prompt,
            "n": 1,
            "size": options.get("size", "1024x1024"),
        }
        async with self._client() as client:
            response = await self._request(
                client,
                "POST",
                f"{credentials.get('base_url') or self.base_url}/images/generations",
                json=body,
                headers={"Authorization": f"Bearer {key}"},
            )
        try:
            item = response.json()["data"][0]
        except (KeyError, IndexError, TypeError, ValueError) as exc:
            raise self._malformed(exc) from exc
        if item.get("url"):
            return item["url"]
        if item.get("b64_json"):
            return f"data:image/png;base64,{item['b64_json']}"
        raise ProviderCallFailedError(self.provider_id, "no image in response")


class GoogleImagenAdapter(HttpAdapter):
    provider_id = "google"
    base_url = "https://generativelanguage.googleapis.com/v1beta"

    def __init__(self, provider_id: str = "google", model: str = "imagen-3.0-generate-002", **kwargs):
        super().__init__(provider_id, **kwargs)
        self.model = model

    async def generate(self, credentials: Dict[str, str], prompt: str, options: Dict[str, Any]) -> str:
        key = self._api_key(credentials)
        body = {
            "instances": [{"prompt": prompt}],
            "parameters": {"sampleCount": 1, "aspectRatio": options.get("aspect_ratio", "1:1")},
        }
        async with self._client() as client:
            response = await self._request(
                client,
                "POST",
                f"{self.base_url}/models/{self.model}:predict",
                json=body,
                headers={"x-goog-api-key": key},
            )
        try:
            encoded = response.json()["predictions"][0]["bytesBase64Encoded"]
        except (KeyError, IndexError, TypeError, ValueError) as exc:
            raise self._malformed(exc) from exc
        return f"data:image/png;base64,{encoded}"


class StabilityImageAdapter(HttpAdapter):
    provider_id = "stability"

    def __init__(self, provider_id: str = "stability", endpoint: str = "https://api.stability.ai/v2beta/stable-image/generate/core", **kwargs):
        super().__init__(provider_id, **kwargs)
        self.endpoint = endpoint

    async def generate(self, credentials: Dict[str, str], prompt: str, options: Dict[str, Any]) -> str:
        key = self._api_key(credentials)
        form = {"prompt": prompt, "output_format": options.get("output_format", "png")}
        async with self._client() as client:
            response = await self._request(
                client,
                "POST",
                self.endpoint,
                data=form,
                files={"none": ("", b"")},
                headers={"Authorization": f"Bearer {key}", "Accept": "application/json"},
            )
        try:
            encoded = response.json()["image"]
        except (KeyError, TypeError, ValueError) as exc:
            raise self._malformed(exc) from exc
        return f"data:image/{form['output_format']};base64,{encoded}"


class OpenAISpeechAdapter(HttpAdapter):
    provider_id = "openai"

    async def generate(self, credentials: Dict[str, str], prompt: str, options: Dict[str, Any]) -> str:
        key = self._api_key(credentials)
        body = {
            "model": options.get("model", "tts-1"),
            "voice": options.get("voice", "alloy"),
            "input": prompt,
        }
        async with self._client() as client:
            response = await self._request(
                client,
                "POST",
                f"{credentials.get('base_url') or 'https://api.openai.com/v1'}/audio/speech",
                json=body,
                headers={"Authorization": f"Bearer {key}"},
            )
        if not response.content:
            raise ProviderCallFailedError(self.provider_id, "empty audio")
        return _data_url("audio/mpeg", response.content)


class ElevenLabsAdapter(HttpAdapter):
    provider_id = "elevenlabs"
    DEFAULT_VOICE = "21m00Tcm4TlvDq8ikWAM"

    async def generate(self, credentials: Dict[str, str], prompt: str, options: Dict[str, Any]) -> str:
        key = self._api_key(credentials)
        voice_id = options.get("voice_id", self.DEFAULT_VOICE)
        async with self._client() as client:
            response = await self._request(
                client,
                "POST",
                f"https://api.elevenlabs.io/v1/text-to-speech/{voice_id}",
                json={"text": prompt, "model_id": options.get("model", "eleven_multilingual_v2")},
                headers={"xi-api-key": key, "Accept": "audio/mpeg"},
            )
        if not response.content:
            raise ProviderCallFailedError(self.provider_id, "empty audio")
        return _data_url("audio/mpeg", response.content)


class FalVideoAdapter(HttpAdapter):
    """fal.ai synchronous endpoint; one model path per engine."""

    def __init__(self, provider_id: str, model_path: str, **kwargs):
        super().__init__(provider_id, **kwargs)
        self.model_path = model_path

    async def generate(self, credentials: Dict[str, str], prompt: str, options: Dict[str, Any]) -> str:
        key = self._api_key(credentials)
        body: Dict[str, Any] = {"prompt": prompt}
        if options.get("image_url"):
            body["image_url"] = options["image_url"]
        async with self._client() as client:
            response = await self._request(
                client,
                "POST",
                f"https://fal.run/{self.model_path}",
                json=body,
                headers={"Authorization": f"Key {key}"},
            )
        try:
            return response.json()["video"]["url"]
        except (KeyError, TypeError, ValueError) as exc:
            raise self._malformed(exc) from exc


class PollingVideoAdapter(HttpAdapter):
    """Submit a job, then poll until the vendor reports a terminal state."""

    poll_interval = 5.0
    max_polls = 120

    def __init__(self, provider_id: Optional[str] = None, *, poll_interval: Optional[float] = None, max_polls: Optional[int] = None, **kwargs):
        super().__init__(provider_id, **kwargs)
        if poll_interval is not None:
            self.poll_interval = poll_interval
        if max_polls is not None:
            self.max_polls = max_polls

    def _headers(self, key: str) -> Dict[str, str]:
        return {"Authorization": f"Bearer {key}"}

    def _submit(self, prompt: str, options: Dict[str, Any]) -> Tuple[str, Dict[str, Any]]:
        raise NotImplementedError

    def _status_url(self, job: Dict[str, Any]) -> str:
        raise NotImplementedError

    def _outcome(self, payload: Dict[str, Any]) -> Tuple[str, Optional[str]]:
        """Return (state, asset_url) where state is 'done', 'failed' or 'pending'."""
        raise NotImplementedError

    async def generate(self, credentials: Dict[str, str], prompt: str, options: Dict[str, Any]) -> str:
        key = self._api_key(credentials)
        url, body = self._submit(prompt, options)
        async with self._client() as client:
            submitted = await self._request(client, "POST", url, json=body, headers=self._headers(key))
            try:
                job = submitted.json()
            except ValueError as exc:
                raise self._malformed(exc) from exc

            for _ in range(self.max_polls):
                polled = await self._request(client, "GET", self._status_url(job), headers=self._headers(key))
                try:
                    state, asset = self._outcome(polled.json())
                except (KeyError, IndexError, TypeError, ValueError) as exc:
                    raise self._malformed(exc) from exc
                if state == "done" and asset:
                    return asset
                if state == "failed":
                    raise ProviderCallFailedError(self.provider_id, "job failed")
                await asyncio.sleep(self.poll_interval)

        raise ProviderCallFailedError(self.provider_id, "timed out waiting for job")


class RunwayAdapter(PollingVideoAdapter):
    provider_id = "runway"
    base_url = "https://api.dev.runwayml.com/v1"

    def _headers(self, key: str) -> Dict[str, str]:
        return {"Authorization": f"Bearer {key}", "X-Runway-Version": "2024-11-06"}

    def _submit(self, prompt: str, options: Dict[str, Any]):
        body = {"promptText": prompt, "model": options.get("model", "gen4_turbo")}
        if options.get("image_url"):
            body["promptImage"] = options["image_url"]
        return f"{self.base_url}/image_to_video", body

    def _status_url(self, job):
        return f"{self.base_url}/tasks/{job['id']}"

    def _outcome(self, payload):
        status = payload.get("status")
        if status == "SUCCEEDED":
            return "done", (payload.get("output") or [None])[0]
        if status in ("FAILED", "CANCELLED"):
            return "failed", None
        return "pending", None


class LumaAdapter(PollingVideoAdapter):
    provider_id = "luma"
    base_url = "https://api.lumalabs.ai/dream-machine/v1"

    def _submit(self, prompt: str, options: Dict[str, Any]):
        body: Dict[str, Any] = {"prompt": prompt, "model": options.get("model", "ray-2")}
        if options.get("image_url"):
            body["keyframes"] = {"frame0": {"type": "image", "url": options["image_url"]}}
        return f"{self.base_url}/generations", body

    def _status_url(self, job):
        return f"{self.base_url}/generations/{job['id']}"

    def _outcome(self, payload):
        state = payload.get("state")
        if state == "completed":
            return "done", (payload.get("assets") or {}).get("video")
        if state == "failed":
            return "failed", None
        return "pending", None


class VeoAdapter(PollingVideoAdapter):
    """Veo 3 on the Gemini API: a long-running operation polled by name."""

    provider_id = "veo3"
    base_url = "https://generativelanguage.googleapis.com/v1beta"
    model = "veo-3.0-generate-preview"

    def _headers(self, key: str) -> Dict[str, str]:
        return {"x-goog-api-key": key}

    def _submit(self, prompt: str, options: Dict[str, Any]):
        body: Dict[str, Any] = {"instances": [{"prompt": prompt}]}
        if options.get("aspect_ratio"):
            body["parameters"] = {"aspectRatio": options["aspect_ratio"]}
        return f"{self.base_url}/models/{options.get('model', self.model)}:predictLongRunning", body

    def _status_url(self, job):
        return f"{self.base_url}/{job['name']}"

    def _outcome(self, payload):
        if not payload.get("done"):
            return "pending", None
        if payload.get("error"):
            return "failed", None
        samples = payload["response"]["generateVideoResponse"]["generatedSamples"]
        return "done", samples[0]["video"]["uri"]


def _first_url(payload: Any, paths: Tuple[Tuple[Any, ...], ...]) -> Optional[str]:
    """First non-empty string found along any of the given key/index paths."""
    for path in paths:
        node = payload
        for step in path:
            if isinstance(step, int):
                node = node[step] if isinstance(node, list) and len(node) > step else None
            else:
                node = node.get(step) if isinstance(node, dict) else None
            if node is None:
                break
        if isinstance(node, str) and node.strip():
            return node
    return None


class JsonUrlAdapter(HttpAdapter):
    """
    One POST, asset URL read from the JSON reply.

    Subclasses set ``endpoint`` and ``url_paths`` and build the body. The
    first non-empty string along ``url_paths`` is the asset.
    """

    endpoint = ""
    url_paths: Tuple[Tuple[Any, ...], ...] = ()

    def _headers(self, key: str) -> Dict[str, str]:
        return {"Authorization": f"Bearer {key}"}

    def _body(self, prompt: str, options: Dict[str, Any]) -> Dict[str, Any]:
        return {"prompt": prompt}

    async def generate(self, credentials: Dict[str, str], prompt: str, options: Dict[str, Any]) -> str:
        key = self._api_key(credentials)
        async with self._client() as client:
            response = await self._request(
                client,
                "POST",
                self.endpoint,
                json=self._body(prompt, options),
                headers=self._headers(key),
            )
        try:
            payload = response.json()
        except ValueError as exc:
            raise self._malformed(exc) from exc
        url = _first_url(payload, self.url_paths)
        if not url:
            raise ProviderCallFailedError(self.provider_id, "no asset URL in response")
        return url


class FluxImageAdapter(JsonUrlAdapter):
    """Flux Pro through fal.ai; serves both the fal and Black Forest Labs entries."""

    provider_id = "fal_flux"
    endpoint = "https://fal.run/fal-ai/flux-pro"
    url_paths = (("images", 0, "url"), ("image", "url"), ("output", "url"), ("url",))

    def _headers(self, key):
        return {"Authorization": f"Key {key}"}

    def _body(self, prompt, options):
        return {
            "prompt": prompt,
            "image_size": options.get("size", "landscape_4_3"),
            "num_inference_steps": 28,
            "guidance_scale": 7.5,
            "enable_safety_checker": True,
        }


class IdeogramAdapter(JsonUrlAdapter):
    provider_id = "ideogram"
    endpoint = "https://api.ideogram.ai/generate"
    url_paths = (("data", 0, "url"), ("image_url",))

    def _headers(self, key):
        return {"Api-Key": key}

    def _body(self, prompt, options):
        return {
            "image_request": {
                "prompt": prompt,
                "aspect_ratio": options.get("aspect_ratio", "ASPECT_1_1"),
                "model": options.get("model", "V_2_TURBO"),
                "magic_prompt_option": "AUTO",
            }
        }


class ReplicateAdapter(JsonUrlAdapter):
    """Replicate predictions, held open with ``Prefer: wait`` so the output is inline."""

    provider_id = "replicate"
    endpoint = "https://api.replicate.com/v1/predictions"
    url_paths = (("output", 0), ("output",))
    DEFAULT_VERSION = "f1769f2b3253b5c92f09ff12d90e5828b2ac37f6"

    def _headers(self, key):
        return {"Authorization": f"Bearer {key}", "Prefer": "wait"}

    def _body(self, prompt, options):
        return {"version": options.get("version", self.DEFAULT_VERSION), "input": {"prompt": prompt}}


class RunwareAdapter(JsonUrlAdapter):
    provider_id = "runware"
    endpoint = "https://api.runware.ai/v1/image/generation"
    url_paths = (("images", 0, "url"), ("output", 0, "url"), ("data", 0, "imageURL"))

    def _body(self, prompt, options):
        return {"model": options.get("model", "flux-pro"), "prompt": prompt, "height": 1024, "width": 1024}


class LeonardoAdapter(JsonUrlAdapter):
    provider_id = "leonardo"
    endpoint = "https://api.leonardo.ai/v1/generations"
    url_paths = (
        ("generationsByPk", "generated_images", 0, "url"),
        ("sdGenerationJob", "generatedImages", 0, "url"),
    )
    DEFAULT_MODEL = "b820ea41-d8a3-4cb4-a378-54c9e40af08f"

    def _body(self, prompt, options):
        return {
            "prompt": prompt,
            "modelId": options.get("model", self.DEFAULT_MODEL),
            "num_images": 1,
            "height": 1024,
            "width": 1024,
        }


class SoraAdapter(JsonUrlAdapter):
    provider_id = "sora2"
    endpoint = "https://api.openai.com/v1/videos/generations"
    url_paths = (("data", "url"), ("url",))

    def _body(self, prompt, options):
        body: Dict[str, Any] = {"model": options.get("model", "sora-2"), "prompt": prompt}
        if options.get("duration"):
            body["duration"] = options["duration"]
        return body


class KlingAdapter(JsonUrlAdapter):
    provider_id = "kling"
    endpoint = "https://api.kuaishou.com/open/video/create"
    url_paths = (("data", "videos", 0, "url"), ("output", "video"))

    def _body(self, prompt, options):
        return {"prompt": prompt, "duration": options.get("duration", 6), "mode": options.get("mode", "std")}


class PikaAdapter(JsonUrlAdapter):
    provider_id = "pika"
    endpoint = "https://api.pika.art/v1/pipelines/anime-video"
    url_paths = (("output", 0, "url"), ("video", "url"))

    def _body(self, prompt, options):
        return {"prompt": prompt, "duration": options.get("duration", 4)}


class AdapterRegistry:
    """Maps (category, provider id) to an adapter. Provider ids repeat across categories."""

    def __init__(self):
        self._adapters: Dict[Tuple[Category, str], GenerationAdapter] = {}

    def register(self, category, provider_id: str, adapter: GenerationAdapter) -> None:
        self._adapters[(coerce_category(category), provider_id)] = adapter

    def get(self, category, provider_id: Optional[str]) -> Optional[GenerationAdapter]:
        if not provider_id:
            return None
        return self._adapters.get((coerce_category(category), provider_id))

    def providers(self, category) -> list:
        cat = coerce_category(category)
        return [pid for (c, pid) in self._adapters if c is cat]

    def __contains__(self, key) -> bool:
        category, provider_id = key
        return (coerce_category(category), provider_id) in self._adapters


# (provider id, base url, default model)
OPENAI_COMPATIBLE_LLMS = (
    ("openai", "https://api.openai.com/v1", "gpt-4o-mini"),
    ("google", "https://generativelanguage.googleapis.com/v1beta/openai", "gemini-2.0-flash"),
    ("groq", "https://api.groq.com/openai/v1", "llama-3.1-8b-instant"),
    ("mistral", "https://api.mistral.ai/v1", "mistral-small-latest"),
    ("deepseek", "https://api.deepseek.com/v1", "deepseek-chat"),
    ("together", "https://api.together.xyz/v1", "meta-llama/Llama-3.3-70B-Instruct-Turbo"),
    ("openrouter", "https://openrouter.ai/api/v1", "openrouter/auto"),
    ("xai", "https://api.x.ai/v1", "grok-2-latest"),
    ("ollama", "http://localhost:11434/v1", "llama3.1"),
)

FAL_VIDEO_MODELS = (
    ("ltx2", "fal-ai/ltx-video"),
    ("wan", "fal-ai/wan-t2v"),
    ("mochi", "fal-ai/mochi-v1"),
    ("fal", "fal-ai/ltx-video"),
)


def default_adapters(transport: Optional[httpx.AsyncBaseTransport] = None) -> AdapterRegistry:
    """Registry with every reference adapter wired in."""
    registry = AdapterRegistry()
    for pid, base_url, model in OPENAI_COMPATIBLE_LLMS:
        registry.register(Category.LLM, pid, OpenAICompatibleChatAdapter(pid, base_url, model, transport=transport))

    registry.register(Category.IMAGE, "openai", OpenAIImageAdapter("openai", transport=transport))
    registry.register(Category.IMAGE, "openai_dalle_next", OpenAIImageAdapter("openai_dalle_next", model="gpt-image-1", transport=transport))
    registry.register(Category.IMAGE, "google", GoogleImagenAdapter(transport=transport))
    registry.register(Category.IMAGE, "stability", StabilityImageAdapter(transport=transport))
    registry.register(
        Category.IMAGE,
        "sd3",
        StabilityImageAdapter("sd3", endpoint="https://api.stability.ai/v2beta/stable-image/generate/sd3", transport=transport),
    )
    registry.register(Category.IMAGE, "fal_flux", FluxImageAdapter(transport=transport))
    registry.register(Category.IMAGE, "black_forest_labs", FluxImageAdapter("black_forest_labs", transport=transport))
    registry.register(Category.IMAGE, "ideogram", IdeogramAdapter(transport=transport))
    registry.register(Category.IMAGE, "replicate", ReplicateAdapter(transport=transport))
    registry.register(Category.IMAGE, "runware", RunwareAdapter(transport=transport))
    registry.register(Category.IMAGE, "leonardo", LeonardoAdapter(transport=transport))

    registry.register(Category.VOICE, "openai", OpenAISpeechAdapter("openai", transport=transport))
    registry.register(Category.VOICE, "elevenlabs", ElevenLabsAdapter(transport=transport))

    for pid, model_path in FAL_VIDEO_MODELS:
        registry.register(Category.VIDEO, pid, FalVideoAdapter(pid, model_path, transport=transport))
    registry.register(Category.VIDEO, "runway", RunwayAdapter(transport=transport))
    registry.register(Category.VIDEO, "luma", LumaAdapter(transport=transport))
    registry.register(Category.VIDEO, "sora2", SoraAdapter(transport=transport))
    registry.register(Category.VIDEO, "veo3", VeoAdapter(transport=transport))
    registry.register(Category.VIDEO, "kling", KlingAdapter(transport=transport))
    registry.register(Category.VIDEO, "pika", PikaAdapter(transport=transport))
    return registry


def free_image_keywords(prompt: str, default: Optional[str] = None) -> str:
    """First two whitespace-separated words longer than three characters."""
    words = [word for word in (prompt or "").split() if len(word) > 3]
    query = " ".join(words[:2]).strip()
    return query or (default or settings.FREE_IMAGE_DEFAULT_KEYWORD)


class FreeImageSource:
    """Keyless stock-photo URL built from prompt keywords. Never fails."""

    provider_id = "unsplash-free"

    def __init__(self, base_url: Optional[str] = None, size: Optional[str] = None):
        self.base_url = (base_url or settings.FREE_IMAGE_BASE_URL).rstrip("/")
        self.size = size or settings.FREE_IMAGE_SIZE

    def url_for(self, prompt: str) -> str:
        query = quote(free_image_keywords(prompt), safe="!~*'()")
        return f"{self.base_url}/{self.size}/?{query}"
