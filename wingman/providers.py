"""Model providers: a cloud Gemini backend and a local Ollama daemon.

Both variants expose the same operations. The local daemon only handles
text; asking it for image or audio input raises
:class:`~wingman.errors.CapabilityUnsupported` instead of quietly dropping the
media. :class:`ModelProvider` is the handle the orchestrator owns: it keeps
the active variant as one immutable object and swaps it in a single
assignment, so a generate call always sees a complete configuration.
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass, field, replace
from typing import Any, Awaitable, Callable, List, Optional, Sequence, Union

import aiohttp
from google import genai
from google.genai import types as genai_types

from .config import ProviderSettings
from .errors import (
    BackendError,
    CapabilityUnsupported,
    MissingCredential,
    ProviderUnavailable,
)
from .models import ConnectionStatus, MediaPart, ProviderConfig, ProviderKind

logger = logging.getLogger(__name__)

PROBE_PROMPT = "Hello"
NO_PROVIDER = "none"

SessionFactory = Callable[[], Awaitable[aiohttp.ClientSession]]
ClientFactory = Callable[[str, float], Any]


def make_genai_client(api_key: str, timeout: float) -> genai.Client:
    return genai.Client(
        api_key=api_key,
        http_options=genai_types.HttpOptions(timeout=int(timeout * 1000)),
    )


def api_root(endpoint_url: str) -> str:
    """Daemon base URL with the ``/api`` prefix appended once."""

    root = endpoint_url.rstrip("/")
    if not root.endswith("/api"):
        root += "/api"
    return root


# =============================================================================
# CLOUD
# =============================================================================


@dataclass(frozen=True)
class CloudProvider:
    """Gemini through the google-genai SDK; text, image and audio input."""

    client: Any
    model_name: str

    kind = ProviderKind.CLOUD
    supports_media = True
    label = "Gemini"

    @property
    def config(self) -> ProviderConfig:
        return ProviderConfig(kind=self.kind, model_name=self.model_name, client=self.client)

    async def generate_text(self, prompt: str) -> str:
        return await self._generate(prompt)

    async def generate_multimodal(self, prompt: str, parts: Sequence[MediaPart]) -> str:
        contents: List[Any] = [prompt]
        contents.extend(
            genai_types.Part.from_bytes(data=part.data, mime_type=part.mime_type) for part in parts
        )
        return await self._generate(contents)

    async def _generate(self, contents: Union[str, List[Any]]) -> str:
        try:
            response = await self.client.aio.models.generate_content(
                model=self.model_name,
                contents=contents,
            )
        except Exception as exc:
            raise BackendError(f"Gemini request failed: {exc}") from exc
        return response.text or ""

    async def list_models(self) -> List[str]:
        return []

    async def test_connection(self) -> ConnectionStatus:
        try:
            text = await self.generate_text(PROBE_PROMPT)
        except BackendError as exc:
            return ConnectionStatus(success=False, error=str(exc))
        if not text:
            return ConnectionStatus(success=False, error="Empty response from Gemini")
        return ConnectionStatus(success=True)


# =============================================================================
# LOCAL
# =============================================================================


@dataclass(frozen=True)
class LocalProvider:
    """Ollama-compatible daemon over HTTP; text only."""

    endpoint_url: str
    model_name: str
    session_factory: SessionFactory = field(repr=False)
    probe_timeout: float = 2.0
    request_timeout: float = 120.0
    temperature: float = 0.7
    top_p: float = 0.9

    kind = ProviderKind.LOCAL
    supports_media = False
    label = "Ollama"

    @property
    def config(self) -> ProviderConfig:
        return ProviderConfig(kind=self.kind, model_name=self.model_name, endpoint_url=self.endpoint_url)

    def with_model(self, model_name: str) -> "LocalProvider":
        return replace(self, model_name=model_name)

    async def generate_text(self, prompt: str) -> str:
        payload = {
            "model": self.model_name,
            "prompt": prompt,
            "stream": False,
            "options": {"temperature": self.temperature, "top_p": self.top_p},
        }
        url = f"{api_root(self.endpoint_url)}/generate"
        session = await self.session_factory()
        try:
            async with session.post(
                url, json=payload, timeout=aiohttp.ClientTimeout(total=self.request_timeout)
            ) as response:
                if response.status != 200:
                    detail = (await response.text())[:200]
                    raise BackendError(f"Ollama API error: {response.status} {response.reason} {detail}".rstrip())
                data = await response.json(content_type=None)
        except (aiohttp.ClientError, asyncio.TimeoutError, ValueError) as exc:
            raise BackendError(
                f"Failed to connect to Ollama: {str(exc) or type(exc).__name__}. "
                f"Make sure Ollama is running on {self.endpoint_url}"
            ) from exc
        if not isinstance(data, dict):
            raise BackendError(f"Unexpected Ollama response: {data!r}")
        return str(data.get("response", ""))

    async def generate_multimodal(self, prompt: str, parts: Sequence[MediaPart]) -> str:
        raise CapabilityUnsupported(
            "Image and audio analysis require Gemini; the local Ollama provider only handles text."
        )

    async def _get_tags(self) -> Any:
        session = await self.session_factory()
        async with session.get(
            f"{api_root(self.endpoint_url)}/tags",
            timeout=aiohttp.ClientTimeout(total=self.probe_timeout),
        ) as response:
            response.raise_for_status()
            return await response.json(content_type=None)

    async def is_available(self) -> bool:
        try:
            await self._get_tags()
        except (aiohttp.ClientError, asyncio.TimeoutError, ValueError) as exc:
            logger.debug("Ollama not reachable at %s: %s", self.endpoint_url, exc)
            return False
        return True

    async def list_models(self) -> List[str]:
        try:
            data = await self._get_tags()
        except (aiohttp.ClientError, asyncio.TimeoutError, ValueError) as exc:
            logger.warning("Error fetching Ollama models from %s: %s", self.endpoint_url, exc)
            return []
        models = data.get("models") if isinstance(data, dict) else None
        return [entry["name"] for entry in models or [] if isinstance(entry, dict) and entry.get("name")]

    async def test_connection(self) -> ConnectionStatus:
        if not await self.is_available():
            return ConnectionStatus(success=False, error=f"Ollama not available at {self.endpoint_url}")
        try:
            await self.generate_text(PROBE_PROMPT)
        except BackendError as exc:
            return ConnectionStatus(success=False, error=str(exc))
        return ConnectionStatus(success=True)


Backend = Union[CloudProvider, LocalProvider]


# =============================================================================
# HANDLE
# =============================================================================


class ModelProvider:
    """Owns the active backend and the switch operations between backends."""

    def __init__(
        self,
        settings: Optional[ProviderSettings] = None,
        *,
        client_factory: ClientFactory = make_genai_client,
    ) -> None:
        self.settings = settings or ProviderSettings()
        self._client_factory = client_factory
        self._active: Optional[Backend] = None
        self._cloud: Optional[CloudProvider] = None
        self._local_endpoint = self.settings.ollama_url
        self._local_model = self.settings.ollama_model
        self._last_good_model: Optional[str] = None
        self._switch_lock = asyncio.Lock()
        self._session: Optional[aiohttp.ClientSession] = None

    async def start(self) -> None:
        """Apply the initial backend choice from settings."""

        if self.settings.use_ollama:
            await self.switch_to_local()
        elif self.settings.api_key:
            await self.switch_to_cloud(self.settings.api_key)
        else:
            logger.warning("No Gemini API key or Ollama enabled; configure a provider before dispatching.")

    async def close(self) -> None:
        if self._session is not None and not self._session.closed:
            await self._session.close()

    async def _get_session(self) -> aiohttp.ClientSession:
        if self._session is None or self._session.closed:
            self._session = aiohttp.ClientSession()
        return self._session

    # ------------------------------------------------------------------
    # Configuration
    # ------------------------------------------------------------------

    @property
    def config(self) -> ProviderConfig:
        active = self._active
        return active.config if active is not None else ProviderConfig()

    @property
    def is_local(self) -> bool:
        return isinstance(self._active, LocalProvider)

    def current_provider(self) -> str:
        """``"ollama"``, ``"gemini"``, or ``"none"`` before any backend is switched on."""

        active = self._active
        if active is None:
            return NO_PROVIDER
        return active.kind.value

    def current_model(self) -> str:
        active = self._active
        if active is not None:
            return active.model_name
        return self._local_model if self.settings.use_ollama else self.settings.gemini_model

    def _local(self, endpoint_url: str, model_name: str) -> LocalProvider:
        return LocalProvider(
            endpoint_url=endpoint_url,
            model_name=model_name,
            session_factory=self._get_session,
            probe_timeout=self.settings.probe_timeout,
            request_timeout=self.settings.request_timeout,
            temperature=self.settings.temperature,
            top_p=self.settings.top_p,
        )

    async def switch_to_local(self, model: Optional[str] = None, endpoint_url: Optional[str] = None) -> ProviderConfig:
        """Activate the local daemon, auto-selecting a model when none is given."""

        async with self._switch_lock:
            endpoint = endpoint_url or self._local_endpoint
            candidate = self._local(endpoint, model or self._local_model)
            probe = False
            if model is None:
                available = await candidate.list_models()
                if not available:
                    logger.warning("No Ollama models found at %s; keeping %s", endpoint, candidate.model_name)
                else:
                    chosen = self._choose_model(candidate.model_name, available)
                    if chosen != candidate.model_name:
                        logger.info("Auto-selected available model: %s", chosen)
                        candidate = candidate.with_model(chosen)
                    probe = True
            self._local_endpoint = endpoint
            self._local_model = candidate.model_name
            self._active = candidate
        logger.info("Switched to Ollama: %s at %s", candidate.model_name, endpoint)
        if probe:
            await self._warm_up(candidate)
        return candidate.config

    def _choose_model(self, configured: str, available: Sequence[str]) -> str:
        if configured in available:
            return configured
        if self._last_good_model and self._last_good_model in available:
            return self._last_good_model
        return available[0]

    async def _warm_up(self, provider: LocalProvider) -> None:
        try:
            await provider.generate_text(PROBE_PROMPT)
        except BackendError as exc:
            logger.error("Failed to initialize Ollama model %s: %s", provider.model_name, exc)
            return
        self._last_good_model = provider.model_name
        logger.info("Successfully initialized with model: %s", provider.model_name)

    async def switch_to_cloud(self, api_key: Optional[str] = None) -> ProviderConfig:
        async with self._switch_lock:
            if api_key:
                client = self._client_factory(api_key, self.settings.request_timeout)
                self._cloud = CloudProvider(client=client, model_name=self.settings.gemini_model)
            if self._cloud is None:
                raise MissingCredential("No Gemini API key provided and no existing model instance")
            self._active = self._cloud
        logger.info("Switched to Gemini")
        return self._cloud.config

    # ------------------------------------------------------------------
    # Dispatch
    # ------------------------------------------------------------------

    def _require(self) -> Backend:
        active = self._active
        if active is None:
            raise ProviderUnavailable("No LLM provider configured")
        return active

    async def generate_text(self, prompt: str) -> str:
        active = self._require()
        text = await active.generate_text(prompt)
        if isinstance(active, LocalProvider):
            self._last_good_model = active.model_name
        return text

    async def generate_multimodal(self, prompt: str, parts: Sequence[MediaPart]) -> str:
        active = self._require()
        if not active.supports_media:
            raise CapabilityUnsupported(
                f"{active.label} does not support image or audio input; switch to Gemini for media analysis."
            )
        return await active.generate_multimodal(prompt, parts)

    async def list_models(self) -> List[str]:
        active = self._active
        if active is None:
            return []
        return await active.list_models()

    async def test_connection(self) -> ConnectionStatus:
        active = self._active
        if active is None:
            return ConnectionStatus(success=False, error="No LLM provider configured")
        return await active.test_connection()
