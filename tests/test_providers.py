"""Tests for the Gemini and Ollama providers and the switching handle."""

from contextlib import asynccontextmanager
from types import SimpleNamespace
from unittest.mock import AsyncMock, MagicMock

import pytest
from aiohttp import web
from aiohttp.test_utils import TestServer

from wingman.config import ProviderSettings
from wingman.errors import (
    BackendError,
    CapabilityUnsupported,
    MissingCredential,
    ProviderUnavailable,
)
from wingman.models import MediaPart, ProviderKind
from wingman.providers import CloudProvider, ModelProvider, api_root


class FakeDaemon:
    """In-process stand-in for the Ollama HTTP API."""

    def __init__(self, models=(), status=200, reply="Hi there"):
        self.models = list(models)
        self.status = status
        self.reply = reply
        self.generate_requests = []
        self.tag_requests = 0

    async def tags(self, request):
        self.tag_requests += 1
        return web.json_response({"models": [{"name": name} for name in self.models]})

    async def generate(self, request):
        self.generate_requests.append(await request.json())
        if self.status != 200:
            return web.Response(status=self.status, text="model exploded")
        return web.json_response({"response": self.reply, "done": True})

    def app(self):
        app = web.Application()
        app.router.add_get("/api/tags", self.tags)
        app.router.add_post("/api/generate", self.generate)
        return app


@asynccontextmanager
async def running(daemon):
    server = TestServer(daemon.app())
    await server.start_server()
    try:
        yield f"http://{server.host}:{server.port}"
    finally:
        await server.close()


def fake_client(text="pong", error=None):
    client = MagicMock()
    if error is not None:
        client.aio.models.generate_content = AsyncMock(side_effect=error)
    else:
        client.aio.models.generate_content = AsyncMock(return_value=SimpleNamespace(text=text))
    return client


@pytest.mark.parametrize(
    "url,expected",
    [
        ("http://localhost:11434", "http://localhost:11434/api"),
        ("http://localhost:11434/", "http://localhost:11434/api"),
        ("http://localhost:11434/api", "http://localhost:11434/api"),
    ],
)
def test_api_root(url, expected):
    assert api_root(url) == expected


class TestLocalSwitch:
    """Switching to the local daemon and auto-selecting a model."""

    @pytest.mark.asyncio
    async def test_unlisted_model_falls_back_to_first_and_probes(self):
        daemon = FakeDaemon(models=["a", "b"])
        provider = ModelProvider(ProviderSettings(ollama_model="z"))
        try:
            async with running(daemon) as url:
                config = await provider.switch_to_local(endpoint_url=url)
        finally:
            await provider.close()

        assert config.kind is ProviderKind.LOCAL
        assert config.model_name == "a"
        assert config.endpoint_url == url
        assert provider.current_model() == "a"
        assert provider.current_provider() == "ollama"
        assert [req["model"] for req in daemon.generate_requests] == ["a"]

    @pytest.mark.asyncio
    async def test_configured_model_kept_when_listed(self):
        daemon = FakeDaemon(models=["a", "b"])
        provider = ModelProvider(ProviderSettings(ollama_model="b"))
        try:
            async with running(daemon) as url:
                config = await provider.switch_to_local(endpoint_url=url)
        finally:
            await provider.close()

        assert config.model_name == "b"

    @pytest.mark.asyncio
    async def test_previous_good_model_preferred_over_first(self):
        daemon = FakeDaemon(models=["a", "b"])
        provider = ModelProvider(ProviderSettings(ollama_model="z"))
        try:
            async with running(daemon) as url:
                await provider.switch_to_local(model="b", endpoint_url=url)
                await provider.generate_text("warm")
                provider._local_model = "gone"
                config = await provider.switch_to_local(endpoint_url=url)
        finally:
            await provider.close()

        assert config.model_name == "b"

    @pytest.mark.asyncio
    async def test_empty_model_list_keeps_prior_model(self, caplog):
        daemon = FakeDaemon(models=[])
        provider = ModelProvider(ProviderSettings(ollama_model="llama3.2"))
        try:
            async with running(daemon) as url:
                config = await provider.switch_to_local(endpoint_url=url)
        finally:
            await provider.close()

        assert config.model_name == "llama3.2"
        assert daemon.generate_requests == []
        assert "No Ollama models found" in caplog.text

    @pytest.mark.asyncio
    async def test_explicit_model_skips_listing(self):
        daemon = FakeDaemon(models=["a"])
        provider = ModelProvider()
        try:
            async with running(daemon) as url:
                config = await provider.switch_to_local(model="custom", endpoint_url=url)
        finally:
            await provider.close()

        assert config.model_name == "custom"
        assert daemon.tag_requests == 0
        assert daemon.generate_requests == []

    @pytest.mark.asyncio
    async def test_unreachable_daemon_still_switches(self):
        provider = ModelProvider(ProviderSettings(ollama_model="llama3.2", probe_timeout=0.5))
        try:
            config = await provider.switch_to_local(endpoint_url="http://127.0.0.1:1")
            status = await provider.test_connection()
            models = await provider.list_models()
        finally:
            await provider.close()

        assert config.model_name == "llama3.2"
        assert provider.is_local
        assert models == []
        assert status.success is False
        assert "Ollama not available at http://127.0.0.1:1" in status.error


class TestLocalGenerate:
    """Text generation against the local daemon."""

    @pytest.mark.asyncio
    async def test_payload_shape(self):
        daemon = FakeDaemon(models=["a"], reply="42")
        provider = ModelProvider(ProviderSettings(temperature=0.7, top_p=0.9))
        try:
            async with running(daemon) as url:
                await provider.switch_to_local(model="a", endpoint_url=url)
                text = await provider.generate_text("What is six times seven?")
        finally:
            await provider.close()

        assert text == "42"
        assert daemon.generate_requests == [
            {
                "model": "a",
                "prompt": "What is six times seven?",
                "stream": False,
                "options": {"temperature": 0.7, "top_p": 0.9},
            }
        ]

    @pytest.mark.asyncio
    async def test_http_error_raises_backend_error(self):
        daemon = FakeDaemon(models=["a"], status=500)
        provider = ModelProvider()
        try:
            async with running(daemon) as url:
                await provider.switch_to_local(model="a", endpoint_url=url)
                with pytest.raises(BackendError, match="500"):
                    await provider.generate_text("hi")
        finally:
            await provider.close()

    @pytest.mark.asyncio
    async def test_connection_failure_names_endpoint(self):
        provider = ModelProvider(ProviderSettings(request_timeout=0.5))
        try:
            await provider.switch_to_local(model="a", endpoint_url="http://127.0.0.1:1")
            with pytest.raises(BackendError, match="Make sure Ollama is running on http://127.0.0.1:1"):
                await provider.generate_text("hi")
        finally:
            await provider.close()

    @pytest.mark.asyncio
    async def test_media_is_refused_before_any_request(self):
        daemon = FakeDaemon(models=["a"])
        provider = ModelProvider()
        try:
            async with running(daemon) as url:
                await provider.switch_to_local(model="a", endpoint_url=url)
                with pytest.raises(CapabilityUnsupported):
                    await provider.generate_multimodal("describe", [MediaPart(b"png", "image/png")])
        finally:
            await provider.close()

        assert daemon.generate_requests == []

    @pytest.mark.asyncio
    async def test_list_models(self):
        daemon = FakeDaemon(models=["llama3.2", "qwen2.5-coder"])
        provider = ModelProvider()
        try:
            async with running(daemon) as url:
                await provider.switch_to_local(model="llama3.2", endpoint_url=url)
                models = await provider.list_models()
                status = await provider.test_connection()
        finally:
            await provider.close()

        assert models == ["llama3.2", "qwen2.5-coder"]
        assert status.success is True


class TestCloud:
    """Gemini backend behaviour with a mocked SDK client."""

    @pytest.mark.asyncio
    async def test_no_backend_configured(self):
        provider = ModelProvider()
        with pytest.raises(ProviderUnavailable, match="No LLM provider configured"):
            await provider.generate_text("hi")
        status = await provider.test_connection()
        assert status.success is False
        assert provider.current_provider() == "none"
        assert provider.is_local is False

    @pytest.mark.asyncio
    async def test_switch_without_key_or_client(self):
        provider = ModelProvider()
        with pytest.raises(MissingCredential):
            await provider.switch_to_cloud()

    @pytest.mark.asyncio
    async def test_switch_back_reuses_existing_client(self):
        factory = MagicMock(return_value=fake_client())
        provider = ModelProvider(client_factory=factory)

        await provider.switch_to_cloud("secret")
        await provider.switch_to_local(model="a", endpoint_url="http://127.0.0.1:1")
        config = await provider.switch_to_cloud()
        await provider.close()

        factory.assert_called_once_with("secret", provider.settings.request_timeout)
        assert config.kind is ProviderKind.CLOUD
        assert provider.current_provider() == "gemini"

    @pytest.mark.asyncio
    async def test_multimodal_sends_prompt_then_parts(self):
        client = fake_client("a bar chart")
        backend = CloudProvider(client=client, model_name="gemini-2.0-flash")

        text = await backend.generate_multimodal("describe", [MediaPart(b"\x89PNG", "image/png")])

        assert text == "a bar chart"
        kwargs = client.aio.models.generate_content.await_args.kwargs
        assert kwargs["model"] == "gemini-2.0-flash"
        assert kwargs["contents"][0] == "describe"
        assert len(kwargs["contents"]) == 2

    @pytest.mark.asyncio
    async def test_sdk_errors_become_backend_errors(self):
        backend = CloudProvider(client=fake_client(error=RuntimeError("quota exceeded")), model_name="m")
        with pytest.raises(BackendError, match="quota exceeded"):
            await backend.generate_text("hi")

    @pytest.mark.asyncio
    async def test_empty_probe_reply_fails_connection_test(self):
        backend = CloudProvider(client=fake_client(text=None), model_name="m")
        status = await backend.test_connection()
        assert status.success is False
        assert status.error == "Empty response from Gemini"

    @pytest.mark.asyncio
    async def test_connection_ok(self):
        backend = CloudProvider(client=fake_client("Hello!"), model_name="m")
        status = await backend.test_connection()
        assert status.success is True
        assert await backend.list_models() == []
