"""Tests for inference gateways and the gateway registry."""

import io
import json

import httpx
import pytest
import soundfile as sf

from sohbet.errors import GatewayError
from sohbet.gateway.base import AudioPayload
from sohbet.gateway.huggingface import HuggingFaceGateway
from sohbet.gateway.mock import MockGateway
from sohbet.gateway.registry import GatewayRegistry


def make_gateway(handler, **kwargs):
    kwargs.setdefault("api_token", "hf_test")
    return HuggingFaceGateway(
        base_url="https://hf.test/models",
        transport=httpx.MockTransport(handler),
        **kwargs,
    )


class TestHuggingFaceGateway:
    """Tests for the Hugging Face gateway against a mocked transport."""

    @pytest.mark.asyncio
    async def test_generate_response_request_shape(self):
        seen = []

        def handler(request: httpx.Request) -> httpx.Response:
            seen.append(request)
            return httpx.Response(200, json=[{"generated_text": "Hi there!"}])

        async with make_gateway(handler) as gateway:
            reply = await gateway.generate_response("Hello")

        assert reply == "Hi there!"
        request = seen[0]
        assert request.method == "POST"
        assert request.url.path == "/models/facebook/blenderbot-400M-distill"
        assert request.headers["Authorization"] == "Bearer hf_test"
        body = json.loads(request.content)
        assert body == {
            "inputs": "Hello",
            "parameters": {
                "max_new_tokens": 100,
                "temperature": 0.7,
                "top_p": 0.95,
                "repetition_penalty": 1.2,
            },
        }

    @pytest.mark.asyncio
    async def test_no_authorization_without_token(self):
        seen = []

        def handler(request):
            seen.append(request)
            return httpx.Response(200, json={"generated_text": "ok"})

        async with make_gateway(handler, api_token=None) as gateway:
            assert await gateway.generate_response("Hello") == "ok"

        assert "Authorization" not in seen[0].headers

    @pytest.mark.asyncio
    async def test_extra_fields_ignored(self):
        def handler(request):
            return httpx.Response(
                200, json=[{"generated_text": "Hi", "conversation": {"past": []}}]
            )

        async with make_gateway(handler) as gateway:
            assert await gateway.generate_response("Hello") == "Hi"

    @pytest.mark.asyncio
    async def test_http_error_carries_status_and_detail(self):
        def handler(request):
            return httpx.Response(503, json={"error": "Model is currently loading"})

        async with make_gateway(handler) as gateway:
            with pytest.raises(GatewayError) as exc_info:
                await gateway.generate_response("Hello")

            assert gateway.error_count == 1

        error = exc_info.value
        assert error.status_code == 503
        assert error.model == "facebook/blenderbot-400M-distill"
        assert "Model is currently loading" in str(error)

    @pytest.mark.asyncio
    async def test_transport_error_becomes_gateway_error(self):
        def handler(request):
            raise httpx.ConnectError("connection refused", request=request)

        async with make_gateway(handler) as gateway:
            with pytest.raises(GatewayError) as exc_info:
                await gateway.generate_response("Hello")

        assert exc_info.value.status_code is None

    @pytest.mark.asyncio
    async def test_missing_field_is_an_error(self):
        def handler(request):
            return httpx.Response(200, json={"unexpected": "shape"})

        async with make_gateway(handler) as gateway:
            with pytest.raises(GatewayError, match="generated_text"):
                await gateway.generate_response("Hello")

    @pytest.mark.asyncio
    async def test_non_json_body_is_an_error(self):
        def handler(request):
            return httpx.Response(200, text="<html>busy</html>")

        async with make_gateway(handler) as gateway:
            with pytest.raises(GatewayError):
                await gateway.generate_response("Hello")

    @pytest.mark.asyncio
    async def test_speech_to_text_posts_raw_audio(self):
        seen = []

        def handler(request):
            seen.append(request)
            return httpx.Response(200, json={"text": " Merhaba dünya"})

        audio = AudioPayload(data=b"RIFF....WAVE", content_type="audio/wav")
        async with make_gateway(handler) as gateway:
            text = await gateway.speech_to_text(audio)

        assert text == " Merhaba dünya"
        request = seen[0]
        assert request.url.path == "/models/openai/whisper-base"
        assert request.headers["Content-Type"] == "audio/wav"
        assert request.content == b"RIFF....WAVE"

    @pytest.mark.asyncio
    async def test_text_to_speech_returns_audio(self):
        seen = []

        def handler(request):
            seen.append(request)
            return httpx.Response(
                200, content=b"fLaC-bytes", headers={"Content-Type": "audio/flac"}
            )

        async with make_gateway(handler, tts_model="acme/tts") as gateway:
            payload = await gateway.text_to_speech("Merhaba")

        assert payload.data == b"fLaC-bytes"
        assert payload.content_type == "audio/flac"
        assert seen[0].url.path == "/models/acme/tts"
        assert json.loads(seen[0].content) == {"inputs": "Merhaba"}

    @pytest.mark.asyncio
    async def test_status_tracks_requests(self):
        def handler(request):
            return httpx.Response(200, json={"generated_text": "ok"})

        gateway = make_gateway(handler)
        assert gateway.get_status()["initialized"] is False

        async with gateway:
            await gateway.generate_response("a")
            await gateway.generate_response("b")
            status = gateway.get_status()

        assert status["gateway"] == "huggingface"
        assert status["initialized"] is True
        assert status["request_count"] == 2
        assert status["error_count"] == 0
        assert status["last_latency_ms"] is not None
        assert gateway.client is None

    @pytest.mark.asyncio
    async def test_no_request_timeout_by_default(self):
        async with HuggingFaceGateway(api_token="hf_test") as gateway:
            timeout = gateway.client.timeout

        assert timeout == httpx.Timeout(None)
        assert timeout.read is None
        assert timeout.connect is None

    @pytest.mark.asyncio
    async def test_configured_request_timeout(self):
        async with HuggingFaceGateway(request_timeout=30.0) as gateway:
            assert gateway.client.timeout == httpx.Timeout(30.0)

    @pytest.mark.asyncio
    async def test_lazy_initialize_on_first_call(self):
        def handler(request):
            return httpx.Response(200, json={"generated_text": "ok"})

        gateway = make_gateway(handler)
        try:
            assert await gateway.generate_response("Hello") == "ok"
        finally:
            await gateway.close()


class TestMockGateway:
    """Tests for the offline gateway."""

    @pytest.mark.asyncio
    async def test_cycles_through_responses(self):
        gateway = MockGateway(responses=["one", "two"])

        replies = [await gateway.generate_response(p) for p in ("a", "b", "c")]

        assert replies == ["one", "two", "one"]
        assert gateway.prompts == ["a", "b", "c"]

    @pytest.mark.asyncio
    async def test_failure_flags(self):
        gateway = MockGateway(fail_generation=True, fail_transcription=True)

        with pytest.raises(GatewayError):
            await gateway.generate_response("a")
        with pytest.raises(GatewayError):
            await gateway.speech_to_text(AudioPayload(data=b"x"))

    @pytest.mark.asyncio
    async def test_text_to_speech_is_silent_wav(self):
        payload = await MockGateway().text_to_speech("iki kelime")

        assert payload.content_type == "audio/wav"
        assert payload.duration_ms == 200
        data, sample_rate = sf.read(io.BytesIO(payload.data))
        assert sample_rate == 16000
        assert len(data) == 3200
        assert not data.any()


class TestGatewayRegistry:
    """Tests for gateway registration and lookup."""

    def test_register_and_get(self):
        registry = GatewayRegistry()
        registry.register_gateway("mock", MockGateway, lambda: {"responses": ["configured"]})

        gateway = registry.get_gateway("mock")

        assert isinstance(gateway, MockGateway)
        assert gateway.responses == ["configured"]
        assert registry.list_gateways() == ["mock"]

    def test_kwargs_override_config(self):
        registry = GatewayRegistry()
        registry.register_gateway("mock", MockGateway, lambda: {"responses": ["configured"]})

        gateway = registry.get_gateway("mock", responses=["explicit"])

        assert gateway.responses == ["explicit"]

    def test_unknown_gateway(self):
        registry = GatewayRegistry()

        with pytest.raises(ValueError, match="Unknown gateway"):
            registry.get_gateway("nope")

    def test_clear(self):
        registry = GatewayRegistry()
        registry.register_gateway("mock", MockGateway)
        registry.clear()

        assert registry.list_gateways() == []

    def test_global_registry_has_builtin_gateways(self):
        from sohbet.gateway import registry

        assert set(registry.list_gateways()) >= {"huggingface", "mock"}

    def test_huggingface_built_from_settings(self, monkeypatch):
        from sohbet.config.settings import settings
        from sohbet.gateway import registry

        monkeypatch.setattr(settings, "api_token", "hf_from_settings")
        monkeypatch.setattr(settings.gateway, "text_model", "acme/chat")

        gateway = registry.get_gateway("huggingface")

        assert isinstance(gateway, HuggingFaceGateway)
        assert gateway.api_token == "hf_from_settings"
        assert gateway.text_model == "acme/chat"
