"""
Tests for the OAuth handshake coordinator.

The authorization window is faked; the redirect target's behaviour is
simulated by posting on the message channel and/or writing the fallback
storage key when the window opens.
"""

import asyncio
import json
import pytest
from urllib.parse import parse_qs, urlsplit

import httpx

from dataset_exporter.auth import (
    CALLBACK_STORAGE_KEY,
    AuthWindow,
    MemoryStorage,
    MessageChannel,
    OAuthHandshakeCoordinator,
    PkceSecrets,
    PkceStore,
    TokenExchanger,
    WindowGeometry,
    WindowMessage,
    WindowOpener,
    popup_features,
    unwrap_state,
    verify_state,
)
from dataset_exporter.config import OAuthConfig
from dataset_exporter.exceptions import (
    AuthCancelled,
    AuthProviderError,
    AuthStateMismatch,
    AuthTimeout,
    TokenExchangeFailed,
)

REDIRECT_ORIGIN = "http://localhost:8000"


class FakeWindow(AuthWindow):
    def __init__(self, url):
        self.url = url
        self._closed = False
        self.close_calls = 0

    @property
    def closed(self):
        return self._closed

    def close(self):
        self._closed = True
        self.close_calls += 1


class FakeOpener(WindowOpener):
    """Records opened windows and runs ``on_open`` for each."""

    def __init__(self, on_open=None):
        self.on_open = on_open
        self.windows = []
        self.features = []

    def open(self, url, name, features):
        window = FakeWindow(url)
        self.windows.append(window)
        self.features.append(features)
        if self.on_open is not None:
            self.on_open(window)
        return window


def state_of(url):
    return parse_qs(urlsplit(url).query)["state"][0]


class Harness:
    """A coordinator wired to in-memory collaborators."""

    def __init__(self, on_open=None, token_status=200, **config_overrides):
        settings = dict(
            client_id="client-123",
            hub_endpoint="https://hub.test",
            popup_check_interval_ms=10,
            fallback_grace_ms=10,
            timeout_seconds=2.0,
        )
        settings.update(config_overrides)
        self.config = OAuthConfig(**settings)
        self.storage = MemoryStorage()
        self.messages = MessageChannel()
        self.opener = FakeOpener(on_open)
        self.token_requests = []

        def token_handler(request):
            self.token_requests.append(request)
            if token_status != 200:
                return httpx.Response(token_status, text="invalid_grant")
            return httpx.Response(200, json={"access_token": "hf_token"})

        pkce_store = PkceStore(self.storage)
        exchanger = TokenExchanger(
            self.config,
            pkce_store,
            http_client=httpx.AsyncClient(transport=httpx.MockTransport(token_handler)),
        )
        self.coordinator = OAuthHandshakeCoordinator(
            config=self.config,
            pkce_store=pkce_store,
            exchanger=exchanger,
            messages=self.messages,
            opener=self.opener,
            storage=self.storage,
        )

    def post_soon(self, data, origin=REDIRECT_ORIGIN):
        asyncio.get_running_loop().call_soon(
            self.messages.post, WindowMessage(origin=origin, data=data)
        )

    def store_and_close_soon(self, window, payload):
        async def deliver():
            await self.storage.set(CALLBACK_STORAGE_KEY, payload)
            window.close()

        asyncio.ensure_future(deliver())


class TestStateHelpers:

    def test_unwrap_nested_state(self):
        assert unwrap_state({"state": "S"}) == "S"
        assert unwrap_state("S") == "S"
        assert unwrap_state(None) is None
        assert unwrap_state({"other": "S"}) is None

    def test_verify_state(self):
        assert verify_state("S", "S")
        assert verify_state("S", {"state": "S"})
        assert not verify_state("S", "T")
        assert not verify_state("S", None)
        assert not verify_state("", "")


class TestPopupFeatures:

    def test_centered_on_caller(self):
        features = popup_features(WindowGeometry(screen_x=100, screen_y=50, outer_width=1400, outer_height=900))
        assert (features.width, features.height) == (600, 700)
        assert features.left == 500
        assert features.top == 150
        assert features.to_feature_string() == "width=600,height=700,left=500,top=150"


class TestMessageChannelDelivery:
    """Tests for responses delivered on the message channel."""

    @pytest.mark.asyncio
    async def test_success(self):
        harness = Harness()
        harness.opener.on_open = lambda w: harness.post_soon({"code": "abc", "state": state_of(w.url)})

        session = await harness.coordinator.authenticate()

        assert session.access_token == "hf_token"
        assert session.code_verifier is None
        assert len(harness.token_requests) == 1
        assert harness.opener.windows[0].closed
        assert harness.messages.listener_count == 0

    @pytest.mark.asyncio
    async def test_state_is_fresh_256_bit_hex(self):
        harness = Harness()
        harness.opener.on_open = lambda w: harness.post_soon({"code": "abc", "state": state_of(w.url)})

        session = await harness.coordinator.authenticate()

        assert len(session.state) == 64
        int(session.state, 16)
        assert state_of(harness.opener.windows[0].url) == session.state

    @pytest.mark.asyncio
    async def test_nested_state_accepted(self):
        harness = Harness()
        harness.opener.on_open = lambda w: harness.post_soon(
            {"code": "abc", "state": {"state": state_of(w.url)}}
        )

        session = await harness.coordinator.authenticate()
        assert session.access_token == "hf_token"

    @pytest.mark.asyncio
    async def test_verifier_threaded_into_exchange(self):
        harness = Harness()
        harness.opener.on_open = lambda w: harness.post_soon({"code": "abc", "state": state_of(w.url)})

        await harness.coordinator.authenticate()

        form = parse_qs(harness.token_requests[0].content.decode())
        challenge = parse_qs(urlsplit(harness.opener.windows[0].url).query)["code_challenge"][0]
        assert PkceSecrets(form["code_verifier"][0], "").code_challenge == challenge

    @pytest.mark.asyncio
    async def test_state_mismatch(self):
        harness = Harness()
        harness.opener.on_open = lambda w: harness.post_soon({"code": "abc", "state": "forged"})

        with pytest.raises(AuthStateMismatch):
            await harness.coordinator.authenticate()

        assert harness.token_requests == []
        assert harness.opener.windows[0].closed
        assert harness.messages.listener_count == 0

    @pytest.mark.asyncio
    async def test_provider_error(self):
        harness = Harness()
        harness.opener.on_open = lambda w: harness.post_soon({"error": "access_denied"})

        with pytest.raises(AuthProviderError) as exc_info:
            await harness.coordinator.authenticate()

        assert "access_denied" in exc_info.value.message
        assert harness.opener.windows[0].closed

    @pytest.mark.asyncio
    async def test_exchange_failure_propagates(self):
        harness = Harness(token_status=400)
        harness.opener.on_open = lambda w: harness.post_soon({"code": "abc", "state": state_of(w.url)})

        with pytest.raises(TokenExchangeFailed):
            await harness.coordinator.authenticate()

    @pytest.mark.asyncio
    async def test_message_without_code_or_error_ignored(self):
        harness = Harness()

        def on_open(window):
            harness.post_soon({"type": "ready"})
            harness.post_soon({"code": "abc", "state": state_of(window.url)})

        harness.opener.on_open = on_open
        session = await harness.coordinator.authenticate()
        assert session.access_token == "hf_token"


class TestOriginFiltering:

    @pytest.mark.asyncio
    async def test_foreign_origin_dropped(self, caplog):
        harness = Harness()

        def on_open(window):
            harness.post_soon({"code": "abc", "state": state_of(window.url)}, origin="https://evil.example")
            asyncio.get_running_loop().call_later(0.05, window.close)

        harness.opener.on_open = on_open

        with pytest.raises(AuthCancelled):
            await harness.coordinator.authenticate()

        assert harness.token_requests == []
        assert "unexpected origin" in caplog.text

    @pytest.mark.asyncio
    async def test_dev_origin_accepted(self):
        harness = Harness(redirect_uri="https://app.example.org/oauth/callback")
        harness.opener.on_open = lambda w: harness.post_soon(
            {"code": "abc", "state": state_of(w.url)}, origin="http://127.0.0.1:8000"
        )

        session = await harness.coordinator.authenticate()
        assert session.access_token == "hf_token"


class TestStorageFallback:
    """Tests for the storage fallback channel."""

    @pytest.mark.asyncio
    async def test_fallback_used_once_and_cleared(self):
        harness = Harness()
        harness.opener.on_open = lambda w: harness.store_and_close_soon(
            w, json.dumps({"code": "abc", "state": state_of(w.url)})
        )

        session = await harness.coordinator.authenticate()

        assert session.access_token == "hf_token"
        assert len(harness.token_requests) == 1
        assert await harness.storage.get(CALLBACK_STORAGE_KEY) is None

    @pytest.mark.asyncio
    async def test_both_channels_processed_once(self):
        harness = Harness()

        def on_open(window):
            payload = {"code": "abc", "state": state_of(window.url)}
            harness.post_soon(payload)
            harness.store_and_close_soon(window, json.dumps(payload))

        harness.opener.on_open = on_open
        await harness.coordinator.authenticate()

        assert len(harness.token_requests) == 1
        assert await harness.storage.get(CALLBACK_STORAGE_KEY) is None

    @pytest.mark.asyncio
    async def test_fallback_state_mismatch(self):
        harness = Harness()
        harness.opener.on_open = lambda w: harness.store_and_close_soon(
            w, json.dumps({"code": "abc", "state": "stale"})
        )

        with pytest.raises(AuthStateMismatch):
            await harness.coordinator.authenticate()

    @pytest.mark.asyncio
    async def test_closed_without_payload_is_cancelled(self):
        harness = Harness()
        harness.opener.on_open = lambda w: w.close()

        with pytest.raises(AuthCancelled):
            await harness.coordinator.authenticate()

        assert harness.messages.listener_count == 0

    @pytest.mark.asyncio
    async def test_unreadable_payload_is_cancelled(self):
        harness = Harness()
        harness.opener.on_open = lambda w: harness.store_and_close_soon(w, "not json")

        with pytest.raises(AuthCancelled):
            await harness.coordinator.authenticate()

    @pytest.mark.asyncio
    async def test_storage_read_failure_fails_fast(self):
        class UnreadableStorage(MemoryStorage):
            async def pop(self, key):
                raise OSError("disk unreadable")

        harness = Harness(timeout_seconds=30.0)
        harness.coordinator.storage = UnreadableStorage()
        harness.opener.on_open = lambda w: w.close()

        with pytest.raises(AuthCancelled) as exc_info:
            await asyncio.wait_for(harness.coordinator.authenticate(), timeout=1.0)

        assert "disk unreadable" in exc_info.value.message
        assert isinstance(exc_info.value.__cause__, OSError)
        assert harness.messages.listener_count == 0

    @pytest.mark.asyncio
    async def test_stale_payload_from_earlier_attempt_ignored(self):
        harness = Harness()
        await harness.storage.set(CALLBACK_STORAGE_KEY, json.dumps({"code": "old", "state": "old"}))
        harness.opener.on_open = lambda w: w.close()

        with pytest.raises(AuthCancelled):
            await harness.coordinator.authenticate()


class TestTimeoutAndTeardown:

    @pytest.mark.asyncio
    async def test_timeout(self):
        harness = Harness(timeout_seconds=0.05)

        with pytest.raises(AuthTimeout):
            await harness.coordinator.authenticate()

        assert harness.opener.windows[0].closed
        assert harness.messages.listener_count == 0

    @pytest.mark.asyncio
    async def test_teardown_cancels_pending_handshake(self):
        harness = Harness()
        harness.opener.on_open = lambda w: asyncio.get_running_loop().call_later(
            0.02, harness.coordinator.close
        )

        with pytest.raises(AuthCancelled):
            await harness.coordinator.authenticate()

        assert harness.opener.windows[0].close_calls == 1
        assert harness.messages.listener_count == 0


if __name__ == "__main__":
    pytest.main([__file__, "-v"])
