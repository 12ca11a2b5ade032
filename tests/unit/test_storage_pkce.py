"""
Tests for local storage backends and PKCE secrets.
"""

import base64
import hashlib
import pytest
import tempfile
from pathlib import Path
from urllib.parse import parse_qs, urlsplit

from cryptography.fernet import Fernet

from dataset_exporter.auth import (
    EncryptedFileStorage,
    MemoryStorage,
    PkceSecrets,
    PkceStore,
    build_authorization_url,
)
from dataset_exporter.auth.pkce import CODE_VERIFIER_KEY, NONCE_KEY


class TestMemoryStorage:

    @pytest.mark.asyncio
    async def test_set_get_delete(self):
        storage = MemoryStorage()
        await storage.set("k", "v")
        assert await storage.get("k") == "v"
        assert await storage.delete("k") is True
        assert await storage.get("k") is None
        assert await storage.delete("k") is False

    @pytest.mark.asyncio
    async def test_pop_reads_once(self):
        storage = MemoryStorage()
        await storage.set("oauth:callback", "{}")
        assert await storage.pop("oauth:callback") == "{}"
        assert await storage.pop("oauth:callback") is None


class TestEncryptedFileStorage:
    """Tests for Fernet-encrypted file storage."""

    @pytest.mark.asyncio
    async def test_values_encrypted_at_rest(self):
        with tempfile.TemporaryDirectory() as tmpdir:
            storage = EncryptedFileStorage(Path(tmpdir), Fernet.generate_key().decode())
            await storage.set("oauth:code_verifier", "super-secret-verifier")

            files = list(Path(tmpdir).glob("*.enc"))
            assert len(files) == 1
            assert files[0].name == "oauth__code_verifier.enc"
            assert b"super-secret-verifier" not in files[0].read_bytes()

            assert await storage.get("oauth:code_verifier") == "super-secret-verifier"

    @pytest.mark.asyncio
    async def test_passphrase_key_is_stable(self):
        with tempfile.TemporaryDirectory() as tmpdir:
            first = EncryptedFileStorage(Path(tmpdir), "correct horse battery staple")
            await first.set("k", "value")

            second = EncryptedFileStorage(Path(tmpdir), "correct horse battery staple")
            assert await second.get("k") == "value"

    @pytest.mark.asyncio
    async def test_wrong_key_reads_nothing(self):
        with tempfile.TemporaryDirectory() as tmpdir:
            writer = EncryptedFileStorage(Path(tmpdir), "key-one")
            await writer.set("k", "value")

            reader = EncryptedFileStorage(Path(tmpdir), "key-two")
            assert await reader.get("k") is None

    @pytest.mark.asyncio
    async def test_pop_removes_file(self):
        with tempfile.TemporaryDirectory() as tmpdir:
            storage = EncryptedFileStorage(Path(tmpdir), "key")
            await storage.set("oauth:callback", '{"code": "abc"}')
            assert await storage.pop("oauth:callback") == '{"code": "abc"}'
            assert list(Path(tmpdir).glob("*.enc")) == []


class TestPkceSecrets:

    def test_verifier_length(self):
        pkce = PkceSecrets.generate()
        assert len(pkce.code_verifier) >= 43

    def test_challenge_is_s256(self):
        pkce = PkceSecrets(code_verifier="dBjftJeZ4CVP-mB92K27uhbUJU1p1r_wW1gFWFOEjXk", nonce="n")
        # Example from RFC 7636, appendix B
        assert pkce.code_challenge == "E9Melhoa2OwvFrEMTJguCHaoeK1t8URWbuGJSstw-cM"

    def test_challenge_has_no_padding(self):
        pkce = PkceSecrets.generate()
        expected = base64.urlsafe_b64encode(
            hashlib.sha256(pkce.code_verifier.encode()).digest()
        ).rstrip(b"=").decode()
        assert pkce.code_challenge == expected
        assert "=" not in pkce.code_challenge


class TestBuildAuthorizationUrl:
    """Tests for the PKCE authorization URL builder."""

    @pytest.mark.asyncio
    async def test_url_parameters(self):
        storage = MemoryStorage()
        request = await build_authorization_url(
            authorize_url="https://huggingface.co/oauth/authorize",
            client_id="client-123",
            redirect_uri="http://localhost:8000/oauth/callback",
            scopes="openid write-repos",
            state="S",
            store=PkceStore(storage),
        )

        parts = urlsplit(request.url)
        params = {k: v[0] for k, v in parse_qs(parts.query).items()}

        assert f"{parts.scheme}://{parts.netloc}{parts.path}" == "https://huggingface.co/oauth/authorize"
        assert params["client_id"] == "client-123"
        assert params["redirect_uri"] == "http://localhost:8000/oauth/callback"
        assert params["response_type"] == "code"
        assert params["scope"] == "openid write-repos"
        assert params["state"] == "S"
        assert params["nonce"] == request.nonce
        assert params["code_challenge_method"] == "S256"
        assert params["code_challenge"] == PkceSecrets(request.code_verifier, request.nonce).code_challenge

    @pytest.mark.asyncio
    async def test_verifier_persisted_and_returned(self):
        storage = MemoryStorage()
        store = PkceStore(storage)
        request = await build_authorization_url(
            authorize_url="https://huggingface.co/oauth/authorize",
            client_id="c",
            redirect_uri="http://localhost:8000/oauth/callback",
            scopes="openid",
            state="S",
            store=store,
        )

        assert await storage.get(CODE_VERIFIER_KEY) == request.code_verifier
        assert await storage.get(NONCE_KEY) == request.nonce

        await store.clear()
        assert await storage.get(CODE_VERIFIER_KEY) is None
        assert await storage.get(NONCE_KEY) is None


if __name__ == "__main__":
    pytest.main([__file__, "-v"])
