"""Tests for settings and the object store factory."""

import pytest

from campaign_workspace.config import Settings
from campaign_workspace.storage import (
    Bucket,
    FileObjectStore,
    SupabaseObjectStore,
    create_http_client,
    create_object_store,
)


class TestSettings:
    def test_defaults(self, monkeypatch):
        for name in ("ENVIRONMENT", "STORAGE_URL", "INPUT_BUCKET", "OUTPUT_BUCKET"):
            monkeypatch.delenv(name, raising=False)

        settings = Settings(_env_file=None)

        assert settings.input_bucket == "campaign-files"
        assert settings.output_bucket == "campaign-outputs"
        assert settings.storage_url.startswith("file://")
        assert settings.is_production is False

    def test_environment_variables(self, monkeypatch):
        monkeypatch.setenv("OUTPUT_BUCKET", "outputs-staging")
        monkeypatch.setenv("ENVIRONMENT", "Production")

        settings = Settings(_env_file=None)

        assert settings.output_bucket == "outputs-staging"
        assert settings.is_production is True

    def test_cors_origin_list(self):
        settings = Settings(_env_file=None, cors_origins="https://app.example.com, http://localhost:3000,")
        assert settings.cors_origin_list == ["https://app.example.com", "http://localhost:3000"]


class TestObjectStoreFactory:
    def test_file_url(self, tmp_path):
        settings = Settings(_env_file=None, storage_url=f"file://{tmp_path}", input_bucket="in")

        store = create_object_store(settings)

        assert isinstance(store, FileObjectStore)
        assert store.root == tmp_path
        assert (tmp_path / "in").is_dir()

    def test_https_url(self):
        settings = Settings(
            _env_file=None,
            storage_url="https://project.supabase.co",
            storage_service_key="service-key",
        )

        store = create_object_store(settings)
        try:
            assert isinstance(store, SupabaseObjectStore)
            assert store.base_url == "https://project.supabase.co"
            assert store.auth_headers["apikey"] == "service-key"
        finally:
            store.close()

    def test_unsupported_scheme(self):
        with pytest.raises(ValueError):
            create_object_store(Settings(_env_file=None, storage_url="ftp://files.example.com"))

    def test_http_client_for_file_store(self, store):
        client = create_http_client(store, timeout=1.0)
        try:
            store.put(Bucket.INPUTS, "user-1/a.txt", b"hello")
            response = client.get(store.resolve_url(Bucket.INPUTS, "user-1/a.txt"))
            assert response.content == b"hello"
        finally:
            client.close()
