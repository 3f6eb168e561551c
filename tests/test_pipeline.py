"""Tests for the artifact pipeline."""

import threading

import httpx
import pytest

from campaign_workspace.errors import (
    AlreadyGeneratedError,
    DestinationUnresolvableError,
    InvalidKeyError,
    SourceNotFoundError,
    SourceUnreachableError,
    SourceUnresolvableError,
    StoreUnavailableError,
    UnauthorizedError,
)
from campaign_workspace.pipeline import ArtifactPipeline, derive_destination_key, key_owner
from campaign_workspace.retry import RetryPolicy
from campaign_workspace.storage import Bucket, SupabaseObjectStore

INPUT_KEY = "user-1/1740819600000.pdf"
FLYER = b"%PDF-1.4 spring launch flyer"


@pytest.fixture
def uploaded(store):
    store.put(Bucket.INPUTS, INPUT_KEY, FLYER, content_type="application/pdf")
    return INPUT_KEY


class TestDestinationKey:
    def test_owner_and_basename(self):
        assert derive_destination_key("user-1/1740819600000.pdf", "user-1") == "user-1/1740819600000.pdf"

    def test_intermediate_segments_are_dropped(self):
        assert derive_destination_key("user-1/drafts/v2/flyer.pdf", "user-1") == "user-1/flyer.pdf"

    def test_empty_basename(self):
        with pytest.raises(SourceUnresolvableError):
            derive_destination_key("user-1/", "user-1")

    def test_key_owner(self):
        assert key_owner("user-1/a/b.pdf") == "user-1"


class TestGenerate:
    def test_copies_bytes_into_output_bucket(self, pipeline, store, uploaded):
        result = pipeline.generate(uploaded, "user-1")

        assert result.source_key == INPUT_KEY
        assert result.destination_key == INPUT_KEY
        assert result.size_bytes == len(FLYER)
        assert result.content_type == "application/pdf"
        assert result.already_existed is False
        assert result.public_url == store.resolve_url(Bucket.OUTPUTS, INPUT_KEY)
        assert store.get_bytes(Bucket.OUTPUTS, INPUT_KEY) == FLYER

    def test_output_url_serves_identical_bytes(self, pipeline, http_client, uploaded):
        result = pipeline.generate(uploaded, "user-1")

        response = http_client.get(result.public_url)

        assert response.status_code == 200
        assert response.content == FLYER

    def test_second_generation_fails_loudly(self, pipeline, store, uploaded):
        pipeline.generate(uploaded, "user-1")

        with pytest.raises(AlreadyGeneratedError) as exc_info:
            pipeline.generate(uploaded, "user-1")

        assert exc_info.value.destination_key == INPUT_KEY
        assert exc_info.value.step == "store_output"
        assert store.get_bytes(Bucket.OUTPUTS, INPUT_KEY) == FLYER

    def test_generate_if_absent_returns_existing(self, pipeline, store, uploaded):
        first = pipeline.generate(uploaded, "user-1")
        second = pipeline.generate_if_absent(uploaded, "user-1")

        assert second.already_existed is True
        assert second.public_url == first.public_url
        assert second.destination_key == first.destination_key

    def test_generate_if_absent_generates_when_missing(self, pipeline, uploaded):
        result = pipeline.generate_if_absent(uploaded, "user-1")
        assert result.already_existed is False

    def test_input_outside_owner_prefix_is_rejected(self, pipeline, store, uploaded):
        with pytest.raises(UnauthorizedError):
            pipeline.generate(uploaded, "user-2")
        assert not store.exists(Bucket.OUTPUTS, "user-2/1740819600000.pdf")

    def test_missing_source(self, pipeline):
        with pytest.raises(SourceNotFoundError):
            pipeline.generate("user-1/never-uploaded.pdf", "user-1")

    def test_unresolvable_source(self, pipeline):
        with pytest.raises(SourceUnresolvableError) as exc_info:
            pipeline.generate("user-1/../other/a.pdf", "user-1")
        assert exc_info.value.step == "resolve_source"

    def test_store_failure_on_output_put(self, pipeline, store, uploaded, monkeypatch):
        def failing_put(*args, **kwargs):
            raise StoreUnavailableError("disk full", step="put")

        monkeypatch.setattr(store, "put", failing_put)

        with pytest.raises(StoreUnavailableError) as exc_info:
            pipeline.generate(uploaded, "user-1")
        assert exc_info.value.step == "store_output"

    def test_destination_unresolvable_keeps_stored_bytes(self, pipeline, store, uploaded, monkeypatch):
        original = store.resolve_url

        def resolve_url(bucket, key):
            if bucket == Bucket.OUTPUTS:
                raise InvalidKeyError("no public URL for outputs")
            return original(bucket, key)

        monkeypatch.setattr(store, "resolve_url", resolve_url)

        with pytest.raises(DestinationUnresolvableError) as exc_info:
            pipeline.generate(uploaded, "user-1")

        assert exc_info.value.destination_key == INPUT_KEY
        assert store.get_bytes(Bucket.OUTPUTS, INPUT_KEY) == FLYER

    def test_concurrent_generations_produce_one_output(self, pipeline, store, uploaded):
        barrier = threading.Barrier(2)
        outcomes = []

        def run():
            barrier.wait()
            try:
                pipeline.generate(uploaded, "user-1")
                outcomes.append("generated")
            except AlreadyGeneratedError:
                outcomes.append("already_generated")

        threads = [threading.Thread(target=run) for _ in range(2)]
        for t in threads:
            t.start()
        for t in threads:
            t.join()

        assert sorted(outcomes) == ["already_generated", "generated"]
        assert store.get_bytes(Bucket.OUTPUTS, INPUT_KEY) == FLYER


class TestFetchSource:
    def make_pipeline(self, store, handler, policy=None):
        client = httpx.Client(transport=httpx.MockTransport(handler))
        return ArtifactPipeline(store, client, retry_policy=policy or RetryPolicy(max_attempts=1))

    def test_server_error_is_unreachable(self, store):
        pipeline = self.make_pipeline(store, lambda request: httpx.Response(502))

        with pytest.raises(SourceUnreachableError):
            pipeline.fetch_source("http://testserver/x")

    def test_client_error_is_not_found(self, store):
        pipeline = self.make_pipeline(store, lambda request: httpx.Response(403))

        with pytest.raises(SourceNotFoundError):
            pipeline.fetch_source("http://testserver/x")

    def test_network_error_is_retried(self, store):
        calls = []

        def handler(request):
            calls.append(request)
            raise httpx.ConnectError("connection reset", request=request)

        policy = RetryPolicy(max_attempts=3, backoff_strategy="none")
        pipeline = self.make_pipeline(store, handler, policy)

        with pytest.raises(SourceUnreachableError):
            pipeline.generate(INPUT_KEY, "user-1")

        assert len(calls) == 3

    def test_transient_failure_then_success(self, store):
        calls = []

        def handler(request):
            calls.append(request)
            if len(calls) == 1:
                return httpx.Response(503)
            return httpx.Response(200, content=FLYER, headers={"content-type": "application/pdf"})

        policy = RetryPolicy(max_attempts=2, backoff_strategy="none")
        pipeline = self.make_pipeline(store, handler, policy)

        result = pipeline.generate(INPUT_KEY, "user-1")

        assert len(calls) == 2
        assert store.get_bytes(Bucket.OUTPUTS, result.destination_key) == FLYER


class FakeStorageServer:
    """Minimal in-memory storage REST API."""

    def __init__(self):
        self.objects = {}

    def __call__(self, request: httpx.Request) -> httpx.Response:
        path = request.url.path
        public_prefix = "/storage/v1/object/public/"
        prefix = "/storage/v1/object/"

        if path.startswith(public_prefix):
            obj = self.objects.get(path[len(public_prefix):])
            if request.method != "GET" or obj is None:
                return httpx.Response(400, json={"statusCode": "404", "error": "not_found"})
            return httpx.Response(200, content=obj[0], headers={"content-type": obj[1]})

        name = path[len(prefix):]
        if request.method == "POST":
            if name in self.objects and request.headers.get("x-upsert") != "true":
                return httpx.Response(400, json={"statusCode": "409", "error": "Duplicate"})
            self.objects[name] = (request.content, request.headers["content-type"])
            return httpx.Response(200, json={"Key": name})
        if request.method == "HEAD":
            return httpx.Response(200 if name in self.objects else 404)
        return httpx.Response(405)


class TestAgainstStorageApi:
    def test_generate_over_rest_backend(self):
        server = FakeStorageServer()
        client = httpx.Client(transport=httpx.MockTransport(server))
        store = SupabaseObjectStore(
            "https://project.supabase.co",
            client=client,
            input_bucket="campaign-files",
            output_bucket="campaign-outputs",
        )
        store.put_then_confirm(Bucket.INPUTS, INPUT_KEY, FLYER, content_type="application/pdf")
        pipeline = ArtifactPipeline(store, client)

        result = pipeline.generate(INPUT_KEY, "user-1")

        assert server.objects[f"campaign-outputs/{INPUT_KEY}"] == (FLYER, "application/pdf")
        assert result.public_url == (
            f"https://project.supabase.co/storage/v1/object/public/campaign-outputs/{INPUT_KEY}"
        )
        with pytest.raises(AlreadyGeneratedError):
            pipeline.generate(INPUT_KEY, "user-1")
