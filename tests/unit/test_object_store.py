"""Unit tests for object store backends."""

import json
from pathlib import Path

import httpx
import pytest

from policyrag.config import Settings
from policyrag.errors import BadRequest, NotFound, UpstreamUnavailable
from policyrag.storage.objects import (
    LocalObjectStore,
    SupabaseObjectStore,
    create_object_store,
)


@pytest.mark.asyncio
async def test_local_store_download_and_remove(tmp_path: Path) -> None:
    """Test reading and deleting a file under the storage root."""
    (tmp_path / "user").mkdir()
    (tmp_path / "user" / "policy.txt").write_bytes(b"Section 1. Cover.")
    store = LocalObjectStore(tmp_path)

    assert await store.download("user/policy.txt") == b"Section 1. Cover."

    await store.remove("user/policy.txt")
    assert not (tmp_path / "user" / "policy.txt").exists()
    # Removing again is not an error
    await store.remove("user/policy.txt")


@pytest.mark.asyncio
async def test_local_store_missing_file_is_not_found(tmp_path: Path) -> None:
    """Test that a missing file raises NotFound."""
    store = LocalObjectStore(tmp_path)

    with pytest.raises(NotFound):
        await store.download("nope.txt")


@pytest.mark.asyncio
async def test_local_store_rejects_path_traversal(tmp_path: Path) -> None:
    """Test that paths escaping the root are rejected."""
    store = LocalObjectStore(tmp_path / "root")

    with pytest.raises(BadRequest):
        await store.download("../secrets.txt")


@pytest.mark.asyncio
async def test_supabase_download_uses_bucket_and_service_key() -> None:
    """Test the Supabase download request shape."""
    seen: list[httpx.Request] = []

    def handler(request: httpx.Request) -> httpx.Response:
        seen.append(request)
        return httpx.Response(200, content=b"file bytes")

    client = httpx.AsyncClient(transport=httpx.MockTransport(handler))
    store = SupabaseObjectStore("https://proj.supabase.test", "service-key", client=client)

    data = await store.download("user-1/policy.txt")

    assert data == b"file bytes"
    assert seen[0].url.path == "/storage/v1/object/fd-docs/user-1/policy.txt"
    assert seen[0].headers["Authorization"] == "Bearer service-key"


@pytest.mark.asyncio
@pytest.mark.parametrize("status_code", [400, 404])
async def test_supabase_missing_object_is_not_found(status_code: int) -> None:
    """Test that Supabase's missing-object responses map to NotFound."""
    client = httpx.AsyncClient(
        transport=httpx.MockTransport(lambda r: httpx.Response(status_code, json={}))
    )
    store = SupabaseObjectStore("https://proj.supabase.test", "k", client=client)

    with pytest.raises(NotFound):
        await store.download("missing.txt")


@pytest.mark.asyncio
async def test_supabase_server_error_is_upstream_unavailable() -> None:
    """Test that 5xx responses map to UpstreamUnavailable."""
    client = httpx.AsyncClient(transport=httpx.MockTransport(lambda r: httpx.Response(502)))
    store = SupabaseObjectStore("https://proj.supabase.test", "k", client=client)

    with pytest.raises(UpstreamUnavailable):
        await store.download("policy.txt")


@pytest.mark.asyncio
async def test_supabase_remove_sends_prefixes() -> None:
    """Test the Supabase remove request shape."""
    bodies: list[dict] = []

    def handler(request: httpx.Request) -> httpx.Response:
        assert request.method == "DELETE"
        bodies.append(json.loads(request.content))
        return httpx.Response(200, json=[])

    client = httpx.AsyncClient(transport=httpx.MockTransport(handler))
    store = SupabaseObjectStore("https://proj.supabase.test", "k", client=client)

    await store.remove("user-1/policy.txt")

    assert bodies == [{"prefixes": ["user-1/policy.txt"]}]


def test_create_object_store_selects_backend(tmp_path: Path) -> None:
    """Test that settings choose the backend."""
    local = create_object_store(Settings(storage_backend="local", storage_root=str(tmp_path)))
    assert isinstance(local, LocalObjectStore)

    with pytest.raises(ValueError):
        create_object_store(Settings(storage_backend="supabase", supabase_url=""))
