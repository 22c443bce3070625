"""
API endpoint tests
"""
import pytest
from httpx import AsyncClient

from airouter.core.exceptions import AuthenticationError, RetryableProviderError
from airouter.models.records import ProviderType, RoutingStrategy
from airouter.services.weights import weight
from tests.conftest import build_provider

PROVIDER_PAYLOAD = {
    "id": "openai-main",
    "organization_id": "org-1",
    "name": "OpenAI main",
    "type": "openai",
    "base_url": "https://api.openai.com/v1",
    "api_key": "sk-very-secret",
    "models": ["gpt-4o-mini"],
    "supported_features": ["chat", "embeddings"],
    "cost_per_token": 0.001,
    "load_balancing": {"strategy": "round-robin", "max_retries": 2},
}

CHAT_PAYLOAD = {
    "model": "gpt-4o-mini",
    "messages": [{"role": "user", "content": "Hello"}],
}


@pytest.mark.asyncio
class TestRootEndpoints:
    """Liveness endpoints"""

    async def test_health_check(self, test_client: AsyncClient):
        response = await test_client.get("/health")

        assert response.status_code == 200
        assert response.json()["status"] == "healthy"

    async def test_version(self, test_client: AsyncClient):
        response = await test_client.get("/version")

        assert response.status_code == 200
        assert "version" in response.json()


@pytest.mark.asyncio
class TestAdminAuth:
    """Admin key enforcement"""

    async def test_missing_key(self, test_client: AsyncClient):
        response = await test_client.get("/api/admin/providers", params={"organization_id": "org-1"})
        assert response.status_code == 401

    async def test_invalid_key(self, test_client: AsyncClient):
        response = await test_client.get(
            "/api/admin/providers",
            params={"organization_id": "org-1"},
            headers={"Authorization": "Bearer wrong-key"}
        )
        assert response.status_code == 403

    async def test_x_admin_key_header(self, test_client: AsyncClient, admin_headers):
        key = admin_headers["Authorization"].split()[1]
        response = await test_client.get(
            "/api/admin/providers",
            params={"organization_id": "org-1"},
            headers={"X-Admin-Key": key}
        )
        assert response.status_code == 200

    async def test_chat_requires_key(self, test_client: AsyncClient):
        response = await test_client.post(
            "/api/organizations/org-1/chat/completions", json=CHAT_PAYLOAD
        )
        assert response.status_code == 401


@pytest.mark.asyncio
class TestProviderAdmin:
    """Provider registration and lifecycle"""

    async def test_create_and_list(self, test_client: AsyncClient, admin_headers):
        response = await test_client.post(
            "/api/admin/providers", json=PROVIDER_PAYLOAD, headers=admin_headers
        )

        assert response.status_code == 201
        data = response.json()
        assert data["id"] == "openai-main"
        assert data["supported_features"] == ["chat", "embeddings"]
        assert data["load_balancing"]["max_retries"] == 2
        assert "api_key" not in data
        assert "credential" not in data
        assert "sk-very-secret" not in response.text

        listed = await test_client.get(
            "/api/admin/providers",
            params={"organization_id": "org-1"},
            headers=admin_headers
        )
        assert [p["id"] for p in listed.json()] == ["openai-main"]

    async def test_duplicate_id_conflicts(self, test_client: AsyncClient, admin_headers):
        await test_client.post("/api/admin/providers", json=PROVIDER_PAYLOAD, headers=admin_headers)

        response = await test_client.post(
            "/api/admin/providers", json=PROVIDER_PAYLOAD, headers=admin_headers
        )

        assert response.status_code == 409

    async def test_invalid_payload(self, test_client: AsyncClient, admin_headers):
        payload = {**PROVIDER_PAYLOAD, "supported_features": ["telepathy"]}

        response = await test_client.post(
            "/api/admin/providers", json=payload, headers=admin_headers
        )

        assert response.status_code == 422

    async def test_get_unknown_provider(self, test_client: AsyncClient, admin_headers):
        response = await test_client.get("/api/admin/providers/missing", headers=admin_headers)
        assert response.status_code == 404

    async def test_retire_provider(self, test_client: AsyncClient, admin_headers, store):
        await store.save_provider(build_provider("a"))

        response = await test_client.delete("/api/admin/providers/a", headers=admin_headers)

        assert response.status_code == 200
        assert response.json()["is_active"] is False
        route = await test_client.get(
            "/api/admin/route",
            params={"organization_id": "org-1", "capability": "chat"},
            headers=admin_headers
        )
        assert route.status_code == 404


@pytest.mark.asyncio
class TestHealthEndpoints:
    """Health reporting and inspection"""

    async def test_report_health(self, test_client: AsyncClient, admin_headers, store):
        await store.save_provider(build_provider("a"))

        response = await test_client.post(
            "/api/admin/providers/a/health",
            json={"success": False, "latency_ms": 1200, "error": "HTTP 502"},
            headers=admin_headers
        )

        assert response.status_code == 200
        assert response.json()["consecutive_failures"] == 1
        assert response.json()["last_error"] == "HTTP 502"

        health = await test_client.get("/api/admin/providers/a/health", headers=admin_headers)
        assert health.json()["consecutive_failures"] == 1

    async def test_report_health_unknown_provider(self, test_client: AsyncClient, admin_headers):
        response = await test_client.post(
            "/api/admin/providers/missing/health",
            json={"success": True, "latency_ms": 10},
            headers=admin_headers
        )
        assert response.status_code == 404

    async def test_report_rejects_negative_latency(self, test_client: AsyncClient, admin_headers, store):
        await store.save_provider(build_provider("a"))

        response = await test_client.post(
            "/api/admin/providers/a/health",
            json={"success": True, "latency_ms": -1},
            headers=admin_headers
        )

        assert response.status_code == 422

    async def test_reset_health(self, test_client: AsyncClient, admin_headers, store):
        await store.save_provider(build_provider("a", circuit_breaker_threshold=2))
        for _ in range(2):
            await test_client.post(
                "/api/admin/providers/a/health",
                json={"success": False, "latency_ms": 100, "error": "HTTP 502"},
                headers=admin_headers
            )

        response = await test_client.post(
            "/api/admin/providers/a/health/reset", headers=admin_headers
        )

        assert response.status_code == 200
        assert response.json()["consecutive_failures"] == 0
        assert response.json()["last_error"] is None
        assert (await store.get_provider("a")).health.consecutive_failures == 0
        route = await test_client.get(
            "/api/admin/route",
            params={"organization_id": "org-1", "capability": "chat"},
            headers=admin_headers
        )
        assert route.json()["weight"] == 1.0

    async def test_reset_unknown_provider(self, test_client: AsyncClient, admin_headers):
        response = await test_client.post(
            "/api/admin/providers/missing/health/reset", headers=admin_headers
        )
        assert response.status_code == 404

    async def test_manual_health_check(self, test_client: AsyncClient, admin_headers, store):
        await store.save_provider(build_provider("a"))

        response = await test_client.post(
            "/api/admin/providers/a/health-check", headers=admin_headers
        )

        assert response.status_code == 200
        assert response.json()["is_healthy"] is True


@pytest.mark.asyncio
class TestRoutePreview:
    """Selection preview"""

    async def test_route_preview(self, test_client: AsyncClient, admin_headers, store):
        await store.save_provider(build_provider("a"))

        response = await test_client.get(
            "/api/admin/route",
            params={"organization_id": "org-1", "capability": "chat"},
            headers=admin_headers
        )

        assert response.status_code == 200
        assert response.json()["provider"]["id"] == "a"
        assert response.json()["weight"] == 1.0

    async def test_preview_leaves_rotation_untouched(
        self, test_client: AsyncClient, admin_headers, store, routing
    ):
        await store.save_provider(build_provider("a"))
        await store.save_provider(build_provider("b"))

        previews = []
        for _ in range(3):
            response = await test_client.get(
                "/api/admin/route",
                params={"organization_id": "org-1", "capability": "chat"},
                headers=admin_headers
            )
            previews.append(response.json()["provider"]["id"])

        assert previews == ["a", "a", "a"]
        assert (await routing.select_provider("org-1", "chat")).id == "a"

        response = await test_client.get(
            "/api/admin/route",
            params={"organization_id": "org-1", "capability": "chat"},
            headers=admin_headers
        )
        assert response.json()["provider"]["id"] == "b"

    async def test_preview_weighs_by_pool_strategy(
        self, test_client: AsyncClient, admin_headers, store, routing
    ):
        await store.save_provider(build_provider("a", strategy=RoutingStrategy.LEAST_LATENCY))
        await store.save_provider(build_provider("b", strategy=RoutingStrategy.COST_OPTIMIZED))

        response = await test_client.get(
            "/api/admin/route",
            params={"organization_id": "org-1", "capability": "chat"},
            headers=admin_headers
        )

        pool_strategy = routing.selector.default_strategy
        data = response.json()
        assert data["strategy"] == pool_strategy.value
        record = routing.tracker.overlay(await store.get_provider(data["provider"]["id"]))
        assert data["weight"] == weight(record, pool_strategy)

    async def test_unknown_capability(self, test_client: AsyncClient, admin_headers):
        response = await test_client.get(
            "/api/admin/route",
            params={"organization_id": "org-1", "capability": "telepathy"},
            headers=admin_headers
        )
        assert response.status_code == 422


@pytest.mark.asyncio
class TestRoutedChat:
    """Chat completions through the routing layer"""

    async def test_chat_completion(self, test_client: AsyncClient, admin_headers, store):
        await store.save_provider(build_provider("a"))

        response = await test_client.post(
            "/api/organizations/org-1/chat/completions",
            json=CHAT_PAYLOAD,
            headers=admin_headers
        )

        assert response.status_code == 200
        data = response.json()
        assert data["provider"] == "a"
        assert data["choices"][0]["message"]["content"] == "Hello!"

    async def test_chat_fails_over(self, test_client: AsyncClient, admin_headers, store, adapter_factory):
        await store.save_provider(build_provider("a"))
        await store.save_provider(build_provider("b"))
        adapter_factory.behaviour["a"] = RetryableProviderError("a is down")

        response = await test_client.post(
            "/api/organizations/org-1/chat/completions",
            json=CHAT_PAYLOAD,
            headers=admin_headers
        )

        assert response.status_code == 200
        assert response.json()["provider"] == "b"

    async def test_no_provider_configured(self, test_client: AsyncClient, admin_headers):
        response = await test_client.post(
            "/api/organizations/org-empty/chat/completions",
            json=CHAT_PAYLOAD,
            headers=admin_headers
        )

        assert response.status_code == 404
        assert response.json()["error"]["code"] == "no_provider_configured"

    async def test_all_providers_failed(self, test_client: AsyncClient, admin_headers, store, adapter_factory):
        await store.save_provider(build_provider("a"))
        adapter_factory.behaviour["a"] = RetryableProviderError("a is down")

        response = await test_client.post(
            "/api/organizations/org-1/chat/completions",
            json=CHAT_PAYLOAD,
            headers=admin_headers
        )

        assert response.status_code == 502
        error = response.json()["error"]
        assert error["code"] == "all_providers_failed"
        assert error["details"]["attempts"] == [{"provider_id": "a", "error": "a is down"}]

    async def test_terminal_provider_error(self, test_client: AsyncClient, admin_headers, store, adapter_factory):
        await store.save_provider(build_provider("a"))
        await store.save_provider(build_provider("b"))
        adapter_factory.behaviour["a"] = AuthenticationError("openai")

        response = await test_client.post(
            "/api/organizations/org-1/chat/completions",
            json=CHAT_PAYLOAD,
            headers=admin_headers
        )

        assert response.status_code == 502
        assert response.json()["error"]["code"] == "provider_error"
        assert response.json()["error"]["details"]["retryable"] is False

    async def test_adapterless_provider_is_skipped(
        self, test_client: AsyncClient, admin_headers, store, adapter_factory
    ):
        # "g" sorts first, so round-robin would pick it without the filter
        await store.save_provider(build_provider("g", provider_type=ProviderType.GOOGLE))
        await store.save_provider(build_provider("z"))

        for _ in range(2):
            response = await test_client.post(
                "/api/organizations/org-1/chat/completions",
                json=CHAT_PAYLOAD,
                headers=admin_headers
            )
            assert response.status_code == 200
            assert response.json()["provider"] == "z"

        assert adapter_factory.created == ["z", "z"]
        google = await store.get_provider("g")
        assert google.health.consecutive_failures == 0
        assert google.is_circuit_open is False

    async def test_only_adapterless_providers(self, test_client: AsyncClient, admin_headers, store):
        await store.save_provider(build_provider("g", provider_type=ProviderType.GOOGLE))

        response = await test_client.post(
            "/api/organizations/org-1/chat/completions",
            json=CHAT_PAYLOAD,
            headers=admin_headers
        )

        assert response.status_code == 404
        assert response.json()["error"]["code"] == "no_provider_configured"

    async def test_empty_messages_rejected(self, test_client: AsyncClient, admin_headers):
        response = await test_client.post(
            "/api/organizations/org-1/chat/completions",
            json={"model": "gpt-4o-mini", "messages": []},
            headers=admin_headers
        )
        assert response.status_code == 422
