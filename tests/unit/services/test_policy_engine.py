"""
Tests for the offline cache policy engine.

Covers the install/activate lifecycle, request interception per
strategy and the card refresh sync signal.
"""

import asyncio

import pytest

from lidkaart.core.exceptions import (
    EngineStateException,
    InstallationError,
    NetworkUnavailableException,
)
from lidkaart.domain.cache.entities import CachedResponse
from lidkaart.domain.cache.value_objects import (
    CacheNamespace,
    CacheStrategy,
    EngineState,
    RequestDestination,
    RequestKey,
)
from tests.fixtures.offline_fakes import (
    FIXED_NOW_ISO,
    ORIGIN,
    STATIC_ASSETS,
    body_json,
    get,
    json_response,
)


VERIFY_PATH = "/api/card/verify/m123"
DYNAMIC = CacheNamespace("lidkaart-v1")
STATIC = CacheNamespace("lidkaart-static-v1")


async def activated(engine):
    await engine.install()
    await engine.activate()
    return engine


class TestInstall:
    """Test install phase."""

    @pytest.mark.asyncio
    async def test_install_caches_every_manifest_entry(self, engine, store):
        count = await engine.install()

        assert count == len(STATIC_ASSETS)
        assert engine.state == EngineState.INSTALLED
        keys = await store.keys(STATIC)
        assert {key.url for key in keys} == {f"{ORIGIN}{asset}" for asset in STATIC_ASSETS}
        cached = await store.get(STATIC, RequestKey("GET", f"{ORIGIN}/icon-192.svg"))
        assert cached.body == b"asset /icon-192.svg"
        assert cached.stored_at is not None

    @pytest.mark.asyncio
    async def test_install_requests_skip_waiting(self, engine):
        assert not engine.skip_waiting_requested
        await engine.install()
        assert engine.skip_waiting_requested

    @pytest.mark.asyncio
    async def test_install_does_not_claim_clients(self, engine):
        await engine.install()
        assert not engine.controlling

    @pytest.mark.asyncio
    async def test_install_is_all_or_nothing_on_network_failure(self, engine, fetcher, store):
        fetcher.fail("/icon-512.svg")

        with pytest.raises(InstallationError) as exc_info:
            await engine.install()

        assert exc_info.value.details["url"] == f"{ORIGIN}/icon-512.svg"
        assert engine.state == EngineState.REDUNDANT
        assert await store.keys(STATIC) == []
        assert not engine.skip_waiting_requested

    @pytest.mark.asyncio
    async def test_install_rejects_non_ok_asset(self, engine, fetcher, store):
        fetcher.respond("/manifest.webmanifest", CachedResponse(404, body=b"gone"))

        with pytest.raises(InstallationError) as exc_info:
            await engine.install()

        assert exc_info.value.details["status_code"] == 404
        assert engine.state == EngineState.REDUNDANT
        assert await store.list_namespaces() == []

    @pytest.mark.asyncio
    async def test_install_fails_when_store_rejects_writes(self, engine, store):
        store.fail_writes = True

        with pytest.raises(InstallationError):
            await engine.install()

        assert engine.state == EngineState.REDUNDANT

    @pytest.mark.asyncio
    async def test_install_twice_is_rejected(self, engine):
        await engine.install()
        with pytest.raises(EngineStateException):
            await engine.install()

    @pytest.mark.asyncio
    async def test_redundant_engine_cannot_activate(self, engine, fetcher):
        fetcher.offline = True
        with pytest.raises(InstallationError):
            await engine.install()

        with pytest.raises(EngineStateException):
            await engine.activate()

    @pytest.mark.asyncio
    async def test_redundant_engine_can_install_again(self, engine, fetcher, store):
        fetcher.offline = True
        with pytest.raises(InstallationError):
            await engine.install()

        fetcher.offline = False
        assert await engine.install() == len(STATIC_ASSETS)
        await engine.activate()

        assert engine.state == EngineState.ACTIVATED
        assert engine.controlling
        assert len(await store.keys(STATIC)) == len(STATIC_ASSETS)

        fetcher.offline = True
        response = await engine.handle(get("/api/card/verify/unknown"))
        assert response.status_code == 503
        assert body_json(response)["status"] == "NIET_ACTUEEL"


class TestActivate:
    """Test activate phase."""

    @pytest.mark.asyncio
    async def test_activate_purges_only_stale_namespaces(self, engine, store):
        key = RequestKey("GET", f"{ORIGIN}/old")
        await store.put(CacheNamespace("lidkaart-v0"), key, CachedResponse(200))
        await store.put(CacheNamespace("lidkaart-static-v0"), key, CachedResponse(200))
        await store.put(DYNAMIC, key, CachedResponse(200))

        await engine.install()
        deleted = await engine.activate()

        assert sorted(deleted) == ["lidkaart-static-v0", "lidkaart-v0"]
        assert sorted(await store.list_namespaces()) == ["lidkaart-static-v1", "lidkaart-v1"]
        assert await store.get(DYNAMIC, key) is not None

    @pytest.mark.asyncio
    async def test_activate_claims_clients(self, engine):
        await activated(engine)
        assert engine.state == EngineState.ACTIVATED
        assert engine.controlling

    @pytest.mark.asyncio
    async def test_activate_records_purged_namespaces(self, engine, store, metrics):
        await store.put(CacheNamespace("lidkaart-v0"), RequestKey("GET", f"{ORIGIN}/x"), CachedResponse(200))
        await activated(engine)
        assert metrics.sample(
            "lidkaart_invalidated_entries_total", {"reason": "namespace_purge"}
        ) == 1.0

    @pytest.mark.asyncio
    async def test_activate_survives_listing_failure(self, engine, store):
        await engine.install()
        store.fail_listing = True

        deleted = await engine.activate()

        assert deleted == []
        assert engine.controlling

    @pytest.mark.asyncio
    async def test_activate_before_install_is_rejected(self, engine):
        with pytest.raises(EngineStateException):
            await engine.activate()


class TestMessages:
    """Test client messages."""

    def test_skip_waiting_message(self, engine):
        assert engine.post_message({"type": "SKIP_WAITING"}) is True
        assert engine.skip_waiting_requested

    def test_unknown_message_is_ignored(self, engine):
        assert engine.post_message({"type": "PING"}) is False
        assert engine.post_message({}) is False
        assert not engine.skip_waiting_requested


class TestPassThroughBeforeActivation:
    """Requests before activation go straight to the network."""

    @pytest.mark.asyncio
    async def test_verification_is_not_cached_before_activation(self, engine, fetcher, store):
        fetcher.respond_json(VERIFY_PATH, {"status": "ACTUEEL"})

        response = await engine.handle(get(VERIFY_PATH))

        assert response.status_code == 200
        assert await store.keys(DYNAMIC) == []

    @pytest.mark.asyncio
    async def test_offline_before_activation_raises(self, engine, fetcher):
        fetcher.offline = True
        with pytest.raises(NetworkUnavailableException):
            await engine.handle(get(VERIFY_PATH))


class TestVerificationNetworkFirst:
    """Network-first handling of card verification."""

    @pytest.mark.asyncio
    async def test_online_response_is_returned_and_stored(self, engine, fetcher, store):
        await activated(engine)
        payload = {
            "status": "ACTUEEL",
            "refreshedAt": "2025-01-01T10:00:00Z",
            "member": {"name": "An Peeters", "memberNumber": "M-0001"},
        }
        fetcher.respond_json(VERIFY_PATH, payload)

        response = await engine.handle(get(VERIFY_PATH))

        assert response.status_code == 200
        assert body_json(response) == payload
        cached = await store.get(DYNAMIC, RequestKey("GET", f"{ORIGIN}{VERIFY_PATH}"))
        assert cached.same_content(response)

    @pytest.mark.asyncio
    async def test_offline_replays_cached_verification_as_not_current(self, engine, fetcher):
        await activated(engine)
        fetcher.respond_json(
            VERIFY_PATH,
            {"status": "ACTUEEL", "refreshedAt": "2025-01-01T10:00:00Z", "validUntil": "31/12/2025"},
        )
        await engine.handle(get(VERIFY_PATH))

        fetcher.offline = True
        response = await engine.handle(get(VERIFY_PATH))

        assert response.status_code == 200
        assert response.content_type == "application/json"
        assert body_json(response) == {
            "status": "NIET_ACTUEEL",
            "refreshedAt": FIXED_NOW_ISO,
            "offline": True,
            "validUntil": "31/12/2025",
        }

    @pytest.mark.asyncio
    async def test_offline_without_cache_returns_503(self, engine, fetcher):
        await activated(engine)
        fetcher.offline = True

        response = await engine.handle(get("/api/card/verify/unknown"))

        assert response.status_code == 503
        assert body_json(response) == {
            "error": "Geen internetverbinding",
            "status": "NIET_ACTUEEL",
            "offline": True,
        }

    @pytest.mark.asyncio
    async def test_error_responses_are_cached_and_returned(self, engine, fetcher, store):
        await activated(engine)
        fetcher.respond_json(VERIFY_PATH, {"error": "Onbekende of ingetrokken code"}, 404)

        response = await engine.handle(get(VERIFY_PATH))

        assert response.status_code == 404
        cached = await store.get(DYNAMIC, RequestKey("GET", f"{ORIGIN}{VERIFY_PATH}"))
        assert cached.status_code == 404

    @pytest.mark.asyncio
    async def test_cached_error_body_is_replayed_as_not_current_offline(self, engine, fetcher):
        await activated(engine)
        fetcher.respond_json(VERIFY_PATH, {"error": "Onbekende of ingetrokken code"}, 404)
        await engine.handle(get(VERIFY_PATH))

        fetcher.offline = True
        response = await engine.handle(get(VERIFY_PATH))

        assert response.status_code == 200
        assert body_json(response) == {
            "status": "NIET_ACTUEEL",
            "refreshedAt": FIXED_NOW_ISO,
            "offline": True,
            "error": "Onbekende of ingetrokken code",
        }

    @pytest.mark.asyncio
    async def test_expired_status_is_replayed_as_not_current_offline(self, engine, fetcher):
        await activated(engine)
        fetcher.respond_json(VERIFY_PATH, {"status": "VERLOPEN", "refreshedAt": "2024-12-31T23:00:00Z"})
        await engine.handle(get(VERIFY_PATH))

        fetcher.offline = True
        payload = body_json(await engine.handle(get(VERIFY_PATH)))

        assert payload["status"] == "NIET_ACTUEEL"
        assert payload["offline"] is True

    @pytest.mark.asyncio
    async def test_cache_write_failure_does_not_fail_request(self, engine, fetcher, store):
        await activated(engine)
        store.fail_writes = True
        fetcher.respond_json(VERIFY_PATH, {"status": "ACTUEEL"})

        response = await engine.handle(get(VERIFY_PATH))

        assert response.status_code == 200

    @pytest.mark.asyncio
    async def test_offline_cache_read_failure_returns_503(self, engine, fetcher, store):
        await activated(engine)
        fetcher.respond_json(VERIFY_PATH, {"status": "ACTUEEL"})
        await engine.handle(get(VERIFY_PATH))

        fetcher.offline = True
        store.fail_reads = True
        response = await engine.handle(get(VERIFY_PATH))

        assert response.status_code == 503

    @pytest.mark.asyncio
    async def test_query_string_is_part_of_the_cache_key(self, engine, fetcher):
        await activated(engine)
        fetcher.respond_json(f"{VERIFY_PATH}?lang=nl", {"status": "ACTUEEL"})
        await engine.handle(get(f"{VERIFY_PATH}?lang=nl"))

        fetcher.offline = True
        response = await engine.handle(get(VERIFY_PATH))

        assert response.status_code == 503

    @pytest.mark.asyncio
    async def test_offline_metrics(self, engine, fetcher, metrics):
        await activated(engine)
        fetcher.offline = True
        await engine.handle(get(VERIFY_PATH))

        assert metrics.sample("lidkaart_offline_fallbacks_total", {"source": "none"}) == 1.0
        assert metrics.sample(
            "lidkaart_cache_requests_total",
            {"strategy": "network_first", "outcome": "offline_unavailable"},
        ) == 1.0


class TestStaticAssetsStaleWhileRevalidate:
    """Stale-while-revalidate handling of static assets."""

    @pytest.mark.asyncio
    async def test_cached_asset_is_served_offline(self, engine, fetcher, metrics):
        await activated(engine)
        fetcher.offline = True

        response = await engine.handle(get("/icon-192.svg", RequestDestination.IMAGE))

        assert response.status_code == 200
        assert response.body == b"asset /icon-192.svg"
        await engine.sink.wait_idle()
        assert engine.sink.failures == 0
        assert metrics.sample(
            "lidkaart_cache_requests_total",
            {"strategy": "stale_while_revalidate", "outcome": "revalidate_network_error"},
        ) == 1.0
        assert metrics.sample(
            "lidkaart_background_task_failures_total", {"task": "revalidate"}
        ) == 0.0

    @pytest.mark.asyncio
    async def test_failed_write_back_counts_as_background_failure(
        self, engine, fetcher, store, metrics
    ):
        await activated(engine)
        store.fail_writes = True

        await engine.handle(get("/icon-192.svg", RequestDestination.IMAGE))
        await engine.sink.wait_idle()

        assert engine.sink.failures == 1
        assert metrics.sample(
            "lidkaart_background_task_failures_total", {"task": "cache_put"}
        ) == 1.0

    @pytest.mark.asyncio
    async def test_stale_entry_is_refreshed_in_background(self, engine, fetcher, store):
        await activated(engine)
        fetcher.respond(
            "/icon-192.svg",
            CachedResponse(200, headers={"content-type": "image/svg+xml"}, body=b"<svg v2/>"),
        )

        first = await engine.handle(get("/icon-192.svg", RequestDestination.IMAGE))
        await engine.sink.wait_idle()
        second = await engine.handle(get("/icon-192.svg", RequestDestination.IMAGE))

        assert first.body == b"asset /icon-192.svg"
        assert second.body == b"<svg v2/>"
        await engine.sink.wait_idle()

    @pytest.mark.asyncio
    async def test_uncached_asset_waits_for_network_and_is_stored(self, engine, fetcher, store):
        await activated(engine)
        fetcher.respond(
            "/assets/index.js",
            CachedResponse(200, headers={"content-type": "text/javascript"}, body=b"x()"),
        )

        response = await engine.handle(get("/assets/index.js", RequestDestination.SCRIPT))
        await engine.sink.wait_idle()

        assert response.body == b"x()"
        assert await store.get(STATIC, RequestKey("GET", f"{ORIGIN}/assets/index.js")) is not None

    @pytest.mark.asyncio
    async def test_uncached_asset_offline_raises(self, engine, fetcher):
        await activated(engine)
        fetcher.offline = True

        with pytest.raises(NetworkUnavailableException):
            await engine.handle(get("/assets/missing.css", RequestDestination.STYLE))

    @pytest.mark.asyncio
    async def test_error_responses_do_not_replace_cached_asset(self, engine, fetcher, store):
        await activated(engine)
        fetcher.respond("/icon-192.svg", CachedResponse(500, body=b"boom"))

        await engine.handle(get("/icon-192.svg", RequestDestination.IMAGE))
        await engine.sink.wait_idle()

        cached = await store.get(STATIC, RequestKey("GET", f"{ORIGIN}/icon-192.svg"))
        assert cached.body == b"asset /icon-192.svg"

    @pytest.mark.asyncio
    async def test_navigation_is_served_from_cache(self, engine, fetcher):
        await activated(engine)
        fetcher.offline = True

        response = await engine.handle(get("/", mode="navigate"))

        assert response.body == b"asset /"
        await engine.sink.wait_idle()


class TestNetworkOnly:
    """Everything else passes through untouched."""

    @pytest.mark.asyncio
    async def test_api_requests_are_not_cached(self, engine, fetcher, store):
        await activated(engine)
        fetcher.respond_json("/api/members/me", {"name": "An"})

        response = await engine.handle(get("/api/members/me"))

        assert body_json(response) == {"name": "An"}
        assert await store.keys(DYNAMIC) == []

    @pytest.mark.asyncio
    async def test_api_requests_offline_raise(self, engine, fetcher):
        await activated(engine)
        fetcher.offline = True
        with pytest.raises(NetworkUnavailableException):
            await engine.handle(get("/api/members/me"))

    @pytest.mark.asyncio
    async def test_post_to_verification_is_never_cached(self, engine, fetcher, store):
        await activated(engine)
        fetcher.respond_json(VERIFY_PATH, {"status": "ACTUEEL"})

        await engine.handle(get(VERIFY_PATH, method="POST", body=b"{}"))

        assert await store.keys(DYNAMIC) == []

    def test_classify(self, engine):
        assert engine.classify(get(VERIFY_PATH)) is CacheStrategy.NETWORK_FIRST
        assert engine.classify(get("/x.css", RequestDestination.STYLE)) is CacheStrategy.STALE_WHILE_REVALIDATE
        assert engine.classify(get("/api/members")) is CacheStrategy.NETWORK_ONLY


class TestCardRefreshSync:
    """Test the card refresh background sync signal."""

    @pytest.mark.asyncio
    async def test_sync_drops_cached_verifications(self, engine, fetcher, store):
        await activated(engine)
        fetcher.respond_json(VERIFY_PATH, {"status": "ACTUEEL"})
        fetcher.respond_json("/api/card/verify/m456", {"status": "ACTUEEL"})
        await engine.handle(get(VERIFY_PATH))
        await engine.handle(get("/api/card/verify/m456"))
        await store.put(DYNAMIC, RequestKey("GET", f"{ORIGIN}/api/other"), CachedResponse(200))

        deleted = await engine.sync("card-refresh")

        assert deleted == 2
        assert await store.keys(DYNAMIC) == [RequestKey("GET", f"{ORIGIN}/api/other")]

    @pytest.mark.asyncio
    async def test_offline_after_sync_returns_503(self, engine, fetcher):
        await activated(engine)
        fetcher.respond_json(VERIFY_PATH, {"status": "ACTUEEL"})
        await engine.handle(get(VERIFY_PATH))
        await engine.sync("card-refresh")

        fetcher.offline = True
        response = await engine.handle(get(VERIFY_PATH))

        assert response.status_code == 503

    @pytest.mark.asyncio
    async def test_sync_leaves_static_assets_alone(self, engine, store):
        await activated(engine)
        await engine.sync("card-refresh")
        assert len(await store.keys(STATIC)) == len(STATIC_ASSETS)

    @pytest.mark.asyncio
    async def test_unknown_tag_is_ignored(self, engine, fetcher, store):
        await activated(engine)
        fetcher.respond_json(VERIFY_PATH, {"status": "ACTUEEL"})
        await engine.handle(get(VERIFY_PATH))

        assert await engine.sync("something-else") == 0
        assert len(await store.keys(DYNAMIC)) == 1


class TestConcurrency:
    """Concurrent requests against one engine."""

    @pytest.mark.asyncio
    async def test_concurrent_verifications_all_succeed(self, engine, fetcher, store):
        await activated(engine)
        for i in range(10):
            fetcher.respond_json(f"/api/card/verify/m{i}", {"status": "ACTUEEL", "n": i})

        responses = await asyncio.gather(
            *(engine.handle(get(f"/api/card/verify/m{i}")) for i in range(10))
        )

        assert [body_json(r)["n"] for r in responses] == list(range(10))
        assert len(await store.keys(DYNAMIC)) == 10

    @pytest.mark.asyncio
    async def test_close_waits_for_background_writes(self, engine, fetcher, store):
        await activated(engine)
        fetcher.respond("/assets/a.js", CachedResponse(200, body=b"a"))
        await engine.handle(get("/assets/a.js", RequestDestination.SCRIPT))

        await engine.close()

        assert engine.sink.pending == 0
        assert fetcher.closed
        assert await store.get(STATIC, RequestKey("GET", f"{ORIGIN}/assets/a.js")) is not None


class TestStatus:
    @pytest.mark.asyncio
    async def test_status_snapshot(self, engine):
        await activated(engine)
        status = engine.status()
        assert status["state"] == "activated"
        assert status["controlling"] is True
        assert status["namespaces"] == {"dynamic": "lidkaart-v1", "static": "lidkaart-static-v1"}


class TestMembershipCardScenarios:
    """End-to-end scenarios for the digital membership card."""

    @pytest.mark.asyncio
    async def test_current_card_then_offline(self, engine, fetcher, store):
        await activated(engine)
        fetcher.respond_json(
            "/api/card/verify/m123",
            {"status": "CURRENT", "refreshedAt": "2025-01-01T10:00:00Z"},
        )

        await engine.handle(get("/api/card/verify/m123"))
        assert len(await store.keys(DYNAMIC)) == 1

        fetcher.offline = True
        response = await engine.handle(get("/api/card/verify/m123"))

        assert body_json(response) == {
            "status": "NIET_ACTUEEL",
            "offline": True,
            "refreshedAt": FIXED_NOW_ISO,
        }

    @pytest.mark.asyncio
    async def test_unknown_card_offline(self, engine, fetcher):
        await activated(engine)
        fetcher.offline = True

        response = await engine.handle(get("/api/card/verify/m999"))

        assert response.status_code == 503
        assert body_json(response) == {
            "error": "Geen internetverbinding",
            "status": "NIET_ACTUEEL",
            "offline": True,
        }

    @pytest.mark.asyncio
    async def test_version_bump_purges_previous_namespaces(self, engine, store):
        for name in ("lidkaart-v0", "lidkaart-static-v0"):
            await store.put(CacheNamespace(name), RequestKey("GET", f"{ORIGIN}/"), CachedResponse(200))

        await engine.install()
        deleted = await engine.activate()

        assert sorted(deleted) == ["lidkaart-static-v0", "lidkaart-v0"]
        assert "lidkaart-v0" not in await store.list_namespaces()
        assert "lidkaart-static-v0" not in await store.list_namespaces()

    @pytest.mark.asyncio
    async def test_card_refresh_keeps_unrelated_entries(self, engine, store):
        await activated(engine)
        verify = RequestKey("GET", f"{ORIGIN}/api/card/verify/m123")
        other = RequestKey("GET", f"{ORIGIN}/api/settings")
        await store.put(DYNAMIC, verify, json_response({"status": "ACTUEEL"}))
        await store.put(DYNAMIC, other, json_response({"theme": "dark"}))

        assert await engine.sync("card-refresh") == 1

        assert await store.get(DYNAMIC, verify) is None
        assert await store.get(DYNAMIC, other) is not None
