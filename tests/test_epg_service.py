"""Tests for the EPG service (acquisition, caching, channel resolution)."""

import asyncio
from datetime import datetime, timedelta, timezone

import httpx

from tvfetch.models.config import ProviderConfig
from tvfetch.services.cache_service import CacheService
from tvfetch.services.catalog_service import CatalogService
from tvfetch.services.epg_service import EpgService
from tvfetch.services.store import MemoryStore, SqliteStore

NOW = datetime.now(timezone.utc).replace(microsecond=0)


def _t(dt):
    return dt.strftime("%Y%m%d%H%M%S +0000")


GUIDE = f"""<?xml version="1.0" encoding="UTF-8"?>
<tv>
  <channel id="espn.br"><display-name>ESPN</display-name></channel>
  <channel id="AE.br"><display-name>A&amp;E</display-name></channel>
  <channel id="empty"><display-name>Nothing On</display-name></channel>
  <programme channel="espn.br" start="{_t(NOW - timedelta(minutes=30))}" stop="{_t(NOW + timedelta(minutes=30))}">
    <title>SportsCenter</title><desc>Daily highlights</desc>
  </programme>
  <programme channel="espn.br" start="{_t(NOW + timedelta(minutes=30))}" stop="{_t(NOW + timedelta(minutes=90))}">
    <title>Futebol</title>
  </programme>
  <programme channel="AE.br" start="{_t(NOW + timedelta(hours=1))}" stop="{_t(NOW + timedelta(hours=2))}">
    <title>Storage Wars</title>
  </programme>
</tv>
""".encode("utf-8")

LIVE_STREAMS = [
    {"stream_id": 11, "name": "ESPN FHD", "epg_channel_id": "", "category_id": "1"},
    {"stream_id": 12, "name": "Canal A&E", "epg_channel_id": "AE.br", "category_id": "1"},
]


def handler(request: httpx.Request) -> httpx.Response:
    if request.url.path == "/xmltv.php":
        return httpx.Response(200, content=GUIDE, headers={"content-type": "application/xml"})
    if request.url.params.get("action") == "get_live_streams":
        return httpx.Response(200, json=LIVE_STREAMS)
    return httpx.Response(404)


def _services(make_fetcher, handler=handler, with_catalog=True, cache=None):
    fetcher, recorder = make_fetcher(handler)
    provider = ProviderConfig(base_url="http://panel.test", username="u", password="p")
    cache = cache if cache is not None else CacheService()
    catalog = CatalogService(provider, fetcher, cache) if with_catalog else None
    return EpgService(provider, fetcher, cache, catalog), recorder


def _guide_requests(recorder):
    return [r for r in recorder.requests if r.url.path == "/xmltv.php"]


class FakeClock:
    def __init__(self, now=1_000.0):
        self.now = now

    def __call__(self):
        return self.now


class CountingStore(MemoryStore):
    """Memory store that counts reads of the stored guide."""

    def __init__(self):
        super().__init__()
        self.guide_reads = 0

    def get(self, key):
        if key.startswith("cache:epg:"):
            self.guide_reads += 1
        return super().get(key)


class TestAcquisition:

    def test_guide_url(self, make_fetcher):
        epg, _ = _services(make_fetcher)
        assert epg.epg_url == "http://panel.test/xmltv.php?username=u&password=p"

    def test_full_guide_sorted_by_name(self, make_fetcher):
        epg, _ = _services(make_fetcher)
        channels = asyncio.run(epg.get_epg())
        assert channels.ok
        assert [c.id for c in channels] == ["AE.br", "br#a-e-hd", "a-e-hd", "espn.br"]

    def test_channels_without_programmes_hidden(self, make_fetcher):
        epg, _ = _services(make_fetcher)
        assert "empty" not in {c.id for c in asyncio.run(epg.get_epg())}
        result = asyncio.run(epg.get_epg("empty"))
        assert list(result) == []
        assert result.ok

    def test_guide_cached(self, make_fetcher):
        epg, recorder = _services(make_fetcher)

        async def main():
            await epg.get_epg()
            await epg.get_epg("espn.br")

        asyncio.run(main())
        assert len(_guide_requests(recorder)) == 1

    def test_force_refresh_downloads_again(self, make_fetcher):
        epg, recorder = _services(make_fetcher)

        async def main():
            await epg.get_epg()
            return await epg.force_refresh()

        assert asyncio.run(main()) is True
        assert len(_guide_requests(recorder)) == 2

    def test_force_refresh_reports_failure(self, make_fetcher):
        epg, _ = _services(make_fetcher, handler=lambda request: httpx.Response(500))
        assert asyncio.run(epg.force_refresh()) is False

    def test_unparseable_guide_gives_error_listing(self, make_fetcher):
        epg, _ = _services(
            make_fetcher, handler=lambda request: httpx.Response(200, text="<html>blocked</html>"),
        )
        result = asyncio.run(epg.get_epg())
        assert list(result) == []
        assert result.error

    def test_no_guide_without_server(self, make_fetcher):
        fetcher, _ = make_fetcher(handler)
        provider = ProviderConfig(provider_type="m3u_url", playlist_url="http://lists.test/a.m3u")
        epg = EpgService(provider, fetcher, CacheService())
        result = asyncio.run(epg.get_epg())
        assert list(result) == [] and "No guide URL" in result.error


class TestChannelResolution:

    def test_guide_id(self, make_fetcher):
        epg, _ = _services(make_fetcher)
        assert [c.name for c in asyncio.run(epg.get_epg("espn.br"))] == ["ESPN"]

    def test_alias_id(self, make_fetcher):
        epg, _ = _services(make_fetcher)
        found = asyncio.run(epg.get_epg("br#a-e-hd"))
        assert found[0].alias_of == "AE.br"
        assert [p.title for p in found[0].programs] == ["Storage Wars"]

    def test_catalog_stream_epg_id(self, make_fetcher):
        epg, _ = _services(make_fetcher)
        assert asyncio.run(epg.get_epg("12"))[0].id == "AE.br"

    def test_catalog_stream_name(self, make_fetcher):
        epg, _ = _services(make_fetcher)
        assert asyncio.run(epg.get_epg("11"))[0].id == "espn.br"

    def test_channel_name_without_catalog(self, make_fetcher):
        epg, _ = _services(make_fetcher, with_catalog=False)
        assert asyncio.run(epg.get_epg("ESPN HD"))[0].id == "espn.br"

    def test_unknown_channel_is_empty_not_error(self, make_fetcher):
        epg, _ = _services(make_fetcher)
        result = asyncio.run(epg.get_epg("999"))
        assert list(result) == []
        assert result.ok


class TestQueries:

    def test_now_next(self, make_fetcher):
        epg, _ = _services(make_fetcher)
        result = asyncio.run(epg.get_now_next("11", now=NOW))
        assert result["channel"]["id"] == "espn.br"
        assert result["current"]["title"] == "SportsCenter"
        assert result["current"]["progress_pct"] == 50.0
        assert result["next"]["title"] == "Futebol"

    def test_now_next_without_current(self, make_fetcher):
        epg, _ = _services(make_fetcher)
        result = asyncio.run(epg.get_now_next("AE.br", now=NOW))
        assert result["current"] is None
        assert result["next"]["title"] == "Storage Wars"

    def test_now_next_unknown(self, make_fetcher):
        epg, _ = _services(make_fetcher)
        assert asyncio.run(epg.get_now_next("999")) == {"channel": None, "current": None, "next": None}

    def test_upcoming(self, make_fetcher):
        epg, _ = _services(make_fetcher)
        upcoming = asyncio.run(epg.get_upcoming("espn.br", hours=2, now=NOW))
        assert [p.title for p in upcoming] == ["Futebol"]

    def test_search(self, make_fetcher):
        epg, _ = _services(make_fetcher)
        assert [p.title for p in asyncio.run(epg.search("highlights"))] == ["SportsCenter"]


class TestHeldGuide:

    def test_repeated_queries_read_store_once(self, make_fetcher):
        store = CountingStore()
        epg, recorder = _services(make_fetcher, cache=CacheService(store))

        async def main():
            for _ in range(5):
                await epg.get_now_next("espn.br", now=NOW)

        asyncio.run(main())
        assert store.guide_reads == 1
        assert len(_guide_requests(recorder)) == 1

    def test_expired_guide_downloaded_again(self, make_fetcher):
        clock = FakeClock()
        epg, recorder = _services(make_fetcher, cache=CacheService(ttl=60, clock=clock))

        async def main():
            await epg.get_epg()
            clock.now += 30
            await epg.get_epg()
            clock.now += 31
            await epg.get_epg()

        asyncio.run(main())
        assert len(_guide_requests(recorder)) == 2

    def test_cache_clear_drops_held_guide(self, make_fetcher):
        cache = CacheService()
        epg, recorder = _services(make_fetcher, cache=cache)

        async def main():
            await epg.get_epg()
            cache.clear_cache()
            await epg.get_epg()

        asyncio.run(main())
        assert len(_guide_requests(recorder)) == 2

    def test_restored_from_persistent_store(self, make_fetcher, tmp_path):
        db_path = str(tmp_path / "cache.db")
        first, first_recorder = _services(make_fetcher, cache=CacheService(SqliteStore(db_path)))
        asyncio.run(first.get_epg())

        second, second_recorder = _services(make_fetcher, cache=CacheService(SqliteStore(db_path)))
        channels = asyncio.run(second.get_epg("espn.br"))
        assert [p.title for p in channels[0].programs] == ["SportsCenter", "Futebol"]
        assert len(_guide_requests(first_recorder)) == 1
        assert _guide_requests(second_recorder) == []
