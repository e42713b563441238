"""Tests for M3U parsing, generation and playlist-mode catalog derivation."""

import pytest

from tvfetch.errors import ParseFailure
from tvfetch.models.catalog import ContentType
from tvfetch.services.m3u_service import (
    classify_group,
    generate_m3u,
    m3u_categories,
    m3u_to_streams,
    parse_extinf,
    parse_m3u,
)

PLAYLIST = """#EXTM3U
#EXTINF:-1 tvg-id="espn.br" tvg-name="ESPN" tvg-logo="http://logo.test/espn.png" group-title="Sports",ESPN HD
http://panel.test/live/u/p/101.ts
#EXTINF:-1 tvg-id="espn.br" tvg-name="ESPN" group-title="Sports",ESPN SD
http://panel.test/live/u/p/102.ts
#EXTINF:-1 tvg-id="globo" group-title="News, Brazil",Globo, Rio
http://panel.test/live/u/p/103.ts
#EXTINF:-1 group-title="Movies",The Matrix
http://panel.test/movie/u/p/201.mp4
#EXTINF:-1 group-title="Series | Drama",Lost S01E01
http://panel.test/series/u/p/301.mkv
#EXTINF:-1,No Group
#EXTVLCOPT:http-user-agent=VLC
http://panel.test/live/u/p/104.ts
"""


class TestParseM3U:

    def test_entries_in_order(self):
        items = parse_m3u(PLAYLIST)
        assert [i.name for i in items] == ["ESPN HD", "ESPN SD", "Globo, Rio", "The Matrix", "Lost S01E01", "No Group"]
        assert items[0].tvg_id == "espn.br"
        assert items[0].logo == "http://logo.test/espn.png"
        assert items[0].url == "http://panel.test/live/u/p/101.ts"

    def test_commas_inside_attributes(self):
        items = parse_m3u(PLAYLIST)
        assert items[2].group == "News, Brazil"
        assert items[2].name == "Globo, Rio"

    def test_directives_between_info_and_url(self):
        items = parse_m3u(PLAYLIST)
        assert items[-1].url == "http://panel.test/live/u/p/104.ts"
        assert items[-1].group == "Uncategorized"

    def test_types_from_group_and_url(self):
        types = [i.type for i in parse_m3u(PLAYLIST)]
        assert types == [
            ContentType.LIVE, ContentType.LIVE, ContentType.LIVE,
            ContentType.MOVIE, ContentType.SERIES, ContentType.LIVE,
        ]

    def test_missing_header(self):
        with pytest.raises(ParseFailure):
            parse_m3u("#EXTINF:-1,Foo\nhttp://x.test/1.ts\n")

    def test_bom_tolerated(self):
        assert len(parse_m3u("\ufeff#EXTM3U\n#EXTINF:-1,Foo\nhttp://x.test/1.ts\n")) == 1

    def test_parse_extinf_fallback(self):
        duration, attrs, name = parse_extinf('#EXTINF:-1 tvg-id="a" broken="x,Name')
        assert duration == "-1"
        assert name == "Name"


class TestGenerateM3U:

    def test_round_trip_preserves_entries(self):
        doc = (
            "#EXTM3U\n"
            '#EXTINF:-1 tvg-id="a" group-title="News",Channel A\n'
            "http://x.test/a.ts\n"
            '#EXTINF:-1 group-title="Sports",Channel B\n'
            "http://x.test/b.ts\n"
        )
        original = parse_m3u(doc)
        regenerated = parse_m3u(generate_m3u(original))
        assert [(i.name, i.url, i.group) for i in regenerated] == [(i.name, i.url, i.group) for i in original]

    def test_output_shape(self):
        out = generate_m3u(parse_m3u(PLAYLIST)[:1])
        assert out.splitlines() == [
            "#EXTM3U",
            '#EXTINF:-1 tvg-id="espn.br" tvg-name="ESPN" tvg-logo="http://logo.test/espn.png" group-title="Sports",ESPN HD',
            "http://panel.test/live/u/p/101.ts",
        ]


class TestClassifyGroup:

    @pytest.mark.parametrize("group,url,expected", [
        ("Movies 2024", "", ContentType.MOVIE),
        ("VOD | Action", "", ContentType.MOVIE),
        ("TV Shows", "", ContentType.SERIES),
        ("Anything", "http://x.test/series/u/p/1.mkv", ContentType.SERIES),
        ("Sports", "http://x.test/live/u/p/1.ts", ContentType.LIVE),
    ])
    def test_classify(self, group, url, expected):
        assert classify_group(group, url) == expected


class TestPlaylistCatalog:

    def test_live_streams(self):
        streams = m3u_to_streams(PLAYLIST, ContentType.LIVE, username="u", password="p")
        assert [s.name for s in streams] == ["ESPN HD", "ESPN SD", "Globo, Rio", "No Group"]
        assert streams[0].category_id == "Sports"
        assert streams[0].epg_channel_id == "espn.br"
        assert streams[0].username == "u"

    def test_duplicate_tvg_id_gets_positional_id(self):
        streams = m3u_to_streams(PLAYLIST, ContentType.LIVE)
        assert streams[0].id == "espn.br"
        assert streams[1].id.startswith("m3u_")
        assert len({s.id for s in streams}) == len(streams)

    def test_ids_stable_under_category_filter(self):
        everything = {s.name: s.id for s in m3u_to_streams(PLAYLIST, ContentType.LIVE)}
        news = m3u_to_streams(PLAYLIST, ContentType.LIVE, category_id="News, Brazil")
        assert [s.name for s in news] == ["Globo, Rio"]
        assert news[0].id == everything["Globo, Rio"]

    def test_categories(self):
        cats = m3u_categories(PLAYLIST, ContentType.LIVE)
        assert [c.id for c in cats] == ["Sports", "News, Brazil", "Uncategorized"]
        assert all(c.type == ContentType.LIVE for c in cats)
        assert [c.name for c in m3u_categories(PLAYLIST, ContentType.MOVIE)] == ["Movies"]
