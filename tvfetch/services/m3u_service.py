"""M3U service — playlist parsing, generation and catalog derivation."""
from __future__ import annotations

import logging
import re
from typing import Iterator, Optional

from tvfetch.errors import ParseFailure
from tvfetch.models.catalog import CategoryRecord, ContentType, M3UItem, StreamRecord

logger = logging.getLogger(__name__)

M3U_HEADER = "#EXTM3U"
DEFAULT_GROUP = "Uncategorized"

# Attribute values may legitimately contain commas, so the name is whatever
# follows the first comma *after* the last quoted attribute.
_EXTINF_RE = re.compile(r'^#EXTINF:\s*(-?\d+(?:\.\d+)?)?((?:\s*[\w-]+="[^"]*")*)\s*,(.*)$', re.IGNORECASE)
_ATTR_RE = re.compile(r'([\w-]+)="([^"]*)"')

_MOVIE_HINTS = ("movie", "film", "vod")
_SERIES_HINTS = ("series", "show")


def classify_group(group: str, url: str = "") -> ContentType:
    """Infer the content type from a ``group-title`` (and the stream URL)."""
    lowered = group.lower()
    if any(h in lowered for h in _MOVIE_HINTS) or "/movie/" in url:
        return ContentType.MOVIE
    if any(h in lowered for h in _SERIES_HINTS) or "/series/" in url:
        return ContentType.SERIES
    return ContentType.LIVE


def parse_extinf(line: str) -> tuple[str, dict[str, str], str]:
    """Split an ``#EXTINF`` line into (duration, attributes, display name)."""
    m = _EXTINF_RE.match(line.strip())
    if m:
        duration = m.group(1) or "-1"
        attrs = {k.lower(): v for k, v in _ATTR_RE.findall(m.group(2) or "")}
        return duration, attrs, m.group(3).strip()
    # Malformed attribute block: fall back to "everything after the last comma"
    attrs = {k.lower(): v for k, v in _ATTR_RE.findall(line)}
    name = line.rsplit(",", 1)[1].strip() if "," in line else ""
    return "-1", attrs, name


def _iter_entries(content: str) -> Iterator[tuple[int, str, str]]:
    """Yield (line index, EXTINF line, URL line) pairs."""
    lines = content.splitlines()
    i = 0
    while i < len(lines):
        line = lines[i].strip()
        if line.upper().startswith("#EXTINF:"):
            # the URL is the next line that is neither blank nor a directive (#EXTGRP, #EXTVLCOPT...)
            j = i + 1
            while j < len(lines) and (not lines[j].strip() or lines[j].strip().startswith("#")):
                if lines[j].strip().upper().startswith("#EXTINF:"):
                    break
                j += 1
            if j < len(lines) and lines[j].strip() and not lines[j].strip().startswith("#"):
                yield i, line, lines[j].strip()
                i = j + 1
                continue
        i += 1


def parse_m3u(content: str) -> list[M3UItem]:
    """Parse a playlist document into entries, preserving order."""
    if not content or not content.lstrip("\ufeff").lstrip().upper().startswith(M3U_HEADER):
        raise ParseFailure("Invalid M3U file: missing #EXTM3U header")

    items: list[M3UItem] = []
    for _, info_line, url in _iter_entries(content):
        duration, attrs, name = parse_extinf(info_line)
        group = attrs.get("group-title") or DEFAULT_GROUP
        items.append(M3UItem(
            name=name,
            url=url,
            group=group,
            type=classify_group(group, url),
            logo=attrs.get("tvg-logo") or None,
            tvg_id=attrs.get("tvg-id") or None,
            tvg_name=attrs.get("tvg-name") or None,
            duration=duration,
        ))
    return items


def generate_m3u(items: list[M3UItem]) -> str:
    """Render entries back into an ``#EXTM3U`` document."""
    lines = [M3U_HEADER]
    for item in items:
        attributes = " ".join(a for a in (
            f'tvg-id="{item.tvg_id}"' if item.tvg_id else "",
            f'tvg-name="{item.tvg_name}"' if item.tvg_name else "",
            f'tvg-logo="{item.logo}"' if item.logo else "",
            f'group-title="{item.group}"',
        ) if a)
        lines.append(f"#EXTINF:{item.duration or '-1'} {attributes},{item.name}")
        lines.append(item.url)
    return "\n".join(lines) + "\n"


# ----------------------------------------------------------------------
# Catalog derivation (playlist mode)
# ----------------------------------------------------------------------

def m3u_to_streams(
    content: str,
    content_type: ContentType,
    category_id: Optional[str] = None,
    username: str = "",
    password: str = "",
) -> list[StreamRecord]:
    """Entries of *content_type*, optionally restricted to one group."""
    streams: list[StreamRecord] = []
    seen_ids: set[str] = set()
    skipped = 0
    for index, info_line, url in _iter_entries(content):
        _, attrs, name = parse_extinf(info_line)
        group = attrs.get("group-title") or DEFAULT_GROUP
        if classify_group(group, url) != content_type:
            continue
        tvg_id = attrs.get("tvg-id", "")
        # tvg-id is shared by quality variants; only the first one may claim it
        stream_id = tvg_id if tvg_id and tvg_id not in seen_ids else f"m3u_{index}"
        seen_ids.add(stream_id)
        if category_id and group != category_id:
            skipped += 1
            continue
        logo = attrs.get("tvg-logo", "")
        streams.append(StreamRecord(
            id=stream_id,
            name=name,
            url=url,
            cover=logo,
            thumbnail=logo,
            direct_source=url,
            stream_id=stream_id,
            category_id=group,
            epg_channel_id=tvg_id,
            username=username,
            password=password,
            genres=[group],
        ))
    logger.debug(f"Derived {len(streams)} {content_type.value} streams from playlist ({skipped} outside category)")
    return streams


def m3u_categories(content: str, content_type: ContentType) -> list[CategoryRecord]:
    """Distinct groups of *content_type*, in first-seen order."""
    groups: dict[str, None] = {}
    for _, info_line, url in _iter_entries(content):
        _, attrs, _ = parse_extinf(info_line)
        group = attrs.get("group-title") or DEFAULT_GROUP
        if classify_group(group, url) == content_type:
            groups.setdefault(group, None)
    return [CategoryRecord(id=g, name=g, type=content_type) for g in groups]
