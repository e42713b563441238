"""XMLTV parsing and programme-schedule queries."""
from __future__ import annotations

import gzip
import logging
import re
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from typing import Optional, Sequence, Union

from lxml import etree

from tvfetch.errors import ParseFailure
from tvfetch.models.epg import EPGChannel, EPGProgram
from tvfetch.services.channel_matcher import known_channel_target, normalize_channel_name

logger = logging.getLogger(__name__)

# Guides list A&E under several ids; lookups under any of them must succeed
AE_CHANNEL_ID = "AE.br"
AE_ALIAS_IDS = ("br#a-e-hd", "a-e-hd")

_RAW_TS_RE = re.compile(
    r"^(\d{4})(\d{2})(\d{2})(\d{2})(\d{2})(\d{2})\s*(?:([+-])(\d{2}):?(\d{2}))?$"
)


# ----------------------------------------------------------------------
# Timestamps
# ----------------------------------------------------------------------

def normalize_epg_timestamp(value: str) -> str:
    """``20240101120000 +0100`` -> ``2024-01-01T12:00:00+01:00``.

    Values already in the punctuated form (or not in XMLTV form at all) are
    returned unchanged. A missing offset is read as UTC.
    """
    if not value:
        return ""
    value = value.strip()
    m = _RAW_TS_RE.match(value)
    if not m:
        return value
    year, month, day, hour, minute, second, sign, off_h, off_m = m.groups()
    offset = f"{sign}{off_h}:{off_m}" if sign else "+00:00"
    return f"{year}-{month}-{day}T{hour}:{minute}:{second}{offset}"


def parse_epg_timestamp(value: str) -> Optional[datetime]:
    """Timezone-aware datetime for a raw or normalized guide timestamp, or None."""
    normalized = normalize_epg_timestamp(value)
    if not normalized:
        return None
    try:
        parsed = datetime.fromisoformat(normalized)
    except ValueError:
        return None
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


# ----------------------------------------------------------------------
# Parsing
# ----------------------------------------------------------------------

@dataclass
class GuideStats:
    channels_found: int = 0
    channels_kept: int = 0
    channels_without_id: int = 0
    channels_without_name: int = 0
    programmes_found: int = 0
    programmes_added: int = 0
    programmes_without_channel: int = 0
    programmes_without_title: int = 0
    programmes_without_times: int = 0
    programmes_ending_before_start: int = 0
    aliases_added: int = 0


@dataclass
class ParsedGuide:
    channels: list[EPGChannel] = field(default_factory=list)
    stats: GuideStats = field(default_factory=GuideStats)


def _text(element, tag: str) -> Optional[str]:
    child = element.find(tag)
    if child is None or not child.text:
        return None
    return child.text.strip() or None


def _sort_key(program: EPGProgram) -> tuple[int, float]:
    start = parse_epg_timestamp(program.start_time)
    if start is None:
        return (1, 0.0)
    return (0, start.timestamp())


def _is_ae(channel: EPGChannel) -> bool:
    return channel.id == AE_CHANNEL_ID or known_channel_target(channel.name) == AE_CHANNEL_ID


def _mentions_ae(channel: EPGChannel) -> bool:
    lowered = channel.name.lower()
    return "a&e" in lowered or "a e" in lowered


def parse_xmltv(content: Union[bytes, str]) -> ParsedGuide:
    """Parse an XMLTV document into channels with their sorted programmes.

    Raises :class:`ParseFailure` when no ``<tv>`` root can be recovered.
    """
    if isinstance(content, str):
        content = content.encode("utf-8")
    if content[:2] == b"\x1f\x8b":
        try:
            content = gzip.decompress(content)
        except (OSError, EOFError) as e:
            raise ParseFailure(f"Corrupt gzip guide: {e}") from e

    parser = etree.XMLParser(recover=True, huge_tree=True, resolve_entities=False, no_network=True)
    try:
        root = etree.fromstring(content, parser)
    except etree.XMLSyntaxError as e:
        raise ParseFailure(f"Invalid XMLTV document: {e}") from e
    if root is None or root.tag != "tv":
        raise ParseFailure(f"Invalid XMLTV document: root is {getattr(root, 'tag', None)!r}")

    stats = GuideStats()
    order: list[str] = []
    meta: dict[str, tuple[str, str]] = {}
    programs: dict[str, list[EPGProgram]] = {}
    by_name: dict[str, str] = {}

    for element in root.iter("channel"):
        stats.channels_found += 1
        channel_id = (element.get("id") or "").strip()
        if not channel_id:
            stats.channels_without_id += 1
            continue
        name = _text(element, "display-name")
        if not name:
            stats.channels_without_name += 1
            continue
        if channel_id in meta:
            continue
        icon_el = element.find("icon")
        icon = icon_el.get("src", "") if icon_el is not None else ""
        order.append(channel_id)
        meta[channel_id] = (name, icon)
        programs[channel_id] = []
        by_name.setdefault(normalize_channel_name(name), channel_id)
        stats.channels_kept += 1

    for element in root.iter("programme"):
        stats.programmes_found += 1
        ref = element.get("channel") or ""
        channel_id = ref if ref in meta else None
        if channel_id is None and ref:
            channel_id = by_name.get(normalize_channel_name(ref))
        if channel_id is None:
            stats.programmes_without_channel += 1
            continue
        title = _text(element, "title")
        start, stop = element.get("start"), element.get("stop")
        if not title:
            stats.programmes_without_title += 1
            continue
        if not start or not stop:
            stats.programmes_without_times += 1
            continue
        start_at, stop_at = parse_epg_timestamp(start), parse_epg_timestamp(stop)
        if start_at and stop_at and stop_at <= start_at:
            stats.programmes_ending_before_start += 1
            continue

        rating_el = element.find("rating")
        icon_el = element.find("icon")
        programs[channel_id].append(EPGProgram(
            title=title,
            start_time=start,
            end_time=stop,
            channel=meta[channel_id][0],
            description=_text(element, "desc"),
            category=_text(element, "category"),
            rating=_text(rating_el, "value") if rating_el is not None else None,
            language=_text(element, "language"),
            icon=(icon_el.get("src") or None) if icon_el is not None else None,
        ))
        stats.programmes_added += 1

    channels = []
    for channel_id in order:
        name, icon = meta[channel_id]
        channels.append(EPGChannel(
            id=channel_id,
            name=name,
            icon=icon,
            programs=sorted(programs[channel_id], key=_sort_key),
        ))

    # an exact A&E channel wins over one whose name merely mentions it
    ae = next((c for c in channels if _is_ae(c)), None)
    if ae is None:
        ae = next((c for c in channels if _mentions_ae(c)), None)
    if ae is not None:
        for alias_id in AE_ALIAS_IDS:
            if alias_id in meta:
                continue
            channels.append(ae.model_copy(update={"id": alias_id, "alias_of": ae.id}))
            stats.aliases_added += 1

    skipped = stats.programmes_found - stats.programmes_added
    if stats.channels_without_id or stats.channels_without_name or skipped:
        logger.warning(
            f"Guide entries dropped: {stats.channels_without_id} channels without id, "
            f"{stats.channels_without_name} without name, {skipped} programmes skipped"
        )
    logger.info(f"Parsed guide: {stats.channels_kept} channels, {stats.programmes_added} programmes")
    return ParsedGuide(channels=channels, stats=stats)


# ----------------------------------------------------------------------
# Schedule queries
# ----------------------------------------------------------------------

def _now(now: Optional[datetime]) -> datetime:
    if now is None:
        return datetime.now(timezone.utc)
    return now if now.tzinfo else now.replace(tzinfo=timezone.utc)


def get_current_program(programs: Sequence[EPGProgram], now: Optional[datetime] = None) -> Optional[EPGProgram]:
    """The programme airing at *now* (start <= now < end)."""
    now = _now(now)
    for program in programs:
        start = parse_epg_timestamp(program.start_time)
        end = parse_epg_timestamp(program.end_time)
        if start and end and start <= now < end:
            return program
    return None


def get_next_program(programs: Sequence[EPGProgram], now: Optional[datetime] = None) -> Optional[EPGProgram]:
    """The earliest programme starting after *now*."""
    now = _now(now)
    best: Optional[EPGProgram] = None
    best_start: Optional[datetime] = None
    for program in programs:
        start = parse_epg_timestamp(program.start_time)
        if start and start > now and (best_start is None or start < best_start):
            best, best_start = program, start
    return best


def get_upcoming_programs(
    programs: Sequence[EPGProgram],
    hours: float = 24,
    now: Optional[datetime] = None,
) -> list[EPGProgram]:
    """Programmes starting within the next *hours*, in start order."""
    now = _now(now)
    horizon = now + timedelta(hours=hours)
    result = []
    for program in programs:
        start = parse_epg_timestamp(program.start_time)
        if start and now <= start <= horizon:
            result.append(program)
    return sorted(result, key=_sort_key)


def search_programs(channels: Sequence[EPGChannel], query: str) -> list[EPGProgram]:
    """Case-insensitive search over programme titles and descriptions."""
    needle = query.strip().lower()
    if not needle:
        return []
    hits = []
    for channel in channels:
        if channel.alias_of:
            continue
        for program in channel.programs:
            if needle in program.title.lower() or needle in (program.description or "").lower():
                hits.append(program)
    return hits
