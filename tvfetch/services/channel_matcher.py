"""Channel matching — resolve a catalog channel name to a guide channel."""
from __future__ import annotations

import logging
import re
import unicodedata
from typing import Callable, Optional, Sequence

from rapidfuzz import fuzz

from tvfetch.models.epg import EPGChannel

logger = logging.getLogger(__name__)

# Human channel names -> guide id (or display name) used by the common upstream guides
KNOWN_CHANNELS: dict[str, str] = {
    "GNT": "GNT",
    "Globo": "Globo",
    "SBT": "SBT",
    "Record": "Record",
    "Band": "Band",
    "RedeTV": "RedeTV",
    "SporTV": "SporTV",
    "ESPN": "ESPN",
    "Fox Sports": "Fox Sports",
    "Discovery": "Discovery Channel",
    "History": "History Channel",
    "National Geographic": "National Geographic",
    "Warner": "Warner",
    "Universal": "Universal",
    "Sony": "Sony",
    "FX": "FX",
    "HBO": "HBO",
    "Telecine": "Telecine",
    "Megapix": "Megapix",
    "Space": "Space",
    "TNT": "TNT",
    "Cartoon": "Cartoon Network",
    "Disney": "Disney Channel",
    "Nick": "Nickelodeon",
    "MTV": "MTV",
    "Multishow": "Multishow",
    "BIS": "BIS",
    "Viva": "Viva",
    "Comedy Central": "Comedy Central",
    "AE": "AE.br",
    "A E": "AE.br",
    "A&E": "AE.br",
    "AMC": "AMC",
    "Animal Planet": "Animal Planet",
    "AXN": "AXN",
    "Cinemax": "Cinemax",
    "Combate": "Combate",
    "Discovery Kids": "Discovery Kids",
    "Discovery Turbo": "Discovery Turbo",
    "E Entertainment": "E!",
    "ESPN Brasil": "ESPN Brasil",
    "Food Network": "Food Network",
    "Fox": "Fox",
    "Fox Life": "Fox Life",
    "Fox Premium": "Fox Premium",
    "Futura": "Futura",
    "Globo News": "GloboNews",
    "Gloob": "Gloob",
    "H2": "H2",
    "HGTV": "HGTV",
    "Lifetime": "Lifetime",
    "Mais Globosat": "Mais Globosat",
    "Max": "Max",
    "Nat Geo Wild": "Nat Geo Wild",
    "Nick Jr": "Nick Jr.",
    "OFF": "OFF",
    "Paramount": "Paramount",
    "Premiere": "Premiere",
    "Prime Box Brazil": "Prime Box Brazil",
    "Record News": "Record News",
    "Rede Vida": "Rede Vida",
    "Syfy": "Syfy",
    "TCM": "TCM",
    "TLC": "TLC",
    "Tooncast": "Tooncast",
    "Travel Box Brazil": "Travel Box Brazil",
    "TV Brasil": "TV Brasil",
    "TV Gazeta": "TV Gazeta",
    "WooHoo": "WooHoo",
    "ZooMoo": "ZooMoo",
    "AgroMais": "Agro+",
}

_BRACKETED_RE = re.compile(r"\[.*?\]|\(.*?\)")
_QUALITY_RE = re.compile(r"\b(?:hd|sd|fhd|uhd|4k|8k|fullhd|alt|\d+p)\b")
_NON_ALNUM_RE = re.compile(r"[^a-z0-9]+")

KEYWORD_MIN_LENGTH = 4


def normalize_channel_name(name: str) -> str:
    """Lowercase, drop bracketed parts and quality tokens, fold accents, collapse punctuation."""
    if not name:
        return ""
    normalized = _BRACKETED_RE.sub("", name.lower())
    normalized = _QUALITY_RE.sub("", normalized)
    normalized = normalized.replace("+", "mais").replace("&", "e")
    normalized = unicodedata.normalize("NFD", normalized)
    normalized = "".join(c for c in normalized if not unicodedata.combining(c))
    return _NON_ALNUM_RE.sub(" ", normalized).strip()


def _compact(name: str) -> str:
    return normalize_channel_name(name).replace(" ", "")


# Keyed by the space-free normalized form so "A&E", "a & e" and "A E" agree
_KNOWN_INDEX: dict[str, str] = {_compact(k): v for k, v in KNOWN_CHANNELS.items()}


def known_channel_target(name: str) -> Optional[str]:
    return _KNOWN_INDEX.get(_compact(name))


def id_variants(name: str) -> list[str]:
    """Guide ids commonly derived from a channel name (``br#espn``, ``espn.br``...)."""
    lower = name.lower()
    slug = normalize_channel_name(name).replace(" ", "-")
    variants = [name, f"br#{lower}", f"br#{lower}-hd", f"{name}.br"]
    if slug:
        variants += [f"{slug}.br", f"br#{slug}"]
    return variants


# ----------------------------------------------------------------------
# Strategies, tried in order; each returns the first channel it accepts
# ----------------------------------------------------------------------

MatchStrategy = Callable[[str, Sequence[EPGChannel]], Optional[EPGChannel]]


def match_known_alias(query: str, channels: Sequence[EPGChannel]) -> Optional[EPGChannel]:
    target = known_channel_target(query)
    if not target:
        return None
    for channel in channels:
        if channel.id == target:
            return channel
    lowered = target.lower()
    return next((c for c in channels if c.name == target or c.name.lower() == lowered), None)


def match_exact_id(query: str, channels: Sequence[EPGChannel]) -> Optional[EPGChannel]:
    return next((c for c in channels if c.id == query), None)


def match_id_variant(query: str, channels: Sequence[EPGChannel]) -> Optional[EPGChannel]:
    by_id = {}
    for channel in channels:
        by_id.setdefault(channel.id.lower(), channel)
    for variant in id_variants(query):
        channel = by_id.get(variant.lower())
        if channel is not None:
            return channel
    return None


def match_exact_name(query: str, channels: Sequence[EPGChannel]) -> Optional[EPGChannel]:
    return next((c for c in channels if c.name == query), None)


def match_normalized_name(query: str, channels: Sequence[EPGChannel]) -> Optional[EPGChannel]:
    normalized = normalize_channel_name(query)
    if not normalized:
        return None
    return next((c for c in channels if normalize_channel_name(c.name) == normalized), None)


def match_substring(query: str, channels: Sequence[EPGChannel]) -> Optional[EPGChannel]:
    normalized = normalize_channel_name(query)
    if not normalized:
        return None
    for channel in channels:
        candidate = normalize_channel_name(channel.name)
        if candidate and (normalized in candidate or candidate in normalized):
            return channel
    return None


def match_keywords(query: str, channels: Sequence[EPGChannel]) -> Optional[EPGChannel]:
    normalized = normalize_channel_name(query)
    keywords = {w for w in normalized.split() if len(w) >= KEYWORD_MIN_LENGTH}
    if not keywords:
        return None

    best: Optional[EPGChannel] = None
    best_score: tuple[int, float] = (0, 0.0)
    for channel in channels:
        candidate = normalize_channel_name(channel.name)
        shared = sum(1 for kw in keywords if kw in candidate)
        if not shared:
            continue
        # ties on shared keywords go to the closer overall name, then to the earlier channel
        score = (shared, fuzz.token_sort_ratio(normalized, candidate))
        if score > best_score:
            best, best_score = channel, score
    return best


MATCH_STRATEGIES: list[MatchStrategy] = [
    match_known_alias,
    match_exact_id,
    match_id_variant,
    match_exact_name,
    match_normalized_name,
    match_substring,
    match_keywords,
]


def find_matching_channel(
    name: str,
    channels: Sequence[EPGChannel],
    include_empty: bool = False,
) -> Optional[EPGChannel]:
    """First channel accepted by :data:`MATCH_STRATEGIES`, or None.

    Channels without programmes are skipped unless *include_empty* is set.
    """
    if not name:
        return None
    candidates = list(channels) if include_empty else [c for c in channels if not c.is_empty]
    if not candidates:
        return None

    for strategy in MATCH_STRATEGIES:
        channel = strategy(name, candidates)
        if channel is not None:
            logger.debug(f"Matched '{name}' -> '{channel.name}' ({channel.id}) via {strategy.__name__}")
            return channel
    logger.debug(f"No guide channel matches '{name}'")
    return None
