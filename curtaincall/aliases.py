"""
Versioned alias tables for outlets and critics.

An AliasTable is immutable configuration: every alias string maps to exactly
one canonical id, and adding an alias means shipping a new table version
(either the bundled default below or a JSON file passed to
load_alias_table). Critic aliases only ever list spelling variants of one
person's full name. First-name-only bylines are handled by the outlet-scoped
prefix rule in dedupe.CriticRoster, never by a global alias.
"""

import json
import re
from dataclasses import dataclass, field
from pathlib import Path
from types import MappingProxyType
from typing import Dict, FrozenSet, Iterable, List, Mapping, Optional, Tuple

from .errors import AliasConflictError

UNKNOWN_ID = "unknown"
DEFAULT_TIER = 3

_WS_RE = re.compile(r"\s+")


def clean_name(text: Optional[str]) -> str:
    """Lowercase, trim and collapse internal whitespace."""
    if not isinstance(text, str):
        return ""
    return _WS_RE.sub(" ", text.strip().lower())


def slugify(text: Optional[str]) -> str:
    """Deterministic slug: lowercase, hyphenated, no punctuation."""
    if not isinstance(text, str):
        return ""
    s = text.lower().strip()
    s = re.sub(r"['’‘]", "", s)
    s = s.replace("&", " and ")
    s = re.sub(r"[^\w\s-]", " ", s)
    s = s.replace("_", " ")
    s = re.sub(r"\s+", "-", s)
    s = re.sub(r"-+", "-", s)
    return s.strip("-")


def strip_article(name: str) -> str:
    return name[4:] if name.startswith("the ") else name


@dataclass(frozen=True)
class OutletEntry:
    id: str
    display_name: str
    tier: int
    aliases: FrozenSet[str]


@dataclass(frozen=True)
class CriticEntry:
    id: str
    aliases: FrozenSet[str]


def _build_index(entries: Iterable[Tuple[str, Iterable[str]]], kind: str,
                 fold_article: bool) -> Dict[str, str]:
    index: Dict[str, str] = {}

    def claim(key: str, canonical: str, alias: str):
        if not key:
            return
        owner = index.get(key)
        if owner is not None and owner != canonical:
            raise AliasConflictError(
                f"{kind} alias {alias!r} claimed by both {owner!r} and {canonical!r}"
            )
        index[key] = canonical

    for canonical, aliases in entries:
        if slugify(canonical) != canonical:
            raise AliasConflictError(f"{kind} id {canonical!r} is not a slug")
        for alias in {canonical, *aliases}:
            variants = {clean_name(alias), slugify(alias)}
            if fold_article:
                variants |= {strip_article(clean_name(alias)), slugify(strip_article(clean_name(alias)))}
            for key in variants:
                claim(key, canonical, alias)
    return index


@dataclass(frozen=True)
class AliasTable:
    """Read-only alias configuration with precomputed lookup indexes."""

    version: str
    outlets: Mapping[str, OutletEntry]
    critics: Mapping[str, CriticEntry]
    _outlet_index: Mapping[str, str] = field(init=False, repr=False, compare=False)
    _critic_index: Mapping[str, str] = field(init=False, repr=False, compare=False)

    def __post_init__(self):
        outlets = MappingProxyType(dict(self.outlets))
        critics = MappingProxyType(dict(self.critics))
        object.__setattr__(self, "outlets", outlets)
        object.__setattr__(self, "critics", critics)
        object.__setattr__(self, "_outlet_index", MappingProxyType(_build_index(
            ((o.id, {*o.aliases, o.display_name}) for o in outlets.values()), "outlet", fold_article=True
        )))
        object.__setattr__(self, "_critic_index", MappingProxyType(_build_index(
            ((c.id, c.aliases) for c in critics.values()), "critic", fold_article=False
        )))

    def lookup_outlet(self, key: str) -> Optional[str]:
        return self._outlet_index.get(key)

    def lookup_critic(self, key: str) -> Optional[str]:
        return self._critic_index.get(key)

    def outlet_aliases(self) -> List[Tuple[str, str]]:
        """All (alias, canonical id) pairs, longest alias first."""
        pairs = {
            (alias, o.id)
            for o in self.outlets.values()
            for alias in (*o.aliases, o.id, clean_name(o.display_name))
        }
        return sorted(pairs, key=lambda p: (-len(p[0]), p[0]))

    @classmethod
    def from_dict(cls, data: Mapping) -> "AliasTable":
        """
        Build a table from its JSON shape:

            {"version": "2026-10-01",
             "outlets": {"nytimes": {"name": "The New York Times", "tier": 1,
                                      "aliases": ["new york times", "nyt"]}},
             "critics": {"jesse-green": ["jesse green", "j. green"]}}
        """
        version = str(data.get("version") or "unversioned")
        outlets = {}
        for outlet_id, info in (data.get("outlets") or {}).items():
            outlets[outlet_id] = OutletEntry(
                id=outlet_id,
                display_name=info.get("name") or outlet_id,
                tier=int(info.get("tier", DEFAULT_TIER)),
                aliases=frozenset(clean_name(a) for a in info.get("aliases", [])),
            )
        critics = {
            critic_id: CriticEntry(id=critic_id, aliases=frozenset(clean_name(a) for a in aliases))
            for critic_id, aliases in (data.get("critics") or {}).items()
        }
        return cls(version=version, outlets=outlets, critics=critics)

    def to_dict(self) -> dict:
        return {
            "version": self.version,
            "outlets": {
                o.id: {"name": o.display_name, "tier": o.tier, "aliases": sorted(o.aliases)}
                for o in self.outlets.values()
            },
            "critics": {c.id: sorted(c.aliases) for c in self.critics.values()},
        }


def load_alias_table(path: Path) -> AliasTable:
    """Load an alias table from a JSON file."""
    with Path(path).open("r", encoding="utf-8") as f:
        return AliasTable.from_dict(json.load(f))


def audit_alias_table(table: AliasTable, known_distinct: Iterable[Tuple[str, str]],
                      kind: str = "critic") -> List[dict]:
    """
    Report alias entries that would merge two names known to be different.

    Args:
        table: Candidate alias table
        known_distinct: Pairs of raw names that must never share an identity
        kind: "critic" or "outlet"

    Returns:
        One dict per collision: {"a", "b", "canonical"}
    """
    from .normalize import Normalizer

    normalizer = Normalizer(table)
    resolve = normalizer.normalize_critic if kind == "critic" else normalizer.normalize_outlet
    collisions = []
    for a, b in known_distinct:
        ca, cb = resolve(a), resolve(b)
        if ca == cb and ca != UNKNOWN_ID:
            collisions.append({"a": a, "b": b, "canonical": ca})
    return collisions


# Bundled default table. id: (display name, tier, aliases)
_DEFAULT_OUTLETS = {
    "nytimes": ("The New York Times", 1, [
        "new york times", "the new york times", "ny times", "nyt", "newyorktimes",
    ]),
    "vulture": ("Vulture", 1, [
        "new york magazine / vulture", "new york magazine/vulture", "ny mag", "nymag",
        "new york magazine", "ny magazine", "vult",
    ]),
    "variety": ("Variety", 1, ["variety magazine"]),
    "hollywood-reporter": ("The Hollywood Reporter", 1, [
        "hollywood reporter", "the hollywood reporter", "thr", "hollywoodreporter",
    ]),
    "guardian": ("The Guardian", 1, ["the guardian", "theguardian"]),
    "washpost": ("The Washington Post", 1, [
        "washington post", "the washington post", "wapo", "wash post", "washingtonpost",
    ]),
    "ap": ("Associated Press", 1, ["associated press", "the associated press", "ap news"]),
    "newyorker": ("The New Yorker", 1, ["the new yorker", "new yorker"]),
    "timeout": ("Time Out New York", 1, [
        "time out", "time out new york", "timeout new york", "time out ny", "timeout ny",
    ]),
    "theatermania": ("TheaterMania", 2, [
        "theater mania", "theatremania", "theatre mania", "tmania",
    ]),
    "nypost": ("New York Post", 2, ["new york post", "ny post", "nyp", "newyorkpost"]),
    "deadline": ("Deadline", 2, ["deadline hollywood", "deadline.com"]),
    "ew": ("Entertainment Weekly", 2, ["entertainment weekly", "entertainmentweekly"]),
    "chicagotribune": ("Chicago Tribune", 2, ["chicago tribune", "chi tribune"]),
    "usatoday": ("USA Today", 2, ["usa today"]),
    "nydailynews": ("New York Daily News", 2, [
        "new york daily news", "daily news", "ny daily news", "nydn", "newyorkdailynews",
    ]),
    "thewrap": ("The Wrap", 2, ["the wrap", "wrap"]),
    "dailybeast": ("The Daily Beast", 2, ["the daily beast", "daily beast", "tdb"]),
    "observer": ("Observer", 2, ["the observer", "ny observer", "new york observer"]),
    "indiewire": ("IndieWire", 2, ["indie wire"]),
    "slantmagazine": ("Slant Magazine", 2, ["slant magazine", "slant"]),
    "nyt-theater": ("New York Theater", 2, ["new york theater", "newyorktheater", "ny theater"]),
    "nytg": ("New York Theatre Guide", 2, [
        "new york theatre guide", "ny theatre guide", "nytheatreguide", "new york theater guide",
    ]),
    "nysr": ("New York Stage Review", 2, [
        "new york stage review", "ny stage review", "newyorkstagereview",
    ]),
    "theatrely": ("Theatrely", 2, ["theater ly", "thly"]),
    "broadwaynews": ("Broadway News", 2, ["broadway news", "bwaynews"]),
    "latimes": ("Los Angeles Times", 2, ["los angeles times", "la times"]),
    "wsj": ("The Wall Street Journal", 2, [
        "wall street journal", "the wall street journal", "wallstreetjournal",
    ]),
    "broadwayworld": ("BroadwayWorld", 3, ["broadway world", "bww"]),
    "amny": ("amNewYork", 3, ["amnewyork", "am new york"]),
    "cititour": ("Cititour", 3, ["citi tour"]),
    "culturesauce": ("Culture Sauce", 3, ["culture sauce"]),
    "frontmezzjunkies": ("Front Mezz Junkies", 3, ["front mezz junkies", "fmj"]),
    "oneminutecritic": ("One Minute Critic", 3, ["one minute critic", "1 minute critic"]),
    "stageandcinema": ("Stage and Cinema", 3, ["stage and cinema", "stage & cinema"]),
    "huffpost": ("HuffPost", 3, ["huffington post", "the huffington post", "huff post"]),
    "talkinbroadway": ("Talkin' Broadway", 3, ["talkin broadway", "talkin' broadway"]),
    "thestage": ("The Stage", 3, ["the stage"]),
}

_DEFAULT_CRITICS = {
    "jesse-green": ["jesse green", "j green", "j. green"],
    "ben-brantley": ["ben brantley", "b brantley", "b. brantley"],
    "johnny-oleksinski": ["johnny oleksinski", "johnny oleksinki", "john oleksinski"],
    "sara-holdren": ["sara holdren"],
    "helen-shaw": ["helen shaw"],
    "adam-feldman": ["adam feldman"],
    "david-rooney": ["david rooney"],
    "frank-scheck": ["frank scheck"],
    "greg-evans": ["greg evans"],
    "aramide-tinubu": ["aramide tinubu", "aramide timubu"],
    "juan-a-ramirez": ["juan a ramirez", "juan a. ramirez", "juan ramirez"],
    "zachary-stewart": ["zachary stewart", "zach stewart"],
    "chris-jones": ["chris jones"],
    "jd-knapp": ["jd knapp", "j.d. knapp", "j d knapp"],
    "jonathan-mandell": ["jonathan mandell", "jon mandell"],
    "brian-scott-lipton": ["brian scott lipton", "brian lipton"],
    "melissa-rose-bernardo": ["melissa rose bernardo", "melissa bernardo"],
    "matt-windman": ["matt windman", "matthew windman"],
    "robert-hofler": ["robert hofler", "bob hofler"],
    "steven-suskin": ["steven suskin", "steve suskin"],
}

DEFAULT_TABLE_VERSION = "2026-10-01"


def default_alias_table() -> AliasTable:
    return AliasTable(
        version=DEFAULT_TABLE_VERSION,
        outlets={
            oid: OutletEntry(id=oid, display_name=name, tier=tier,
                             aliases=frozenset(clean_name(a) for a in aliases))
            for oid, (name, tier, aliases) in _DEFAULT_OUTLETS.items()
        },
        critics={
            cid: CriticEntry(id=cid, aliases=frozenset(clean_name(a) for a in aliases))
            for cid, aliases in _DEFAULT_CRITICS.items()
        },
    )
