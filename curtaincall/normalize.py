import re
from functools import lru_cache
from typing import Optional, Tuple
from urllib.parse import urlparse

from .aliases import (
    DEFAULT_TIER,
    UNKNOWN_ID,
    AliasTable,
    clean_name,
    default_alias_table,
    slugify,
    strip_article,
)

MIN_NAME_LENGTH = 2

# Two or three capitalized words, e.g. "Jesse Green", "Juan A. Ramirez", "Mary-Kate O'Neil"
_NAME_SHAPED_RE = re.compile(
    r"^[A-Z][A-Za-z'’.\-]*(?:\s+[A-Z][A-Za-z'’.\-]*){1,2}$"
)
_BYLINE_RE = re.compile(r"^by\s+", re.IGNORECASE)
_SEPARATORS = " \t-–—|:,/"


class Normalizer:
    """Maps free-text outlet and critic names onto canonical ids."""

    def __init__(self, table: Optional[AliasTable] = None):
        self.table = table or default_alias_table()

    @property
    def version(self) -> str:
        return self.table.version

    def normalize_outlet(self, raw: Optional[str]) -> str:
        key = clean_name(raw)
        if len(key) < MIN_NAME_LENGTH:
            return UNKNOWN_ID
        found = (
            self.table.lookup_outlet(key)
            or self.table.lookup_outlet(strip_article(key))
        )
        if found:
            return found
        slug = slugify(raw)
        if len(slug) < MIN_NAME_LENGTH:
            return UNKNOWN_ID
        return self.table.lookup_outlet(slug) or slug

    def normalize_critic(self, raw: Optional[str]) -> str:
        key = _BYLINE_RE.sub("", clean_name(raw))
        if len(key) < MIN_NAME_LENGTH:
            return UNKNOWN_ID
        found = self.table.lookup_critic(key)
        if found:
            return found
        slug = slugify(key)
        if len(slug) < MIN_NAME_LENGTH:
            return UNKNOWN_ID
        return self.table.lookup_critic(slug) or slug

    def outlet_tier(self, outlet_id: str) -> int:
        entry = self.table.outlets.get(outlet_id)
        return entry.tier if entry else DEFAULT_TIER

    def outlet_display_name(self, outlet_id: str) -> str:
        entry = self.table.outlets.get(outlet_id)
        return entry.display_name if entry else outlet_id

    def strip_critic_from_outlet(
        self, outlet_raw: Optional[str], critic_raw: Optional[str] = None
    ) -> Tuple[str, Optional[str]]:
        """
        Undo an outlet field that has the critic's name glued onto it.

        Some aggregators emit "New York PostJohnny Oleksinski" or
        "Variety - Frank Scheck" in the outlet column. When the outlet text
        starts with a known alias and the remainder is name-shaped, the
        remainder is split off and returned as the critic (unless a critic
        was already supplied). Anything else is returned unchanged.

        Returns:
            (outlet, critic) where critic may be None
        """
        if not isinstance(outlet_raw, str):
            return ("", critic_raw)
        outlet = outlet_raw.strip()
        if self._is_known_outlet(outlet):
            return (outlet, critic_raw)

        if isinstance(critic_raw, str) and critic_raw.strip():
            critic = critic_raw.strip()
            if outlet.lower().endswith(critic.lower()) and len(outlet) > len(critic):
                head = outlet[: len(outlet) - len(critic)].rstrip(_SEPARATORS)
                if self._is_known_outlet(head):
                    return (head, critic_raw)

        lowered = outlet.lower()
        for alias, _canonical in self.table.outlet_aliases():
            if not lowered.startswith(alias) or len(lowered) == len(alias):
                continue
            rest = outlet[len(alias):].lstrip(_SEPARATORS)
            if rest and _NAME_SHAPED_RE.match(rest):
                head = outlet[: len(alias)]
                return (head, critic_raw if critic_raw else rest)
        return (outlet, critic_raw)

    def _is_known_outlet(self, text: str) -> bool:
        key = clean_name(text)
        return bool(key) and (
            self.table.lookup_outlet(key) is not None
            or self.table.lookup_outlet(strip_article(key)) is not None
        )


@lru_cache(maxsize=1)
def _default_normalizer() -> Normalizer:
    return Normalizer()


def normalize_outlet(raw: Optional[str]) -> str:
    return _default_normalizer().normalize_outlet(raw)


def normalize_critic(raw: Optional[str]) -> str:
    return _default_normalizer().normalize_critic(raw)


def canonical_url(url: Optional[str]) -> Optional[str]:
    """Drop query string and fragment; None for anything that is not an absolute URL."""
    if not isinstance(url, str) or not url.strip():
        return None
    parsed = urlparse(url.strip())
    if not (parsed.scheme in ("http", "https") and parsed.netloc):
        return None
    path = parsed.path.rstrip("/")
    return f"{parsed.scheme}://{parsed.netloc.lower()}{path}"
