"""Static source-credibility tiers keyed by registrable domain.

Tiers are deterministic so that every evidence item in a forecast trail can be
traced back to a fixed table entry:

1.5   academic / institutional (explicit entries and .edu/.gov/.ac.uk/.int hosts)
1.0   premium wire services and papers of record
0.85  major outlets and established think tanks
0.75  established regional / specialist outlets
0.50  everything else, including unparseable URLs
"""

from __future__ import annotations

import logging
from collections.abc import Mapping
from types import MappingProxyType
from urllib.parse import urlparse

logger = logging.getLogger(__name__)

ACADEMIC_TIER = 1.5
DEFAULT_TIER = 0.50

SOURCE_TIERS: Mapping[str, float] = MappingProxyType(
    {
        # Academic / institutional
        "nature.com": 1.5,
        "science.org": 1.5,
        "jstor.org": 1.5,
        "cambridge.org": 1.5,
        "oup.com": 1.5,
        "sipri.org": 1.5,
        "ucdp.uu.se": 1.5,
        "imf.org": 1.5,
        "worldbank.org": 1.5,
        "un.org": 1.5,
        "oecd.org": 1.5,
        "nber.org": 1.5,
        # Tier 1
        "reuters.com": 1.0,
        "apnews.com": 1.0,
        "bbc.com": 1.0,
        "bbc.co.uk": 1.0,
        "nytimes.com": 1.0,
        "ft.com": 1.0,
        "theguardian.com": 1.0,
        "washingtonpost.com": 1.0,
        # Tier 2
        "cnn.com": 0.85,
        "bloomberg.com": 0.85,
        "politico.com": 0.85,
        "economist.com": 0.85,
        "nbcnews.com": 0.85,
        "abcnews.go.com": 0.85,
        "cbsnews.com": 0.85,
        "wsj.com": 0.85,
        "axios.com": 0.85,
        "cfr.org": 0.85,
        "chathamhouse.org": 0.85,
        "brookings.edu": 0.85,
        "rand.org": 0.85,
        "iiss.org": 0.85,
        "espn.com": 0.85,
        "theathletic.com": 0.85,
        # Tier 3
        "aljazeera.com": 0.75,
        "thehindu.com": 0.75,
        "scmp.com": 0.75,
        "foreignpolicy.com": 0.75,
        "metaculus.com": 0.75,
        "goodjudgment.com": 0.75,
        "wikipedia.org": 0.75,
        "skysports.com": 0.75,
    }
)

ACADEMIC_SUFFIXES: tuple[str, ...] = (".edu", ".gov", ".ac.uk", ".int")


def tier_label(tier: float) -> str:
    """Human label for a numeric tier."""
    if tier >= 1.0:
        return "Premium/Tier 1"
    if tier >= 0.85:
        return "Tier 2"
    if tier >= 0.75:
        return "Tier 3"
    return "Tier 4/Unknown"


class SourceCredibilityRater:
    """Map a URL to a trust weight using a fixed allow-list.

    The host (minus ``www.``) is looked up first, then each parent domain, so
    ``edition.cnn.com`` resolves through ``cnn.com``. Hosts under an academic
    suffix fall back to ``ACADEMIC_TIER``. Never raises.
    """

    def __init__(
        self,
        tiers: Mapping[str, float] = SOURCE_TIERS,
        academic_suffixes: tuple[str, ...] = ACADEMIC_SUFFIXES,
        default_tier: float = DEFAULT_TIER,
    ) -> None:
        self.tiers = tiers
        self.academic_suffixes = academic_suffixes
        self.default_tier = default_tier

    @staticmethod
    def _host(url: str) -> str | None:
        try:
            host = urlparse(url).hostname
        except ValueError:
            return None
        if not host:
            return None
        return host.lower().removeprefix("www.")

    def rate(self, url: str) -> float:
        host = self._host(url)
        if host is None:
            logger.debug("Unparseable source URL %r, using default tier", url)
            return self.default_tier

        labels = host.split(".")
        for i in range(len(labels) - 1):
            candidate = ".".join(labels[i:])
            if candidate in self.tiers:
                return self.tiers[candidate]

        if host.endswith(self.academic_suffixes):
            return ACADEMIC_TIER
        return self.default_tier

    def label(self, url: str) -> str:
        return tier_label(self.rate(url))
