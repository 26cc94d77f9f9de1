"""Keyword-based severity and status classification for incidents.

Everything here is pure: no I/O, no state, total over any input text.
"""

import re

from pulsemap.incidents.models import IncidentStatus, RawIncident, Severity

# Tiers are checked in this order; the first tier with a matching keyword wins.
SEVERITY_KEYWORDS: tuple[tuple[Severity, tuple[str, ...]], ...] = (
    (
        "critical",
        (
            "drap",
            "mord",
            "skyteepisode",
            "skyting",
            "knivstikking",
            "gisselsituasjon",
            "terror",
            "bomb",
            "eksplosjon",
            "livstruende",
            "alvorlig",
            "kritisk",
            "død",
            "dødelig",
            "voldtekt",
            "ran med våpen",
        ),
    ),
    (
        "high",
        (
            "ran",
            "brann",
            "vold",
            "trusler",
            "skadet",
            "ambulanse",
            "nødetater",
            "rømning",
            "ulykke",
            "kollisjon",
            "trafikkulykke",
            "innbrudd",
            "tyveri",
        ),
    ),
    (
        "medium",
        ("støy", "ordensforstyrrelser", "trafikk", "parkering", "hærverk", "slagsmål", "bråk"),
    ),
    ("low", ("melding", "hittegods", "assistance", "kontroll", "viltpåkjørsel")),
)

# Coarse category fallbacks, used only when no keyword matched
HIGH_CATEGORY_HINTS = ("vold", "ran", "brann")
MEDIUM_CATEGORY_HINTS = ("trafikk", "tyveri", "hærverk")

CLOSED_STATUS_PHRASES = ("avsluttet", "ferdig", "løst")
CLOSED_DESCRIPTION_PHRASES = ("avsluttet", "ingen tiltak")
UPDATED_STATUS_PHRASES = ("oppdatert", "pågår")

STOP_WORDS = frozenset(
    {
        "og", "i", "på", "til", "fra", "med", "av", "for", "er", "har",
        "det", "en", "et", "som", "var", "om", "være", "ved", "ikke", "den",
    }
)  # fmt: skip

_WORD_RE = re.compile(r"\b[\wæøå]+\b")


def classify_severity(incident: RawIncident) -> Severity:
    """Classify incident severity from category, description and title.

    Keyword tiers are evaluated most severe first, so a text containing
    both "drap" and "støy" is ``critical``. When no keyword matches, the
    category alone decides between ``high`` and ``medium``; otherwise
    the result is ``info``.
    """
    category = incident.category.lower()
    combined = f"{category} {incident.description.lower()} {incident.title.lower()}"

    for severity, keywords in SEVERITY_KEYWORDS:
        if any(keyword in combined for keyword in keywords):
            return severity

    if any(hint in category for hint in HIGH_CATEGORY_HINTS):
        return "high"
    if any(hint in category for hint in MEDIUM_CATEGORY_HINTS):
        return "medium"
    return "info"


def classify_status(incident: RawIncident) -> IncidentStatus:
    """Determine whether an incident is active, updated or closed.

    Closure phrases take priority over update phrases. Any
    ``last_modified`` timestamp marks the incident as updated.
    """
    status = (incident.status or "").lower()
    description = incident.description.lower()

    if any(p in status for p in CLOSED_STATUS_PHRASES) or any(
        p in description for p in CLOSED_DESCRIPTION_PHRASES
    ):
        return "closed"

    if any(p in status for p in UPDATED_STATUS_PHRASES) or incident.last_modified:
        return "updated"

    return "active"


def extract_keywords(incident: RawIncident, limit: int = 10) -> list[str]:
    """Extract up to ``limit`` unique keywords in order of appearance.

    Words of three characters or fewer and Norwegian stop words are dropped.
    """
    combined = f"{incident.category} {incident.description} {incident.title}".lower()
    keywords: list[str] = []
    for word in _WORD_RE.findall(combined):
        if len(word) <= 3 or word in STOP_WORDS or word in keywords:
            continue
        keywords.append(word)
        if len(keywords) >= limit:
            break
    return keywords
