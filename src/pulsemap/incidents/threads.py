"""Thread grouping for incident reports.

A thread is every report about one evolving real-world event. The feed
sometimes supplies an explicit group id; otherwise the key is derived
from the publication date, location and category. Unrelated events that
share all three on the same day land in the same thread.
"""

import re
from datetime import UTC

from pulsemap.incidents.models import RawIncident

_NON_ALNUM_RE = re.compile(r"[^a-z0-9]")


def _key_part(text: str) -> str:
    """Lower-case and strip everything outside ASCII ``[a-z0-9]``."""
    return _NON_ALNUM_RE.sub("", text.lower())


def extract_thread_id(incident: RawIncident) -> str:
    """Return the thread key for an incident.

    Uses ``incident.group_id`` verbatim when present. Otherwise builds
    ``YYYY-MM-DD-<location>-<category>`` from the UTC publication date.

    Example: "Storgata 15" / "Trafikkulykke" published 2026-02-12T09:30Z
    gives ``2026-02-12-storgata15-trafikkulykke``.
    """
    if incident.group_id:
        return incident.group_id

    date_str = incident.published.astimezone(UTC).strftime("%Y-%m-%d")
    return f"{date_str}-{_key_part(incident.location)}-{_key_part(incident.category)}"
