"""Offline incident data for development and feed outages.

Records are fixed. Their timestamps are placed relative to ``MOCK_ANCHOR``,
taken once per process, so a sync window of the last few days contains
them and every replay within the process yields identical records.
"""

from datetime import UTC, datetime, timedelta

from pulsemap.incidents.models import RawIncident

# (id, minutes ago, minutes ago last modified, location, category, subcategory,
#  title, description, status)
_MOCK_ROWS: tuple[tuple, ...] = (
    (
        "mock-001", 30, None, "Storgata 15", "Trafikkulykke", None,
        "Trafikkulykke med personskade",
        "Politiet rykket ut til en trafikkulykke på Storgata. En bil og en sykkel kolliderte. "
        "Syklist lettere skadet og kjørt til sykehus. Trafikken dirigeres forbi stedet.",
        "Pågår",
    ),
    (
        "mock-002", 60, None, "Karl Johans gate 22", "Tyveri", "Butikktyveri",
        "Anmeldt tyveri fra butikk",
        "Politiet fikk melding om tyveri fra butikk i sentrum. En person observert forlate "
        "butikken med stjålne varer. Politiet har fått signalement og søker etter "
        "gjerningsperson.",
        "Under etterforskning",
    ),
    (
        "mock-003", 90, 60, "Grünerløkka", "Ordensforstyrrelser", None,
        "Støyklager",
        "Politiet fikk melding om støyklager fra beboere i området. Patrulje rykket ut og ba "
        "de ansvarlige om å dempe musikken. Situasjonen er nå avsluttet.",
        "Avsluttet",
    ),
    (
        "mock-004", 120, None, "Majorstuen T-banestasjon", "Ran", None,
        "Forsøk på ran",
        "Politiet fikk melding om forsøk på ran ved T-banestasjonen. Fornærmet ikke fysisk "
        "skadet. Gjerningsperson stakk fra stedet. Politiet jobber med etterforskning.",
        "Under etterforskning",
    ),
    (
        "mock-005", 150, None, "Aker Brygge", "Hærverk", None,
        "Hærverk mot kjøretøy",
        "Anmeldt hærverk mot parkert kjøretøy ved Aker Brygge. Vindu knust. Politiet har tatt "
        "foto av skadestedet og etterforsker saken.",
        "Under etterforskning",
    ),
    (
        "mock-006", 180, None, "Vigelandsparken", "Melding", None,
        "Savnet person funnet",
        "En person som ble meldt savnet tidligere i dag er nå funnet i god behold i "
        "Vigelandsparken. Pårørende er varslet.",
        "Avsluttet",
    ),
    (
        "mock-007", 210, None, "E18 ved Lysaker", "Trafikkulykke", None,
        "Trafikkuhell - materielle skader",
        "Politiet på stedet etter trafikkuhell på E18. To biler involvert. Kun materielle "
        "skader. Trafikken går sakte forbi ulykkesstedet.",
        "Pågår",
    ),
    (
        "mock-008", 240, None, "Sofienberg park", "Narkotika", None,
        "Beslag av narkotika",
        "Politipatrulje stanset person i Sofienberg park. Ved kontroll ble det funnet mindre "
        "mengde narkotika. Person pågrepet og vil bli fremstilt for varetektsfengsling.",
        "Avsluttet",
    ),
    (
        "mock-009", 270, None, "Oslo S", "Vold", None,
        "Slagsmål",
        "Politiet rykket ut til melding om slagsmål ved Oslo S. To personer involvert. Begge "
        "parter er identifisert og anmeldt for vold. Ingen alvorlige skader.",
        "Under etterforskning",
    ),
    (
        "mock-010", 300, None, "Frogner", "Innbrudd", None,
        "Innbrudd i leilighet",
        "Politiet fikk anmeldelse om innbrudd i leilighet i Frogner. Innbrudd skjedde mens "
        "beboere var borte. Verdisaker stjålet. Krimteknikere har undersøkt åstedet.",
        "Under etterforskning",
    ),
    (
        "mock-011", 330, None, "Bogstadveien", "Brann", None,
        "Brann i søppelcontainer",
        "Politiet og brannvesen rykket ut til brann i søppelcontainer på Bogstadveien. "
        "Brannen er slukket. Ingen personskader. Årsak under etterforskning.",
        "Avsluttet",
    ),
    (
        "mock-012", 360, None, "Torggata", "Vinningskriminalitet", "Lommetyveri",
        "Lommetyveri anmeldt",
        "Person anmeldte lommetyveri etter å ha oppdaget at lommebok var stjålet. Hendelsen "
        "skal ha skjedd i travle Torggata. Politiet oppfordrer til ekstra årvåkenhet.",
        "Under etterforskning",
    ),
)  # fmt: skip

MOCK_DISTRICT = "Oslo"
MOCK_ANCHOR = datetime.now(UTC).replace(second=0, microsecond=0)


def mock_incidents(now: datetime | None = None) -> list[RawIncident]:
    """Build every mock incident, timestamped relative to ``now`` (default ``MOCK_ANCHOR``)."""
    now = now or MOCK_ANCHOR
    incidents = []
    for (
        incident_id,
        minutes_ago,
        modified_minutes_ago,
        location,
        category,
        subcategory,
        title,
        description,
        status,
    ) in _MOCK_ROWS:
        last_modified = None
        if modified_minutes_ago is not None:
            last_modified = now - timedelta(minutes=modified_minutes_ago)
        incidents.append(
            RawIncident(
                id=incident_id,
                published=now - timedelta(minutes=minutes_ago),
                last_modified=last_modified,
                location=location,
                district=MOCK_DISTRICT,
                category=category,
                subcategory=subcategory,
                title=title,
                description=description,
                status=status,
            )
        )
    return incidents


def get_mock_incidents(
    district: str | None = None,
    from_: datetime | None = None,
    to: datetime | None = None,
    *,
    now: datetime | None = None,
) -> list[RawIncident]:
    """Mock incidents filtered by district (case-insensitive) and time window."""
    incidents = mock_incidents(now)
    if district:
        incidents = [i for i in incidents if i.district.lower() == district.lower()]
    if from_:
        incidents = [i for i in incidents if i.published >= from_]
    if to:
        incidents = [i for i in incidents if i.published <= to]
    return incidents


def get_mock_incident_by_id(incident_id: str, *, now: datetime | None = None) -> RawIncident | None:
    """Look up a single mock incident."""
    for incident in mock_incidents(now):
        if incident.id == incident_id:
            return incident
    return None
