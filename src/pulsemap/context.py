"""Process-wide wiring of the feed client, geocoder, store and sync service.

Everything that must exist once per process (the geocode cache, the
Nominatim rate-limit clock, the sync running flag) hangs off a single
``AppContext`` built at startup and closed at shutdown.
"""

import logging
from collections.abc import AsyncIterator
from contextlib import AsyncExitStack, asynccontextmanager
from dataclasses import dataclass

from pulsemap.core.config import PulseMapConfig, get_config
from pulsemap.geocoding.cache import GeocodeCache
from pulsemap.geocoding.nominatim import GeocodingService
from pulsemap.incidents.store import IncidentStore
from pulsemap.politiloggen.client import PolitiloggenClient
from pulsemap.sync.service import IncidentSyncService

logger = logging.getLogger(__name__)


@dataclass
class AppContext:
    config: PulseMapConfig
    feed: PolitiloggenClient
    geocoder: GeocodingService
    store: IncidentStore
    sync: IncidentSyncService


@asynccontextmanager
async def build_context(config: PulseMapConfig | None = None) -> AsyncIterator[AppContext]:
    """Construct and open every collaborator, closing them in reverse on exit.

    Raises:
        ValueError: If the feed or geocoder configuration is incomplete
    """
    config = config or get_config()

    feed = PolitiloggenClient(
        config.politiloggen_api_url,
        use_mock=config.politiloggen_use_mock,
        fallback_to_mock=config.politiloggen_fallback_to_mock,
    )
    geocoder = GeocodingService(
        config.nominatim_api_url,
        config.nominatim_user_agent,
        country=config.country,
        min_interval=config.geocoder_min_interval,
        cache=GeocodeCache(config.geocode_cache_size, config.geocode_negative_ttl),
    )

    async with AsyncExitStack() as stack:
        await stack.enter_async_context(feed)
        await stack.enter_async_context(geocoder)
        store = await stack.enter_async_context(IncidentStore())

        logger.info(
            "PulseMap context ready (feed=%s, store=%s)",
            "mock" if config.politiloggen_use_mock else config.politiloggen_api_url,
            "memory" if store.in_memory else "cosmos",
        )
        yield AppContext(
            config=config,
            feed=feed,
            geocoder=geocoder,
            store=store,
            sync=IncidentSyncService(feed, geocoder, store, district=config.default_district),
        )
