import logging
import random
from typing import Optional

from .aggregation import AggregationEngine
from .catalog import Catalog
from .config import Settings, settings as default_settings
from .libraries import LibraryStore
from .locks import KeyedLock
from .ratings import RatingEngine
from .recommendations import RecommendationEngine
from .storage import Storage, open_storage
from .users import UserDirectory

logger = logging.getLogger(__name__)


class BookRecommenderService:
    """One catalog, one storage backend and the engines built over them.

    The engines share a single ``KeyedLock`` so that every mutating call on
    the same key is serialised no matter which front end issued it.
    """

    def __init__(self, catalog: Catalog, storage: Storage, rng: Optional[random.Random] = None,
                 max_recommendations: Optional[int] = None) -> None:
        self.catalog = catalog
        self.storage = storage
        self.locks = KeyedLock()
        self.users = UserDirectory(storage)
        self.libraries = LibraryStore(catalog, storage, self.locks)
        self.ratings = RatingEngine(catalog, self.libraries, storage, self.locks)
        self.recommendations = RecommendationEngine(catalog, self.libraries, storage, self.locks,
                                                    limit=max_recommendations)
        self.aggregation = AggregationEngine(catalog, storage, rng)

    def close(self) -> None:
        self.storage.close()


def build_service(config: Optional[Settings] = None, rng: Optional[random.Random] = None) -> BookRecommenderService:
    """Open the configured backend and load the catalog from it."""
    config = config or default_settings
    storage = open_storage(config)
    catalog = Catalog.from_lookup(storage)
    logger.info("%s ready: %d books on the %s backend", config.app_name, len(catalog), config.backend)
    return BookRecommenderService(catalog, storage, rng=rng, max_recommendations=config.max_recommendations)
