import logging
from logging import INFO

from tortoise import Tortoise

from marketplace.core.config import DB_URL

log = logging.getLogger(__name__)

# Set logging level for Tortoise ORM
logging.getLogger('tortoise').setLevel(INFO)

# Define all models modules for the ORM
MODELS_MODULES = [
    "marketplace.models.user",
    "marketplace.models.catalog",
    "marketplace.models.order",
    "marketplace.models.discount",
    "marketplace.models.outbox",
    "marketplace.models.processed_event",
]


async def init_db(db_url: str = DB_URL, generate_schemas: bool = True):
    """Initializes the Tortoise ORM connection and generates schemas."""
    try:
        await Tortoise.init(
            db_url=db_url,
            modules={"models": MODELS_MODULES},
        )
        if generate_schemas:
            await Tortoise.generate_schemas()
        log.info("Database connection established and schemas generated.")
    except Exception:
        log.exception("FATAL ERROR: Could not connect to database at %s.", db_url)
        # Re-raise to prevent the application from starting without a database
        raise


async def close_db():
    """Closes all database connections."""
    await Tortoise.close_connections()
    log.info("Database connections closed.")
