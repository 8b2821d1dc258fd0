import logging
import time
from pathlib import Path

from sqlalchemy import text
from sqlalchemy.exc import OperationalError
from sqlalchemy.orm import Session

from agriconnect.config import settings
from agriconnect.models.database import Base, _normalize_database_url, engine
from agriconnect.models import Category  # noqa: F401 - registers all models on Base

logger = logging.getLogger(__name__)

DEFAULT_CATEGORIES = [
    ("Vegetables", "Fresh vegetables from Rwandan farms"),
    ("Fruits", "Seasonal and tropical fruits"),
    ("Grains & Cereals", "Maize, rice, sorghum and other grains"),
    ("Legumes", "Beans, peas, soybeans and groundnuts"),
    ("Tubers", "Potatoes, sweet potatoes and cassava"),
    ("Dairy", "Milk and dairy products"),
    ("Coffee & Tea", "Rwandan coffee and tea"),
]


def wait_for_db(retries: int, retry_delay_seconds: int) -> None:
    """Wait for database to accept connections before running migrations."""
    last_error = None
    for attempt in range(1, retries + 1):
        try:
            with engine.connect() as conn:
                conn.execute(text("SELECT 1"))
            logger.info("Database connection established on attempt %s", attempt)
            return
        except OperationalError as exc:
            last_error = exc
            logger.warning(
                "Database not reachable yet (attempt %s/%s): %s",
                attempt,
                retries,
                exc,
            )
            if attempt < retries:
                time.sleep(retry_delay_seconds)

    raise RuntimeError(
        "Database is unreachable after "
        f"{retries} attempts. Check DATABASE_URL and ensure the DB server is running."
    ) from last_error


def init_db():
    wait_for_db(
        retries=settings.DB_CONNECT_RETRIES,
        retry_delay_seconds=settings.DB_CONNECT_RETRY_DELAY_SECONDS,
    )
    if settings.DATABASE_URL.startswith("sqlite://"):
        Base.metadata.create_all(bind=engine)
        return

    run_migrations()
    Base.metadata.create_all(bind=engine)


def run_migrations() -> None:
    """Apply Alembic migrations to the latest revision."""
    from alembic import command
    from alembic.config import Config

    project_root = Path(__file__).resolve().parent.parent
    alembic_ini = project_root / "alembic.ini"
    script_location = project_root / "alembic"
    if not alembic_ini.exists() or not script_location.exists():
        raise RuntimeError("Alembic configuration is missing (alembic.ini or alembic/ directory not found).")

    config = Config(str(alembic_ini))
    config.set_main_option("script_location", str(script_location))
    config.set_main_option("sqlalchemy.url", _normalize_database_url(settings.DATABASE_URL))
    command.upgrade(config, "head")


def seed_categories(db_session: Session) -> int:
    """Insert the default categories that are missing; returns how many were added."""
    existing = {name for (name,) in db_session.query(Category.name).all()}
    added = 0
    for name, description in DEFAULT_CATEGORIES:
        if name in existing:
            continue
        db_session.add(Category(name=name, description=description))
        added += 1
    if added:
        db_session.commit()
        logger.info("Seeded %s product categories", added)
    return added
