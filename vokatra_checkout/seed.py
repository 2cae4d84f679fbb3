"""Load products and delivery dates from CSV files.

Usage: python -m vokatra_checkout.seed [DATA_DIR]

Rows are upserted by id, so re-running the seed refreshes prices, stock and
active flags without touching orders or donations.
"""
import csv
import datetime
import sys
from pathlib import Path
from sqlalchemy.engine import Engine
from vokatra_checkout.core.logging_config import get_logger, setup_logging
from vokatra_checkout.core_settings import get_settings
from vokatra_checkout.domain.models import DeliveryDate, Product
from vokatra_checkout.infrastructure.db import build_engine, build_session_factory, init_models

logger = get_logger(__name__)

DATA_DIR = Path("seed_data")

TABLE_FILES = {
    "products": "products.csv",
    "delivery_dates": "delivery_dates.csv",
}

def _bool(value: str) -> bool:
    return str(value).strip().lower() in ("1", "true", "yes", "t")

def _product(row: dict) -> Product:
    return Product(
        id=row["id"],
        name=row["name"],
        emoji=row.get("emoji") or None,
        unit_price_cents=int(row["unit_price_cents"]),
        stock_qty=int(row["stock_qty"]),
        active=_bool(row.get("active", "true")),
    )

def _delivery_date(row: dict) -> DeliveryDate:
    return DeliveryDate(
        id=row["id"],
        delivery_date=datetime.date.fromisoformat(row["delivery_date"]),
        label=row["label"],
        active=_bool(row.get("active", "true")),
    )

ROW_BUILDERS = {
    "products": _product,
    "delivery_dates": _delivery_date,
}

def load_table(engine: Engine, table: str, path: Path) -> int:
    if not path.exists():
        logger.warning(f"Seed file {path} not found; skipping {table}")
        return 0
    build = ROW_BUILDERS[table]
    session_factory = build_session_factory(engine)
    with open(path, newline="", encoding="utf-8") as f, session_factory() as db:
        rows = list(csv.DictReader(f))
        for row in rows:
            db.merge(build(row))
        db.commit()
    logger.info(f"Loaded {len(rows)} rows into {table}")
    return len(rows)

def main(data_dir: Path = DATA_DIR, engine: Engine = None) -> dict:
    engine = engine or build_engine()
    init_models(engine)
    return {table: load_table(engine, table, data_dir / file) for table, file in TABLE_FILES.items()}

if __name__ == "__main__":
    settings = get_settings()
    setup_logging(service_name=f"{settings.SERVICE_NAME}-seed", level=settings.LOG_LEVEL)
    main(Path(sys.argv[1]) if len(sys.argv) > 1 else DATA_DIR)
