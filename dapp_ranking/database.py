"""Persistence of DApp rankings in a SQL database."""

from __future__ import annotations

import logging
from collections.abc import Iterable
from datetime import datetime, timezone

from sqlalchemy import (
    Column,
    Connection,
    DateTime,
    Integer,
    MetaData,
    String,
    Table,
    create_engine,
    delete,
    insert,
    or_,
    select,
)

from .models import DAppRanking, DAppRankingRecord

logger = logging.getLogger(__name__)

metadata = MetaData()

dapp_rankings = Table(
    "dapp_rankings",
    metadata,
    Column("rank_position", Integer, nullable=False),
    Column("package_id", String, primary_key=True),
    Column("dapp_name", String, nullable=False),
    Column("dau_1h", Integer, nullable=False),
    Column("dapp_type", String, nullable=False),
    Column("last_update", DateTime, nullable=True),
)

UNKNOWN_DAPP_NAME = "Unknown DApp"

TRACKED_PACKAGE_IDS: tuple[str, ...] = (
    "0xda12d621169da92ed8af5f6b332b7bec64c840bb49bb3d4206d6739cd76bad14",  # FanTV AI
    "0x2cdcc3b1306a49fcd5b8ccded57116ad86ab37a93ba9d91fa1ce06a8d22a21e9",  # 6degrees
    "0xa2f06318d797e3a2ba734069165e164870677f705d95d8a18b6d9aabbd588709",  # Aftermath AMM
    "0xada81624f2be6abd31f2433dac2642a03414cdb20d494314a4d3d889281fb5e",  # Pebble
    "0x04e20ddf36af412a4096f9014f4a565af9e812db9a05cc40254846cf6ed0ad91",  # Pyth
    "0x9c12f3aa14a449a0a23c066589e269086f021a98939f21158cfacb16d19787c3",  # Momentum
    "0x7ea6e27ad7af6f3b8671d59df1aaebd7c03dddab893e52a714227b2f4fe91519",  # 7K Aggregator
    "0xb908f3c6fea6865d32e2048c520cdfe3b5c5bbcebb658117c41bad70f52b7ccc",  # Claynosaurz
    "0x21f544aff826a48e6bd5364498454d8487c4a90f84995604cd5c947c06b596c3",  # Suilend
    "0x9df4666296ee324a6f11e9f664e35e7fd6b6e8c9e9058ce6ee9ad5c5343c2f87",  # Ika
    "0x0000000000000000000000000000000000000000000000000000000000000002",  # Sui
    "0x0000000000000000000000000000000000000000000000000000000000000001",  # Sui
    "0x5306f64e312b581766351c07af79c72fcb1cd25147157fdc2f8ad76de9a3fb6a",  # Portal
    "0x2476333f61ab625ae25205b6726048295fe8b356d26ca841ddf93c69bbd616c8",  # Turbos
    "0x6f5e582ede61fe5395b50c4a449ec11479a54d7ff8e0158247adfda60d98970b",  # Cetus AMM
    "0x3864c7c59a4889fec05d1aae4bc9dba5a0e0940594b424fbed44cb3f6ac4c032",  # Cetus AMM
    "0x51966dc1d9d3e6d85aed55aa87eb9e78e928b4e74b4844a15ef7e3dfb5af3bae",  # Cetus Aggregator
    "0x7cdd26c4aa40c990d5ca780e0919b2de796be9bb41fba461d133bfacb0f677bc",  # Cetus Aggregator
    "0x2c68443db9e8c813b194010c11040a3ce59f47e4eb97a2ec805371505dad7459",  # Wave
    "0x6d264cc3d4b7b81a7e3e47403b335d1d933ceb03dacc4328214f10bf8937a239",  # NAVI Lending
    "0x8d196820b321bb3c56863b3eb0dd90a49f9eb52e3473373efcebf4388bf04416",  # SpringSui
    "0x5a6df33a03a69959065b5e87aecac72d0afff893a1923833a77dcfb0d2f42980",  # Metastable
)


class DatabaseManager:
    """Reads and writes the ``dapp_rankings`` table through a pooled engine."""

    def __init__(self, database_url: str) -> None:
        self._engine = create_engine(database_url)
        metadata.create_all(self._engine, tables=[dapp_rankings], checkfirst=True)

    def __enter__(self) -> "DatabaseManager":
        return self

    def __exit__(self, *exc_info) -> None:
        self.close()

    def get_connection(self) -> Connection:
        """Check out a connection from the pool; use it as a context manager."""
        return self._engine.connect()

    def get_top_dapps(self, limit: int) -> list[DAppRankingRecord]:
        """Return up to ``limit`` rankings, best first."""
        if limit < 0:
            raise ValueError("limit must not be negative")
        query = select(dapp_rankings).order_by(dapp_rankings.c.rank_position.asc()).limit(limit)
        return self._load(query)

    def get_dapp_rankings(self) -> list[DAppRankingRecord]:
        """Return every ranking, best first."""
        query = select(dapp_rankings).order_by(dapp_rankings.c.rank_position.asc())
        return self._load(query)

    def cleanup_unknown_dapps(self) -> int:
        """Delete rankings of unknown DApps or untracked packages; return rows removed."""
        statement = delete(dapp_rankings).where(
            or_(
                dapp_rankings.c.dapp_name == UNKNOWN_DAPP_NAME,
                dapp_rankings.c.package_id.not_in(TRACKED_PACKAGE_IDS),
            )
        )
        with self._engine.begin() as conn:
            removed = conn.execute(statement).rowcount
        logger.info("Cleaned up Unknown DApps and untracked rankings from database")
        return removed

    def reset_all_data(self) -> int:
        """Delete all rankings; return the number deleted."""
        logger.info("🗑️ Resetting all DApp data in database...")
        with self._engine.begin() as conn:
            deleted = conn.execute(delete(dapp_rankings)).rowcount
        logger.info("✅ Database reset complete:")
        logger.info("  - Deleted %d DApp rankings", deleted)
        return deleted

    def save_rankings_from_memory(self, rankings: Iterable[DAppRanking]) -> None:
        """Replace the stored rankings with ``rankings``, stamped with the current time."""
        now = datetime.now(timezone.utc).replace(tzinfo=None)
        rows = [
            {
                "rank_position": ranking.rank,
                "package_id": ranking.package_id,
                "dapp_name": ranking.dapp_name,
                "dau_1h": ranking.dau_1h,
                "dapp_type": ranking.dapp_type,
                "last_update": now,
            }
            for ranking in rankings
        ]
        with self._engine.begin() as conn:
            conn.execute(delete(dapp_rankings))
            if rows:
                conn.execute(insert(dapp_rankings), rows)

    def close(self) -> None:
        """Release all pooled connections."""
        self._engine.dispose()

    def _load(self, query) -> list[DAppRankingRecord]:
        with self._engine.connect() as conn:
            return [DAppRankingRecord(**row._asdict()) for row in conn.execute(query)]