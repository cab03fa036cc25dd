"""Ranking of tracked DApps by hourly active users, built from checkpoint events."""

from __future__ import annotations

import logging
import threading
from datetime import datetime, timedelta, timezone

from .database import DatabaseManager
from .models import CheckpointData, CheckpointTransaction, DAppInteraction, DAppRanking

logger = logging.getLogger(__name__)

WINDOW = timedelta(hours=1)
RANKING_CHECKPOINT_STRIDE = 10
RANKING_INTERACTION_THRESHOLD = 5
DEFAULT_JOB_INTERVAL_SECONDS = 60.0

_TRACKED_DAPPS: dict[str, tuple[str, str]] = {
    "0xda12d621169da92ed8af5f6b332b7bec64c840bb49bb3d4206d6739cd76bad14": ("FanTV AI", "AI"),
    "0x2cdcc3b1306a49fcd5b8ccded57116ad86ab37a93ba9d91fa1ce06a8d22a21e9": ("6degrees", "Marketing"),
    "0xa2f06318d797e3a2ba734069165e164870677f705d95d8a18b6d9aabbd588709": ("Aftermath AMM", "DEX"),
    "0x04e20ddf36af412a4096f9014f4a565af9e812db9a05cc40254846cf6ed0ad91": ("Pyth", "Infra"),
    "0x9c12f3aa14a449a0a23c066589e269086f021a98939f21158cfacb16d19787c3": ("Momentum", "DEX"),
    "0x7ea6e27ad7af6f3b8671d59df1aaebd7c03dddab893e52a714227b2f4fe91519": ("7K Aggregator", "Aggregator"),
    "0xb908f3c6fea6865d32e2048c520cdfe3b5c5bbcebb658117c41bad70f52b7ccc": ("Claynosaurz", "NFT"),
    "0x21f544aff826a48e6bd5364498454d8487c4a90f84995604cd5c947c06b596c3": ("Suilend", "Lending"),
    "0x9df4666296ee324a6f11e9f664e35e7fd6b6e8c9e9058ce6ee9ad5c5343c2f87": ("Ika", "Infra"),
    "0x5306f64e312b581766351c07af79c72fcb1cd25147157fdc2f8ad76de9a3fb6a": ("Portal", "Bridge"),
    "0x2476333f61ab625ae25205b6726048295fe8b356d26ca841ddf93c69bbd616c8": ("Turbos", "DEX"),
    "0x6f5e582ede61fe5395b50c4a449ec11479a54d7ff8e0158247adfda60d98970b": ("Cetus AMM", "DEX"),
    "0x3864c7c59a4889fec05d1aae4bc9dba5a0e0940594b424fbed44cb3f6ac4c032": ("Cetus AMM", "DEX"),
    "0x51966dc1d9d3e6d85aed55aa87eb9e78e928b4e74b4844a15ef7e3dfb5af3bae": ("Cetus Aggregator", "Aggregator"),
    "0x7cdd26c4aa40c990d5ca780e0919b2de796be9bb41fba461d133bfacb0f677bc": ("Cetus Aggregator", "Aggregator"),
    "0x2c68443db9e8c813b194010c11040a3ce59f47e4eb97a2ec805371505dad7459": ("Wave", "Infra"),
    "0x8d196820b321bb3c56863b3eb0dd90a49f9eb52e3473373efcebf4388bf04416": ("SpringSui", "Liquid Staking"),
}


def _now() -> datetime:
    return datetime.now(timezone.utc)


class DAppIndexer:
    """Collects interactions with tracked DApps and ranks them by hourly active users."""

    def __init__(self) -> None:
        self.dapp_interactions: list[DAppInteraction] = []
        self.dapp_rankings: list[DAppRanking] = []
        self.dapp_names: dict[str, tuple[str, str]] = dict(_TRACKED_DAPPS)
        self.last_processed_checkpoint = 0
        self.lock = threading.RLock()

    def process_checkpoint(
        self, data: CheckpointData, db_manager: DatabaseManager | None = None
    ) -> list[DAppInteraction]:
        """Record the checkpoint's DApp interactions and return them.

        Checkpoints older than one hour are ignored. Rankings are recomputed
        (and saved when ``db_manager`` is given) every tenth checkpoint or when
        the checkpoint holds more than five interactions.
        """
        checkpoint_number = data.sequence_number
        checkpoint_timestamp = data.timestamp

        if checkpoint_timestamp < _now() - WINDOW:
            return []

        found = [
            interaction
            for transaction in data.transactions
            for interaction in self.extract_dapp_interactions(transaction, checkpoint_timestamp)
        ]
        self.dapp_interactions.extend(found)

        if found:
            logger.info(
                "📦 Checkpoint %d: %d DApp interactions found", checkpoint_number, len(found)
            )

        self.prune_old_interactions()

        if (
            checkpoint_number % RANKING_CHECKPOINT_STRIDE == 0
            or len(found) > RANKING_INTERACTION_THRESHOLD
        ):
            self.update_dapp_rankings_1h()
            if db_manager is not None:
                try:
                    self.update_data_in_database(db_manager)
                except Exception as err:  # keep indexing even if the database fails
                    logger.error("❌ Failed to update database: %s", err)

        self.last_processed_checkpoint = checkpoint_number
        return found

    def extract_dapp_interactions(
        self, transaction: CheckpointTransaction, checkpoint_timestamp: datetime
    ) -> list[DAppInteraction]:
        """Return an interaction for every event of a tracked DApp with a sender."""
        if transaction.events is None:
            return []
        interactions = []
        for event in transaction.events:
            mapping = self.dapp_names.get(event.package_id)
            if mapping is None or not event.sender:
                continue
            interactions.append(
                DAppInteraction(
                    package_id=event.package_id,
                    sender=event.sender,
                    timestamp=checkpoint_timestamp,
                    transaction_digest=transaction.digest,
                    dapp_name=mapping[0],
                )
            )
        return interactions

    def update_dapp_rankings_1h(self) -> None:
        """Recompute rankings from distinct senders per DApp name in the last hour."""
        now = _now()
        cutoff = now - WINDOW

        users_by_name: dict[str, set[str]] = {}
        for interaction in self.dapp_interactions:
            if interaction.timestamp < cutoff:
                continue
            mapping = self.dapp_names.get(interaction.package_id)
            if mapping is not None:
                users_by_name.setdefault(mapping[0], set()).add(interaction.sender)

        rankings = [
            DAppRanking(
                rank=0,
                package_id=self._first_package_for(name),
                dapp_name=name,
                dau_1h=len(users),
                last_update=now,
                dapp_type=self._type_for(name),
            )
            for name, users in users_by_name.items()
        ]
        rankings.sort(key=lambda ranking: ranking.dau_1h, reverse=True)
        for position, ranking in enumerate(rankings, start=1):
            ranking.rank = position

        if rankings:
            logger.info("🏆 Top DApps (1h HAU - Hourly Active Users):")
            for ranking in rankings[:5]:
                logger.info("  %d. %s - %d HAU", ranking.rank, ranking.dapp_name, ranking.dau_1h)

        self.dapp_rankings = rankings

    def prune_old_interactions(self) -> None:
        """Drop interactions older than an hour or from untracked packages."""
        cutoff = _now() - WINDOW
        initial_count = len(self.dapp_interactions)
        self.dapp_interactions = [
            interaction
            for interaction in self.dapp_interactions
            if interaction.timestamp >= cutoff and interaction.package_id in self.dapp_names
        ]
        removed = initial_count - len(self.dapp_interactions)
        if removed:
            logger.info(
                "🗑️ Pruned %d old interactions, %d remaining",
                removed,
                len(self.dapp_interactions),
            )

    def update_data_in_database(self, db_manager: DatabaseManager) -> None:
        """Clean up untracked rows and store the current rankings."""
        db_manager.cleanup_unknown_dapps()
        db_manager.save_rankings_from_memory(self.dapp_rankings)
        logger.info("💾 Updated DApp rankings in database")

    def get_data_from_database(self, db_manager: DatabaseManager) -> None:
        """Replace the in-memory rankings with those stored in the database."""
        rankings = []
        for record in db_manager.get_dapp_rankings():
            if record.last_update is None:
                last_update = _now()
            else:
                stamp = record.last_update
                if stamp.tzinfo is None:
                    stamp = stamp.replace(tzinfo=timezone.utc)
                last_update = stamp.astimezone(timezone.utc).replace(microsecond=0)
            rankings.append(
                DAppRanking(
                    rank=record.rank_position,
                    package_id=record.package_id,
                    dapp_name=record.dapp_name,
                    dau_1h=record.dau_1h,
                    last_update=last_update,
                    dapp_type=record.dapp_type,
                )
            )
        self.dapp_rankings = rankings
        logger.info("Loaded %d DApp rankings from database", len(rankings))

    def get_top_dapps(self, limit: int) -> list[DAppRanking]:
        """Return the first ``limit`` rankings."""
        if limit < 0:
            raise ValueError("limit must not be negative")
        return list(self.dapp_rankings[:limit])

    def reset_to_tracked_dapps_only(self) -> None:
        """Clear all interactions and rankings."""
        self.dapp_interactions.clear()
        self.dapp_rankings.clear()
        logger.info(
            "Reset indexer: cleared all data. Now tracking only %d DApps", len(self.dapp_names)
        )

    def reset_database_and_memory(self, db_manager: DatabaseManager) -> None:
        """Clear the stored rankings and all in-memory state."""
        logger.info("🔄 Starting complete data reset...")
        db_manager.reset_all_data()
        self.dapp_interactions.clear()
        self.dapp_rankings.clear()
        self.last_processed_checkpoint = 0
        logger.info("✅ Complete reset finished - database and memory cleared")
        logger.info("📱 Now tracking %d DApps from scratch", len(self.dapp_names))

    def _first_package_for(self, name: str) -> str:
        return next(
            (package_id for package_id, (dapp, _) in self.dapp_names.items() if dapp == name),
            "unknown",
        )

    def _type_for(self, name: str) -> str:
        return next(
            (dapp_type for dapp, dapp_type in self.dapp_names.values() if dapp == name),
            "Unknown",
        )


class RankingUpdateJob:
    """Background thread that refreshes and stores rankings at a fixed interval."""

    def __init__(
        self,
        indexer: DAppIndexer,
        db_manager: DatabaseManager,
        interval: float = DEFAULT_JOB_INTERVAL_SECONDS,
    ) -> None:
        if interval <= 0:
            raise ValueError("interval must be positive")
        self.indexer = indexer
        self.db_manager = db_manager
        self.interval = interval
        self._stopped = threading.Event()
        self._thread = threading.Thread(
            target=self._run, name="dapp-ranking-update", daemon=True
        )

    def start(self) -> "RankingUpdateJob":
        self._thread.start()
        return self

    def stop(self) -> None:
        """Ask the job to finish and wait for it."""
        self._stopped.set()
        if self._thread.is_alive():
            self._thread.join()

    def __enter__(self) -> "RankingUpdateJob":
        return self

    def __exit__(self, *exc_info) -> None:
        self.stop()

    def _run(self) -> None:
        while True:
            self._tick()
            if self._stopped.wait(self.interval):
                break

    def _tick(self) -> None:
        with self.indexer.lock:
            self.indexer.prune_old_interactions()
            self.indexer.update_dapp_rankings_1h()
            try:
                self.indexer.update_data_in_database(self.db_manager)
            except Exception as err:
                logger.error("Failed to update rankings in database: %s", err)
            else:
                logger.info("✅ Background job: Updated DApp rankings in database")


def start_ranking_update_job(
    indexer: DAppIndexer,
    db_manager: DatabaseManager,
    interval: float = DEFAULT_JOB_INTERVAL_SECONDS,
) -> RankingUpdateJob:
    """Start refreshing rankings now and every ``interval`` seconds after."""
    return RankingUpdateJob(indexer, db_manager, interval).start()