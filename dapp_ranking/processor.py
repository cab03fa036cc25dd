"""Command that feeds checkpoints to the DApp ranking indexer."""

from __future__ import annotations

import argparse
import json
import logging
import os
import time
from collections import Counter
from collections.abc import Iterator, Sequence
from operator import attrgetter
from pathlib import Path

from .config import Config, ConfigError
from .dapp_indexer import DAppIndexer, start_ranking_update_job
from .database import DatabaseManager
from .models import CheckpointData, DAppInteraction

logger = logging.getLogger(__name__)

DEFAULT_CHECKPOINTS_DIR = "checkpoints"
DEFAULT_POLL_INTERVAL_SECONDS = 1.0
TOP_RANKINGS_SHOWN = 10
TOP_RANKINGS_AT_START = 5
_SEPARATOR = "------------------------------------"


class DAppIndexerWorker:
    """Processes checkpoints one at a time against a shared indexer."""

    def __init__(self, indexer: DAppIndexer, db_manager: DatabaseManager | None) -> None:
        self.indexer = indexer
        self.db_manager = db_manager

    def process_checkpoint(self, checkpoint: CheckpointData) -> list[DAppInteraction]:
        """Index one checkpoint, log what was found and return its interactions."""
        with self.indexer.lock:
            interactions = self.indexer.process_checkpoint(checkpoint, self.db_manager)
            if interactions:
                self._log_details(checkpoint, interactions)
        return interactions

    def _log_details(
        self, checkpoint: CheckpointData, interactions: list[DAppInteraction]
    ) -> None:
        logger.info(_SEPARATOR)
        logger.info("CHECKPOINT: %d", checkpoint.sequence_number)
        logger.info("Timestamp: %d", checkpoint.timestamp_ms)
        logger.info("Found %d DApp interactions", len(interactions))

        counts = Counter(
            interaction.dapp_name or interaction.package_id for interaction in interactions
        )
        for dapp_name, count in counts.items():
            logger.info("  📱 %s: %d interactions", dapp_name, count)

        rankings = self.indexer.dapp_rankings
        if rankings:
            logger.info("🏆 Current Top DApps (1h HAU):")
            for position, ranking in enumerate(rankings[:TOP_RANKINGS_SHOWN], start=1):
                logger.info("  %d. %s - %d HAU", position, ranking.dapp_name, ranking.dau_1h)
        logger.info(_SEPARATOR)


def iter_checkpoints(directory: str | os.PathLike[str]) -> Iterator[CheckpointData]:
    """Yield the JSON checkpoints stored in ``directory`` in sequence order."""
    root = Path(directory)
    if not root.is_dir():
        raise FileNotFoundError(f"checkpoint directory not found: {root}")
    checkpoints = []
    for path in root.glob("*.json"):
        with path.open(encoding="utf-8") as handle:
            try:
                raw = json.load(handle)
            except json.JSONDecodeError as exc:
                raise ValueError(f"{path}: invalid JSON: {exc}") from exc
        checkpoints.append(CheckpointData.from_dict(raw))
    yield from sorted(checkpoints, key=attrgetter("sequence_number"))


def _read_progress(path: Path) -> int:
    try:
        text = path.read_text(encoding="utf-8").strip()
    except FileNotFoundError:
        return 0
    return int(text) if text else 0


def _write_progress(path: Path, next_sequence_number: int) -> None:
    path.parent.mkdir(parents=True, exist_ok=True)
    temporary = path.with_name(path.name + ".tmp")
    temporary.write_text(f"{next_sequence_number}\n", encoding="utf-8")
    temporary.replace(path)


def _parse_bool(value: str, default: bool = True) -> bool:
    if value == "true":
        return True
    if value == "false":
        return False
    return default


def _parse_args(argv: Sequence[str] | None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(
        prog="dapp-ranking",
        description="Rank tracked DApps by hourly active users from checkpoint files.",
    )
    parser.add_argument(
        "--once",
        action="store_true",
        help="process the checkpoints present now and exit instead of waiting for more",
    )
    parser.add_argument(
        "--poll-interval",
        type=float,
        default=DEFAULT_POLL_INTERVAL_SECONDS,
        help="seconds between scans of the checkpoint directory",
    )
    args = parser.parse_args(argv)
    if args.poll_interval <= 0:
        parser.error("--poll-interval must be positive")
    return args


def _run(
    worker: DAppIndexerWorker,
    checkpoints_dir: Path,
    progress_path: Path,
    once: bool,
    poll_interval: float,
) -> None:
    next_sequence_number = _read_progress(progress_path)
    while True:
        for checkpoint in iter_checkpoints(checkpoints_dir):
            if checkpoint.sequence_number < next_sequence_number:
                continue
            worker.process_checkpoint(checkpoint)
            next_sequence_number = checkpoint.sequence_number + 1
            _write_progress(progress_path, next_sequence_number)
        if once:
            return
        time.sleep(poll_interval)


def _show_rankings(indexer: DAppIndexer) -> None:
    rankings = indexer.dapp_rankings
    if not rankings:
        logger.info("ℹ️ No existing DApp rankings found in database")
        return
    logger.info("🏆 Current Top DApps (1h HAU):")
    for position, ranking in enumerate(rankings[:TOP_RANKINGS_AT_START], start=1):
        logger.info("  %d. %s - %d HAU", position, ranking.dapp_name, ranking.dau_1h)


def main(argv: Sequence[str] | None = None) -> int:
    """Run the checkpoint processor; return the process exit status."""
    args = _parse_args(argv)
    logging.basicConfig(
        level=logging.INFO, format="%(asctime)s %(levelname)s %(message)s"
    )

    try:
        config = Config.from_env()
    except ConfigError as err:
        logger.error("❌ Failed to initialize configuration: %s", err)
        return 1

    checkpoints_dir = Path(os.environ.get("CHECKPOINTS_DIR", DEFAULT_CHECKPOINTS_DIR))
    remote_storage = os.environ.get("REMOTE_STORAGE")
    progress_path = Path(
        os.environ.get("BACKFILL_PROGRESS_FILE", config.backfill_progress_file_path)
    )
    use_database = _parse_bool(os.environ.get("USE_DATABASE", "true"))

    logger.info("🚀 Starting DApp Ranking Indexer (1h HAU)")
    logger.info("📁 Checkpoints dir: %s", checkpoints_dir)
    if remote_storage:
        logger.info("☁️ Remote storage: %s", remote_storage)
    logger.info("💾 Database enabled: %s", use_database)
    logger.info("📱 Tracking DApp interactions for ranking")

    checkpoints_dir.mkdir(parents=True, exist_ok=True)
    indexer = DAppIndexer()

    with DatabaseManager(config.database_url) as db_manager:
        if use_database:
            logger.info("✅ Database manager initialized")
            with indexer.lock:
                try:
                    indexer.reset_database_and_memory(db_manager)
                except Exception as err:
                    logger.error("❌ Failed to reset database: %s", err)
                    return 1
                _show_rankings(indexer)
            logger.info("🚀 Starting fresh with clean database and memory")

        worker = DAppIndexerWorker(indexer, db_manager)
        job = None
        if use_database:
            logger.info("🔄 Starting background database update job")
            job = start_ranking_update_job(indexer, db_manager)

        logger.info("⏳ Starting DApp ranking checkpoint processing...")
        try:
            _run(worker, checkpoints_dir, progress_path, args.once, args.poll_interval)
        except KeyboardInterrupt:
            logger.info("Stopping checkpoint processing")
        finally:
            if job is not None:
                job.stop()
    return 0


if __name__ == "__main__":
    raise SystemExit(main())