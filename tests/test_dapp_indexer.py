from datetime import datetime, timedelta, timezone

import pytest

from dapp_ranking.dapp_indexer import DAppIndexer, RankingUpdateJob, start_ranking_update_job
from dapp_ranking.database import DatabaseManager
from dapp_ranking.models import (
    CheckpointData,
    CheckpointTransaction,
    DAppInteraction,
    Event,
)

CETUS_AMM_1 = "0x6f5e582ede61fe5395b50c4a449ec11479a54d7ff8e0158247adfda60d98970b"
CETUS_AMM_2 = "0x3864c7c59a4889fec05d1aae4bc9dba5a0e0940594b424fbed44cb3f6ac4c032"
SUILEND = "0x21f544aff826a48e6bd5364498454d8487c4a90f84995604cd5c947c06b596c3"
PYTH = "0x04e20ddf36af412a4096f9014f4a565af9e812db9a05cc40254846cf6ed0ad91"
UNTRACKED = "0x00000000000000000000000000000000000000000000000000000000000000ab"


def _ms(moment):
    return int(moment.timestamp() * 1000)


def _checkpoint(seq, events_per_tx, when=None):
    when = when or datetime.now(timezone.utc)
    transactions = tuple(
        CheckpointTransaction(
            digest=f"digest{i}",
            events=None if events is None else tuple(Event(p, s) for p, s in events),
        )
        for i, events in enumerate(events_per_tx)
    )
    return CheckpointData(seq, _ms(when), transactions)


@pytest.fixture
def db(tmp_path):
    manager = DatabaseManager(f"sqlite:///{tmp_path / 'rankings.db'}")
    yield manager
    manager.close()


def test_dapp_indexer_creation():
    indexer = DAppIndexer()
    assert len(indexer.dapp_interactions) == 0
    assert len(indexer.dapp_rankings) == 0
    assert len(indexer.dapp_names) > 0
    assert indexer.last_processed_checkpoint == 0


def test_extract_keeps_only_tracked_events_with_sender():
    indexer = DAppIndexer()
    now = datetime.now(timezone.utc)
    tx = CheckpointTransaction(
        "abc",
        (Event(SUILEND, "0xa1"), Event(UNTRACKED, "0xa2"), Event(PYTH, "")),
    )
    result = indexer.extract_dapp_interactions(tx, now)
    assert result == [DAppInteraction(SUILEND, "0xa1", now, "abc", "Suilend")]


def test_extract_without_events_is_empty():
    indexer = DAppIndexer()
    tx = CheckpointTransaction("abc", None)
    assert indexer.extract_dapp_interactions(tx, datetime.now(timezone.utc)) == []


def test_old_checkpoint_is_skipped():
    indexer = DAppIndexer()
    old = datetime.now(timezone.utc) - timedelta(hours=2)
    result = indexer.process_checkpoint(_checkpoint(10, [[(SUILEND, "0xa1")]], old))
    assert result == []
    assert indexer.dapp_interactions == []
    assert indexer.last_processed_checkpoint == 0


def test_rankings_group_by_name_and_sort():
    indexer = DAppIndexer()
    data = _checkpoint(
        10,
        [
            [(CETUS_AMM_1, "0xa1"), (CETUS_AMM_2, "0xa1"), (CETUS_AMM_2, "0xa2")],
            [(SUILEND, "0xa3")],
            [(UNTRACKED, "0xa4")],
        ],
    )
    found = indexer.process_checkpoint(data)
    assert len(found) == 4
    assert indexer.last_processed_checkpoint == 10
    names = [(r.rank, r.dapp_name, r.dau_1h) for r in indexer.dapp_rankings]
    assert names == [(1, "Cetus AMM", 2), (2, "Suilend", 1)]
    cetus = indexer.dapp_rankings[0]
    assert cetus.package_id == CETUS_AMM_1
    assert cetus.dapp_type == "DEX"


def test_rankings_not_updated_on_small_non_stride_checkpoint():
    indexer = DAppIndexer()
    indexer.process_checkpoint(_checkpoint(3, [[(SUILEND, "0xa1")]]))
    assert indexer.dapp_rankings == []
    assert len(indexer.dapp_interactions) == 1
    assert indexer.last_processed_checkpoint == 3


def test_many_interactions_trigger_rankings():
    indexer = DAppIndexer()
    events = [[(PYTH, f"0xb{i}")] for i in range(6)]
    indexer.process_checkpoint(_checkpoint(7, events))
    assert [(r.dapp_name, r.dau_1h) for r in indexer.dapp_rankings] == [("Pyth", 6)]


def test_prune_removes_old_and_untracked():
    indexer = DAppIndexer()
    now = datetime.now(timezone.utc)
    keep = DAppInteraction(SUILEND, "0xa1", now, "d1", "Suilend")
    indexer.dapp_interactions = [
        keep,
        DAppInteraction(SUILEND, "0xa2", now - timedelta(hours=2), "d2", "Suilend"),
        DAppInteraction(UNTRACKED, "0xa3", now, "d3", None),
    ]
    indexer.prune_old_interactions()
    assert indexer.dapp_interactions == [keep]


def test_get_top_dapps_limits():
    indexer = DAppIndexer()
    events = [[(PYTH, "0xa1"), (PYTH, "0xa2"), (SUILEND, "0xa1")]]
    indexer.process_checkpoint(_checkpoint(20, events))
    top = indexer.get_top_dapps(1)
    assert [r.dapp_name for r in top] == ["Pyth"]
    assert len(indexer.get_top_dapps(10)) == 2
    with pytest.raises(ValueError):
        indexer.get_top_dapps(-1)


def test_reset_to_tracked_dapps_only():
    indexer = DAppIndexer()
    indexer.process_checkpoint(_checkpoint(10, [[(PYTH, "0xa1")]]))
    indexer.reset_to_tracked_dapps_only()
    assert indexer.dapp_interactions == []
    assert indexer.dapp_rankings == []
    assert indexer.last_processed_checkpoint == 10


def test_process_saves_and_loads_from_database(db):
    indexer = DAppIndexer()
    events = [[(PYTH, "0xa1"), (PYTH, "0xa2"), (SUILEND, "0xa3")]]
    indexer.process_checkpoint(_checkpoint(30, events), db)
    stored = db.get_dapp_rankings()
    assert [(r.rank_position, r.dapp_name, r.dau_1h) for r in stored] == [
        (1, "Pyth", 2),
        (2, "Suilend", 1),
    ]

    fresh = DAppIndexer()
    fresh.get_data_from_database(db)
    assert [(r.rank, r.package_id, r.dapp_type) for r in fresh.dapp_rankings] == [
        (1, PYTH, "Infra"),
        (2, SUILEND, "Lending"),
    ]
    assert fresh.dapp_rankings[0].last_update.tzinfo is not None
    assert fresh.dapp_rankings[0].last_update.microsecond == 0


def test_database_failure_does_not_stop_processing():
    class FailingDatabase:
        def cleanup_unknown_dapps(self):
            raise RuntimeError("down")

    indexer = DAppIndexer()
    found = indexer.process_checkpoint(_checkpoint(40, [[(PYTH, "0xa1")]]), FailingDatabase())
    assert len(found) == 1
    assert indexer.last_processed_checkpoint == 40
    assert [r.dapp_name for r in indexer.dapp_rankings] == ["Pyth"]


def test_reset_database_and_memory(db):
    indexer = DAppIndexer()
    indexer.process_checkpoint(_checkpoint(50, [[(PYTH, "0xa1")]]), db)
    assert len(db.get_dapp_rankings()) == 1
    indexer.reset_database_and_memory(db)
    assert db.get_dapp_rankings() == []
    assert indexer.dapp_interactions == []
    assert indexer.dapp_rankings == []
    assert indexer.last_processed_checkpoint == 0


def test_ranking_update_job_writes_rankings(db):
    indexer = DAppIndexer()
    indexer.process_checkpoint(_checkpoint(1, [[(SUILEND, "0xa1")], [(SUILEND, "0xa2")]]))
    assert indexer.dapp_rankings == []
    job = start_ranking_update_job(indexer, db, 0.05)
    job.stop()
    assert [(r.dapp_name, r.dau_1h) for r in indexer.dapp_rankings] == [("Suilend", 2)]
    assert [r.dapp_name for r in db.get_dapp_rankings()] == ["Suilend"]


def test_ranking_update_job_rejects_bad_interval(db):
    with pytest.raises(ValueError):
        RankingUpdateJob(DAppIndexer(), db, 0)