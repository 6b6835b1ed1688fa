"""
Unit tests for the Record Store.
Covers dedup, ordering, incremental window and persistence.
"""

import pytest
import json
import os
import tempfile
from crypto_complaints.models.complaint import ComplaintRecord
from crypto_complaints.registry.record_store import RecordStore


def make_hit(complaint_id, date_received="2024-06-01", company="Coinbase, Inc.", **extra):
    hit = {
        "_id": complaint_id,
        "_source": {
            "complaint_id": complaint_id,
            "date_received": date_received,
            "company": company,
            "complaint_what_happened": "",
        },
    }
    hit.update(extra)
    return hit


def make_record(complaint_id, date_received="2024-06-01"):
    return ComplaintRecord.from_hit(make_hit(complaint_id, date_received))


def write_store(path, hits):
    with open(path, 'w') as f:
        json.dump({"hits": {"total": {"value": len(hits)}, "hits": hits}}, f)


def test_complaint_record_requires_id():
    """Records without an id are rejected."""
    with pytest.raises(ValueError):
        ComplaintRecord(id="")

    with pytest.raises(ValueError):
        ComplaintRecord.from_hit({"_source": {"company": "Abra"}})


def test_new_store_is_empty():
    with tempfile.TemporaryDirectory() as tmpdir:
        store = RecordStore(os.path.join(tmpdir, "complaints.json"))

        assert len(store) == 0
        assert store.latest_date() is None
        assert store.incremental_since() is None


def test_merge_adds_only_unseen_ids():
    """{A, B} merged with {B, C} gives {A, B, C} and one addition."""
    with tempfile.TemporaryDirectory() as tmpdir:
        store = RecordStore(os.path.join(tmpdir, "complaints.json"))
        store.merge([make_record("A"), make_record("B")])

        added = store.merge([make_record("B"), make_record("C")])

        assert added == 1
        assert store.ids == {"A", "B", "C"}
        assert len(store) == 3


def test_merge_keeps_existing_copy_on_duplicate():
    """A re-fetched record never replaces the stored one."""
    with tempfile.TemporaryDirectory() as tmpdir:
        store = RecordStore(os.path.join(tmpdir, "complaints.json"))
        original = ComplaintRecord(id="A", received_date="2024-06-01", company="Abra")
        store.merge([original])

        store.merge([ComplaintRecord(id="A", received_date="2024-06-02", company="Other")])

        assert len(store) == 1
        assert store.get("A").company == "Abra"


def test_merge_deduplicates_within_batch():
    with tempfile.TemporaryDirectory() as tmpdir:
        store = RecordStore(os.path.join(tmpdir, "complaints.json"))

        added = store.merge([make_record("A"), make_record("A")])

        assert added == 1
        assert len(store) == 1


def test_sort_newest_first_with_undated_last():
    with tempfile.TemporaryDirectory() as tmpdir:
        store = RecordStore(os.path.join(tmpdir, "complaints.json"))
        store.merge([
            make_record("old", "2024-01-15"),
            make_record("nodate", None),
            make_record("new", "2024-06-20T00:00:00-05:00"),
            make_record("bad", "not-a-date"),
            make_record("mid", "2024-03-01"),
        ])

        ids = [r.id for r in store.records]
        assert ids[:3] == ["new", "mid", "old"]
        assert set(ids[3:]) == {"nodate", "bad"}


def test_incremental_since_overlaps_latest_date():
    """Next fetch window starts several days before the latest stored date."""
    with tempfile.TemporaryDirectory() as tmpdir:
        store = RecordStore(os.path.join(tmpdir, "complaints.json"))
        store.merge([
            make_record("A", "2024-06-10T12:00:00-04:00"),
            make_record("B", "2024-05-01"),
            make_record("C", "garbage"),
        ])

        assert store.latest_date().isoformat() == "2024-06-10"
        assert store.incremental_since(overlap_days=7) == "2024-06-03"
        assert store.incremental_since(overlap_days=0) == "2024-06-10"


def test_save_and_load():
    """Store persists in the API envelope and reloads identically."""
    with tempfile.TemporaryDirectory() as tmpdir:
        path = os.path.join(tmpdir, "complaints.json")

        store1 = RecordStore(path)
        store1.merge([
            ComplaintRecord.from_hit(make_hit("A", "2024-06-01", sort=[1717200000000, "A"])),
            make_record("B", "2024-06-02"),
        ])
        store1.save()

        with open(path) as f:
            data = json.load(f)
        assert data["hits"]["total"]["value"] == 2
        assert [h["_id"] for h in data["hits"]["hits"]] == ["B", "A"]
        # Fields the pipeline does not model are carried through
        assert data["hits"]["hits"][1]["sort"] == [1717200000000, "A"]

        store2 = RecordStore(path)
        assert store2.ids == {"A", "B"}
        assert store2.get("A").company == "Coinbase, Inc."


def test_save_is_idempotent():
    """Re-merging the same records and saving leaves content unchanged."""
    with tempfile.TemporaryDirectory() as tmpdir:
        path = os.path.join(tmpdir, "complaints.json")
        hits = [make_hit("A", "2024-06-03"), make_hit("B", "2024-06-01"), make_hit("C", "2024-06-02")]

        store = RecordStore(path)
        store.merge(ComplaintRecord.from_hit(h) for h in hits)
        store.save()
        with open(path) as f:
            first = json.load(f)

        store = RecordStore(path)
        added = store.merge(ComplaintRecord.from_hit(h) for h in hits)
        store.save()
        with open(path) as f:
            second = json.load(f)

        assert added == 0
        assert first == second


def test_save_creates_backup():
    with tempfile.TemporaryDirectory() as tmpdir:
        path = os.path.join(tmpdir, "complaints.json")
        store = RecordStore(path)
        store.merge([make_record("A")])
        store.save()
        store.merge([make_record("B")])
        store.save()

        assert os.path.exists(f"{path}.backup")
        assert not os.path.exists(f"{path}.tmp")


def test_load_skips_duplicate_ids_in_file():
    with tempfile.TemporaryDirectory() as tmpdir:
        path = os.path.join(tmpdir, "complaints.json")
        write_store(path, [make_hit("A", company="First"), make_hit("A", company="Second")])

        store = RecordStore(path)

        assert len(store) == 1
        assert store.get("A").company == "First"


def test_corrupted_store_falls_back_to_empty():
    """An unparseable store file yields an empty store rather than an error."""
    with tempfile.TemporaryDirectory() as tmpdir:
        path = os.path.join(tmpdir, "complaints.json")
        with open(path, 'w') as f:
            f.write("{not json")

        store = RecordStore(path)

        assert len(store) == 0


def test_corrupted_store_restores_from_backup():
    with tempfile.TemporaryDirectory() as tmpdir:
        path = os.path.join(tmpdir, "complaints.json")
        write_store(f"{path}.backup", [make_hit("A"), make_hit("B")])
        with open(path, 'w') as f:
            f.write("garbage")

        store = RecordStore(path)

        assert store.ids == {"A", "B"}


def test_restore_skips_malformed_backup_records():
    """One bad entry in the backup does not discard the good ones."""
    with tempfile.TemporaryDirectory() as tmpdir:
        path = os.path.join(tmpdir, "complaints.json")
        write_store(f"{path}.backup", [make_hit("A"), make_hit("B"), {"_source": {}}])
        with open(path, 'w') as f:
            f.write("garbage")

        store = RecordStore(path)

        assert store.ids == {"A", "B"}


def test_save_after_restore_keeps_good_backup():
    """The unreadable main file never overwrites the backup it was restored from."""
    with tempfile.TemporaryDirectory() as tmpdir:
        path = os.path.join(tmpdir, "complaints.json")
        backup_path = f"{path}.backup"
        write_store(backup_path, [make_hit("A"), make_hit("B")])
        with open(path, 'w') as f:
            f.write("garbage")

        store = RecordStore(path)
        store.merge([make_record("C", "2024-06-05")])
        store.save()

        with open(backup_path) as f:
            backup = json.load(f)
        assert {h["_id"] for h in backup["hits"]["hits"]} == {"A", "B"}
        assert RecordStore(path).ids == {"A", "B", "C"}

        # Once a good file has been written, saves back it up again
        store.save()
        with open(backup_path) as f:
            backup = json.load(f)
        assert {h["_id"] for h in backup["hits"]["hits"]} == {"A", "B", "C"}


def test_save_after_unrecoverable_load_creates_no_backup():
    with tempfile.TemporaryDirectory() as tmpdir:
        path = os.path.join(tmpdir, "complaints.json")
        with open(path, 'w') as f:
            f.write("garbage")

        store = RecordStore(path)
        store.merge([make_record("A")])
        store.save()

        assert not os.path.exists(f"{path}.backup")
        assert RecordStore(path).ids == {"A"}


def test_get_by_id():
    with tempfile.TemporaryDirectory() as tmpdir:
        store = RecordStore(os.path.join(tmpdir, "complaints.json"))
        store.merge([make_record("A"), make_record("B", "2024-06-02")])

        assert store.get("B").received_date == "2024-06-02"
        assert store.get("Z") is None
        assert "A" in store
        assert "Z" not in store


def test_load_accepts_bare_hit_list():
    with tempfile.TemporaryDirectory() as tmpdir:
        path = os.path.join(tmpdir, "complaints.json")
        with open(path, 'w') as f:
            json.dump([make_hit("A"), make_hit("B")], f)

        store = RecordStore(path)

        assert store.ids == {"A", "B"}


# Run tests if executed directly
if __name__ == "__main__":
    pytest.main([__file__, "-v"])
