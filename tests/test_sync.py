from datetime import date
from violation_watch.services.sync import filter_new
from conftest import make_record

def test_existing_ids_are_dropped():
    batch = [make_record(1, "C1", "2025-03-01"), make_record(2, "C2", "2025-03-02")]

    result = filter_new(batch, {1}, set(), None)

    assert [r.id for r in result.new_records] == [2]

def test_repeated_id_in_batch_kept_once():
    batch = [make_record(5, "C1", "2025-03-02"), make_record(5, "C1", "2025-03-02")]

    result = filter_new(batch, set(), set(), None)

    assert [r.id for r in result.new_records] == [5]

def test_rerun_on_same_batch_yields_nothing():
    batch = [make_record(i, f"C{i % 2}", "2025-03-0%d" % i) for i in range(1, 5)]

    first = filter_new(batch, set(), set(), None)
    stored_ids = {r.id for r in first.new_records}
    stored_cases = {r.casefile_number for r in first.new_records}
    second = filter_new(batch, stored_ids, stored_cases, date(2025, 3, 4))

    assert first.total == 4
    assert second.total == 0
    assert not second.has_news

def test_partitions_cover_new_records():
    batch = [
        make_record(1, "C1", "2025-03-05"),
        make_record(2, "C9", "2025-03-04"),
        make_record(3, None, "2025-03-03"),
        make_record(4, "C1", "2025-03-02"),
    ]

    result = filter_new(batch, set(), {"C1"}, None)

    new_ids = {r.id for r in result.new_casefiles}
    update_ids = {r.id for r in result.new_records_for_existing_cases}
    assert new_ids.isdisjoint(update_ids)
    assert new_ids | update_ids == {r.id for r in result.new_records}
    assert new_ids == {2, 3}
    assert update_ids == {1, 4}

def test_watermark_drops_same_day_and_undated():
    batch = [
        make_record(1, "C1", "2025-03-11"),
        make_record(2, "C2", "2025-03-10"),
        make_record(3, "C3", "2025-03-09"),
        make_record(4, "C4", None),
    ]

    result = filter_new(batch, set(), set(), date(2025, 3, 10))

    assert [r.id for r in result.new_records] == [1]

def test_new_records_keep_upstream_order():
    batch = [make_record(9, "C1", "2025-03-09"), make_record(3, "C2", "2025-03-08")]

    result = filter_new(batch, set(), set(), None)

    assert [r.id for r in result.new_records] == [9, 3]

def test_new_case_and_update_to_existing_case():
    # record 10 is already stored under C1; 11 is a fresh entry on C1, 12 opens C2
    batch = [
        make_record(12, "C2", "2025-04-03"),
        make_record(11, "C1", "2025-04-02"),
        make_record(10, "C1", "2025-03-01"),
    ]

    result = filter_new(batch, {10}, {"C1"}, date(2025, 3, 1))

    assert [r.id for r in result.new_casefiles] == [12]
    assert [r.id for r in result.new_records_for_existing_cases] == [11]
    assert result.total == 2

def test_full_sync_ignores_watermark():
    batch = [make_record(1, "C1", "2024-02-01"), make_record(2, "C2", None)]

    result = filter_new(batch, set(), set(), None)

    assert {r.id for r in result.new_records} == {1, 2}
