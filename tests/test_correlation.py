import pytest

from feedback_triage.correlation import DedupSet, MessageOutcome, ThreadOutcome

HOUR = 60 * 60
MINUTE = 60


def tracked(clock, identifier="ENG-42", **kwargs):
    return ThreadOutcome(ticket_id="id-42", ticket_identifier=identifier, created_at=clock(), **kwargs)


class TestTimeToLive:

    def test_thread_outcome_survives_just_under_a_day(self, store, clock):
        store.put_thread("100.000001", tracked(clock))
        clock.advance(23 * HOUR + 59 * MINUTE)
        assert store.get_thread("100.000001").ticket_identifier == "ENG-42"

    def test_thread_outcome_gone_just_over_a_day(self, store, clock):
        store.put_thread("100.000001", tracked(clock))
        clock.advance(24 * HOUR + MINUTE)
        assert store.get_thread("100.000001") is None
        assert store.thread_count() == 0

    def test_message_outcome_follows_same_ttl(self, store, clock):
        store.put_message("200.000001", MessageOutcome.from_action("created", clock(), "id-1", "ENG-1"))
        clock.advance(23 * HOUR + 59 * MINUTE)
        assert store.get_message("200.000001") is not None
        clock.advance(2 * MINUTE)
        assert store.get_message("200.000001") is None

    def test_sweep_removes_only_expired_entries(self, store, clock):
        store.put_thread("old", tracked(clock))
        store.put_message("old", MessageOutcome.from_action("skipped", clock()))
        clock.advance(12 * HOUR)
        store.put_thread("fresh", tracked(clock))
        clock.advance(12 * HOUR + MINUTE)

        assert store.sweep() == 2
        assert store.get_thread("fresh") is not None
        assert store.message_count() == 0

    def test_missing_keys(self, store):
        assert store.get_thread(None) is None
        assert store.get_message("nope") is None
        assert store.delete_thread("nope") is False


class TestThreadOutcome:

    def test_deferred_upgrade_happens_in_place(self, store, clock):
        deferred = ThreadOutcome(
            ticket_id="", ticket_identifier="", created_at=clock(),
            is_deferred=True, original_context="Is dark mode planned?", original_reporter_id="U1",
        )
        store.put_thread("300.000001", deferred)
        clock.advance(HOUR)

        assert store.upgrade_deferred("300.000001", "id-7", "ENG-7") is True

        outcome = store.get_thread("300.000001")
        assert outcome is deferred
        assert outcome.is_deferred is False
        assert outcome.ticket_identifier == "ENG-7"
        assert outcome.original_context == "Is dark mode planned?"
        assert outcome.created_at == pytest.approx(clock() - HOUR)

    def test_upgrade_unknown_thread(self, store):
        assert store.upgrade_deferred("missing", "id-1") is False

    def test_deferred_cannot_carry_ticket(self, clock):
        with pytest.raises(ValueError):
            ThreadOutcome(ticket_id="id-1", ticket_identifier="ENG-1", created_at=clock(), is_deferred=True)


class TestMessageOutcome:

    @pytest.mark.parametrize("action,triaged", [
        ("created", True),
        ("duplicate", True),
        ("skipped", False),
        ("deferred", False),
        ("error", False),
    ])
    def test_was_triaged_follows_action(self, action, triaged):
        assert MessageOutcome.from_action(action, 0.0).was_triaged is triaged

    def test_unknown_action_rejected(self):
        with pytest.raises(ValueError):
            MessageOutcome.from_action("updated", 0.0)


class TestDedupSet:

    def test_cap_keeps_most_recent_half(self):
        dedup = DedupSet(max_entries=1000, trim_entries=500)
        stamps = [f"{1700000000 + i}.000100" for i in range(1001)]
        for ts in stamps:
            dedup.add(ts)

        assert len(dedup) == 501
        assert all(ts in dedup for ts in stamps[500:])
        assert not any(ts in dedup for ts in stamps[:500])

    def test_eviction_follows_insertion_not_value_order(self):
        dedup = DedupSet(max_entries=3, trim_entries=2)
        for ts in ["9.0", "1.0", "5.0", "3.0"]:
            dedup.add(ts)
        assert "9.0" not in dedup
        assert "1.0" not in dedup
        assert "5.0" in dedup and "3.0" in dedup

    def test_add_reports_duplicates(self):
        dedup = DedupSet()
        assert dedup.add("1.0") is True
        assert dedup.add("1.0") is False
        assert len(dedup) == 1
