"""
Tests for database.py - keyed SQLite review store.
"""

import pytest
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import sessionmaker

from curtaincall.database import Review, ReviewStore, init_database, record_to_row
from curtaincall.dedupe import merge_reviews
from curtaincall.errors import ValidationError


class TestDatabaseInit:

    def test_init_creates_database_file_and_parents(self, tmp_path):
        db_path = tmp_path / "nested" / "reviews.db"
        init_database(db_path)
        assert db_path.exists()

    def test_score_range_enforced_by_table(self, tmp_path):
        engine = init_database(tmp_path / "reviews.db")
        session = sessionmaker(bind=engine)()
        session.add(Review(show_id="s", outlet_id="o", critic_id="c", score=140))
        with pytest.raises(IntegrityError):
            session.commit()
        session.close()

    def test_override_note_enforced_by_table(self, tmp_path):
        engine = init_database(tmp_path / "reviews.db")
        session = sessionmaker(bind=engine)()
        session.add(Review(show_id="s", outlet_id="o", critic_id="c", override_score=70))
        with pytest.raises(IntegrityError):
            session.commit()
        session.close()


class TestReviewStore:

    @pytest.fixture
    def store(self, tmp_path):
        return ReviewStore(tmp_path / "reviews.db")

    def test_put_and_get(self, store, resolved_review):
        assert store.put(resolved_review) == "new"
        stored = store.get("hamilton-2015", "nytimes", "jesse-green")
        assert stored["cleaned_text"] == resolved_review["cleaned_text"]
        assert stored["sources"] == ["dtli"]
        assert stored["manual_override"] is None
        assert store.count() == 1

    def test_get_missing(self, store):
        assert store.get("s", "o", "c") is None

    def test_update_and_no_change(self, store, resolved_review):
        store.put(resolved_review)
        assert store.put(resolved_review) == "no-change"
        resolved_review["publish_date"] = "2015-08-07"
        assert store.put(resolved_review) == "updated"
        assert store.count() == 1

    def test_manual_override_round_trip(self, store, resolved_review):
        resolved_review["manual_override"] = {"score": 72, "note": "sarcasm misread by models"}
        store.put(resolved_review)
        stored = store.get(*ReviewStore.key_of(resolved_review))
        assert stored["manual_override"] == {"score": 72, "note": "sarcasm misread by models"}

    def test_invalid_record_is_not_written(self, store, resolved_review):
        resolved_review["outlet_id"] = "unknown"
        with pytest.raises(ValidationError) as exc:
            store.put(resolved_review)
        assert "hamilton-2015|unknown|jesse-green" in str(exc.value)
        assert store.count() == 0

    def test_put_many_is_all_or_nothing(self, store, resolved_review):
        good = dict(resolved_review)
        other = dict(resolved_review, critic_id="ben-brantley")
        bad = dict(resolved_review, critic_id="helen-shaw", score=50)  # score without source
        with pytest.raises(ValidationError):
            store.put_many([good, other, bad])
        assert store.count() == 0

        counts = store.put_many([good, other])
        assert counts == {"new": 2, "updated": 0, "no-change": 0}

    def test_put_many_same_key_twice(self, store, resolved_review):
        first = dict(resolved_review)
        second = dict(resolved_review, publish_date="2015-08-07")
        counts = store.put_many([first, second])
        assert counts["new"] == 1
        assert counts["updated"] == 1

    def test_select(self, store, resolved_review):
        store.put(dict(resolved_review, scoring_version="v1"))
        store.put(dict(resolved_review, critic_id="ben-brantley"))
        store.put(dict(resolved_review, show_id="wicked-2003", scoring_version="v0"))

        assert len(store.select()) == 3
        assert len(store.select(show_id="hamilton-2015")) == 2
        outdated = store.select(outdated_version="v1")
        assert sorted((r["show_id"], r["critic_id"]) for r in outdated) == [
            ("hamilton-2015", "ben-brantley"),
            ("wicked-2003", "jesse-green"),
        ]

    def test_critic_keys(self, store, resolved_review):
        store.put(resolved_review)
        store.put(dict(resolved_review, critic_id="ben-brantley"))
        store.put(dict(resolved_review, show_id="wicked-2003"))
        assert sorted(store.critic_keys("hamilton-2015")) == [
            ("hamilton-2015", "nytimes", "ben-brantley"),
            ("hamilton-2015", "nytimes", "jesse-green"),
        ]
        assert store.critic_keys("missing") == []

    def test_text_upgrade_makes_record_outdated(self, store, resolved_review):
        excerpt_only = dict(resolved_review, cleaned_text="Thrilling.", content_tier="excerpt",
                            score=70, score_source="ensemble-low-confidence",
                            confidence="low", scoring_version="v1")
        store.put(excerpt_only)
        assert store.select(outdated_version="v1") == []

        existing = store.get(*ReviewStore.key_of(resolved_review))
        store.put(merge_reviews(existing, resolved_review))
        outdated = store.select(outdated_version="v1")
        assert [r["critic_id"] for r in outdated] == ["jesse-green"]
        assert outdated[0]["content_tier"] == "complete"

    def test_record_to_row_stringifies_rating(self, resolved_review):
        row = record_to_row(dict(resolved_review, explicit_rating=4.5))
        assert row["explicit_rating"] == "4.5"
        assert row["needs_review"] is False
