"""Tests for episode reconciliation."""

from dataclasses import replace
from datetime import datetime
from types import SimpleNamespace

import pytest

from podsync.db.reconciler import (
    EpisodeIndex,
    match_score,
    needs_update,
    reconcile_episodes,
)


def stored_from(episode, episode_id):
    """Build a stored-episode stand-in carrying the same feed metadata."""
    return SimpleNamespace(
        id=episode_id,
        title=episode.title,
        url=episode.url,
        guid=episode.guid,
        description=episode.description,
        pubdate=episode.pubdate,
        duration=episode.duration,
    )


@pytest.fixture
def existing(make_episode):
    """Stored episodes 3, 2, 1 (newest first) with ids 3, 2, 1."""
    return [stored_from(make_episode(n), n) for n in (3, 2, 1)]


class TestIdempotence:
    """Reconciling an unchanged feed is a no-op."""

    def test_identical_feed_produces_nothing(self, make_episode, existing):
        """Test zero inserts and zero updates for an unchanged feed."""
        incoming = [make_episode(3), make_episode(2), make_episode(1)]

        plan = reconcile_episodes(existing, incoming)

        assert plan.is_empty

    def test_dateless_episodes_are_stable(self, make_episode):
        """Test episodes without dates do not churn on every sync."""
        incoming = [make_episode(1, pubdate=None, guid="")]
        existing = [stored_from(incoming[0], 10)]

        assert reconcile_episodes(existing, incoming).is_empty

    def test_second_pass_after_applying_plan(self, make_episode):
        """Test applying inserts then reconciling again yields nothing."""
        incoming = [make_episode(2), make_episode(1)]

        first = reconcile_episodes([], incoming)
        stored = [stored_from(e, i) for i, e in enumerate(reversed(first.inserts), start=1)]
        second = reconcile_episodes(stored, incoming)

        assert len(first.inserts) == 2
        assert second.is_empty


class TestGuidMatching:
    """Primary matching on guid."""

    def test_guid_wins_over_other_fields(self, make_episode, existing):
        """Test a guid hit is a match even when title, url and date all differ."""
        incoming = make_episode(
            2,
            title="Renamed",
            url="https://cdn.example.com/new.mp3",
            pubdate=datetime(2030, 1, 1),
        )

        plan = reconcile_episodes(existing, [incoming])

        assert plan.inserts == []
        assert len(plan.updates) == 1
        assert plan.updates[0].episode_id == 2
        assert plan.updates[0].episode is incoming

    def test_empty_guids_are_not_indexed(self, make_episode):
        """Test two episodes with empty guids never match on guid alone."""
        stored = [stored_from(make_episode(1, guid=""), 1)]
        incoming = make_episode(5, guid="")

        plan = reconcile_episodes(stored, [incoming])

        assert plan.inserts == [incoming]

    def test_unknown_guid_falls_back_to_fields(self, make_episode, existing):
        """Test a non-empty guid with no hit is matched by the fallback."""
        incoming = make_episode(1, guid="brand-new-guid")

        plan = reconcile_episodes(existing, [incoming])

        assert plan.inserts == []
        assert [u.episode_id for u in plan.updates] == [1]


class TestFallbackMatching:
    """Fallback matching on title, url and publish date."""

    def test_title_and_url_match_without_dates(self, make_episode):
        """Test title+url agreement matches when dates are absent."""
        stored = [stored_from(make_episode(1, guid="", pubdate=None), 7)]
        incoming = make_episode(1, guid="", pubdate=None, description="Edited")

        plan = reconcile_episodes(stored, [incoming])

        assert [u.episode_id for u in plan.updates] == [7]

    def test_title_and_url_match_with_differing_dates(self, make_episode):
        """Test title+url agreement matches even when the dates differ."""
        stored = [stored_from(make_episode(1, guid=""), 7)]
        incoming = make_episode(1, guid="", pubdate=datetime(2024, 6, 1))

        plan = reconcile_episodes(stored, [incoming])

        assert plan.inserts == []
        assert plan.updates[0].episode_id == 7

    def test_title_and_date_match_with_new_url(self, make_episode):
        """Test a moved enclosure is an update, not a new episode."""
        stored = [stored_from(make_episode(1, guid=""), 7)]
        incoming = make_episode(1, guid="", url="https://cdn.example.com/ep1.mp3")

        plan = reconcile_episodes(stored, [incoming])

        assert plan.updates[0].episode_id == 7
        assert plan.updates[0].episode.url == "https://cdn.example.com/ep1.mp3"

    def test_title_only_is_new(self, make_episode):
        """Test agreement on title alone is not enough."""
        stored = [stored_from(make_episode(1, guid=""), 7)]
        incoming = make_episode(
            1,
            guid="",
            url="https://example.com/other.mp3",
            pubdate=datetime(2024, 2, 1),
        )

        plan = reconcile_episodes(stored, [incoming])

        assert plan.inserts == [incoming]
        assert plan.updates == []

    def test_newest_match_wins(self, make_episode):
        """Test the first qualifying stored episode, newest first, is chosen."""
        url = "https://example.com/rerun.mp3"
        newer = stored_from(make_episode(2, guid="", title="Rerun", url=url), 20)
        older = stored_from(make_episode(1, guid="", title="Rerun", url=url), 10)
        incoming = make_episode(3, guid="", title="Rerun", url=url, pubdate=None)

        assert EpisodeIndex([newer, older]).find(incoming) is newer

    def test_guid_and_two_fields_changing_is_new(self, make_episode, existing):
        """Test an episode changing guid, title and url is treated as new."""
        incoming = make_episode(
            2, guid="other", title="Completely different", url="https://example.com/x.mp3"
        )

        plan = reconcile_episodes(existing, [incoming])

        assert plan.inserts == [incoming]


class TestPlanShape:
    """Ordering and update detection."""

    def test_inserts_are_oldest_first(self, make_episode):
        """Test feed order (newest first) is reversed for insertion."""
        incoming = [make_episode(3), make_episode(2), make_episode(1)]

        plan = reconcile_episodes([], incoming)

        assert [e.title for e in plan.inserts] == ["Episode 1", "Episode 2", "Episode 3"]

    def test_mixed_plan(self, make_episode, existing):
        """Test a feed with one new and one changed episode."""
        changed = make_episode(3, duration=2400)
        incoming = [make_episode(4), changed, make_episode(2), make_episode(1)]

        plan = reconcile_episodes(existing, incoming)

        assert [e.title for e in plan.inserts] == ["Episode 4"]
        assert [u.episode_id for u in plan.updates] == [3]

    @pytest.mark.parametrize(
        "field, value",
        [
            ("title", "New title"),
            ("url", "https://example.com/moved.mp3"),
            ("guid", "new-guid"),
            ("description", "New description"),
            ("duration", 99),
            ("pubdate", datetime(2025, 1, 1)),
        ],
    )
    def test_needs_update_per_field(self, make_episode, field, value):
        """Test every sync-managed field triggers an update when it changes."""
        episode = make_episode(1)
        stored = stored_from(episode, 1)

        assert needs_update(stored, episode) is False
        assert needs_update(stored, replace(episode, **{field: value})) is True

    def test_match_score_ignores_one_sided_dates(self, make_episode):
        """Test a publish date only counts when both sides have one."""
        stored = stored_from(make_episode(1), 1)

        assert match_score(stored, make_episode(1)) == 3
        assert match_score(stored, make_episode(1, pubdate=None)) == 2
        assert match_score(stored, make_episode(1, title="x", url="y", pubdate=None)) == 0

    def test_index_is_built_from_snapshot(self, make_episode, existing):
        """Test the index holds its own copy of the stored episodes."""
        index = EpisodeIndex(existing)
        existing.clear()

        assert len(index) == 3
        assert index.find(make_episode(2)).id == 2
