from datetime import datetime, timedelta

import pytest

from icpminer.core.errors import SiteNotFoundError
from icpminer.persistence.models import Site
from icpminer.persistence.repo import SearchQueryRepository, SiteRepository


def test_create_registers_pending_profile(store, site, search_query):
    profile = store.create(site_id=site.id, search_query_id=search_query.id, name="CTOs in SG")

    saved = store.get_by_id(profile.id)
    assert saved.status == "pending"
    assert saved.processed_targets == 0
    assert saved.current_page == 0
    assert saved.total_targets is None
    assert saved.errors == []


def test_update_progress_adds_deltas(store, make_profile):
    profile = make_profile(processed_targets=5, found_matches=1)

    store.update_progress(profile.id, delta_processed=10, delta_found=2, current_page=1)

    saved = store.get_by_id(profile.id)
    assert saved.processed_targets == 15
    assert saved.found_matches == 3
    assert saved.current_page == 1
    assert saved.last_progress_at is not None


def test_processed_is_clamped_to_known_total(store, make_profile):
    profile = make_profile(total_targets=15)

    store.update_progress(profile.id, delta_processed=10)
    store.update_progress(profile.id, delta_processed=10)

    assert store.get_by_id(profile.id).processed_targets == 15


def test_late_total_below_count_does_not_lower_processed(store, make_profile):
    profile = make_profile(processed_targets=60)

    store.update_progress(profile.id, total_targets=47, status="running")
    store.update_progress(profile.id, delta_processed=10)

    saved = store.get_by_id(profile.id)
    assert saved.total_targets == 47
    assert saved.processed_targets == 60


def test_current_page_never_moves_backwards(store, make_profile):
    profile = make_profile(current_page=4)

    store.update_progress(profile.id, current_page=2)

    assert store.get_by_id(profile.id).current_page == 4


def test_appended_error_is_logged_and_mirrored(store, make_profile):
    profile = make_profile()

    store.update_progress(profile.id, append_error="Page 0 search failed: boom")
    store.update_progress(profile.id, append_error="Page 1 search failed: bang")

    saved = store.get_by_id(profile.id)
    assert [entry["message"] for entry in saved.errors] == [
        "Page 0 search failed: boom",
        "Page 1 search failed: bang",
    ]
    assert all("timestamp" in entry for entry in saved.errors)
    assert saved.last_error == "Page 1 search failed: bang"


def test_every_write_bumps_version(store, make_profile):
    profile = make_profile()
    start = store.get_by_id(profile.id).version

    store.mark_started(profile.id)
    store.update_progress(profile.id, delta_processed=1)
    store.mark_completed(profile.id)

    assert store.get_by_id(profile.id).version == start + 3


def test_mark_started_sets_running(store, make_profile):
    profile = make_profile()

    assert store.mark_started(profile.id) is True

    saved = store.get_by_id(profile.id)
    assert saved.status == "running"
    assert saved.started_at is not None


def test_mark_completed_clears_last_error(store, make_profile):
    profile = make_profile(last_error="old problem")

    store.mark_completed(profile.id)

    saved = store.get_by_id(profile.id)
    assert saved.status == "completed"
    assert saved.last_error is None
    assert saved.finished_at is not None


def test_mark_completed_failed_keeps_reason(store, make_profile):
    profile = make_profile()

    store.mark_completed(profile.id, failed=True, last_error="icp_mining not found")

    saved = store.get_by_id(profile.id)
    assert saved.status == "failed"
    assert saved.last_error == "icp_mining not found"


def test_writes_to_unknown_profile_are_ignored(store):
    assert store.update_progress("missing", delta_processed=1) is None
    assert store.mark_started("missing") is False
    assert store.mark_completed("missing", failed=True) is False


def test_list_pending_returns_active_profiles_oldest_first(session, store, make_profile):
    now = datetime.utcnow()
    newer = make_profile(status="pending", created_at=now)
    older = make_profile(status="running", created_at=now - timedelta(hours=1))
    make_profile(status="completed", created_at=now - timedelta(hours=2))
    make_profile(status="failed", created_at=now - timedelta(hours=3))

    pending = store.list_pending(limit=50, site_id="site-1")

    assert [p.id for p in pending] == [older.id, newer.id]


def test_list_pending_respects_limit_and_site(session, store, make_profile, search_query):
    session.add(Site(id="site-2", user_id="user-2"))
    session.commit()
    for _ in range(3):
        make_profile()
    make_profile(site_id="site-2")

    assert len(store.list_pending(limit=2, site_id="site-1")) == 2
    assert len(store.list_pending(site_id="site-2")) == 1
    assert len(store.list_pending()) == 4


def test_count_by_status(store, make_profile):
    make_profile()
    make_profile()
    make_profile(status="completed")

    assert store.count_by_status() == {"pending": 2, "completed": 1}


def test_resolve_user_id(session, site):
    assert SiteRepository(session).resolve_user_id(site.id) == "user-1"


def test_resolve_user_id_unknown_site(session):
    with pytest.raises(SiteNotFoundError, match="Failed to get site information: nowhere"):
        SiteRepository(session).resolve_user_id("nowhere")


def test_resolve_user_id_site_without_owner(session):
    session.add(Site(id="orphan"))
    session.commit()

    with pytest.raises(SiteNotFoundError):
        SiteRepository(session).resolve_user_id("orphan")


def test_site_upsert_updates_owner(session, site):
    updated, created = SiteRepository(session).upsert(site.id, user_id="user-9")

    assert created is False
    assert updated.user_id == "user-9"


def test_search_queries_listed_per_site(session, search_query):
    repo = SearchQueryRepository(session)
    repo.create({"role": "CFO"}, site_id="site-1", name="CFOs")

    assert {q.name for q in repo.list_for_site("site-1")} == {"CTOs", "CFOs"}
