import pytest

from fakes import FakeProvider, page_result

from icpminer.core.config import MiningConfig, MiningStatus
from icpminer.core.orchestrator import MiningOptions, MiningRunner, SingleProfile, SitePool, run_mining
from icpminer.core.scheduler.locks import LockManager, profile_lock_name
from icpminer.persistence.models import Site
from icpminer.persistence.repo import AuditRepository


@pytest.mark.asyncio
async def test_single_profile_not_found_fails_without_fetching(session):
    provider = FakeProvider()

    result = await run_mining(SingleProfile("missing"), MiningOptions(), session=session, provider=provider)

    assert result.success is False
    assert result.status == MiningStatus.FAILED
    assert result.profile_id == "missing"
    assert result.errors == ["icp_mining not found: missing"]
    assert provider.calls == [] and provider.probes == []

    failed = AuditRepository(session).get_recent(workflow_id="icp-mining-missing", status="FAILED")
    assert len(failed) == 1


@pytest.mark.asyncio
async def test_single_profile_runs_engine(session, store, make_profile):
    profile = make_profile(total_targets=100)
    provider = FakeProvider(default=page_result(found=2))

    result = await run_mining(
        SingleProfile(profile.id),
        MiningOptions(max_pages=3, target_matches=4),
        session=session,
        provider=provider,
    )

    assert result.success is True
    assert result.profile_id == profile.id
    assert result.found_matches == 4
    assert result.processed == 20
    assert result.status == MiningStatus.COMPLETED
    assert result.finished_at is not None
    assert provider.calls == [0, 1]


@pytest.mark.asyncio
async def test_empty_pool_is_successful_noop(session, site):
    provider = FakeProvider()

    result = await run_mining(SitePool(site.id), MiningOptions(), session=session, provider=provider)

    assert result.success is True
    assert result.profile_id is None
    assert provider.calls == []


@pytest.mark.asyncio
async def test_pool_mode_prefers_running_profile(session, store, make_profile):
    make_profile(total_targets=500)
    running = make_profile(status="running", total_targets=20, processed_targets=10, current_page=1)
    provider = FakeProvider()

    result = await run_mining(
        SitePool("site-1"),
        MiningOptions(max_pages=1),
        session=session,
        provider=provider,
    )

    assert result.profile_id == running.id
    assert provider.calls == [1]


@pytest.mark.asyncio
async def test_pool_mode_processes_one_profile_per_invocation(session, store, make_profile):
    first = make_profile(total_targets=300)
    second = make_profile(total_targets=200)
    provider = FakeProvider()

    await run_mining(SitePool("site-1"), MiningOptions(max_pages=2), session=session, provider=provider)

    assert store.get_by_id(first.id).processed_targets == 20
    assert store.get_by_id(second.id).processed_targets == 0


@pytest.mark.asyncio
async def test_user_scope_resolved_from_site(session, make_profile):
    make_profile(total_targets=100)
    provider = FakeProvider()

    await run_mining(SitePool("site-1"), MiningOptions(max_pages=1), session=session, provider=provider)

    assert provider.requests[0].user_id == "user-1"


@pytest.mark.asyncio
async def test_explicit_user_overrides_site_owner(session, make_profile):
    make_profile(total_targets=100)
    provider = FakeProvider()

    await run_mining(
        SitePool("site-1"),
        MiningOptions(max_pages=1, user_id="someone-else"),
        session=session,
        provider=provider,
    )

    assert provider.requests[0].user_id == "someone-else"


@pytest.mark.asyncio
async def test_unresolvable_site_fails_before_touching_profile(session, store, search_query):
    session.add(Site(id="orphan"))
    session.commit()
    profile = store.create(site_id="orphan", search_query_id=search_query.id)
    provider = FakeProvider()

    result = await run_mining(SitePool("orphan"), MiningOptions(), session=session, provider=provider)

    assert result.success is False
    assert provider.calls == []
    assert store.get_by_id(profile.id).status == "pending"


@pytest.mark.asyncio
async def test_locked_profile_is_skipped(session, make_profile):
    profile = make_profile(total_targets=100)
    LockManager(session).acquire(profile_lock_name(profile.id), "other-worker")
    provider = FakeProvider()

    result = await run_mining(SingleProfile(profile.id), MiningOptions(), session=session, provider=provider)

    assert result.success is True
    assert result.skipped is True
    assert provider.calls == []


@pytest.mark.asyncio
@pytest.mark.parametrize("status", ["completed", "failed"])
async def test_finished_profile_is_not_reopened(session, store, make_profile, status):
    profile = make_profile(status=status, total_targets=100, processed_targets=30, current_page=3)
    provider = FakeProvider()

    result = await run_mining(SingleProfile(profile.id), MiningOptions(max_pages=2), session=session, provider=provider)

    assert result.success is True
    assert result.status == MiningStatus(status)
    assert result.profile_id == profile.id
    assert provider.calls == [] and provider.probes == []

    saved = store.get_by_id(profile.id)
    assert saved.status == status
    assert saved.processed_targets == 30
    assert saved.current_page == 3


@pytest.mark.asyncio
async def test_pool_mode_moves_past_locked_profile(session, store, make_profile):
    stuck = make_profile(status="running", total_targets=100, processed_targets=10, current_page=1)
    other = make_profile(total_targets=50)
    LockManager(session).acquire(profile_lock_name(stuck.id), "crashed-worker")
    provider = FakeProvider()

    result = await run_mining(SitePool("site-1"), MiningOptions(max_pages=1), session=session, provider=provider)

    assert result.skipped is False
    assert result.profile_id == other.id
    assert provider.calls == [0]
    assert store.get_by_id(other.id).processed_targets == 10
    assert store.get_by_id(stuck.id).processed_targets == 10


@pytest.mark.asyncio
async def test_pool_mode_skips_when_every_candidate_is_locked(session, make_profile):
    only = make_profile(total_targets=50)
    LockManager(session).acquire(profile_lock_name(only.id), "other-worker")
    provider = FakeProvider()

    result = await run_mining(SitePool("site-1"), MiningOptions(), session=session, provider=provider)

    assert result.success is True
    assert result.skipped is True
    assert result.profile_id == only.id
    assert provider.calls == []


@pytest.mark.asyncio
async def test_pool_mode_audits_pool_and_selection(session, make_profile):
    make_profile(total_targets=20)
    chosen = make_profile(total_targets=90)

    await run_mining(SitePool("site-1"), MiningOptions(max_pages=1), session=session, provider=FakeProvider())

    events = AuditRepository(session).get_recent(workflow_id="icp-mining-batch-site-1", status="INFO")
    by_name = {event.output.get("event"): event.output for event in events if event.output}
    assert by_name["pendingItems"]["count"] == 2
    assert by_name["selectedIcp"]["profile_id"] == chosen.id
    assert by_name["selectedIcp"]["remaining_targets"] == 90


@pytest.mark.asyncio
async def test_profile_lock_released_after_run(session, make_profile):
    profile = make_profile(total_targets=100)

    await run_mining(SingleProfile(profile.id), MiningOptions(max_pages=1), session=session, provider=FakeProvider())

    assert LockManager(session).is_locked(profile_lock_name(profile.id)) is False


@pytest.mark.asyncio
async def test_soft_failures_still_report_success(session, make_profile):
    from icpminer.core.errors import FetchError

    profile = make_profile(total_targets=100)
    provider = FakeProvider(pages={0: FetchError("timeout")})

    result = await run_mining(SingleProfile(profile.id), MiningOptions(), session=session, provider=provider)

    assert result.success is True
    assert result.status == MiningStatus.PENDING
    assert result.errors == ["Page 0 search failed: timeout"]


@pytest.mark.asyncio
async def test_caller_owned_provider_is_not_closed(session, make_profile):
    profile = make_profile(total_targets=100)
    provider = FakeProvider()

    await MiningRunner(MiningOptions(max_pages=1), session=session, provider=provider).run(SingleProfile(profile.id))

    assert provider.closed is False


def test_options_from_config_ignore_missing_overrides():
    options = MiningOptions.from_config(MiningConfig(max_pages=7), target_matches=None, site_id="site-1")

    assert options.max_pages == 7
    assert options.target_matches == 40
    assert options.site_id == "site-1"


def test_result_to_dict():
    from icpminer.core.orchestrator import MiningRunResult

    result = MiningRunResult(success=True, status=MiningStatus.PENDING, budget_exhausted=True)

    data = result.to_dict()
    assert data["status"] == "pending"
    assert data["budget_exhausted"] is True
    assert data["duration_seconds"] is None
