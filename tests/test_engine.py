import pytest

from fakes import FakeProvider, page_result

from icpminer.core.audit import AuditLog
from icpminer.core.config import MiningStatus, StopReason
from icpminer.core.errors import FetchError
from icpminer.core.mining import MiningEngine
from icpminer.persistence.repo import AuditRepository


async def _run(store, provider, profile, *, max_pages=5, target=40, audit=None):
    engine = MiningEngine(store, provider, audit)
    return await engine.run(
        profile,
        site_id="site-1",
        user_id="user-1",
        target_matches=target,
        max_pages=max_pages,
        page_size=20,
    )


@pytest.mark.asyncio
async def test_resumes_from_processed_count_when_page_lags(store, make_profile):
    profile = make_profile(total_targets=100, processed_targets=25, current_page=0)
    provider = FakeProvider()

    outcome = await _run(store, provider, profile, max_pages=2)

    assert outcome.start_page == 3
    assert provider.calls == [3, 4]
    assert provider.probes == []
    assert outcome.status == MiningStatus.PENDING
    assert outcome.reason == StopReason.BUDGET_EXHAUSTED
    assert outcome.budget_exhausted is True

    saved = store.get_by_id(profile.id)
    assert saved.status == "pending"
    assert saved.processed_targets == 45
    assert saved.current_page == 5


@pytest.mark.asyncio
async def test_never_refetches_below_stored_page(store, make_profile):
    profile = make_profile(total_targets=100, processed_targets=10, current_page=4)
    provider = FakeProvider()

    await _run(store, provider, profile, max_pages=1)

    assert provider.calls == [4]


@pytest.mark.asyncio
async def test_fresh_profile_hydrates_then_stops_when_target_met(store, make_profile):
    profile = make_profile()
    provider = FakeProvider(total=47, probe_has_more=True, default=page_result(processed=10, found=1))

    outcome = await _run(store, provider, profile, max_pages=5, target=3)

    assert provider.probes == [0]
    assert provider.calls == [0, 1, 2]
    assert outcome.pages_fetched == 4
    assert outcome.status == MiningStatus.COMPLETED
    assert outcome.reason == StopReason.TARGET_REACHED
    assert outcome.total_targets == 47

    saved = store.get_by_id(profile.id)
    assert saved.status == "completed"
    assert saved.total_targets == 47
    assert saved.current_page == 2
    assert saved.found_matches == 3
    assert saved.processed_targets == 30
    assert saved.finished_at is not None


@pytest.mark.asyncio
async def test_hydrates_only_once_across_invocations(store, make_profile):
    profile = make_profile()
    provider = FakeProvider(total=47)

    await _run(store, provider, profile, max_pages=2, target=100)
    assert provider.probes == [0]
    assert store.get_by_id(profile.id).total_targets == 47

    await _run(store, provider, store.get_by_id(profile.id), max_pages=2, target=100)

    assert provider.probes == [0]
    assert provider.calls == [0, 1, 2]


@pytest.mark.asyncio
async def test_stops_immediately_once_goal_is_met(store, make_profile):
    profile = make_profile(total_targets=100)
    provider = FakeProvider(default=page_result(found=1))

    outcome = await _run(store, provider, profile, max_pages=10, target=2)

    assert provider.calls == [0, 1]
    assert outcome.reason == StopReason.TARGET_REACHED
    assert store.get_by_id(profile.id).current_page == 1


@pytest.mark.asyncio
async def test_cumulative_matches_count_toward_target(store, make_profile):
    profile = make_profile(total_targets=100, processed_targets=20, current_page=2, found_matches=4)
    provider = FakeProvider(default=page_result(found=1))

    outcome = await _run(store, provider, profile, max_pages=10, target=5)

    assert provider.calls == [2]
    assert outcome.status == MiningStatus.COMPLETED


@pytest.mark.asyncio
async def test_completes_when_all_targets_processed(store, make_profile):
    profile = make_profile(total_targets=15)
    provider = FakeProvider(pages={1: page_result(processed=5)})

    outcome = await _run(store, provider, profile, max_pages=10)

    assert provider.calls == [0, 1]
    assert outcome.reason == StopReason.ALL_TARGETS_PROCESSED
    assert store.get_by_id(profile.id).processed_targets == 15


@pytest.mark.asyncio
async def test_page_budget_includes_the_probe(store, make_profile):
    profile = make_profile()
    provider = FakeProvider(total=47)

    outcome = await _run(store, provider, profile, max_pages=1)

    assert provider.probes == [0]
    assert provider.calls == []
    assert outcome.pages_fetched == 1
    assert outcome.budget_exhausted is True

    saved = store.get_by_id(profile.id)
    assert saved.status == "pending"
    assert saved.total_targets == 47


@pytest.mark.asyncio
async def test_budget_is_never_exceeded(store, make_profile):
    profile = make_profile()
    provider = FakeProvider(total=1000)

    outcome = await _run(store, provider, profile, max_pages=3)

    assert len(provider.probes) + len(provider.calls) == 3
    assert outcome.pages_fetched == 3


@pytest.mark.asyncio
async def test_zero_budget_fetches_nothing(store, make_profile):
    profile = make_profile()
    provider = FakeProvider(total=47)

    outcome = await _run(store, provider, profile, max_pages=0)

    assert provider.probes == [] and provider.calls == []
    assert outcome.pages_fetched == 0
    assert outcome.status == MiningStatus.PENDING
    assert store.get_by_id(profile.id).total_targets is None


@pytest.mark.asyncio
async def test_soft_fetch_failure_keeps_profile_resumable(store, make_profile):
    profile = make_profile(total_targets=100)
    provider = FakeProvider(pages={3: FetchError("gateway timeout")})

    outcome = await _run(store, provider, profile, max_pages=5)

    assert provider.calls == [0, 1, 2, 3]
    assert outcome.reason == StopReason.FETCH_FAILED
    assert outcome.budget_exhausted is False
    assert outcome.status == MiningStatus.PENDING
    assert outcome.errors == ["Page 3 search failed: gateway timeout"]

    saved = store.get_by_id(profile.id)
    assert saved.status == "pending"
    assert saved.processed_targets == 30
    assert saved.current_page == 3
    assert saved.last_error == "Page 3 search failed: gateway timeout"
    assert saved.errors[-1]["message"] == "Page 3 search failed: gateway timeout"


@pytest.mark.asyncio
async def test_page_with_errors_is_recorded_and_scan_continues(store, make_profile):
    profile = make_profile(total_targets=100)
    provider = FakeProvider(pages={0: page_result(errors=["Enrich failed for Ann: timeout"])})

    outcome = await _run(store, provider, profile, max_pages=2)

    assert provider.calls == [0, 1]
    assert outcome.errors == ["Page 0 returned errors: Enrich failed for Ann: timeout"]

    saved = store.get_by_id(profile.id)
    assert saved.processed_targets == 20
    assert saved.last_error == "Page 0 returned errors: Enrich failed for Ann: timeout"


@pytest.mark.asyncio
async def test_guarded_mode_stops_when_provider_has_no_more_pages(store, make_profile):
    profile = make_profile()
    provider = FakeProvider(total=None, pages={1: page_result(processed=4, has_more=False)})

    outcome = await _run(store, provider, profile, max_pages=5)

    assert provider.calls == [0, 1]
    assert outcome.reason == StopReason.NO_MORE_PAGES
    assert outcome.status == MiningStatus.COMPLETED
    assert store.get_by_id(profile.id).total_targets is None


@pytest.mark.asyncio
async def test_guarded_mode_keeps_going_past_empty_pages(store, make_profile):
    profile = make_profile()
    provider = FakeProvider(total=None, pages={0: page_result(processed=0, has_more=True)})

    await _run(store, provider, profile, max_pages=3)

    assert provider.calls == [0, 1]


@pytest.mark.asyncio
async def test_probe_failure_falls_back_to_guarded_mode(store, make_profile):
    profile = make_profile()
    provider = FakeProvider(
        probe_error=FetchError("connection reset"),
        pages={0: page_result(processed=3, has_more=False)},
    )

    outcome = await _run(store, provider, profile, max_pages=5)

    assert outcome.errors[0] == "Hydration error: connection reset"
    assert outcome.status == MiningStatus.COMPLETED

    saved = store.get_by_id(profile.id)
    assert saved.errors[0]["message"] == "Hydration error: connection reset"
    assert saved.last_error is None


@pytest.mark.asyncio
async def test_total_learned_from_first_page_is_persisted(store, make_profile):
    profile = make_profile()
    provider = FakeProvider(total=None, pages={0: page_result(total=12)})

    await _run(store, provider, profile, max_pages=2)

    assert store.get_by_id(profile.id).total_targets == 12


@pytest.mark.asyncio
async def test_provider_page_size_drives_checkpoint_and_requests(store, make_profile):
    profile = make_profile(processed_targets=50, current_page=0)
    provider = FakeProvider(total=500, page_size=25)

    outcome = await _run(store, provider, profile, max_pages=2)

    assert outcome.start_page == 2
    assert provider.calls == [2]
    assert provider.requests[-1].page_size == 25


@pytest.mark.asyncio
async def test_requests_carry_scope_and_correlation(store, make_profile, search_query):
    profile = make_profile(total_targets=100)
    provider = FakeProvider()

    await _run(store, provider, profile, max_pages=1)

    request = provider.requests[0]
    assert request.search_query_id == search_query.id
    assert request.site_id == "site-1"
    assert request.user_id == "user-1"
    assert request.profile_id == profile.id
    assert request.page_size == 10


@pytest.mark.asyncio
async def test_profile_is_marked_started(store, make_profile):
    profile = make_profile(total_targets=100)

    await _run(store, FakeProvider(), profile, max_pages=1)

    assert store.get_by_id(profile.id).started_at is not None


@pytest.mark.asyncio
async def test_emits_audit_trail(session, store, make_profile):
    profile = make_profile()
    provider = FakeProvider(total=47, default=page_result(found=5))

    await _run(store, provider, profile, max_pages=5, target=5, audit=AuditLog(session))

    events = AuditRepository(session).get_recent(workflow_id=f"icp-mining-{profile.id}")
    names = [event.output["event"] for event in reversed(events)]
    assert names == ["processingIcp", "hydratedTotals", "paginationStart", "pageCompleted", "icpMiningCompleted"]
    assert events[0].status == "COMPLETED"
