from __future__ import annotations

from datetime import timedelta

import pytest

from fixtures.auth_testkit import FixedClock, MemoryStore, uow_factory_for
from kvr_api.application.services.api_key_validator import ApiKeyValidator
from kvr_api.application.services.usage_recorder import UsageRecorder
from kvr_api.domain.entities.auth_records import IdentityRecord
from kvr_api.domain.exceptions.auth import (
    ExpiredApiKey,
    InactiveApiKey,
    InvalidApiKey,
    MissingScope,
    OrgMismatch,
    RateLimitExceeded,
    WorkflowNotAllowed,
)

RAW_KEY = "kvr_" + "a" * 64


@pytest.fixture
def owner(store: MemoryStore) -> IdentityRecord:
    return store.add_identity("owner@example.com")


def _validator(store: MemoryStore, clock: FixedClock, window: int = 3600) -> ApiKeyValidator:
    return ApiKeyValidator(uow_factory_for(store), window_seconds=window, clock=clock)


@pytest.mark.anyio
async def test_unknown_key_is_invalid(store: MemoryStore, clock: FixedClock) -> None:
    result = await _validator(store, clock).validate(RAW_KEY)

    assert not result.ok
    assert result.record is None
    assert isinstance(result.reason, InvalidApiKey)
    with pytest.raises(InvalidApiKey):
        result.raise_for_failure()


@pytest.mark.anyio
async def test_valid_key_passes(
    store: MemoryStore, clock: FixedClock, owner: IdentityRecord
) -> None:
    record = store.add_api_key(RAW_KEY, owner, scopes=("resources:read",))

    result = await _validator(store, clock).validate(RAW_KEY, required_scope="resources:read")

    assert result.ok
    assert result.raise_for_failure().id == record.id


@pytest.mark.anyio
async def test_inactive_is_reported_before_expiry(
    store: MemoryStore, clock: FixedClock, owner: IdentityRecord
) -> None:
    store.add_api_key(
        RAW_KEY, owner, is_active=False, expires_at=clock.now - timedelta(days=1)
    )

    result = await _validator(store, clock).validate(RAW_KEY)

    assert isinstance(result.reason, InactiveApiKey)


@pytest.mark.anyio
async def test_expired_is_reported_before_org_mismatch(
    store: MemoryStore, clock: FixedClock, owner: IdentityRecord
) -> None:
    store.add_api_key(
        RAW_KEY, owner, org_id="org-a", expires_at=clock.now - timedelta(seconds=1)
    )

    result = await _validator(store, clock).validate(RAW_KEY, requested_org_id="org-b")

    assert isinstance(result.reason, ExpiredApiKey)


@pytest.mark.anyio
async def test_org_bound_key_rejects_other_org(
    store: MemoryStore, clock: FixedClock, owner: IdentityRecord
) -> None:
    store.add_api_key(RAW_KEY, owner, org_id="org-a")
    validator = _validator(store, clock)

    mismatch = await validator.validate(RAW_KEY, requested_org_id="org-b")
    same = await validator.validate(RAW_KEY, requested_org_id="org-a")

    assert isinstance(mismatch.reason, OrgMismatch)
    assert mismatch.reason.http_status == 403
    assert same.ok


@pytest.mark.anyio
async def test_unbound_key_accepts_any_requested_org(
    store: MemoryStore, clock: FixedClock, owner: IdentityRecord
) -> None:
    store.add_api_key(RAW_KEY, owner)

    result = await _validator(store, clock).validate(RAW_KEY, requested_org_id="org-z")

    assert result.ok


@pytest.mark.anyio
async def test_sixth_request_with_limit_five_is_rate_limited(
    store: MemoryStore, clock: FixedClock, owner: IdentityRecord
) -> None:
    record = store.add_api_key(RAW_KEY, owner, rate_limit=5)
    validator = _validator(store, clock)
    recorder = UsageRecorder(uow_factory_for(store), window_seconds=3600, clock=clock)

    for _ in range(5):
        assert (await validator.validate(RAW_KEY)).ok
        await recorder.record_usage(record.id, "10.0.0.1")
    clock.advance(600)
    sixth = await validator.validate(RAW_KEY)

    assert sixth.rate_limited
    assert isinstance(sixth.reason, RateLimitExceeded)
    assert sixth.retry_after_seconds == 3000
    assert sixth.reason.details == {"retryAfter": 3000}


@pytest.mark.anyio
async def test_elapsed_window_is_reset_and_persisted(
    store: MemoryStore, clock: FixedClock, owner: IdentityRecord
) -> None:
    record = store.add_api_key(
        RAW_KEY,
        owner,
        rate_limit=5,
        rate_limit_used=5,
        rate_limit_reset=clock.now - timedelta(seconds=1),
    )

    result = await _validator(store, clock, window=60).validate(RAW_KEY)

    assert result.ok
    assert result.record is not None
    assert result.record.rate_limit_used == 0
    stored = store.api_keys[record.id]
    assert stored.rate_limit_used == 0
    assert stored.rate_limit_reset == clock.now + timedelta(seconds=60)
    assert store.commits == 1


@pytest.mark.anyio
async def test_exhausted_key_without_window_waits_full_window(
    store: MemoryStore, clock: FixedClock, owner: IdentityRecord
) -> None:
    store.add_api_key(RAW_KEY, owner, rate_limit=0)

    result = await _validator(store, clock, window=120).validate(RAW_KEY)

    assert result.retry_after_seconds == 120


@pytest.mark.anyio
async def test_rate_limit_is_checked_before_scope(
    store: MemoryStore, clock: FixedClock, owner: IdentityRecord
) -> None:
    store.add_api_key(RAW_KEY, owner, rate_limit=1, rate_limit_used=1)

    result = await _validator(store, clock).validate(RAW_KEY, required_scope="apikeys:write")

    assert result.rate_limited


@pytest.mark.anyio
async def test_missing_scope_lists_what_the_key_has(
    store: MemoryStore, clock: FixedClock, owner: IdentityRecord
) -> None:
    store.add_api_key(RAW_KEY, owner, scopes=("resources:read",))

    result = await _validator(store, clock).validate(RAW_KEY, required_scope="resources:write")

    assert isinstance(result.reason, MissingScope)
    assert result.reason.details == {
        "required": "resources:write",
        "available": ["resources:read"],
    }


@pytest.mark.anyio
async def test_workflow_allow_list(
    store: MemoryStore, clock: FixedClock, owner: IdentityRecord
) -> None:
    store.add_api_key(RAW_KEY, owner, workflow_ids=("wf-1",))
    validator = _validator(store, clock)

    allowed = await validator.validate(RAW_KEY, resource_id="wf-1")
    denied = await validator.validate(RAW_KEY, resource_id="wf-2")

    assert allowed.ok
    assert isinstance(denied.reason, WorkflowNotAllowed)
    assert denied.reason.details == {"workflowId": "wf-2"}


@pytest.mark.anyio
async def test_unrestricted_key_allows_any_workflow(
    store: MemoryStore, clock: FixedClock, owner: IdentityRecord
) -> None:
    store.add_api_key(RAW_KEY, owner)

    assert (await _validator(store, clock).validate(RAW_KEY, resource_id="wf-9")).ok
