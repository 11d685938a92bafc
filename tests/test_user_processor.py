"""
Tests for the parallel user processing pipeline.
"""

import asyncio
import io
from unittest.mock import AsyncMock, MagicMock

import pytest

from conftest import E3_SKU_ID, make_user
from core.models import AssignedLicense, Manager, MfaInfo, MfaStatus, ProcessingStats, SecurityGroupInfo
from core.user_processor import NO_PREMIUM, NO_SIGN_IN, ProgressReporter, UserProcessor
from services.batch_service import BatchService
from services.mfa_service import MfaService


def make_processor(license_service, mfa=None, groups=None, max_concurrency=5, stats=None):
    mfa_service = MagicMock()
    mfa_service.get_user_mfa_info = mfa or AsyncMock(return_value=MfaInfo(
        default_method='push', mfa_status=MfaStatus.ENABLED, phone_auth=True
    ))
    group_service = MagicMock()
    group_service.get_user_security_groups = groups or AsyncMock(
        return_value=SecurityGroupInfo(groups=['Alpha', 'Beta'], count=2)
    )
    return UserProcessor(
        mfa_service, group_service, license_service, max_concurrency,
        stats=stats, progress_interval=0.01, progress_stream=io.StringIO()
    )


# --- process_user ---


@pytest.mark.asyncio
async def test_process_user_builds_record(license_service, licensed_user):
    processor = make_processor(license_service)

    record = await processor.process_user(licensed_user, has_premium=True)

    assert record.id == 'alice'
    assert record.display_name == 'Alice Smith'
    assert record.domain_name == 'contoso.com'
    assert record.manager_display_name == 'Jane Manager'
    assert record.manager_user_principal_name == 'jane@contoso.com'
    assert record.phone == '+1 555-0101,+1 555-0102'
    assert record.account_status == 'enabled'
    assert record.on_premises_sync == 'disabled'
    assert record.licensed == 'Yes'
    assert record.last_successful_sign_in == '2024-09-30T10:00:00Z'
    assert record.default_mfa_method == 'push'
    assert record.mfa_status == 'Enabled'
    assert record.phone_authentication is True
    assert record.email_authentication is False
    assert record.security_groups == 'Alpha; Beta'
    assert record.security_group_count == 2
    assert record.license_skus == 'Office 365 E3'
    assert record.license_count == 1
    assert record.enabled_service_plans == 'EXCHANGE_S_ENTERPRISE; SHAREPOINTENTERPRISE'
    assert processor.stats.processed == 1


@pytest.mark.asyncio
async def test_process_user_without_at_sign_has_no_domain(license_service):
    processor = make_processor(license_service)

    record = await processor.process_user(make_user('svc', upn='service-account'), has_premium=False)

    assert record.domain_name is None
    assert record.manager_display_name is None
    assert record.manager_user_principal_name is None
    assert record.licensed == 'No'
    assert record.license_skus == ''


@pytest.mark.asyncio
async def test_process_user_domain_is_text_after_first_at_sign(license_service):
    processor = make_processor(license_service)

    record = await processor.process_user(make_user('odd', upn='odd@sub@contoso.com'), has_premium=False)

    assert record.domain_name == 'sub'


@pytest.mark.asyncio
async def test_process_user_manager_without_fields(license_service):
    processor = make_processor(license_service)
    user = make_user('bob', manager=Manager(display_name='', user_principal_name=None))

    record = await processor.process_user(user, has_premium=False)

    assert record.manager_display_name is None
    assert record.manager_user_principal_name is None


@pytest.mark.asyncio
async def test_process_user_failure_returns_none_and_counts_error(license_service, caplog):
    mfa = AsyncMock(side_effect=RuntimeError("boom"))
    processor = make_processor(license_service, mfa=mfa)

    record = await processor.process_user(make_user('carol'), has_premium=True)

    assert record is None
    assert processor.stats.errors == 1
    assert processor.stats.processed == 0
    assert 'carol@contoso.com' in caplog.text
    assert 'boom' in caplog.text


@pytest.mark.asyncio
async def test_process_user_waits_for_both_lookups(license_service):
    finished = []

    async def slow_mfa(user_id):
        await asyncio.sleep(0.02)
        finished.append('mfa')
        return MfaInfo()

    async def fast_groups(user_id):
        finished.append('groups')
        return SecurityGroupInfo()

    processor = make_processor(license_service, mfa=slow_mfa, groups=fast_groups)

    record = await processor.process_user(make_user('dan'), has_premium=False)

    assert record is not None
    assert sorted(finished) == ['groups', 'mfa']


# --- sign-in status ---


@pytest.mark.asyncio
async def test_sign_in_status_without_premium_ignores_timestamp(license_service):
    processor = make_processor(license_service)
    users = [
        make_user('u1', last_successful_sign_in='2024-09-30T10:00:00Z'),
        make_user('u2'),
    ]

    records = await processor.process_all_users(users, has_premium=False)

    assert [r.last_successful_sign_in for r in records] == [NO_PREMIUM, NO_PREMIUM]


@pytest.mark.asyncio
async def test_sign_in_status_with_premium(license_service):
    processor = make_processor(license_service)
    users = [
        make_user('u1', last_successful_sign_in='2024-09-30T10:00:00Z'),
        make_user('u2'),
    ]

    records = await processor.process_all_users(users, has_premium=True)

    assert records[0].last_successful_sign_in == '2024-09-30T10:00:00Z'
    assert records[1].last_successful_sign_in == NO_SIGN_IN


# --- process_all_users ---


@pytest.mark.asyncio
async def test_concurrency_never_exceeds_limit(license_service):
    limit = 3
    in_flight = 0
    peak = 0

    async def tracked_mfa(user_id):
        nonlocal in_flight, peak
        in_flight += 1
        peak = max(peak, in_flight)
        await asyncio.sleep(0.005)
        in_flight -= 1
        return MfaInfo()

    processor = make_processor(license_service, mfa=tracked_mfa, max_concurrency=limit)
    users = [make_user(f"user{i}") for i in range(20)]

    records = await processor.process_all_users(users, has_premium=False)

    assert len(records) == 20
    assert peak == limit


@pytest.mark.asyncio
async def test_output_preserves_input_order_despite_completion_jitter(license_service):
    count = 12

    async def jittered_mfa(user_id):
        # earlier users finish later
        index = int(user_id.replace('user', ''))
        await asyncio.sleep((count - index) * 0.003)
        return MfaInfo()

    processor = make_processor(license_service, mfa=jittered_mfa, max_concurrency=count)
    users = [make_user(f"user{i}") for i in range(count)]

    records = await processor.process_all_users(users, has_premium=False)

    assert [r.id for r in records] == [u.id for u in users]


@pytest.mark.asyncio
async def test_admission_is_fifo(license_service):
    started = []

    async def recording_mfa(user_id):
        started.append(user_id)
        await asyncio.sleep(0.001)
        return MfaInfo()

    processor = make_processor(license_service, mfa=recording_mfa, max_concurrency=2)
    users = [make_user(f"user{i}") for i in range(8)]

    await processor.process_all_users(users, has_premium=False)

    assert started == [u.id for u in users]


@pytest.mark.asyncio
async def test_failures_are_isolated(license_service):
    failing = {'user1', 'user4', 'user7'}

    async def flaky_mfa(user_id):
        await asyncio.sleep(0.001)
        if user_id in failing:
            raise RuntimeError(f"lookup failed for {user_id}")
        return MfaInfo(default_method=f"method-{user_id}")

    processor = make_processor(license_service, mfa=flaky_mfa, max_concurrency=4)
    users = [make_user(f"user{i}") for i in range(10)]

    records = await processor.process_all_users(users, has_premium=False)

    assert len(records) == 7
    assert [r.id for r in records] == [u.id for u in users if u.id not in failing]
    assert all(r.default_mfa_method == f"method-{r.id}" for r in records)
    stats = processor.get_stats()
    assert stats.errors == 3
    assert stats.processed == 7
    assert stats.total_users == 10


@pytest.mark.asyncio
async def test_unknown_sku_falls_back_to_sku_id(license_service):
    processor = make_processor(license_service)
    users = [
        make_user('u1', assigned_licenses=[AssignedLicense('X')]),
        make_user('u2', assigned_licenses=[AssignedLicense(E3_SKU_ID)]),
    ]

    records = await processor.process_all_users(users, has_premium=False)

    assert records[0].license_skus == 'X'
    assert records[0].enabled_service_plans == ''
    assert records[0].license_count == 1


@pytest.mark.asyncio
async def test_empty_user_list(license_service):
    processor = make_processor(license_service)

    records = await processor.process_all_users([], has_premium=False)

    assert records == []
    assert processor.stats.total_users == 0


@pytest.mark.asyncio
async def test_injected_stats_are_updated_by_reference(license_service):
    stats = ProcessingStats()
    processor = make_processor(license_service, stats=stats)

    await processor.process_all_users([make_user('u1'), make_user('u2')], has_premium=False)

    assert stats.processed == 2
    assert stats.start_time is not None


@pytest.mark.asyncio
async def test_get_stats_returns_snapshot(license_service):
    processor = make_processor(license_service)
    await processor.process_all_users([make_user('u1')], has_premium=False)

    snapshot = processor.get_stats()
    processor.stats.record_error()

    assert snapshot.errors == 0


def test_rejects_non_positive_concurrency(license_service):
    with pytest.raises(ValueError):
        make_processor(license_service, max_concurrency=0)


# --- progress reporting ---


@pytest.mark.asyncio
async def test_progress_line_shows_final_counts(license_service):
    stream = io.StringIO()
    processor = make_processor(license_service)
    processor.progress_stream = stream

    await processor.process_all_users([make_user('u1'), make_user('u2')], has_premium=False)

    output = stream.getvalue()
    assert output.endswith("\n")
    final_line = output.rstrip("\n").split("\r")[-1]
    assert "Progress: 2/2 (100.0%)" in final_line
    assert "Errors: 0" in final_line


@pytest.mark.asyncio
async def test_progress_reporter_stopped_when_fan_out_raises(license_service, monkeypatch):
    reporters = []
    original_start = ProgressReporter.start

    def recording_start(self):
        reporters.append(self)
        original_start(self)

    monkeypatch.setattr(ProgressReporter, "start", recording_start)

    processor = make_processor(license_service)

    async def exploding(user, has_premium):
        raise asyncio.TimeoutError("outer failure")

    monkeypatch.setattr(processor, "process_user", exploding)

    with pytest.raises(asyncio.TimeoutError):
        await processor.process_all_users([make_user('u1')], has_premium=False)

    assert len(reporters) == 1
    assert not reporters[0].running


@pytest.mark.asyncio
async def test_progress_reporter_ticks_while_running():
    stats = ProcessingStats()
    stats.begin(4)
    stream = io.StringIO()
    reporter = ProgressReporter(stats, interval=0.01, stream=stream)

    reporter.start()
    assert reporter.running
    await asyncio.sleep(0.035)
    stats.record_success()
    await reporter.stop()

    lines = [line for line in stream.getvalue().split("\r") if line]
    assert len(lines) >= 3
    assert "Progress: 1/4 (25.0%)" in lines[-1]
    assert not reporter.running


def test_format_line_with_zero_users():
    reporter = ProgressReporter(ProcessingStats(), stream=io.StringIO())

    line = reporter.format_line()

    assert "Progress: 0/0 (0.0%)" in line
    assert "Rate: 0.0 users/sec" in line


@pytest.mark.asyncio
async def test_users_exported_when_mfa_batch_cannot_be_built(license_service):
    batch_service = BatchService(MagicMock(), MagicMock(), batch_size=1)
    mfa_service = MfaService(batch_service)
    processor = make_processor(license_service, mfa=mfa_service.get_user_mfa_info)

    records = await processor.process_all_users([make_user('a'), make_user('b')], has_premium=False)

    assert [record.id for record in records] == ['a', 'b']
    assert {record.mfa_status for record in records} == {'Unknown'}
    assert processor.stats.errors == 0
