# =============================================================================
# core/user_processor.py - Parallel user enrichment
# =============================================================================

import asyncio
import contextlib
import dataclasses
import logging
import sys
from typing import List, Optional, TextIO

from core.models import GraphUser, ProcessedUserRecord, ProcessingStats
from services.group_service import GroupService
from services.license_service import LicenseService
from services.mfa_service import MfaService

NO_SIGN_IN = "No sign in"
NO_PREMIUM = "No Microsoft Entra ID Premium license"


class ProgressReporter:
    """Periodically redraws one progress line from the shared stats while users are processed"""

    def __init__(self, stats: ProcessingStats, interval: float = 0.5,
                 stream: Optional[TextIO] = None):
        self.stats = stats
        self.interval = interval
        self.stream = stream
        self._task: Optional[asyncio.Task] = None

    def format_line(self) -> str:
        stats = self.stats
        return (
            f"\r   Progress: {stats.processed}/{stats.total_users} ({stats.percent_complete:.1f}%) | "
            f"Rate: {stats.rate:.1f} users/sec | Errors: {stats.errors} | "
            f"Elapsed: {stats.elapsed_seconds:.0f}s"
        )

    def render(self, end: str = "") -> None:
        stream = self.stream or sys.stdout
        stream.write(self.format_line() + end)
        stream.flush()

    def start(self) -> None:
        if self._task is None:
            self._task = asyncio.create_task(self._run())

    async def stop(self) -> None:
        """Cancel the ticker and draw the final counts"""
        if self._task is not None:
            self._task.cancel()
            with contextlib.suppress(asyncio.CancelledError):
                await self._task
            self._task = None
        self.render(end="\n")

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    async def _run(self) -> None:
        while True:
            self.render()
            await asyncio.sleep(self.interval)


class UserProcessor:
    """Enriches users with MFA, group and license data under a global concurrency limit"""

    def __init__(self, mfa_service: MfaService, group_service: GroupService,
                 license_service: LicenseService, max_concurrency: int,
                 stats: Optional[ProcessingStats] = None,
                 progress_interval: float = 0.5,
                 progress_stream: Optional[TextIO] = None):
        if max_concurrency < 1:
            raise ValueError("max_concurrency must be at least 1")

        self.mfa_service = mfa_service
        self.group_service = group_service
        self.license_service = license_service
        self.max_concurrency = max_concurrency
        self.stats = stats if stats is not None else ProcessingStats()
        self.progress_interval = progress_interval
        self.progress_stream = progress_stream
        self.logger = logging.getLogger(self.__class__.__name__)

    def get_stats(self) -> ProcessingStats:
        """Snapshot of the processing statistics"""
        return dataclasses.replace(self.stats)

    async def process_all_users(self, users: List[GraphUser], has_premium: bool) -> List[ProcessedUserRecord]:
        """
        Process every user with at most max_concurrency lookups in flight.

        Users are admitted in list order and results come back in list order,
        whatever order the lookups finish in. A user whose processing fails is
        counted in stats.errors and left out of the result.
        """
        self.logger.info("Processing users with parallel execution...")
        self.logger.info(f"Concurrency: {self.max_concurrency} parallel requests")

        self.stats.begin(len(users))
        semaphore = asyncio.Semaphore(self.max_concurrency)
        reporter = ProgressReporter(self.stats, self.progress_interval, self.progress_stream)

        async def limited(user: GraphUser) -> Optional[ProcessedUserRecord]:
            async with semaphore:
                return await self.process_user(user, has_premium)

        reporter.start()
        try:
            results = await asyncio.gather(*(limited(user) for user in users))
        finally:
            await reporter.stop()

        self.logger.info("User processing complete")
        return [record for record in results if record is not None]

    async def process_user(self, user: GraphUser, has_premium: bool) -> Optional[ProcessedUserRecord]:
        """Build one export record; returns None instead of raising when anything fails"""
        try:
            mfa_info, security_groups = await asyncio.gather(
                self.mfa_service.get_user_mfa_info(user.id),
                self.group_service.get_user_security_groups(user.id),
            )

            # No API call, resolved from the cached catalog
            license_details = self.license_service.get_user_license_details(user.assigned_licenses)

            upn = user.user_principal_name
            domain_name = upn.split('@')[1] if upn and '@' in upn else None

            manager = user.manager
            manager_display_name = (manager.display_name or None) if manager else None
            manager_upn = (manager.user_principal_name or None) if manager else None

            record = ProcessedUserRecord(
                id=user.id,
                first_name=user.given_name,
                last_name=user.surname,
                display_name=user.display_name,
                user_principal_name=upn,
                domain_name=domain_name,
                email_address=user.mail,
                job_title=user.job_title,
                manager_display_name=manager_display_name,
                manager_user_principal_name=manager_upn,
                department=user.department,
                company=user.company_name,
                office=user.office_location,
                employee_id=user.employee_id,
                mobile=user.mobile_phone,
                phone=','.join(user.business_phones) if user.business_phones else None,
                street=user.street_address,
                city=user.city,
                postal_code=user.postal_code,
                state=user.state,
                country=user.country,
                user_type=user.user_type,
                on_premises_sync='enabled' if user.on_premises_sync_enabled else 'disabled',
                account_status='enabled' if user.account_enabled else 'disabled',
                account_created_on=user.created_date_time,
                last_successful_sign_in=self.sign_in_status(user, has_premium),
                licensed='Yes' if user.assigned_licenses else 'No',
                default_mfa_method=mfa_info.default_method,
                mfa_status=mfa_info.mfa_status.value,
                email_authentication=mfa_info.email_auth,
                fido2_authentication=mfa_info.fido2_auth,
                microsoft_authenticator_app=mfa_info.ms_authenticator_app,
                microsoft_authenticator_lite=mfa_info.ms_authenticator_lite,
                phone_authentication=mfa_info.phone_auth,
                software_oath=mfa_info.software_oath,
                temporary_access_pass=mfa_info.temporary_access_pass,
                windows_hello_for_business=mfa_info.windows_hello,
                security_groups='; '.join(security_groups.groups),
                security_group_count=security_groups.count,
                license_skus='; '.join(license_details.license_skus),
                license_count=license_details.license_count,
                enabled_service_plans='; '.join(license_details.service_plans),
            )

            self.stats.record_success()
            return record

        except Exception as e:
            self.stats.record_error()
            self.logger.error(f"Error processing user {user.user_principal_name}: {e}")
            return None

    @staticmethod
    def sign_in_status(user: GraphUser, has_premium: bool) -> str:
        if not has_premium:
            return NO_PREMIUM
        return user.last_successful_sign_in or NO_SIGN_IN
