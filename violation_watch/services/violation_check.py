from datetime import date
from typing import Callable, Dict, Optional
import structlog
from sqlalchemy.exc import SQLAlchemyError
from violation_watch.core.errors import CheckpointError, PersistenceError
from violation_watch.core.metrics import CHECK_RUNS, RECORDS_INGESTED
from violation_watch.models.check import CheckOptions, CheckResult, RunCadence
from violation_watch.models.records import SyncResult
from violation_watch.models.settings import RunSettings
from violation_watch.services.email import EmailSender, compose_report, compose_test_email
from violation_watch.services.notifier import (
    EmailJob,
    FanoutReport,
    NotificationFanout,
    NotificationPlan,
    PushJob,
    SmsJob,
)
from violation_watch.services.push import PushSender, compose_push
from violation_watch.services.sms import SmsSender, compose_sms, compose_test_sms
from violation_watch.services.store import RecordStore
from violation_watch.services.sync import filter_new
from violation_watch.services.upstream import UpstreamClient, compute_since

logger = structlog.get_logger()

def build_fanout() -> NotificationFanout:
    return NotificationFanout(
        email=EmailSender(),
        sms=SmsSender(),
        push=PushSender.from_settings(),
    )

class ViolationCheck:
    """One sync run: settings, fetch, diff, persist, notify, checkpoint.

    Fetch errors propagate and leave the checkpoint untouched. Everything
    after the diff is best-effort: a failed insert or a failed channel is
    logged and reported in the result, never raised.
    """

    def __init__(
        self,
        store: RecordStore,
        upstream: UpstreamClient,
        fanout: NotificationFanout,
        today: Callable[[], date] = date.today,
    ):
        self.store = store
        self.upstream = upstream
        self.fanout = fanout
        self.today = today

    async def run(self, options: CheckOptions, cadence: RunCadence = RunCadence.DAILY) -> CheckResult:
        run_settings = await self.store.load_settings()

        if options.test_run:
            result = await self._send_tests(run_settings, options)
            CHECK_RUNS.labels(cadence=cadence.value, outcome="test").inc()
            return result

        if not run_settings.violation_checks_enabled:
            logger.info("violation_checks_disabled")
            CHECK_RUNS.labels(cadence=cadence.value, outcome="disabled").inc()
            return CheckResult(message="Violation checks are disabled")

        try:
            sync_result = await self._fetch_and_diff(options)
        except Exception:
            CHECK_RUNS.labels(cadence=cadence.value, outcome="failed").inc()
            raise

        saved = await self._persist(sync_result)

        plan = await self._plan(run_settings, sync_result, options)
        report = await self.fanout.dispatch(plan)
        await self._log_deliveries(plan, report, sync_result.total)

        try:
            await self.store.update_checkpoint(sync_result.total)
        except CheckpointError as e:
            logger.error("checkpoint_update_failed", error=str(e))

        if options.full_sync:
            message = "Full sync completed successfully"
        else:
            message = f"{cadence.value.capitalize()} check completed successfully"

        CHECK_RUNS.labels(cadence=cadence.value, outcome="completed").inc()
        logger.info(
            "violation_check_completed",
            new_records=sync_result.total,
            new_casefiles=len(sync_result.new_casefiles),
            updates=len(sync_result.new_records_for_existing_cases),
            saved=saved,
            email_sent=report.email_sent,
            sms_sent=report.sms_sent,
            push_delivered=report.push_delivered,
            failed_channels=report.failed_channels,
        )
        return CheckResult(
            message=message,
            new_records_count=sync_result.total,
            new_casefiles_count=len(sync_result.new_casefiles),
            new_records_for_existing_cases_count=len(sync_result.new_records_for_existing_cases),
            email_sent=report.email_sent,
            sms_sent=report.sms_sent,
            push_delivered=report.push_delivered,
            saved_successfully=saved,
        )

    async def _fetch_and_diff(self, options: CheckOptions) -> SyncResult:
        parcel_ids = await self.store.watched_parcel_ids()
        latest = await self.store.latest_investigation_date()
        since = compute_since(latest, options.full_sync)
        logger.info(
            "violation_check_started",
            parcels=len(parcel_ids),
            since=since.isoformat(),
            full_sync=options.full_sync,
        )

        records = await self.upstream.fetch_records(parcel_ids, since)
        existing_ids = await self.store.existing_ids()
        existing_casefiles = await self.store.existing_casefile_numbers()
        return filter_new(
            records,
            existing_ids,
            existing_casefiles,
            None if options.full_sync else latest,
        )

    async def _persist(self, sync_result: SyncResult) -> bool:
        if not sync_result.has_news:
            return True
        try:
            inserted = await self.store.insert_new(sync_result.new_records)
        except PersistenceError as e:
            RECORDS_INGESTED.inc(e.saved_count)
            logger.error(
                "violations_persist_failed",
                saved=e.saved_count,
                attempted=sync_result.total,
                error=str(e),
            )
            return False
        RECORDS_INGESTED.inc(inserted)
        return True

    async def _open_case_counts(self) -> Optional[Dict[str, int]]:
        try:
            return await self.store.open_case_counts()
        except SQLAlchemyError as e:
            await self.store.session.rollback()
            logger.error("open_case_counts_failed", error=str(e))
            return None

    async def _plan(
        self,
        run_settings: RunSettings,
        sync_result: SyncResult,
        options: CheckOptions,
    ) -> NotificationPlan:
        plan = NotificationPlan()

        if not options.skip_email and run_settings.email_recipient:
            open_counts = await self._open_case_counts()
            plan.email = EmailJob(
                recipient=run_settings.email_recipient,
                message=compose_report(sync_result, open_counts, self.today()),
            )

        if not sync_result.has_news:
            return plan

        if not options.skip_sms and run_settings.sms_recipient:
            plan.sms = SmsJob(recipient=run_settings.sms_recipient, body=compose_sms(sync_result))

        if not options.skip_push and run_settings.push_notifications_enabled and self.fanout.available("push"):
            try:
                devices = await self.store.push_devices()
            except SQLAlchemyError as e:
                await self.store.session.rollback()
                logger.error("push_devices_load_failed", error=str(e))
                devices = []
            if PushSender.eligible(devices):
                plan.push = PushJob(devices=devices, message=compose_push(sync_result))
            else:
                logger.info("push_skipped", reason="no_eligible_devices")

        return plan

    async def _log_deliveries(self, plan: NotificationPlan, report: FanoutReport, count: int):
        if plan.email and self.fanout.available("email"):
            status = "sent" if report.email_sent else "failed"
            await self.store.log_notification("email", plan.email.recipient, count, status)
        if plan.sms and self.fanout.available("sms"):
            status = "sent" if report.sms_sent else "failed"
            await self.store.log_notification("sms", plan.sms.recipient, count, status)
        if plan.push and self.fanout.available("push"):
            status = "sent" if report.push_delivered else "failed"
            await self.store.log_notification("push", f"{len(plan.push.devices)} devices", count, status)

    async def _send_tests(self, run_settings: RunSettings, options: CheckOptions) -> CheckResult:
        plan = NotificationPlan()
        if not options.skip_email and run_settings.email_recipient:
            plan.email = EmailJob(
                recipient=run_settings.email_recipient,
                message=compose_test_email(run_settings, run_settings.email_recipient),
            )
        if not options.skip_sms and run_settings.sms_recipient:
            plan.sms = SmsJob(recipient=run_settings.sms_recipient, body=compose_test_sms())

        if plan.empty:
            logger.info("test_run_skipped", reason="no_enabled_channels")
            return CheckResult(message="Email and SMS reports are disabled or not configured")

        report = await self.fanout.dispatch(plan)
        logger.info("test_notifications_sent", email_sent=report.email_sent, sms_sent=report.sms_sent)
        return CheckResult(
            message="Test notifications sent",
            email_sent=report.email_sent,
            sms_sent=report.sms_sent,
        )
