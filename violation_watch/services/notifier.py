import asyncio
import math
from typing import Awaitable, Dict, List, Optional
import structlog
from pydantic import BaseModel
from violation_watch.core.config import settings
from violation_watch.core.errors import NotificationError
from violation_watch.core.metrics import NOTIFICATIONS
from violation_watch.models.push import PushDeviceInfo, PushMessage, PushReport
from violation_watch.services.email import EmailMessage, EmailSender
from violation_watch.services.push import PushSender
from violation_watch.services.sms import SmsSender

logger = structlog.get_logger()

class EmailJob(BaseModel):
    recipient: str
    message: EmailMessage

class SmsJob(BaseModel):
    recipient: str
    body: str

class PushJob(BaseModel):
    devices: List[PushDeviceInfo]
    message: PushMessage

class NotificationPlan(BaseModel):
    email: Optional[EmailJob] = None
    sms: Optional[SmsJob] = None
    push: Optional[PushJob] = None

    @property
    def empty(self) -> bool:
        return self.email is None and self.sms is None and self.push is None

class FanoutReport(BaseModel):
    email_sent: bool = False
    sms_sent: bool = False
    push: Optional[PushReport] = None
    failed_channels: List[str] = []

    @property
    def push_delivered(self) -> int:
        return self.push.delivered if self.push else 0

class NotificationFanout:
    """Sends one run's notifications; every channel succeeds or fails on its own."""

    def __init__(
        self,
        email: Optional[EmailSender] = None,
        sms: Optional[SmsSender] = None,
        push: Optional[PushSender] = None,
        timeout: float = settings.NOTIFY_TIMEOUT,
    ):
        self.email = email
        self.sms = sms
        self.push = push
        self.timeout = timeout

    def available(self, channel: str) -> bool:
        sender = getattr(self, channel)
        if sender is None:
            return False
        return getattr(sender, "configured", True)

    async def aclose(self):
        for sender in (self.email, self.sms, self.push):
            close = getattr(sender, "aclose", None)
            if close is not None:
                await close()

    def _push_timeout(self, device_count: int) -> float:
        batch_size = self.push.batch_size if self.push else settings.PUSH_BATCH_SIZE
        return self.timeout * max(1, math.ceil(device_count / batch_size))

    async def _guarded(self, channel: str, job: Awaitable, timeout: float):
        try:
            return await asyncio.wait_for(job, timeout)
        except asyncio.TimeoutError as e:
            raise NotificationError(channel, f"timed out after {timeout:.0f}s") from e

    async def dispatch(self, plan: NotificationPlan) -> FanoutReport:
        jobs: Dict[str, Awaitable] = {}
        timeouts: Dict[str, float] = {}

        if plan.email and self.available("email"):
            jobs["email"] = self.email.send(plan.email.recipient, plan.email.message)
            timeouts["email"] = self.timeout
        if plan.sms and self.available("sms"):
            jobs["sms"] = self.sms.send(plan.sms.recipient, plan.sms.body)
            timeouts["sms"] = self.timeout
        if plan.push and self.available("push"):
            jobs["push"] = self.push.send(plan.push.devices, plan.push.message)
            timeouts["push"] = self._push_timeout(len(plan.push.devices))

        for channel in ("email", "sms", "push"):
            if getattr(plan, channel) is not None and channel not in jobs:
                logger.warning("notification_channel_not_configured", channel=channel)

        report = FanoutReport()
        if not jobs:
            return report

        channels = list(jobs)
        results = await asyncio.gather(
            *(self._guarded(ch, jobs[ch], timeouts[ch]) for ch in channels),
            return_exceptions=True,
        )

        for channel, result in zip(channels, results):
            if isinstance(result, BaseException):
                report.failed_channels.append(channel)
                NOTIFICATIONS.labels(channel=channel, outcome="failed").inc()
                logger.error("notification_failed", channel=channel, error=str(result),
                             error_type=type(result).__name__)
                continue

            NOTIFICATIONS.labels(channel=channel, outcome="sent").inc()
            if channel == "email":
                report.email_sent = True
            elif channel == "sms":
                report.sms_sent = True
            else:
                report.push = result
                if result.failed:
                    NOTIFICATIONS.labels(channel=channel, outcome="device_failed").inc(result.failed)

        return report