from typing import Optional
import httpx
import structlog
from violation_watch.core.config import settings
from violation_watch.core.errors import CircuitOpenError, NotificationError
from violation_watch.models.records import SyncResult
from violation_watch.services.http_client import ServiceClient

logger = structlog.get_logger()

def _plural(count: int, word: str) -> str:
    return f"{count} {word}{'s' if count != 1 else ''}"

def compose_sms(result: SyncResult, brand: str = settings.REPORT_BRAND) -> str:
    lines = [f"{brand}: Found {_plural(result.total, 'new violation')} today"]
    if result.new_casefiles:
        lines.append(f"• {_plural(len(result.new_casefiles), 'new case')}")
    if result.new_records_for_existing_cases:
        lines.append(f"• {_plural(len(result.new_records_for_existing_cases), 'update')} to existing cases")
    return "\n".join(lines)

def compose_test_sms(brand: str = settings.REPORT_BRAND) -> str:
    return f"{brand}: This is a test SMS notification. Your SMS alerts are working correctly!"

class SmsSender:
    """Delivers text messages through the Twilio Messages API."""

    channel = "sms"

    def __init__(
        self,
        account_sid: Optional[str] = settings.TWILIO_ACCOUNT_SID,
        auth_token: Optional[str] = settings.TWILIO_AUTH_TOKEN,
        from_number: str = settings.TWILIO_FROM_NUMBER,
        client: Optional[ServiceClient] = None,
    ):
        self.account_sid = account_sid
        self.auth_token = auth_token
        self.from_number = from_number
        self.client = client or ServiceClient(
            settings.TWILIO_BASE_URL, "twilio", timeout=settings.NOTIFY_TIMEOUT
        )

    @property
    def configured(self) -> bool:
        return bool(self.account_sid and self.auth_token)

    async def send(self, phone_number: str, body: str) -> str:
        if not self.configured:
            raise NotificationError(self.channel, "Twilio credentials are not configured")
        try:
            response = await self.client.request(
                "POST",
                f"/2010-04-01/Accounts/{self.account_sid}/Messages.json",
                data={"To": phone_number, "From": self.from_number, "Body": body},
                auth=(self.account_sid, self.auth_token),
            )
        except (httpx.HTTPError, CircuitOpenError) as e:
            raise NotificationError(self.channel, str(e)) from e

        if not response.is_success:
            raise NotificationError(self.channel, f"Twilio API error: {response.status_code} - {response.text}")

        try:
            payload = response.json()
        except ValueError:
            payload = {}
        sid = payload.get("sid", "") if isinstance(payload, dict) else ""
        logger.info("sms_sent", to=phone_number, sid=sid)
        return sid
