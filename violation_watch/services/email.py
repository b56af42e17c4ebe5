from datetime import date, datetime, timezone
from html import escape
from typing import Dict, List, Optional
from urllib.parse import quote
import httpx
import structlog
from pydantic import BaseModel
from violation_watch.core.config import settings
from violation_watch.core.errors import CircuitOpenError, NotificationError
from violation_watch.models.records import SyncResult, ViolationRecord
from violation_watch.models.settings import RunSettings
from violation_watch.services.http_client import ServiceClient

logger = structlog.get_logger()

LINK_STYLE = "color: #2754C5; text-decoration: none;"
BUTTON_STYLE = (
    "background-color: #2754C5; color: white; padding: 10px 20px; "
    "text-decoration: none; border-radius: 5px; display: inline-block;"
)
ITEM_STYLE = "margin-bottom: 15px; padding: 10px; border: 1px solid #e0e0e0; border-radius: 5px;"

class EmailMessage(BaseModel):
    subject: str
    html: str

def _plural(count: int, word: str) -> str:
    return f"{count} {word}{'s' if count != 1 else ''}"

def _text(value: Optional[object]) -> str:
    return escape(str(value)) if value else "N/A"

def _record_items(records: List[ViolationRecord], dashboard_url: str, limit: int) -> str:
    items = []
    for record in records[:limit]:
        case_link = f"{dashboard_url}?case={quote(record.casefile_number or '')}"
        items.append(
            f'<li style="{ITEM_STYLE}">'
            f"<strong>Address:</strong> {_text(record.address)}<br>"
            f'<strong>Case File:</strong> <a href="{escape(case_link)}" style="{LINK_STYLE}">{_text(record.casefile_number)}</a><br>'
            f"<strong>Status:</strong> {_text(record.status)}<br>"
            f"<strong>Investigation Date:</strong> {_text(record.investigation_date)}<br>"
            f"<strong>Description:</strong> {_text(record.violation_description)}"
            f"</li>"
        )
    if len(records) > limit:
        items.append(f"<li><em>... and {len(records) - limit} more records</em></li>")
    return "\n".join(items)

def _status_items(open_counts: Optional[Dict[str, int]], dashboard_url: str) -> str:
    if open_counts is None:
        return "<li>Unable to retrieve case status counts</li>"
    if not open_counts:
        return "<li>No open cases</li>"
    return "\n".join(
        f'<li><strong><a href="{escape(dashboard_url)}?status={quote(status)}" style="{LINK_STYLE}">'
        f"{escape(status)}</a>:</strong> {count}</li>"
        for status, count in sorted(open_counts.items())
    )

def compose_report(
    result: SyncResult,
    open_counts: Optional[Dict[str, int]],
    report_date: date,
    dashboard_url: str = settings.DASHBOARD_URL,
    brand: str = settings.REPORT_BRAND,
    list_limit: int = settings.EMAIL_LIST_LIMIT,
) -> EmailMessage:
    """Build the violation report; subject and heading depend on what changed."""
    day = f"{report_date:%A, %B} {report_date.day}, {report_date.year}"
    new_cases = len(result.new_casefiles)
    updates = len(result.new_records_for_existing_cases)
    total = result.total

    if total == 0:
        subject = f"{brand} Violations Report - No new violations found"
        intro = "We completed today's check and <strong>no new violations</strong> were found."
        listing = ""
        footer = "<p>The system will continue to monitor for new violations and notify you when they are found.</p>"
    else:
        if new_cases and updates:
            subject = f"{brand} Violations Report - {new_cases} new and {_plural(updates, 'updated violation')}"
            found = f"{new_cases} new and {_plural(updates, 'updated violation')}"
            heading = "New and Updated Records"
        elif updates:
            subject = f"{brand} Violations Report - {_plural(updates, 'updated violation')}"
            found = _plural(updates, "updated violation")
            heading = "Updated Records"
        else:
            subject = f"{brand} Violations Report - {_plural(new_cases, 'new violation')} found"
            found = _plural(new_cases, "new violation")
            heading = "New Records"
        intro = f"We found <strong>{found}</strong> during today's check."
        listing = (
            f"<h3>{heading} (click case numbers for direct access):</h3>\n"
            f'<ul style="list-style-type: none; padding: 0;">\n'
            f"{_record_items(result.new_records, dashboard_url, list_limit)}\n"
            f"</ul>"
        )
        footer = ""

    html = (
        f"<h2>Property Violation Report - {day}</h2>\n"
        f"<p>{intro}</p>\n"
        f"{listing}\n"
        f"<h3>Number of open cases in each state:</h3>\n"
        f"<ul>\n{_status_items(open_counts, dashboard_url)}\n</ul>\n"
        f"{footer}\n"
        f'<p><a href="{escape(dashboard_url)}" style="{BUTTON_STYLE}">View Dashboard</a></p>\n'
        f"<p><em>This is an automated message from the Property Investigation Dashboard.</em></p>"
    )
    return EmailMessage(subject=subject, html=html)

def compose_test_email(
    run_settings: RunSettings,
    recipient: str,
    dashboard_url: str = settings.DASHBOARD_URL,
) -> EmailMessage:
    checks = "Enabled" if run_settings.violation_checks_enabled else "Disabled"
    html = (
        "<h2>Test Email from Property Violation System</h2>\n"
        "<p>This is a test email to verify that your email notification system is working correctly.</p>\n"
        "<h3>System Status:</h3>\n<ul>\n"
        "<li><strong>Email Reports:</strong> Enabled</li>\n"
        f"<li><strong>Email Address:</strong> {escape(recipient)}</li>\n"
        f"<li><strong>Violation Checks:</strong> {checks}</li>\n"
        f"<li><strong>Test Time:</strong> {datetime.now(timezone.utc).isoformat()}</li>\n"
        "</ul>\n"
        "<p>If you received this email, your notification system is working properly!</p>\n"
        f'<p><a href="{escape(dashboard_url)}" style="{BUTTON_STYLE}">View Dashboard</a></p>'
    )
    return EmailMessage(subject="Test Email - Property Violation System", html=html)

class EmailSender:
    """Delivers messages through the Resend transactional email API."""

    channel = "email"

    def __init__(
        self,
        api_key: Optional[str] = settings.RESEND_API_KEY,
        sender: str = settings.EMAIL_FROM,
        client: Optional[ServiceClient] = None,
    ):
        self.api_key = api_key
        self.sender = sender
        self.client = client or ServiceClient(
            settings.RESEND_BASE_URL, "resend", timeout=settings.NOTIFY_TIMEOUT
        )

    @property
    def configured(self) -> bool:
        return bool(self.api_key)

    async def send(self, recipient: str, message: EmailMessage) -> str:
        if not self.configured:
            raise NotificationError(self.channel, "Resend API key is not configured")
        try:
            response = await self.client.request(
                "POST",
                "/emails",
                json={
                    "from": self.sender,
                    "to": [recipient],
                    "subject": message.subject,
                    "html": message.html,
                },
                headers={"Authorization": f"Bearer {self.api_key}"},
            )
        except (httpx.HTTPError, CircuitOpenError) as e:
            raise NotificationError(self.channel, str(e)) from e

        if not response.is_success:
            raise NotificationError(self.channel, f"Resend API error: {response.status_code} - {response.text}")

        try:
            payload = response.json()
        except ValueError:
            payload = {}
        message_id = payload.get("id", "") if isinstance(payload, dict) else ""
        logger.info("email_sent", recipient=recipient, subject=message.subject, message_id=message_id)
        return message_id
