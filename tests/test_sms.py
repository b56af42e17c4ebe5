from urllib.parse import parse_qs
import httpx
import pytest
from violation_watch.core.errors import NotificationError
from violation_watch.models.records import SyncResult
from violation_watch.services.http_client import ServiceClient
from violation_watch.services.sms import SmsSender, compose_sms, compose_test_sms
from conftest import make_record

def test_compose_sms_counts():
    new = [make_record(1, "C1"), make_record(2, "C2")]
    upd = [make_record(3, "C3")]
    result = SyncResult(new_records=new + upd, new_casefiles=new, new_records_for_existing_cases=upd)

    body = compose_sms(result, brand="JFW")

    assert body == "JFW: Found 3 new violations today\n• 2 new cases\n• 1 update to existing cases"

def test_compose_sms_single_new_case():
    rec = make_record(1, "C1")
    body = compose_sms(SyncResult(new_records=[rec], new_casefiles=[rec]), brand="JFW")

    assert body == "JFW: Found 1 new violation today\n• 1 new case"

def test_test_sms():
    assert "test SMS" in compose_test_sms(brand="JFW")

@pytest.mark.asyncio
async def test_send_uses_twilio_form_and_basic_auth():
    seen = {}

    def handler(request):
        seen["path"] = request.url.path
        seen["form"] = parse_qs(request.content.decode())
        seen["auth"] = request.headers["authorization"]
        return httpx.Response(201, json={"sid": "SM123"})

    client = ServiceClient("https://twilio.example", "twilio-test", transport=httpx.MockTransport(handler))
    sender = SmsSender(account_sid="AC1", auth_token="secret", from_number="+18445550100", client=client)

    sid = await sender.send("+14125550100", "hello")

    assert sid == "SM123"
    assert seen["path"] == "/2010-04-01/Accounts/AC1/Messages.json"
    assert seen["form"] == {"To": ["+14125550100"], "From": ["+18445550100"], "Body": ["hello"]}
    assert seen["auth"].startswith("Basic ")

@pytest.mark.asyncio
async def test_send_failure_raises_notification_error():
    def handler(request):
        return httpx.Response(400, json={"message": "invalid number"})

    client = ServiceClient("https://twilio.example", "twilio-test", transport=httpx.MockTransport(handler))
    sender = SmsSender(account_sid="AC1", auth_token="secret", client=client)

    with pytest.raises(NotificationError) as exc_info:
        await sender.send("+1", "hello")

    assert exc_info.value.channel == "sms"

@pytest.mark.asyncio
async def test_accepted_send_without_json_body_still_succeeds():
    def handler(request):
        return httpx.Response(201, text="<Response/>")

    client = ServiceClient("https://twilio.example", "twilio-test", transport=httpx.MockTransport(handler))
    sender = SmsSender(account_sid="AC1", auth_token="secret", client=client)

    assert await sender.send("+14125550100", "hello") == ""
