import asyncio
import base64
import json

import httpx
import pytest

from autopm.clients.issue_tracker import JiraClient
from autopm.clients.mailer import GmailMailer, encode_message
from autopm.clients.researcher import DuckDuckGoResearcher

API = "/ex/jira/cloud-1/rest/api/3"


def decode_raw(raw: str) -> bytes:
    return base64.urlsafe_b64decode(raw + "=" * (-len(raw) % 4))


def test_encode_message_is_unpadded_base64url():
    raw = encode_message("ana@acme.io", "Kickoff", "Hello Ana")
    assert "=" not in raw
    msg = decode_raw(raw)
    assert b"To: ana@acme.io" in msg
    assert b"Subject: Kickoff" in msg
    assert b"Hello Ana" in msg


def test_gmail_send_posts_raw_message():
    seen = {}

    def handler(request: httpx.Request) -> httpx.Response:
        seen["path"] = request.url.path
        seen["auth"] = request.headers["Authorization"]
        seen["body"] = json.loads(request.content)
        return httpx.Response(200, json={"id": "m-1"})

    mailer = GmailMailer("tok", transport=httpx.MockTransport(handler))
    asyncio.run(mailer.send("ana@acme.io", "Kickoff", "Hello"))

    assert seen["path"] == "/gmail/v1/users/me/messages/send"
    assert seen["auth"] == "Bearer tok"
    assert b"Subject: Kickoff" in decode_raw(seen["body"]["raw"])


def test_gmail_error_raises():
    mailer = GmailMailer("tok", transport=httpx.MockTransport(lambda r: httpx.Response(403, text="forbidden")))
    with pytest.raises(httpx.HTTPStatusError, match="403"):
        asyncio.run(mailer.send("ana@acme.io", "s", "b"))


class FakeJira:
    def __init__(self):
        self.requests = []

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        path = request.url.path
        if path == "/oauth/token/accessible-resources":
            return httpx.Response(200, json=[{"id": "cloud-1", "name": "acme"}])
        if path == f"{API}/user/search":
            if request.url.params["query"] == "ana@acme.io":
                return httpx.Response(200, json=[{"accountId": "acc-ana"}])
            return httpx.Response(200, json=[])
        if path == f"{API}/issue":
            return httpx.Response(201, json={"id": "100", "key": "CHURN-1"})
        if path == f"{API}/project":
            body = json.loads(request.content)
            return httpx.Response(201, json={"id": 10001, "key": body["key"], "self": "https://jira/p/10001"})
        if path == f"{API}/project/CHURN/role":
            return httpx.Response(204)
        return httpx.Response(404, text="unknown")


def test_jira_resolves_cloud_id_once_and_looks_up_accounts():
    fake = FakeJira()
    jira = JiraClient("tok", transport=httpx.MockTransport(fake))

    assert asyncio.run(jira.resolve_account_id("ana@acme.io")) == "acc-ana"
    with pytest.raises(LookupError):
        asyncio.run(jira.resolve_account_id("ghost@acme.io"))

    discovery_calls = [r for r in fake.requests if r.url.path == "/oauth/token/accessible-resources"]
    assert len(discovery_calls) == 1


def test_jira_create_ticket_sends_adf_description_and_assignee():
    fake = FakeJira()
    jira = JiraClient("tok", cloud_id="cloud-1", transport=httpx.MockTransport(fake))

    ticket = asyncio.run(jira.create_ticket("CHURN", "Build score", "Train v1", "acc-ana"))

    assert ticket.key == "CHURN-1"
    assert ticket.assignee == "acc-ana"
    fields = json.loads(fake.requests[-1].content)["fields"]
    assert fields["project"] == {"key": "CHURN"}
    assert fields["assignee"] == {"accountId": "acc-ana"}
    assert fields["description"]["type"] == "doc"
    assert fields["description"]["content"][0]["content"][0]["text"] == "Train v1"


def test_jira_project_creation_and_invite():
    fake = FakeJira()
    jira = JiraClient("tok", cloud_id="cloud-1", transport=httpx.MockTransport(fake))

    project = asyncio.run(jira.create_project("Churn Radar", "CHURN1234"))
    assert project == {"key": "CHURN1234", "id": "10001", "url": "https://jira/p/10001"}

    asyncio.run(jira.invite_member("CHURN", "acc-ana"))
    assert json.loads(fake.requests[-1].content) == {"user": ["acc-ana"]}


def test_jira_http_error_raises():
    jira = JiraClient("tok", cloud_id="cloud-1", transport=httpx.MockTransport(lambda r: httpx.Response(400, text="bad")))
    with pytest.raises(httpx.HTTPStatusError):
        asyncio.run(jira.create_ticket("CHURN", "s", "d"))


def test_research_flattens_topics_and_caps_results():
    seen = {}

    def handler(request: httpx.Request) -> httpx.Response:
        seen["params"] = dict(request.url.params)
        return httpx.Response(
            200,
            json={
                "AbstractText": "",
                "RelatedTopics": [
                    {"Text": "One", "FirstURL": "https://ddg/1"},
                    {"Name": "Group", "Topics": [{"Text": "Two", "FirstURL": "https://ddg/2"}, {"Text": "Three"}]},
                    {"FirstURL": "https://ddg/empty"},
                    {"Text": "Four", "FirstURL": "https://ddg/4"},
                ],
            },
        )

    researcher = DuckDuckGoResearcher(max_results=3, transport=httpx.MockTransport(handler))
    hits = asyncio.run(researcher.search("churn prediction"))

    assert seen["params"]["q"] == "churn prediction"
    assert seen["params"]["format"] == "json"
    assert [h.text for h in hits] == ["One", "Two", "Three"]
    assert [h.reference() for h in hits] == ["https://ddg/1", "https://ddg/2", "Three"]


def test_research_error_raises():
    researcher = DuckDuckGoResearcher(transport=httpx.MockTransport(lambda r: httpx.Response(500, text="down")))
    with pytest.raises(httpx.HTTPStatusError, match="500"):
        asyncio.run(researcher.search("churn"))
