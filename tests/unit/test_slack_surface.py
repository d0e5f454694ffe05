import asyncio

import pytest
from slack_bolt.async_app import AsyncAssistant
from slack_bolt.request.async_request import AsyncBoltRequest
from slack_sdk.web.async_client import AsyncWebClient
from slack_sdk.web.async_slack_response import AsyncSlackResponse

from apps.assistant_relay.main import create_bolt_app, create_relay
from apps.assistant_relay.slack_surface import BoltSurface, build_assistant
from lib.contracts.events import AssistantThreadEvent, SuggestedPrompt, UserMessage
from lib.contracts.run import ThreadMessage


class _Utility:
    def __init__(self):
        self.calls = []

    async def __call__(self, *args, **kwargs):
        self.calls.append((args, kwargs))


def test_bolt_surface_forwards_to_bolt_utilities():
    say, title, status, prompts = _Utility(), _Utility(), _Utility(), _Utility()
    surface = BoltSurface(say_fn=say, set_title_fn=title, set_status_fn=status, set_suggested_prompts_fn=prompts)

    async def flow():
        await surface.say("hi")
        await surface.set_title("Hello")
        await surface.set_status("is typing..")
        await surface.set_suggested_prompts([SuggestedPrompt(title="t", message="m")], "Pick one")

    asyncio.run(flow())

    assert say.calls == [((), {"text": "hi"})]
    assert title.calls == [(("Hello",), {})]
    assert status.calls == [(("is typing..",), {})]
    assert prompts.calls == [((), {"prompts": [{"title": "t", "message": "m"}], "title": "Pick one"})]


def test_bolt_surface_without_utility_raises():
    surface = BoltSurface(say_fn=_Utility())
    with pytest.raises(RuntimeError):
        asyncio.run(surface.set_title("x"))


def test_build_assistant_returns_bolt_middleware(relay):
    assert isinstance(build_assistant(relay), AsyncAssistant)


def test_events_parse_slack_payloads():
    started = AssistantThreadEvent.from_event(
        {
            "type": "assistant_thread_started",
            "assistant_thread": {
                "user_id": "U1",
                "channel_id": "D1",
                "thread_ts": "1729999327.187299",
                "context": {"channel_id": "C1", "team_id": "T1", "enterprise_id": "E1"},
            },
        }
    )
    assert started.key == "D1:1729999327.187299"
    assert started.in_channel

    bare = AssistantThreadEvent.from_event({"assistant_thread": {"channel_id": "D1", "thread_ts": "1", "context": {}}})
    assert not bare.in_channel

    message = UserMessage.from_event(
        {"type": "message", "channel": "D1", "text": "Hello", "thread_ts": "1", "ts": "2", "channel_type": "im"}
    )
    assert message.key == "D1:1"
    assert message.text == "Hello"


# ---------------------------------------------------------------------------
# Bolt dispatch
# ---------------------------------------------------------------------------

@pytest.fixture
def slack_calls(monkeypatch):
    calls = []

    async def api_call(self, api_method, **kwargs):
        payload = kwargs.get("json") or kwargs.get("params") or kwargs.get("data") or {}
        calls.append((api_method, dict(payload)))
        data = {
            "ok": True,
            "user_id": "UBOT",
            "bot_id": "BBOT",
            "team_id": "T0",
            "channel": payload.get("channel"),
            "ts": "300.1",
            "messages": [],
        }
        return AsyncSlackResponse(
            client=self,
            http_verb="POST",
            api_url=f"https://slack.com/api/{api_method}",
            req_args={},
            data=data,
            headers={},
            status_code=200,
        )

    monkeypatch.setattr(AsyncWebClient, "api_call", api_call)
    return calls


def _envelope(event):
    return {
        "type": "event_callback",
        "team_id": "T0",
        "api_app_id": "A1",
        "event_id": "Ev1",
        "event_time": 1729999327,
        "event": event,
    }


async def _dispatch_and_wait(bolt, event, calls, until):
    await bolt.async_dispatch(AsyncBoltRequest(body=_envelope(event), mode="socket_mode"))
    for _ in range(200):
        if until in [method for method, _ in calls]:
            return
        await asyncio.sleep(0.01)
    raise AssertionError(f"{until} was never called: {calls}")


def _bolt(relay_config, run_client):
    relay_config.slack_bot_token = "xoxb-test"
    relay_config.slack_signing_secret = "secret"
    return create_bolt_app(relay_config, create_relay(relay_config, run_client=run_client))


def test_thread_started_through_bolt(relay_config, run_client, slack_calls):
    bolt = _bolt(relay_config, run_client)
    event = {
        "type": "assistant_thread_started",
        "assistant_thread": {
            "user_id": "U1",
            "channel_id": "D1",
            "thread_ts": "100.1",
            "context": {"channel_id": "C1", "team_id": "T0"},
        },
        "event_ts": "100.2",
    }

    asyncio.run(_dispatch_and_wait(bolt, event, slack_calls, "assistant.threads.setSuggestedPrompts"))

    posted = [p for m, p in slack_calls if m == "chat.postMessage"]
    assert posted[0]["text"] == "Hi, how can I help?"
    assert posted[0]["channel"] == "D1"
    prompts = [p for m, p in slack_calls if m == "assistant.threads.setSuggestedPrompts"][0]
    assert [p["title"] for p in prompts["prompts"]] == ["This is a suggested prompt", "Summarize channel"]
    assert prompts["title"] == "Here are some suggested options:"


def test_user_message_through_bolt(relay_config, run_client, slack_calls):
    run_client.initial_status = "completed"
    run_client.messages = [ThreadMessage(role="assistant", text="Hi there!")]
    bolt = _bolt(relay_config, run_client)
    event = {
        "type": "message",
        "channel": "D1",
        "channel_type": "im",
        "user": "U1",
        "text": "Hello",
        "ts": "100.3",
        "thread_ts": "100.1",
        "event_ts": "100.3",
    }

    asyncio.run(_dispatch_and_wait(bolt, event, slack_calls, "chat.postMessage"))

    methods = [m for m, _ in slack_calls]
    title = [p for m, p in slack_calls if m == "assistant.threads.setTitle"][0]
    status = [p for m, p in slack_calls if m == "assistant.threads.setStatus"][0]
    posted = [p for m, p in slack_calls if m == "chat.postMessage"][0]
    assert title["title"] == "Hello"
    assert status["status"] == "is typing.."
    assert posted["text"] == "Hi there!"
    assert posted["thread_ts"] == "100.1"
    assert methods.index("assistant.threads.setTitle") < methods.index("chat.postMessage")
