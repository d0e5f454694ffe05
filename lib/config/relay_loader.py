from dataclasses import dataclass, field, fields
from typing import Any, Dict, List, Mapping, Optional
import os

import yaml
from pydantic import ValidationError

from lib.contracts.events import SuggestedPrompt
from lib.utils.validation import ensure, non_blank

from .yaml_loader import load_yaml_if_exists


DEFAULT_CONFIG_PATH = "config/relay.yaml"

DEFAULT_PROMPTS: List[Dict[str, str]] = [
    {
        "title": "This is a suggested prompt",
        "message": (
            "When a user clicks a prompt, the resulting prompt message text can be passed "
            "directly to your LLM for processing.\n\nAssistant, please create some helpful "
            "prompts I can provide to my users."
        ),
    },
]

DEFAULT_CHANNEL_PROMPTS: List[Dict[str, str]] = [
    {
        "title": "Summarize channel",
        "message": "Assistant, please summarize the activity in this channel!",
    },
]


class ConfigError(RuntimeError):
    """Raised when the relay cannot start with the supplied configuration."""


@dataclass
class PollSettings:
    """Backoff schedule used while waiting for a run to settle."""

    initial_interval: float = 1.0
    multiplier: float = 2.0
    max_interval: float = 8.0
    timeout: float = 300.0

    def __post_init__(self) -> None:
        ensure(self.initial_interval > 0, "polling.initial_interval_s must be positive", ConfigError)
        ensure(self.multiplier >= 1, "polling.multiplier must be >= 1", ConfigError)
        ensure(
            self.max_interval >= self.initial_interval,
            "polling.max_interval_s must be >= polling.initial_interval_s",
            ConfigError,
        )
        ensure(self.timeout > 0, "polling.timeout_s must be positive", ConfigError)


@dataclass
class ReplyTexts:
    greeting: str = "Hi, how can I help?"
    status: str = "is typing.."
    prompts_title: str = "Here are some suggested options:"
    run_failed: str = "Sorry, the assistant run failed."
    timed_out: str = "Sorry, the assistant took too long to answer. Please try again."
    empty_reply: str = "Sorry, the assistant did not return an answer."
    generic_error: str = "Sorry, something went wrong!"


@dataclass
class RelayConfig:
    """Typed view over ``relay.yaml`` merged with the process environment.

    Credentials only ever come from the environment; everything else may be
    set in YAML and selectively overridden by environment variables.
    """

    assistant_id: str
    slack_bot_token: Optional[str] = None
    slack_app_token: Optional[str] = None
    slack_signing_secret: Optional[str] = None
    openai_api_key: Optional[str] = None
    transport: str = "socket"
    http_host: str = "0.0.0.0"
    http_port: int = 3000
    log_level: str = "INFO"
    context_store_backend: str = "memory"
    context_store_path: str = "var/thread_context.yaml"
    poll: PollSettings = field(default_factory=PollSettings)
    replies: ReplyTexts = field(default_factory=ReplyTexts)
    prompts: List[SuggestedPrompt] = field(default_factory=list)
    channel_prompts: List[SuggestedPrompt] = field(default_factory=list)
    raw: Dict[str, Any] = field(default_factory=dict)

    def require_transport_credentials(self) -> None:
        """Fail fast when the chosen transport is missing its Slack secrets."""

        ensure(bool(self.slack_bot_token), "SLACK_BOT_TOKEN is not set.", ConfigError)
        if self.transport == "socket":
            ensure(bool(self.slack_app_token), "SLACK_APP_TOKEN is not set.", ConfigError)
        else:
            ensure(bool(self.slack_signing_secret), "SLACK_SIGNING_SECRET is not set.", ConfigError)


def _float(section: Mapping[str, Any], key: str, default: float) -> float:
    value = section.get(key, default)
    try:
        return float(value)
    except (TypeError, ValueError):
        raise ConfigError(f"polling.{key} must be a number, got {value!r}") from None


def _prompts(entries: Any, default: List[Dict[str, str]]) -> List[SuggestedPrompt]:
    if entries is None:
        entries = default
    try:
        return [SuggestedPrompt(**entry) for entry in entries]
    except (TypeError, ValidationError) as exc:
        raise ConfigError(f"invalid suggested prompt: {exc}") from None


def _replies(section: Mapping[str, Any]) -> ReplyTexts:
    known = {f.name for f in fields(ReplyTexts)}
    unknown = sorted(set(section) - known)
    ensure(not unknown, f"unknown replies keys: {', '.join(map(str, unknown))}", ConfigError)
    return ReplyTexts(**{k: str(v) for k, v in section.items()})


def load_relay_config(
    path: Optional[str] = None,
    environ: Optional[Mapping[str, str]] = None,
) -> RelayConfig:
    """Load the relay configuration and return a :class:`RelayConfig`.

    Parameters
    ----------
    path:
        YAML file to read.  Defaults to ``RELAY_CONFIG_PATH`` or
        ``config/relay.yaml``; a missing file is treated as empty.
    environ:
        Mapping consulted for credentials and overrides, ``os.environ`` when
        omitted.
    """

    env = os.environ if environ is None else environ
    path = path or env.get("RELAY_CONFIG_PATH") or DEFAULT_CONFIG_PATH
    try:
        raw = load_yaml_if_exists(path)
    except yaml.YAMLError as exc:
        raise ConfigError(f"cannot parse {path}: {exc}") from None
    ensure(isinstance(raw, dict), f"{path} must contain a mapping", ConfigError)
    relay = raw.get("relay", {}) or {}

    assistant_id = non_blank(env.get("OPENAI_ASSISTANT_ID")) or non_blank(relay.get("assistant_id"))
    ensure(bool(assistant_id), "OPENAI_ASSISTANT_ID is not set.", ConfigError)

    polling = relay.get("polling", {}) or {}
    poll = PollSettings(
        initial_interval=_float(polling, "initial_interval_s", 1.0),
        multiplier=_float(polling, "multiplier", 2.0),
        max_interval=_float(polling, "max_interval_s", 8.0),
        timeout=_float(polling, "timeout_s", 300.0),
    )

    replies = _replies(relay.get("replies", {}) or {})
    if relay.get("status_text"):
        replies.status = relay["status_text"]

    prompts_cfg = relay.get("suggested_prompts", {}) or {}
    if prompts_cfg.get("title"):
        replies.prompts_title = prompts_cfg["title"]

    store_cfg = relay.get("context_store", {}) or {}
    http_cfg = relay.get("http", {}) or {}

    transport = str(env.get("RELAY_TRANSPORT") or relay.get("transport", "socket")).lower()
    ensure(transport in ("socket", "http"), f"unknown transport {transport!r}", ConfigError)
    backend = str(store_cfg.get("backend", "memory")).lower()
    ensure(backend in ("memory", "file"), f"unknown context store backend {backend!r}", ConfigError)

    try:
        http_port = int(env.get("PORT") or http_cfg.get("port", 3000))
    except ValueError:
        raise ConfigError("http.port must be an integer") from None

    return RelayConfig(
        assistant_id=assistant_id,
        slack_bot_token=non_blank(env.get("SLACK_BOT_TOKEN")),
        slack_app_token=non_blank(env.get("SLACK_APP_TOKEN")),
        slack_signing_secret=non_blank(env.get("SLACK_SIGNING_SECRET")),
        openai_api_key=non_blank(env.get("OPENAI_API_KEY")),
        transport=transport,
        http_host=str(http_cfg.get("host", "0.0.0.0")),
        http_port=http_port,
        log_level=str(env.get("RELAY_LOG_LEVEL") or relay.get("log_level", "INFO")),
        context_store_backend=backend,
        context_store_path=str(
            env.get("RELAY_CONTEXT_STORE_PATH") or store_cfg.get("path", "var/thread_context.yaml")
        ),
        poll=poll,
        replies=replies,
        prompts=_prompts(prompts_cfg.get("always"), DEFAULT_PROMPTS),
        channel_prompts=_prompts(prompts_cfg.get("in_channel"), DEFAULT_CHANNEL_PROMPTS),
        raw=raw,
    )
