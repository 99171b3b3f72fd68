"""
Configuration Management for Taskbot

Loads configuration from ~/.taskbot/config.json and environment variables.
"""

import os
import json
import logging
from pathlib import Path
from dataclasses import dataclass, field
from typing import List

logger = logging.getLogger("taskbot.common.config")

# Default config paths
CONFIG_DIR = Path.home() / ".taskbot"
CONFIG_PATH = Path(os.getenv("TASKBOT_CONFIG", str(CONFIG_DIR / "config.json")))
LOGS_DIR = CONFIG_DIR / "logs"
DEFAULT_DB_PATH = CONFIG_DIR / "items.db"

LOG_FORMAT = "%(asctime)s %(levelname)s [%(name)s] %(message)s"


@dataclass
class LLMConfig:
    """Shared LLM provider configuration"""
    provider: str = "openai"
    anthropic_api_key: str = ""
    anthropic_model: str = "claude-sonnet-4-20250514"
    openai_api_key: str = ""
    openai_model: str = "gpt-4o-mini"
    google_api_key: str = ""
    google_model: str = "gemini-2.0-flash-exp"
    timeout: float = 30.0

    @property
    def model(self) -> str:
        """Model name for the selected provider"""
        return {
            "anthropic": self.anthropic_model,
            "openai": self.openai_model,
            "google": self.google_model,
        }.get(self.provider, "")


@dataclass
class StoreConfig:
    """Record store configuration"""
    path: str = str(DEFAULT_DB_PATH)


@dataclass
class TwilioConfig:
    """Twilio WhatsApp reply channel"""
    account_sid: str = ""
    auth_token: str = ""
    from_number: str = ""


@dataclass
class ScribeConfig:
    """Ingestion (webhook + classification) configuration"""
    port: int = 3000
    confidence_threshold: float = 0.3  # below this a classification is dropped
    allowed_senders: List[str] = field(default_factory=list)  # empty = accept all
    bot_prefix: str = "[BOT] "
    max_reply_length: int = 4000
    reply_channel: str = "console"  # "console" or "twilio"


@dataclass
class RetrieverConfig:
    """Retriever configuration"""
    default_limit: int = 50
    hybrid_min_overlap: int = 10


@dataclass
class TaskbotConfig:
    """Main Taskbot configuration"""
    llm: LLMConfig = field(default_factory=LLMConfig)
    store: StoreConfig = field(default_factory=StoreConfig)
    scribe: ScribeConfig = field(default_factory=ScribeConfig)
    twilio: TwilioConfig = field(default_factory=TwilioConfig)
    retriever: RetrieverConfig = field(default_factory=RetrieverConfig)
    log_level: str = "INFO"
    _env_sourced_keys: set = field(default_factory=set, repr=False)


def _parse_llm_config(data: dict) -> LLMConfig:
    """Parse llm section from config dict"""
    llm_data = data.get("llm", {})
    return LLMConfig(
        provider=llm_data.get("provider", "openai"),
        anthropic_api_key=llm_data.get("anthropic_api_key", ""),
        anthropic_model=llm_data.get("anthropic_model", "claude-sonnet-4-20250514"),
        openai_api_key=llm_data.get("openai_api_key", ""),
        openai_model=llm_data.get("openai_model", "gpt-4o-mini"),
        google_api_key=llm_data.get("google_api_key", ""),
        google_model=llm_data.get("google_model", "gemini-2.0-flash-exp"),
        timeout=float(llm_data.get("timeout", 30.0)),
    )


def _parse_store_config(data: dict) -> StoreConfig:
    """Parse store section from config dict"""
    store_data = data.get("store", {})
    return StoreConfig(path=store_data.get("path", str(DEFAULT_DB_PATH)))


def _parse_scribe_config(data: dict) -> ScribeConfig:
    """Parse scribe section from config dict"""
    scribe_data = data.get("scribe", {})
    return ScribeConfig(
        port=scribe_data.get("port", 3000),
        confidence_threshold=scribe_data.get("confidence_threshold", 0.3),
        allowed_senders=list(scribe_data.get("allowed_senders", [])),
        bot_prefix=scribe_data.get("bot_prefix", "[BOT] "),
        max_reply_length=scribe_data.get("max_reply_length", 4000),
        reply_channel=scribe_data.get("reply_channel", "console"),
    )


def _parse_twilio_config(data: dict) -> TwilioConfig:
    """Parse twilio section from config dict"""
    twilio_data = data.get("twilio", {})
    return TwilioConfig(
        account_sid=twilio_data.get("account_sid", ""),
        auth_token=twilio_data.get("auth_token", ""),
        from_number=twilio_data.get("from_number", ""),
    )


def _parse_retriever_config(data: dict) -> RetrieverConfig:
    """Parse retriever section from config dict"""
    retriever_data = data.get("retriever", {})
    return RetrieverConfig(
        default_limit=retriever_data.get("default_limit", 50),
        hybrid_min_overlap=retriever_data.get("hybrid_min_overlap", 10),
    )


def load_config() -> TaskbotConfig:
    """
    Load configuration from file and environment variables.

    Priority (highest to lowest):
    1. Environment variables
    2. Config file (~/.taskbot/config.json)
    3. Default values
    """
    config = TaskbotConfig()

    if CONFIG_PATH.exists():
        try:
            with open(CONFIG_PATH) as f:
                data = json.load(f)

            config.llm = _parse_llm_config(data)
            config.store = _parse_store_config(data)
            config.scribe = _parse_scribe_config(data)
            config.twilio = _parse_twilio_config(data)
            config.retriever = _parse_retriever_config(data)
            config.log_level = data.get("log_level", "INFO")
        except (json.JSONDecodeError, IOError) as e:
            logger.warning("Failed to load config file %s: %s", CONFIG_PATH, e)

    if os.getenv("TASKBOT_DB_PATH"):
        config.store.path = os.getenv("TASKBOT_DB_PATH")

    if os.getenv("PORT"):
        config.scribe.port = int(os.getenv("PORT"))
    if os.getenv("TASKBOT_CONFIDENCE_THRESHOLD"):
        config.scribe.confidence_threshold = float(os.getenv("TASKBOT_CONFIDENCE_THRESHOLD"))
    if os.getenv("TASKBOT_ALLOWED_SENDERS"):
        config.scribe.allowed_senders = [
            s.strip() for s in os.getenv("TASKBOT_ALLOWED_SENDERS").split(",") if s.strip()
        ]
    if os.getenv("MY_WHATSAPP_NUMBER"):
        number = os.getenv("MY_WHATSAPP_NUMBER").strip()
        if number not in config.scribe.allowed_senders:
            config.scribe.allowed_senders.append(number)
    if os.getenv("TASKBOT_REPLY_CHANNEL"):
        config.scribe.reply_channel = os.getenv("TASKBOT_REPLY_CHANNEL")

    if os.getenv("TASKBOT_HYBRID_MIN_OVERLAP"):
        config.retriever.hybrid_min_overlap = int(os.getenv("TASKBOT_HYBRID_MIN_OVERLAP"))

    if os.getenv("LOG_LEVEL"):
        config.log_level = os.getenv("LOG_LEVEL")

    # Secret env var overrides (tracked so save_config never persists them)
    _env_secret_map = {
        "ANTHROPIC_API_KEY": (config.llm, "anthropic_api_key"),
        "ANTHROPIC_MODEL": (config.llm, "anthropic_model"),
        "OPENAI_API_KEY": (config.llm, "openai_api_key"),
        "OPENAI_MODEL": (config.llm, "openai_model"),
        "GOOGLE_API_KEY": (config.llm, "google_api_key"),
        "GEMINI_API_KEY": (config.llm, "google_api_key"),
        "GOOGLE_MODEL": (config.llm, "google_model"),
        "TASKBOT_LLM_PROVIDER": (config.llm, "provider"),
        "TWILIO_ACCOUNT_SID": (config.twilio, "account_sid"),
        "TWILIO_AUTH_TOKEN": (config.twilio, "auth_token"),
        "TWILIO_WHATSAPP_FROM": (config.twilio, "from_number"),
    }
    for env_var, (section, attr) in _env_secret_map.items():
        val = os.getenv(env_var)
        if val:
            setattr(section, attr, val)
            config._env_sourced_keys.add(attr)

    return config


def save_config(config: TaskbotConfig) -> None:
    """Save configuration to file.

    Secret fields that were sourced from environment variables are written
    as empty strings so that secrets are not persisted to disk.
    """
    CONFIG_DIR.mkdir(parents=True, exist_ok=True)

    env_sourced = getattr(config, "_env_sourced_keys", set())
    _secret_fields = {
        "anthropic_api_key", "openai_api_key", "google_api_key",
        "account_sid", "auth_token",
    }

    def _secret(attr: str, value: str) -> str:
        return "" if attr in _secret_fields and attr in env_sourced else value

    data = {
        "llm": {
            "provider": config.llm.provider,
            "anthropic_api_key": _secret("anthropic_api_key", config.llm.anthropic_api_key),
            "anthropic_model": config.llm.anthropic_model,
            "openai_api_key": _secret("openai_api_key", config.llm.openai_api_key),
            "openai_model": config.llm.openai_model,
            "google_api_key": _secret("google_api_key", config.llm.google_api_key),
            "google_model": config.llm.google_model,
            "timeout": config.llm.timeout,
        },
        "store": {
            "path": config.store.path,
        },
        "scribe": {
            "port": config.scribe.port,
            "confidence_threshold": config.scribe.confidence_threshold,
            "allowed_senders": config.scribe.allowed_senders,
            "bot_prefix": config.scribe.bot_prefix,
            "max_reply_length": config.scribe.max_reply_length,
            "reply_channel": config.scribe.reply_channel,
        },
        "twilio": {
            "account_sid": _secret("account_sid", config.twilio.account_sid),
            "auth_token": _secret("auth_token", config.twilio.auth_token),
            "from_number": config.twilio.from_number,
        },
        "retriever": {
            "default_limit": config.retriever.default_limit,
            "hybrid_min_overlap": config.retriever.hybrid_min_overlap,
        },
        "log_level": config.log_level,
    }

    with open(CONFIG_PATH, "w") as f:
        json.dump(data, f, indent=2)

    # Set secure permissions
    CONFIG_PATH.chmod(0o600)


def ensure_directories() -> None:
    """Ensure required directories exist"""
    CONFIG_DIR.mkdir(parents=True, exist_ok=True)
    LOGS_DIR.mkdir(parents=True, exist_ok=True)


def configure_logging(level: str = "INFO") -> None:
    """Install one stream handler on the ``taskbot`` logger hierarchy."""
    root = logging.getLogger("taskbot")
    root.setLevel(getattr(logging, str(level).upper(), logging.INFO))
    if not any(getattr(h, "_taskbot_handler", False) for h in root.handlers):
        handler = logging.StreamHandler()
        handler.setFormatter(logging.Formatter(LOG_FORMAT))
        handler._taskbot_handler = True
        root.addHandler(handler)
