"""
Support chat configuration.

One dataclass per concern (store, chat, auth, logging), each read from
Streamlit secrets with environment variables as the fallback.
"""

from dataclasses import dataclass, field
from typing import Dict, Any, Optional, List
import streamlit as st
import os
from pathlib import Path


CONVERSATION_ID_STRATEGIES = ("user_id", "generated")
ORPHAN_POLICIES = ("resume", "cleanup")


def _read_secret(name: str, default: str = "") -> str:
    """Read a value from Streamlit secrets, falling back to environment variables"""
    # In test environment, prefer environment variables
    if os.getenv("PYTEST_CURRENT_TEST") is not None:
        return os.getenv(name, default)

    try:
        return st.secrets.get(name, os.getenv(name, default))
    except Exception:
        # Secrets file missing or unreadable
        return os.getenv(name, default)


@dataclass
class StoreConfig:
    """Document store layout"""
    conversations_collection: str = "supportChats"
    messages_subcollection: str = "messages"
    latency_seconds: float = 0.0  # simulated network latency of the in-memory store

    @classmethod
    def from_secrets(cls) -> 'StoreConfig':
        """Load store layout from Streamlit secrets"""
        return cls(
            conversations_collection=_read_secret("SUPPORT_CONVERSATIONS_COLLECTION", "supportChats"),
            messages_subcollection=_read_secret("SUPPORT_MESSAGES_SUBCOLLECTION", "messages"),
            latency_seconds=float(_read_secret("SUPPORT_STORE_LATENCY", "0") or 0),
        )


@dataclass
class ChatConfig:
    """Support chat texts and policies"""
    greeting_message: str = "Hello! Welcome to Support. How can we assist you today?"
    welcome_back_message: str = "Welcome back! Let us know how we can help."
    auto_reply_message: str = "Our agent will shortly assist you..."
    operator_reply_notice: str = "Agent has replied to your message."
    operator_prefix: str = "Admin: "
    anonymous_label: str = "anonymous"
    conversation_id_strategy: str = "user_id"  # "user_id" or "generated"
    orphan_policy: str = "resume"  # "resume" or "cleanup"


@dataclass
class AuthConfig:
    """Authentication collaborator settings"""
    operator_emails: List[str] = field(default_factory=list)

    @classmethod
    def from_secrets(cls) -> 'AuthConfig':
        """Load operator emails from Streamlit secrets"""
        raw = _read_secret("SUPPORT_OPERATOR_EMAILS", "")
        emails = [email.strip().lower() for email in raw.split(",") if email.strip()]
        return cls(operator_emails=emails)


@dataclass
class ResilienceConfig:
    """Circuit breaker and retry settings for durable writes"""
    failure_threshold: int = 5
    recovery_timeout: int = 60
    delete_max_retries: int = 3
    retry_base_delay: float = 0.5
    retry_max_delay: float = 8.0


@dataclass
class LoggingConfig:
    """Logging and monitoring configuration"""
    level: str = "INFO"
    format: str = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"
    enable_file_logging: bool = True
    log_file: str = "logs/support-chat.log"


@dataclass
class AppConfig:
    """Main application configuration"""
    store: StoreConfig = field(default_factory=StoreConfig)
    chat: ChatConfig = field(default_factory=ChatConfig)
    auth: AuthConfig = field(default_factory=AuthConfig)
    resilience: ResilienceConfig = field(default_factory=ResilienceConfig)
    logging: LoggingConfig = field(default_factory=LoggingConfig)

    # Environment settings
    environment: str = field(default_factory=lambda: os.getenv("APP_ENV", "development"))
    debug: bool = field(default_factory=lambda: os.getenv("DEBUG", "false").lower() == "true")

    @classmethod
    def load(cls) -> 'AppConfig':
        """Read every section and apply the per-environment log level"""
        config = cls()

        config.store = StoreConfig.from_secrets()
        config.auth = AuthConfig.from_secrets()

        # Apply environment-specific overrides
        if config.environment == "production":
            config.debug = False
            config.logging.level = "WARNING"
        elif config.environment == "development":
            config.debug = True
            config.logging.level = "DEBUG"

        if os.getenv("PYTEST_CURRENT_TEST") is not None:
            config.logging.enable_file_logging = False

        return config

    def validate(self) -> List[str]:
        """Problems that make the configuration unusable, as readable messages"""
        errors = []

        if not self.store.conversations_collection:
            errors.append("Conversations collection name is required")
        if not self.store.messages_subcollection:
            errors.append("Messages subcollection name is required")
        if "/" in self.store.conversations_collection or "/" in self.store.messages_subcollection:
            errors.append("Collection names must not contain '/'")

        if self.chat.conversation_id_strategy not in CONVERSATION_ID_STRATEGIES:
            errors.append(f"Unknown conversation id strategy '{self.chat.conversation_id_strategy}'")
        if self.chat.orphan_policy not in ORPHAN_POLICIES:
            errors.append(f"Unknown orphan policy '{self.chat.orphan_policy}'")
        if self.chat.greeting_message == self.chat.welcome_back_message:
            errors.append("Greeting and welcome-back messages must differ")

        if self.store.latency_seconds < 0:
            errors.append("Store latency must not be negative")

        if self.resilience.failure_threshold < 1:
            errors.append("Circuit breaker failure threshold must be at least 1")

        if self.logging.enable_file_logging:
            log_dir = Path(self.logging.log_file).parent
            if not log_dir.exists():
                log_dir.mkdir(parents=True, exist_ok=True)

        return errors

    def is_operator_email(self, email: Optional[str]) -> bool:
        """Check whether an email belongs to a configured operator"""
        return bool(email) and email.lower() in self.auth.operator_emails

    def to_dict(self) -> Dict[str, Any]:
        """Summarize the non-secret settings for diagnostics"""
        return {
            "environment": self.environment,
            "debug": self.debug,
            "conversations_collection": self.store.conversations_collection,
            "messages_subcollection": self.store.messages_subcollection,
            "conversation_id_strategy": self.chat.conversation_id_strategy,
            "orphan_policy": self.chat.orphan_policy,
            "operator_count": len(self.auth.operator_emails),
        }


# Global configuration instance
_config: Optional[AppConfig] = None


def get_config() -> AppConfig:
    """Process-wide configuration, loaded and validated on first use"""
    global _config
    if _config is None:
        _config = AppConfig.load()

        # Validate configuration
        errors = _config.validate()
        if errors:
            import warnings
            for error in errors:
                warnings.warn(f"Configuration error: {error}")

    return _config


def reload_config() -> AppConfig:
    """Discard the cached configuration and load it again"""
    global _config
    _config = None
    return get_config()
