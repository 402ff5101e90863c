"""
Production environment configuration overrides
"""

from dataclasses import dataclass
from config.app_config import AppConfig, AuthConfig, StoreConfig


@dataclass
class ProductionConfig(AppConfig):
    """Production environment configuration"""

    def __post_init__(self):

        # Production-specific overrides
        self.environment = "production"
        self.debug = False

        # Production logging - less verbose, focus on errors
        self.logging.level = "INFO"
        self.logging.enable_file_logging = True
        self.logging.log_file = "logs/prod-support-chat.log"

        # Collection names and operator accounts come from secrets in production
        self.store = StoreConfig.from_secrets()
        self.auth = AuthConfig.from_secrets()

        # Deterministic ids and kept orphans are the safe production defaults
        self.chat.conversation_id_strategy = "user_id"
        self.chat.orphan_policy = "resume"

        self.resilience.failure_threshold = 5
        self.resilience.recovery_timeout = 60


def get_production_config() -> ProductionConfig:
    """Get production-specific configuration"""
    return ProductionConfig()
