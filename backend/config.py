import os
import logging
from dataclasses import dataclass
from dotenv import load_dotenv

# Initialize environment configuration from local or project-level .env files
dotenv_paths = [
    os.path.join(os.path.dirname(__file__), '.env'),
    os.path.join(os.path.dirname(os.path.dirname(__file__)), '.env'),
    os.path.join(os.path.dirname(os.path.dirname(__file__)), '.env.example')
]

for path in dotenv_paths:
    if os.path.exists(path):
        load_dotenv(path)
        break

LOG_FORMAT = "%(asctime)s - %(levelname)s - %(message)s"


@dataclass(frozen=True)
class EngineConfig:
    # Optional JSON file overriding the built-in discount policy
    POLICY_PATH: str = ""

    LOG_LEVEL: str = "INFO"

    # Category used when a discount carries no discount_category
    DEFAULT_CATEGORY: str = "regular"

    # Scope that matches every other scope in stacking checks
    UNIVERSAL_SCOPE: str = "all"


def load_config() -> EngineConfig:
    """
    Builds the engine configuration from the current process environment.

    Returns:
        An EngineConfig populated from DISCOUNT_* environment variables.
    """
    return EngineConfig(
        POLICY_PATH=os.environ.get("DISCOUNT_POLICY_PATH", ""),
        LOG_LEVEL=os.environ.get("DISCOUNT_LOG_LEVEL", "INFO").upper(),
    )


def setup_logging(level: str = None) -> None:
    """
    Configures root logging with the backend's standard format.

    Args:
        level: Optional level name; defaults to the configured LOG_LEVEL.
    """
    level_name = (level or config.LOG_LEVEL).upper()
    logging.basicConfig(level=getattr(logging, level_name, logging.INFO), format=LOG_FORMAT)


config = load_config()
