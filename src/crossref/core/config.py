#!/usr/bin/env python3
"""
Pipeline configuration.

Typed dataclasses for the database, the external integrations and the
pipeline thresholds, filled from the environment (plus an optional .env
file) and validated as a whole so every bad value is reported at once.
"""

import os
import logging
from dataclasses import dataclass, field
from typing import Optional, Dict, List, Tuple
from pathlib import Path

logger = logging.getLogger(__name__)

PROJECT_ROOT = Path(__file__).resolve().parents[3]


@dataclass
class DatabaseConfig:
    """Database connection configuration."""
    database_url: Optional[str] = None
    connection_timeout: int = 30
    max_retries: int = 3


@dataclass
class IntegrationConfig:
    """External integration configuration."""
    openai_api_key: Optional[str] = None
    openai_model: str = "gpt-4o"
    openai_image_model: str = "dall-e-3"
    enable_images: bool = False
    webhook_urls: List[str] = field(default_factory=list)
    webhook_timeout: int = 10


@dataclass
class ApplicationConfig:
    """Core application configuration."""
    # Feed settings
    feed_timeout: int = 10
    feed_user_agent: str = "Mozilla/5.0 (compatible; NewsCrossRef/1.0)"
    max_concurrent_feeds: int = 5
    freshness_hours: int = 48
    feed_cache_ttl_seconds: int = 900  # 15 minutes
    max_title_length: int = 500
    max_description_length: int = 2000

    # Clustering
    admission_threshold: float = 0.30
    cluster_similarity_metadata: float = 0.80
    max_keywords: int = 10
    min_keyword_length: int = 4

    # Verification
    max_recheck_attempts: int = 3
    recheck_interval_hours: float = 1.0
    candidate_window_hours: int = 48

    # Task runner
    task_concurrency: int = 3
    task_max_retries: int = 3
    task_default_priority: int = 5
    task_poll_interval: float = 2.0
    task_lease_seconds: int = 600  # running longer than this counts as abandoned

    # Static configuration files
    sources_file: str = str(PROJECT_ROOT / "config" / "sources.json")
    rules_file: str = str(PROJECT_ROOT / "config" / "rules.json")

    # Logging
    log_level: str = "INFO"
    verbose_logging: bool = False


@dataclass
class Config:
    """Master configuration container."""
    database: DatabaseConfig
    integrations: IntegrationConfig
    app: ApplicationConfig

    # Environment info
    environment: str = field(default_factory=lambda: os.getenv('ENVIRONMENT', 'development'))

    def has_database(self) -> bool:
        """Check if a PostgreSQL database is configured."""
        return bool(self.database.database_url)

    def has_openai(self) -> bool:
        """Check if OpenAI integration is available."""
        return bool(self.integrations.openai_api_key)

    def has_webhooks(self) -> bool:
        """Check if completion webhooks are configured."""
        return bool(self.integrations.webhook_urls)

    def integration_status(self) -> Dict[str, bool]:
        """Get status of all integrations."""
        return {
            'database': self.has_database(),
            'openai': self.has_openai(),
            'image_generation': self.has_openai() and self.integrations.enable_images,
            'webhooks': self.has_webhooks()
        }


def _split_list(value: Optional[str]) -> List[str]:
    if not value:
        return []
    return [item.strip() for item in value.split(',') if item.strip()]


def _env_int(name: str, default: int) -> int:
    raw = os.getenv(name)
    if raw is None or raw.strip() == '':
        return default
    try:
        return int(raw)
    except ValueError:
        raise ValueError(f"{name} must be an integer, got {raw!r}") from None


def _env_float(name: str, default: float) -> float:
    raw = os.getenv(name)
    if raw is None or raw.strip() == '':
        return default
    try:
        return float(raw)
    except ValueError:
        raise ValueError(f"{name} must be a number, got {raw!r}") from None


def _env_bool(name: str, default: bool) -> bool:
    raw = os.getenv(name)
    if raw is None:
        return default
    return raw.strip().lower() in ('1', 'true', 'yes', 'on')


def _parse_env_line(line: str) -> Optional[Tuple[str, str]]:
    """
    Parse one .env line.

    Returns:
        (key, value) for an assignment, None for blank lines and comments

    Raises:
        ValueError: If the line is neither blank, a comment nor KEY=value
    """
    line = line.strip()
    if not line or line.startswith('#'):
        return None
    if line.startswith('export '):
        line = line[len('export '):].lstrip()
    key, sep, value = line.partition('=')
    key = key.strip()
    if not sep or not key:
        raise ValueError(line)
    value = value.strip()
    if len(value) >= 2 and value[0] == value[-1] and value[0] in ('"', "'"):
        value = value[1:-1]
    return key, value


class ConfigManager:
    """Loads .env, builds the typed Config and validates it once."""

    def __init__(self, env_file_path: str = ".env"):
        """
        Args:
            env_file_path: .env location relative to the project root; a
                missing file is not an error
        """
        self._config: Optional[Config] = None
        self._env_path = PROJECT_ROOT / env_file_path
        self._load_dotenv()

    def _load_dotenv(self) -> None:
        """Copy .env assignments into os.environ without overriding real variables."""
        try:
            text = self._env_path.read_text(encoding='utf-8')
        except FileNotFoundError:
            logger.debug(f"No .env file at {self._env_path}")
            return
        except OSError as e:
            logger.error(f"Could not read {self._env_path}: {e}")
            return

        loaded = 0
        for line_num, raw_line in enumerate(text.splitlines(), 1):
            try:
                assignment = _parse_env_line(raw_line)
            except ValueError:
                logger.warning(f"{self._env_path.name}:{line_num} is not KEY=value, ignored")
                continue
            if assignment is None:
                continue
            key, value = assignment
            if key in os.environ:
                continue
            os.environ[key] = value
            loaded += 1

        logger.info(f"Loaded {loaded} variables from {self._env_path}")

    def get_config(self, force_reload: bool = False) -> Config:
        """
        Get application configuration.

        Args:
            force_reload: Force reloading configuration from environment

        Returns:
            Complete configuration object
        """
        if self._config is None or force_reload:
            self._config = self._build_config()
        return self._config

    def _build_config(self) -> Config:
        """Build configuration from environment variables, falling back to dataclass defaults."""
        db = DatabaseConfig()
        integrations = IntegrationConfig()
        app = ApplicationConfig()

        database_config = DatabaseConfig(
            database_url=os.getenv('DATABASE_URL') or None,
            connection_timeout=_env_int('DB_CONNECTION_TIMEOUT', db.connection_timeout),
            max_retries=_env_int('DB_MAX_RETRIES', db.max_retries)
        )

        integration_config = IntegrationConfig(
            openai_api_key=os.getenv('OPENAI_API_KEY'),
            openai_model=os.getenv('OPENAI_MODEL', integrations.openai_model),
            openai_image_model=os.getenv('OPENAI_IMAGE_MODEL', integrations.openai_image_model),
            enable_images=_env_bool('ENABLE_IMAGE_GENERATION', integrations.enable_images),
            webhook_urls=_split_list(os.getenv('WEBHOOK_URLS')),
            webhook_timeout=_env_int('WEBHOOK_TIMEOUT', integrations.webhook_timeout)
        )

        app_config = ApplicationConfig(
            feed_timeout=_env_int('FEED_TIMEOUT', app.feed_timeout),
            feed_user_agent=os.getenv('FEED_USER_AGENT', app.feed_user_agent),
            max_concurrent_feeds=_env_int('MAX_CONCURRENT_FEEDS', app.max_concurrent_feeds),
            freshness_hours=_env_int('FRESHNESS_HOURS', app.freshness_hours),
            feed_cache_ttl_seconds=_env_int('FEED_CACHE_TTL', app.feed_cache_ttl_seconds),
            max_title_length=_env_int('MAX_TITLE_LENGTH', app.max_title_length),
            max_description_length=_env_int('MAX_DESCRIPTION_LENGTH', app.max_description_length),
            admission_threshold=_env_float('ADMISSION_THRESHOLD', app.admission_threshold),
            cluster_similarity_metadata=_env_float('CLUSTER_SIMILARITY_THRESHOLD', app.cluster_similarity_metadata),
            max_keywords=_env_int('MAX_KEYWORDS', app.max_keywords),
            min_keyword_length=_env_int('MIN_KEYWORD_LENGTH', app.min_keyword_length),
            max_recheck_attempts=_env_int('MAX_RECHECK_ATTEMPTS', app.max_recheck_attempts),
            recheck_interval_hours=_env_float('RECHECK_INTERVAL_HOURS', app.recheck_interval_hours),
            candidate_window_hours=_env_int('CANDIDATE_WINDOW_HOURS', app.candidate_window_hours),
            task_concurrency=_env_int('TASK_CONCURRENCY', app.task_concurrency),
            task_max_retries=_env_int('TASK_MAX_RETRIES', app.task_max_retries),
            task_default_priority=_env_int('TASK_DEFAULT_PRIORITY', app.task_default_priority),
            task_poll_interval=_env_float('TASK_POLL_INTERVAL', app.task_poll_interval),
            task_lease_seconds=_env_int('TASK_LEASE_SECONDS', app.task_lease_seconds),
            sources_file=os.getenv('SOURCES_FILE', app.sources_file),
            rules_file=os.getenv('RULES_FILE', app.rules_file),
            log_level=os.getenv('LOG_LEVEL', app.log_level).upper(),
            verbose_logging=_env_bool('VERBOSE_LOGGING', app.verbose_logging)
        )

        config = Config(
            database=database_config,
            integrations=integration_config,
            app=app_config
        )

        self._validate_config(config)
        return config

    def _validate_config(self, config: Config) -> None:
        """Validate configuration values."""
        errors = []

        if config.database.database_url and not config.database.database_url.startswith(('postgresql://', 'postgres://')):
            errors.append("DATABASE_URL must be a postgresql:// connection string")

        for name, value in [('ADMISSION_THRESHOLD', config.app.admission_threshold),
                            ('CLUSTER_SIMILARITY_THRESHOLD', config.app.cluster_similarity_metadata)]:
            if value < 0 or value > 1:
                errors.append(f"{name} must be between 0 and 1")

        if config.app.feed_timeout < 1:
            errors.append("FEED_TIMEOUT must be at least 1 second")

        if config.app.max_concurrent_feeds < 1 or config.app.max_concurrent_feeds > 20:
            errors.append("MAX_CONCURRENT_FEEDS must be between 1 and 20")

        if config.app.task_concurrency < 1 or config.app.task_concurrency > 20:
            errors.append("TASK_CONCURRENCY must be between 1 and 20")

        if config.app.max_recheck_attempts < 1:
            errors.append("MAX_RECHECK_ATTEMPTS must be at least 1")

        if config.app.recheck_interval_hours <= 0:
            errors.append("RECHECK_INTERVAL_HOURS must be positive")

        if config.app.task_max_retries < 1:
            errors.append("TASK_MAX_RETRIES must be at least 1")

        if config.app.task_lease_seconds < 1:
            errors.append("TASK_LEASE_SECONDS must be at least 1")

        if config.app.freshness_hours < 1:
            errors.append("FRESHNESS_HOURS must be at least 1")

        for url in config.integrations.webhook_urls:
            if not url.startswith(('http://', 'https://')):
                errors.append(f"WEBHOOK_URLS entry is not an http(s) URL: {url}")

        valid_log_levels = ['DEBUG', 'INFO', 'WARNING', 'ERROR', 'CRITICAL']
        if config.app.log_level not in valid_log_levels:
            errors.append(f"LOG_LEVEL must be one of: {', '.join(valid_log_levels)}")

        if errors:
            raise ValueError(f"Configuration validation failed: {'; '.join(errors)}")

        logger.debug("Configuration validation passed")

    def update_logging(self) -> None:
        """Configure logging based on current configuration."""
        config = self.get_config()

        numeric_level = getattr(logging, config.app.log_level)
        logging.getLogger().setLevel(numeric_level)

        if config.app.verbose_logging:
            format_str = '%(asctime)s - %(name)s - %(levelname)s - %(filename)s:%(lineno)d - %(message)s'
        else:
            format_str = '%(asctime)s - %(name)s - %(levelname)s - %(message)s'

        for handler in logging.getLogger().handlers:
            handler.setLevel(numeric_level)
            formatter = logging.Formatter(format_str, datefmt='%Y-%m-%d %H:%M:%S')
            handler.setFormatter(formatter)


# Global configuration manager instance
_config_manager: Optional[ConfigManager] = None


def get_config_manager() -> ConfigManager:
    """Get global configuration manager instance."""
    global _config_manager
    if _config_manager is None:
        _config_manager = ConfigManager()
    return _config_manager


def get_config() -> Config:
    """Get application configuration."""
    return get_config_manager().get_config()
