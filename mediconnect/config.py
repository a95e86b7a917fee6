"""
Configuration Management

Unified configuration for the MediConnect reporting back end: database,
logging, report engine and web settings, read from an optional .config.json
file with environment variable overrides.

Author: MediConnect Team
"""

import os
import json
import logging
import logging.handlers
from datetime import datetime
from pathlib import Path
from typing import Dict, List, Optional, Any
from dataclasses import dataclass, field
from enum import Enum


class Environment(Enum):
    """Supported environments"""
    DEVELOPMENT = "development"
    TESTING = "testing"
    PRODUCTION = "production"


class LogLevel(Enum):
    """Supported log levels"""
    DEBUG = "DEBUG"
    INFO = "INFO"
    WARNING = "WARNING"
    ERROR = "ERROR"
    CRITICAL = "CRITICAL"


@dataclass
class DatabaseConfig:
    """Clinic store (SQLite) settings"""
    path: Path = field(default_factory=lambda: Path("data/database/mediconnect.db"))
    journal_mode: str = "WAL"
    connection_timeout: int = 30
    max_connections: int = 10


@dataclass
class LoggingConfig:
    """Logging configuration"""
    level: LogLevel = LogLevel.INFO
    format: str = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"
    date_format: str = "%Y-%m-%d %H:%M:%S"
    logs_dir: Path = field(default_factory=lambda: Path("data/logs"))
    file_rotation_size: int = 10 * 1024 * 1024  # 10MB
    file_retention_count: int = 5
    enable_console: bool = True
    enable_file: bool = True


@dataclass
class ReportConfig:
    """Report engine settings"""
    # Display name used for incidental labeling (API title, log lines)
    app_name: str = "MediConnect"
    # Worker threads for concurrent sub-fetches (financial split, doctor performance, dashboard)
    max_workers: int = 8
    top_n_limit: int = 10
    no_data_marker: str = "No data available"


@dataclass
class WebConfig:
    """Reports API server settings"""
    host: str = "0.0.0.0"
    port: int = 8000
    reload: bool = False
    log_level: str = "info"
    cors_origins: List[str] = field(default_factory=lambda: ["*"])


class UnifiedConfig:
    """
    Central configuration, one instance per process.

    Sections are read from .config.json when present; MEDICONNECT_* (and
    WEB_*) environment variables take precedence over the file.
    """

    _instance: Optional['UnifiedConfig'] = None
    _initialized: bool = False
    _config_file = Path(".config.json")
    _json_config: Optional[Dict[str, Any]] = None

    def __new__(cls):
        if cls._instance is None:
            cls._instance = super().__new__(cls)
        return cls._instance

    def __init__(self):
        if self._initialized:
            return

        self._load_json_config()

        env_mode = os.getenv('MEDICONNECT_ENVIRONMENT') or self._section('environment').get('mode', 'development')
        self.environment = Environment(env_mode)

        self.database = self._load_database_config()
        self.logging = self._load_logging_config()
        self.reports = self._load_report_config()
        self.web = self._load_web_config()

        self._initialized = True

    def _load_json_config(self):
        """Load .config.json if it exists; a broken file falls back to defaults"""
        logger = logging.getLogger(__name__)
        if not self._config_file.exists():
            logger.debug(f"Config file {self._config_file} not found. Using defaults.")
            self._json_config = None
            return

        try:
            with open(self._config_file, 'r', encoding='utf-8') as f:
                self._json_config = json.load(f)
            logger.info(f"Loaded configuration from {self._config_file}")
        except (json.JSONDecodeError, IOError) as e:
            logger.warning(f"Error loading {self._config_file}: {e}. Using defaults.")
            self._json_config = None

    def _section(self, name: str) -> Dict[str, Any]:
        """One top-level section of the JSON file; documentation keys (_*) are skipped"""
        section = (self._json_config or {}).get(name)
        if not isinstance(section, dict):
            return {}
        return {k: v for k, v in section.items() if not k.startswith('_')}

    def _load_database_config(self) -> DatabaseConfig:
        section = self._section('database')
        config = DatabaseConfig()

        config.path = Path(os.getenv('MEDICONNECT_DATABASE_PATH', section.get('path', str(config.path))))
        config.journal_mode = section.get('journal_mode', config.journal_mode)
        config.connection_timeout = int(os.getenv('MEDICONNECT_DATABASE_TIMEOUT',
                                                  section.get('connection_timeout', config.connection_timeout)))
        config.max_connections = int(os.getenv('MEDICONNECT_DATABASE_MAX_CONNECTIONS',
                                               section.get('max_connections', config.max_connections)))
        return config

    def _load_logging_config(self) -> LoggingConfig:
        section = self._section('logging')
        config = LoggingConfig()

        log_level = os.getenv('MEDICONNECT_LOG_LEVEL', section.get('level', 'INFO'))
        try:
            config.level = LogLevel(log_level.upper())
        except ValueError:
            config.level = LogLevel.INFO

        config.format = os.getenv('MEDICONNECT_LOG_FORMAT', section.get('format', config.format))
        config.date_format = section.get('date_format', config.date_format)
        config.logs_dir = Path(os.getenv('MEDICONNECT_LOGS_DIR', section.get('logs_dir', str(config.logs_dir))))
        config.file_rotation_size = section.get('file_rotation_size_mb', 10) * 1024 * 1024
        config.file_retention_count = section.get('file_retention_count', config.file_retention_count)
        config.enable_console = section.get('enable_console', True)
        config.enable_file = section.get('enable_file', True)

        # Adjust for environment
        if self.environment == Environment.DEVELOPMENT:
            config.level = LogLevel.DEBUG
        elif self.environment == Environment.TESTING:
            config.enable_file = False
        elif self.environment == Environment.PRODUCTION:
            config.level = LogLevel.INFO
            config.enable_console = False

        return config

    def _load_report_config(self) -> ReportConfig:
        section = self._section('reports')
        config = ReportConfig()

        config.app_name = os.getenv('MEDICONNECT_APP_NAME', section.get('app_name', config.app_name))
        config.max_workers = int(os.getenv('MEDICONNECT_REPORT_WORKERS', section.get('max_workers', config.max_workers)))
        config.top_n_limit = int(section.get('top_n_limit', config.top_n_limit))
        config.no_data_marker = section.get('no_data_marker', config.no_data_marker)
        return config

    def _load_web_config(self) -> WebConfig:
        section = self._section('web')
        config = WebConfig()

        config.host = os.getenv('WEB_HOST', section.get('host', config.host))
        config.port = int(os.getenv('WEB_PORT', section.get('port', config.port)))
        config.reload = section.get('reload', False)
        config.log_level = os.getenv('WEB_LOG_LEVEL', section.get('log_level', config.log_level))
        config.cors_origins = section.get('cors_origins', ['*'])

        if self.environment == Environment.DEVELOPMENT:
            config.reload = True
            config.log_level = "debug"

        return config

    def is_production(self) -> bool:
        """Check if running in production mode"""
        return self.environment == Environment.PRODUCTION


# Global configuration instance (singleton)
config = UnifiedConfig()


def get_config() -> UnifiedConfig:
    """Get the global configuration instance"""
    return config


def setup_logging():
    """Configure the root logger from the logging section"""
    log_config = config.logging
    root_logger = logging.getLogger()

    logging.basicConfig(
        level=getattr(logging, log_config.level.value),
        format=log_config.format,
        datefmt=log_config.date_format,
        force=True
    )

    if log_config.enable_file:
        log_config.logs_dir.mkdir(parents=True, exist_ok=True)
        log_file = log_config.logs_dir / f"mediconnect_{datetime.now().strftime('%Y%m%d')}.log"

        # One rotating handler per log file, even when setup runs twice
        already_attached = any(
            isinstance(handler, logging.handlers.RotatingFileHandler)
            and handler.baseFilename == str(log_file.resolve())
            for handler in root_logger.handlers
        )

        if not already_attached:
            file_handler = logging.handlers.RotatingFileHandler(
                log_file,
                maxBytes=log_config.file_rotation_size,
                backupCount=log_config.file_retention_count
            )
            file_handler.setFormatter(logging.Formatter(log_config.format, log_config.date_format))
            root_logger.addHandler(file_handler)

    # Production logs to file only
    if not log_config.enable_console and config.is_production():
        root_logger.handlers = [h for h in root_logger.handlers
                                if not isinstance(h, logging.StreamHandler)
                                or isinstance(h, logging.FileHandler)]


# Auto-setup logging when module is imported
setup_logging()
