"""
Logging configuration for LDAP Provision.

Sets up file logging with rotation and retention, optional console output,
scrubbing of credentials from log messages and an audit trail of directory
mutations.
"""

import os
import re
import glob
import logging
import logging.handlers
from typing import Dict, Any, List
from datetime import datetime, timedelta

LOG_FILE_NAME = 'provision.log'


class SensitiveDataFilter(logging.Filter):
    """Filter to scrub credentials from log messages."""

    SENSITIVE_KEYWORDS = [
        'password', 'bind_password', 'userPassword', 'token', 'secret',
        'credential', 'pwd', 'authorization'
    ]

    _ASSIGNMENT_PATTERNS = [
        re.compile(rf'({keyword}\s*=\s*)[^\s,}}\]]+(\s|,|$)', re.IGNORECASE)
        for keyword in SENSITIVE_KEYWORDS
    ]
    _JSON_PATTERNS = [
        re.compile(rf'(["\']{keyword}["\']\s*:\s*["\'])[^"\']*(["\'])', re.IGNORECASE)
        for keyword in SENSITIVE_KEYWORDS
    ]
    _AUTH_HEADER_PATTERN = re.compile(r'(Authorization:\s*(?:Bearer|Basic)\s+)[^\s,}\]]+', re.IGNORECASE)

    def filter(self, record):
        """Mask sensitive values in the record message. Never drops a record."""
        if hasattr(record, 'msg'):
            msg = str(record.msg)

            for pattern in self._ASSIGNMENT_PATTERNS:
                msg = pattern.sub(r'\1****\2', msg)

            for pattern in self._JSON_PATTERNS:
                msg = pattern.sub(r'\1****\2', msg)

            msg = self._AUTH_HEADER_PATTERN.sub(r'\1****', msg)

            record.msg = msg

        return True


class LoggingManager:
    """
    Configures the root logger once per process.

    Provides file-based logging with rotation, retention cleanup and
    optional console output.
    """

    def __init__(self):
        self.configured = False
        self.log_dir = None
        self.retention_days = 7

    def setup_logging(self, config: Dict[str, Any]) -> None:
        """
        Set up logging based on configuration.

        Args:
            config: Logging configuration dictionary
        """
        if self.configured:
            return

        logging_config = config or {}

        log_level = str(logging_config.get('level', 'INFO')).upper()
        self.log_dir = logging_config.get('log_dir', 'logs')
        rotation = logging_config.get('rotation', 'daily')
        self.retention_days = logging_config.get('retention_days', 7)
        console_enabled = logging_config.get('console_output', True)
        console_level = str(logging_config.get('console_level', 'WARNING')).upper()

        self._ensure_log_directory()

        root_logger = logging.getLogger()
        root_logger.setLevel(getattr(logging, log_level, logging.INFO))
        root_logger.handlers.clear()

        detailed_formatter = logging.Formatter(
            '%(asctime)s [%(levelname)s] %(name)s:%(lineno)d - %(message)s',
            datefmt='%Y-%m-%d %H:%M:%S'
        )
        console_formatter = logging.Formatter(
            '%(asctime)s [%(levelname)s] %(message)s',
            datefmt='%H:%M:%S'
        )

        sensitive_filter = SensitiveDataFilter()

        file_handler = self._create_file_handler(rotation)
        file_handler.setLevel(getattr(logging, log_level, logging.INFO))
        file_handler.setFormatter(detailed_formatter)
        file_handler.addFilter(sensitive_filter)
        root_logger.addHandler(file_handler)

        if console_enabled:
            console_handler = logging.StreamHandler()
            console_handler.setLevel(getattr(logging, console_level, logging.WARNING))
            console_handler.setFormatter(console_formatter)
            console_handler.addFilter(sensitive_filter)
            root_logger.addHandler(console_handler)

        self.cleanup_old_logs()

        self.configured = True

        logging.getLogger(__name__).info(
            f"Logging configured: level={log_level}, dir={self.log_dir}, "
            f"retention={self.retention_days} days, console={console_enabled}"
        )

    def _ensure_log_directory(self) -> None:
        if self.log_dir and not os.path.exists(self.log_dir):
            try:
                os.makedirs(self.log_dir, exist_ok=True)
            except OSError as e:
                print(f"Warning: Could not create log directory {self.log_dir}: {e}")
                print("Falling back to current directory for logs")
                self.log_dir = '.'

    def _create_file_handler(self, rotation: str) -> logging.Handler:
        """
        Create the file handler for the configured rotation.

        Args:
            rotation: 'daily', 'midnight' or 'none'

        Returns:
            Configured logging handler
        """
        log_file = os.path.join(self.log_dir, LOG_FILE_NAME)

        if str(rotation).lower() in ['daily', 'midnight']:
            handler = logging.handlers.TimedRotatingFileHandler(
                filename=log_file,
                when='midnight',
                interval=1,
                backupCount=self.retention_days,
                encoding='utf-8'
            )
            handler.suffix = '%Y-%m-%d'
        else:
            handler = logging.FileHandler(log_file, encoding='utf-8')

        return handler

    def cleanup_old_logs(self) -> List[str]:
        """
        Remove rotated log files older than the retention period.

        Returns:
            Paths of the removed files
        """
        removed = []
        if not self.log_dir or self.retention_days <= 0:
            return removed

        cutoff_date = datetime.now() - timedelta(days=self.retention_days)

        for log_file in self.get_log_files():
            if log_file.endswith(LOG_FILE_NAME):
                continue
            try:
                file_time = datetime.fromtimestamp(os.path.getmtime(log_file))
                if file_time < cutoff_date:
                    os.remove(log_file)
                    removed.append(log_file)
            except (OSError, ValueError) as e:
                print(f"Warning: Could not remove old log file {log_file}: {e}")

        return removed

    def get_log_files(self) -> List[str]:
        if not self.log_dir:
            return []
        return sorted(glob.glob(os.path.join(self.log_dir, LOG_FILE_NAME + '*')))


_logging_manager = LoggingManager()


def setup_logging(config: Dict[str, Any]) -> None:
    """
    Convenience function to set up logging.

    Args:
        config: Logging configuration dictionary
    """
    _logging_manager.setup_logging(config)


class SecurityAuditLogger:
    """Audit trail for binds and user mutations."""

    def __init__(self):
        self.logger = logging.getLogger('security')

    def log_authentication_attempt(self, server: str, bind_dn: str, success: bool):
        status = "SUCCESS" if success else "FAILURE"
        self.logger.info(f"Bind {status}: server={server} dn={bind_dn}")

    def log_user_operation(self, operation: str, dn: str, success: bool, detail: str = ""):
        status = "SUCCESS" if success else "FAILURE"
        message = f"User operation {status}: {operation} dn={dn}"
        if detail:
            message += f" - {detail}"
        self.logger.info(message)


security_logger = SecurityAuditLogger()
