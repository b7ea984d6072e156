#!/usr/bin/env python3
"""
Debug Logger for chromacal
Provides centralized logging for calibration sessions, chart loading and batch correction.

Console output is limited to WARNING and above. Set CHROMACAL_DEBUG=1 to also write a
timestamped DEBUG-level log file into the user config directory.
"""

import os
import sys
import logging
from pathlib import Path
from typing import Optional
import platform
from datetime import datetime, timedelta


LOG_RETENTION_DAYS = 30


class ChromacalDebugLogger:
    """Centralized debug logger for chromacal"""

    _instance: Optional['ChromacalDebugLogger'] = None
    _logger: Optional[logging.Logger] = None
    _log_file: Optional[Path] = None

    def __new__(cls):
        if cls._instance is None:
            cls._instance = super().__new__(cls)
            cls._instance._initialize()
        return cls._instance

    def _initialize(self):
        """Initialize the debug logger"""
        self.file_logging_enabled = self._should_enable_file_log()
        if self.file_logging_enabled:
            self._log_file = self._get_log_file_path()
            self._ensure_log_directory()

        self._setup_logger()

        if self.file_logging_enabled:
            self.info("=" * 60)
            self.info(f"chromacal debug logger initialized at {datetime.now()}")
            self.info(f"Platform: {platform.system()} {platform.release()}")
            self.info(f"Python: {sys.version}")
            self.info(f"Working directory: {Path.cwd()}")
            self.info("=" * 60)

    def _should_enable_file_log(self) -> bool:
        """File logging is opt-in through the CHROMACAL_DEBUG environment variable"""
        return os.environ.get("CHROMACAL_DEBUG", "").strip().lower() in {"1", "true", "yes", "on"}

    def _get_user_config_dir(self) -> Path:
        """Get user configuration directory"""
        app_name = "chromacal"
        system = platform.system()

        if system == "Darwin":  # macOS
            return Path.home() / "Library" / "Application Support" / app_name
        elif system == "Windows":
            return Path.home() / "AppData" / "Local" / app_name
        elif system == "Linux":
            return Path.home() / ".config" / app_name
        else:
            return Path.cwd() / "debug_logs"

    def _get_log_file_path(self) -> Path:
        timestamp = datetime.now().strftime("%Y%m%d_%H%M%S")
        return self._get_user_config_dir() / "logs" / f"chromacal_debug_{timestamp}.log"

    def _ensure_log_directory(self):
        """Ensure the log directory exists and prune old logs"""
        try:
            self._log_file.parent.mkdir(parents=True, exist_ok=True)
        except OSError as e:
            print(f"Warning: Could not create log directory {self._log_file.parent}: {e}", file=sys.stderr)
            self._log_file = None
            return
        self._cleanup_old_logs()

    def _cleanup_old_logs(self):
        """Remove log files older than LOG_RETENTION_DAYS"""
        log_dir = self._log_file.parent
        cutoff_date = datetime.now() - timedelta(days=LOG_RETENTION_DAYS)

        for log_file in log_dir.glob("chromacal_debug_*.log"):
            try:
                if datetime.fromtimestamp(log_file.stat().st_mtime) < cutoff_date:
                    log_file.unlink()
            except OSError:
                # another process may be rotating the same directory
                continue

    def _setup_logger(self):
        """Set up the logger with console and optional file handlers"""
        self._logger = logging.getLogger('chromacal')
        self._logger.setLevel(logging.DEBUG)
        self._logger.handlers.clear()

        formatter = logging.Formatter(
            '%(asctime)s.%(msecs)03d [%(levelname)8s] %(name)s - %(message)s',
            datefmt='%Y-%m-%d %H:%M:%S'
        )

        if self._log_file:
            try:
                file_handler = logging.FileHandler(self._log_file, encoding='utf-8')
                file_handler.setLevel(logging.DEBUG)
                file_handler.setFormatter(formatter)
                self._logger.addHandler(file_handler)
            except OSError as e:
                print(f"Warning: Could not set up file logging: {e}", file=sys.stderr)
                self._log_file = None

        console_handler = logging.StreamHandler(sys.stderr)
        console_handler.setLevel(logging.WARNING)
        console_handler.setFormatter(formatter)
        self._logger.addHandler(console_handler)

        self._logger.propagate = False

    def set_console_level(self, level: int):
        """Change the console verbosity (used by the command line -v flag)"""
        for handler in self._logger.handlers:
            if not isinstance(handler, logging.FileHandler):
                handler.setLevel(level)

    def _log(self, level: int, message: str, module: str = None):
        module_prefix = f"[{module}] " if module else ""
        self._logger.log(level, f"{module_prefix}{message}")

    def debug(self, message: str, module: str = None):
        self._log(logging.DEBUG, message, module)

    def info(self, message: str, module: str = None):
        self._log(logging.INFO, message, module)

    def warning(self, message: str, module: str = None):
        self._log(logging.WARNING, message, module)

    def error(self, message: str, module: str = None):
        self._log(logging.ERROR, message, module)

    def log_path_search(self, description: str, paths: list, found_path: Optional[str] = None, module: str = None):
        """Log path search details"""
        self.debug(description, module)
        for i, path in enumerate(paths, 1):
            status = "✓ EXISTS" if path and Path(path).exists() else "✗ missing"
            self.debug(f"  [{i}] {path} - {status}", module)

        if found_path:
            self.debug(f"  → RESOLVED: {found_path}", module)
        else:
            self.warning(f"{description}: no path found", module)

    def log_file_operation(self, operation: str, file_path: str, success: bool = True, error: str = None, module: str = None):
        """Log file operation details"""
        status = "SUCCESS" if success else "FAILED"
        message = f"{operation}: {file_path} - {status}"
        if success:
            self.debug(message, module)
        else:
            self.error(f"{message} - {error}", module)

    def get_log_file_path(self) -> Optional[Path]:
        return self._log_file


# Global debug logger instance
debug_logger = ChromacalDebugLogger()

# Convenience functions
def debug(message: str, module: str = None):
    debug_logger.debug(message, module)

def info(message: str, module: str = None):
    debug_logger.info(message, module)

def warning(message: str, module: str = None):
    debug_logger.warning(message, module)

def error(message: str, module: str = None):
    debug_logger.error(message, module)

def log_path_search(description: str, paths: list, found_path: Optional[str] = None, module: str = None):
    debug_logger.log_path_search(description, paths, found_path, module)

def log_file_operation(operation: str, file_path: str, success: bool = True, error: str = None, module: str = None):
    debug_logger.log_file_operation(operation, file_path, success, error, module)

def set_console_level(level: int):
    debug_logger.set_console_level(level)

def get_log_file_path() -> Optional[Path]:
    return debug_logger.get_log_file_path()
