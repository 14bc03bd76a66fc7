"""Settings loaded from environment variables and an optional TOML file.

Priority (highest to lowest):
1. Environment variables (``RESILIENT_FETCH_*``)
2. TOML file (``config_file`` argument or ``RESILIENT_FETCH_CONFIG_FILE``),
   ``[fetch]`` table
3. Library defaults

Invalid values are logged and ignored, leaving the lower-priority value.

Example ``resilient-fetch.toml``::

    [fetch]
    timeout = 5.0
    retry_attempts = 4
    rate_limit = "20/1.0"
    log_level = "DEBUG"

    [fetch.circuit_breaker]
    failure_rate_threshold = 60
    open_state_delay = 30.0
"""

from __future__ import annotations

import logging
import os
import tomllib
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, Optional, Tuple

from pydantic import ValidationError

from resilient_fetch.core.resilience.models import (
    CircuitBreakerOptions,
    ContainerOptions,
    RateLimitOptions,
    RequestOptions,
    RetryOptions,
    TimeoutOptions,
)

logger = logging.getLogger(__name__)

ENV_PREFIX = "RESILIENT_FETCH_"
_VALID_LOG_LEVELS = {"CRITICAL", "ERROR", "WARNING", "INFO", "DEBUG"}


def _parse_bool(value: Any) -> bool:
    if isinstance(value, bool):
        return value
    return str(value).strip().lower() in {"true", "1", "yes", "on"}


def _parse_positive_float(name: str, value: Any) -> Optional[float]:
    try:
        parsed = float(value)
    except (TypeError, ValueError):
        logger.warning("Invalid %s value '%s': expected a number of seconds", name, value)
        return None
    if parsed <= 0:
        logger.warning("Invalid %s value '%s': must be greater than 0", name, value)
        return None
    return parsed


def _parse_positive_int(name: str, value: Any) -> Optional[int]:
    if isinstance(value, bool):
        logger.warning("Invalid %s value '%s': expected an integer", name, value)
        return None
    try:
        parsed = int(value)
    except (TypeError, ValueError):
        logger.warning("Invalid %s value '%s': expected an integer", name, value)
        return None
    if parsed < 1:
        logger.warning("Invalid %s value '%s': must be at least 1", name, value)
        return None
    return parsed


def _parse_rate_limit(value: Any) -> Optional[Tuple[int, float]]:
    """Parse ``"<count>/<seconds>"`` into ``(count, seconds)``."""
    text = str(value).strip()
    count_str, sep, period_str = text.partition("/")
    if not sep:
        logger.warning("Invalid rate_limit value '%s': expected '<count>/<seconds>'", value)
        return None
    count = _parse_positive_int("rate_limit count", count_str.strip())
    period = _parse_positive_float("rate_limit period", period_str.strip())
    if count is None or period is None:
        return None
    return count, period


@dataclass
class FetchSettings:
    """Resilience settings for clients built with ``FetchBuilder.with_settings``.

    ``None`` means "not configured": the field does not override library
    defaults or builder options.
    """

    timeout: Optional[float] = None
    retry_attempts: Optional[int] = None
    retry_initial_interval: Optional[float] = None
    retry_max_interval: Optional[float] = None
    rate_limit_for_period: Optional[int] = None
    rate_limit_period: Optional[float] = None
    circuit_breaker: Optional[Dict[str, Any]] = None

    # Logging configuration
    log_level: str = "INFO"
    structured_logging: bool = False

    config_file: Optional[Path] = field(default=None, repr=False)

    @classmethod
    def from_env(cls, config_file: Optional[str] = None) -> "FetchSettings":
        """Create settings from an optional TOML file and environment variables."""
        settings = cls()

        toml_path = config_file or os.environ.get(f"{ENV_PREFIX}CONFIG_FILE")
        if toml_path:
            settings._load_toml(Path(toml_path))

        settings._load_env()
        return settings

    def _load_toml(self, path: Path) -> None:
        """Load the ``[fetch]`` table from a TOML file."""
        if not path.exists():
            logger.warning("Config file not found: %s", path)
            return

        try:
            with open(path, "rb") as f:
                data = tomllib.load(f)
        except (OSError, tomllib.TOMLDecodeError) as e:
            logger.error("Error loading config file %s: %s", path, e)
            return

        self.config_file = path
        section = data.get("fetch")
        if not isinstance(section, dict):
            logger.debug("No [fetch] table in %s", path)
            return

        if "timeout" in section:
            self.timeout = _parse_positive_float("timeout", section["timeout"]) or self.timeout
        if "retry_attempts" in section:
            self.retry_attempts = (
                _parse_positive_int("retry_attempts", section["retry_attempts"])
                or self.retry_attempts
            )
        if "retry_initial_interval" in section:
            self.retry_initial_interval = (
                _parse_positive_float("retry_initial_interval", section["retry_initial_interval"])
                or self.retry_initial_interval
            )
        if "retry_max_interval" in section:
            self.retry_max_interval = (
                _parse_positive_float("retry_max_interval", section["retry_max_interval"])
                or self.retry_max_interval
            )
        if "rate_limit" in section:
            self._apply_rate_limit(section["rate_limit"])
        if "log_level" in section:
            self._apply_log_level(section["log_level"])
        if "structured_logging" in section:
            self.structured_logging = _parse_bool(section["structured_logging"])

        breaker = section.get("circuit_breaker")
        if isinstance(breaker, dict):
            self._apply_circuit_breaker(breaker)
        elif breaker is not None:
            self._apply_circuit_breaker({} if _parse_bool(breaker) else None)

    def _load_env(self) -> None:
        if timeout := os.environ.get(f"{ENV_PREFIX}TIMEOUT"):
            self.timeout = _parse_positive_float("timeout", timeout) or self.timeout
        if attempts := os.environ.get(f"{ENV_PREFIX}RETRY_ATTEMPTS"):
            self.retry_attempts = _parse_positive_int("retry_attempts", attempts) or self.retry_attempts
        if initial := os.environ.get(f"{ENV_PREFIX}RETRY_INITIAL_INTERVAL"):
            self.retry_initial_interval = (
                _parse_positive_float("retry_initial_interval", initial)
                or self.retry_initial_interval
            )
        if max_interval := os.environ.get(f"{ENV_PREFIX}RETRY_MAX_INTERVAL"):
            self.retry_max_interval = (
                _parse_positive_float("retry_max_interval", max_interval) or self.retry_max_interval
            )
        if rate_limit := os.environ.get(f"{ENV_PREFIX}RATE_LIMIT"):
            self._apply_rate_limit(rate_limit)
        if level := os.environ.get(f"{ENV_PREFIX}LOG_LEVEL"):
            self._apply_log_level(level)
        if structured := os.environ.get(f"{ENV_PREFIX}STRUCTURED_LOGGING"):
            self.structured_logging = _parse_bool(structured)
        if breaker := os.environ.get(f"{ENV_PREFIX}CIRCUIT_BREAKER"):
            if _parse_bool(breaker):
                self._apply_circuit_breaker(self.circuit_breaker or {})
            else:
                self.circuit_breaker = None

    def _apply_rate_limit(self, value: Any) -> None:
        parsed = _parse_rate_limit(value)
        if parsed is not None:
            self.rate_limit_for_period, self.rate_limit_period = parsed

    def _apply_log_level(self, value: Any) -> None:
        level = str(value).strip().upper()
        if level not in _VALID_LOG_LEVELS:
            logger.warning(
                "Invalid log level '%s'. Valid options: %s",
                value,
                ", ".join(sorted(_VALID_LOG_LEVELS)),
            )
            return
        self.log_level = level

    def _apply_circuit_breaker(self, values: Optional[Dict[str, Any]]) -> None:
        if values is None:
            self.circuit_breaker = None
            return
        try:
            CircuitBreakerOptions(**values)
        except (TypeError, ValidationError) as e:
            logger.warning("Invalid circuit_breaker settings %s: %s", values, e)
            return
        self.circuit_breaker = dict(values)

    def to_request_options(self) -> RequestOptions:
        """Per-call options carrying only the configured fields."""
        kwargs: Dict[str, Any] = {}
        if self.timeout is not None:
            kwargs["timeout"] = TimeoutOptions(timeout=self.timeout)

        retry: Dict[str, Any] = {}
        if self.retry_attempts is not None:
            retry["attempts"] = self.retry_attempts
        if self.retry_initial_interval is not None:
            retry["initial_interval"] = self.retry_initial_interval
        if self.retry_max_interval is not None:
            retry["max_interval"] = self.retry_max_interval
        if retry:
            kwargs["retry"] = RetryOptions(**retry)

        return RequestOptions(**kwargs)

    def to_container_options(self) -> ContainerOptions:
        """Per-client options carrying only the configured policies."""
        kwargs: Dict[str, Any] = {}
        if self.rate_limit_for_period is not None and self.rate_limit_period is not None:
            kwargs["rate_limit"] = RateLimitOptions(
                limit_for_period=self.rate_limit_for_period,
                limit_period=self.rate_limit_period,
            )
        if self.circuit_breaker is not None:
            kwargs["circuit_breaker"] = CircuitBreakerOptions(**self.circuit_breaker)
        return ContainerOptions(**kwargs)

    def setup_logging(self) -> None:
        """Configure the ``resilient_fetch`` logger based on settings."""
        level = getattr(logging, self.log_level, logging.INFO)

        if self.structured_logging:
            # JSON-style structured logging
            formatter = logging.Formatter(
                '{"timestamp":"%(asctime)s","level":"%(levelname)s","logger":"%(name)s","message":"%(message)s"}'
            )
        else:
            formatter = logging.Formatter("%(asctime)s - %(name)s - %(levelname)s - %(message)s")

        handler = logging.StreamHandler()
        handler.setFormatter(formatter)

        package_logger = logging.getLogger("resilient_fetch")
        package_logger.setLevel(level)
        package_logger.addHandler(handler)
