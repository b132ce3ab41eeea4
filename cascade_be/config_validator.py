"""
Configuration validation and startup checks.

Environment values are parsed and checked once when ``Config`` is defined. Problems that
would make a production deployment misbehave are collected as errors and abort startup;
everything else is reported as a warning.
"""

import math
import os
import sys
import warnings
from typing import List, Optional, Tuple

from cascade_be.utils.scaling import VOLATILITY_LEVELS


class ConfigValidationError(Exception):
    """Raised when critical configuration is missing or invalid."""
    pass


def _env_flag(name: str, default: str = 'False') -> bool:
    return os.getenv(name, default).lower() in ('true', '1', 't')


class ConfigValidator:
    """Validates application configuration and enforces production settings."""

    def __init__(self, is_production: bool = None):
        """
        Initialize the configuration validator.

        Args:
            is_production: If None, production is assumed only when FLASK_ENV=production.
        """
        if is_production is None:
            is_production = os.getenv('FLASK_ENV', '').lower() == 'production'

        self.is_production = is_production
        self.is_testing = _env_flag('TESTING')
        self.errors: List[str] = []
        self.warnings: List[str] = []

    def _parse_float(self, var_name: str, default: float) -> Optional[float]:
        raw = os.getenv(var_name)
        if raw is None or raw == '':
            return default
        try:
            value = float(raw)
        except ValueError:
            self.errors.append(f"CRITICAL: {var_name} must be a number, got '{raw}'")
            return None
        if not math.isfinite(value):
            self.errors.append(f"CRITICAL: {var_name} must be finite, got '{raw}'")
            return None
        return value

    def _parse_int(self, var_name: str, default: int, minimum: int = 1) -> Optional[int]:
        raw = os.getenv(var_name)
        if raw is None or raw == '':
            return default
        try:
            value = int(raw)
        except ValueError:
            self.errors.append(f"CRITICAL: {var_name} must be an integer, got '{raw}'")
            return None
        if value < minimum:
            self.errors.append(f"CRITICAL: {var_name} must be at least {minimum}, got {value}")
            return None
        return value

    def validate_scaling_config(self) -> Tuple[float, str, float, float]:
        """Validate the default target RTP, volatility and the per-request RTP override bounds."""
        rtp_min = self._parse_float('RTP_OVERRIDE_MIN', 75.0)
        rtp_max = self._parse_float('RTP_OVERRIDE_MAX', 200.0)
        if rtp_min is not None and rtp_max is not None and not (0 < rtp_min <= rtp_max):
            self.errors.append(
                f"CRITICAL: RTP override bounds must satisfy 0 < RTP_OVERRIDE_MIN <= RTP_OVERRIDE_MAX "
                f"(got {rtp_min}, {rtp_max})"
            )

        target_rtp = self._parse_float('DEFAULT_TARGET_RTP', 96.5)
        if target_rtp is not None and target_rtp <= 0:
            self.errors.append(f"CRITICAL: DEFAULT_TARGET_RTP must be positive, got {target_rtp}")
        elif target_rtp is not None and target_rtp > 100:
            self.warnings.append(f"WARNING: DEFAULT_TARGET_RTP is {target_rtp}%, games will pay out more than they take")

        volatility = os.getenv('DEFAULT_VOLATILITY', 'medium').lower()
        if volatility not in VOLATILITY_LEVELS:
            self.errors.append(
                f"CRITICAL: DEFAULT_VOLATILITY must be one of {', '.join(VOLATILITY_LEVELS)}, got '{volatility}'"
            )

        return target_rtp, volatility, rtp_min, rtp_max

    def validate_game_config(self) -> str:
        """Validate the default game id."""
        game_id = os.getenv('DEFAULT_GAME_ID', 'sweet-bonanza-1000')
        if not game_id.strip():
            self.errors.append("CRITICAL: DEFAULT_GAME_ID must not be empty")
        return game_id

    def validate_simulation_config(self) -> Tuple[int, int]:
        """Validate limits for Monte Carlo work done on behalf of HTTP requests."""
        par_iterations = self._parse_int('PAR_SHEET_MC_ITERATIONS', 20000)
        max_rounds = self._parse_int('MAX_SIMULATION_ROUNDS', 1000000)
        if par_iterations and par_iterations > 1000000:
            self.warnings.append(
                f"WARNING: PAR_SHEET_MC_ITERATIONS={par_iterations} makes /par-sheet requests slow"
            )
        return par_iterations, max_rounds

    def validate_rate_limiting_config(self) -> Tuple[str, str]:
        """Validate rate limiting configuration."""
        rate_limit_uri = os.getenv('RATELIMIT_STORAGE_URI', 'memory://')
        spin_limit = os.getenv('SPIN_RATE_LIMIT', '600 per minute')

        if rate_limit_uri == 'memory://' and self.is_production:
            self.errors.append(
                "CRITICAL: Rate limiting uses memory:// storage in production. "
                "This is not suitable for multi-process deployments. "
                "Set RATELIMIT_STORAGE_URI to a Redis URL (e.g., redis://localhost:6379/0)"
            )
        elif rate_limit_uri == 'memory://' and not self.is_production and not self.is_testing:
            self.warnings.append(
                "Rate limiting uses memory:// storage in development. "
                "Consider using Redis for production."
            )
        if ' per ' not in spin_limit and '/' not in spin_limit:
            self.errors.append(f"CRITICAL: SPIN_RATE_LIMIT '{spin_limit}' is not a rate limit string (e.g. '600 per minute')")

        return rate_limit_uri, spin_limit

    def validate_cors_config(self) -> List[str]:
        """Validate CORS configuration."""
        cors_origins = os.getenv('CORS_ORIGINS', '')

        if not cors_origins and self.is_production:
            self.errors.append(
                "CRITICAL: CORS_ORIGINS must be set in production to specify allowed frontend domains"
            )
            return []

        if cors_origins:
            origins = [origin.strip() for origin in cors_origins.split(',') if origin.strip()]
            for origin in origins:
                if not origin.startswith(('http://', 'https://')):
                    self.warnings.append(f"CORS origin '{origin}' should include protocol (http:// or https://)")
            return origins

        return []

    def validate_all(self) -> dict:
        """
        Validate all configuration settings.

        Returns:
            Dictionary containing validated configuration values

        Raises:
            ConfigValidationError: If any configuration value is invalid
        """
        config = {}

        try:
            (config['DEFAULT_TARGET_RTP'], config['DEFAULT_VOLATILITY'],
             config['RTP_OVERRIDE_MIN'], config['RTP_OVERRIDE_MAX']) = self.validate_scaling_config()
            config['DEFAULT_GAME_ID'] = self.validate_game_config()
            config['PAR_SHEET_MC_ITERATIONS'], config['MAX_SIMULATION_ROUNDS'] = self.validate_simulation_config()
            config['RATELIMIT_STORAGE_URI'], config['SPIN_RATE_LIMIT'] = self.validate_rate_limiting_config()
            config['CORS_ORIGINS'] = self.validate_cors_config()

            config['DEBUG'] = _env_flag('FLASK_DEBUG')

            if self.is_production and config['DEBUG']:
                self.errors.append("CRITICAL: DEBUG mode must be disabled in production (set FLASK_DEBUG=False)")

            if self.errors:
                error_msg = "Configuration validation failed:\n" + "\n".join(f"  - {error}" for error in self.errors)
                if self.warnings:
                    error_msg += "\n\nWarnings:\n" + "\n".join(f"  - {warning}" for warning in self.warnings)
                raise ConfigValidationError(error_msg)

            for warning in self.warnings:
                warnings.warn(warning, UserWarning)

            return config

        except ConfigValidationError:
            raise
        except Exception as e:
            raise ConfigValidationError(f"Configuration validation error: {str(e)}") from e


def validate_production_config() -> dict:
    """
    Validate configuration with fail-fast behavior.

    Returns:
        Dictionary of validated configuration values

    Raises:
        SystemExit: If validation fails
    """
    try:
        validator = ConfigValidator()
        return validator.validate_all()
    except ConfigValidationError as e:
        print("\nCONFIGURATION VALIDATION FAILED\n", file=sys.stderr)
        print(str(e), file=sys.stderr)
        print("\nHow to fix:", file=sys.stderr)
        print("1. Set or correct the environment variables listed above", file=sys.stderr)
        print("2. Check the .env file loaded at startup", file=sys.stderr)
        print("\nApplication startup ABORTED\n", file=sys.stderr)
        sys.exit(1)
