"""
Configuration module with fail-fast validation.

All configuration values are read from the environment (optionally via a .env file)
and validated once at import.
"""
from cascade_be.config_validator import validate_production_config


class Config:
    """Application configuration backed by validated environment values."""

    _validated_config = validate_production_config()

    # Flask Debug Mode
    DEBUG = _validated_config['DEBUG']

    # Game defaults
    DEFAULT_GAME_ID = _validated_config['DEFAULT_GAME_ID']
    DEFAULT_TARGET_RTP = _validated_config['DEFAULT_TARGET_RTP']
    DEFAULT_VOLATILITY = _validated_config['DEFAULT_VOLATILITY']

    # Per-request targetRtp overrides are clamped into this range
    RTP_OVERRIDE_MIN = _validated_config['RTP_OVERRIDE_MIN']
    RTP_OVERRIDE_MAX = _validated_config['RTP_OVERRIDE_MAX']

    # Rate limiting
    RATELIMIT_STORAGE_URI = _validated_config['RATELIMIT_STORAGE_URI']
    SPIN_RATE_LIMIT = _validated_config['SPIN_RATE_LIMIT']

    # CORS
    CORS_ORIGINS_LIST = _validated_config['CORS_ORIGINS']

    # Simulation limits
    PAR_SHEET_MC_ITERATIONS = _validated_config['PAR_SHEET_MC_ITERATIONS']
    MAX_SIMULATION_ROUNDS = _validated_config['MAX_SIMULATION_ROUNDS']

    JSON_SORT_KEYS = False


class TestingConfig(Config):
    TESTING = True
    DEBUG = False
    # Disable rate limiting for tests
    RATELIMIT_ENABLED = False
    RATELIMIT_DEFAULT_LIMITS_ENABLED = False
    PAR_SHEET_MC_ITERATIONS = 500
