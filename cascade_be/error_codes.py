class ErrorCodes:
    # Generic
    GENERIC_ERROR = "GENERIC_ERROR"
    VALIDATION_ERROR = "VALIDATION_ERROR"
    BAD_REQUEST = "BAD_REQUEST"
    NOT_FOUND = "NOT_FOUND"
    METHOD_NOT_ALLOWED = "METHOD_NOT_ALLOWED"
    RATE_LIMITED = "RATE_LIMITED"
    INTERNAL_SERVER_ERROR = "INTERNAL_SERVER_ERROR"

    # Game / spin
    GAME_NOT_FOUND = "GAME_NOT_FOUND"
    UNSUPPORTED_GAME = "UNSUPPORTED_GAME"
    GAME_CONFIG_ERROR = "GAME_CONFIG_ERROR"
    INVALID_BET = "INVALID_BET"
    INVALID_BET_MODE = "INVALID_BET_MODE"
    BUY_FEATURE_UNAVAILABLE = "BUY_FEATURE_UNAVAILABLE"

    # Simulation
    SIMULATION_LIMIT_EXCEEDED = "SIMULATION_LIMIT_EXCEEDED"
