from cascade_be.error_codes import ErrorCodes


class AppException(Exception):
    """
    Base for every error the API reports with the structured body
    ``{request_id, status, error_code, status_message, details, action_button}``.

    Subclasses fix the HTTP status and supply defaults for the code and message.
    """
    default_error_code = ErrorCodes.GENERIC_ERROR
    default_message = "Application error"
    default_status_code = 500

    def __init__(self, error_code=None, status_message=None, status_code=None, details=None, action_button=None):
        self.error_code = error_code or self.default_error_code
        self.status_message = status_message or self.default_message
        self.status_code = status_code or self.default_status_code
        self.details = details if details is not None else {}
        self.action_button = action_button if action_button is not None else {}
        super().__init__(self.status_message)

    def to_dict(self, request_id):
        return {
            'request_id': request_id,
            'status': False,
            'error_code': self.error_code,
            'status_message': self.status_message,
            'details': self.details,
            'action_button': self.action_button or None,
        }


class ValidationException(AppException):
    """Request body or query failed schema validation."""
    default_error_code = ErrorCodes.VALIDATION_ERROR
    default_message = "Validation failed"
    default_status_code = 422

    def __init__(self, status_message=None, details=None, action_button=None):
        super().__init__(status_message=status_message, details=details, action_button=action_button)


class BadRequestException(AppException):
    """Request rejected before any sampling took place (bad bet, unknown game, broken config)."""
    default_error_code = ErrorCodes.BAD_REQUEST
    default_message = "Bad request"
    default_status_code = 400

    def __init__(self, status_message=None, details=None, action_button=None, error_code=None):
        super().__init__(error_code=error_code, status_message=status_message,
                         details=details, action_button=action_button)


class NotFoundException(AppException):
    default_error_code = ErrorCodes.NOT_FOUND
    default_message = "Resource not found"
    default_status_code = 404

    def __init__(self, status_message=None, details=None, action_button=None, error_code=None):
        super().__init__(error_code=error_code, status_message=status_message,
                         details=details, action_button=action_button)


class InternalServerErrorException(AppException):
    default_error_code = ErrorCodes.INTERNAL_SERVER_ERROR
    default_message = "An unexpected internal server error occurred."
    default_status_code = 500

    def __init__(self, status_message=None, details=None, action_button=None):
        super().__init__(status_message=status_message, details=details, action_button=action_button)
