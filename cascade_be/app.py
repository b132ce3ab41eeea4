from dotenv import load_dotenv

# Load environment variables from .env file
load_dotenv()

from flask import Flask, request, jsonify, current_app, g
import uuid
import logging
from werkzeug.exceptions import HTTPException as WerkzeugHTTPException
from flask_cors import CORS
from pythonjsonlogger import jsonlogger
from marshmallow import ValidationError

from cascade_be.exceptions import AppException, ValidationException, NotFoundException, InternalServerErrorException
from cascade_be.error_codes import ErrorCodes
from cascade_be.utils.scaling import set_target_rtp, set_volatility
from cascade_be.utils.security import limiter
from .routes.games import games_bp


# Custom Logging Filter for Request ID
class RequestIdFilter(logging.Filter):
    def filter(self, record):
        try:
            record.request_id = g.get('request_id', 'N/A')
        except RuntimeError:
            # Outside an application context (startup, CLI)
            record.request_id = 'N/A'
        return True


def configure_logging(app):
    if not app.debug:
        logger = app.logger
        handler = logging.StreamHandler()
        formatter = jsonlogger.JsonFormatter(
            '%(asctime)s %(levelname)s %(request_id)s %(module)s %(funcName)s %(lineno)d %(message)s'
        )
        handler.setFormatter(formatter)
        handler.addFilter(RequestIdFilter())
        if logger.hasHandlers():
            logger.handlers.clear()
        logger.addHandler(handler)
        logger.setLevel(logging.INFO)
    else:
        if not app.logger.handlers:
            logging.basicConfig(level=logging.DEBUG)


def create_app(config_class=None):
    """Application factory."""
    if config_class is None:
        from .config import Config
        config_class = Config

    app = Flask(__name__)
    app.config.from_object(config_class)

    configure_logging(app)

    # --- CORS Setup ---
    allowed_origins = []
    if app.debug:
        allowed_origins.extend([
            "http://localhost:5173",
            "http://127.0.0.1:5173",
            "http://localhost:8080",
            "http://127.0.0.1:8080",
        ])
    allowed_origins.extend(app.config.get('CORS_ORIGINS_LIST') or [])
    if allowed_origins:
        CORS(app,
             origins=allowed_origins,
             methods=['GET', 'POST', 'OPTIONS'],
             allow_headers=['Content-Type'],
             expose_headers=['X-RateLimit-Limit', 'X-RateLimit-Remaining'],
             max_age=86400)
        app.logger.info(f"CORS configured for origins: {allowed_origins}")
    else:
        app.logger.warning("No CORS origins configured - API will reject cross-origin requests")

    # --- Rate Limiter Setup ---
    if app.config.get("TESTING"):
        app.config['RATELIMIT_ENABLED'] = False
        app.config['RATELIMIT_DEFAULT_LIMITS_ENABLED'] = False
    else:
        app.config.setdefault('RATELIMIT_ENABLED', True)
        app.config.setdefault('RATELIMIT_DEFAULT', "2000 per hour")
    limiter.init_app(app)

    # --- Process-wide scaling defaults ---
    set_target_rtp(app.config.get('DEFAULT_TARGET_RTP', 96.5))
    set_volatility(app.config.get('DEFAULT_VOLATILITY', 'medium'))

    @app.before_request
    def assign_request_id():
        g.request_id = str(uuid.uuid4())

    @app.after_request
    def add_request_id_header(response):
        response.headers['X-Request-ID'] = g.get('request_id', 'N/A')
        response.headers['X-Content-Type-Options'] = 'nosniff'
        return response

    app.register_blueprint(games_bp)

    @app.route('/api/health', methods=['GET'])
    def health():
        return jsonify({'status': True, 'service': 'cascade_be'}), 200

    # --- Error Handlers ---
    def render_app_exception(e):
        request_id = g.get('request_id', 'N/A')
        return jsonify(e.to_dict(request_id)), e.status_code

    @app.errorhandler(ValidationError)
    def handle_validation_error(e):
        current_app.logger.warning(
            f"Request ID: {g.get('request_id', 'N/A')} - Validation error: {e.messages} - Error Code: {ErrorCodes.VALIDATION_ERROR}"
        )
        return render_app_exception(ValidationException(status_message='Input validation failed.',
                                                        details={'errors': e.messages}))

    @app.errorhandler(WerkzeugHTTPException)
    def handle_werkzeug_http_exception(e):
        request_id = g.get('request_id', 'N/A')
        error_code = ErrorCodes.GENERIC_ERROR
        if e.code == 400:
            error_code = ErrorCodes.BAD_REQUEST
        elif e.code == 404:
            error_code = ErrorCodes.NOT_FOUND
        elif e.code == 405:
            error_code = ErrorCodes.METHOD_NOT_ALLOWED
        elif e.code == 429:
            error_code = ErrorCodes.RATE_LIMITED
        elif e.code >= 500:
            error_code = ErrorCodes.INTERNAL_SERVER_ERROR

        current_app.logger.warning(
            f"Request ID: {request_id} - Werkzeug HTTPException: {e.code} - {e.name}: {e.description} - Error Code: {error_code}"
        )
        return render_app_exception(AppException(error_code=error_code, status_message=e.name, status_code=e.code,
                                                 details={'description': e.description}))

    @app.errorhandler(404)
    def handle_flask_not_found(e):
        current_app.logger.warning(
            f"Request ID: {g.get('request_id', 'N/A')} - HTTP 404 Not Found: {request.url} - Error Code: {ErrorCodes.NOT_FOUND}"
        )
        return render_app_exception(NotFoundException(status_message='The requested resource was not found.',
                                                      details={'path': request.path}))

    @app.errorhandler(Exception)
    def handle_global_exception(e):
        request_id = g.get('request_id', 'N/A')

        if isinstance(e, AppException):
            log = current_app.logger.error if e.status_code >= 500 else current_app.logger.warning
            log(
                f"Request ID: {request_id} - AppException: {e.error_code} - {e.status_message} - Details: {e.details}",
                exc_info=e.status_code >= 500
            )
            return render_app_exception(e)

        if isinstance(e, WerkzeugHTTPException):
            return handle_werkzeug_http_exception(e)

        current_app.logger.critical(
            f"Request ID: {request_id} - Unhandled Critical Exception. Error Code: {ErrorCodes.INTERNAL_SERVER_ERROR}",
            exc_info=True
        )
        # Exception text stays in the log, never in the response body
        return render_app_exception(InternalServerErrorException())

    return app


if __name__ == '__main__':
    app = create_app()
    app.run(host='0.0.0.0', port=5000, debug=app.config.get('DEBUG', False))
