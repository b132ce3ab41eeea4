from flask import Blueprint, request, jsonify, current_app, g
from marshmallow import ValidationError

from cascade_be.schemas import SpinRequestSchema, ConfigUpdateSchema, ParSheetQuerySchema
from cascade_be.utils.game_config import list_game_ids
from cascade_be.utils.spin_handler import handle_spin, load_engine
from cascade_be.utils.par_sheet import build_par_sheet
from cascade_be.utils.scaling import (
    get_scaling_state, set_target_rtp, set_volatility, is_valid_target_rtp
)
from cascade_be.utils.security import limiter, spin_rate_limit
from cascade_be.exceptions import BadRequestException, NotFoundException, ValidationException
from cascade_be.error_codes import ErrorCodes

games_bp = Blueprint('games', __name__, url_prefix='/api/v1')


def _rtp_bounds():
    return (current_app.config.get('RTP_OVERRIDE_MIN', 75.0), current_app.config.get('RTP_OVERRIDE_MAX', 200.0))


def _scaling_dict():
    state = get_scaling_state()
    return {'rtp': state.target_rtp, 'volatility': state.volatility}


@games_bp.route('/spin', methods=['POST'])
@limiter.limit(spin_rate_limit)
def spin():
    data = request.get_json(silent=True)
    if not isinstance(data, dict):
        raise BadRequestException(status_message="Request body must be a JSON object.")

    try:
        payload = SpinRequestSchema().load(data)
    except ValidationError as e:
        error_code = ErrorCodes.INVALID_BET if 'bet' in e.messages else ErrorCodes.BAD_REQUEST
        raise BadRequestException(status_message="Invalid spin request.",
                                  details={'errors': e.messages}, error_code=error_code)

    result = handle_spin(payload,
                         default_game_id=current_app.config.get('DEFAULT_GAME_ID', 'sweet-bonanza-1000'),
                         rtp_bounds=_rtp_bounds())
    current_app.logger.info(
        f"Request ID: {g.get('request_id', 'N/A')} - Spin {result['meta']['spinId']} on {result['meta']['gameId']}: "
        f"win {result['totals']['totalWinAmount']} on bet {result['meta']['bet']}"
    )
    return jsonify(result), 200


@games_bp.route('/paytable', methods=['GET'])
def paytable():
    game_id = request.args.get('gameId') or current_app.config.get('DEFAULT_GAME_ID')
    engine = load_engine(game_id)
    bet_mode = request.args.get('betMode', 'normal')
    if bet_mode not in engine.bet_modes:
        raise BadRequestException(status_message=f"Unknown bet mode '{bet_mode}'.",
                                  details={'betMode': bet_mode}, error_code=ErrorCodes.INVALID_BET_MODE)
    return jsonify({
        'status': True,
        'gameId': engine.game_id,
        'paytable': engine.get_paytable(get_scaling_state(), bet_mode),
    }), 200


@games_bp.route('/config', methods=['GET'])
def get_config():
    return jsonify(dict(_scaling_dict(), status=True)), 200


@games_bp.route('/config', methods=['POST'])
def update_config():
    data = request.get_json(silent=True)
    if not isinstance(data, dict):
        raise BadRequestException(status_message="Request body must be a JSON object.")
    payload = ConfigUpdateSchema().load(data)

    applied = {'rtp': False, 'volatility': False}
    rtp = payload.get('rtp')
    if rtp is not None and is_valid_target_rtp(rtp):
        low, high = _rtp_bounds()
        applied['rtp'] = set_target_rtp(min(max(float(rtp), low), high))
    if payload.get('volatility') is not None:
        applied['volatility'] = set_volatility(payload['volatility'])

    current_app.logger.info(
        f"Request ID: {g.get('request_id', 'N/A')} - Scaling config update {payload} applied={applied}"
    )
    return jsonify(dict(_scaling_dict(), status=True, applied=applied)), 200


@games_bp.route('/games', methods=['GET'])
def list_games():
    games = [load_engine(game_id).describe() for game_id in list_game_ids()]
    return jsonify({'status': True, 'games': games}), 200


@games_bp.route('/games/<game_id>', methods=['GET'])
def game_detail(game_id):
    if game_id not in list_game_ids():
        raise NotFoundException(status_message=f"Game '{game_id}' not found.",
                                details={'gameId': game_id}, error_code=ErrorCodes.GAME_NOT_FOUND)
    return jsonify({'status': True, 'game': load_engine(game_id).describe()}), 200


@games_bp.route('/par-sheet', methods=['GET'])
def par_sheet():
    try:
        query = ParSheetQuerySchema().load(request.args.to_dict())
    except ValidationError as e:
        raise ValidationException(status_message="Invalid PAR sheet query.", details={'errors': e.messages})
    engine = load_engine(query.get('gameId') or current_app.config.get('DEFAULT_GAME_ID'))
    iterations = query.get('iterations') or current_app.config.get('PAR_SHEET_MC_ITERATIONS', 20000)
    limit = current_app.config.get('MAX_SIMULATION_ROUNDS', 1000000)
    if iterations > limit:
        raise BadRequestException(status_message=f"At most {limit} Monte Carlo iterations are allowed.",
                                  details={'iterations': iterations},
                                  error_code=ErrorCodes.SIMULATION_LIMIT_EXCEEDED)
    sheet = build_par_sheet(engine, get_scaling_state(), iterations=iterations, seed=query.get('seed'))
    return jsonify({'status': True, 'parSheet': sheet}), 200
