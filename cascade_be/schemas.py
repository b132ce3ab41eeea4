import logging

from marshmallow import Schema, fields, ValidationError, EXCLUDE, pre_load, validates
from marshmallow.validate import OneOf, Range, Length

from .utils.scaling import VOLATILITY_LEVELS, is_valid_target_rtp

logger = logging.getLogger(__name__)

BUY_FEATURES = ('free_spins', 'super_free_spins')


class SpinModeSchema(Schema):
    class Meta:
        unknown = EXCLUDE

    isFreeSpins = fields.Bool(load_default=False)
    superFreeSpins = fields.Bool(load_default=False)
    anteBet25x = fields.Bool(load_default=False)
    betMode = fields.Str(load_default=None, allow_none=True, validate=Length(min=1, max=32))
    buyFeature = fields.Str(load_default=None, allow_none=True, validate=OneOf(BUY_FEATURES))


class ConfigOverrideSchema(Schema):
    """Per-request scaling overrides. Invalid values are dropped rather than rejected."""

    class Meta:
        unknown = EXCLUDE

    targetRtp = fields.Float(load_default=None, allow_none=True, allow_nan=False)
    volatility = fields.Str(load_default=None, allow_none=True, validate=OneOf(VOLATILITY_LEVELS))

    @pre_load
    def drop_invalid_overrides(self, data, **kwargs):
        if not isinstance(data, dict):
            return {}
        cleaned = dict(data)
        rtp = cleaned.get('targetRtp')
        if rtp is not None and not is_valid_target_rtp(rtp):
            logger.info("Ignoring invalid targetRtp override: %r", rtp)
            cleaned.pop('targetRtp')
        volatility = cleaned.get('volatility')
        if volatility is not None and volatility not in VOLATILITY_LEVELS:
            logger.info("Ignoring invalid volatility override: %r", volatility)
            cleaned.pop('volatility')
        return cleaned


class SpinRequestSchema(Schema):
    class Meta:
        unknown = EXCLUDE

    gameId = fields.Str(load_default=None, allow_none=True, validate=Length(min=1, max=64))
    bet = fields.Float(required=True, allow_nan=False,
                       validate=Range(min=0, min_inclusive=False, error="Bet must be a positive, finite number"))
    mode = fields.Nested(SpinModeSchema, load_default=None, allow_none=True)
    configOverride = fields.Nested(ConfigOverrideSchema, load_default=None, allow_none=True)
    seed = fields.Raw(load_default=None, allow_none=True)

    @validates('seed')
    def validate_seed(self, value, **kwargs):
        if value is None:
            return
        if isinstance(value, bool) or not isinstance(value, (int, str)):
            raise ValidationError('Seed must be an integer or a string.')
        if isinstance(value, str) and len(value) > 128:
            raise ValidationError('Seed must be at most 128 characters.')


class ConfigUpdateSchema(Schema):
    """Body of POST /config. Values the engine cannot use are ignored by the scaling setters."""

    class Meta:
        unknown = EXCLUDE

    rtp = fields.Raw(load_default=None, allow_none=True)
    volatility = fields.Raw(load_default=None, allow_none=True)


class ParSheetQuerySchema(Schema):
    class Meta:
        unknown = EXCLUDE

    gameId = fields.Str(load_default=None, allow_none=True, validate=Length(min=1, max=64))
    iterations = fields.Int(load_default=None, allow_none=True, validate=Range(min=1))
    seed = fields.Int(load_default=None, allow_none=True)
