"""
API Blueprint

Versioned JSON endpoints under ``/api/v1`` showing each request-data source the validation
adapter supports:

- ``POST  /api/v1/users``             JSON body (``RegisterUserRequest``)
- ``PATCH /api/v1/users/<username>``  route params plus partial body validation
- ``GET   /api/v1/posts``             query string (``ListPostsQuery``)
- ``GET   /api/v1/posts/<slug>``      route params (``PostParams``)
- ``GET   /api/v1/secure``            headers (``ApiClientHeaders``)
- ``POST  /api/v1/reports``           custom check over the raw request

Validated objects are echoed back; persistence is out of scope for this service.
"""

from datetime import date, datetime, time, timezone

import structlog
from flask import Blueprint, Request, current_app, jsonify, request

from fieldguard.middleware.validation import (
    BODY, RequestValidator, get_validated_body, get_validated_headers, get_validated_params,
    get_validated_query
)
from fieldguard.utils.exceptions import RequestParseError, RequestValidationError
from .schemas import (
    ApiClientHeaders, ListPostsQuery, PostParams, RegisterUserRequest, UpdateUserRequest,
    UserParams
)

logger = structlog.get_logger(__name__)

REPORT_FORMATS = ('csv', 'json')


def _to_wire(validator: RequestValidator, obj) -> dict:
    """Render a validated object keyed by wire name."""
    values = {}
    for annotation in validator.engine.prepare(obj):
        value = getattr(obj, annotation.name)
        if isinstance(value, (date, datetime, time)):
            value = value.isoformat()
        values[annotation.wire_name] = value
    return values


def check_report_request(req: Request):
    """Reports need a supported ``format`` and, for csv, a ``delimiter`` of one character."""
    report_format = req.args.get('format')
    if report_format not in REPORT_FORMATS:
        return {'format': f"format must be one of: {' '.join(REPORT_FORMATS)}"}
    if report_format == 'csv' and len(req.args.get('delimiter', ',')) != 1:
        return {'delimiter': "delimiter must be exactly 1 characters"}
    return None


def create_api_blueprint(validator: RequestValidator) -> Blueprint:
    """
    Build the API blueprint around a request validator.

    Shapes are resolved while the routes are declared, so a broken rule declaration fails here
    rather than on the first request.
    """
    api = Blueprint('api', __name__, url_prefix='/api/v1')

    @api.route('/', methods=['GET'])
    def welcome():
        return jsonify({
            'message': f"Welcome to the {current_app.config['APP_NAME']} API",
            'application': current_app.config['APP_NAME'],
            'status': 'running',
        })

    @api.route('/status', methods=['GET'])
    def status():
        registry = validator.engine.registry
        return jsonify({
            'status': 'ok',
            'service': current_app.config['APP_NAME'],
            'timestamp': datetime.now(timezone.utc).isoformat(),
            'validation': {
                'rules': sorted(registry.names()),
                'registry_frozen': registry.frozen,
            },
        })

    @api.route('/users', methods=['POST'])
    @validator.body(RegisterUserRequest)
    def register_user():
        payload, found = get_validated_body(RegisterUserRequest)
        if not found:
            raise RuntimeError("validated body missing after validation")
        logger.info("User registration accepted", role=payload.role)
        user = _to_wire(validator, payload)
        user.pop('password')
        user.pop('confirmPassword')
        return jsonify({'user': user}), 201

    @api.route('/users/<username>', methods=['PATCH'])
    @validator.params(UserParams)
    def update_user(username):
        params, _ = get_validated_params(UserParams)
        data = request.get_json(silent=True)
        if not isinstance(data, dict):
            raise RequestParseError("request body must be a JSON object", source=BODY)

        candidate = validator.bind(BODY, UpdateUserRequest)
        result = validator.validate_partial(candidate, data.keys())
        if not result.valid:
            raise RequestValidationError(result, source=BODY)

        values = _to_wire(validator, candidate)
        changes = {
            annotation.wire_name: values[annotation.wire_name]
            for annotation in validator.engine.prepare(UpdateUserRequest)
            if annotation.wire_name in data or annotation.name in data
        }
        logger.info("User update accepted", fields=sorted(changes))
        return jsonify({'username': params.username, 'changes': changes})

    @api.route('/posts', methods=['GET'])
    @validator.query(ListPostsQuery)
    def list_posts():
        query, _ = get_validated_query(ListPostsQuery)
        return jsonify({'query': _to_wire(validator, query), 'posts': []})

    @api.route('/posts/<slug>', methods=['GET'])
    @validator.params(PostParams)
    def get_post(slug):
        params, _ = get_validated_params(PostParams)
        return jsonify({'post': {'slug': params.slug}})

    @api.route('/secure', methods=['GET'])
    @validator.headers(ApiClientHeaders)
    def secure():
        headers, _ = get_validated_headers(ApiClientHeaders)
        return jsonify({'authorized': True, 'request_id': headers.request_id})

    @api.route('/reports', methods=['POST'])
    @validator.custom(check_report_request)
    def create_report():
        return jsonify({'format': request.args['format']}), 202

    return api

