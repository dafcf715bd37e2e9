"""
HTTP-level tests for the API blueprint and the application factory.

Requests go through the complete stack: configuration, the validation adapter, the global error
handlers and the request-id pipeline.
"""

import pytest
from flask import abort
from prometheus_client import REGISTRY

from fieldguard.app import create_app, get_validation_components
from fieldguard.utils.exceptions import RegistryFrozenError
from fieldguard.utils.response import field_error, has_field_error
from tests.fixtures.shapes import VALID_PASSWORD

API_KEY = 'a1B2' * 8
REQUEST_ID = '123e4567-e89b-12d3-a456-426614174000'


def registration(**overrides):
    payload = {
        'username': 'jane_doe',
        'email': 'jane@example.com',
        'password': VALID_PASSWORD,
        'confirmPassword': VALID_PASSWORD,
    }
    payload.update(overrides)
    return payload


def counter_value(name, **labels):
    return REGISTRY.get_sample_value(name, labels) or 0.0


class TestApplicationFactory:

    def test_welcome(self, client):
        response = client.get('/api/v1/')
        assert response.status_code == 200
        assert response.get_json()['status'] == 'running'

    def test_status_reports_frozen_registry(self, client):
        body = client.get('/api/v1/status').get_json()
        assert body['status'] == 'ok'
        assert body['validation']['registry_frozen'] is True
        assert {'required', 'password', 'slug'} <= set(body['validation']['rules'])

    def test_registry_is_frozen_after_startup(self, app):
        registry = get_validation_components(app)['registry']
        with pytest.raises(RegistryFrozenError):
            registry.register('late', lambda value, param, obj: True, '{field} late')

    def test_freezing_can_be_disabled(self, testing_config):
        app = create_app(config=testing_config, VALIDATION_FREEZE_REGISTRY=False)
        assert not get_validation_components(app)['registry'].frozen

    def test_request_id_is_echoed(self, client):
        response = client.get('/api/v1/', headers={'X-Request-ID': 'abc-123'})
        assert response.headers['X-Request-ID'] == 'abc-123'
        assert 'X-Response-Time' in response.headers

    def test_request_id_is_generated(self, client):
        response = client.get('/api/v1/')
        assert len(response.headers['X-Request-ID']) == 36

    def test_metrics_endpoint(self, client):
        client.post('/api/v1/users', json=registration(email='broken'))
        response = client.get('/metrics')
        assert response.status_code == 200
        assert b'fieldguard_validations_total' in response.data

    def test_metrics_can_be_disabled(self, testing_config):
        app = create_app(config=testing_config, METRICS_ENABLED=False)
        assert app.test_client().get('/metrics').status_code == 404


class TestUserRegistration:

    def test_successful_registration(self, client):
        response = client.post('/api/v1/users', json=registration(displayName='Jane'))
        assert response.status_code == 201
        assert response.get_json() == {
            'user': {
                'username': 'jane_doe',
                'email': 'jane@example.com',
                'displayName': 'Jane',
                'role': 'viewer',
                'website': None,
            }
        }

    def test_password_mismatch(self, client):
        response = client.post('/api/v1/users', json=registration(confirmPassword='Passw0rd?'))
        body = response.get_json()

        assert response.status_code == 422
        assert body['message'] == 'Request body validation failed'
        assert body['details'] == {'confirmPassword': 'confirmPassword must match password'}

    def test_every_failing_field_is_reported_once(self, client):
        response = client.post('/api/v1/users', json={
            'username': 'x',
            'email': 'nope',
            'password': 'weak',
            'confirmPassword': 'weak',
            'role': 'owner',
            'website': 'not a url',
        })
        details = response.get_json()['details']

        assert response.status_code == 422
        assert set(details) == {'username', 'email', 'password', 'role', 'website'}
        assert details['username'] == (
            'username must be 3-30 characters, alphanumeric with optional underscores and hyphens'
        )
        assert details['role'] == 'role must be one of: admin editor viewer'
        assert details['website'] == 'website must be a valid URL'

    def test_missing_body_fields(self, client):
        response = client.post('/api/v1/users', json={})
        body = response.get_json()
        assert has_field_error(body, 'username')
        assert field_error(body, 'confirmPassword') == 'confirmPassword is required'

    def test_invalid_json(self, client):
        response = client.post(
            '/api/v1/users', data='{not json', content_type='application/json'
        )
        assert response.status_code == 400
        assert response.get_json()['error'] == 'Invalid request body'

    def test_validation_failures_are_counted(self, client):
        before = counter_value(
            'fieldguard_validations_total', source='body', outcome='invalid'
        )
        client.post('/api/v1/users', json=registration(email='broken'))
        after = counter_value('fieldguard_validations_total', source='body', outcome='invalid')
        assert after == before + 1


class TestUserUpdate:

    def test_partial_update(self, client):
        response = client.patch('/api/v1/users/jane_doe', json={'email': 'new@example.com'})
        assert response.status_code == 200
        assert response.get_json() == {
            'username': 'jane_doe',
            'changes': {'email': 'new@example.com'},
        }

    def test_only_present_fields_are_validated(self, client):
        response = client.patch('/api/v1/users/jane_doe', json={'displayName': ''})
        body = response.get_json()
        assert response.status_code == 422
        assert body['details'] == {'displayName': 'displayName is required'}

    def test_unknown_field_selection(self, client):
        response = client.patch('/api/v1/users/jane_doe', json={'nickname': 'jd'})
        body = response.get_json()
        assert response.status_code == 422
        assert body['error'] == 'Invalid field selection'
        assert body['details'] == {'nickname': 'field not found'}

    def test_unknown_field_selection_is_counted_as_usage_error(self, client):
        labels = {'error_type': 'RequestValidationError', 'error_category': 'usage'}
        before = counter_value('fieldguard_errors_total', **labels)
        client.patch('/api/v1/users/jane_doe', json={'nickname': 'jd'})
        assert counter_value('fieldguard_errors_total', **labels) == before + 1

    def test_invalid_route_parameter(self, client):
        response = client.patch('/api/v1/users/ab', json={'email': 'new@example.com'})
        body = response.get_json()
        assert response.status_code == 422
        assert body['message'] == 'Route parameter validation failed'
        assert 'username' in body['details']

    def test_body_must_be_an_object(self, client):
        response = client.patch('/api/v1/users/jane_doe', json=['email'])
        assert response.status_code == 400
        assert response.get_json()['details'] == {
            'general': 'request body must be a JSON object'
        }


class TestPosts:

    def test_list_defaults(self, client):
        body = client.get('/api/v1/posts').get_json()
        assert body['query'] == {
            'page': 1,
            'perPage': 20,
            'status': None,
            'tags': [],
            'publishedAfter': None,
            'publishedBefore': None,
        }

    def test_list_with_filters(self, client):
        response = client.get(
            '/api/v1/posts?page=2&status=published&tags=python&tags=flask'
            '&publishedAfter=2024-01-01&publishedBefore=2024-06-30'
        )
        query = response.get_json()['query']
        assert response.status_code == 200
        assert query['page'] == 2
        assert query['tags'] == ['python', 'flask']
        assert query['publishedBefore'] == '2024-06-30'

    def test_invalid_query(self, client):
        response = client.get(
            '/api/v1/posts?perPage=500&publishedAfter=2024-06-30&publishedBefore=2024-01-01'
        )
        body = response.get_json()
        assert response.status_code == 422
        assert body['message'] == 'Query parameter validation failed'
        assert body['details'] == {
            'perPage': 'perPage must be less than or equal to 100',
            'publishedBefore': 'publishedBefore must be greater than publishedAfter',
        }

    def test_upper_bound_without_lower_bound(self, client):
        response = client.get('/api/v1/posts?publishedBefore=2024-06-30')
        assert response.status_code == 200
        assert response.get_json()['query']['publishedBefore'] == '2024-06-30'

    def test_unparseable_query(self, client):
        response = client.get('/api/v1/posts?page=two')
        assert response.status_code == 400
        assert 'page' in response.get_json()['details']

    @pytest.mark.parametrize("slug", ['hello-world', 'post-2024'])
    def test_valid_slug(self, client, slug):
        response = client.get(f'/api/v1/posts/{slug}')
        assert response.get_json() == {'post': {'slug': slug}}

    @pytest.mark.parametrize("slug", ['Hello-World', '-leading', 'under_score'])
    def test_invalid_slug(self, client, slug):
        response = client.get(f'/api/v1/posts/{slug}')
        assert response.status_code == 422
        assert response.get_json()['details'] == {
            'slug': 'slug must contain only lowercase letters, numbers, and hyphens'
        }


class TestHeaderValidation:

    def test_valid_headers(self, client):
        response = client.get(
            '/api/v1/secure', headers={'x-api-key': API_KEY, 'X-Request-Id': REQUEST_ID}
        )
        assert response.status_code == 200
        assert response.get_json() == {'authorized': True, 'request_id': REQUEST_ID}

    def test_missing_api_key(self, client):
        response = client.get('/api/v1/secure')
        body = response.get_json()
        assert response.status_code == 422
        assert body['message'] == 'Header validation failed'
        assert body['details'] == {'X-Api-Key': 'X-Api-Key is required'}

    def test_short_api_key(self, client):
        response = client.get('/api/v1/secure', headers={'X-Api-Key': 'abc'})
        assert response.get_json()['details'] == {
            'X-Api-Key': 'X-Api-Key must be exactly 32 characters'
        }


class TestCustomCheck:

    def test_supported_format(self, client):
        response = client.post('/api/v1/reports?format=json')
        assert response.status_code == 202

    def test_unsupported_format(self, client):
        response = client.post('/api/v1/reports?format=xml')
        body = response.get_json()
        assert response.status_code == 422
        assert body['message'] == 'Custom validation failed'
        assert body['details'] == {'format': 'format must be one of: csv json'}


class TestErrorHandlers:

    @pytest.fixture
    def failing_app(self, testing_config):
        app = create_app(config=testing_config)

        @app.route('/explode')
        def explode():
            raise RuntimeError('unexpected')

        @app.route('/reject')
        def reject():
            abort(400, 'Malformed filter')

        return app

    def test_unhandled_exception(self, failing_app):
        response = failing_app.test_client().get('/explode')
        assert response.status_code == 500
        assert response.get_json() == {
            'error': 'Internal Server Error',
            'message': 'An unexpected error occurred',
            'status': 500,
        }

    def test_bad_request_abort(self, failing_app):
        response = failing_app.test_client().get('/reject')
        assert response.status_code == 400
        assert response.get_json() == {
            'error': 'Request Error',
            'message': 'Malformed filter',
            'status': 400,
        }

    def test_not_found_passes_through(self, client):
        assert client.get('/api/v1/missing').status_code == 404
