#!/usr/bin/env python3
"""
Test suite for the identity provider client.

Validates authentication headers, request/response handling, cursor paging
across several pages and the employee number update call. HTTP connections
are mocked.
"""

import os
import sys
import json
import unittest
from unittest.mock import Mock, patch

sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from employee_sync.idp.base import (
    IdentityProviderError,
    IdentityProviderAuthError,
    PaginationError,
)
from employee_sync.idp.okta import OktaUsersAPI
from employee_sync.models import IdentityRecord

ORG_URL = 'https://acme.okta.com'


def make_user(user_id, status='ACTIVE', email=None, display_name='', employee_number=None):
    profile = {
        'login': email or f'{user_id}@example.com',
        'email': email or f'{user_id}@example.com',
        'displayName': display_name
    }
    if employee_number is not None:
        profile['employeeNumber'] = employee_number
    return {'id': user_id, 'status': status, 'profile': profile}


def make_response(status=200, body=None, link=None, reason='OK', raw=None):
    response = Mock()
    response.status = status
    response.reason = reason
    if raw is not None:
        response.read.return_value = raw.encode('utf-8')
    else:
        response.read.return_value = json.dumps(body).encode('utf-8') if body is not None else b''
    headers = {'link': link, 'content-type': 'application/json'}
    response.getheader.side_effect = lambda name, default=None: headers.get(name.lower()) or default
    return response


class OktaAPITestCase(unittest.TestCase):

    def setUp(self):
        self.config = {
            'org_url': ORG_URL,
            'api_token': 'secret-token',
            'verify_ssl': True
        }
        patcher = patch('employee_sync.idp.base.HTTPSConnection')
        self.mock_https = patcher.start()
        self.addCleanup(patcher.stop)
        self.connection = self.mock_https.return_value

    def requested_targets(self):
        return [c.args[1] for c in self.connection.request.call_args_list]


class TestClientSetup(OktaAPITestCase):

    def test_ssws_header_by_default(self):
        api = OktaUsersAPI(self.config)
        self.assertEqual(api.auth_headers['Authorization'], 'SSWS secret-token')
        self.assertEqual(api.host, 'acme.okta.com')

    def test_bearer_scheme(self):
        self.config['auth_scheme'] = 'bearer'
        api = OktaUsersAPI(self.config)
        self.assertEqual(api.auth_headers['Authorization'], 'Bearer secret-token')

    def test_request_sends_auth_and_accept_headers(self):
        self.connection.getresponse.return_value = make_response(body={'id': 'me'})
        api = OktaUsersAPI(self.config)

        self.assertEqual(api.get_current_user(), {'id': 'me'})

        method, target, body, headers = self.connection.request.call_args.args
        self.assertEqual(method, 'GET')
        self.assertEqual(target, '/api/v1/users/me')
        self.assertIsNone(body)
        self.assertEqual(headers['Authorization'], 'SSWS secret-token')
        self.assertEqual(headers['Accept'], 'application/json')

    def test_unauthorized_raises_auth_error(self):
        self.connection.getresponse.return_value = make_response(status=401, reason='Unauthorized',
                                                                 body={'errorSummary': 'Invalid token provided'})
        api = OktaUsersAPI(self.config)
        with self.assertRaises(IdentityProviderAuthError):
            api.get_current_user()

    def test_server_error_includes_error_summary(self):
        self.connection.getresponse.return_value = make_response(
            status=400, reason='Bad Request', body={'errorSummary': 'Api validation failed: employeeNumber'}
        )
        api = OktaUsersAPI(self.config)
        with self.assertRaises(IdentityProviderError) as ctx:
            api.update_employee_number('u1', 'E123')
        self.assertIn('Api validation failed', str(ctx.exception))
        self.assertEqual(ctx.exception.status, 400)

    def test_connection_error_is_wrapped_and_connection_dropped(self):
        self.connection.request.side_effect = ConnectionResetError('reset by peer')
        api = OktaUsersAPI(self.config)
        with self.assertRaises(IdentityProviderError):
            api.get_current_user()
        self.assertIsNone(api.connection)

    def test_invalid_json_response(self):
        self.connection.getresponse.return_value = make_response(raw='<html>oops</html>')
        api = OktaUsersAPI(self.config)
        with self.assertRaises(IdentityProviderError):
            api.get_current_user()


class TestUserPaging(OktaAPITestCase):

    def test_follows_next_links_across_pages(self):
        self.connection.getresponse.side_effect = [
            make_response(body=[make_user('u1'), make_user('u2')],
                          link=f'<{ORG_URL}/api/v1/users?limit=2>; rel="self", '
                               f'<{ORG_URL}/api/v1/users?after=u2&limit=2>; rel="next"'),
            make_response(body=[make_user('u3'), make_user('u4')],
                          link=f'<{ORG_URL}/api/v1/users?after=u4&limit=2>; rel="next"'),
            make_response(body=[make_user('u5')],
                          link=f'<{ORG_URL}/api/v1/users?after=u4&limit=2>; rel="self"'),
        ]
        api = OktaUsersAPI(self.config)

        records = list(api.iter_users(limit=2))

        self.assertEqual([r.id for r in records], ['u1', 'u2', 'u3', 'u4', 'u5'])
        self.assertTrue(all(isinstance(r, IdentityRecord) for r in records))
        self.assertEqual(self.requested_targets(), [
            '/api/v1/users?limit=2',
            '/api/v1/users?after=u2&limit=2',
            '/api/v1/users?after=u4&limit=2',
        ])

    def test_single_page_without_next_link(self):
        self.connection.getresponse.return_value = make_response(body=[make_user('u1')])
        api = OktaUsersAPI(self.config)

        records = list(api.iter_users())

        self.assertEqual([r.id for r in records], ['u1'])
        self.assertEqual(self.requested_targets(), ['/api/v1/users?limit=200'])

    def test_sequence_is_lazy_and_single_pass(self):
        self.connection.getresponse.return_value = make_response(body=[make_user('u1')])
        api = OktaUsersAPI(self.config)

        users = api.iter_users(limit=10)
        self.connection.request.assert_not_called()

        self.assertEqual(len(list(users)), 1)
        self.assertEqual(list(users), [])
        self.assertEqual(self.connection.request.call_count, 1)

    def test_page_size_bounds(self):
        api = OktaUsersAPI(self.config)
        for bad in (0, 1001):
            with self.assertRaises(ValueError):
                api.iter_users(limit=bad)

    def test_failure_mid_pagination_propagates(self):
        self.connection.getresponse.side_effect = [
            make_response(body=[make_user('u1')],
                          link=f'<{ORG_URL}/api/v1/users?after=u1>; rel="next"'),
            make_response(status=500, reason='Internal Server Error', body={'errorSummary': 'boom'}),
        ]
        api = OktaUsersAPI(self.config)

        seen = []
        with self.assertRaises(IdentityProviderError):
            for record in api.iter_users():
                seen.append(record.id)
        self.assertEqual(seen, ['u1'])

    def test_malformed_link_header_is_fatal(self):
        self.connection.getresponse.return_value = make_response(
            body=[make_user('u1')], link='https://acme.okta.com/next; rel="next"'
        )
        api = OktaUsersAPI(self.config)
        with self.assertRaises(PaginationError):
            list(api.iter_users())

    def test_next_link_to_foreign_host_is_rejected(self):
        self.connection.getresponse.return_value = make_response(
            body=[make_user('u1')], link='<https://evil.example.com/api/v1/users>; rel="next"'
        )
        api = OktaUsersAPI(self.config)
        with self.assertRaises(PaginationError):
            list(api.iter_users())

    def test_repeated_next_link_is_fatal(self):
        self.connection.getresponse.return_value = make_response(
            body=[make_user('u1')], link=f'<{ORG_URL}/api/v1/users?after=u1>; rel="next"'
        )
        api = OktaUsersAPI(self.config)
        with self.assertRaises(PaginationError):
            list(api.iter_users())

    def test_non_list_page_is_fatal(self):
        self.connection.getresponse.return_value = make_response(body={'users': []})
        api = OktaUsersAPI(self.config)
        with self.assertRaises(IdentityProviderError):
            list(api.iter_users())

    def test_record_fields_are_read_from_profile(self):
        self.connection.getresponse.return_value = make_response(body=[
            make_user('u1', email='Jane.Doe@example.com', display_name='Jane Doe', employee_number='E1'),
            {'id': 'u2', 'status': 'SUSPENDED', 'profile': {}}
        ])
        api = OktaUsersAPI(self.config)

        first, second = list(api.iter_users())

        self.assertEqual(first.email, 'Jane.Doe@example.com')
        self.assertEqual(first.display_name, 'Jane Doe')
        self.assertEqual(first.employee_number, 'E1')
        self.assertEqual(first.login, 'Jane.Doe@example.com')
        self.assertEqual(second.status, 'SUSPENDED')
        self.assertIsNone(second.employee_number)
        self.assertEqual(second.email, '')


class TestEmployeeNumberUpdate(OktaAPITestCase):

    def test_partial_profile_payload(self):
        self.connection.getresponse.return_value = make_response(body=make_user('u1', employee_number='E123'))
        api = OktaUsersAPI(self.config)

        self.assertTrue(api.update_employee_number('u1', 'E123'))

        method, target, body, headers = self.connection.request.call_args.args
        self.assertEqual(method, 'POST')
        self.assertEqual(target, '/api/v1/users/u1')
        self.assertEqual(json.loads(body), {'profile': {'employeeNumber': 'E123'}})
        self.assertEqual(headers['Content-Type'], 'application/json')

    def test_user_id_is_quoted(self):
        self.connection.getresponse.return_value = make_response(body={})
        api = OktaUsersAPI(self.config)
        api.update_employee_number('a/b', 'E1')
        self.assertEqual(self.connection.request.call_args.args[1], '/api/v1/users/a%2Fb')

    def test_missing_user_id(self):
        api = OktaUsersAPI(self.config)
        with self.assertRaises(IdentityProviderError):
            api.update_employee_number('', 'E1')
        self.connection.request.assert_not_called()


if __name__ == '__main__':
    unittest.main()
