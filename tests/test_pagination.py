#!/usr/bin/env python3
"""
Unit tests for Link header parsing.
"""

import os
import sys
import unittest

sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from employee_sync.idp.pagination import parse_next_link
from employee_sync.idp.base import PaginationError


class TestParseNextLink(unittest.TestCase):

    def test_no_header(self):
        self.assertIsNone(parse_next_link(None))
        self.assertIsNone(parse_next_link(''))

    def test_self_only(self):
        header = '<https://acme.okta.com/api/v1/users?limit=200>; rel="self"'
        self.assertIsNone(parse_next_link(header))

    def test_self_and_next(self):
        header = ('<https://acme.okta.com/api/v1/users?limit=200>; rel="self", '
                  '<https://acme.okta.com/api/v1/users?after=00u2&limit=200>; rel="next"')
        self.assertEqual(parse_next_link(header),
                         'https://acme.okta.com/api/v1/users?after=00u2&limit=200')

    def test_next_listed_first(self):
        header = '<https://a.example/next>; rel="next", <https://a.example/self>; rel="self"'
        self.assertEqual(parse_next_link(header), 'https://a.example/next')

    def test_unquoted_and_multi_valued_relation(self):
        self.assertEqual(parse_next_link('<https://a.example/2>; rel=next'), 'https://a.example/2')
        self.assertEqual(parse_next_link('<https://a.example/2>; rel="last next"'), 'https://a.example/2')
        self.assertEqual(parse_next_link('<https://a.example/2>; REL="Next"'), 'https://a.example/2')

    def test_extra_parameters(self):
        header = '<https://a.example/2>; title="page two"; rel="next"'
        self.assertEqual(parse_next_link(header), 'https://a.example/2')

    def test_comma_inside_url(self):
        header = '<https://a.example/users?filter=a,b&after=3>; rel="next"'
        self.assertEqual(parse_next_link(header), 'https://a.example/users?filter=a,b&after=3')

    def test_nextpage_relation_is_not_next(self):
        self.assertIsNone(parse_next_link('<https://a.example/2>; rel="nextpage"'))

    def test_malformed_next_entry(self):
        with self.assertRaises(PaginationError):
            parse_next_link('https://a.example/2; rel="next"')
        with self.assertRaises(PaginationError):
            parse_next_link('<>; rel="next"')

    def test_malformed_non_next_entry_is_ignored(self):
        header = 'garbage; rel="self", <https://a.example/2>; rel="next"'
        self.assertEqual(parse_next_link(header), 'https://a.example/2')


if __name__ == '__main__':
    unittest.main()
