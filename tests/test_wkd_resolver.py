"""
Tests for WKD URL construction and fetching.
"""

import email.message
import io
import logging
import socket
import urllib.error
import urllib.request
import urllib.response
from unittest.mock import MagicMock, patch

import pytest

from pgp_expiration import HTTPSOnlyRedirectHandler, WKDResolver


def http_response(data, status=200):
    resp = MagicMock()
    resp.status = status
    resp.read.return_value = data
    resp.__enter__.return_value = resp
    return resp


def http_error(url, code=404):
    return urllib.error.HTTPError(url, code, "Not Found", hdrs=None, fp=None)


class StaticHTTPSHandler(urllib.request.HTTPSHandler):
    """Answers https requests from a table of url -> (code, headers, body)."""

    def __init__(self, routes):
        super().__init__()
        self.routes = routes
        self.requested = []

    def https_open(self, req):
        self.requested.append(req.full_url)
        code, headers, body = self.routes[req.full_url]
        msg = email.message.Message()
        for name, value in headers.items():
            msg[name] = value
        resp = urllib.response.addinfourl(io.BytesIO(body), msg, req.full_url, code)
        resp.msg = 'OK' if code == 200 else 'Found'
        return resp


@pytest.fixture
def resolver():
    return WKDResolver(timeout=3)


def static_opener(routes):
    handler = StaticHTTPSHandler(routes)
    opener = urllib.request.build_opener(
        urllib.request.ProxyHandler({}), handler, HTTPSOnlyRedirectHandler())
    return opener, handler


class TestQuery:

    def test_hash_matches_reference_vector(self, resolver):
        assert resolver.compute_wkd_hash('Joe.Doe') == 'iy9q119eutrkn8s1mk4r39qejnbu3n5q'

    def test_hash_ignores_case(self, resolver):
        assert resolver.compute_wkd_hash('JOE.DOE') == resolver.compute_wkd_hash('joe.doe')

    def test_urls(self, resolver):
        query = resolver.build_query('Joe.Doe@Example.ORG')

        assert query.domain == 'example.org'
        assert query.local_part == 'Joe.Doe'
        assert query.hash == 'iy9q119eutrkn8s1mk4r39qejnbu3n5q'
        assert query.advanced_url == (
            'https://openpgpkey.example.org/.well-known/openpgpkey/example.org'
            '/hu/iy9q119eutrkn8s1mk4r39qejnbu3n5q?l=Joe.Doe'
        )
        assert query.direct_url == (
            'https://example.org/.well-known/openpgpkey/hu/'
            'iy9q119eutrkn8s1mk4r39qejnbu3n5q?l=Joe.Doe'
        )

    def test_local_part_is_percent_encoded(self, resolver):
        query = resolver.build_query('a+b@example.com')
        assert query.direct_url.endswith('?l=a%2Bb')

    def test_internationalized_domain_is_idna_encoded(self, resolver):
        query = resolver.build_query('joe@bücher.example')
        assert query.domain == 'xn--bcher-kva.example'

    @pytest.mark.parametrize('address', ['not-an-address', 'a@exa]mple.com', 'a@[1.2.3.4',
                                         'a@-bad.example', 'a@example..com'])
    def test_invalid_address(self, resolver, address):
        with pytest.raises(ValueError):
            resolver.build_query(address)


class TestFetch:

    def test_advanced_method_first(self, resolver):
        with patch.object(resolver.opener, 'open', return_value=http_response(b'key')) as mock_open:
            assert resolver.fetch('joe@example.org') == b'key'

        assert mock_open.call_count == 1
        request = mock_open.call_args[0][0]
        assert request.full_url.startswith('https://openpgpkey.example.org/')
        assert mock_open.call_args[1]['timeout'] == 3

    def test_opener_refuses_plain_http_redirects(self, resolver):
        assert any(isinstance(h, HTTPSOnlyRedirectHandler) for h in resolver.opener.handlers)

    def test_falls_back_to_direct_on_http_error(self, resolver):
        side_effect = [http_error('https://openpgpkey.example.org/'), http_response(b'key')]
        with patch.object(resolver.opener, 'open', side_effect=side_effect) as mock_open:
            assert resolver.fetch('joe@example.org') == b'key'

        request = mock_open.call_args[0][0]
        assert request.full_url.startswith('https://example.org/.well-known/openpgpkey/hu/')

    def test_falls_back_to_direct_on_dns_failure(self, resolver):
        side_effect = [urllib.error.URLError(socket.gaierror('Name or service not known')),
                       http_response(b'key')]
        with patch.object(resolver.opener, 'open', side_effect=side_effect):
            assert resolver.fetch('joe@example.org') == b'key'

    def test_both_methods_missing(self, resolver, caplog):
        caplog.set_level(logging.INFO, logger='pgp_expiration')
        with patch.object(resolver.opener, 'open', side_effect=[http_error('a'), http_error('b')]):
            assert resolver.fetch('joe@example.org') is None

        assert 'no key published via direct method (HTTP 404)' in caplog.text
        assert 'fetch failed' not in caplog.text

    def test_transport_errors_logged_as_warnings(self, resolver, caplog):
        caplog.set_level(logging.INFO, logger='pgp_expiration')
        side_effect = [socket.timeout('timed out'),
                       urllib.error.URLError('certificate verify failed')]
        with patch.object(resolver.opener, 'open', side_effect=side_effect):
            assert resolver.fetch('joe@example.org') is None

        warnings = [r for r in caplog.records if r.levelno == logging.WARNING]
        assert len(warnings) == 2
        assert 'certificate verify failed' in warnings[1].getMessage()

    def test_empty_body_is_a_miss(self, resolver):
        side_effect = [http_response(b''), http_response(b'')]
        with patch.object(resolver.opener, 'open', side_effect=side_effect):
            assert resolver.fetch('joe@example.org') is None

    def test_non_success_status_is_a_miss(self, resolver, caplog):
        caplog.set_level(logging.INFO, logger='pgp_expiration')
        side_effect = [http_response(b'moved', status=304), http_response(b'key')]
        with patch.object(resolver.opener, 'open', side_effect=side_effect):
            assert resolver.fetch('joe@example.org') == b'key'

        assert 'returned HTTP 304' in caplog.text


class TestRedirects:

    def test_redirect_to_http_is_refused(self, resolver, caplog):
        query = resolver.build_query('joe@example.org')
        resolver.opener, handler = static_opener({
            query.advanced_url: (302, {'Location': 'http://evil.example.org/key'}, b''),
            query.direct_url: (302, {'Location': 'http://evil.example.org/key'}, b''),
        })
        caplog.set_level(logging.INFO, logger='pgp_expiration')

        assert resolver.fetch('joe@example.org') is None
        assert handler.requested == [query.advanced_url, query.direct_url]
        assert 'refusing redirect' in caplog.text
        assert 'fetch failed' in caplog.text

    def test_redirect_within_https_is_followed(self, resolver):
        query = resolver.build_query('joe@example.org')
        resolver.opener, _ = static_opener({
            query.advanced_url: (302, {'Location': 'https://keys.example.org/joe'}, b''),
            'https://keys.example.org/joe': (200, {}, b'key'),
        })

        assert resolver.fetch('joe@example.org') == b'key'

    def test_handler_rejects_downgrade(self):
        req = urllib.request.Request('https://openpgpkey.example.org/.well-known/openpgpkey/x')
        with pytest.raises(urllib.error.URLError):
            HTTPSOnlyRedirectHandler().redirect_request(
                req, None, 302, 'Found', {}, 'http://evil.example.org/key')
