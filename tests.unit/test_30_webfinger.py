"""
Test WebFinger discovery
"""

import httpx
import pytest
from hamcrest import assert_that, equal_to

from fediresolve.protocols.web import WebClient
from fediresolve.protocols.webfinger import (
    InvalidHandleError,
    WebFingerClient,
    WebFingerMalformedError,
    WebFingerNoActorLinkError,
    WebFingerUnreachableError,
    construct_webfinger_uri_for,
    parse_handle
)

from fakefediverse import FakeFediverse


WEBFINGER_URI = 'https://example.com/.well-known/webfinger?resource=acct%3Aalice%40example.com'

PROFILE_PAGE = { 'rel' : 'http://webfinger.net/rel/profile-page', 'type' : 'text/html', 'href' : 'https://example.com/@alice' }
SELF_HTML = { 'rel' : 'self', 'type' : 'text/html', 'href' : 'https://example.com/alice.html' }
SELF_AP = { 'rel' : 'self', 'type' : 'application/activity+json', 'href' : 'https://example.com/users/alice' }


def _serve_jrd(fediverse: FakeFediverse, *links: dict) -> None:
    fediverse.serve_json(WEBFINGER_URI, { 'subject' : 'acct:alice@example.com', 'links' : list(links) }, content_type='application/jrd+json')


@pytest.mark.parametrize('handle', [ 'alice@example.com', '@alice@example.com' ])
def test_parse_handle(handle: str):
    acct = parse_handle(handle)
    assert acct.user == 'alice'
    assert acct.host == 'example.com'


@pytest.mark.parametrize('handle', [ 'alice', '@alice', 'alice@', '@alice@', 'a@b@example.com', '@@example.com' ])
def test_parse_invalid_handle(handle: str):
    with pytest.raises(InvalidHandleError):
        parse_handle(handle)


def test_webfinger_uri():
    assert construct_webfinger_uri_for(parse_handle('@alice@example.com')) == WEBFINGER_URI


def test_prefers_activity_json(fediverse: FakeFediverse, web_client: WebClient):
    _serve_jrd(fediverse, PROFILE_PAGE, SELF_HTML, SELF_AP)
    assert WebFingerClient(web_client).discover_actor('@alice@example.com') == SELF_AP['href']

    request = fediverse.requests[0]
    assert_that(request.url.params['resource'], equal_to('acct:alice@example.com'))
    assert request.url.query == b'resource=acct%3Aalice%40example.com'
    assert request.headers['accept'] == 'application/jrd+json, application/json'


def test_falls_back_to_self(fediverse: FakeFediverse, web_client: WebClient):
    _serve_jrd(fediverse, PROFILE_PAGE, SELF_HTML)
    assert WebFingerClient(web_client).discover_actor('alice@example.com') == SELF_HTML['href']


def test_falls_back_to_profile_page(fediverse: FakeFediverse, web_client: WebClient):
    _serve_jrd(fediverse, { 'rel' : 'self', 'type' : 'application/activity+json' }, PROFILE_PAGE)
    assert WebFingerClient(web_client).discover_actor('alice@example.com') == PROFILE_PAGE['href']


def test_no_actor_link(fediverse: FakeFediverse, web_client: WebClient):
    _serve_jrd(fediverse, { 'rel' : 'http://ostatus.org/schema/1.0/subscribe', 'template' : 'https://example.com/authorize_interaction?uri={uri}' })
    with pytest.raises(WebFingerNoActorLinkError):
        WebFingerClient(web_client).discover_actor('alice@example.com')


def test_not_found(fediverse: FakeFediverse, web_client: WebClient):
    with pytest.raises(WebFingerUnreachableError) as e:
        WebFingerClient(web_client).discover_actor('alice@example.com')
    assert e.value.kind == 'WebFingerUnreachable'
    assert 'HTTP status 404' in str(e.value)


def test_connection_refused(fediverse: FakeFediverse, web_client: WebClient):
    fediverse.fail(WEBFINGER_URI, httpx.ConnectError('Connection refused'))
    with pytest.raises(WebFingerUnreachableError):
        WebFingerClient(web_client).discover_actor('alice@example.com')


def test_malformed(fediverse: FakeFediverse, web_client: WebClient):
    fediverse.serve(WEBFINGER_URI, 200, b'<html>Not here</html>', { 'Content-Type' : 'text/html' })
    with pytest.raises(WebFingerMalformedError):
        WebFingerClient(web_client).discover_actor('alice@example.com')


def test_invalid_handle_makes_no_request(fediverse: FakeFediverse, web_client: WebClient):
    with pytest.raises(InvalidHandleError):
        WebFingerClient(web_client).discover_actor('alice')
    assert len(fediverse.requests) == 0
