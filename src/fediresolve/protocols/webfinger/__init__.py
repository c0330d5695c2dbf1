"""
WebFinger: find the ActivityPub actor behind a user@domain handle.
"""

from urllib.parse import quote

import msgspec

from fediresolve.protocols import ResolutionError
from fediresolve.protocols.web import WebClient, WebClientError
from fediresolve.reporting import info, trace
from fediresolve.utils import ParsedAcctUri, find_first_in_array


WEBFINGER_ACCEPT = 'application/jrd+json, application/json'

PROFILE_PAGE_REL = 'http://webfinger.net/rel/profile-page'


class InvalidHandleError(ResolutionError):
    kind = 'InvalidHandle'


class WebFingerUnreachableError(ResolutionError):
    kind = 'WebFingerUnreachable'


class WebFingerMalformedError(ResolutionError):
    kind = 'WebFingerMalformed'


class WebFingerNoActorLinkError(ResolutionError):
    kind = 'WebFingerNoActorLink'


class WebFingerLink(msgspec.Struct):
    rel: str | None = None
    type: str | None = None
    href: str | None = None


class WebFingerDocument(msgspec.Struct):
    """
    The subset of a JRD we care about. Other members are ignored.
    """
    subject: str | None = None
    links: list[WebFingerLink] = []


    def select_actor_link(self) -> WebFingerLink | None:
        """
        Pick the link most likely to point to the ActivityPub actor document.
        First one wins within each preference level.
        """
        links = [ link for link in self.links if link.href ]
        return (
            find_first_in_array(links, lambda link: link.rel == 'self' and link.type is not None and 'activity+json' in link.type)
            or find_first_in_array(links, lambda link: link.rel == 'self')
            or find_first_in_array(links, lambda link: link.rel == PROFILE_PAGE_REL)
        )


def parse_handle(handle: str) -> ParsedAcctUri:
    """
    Turn '@user@domain' or 'user@domain' into the corresponding acct: URI.
    """
    stripped = handle[1:] if handle.startswith('@') else handle
    parts = stripped.split('@')
    if len(parts) != 2 or not parts[0] or not parts[1]:
        raise InvalidHandleError(f'Not of the form user@domain: "{ handle }"')
    if '/' in stripped or ':' in stripped:
        raise InvalidHandleError(f'Handle must not contain "/" or ":": "{ handle }"')
    return ParsedAcctUri(parts[0], parts[1])


def construct_webfinger_uri_for(acct: ParsedAcctUri) -> str:
    return f'https://{ acct.host }/.well-known/webfinger?resource={ quote(acct.uri, safe="") }'


class WebFingerClient:
    """
    Performs WebFinger queries.
    """
    def __init__(self, web_client: WebClient):
        self._web_client = web_client


    def query(self, handle: str) -> WebFingerDocument:
        """
        Fetch and decode the WebFinger document for a handle.
        """
        acct = parse_handle(handle)
        webfinger_uri = construct_webfinger_uri_for(acct)
        trace(f'WebFinger query for { acct.uri } at { webfinger_uri }')

        try:
            pair = self._web_client.http_get(webfinger_uri, accept=WEBFINGER_ACCEPT, follow_redirects=True)
        except WebClientError as e:
            raise WebFingerUnreachableError(str(e), webfinger_uri) from e

        if pair.response.http_status != 200:
            raise WebFingerUnreachableError(f'HTTP status { pair.response.http_status }', webfinger_uri)

        try:
            return msgspec.json.decode(pair.response.payload or b'', type=WebFingerDocument)
        except msgspec.DecodeError as e: # also covers ValidationError
            raise WebFingerMalformedError(str(e), webfinger_uri) from e


    def discover_actor(self, handle: str) -> str:
        """
        Return the URI of the actor document for this handle.
        """
        jrd = self.query(handle)
        link = jrd.select_actor_link()
        if link is None or link.href is None:
            raise WebFingerNoActorLinkError(f'No usable link for { handle }', construct_webfinger_uri_for(parse_handle(handle)))

        info(f'WebFinger: { handle } is at { link.href } (rel={ link.rel }, type={ link.type })')
        return link.href
