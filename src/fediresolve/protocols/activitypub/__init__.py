"""
ActivityPub: fetching objects the way real-world servers want to be asked.
"""

import json
from typing import Any
from urllib.parse import urljoin

from fediresolve.protocols import ResolutionError
from fediresolve.protocols.web import HttpRequest, HttpRequestResponsePair, HttpResponse, WebClient, WebClientError
from fediresolve.protocols.web.signatures import SigningKeypair, sign_request
from fediresolve.reporting import info, trace
from fediresolve.utils import json_path, json_path_str, strip_ansi_escapes


ACTIVITYPUB_ACCEPT = 'application/activity+json, application/ld+json; profile="https://www.w3.org/ns/activitystreams", application/json'


class NoSigningKeyError(ResolutionError):
    kind = 'NoSigningKey'


class FetchFailedError(ResolutionError):
    kind = 'FetchFailed'

    def __init__(self, msg: str, uri: str | None = None, http_status: int | None = None, payload: bytes | None = None):
        super().__init__(msg, uri)
        self.http_status = http_status
        self.payload = payload


    def __str__(self):
        ret = super().__str__()
        if self.http_status is not None:
            ret += f' [HTTP status { self.http_status }]'
        if self.payload:
            ret += f' body: { self.payload.decode("utf-8", errors="replace")[:500] }'
        return ret


class EmptyResponseError(ResolutionError):
    kind = 'EmptyResponse'


class DecodeFailedError(ResolutionError):
    kind = 'DecodeFailed'


# Note:
# The data held by AnyObject is untyped. Servers send all sorts of things, and we
# pass through whatever we get; we only ever read the few fields we need.

class AnyObject:
    """
    This container is used to hold any instance of any of the ActivityStreams types,
    together with the bytes it was decoded from.
    """
    def __init__(self, uri: str, json_data: dict[str,Any], raw: bytes):
        """
        uri: the URI this was fetched from, after redirects
        """
        self.uri = uri
        self.json = json_data
        self.raw = raw


    def json_field(self, path: str) -> Any | None:
        """
        Convenience method to access field 'path' in the JSON, such as 'publicKey.id'.
        """
        return json_path(self.json, path)


    def json_field_str(self, path: str) -> str | None:
        return json_path_str(self.json, path)


    def id(self) -> str | None:
        return self.json_field_str('id')


    def type(self) -> str | None:
        """
        The type, or the first of the types if there are several.
        """
        found = self.json_field('type')
        if isinstance(found, list):
            found = next((t for t in found if isinstance(t, str)), None)
        if isinstance(found, str) and found:
            return found
        return None


    def attributed_to_uri(self) -> str | None:
        """
        attributedTo comes as a URI, an embedded object, or a list of either.
        """
        return _first_uri_of(self.json_field('attributedTo'))


    def actor_uri(self) -> str | None:
        return _first_uri_of(self.json_field('actor'))


    def public_key_id(self) -> str | None:
        return self.json_field_str('publicKey.id') or self.json_field_str('publicKey.0.id')


    def shared_object_uri(self) -> str | None:
        """
        If this is an Announce of something referenced by URI, return that URI.
        Announces with an embedded object return None: there is nothing left to fetch.
        """
        if self.type() != 'Announce':
            return None
        return self.json_field_str('object')


    def __repr__(self):
        return f'AnyObject({ self.type() }, { self.uri })'


def _first_uri_of(value: Any) -> str | None:
    if isinstance(value, str):
        return value or None
    if isinstance(value, dict):
        return json_path_str(value, 'id')
    if isinstance(value, list):
        for item in value:
            found = _first_uri_of(item)
            if found:
                return found
    return None


class ObjectFetcher:
    """
    Fetches ActivityPub objects. Every object is fetched with an HTTP Signature, because
    more and more servers refuse to serve anything otherwise. An unsigned probe comes first:
    it tells us whose key to claim, and whether the object lives somewhere else.
    """
    def __init__(self, web_client: WebClient, keypair_factory = SigningKeypair.generate):
        """
        keypair_factory: provides the SigningKeypair for each signed request
        """
        self._web_client = web_client
        self._keypair_factory = keypair_factory


    def fetch_object(self, uri: str) -> AnyObject:
        """
        Fetch the object at uri. The returned object's uri is where it was found in the end.
        """
        info(f'Fetching ActivityPub object from { uri }')
        return self._fetch_signed(uri, 0)


    def fetch_actor(self, actor_uri: str) -> AnyObject:
        """
        Fetch an actor document without signature. Only used for finding a keyId.
        """
        trace(f'Fetching actor document from { actor_uri }')
        pair = self._get(self._create_request(actor_uri), follow_redirects=True)
        if pair.response.http_status != 200:
            raise FetchFailedError('Actor request failed', actor_uri, pair.response.http_status)
        return self._decode(pair.final_request.parsed_uri.uri, pair.response)


    def discover_key_id(self, obj: AnyObject) -> str:
        """
        Determine the keyId to put into the signature for fetching obj: the key of the
        author, or the object's own key if it is an actor, or the key of the activity's actor.
        """
        attributed_to = obj.attributed_to_uri()
        if attributed_to:
            return self._key_id_of_actor(attributed_to)

        key_id = obj.public_key_id()
        if key_id:
            trace(f'Using the object\'s own key { key_id }')
            return key_id

        actor = obj.actor_uri()
        if actor:
            return self._key_id_of_actor(actor)

        raise NoSigningKeyError('Object has neither attributedTo, nor publicKey, nor actor', obj.uri)


    def _key_id_of_actor(self, actor_uri: str) -> str:
        try:
            actor = self.fetch_actor(actor_uri)
        except ResolutionError as e:
            raise NoSigningKeyError(f'Cannot fetch actor document: { e }', actor_uri) from e

        key_id = actor.public_key_id()
        if not key_id:
            raise NoSigningKeyError('Actor document has no publicKey.id', actor_uri)
        trace(f'Using key { key_id } of actor { actor_uri }')
        return key_id


    def _fetch_signed(self, uri: str, redirects: int) -> AnyObject:
        probe = self._fetch_direct(uri, redirects)
        if probe.uri != uri:
            # We were redirected, and the redirect target has been fetched with signature already
            return probe

        key_id = self.discover_key_id(probe)
        keypair = self._keypair_factory()
        request = sign_request(self._create_request(uri), key_id, keypair)

        pair = self._get(request, follow_redirects=False)
        if pair.response.http_status != 200:
            raise FetchFailedError('Signed request failed', uri, pair.response.http_status, pair.response.payload)
        return self._decode(uri, pair.response)


    def _fetch_direct(self, uri: str, redirects: int) -> AnyObject:
        pair = self._get(self._create_request(uri), follow_redirects=False)
        response = pair.response

        if response.is_redirect() and response.location():
            if redirects >= self._web_client.settings.max_redirects:
                raise FetchFailedError(f'Too many redirects ({ redirects })', uri, response.http_status)
            target = urljoin(uri, response.location())
            info(f'{ uri } redirects to { target }')
            return self._fetch_signed(target, redirects + 1)

        if response.http_status != 200:
            raise FetchFailedError('Request failed', uri, response.http_status, response.payload)
        return self._decode(uri, response)


    def _create_request(self, uri: str) -> HttpRequest:
        try:
            return self._web_client.create_get_request(uri, ACTIVITYPUB_ACCEPT)
        except WebClientError as e:
            raise FetchFailedError(str(e), uri) from e


    def _get(self, request: HttpRequest, follow_redirects: bool) -> HttpRequestResponsePair:
        try:
            return self._web_client.http(request, follow_redirects=follow_redirects)
        except WebClientError as e:
            raise FetchFailedError(str(e), request.parsed_uri.uri) from e


    def _decode(self, uri: str, response: HttpResponse) -> AnyObject:
        raw = response.payload
        if not raw:
            raise EmptyResponseError('Received empty response body', uri)
        try:
            decoded = json.loads(strip_ansi_escapes(raw))
        except ValueError as e:
            raise DecodeFailedError(f'Not JSON ({ response.content_type() }): { e }', uri) from e
        if not isinstance(decoded, dict):
            raise DecodeFailedError(f'Not a JSON object, but { type(decoded).__name__ }', uri)
        return AnyObject(uri, decoded, raw)
