"""
Resolve a piece of Fediverse input -- a URL, a handle, or a bare domain -- to the
ActivityPub object or NodeInfo document behind it.
"""

from dataclasses import dataclass
from enum import Enum
import time
from typing import Any, Callable

import httpx

from fediresolve.formatter import render
from fediresolve.protocols import ResolutionError
from fediresolve.protocols.activitypub import AnyObject, ObjectFetcher
from fediresolve.protocols.nodeinfo import NodeInfoClient, NodeInfoDocument
from fediresolve.protocols.web import WebClient
from fediresolve.protocols.web.signatures import SigningKeypair
from fediresolve.protocols.webfinger import WebFingerClient
from fediresolve.reporting import info, trace, warning
from fediresolve.settings import ResolverSettings
from fediresolve.utils import http_https_root_uri_parse_validate, http_https_uri_parse_validate


class CrossInstanceUnresolvedError(ResolutionError):
    kind = 'CrossInstanceUnresolved'

    def __init__(self, host: str, attempts: int, last_error: Exception | None, uri: str | None = None):
        super().__init__(f'Failed to fetch from original instance { host }: all { attempts } URL formats tried. Last error: { last_error }', uri)
        self.host = host
        self.last_error = last_error


class CanonicalLoopSuspectedError(ResolutionError):
    kind = 'CanonicalLoopSuspected'


class InputKind(Enum):
    BARE_DOMAIN = 'bare domain'
    HANDLE = 'handle'
    URL = 'URL'


def _has_http_scheme(raw: str) -> bool:
    return raw.startswith('http://') or raw.startswith('https://')


def classify_input(raw: str) -> InputKind:
    """
    Decide how to resolve raw. Rules are applied in order: bare domain, handle, URL.
    """
    if _has_http_scheme(raw):
        normalized : str | None = raw
    elif '@' not in raw:
        normalized = 'https://' + raw
    else:
        normalized = None

    if normalized and http_https_root_uri_parse_validate(normalized):
        return InputKind.BARE_DOMAIN

    if '/' not in raw and ':' not in raw:
        n_at = raw.count('@')
        if (raw.startswith('@') and n_at == 2) or (not raw.startswith('@') and n_at == 1):
            return InputKind.HANDLE

    return InputKind.URL


def normalize_url(raw: str) -> str:
    if _has_http_scheme(raw):
        return raw
    return 'https://' + raw


@dataclass(frozen=True)
class CrossInstanceReference:
    """
    What we learn from a URL such as https://mastodon.social/@user@other.example/12345:
    the post lives on other.example.
    """
    uri: str
    host: str
    user: str
    post_id: str | None


def parse_cross_instance_uri(uri: str) -> CrossInstanceReference | None:
    """
    Return the CrossInstanceReference if uri is of the form https://host/@user@otherHost[/postId],
    None otherwise.
    """
    parsed = http_https_uri_parse_validate(uri)
    if not parsed:
        return None

    segments = parsed.path.lstrip('/').split('/')
    first = segments[0]
    if not first.startswith('@') or '@' not in first[1:]:
        return None

    user_parts = first[1:].split('@')
    if len(user_parts) != 2 or not user_parts[0] or not user_parts[1]:
        return None

    post_id = segments[1] if len(segments) > 1 and segments[1] else None
    return CrossInstanceReference(uri, user_parts[1], user_parts[0], post_id)


ResolvedDocument = AnyObject | NodeInfoDocument


class Resolver:
    """
    Resolves input one network request at a time. Instances hold no state that carries from
    one resolution to the next, other than configuration. Each resolution signs with its own
    ephemeral key, so an instance may run several resolutions at the same time.
    """
    def __init__(
        self,
        settings: ResolverSettings | None = None,
        transport: httpx.BaseTransport | None = None,
        renderer: Callable[[dict[str,Any], bytes], str] | None = None,
        sleep: Callable[[float], None] = time.sleep,
        keypair_factory: Callable[[], SigningKeypair] = SigningKeypair.generate
    ):
        """
        settings: the configuration to use; defaults if not given
        transport: if given, the httpx transport to use instead of the network
        renderer: turns the resolved JSON into the result string; fediresolve.formatter.render if not given
        sleep: how to pause between consecutive guesses against the same server
        keypair_factory: creates the ephemeral key for signing, once per resolution
        """
        self._settings = settings or ResolverSettings()
        self._web_client = WebClient(self._settings, transport)
        self._webfinger_client = WebFingerClient(self._web_client)
        self._nodeinfo_client = NodeInfoClient(self._web_client)
        self._keypair_factory = keypair_factory
        self._renderer = renderer or (lambda data, raw: render(data, raw, self._settings.color))
        self._sleep = sleep


    @property
    def settings(self) -> ResolverSettings:
        return self._settings


    def resolve(self, raw: str) -> str:
        """
        Resolve the input and return it rendered.
        """
        document = self.resolve_document(raw)
        return self._renderer(document.json, document.raw)


    def resolve_document(self, raw: str) -> ResolvedDocument:
        """
        Resolve the input, without rendering.
        """
        kind = classify_input(raw)
        info(f'Input "{ raw }" looks like a { kind.value }')

        match kind:
            case InputKind.BARE_DOMAIN:
                parsed = http_https_root_uri_parse_validate(normalize_url(raw))
                if parsed is None:
                    raise ValueError(f'Not a bare domain after all: { raw }') # classifier bug
                found = self._nodeinfo_client.discover_nodeinfo(parsed.netloc)
                info(f'{ parsed.netloc } runs { found.software_name() or "unknown software" }')
                return found

            case InputKind.HANDLE:
                return self.resolve_handle(raw)

            case InputKind.URL:
                return self.resolve_url(normalize_url(raw))

        raise ValueError(f'Unexpected input kind: { kind }')


    def resolve_handle(self, handle: str, fetcher: ObjectFetcher | None = None) -> AnyObject:
        """
        Resolve a handle to its actor. fetcher: the fetcher of the ongoing resolution, if any.
        """
        fetcher = fetcher or self._new_fetcher()
        actor_uri = self._webfinger_client.discover_actor(handle)
        return self._unwrap_shares(self._follow_canonical_id(actor_uri, fetcher), fetcher)


    def resolve_url(self, uri: str) -> AnyObject:
        fetcher = self._new_fetcher()
        reference = parse_cross_instance_uri(uri)
        if reference:
            info(f'Cross-instance URL: user { reference.user } on { reference.host }, post { reference.post_id }')
            if reference.post_id:
                found = self._resolve_cross_instance_post(reference, fetcher)
            else:
                found = self._resolve_cross_instance_actor(reference, fetcher)
            return self._unwrap_shares(found, fetcher)

        return self._unwrap_shares(self._follow_canonical_id(uri, fetcher), fetcher)


    def _new_fetcher(self) -> ObjectFetcher:
        """
        An ObjectFetcher for one resolution. It generates its key on the first signed request
        and keeps it for all later ones.
        """
        keypairs : list[SigningKeypair] = []

        def resolution_keypair() -> SigningKeypair:
            if not keypairs:
                keypairs.append(self._keypair_factory())
            return keypairs[0]

        return ObjectFetcher(self._web_client, resolution_keypair)


    def _follow_canonical_id(self, uri: str, fetcher: ObjectFetcher) -> AnyObject:
        """
        Fetch uri. If the object claims to live at a different id, fetch that instead, up to
        max_canonical_depth times.
        """
        max_depth = self._settings.max_canonical_depth
        requested = uri
        depth = 0
        while True:
            found = fetcher.fetch_object(requested)
            canonical = found.id()
            if not canonical or canonical in (requested, found.uri):
                return found

            if depth >= max_depth:
                raise CanonicalLoopSuspectedError(f'Still no stable id after following { depth } ids, last one: { canonical }', uri)
            depth += 1
            info(f'Object fetched from { requested } has canonical id { canonical }, following')
            requested = canonical


    def _unwrap_shares(self, found: AnyObject, fetcher: ObjectFetcher) -> AnyObject:
        """
        If found is an Announce of something by reference, resolve that instead.
        """
        for _ in range(self._settings.max_canonical_depth):
            shared = found.shared_object_uri()
            if not shared:
                return found
            info(f'{ found.uri } is an Announce of { shared }, resolving the original')
            found = self._follow_canonical_id(shared, fetcher)

        if found.shared_object_uri():
            raise CanonicalLoopSuspectedError('Too many nested Announces', found.uri)
        return found


    def _resolve_cross_instance_post(self, reference: CrossInstanceReference, fetcher: ObjectFetcher) -> AnyObject:
        candidates = [
            template.format(host=reference.host, user=reference.user, post_id=reference.post_id)
            for template in self._settings.post_url_templates
        ]
        return self._first_fetchable(reference, candidates, [], fetcher)


    def _resolve_cross_instance_actor(self, reference: CrossInstanceReference, fetcher: ObjectFetcher) -> AnyObject:
        candidates = [
            template.format(host=reference.host, user=reference.user)
            for template in self._settings.actor_url_templates
        ]
        fallback = lambda: self.resolve_handle(f'{ reference.user }@{ reference.host }', fetcher)
        return self._first_fetchable(reference, candidates, [ fallback ], fetcher)


    def _first_fetchable(
        self,
        reference: CrossInstanceReference,
        candidates: list[str],
        fallbacks: list[Callable[[], AnyObject]],
        fetcher: ObjectFetcher
    ) -> AnyObject:
        """
        Try the candidate URIs in sequence, then the fallbacks; first success wins.
        """
        attempts : list[Callable[[], AnyObject]] = [ lambda candidate=candidate: fetcher.fetch_object(candidate) for candidate in candidates ]
        attempts += fallbacks

        last_error : Exception | None = None
        for i, attempt in enumerate(attempts):
            if i > 0:
                self._pause()
            try:
                return attempt()
            except ResolutionError as e:
                warning(f'Attempt { i+1 } of { len(attempts) } against { reference.host } failed:', e)
                last_error = e

        raise CrossInstanceUnresolvedError(reference.host, len(attempts), last_error, reference.uri)


    def _pause(self) -> None:
        if self._settings.attempt_delay > 0:
            trace(f'Waiting { self._settings.attempt_delay } seconds before the next attempt')
            self._sleep(self._settings.attempt_delay)
