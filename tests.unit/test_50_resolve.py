"""
Test the resolution of all kinds of input, end to end against a fake Fediverse
"""

import base64
import json
import threading
from typing import Any

import httpx
import pytest
from cryptography.exceptions import InvalidSignature
from cryptography.hazmat.primitives import hashes
from cryptography.hazmat.primitives.asymmetric import padding
from hamcrest import assert_that, contains_string, equal_to, has_entries, only_contains

from fediresolve.protocols.activitypub import AnyObject, FetchFailedError
from fediresolve.protocols.nodeinfo import NodeInfoDocument
from fediresolve.protocols.web.signatures import SigningKeypair, parse_signature_header
from fediresolve.protocols.webfinger import InvalidHandleError, construct_webfinger_uri_for, parse_handle
from fediresolve.resolver import CanonicalLoopSuspectedError, CrossInstanceUnresolvedError, Resolver
from fediresolve.settings import ResolverSettings

from fakefediverse import ACTIVITY_JSON, FakeFediverse


ALICE = 'https://a.example/users/alice'
BOB = 'https://b.example/users/bob'


def _serve_note(fediverse: FakeFediverse, at: str, note_id: str | None = None, author: str = ALICE) -> None:
    fediverse.serve_object({
        '@context' : 'https://www.w3.org/ns/activitystreams',
        'id' : note_id or at,
        'type' : 'Note',
        'attributedTo' : author,
        'content' : f'<p>Served at { at }</p>'
    }, at)


def _serve_webfinger(fediverse: FakeFediverse, handle: str, actor_uri: str) -> None:
    fediverse.serve_json(
        construct_webfinger_uri_for(parse_handle(handle)),
        { 'subject' : f'acct:{ handle }', 'links' : [ { 'rel' : 'self', 'type' : 'application/activity+json', 'href' : actor_uri } ] },
        content_type='application/jrd+json')


def test_plain_url(fediverse: FakeFediverse, resolver: Resolver):
    note_uri = 'https://a.example/notes/1'
    _serve_note(fediverse, note_uri)
    fediverse.serve_actor(ALICE)

    found = resolver.resolve_document(note_uri)
    assert isinstance(found, AnyObject)
    assert found.id() == note_uri


def test_url_without_scheme(fediverse: FakeFediverse, resolver: Resolver):
    _serve_note(fediverse, 'https://a.example/notes/1')
    fediverse.serve_actor(ALICE)

    found = resolver.resolve_document('a.example/notes/1')
    assert found.json['id'] == 'https://a.example/notes/1'


def test_canonical_chain_of_two(fediverse: FakeFediverse, resolver: Resolver):
    _serve_note(fediverse, 'https://a.example/s/1', 'https://a.example/c/1')
    _serve_note(fediverse, 'https://a.example/c/1', 'https://a.example/c/2')
    _serve_note(fediverse, 'https://a.example/c/2')
    fediverse.serve_actor(ALICE)

    found = resolver.resolve_document('https://a.example/s/1')
    assert isinstance(found, AnyObject)
    assert found.uri == 'https://a.example/c/2'
    assert found.id() == 'https://a.example/c/2'


def test_canonical_chain_of_three(fediverse: FakeFediverse, resolver: Resolver):
    for i in range(3):
        _serve_note(fediverse, f'https://a.example/c/{ i }', f'https://a.example/c/{ i+1 }')
    _serve_note(fediverse, 'https://a.example/c/3')
    fediverse.serve_actor(ALICE)

    found = resolver.resolve_document('https://a.example/c/0')
    assert found.json['id'] == 'https://a.example/c/3'


def test_canonical_chain_of_four(fediverse: FakeFediverse, resolver: Resolver):
    for i in range(4):
        _serve_note(fediverse, f'https://a.example/c/{ i }', f'https://a.example/c/{ i+1 }')
    _serve_note(fediverse, 'https://a.example/c/4')
    fediverse.serve_actor(ALICE)

    with pytest.raises(CanonicalLoopSuspectedError) as e:
        resolver.resolve_document('https://a.example/c/0')
    assert e.value.kind == 'CanonicalLoopSuspected'
    assert 'https://a.example/c/4' not in fediverse.requested_uris()


def test_canonical_cycle(fediverse: FakeFediverse, resolver: Resolver):
    _serve_note(fediverse, 'https://a.example/c/a', 'https://a.example/c/b')
    _serve_note(fediverse, 'https://a.example/c/b', 'https://a.example/c/a')
    fediverse.serve_actor(ALICE)

    with pytest.raises(CanonicalLoopSuspectedError):
        resolver.resolve_document('https://a.example/c/a')


def test_unwrap_announce(fediverse: FakeFediverse, resolver: Resolver):
    announce_uri = 'https://a.example/users/alice/statuses/2/activity'
    fediverse.serve_object({
        'id' : announce_uri,
        'type' : 'Announce',
        'actor' : ALICE,
        'object' : 'https://b.example/notes/7'
    })
    _serve_note(fediverse, 'https://b.example/notes/7', author=BOB)
    fediverse.serve_actor(ALICE)
    fediverse.serve_actor(BOB, 'Bob')

    found = resolver.resolve_document(announce_uri)
    assert isinstance(found, AnyObject)
    assert found.type() == 'Note'
    assert found.id() == 'https://b.example/notes/7'


def test_announce_of_embedded_object(fediverse: FakeFediverse, resolver: Resolver):
    announce_uri = 'https://a.example/activities/2'
    fediverse.serve_object({
        'id' : announce_uri,
        'type' : 'Announce',
        'actor' : ALICE,
        'object' : { 'id' : 'https://b.example/notes/7', 'type' : 'Note' }
    })
    fediverse.serve_actor(ALICE)

    found = resolver.resolve_document(announce_uri)
    assert found.json['type'] == 'Announce'


def test_announce_loop(fediverse: FakeFediverse, resolver: Resolver):
    for this, other in (('1', '2'), ('2', '1')):
        fediverse.serve_object({
            'id' : f'https://a.example/activities/{ this }',
            'type' : 'Announce',
            'actor' : ALICE,
            'object' : f'https://a.example/activities/{ other }'
        })
    fediverse.serve_actor(ALICE)

    with pytest.raises(CanonicalLoopSuspectedError):
        resolver.resolve_document('https://a.example/activities/1')


@pytest.mark.parametrize('handle', [ '@alice@a.example', 'alice@a.example' ])
def test_handle(fediverse: FakeFediverse, resolver: Resolver, handle: str):
    _serve_webfinger(fediverse, 'alice@a.example', ALICE)
    fediverse.serve_actor(ALICE)

    found = resolver.resolve_document(handle)
    assert isinstance(found, AnyObject)
    assert found.type() == 'Person'
    assert found.json['preferredUsername'] == 'alice'
    assert fediverse.requested_uris()[0].startswith('https://a.example/.well-known/webfinger?resource=')


def test_invalid_handle(fediverse: FakeFediverse, resolver: Resolver):
    with pytest.raises(InvalidHandleError):
        resolver.resolve_document('@alice@')
    assert len(fediverse.requests) == 0


def test_bare_domain(fediverse: FakeFediverse, resolver: Resolver):
    fediverse.serve_json('https://a.example/.well-known/nodeinfo', { 'links' : [
        { 'rel' : 'http://nodeinfo.diaspora.software/ns/schema/2.1', 'href' : 'https://a.example/nodeinfo/2.1' }
    ] }, content_type='application/json')
    fediverse.serve_json('https://a.example/nodeinfo/2.1', {
        'version' : '2.1',
        'software' : { 'name' : 'pleroma', 'version' : '2.6.0' }
    }, content_type='application/json')

    found = resolver.resolve_document('a.example')
    assert isinstance(found, NodeInfoDocument)
    assert found.software_name() == 'pleroma'


def test_cross_instance_post(fediverse: FakeFediverse, keypair: SigningKeypair):
    _serve_note(fediverse, 'https://b.example/users/bob/statuses/42', author=BOB)
    fediverse.serve_actor(BOB, 'Bob')

    pauses : list[float] = []
    resolver = Resolver(ResolverSettings(attempt_delay=2), fediverse.transport(), sleep=pauses.append, keypair_factory=lambda: keypair)
    found = resolver.resolve_document('https://a.example/@bob@b.example/42')

    assert found.json['id'] == 'https://b.example/users/bob/statuses/42'
    assert fediverse.requested_uris() == [
        'https://b.example/@bob/42',
        'https://b.example/users/bob/statuses/42',
        BOB,
        'https://b.example/users/bob/statuses/42'
    ]
    assert_that(pauses, equal_to([ 2 ]))


def test_cross_instance_post_not_found(fediverse: FakeFediverse, keypair: SigningKeypair):
    pauses : list[float] = []
    resolver = Resolver(ResolverSettings(attempt_delay=2), fediverse.transport(), sleep=pauses.append, keypair_factory=lambda: keypair)

    with pytest.raises(CrossInstanceUnresolvedError) as e:
        resolver.resolve_document('https://a.example/@bob@b.example/42')

    assert e.value.host == 'b.example'
    assert isinstance(e.value.last_error, FetchFailedError)
    assert_that(str(e.value), contains_string('b.example'))
    assert len(fediverse.requests) == 6
    assert_that([ request.url.host for request in fediverse.requests ], only_contains('b.example'))
    assert len(pauses) == 5


def test_cross_instance_post_custom_templates(fediverse: FakeFediverse, keypair: SigningKeypair):
    _serve_note(fediverse, 'https://b.example/objects/bob/42', author=BOB)
    fediverse.serve_actor(BOB, 'Bob')

    settings = ResolverSettings(attempt_delay=0, post_url_templates=[ 'https://{host}/objects/{user}/{post_id}' ])
    resolver = Resolver(settings, fediverse.transport(), keypair_factory=lambda: keypair)

    found = resolver.resolve_document('https://a.example/@bob@b.example/42')
    assert found.uri == 'https://b.example/objects/bob/42'


def test_cross_instance_actor(fediverse: FakeFediverse, resolver: Resolver):
    fediverse.serve_actor('https://b.example/accounts/bob', 'Bob')

    found = resolver.resolve_document('https://a.example/@bob@b.example')
    assert isinstance(found, AnyObject)
    assert found.uri == 'https://b.example/accounts/bob'


def test_cross_instance_actor_webfinger_fallback(fediverse: FakeFediverse, resolver: Resolver):
    _serve_webfinger(fediverse, 'bob@b.example', 'https://b.example/ap/bob')
    fediverse.serve_actor('https://b.example/ap/bob', 'Bob')

    found = resolver.resolve_document('https://a.example/@bob@b.example')
    assert found.uri == 'https://b.example/ap/bob'


def test_resolve_renders(fediverse: FakeFediverse, resolver: Resolver):
    _serve_note(fediverse, 'https://a.example/notes/1')
    fediverse.serve_actor(ALICE)

    result = resolver.resolve('https://a.example/notes/1')
    assert_that(result, contains_string('"type": "Note"'))
    assert_that(result, contains_string('Type: Note'))
    assert_that(result, contains_string('Content: Served at https://a.example/notes/1'))


def test_custom_renderer(fediverse: FakeFediverse, settings: ResolverSettings, keypair: SigningKeypair):
    _serve_note(fediverse, 'https://a.example/notes/1')
    fediverse.serve_actor(ALICE)

    seen = []
    def renderer(data, raw):
        seen.append(data)
        return 'rendered'

    resolver = Resolver(settings, fediverse.transport(), renderer=renderer, keypair_factory=lambda: keypair)
    assert resolver.resolve('https://a.example/notes/1') == 'rendered'
    assert_that(seen[0], has_entries({ 'type' : 'Note' }))


def test_one_key_per_resolution(fediverse: FakeFediverse, settings: ResolverSettings, keypair: SigningKeypair):
    announce_uri = 'https://a.example/activities/3'
    fediverse.serve_object({ 'id' : announce_uri, 'type' : 'Announce', 'actor' : ALICE, 'object' : 'https://a.example/notes/1' })
    _serve_note(fediverse, 'https://a.example/notes/1')
    fediverse.serve_actor(ALICE)

    generated = []
    def factory() -> SigningKeypair:
        generated.append(keypair)
        return keypair

    resolver = Resolver(settings, fediverse.transport(), keypair_factory=factory)
    resolver.resolve_document(announce_uri)
    assert len(fediverse.signed_requests()) == 2
    assert len(generated) == 1

    resolver.resolve_document(announce_uri)
    assert len(generated) == 2


def _verifies(request: httpx.Request, keypair: SigningKeypair) -> bool:
    params = parse_signature_header(request.headers['signature'])
    to_verify = '\n'.join([
        f'(request-target): get { request.url.raw_path.decode("ascii") }',
        f'host: { request.headers["host"] }',
        f'date: { request.headers["date"] }',
        f'digest: { request.headers["digest"] }'
    ])
    try:
        keypair.public_key.verify(base64.b64decode(params['signature']), to_verify.encode('utf-8'), padding.PKCS1v15(), hashes.SHA256())
    except InvalidSignature:
        return False
    return True


def test_interleaved_resolutions_keep_their_own_keys(fediverse: FakeFediverse, settings: ResolverSettings):
    announce_uri = 'https://a.example/activities/3'
    first_note = 'https://a.example/notes/1'
    second_note = 'https://a.example/notes/2'
    fediverse.serve_object({ 'id' : announce_uri, 'type' : 'Announce', 'actor' : ALICE, 'object' : first_note })
    _serve_note(fediverse, second_note)
    fediverse.serve_actor(ALICE)

    generated : list[SigningKeypair] = []
    def factory() -> SigningKeypair:
        ret = SigningKeypair.generate()
        generated.append(ret)
        return ret

    resolver = Resolver(settings, fediverse.transport(), keypair_factory=factory)

    # The first resolution has signed with its key already when it gets here. Before it
    # continues, a second resolution on the same Resolver runs to completion in another thread.
    other_started : list[bool] = []
    other_found : list[Any] = []
    def resolve_other() -> None:
        other_found.append(resolver.resolve_document(second_note))

    def first_note_responder(request: httpx.Request) -> httpx.Response:
        if not other_started:
            other_started.append(True)
            other = threading.Thread(target=resolve_other)
            other.start()
            other.join()
        note = { 'id' : first_note, 'type' : 'Note', 'attributedTo' : ALICE, 'content' : 'First' }
        return httpx.Response(200, content=json.dumps(note).encode('utf-8'), headers={ 'Content-Type' : ACTIVITY_JSON })

    fediverse.add(first_note, first_note_responder)

    found = resolver.resolve_document(announce_uri)
    assert found.id() == first_note
    assert len(other_found) == 1
    assert other_found[0].id() == second_note

    assert len(generated) == 2
    first_key, second_key = generated

    signed = fediverse.signed_requests()
    assert [ str(request.url) for request in signed ] == [ announce_uri, second_note, first_note ]
    assert _verifies(signed[0], first_key)
    assert _verifies(signed[1], second_key)
    assert not _verifies(signed[1], first_key)
    assert _verifies(signed[2], first_key)
