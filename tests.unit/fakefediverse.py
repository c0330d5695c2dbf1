"""
A fake Fediverse: servers that live in an httpx.MockTransport, so no test touches the network.
"""

import json
from typing import Any, Callable

import httpx


ACTIVITY_JSON = 'application/activity+json'


def _key(url: httpx.URL) -> tuple:
    return (url.scheme, url.host, url.port, url.path, tuple(sorted(url.params.multi_items())))


class FakeFediverse:
    """
    Serves canned responses by URL, and remembers all requests it has seen.
    """
    def __init__(self):
        self._routes : dict[tuple, Callable[[httpx.Request], httpx.Response]] = {}
        self.requests : list[httpx.Request] = []


    def add(self, uri: str, responder: Callable[[httpx.Request], httpx.Response]) -> None:
        self._routes[_key(httpx.URL(uri))] = responder


    def serve(self, uri: str, status: int = 200, content: bytes = b'', headers: dict[str,str] | None = None) -> None:
        self.add(uri, lambda request: httpx.Response(status, content=content, headers=headers or {}))


    def serve_json(self, uri: str, data: Any, status: int = 200, content_type: str = ACTIVITY_JSON) -> None:
        self.serve(uri, status, json.dumps(data).encode('utf-8'), { 'Content-Type' : content_type })


    def serve_object(self, data: dict[str,Any], at: str | None = None) -> None:
        """
        Serve an ActivityPub object at its id, or at the given location.
        """
        self.serve_json(at or data['id'], data)


    def serve_actor(self, actor_uri: str, name: str = 'Alice') -> None:
        self.serve_object({
            '@context' : 'https://www.w3.org/ns/activitystreams',
            'id' : actor_uri,
            'type' : 'Person',
            'name' : name,
            'preferredUsername' : name.lower(),
            'publicKey' : {
                'id' : actor_uri + '#main-key',
                'owner' : actor_uri,
                'publicKeyPem' : '-----BEGIN PUBLIC KEY-----\n...\n-----END PUBLIC KEY-----'
            }
        })


    def redirect(self, uri: str, location: str, status: int = 302) -> None:
        self.serve(uri, status, b'', { 'Location' : location })


    def fail(self, uri: str, exc: Exception) -> None:
        def raiser(request: httpx.Request) -> httpx.Response:
            raise exc
        self.add(uri, raiser)


    def handle(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        responder = self._routes.get(_key(request.url))
        if responder:
            return responder(request)
        return httpx.Response(404, content=b'Not found')


    def transport(self) -> httpx.MockTransport:
        return httpx.MockTransport(self.handle)


    def requested_uris(self) -> list[str]:
        return [ str(request.url) for request in self.requests ]


    def signed_requests(self) -> list[httpx.Request]:
        return [ request for request in self.requests if 'signature' in request.headers ]

