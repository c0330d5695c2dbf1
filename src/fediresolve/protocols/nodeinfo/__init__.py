"""
NodeInfo: two-step discovery of what software a server runs, see https://nodeinfo.diaspora.software/
"""

import json
from typing import Any

import msgspec

from fediresolve.protocols import ResolutionError
from fediresolve.protocols.web import WebClient, WebClientError
from fediresolve.reporting import info, trace
from fediresolve.utils import find_first_in_array, strip_ansi_escapes


NODEINFO_ACCEPT = 'application/json'

# In order of preference
SUPPORTED_SCHEMA_SUFFIXES = [ '/schema/2.1', '/schema/2.0' ]


class NodeInfoSchemaUnsupportedError(ResolutionError):
    kind = 'NodeInfoSchemaUnsupported'


class NodeInfoUnreachableError(ResolutionError):
    kind = 'NodeInfoUnreachable'


class NodeInfoMalformedError(ResolutionError):
    kind = 'NodeInfoMalformed'


class NodeInfoLink(msgspec.Struct):
    rel: str | None = None
    href: str | None = None


class NodeInfoDiscoveryDocument(msgspec.Struct):
    """
    The document at /.well-known/nodeinfo.
    """
    links: list[NodeInfoLink] = []


    def select_href(self) -> str | None:
        for suffix in SUPPORTED_SCHEMA_SUFFIXES:
            found = find_first_in_array(self.links, lambda link, suffix=suffix: bool(link.rel and link.href and link.rel.endswith(suffix)))
            if found:
                return found.href
        return None


class NodeInfoDocument:
    """
    A NodeInfo document, held as-is because its schema is defined elsewhere and keeps evolving.
    """
    def __init__(self, uri: str, raw: bytes, json_data: dict[str,Any]):
        self.uri = uri
        self.raw = raw
        self.json = json_data


    def software_name(self) -> str | None:
        software = self.json.get('software')
        if isinstance(software, dict):
            return software.get('name')
        return None


class NodeInfoClient:
    """
    Knows how to find and fetch the NodeInfo document of a server.
    """
    def __init__(self, web_client: WebClient):
        self._web_client = web_client


    def discover_nodeinfo(self, domain: str) -> NodeInfoDocument:
        discovery_uri = f'https://{ domain }/.well-known/nodeinfo'
        trace(f'NodeInfo discovery at { discovery_uri }')

        discovery_payload = self._get(discovery_uri)
        try:
            discovery = msgspec.json.decode(strip_ansi_escapes(discovery_payload), type=NodeInfoDiscoveryDocument)
        except msgspec.DecodeError as e:
            raise NodeInfoMalformedError(str(e), discovery_uri) from e

        nodeinfo_uri = discovery.select_href()
        if not nodeinfo_uri:
            raise NodeInfoSchemaUnsupportedError('Neither schema 2.1 nor 2.0 offered', discovery_uri)
        info(f'NodeInfo: { domain } offers { nodeinfo_uri }')

        raw = self._get(nodeinfo_uri)
        try:
            nodeinfo_json = json.loads(strip_ansi_escapes(raw))
        except ValueError as e:
            raise NodeInfoMalformedError(str(e), nodeinfo_uri) from e
        if not isinstance(nodeinfo_json, dict):
            raise NodeInfoMalformedError('Not a JSON object', nodeinfo_uri)

        return NodeInfoDocument(nodeinfo_uri, raw, nodeinfo_json)


    def _get(self, uri: str) -> bytes:
        try:
            pair = self._web_client.http_get(uri, accept=NODEINFO_ACCEPT, follow_redirects=True)
        except WebClientError as e:
            raise NodeInfoUnreachableError(str(e), uri) from e

        if pair.response.http_status != 200:
            raise NodeInfoUnreachableError(f'HTTP status { pair.response.http_status }', uri)
        return pair.response.payload or b''
