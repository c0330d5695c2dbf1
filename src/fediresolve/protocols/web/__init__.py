"""
HTTP client and the abstract data types that capture what is exchanged over HTTP.
"""

from dataclasses import dataclass, field
import time

import httpx
from multidict import MultiDict

from fediresolve.reporting import trace
from fediresolve.settings import ResolverSettings
from fediresolve.utils import ParsedNonAcctUri, http_https_uri_parse_validate


@dataclass
class HttpRequest:
    """
    Captures an HTTP request.
    """
    parsed_uri: ParsedNonAcctUri
    method: str = 'GET'
    headers: dict[str,str] = field(default_factory=dict)
    payload : bytes | None = None


@dataclass
class HttpResponse:
    """
    Captures the response of an HTTP request.
    """
    http_status : int
    response_headers: MultiDict # keys are lowercased
    payload : bytes | None = None


    def content_type(self):
        return self.response_headers.get('content-type')


    def location(self):
        return self.response_headers.get('location')


    def is_redirect(self):
        return self.http_status in [301, 302, 307, 308]


@dataclass
class HttpRequestResponsePair:
    final_request: HttpRequest # this is the request that actually produced this response, in case of redirects
    response: HttpResponse


class WebClientError(RuntimeError):
    """
    Problems at the HTTP level, before any protocol-specific interpretation.
    """
    pass # pylint: disable=unnecessary-pass


class InvalidUriError(WebClientError):
    """
    Raised when asked to access something that isn't an absolute http or https URI.
    """
    def __init__(self, uri: str):
        self.uri = uri


    def __str__(self):
        return f'Not an absolute http(s) URI: "{ self.uri }"'


class HttpUnsuccessfulError(WebClientError):
    """
    Thrown to indicate an unsuccessful HTTP request because DNS could not be resolved, the request
    timed out, TLS failed etc.
    """
    def __init__(self, request: HttpRequest, cause: Exception):
        self.request = request
        self.cause = cause


    def __str__(self):
        return f'Unsuccessful HTTP request: { self.request.method } { self.request.parsed_uri.uri }: { type(self.cause).__name__ } { self.cause }'


class WebClient:
    """
    Performs HTTP requests one at a time. There is no state shared between requests:
    every request gets its own connection.
    """
    def __init__(self, settings: ResolverSettings | None = None, transport: httpx.BaseTransport | None = None):
        """
        settings: where to find user agent and timeout
        transport: if given, use this httpx transport instead of the network. Used for testing.
        """
        self._settings = settings or ResolverSettings()
        self._transport = transport


    @property
    def settings(self) -> ResolverSettings:
        return self._settings


    def http(self, request: HttpRequest, follow_redirects: bool = False) -> HttpRequestResponsePair:
        """
        Perform an HTTP request. The whole exchange, including reading the body, must complete
        within the configured timeout.
        """
        trace( f'Performing HTTP { request.method } on { request.parsed_uri.uri }')

        timeout = self._settings.timeout
        deadline = time.monotonic() + timeout
        headers = { 'User-Agent' : self._settings.user_agent }
        headers.update(request.headers)
        try:
            with httpx.Client(transport=self._transport, timeout=timeout, follow_redirects=follow_redirects) as httpx_client:
                httpx_request = httpx.Request(request.method, request.parsed_uri.uri, headers=headers, content=request.payload)
                httpx_response = httpx_client.send(httpx_request, stream=True)
                try:
                    chunks = []
                    for chunk in httpx_response.iter_bytes():
                        chunks.append(chunk)
                        if time.monotonic() > deadline:
                            raise httpx.ReadTimeout(f'Response not complete after { timeout } seconds', request=httpx_request)
                    payload = b''.join(chunks)
                finally:
                    httpx_response.close()

        except (httpx.HTTPError, httpx.InvalidURL) as e:
            raise HttpUnsuccessfulError(request, e) from e

        response_headers : MultiDict = MultiDict()
        for key, value in httpx_response.headers.items():
            response_headers.add(key.lower(), value)

        final_request = request
        final_uri = str(httpx_response.url)
        if final_uri != request.parsed_uri.uri:
            parsed_final_uri = http_https_uri_parse_validate(final_uri)
            if parsed_final_uri:
                final_request = HttpRequest(parsed_final_uri, request.method, dict(request.headers))

        ret = HttpRequestResponsePair(final_request, HttpResponse(httpx_response.status_code, response_headers, payload))
        trace( f'HTTP { request.method } on { final_request.parsed_uri.uri } returns status { ret.response.http_status }')
        return ret


    def http_get(self, uri: str, accept: str | None = None, follow_redirects: bool = False) -> HttpRequestResponsePair:
        """
        Convenience function to perform an HTTP GET request.
        """
        return self.http(self.create_get_request(uri, accept), follow_redirects=follow_redirects)


    def create_get_request(self, uri: str, accept: str | None = None) -> HttpRequest:
        parsed = http_https_uri_parse_validate(uri)
        if not parsed:
            raise InvalidUriError(uri)
        ret = HttpRequest(parsed, 'GET')
        if accept:
            ret.headers['Accept'] = accept
        return ret
