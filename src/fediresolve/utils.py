"""
Utility functions
"""

from abc import ABC, abstractmethod
import importlib.metadata
import pkgutil
import re
from types import ModuleType
from typing import Any, Callable, List, Optional, TypeVar
from urllib.parse import ParseResult, urlparse


def _version(default_version="0.0.0"):
    try:
        return importlib.metadata.version("fediresolve")
    except importlib.metadata.PackageNotFoundError:
        return default_version

FEDIRESOLVE_VERSION = _version()

# From https://datatracker.ietf.org/doc/html/rfc7565#section-7, but simplified
ACCT_REGEX = re.compile(r"acct:([-a-zA-Z0-9\._~][-a-zA-Z0-9\._~!$&'\(\)\*\+,;=%]*)@([-a-zA-Z0-9\.:]+)")

# Some servers colorize their responses
ANSI_ESCAPE_REGEX = re.compile(rb"\x1b\[[0-9;]*[a-zA-Z]")

T = TypeVar("T")


class ParsedUri(ABC):
    """
    An abstract data type for URIs. Because acct: URIs are structured so differently
    from http(s) URIs, we have subtypes.
    """
    @staticmethod
    def parse(url: str, scheme='', allow_fragments=True) -> Optional['ParsedUri']:
        """
        The equivalent of urlparse(str), but returns None for anything that isn't absolute.
        """
        parsed : ParseResult = urlparse(url, scheme, allow_fragments)
        if parsed.scheme == 'acct':
            if match := ACCT_REGEX.fullmatch(url):
                return ParsedAcctUri(match[1], match[2])
            return None
        if not len(parsed.scheme):
            return None
        if not len(parsed.netloc):
            return None
        return ParsedNonAcctUri(parsed.scheme, parsed.netloc, parsed.path, parsed.params, parsed.query, parsed.fragment)


    @property
    @abstractmethod
    def scheme(self) -> str:
        ...


    @property
    @abstractmethod
    def uri(self) -> str:
        ...


class ParsedNonAcctUri(ParsedUri):
    """
    ParsedUris that are "normal" URIs such as https URIs.
    """
    def __init__(self, scheme: str, netloc: str, path: str, params: str, query: str, fragment: str):
        self._scheme = scheme
        self._netloc = netloc
        self._path = path
        self._params = params
        self._query = query
        self._fragment = fragment


    # Python 3.12 @override
    @property
    def scheme(self) -> str:
        return self._scheme


    @property
    def netloc(self) -> str:
        return self._netloc


    @property
    def path(self) -> str:
        return self._path


    @property
    def params(self) -> str:
        return self._params


    @property
    def query(self) -> str:
        return self._query


    @property
    def fragment(self) -> str:
        return self._fragment


    @property
    def request_target(self) -> str:
        """
        Path plus query, the way it shows up in the HTTP request line.
        """
        ret = self._path or '/'
        if self._params:
            ret += f';{ self._params }'
        if self._query:
            ret += f'?{ self._query }'
        return ret


    # Python 3.12 @override
    @property
    def uri(self) -> str:
        ret = f'{ self._scheme }:'
        if self._netloc:
            ret += f'//{ self._netloc}'
        ret += self._path
        if self._params:
            ret += f';{ self._params}'
        if self._query:
            ret += f'?{ self._query }'
        if self._fragment:
            ret += f'#{ self._fragment }'
        return ret


    # Python 3.12 @override
    def __repr__(self):
        return f'ParsedNonAcctUri({ self.uri })'


class ParsedAcctUri(ParsedUri):
    """
    ParsedUris that are acct: URIs
    """
    def __init__(self, user: str, host: str):
        self._user = user
        self._host = host


    # Python 3.12 @override
    @property
    def scheme(self) -> str:
        return 'acct'


    @property
    def user(self) -> str:
        return self._user


    @property
    def host(self) -> str:
        return self._host


    # Python 3.12 @override
    @property
    def uri(self) -> str:
        return f'acct:{ self.user }@{ self.host }'


    # Python 3.12 @override
    def __repr__(self):
        return f'ParsedAcctUri({ self.uri })'


def find_submodules(package: ModuleType) -> list[str]:
    """
    Find all submodules in the named package

    package: the package
    return: array of module names
    """
    ret = []
    for _, modname, _ in pkgutil.iter_modules(package.__path__):
        ret.append(modname)
    return ret


def http_https_uri_parse_validate(candidate: str) -> ParsedNonAcctUri | None:
    """
    Validate that the provided string is a valid HTTP or HTTPS URI.
    return: ParsedUri if valid, None otherwise
    """
    parsed = ParsedUri.parse(candidate)
    if isinstance(parsed, ParsedNonAcctUri) and parsed.scheme in ['http', 'https'] and len(parsed.netloc) > 0:
        return parsed
    return None


def http_https_root_uri_parse_validate(candidate: str) -> ParsedNonAcctUri | None:
    """
    Validate that the provided string is a valid HTTP or HTTPS URI without a path, query or
    fragment component
    return: ParsedUri if valid, None otherwise
    """
    parsed = http_https_uri_parse_validate(candidate)
    if (parsed
            and (len(parsed.path) == 0 or parsed.path == '/')
            and len(parsed.params) == 0
            and len(parsed.query) == 0
            and len(parsed.fragment) == 0):
        return parsed
    return None


def json_path(data: Any, path: str) -> Any | None:
    """
    Look up a dotted path such as 'publicKey.id' or 'publicKey.0.id' in decoded JSON.
    Numeric components index into arrays. Never raises; returns None if anything
    along the way is missing or of the wrong type.
    """
    current = data
    for component in path.split('.'):
        if isinstance(current, dict):
            if component not in current:
                return None
            current = current[component]
        elif isinstance(current, list) and component.isdigit():
            index = int(component)
            if index >= len(current):
                return None
            current = current[index]
        else:
            return None
    return current


def json_path_str(data: Any, path: str) -> str | None:
    """
    Like json_path, but only returns non-empty strings.
    """
    ret = json_path(data, path)
    if isinstance(ret, str) and ret:
        return ret
    return None


def strip_ansi_escapes(payload: bytes) -> bytes:
    return ANSI_ESCAPE_REGEX.sub(b'', payload)


def find_first_in_array(array: List[T], condition: Callable[[T], bool]) -> T | None:
    """
    IMHO this should be a python built-in function. The next() workaround confuses me more than I like.
    """
    for t in array:
        if condition(t):
            return t
    return None


def truncate(value: str, max_length: int) -> str:
    """
    Shorten value to at most max_length characters, marking the cut with an ellipsis.
    """
    if len(value) > max_length:
        return value[:max_length-3] + '...'
    return value


def prompt_user(question: str) -> str:
    """
    Prompt the user to enter a text string at the console.

    question: the text to be emitted to the user as a prompt
    return: the value entered by the user, stripped of surrounding whitespace
    """
    ret = input(question)
    return ret.strip()
