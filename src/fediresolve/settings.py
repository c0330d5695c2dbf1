"""
Tunables of a resolution. Defaults work against the real Fediverse; a JSON file
can override any of them, e.g. to teach the resolver the URL layout of more server software.
"""

import json

import msgspec

from fediresolve.reporting import trace
from fediresolve.utils import FEDIRESOLVE_VERSION


DEFAULT_USER_AGENT = f'FediResolve/{ FEDIRESOLVE_VERSION }'

DEFAULT_POST_URL_TEMPLATES = [
    # Mastodon
    'https://{host}/@{user}/{post_id}',
    'https://{host}/users/{user}/statuses/{post_id}',
    # Pleroma, Akkoma
    'https://{host}/notice/{post_id}',
    # Misskey and forks
    'https://{host}/notes/{post_id}',
    # Friendica
    'https://{host}/display/{post_id}',
    # Hubzilla
    'https://{host}/item/{post_id}',
]

DEFAULT_ACTOR_URL_TEMPLATES = [
    'https://{host}/users/{user}',
    'https://{host}/user/{user}',
    'https://{host}/accounts/{user}',
    'https://{host}/profile/{user}',
]


class ResolverSettings(msgspec.Struct):
    """
    Everything a Resolver can be configured with.
    """
    user_agent: str = DEFAULT_USER_AGENT
    timeout: float = 30.0 # seconds, per request
    max_canonical_depth: int = 3
    max_redirects: int = 10
    attempt_delay: float = 2.0 # seconds between consecutive guesses against the same remote server
    post_url_templates: list[str] = msgspec.field(default_factory=lambda: list(DEFAULT_POST_URL_TEMPLATES))
    actor_url_templates: list[str] = msgspec.field(default_factory=lambda: list(DEFAULT_ACTOR_URL_TEMPLATES))
    color: bool = True


    class InvalidSettingsError(RuntimeError):
        """
        Raised when a settings file cannot be read or does not have the right structure.
        """
        def __init__(self, filename: str, msg: str):
            self.filename = filename
            self.msg = msg


        def __str__(self):
            return f'Invalid settings file "{ self.filename }": { self.msg }'


    @staticmethod
    def load(filename: str) -> 'ResolverSettings':
        """
        Read a JSON file, and instantiate ResolverSettings from what we find.
        Keys that are not given keep their defaults.
        """
        trace(f'ResolverSettings.load({ filename })')
        try:
            with open(filename, 'r', encoding='utf-8') as f:
                settings_json = json.load(f)
        except (OSError, json.JSONDecodeError) as e:
            raise ResolverSettings.InvalidSettingsError(filename, str(e)) from e

        try:
            ret = msgspec.convert(settings_json, type=ResolverSettings)
        except msgspec.ValidationError as e:
            raise ResolverSettings.InvalidSettingsError(filename, str(e)) from e
        ret.validate(filename)
        return ret


    def validate(self, filename: str = '<settings>') -> None:
        if self.timeout <= 0:
            raise ResolverSettings.InvalidSettingsError(filename, 'timeout must be positive')
        if self.max_canonical_depth < 0 or self.max_redirects < 0:
            raise ResolverSettings.InvalidSettingsError(filename, 'depth limits must not be negative')
        if self.attempt_delay < 0:
            raise ResolverSettings.InvalidSettingsError(filename, 'attempt_delay must not be negative')
        for template in self.post_url_templates:
            if '{host}' not in template or '{post_id}' not in template:
                raise ResolverSettings.InvalidSettingsError(filename, f'Post URL template lacks {{host}} or {{post_id}}: "{ template }"')
        for template in self.actor_url_templates:
            if '{host}' not in template or '{user}' not in template:
                raise ResolverSettings.InvalidSettingsError(filename, f'Actor URL template lacks {{host}} or {{user}}: "{ template }"')
        for template in self.post_url_templates + self.actor_url_templates:
            try:
                template.format(host='example.com', user='user', post_id='1')
            except (KeyError, IndexError, ValueError) as e:
                raise ResolverSettings.InvalidSettingsError(filename, f'URL template cannot be filled in: "{ template }" ({ type(e).__name__ }: { e })') from e
