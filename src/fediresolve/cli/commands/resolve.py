"""
Resolve a Fediverse URL, handle or domain and show what's behind it
"""

from argparse import ArgumentParser, Namespace, _SubParsersAction

from fediresolve.protocols import ResolutionError
from fediresolve.resolver import Resolver
from fediresolve.reporting import error
from fediresolve.settings import ResolverSettings
from fediresolve.utils import prompt_user


def run(parser: ArgumentParser, args: Namespace, remaining: list[str]) -> int:
    """
    Run this command.
    """
    if len(remaining):
        parser.print_help()
        return 0

    settings = create_settings(args)

    raw = args.input
    if raw is None:
        raw = prompt_user('Enter a Fediverse URL or handle: ')
    raw = raw.strip()
    if not raw:
        print('No URL or handle provided. Exiting.')
        return 0

    try:
        result = Resolver(settings).resolve(raw)
    except ResolutionError as e:
        error(f'Error resolving { raw }: { e }')
        return 1

    print(result)
    return 0


def create_settings(args: Namespace) -> ResolverSettings:
    """
    Settings from the --settings file, if any, with command-line overrides applied.
    """
    settings = ResolverSettings.load(args.settings) if args.settings else ResolverSettings()
    if args.timeout is not None:
        settings.timeout = args.timeout
    if args.delay is not None:
        settings.attempt_delay = args.delay
    if args.no_color:
        settings.color = False
    settings.validate()
    return settings


def add_sub_parser(parent_parser: _SubParsersAction, cmd_name: str) -> None:
    """
    Add command-line options for this sub-command
    parent_parser: the parent argparse parser
    cmd_name: name of this command
    """
    parser = parent_parser.add_parser(cmd_name, help='Resolve a Fediverse URL, handle or domain')
    parser.add_argument('input', nargs='?', default=None, help='URL, @user@domain handle, or domain. Asked for interactively if not given.')
    parser.add_argument('--settings', default=None, help='JSON file with resolver settings')
    parser.add_argument('--timeout', type=float, default=None, help='Timeout for each HTTP request, in seconds')
    parser.add_argument('--delay', type=float, default=None, help='Pause between consecutive guesses against the same server, in seconds')
    parser.add_argument('--no-color', action='store_true', help='Do not colorize the summary')

    return parser
