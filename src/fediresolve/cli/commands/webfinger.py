"""
Perform a WebFinger query and show the actor URI it leads to
"""

from argparse import ArgumentParser, Namespace, _SubParsersAction

from fediresolve.protocols import ResolutionError
from fediresolve.protocols.web import WebClient
from fediresolve.protocols.webfinger import WebFingerClient
from fediresolve.reporting import error


def run(parser: ArgumentParser, args: Namespace, remaining: list[str]) -> int:
    """
    Run this command.
    """
    if len(remaining):
        parser.print_help()
        return 0

    try:
        actor_uri = WebFingerClient(WebClient()).discover_actor(args.handle)
    except ResolutionError as e:
        error(f'Error performing WebFinger query for { args.handle }: { e }')
        return 1

    print(actor_uri)
    return 0


def add_sub_parser(parent_parser: _SubParsersAction, cmd_name: str) -> None:
    """
    Add command-line options for this sub-command
    parent_parser: the parent argparse parser
    cmd_name: name of this command
    """
    parser = parent_parser.add_parser(cmd_name, help='Show the actor URI a handle leads to')
    parser.add_argument('handle', help='Handle of the form @user@domain or user@domain')

    return parser
