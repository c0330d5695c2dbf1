"""
Show version
"""

from argparse import ArgumentParser, Namespace, _SubParsersAction

from fediresolve.utils import FEDIRESOLVE_VERSION

def run(parser: ArgumentParser, args: Namespace, remaining: list[str]) -> int:
    """
    Run this command.
    """
    if len(remaining):
        parser.print_help()
        return 0

    print(f'fediresolve version { FEDIRESOLVE_VERSION }')
    return 0


def add_sub_parser(parent_parser: _SubParsersAction, cmd_name: str) -> None:
    """
    Add command-line options for this sub-command
    parent_parser: the parent argparse parser
    cmd_name: name of this command
    """
    parser = parent_parser.add_parser( cmd_name, help='Show fediresolve version')

    return parser
