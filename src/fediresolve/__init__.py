"""
Resolve Fediverse URLs, handles and domains to the ActivityPub objects and NodeInfo documents
behind them.
"""

from fediresolve.settings import ResolverSettings


def resolve_input(raw: str, settings: ResolverSettings | None = None) -> str:
    """
    Convenience function: create a Resolver, and resolve and render the input with it.
    """
    from fediresolve.resolver import Resolver # pylint: disable=import-outside-toplevel

    return Resolver(settings).resolve(raw)
