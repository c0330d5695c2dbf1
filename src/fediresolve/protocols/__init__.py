"""
The protocols spoken while resolving: plain HTTP, WebFinger, NodeInfo and ActivityPub.
"""


class ResolutionError(RuntimeError):
    """
    Base class of all the ways a resolution can fail. Each subclass names the stage that
    failed in `kind`, and carries the URI it was attempting, if there was one.
    """
    kind = 'ResolutionFailed'

    def __init__(self, msg: str, uri: str | None = None):
        super().__init__(msg)
        self.msg = msg
        self.uri = uri


    def __str__(self):
        if self.uri:
            return f'{ self.kind }: { self.msg } (URI: { self.uri })'
        return f'{ self.kind }: { self.msg }'
