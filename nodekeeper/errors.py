"""Exception hierarchy for the node keeper.

Only startup configuration problems are fatal.  Everything raised while a
single wallet is being processed is caught at the wallet boundary by the
:class:`~nodekeeper.scheduler.SweepScheduler`.
"""


class NodeKeeperError(Exception):
    """Base class for all node keeper errors."""


class ConfigurationError(NodeKeeperError):
    """Startup configuration is unusable (e.g. no wallets were loaded)."""


class SigningError(NodeKeeperError):
    """A signing key could not be loaded or a message could not be signed."""


class MalformedResponseError(NodeKeeperError):
    """A response body is missing a field the caller relies on."""

    def __init__(self, field: str, payload=None):
        super().__init__(f"Response is missing '{field}'")
        self.field = field
        self.payload = payload
