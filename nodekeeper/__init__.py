"""
Core package for the LayerEdge light-node keeper.

This package keeps a list of wallets' remote light nodes alive: every sweep it
checks each node, stops and claims it when running, restarts it and reads back
the accumulated points.

Submodules:
    config: Application settings (``NodeSettings``) via Pydantic.
    errors: Exception hierarchy shared by all components.
    events: Structured event sinks injected into every component.
    logging_setup: Compressed rotating file + safe console logging.
    wallet: ``WalletIdentity`` signing keys and wallet list loading.
    proxy_pool: ``ProxyEndpoint`` parsing and round-robin ``ProxyPool``.
    http_client: ``ResilientHttpClient`` with bounded fixed-interval retry.
    node: ``NodeLifecycle`` per-wallet check/stop/connect/points sequence.
    scheduler: ``SweepScheduler`` that repeats sweeps over all wallets.
    utils: Plain-text list file helpers.
"""
