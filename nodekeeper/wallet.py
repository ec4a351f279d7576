"""Wallet identities and the wallet list file.

A :class:`WalletIdentity` wraps an Ethereum signing key.  The remote service
verifies node actions with an EIP-191 ``personal_sign`` signature, so
messages are hashed with :func:`eth_account.messages.encode_defunct` before
signing, which is the same convention ``ethers.Wallet.signMessage`` uses.
"""

import logging
import time
from dataclasses import dataclass
from typing import Callable, List, Optional, Tuple

from eth_account import Account
from eth_account.messages import encode_defunct

from nodekeeper.errors import SigningError
from nodekeeper.utils import append_line, read_lines

logger = logging.getLogger(__name__)

ACTIVATION = "activation"
DEACTIVATION = "deactivation"


def build_node_message(action: str, address: str, timestamp_ms: int) -> str:
    """Build the exact text the remote verifier expects for a node action.

    Args:
        action: ``"activation"`` or ``"deactivation"``.
        address: Checksummed wallet address.
        timestamp_ms: Wall-clock time in milliseconds.
    """
    if action not in (ACTIVATION, DEACTIVATION):
        raise ValueError(f"Unknown node action: {action}")
    return f"Node {action} request for {address} at {timestamp_ms}"


@dataclass(frozen=True)
class WalletCredentials:
    """One line of the wallet list file."""

    address: str
    private_key: str


class WalletIdentity:
    """Signing key plus its derived address.

    Immutable after construction; a new identity is built for every wallet
    in every sweep.

    Args:
        private_key: Hex private key, with or without ``0x``.
        clock: Returns the current time in seconds.  Used for the
            millisecond timestamps embedded in node action messages.

    Raises:
        SigningError: If the key cannot be loaded.
    """

    def __init__(self, private_key: str, clock: Callable[[], float] = time.time):
        try:
            self._account = Account.from_key(private_key)
        except Exception as e:
            raise SigningError(f"Invalid signing key: {e}") from e
        self._clock = clock

    @classmethod
    def create(cls) -> "WalletIdentity":
        """Generate a brand new random wallet."""
        account = Account.create()
        return cls(account.key.hex())

    @classmethod
    def from_credentials(
        cls, credentials: WalletCredentials, clock: Callable[[], float] = time.time,
    ) -> "WalletIdentity":
        """Build an identity from a wallet list entry.

        The address listed in the file is informational only; if it does
        not match the key, the derived address wins.
        """
        identity = cls(credentials.private_key, clock=clock)
        listed = credentials.address.strip()
        if listed and listed.lower() != identity.address.lower():
            logger.warning(
                "Listed address %s does not match key; using %s",
                listed, identity.address,
            )
        return identity

    @property
    def address(self) -> str:
        """Checksummed address derived from the signing key."""
        return self._account.address

    @property
    def private_key(self) -> str:
        return "0x" + bytes(self._account.key).hex()

    def now_ms(self) -> int:
        return int(self._clock() * 1000)

    def sign(self, message: str) -> str:
        """Sign *message* with the EIP-191 personal message convention.

        Returns:
            ``0x``-prefixed 65-byte hex signature.

        Raises:
            SigningError: If signing fails.
        """
        try:
            signed = self._account.sign_message(encode_defunct(text=message))
        except Exception as e:
            raise SigningError(f"Failed to sign message: {e}") from e
        return "0x" + bytes(signed.signature).hex()

    def sign_node_action(self, action: str) -> Tuple[str, int]:
        """Sign a node activation/deactivation request at the current time.

        Returns:
            ``(signature, timestamp_ms)``
        """
        timestamp = self.now_ms()
        message = build_node_message(action, self.address, timestamp)
        return self.sign(message), timestamp

    def __repr__(self) -> str:
        return f"WalletIdentity(address={self.address!r})"


def parse_wallet_line(line: str) -> Optional[WalletCredentials]:
    """Parse ``address,privateKey``; returns ``None`` when malformed."""
    if "," not in line:
        return None
    address, private_key = line.split(",", 1)
    private_key = private_key.strip()
    if not private_key:
        return None
    return WalletCredentials(address=address.strip(), private_key=private_key)


def load_wallets(filepath: str) -> List[WalletCredentials]:
    """Load the wallet list file.

    Malformed lines are skipped with a warning.  A missing file yields an
    empty list; the caller decides whether that is fatal.
    """
    wallets: List[WalletCredentials] = []
    for number, line in enumerate(read_lines(filepath), start=1):
        credentials = parse_wallet_line(line)
        if credentials is None:
            logger.warning("Skipping malformed wallet line %d in %s", number, filepath)
            continue
        wallets.append(credentials)
    logger.info("Loaded %d wallets from %s", len(wallets), filepath)
    return wallets


def save_wallet(filepath: str, identity: WalletIdentity) -> None:
    """Append a wallet to the wallet list file in ``address,privateKey`` form."""
    append_line(filepath, f"{identity.address},{identity.private_key}")
