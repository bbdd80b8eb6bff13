# app/services/token_identity.py
import logging
from typing import Optional

from solders.keypair import Keypair
from solders.pubkey import Pubkey

from app.utils.transactions import requires_signature_from, sign_transaction

logger = logging.getLogger(__name__)


class TokenIdentityConsumed(RuntimeError):
    pass


class TokenIdentity:
    """
    Key pair of the token being launched. The public half is the mint address;
    the private half signs the mint-creation transaction once and is then
    dropped. It never leaves this object.
    """

    def __init__(self, keypair: Keypair):
        self._keypair: Optional[Keypair] = keypair
        self._pubkey = keypair.pubkey()

    @classmethod
    def generate(cls) -> "TokenIdentity":
        return cls(Keypair())

    @property
    def pubkey(self) -> Pubkey:
        return self._pubkey

    @property
    def public_key(self) -> str:
        return str(self._pubkey)

    @property
    def discarded(self) -> bool:
        return self._keypair is None

    def is_signer_of(self, raw_transaction: bytes) -> bool:
        return requires_signature_from(raw_transaction, self._pubkey)

    def co_sign(self, raw_transaction: bytes) -> bytes:
        """Sign the mint-creation transaction and forget the private key."""
        if self._keypair is None:
            raise TokenIdentityConsumed(f"Token identity {self.public_key[:8]}... was already used")
        try:
            return sign_transaction(raw_transaction, self._keypair)
        finally:
            self.discard()

    def discard(self):
        if self._keypair is not None:
            logger.debug(f"Discarding token identity {self.public_key[:8]}...")
        self._keypair = None

    def __repr__(self) -> str:
        return f"TokenIdentity(public_key={self.public_key!r}, discarded={self.discarded})"
