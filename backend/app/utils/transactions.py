# app/utils/transactions.py
import base64
from typing import List, Sequence, Union

import base58
from solders.keypair import Keypair
from solders.message import to_bytes_versioned
from solders.pubkey import Pubkey
from solders.signature import Signature
from solders.transaction import VersionedTransaction


def decode_transaction(raw: bytes) -> VersionedTransaction:
    """Parse wire bytes (legacy or v0) into a VersionedTransaction."""
    return VersionedTransaction.from_bytes(raw)


def decode_base64_transaction(payload: str) -> bytes:
    """Decode a base64 payload and make sure it is a parseable transaction."""
    raw = base64.b64decode(payload, validate=True)
    if not raw:
        raise ValueError("empty transaction payload")
    try:
        decode_transaction(raw)
    except Exception as e:
        raise ValueError(f"payload is not a transaction: {e}") from e
    return raw


def required_signers(tx: VersionedTransaction) -> List[Pubkey]:
    message = tx.message
    count = message.header.num_required_signatures
    return list(message.account_keys[:count])


def requires_signature_from(raw: bytes, pubkey: Pubkey) -> bool:
    return pubkey in required_signers(decode_transaction(raw))


def sign_transaction(raw: bytes, keypair: Keypair) -> bytes:
    """
    Add ``keypair``'s signature at its signer slot, keeping every other
    signature (or placeholder) untouched. Returns the new wire bytes.
    """
    tx = decode_transaction(raw)
    signers = required_signers(tx)
    pubkey = keypair.pubkey()
    if pubkey not in signers:
        raise ValueError(f"{pubkey} is not a required signer of this transaction")

    signatures = list(tx.signatures)
    # Unsigned payloads may arrive without placeholder slots
    while len(signatures) < len(signers):
        signatures.append(Signature.default())

    message_bytes = to_bytes_versioned(tx.message)
    signatures[signers.index(pubkey)] = keypair.sign_message(message_bytes)

    signed_tx = VersionedTransaction.populate(tx.message, signatures)
    return bytes(signed_tx)


def normalize_signature(value: Union[str, bytes, bytearray, Sequence[int]]) -> str:
    """Return the canonical base58 text form of a transaction signature."""
    if isinstance(value, str):
        text = value.strip()
        if len(base58.b58decode(text)) != 64:
            raise ValueError(f"not a 64-byte signature: {text!r}")
        return text
    if isinstance(value, (bytes, bytearray)):
        raw = bytes(value)
    elif isinstance(value, (list, tuple)):
        raw = bytes(value)
    else:
        raise ValueError(f"unsupported signature type: {type(value).__name__}")
    if len(raw) != 64:
        raise ValueError(f"signature must be 64 bytes, got {len(raw)}")
    return base58.b58encode(raw).decode("utf-8")
