"""
Transaction helpers shared by the swap pipeline, the bundle protocol and the
position closer.
"""

import base64
from typing import List

from solders.hash import Hash
from solders.keypair import Keypair
from solders.message import Message, MessageV0
from solders.pubkey import Pubkey
from solders.system_program import TransferParams, transfer
from solders.transaction import VersionedTransaction

from src.shared.system.errors import BuildError


def decode_transaction(payload_b64: str) -> VersionedTransaction:
    """base64 wire bytes -> VersionedTransaction (unsigned or signed)."""
    try:
        return VersionedTransaction.from_bytes(base64.b64decode(payload_b64))
    except ValueError as e:
        raise BuildError(f"Transaction payload could not be decoded: {e}") from e


def encode_transaction(tx: VersionedTransaction) -> str:
    return base64.b64encode(bytes(tx)).decode("utf-8")


def sign_with_blockhash(
    template: VersionedTransaction,
    blockhash: Hash,
    signer: Keypair,
) -> VersionedTransaction:
    """
    Copy `template` with its recent blockhash replaced, signed by `signer`.

    Any signature already on the template is discarded, since it covered
    the old blockhash.
    """
    msg = template.message
    if isinstance(msg, MessageV0):
        fresh = MessageV0(
            msg.header,
            msg.account_keys,
            blockhash,
            msg.instructions,
            msg.address_table_lookups,
        )
    else:
        fresh = Message.new_with_compiled_instructions(
            msg.header.num_required_signatures,
            msg.header.num_readonly_signed_accounts,
            msg.header.num_readonly_unsigned_accounts,
            msg.account_keys,
            blockhash,
            msg.instructions,
        )
    return VersionedTransaction(fresh, [signer])


def build_tip_transaction(
    payer: Keypair,
    tip_account: str,
    lamports: int,
    blockhash: Hash,
) -> VersionedTransaction:
    """System transfer of `lamports` to a relay tip account."""
    ix = transfer(
        TransferParams(
            from_pubkey=payer.pubkey(),
            to_pubkey=Pubkey.from_string(tip_account),
            lamports=lamports,
        )
    )
    msg = MessageV0.try_compile(payer.pubkey(), [ix], [], blockhash)
    return VersionedTransaction(msg, [payer])


def first_signature(tx: VersionedTransaction) -> str:
    """The fee payer's signature, which is also the transaction id."""
    return str(tx.signatures[0])


def signatures_of(transactions: List[VersionedTransaction]) -> List[str]:
    return [first_signature(tx) for tx in transactions]


def recent_blockhash(tx: VersionedTransaction) -> Hash:
    return tx.message.recent_blockhash
