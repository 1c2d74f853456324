"""
Transaction Signer
==================
Wallet capability behind the Signer protocol: compiles nothing itself,
only signs a compiled MessageV0 with the wallet plus any extra signers
(new position / mint keypairs).

Key material comes from SOLANA_PRIVATE_KEY (base58) and is never logged.
"""

from typing import List, Optional

import base58
from solders.hash import Hash
from solders.instruction import Instruction
from solders.keypair import Keypair
from solders.message import MessageV0
from solders.pubkey import Pubkey
from solders.transaction import VersionedTransaction

from config.settings import Settings


def compile_message(payer: Pubkey, instructions: List[Instruction], blockhash: str) -> MessageV0:
    return MessageV0.try_compile(
        payer=payer,
        instructions=instructions,
        address_lookup_table_accounts=[],
        recent_blockhash=Hash.from_string(blockhash),
    )


def encode_base58(tx: VersionedTransaction) -> str:
    """Bundle relays expect base58 transaction bytes."""
    return base58.b58encode(bytes(tx)).decode("utf-8")


def first_signature(tx: VersionedTransaction) -> str:
    return str(tx.signatures[0])


class KeypairSigner:
    def __init__(self, keypair: Keypair):
        self._keypair = keypair

    @classmethod
    def from_env(cls, private_key: Optional[str] = None) -> "KeypairSigner":
        secret = private_key or Settings.SOLANA_PRIVATE_KEY
        if not secret:
            raise ValueError("SOLANA_PRIVATE_KEY is not set")
        return cls(Keypair.from_bytes(base58.b58decode(secret)))

    @property
    def pubkey(self) -> Pubkey:
        return self._keypair.pubkey()

    def sign_transaction(self, message: MessageV0, extra_signers: List[Keypair]) -> VersionedTransaction:
        return VersionedTransaction(message, [self._keypair, *extra_signers])
