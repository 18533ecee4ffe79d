"""Builders shared by the unit tests."""

import base64
import json
from unittest.mock import MagicMock

from solders.hash import Hash
from solders.keypair import Keypair
from solders.message import MessageV0
from solders.pubkey import Pubkey
from solders.system_program import TransferParams, transfer
from solders.transaction import VersionedTransaction


def make_template(payer: Keypair, blockhash: Hash = None) -> VersionedTransaction:
    """Small signed transfer standing in for a venue-built transaction."""
    ix = transfer(TransferParams(from_pubkey=payer.pubkey(), to_pubkey=Pubkey.new_unique(), lamports=1_000))
    msg = MessageV0.try_compile(payer.pubkey(), [ix], [], blockhash or Hash.new_unique())
    return VersionedTransaction(msg, [payer])


def encode(tx: VersionedTransaction) -> str:
    return base64.b64encode(bytes(tx)).decode("utf-8")


def json_response(payload, status_code: int = 200):
    """MagicMock shaped like an httpx.Response."""
    response = MagicMock()
    response.json.return_value = payload
    response.status_code = status_code
    response.raise_for_status = MagicMock()
    return response


def html_response(status_code: int = 200):
    """Response whose body is an HTML page, e.g. a CDN error served as 200."""
    response = MagicMock()
    response.json.side_effect = json.JSONDecodeError("Expecting value", "<html>", 0)
    response.status_code = status_code
    response.raise_for_status = MagicMock()
    return response
