import json
import os

from solders.keypair import Keypair

from src.shared.system.errors import FatalError
from src.shared.system.logging import Logger


def load_keypair(path: str) -> Keypair:
    """
    Load a signing keypair from a JSON secret-key array file
    (the format written by `solana-keygen`).
    """
    resolved = os.path.expanduser(path)
    if not os.path.isfile(resolved):
        raise FatalError(f"Wallet file not found: {resolved}")

    try:
        with open(resolved, "r") as f:
            secret = json.load(f)
    except (OSError, json.JSONDecodeError) as e:
        raise FatalError(f"Wallet file unreadable: {e}") from e

    if not isinstance(secret, list) or len(secret) != 64 or not all(isinstance(b, int) for b in secret):
        raise FatalError("Wallet file must contain a JSON array of 64 secret-key bytes")

    try:
        keypair = Keypair.from_bytes(bytes(secret))
    except ValueError as e:
        raise FatalError(f"Invalid secret key: {e}") from e

    Logger.info(f"[WALLET] Loaded {keypair.pubkey()}")
    return keypair
