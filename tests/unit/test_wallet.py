"""
Wallet Loading Tests
====================
"""

import json

import pytest
from solders.keypair import Keypair

from src.shared.execution.wallet import load_keypair
from src.shared.system.errors import FatalError


class TestLoadKeypair:

    def test_loads_secret_key_array(self, tmp_path):
        keypair = Keypair()
        path = tmp_path / "id.json"
        path.write_text(json.dumps(list(bytes(keypair))))

        assert load_keypair(str(path)).pubkey() == keypair.pubkey()

    def test_missing_file_is_fatal(self, tmp_path):
        with pytest.raises(FatalError, match="not found"):
            load_keypair(str(tmp_path / "nope.json"))

    def test_wrong_length_is_fatal(self, tmp_path):
        path = tmp_path / "id.json"
        path.write_text(json.dumps([1, 2, 3]))

        with pytest.raises(FatalError):
            load_keypair(str(path))

    def test_not_json_is_fatal(self, tmp_path):
        path = tmp_path / "id.json"
        path.write_text("not json")

        with pytest.raises(FatalError, match="unreadable"):
            load_keypair(str(path))
