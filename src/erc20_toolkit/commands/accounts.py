"""
Offline helpers: new HD wallet and SHA-256 digest. No RPC involved.
"""

import hashlib
from typing import Any, Callable, Dict

from eth_account import Account

DEFAULT_DERIVATION_PATH = "m/44'/60'/0'/0/0"
DEFAULT_HASH_TEXT = "hello blockchain"


def cmd_wallet_new(path: str = DEFAULT_DERIVATION_PATH, echo: Callable[[str], Any] = print) -> Dict[str, Any]:
    """
    Generate a 12-word mnemonic and derive the account at ``path``.

    The mnemonic and key are printed; keep them offline.
    """
    Account.enable_unaudited_hdwallet_features()
    _, mnemonic = Account.create_with_mnemonic(num_words=12, account_path=path)
    account = Account.from_mnemonic(mnemonic, account_path=path)
    private_key = "0x" + bytes(account.key).hex()

    echo(f"Mnemonic: {mnemonic}")
    echo(f"Derivation path: {path}")
    echo(f"Private key: {private_key}")
    echo(f"Address: {account.address}")
    return {"mnemonic": mnemonic, "path": path, "private_key": private_key, "address": account.address}


def cmd_hash(text: str = DEFAULT_HASH_TEXT, echo: Callable[[str], Any] = print) -> Dict[str, Any]:
    digest = hashlib.sha256(text.encode("utf-8")).hexdigest()
    echo(f"SHA-256: {digest}")
    return {"text": text, "sha256": digest}
