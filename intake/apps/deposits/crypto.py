from eth_account import Account
from web3 import Web3

from cryptography.fernet import Fernet
from django.conf import settings


def _fernet() -> Fernet:
    return Fernet(settings.FERNET_KEY.encode())


def encrypt_secret(secret: str) -> bytes:
    return _fernet().encrypt(secret.encode())


def decrypt_secret(blob: bytes) -> str:
    return _fernet().decrypt(bytes(blob)).decode()


def create_deposit_wallet() -> tuple[str, str]:
    """
    Creates a fresh BSC keypair for one deposit.
    Purely local; nothing touches the chain.
    """
    account = Account.create()
    return Web3.to_hex(account.key), account.address
