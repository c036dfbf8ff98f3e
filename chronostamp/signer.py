"""
Claim authorization signer.

Produces the (nonce, signature) pair the ChronoStamp contract verifies in
`claim(signature, nonce)`. The contract rebuilds

    keccak256(abi.encodePacked(msg.sender, nonce))

applies the "\\x19Ethereum Signed Message:\\n32" prefix and recovers the signer,
so the hash layout here must stay byte-identical to that.

Exactly one private key is loaded, chosen by SignerConfig.environment.
"""
import logging
import secrets
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Dict, Optional

from eth_account import Account
from eth_account.messages import encode_defunct
from eth_keys.exceptions import ValidationError as KeyValidationError
from web3 import Web3

from .errors import InvalidAddress, SignerMisconfigured

logger = logging.getLogger(__name__)


class Environment(str, Enum):
    DEVELOPMENT = "development"
    PRODUCTION = "production"


@dataclass(frozen=True)
class SignerConfig:
    environment: Environment
    keys: Dict[Environment, str] = field(default_factory=dict)
    expected_addresses: Dict[Environment, str] = field(default_factory=dict)

    @property
    def is_production(self) -> bool:
        return self.environment is Environment.PRODUCTION

    @property
    def active_key(self) -> Optional[str]:
        return self.keys.get(self.environment)

    @property
    def expected_address(self) -> Optional[str]:
        return self.expected_addresses.get(self.environment)


def is_hex_address(value) -> bool:
    """0x-prefixed 20-byte hex. Mixed case must carry a valid EIP-55 checksum."""
    return isinstance(value, str) and value.startswith("0x") and Web3.is_address(value)


def generate_nonce() -> str:
    """32 random bytes from the OS CSPRNG as 0x-prefixed hex (a bytes32)."""
    return Web3.to_hex(secrets.token_bytes(32))


def claim_message_hash(user_address: str, nonce: str) -> bytes:
    """keccak256(abi.encodePacked(address, bytes32)) for a checksum address."""
    return Web3.solidity_keccak(["address", "bytes32"], [user_address, nonce])


class SignerService:
    def __init__(self, config: SignerConfig):
        self.config = config
        self._account = None

        key = config.active_key
        if not key:
            logger.error("no signer key configured for environment=%s", config.environment.value)
            return
        try:
            self._account = Account.from_key(key)
        except (KeyValidationError, ValueError, TypeError):
            # the key itself stays out of the log
            logger.error("signer key for environment=%s could not be parsed", config.environment.value)

    @property
    def signer_address(self) -> Optional[str]:
        return self._account.address if self._account is not None else None

    def validate_config(self) -> bool:
        """True when the loaded key derives the address expected for this environment."""
        expected = self.config.expected_address
        actual = self.signer_address
        if actual is None or not expected:
            return False
        if actual.lower() != expected.lower():
            logger.error("signer address mismatch: expected %s, got %s", expected, actual)
            return False
        return True

    def generate_nonce(self) -> str:
        return generate_nonce()

    def sign_message(self, user_address: str, nonce: str) -> str:
        if not is_hex_address(user_address):
            raise InvalidAddress(f"invalid address format: {user_address!r}")
        if not self.validate_config():
            raise SignerMisconfigured("signer configuration is invalid")

        checksum_address = Web3.to_checksum_address(user_address)
        message_hash = claim_message_hash(checksum_address, nonce)
        signed = self._account.sign_message(encode_defunct(primitive=message_hash))
        return Web3.to_hex(signed.signature)

    def environment_info(self) -> dict:
        return {
            "environment": self.config.environment.value,
            "isProduction": self.config.is_production,
            "signerAddress": self.config.expected_address,
            "timestamp": datetime.now(timezone.utc).isoformat(),
        }

    def shutdown(self) -> None:
        self._account = None
