"""
Best-effort on-chain check of a recorded claim.

Runs after the Record response has been produced. A failure here is logged
and audited, never surfaced: the mint already happened, and the ledger row
must not be held hostage to RPC availability.
"""
import logging
from typing import Optional

from web3 import Web3
from web3.exceptions import TransactionNotFound

from .audit import write_audit
from .errors import ChainVerificationFailed

logger = logging.getLogger(__name__)


class ChainVerifier:
    def __init__(self, rpc_url: Optional[str] = None, timeout: float = 5.0, w3=None):
        if w3 is None:
            w3 = Web3(Web3.HTTPProvider(rpc_url, request_kwargs={"timeout": timeout}))
        self.w3 = w3

    def check_receipt(self, tx_hash: str, contract_address: Optional[str]) -> dict:
        try:
            receipt = self.w3.eth.get_transaction_receipt(tx_hash)
        except TransactionNotFound:
            raise ChainVerificationFailed("TX_NOT_FOUND", tx_hash)
        except Exception as e:
            raise ChainVerificationFailed("RPC_UNAVAILABLE", e.__class__.__name__) from e

        if receipt is None:
            raise ChainVerificationFailed("TX_NOT_FOUND", tx_hash)
        if receipt.get("status") != 1:
            raise ChainVerificationFailed("TX_FAILED", tx_hash)

        to = receipt.get("to") or ""
        if not contract_address or to.lower() != contract_address.lower():
            raise ChainVerificationFailed("WRONG_CONTRACT", f"sent to {to or 'nothing'}")
        return receipt


def verify_claim_transaction(
    verifier: ChainVerifier,
    session_factory,
    decision_id: str,
    event_id: str,
    user_address: str,
    tx_hash: str,
    contract_address: Optional[str],
    ip: str = "unknown",
    ua: str = "",
) -> bool:
    try:
        verifier.check_receipt(tx_hash, contract_address)
    except ChainVerificationFailed as e:
        logger.warning(
            "chain verification failed decision_id=%s tx=%s event=%s reason=%s",
            decision_id, tx_hash, event_id, e,
        )
        write_audit(session_factory, decision_id, "CHAIN_VERIFY", ip, ua, event_id, user_address, "FLAGGED", e.reason)
        return False

    write_audit(session_factory, decision_id, "CHAIN_VERIFY", ip, ua, event_id, user_address, "VERIFIED", "OK")
    return True
