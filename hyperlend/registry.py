"""
RegistryAdmin: owner-only writes on the pair registry.

Reads (pair list, deployers, owner) live on RemoteStateReader.
"""

from __future__ import annotations

import logging
from typing import List, Optional

from .capabilities import ReadCapability, require_write
from .errors import InvalidInputError
from .gas import GasPolicy
from .reader import RemoteStateReader, checksum
from .transactions import SentTransaction, TransactionSender

logger = logging.getLogger(__name__)


class RegistryAdmin:
    def __init__(
        self,
        capability: ReadCapability,
        registry_address: str,
        reader: Optional[RemoteStateReader] = None,
        sender: Optional[TransactionSender] = None,
    ) -> None:
        self.capability = require_write(capability, "RegistryAdmin")
        self.registry_address = checksum(registry_address, "registry address")
        self.reader = reader or RemoteStateReader(self.capability, registry_address=self.registry_address)
        self.sender = sender or TransactionSender(self.capability)

    def _send(self, func, label: str) -> SentTransaction:
        budget = self.sender.budget(func, GasPolicy.default(label))
        logger.info(f"Registry {self.registry_address}: {label}")
        return self.sender.send(func, label, budget)

    def _functions(self):
        return self.reader.registry_contract().functions

    def add_pair(self, pair_address: str) -> SentTransaction:
        pair = checksum(pair_address, "pair address")
        return self._send(self._functions().addPair(pair), f"addPair {pair}")

    def set_deployers(self, deployers: List[str], allow: bool) -> SentTransaction:
        """Grant (allow=True) or revoke deployer rights for every address in deployers."""
        if not deployers:
            raise InvalidInputError("At least one deployer address is required.")
        addresses = [checksum(d, "deployer address") for d in deployers]
        return self._send(self._functions().setDeployers(addresses, allow), f"setDeployers({len(addresses)}, {allow})")

    def transfer_ownership(self, new_owner: str) -> SentTransaction:
        owner = checksum(new_owner, "new owner address")
        return self._send(self._functions().transferOwnership(owner), f"transferOwnership {owner}")

    def accept_ownership(self) -> SentTransaction:
        return self._send(self._functions().acceptOwnership(), "acceptOwnership")

    def renounce_ownership(self) -> SentTransaction:
        return self._send(self._functions().renounceOwnership(), "renounceOwnership")
