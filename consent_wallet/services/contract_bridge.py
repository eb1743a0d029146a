"""
Contract Bridge

Requests on-chain calls by injecting a contract client call into the tab the
token was issued from. Requests are fire-and-forget: the bridge neither waits
for nor verifies the on-chain result, and a failed request is logged and
swallowed. Local status can therefore drift from the ledger.
"""

import logging

from consent_wallet.exceptions import TabUnavailableError
from consent_wallet.schemas.consent import TabId
from consent_wallet.schemas.messages import InjectContractCall
from consent_wallet.services.tab_manager import TabManager
from consent_wallet.utils.metrics import CONTRACT_REQUESTS_TOTAL

logger = logging.getLogger(__name__)


class ContractBridge:
    def __init__(self, tabs: TabManager):
        self.tabs = tabs

    async def request_activation(self, token_id: str, tab_id: TabId | None) -> bool:
        return await self._request("activateConsent", token_id, tab_id)

    async def request_abandonment(self, token_id: str, tab_id: TabId | None) -> bool:
        return await self._request("abandonConsent", token_id, tab_id)

    async def _request(self, method: str, token_id: str, tab_id: TabId | None) -> bool:
        """Returns True if the call was handed to the tab."""
        command = InjectContractCall(method=method, token_id=token_id)
        try:
            await self.tabs.send(tab_id, command)
        except TabUnavailableError as e:
            CONTRACT_REQUESTS_TOTAL.labels(method=method, outcome="failed").inc()
            logger.warning(
                f"Contract call {method}({token_id}) not delivered: {e.message}",
                extra={"token_id": token_id, "tab_id": tab_id},
            )
            return False

        CONTRACT_REQUESTS_TOTAL.labels(method=method, outcome="sent").inc()
        logger.info(f"Contract call {method}({token_id}) sent to tab {tab_id}", extra={"token_id": token_id, "tab_id": tab_id})
        return True
