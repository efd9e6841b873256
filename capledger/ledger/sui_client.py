# ============================================================================
# Capledger v1.0.0
# Sui JSON-RPC Client - Ledger Node Integration
# ============================================================================
#
# Reliability Level: SOVEREIGN TIER (Mission-Critical)
# Purpose: Read queries and transaction execution against a Sui full node
#
# SOVEREIGN MANDATE:
#   - Every request carries an explicit timeout
#   - Read requests retry with exponential backoff on 429/5xx/timeouts
#   - Execution requests are NEVER retried (a retry could double-submit)
#   - Node error objects are surfaced verbatim (LGR-RPC-001)
#
# Error Codes:
#   - LGR-RPC-001: Node returned a JSON-RPC error object
#   - LGR-RPC-002: Timeout / connection failure / malformed response
#
# ============================================================================

import base64
import itertools
import logging
import random
import time
from typing import Any, Callable, Dict, Iterator, List, Mapping, Optional, Sequence

import requests
from requests.exceptions import Timeout, ConnectionError as RequestsConnectionError

from capledger.errors import LedgerRpcError, LedgerTransportError
from capledger.ledger.gateway import LedgerGateway, PreparedTransaction
from capledger.ledger.objects import ObjectRef
from capledger.ledger.transaction import ProgrammableTransaction

logger = logging.getLogger(__name__)

OBJECT_OPTIONS = {
    "showType": True,
    "showOwner": True,
    "showContent": True,
}

TRANSACTION_OPTIONS = {
    "showEffects": True,
    "showEvents": True,
    "showObjectChanges": True,
}


class RetryBackoff:
    """
    Exponential backoff with jitter for read requests.

    Example Usage:
        backoff = RetryBackoff(base_delay=0.5)
        time.sleep(backoff.next_delay())   # 0.5s (+jitter)
        time.sleep(backoff.next_delay())   # 1.0s (+jitter)
    """

    def __init__(
        self,
        base_delay: float = 0.5,
        multiplier: float = 2.0,
        max_delay: float = 8.0,
        jitter: float = 0.25
    ):
        self.base_delay = base_delay
        self.multiplier = multiplier
        self.max_delay = max_delay
        self.jitter = jitter
        self._attempt = 0

    def next_delay(self) -> float:
        delay = min(self.base_delay * (self.multiplier ** self._attempt), self.max_delay)
        if self.jitter > 0:
            delay += delay * self.jitter * random.random()
        self._attempt += 1
        return delay

    def reset(self) -> None:
        self._attempt = 0


class SuiRpcClient(LedgerGateway):
    """
    JSON-RPC client for a Sui full node.

    Reliability Level: SOVEREIGN TIER
    Input Constraints: rpc_url must be an http(s) endpoint
    Side Effects: Network I/O

    Example Usage:
        client = SuiRpcClient("https://fullnode.testnet.sui.io:443", timeout=30)
        for obj in client.get_owned_objects(address, "0x2::package::UpgradeCap"):
            print(obj["objectId"])
    """

    MAX_RETRIES = 3
    PAGE_LIMIT = 50

    def __init__(
        self,
        rpc_url: str,
        timeout: float = 30.0,
        session: Optional[requests.Session] = None,
        sleep: Callable[[float], None] = time.sleep,
        correlation_id: Optional[str] = None
    ):
        self.rpc_url = rpc_url
        self.timeout = timeout
        self.correlation_id = correlation_id
        self.backoff = RetryBackoff()
        self._session = session or requests.Session()
        self._session.headers.update({"Content-Type": "application/json"})
        self._sleep = sleep
        self._request_ids = itertools.count(1)

    # ========================================================================
    # Read Queries
    # ========================================================================

    def get_owned_objects(
        self,
        owner: str,
        struct_type: Optional[str] = None
    ) -> Iterator[Dict[str, Any]]:
        query: Dict[str, Any] = {"options": OBJECT_OPTIONS}
        if struct_type:
            query["filter"] = {"StructType": struct_type}
        cursor = None
        while True:
            page = self.call("suix_getOwnedObjects", [owner, query, cursor, self.PAGE_LIMIT])
            for entry in page.get("data", []):
                if entry.get("data"):
                    yield entry["data"]
            if not page.get("hasNextPage"):
                return
            cursor = page.get("nextCursor")

    def get_object(self, object_id: str) -> Optional[Dict[str, Any]]:
        result = self.call("sui_getObject", [object_id, OBJECT_OPTIONS])
        return result.get("data")

    def multi_get_objects(self, object_ids: Sequence[str]) -> List[Optional[Dict[str, Any]]]:
        if not object_ids:
            return []
        result = self.call("sui_multiGetObjects", [list(object_ids), OBJECT_OPTIONS])
        return [entry.get("data") for entry in result]

    def get_transaction_block(self, digest: str) -> Optional[Dict[str, Any]]:
        try:
            return self.call("sui_getTransactionBlock", [digest, TRANSACTION_OPTIONS])
        except LedgerRpcError as e:
            if "Could not find the referenced transaction" in e.raw_message:
                return None
            raise

    def get_coins(self, owner: str, coin_type: str) -> Iterator[Dict[str, Any]]:
        cursor = None
        while True:
            page = self.call("suix_getCoins", [owner, coin_type, cursor, self.PAGE_LIMIT])
            for coin in page.get("data", []):
                yield coin
            if not page.get("hasNextPage"):
                return
            cursor = page.get("nextCursor")

    def get_balance(self, owner: str, coin_type: str) -> int:
        result = self.call("suix_getBalance", [owner, coin_type])
        return int(result.get("totalBalance", 0))

    def get_reference_gas_price(self) -> int:
        return int(self.call("suix_getReferenceGasPrice", []))

    # ========================================================================
    # Execution
    # ========================================================================

    def dev_inspect(
        self,
        sender: str,
        transaction: ProgrammableTransaction,
        object_refs: Mapping[str, ObjectRef]
    ) -> Dict[str, Any]:
        kind = base64.b64encode(transaction.kind_bytes(object_refs)).decode("ascii")
        return self.call("sui_devInspectTransactionBlock", [sender, kind, None, None])

    def execute_transaction(self, prepared: PreparedTransaction) -> Dict[str, Any]:
        tx_b64 = base64.b64encode(prepared.tx_bytes).decode("ascii")
        logger.info(
            f"[LGR-RPC] Executing transaction | digest={prepared.digest} | "
            f"sender={prepared.sender} | correlation_id={self.correlation_id}"
        )
        return self.call(
            "sui_executeTransactionBlock",
            [tx_b64, [prepared.signature], TRANSACTION_OPTIONS, "WaitForLocalExecution"],
            retry=False
        )

    def close(self) -> None:
        self._session.close()

    # ========================================================================
    # Transport
    # ========================================================================

    def call(self, method: str, params: List[Any], retry: bool = True) -> Any:
        """
        Issue one JSON-RPC call.

        Args:
            method: RPC method name
            params: Positional parameters
            retry: Retry on 429/5xx/timeout (never for execution)

        Returns:
            The `result` member of the response

        Raises:
            LedgerRpcError: Node answered with an error object
            LedgerTransportError: Timeout, connection failure or bad payload
        """
        payload = {
            "jsonrpc": "2.0",
            "id": next(self._request_ids),
            "method": method,
            "params": params,
        }
        attempts = self.MAX_RETRIES if retry else 1
        last_error: Optional[str] = None

        for attempt in range(attempts):
            try:
                response = self._session.post(self.rpc_url, json=payload, timeout=self.timeout)
            except (Timeout, RequestsConnectionError) as e:
                last_error = f"{type(e).__name__}: {e}"
                if attempt + 1 < attempts:
                    self._back_off(method, attempt, attempts, last_error)
                    continue
                break

            if response.status_code == 429 or response.status_code >= 500:
                last_error = f"HTTP {response.status_code}"
                if attempt + 1 < attempts:
                    self._back_off(method, attempt, attempts, last_error)
                    continue
                break

            self.backoff.reset()
            try:
                body = response.json()
            except ValueError:
                raise LedgerTransportError(
                    f"{method} returned a non-JSON body (HTTP {response.status_code})",
                    context={"method": method}
                )

            if body.get("error"):
                error = body["error"]
                raw = str(error.get("message", error))
                logger.warning(
                    f"[LGR-RPC-001] Node error | method={method} | "
                    f"code={error.get('code')} | message={raw} | "
                    f"correlation_id={self.correlation_id}"
                )
                raise LedgerRpcError(
                    f"{method} failed: {raw}",
                    rpc_code=error.get("code"),
                    raw_message=raw,
                    context={"method": method}
                )
            if "result" not in body:
                raise LedgerTransportError(
                    f"{method} response has no result member",
                    context={"method": method}
                )
            return body["result"]

        logger.error(
            f"[LGR-RPC-002] Transport failure | method={method} | "
            f"error={last_error} | correlation_id={self.correlation_id}"
        )
        raise LedgerTransportError(
            f"{method} failed after {attempts} attempt(s): {last_error}",
            context={"method": method, "rpc_url": self.rpc_url}
        )

    def _back_off(self, method: str, attempt: int, attempts: int, reason: str) -> None:
        delay = self.backoff.next_delay()
        logger.warning(
            f"[LGR-RPC] Retrying read | method={method} | reason={reason} | "
            f"attempt={attempt + 1}/{attempts} | backoff={delay:.1f}s | "
            f"correlation_id={self.correlation_id}"
        )
        self._sleep(delay)
