"""
Confirmation Tracker
====================
Submits signed transaction bytes and polls signature status until a
terminal state. Polling only, no websocket subscription.

Terminal states:
- CONFIRMED: confirmed/finalized without error
- FAILED:    confirmed with an on-chain error (decoded)
- TIMED_OUT: attempts exhausted; the transaction may still land

The tracker never resubmits.
"""

import asyncio
import time
from typing import Awaitable, Callable, Optional, Union

from solders.transaction import VersionedTransaction

from config.settings import Settings
from src.liquidity.errors import decode_program_error
from src.liquidity.interfaces import RpcClient
from src.liquidity.types import ConfirmationRecord, ConfirmationStatus
from src.shared.system.logging import Logger

TERMINAL_COMMITMENTS = ("confirmed", "finalized")


class ConfirmationTracker:
    def __init__(
        self,
        rpc: RpcClient,
        poll_interval_s: Optional[float] = None,
        max_attempts: Optional[int] = None,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
        clock: Callable[[], float] = time.time,
    ):
        self.rpc = rpc
        self.poll_interval_s = Settings.CONFIRM_POLL_INTERVAL_S if poll_interval_s is None else poll_interval_s
        self.max_attempts = max_attempts or Settings.CONFIRM_MAX_ATTEMPTS
        self._sleep = sleep
        self._clock = clock

    async def submit(self, signed_tx: Union[bytes, VersionedTransaction]) -> ConfirmationRecord:
        """Send raw bytes. RPC/preflight errors propagate to the caller."""
        raw = bytes(signed_tx)
        signature = await self.rpc.send_raw_transaction(raw)
        Logger.info(f"[CONFIRM] Submitted {signature[:16]}...")
        return ConfirmationRecord(signature=signature, submitted_at=self._clock())

    async def confirm(self, record: ConfirmationRecord, max_attempts: Optional[int] = None) -> ConfirmationRecord:
        attempts = max_attempts or self.max_attempts

        for attempt in range(1, attempts + 1):
            record.attempts = attempt
            status = await self.rpc.get_signature_status(record.signature)

            if status and status.get("confirmationStatus") in TERMINAL_COMMITMENTS:
                record.slot = status.get("slot")
                err = status.get("err")
                if err:
                    record.status = ConfirmationStatus.FAILED
                    record.raw_error = err
                    record.error = decode_program_error(err)
                    Logger.error(f"[CONFIRM] {record.signature[:16]}... failed: {record.error}")
                else:
                    record.status = ConfirmationStatus.CONFIRMED
                    Logger.success(f"[CONFIRM] {record.signature[:16]}... confirmed in slot {record.slot}")
                return record

            if attempt < attempts:
                await self._sleep(self.poll_interval_s)

        record.status = ConfirmationStatus.TIMED_OUT
        Logger.warning(
            f"[CONFIRM] {record.signature[:16]}... not confirmed after {attempts} polls; "
            "verify on-chain before retrying"
        )
        return record

    async def submit_and_confirm(
        self, signed_tx: Union[bytes, VersionedTransaction], timeout_ms: Optional[int] = None
    ) -> ConfirmationRecord:
        attempts = None
        if timeout_ms is not None and self.poll_interval_s > 0:
            attempts = max(1, int(timeout_ms / 1000 / self.poll_interval_s))
        record = await self.submit(signed_tx)
        return await self.confirm(record, max_attempts=attempts)
