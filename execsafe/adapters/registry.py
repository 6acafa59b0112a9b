"""
Adapter registry — central dispatch for tool calls.

Callers never talk to adapters directly: they hand an ``Action`` to
the registry, which resolves the adapter, validates, executes and
always returns a ``Receipt``.
"""

from __future__ import annotations

import logging
import time
from typing import Any

from execsafe.adapters.base import Adapter, ExecutionContext
from execsafe.core.models.action import Action, Receipt

logger = logging.getLogger(__name__)


class AdapterRegistry:
    """Registry and dispatcher for tool adapters."""

    def __init__(self) -> None:
        self._adapters: dict[str, Adapter] = {}

    def register(self, adapter: Adapter) -> None:
        name = adapter.name
        if name in self._adapters:
            logger.warning("Overwriting existing adapter: %s", name)
        self._adapters[name] = adapter
        logger.debug("Registered adapter: %s", name)

    def get(self, name: str) -> Adapter | None:
        return self._adapters.get(name)

    def list_adapters(self) -> list[str]:
        return list(self._adapters.keys())

    def adapter_status(self) -> dict[str, dict[str, Any]]:
        """Availability of every registered adapter."""
        status = {}
        for name, adapter in self._adapters.items():
            try:
                available = adapter.is_available()
            except Exception:
                available = False
            status[name] = {
                "name": name,
                "available": available,
                "type": adapter.__class__.__name__,
            }
        return status

    def execute_action(
        self,
        action: Action,
        *,
        cwd: str = ".",
        allowed_roots: list[str] | None = None,
        trust_policy: str | None = None,
        dry_run: bool = False,
    ) -> Receipt:
        """Execute an action through its adapter.  Never raises.

        Args:
            action: The tool call.
            cwd: Working directory for the call.
            allowed_roots: Policy allowed roots (None → platform default).
            trust_policy: Install trust policy override.
            dry_run: Validate and check policy, but do not mutate.
        """
        start_time = time.monotonic()

        adapter = self._adapters.get(action.adapter)
        if adapter is None:
            return Receipt.failure(
                adapter=action.adapter,
                action_id=action.id,
                error=f"No adapter registered for '{action.adapter}'",
            )

        context = ExecutionContext(
            action=action,
            cwd=cwd,
            allowed_roots=allowed_roots,
            trust_policy=trust_policy,
            dry_run=dry_run,
            params=action.params,
        )

        try:
            is_valid, error_msg = adapter.validate(context)
        except Exception as e:
            return Receipt.failure(
                adapter=action.adapter,
                action_id=action.id,
                error=f"Validation error: {e}",
            )
        if not is_valid:
            return Receipt.failure(
                adapter=action.adapter,
                action_id=action.id,
                error=f"Validation failed: {error_msg}",
            )

        try:
            receipt = adapter.execute(context)
        except Exception as e:
            logger.error("Adapter %s raised during execution: %s", action.adapter, e)
            receipt = Receipt.failure(
                adapter=action.adapter,
                action_id=action.id,
                error=f"Unexpected error: {e}",
            )

        if not receipt.duration_ms:
            receipt.duration_ms = int((time.monotonic() - start_time) * 1000)
        return receipt
