from __future__ import annotations

"""Budget accounting for agent tool calls.

Spend is reserved before a tool runs using a single conditional update in the
repository ("add the cost if both windows stay within their caps"), so
concurrent calls for the same team and agent cannot overshoot a cap. A failed
tool call refunds its reservation in the same transaction that writes the
activity log row; when that write fails the refund is applied on its own with
``release``.
"""

import logging
from typing import Optional

from ..repos.interfaces import AgentConfigurationRepository, BudgetRefund
from ..schemas.domain import AgentConfiguration

logger = logging.getLogger(__name__)


class BudgetService:
    def __init__(self, configurations: AgentConfigurationRepository) -> None:
        self._configurations = configurations

    @staticmethod
    def daily_remaining(configuration: AgentConfiguration) -> Optional[float]:
        """Remaining daily budget, or ``None`` when there is no daily cap."""
        cap = configuration.effective_daily_cap
        if cap is None:
            return None
        return max(0.0, cap - configuration.daily_spend)

    @staticmethod
    def monthly_remaining(configuration: AgentConfiguration) -> Optional[float]:
        """Remaining monthly budget, or ``None`` when there is no monthly cap."""
        cap = configuration.monthly_budget_cap
        if cap is None:
            return None
        return max(0.0, cap - configuration.current_month_spend)

    def can_run(self, configuration: AgentConfiguration, estimated_cost: float = 0.0) -> bool:
        """Advisory check against the counters on ``configuration``.

        This reads a snapshot and is not safe against concurrent spend; use
        ``reserve`` to actually claim budget.
        """
        if estimated_cost <= 0:
            return True
        daily = self.daily_remaining(configuration)
        monthly = self.monthly_remaining(configuration)
        if daily is not None and estimated_cost > daily:
            return False
        if monthly is not None and estimated_cost > monthly:
            return False
        return True

    async def reserve(self, configuration: AgentConfiguration, amount: float) -> bool:
        """Atomically add ``amount`` to both spend counters if the caps allow it."""
        if amount <= 0:
            return True
        reserved = await self._configurations.try_reserve_spend(configuration.id, amount)
        if reserved:
            logger.debug(f"Reserved {amount:.6f} for configuration {configuration.id}")
        else:
            logger.info(
                f"Budget reservation of {amount:.6f} rejected for team={configuration.team_id} "
                f"agent={configuration.agent_id}"
            )
        return reserved

    async def release(self, refund: BudgetRefund) -> None:
        """Give reserved spend back; counters never drop below zero."""
        if refund.amount <= 0:
            return
        await self._configurations.refund(refund)
        logger.debug(f"Released {refund.amount:.6f} for configuration {refund.configuration_id}")

    async def reset_daily(self) -> int:
        """Zero every configuration's ``daily_spend``; returns the number of rows touched."""
        count = await self._configurations.reset_daily_spend()
        logger.info(f"Reset daily spend for {count} agent configurations")
        return count

    async def reset_monthly(self) -> int:
        """Zero every configuration's ``current_month_spend``."""
        count = await self._configurations.reset_monthly_spend()
        logger.info(f"Reset monthly spend for {count} agent configurations")
        return count
