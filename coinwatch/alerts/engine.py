"""
Alert evaluation engine.

One tick loads every user with active alerts, fetches prices for all the
coins they reference in a single batched call, fires the alerts whose
condition holds, notifies the owners and deletes the fired alerts.
"""

import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import Iterable, Optional

from coinwatch.data.fetcher import CoinGeckoClient, PriceSnapshot
from coinwatch.database.models import Alert, User
from coinwatch.database.repository import UserRepository
from coinwatch.exceptions import PriceSourceError, RateLimited, StoreError
from coinwatch.formatting import format_alert_message
from coinwatch.notifiers.base import Notifier

logger = logging.getLogger(__name__)


class TickStatus(str, Enum):
    """How a tick ended."""

    IDLE = "idle"  # nobody had alerts
    COMPLETED = "completed"
    ABORTED = "aborted"


@dataclass
class UserOutcome:
    """Per-user result of one tick."""

    user: User
    fired: list[Alert] = field(default_factory=list)
    remaining: list[Alert] = field(default_factory=list)
    notifications_sent: int = 0
    failed_notifications: int = 0
    saved: bool = False
    error: Optional[str] = None

    @property
    def changed(self) -> bool:
        return bool(self.fired)

    @property
    def ok(self) -> bool:
        return self.error is None and self.failed_notifications == 0


@dataclass
class TickResult:
    """Summary of one tick."""

    status: TickStatus
    outcomes: list[UserOutcome] = field(default_factory=list)
    error: Optional[str] = None
    rate_limited: bool = False

    @property
    def users_checked(self) -> int:
        return len(self.outcomes)

    @property
    def alerts_fired(self) -> int:
        return sum(len(o.fired) for o in self.outcomes)

    @property
    def notifications_sent(self) -> int:
        return sum(o.notifications_sent for o in self.outcomes)

    @property
    def failures(self) -> list[UserOutcome]:
        return [o for o in self.outcomes if not o.ok]


def required_coin_ids(users: Iterable[User]) -> set[str]:
    """Union of the coin ids referenced by any alert of any user."""
    return {alert.coin_id for user in users for alert in user.alerts}


def partition_alerts(
    alerts: Iterable[Alert], snapshot: PriceSnapshot
) -> tuple[list[Alert], list[Alert]]:
    """
    Split alerts into (fired, remaining), preserving order.

    An alert whose coin is missing from the snapshot always remains.
    """
    fired = []
    remaining = []
    for alert in alerts:
        price = snapshot.get(alert.coin_id)
        if price is not None and alert.is_triggered_by(price):
            fired.append(alert)
        else:
            remaining.append(alert)
    return fired, remaining


class AlertEvaluator:
    """Evaluates price alerts and drives notification and persistence."""

    def __init__(
        self,
        user_repo: UserRepository,
        price_source: CoinGeckoClient,
        notifier: Optional[Notifier] = None,
    ):
        """
        Initialize alert evaluator.

        Args:
            user_repo: Store holding users and their alerts
            price_source: Batched price fetcher
            notifier: Delivers fired alerts to users; required by run_tick
        """
        self.user_repo = user_repo
        self.price_source = price_source
        self.notifier = notifier

    def evaluate(self, users: Iterable[User], snapshot: PriceSnapshot) -> list[UserOutcome]:
        """Partition every user's alerts against a snapshot. No side effects."""
        outcomes = []
        for user in users:
            fired, remaining = partition_alerts(user.alerts, snapshot)
            outcomes.append(UserOutcome(user=user, fired=fired, remaining=remaining))
        return outcomes

    def preview(self) -> TickResult:
        """
        Evaluate alerts against current prices without notifying anyone
        or deleting anything.
        """
        result, _ = self._evaluate_current()
        return result

    def run_tick(self) -> TickResult:
        """
        Run one full alert check.

        Store, price and delivery failures never escape. A failure loading
        users or fetching prices aborts the whole tick before anything is
        sent or written; a failure for one user is recorded on that user's
        outcome and the others carry on.

        Raises:
            ValueError: If the evaluator was built without a notifier
        """
        if self.notifier is None:
            raise ValueError("run_tick needs a notifier; use preview() for a dry run")

        result, snapshot = self._evaluate_current()
        if result.status != TickStatus.COMPLETED:
            return result

        for outcome in result.outcomes:
            if not outcome.changed:
                continue
            try:
                self._deliver(outcome, snapshot)
            except Exception as e:
                outcome.error = str(e)
                logger.error(f"Error processing alerts for user {outcome.user.telegram_id}: {e}")

        logger.info(
            f"Alert check: {result.users_checked} users, "
            f"{result.alerts_fired} fired, "
            f"{result.notifications_sent} sent, "
            f"{len(result.failures)} failures"
        )
        return result

    def _evaluate_current(self) -> tuple[TickResult, Optional[PriceSnapshot]]:
        """Load users with alerts, fetch their prices once and partition."""
        try:
            users = self.user_repo.find_with_active_alerts()
        except StoreError as e:
            logger.error(f"Alert check aborted, could not load users: {e}")
            return TickResult(status=TickStatus.ABORTED, error=str(e)), None

        if not users:
            return TickResult(status=TickStatus.IDLE), None

        coin_ids = required_coin_ids(users)
        try:
            snapshot = self.price_source.fetch_prices(coin_ids)
        except RateLimited as e:
            logger.warning(f"Alert check aborted, price source rate limited: {e}")
            return TickResult(status=TickStatus.ABORTED, error=str(e), rate_limited=True), None
        except PriceSourceError as e:
            logger.error(f"Alert check aborted, prices unavailable: {e}")
            return TickResult(status=TickStatus.ABORTED, error=str(e)), None

        if len(snapshot) < len(coin_ids):
            missing = sorted(coin_ids - set(snapshot.prices))
            logger.debug(f"No price data for: {', '.join(missing)}")

        result = TickResult(
            status=TickStatus.COMPLETED, outcomes=self.evaluate(users, snapshot)
        )
        return result, snapshot

    def _deliver(self, outcome: UserOutcome, snapshot: PriceSnapshot) -> None:
        """Notify one user of each fired alert, then delete those alerts."""
        user = outcome.user

        for alert in outcome.fired:
            message = format_alert_message(alert, snapshot.get(alert.coin_id))
            result = self.notifier.notify(user.telegram_id, message)
            if result.success:
                outcome.notifications_sent += 1
            else:
                outcome.failed_notifications += 1

        # Targeted delete so concurrent /add or /alert writes survive.
        self.user_repo.remove_alerts(user, outcome.fired)
        outcome.saved = True
