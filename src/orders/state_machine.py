"""Order State Machine - допустимые переходы статуса заказа.

Переходы:
- PENDING → PROCESSING → SHIPPED → DELIVERED (только вперёд)
- PENDING | PROCESSING → CANCELLED (терминальный, возвращает остатки)
- CANCELLED и DELIVERED - терминальные, исходящих переходов нет

State machine чистая: не читает и не пишет хранилище, только решает.
"""

from dataclasses import dataclass
from typing import Optional

from src.core.domain.order import (
    CANCELLABLE_STATUSES,
    FORWARD_SEQUENCE,
    TERMINAL_STATUSES,
    OrderStatus,
)


@dataclass(frozen=True)
class LifecycleConfig:
    """Конфигурация жизненного цикла заказа.

    allow_skip_forward: разрешить переход вперёд через промежуточный статус
    (например PENDING → SHIPPED). Назад и из терминальных статусов переходы
    запрещены всегда.
    """

    allow_skip_forward: bool = True


@dataclass(frozen=True)
class OrderTransitionResult:
    """Результат оценки перехода статуса."""

    allowed: bool
    previous_status: OrderStatus
    new_status: OrderStatus  # равен previous_status если переход запрещён

    # Переход в CANCELLED требует возврата остатков
    releases_stock: bool

    reason: str
    details: str


class OrderStateMachine:
    """State machine статусов заказа.

    Порядок проверок:
    1. Текущий статус терминальный → запрет
    2. Целевой статус совпадает с текущим → запрет (no-op)
    3. CANCELLED → разрешено только из PENDING/PROCESSING
    4. Переход вперёд по FORWARD_SEQUENCE (с пропуском, если разрешено)
    5. Всё остальное (назад) → запрет
    """

    def __init__(self, config: Optional[LifecycleConfig] = None):
        self.config = config or LifecycleConfig()

    def evaluate_transition(
        self,
        current_status: OrderStatus,
        requested_status: OrderStatus,
    ) -> OrderTransitionResult:
        current_status = OrderStatus(current_status)
        requested_status = OrderStatus(requested_status)

        # 1. Терминальные статусы
        if current_status in TERMINAL_STATUSES:
            return self._reject(
                current_status,
                requested_status,
                reason="terminal_state",
                details=f"{current_status.value} is terminal",
            )

        # 2. No-op
        if requested_status == current_status:
            return self._reject(
                current_status,
                requested_status,
                reason="no_transition",
                details=f"Order is already {current_status.value}",
            )

        # 3. Отмена
        if requested_status == OrderStatus.CANCELLED:
            if current_status not in CANCELLABLE_STATUSES:
                return self._reject(
                    current_status,
                    requested_status,
                    reason="not_cancellable",
                    details=f"Cannot cancel from {current_status.value}",
                )
            return self._create_result(
                allowed=True,
                previous_status=current_status,
                new_status=requested_status,
                releases_stock=True,
                reason="cancel",
                details=f"{current_status.value} → CANCELLED, stock will be released",
            )

        # 4. Вперёд
        current_idx = FORWARD_SEQUENCE.index(current_status)
        requested_idx = FORWARD_SEQUENCE.index(requested_status)
        step = requested_idx - current_idx

        if step <= 0:
            return self._reject(
                current_status,
                requested_status,
                reason="backward_transition",
                details=f"{current_status.value} → {requested_status.value} moves backward",
            )

        if step > 1 and not self.config.allow_skip_forward:
            skipped = ", ".join(s.value for s in FORWARD_SEQUENCE[current_idx + 1:requested_idx])
            return self._reject(
                current_status,
                requested_status,
                reason="skipped_state",
                details=f"{current_status.value} → {requested_status.value} skips {skipped}",
            )

        return self._create_result(
            allowed=True,
            previous_status=current_status,
            new_status=requested_status,
            releases_stock=False,
            reason="forward",
            details=f"{current_status.value} → {requested_status.value}",
        )

    def allowed_targets(self, current_status: OrderStatus) -> frozenset[OrderStatus]:
        """Все статусы, в которые можно перейти из current_status."""
        return frozenset(
            status
            for status in OrderStatus
            if self.evaluate_transition(current_status, status).allowed
        )

    def _reject(
        self,
        current_status: OrderStatus,
        requested_status: OrderStatus,
        reason: str,
        details: str,
    ) -> OrderTransitionResult:
        return self._create_result(
            allowed=False,
            previous_status=current_status,
            new_status=current_status,
            releases_stock=False,
            reason=reason,
            details=f"Rejected {requested_status.value}: {details}",
        )

    def _create_result(
        self,
        allowed: bool,
        previous_status: OrderStatus,
        new_status: OrderStatus,
        releases_stock: bool,
        reason: str,
        details: str,
    ) -> OrderTransitionResult:
        return OrderTransitionResult(
            allowed=allowed,
            previous_status=previous_status,
            new_status=new_status,
            releases_stock=releases_stock,
            reason=reason,
            details=details,
        )
