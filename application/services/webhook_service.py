"""
Gateway callback handling shared by the IPN (server-to-server) and return (browser) endpoints.

Every callback is verified, applied at most once, answered in the gateway's own
format and recorded in the webhook audit log.
"""
from __future__ import annotations

from typing import Any, Awaitable, Callable, Mapping, Optional, Tuple

from fastapi import BackgroundTasks

from application.dtos.payments import CallbackVerification, WebhookResult
from application.ports.payment_gateway import PaymentGateway
from application.services.activity import (
    payment_failed_notification,
    payment_success_notification,
    record_order_events,
)
from application.services.commission_service import CommissionService
from application.services.invoice_service import InvoiceService
from application.services.order_service import UnitOfWorkFactory
from core.logging_config import get_logger
from domain.audit.entity import WebhookChannel, WebhookLog, WebhookOutcome
from domain.common.exceptions import (
    BusinessException,
    OrderStateConflictException,
    PaymentMethodNotSupportedException,
)
from domain.order.entity import Order
from domain.order.service import OrderDomainService

logger = get_logger(__name__)

# Never persisted in the audit payload
SIGNATURE_FIELDS = frozenset({"vnp_SecureHash", "vnp_SecureHashType", "signature"})

SideEffect = Callable[[Order], Awaitable[Any]]


def _audit_payload(payload: Mapping[str, Any]) -> dict:
    return {k: v for k, v in payload.items() if k not in SIGNATURE_FIELDS}


class WebhookService:

    def __init__(
        self,
        uow_factory: UnitOfWorkFactory,
        gateways: Mapping[str, PaymentGateway],
        *,
        commission_service: Optional[CommissionService] = None,
        invoice_service: Optional[InvoiceService] = None,
    ) -> None:
        self._uow_factory = uow_factory
        self._gateways = gateways
        self._commissions = commission_service or CommissionService(uow_factory)
        self._invoices = invoice_service or InvoiceService(uow_factory)

    async def handle(
        self,
        provider: str,
        payload: Mapping[str, Any],
        channel: WebhookChannel = WebhookChannel.IPN,
        background: Optional[BackgroundTasks] = None,
    ) -> WebhookResult:
        gateway = self._gateways.get(provider)
        if gateway is None:
            raise PaymentMethodNotSupportedException(provider)

        payload = dict(payload)
        verification = gateway.verify_callback(payload)
        result, confirmed = await self._apply(gateway, verification)
        logger.info(
            "webhook_processed",
            provider=provider,
            channel=WebhookChannel(channel).value,
            order_id=result.order_id,
            outcome=result.outcome,
            result_code=verification.result_code,
        )
        await self._audit(provider, WebhookChannel(channel), result, payload)

        if confirmed is not None:
            if background is not None:
                background.add_task(self.run_post_payment_effects, confirmed)
            else:
                await self.run_post_payment_effects(confirmed)
        return result

    @staticmethod
    def _result(
        outcome: WebhookOutcome,
        response: dict[str, Any],
        verification: CallbackVerification,
        message: Optional[str] = None,
    ) -> WebhookResult:
        return WebhookResult(
            outcome=outcome.value,
            success=outcome in (WebhookOutcome.SUCCESS, WebhookOutcome.DUPLICATE),
            order_id=verification.order_id,
            message=message if message is not None else verification.message,
            response=response,
        )

    async def _apply(
        self, gateway: PaymentGateway, verification: CallbackVerification
    ) -> Tuple[WebhookResult, Optional[Order]]:
        if not verification.is_valid:
            logger.warning("webhook_signature_invalid", provider=gateway.provider, order_id=verification.order_id)
            return self._result(WebhookOutcome.INVALID, gateway.reject("invalid_signature"), verification), None

        try:
            async with self._uow_factory() as uow:
                domain = OrderDomainService(uow.order_repository)
                order = await uow.order_repository.get_by_id(verification.order_id) if verification.order_id else None
                if order is None:
                    return self._result(
                        WebhookOutcome.NOT_FOUND, gateway.reject("order_not_found"), verification, "Order not found"
                    ), None

                if verification.amount != order.total:
                    logger.warning(
                        "webhook_amount_mismatch",
                        provider=gateway.provider,
                        order_id=order.id,
                        expected=order.total,
                        received=verification.amount,
                    )
                    return self._result(
                        WebhookOutcome.AMOUNT_MISMATCH, gateway.reject("amount_mismatch"), verification, "Invalid amount"
                    ), None

                if not verification.is_success:
                    transition = await domain.mark_payment_failed(order.id, verification.message)
                    if transition.applied:
                        await uow.notification_repository.add(
                            payment_failed_notification(transition.order, verification.message)
                        )
                    await record_order_events(uow, domain.events)
                    return self._result(WebhookOutcome.FAILED, gateway.acknowledge(verification), verification), None

                try:
                    transition = await domain.confirm_payment(
                        order.id,
                        verification.gateway_transaction_id or verification.gateway_reference or "",
                        gateway.provider,
                    )
                except OrderStateConflictException as exc:
                    return self._result(
                        WebhookOutcome.CONFLICT, gateway.reject("already_confirmed"), verification, exc.message
                    ), None

                if not transition.applied:
                    return self._result(
                        WebhookOutcome.DUPLICATE, gateway.reject("already_confirmed"), verification,
                        "Order already confirmed",
                    ), None

                await record_order_events(uow, domain.events)
            return self._result(WebhookOutcome.SUCCESS, gateway.acknowledge(verification), verification), transition.order
        except Exception as exc:
            # The gateway always receives a well-formed answer; the failure is logged and audited.
            logger.error(
                "webhook_processing_error",
                provider=gateway.provider,
                order_id=verification.order_id,
                error_type=type(exc).__name__,
                error=exc.message if isinstance(exc, BusinessException) else str(exc),
            )
            return self._result(WebhookOutcome.ERROR, gateway.reject("unknown"), verification, "Processing error"), None

    async def _audit(
        self, provider: str, channel: WebhookChannel, result: WebhookResult, payload: Mapping[str, Any]
    ) -> None:
        try:
            async with self._uow_factory() as uow:
                await uow.audit_log_repository.add_webhook_log(WebhookLog(
                    gateway=provider,
                    order_id=result.order_id or "unknown",
                    channel=channel,
                    outcome=WebhookOutcome(result.outcome),
                    payload=_audit_payload(payload),
                    message=result.message,
                ))
        except BusinessException as exc:
            logger.error("webhook_audit_failed", provider=provider, order_id=result.order_id, error=exc.message)

    def _side_effects(self) -> list[tuple[str, SideEffect]]:
        return [
            ("commission", self._commissions.record_for_order),
            ("invoice", lambda order: self._invoices.generate_for_order(order.id)),
            ("notification", self._notify_paid),
        ]

    async def _notify_paid(self, order: Order) -> None:
        async with self._uow_factory() as uow:
            await uow.notification_repository.add(payment_success_notification(order))

    async def run_post_payment_effects(self, order: Order) -> None:
        """Commission, invoice and notification; each failure is logged and never propagates."""
        for name, effect in self._side_effects():
            try:
                await effect(order)
            except Exception as exc:
                logger.error(
                    "payment_side_effect_failed",
                    effect=name,
                    order_id=order.id,
                    error_type=type(exc).__name__,
                    error=str(exc),
                )
