import hashlib
import logging
from dataclasses import dataclass, field
from decimal import Decimal

from django.conf import settings
from django.db import DatabaseError, IntegrityError, transaction
from django.utils import timezone
from rest_framework.exceptions import APIException, ValidationError

from coupons_discount.models import Coupon
from coupons_discount.services import CouponEffect, record_coupon_use, resolve_coupon
from wallet.exceptions import InsufficientBalance
from wallet.services import deduct_from_wallet, get_or_create_wallet

from .commission import CommissionSplit, allocate_commission
from .exceptions import (
    AlreadyCompleted,
    AlreadyPaidToday,
    InvalidStatus,
    NoPendingInstallment,
    OrderNotFound,
    PaymentAlreadyProcessed,
    ProductUnavailable,
    SignatureVerificationFailed,
    TransactionFailed,
    Unauthorized,
)
from .models import Installment, InstallmentOrder, PaymentRecord, Product
from .models.order import PaymentMethod
from .notifications import notify_installment_paid, notify_order_cancelled
from .payment_services import GatewayOrder, create_gateway_order, verify_payment_signature
from .schedule import base_amount, generate_schedule, payable_total

logger = logging.getLogger(__name__)

OrderStatus = InstallmentOrder.Status


def make_idempotency_key(order_id, user_id, installment_number) -> str:
    return hashlib.sha256(f"{order_id}-{user_id}-{installment_number}".encode()).hexdigest()


@dataclass(frozen=True)
class GatewayPayment:
    gateway_order_id: str
    gateway_payment_id: str
    signature: str = ""
    # True when the capture was already authenticated upstream (signed webhook)
    verified: bool = False


@dataclass(frozen=True)
class SettlementResult:
    order: InstallmentOrder
    payment: PaymentRecord
    installment: Installment
    commission: CommissionSplit | None = None
    milestone_free_days: int = 0


@dataclass(frozen=True)
class OrderCreation:
    order: InstallmentOrder
    first_payment: PaymentRecord
    gateway_order: GatewayOrder | None = None


@dataclass
class DailyPending:
    orders: list = field(default_factory=list)
    count: int = 0
    total_amount: Decimal = Decimal("0.00")


def _lock_order(order_id) -> InstallmentOrder:
    try:
        return InstallmentOrder.objects.select_for_update().get(pk=order_id)
    except (InstallmentOrder.DoesNotExist, ValueError, TypeError):
        raise OrderNotFound()


def _check_owner(order: InstallmentOrder, user):
    if order.user_id != user.pk:
        logger.warning(f"User {user.pk} tried to act on order {order.pk} owned by {order.user_id}")
        raise Unauthorized()


def _check_payable(order: InstallmentOrder):
    if order.status == OrderStatus.COMPLETED:
        raise AlreadyCompleted()
    if order.status == OrderStatus.CANCELLED:
        raise InvalidStatus("Order has been cancelled.")


def _next_installment(order: InstallmentOrder) -> Installment:
    installment = order.next_payable_installment()
    if installment is None:
        raise NoPendingInstallment()
    if order.status == OrderStatus.PENDING and installment.number != 1:
        raise InvalidStatus("Order is awaiting its first payment.")
    return installment


def _live_payment(key: str) -> PaymentRecord | None:
    return (
        PaymentRecord.objects.select_for_update()
        .filter(idempotency_key=key)
        .exclude(status__in=PaymentRecord.RELEASED_STATUSES)
        .first()
    )


def _pending_payment_for(order: InstallmentOrder, installment: Installment, method, gateway_order_id=None) -> PaymentRecord:
    """Get or insert the open attempt for an installment, tagging it with a gateway order."""
    key = make_idempotency_key(order.pk, order.user_id, installment.number)
    record = _live_payment(key)
    if record is not None:
        if record.is_completed:
            raise PaymentAlreadyProcessed()
        record.payment_method = method
        record.amount = installment.amount
        record.gateway_order_id = gateway_order_id
        record.save(update_fields=["payment_method", "amount", "gateway_order_id", "updated_at"])
        return record

    try:
        with transaction.atomic():
            return PaymentRecord.objects.create(
                order=order,
                user_id=order.user_id,
                amount=installment.amount,
                installment_number=installment.number,
                payment_method=method,
                idempotency_key=key,
                gateway_order_id=gateway_order_id,
            )
    except IntegrityError:
        raise PaymentAlreadyProcessed()


def _check_gateway_attempt(order: InstallmentOrder, installment: Installment, gateway_payment: GatewayPayment):
    """
    A capture settles only the installment whose gateway order it paid, and a
    gateway payment id is spent on one gateway order only.
    """
    opened = PaymentRecord.objects.filter(
        order=order,
        installment_number=installment.number,
        gateway_order_id=gateway_payment.gateway_order_id,
    ).exists()
    if not opened:
        logger.warning(
            f"Gateway order {gateway_payment.gateway_order_id} was not opened for order {order.pk} "
            f"installment #{installment.number}"
        )
        raise SignatureVerificationFailed()

    spent_elsewhere = (
        PaymentRecord.objects.filter(
            gateway_payment_id=gateway_payment.gateway_payment_id,
            status=PaymentRecord.Status.COMPLETED,
        )
        .exclude(gateway_order_id=gateway_payment.gateway_order_id)
        .exists()
    )
    if spent_elsewhere:
        logger.warning(f"Gateway payment {gateway_payment.gateway_payment_id} already spent on another gateway order")
        raise PaymentAlreadyProcessed("This gateway payment was already applied to another order.")


def _apply_milestone_reward(order: InstallmentOrder, now) -> int:
    if (
        order.coupon_type != Coupon.CouponType.MILESTONE_REWARD
        or order.milestone_reward_applied
        or not order.milestone_payments_required
        or order.paid_installments < order.milestone_payments_required
    ):
        return 0

    free_ids = list(
        order.installments.filter(status=Installment.Status.PENDING)
        .order_by("number")
        .values_list("id", flat=True)[: order.milestone_free_days or 0]
    )
    newly_free = Installment.objects.filter(id__in=free_ids).update(
        status=Installment.Status.FREE, amount=Decimal("0.00"), is_coupon_benefit=True
    )
    # counts as progress, not money
    order.paid_installments += newly_free
    order.milestone_reward_applied = True
    order.milestone_reward_applied_at = now
    logger.info(f"Milestone reward on order {order.pk}: {newly_free} installments now free")
    return newly_free


def _settle_locked(
    order: InstallmentOrder,
    user,
    method: str,
    gateway_payment: GatewayPayment | None = None,
    expected_installment: int | None = None,
) -> SettlementResult:
    """Settle the next installment of an order whose row is already locked by the caller."""
    _check_owner(order, user)

    if gateway_payment is not None and PaymentRecord.objects.filter(
        order=order,
        gateway_payment_id=gateway_payment.gateway_payment_id,
        status=PaymentRecord.Status.COMPLETED,
    ).exists():
        raise PaymentAlreadyProcessed("This gateway payment was already applied to the order.")

    _check_payable(order)
    if order.paid_today():
        raise AlreadyPaidToday()
    installment = _next_installment(order)

    if expected_installment is not None and installment.number != expected_installment:
        if expected_installment < installment.number:
            raise PaymentAlreadyProcessed(f"Installment #{expected_installment} is already settled.")
        raise InvalidStatus(f"Installment #{expected_installment} is not the next payable installment.")

    key = make_idempotency_key(order.pk, order.user_id, installment.number)
    record = _live_payment(key)
    if record is not None and record.is_completed:
        raise PaymentAlreadyProcessed()

    if method == PaymentMethod.GATEWAY:
        if gateway_payment is None:
            raise SignatureVerificationFailed()
        if not gateway_payment.verified and not verify_payment_signature(
            gateway_payment.gateway_order_id, gateway_payment.gateway_payment_id, gateway_payment.signature
        ):
            logger.warning(f"Payment signature mismatch for order {order.pk} ({gateway_payment.gateway_order_id})")
            raise SignatureVerificationFailed()
        _check_gateway_attempt(order, installment, gateway_payment)

    now = timezone.now()
    wallet_tx = None
    if method == PaymentMethod.WALLET:
        wallet_tx = deduct_from_wallet(
            user,
            installment.amount,
            description=f"Installment #{installment.number} for order {order.pk}",
            metadata={"order_id": order.pk, "installment_number": installment.number},
        )

    fields = {
        "amount": installment.amount,
        "payment_method": method,
        "status": PaymentRecord.Status.COMPLETED,
        "completed_at": now,
        "wallet_transaction": wallet_tx,
    }
    if gateway_payment is not None:
        fields.update(
            gateway_order_id=gateway_payment.gateway_order_id,
            gateway_payment_id=gateway_payment.gateway_payment_id,
            gateway_signature=gateway_payment.signature,
            signature_verified=True,
        )

    if record is not None:
        for name, value in fields.items():
            setattr(record, name, value)
        record.save()
    else:
        try:
            with transaction.atomic():
                record = PaymentRecord.objects.create(
                    order=order,
                    user=user,
                    installment_number=installment.number,
                    idempotency_key=key,
                    **fields,
                )
        except IntegrityError:
            # a concurrent request claimed this installment first
            raise PaymentAlreadyProcessed()

    installment.status = Installment.Status.PAID
    installment.paid_at = now
    installment.payment = record
    installment.save(update_fields=["status", "paid_at", "payment"])

    order.paid_installments += 1
    order.total_paid_amount += installment.amount
    order.recompute_remaining()

    if order.status == OrderStatus.PENDING:
        order.status = OrderStatus.ACTIVE
        order.first_payment_completed_at = now

    if order.total_paid_amount >= order.total_price:
        order.status = OrderStatus.COMPLETED
        order.completed_at = now

    newly_free = _apply_milestone_reward(order, now)

    if order.status != OrderStatus.COMPLETED and not order.has_pending_payable():
        order.status = OrderStatus.COMPLETED
        order.completed_at = now

    order.last_payment_date = now
    order.save()

    commission = allocate_commission(record, order)
    notify_installment_paid(order, record)

    logger.info(
        f"Order {order.pk} installment #{installment.number} settled via {method}: "
        f"{order.paid_installments}/{order.total_days} paid, remaining {order.remaining_amount} [{order.status}]"
    )
    return SettlementResult(
        order=order,
        payment=record,
        installment=installment,
        commission=commission,
        milestone_free_days=newly_free,
    )


class PaymentService:
    @staticmethod
    def settle_next_installment(
        *,
        order_id,
        user,
        method: str,
        gateway_payment: GatewayPayment | None = None,
        expected_installment: int | None = None,
    ) -> SettlementResult:
        """
        Settle the lowest-numbered payable installment of one order.
        Either the whole settlement commits or nothing does.
        """
        try:
            with transaction.atomic():
                order = _lock_order(order_id)
                return _settle_locked(order, user, method, gateway_payment, expected_installment)
        except APIException:
            raise
        except DatabaseError as exc:
            logger.exception(f"Settlement of order {order_id} failed")
            raise TransactionFailed(exc) from exc

    @staticmethod
    def settle_selected_installments(
        *,
        user,
        order_ids,
        method: str,
        gateway_payment: GatewayPayment | None = None,
    ) -> list[SettlementResult]:
        """Settle the next installment of several orders at once; one failure rolls back the batch."""
        order_ids = _normalize_order_ids(order_ids)

        if method == PaymentMethod.GATEWAY:
            if gateway_payment is None:
                raise SignatureVerificationFailed()
            if not gateway_payment.verified:
                if not verify_payment_signature(
                    gateway_payment.gateway_order_id, gateway_payment.gateway_payment_id, gateway_payment.signature
                ):
                    logger.warning(f"Combined payment signature mismatch ({gateway_payment.gateway_order_id})")
                    raise SignatureVerificationFailed()
                gateway_payment = GatewayPayment(
                    gateway_order_id=gateway_payment.gateway_order_id,
                    gateway_payment_id=gateway_payment.gateway_payment_id,
                    signature=gateway_payment.signature,
                    verified=True,
                )

        try:
            with transaction.atomic():
                # fixed lock order across concurrent batches
                orders = [_lock_order(order_id) for order_id in sorted(order_ids)]

                if method == PaymentMethod.WALLET:
                    _check_wallet_covers(user, orders)

                results = [_settle_locked(order, user, method, gateway_payment) for order in orders]
        except APIException:
            raise
        except DatabaseError as exc:
            logger.exception(f"Combined settlement of orders {order_ids} failed")
            raise TransactionFailed(exc) from exc

        logger.info(f"Combined settlement for user {user.pk}: {len(results)} orders")
        return results

    @staticmethod
    @transaction.atomic
    def create_gateway_order_for_installment(*, order_id, user) -> tuple[GatewayOrder, PaymentRecord]:
        order = _lock_order(order_id)
        _check_owner(order, user)
        _check_payable(order)
        if order.paid_today():
            raise AlreadyPaidToday()
        installment = _next_installment(order)

        payment_type = "first_payment" if order.status == OrderStatus.PENDING else "daily_installment"
        gateway_order = create_gateway_order(
            amount=installment.amount,
            email=user.email,
            notes={
                "type": payment_type,
                "order_id": order.pk,
                "installment_number": installment.number,
                "user_id": user.pk,
            },
        )
        record = _pending_payment_for(order, installment, PaymentMethod.GATEWAY, gateway_order.order_id)
        logger.info(f"Gateway order {gateway_order.order_id} opened for order {order.pk} #{installment.number}")
        return gateway_order, record

    @staticmethod
    @transaction.atomic
    def create_combined_gateway_order(*, user, order_ids) -> tuple[GatewayOrder, list[PaymentRecord]]:
        order_ids = _normalize_order_ids(order_ids)
        orders = [_lock_order(order_id) for order_id in sorted(order_ids)]

        targets = []
        for order in orders:
            _check_owner(order, user)
            _check_payable(order)
            if order.status != OrderStatus.ACTIVE:
                raise InvalidStatus(f"Order {order.pk} is not active.")
            if order.paid_today():
                raise AlreadyPaidToday(f"Order {order.pk} was already paid today.")
            targets.append((order, _next_installment(order)))

        total = sum((installment.amount for _, installment in targets), Decimal("0.00"))
        gateway_order = create_gateway_order(
            amount=total,
            email=user.email,
            notes={
                "type": "combined_daily_payment",
                "order_ids": ",".join(str(order.pk) for order, _ in targets),
                "user_id": user.pk,
            },
            prefix="cmb",
        )
        records = [
            _pending_payment_for(order, installment, PaymentMethod.GATEWAY, gateway_order.order_id)
            for order, installment in targets
        ]
        logger.info(f"Combined gateway order {gateway_order.order_id} for orders {order_ids}: {total}")
        return gateway_order, records

    @staticmethod
    def mark_payments_failed(*, gateway_order_id: str, reason: str = "") -> int:
        """Fail the open attempts tied to a gateway order. Completed attempts are left alone."""
        if not gateway_order_id:
            return 0
        updated = PaymentRecord.objects.filter(
            gateway_order_id=gateway_order_id,
            status__in=[PaymentRecord.Status.PENDING, PaymentRecord.Status.PROCESSING],
        ).update(
            status=PaymentRecord.Status.FAILED,
            error_description=(reason or "Payment failed at gateway")[:255],
            failed_at=timezone.now(),
        )
        if updated:
            logger.info(f"{updated} payment attempt(s) for gateway order {gateway_order_id} marked failed")
        return updated


def _normalize_order_ids(order_ids) -> list[int]:
    if isinstance(order_ids, str):
        order_ids = [part for part in order_ids.split(",") if part.strip()]
    try:
        cleaned = list(dict.fromkeys(int(order_id) for order_id in order_ids))
    except (TypeError, ValueError):
        raise ValidationError({"order_ids": "Order ids must be integers."})
    if not cleaned:
        raise ValidationError({"order_ids": "At least one order is required."})
    return cleaned


def _check_wallet_covers(user, orders):
    total = Decimal("0.00")
    for order in orders:
        installment = order.next_payable_installment()
        if installment is not None:
            total += installment.amount
    balance = get_or_create_wallet(user).balance
    if balance < total:
        raise InsufficientBalance(required=total, available=balance)


class InstallmentOrderService:
    @staticmethod
    def create_order(
        *,
        user,
        product_id,
        total_days: int,
        payment_method: str,
        quantity: int = 1,
        coupon_code: str | None = None,
    ) -> OrderCreation:
        if not 1 <= quantity <= settings.INSTALLMENT_MAX_QUANTITY:
            raise ValidationError({"quantity": f"Quantity must be between 1 and {settings.INSTALLMENT_MAX_QUANTITY}."})
        if payment_method not in PaymentMethod.values:
            raise ValidationError({"payment_method": f"Unsupported payment method '{payment_method}'."})

        product = Product.objects.filter(pk=product_id).first()
        if product is None:
            raise ProductUnavailable("Product not found.")
        if not product.is_available:
            raise ProductUnavailable()

        original_price = product.price * quantity
        product_price = original_price
        coupon: CouponEffect | None = None
        reduce_days_discount = None
        if coupon_code:
            coupon = resolve_coupon(coupon_code, original_price)
            if coupon.is_instant:
                product_price = original_price - coupon.discount
            elif coupon.reduces_days:
                reduce_days_discount = coupon.discount

        schedule = generate_schedule(product_price, total_days, timezone.localdate(), reduce_days_discount)
        total_price = payable_total(schedule)

        referrer = user.referred_by
        commission_percentage = Decimal("0")
        if referrer is not None:
            commission_percentage = (
                product.commission_percentage
                if product.commission_percentage is not None
                else settings.DEFAULT_COMMISSION_PERCENTAGE
            )

        try:
            with transaction.atomic():
                order = InstallmentOrder.objects.create(
                    user=user,
                    product=product,
                    product_name=product.name,
                    quantity=quantity,
                    original_price=original_price,
                    product_price=product_price,
                    total_price=total_price,
                    total_days=total_days,
                    daily_amount=base_amount(product_price, total_days),
                    remaining_amount=total_price,
                    payment_method=payment_method,
                    referrer=referrer,
                    commission_percentage=commission_percentage,
                    coupon_code=coupon.code if coupon else "",
                    coupon_type=coupon.coupon_type if coupon else "",
                    coupon_discount=coupon.discount if coupon else Decimal("0.00"),
                    milestone_payments_required=coupon.milestone_payments_required if coupon else None,
                    milestone_free_days=coupon.milestone_free_days if coupon else None,
                )
                Installment.objects.bulk_create([
                    Installment(
                        order=order,
                        number=draft.number,
                        due_date=draft.due_date,
                        amount=draft.amount,
                        status=draft.status,
                        is_coupon_benefit=draft.is_free,
                    )
                    for draft in schedule
                ])
                if coupon is not None:
                    record_coupon_use(coupon.code)

                if payment_method == PaymentMethod.WALLET:
                    order = InstallmentOrder.objects.select_for_update().get(pk=order.pk)
                    result = _settle_locked(order, user, PaymentMethod.WALLET, expected_installment=1)
                    creation = OrderCreation(order=result.order, first_payment=result.payment)
                else:
                    first = order.installments.get(number=1)
                    gateway_order = create_gateway_order(
                        amount=first.amount,
                        email=user.email,
                        notes={
                            "type": "first_payment",
                            "order_id": order.pk,
                            "installment_number": 1,
                            "user_id": user.pk,
                        },
                    )
                    record = _pending_payment_for(order, first, PaymentMethod.GATEWAY, gateway_order.order_id)
                    creation = OrderCreation(order=order, first_payment=record, gateway_order=gateway_order)
        except APIException:
            raise
        except DatabaseError as exc:
            logger.exception(f"Order creation for user {user.pk} failed")
            raise TransactionFailed(exc) from exc

        logger.info(
            f"Order {creation.order.pk} created for user {user.pk}: {product.name} x{quantity}, "
            f"{total_price} over {total_days} days via {payment_method} [{creation.order.status}]"
        )
        return creation

    @staticmethod
    @transaction.atomic
    def cancel_order(*, order_id, actor, reason: str = "") -> InstallmentOrder:
        order = _lock_order(order_id)
        if not actor.is_staff:
            _check_owner(order, actor)
        if not order.is_payable:
            raise InvalidStatus(f"Order in status {order.status} cannot be cancelled.")

        now = timezone.now()
        order.status = OrderStatus.CANCELLED
        order.cancelled_at = now
        order.cancelled_by = actor
        order.cancellation_reason = reason[:255]
        order.save(update_fields=["status", "cancelled_at", "cancelled_by", "cancellation_reason", "updated_at"])

        order.payments.filter(
            status__in=[PaymentRecord.Status.PENDING, PaymentRecord.Status.PROCESSING]
        ).update(status=PaymentRecord.Status.CANCELLED, cancelled_at=now)

        notify_order_cancelled(order)
        logger.info(f"Order {order.pk} cancelled by user {actor.pk}: {reason}")
        return order

    @staticmethod
    def daily_pending_payments(user) -> DailyPending:
        """Active orders not yet paid today whose next installment is due."""
        today = timezone.localdate()
        result = DailyPending()
        orders = InstallmentOrder.objects.for_user(user).active().not_paid_today().order_by("created_at")
        for order in orders:
            installment = order.next_payable_installment()
            if installment is None or installment.due_date > today:
                continue
            result.orders.append({"order": order, "installment": installment})
            result.count += 1
            result.total_amount += installment.amount
        return result
