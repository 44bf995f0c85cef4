"""
Financing Module

Bolívar Digital financing lifecycle: request registration, status transitions
gated by the workflow rules, payment schedule generation and payment
recording. Persistence, audit and notifications are collaborators; the
amortization engine and the workflow state machine stay pure.
"""

from decimal import Decimal, InvalidOperation
from datetime import datetime, timezone, date
from dataclasses import dataclass
from typing import Dict, List, Optional, Any, Union
import uuid

from .storage import StorageInterface, StorageRecord
from .audit import AuditTrail, AuditEventType
from .farmers import FarmerManager
from .inspections import InspectionManager
from .notifications import NotificationCenter, NotificationType
from .amortization import (
    AmortizationMethod, ScheduleResult, ScheduleRow, compute_schedule, round_money
)
from .workflow import (
    FinancingStatus, FinancingWorkflow, RoleLike, StatusLike, default_workflow, parse_status
)
from .config import get_config
from .logging_config import get_logger, log_action


logger = get_logger(__name__)

PAYABLE_STATUSES = frozenset({
    FinancingStatus.APPROVED, FinancingStatus.IN_PROGRESS, FinancingStatus.ON_HOLD,
})
DELETABLE_STATUSES = frozenset({FinancingStatus.DRAFT, FinancingStatus.CANCELLED})
FROZEN_STATUSES = frozenset({FinancingStatus.REJECTED, FinancingStatus.CANCELLED})


class FinancingNotFoundError(ValueError):
    pass


class FinancingValidationError(ValueError):
    """Input rejected; ``errors`` maps each offending field to a message"""

    def __init__(self, errors: Dict[str, str], message: str = "Invalid financing data"):
        super().__init__(f"{message}: " + "; ".join(f"{k}: {v}" for k, v in errors.items()))
        self.errors = errors


class TransitionNotAllowedError(ValueError):
    """The role may not move the financing to the requested status"""

    def __init__(self, current: StatusLike, target: StatusLike, role: RoleLike):
        self.current = current
        self.target = target
        self.role = role
        super().__init__(
            f"Transition from {_status_name(current)} to {_status_name(target)} "
            f"is not allowed for role {_role_repr(role)}"
        )


class ConcurrencyConflictError(ValueError):
    """The record changed since the caller last read it"""


def _status_name(status: StatusLike) -> str:
    return status.value if isinstance(status, FinancingStatus) else str(status)


def _role_repr(role: RoleLike) -> str:
    if role is None:
        return "<none>"
    return getattr(role, "value", str(role))


def _parse_decimal(value: Any) -> Optional[Decimal]:
    if value is None or value == "":
        return None
    try:
        result = Decimal(str(value))
    except (InvalidOperation, ValueError):
        return None
    return result if result.is_finite() else None


def _parse_int(value: Any) -> Optional[int]:
    number = _parse_decimal(value)
    if number is None or number != number.to_integral_value():
        return None
    return int(number)


@dataclass
class Financing(StorageRecord):
    """Financing request and its running totals"""
    farmer_id: str
    parcel_id: str
    amount: Decimal
    rate_monthly: Decimal
    term_months: int
    harvest_count: int
    purpose: str
    amortization_method: AmortizationMethod = AmortizationMethod.FRENCH
    status: FinancingStatus = FinancingStatus.DRAFT
    total_paid: Decimal = Decimal('0.00')
    version: int = 1
    status_changed_at: Optional[datetime] = None

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'Financing':
        data = dict(data)
        for key in ('amount', 'rate_monthly', 'total_paid'):
            data[key] = Decimal(data[key])
        data['amortization_method'] = AmortizationMethod(data['amortization_method'])
        data['status'] = FinancingStatus(data['status'])
        if data.get('status_changed_at'):
            data['status_changed_at'] = datetime.fromisoformat(data['status_changed_at'])
        return super().from_dict(data)


@dataclass
class Payment(StorageRecord):
    """Payment received against a financing, usually from a harvest sale"""
    financing_id: str
    farmer_id: str
    amount: Decimal
    method: str
    paid_on: date
    retained_amount: Decimal = Decimal('0.00')
    farmer_earnings: Decimal = Decimal('0.00')
    harvest_reference: Optional[str] = None

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'Payment':
        data = dict(data)
        for key in ('amount', 'retained_amount', 'farmer_earnings'):
            data[key] = Decimal(data[key])
        data['paid_on'] = date.fromisoformat(data['paid_on'])
        return super().from_dict(data)


def preview_schedule(principal: Any, rate_monthly: Any, months: int,
                     method: Union[AmortizationMethod, str] = AmortizationMethod.FRENCH,
                     max_term_months: Optional[int] = None) -> ScheduleResult:
    """
    Schedule for a simulation form

    Negative rates and terms longer than ``max_term_months`` (the configured
    limit by default) are rejected here, not in the engine. A term of zero
    or less still yields an empty schedule.
    """
    if max_term_months is None:
        max_term_months = get_config().max_term_months
    errors = {}
    if _parse_decimal(principal) is None:
        errors["principal"] = "Principal must be a number"
    term = _parse_int(months)
    if term is None:
        errors["months"] = "Months must be a whole number"
    elif term > max_term_months:
        errors["months"] = f"Enter a term of at most {max_term_months} months"
    rate = _parse_decimal(rate_monthly)
    if rate is None or rate < 0:
        errors["rate_monthly"] = "Rate must be a number greater than or equal to zero"
    try:
        method = AmortizationMethod(method)
    except ValueError:
        errors["method"] = f"Unknown amortization method: {method!r}"
    if errors:
        raise FinancingValidationError(errors, "Invalid schedule parameters")
    return compute_schedule(method, _parse_decimal(principal), rate, term)


class FinancingManager:
    """
    Manages financings from request through repayment
    """

    def __init__(
        self,
        storage: StorageInterface,
        audit_trail: AuditTrail,
        farmer_manager: FarmerManager,
        notifications: Optional[NotificationCenter] = None,
        inspection_manager: Optional[InspectionManager] = None,
        workflow: Optional[FinancingWorkflow] = None,
        max_term_months: int = 360
    ):
        self.storage = storage
        self.audit_trail = audit_trail
        self.farmer_manager = farmer_manager
        self.notifications = notifications
        # When set, only parcels with an approved inspection and estimation can back a request
        self.inspection_manager = inspection_manager
        self.workflow = workflow or default_workflow
        self.max_term_months = max_term_months

        self.financings_table = "financings"
        self.schedules_table = "payment_schedules"
        self.payments_table = "financing_payments"

    # Registration

    def create_financing(
        self,
        farmer_id: str,
        parcel_id: str,
        amount: Any,
        rate_monthly: Any,
        term_months: Any,
        harvest_count: Any,
        purpose: str,
        amortization_method: Union[AmortizationMethod, str] = AmortizationMethod.FRENCH,
        user_id: Optional[str] = None
    ) -> Financing:
        """
        Register a financing request in ``draft``

        Raises:
            FinancingValidationError: with one message per invalid field
        """
        errors: Dict[str, str] = {}

        if not farmer_id:
            errors["farmer_id"] = "Select a farmer"
        elif not self.farmer_manager.get_farmer(farmer_id):
            errors["farmer_id"] = "Farmer not found"

        if not parcel_id:
            errors["parcel_id"] = "Select a parcel"
        else:
            parcel = self.farmer_manager.get_parcel(parcel_id)
            if not parcel or (farmer_id and parcel.farmer_id != farmer_id):
                errors["parcel_id"] = "Parcel not found for this farmer"
            elif self.inspection_manager and farmer_id:
                eligible = {p["id"] for p in self.inspection_manager.get_approved_parcels(farmer_id)}
                if parcel_id not in eligible:
                    errors["parcel_id"] = "Parcel needs an approved inspection and an estimation"

        amount_value = _parse_decimal(amount)
        if amount_value is None or amount_value <= 0:
            errors["amount"] = "Enter a valid amount"

        rate_value = _parse_decimal(rate_monthly)
        if rate_value is None or rate_value < 0:
            errors["rate_monthly"] = "Enter a valid rate"

        term_value = _parse_int(term_months)
        if term_value is None or term_value <= 0 or term_value > self.max_term_months:
            errors["term_months"] = f"Enter a term between 1 and {self.max_term_months} months"

        harvest_value = _parse_int(harvest_count)
        if harvest_value is None or harvest_value <= 0:
            errors["harvest_count"] = "Enter a valid number of harvests"

        if not (purpose or "").strip():
            errors["purpose"] = "Enter the purpose"

        try:
            method = AmortizationMethod(amortization_method)
        except ValueError:
            errors["amortization_method"] = "Unknown amortization method"

        if errors:
            raise FinancingValidationError(errors)

        now = datetime.now(timezone.utc)
        financing = Financing(
            id=str(uuid.uuid4()),
            created_at=now,
            updated_at=now,
            farmer_id=farmer_id,
            parcel_id=parcel_id,
            amount=round_money(amount_value),
            rate_monthly=rate_value,
            term_months=term_value,
            harvest_count=harvest_value,
            purpose=purpose.strip(),
            amortization_method=method,
            status_changed_at=now
        )
        self._save_financing(financing)

        self.audit_trail.log_event(
            event_type=AuditEventType.FINANCING_CREATED,
            entity_type="financing",
            entity_id=financing.id,
            metadata={
                "farmer_id": farmer_id,
                "parcel_id": parcel_id,
                "amount": financing.amount,
                "rate_monthly": financing.rate_monthly,
                "term_months": financing.term_months,
                "amortization_method": financing.amortization_method,
            },
            user_id=user_id
        )
        log_action(logger, "info", "financing created", user_id=user_id,
                   action="financing.create", resource=financing.id)
        return financing

    def get_financing(self, financing_id: str) -> Optional[Financing]:
        data = self.storage.load(self.financings_table, financing_id)
        return Financing.from_dict(data) if data else None

    def require_financing(self, financing_id: str) -> Financing:
        financing = self.get_financing(financing_id)
        if not financing:
            raise FinancingNotFoundError(f"Financing {financing_id} not found")
        return financing

    def list_financings(self, status: Optional[StatusLike] = None,
                        farmer_id: Optional[str] = None) -> List[Financing]:
        filters: Dict[str, Any] = {}
        if status is not None:
            parsed = parse_status(status)
            if parsed is None:
                return []
            filters["status"] = parsed.value
        if farmer_id:
            filters["farmer_id"] = farmer_id

        financings = [Financing.from_dict(d) for d in self.storage.find(self.financings_table, filters)]
        return sorted(financings, key=lambda f: f.created_at, reverse=True)

    def delete_financing(self, financing_id: str, user_id: Optional[str] = None) -> bool:
        """Remove a draft or cancelled financing with its schedule"""
        financing = self.require_financing(financing_id)
        if financing.status not in DELETABLE_STATUSES:
            raise ValueError(f"Cannot delete a financing in status {financing.status.value}")
        if self.list_payments(financing_id):
            raise ValueError("Cannot delete a financing with recorded payments")

        with self.storage.atomic():
            self._clear_schedule(financing_id)
            self.storage.delete(self.financings_table, financing_id)
            self.audit_trail.log_event(
                event_type=AuditEventType.FINANCING_DELETED,
                entity_type="financing",
                entity_id=financing_id,
                metadata={"status": financing.status},
                user_id=user_id
            )
        return True

    # Workflow

    def allowed_transitions(self, financing_id: str, role: RoleLike) -> List[FinancingStatus]:
        """Destinations available to ``role``, in declaration order"""
        financing = self.require_financing(financing_id)
        allowed = self.workflow.list_allowed_destinations(financing.status, role)
        return [rule.target for rule in self.workflow.rules_from(financing.status) if rule.target in allowed]

    def transition_status(
        self,
        financing_id: str,
        target_status: StatusLike,
        role: RoleLike,
        expected_version: Optional[int] = None,
        user_id: Optional[str] = None
    ) -> Financing:
        """
        Apply a validated status transition

        Args:
            financing_id: Financing to move
            target_status: Destination status
            role: Role of the acting user
            expected_version: Version the caller read; a mismatch means someone
                else changed the record in between
            user_id: Acting user for the audit trail

        Raises:
            FinancingNotFoundError, ConcurrencyConflictError, TransitionNotAllowedError
        """
        with self.storage.atomic():
            financing = self.require_financing(financing_id)

            if expected_version is not None and financing.version != expected_version:
                raise ConcurrencyConflictError(
                    f"Financing {financing_id} is at version {financing.version}, "
                    f"expected {expected_version}"
                )

            previous = financing.status
            allowed = self.workflow.can_transition(previous, target_status, role)
            if allowed:
                now = datetime.now(timezone.utc)
                financing.status = parse_status(target_status)
                financing.version += 1
                financing.updated_at = now
                financing.status_changed_at = now
                self._save_financing(financing)

                self.audit_trail.log_event(
                    event_type=AuditEventType.FINANCING_STATUS_CHANGED,
                    entity_type="financing",
                    entity_id=financing_id,
                    metadata={
                        "from": previous,
                        "to": financing.status,
                        "role": _role_repr(role),
                        "version": financing.version,
                    },
                    user_id=user_id
                )

        if not allowed:
            self.audit_trail.log_event(
                event_type=AuditEventType.FINANCING_TRANSITION_DENIED,
                entity_type="financing",
                entity_id=financing_id,
                metadata={
                    "from": previous,
                    "to": _status_name(target_status),
                    "role": _role_repr(role),
                },
                user_id=user_id
            )
            log_action(logger, "warning", "financing transition denied", user_id=user_id,
                       action="financing.transition", resource=financing_id,
                       extra={"from": previous.value, "to": _status_name(target_status),
                              "role": _role_repr(role)})
            raise TransitionNotAllowedError(previous, target_status, role)

        log_action(logger, "info", "financing status changed", user_id=user_id,
                   action="financing.transition", resource=financing_id,
                   extra={"from": previous.value, "to": financing.status.value})

        if self.notifications:
            self.notifications.notify_status_change(
                financing.farmer_id, financing.id, previous, financing.status
            )
        return financing

    # Schedule

    def generate_schedule(self, financing_id: str, user_id: Optional[str] = None) -> ScheduleResult:
        """Compute the schedule for the financing's terms and store its rows"""
        financing = self.require_financing(financing_id)
        if financing.status in FROZEN_STATUSES:
            raise ValueError(f"Cannot generate a schedule for a {financing.status.value} financing")

        result = compute_schedule(
            financing.amortization_method, financing.amount,
            financing.rate_monthly, financing.term_months
        )

        with self.storage.atomic():
            self._clear_schedule(financing_id)
            for row in result.schedule:
                self.storage.save(self.schedules_table, f"{financing_id}_{row.period}", {
                    "financing_id": financing_id,
                    "period": row.period,
                    "payment": str(row.payment),
                    "interest": str(row.interest),
                    "principal": str(row.principal),
                    "remaining": str(row.remaining),
                })
            self.audit_trail.log_event(
                event_type=AuditEventType.SCHEDULE_GENERATED,
                entity_type="financing",
                entity_id=financing_id,
                metadata={
                    "method": financing.amortization_method,
                    "periods": result.periods,
                    "total_interest": result.total_interest,
                    "total_paid": result.total_paid,
                },
                user_id=user_id
            )

        if self.notifications:
            self.notifications.notify(
                farmer_id=financing.farmer_id,
                financing_id=financing_id,
                message=f"Payment schedule generated: {result.periods} periods",
                metadata={"total_paid": str(result.total_paid)}
            )
        return result

    def get_schedule(self, financing_id: str) -> List[ScheduleRow]:
        rows = [
            ScheduleRow(
                period=data["period"],
                payment=Decimal(data["payment"]),
                interest=Decimal(data["interest"]),
                principal=Decimal(data["principal"]),
                remaining=Decimal(data["remaining"])
            )
            for data in self.storage.find(self.schedules_table, {"financing_id": financing_id})
        ]
        rows.sort(key=lambda r: r.period)
        return rows

    def _clear_schedule(self, financing_id: str) -> None:
        for data in self.storage.find(self.schedules_table, {"financing_id": financing_id}):
            self.storage.delete(self.schedules_table, f"{financing_id}_{data['period']}")

    # Payments

    def record_payment(
        self,
        financing_id: str,
        amount: Any,
        method: str,
        paid_on: Optional[date] = None,
        harvest_reference: Optional[str] = None,
        retained_amount: Any = None,
        user_id: Optional[str] = None
    ) -> Payment:
        """
        Record a payment against an active financing

        ``retained_amount`` is the part of a harvest sale kept to service the
        debt; the farmer earns the rest.
        """
        errors: Dict[str, str] = {}
        amount_value = _parse_decimal(amount)
        if amount_value is None or amount_value <= 0:
            errors["amount"] = "Enter a valid amount"
        retained_value = _parse_decimal(retained_amount) if retained_amount is not None else Decimal('0')
        if retained_value is None or retained_value < 0:
            errors["retained_amount"] = "Enter a valid retained amount"
        elif amount_value is not None and retained_value > amount_value:
            errors["retained_amount"] = "Retained amount cannot exceed the payment"
        if not (method or "").strip():
            errors["method"] = "Select a payment method"
        if errors:
            raise FinancingValidationError(errors, "Invalid payment")

        with self.storage.atomic():
            financing = self.require_financing(financing_id)
            if financing.status not in PAYABLE_STATUSES:
                raise ValueError(f"Financing {financing_id} is {financing.status.value}; payments are not accepted")

            now = datetime.now(timezone.utc)
            amount_value = round_money(amount_value)
            retained_value = round_money(retained_value)
            payment = Payment(
                id=str(uuid.uuid4()),
                created_at=now,
                updated_at=now,
                financing_id=financing_id,
                farmer_id=financing.farmer_id,
                amount=amount_value,
                method=method.strip(),
                paid_on=paid_on or date.today(),
                retained_amount=retained_value,
                farmer_earnings=amount_value - retained_value,
                harvest_reference=harvest_reference or None
            )
            self.storage.save(self.payments_table, payment.id, payment.to_dict())

            financing.total_paid += amount_value
            financing.version += 1
            financing.updated_at = now
            self._save_financing(financing)

            self.audit_trail.log_event(
                event_type=AuditEventType.PAYMENT_RECORDED,
                entity_type="financing",
                entity_id=financing_id,
                metadata={
                    "payment_id": payment.id,
                    "amount": amount_value,
                    "method": payment.method,
                    "total_paid": financing.total_paid,
                },
                user_id=user_id
            )

        log_action(logger, "info", "payment recorded", user_id=user_id,
                   action="financing.payment", resource=financing_id,
                   extra={"amount": str(amount_value)})

        if self.notifications:
            self.notifications.notify(
                farmer_id=financing.farmer_id,
                financing_id=financing_id,
                notification_type=NotificationType.SUCCESS,
                message=f"Payment of {amount_value} received",
                metadata={"payment_id": payment.id}
            )
        return payment

    def list_payments(self, financing_id: str) -> List[Payment]:
        payments = [Payment.from_dict(d) for d in self.storage.find(self.payments_table, {"financing_id": financing_id})]
        payments.sort(key=lambda p: (p.paid_on, p.created_at))
        return payments

    def outstanding_balance(self, financing_id: str) -> Decimal:
        """Scheduled total (or the principal when no schedule exists) minus payments, floored at zero"""
        financing = self.require_financing(financing_id)
        schedule = self.get_schedule(financing_id)
        due = sum((row.payment for row in schedule), Decimal('0')) if schedule else financing.amount
        return round_money(max(Decimal('0'), due - financing.total_paid))

    def _save_financing(self, financing: Financing) -> None:
        self.storage.save(self.financings_table, financing.id, financing.to_dict())
