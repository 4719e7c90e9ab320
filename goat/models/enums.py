"""String enums stored in VARCHAR columns."""
from __future__ import annotations

import enum


class UserRole(str, enum.Enum):
    member = "member"
    staff = "staff"
    admin = "admin"


class WaitlistReferenceType(str, enum.Enum):
    training_session = "training_session"
    athlete_group = "athlete_group"


class WaitlistPriority(str, enum.Enum):
    high = "high"
    medium = "medium"
    low = "low"


class WaitlistStatus(str, enum.Enum):
    waiting = "waiting"
    promoted = "promoted"
    cancelled = "cancelled"
    expired = "expired"


class EventRegistrationStatus(str, enum.Enum):
    confirmed = "confirmed"
    waitlist = "waitlist"
    cancelled = "cancelled"


class CashRegisterStatus(str, enum.Enum):
    open = "open"
    closed = "closed"


class CashMovementType(str, enum.Enum):
    income = "income"
    expense = "expense"


class CashMovementReferenceType(str, enum.Enum):
    payment = "payment"
    event_payment = "event_payment"
    expense = "expense"
    manual = "manual"


class PaymentMethod(str, enum.Enum):
    cash = "cash"
    bank_transfer = "bank_transfer"
    card = "card"
    mercado_pago = "mercado_pago"
    other = "other"


class PaymentStatus(str, enum.Enum):
    pending = "pending"
    partial = "partial"
    paid = "paid"
    cancelled = "cancelled"


class OrganizationFeature(str, enum.Enum):
    athletes = "athletes"
    athlete_groups = "athlete_groups"
    training_sessions = "training_sessions"
    events = "events"
    waitlist = "waitlist"
    cash_register = "cash_register"
    payments = "payments"
    expenses = "expenses"
