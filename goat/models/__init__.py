"""Database models."""
from goat.models.base import Base, init_db
from goat.models.organization import Organization, OrganizationFeatureSetting
from goat.models.user import User
from goat.models.athlete import Athlete
from goat.models.athlete_group import AthleteGroup, AthleteGroupMember
from goat.models.training_session import TrainingSession, TrainingSessionAthlete
from goat.models.sports_event import EventRegistration, SportsEvent
from goat.models.waitlist import WaitlistEntry
from goat.models.cash_register import CashMovement, CashRegister
from goat.models.payment import Expense, TrainingPayment

__all__ = [
    "Base",
    "Organization",
    "OrganizationFeatureSetting",
    "User",
    "Athlete",
    "AthleteGroup",
    "AthleteGroupMember",
    "TrainingSession",
    "TrainingSessionAthlete",
    "SportsEvent",
    "EventRegistration",
    "WaitlistEntry",
    "CashRegister",
    "CashMovement",
    "TrainingPayment",
    "Expense",
    "init_db",
]
