"""
Shared fixtures for Entitlements Service tests.
"""

from datetime import datetime, timezone

import pytest

from shared.test_helpers import TestDataFactory
from service_entitlements.app.persistence.memory import InMemoryPersistence
from service_entitlements.app.tiers.models import (
    Company, BusinessKind, Membership, MembershipStatus, AcademyStudent, StudentStatus,
)
from service_entitlements.app.quota.ledger import LIMIT_SETTINGS_CATEGORY


FIXED_NOW = datetime(2025, 3, 15, 12, 0, tzinfo=timezone.utc)


def seed_store(store: InMemoryPersistence) -> InMemoryPersistence:
    """Load the factory data set into an in-memory store."""
    for user in TestDataFactory.create_test_users():
        store.add_user(user.user_id, email=user.email, role=user.role)

    for company in TestDataFactory.create_test_companies():
        store.add_company(Company(
            company_id=company.company_id,
            name=company.name,
            business_kind=BusinessKind(company.business_type),
            status=company.status,
            owner_id=company.owner_id,
            students_premium_enabled=company.students_premium_enabled,
        ))

    for membership in TestDataFactory.create_test_memberships():
        store.add_membership(Membership(
            company_id=membership["company_id"],
            user_id=membership["user_id"],
            status=MembershipStatus(membership["status"]),
        ))

    for student in TestDataFactory.create_test_students():
        store.add_student(AcademyStudent(
            academy_id=student["academy_id"],
            student_email=student["student_email"],
            status=StudentStatus(student["status"]),
        ))

    for key, value in TestDataFactory.create_test_limit_settings().items():
        store.settings[(LIMIT_SETTINGS_CATEGORY, key)] = value

    return store


@pytest.fixture
def store():
    """In-memory store seeded with the factory data set."""
    return seed_store(InMemoryPersistence())


@pytest.fixture
def fixed_clock():
    """Clock pinned to mid-March 2025."""
    return lambda: FIXED_NOW
