"""Tests for identity matching."""

from dataclasses import dataclass, field
from uuid import UUID, uuid4

import pytest

from workforce_payroll.reconciliation.matcher import (
    ExternalIdentity,
    IdentityMatcher,
    PhoneStrategy,
)


@dataclass
class Person:
    first_name: str
    last_name: str
    phone_number: str | None = None
    external_id: str | None = None
    employee_id: UUID = field(default_factory=uuid4)


@pytest.fixture
def people():
    return {
        "ana": Person("Ana", "Ruiz", "555-010-2020", "CT-100"),
        "jorge": Person("Jorge", "Cortés", "555-010-3030"),
        "maria1": Person("Maria", "Lopez"),
        "maria2": Person("Maria", "Lopez", "555-010-4040"),
        "solo": Person("Valentina", "Quispe"),
    }


@pytest.fixture
def matcher(people):
    return IdentityMatcher(people.values())


class TestIdentityMatcher:
    """Test strategy precedence and normalization."""

    def test_external_id_first(self, matcher, people):
        """Test external id wins even when the phone points elsewhere."""
        result = matcher.match(ExternalIdentity(external_id="CT-100", phone_number="555-010-3030"))
        assert result.employee is people["ana"]
        assert result.strategy == "external_id"

    def test_phone_digits_only(self, matcher, people):
        """Test '(555) 010-2020' matches a stored '555-010-2020'."""
        result = matcher.match(ExternalIdentity(phone_number="(555) 010-2020"))
        assert result.employee is people["ana"]
        assert result.strategy == "phone"

    def test_full_name_ignores_case_and_accents(self, matcher, people):
        """Test 'ANA RUIZ' and 'jorge cortes' find their employees."""
        assert matcher.match(ExternalIdentity(first_name="ANA", last_name="RUIZ")).employee is people["ana"]
        result = matcher.match(ExternalIdentity(first_name="jorge", last_name="cortes"))
        assert result.employee is people["jorge"]
        assert result.strategy == "full_name"

    def test_full_name_reversed(self, matcher, people):
        """Test a sheet that swapped first and last name still matches."""
        result = matcher.match(ExternalIdentity(first_name="Ruiz", last_name="Ana"))
        assert result.employee is people["ana"]

    def test_ambiguous_name_is_unresolved(self, matcher):
        """Test two employees sharing a name resolve nothing."""
        result = matcher.match(ExternalIdentity(first_name="Maria", last_name="Lopez"))
        assert not result.matched

    def test_phone_separates_shared_name(self, matcher, people):
        """Test a shared name with a distinguishing phone still matches."""
        result = matcher.match(
            ExternalIdentity(phone_number="555 010 4040", first_name="Maria", last_name="Lopez")
        )
        assert result.employee is people["maria2"]
        assert result.strategy == "phone"

    def test_single_name(self, matcher, people):
        """Test a lone name field matches either stored name."""
        assert matcher.match(ExternalIdentity(last_name="Quispe")).employee is people["solo"]
        result = matcher.match(ExternalIdentity(first_name="valentina"))
        assert result.employee is people["solo"]
        assert result.strategy == "single_name"

    def test_single_name_after_full_name_fails(self):
        """Test a longer last name on the sheet still finds the only Ana."""
        ana, jorge = Person("Ana", "Ruiz"), Person("Jorge", "Cortes")
        result = IdentityMatcher([ana, jorge]).match(ExternalIdentity(first_name="Ana", last_name="Ruiz Lopez"))
        assert result.employee is ana
        assert result.strategy == "single_name"

    def test_single_name_uses_last_name_alone(self, matcher, people):
        result = matcher.match(ExternalIdentity(first_name="Vale", last_name="Quispe"))
        assert result.employee is people["solo"]

    def test_single_name_fields_disagree(self, matcher):
        """Test a first name and a last name pointing at different people resolve nothing."""
        result = matcher.match(ExternalIdentity(first_name="Valentina", last_name="Cortes"))
        assert not result.matched

    def test_no_match(self, matcher):
        result = matcher.match(ExternalIdentity(first_name="Nadie", last_name="Aqui"))
        assert not result.matched
        assert result.strategy is None

    def test_empty_row(self, matcher):
        assert not matcher.match(ExternalIdentity()).matched

    def test_deterministic(self, people):
        """Test the same row and candidates always give the same answer."""
        row = ExternalIdentity(first_name="Jorge", last_name="Cortes")
        first = IdentityMatcher(people.values()).match(row)
        second = IdentityMatcher(reversed(list(people.values()))).match(row)
        assert first.employee is second.employee

    def test_custom_strategies(self, people):
        """Test matching can be limited to a subset of strategies."""
        matcher = IdentityMatcher(people.values(), strategies=[PhoneStrategy()])
        assert not matcher.match(ExternalIdentity(first_name="Ana", last_name="Ruiz")).matched

    def test_from_values(self):
        identity = ExternalIdentity.from_values({"first_name": " Ana ", "phone_number": "555"})
        assert identity.first_name == "Ana"
        assert identity.last_name == ""
        assert identity.display_name == "Ana"
