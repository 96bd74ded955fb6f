"""
Tests for authorizations, their requirement checklist and validity.
"""

from datetime import timedelta

import pytest

from dispatchman import dispatch, DispatchError
from dispatchman.models import (
    Authorization,
    AuthorizationStatus,
    Episode,
    Patient,
    Payer,
    PayerPlan,
    PayerRequirement,
    RequirementStatus,
)
from dispatchman.tests.support import make_upload


pytestmark = pytest.mark.django_db


@pytest.fixture
def requirements(tenant, payer):
    """Payer demands a prescription (required) and a clinical summary (optional)."""
    return [
        PayerRequirement.objects.create(tenant=tenant, payer=payer, name='Receta medica'),
        PayerRequirement.objects.create(tenant=tenant, payer=payer, name='Resumen clinico', is_required=False),
    ]


def create(tenant, payer, patient, today, number='AUT-1', **kwargs):
    kwargs.setdefault('start_date', today - timedelta(days=10))
    kwargs.setdefault('end_date', today + timedelta(days=10))
    return dispatch.create_authorization(tenant, payer, patient, number, **kwargs)


class TestCreate:

    def test_active_without_requirements(self, tenant, payer, patient, today, user):
        """No payer requirements means ACTIVE at creation."""
        authorization = create(tenant, payer, patient, today, actor=user)

        assert authorization.status == AuthorizationStatus.ACTIVE
        assert authorization.requirements.count() == 0
        assert authorization.created_by == user

    def test_pending_with_required_requirement(self, tenant, payer, patient, today, requirements):
        """Required requirement keeps the authorization PENDING."""
        authorization = create(tenant, payer, patient, today)

        assert authorization.status == AuthorizationStatus.PENDING
        assert list(authorization.requirements.values_list('name', 'is_required', 'status')) == [
            ('Receta medica', True, RequirementStatus.PENDING),
            ('Resumen clinico', False, RequirementStatus.PENDING),
        ]

    def test_only_optional_requirements(self, tenant, payer, patient, today):
        """Optional requirements alone do not block activation."""
        PayerRequirement.objects.create(tenant=tenant, payer=payer, name='Foto', is_required=False)

        authorization = create(tenant, payer, patient, today)

        assert authorization.status == AuthorizationStatus.ACTIVE

    def test_already_ended(self, tenant, payer, patient, today):
        """Creating with a past end date yields EXPIRED."""
        authorization = create(
            tenant, payer, patient, today,
            start_date=today - timedelta(days=20), end_date=today - timedelta(days=1),
        )

        assert authorization.status == AuthorizationStatus.EXPIRED

    def test_catalog_edits_do_not_reach_snapshot(self, tenant, payer, patient, today, requirements):
        """Requirement snapshot ignores later catalog edits."""
        authorization = create(tenant, payer, patient, today)
        PayerRequirement.objects.filter(pk=requirements[0].pk).update(name='Receta nueva', is_required=False)

        requirement = authorization.requirements.get(source=requirements[0])
        assert requirement.name == 'Receta medica'
        assert requirement.is_required is True

    def test_duplicate_number(self, tenant, payer, patient, today):
        """Authorization number is unique per tenant."""
        create(tenant, payer, patient, today, number='AUT-9')

        with pytest.raises(DispatchError) as exc:
            create(tenant, payer, patient, today, number='AUT-9')

        assert exc.value.code == 'VALIDATION_ERROR'
        assert exc.value.data['fields'] == ['number']

    def test_same_number_in_other_tenant(self, tenant, other_tenant, payer, patient, today):
        """Another tenant may reuse the number."""
        create(tenant, payer, patient, today, number='AUT-9')
        other_payer = Payer.objects.create(tenant=other_tenant, name='OSDE')
        other_patient = Patient.objects.create(tenant=other_tenant, first_name='A', last_name='B', dni='1')

        assert create(other_tenant, other_payer, other_patient, today, number='AUT-9').pk

    def test_end_before_start(self, tenant, payer, patient, today):
        """End date before start date is rejected."""
        with pytest.raises(DispatchError) as exc:
            create(tenant, payer, patient, today, start_date=today, end_date=today - timedelta(days=1))

        assert exc.value.code == 'VALIDATION_ERROR'
        assert exc.value.data['fields'] == ['end_date']

    def test_negative_limit(self, tenant, payer, patient, today):
        """Negative limits are rejected."""
        with pytest.raises(DispatchError) as exc:
            create(tenant, payer, patient, today, limit_units=-1)

        assert exc.value.code == 'VALIDATION_ERROR'

    def test_plan_of_other_payer(self, tenant, payer, patient, today):
        """Plan must belong to the payer."""
        other = Payer.objects.create(tenant=tenant, name='Swiss Medical')
        foreign_plan = PayerPlan.objects.create(tenant=tenant, payer=other, name='SMG20')

        with pytest.raises(DispatchError) as exc:
            create(tenant, payer, patient, today, plan=foreign_plan)

        assert exc.value.code == 'PLAN_PAYER_MISMATCH'

    def test_episode_of_other_patient(self, tenant, payer, patient, other_patient, today):
        """Episode must belong to the patient."""
        episode = Episode.objects.create(tenant=tenant, patient=other_patient, start_date=today)

        with pytest.raises(DispatchError) as exc:
            create(tenant, payer, patient, today, episode=episode)

        assert exc.value.code == 'EPISODE_PATIENT_MISMATCH'

    def test_payer_of_other_tenant(self, tenant, other_tenant, patient, today):
        """Foreign payer is reported as not found."""
        foreign = Payer.objects.create(tenant=other_tenant, name='Ajena')

        with pytest.raises(DispatchError) as exc:
            create(tenant, foreign, patient, today)

        assert exc.value.code == 'PAYER_NOT_FOUND'


class TestRequirements:

    def test_submit_with_file_activates(self, tenant, payer, patient, today, requirements):
        """Uploading the last required document activates."""
        authorization = create(tenant, payer, patient, today)
        requirement = authorization.requirements.get(is_required=True)

        requirement = dispatch.upload_requirement_file(tenant, requirement, make_upload('receta.png'))

        assert requirement.status == RequirementStatus.SUBMITTED
        assert requirement.has_file
        assert requirement.file_key.startswith(f"tenants/{tenant.pk}/authorizations/{authorization.pk}/")
        assert requirement.submitted_at is not None
        authorization.refresh_from_db()
        assert authorization.status == AuthorizationStatus.ACTIVE

    def test_all_required_must_clear(self, tenant, payer, patient, today):
        """With two required documents, only the second submission activates."""
        PayerRequirement.objects.create(tenant=tenant, payer=payer, name='Receta medica')
        PayerRequirement.objects.create(tenant=tenant, payer=payer, name='Historia clinica')
        authorization = create(tenant, payer, patient, today)
        first, second = authorization.requirements.order_by('pk')

        dispatch.submit_requirement(tenant, first)

        authorization.refresh_from_db()
        assert authorization.status == AuthorizationStatus.PENDING

        dispatch.submit_requirement(tenant, second)

        authorization.refresh_from_db()
        assert authorization.status == AuthorizationStatus.ACTIVE

    def test_approve_without_file(self, tenant, payer, patient, today, requirements):
        """Operator approval clears a requirement without a file."""
        authorization = create(tenant, payer, patient, today)
        requirement = authorization.requirements.get(is_required=True)

        dispatch.update_requirement_status(tenant, requirement, RequirementStatus.APPROVED, notes='Ok auditoria')

        requirement.refresh_from_db()
        assert requirement.notes == 'Ok auditoria'
        assert not requirement.has_file
        authorization.refresh_from_db()
        assert authorization.status == AuthorizationStatus.ACTIVE

    def test_optional_requirement_does_not_activate(self, tenant, payer, patient, today, requirements):
        """Clearing an optional requirement leaves PENDING."""
        authorization = create(tenant, payer, patient, today)
        optional = authorization.requirements.get(is_required=False)

        dispatch.submit_requirement(tenant, optional)

        authorization.refresh_from_db()
        assert authorization.status == AuthorizationStatus.PENDING

    def test_rejection_returns_to_pending(self, tenant, payer, patient, today, requirements):
        """Rejecting a required requirement reverts to PENDING."""
        authorization = create(tenant, payer, patient, today)
        requirement = authorization.requirements.get(is_required=True)
        dispatch.update_requirement_status(tenant, requirement, RequirementStatus.APPROVED)

        dispatch.update_requirement_status(tenant, requirement, RequirementStatus.REJECTED)

        authorization.refresh_from_db()
        assert authorization.status == AuthorizationStatus.PENDING

    def test_cleared_after_end_date_expires(self, tenant, payer, patient, today, requirements):
        """Clearing after the end date yields EXPIRED."""
        authorization = create(
            tenant, payer, patient, today,
            start_date=today - timedelta(days=20), end_date=today - timedelta(days=1),
        )
        assert authorization.status == AuthorizationStatus.PENDING

        dispatch.submit_requirement(tenant, authorization.requirements.get(is_required=True))

        authorization.refresh_from_db()
        assert authorization.status == AuthorizationStatus.EXPIRED

    def test_unknown_status(self, tenant, payer, patient, today, requirements):
        """Unknown requirement status is rejected."""
        requirement = create(tenant, payer, patient, today).requirements.first()

        with pytest.raises(DispatchError) as exc:
            dispatch.update_requirement_status(tenant, requirement, 'LISTO')

        assert exc.value.code == 'VALIDATION_ERROR'

    def test_upload_requires_file(self, tenant, payer, patient, today, requirements):
        """Upload without a file fails."""
        requirement = create(tenant, payer, patient, today).requirements.first()

        with pytest.raises(DispatchError) as exc:
            dispatch.upload_requirement_file(tenant, requirement, None)

        assert exc.value.code == 'FILE_REQUIRED'

    def test_other_tenant(self, tenant, other_tenant, payer, patient, today, requirements):
        """Requirement of another tenant is not found."""
        requirement = create(tenant, payer, patient, today).requirements.first()

        with pytest.raises(DispatchError) as exc:
            dispatch.submit_requirement(other_tenant, requirement)

        assert exc.value.code == 'REQUIREMENT_NOT_FOUND'


class TestValidity:

    def test_valid(self, tenant, authorization, today):
        """Active authorization inside its window is valid."""
        assert dispatch.check_validity(tenant, authorization, today) == authorization

    def test_not_started(self, tenant, payer, patient, today):
        """Date before start_date fails."""
        authorization = create(tenant, payer, patient, today, start_date=today + timedelta(days=1), end_date=None)

        with pytest.raises(DispatchError) as exc:
            dispatch.check_validity(tenant, authorization, today)

        assert exc.value.code == 'AUTHORIZATION_NOT_STARTED'

    def test_expired_on_date(self, tenant, authorization, today):
        """Date after end_date fails."""
        with pytest.raises(DispatchError) as exc:
            dispatch.check_validity(tenant, authorization, today + timedelta(days=31))

        assert exc.value.code == 'AUTHORIZATION_EXPIRED'

    def test_end_date_is_inclusive(self, tenant, authorization):
        """end_date itself is still valid."""
        assert dispatch.check_validity(tenant, authorization, authorization.end_date)

    def test_not_active(self, tenant, authorization, today):
        """Suspended authorization fails."""
        dispatch.update_authorization_status(tenant, authorization, AuthorizationStatus.SUSPENDED)

        with pytest.raises(DispatchError) as exc:
            dispatch.check_validity(tenant, authorization, today)

        assert exc.value.code == 'AUTHORIZATION_NOT_ACTIVE'

    def test_requirements_pending(self, tenant, payer, patient, today, requirements):
        """Forced ACTIVE still fails with outstanding requirements."""
        authorization = create(tenant, payer, patient, today)
        dispatch.update_authorization_status(tenant, authorization, AuthorizationStatus.ACTIVE)

        with pytest.raises(DispatchError) as exc:
            dispatch.check_validity(tenant, authorization, today)

        assert exc.value.code == 'AUTHORIZATION_REQUIREMENTS_PENDING'

    def test_override_rejects_unknown_status(self, tenant, authorization):
        """Manual status must be a known status."""
        with pytest.raises(DispatchError) as exc:
            dispatch.update_authorization_status(tenant, authorization, 'BORRADA')

        assert exc.value.code == 'VALIDATION_ERROR'


class TestExpire:

    def test_expires_past_end_date(self, tenant, payer, patient, today):
        """Only authorizations past their end date expire."""
        old = create(tenant, payer, patient, today, number='OLD', end_date=today + timedelta(days=2))
        current = create(tenant, payer, patient, today, number='CUR', end_date=today + timedelta(days=20))

        expired = dispatch.expire_authorizations(tenant, as_of=today + timedelta(days=5))

        assert [a.pk for a in expired] == [old.pk]
        old.refresh_from_db()
        current.refresh_from_db()
        assert old.status == AuthorizationStatus.EXPIRED
        assert current.status == AuthorizationStatus.ACTIVE

    def test_dry_run_writes_nothing(self, tenant, payer, patient, today):
        """Dry run lists candidates without writing."""
        old = create(tenant, payer, patient, today, end_date=today + timedelta(days=2))

        expired = dispatch.expire_authorizations(tenant, as_of=today + timedelta(days=5), dry_run=True)

        assert [a.pk for a in expired] == [old.pk]
        assert Authorization.objects.get(pk=old.pk).status == AuthorizationStatus.ACTIVE
