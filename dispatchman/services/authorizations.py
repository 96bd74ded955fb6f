"""
Authorizations — payer permissions, requirement checklist and validity.

Status rules:
- PENDING while a required requirement is not SUBMITTED/APPROVED
- PENDING → ACTIVE when the last one clears (EXPIRED if end_date passed)
- ACTIVE/PENDING → EXPIRED by expire_authorizations() once end_date passed
- Operators may set any status by hand
"""

import logging
from datetime import date

from django.db import transaction
from django.utils import timezone

from dispatchman.exceptions import DispatchError
from dispatchman.models.authorization import Authorization, AuthorizationRequirement
from dispatchman.models.enums import AuthorizationStatus, Module, RequirementStatus
from dispatchman.models.reference import Episode, Patient, Payer, PayerPlan, PayerRequirement
from dispatchman.services.base import (
    audit,
    get_owned,
    require_module,
    require_text,
    store_upload,
    to_decimal,
)

logger = logging.getLogger('dispatchman')


def _get_requirement(tenant, requirement, for_update=False) -> AuthorizationRequirement:
    pk = getattr(requirement, 'pk', requirement)
    qs = AuthorizationRequirement.objects.filter(authorization__tenant=tenant)
    if for_update:
        qs = qs.select_for_update()
    try:
        return qs.get(pk=pk)
    except (AuthorizationRequirement.DoesNotExist, ValueError, TypeError):
        raise DispatchError('REQUIREMENT_NOT_FOUND', id=pk) from None


def _cleared_status(authorization: Authorization, today: date) -> str:
    """Status for an authorization whose required documents are all in."""
    if authorization.end_date is not None and authorization.end_date < today:
        return AuthorizationStatus.EXPIRED
    return AuthorizationStatus.ACTIVE


class Authorizations:
    """Authorization lifecycle."""

    @classmethod
    def create_authorization(cls, tenant, payer, patient, number, start_date, end_date=None,
                             plan=None, episode=None, limit_units=None, limit_amount=None,
                             notes='', actor=None) -> Authorization:
        """
        Create an authorization and snapshot the payer's requirement catalog.

        Raises:
            DispatchError('VALIDATION_ERROR'): Blank/duplicate number, bad dates or limits
            DispatchError('PAYER_NOT_FOUND' | 'PLAN_NOT_FOUND' | 'PATIENT_NOT_FOUND' | 'EPISODE_NOT_FOUND')
            DispatchError('PLAN_PAYER_MISMATCH'): Plan of another payer
            DispatchError('EPISODE_PATIENT_MISMATCH'): Episode of another patient
        """
        require_module(tenant, Module.AUTHORIZATIONS)
        number = require_text(number=number)['number']
        if start_date is None:
            raise DispatchError('VALIDATION_ERROR', fields=['start_date'])
        if end_date is not None and end_date < start_date:
            raise DispatchError('VALIDATION_ERROR', fields=['end_date'])
        if limit_units is not None:
            limit_units = to_decimal(limit_units, 'VALIDATION_ERROR')
        if limit_amount is not None:
            limit_amount = to_decimal(limit_amount, 'VALIDATION_ERROR')

        with transaction.atomic():
            payer = get_owned(Payer, tenant, payer, 'PAYER_NOT_FOUND')
            if plan is not None:
                plan = get_owned(PayerPlan, tenant, plan, 'PLAN_NOT_FOUND')
                if plan.payer_id != payer.pk:
                    raise DispatchError('PLAN_PAYER_MISMATCH', plan_id=plan.pk, payer_id=payer.pk)
            patient = get_owned(Patient, tenant, patient, 'PATIENT_NOT_FOUND')
            if episode is not None:
                episode = get_owned(Episode, tenant, episode, 'EPISODE_NOT_FOUND')
                if episode.patient_id != patient.pk:
                    raise DispatchError('EPISODE_PATIENT_MISMATCH', episode_id=episode.pk, patient_id=patient.pk)
            if Authorization.objects.for_tenant(tenant).filter(number=number).exists():
                raise DispatchError('VALIDATION_ERROR', fields=['number'], number=number)

            catalog = list(PayerRequirement.objects.for_tenant(tenant).filter(payer=payer))
            authorization = Authorization(
                tenant=tenant,
                payer=payer,
                plan=plan,
                patient=patient,
                episode=episode,
                number=number,
                start_date=start_date,
                end_date=end_date,
                limit_units=limit_units,
                limit_amount=limit_amount,
                notes=(notes or '').strip(),
                created_by=actor,
            )
            if any(req.is_required for req in catalog):
                authorization.status = AuthorizationStatus.PENDING
            else:
                authorization.status = _cleared_status(authorization, timezone.localdate())
            authorization.save()

            AuthorizationRequirement.objects.bulk_create([
                AuthorizationRequirement(
                    authorization=authorization,
                    source=req,
                    name=req.name,
                    is_required=req.is_required,
                )
                for req in catalog
            ])
            audit(tenant, actor, 'authorization.created', authorization,
                  number=number, requirements=len(catalog), status=authorization.status)

        logger.info(
            "authorization.created",
            extra={"tenant_id": tenant.pk, "number": number, "status": authorization.status},
        )
        return authorization

    # ══════════════════════════════════════════════════════════════
    # REQUIREMENTS
    # ══════════════════════════════════════════════════════════════

    @classmethod
    def update_requirement_status(cls, tenant, requirement, status, upload=None, notes=None,
                                  actor=None) -> AuthorizationRequirement:
        """
        Set a requirement's status, optionally attaching a document.

        Recomputes the authorization: PENDING → ACTIVE/EXPIRED when nothing
        required is outstanding, ACTIVE → PENDING when something is again.

        Raises:
            DispatchError('VALIDATION_ERROR'): Unknown status
            DispatchError('REQUIREMENT_NOT_FOUND')
        """
        require_module(tenant, Module.AUTHORIZATIONS)
        if status not in RequirementStatus.values:
            raise DispatchError('VALIDATION_ERROR', fields=['status'], status=status)

        requirement = _get_requirement(tenant, requirement)
        stored = None
        if upload is not None:
            stored = store_upload(
                f"tenants/{tenant.pk}/authorizations/{requirement.authorization_id}", upload,
            )

        with transaction.atomic():
            authorization = get_owned(
                Authorization, tenant, requirement.authorization_id,
                'AUTHORIZATION_NOT_FOUND', for_update=True,
            )
            requirement = _get_requirement(tenant, requirement, for_update=True)

            requirement.status = status
            fields = ['status', 'updated_at']
            if stored is not None:
                requirement.file_key = stored.key
                requirement.file_name = stored.name
                requirement.mime_type = stored.mime_type
                requirement.size = stored.size
                requirement.submitted_at = timezone.now()
                fields += ['file_key', 'file_name', 'mime_type', 'size', 'submitted_at']
            if notes is not None:
                requirement.notes = notes
                fields.append('notes')
            requirement.save(update_fields=fields)

            previous = authorization.status
            cls._recompute(authorization)
            audit(tenant, actor, 'authorization.requirement_updated', authorization,
                  requirement_id=requirement.pk, status=status,
                  file_key=stored.key if stored else None)

        if authorization.status != previous:
            logger.info(
                "authorization.status_changed",
                extra={
                    "tenant_id": tenant.pk,
                    "number": authorization.number,
                    "from": previous,
                    "to": authorization.status,
                },
            )
        return requirement

    @classmethod
    def submit_requirement(cls, tenant, requirement, upload=None, actor=None) -> AuthorizationRequirement:
        """Mark a requirement SUBMITTED, with its document if given."""
        return cls.update_requirement_status(
            tenant, requirement, RequirementStatus.SUBMITTED, upload=upload, actor=actor,
        )

    @classmethod
    def upload_requirement_file(cls, tenant, requirement, upload, actor=None) -> AuthorizationRequirement:
        """
        Attach the requirement's document and mark it SUBMITTED.

        Raises:
            DispatchError('FILE_REQUIRED'): No file given
        """
        if upload is None:
            raise DispatchError('FILE_REQUIRED')
        return cls.submit_requirement(tenant, requirement, upload=upload, actor=actor)

    @classmethod
    def _recompute(cls, authorization: Authorization) -> None:
        """Move between PENDING and ACTIVE/EXPIRED according to requirements."""
        outstanding = authorization.outstanding_requirements().exists()
        new_status = authorization.status
        if authorization.status == AuthorizationStatus.PENDING and not outstanding:
            new_status = _cleared_status(authorization, timezone.localdate())
        elif authorization.status == AuthorizationStatus.ACTIVE and outstanding:
            new_status = AuthorizationStatus.PENDING

        if new_status != authorization.status:
            authorization.status = new_status
            authorization.save(update_fields=['status', 'updated_at'])

    # ══════════════════════════════════════════════════════════════
    # STATUS
    # ══════════════════════════════════════════════════════════════

    @classmethod
    def update_authorization_status(cls, tenant, authorization, status, actor=None) -> Authorization:
        """
        Operator override to any enumerated status.

        Raises:
            DispatchError('VALIDATION_ERROR'): Unknown status
        """
        require_module(tenant, Module.AUTHORIZATIONS)
        if status not in AuthorizationStatus.values:
            raise DispatchError('VALIDATION_ERROR', fields=['status'], status=status)

        with transaction.atomic():
            authorization = get_owned(Authorization, tenant, authorization, 'AUTHORIZATION_NOT_FOUND', for_update=True)
            previous = authorization.status
            authorization.status = status
            authorization.save(update_fields=['status', 'updated_at'])
            audit(tenant, actor, 'authorization.status_updated', authorization, previous=previous, status=status)
        return authorization

    @classmethod
    def validity_error(cls, authorization: Authorization, on_date: date) -> str | None:
        """
        Why authorization cannot be used on on_date, or None if it can.

        Checked in order: status, start, end, outstanding requirements.
        """
        if authorization.status != AuthorizationStatus.ACTIVE:
            return 'AUTHORIZATION_NOT_ACTIVE'
        if authorization.start_date > on_date:
            return 'AUTHORIZATION_NOT_STARTED'
        if authorization.end_date is not None and authorization.end_date < on_date:
            return 'AUTHORIZATION_EXPIRED'
        if authorization.outstanding_requirements().exists():
            return 'AUTHORIZATION_REQUIREMENTS_PENDING'
        return None

    @classmethod
    def check_validity(cls, tenant, authorization, on_date: date | None = None) -> Authorization:
        """
        Return the authorization if usable on on_date (default today).

        Raises:
            DispatchError('AUTHORIZATION_NOT_ACTIVE' | 'AUTHORIZATION_NOT_STARTED'
                          | 'AUTHORIZATION_EXPIRED' | 'AUTHORIZATION_REQUIREMENTS_PENDING')
        """
        authorization = get_owned(Authorization, tenant, authorization, 'AUTHORIZATION_NOT_FOUND')
        on_date = on_date or timezone.localdate()
        code = cls.validity_error(authorization, on_date)
        if code:
            raise DispatchError(code, number=authorization.number, date=on_date.isoformat())
        return authorization

    @classmethod
    def expire_authorizations(cls, tenant, as_of: date | None = None, dry_run=False) -> list[Authorization]:
        """
        Expire PENDING/ACTIVE authorizations whose end_date is before as_of.

        Returns:
            Authorizations expired (or that would be, with dry_run)
        """
        as_of = as_of or timezone.localdate()
        qs = Authorization.objects.for_tenant(tenant).filter(
            status__in=[AuthorizationStatus.PENDING, AuthorizationStatus.ACTIVE],
            end_date__lt=as_of,
        )
        if dry_run:
            return list(qs)

        expired = []
        with transaction.atomic():
            for authorization in qs.select_for_update():
                previous = authorization.status
                authorization.status = AuthorizationStatus.EXPIRED
                authorization.save(update_fields=['status', 'updated_at'])
                audit(tenant, None, 'authorization.expired', authorization, previous=previous)
                expired.append(authorization)

        if expired:
            logger.info(
                "authorization.expired",
                extra={"tenant_id": tenant.pk, "count": len(expired), "as_of": as_of.isoformat()},
            )
        return expired
