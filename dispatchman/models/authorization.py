"""
Authorization and AuthorizationRequirement.
"""

from django.conf import settings
from django.db import models
from django.utils.translation import gettext_lazy as _

from dispatchman.models.enums import AuthorizationStatus, RequirementStatus
from dispatchman.models.reference import TenantQuerySet


class Authorization(models.Model):
    """
    Payer permission for a patient, bounded by dates and optional caps.

    PENDING while any required requirement is not cleared. Becomes ACTIVE
    when the last one clears (or EXPIRED when end_date already passed).
    """

    tenant = models.ForeignKey('dispatchman.Tenant', on_delete=models.PROTECT, related_name='authorizations')
    payer = models.ForeignKey('dispatchman.Payer', on_delete=models.PROTECT, related_name='authorizations')
    plan = models.ForeignKey(
        'dispatchman.PayerPlan',
        on_delete=models.PROTECT,
        null=True,
        blank=True,
        related_name='authorizations',
    )
    patient = models.ForeignKey('dispatchman.Patient', on_delete=models.PROTECT, related_name='authorizations')
    episode = models.ForeignKey(
        'dispatchman.Episode',
        on_delete=models.PROTECT,
        null=True,
        blank=True,
        related_name='authorizations',
    )
    number = models.CharField(max_length=50, verbose_name=_('Numero'))
    status = models.CharField(
        max_length=10,
        choices=AuthorizationStatus.choices,
        default=AuthorizationStatus.PENDING,
        db_index=True,
        verbose_name=_('Estado'),
    )
    start_date = models.DateField(verbose_name=_('Desde'))
    end_date = models.DateField(null=True, blank=True, verbose_name=_('Hasta'))
    limit_units = models.DecimalField(
        max_digits=12,
        decimal_places=3,
        null=True,
        blank=True,
        verbose_name=_('Limite de unidades'),
        help_text=_('Vacio = sin limite'),
    )
    limit_amount = models.DecimalField(
        max_digits=14,
        decimal_places=2,
        null=True,
        blank=True,
        verbose_name=_('Limite de monto'),
        help_text=_('Vacio = sin limite'),
    )
    notes = models.TextField(blank=True, default='', verbose_name=_('Notas'))
    created_by = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name='+',
    )
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    objects = TenantQuerySet.as_manager()

    class Meta:
        verbose_name = _('Autorizacion')
        verbose_name_plural = _('Autorizaciones')
        ordering = ['-created_at']
        constraints = [
            models.UniqueConstraint(fields=['tenant', 'number'], name='unique_authorization_number_per_tenant'),
        ]

    def outstanding_requirements(self):
        """Required requirements not yet submitted or approved."""
        return self.requirements.filter(is_required=True).exclude(
            status__in=RequirementStatus.cleared(),
        )

    def __str__(self) -> str:
        return f"{self.number} ({self.get_status_display()})"


class AuthorizationRequirement(models.Model):
    """
    Snapshot of a payer requirement taken when the authorization was created.
    """

    authorization = models.ForeignKey(Authorization, on_delete=models.CASCADE, related_name='requirements')
    source = models.ForeignKey(
        'dispatchman.PayerRequirement',
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name='+',
    )
    name = models.CharField(max_length=200, verbose_name=_('Nombre'))
    is_required = models.BooleanField(default=True, verbose_name=_('Obligatorio'))
    status = models.CharField(
        max_length=10,
        choices=RequirementStatus.choices,
        default=RequirementStatus.PENDING,
        verbose_name=_('Estado'),
    )

    file_key = models.CharField(max_length=500, blank=True, default='')
    file_name = models.CharField(max_length=255, blank=True, default='')
    mime_type = models.CharField(max_length=100, blank=True, default='')
    size = models.PositiveBigIntegerField(null=True, blank=True)
    submitted_at = models.DateTimeField(null=True, blank=True)
    notes = models.TextField(blank=True, default='')
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        verbose_name = _('Requisito de autorizacion')
        verbose_name_plural = _('Requisitos de autorizacion')
        ordering = ['pk']

    @property
    def has_file(self) -> bool:
        return bool(self.file_key)

    def __str__(self) -> str:
        return f"{self.name} ({self.get_status_display()})"
