"""
Reference entities — tenants and the records the fulfillment core points at.

These are deliberately thin: patients, payers and catalogs are managed
elsewhere. Every model except Tenant carries a tenant FK and is queried
through TenantQuerySet.for_tenant().
"""

from django.db import models
from django.utils.translation import gettext_lazy as _

from dispatchman.models.enums import EpisodeStatus


class TenantQuerySet(models.QuerySet):
    """QuerySet with the mandatory tenant filter."""

    def for_tenant(self, tenant):
        """Rows owned by tenant. Every service read starts here."""
        return self.filter(tenant=tenant)


class Tenant(models.Model):
    """An organization operating its own patients, stock and payers."""

    slug = models.SlugField(unique=True, max_length=50, verbose_name=_('Codigo'))
    name = models.CharField(max_length=200, verbose_name=_('Nombre'))
    created_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        verbose_name = _('Tenant')
        verbose_name_plural = _('Tenants')
        ordering = ['slug']

    def __str__(self) -> str:
        return self.name


class Warehouse(models.Model):
    """Physical stock location of a tenant."""

    tenant = models.ForeignKey(Tenant, on_delete=models.PROTECT, related_name='warehouses')
    name = models.CharField(max_length=100, verbose_name=_('Nombre'))
    location = models.CharField(max_length=200, blank=True, default='', verbose_name=_('Ubicacion'))
    created_at = models.DateTimeField(auto_now_add=True)

    objects = TenantQuerySet.as_manager()

    class Meta:
        verbose_name = _('Deposito')
        verbose_name_plural = _('Depositos')
        ordering = ['name']
        constraints = [
            models.UniqueConstraint(fields=['tenant', 'name'], name='unique_warehouse_name_per_tenant'),
        ]

    def __str__(self) -> str:
        return self.name


class Product(models.Model):
    """Supply or equipment that can be ordered, stocked and billed."""

    tenant = models.ForeignKey(Tenant, on_delete=models.PROTECT, related_name='products')
    sku = models.CharField(max_length=50, verbose_name=_('SKU'))
    name = models.CharField(max_length=200, verbose_name=_('Nombre'))
    unit = models.CharField(max_length=20, default='unidad', verbose_name=_('Unidad'))
    created_at = models.DateTimeField(auto_now_add=True)

    objects = TenantQuerySet.as_manager()

    class Meta:
        verbose_name = _('Producto')
        verbose_name_plural = _('Productos')
        ordering = ['name']
        constraints = [
            models.UniqueConstraint(fields=['tenant', 'sku'], name='unique_product_sku_per_tenant'),
        ]

    def __str__(self) -> str:
        return self.name


class Patient(models.Model):
    tenant = models.ForeignKey(Tenant, on_delete=models.PROTECT, related_name='patients')
    first_name = models.CharField(max_length=100, verbose_name=_('Nombre'))
    last_name = models.CharField(max_length=100, verbose_name=_('Apellido'))
    dni = models.CharField(max_length=20, verbose_name=_('DNI'))
    address = models.CharField(max_length=255, blank=True, default='', verbose_name=_('Direccion'))
    created_at = models.DateTimeField(auto_now_add=True)

    objects = TenantQuerySet.as_manager()

    class Meta:
        verbose_name = _('Paciente')
        verbose_name_plural = _('Pacientes')
        ordering = ['last_name', 'first_name']
        constraints = [
            models.UniqueConstraint(fields=['tenant', 'dni'], name='unique_patient_dni_per_tenant'),
        ]

    @property
    def full_name(self) -> str:
        return f"{self.last_name}, {self.first_name}"

    def __str__(self) -> str:
        return self.full_name


class EpisodeWorkflowStage(models.Model):
    """
    Tenant-configured stage of the care-episode workflow.

    Stages are data, not code: transitions consult is_terminal instead of
    comparing stage names.
    """

    tenant = models.ForeignKey(Tenant, on_delete=models.PROTECT, related_name='workflow_stages')
    name = models.CharField(max_length=100, verbose_name=_('Nombre'))
    order = models.PositiveIntegerField(default=0, verbose_name=_('Orden'))
    is_terminal = models.BooleanField(
        default=False,
        verbose_name=_('Terminal'),
        help_text=_('Un episodio solo puede darse de alta desde una etapa terminal.'),
    )

    objects = TenantQuerySet.as_manager()

    class Meta:
        verbose_name = _('Etapa de workflow')
        verbose_name_plural = _('Etapas de workflow')
        ordering = ['order', 'name']

    def __str__(self) -> str:
        return self.name


class Episode(models.Model):
    """Care episode of a patient (admission to discharge)."""

    tenant = models.ForeignKey(Tenant, on_delete=models.PROTECT, related_name='episodes')
    patient = models.ForeignKey(Patient, on_delete=models.PROTECT, related_name='episodes')
    status = models.CharField(
        max_length=20,
        choices=EpisodeStatus.choices,
        default=EpisodeStatus.ACTIVE,
        db_index=True,
        verbose_name=_('Estado'),
    )
    workflow_stage = models.ForeignKey(
        EpisodeWorkflowStage,
        on_delete=models.PROTECT,
        null=True,
        blank=True,
        related_name='episodes',
        verbose_name=_('Etapa'),
    )
    start_date = models.DateField(verbose_name=_('Inicio'))
    end_date = models.DateField(null=True, blank=True, verbose_name=_('Fin'))

    objects = TenantQuerySet.as_manager()

    class Meta:
        verbose_name = _('Episodio')
        verbose_name_plural = _('Episodios')
        ordering = ['-start_date']

    def __str__(self) -> str:
        return f"{self.patient} ({self.start_date})"


class Payer(models.Model):
    """Health insurer (obra social / prepaga) that authorizes and pays."""

    tenant = models.ForeignKey(Tenant, on_delete=models.PROTECT, related_name='payers')
    name = models.CharField(max_length=200, verbose_name=_('Nombre'))

    objects = TenantQuerySet.as_manager()

    class Meta:
        verbose_name = _('Obra social')
        verbose_name_plural = _('Obras sociales')
        ordering = ['name']

    def __str__(self) -> str:
        return self.name


class PayerPlan(models.Model):
    tenant = models.ForeignKey(Tenant, on_delete=models.PROTECT, related_name='payer_plans')
    payer = models.ForeignKey(Payer, on_delete=models.CASCADE, related_name='plans')
    name = models.CharField(max_length=200, verbose_name=_('Nombre'))

    objects = TenantQuerySet.as_manager()

    class Meta:
        verbose_name = _('Plan')
        verbose_name_plural = _('Planes')
        ordering = ['name']

    def __str__(self) -> str:
        return f"{self.payer} / {self.name}"


class PayerRequirement(models.Model):
    """
    Catalog entry: a document the payer demands before authorizing.

    Authorizations snapshot name and is_required at creation time, so
    later catalog edits never reach existing authorizations.
    """

    tenant = models.ForeignKey(Tenant, on_delete=models.PROTECT, related_name='payer_requirements')
    payer = models.ForeignKey(Payer, on_delete=models.CASCADE, related_name='requirements')
    name = models.CharField(max_length=200, verbose_name=_('Nombre'))
    is_required = models.BooleanField(default=True, verbose_name=_('Obligatorio'))
    created_at = models.DateTimeField(auto_now_add=True)

    objects = TenantQuerySet.as_manager()

    class Meta:
        verbose_name = _('Requisito de obra social')
        verbose_name_plural = _('Requisitos de obra social')
        ordering = ['name']
        indexes = [
            models.Index(fields=['tenant', 'payer'], name='payer_req_tenant_payer_idx'),
        ]

    def __str__(self) -> str:
        return self.name
