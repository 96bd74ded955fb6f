"""
Initial migration for Dispatchman models.
"""

from decimal import Decimal
import django.db.models.deletion
import django.utils.timezone
from django.conf import settings
from django.db import migrations, models


TENANT = 'dispatchman.tenant'


def tenant_fk(related_name):
    return models.ForeignKey(on_delete=django.db.models.deletion.PROTECT, related_name=related_name, to=TENANT)


def actor_fk(verbose_name=None):
    kwargs = {'verbose_name': verbose_name} if verbose_name else {}
    return models.ForeignKey(
        blank=True,
        null=True,
        on_delete=django.db.models.deletion.SET_NULL,
        related_name='+',
        to=settings.AUTH_USER_MODEL,
        **kwargs,
    )


class Migration(migrations.Migration):
    """Create Dispatchman models: reference data, ledger, picking, delivery, authorization, billing."""

    initial = True

    dependencies = [
        migrations.swappable_dependency(settings.AUTH_USER_MODEL),
    ]

    operations = [
        # ── Reference ──────────────────────────────────────────────
        migrations.CreateModel(
            name='Tenant',
            fields=[
                ('id', models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name='ID')),
                ('slug', models.SlugField(unique=True, verbose_name='Codigo')),
                ('name', models.CharField(max_length=200, verbose_name='Nombre')),
                ('created_at', models.DateTimeField(auto_now_add=True)),
            ],
            options={
                'verbose_name': 'Tenant',
                'verbose_name_plural': 'Tenants',
                'ordering': ['slug'],
            },
        ),
        migrations.CreateModel(
            name='Warehouse',
            fields=[
                ('id', models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name='ID')),
                ('name', models.CharField(max_length=100, verbose_name='Nombre')),
                ('location', models.CharField(blank=True, default='', max_length=200, verbose_name='Ubicacion')),
                ('created_at', models.DateTimeField(auto_now_add=True)),
                ('tenant', tenant_fk('warehouses')),
            ],
            options={
                'verbose_name': 'Deposito',
                'verbose_name_plural': 'Depositos',
                'ordering': ['name'],
                'constraints': [
                    models.UniqueConstraint(fields=('tenant', 'name'), name='unique_warehouse_name_per_tenant'),
                ],
            },
        ),
        migrations.CreateModel(
            name='Product',
            fields=[
                ('id', models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name='ID')),
                ('sku', models.CharField(max_length=50, verbose_name='SKU')),
                ('name', models.CharField(max_length=200, verbose_name='Nombre')),
                ('unit', models.CharField(default='unidad', max_length=20, verbose_name='Unidad')),
                ('created_at', models.DateTimeField(auto_now_add=True)),
                ('tenant', tenant_fk('products')),
            ],
            options={
                'verbose_name': 'Producto',
                'verbose_name_plural': 'Productos',
                'ordering': ['name'],
                'constraints': [
                    models.UniqueConstraint(fields=('tenant', 'sku'), name='unique_product_sku_per_tenant'),
                ],
            },
        ),
        migrations.CreateModel(
            name='Patient',
            fields=[
                ('id', models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name='ID')),
                ('first_name', models.CharField(max_length=100, verbose_name='Nombre')),
                ('last_name', models.CharField(max_length=100, verbose_name='Apellido')),
                ('dni', models.CharField(max_length=20, verbose_name='DNI')),
                ('created_at', models.DateTimeField(auto_now_add=True)),
                ('tenant', tenant_fk('patients')),
            ],
            options={
                'verbose_name': 'Paciente',
                'verbose_name_plural': 'Pacientes',
                'ordering': ['last_name', 'first_name'],
                'constraints': [
                    models.UniqueConstraint(fields=('tenant', 'dni'), name='unique_patient_dni_per_tenant'),
                ],
            },
        ),
        migrations.CreateModel(
            name='EpisodeWorkflowStage',
            fields=[
                ('id', models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name='ID')),
                ('name', models.CharField(max_length=100, verbose_name='Nombre')),
                ('order', models.PositiveIntegerField(default=0, verbose_name='Orden')),
                ('is_terminal', models.BooleanField(default=False, help_text='Un episodio solo puede darse de alta desde una etapa terminal.', verbose_name='Terminal')),
                ('tenant', tenant_fk('workflow_stages')),
            ],
            options={
                'verbose_name': 'Etapa de workflow',
                'verbose_name_plural': 'Etapas de workflow',
                'ordering': ['order', 'name'],
            },
        ),
        migrations.CreateModel(
            name='Episode',
            fields=[
                ('id', models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name='ID')),
                ('status', models.CharField(choices=[('ACTIVE', 'Activo'), ('DISCHARGED', 'Alta'), ('CANCELLED', 'Cancelado')], db_index=True, default='ACTIVE', max_length=20, verbose_name='Estado')),
                ('start_date', models.DateField(verbose_name='Inicio')),
                ('end_date', models.DateField(blank=True, null=True, verbose_name='Fin')),
                ('tenant', tenant_fk('episodes')),
                ('patient', models.ForeignKey(on_delete=django.db.models.deletion.PROTECT, related_name='episodes', to='dispatchman.patient')),
                ('workflow_stage', models.ForeignKey(blank=True, null=True, on_delete=django.db.models.deletion.PROTECT, related_name='episodes', to='dispatchman.episodeworkflowstage', verbose_name='Etapa')),
            ],
            options={
                'verbose_name': 'Episodio',
                'verbose_name_plural': 'Episodios',
                'ordering': ['-start_date'],
            },
        ),
        migrations.CreateModel(
            name='Payer',
            fields=[
                ('id', models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name='ID')),
                ('name', models.CharField(max_length=200, verbose_name='Nombre')),
                ('tenant', tenant_fk('payers')),
            ],
            options={
                'verbose_name': 'Obra social',
                'verbose_name_plural': 'Obras sociales',
                'ordering': ['name'],
            },
        ),
        migrations.CreateModel(
            name='PayerPlan',
            fields=[
                ('id', models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name='ID')),
                ('name', models.CharField(max_length=200, verbose_name='Nombre')),
                ('tenant', tenant_fk('payer_plans')),
                ('payer', models.ForeignKey(on_delete=django.db.models.deletion.CASCADE, related_name='plans', to='dispatchman.payer')),
            ],
            options={
                'verbose_name': 'Plan',
                'verbose_name_plural': 'Planes',
                'ordering': ['name'],
            },
        ),
        migrations.CreateModel(
            name='PayerRequirement',
            fields=[
                ('id', models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name='ID')),
                ('name', models.CharField(max_length=200, verbose_name='Nombre')),
                ('is_required', models.BooleanField(default=True, verbose_name='Obligatorio')),
                ('created_at', models.DateTimeField(auto_now_add=True)),
                ('tenant', tenant_fk('payer_requirements')),
                ('payer', models.ForeignKey(on_delete=django.db.models.deletion.CASCADE, related_name='requirements', to='dispatchman.payer')),
            ],
            options={
                'verbose_name': 'Requisito de obra social',
                'verbose_name_plural': 'Requisitos de obra social',
                'ordering': ['name'],
                'indexes': [models.Index(fields=['tenant', 'payer'], name='payer_req_tenant_payer_idx')],
            },
        ),
        migrations.CreateModel(
            name='Sequence',
            fields=[
                ('id', models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name='ID')),
                ('key', models.CharField(max_length=50, verbose_name='Clave')),
                ('value', models.PositiveIntegerField(default=0, verbose_name='Valor')),
                ('updated_at', models.DateTimeField(auto_now=True)),
                ('tenant', models.ForeignKey(on_delete=django.db.models.deletion.CASCADE, related_name='sequences', to=TENANT)),
            ],
            options={
                'verbose_name': 'Secuencia',
                'verbose_name_plural': 'Secuencias',
                'constraints': [
                    models.UniqueConstraint(fields=('tenant', 'key'), name='unique_sequence_key_per_tenant'),
                ],
            },
        ),
        # ── Orders ─────────────────────────────────────────────────
        migrations.CreateModel(
            name='KitTemplate',
            fields=[
                ('id', models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name='ID')),
                ('name', models.CharField(max_length=200, verbose_name='Nombre')),
                ('description', models.TextField(blank=True, default='', verbose_name='Descripcion')),
                ('created_at', models.DateTimeField(auto_now_add=True)),
                ('tenant', tenant_fk('kit_templates')),
            ],
            options={
                'verbose_name': 'Kit',
                'verbose_name_plural': 'Kits',
                'ordering': ['name'],
            },
        ),
        migrations.CreateModel(
            name='KitTemplateItem',
            fields=[
                ('id', models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name='ID')),
                ('quantity', models.DecimalField(decimal_places=3, max_digits=12, verbose_name='Cantidad')),
                ('kit', models.ForeignKey(on_delete=django.db.models.deletion.CASCADE, related_name='items', to='dispatchman.kittemplate')),
                ('product', models.ForeignKey(on_delete=django.db.models.deletion.PROTECT, related_name='+', to='dispatchman.product')),
            ],
            options={
                'verbose_name': 'Item de kit',
                'verbose_name_plural': 'Items de kit',
                'ordering': ['pk'],
            },
        ),
        migrations.CreateModel(
            name='ApprovedOrder',
            fields=[
                ('id', models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name='ID')),
                ('notes', models.TextField(blank=True, default='', verbose_name='Notas')),
                ('created_at', models.DateTimeField(auto_now_add=True)),
                ('tenant', tenant_fk('orders')),
                ('patient', models.ForeignKey(on_delete=django.db.models.deletion.PROTECT, related_name='orders', to='dispatchman.patient', verbose_name='Paciente')),
                ('created_by', actor_fk()),
            ],
            options={
                'verbose_name': 'Orden aprobada',
                'verbose_name_plural': 'Ordenes aprobadas',
                'ordering': ['-created_at'],
            },
        ),
        migrations.CreateModel(
            name='ApprovedOrderItem',
            fields=[
                ('id', models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name='ID')),
                ('quantity', models.DecimalField(decimal_places=3, max_digits=12, verbose_name='Cantidad')),
                ('created_at', models.DateTimeField(auto_now_add=True)),
                ('order', models.ForeignKey(on_delete=django.db.models.deletion.CASCADE, related_name='items', to='dispatchman.approvedorder')),
                ('product', models.ForeignKey(on_delete=django.db.models.deletion.PROTECT, related_name='+', to='dispatchman.product')),
            ],
            options={
                'verbose_name': 'Item de orden',
                'verbose_name_plural': 'Items de orden',
                'ordering': ['pk'],
            },
        ),
        # ── Picking ────────────────────────────────────────────────
        migrations.CreateModel(
            name='Incident',
            fields=[
                ('id', models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name='ID')),
                ('cause', models.CharField(choices=[('SIN_STOCK', 'Sin stock'), ('CAMBIO_INDICACION', 'Cambio de indicacion'), ('RECHAZO_DOMICILIO', 'Rechazo en domicilio'), ('INCUMPLIMIENTO', 'Incumplimiento')], max_length=30, verbose_name='Causa')),
                ('description', models.TextField(blank=True, default='', verbose_name='Descripcion')),
                ('created_at', models.DateTimeField(default=django.utils.timezone.now, verbose_name='Fecha')),
                ('tenant', tenant_fk('incidents')),
                ('actor', actor_fk()),
            ],
            options={
                'verbose_name': 'Incidente',
                'verbose_name_plural': 'Incidentes',
                'ordering': ['-created_at'],
            },
        ),
        migrations.CreateModel(
            name='PickList',
            fields=[
                ('id', models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name='ID')),
                ('status', models.CharField(choices=[('DRAFT', 'Borrador'), ('FROZEN', 'Congelada'), ('PACKED', 'Armada')], db_index=True, default='DRAFT', max_length=10, verbose_name='Estado')),
                ('frozen_at', models.DateTimeField(blank=True, null=True, verbose_name='Congelada')),
                ('packed_at', models.DateTimeField(blank=True, null=True, verbose_name='Armada')),
                ('stock_committed_at', models.DateTimeField(blank=True, null=True, verbose_name='Stock comprometido')),
                ('created_at', models.DateTimeField(auto_now_add=True)),
                ('tenant', tenant_fk('pick_lists')),
                ('order', models.OneToOneField(on_delete=django.db.models.deletion.PROTECT, related_name='pick_list', to='dispatchman.approvedorder', verbose_name='Orden')),
            ],
            options={
                'verbose_name': 'Picklist',
                'verbose_name_plural': 'Picklists',
                'ordering': ['-created_at'],
            },
        ),
        migrations.CreateModel(
            name='PickListItem',
            fields=[
                ('id', models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name='ID')),
                ('requested_qty', models.DecimalField(decimal_places=3, max_digits=12, verbose_name='Solicitado')),
                ('picked_qty', models.DecimalField(decimal_places=3, default=Decimal('0'), max_digits=12, verbose_name='Preparado')),
                ('pick_list', models.ForeignKey(on_delete=django.db.models.deletion.CASCADE, related_name='items', to='dispatchman.picklist')),
                ('product', models.ForeignKey(on_delete=django.db.models.deletion.PROTECT, related_name='+', to='dispatchman.product')),
                ('warehouse', models.ForeignKey(blank=True, null=True, on_delete=django.db.models.deletion.PROTECT, related_name='+', to='dispatchman.warehouse', verbose_name='Deposito')),
                ('incident', models.OneToOneField(blank=True, null=True, on_delete=django.db.models.deletion.PROTECT, related_name='item', to='dispatchman.incident', verbose_name='Incidente')),
            ],
            options={
                'verbose_name': 'Item de picklist',
                'verbose_name_plural': 'Items de picklist',
                'ordering': ['pk'],
                'indexes': [models.Index(fields=['product', 'warehouse'], name='picklist_item_product_wh_idx')],
            },
        ),
        # ── Delivery ───────────────────────────────────────────────
        migrations.CreateModel(
            name='Delivery',
            fields=[
                ('id', models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name='ID')),
                ('number', models.CharField(max_length=30, verbose_name='Numero')),
                ('status', models.CharField(choices=[('PACKED', 'Armada'), ('IN_TRANSIT', 'En transito'), ('DELIVERED', 'Entregada'), ('CLOSED', 'Cerrada'), ('INCIDENT', 'Con incidente')], db_index=True, default='PACKED', max_length=12, verbose_name='Estado')),
                ('carrier_name', models.CharField(blank=True, default='', max_length=200, verbose_name='Transportista')),
                ('carrier_dni', models.CharField(blank=True, default='', max_length=20, verbose_name='DNI transportista')),
                ('carrier_signed_at', models.DateTimeField(blank=True, null=True, verbose_name='Firma transportista')),
                ('receiver_name', models.CharField(blank=True, default='', max_length=200, verbose_name='Receptor')),
                ('receiver_dni', models.CharField(blank=True, default='', max_length=20, verbose_name='DNI receptor')),
                ('receiver_relation', models.CharField(blank=True, default='', max_length=100, verbose_name='Vinculo')),
                ('receiver_signed_at', models.DateTimeField(blank=True, null=True, verbose_name='Firma receptor')),
                ('delivered_at', models.DateTimeField(blank=True, null=True, verbose_name='Entregada')),
                ('closed_at', models.DateTimeField(blank=True, null=True, verbose_name='Cerrada')),
                ('created_at', models.DateTimeField(auto_now_add=True)),
                ('tenant', tenant_fk('deliveries')),
                ('pick_list', models.OneToOneField(on_delete=django.db.models.deletion.PROTECT, related_name='delivery', to='dispatchman.picklist', verbose_name='Picklist')),
                ('order', models.ForeignKey(on_delete=django.db.models.deletion.PROTECT, related_name='deliveries', to='dispatchman.approvedorder', verbose_name='Orden')),
            ],
            options={
                'verbose_name': 'Entrega',
                'verbose_name_plural': 'Entregas',
                'ordering': ['-created_at'],
                'constraints': [
                    models.UniqueConstraint(fields=('tenant', 'number'), name='unique_delivery_number_per_tenant'),
                ],
            },
        ),
        migrations.CreateModel(
            name='DeliveryEvidence',
            fields=[
                ('id', models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name='ID')),
                ('file_key', models.CharField(max_length=500, verbose_name='Clave')),
                ('file_name', models.CharField(max_length=255, verbose_name='Archivo')),
                ('mime_type', models.CharField(max_length=100, verbose_name='Tipo')),
                ('size', models.PositiveBigIntegerField(verbose_name='Tamaño')),
                ('created_at', models.DateTimeField(default=django.utils.timezone.now)),
                ('delivery', models.ForeignKey(on_delete=django.db.models.deletion.PROTECT, related_name='evidence', to='dispatchman.delivery')),
                ('uploaded_by', actor_fk()),
            ],
            options={
                'verbose_name': 'Evidencia de entrega',
                'verbose_name_plural': 'Evidencias de entrega',
                'ordering': ['created_at', 'pk'],
            },
        ),
        # ── Authorization ──────────────────────────────────────────
        migrations.CreateModel(
            name='Authorization',
            fields=[
                ('id', models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name='ID')),
                ('number', models.CharField(max_length=50, verbose_name='Numero')),
                ('status', models.CharField(choices=[('PENDING', 'Pendiente'), ('ACTIVE', 'Activa'), ('EXPIRED', 'Vencida'), ('DENIED', 'Denegada'), ('SUSPENDED', 'Suspendida')], db_index=True, default='PENDING', max_length=10, verbose_name='Estado')),
                ('start_date', models.DateField(verbose_name='Desde')),
                ('end_date', models.DateField(blank=True, null=True, verbose_name='Hasta')),
                ('limit_units', models.DecimalField(blank=True, decimal_places=3, help_text='Vacio = sin limite', max_digits=12, null=True, verbose_name='Limite de unidades')),
                ('limit_amount', models.DecimalField(blank=True, decimal_places=2, help_text='Vacio = sin limite', max_digits=14, null=True, verbose_name='Limite de monto')),
                ('notes', models.TextField(blank=True, default='', verbose_name='Notas')),
                ('created_at', models.DateTimeField(auto_now_add=True)),
                ('updated_at', models.DateTimeField(auto_now=True)),
                ('tenant', tenant_fk('authorizations')),
                ('payer', models.ForeignKey(on_delete=django.db.models.deletion.PROTECT, related_name='authorizations', to='dispatchman.payer')),
                ('plan', models.ForeignKey(blank=True, null=True, on_delete=django.db.models.deletion.PROTECT, related_name='authorizations', to='dispatchman.payerplan')),
                ('patient', models.ForeignKey(on_delete=django.db.models.deletion.PROTECT, related_name='authorizations', to='dispatchman.patient')),
                ('episode', models.ForeignKey(blank=True, null=True, on_delete=django.db.models.deletion.PROTECT, related_name='authorizations', to='dispatchman.episode')),
                ('created_by', actor_fk()),
            ],
            options={
                'verbose_name': 'Autorizacion',
                'verbose_name_plural': 'Autorizaciones',
                'ordering': ['-created_at'],
                'constraints': [
                    models.UniqueConstraint(fields=('tenant', 'number'), name='unique_authorization_number_per_tenant'),
                ],
            },
        ),
        migrations.CreateModel(
            name='AuthorizationRequirement',
            fields=[
                ('id', models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name='ID')),
                ('name', models.CharField(max_length=200, verbose_name='Nombre')),
                ('is_required', models.BooleanField(default=True, verbose_name='Obligatorio')),
                ('status', models.CharField(choices=[('PENDING', 'Pendiente'), ('SUBMITTED', 'Presentado'), ('APPROVED', 'Aprobado'), ('REJECTED', 'Rechazado')], default='PENDING', max_length=10, verbose_name='Estado')),
                ('file_key', models.CharField(blank=True, default='', max_length=500)),
                ('file_name', models.CharField(blank=True, default='', max_length=255)),
                ('mime_type', models.CharField(blank=True, default='', max_length=100)),
                ('size', models.PositiveBigIntegerField(blank=True, null=True)),
                ('submitted_at', models.DateTimeField(blank=True, null=True)),
                ('notes', models.TextField(blank=True, default='')),
                ('updated_at', models.DateTimeField(auto_now=True)),
                ('authorization', models.ForeignKey(on_delete=django.db.models.deletion.CASCADE, related_name='requirements', to='dispatchman.authorization')),
                ('source', models.ForeignKey(blank=True, null=True, on_delete=django.db.models.deletion.SET_NULL, related_name='+', to='dispatchman.payerrequirement')),
            ],
            options={
                'verbose_name': 'Requisito de autorizacion',
                'verbose_name_plural': 'Requisitos de autorizacion',
                'ordering': ['pk'],
            },
        ),
        # ── Billing ────────────────────────────────────────────────
        migrations.CreateModel(
            name='BillingRule',
            fields=[
                ('id', models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name='ID')),
                ('unit_price', models.DecimalField(decimal_places=2, max_digits=12, verbose_name='Precio unitario')),
                ('honorarium', models.DecimalField(decimal_places=2, default=Decimal('0'), max_digits=12, verbose_name='Honorario')),
                ('updated_at', models.DateTimeField(auto_now=True)),
                ('tenant', tenant_fk('billing_rules')),
                ('payer', models.ForeignKey(on_delete=django.db.models.deletion.CASCADE, related_name='billing_rules', to='dispatchman.payer')),
                ('plan', models.ForeignKey(blank=True, null=True, on_delete=django.db.models.deletion.CASCADE, related_name='billing_rules', to='dispatchman.payerplan')),
                ('product', models.ForeignKey(on_delete=django.db.models.deletion.PROTECT, related_name='billing_rules', to='dispatchman.product')),
            ],
            options={
                'verbose_name': 'Regla de facturacion',
                'verbose_name_plural': 'Reglas de facturacion',
                'constraints': [
                    models.UniqueConstraint(condition=models.Q(('plan__isnull', False)), fields=('tenant', 'payer', 'plan', 'product'), name='unique_billing_rule_per_plan'),
                    models.UniqueConstraint(condition=models.Q(('plan__isnull', True)), fields=('tenant', 'payer', 'product'), name='unique_billing_rule_general'),
                ],
            },
        ),
        migrations.CreateModel(
            name='Invoice',
            fields=[
                ('id', models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name='ID')),
                ('number', models.CharField(max_length=30, verbose_name='Numero')),
                ('status', models.CharField(choices=[('ISSUED', 'Emitida'), ('PARTIAL', 'Pago parcial'), ('PAID', 'Pagada'), ('CANCELLED', 'Anulada')], db_index=True, default='ISSUED', max_length=10, verbose_name='Estado')),
                ('issued_at', models.DateTimeField(default=django.utils.timezone.now, verbose_name='Emitida')),
                ('due_date', models.DateField(blank=True, null=True, verbose_name='Vencimiento')),
                ('total_amount', models.DecimalField(decimal_places=2, default=Decimal('0'), max_digits=14, verbose_name='Total')),
                ('notes', models.TextField(blank=True, default='', verbose_name='Notas')),
                ('cancelled_at', models.DateTimeField(blank=True, null=True)),
                ('tenant', tenant_fk('invoices')),
                ('payer', models.ForeignKey(on_delete=django.db.models.deletion.PROTECT, related_name='invoices', to='dispatchman.payer')),
                ('plan', models.ForeignKey(blank=True, null=True, on_delete=django.db.models.deletion.PROTECT, related_name='invoices', to='dispatchman.payerplan')),
                ('patient', models.ForeignKey(on_delete=django.db.models.deletion.PROTECT, related_name='invoices', to='dispatchman.patient')),
                ('authorization', models.ForeignKey(on_delete=django.db.models.deletion.PROTECT, related_name='invoices', to='dispatchman.authorization')),
                ('created_by', actor_fk()),
            ],
            options={
                'verbose_name': 'Factura',
                'verbose_name_plural': 'Facturas',
                'ordering': ['-issued_at'],
                'constraints': [
                    models.UniqueConstraint(fields=('tenant', 'number'), name='unique_invoice_number_per_tenant'),
                ],
            },
        ),
        migrations.CreateModel(
            name='InvoiceItem',
            fields=[
                ('id', models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name='ID')),
                ('description', models.CharField(max_length=255, verbose_name='Descripcion')),
                ('quantity', models.DecimalField(decimal_places=3, max_digits=12, verbose_name='Cantidad')),
                ('unit_price', models.DecimalField(decimal_places=2, max_digits=12, verbose_name='Precio unitario')),
                ('honorarium', models.DecimalField(decimal_places=2, max_digits=12, verbose_name='Honorario')),
                ('total', models.DecimalField(decimal_places=2, max_digits=14, verbose_name='Total')),
                ('evidence', models.JSONField(blank=True, default=dict, verbose_name='Evidencia')),
                ('invoice', models.ForeignKey(on_delete=django.db.models.deletion.PROTECT, related_name='items', to='dispatchman.invoice')),
                ('delivery', models.ForeignKey(on_delete=django.db.models.deletion.PROTECT, related_name='invoice_items', to='dispatchman.delivery')),
                ('product', models.ForeignKey(on_delete=django.db.models.deletion.PROTECT, related_name='+', to='dispatchman.product')),
            ],
            options={
                'verbose_name': 'Item de factura',
                'verbose_name_plural': 'Items de factura',
                'ordering': ['pk'],
            },
        ),
        migrations.CreateModel(
            name='DebitNote',
            fields=[
                ('id', models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name='ID')),
                ('amount', models.DecimalField(decimal_places=2, max_digits=14, verbose_name='Monto')),
                ('reason', models.CharField(max_length=255, verbose_name='Motivo')),
                ('created_at', models.DateTimeField(default=django.utils.timezone.now)),
                ('invoice', models.ForeignKey(on_delete=django.db.models.deletion.PROTECT, related_name='debit_notes', to='dispatchman.invoice')),
                ('actor', actor_fk()),
            ],
            options={
                'verbose_name': 'Nota de debito',
                'verbose_name_plural': 'Notas de debito',
                'ordering': ['created_at', 'pk'],
            },
        ),
        migrations.CreateModel(
            name='Payment',
            fields=[
                ('id', models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name='ID')),
                ('amount', models.DecimalField(decimal_places=2, max_digits=14, verbose_name='Monto')),
                ('method', models.CharField(blank=True, default='', max_length=50, verbose_name='Medio')),
                ('reference', models.CharField(blank=True, default='', max_length=100, verbose_name='Referencia')),
                ('paid_at', models.DateTimeField(default=django.utils.timezone.now, verbose_name='Fecha de pago')),
                ('created_at', models.DateTimeField(default=django.utils.timezone.now)),
                ('invoice', models.ForeignKey(on_delete=django.db.models.deletion.PROTECT, related_name='payments', to='dispatchman.invoice')),
                ('actor', actor_fk()),
            ],
            options={
                'verbose_name': 'Pago',
                'verbose_name_plural': 'Pagos',
                'ordering': ['paid_at', 'pk'],
            },
        ),
        # ── Stock ledger ───────────────────────────────────────────
        migrations.CreateModel(
            name='StockMovement',
            fields=[
                ('id', models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name='ID')),
                ('batch', models.CharField(blank=True, default='', max_length=50, verbose_name='Lote')),
                ('kind', models.CharField(choices=[('IN', 'Ingreso'), ('OUT', 'Egreso'), ('ADJUSTMENT', 'Ajuste')], max_length=12, verbose_name='Tipo')),
                ('quantity', models.DecimalField(decimal_places=3, max_digits=12, verbose_name='Cantidad')),
                ('reference_type', models.CharField(blank=True, default='', max_length=30, verbose_name='Tipo de referencia')),
                ('reference_id', models.CharField(blank=True, default='', max_length=64, verbose_name='ID de referencia')),
                ('reason', models.CharField(blank=True, default='', max_length=255, verbose_name='Motivo')),
                ('created_at', models.DateTimeField(db_index=True, default=django.utils.timezone.now, verbose_name='Fecha')),
                ('tenant', tenant_fk('+')),
                ('warehouse', models.ForeignKey(on_delete=django.db.models.deletion.PROTECT, related_name='movements', to='dispatchman.warehouse', verbose_name='Deposito')),
                ('product', models.ForeignKey(on_delete=django.db.models.deletion.PROTECT, related_name='movements', to='dispatchman.product', verbose_name='Producto')),
                ('actor', actor_fk('Usuario')),
            ],
            options={
                'verbose_name': 'Movimiento de stock',
                'verbose_name_plural': 'Movimientos de stock',
                'ordering': ['created_at', 'pk'],
                'indexes': [
                    models.Index(fields=['tenant', 'warehouse', 'product'], name='movement_tenant_wh_prod_idx'),
                    models.Index(fields=['reference_type', 'reference_id'], name='movement_reference_idx'),
                ],
            },
        ),
        migrations.CreateModel(
            name='StockLevel',
            fields=[
                ('id', models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name='ID')),
                ('batch', models.CharField(blank=True, default='', max_length=50)),
                ('_quantity', models.DecimalField(decimal_places=3, default=Decimal('0'), max_digits=12, verbose_name='Cantidad')),
                ('updated_at', models.DateTimeField(auto_now=True)),
                ('tenant', tenant_fk('+')),
                ('warehouse', models.ForeignKey(on_delete=django.db.models.deletion.PROTECT, related_name='levels', to='dispatchman.warehouse')),
                ('product', models.ForeignKey(on_delete=django.db.models.deletion.PROTECT, related_name='levels', to='dispatchman.product')),
            ],
            options={
                'verbose_name': 'Nivel de stock',
                'verbose_name_plural': 'Niveles de stock',
                'constraints': [
                    models.UniqueConstraint(fields=('tenant', 'warehouse', 'product', 'batch'), name='unique_stock_level_coordinate'),
                ],
            },
        ),
    ]
