"""
Management command to expire authorizations past their end date.

Usage:
    python manage.py expire_authorizations
    python manage.py expire_authorizations --tenant clinica-norte
    python manage.py expire_authorizations --dry-run
"""

from django.core.management.base import BaseCommand, CommandError

from dispatchman import dispatch
from dispatchman.models import Tenant


class Command(BaseCommand):
    """Expire authorizations command."""

    help = 'Vence autorizaciones cuya fecha de fin ya paso'

    def add_arguments(self, parser):
        parser.add_argument(
            '--tenant',
            help='Slug del tenant (por defecto, todos)'
        )
        parser.add_argument(
            '--dry-run',
            action='store_true',
            help='Muestra lo que venceria sin ejecutar'
        )

    def handle(self, *args, **options):
        tenants = Tenant.objects.all()
        if options['tenant']:
            tenants = tenants.filter(slug=options['tenant'])
            if not tenants.exists():
                raise CommandError(f"Tenant '{options['tenant']}' no existe")

        total = 0
        for tenant in tenants:
            expired = dispatch.expire_authorizations(tenant, dry_run=options['dry_run'])
            total += len(expired)
            for authorization in expired:
                self.stdout.write(f'  {tenant.slug}: {authorization.number}')

        if options['dry_run']:
            self.stdout.write(f'{total} autorizacion(es) venceria(n)')
        else:
            self.stdout.write(
                self.style.SUCCESS(f'{total} autorizacion(es) vencida(s)')
            )
