"""Django app configuration for Dispatchman."""

from django.apps import AppConfig
from django.utils.translation import gettext_lazy as _


class DispatchmanConfig(AppConfig):
    """Configuration for Dispatchman app."""

    default_auto_field = "django.db.models.BigAutoField"
    name = "dispatchman"
    verbose_name = _("Logistica y Facturacion")
