"""
Test collaborators for Dispatchman.
"""

from django.core.files.uploadedfile import SimpleUploadedFile

from dispatchman.models.enums import Module
from dispatchman.protocols.access import AccessDecision
from dispatchman.protocols.audit import AuditEvent


class RecordingAuditSink:
    """Keeps every event in memory. Cleared by the autouse fixture."""

    events: list[AuditEvent] = []

    def record(self, event: AuditEvent) -> None:
        self.events.append(event)

    @classmethod
    def actions(cls) -> list[str]:
        return [event.action for event in cls.events]


class FailingAuditSink:
    def record(self, event: AuditEvent) -> None:
        raise RuntimeError("audit backend down")


class NoBillingModuleAccess:
    """Every module except BILLING."""

    def check(self, tenant, module) -> AccessDecision:
        if module == Module.BILLING:
            return AccessDecision(allowed=False, reason='plan sin facturacion')
        return AccessDecision(allowed=True)


PNG = b'\x89PNG\r\n\x1a\n' + b'\x00' * 64


def make_upload(name='remito.png', content=PNG, content_type='image/png'):
    return SimpleUploadedFile(name, content, content_type=content_type)
