"""
Append-only records.

Rows of these models are facts: they are created once and never updated
or deleted. Corrections are new rows.
"""

from django.db import models

from dispatchman.exceptions import DispatchError


class ImmutableModel(models.Model):
    """Abstract base refusing update and delete."""

    class Meta:
        abstract = True

    def save(self, *args, **kwargs):
        if self.pk and not self._state.adding:
            raise DispatchError('IMMUTABLE_RECORD', model=type(self).__name__, pk=self.pk)
        super().save(*args, **kwargs)

    def delete(self, *args, **kwargs):
        raise DispatchError('IMMUTABLE_RECORD', model=type(self).__name__, pk=self.pk)
