"""
Episode workflow — stage moves and discharge.

Stages are per-tenant data; discharge consults the stage's is_terminal flag.
"""

import logging

from django.db import transaction
from django.utils import timezone

from dispatchman.exceptions import DispatchError
from dispatchman.models.enums import EpisodeStatus
from dispatchman.models.reference import Episode, EpisodeWorkflowStage
from dispatchman.services.base import audit, get_owned

logger = logging.getLogger('dispatchman')


class Episodes:

    @classmethod
    def set_episode_stage(cls, tenant, episode, stage, actor=None) -> Episode:
        """
        Move an ACTIVE episode to any stage of its tenant.

        Raises:
            DispatchError('INVALID_STATUS'): Episode not ACTIVE
            DispatchError('STAGE_NOT_FOUND'): Stage of another tenant
        """
        with transaction.atomic():
            episode = get_owned(Episode, tenant, episode, 'EPISODE_NOT_FOUND', for_update=True)
            stage = get_owned(EpisodeWorkflowStage, tenant, stage, 'STAGE_NOT_FOUND')
            if episode.status != EpisodeStatus.ACTIVE:
                raise DispatchError('INVALID_STATUS', current=episode.status, expected=EpisodeStatus.ACTIVE)

            previous = episode.workflow_stage_id
            episode.workflow_stage = stage
            episode.save(update_fields=['workflow_stage'])
            audit(tenant, actor, 'episode.stage_changed', episode, previous=previous, stage=stage.name)
            return episode

    @classmethod
    def discharge_episode(cls, tenant, episode, end_date=None, actor=None) -> Episode:
        """
        ACTIVE → DISCHARGED, only from a terminal stage.

        Raises:
            DispatchError('INVALID_STATUS'): Episode not ACTIVE
            DispatchError('WORKFLOW_NOT_TERMINAL'): No stage, or stage not terminal
        """
        with transaction.atomic():
            episode = get_owned(Episode, tenant, episode, 'EPISODE_NOT_FOUND', for_update=True)
            if episode.status != EpisodeStatus.ACTIVE:
                raise DispatchError('INVALID_STATUS', current=episode.status, expected=EpisodeStatus.ACTIVE)
            stage = episode.workflow_stage
            if stage is None or not stage.is_terminal:
                raise DispatchError('WORKFLOW_NOT_TERMINAL', stage=stage.name if stage else None)

            episode.status = EpisodeStatus.DISCHARGED
            episode.end_date = end_date or timezone.localdate()
            episode.save(update_fields=['status', 'end_date'])
            audit(tenant, actor, 'episode.discharged', episode, stage=stage.name)

        logger.info("episode.discharged", extra={"tenant_id": tenant.pk, "episode_id": episode.pk})
        return episode
