"""
Campaign registry: ownership checks and cascade-delete ordering.
"""

import logging
from typing import List

from .db.models import CampaignModel
from .db.repository import MetadataRepository
from .errors import NotFoundError, UnauthorizedError

logger = logging.getLogger(__name__)


class CampaignRegistry:
    """Enforces what the bare repository does not.

    Output artifacts are not removed when a campaign is deleted; they stay in
    the output bucket until cleaned up outside this service.
    """

    def __init__(self, repository: MetadataRepository):
        self.repository = repository

    def get_owned(self, campaign_id: str, owner: str) -> CampaignModel:
        """Return the campaign if it exists and belongs to ``owner``."""
        campaign = self.repository.get_campaign(campaign_id)
        if campaign is None:
            raise NotFoundError(f"Campaign {campaign_id} not found", step="lookup_campaign")
        if campaign.owner != owner:
            raise UnauthorizedError(
                f"Campaign {campaign_id} is not owned by {owner}", step="lookup_campaign"
            )
        return campaign

    def list_campaigns(self, owner: str) -> List[CampaignModel]:
        return self.repository.list_campaigns(owner)

    def create_campaign(self, owner: str, name: str) -> CampaignModel:
        return self.repository.create_campaign(owner, name)

    def rename_campaign(self, campaign_id: str, new_name: str, owner: str) -> CampaignModel:
        return self.repository.rename_campaign(campaign_id, new_name, owner)

    def delete_campaign_cascade(self, campaign_id: str, owner: str) -> int:
        """Delete a campaign's file records, then the campaign.

        If deleting the records fails the campaign row is left untouched, so a
        retry finds the parent and can finish the job.

        Returns:
            Number of file records deleted.
        """
        self.get_owned(campaign_id, owner)

        deleted = self.repository.delete_file_records(campaign_id)
        self.repository.delete_campaign(campaign_id)

        logger.info(
            "Cascade-deleted campaign %s (%d file records)", campaign_id, deleted
        )
        return deleted
