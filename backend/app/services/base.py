from abc import ABC, abstractmethod
from typing import Any, Dict, List
from app.models import Ad, AdAccount, AdSet, Campaign, EntityStatus, InsightRow, InsightsOptions


class AdPlatformClient(ABC):
    """
    Abstract base class for ad platform clients.

    The orchestrator only depends on this interface, so a platform client
    can be swapped (or faked in tests) without touching the merge logic.
    """

    @abstractmethod
    async def list_ad_accounts(self) -> List[AdAccount]:
        """
        Retrieve the ad accounts the access token can see.

        Returns:
            List[AdAccount]: Accounts with currency and timezone details
        """
        pass

    @abstractmethod
    async def list_campaigns(self, account_id: str) -> List[Campaign]:
        """
        Retrieve all campaigns of an ad account.

        Args:
            account_id: Ad account id, with or without the act_ prefix

        Returns:
            List[Campaign]: Campaigns without performance data
        """
        pass

    @abstractmethod
    async def list_ad_sets(self, campaign_id: str) -> List[AdSet]:
        """Retrieve the ad sets of a campaign."""
        pass

    @abstractmethod
    async def list_ads(self, ad_set_id: str) -> List[Ad]:
        """Retrieve the ads of an ad set."""
        pass

    @abstractmethod
    async def get_insights(self, account_id: str, options: InsightsOptions) -> List[InsightRow]:
        """
        Retrieve insight rows for an account.

        Args:
            account_id: Ad account id, with or without the act_ prefix
            options: Date window, reporting level and breakdowns

        Returns:
            List[InsightRow]: One row per entity and date/breakdown slice
        """
        pass

    @abstractmethod
    def get_platform_name(self) -> str:
        """
        Get the name of the ad platform.

        Returns:
            str: Platform identifier (e.g., 'meta_ads')
        """
        pass

    @abstractmethod
    async def update_status(self, entity_id: str, status: EntityStatus) -> Dict[str, Any]:
        """
        Change the delivery status of a campaign, ad set or ad.

        Args:
            entity_id: Id of the entity to update
            status: ACTIVE or PAUSED

        Returns:
            Dict[str, Any]: Raw platform response
        """
        pass
