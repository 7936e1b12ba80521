"""📦 Data Products - Registration requests and sharing records.

Example:
    from lakeshare.products import DataProductRegistration

    registration = DataProductRegistration(
        producer_domain_id="222222222222",
        storage_location="producer-bucket/sales/",
        database_name="sales",
        tables=["orders", "customers"],
        owner_name="Sales Team",
    )
    registration.shared_database_name  # "222222222222_sales"
"""

from .models import (
    CrawlJob,
    CrawlState,
    DataProductRegistration,
    InvitationStatus,
    ResourceLink,
    ShareEvent,
    ShareInvitation,
    TableSpec,
    crawl_job_name,
    create_resource_links_detail_type,
    resource_link_name,
    shared_database_name,
)

__all__ = [
    "CrawlJob",
    "CrawlState",
    "DataProductRegistration",
    "InvitationStatus",
    "ResourceLink",
    "ShareEvent",
    "ShareInvitation",
    "TableSpec",
    "crawl_job_name",
    "create_resource_links_detail_type",
    "resource_link_name",
    "shared_database_name",
]
