"""🧪 Tests for the boto3-backed services (stubbed, no network)."""

import pytest
from botocore.stub import ANY, Stubber

from lakeshare.errors import ACCESS_DENIED, ALREADY_EXISTS, ENTITY_NOT_FOUND, ServiceError
from lakeshare.products.models import CrawlJob, ResourceLink
from lakeshare.services.aws import (
    EventBridgeChannel,
    GlueCatalog,
    GlueCrawlers,
    LakeFormationPermissions,
    RamShares,
    get_client,
)
from lakeshare.services.base import ALL, DATA_LOCATION_ACCESS, Grant, LocationResource, TableResource

CONTROL_ID = "111111111111"
INVITATION_ARN = f"arn:aws:ram:us-east-1:{CONTROL_ID}:resource-share-invitation/abc"


@pytest.fixture
def stubbed():
    """Factory returning (client, activated Stubber) pairs."""
    stubbers = []

    def make(service):
        client = get_client(service, "us-east-1")
        stubber = Stubber(client)
        stubber.activate()
        stubbers.append(stubber)
        return client, stubber

    yield make

    for stubber in stubbers:
        stubber.assert_no_pending_responses()
        stubber.deactivate()


class TestErrorMapping:
    """Tests for ClientError → ServiceError translation."""

    @pytest.mark.parametrize(
        "code,kind",
        [
            ("AlreadyExistsException", ALREADY_EXISTS),
            ("EntityNotFoundException", ENTITY_NOT_FOUND),
            ("AccessDeniedException", ACCESS_DENIED),
            ("InternalServiceException", "InternalServiceException"),
        ],
    )
    def test_codes(self, stubbed, code, kind):
        client, stubber = stubbed("glue")
        stubber.add_client_error("create_database", service_error_code=code, service_message="nope")

        with pytest.raises(ServiceError) as excinfo:
            GlueCatalog(client).create_database("db")

        assert excinfo.value.kind == kind
        assert excinfo.value.operation == "create_database"


class TestRamShares:
    """Tests for share invitations."""

    def test_lists_all_pages(self, stubbed):
        client, stubber = stubbed("ram")
        stubber.add_response(
            "get_resource_share_invitations",
            {
                "resourceShareInvitations": [
                    {
                        "resourceShareInvitationArn": INVITATION_ARN,
                        "senderAccountId": CONTROL_ID,
                        "status": "PENDING",
                        "resourceShareName": "share",
                    }
                ],
                "nextToken": "page-2",
            },
            {},
        )
        stubber.add_response(
            "get_resource_share_invitations",
            {
                "resourceShareInvitations": [
                    {"resourceShareInvitationArn": INVITATION_ARN + "2", "status": "ACCEPTED"}
                ]
            },
            {"nextToken": "page-2"},
        )

        invitations = RamShares(client).list_invitations()

        assert [i.invitation_id for i in invitations] == [INVITATION_ARN, INVITATION_ARN + "2"]
        assert invitations[0].is_pending
        assert invitations[0].sender_domain_id == CONTROL_ID

    def test_accept(self, stubbed):
        client, stubber = stubbed("ram")
        stubber.add_response(
            "accept_resource_share_invitation",
            {
                "resourceShareInvitation": {
                    "resourceShareInvitationArn": INVITATION_ARN,
                    "senderAccountId": CONTROL_ID,
                    "status": "ACCEPTED",
                }
            },
            {"resourceShareInvitationArn": INVITATION_ARN},
        )

        invitation = RamShares(client).accept_invitation(INVITATION_ARN)

        assert invitation.status == "ACCEPTED"


class TestLakeFormationPermissions:
    """Tests for location registration and grants."""

    def test_register_location(self, stubbed):
        client, stubber = stubbed("lakeformation")
        stubber.add_response(
            "register_resource",
            {},
            {"ResourceArn": "arn:aws:s3:::bucket/prefix", "RoleArn": "arn:aws:iam::1:role/admin"},
        )

        LakeFormationPermissions(client).register_location(
            "arn:aws:s3:::bucket/prefix", "arn:aws:iam::1:role/admin"
        )

    def test_location_grant(self, stubbed):
        client, stubber = stubbed("lakeformation")
        stubber.add_response(
            "grant_permissions",
            {},
            {
                "Principal": {"DataLakePrincipalIdentifier": "222222222222"},
                "Resource": {"DataLocation": {"ResourceArn": "arn:aws:s3:::bucket"}},
                "Permissions": [DATA_LOCATION_ACCESS],
            },
        )

        LakeFormationPermissions(client).grant_permissions(
            Grant("222222222222", LocationResource("arn:aws:s3:::bucket"), (DATA_LOCATION_ACCESS,))
        )

    def test_table_grant_with_grant_option(self, stubbed):
        client, stubber = stubbed("lakeformation")
        stubber.add_response(
            "grant_permissions",
            {},
            {
                "Principal": {"DataLakePrincipalIdentifier": "222222222222"},
                "Resource": {"Table": {"DatabaseName": "222222222222_sales", "Name": "t1"}},
                "Permissions": [ALL],
                "PermissionsWithGrantOption": [ALL],
            },
        )

        LakeFormationPermissions(client).grant_permissions(
            Grant("222222222222", TableResource("222222222222_sales", "t1"), (ALL,), (ALL,))
        )


class TestGlue:
    """Tests for the catalog and crawl jobs."""

    def test_resource_link(self, stubbed):
        client, stubber = stubbed("glue")
        stubber.add_response(
            "create_table",
            {},
            {
                "DatabaseName": "sales",
                "TableInput": {
                    "Name": "rl-t1",
                    "TargetTable": {
                        "CatalogId": CONTROL_ID,
                        "DatabaseName": "222222222222_sales",
                        "Name": "t1",
                    },
                },
            },
        )

        GlueCatalog(client).create_resource_link(
            ResourceLink("sales", "rl-t1", CONTROL_ID, "222222222222_sales", "t1")
        )

    def test_update_database(self, stubbed):
        client, stubber = stubbed("glue")
        stubber.add_response(
            "update_database",
            {},
            {"Name": "db", "DatabaseInput": {"Name": "db", "Parameters": {"pii_flag": "false"}}},
        )

        GlueCatalog(client).update_database("db", {"pii_flag": "false"})

    def test_crawl_job_lifecycle(self, stubbed):
        client, stubber = stubbed("glue")
        job = CrawlJob(name="exec_sales_rl-t1", database_name="sales", tables=["rl-t1"], role="admin")
        stubber.add_response(
            "create_crawler",
            {},
            {
                "Name": job.name,
                "Role": "admin",
                "Targets": {"CatalogTargets": [{"DatabaseName": "sales", "Tables": ["rl-t1"]}]},
                "SchemaChangePolicy": {"DeleteBehavior": "LOG", "UpdateBehavior": "UPDATE_IN_DATABASE"},
            },
        )
        stubber.add_response("start_crawler", {}, {"Name": job.name})
        stubber.add_response(
            "get_crawler",
            {
                "Crawler": {
                    "Name": job.name,
                    "Role": "admin",
                    "State": "READY",
                    "Targets": {"CatalogTargets": [{"DatabaseName": "sales", "Tables": ["rl-t1"]}]},
                }
            },
            {"Name": job.name},
        )
        stubber.add_response("delete_crawler", {}, {"Name": job.name})

        crawlers = GlueCrawlers(client)
        crawlers.create_crawl_job(job)
        crawlers.start_crawl_job(job.name)
        fetched = crawlers.get_crawl_job(job.name)
        crawlers.delete_crawl_job(job.name)

        assert fetched.state == "READY"
        assert fetched.tables == ["rl-t1"]


class TestEventBridgeChannel:
    """Tests for event publishing."""

    def test_put_event(self, stubbed):
        client, stubber = stubbed("events")
        stubber.add_response(
            "put_events",
            {"FailedEntryCount": 0, "Entries": [{"EventId": "evt-1"}]},
            {
                "Entries": [
                    {
                        "Source": "com.central.stepfunction",
                        "DetailType": "222222222222_createResourceLinks",
                        "Detail": ANY,
                        "EventBusName": f"{CONTROL_ID}_centralEventBus",
                    }
                ]
            },
        )

        channel = EventBridgeChannel(f"{CONTROL_ID}_centralEventBus", client)
        event_id = channel.put_event(
            "com.central.stepfunction",
            "222222222222_createResourceLinks",
            {"database_name": "sales", "table_names": ["t1"]},
        )

        assert event_id == "evt-1"

    def test_rejected_entry_raises(self, stubbed):
        client, stubber = stubbed("events")
        stubber.add_response(
            "put_events",
            {
                "FailedEntryCount": 1,
                "Entries": [{"ErrorCode": "AccessDeniedException", "ErrorMessage": "denied"}],
            },
        )

        with pytest.raises(ServiceError, match="denied"):
            EventBridgeChannel("bus", client).put_event("s", "d", {})
