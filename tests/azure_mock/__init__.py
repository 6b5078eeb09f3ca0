"""Azure API Mock for testing.

In-memory fakes of the Azure and Microsoft Graph surfaces rg-cleanup talks to,
so sweeps and reconciliations run without Azure connectivity.

Key Features:
- Paged listing of resource groups and role assignments
- Delete recording for assertions
- Failure injection for pages, deletes, directory queries and tokens

Usage:
    from azure_mock import MockAzureContext

    with MockAzureContext(existing_principals={"p1"}) as ctx:
        ctx.resource_groups.add("rg-old")
        exit_code = await main(config)

        assert ctx.resource_groups.delete_calls == ["rg-old"]
"""

from .context import MockAzureContext
from .credential import MockAccessToken, MockCredential, create_mock_credential
from .graph import MockDirectoryClient, MockGraphSession, MockResponse
from .resources import (
    TEST_SUBSCRIPTION_ID,
    MockAuthorizationClient,
    MockItemPaged,
    MockResourceClient,
    MockResourceGroup,
    MockResourceGroupsOperations,
    MockRoleAssignment,
    MockRoleAssignmentsOperations,
)

__all__ = [
    "TEST_SUBSCRIPTION_ID",
    "MockAccessToken",
    "MockAuthorizationClient",
    "MockAzureContext",
    "MockCredential",
    "MockDirectoryClient",
    "MockGraphSession",
    "MockItemPaged",
    "MockResourceClient",
    "MockResourceGroup",
    "MockResourceGroupsOperations",
    "MockResponse",
    "MockRoleAssignment",
    "MockRoleAssignmentsOperations",
    "create_mock_credential",
]
