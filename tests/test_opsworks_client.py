import unittest
from unittest.mock import MagicMock, patch

from botocore.exceptions import ClientError, EndpointConnectionError

from opsworks_deployer.client.opsworks import OpsWorksClient
from opsworks_deployer.errors import TransportError
from opsworks_deployer.models import Credentials, DeploymentRequest, DeploymentState

CREDENTIALS = Credentials("AKID", "secret", "eu-west-1")


def client_error(code, message, status=400, operation="CreateDeployment"):
    return ClientError(
        {
            "Error": {"Code": code, "Message": message},
            "ResponseMetadata": {"HTTPStatusCode": status},
        },
        operation,
    )


class OpsWorksClientTests(unittest.IsolatedAsyncioTestCase):
    def setUp(self) -> None:
        self.boto = MagicMock()
        self.client = OpsWorksClient(CREDENTIALS, client=self.boto)

    async def test_start_deployment_payload(self) -> None:
        self.boto.create_deployment.return_value = {"DeploymentId": "d-123"}
        request = DeploymentRequest("s1", "a1", "deploy", args={"migrate": ["true"]})

        handle = await self.client.start_deployment(request)

        self.assertEqual(handle, "d-123")
        self.boto.create_deployment.assert_called_once_with(
            StackId="s1", AppId="a1", Command={"Name": "deploy", "Args": {"migrate": ["true"]}},
        )

    async def test_args_omitted_when_not_given(self) -> None:
        self.boto.create_deployment.return_value = {"DeploymentId": "d-1"}
        await self.client.start_deployment(DeploymentRequest("s1", "a1", "setup"))
        self.assertEqual(self.boto.create_deployment.call_args.kwargs["Command"], {"Name": "setup"})

    async def test_fetch_status_parses_deployment(self) -> None:
        self.boto.describe_deployments.return_value = {
            "Deployments": [{
                "DeploymentId": "d-123",
                "Status": "successful",
                "CreatedAt": "2024-01-01T12:00:00+00:00",
                "CompletedAt": "2024-01-01T12:00:42+00:00",
            }]
        }

        status = await self.client.fetch_status("d-123")

        self.boto.describe_deployments.assert_called_once_with(DeploymentIds=["d-123"])
        self.assertEqual(status.state, DeploymentState.SUCCESSFUL)
        self.assertEqual((status.completed_at - status.created_at).total_seconds(), 42)

    async def test_mixed_naive_and_aware_timestamps(self) -> None:
        self.boto.describe_deployments.return_value = {
            "Deployments": [{
                "DeploymentId": "d-1",
                "Status": "successful",
                "CreatedAt": "2024-01-01T00:00:00",
                "CompletedAt": "2024-01-01T00:01:30+00:00",
            }]
        }

        status = await self.client.fetch_status("d-1")

        self.assertEqual((status.completed_at - status.created_at).total_seconds(), 90)

    async def test_running_deployment_has_no_completion(self) -> None:
        self.boto.describe_deployments.return_value = {
            "Deployments": [{"DeploymentId": "d-1", "Status": "running", "CreatedAt": "2024-01-01T12:00:00Z"}]
        }
        status = await self.client.fetch_status("d-1")
        self.assertTrue(status.is_running)
        self.assertIsNone(status.completed_at)

    async def test_api_error_maps_to_transport_error(self) -> None:
        self.boto.create_deployment.side_effect = client_error(
            "ValidationException", "Unable to find stack with ID s1"
        )

        with self.assertRaises(TransportError) as cm:
            await self.client.start_deployment(DeploymentRequest("s1", "a1", "deploy"))

        self.assertEqual(cm.exception.status_code, 400)
        self.assertEqual(cm.exception.error_code, "ValidationException")
        self.assertEqual(cm.exception.operation, "CreateDeployment")
        self.assertIn("Unable to find stack", str(cm.exception))
        self.assertIsInstance(cm.exception.__cause__, ClientError)

    async def test_network_error_maps_to_transport_error(self) -> None:
        self.boto.describe_deployments.side_effect = EndpointConnectionError(
            endpoint_url="https://opsworks.eu-west-1.amazonaws.com/"
        )
        with self.assertRaises(TransportError) as cm:
            await self.client.fetch_status("d-1")
        self.assertEqual(cm.exception.operation, "DescribeDeployments")
        self.assertIsInstance(cm.exception.__cause__, EndpointConnectionError)

    async def test_unknown_deployment(self) -> None:
        self.boto.describe_deployments.return_value = {"Deployments": []}
        with self.assertRaises(TransportError):
            await self.client.fetch_status("d-404")

    async def test_malformed_description(self) -> None:
        self.boto.describe_deployments.return_value = {
            "Deployments": [{"Status": "running", "CreatedAt": "2024-01-01T12:00:00Z"}]
        }
        with self.assertRaises(TransportError) as cm:
            await self.client.fetch_status("d-1")
        self.assertIsInstance(cm.exception.__cause__, KeyError)

    async def test_missing_deployment_id(self) -> None:
        self.boto.create_deployment.return_value = {}
        with self.assertRaises(TransportError):
            await self.client.start_deployment(DeploymentRequest("s1", "a1", "deploy"))

    def test_boto_client_built_from_credentials(self) -> None:
        with patch("opsworks_deployer.client.opsworks.boto3.client") as factory:
            OpsWorksClient(Credentials("AKID", "secret", "us-west-2", session_token="tok"))

        args, kwargs = factory.call_args
        self.assertEqual(args, ("opsworks",))
        self.assertEqual(kwargs["region_name"], "us-west-2")
        self.assertEqual(kwargs["aws_access_key_id"], "AKID")
        self.assertEqual(kwargs["aws_secret_access_key"], "secret")
        self.assertEqual(kwargs["aws_session_token"], "tok")
        self.assertEqual(kwargs["api_version"], "2013-02-18")

    def test_close(self) -> None:
        with self.client:
            pass
        self.boto.close.assert_called_once()


if __name__ == "__main__":
    unittest.main()
