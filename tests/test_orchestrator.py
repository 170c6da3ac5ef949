import asyncio
import unittest
from datetime import datetime, timedelta, timezone

from opsworks_deployer.errors import (
    CancelledError,
    DeploymentFailedError,
    DeploymentTimeoutError,
    TransportError,
)
from opsworks_deployer.events import Completed, Errored, Failed, Initiated, StillRunning
from opsworks_deployer.models import (
    DeploymentRequest,
    DeploymentState,
    DeploymentStatus,
    OrchestratorConfig,
)
from opsworks_deployer.orchestrator import CancellationToken, DeploymentOrchestrator, RunState
from opsworks_deployer.testing import (
    FakeDeploymentClient,
    RecordingReporter,
    failed,
    running,
    successful,
)


class RecordingSleep:
    def __init__(self, on_sleep=None) -> None:
        self.calls = []
        self.on_sleep = on_sleep

    async def __call__(self, seconds: float) -> None:
        self.calls.append(seconds)
        if self.on_sleep is not None:
            await self.on_sleep(len(self.calls))


REQUEST = DeploymentRequest(stack_id="s1", app_id="a1", command="deploy")


class OrchestratorTests(unittest.IsolatedAsyncioTestCase):
    def make(self, client, config=None, sleep=None, on_transition=None):
        self.reporter = RecordingReporter()
        self.sleep = sleep or RecordingSleep()
        return DeploymentOrchestrator(
            client,
            reporter=self.reporter,
            config=config or OrchestratorConfig(check_interval=15.0),
            sleep=self.sleep,
            on_transition=on_transition,
        )

    async def test_running_twice_then_successful(self) -> None:
        client = FakeDeploymentClient(
            handle="d1",
            statuses=[running(), running(), successful(seconds=42)],
        )
        orchestrator = self.make(client)

        result = await orchestrator.run(REQUEST)

        self.assertEqual(result.id, "d1")
        self.assertEqual(result.state, DeploymentState.SUCCESSFUL)
        self.assertEqual(result.duration, timedelta(seconds=42))
        self.assertEqual(client.fetch_calls, 3)
        self.assertEqual(self.sleep.calls, [15.0, 15.0])
        self.assertEqual(len(self.reporter.of_type(Completed)), 1)
        self.assertEqual(len(self.reporter.of_type(StillRunning)), 2)

    async def test_start_called_once_before_any_fetch(self) -> None:
        client = FakeDeploymentClient(statuses=[running(), successful()])
        await self.make(client).run(REQUEST)

        names = [name for name, _ in client.calls]
        self.assertEqual(names[0], "start_deployment")
        self.assertEqual(names.count("start_deployment"), 1)
        self.assertEqual(client.calls[0][1], REQUEST)

    async def test_n_running_responses_means_n_plus_one_fetches(self) -> None:
        for n in (0, 1, 5):
            with self.subTest(n=n):
                client = FakeDeploymentClient(statuses=[running()] * n + [successful(seconds=3)])
                orchestrator = self.make(client)
                await orchestrator.run(REQUEST)
                self.assertEqual(client.fetch_calls, n + 1)
                self.assertEqual(len(self.sleep.calls), n)

    async def test_initiated_event_carries_handle_and_interval(self) -> None:
        client = FakeDeploymentClient(handle="abc", statuses=[successful("abc")])
        await self.make(client, OrchestratorConfig(check_interval=2.5)).run(REQUEST)

        initiated = self.reporter.of_type(Initiated)
        self.assertEqual(initiated, [Initiated("abc", 2.5, "deploy")])
        self.assertIsInstance(self.reporter.events[0], Initiated)
        self.assertIsInstance(self.reporter.events[-1], Completed)

    async def test_failed_with_abort_raises(self) -> None:
        client = FakeDeploymentClient(statuses=[running(), failed(seconds=10)])
        orchestrator = self.make(client)

        with self.assertRaises(DeploymentFailedError) as cm:
            await orchestrator.run(REQUEST)

        self.assertEqual(cm.exception.handle, "d1")
        self.assertEqual(cm.exception.last_status.state, DeploymentState.FAILED)
        self.assertEqual(cm.exception.result.duration, timedelta(seconds=10))
        self.assertEqual(len(self.reporter.of_type(Failed)), 1)
        self.assertEqual(self.reporter.of_type(Completed), [])

    async def test_failed_without_abort_returns_result(self) -> None:
        client = FakeDeploymentClient(statuses=[failed(seconds=7)])
        orchestrator = self.make(client, OrchestratorConfig(abort_on_failure=False))

        result = await orchestrator.run(REQUEST)

        self.assertEqual(result.state, DeploymentState.FAILED)
        self.assertFalse(result.succeeded)
        self.assertEqual(result.duration, timedelta(seconds=7))
        self.assertEqual(len(self.reporter.of_type(Failed)), 1)

    async def test_unknown_terminal_state_is_not_success(self) -> None:
        status = running()
        other = status.__class__(
            status.id, DeploymentState.OTHER, status.created_at, status.created_at, "stopped"
        )
        client = FakeDeploymentClient(statuses=[other])

        with self.assertRaises(DeploymentFailedError) as cm:
            await self.make(client).run(REQUEST)
        self.assertIn("stopped", str(cm.exception))

    async def test_naive_created_at_with_aware_completed_at(self) -> None:
        created = datetime(2024, 1, 1, 12, 0, 0)
        status = DeploymentStatus(
            "d1", DeploymentState.SUCCESSFUL, created,
            datetime(2024, 1, 1, 12, 0, 30, tzinfo=timezone.utc), "successful",
        )
        client = FakeDeploymentClient(statuses=[status])

        result = await self.make(client).run(REQUEST)

        self.assertEqual(result.duration, timedelta(seconds=30))
        self.assertEqual(len(self.reporter.of_type(Completed)), 1)

    async def test_start_failure_is_not_retried(self) -> None:
        client = FakeDeploymentClient(start_error=TransportError("boom", operation="CreateDeployment"))
        orchestrator = self.make(client)

        with self.assertRaises(TransportError):
            await orchestrator.run(REQUEST)

        self.assertEqual(client.start_calls, 1)
        self.assertEqual(client.fetch_calls, 0)
        errored = self.reporter.of_type(Errored)
        self.assertEqual(len(errored), 1)
        self.assertIsNone(errored[0].handle)

    async def test_fetch_failure_stops_polling(self) -> None:
        client = FakeDeploymentClient(
            statuses=[running(), TransportError("timeout", operation="DescribeDeployments"), successful()]
        )
        orchestrator = self.make(client)

        with self.assertRaises(TransportError) as cm:
            await orchestrator.run(REQUEST)

        self.assertEqual(str(cm.exception), "timeout")
        self.assertEqual(client.fetch_calls, 2)
        self.assertEqual(self.reporter.of_type(Errored)[0].handle, "d1")

    async def test_unexpected_client_exception_becomes_transport_error(self) -> None:
        client = FakeDeploymentClient(statuses=[KeyError("Deployments")])

        with self.assertRaises(TransportError) as cm:
            await self.make(client).run(REQUEST)
        self.assertIsInstance(cm.exception.__cause__, KeyError)
        self.assertEqual(cm.exception.operation, "fetch_status")

    async def test_reporter_notified_before_error_raised(self) -> None:
        client = FakeDeploymentClient(statuses=[TransportError("down")])
        orchestrator = self.make(client)
        try:
            await orchestrator.run(REQUEST)
        except TransportError:
            self.assertIsInstance(self.reporter.events[-1], Errored)
        else:
            self.fail("TransportError not raised")

    async def test_cancel_between_first_and_second_poll(self) -> None:
        token = CancellationToken()

        async def cancel_then_block(count):
            token.cancel()
            await asyncio.sleep(3600)

        client = FakeDeploymentClient(statuses=[running(), running(), successful()])
        orchestrator = self.make(client, sleep=RecordingSleep(cancel_then_block))

        with self.assertRaises(CancelledError) as cm:
            await orchestrator.run(REQUEST, cancel_token=token)

        self.assertEqual(cm.exception.handle, "d1")
        self.assertEqual(client.fetch_calls, 1)
        self.assertIsInstance(self.reporter.events[-1], Errored)

    async def test_cancelled_token_before_start_makes_no_calls(self) -> None:
        token = CancellationToken()
        token.cancel()
        client = FakeDeploymentClient(statuses=[successful()])

        with self.assertRaises(CancelledError):
            await self.make(client).run(REQUEST, cancel_token=token)
        self.assertEqual(client.calls, [])

    async def test_token_not_cancelled_completes_normally(self) -> None:
        token = CancellationToken()
        client = FakeDeploymentClient(statuses=[running(), successful(seconds=1)])
        result = await self.make(client).run(REQUEST, cancel_token=token)
        self.assertTrue(result.succeeded)
        self.assertEqual(self.sleep.calls, [15.0])

    async def test_overall_timeout(self) -> None:
        async def block(count):
            await asyncio.sleep(3600)

        client = FakeDeploymentClient(statuses=[running(), successful()])
        orchestrator = self.make(
            client,
            OrchestratorConfig(check_interval=15.0, timeout=0.05),
            sleep=RecordingSleep(block),
        )

        with self.assertRaises(DeploymentTimeoutError) as cm:
            await orchestrator.run(REQUEST)
        self.assertIsInstance(cm.exception, CancelledError)
        self.assertEqual(cm.exception.handle, "d1")
        self.assertEqual(client.fetch_calls, 1)

    async def test_state_transitions(self) -> None:
        transitions = []
        client = FakeDeploymentClient(statuses=[running(), successful()])
        orchestrator = self.make(client, on_transition=lambda old, new: transitions.append(new))
        await orchestrator.run(REQUEST)
        self.assertEqual(
            transitions,
            [RunState.INITIATING, RunState.POLLING, RunState.REPORTING, RunState.SUCCEEDED],
        )

    async def test_failed_and_errored_transitions(self) -> None:
        transitions = []
        client = FakeDeploymentClient(statuses=[failed()])
        orchestrator = self.make(client, on_transition=lambda old, new: transitions.append(new))
        with self.assertRaises(DeploymentFailedError):
            await orchestrator.run(REQUEST)
        self.assertEqual(transitions[-1], RunState.FAILED)

        transitions.clear()
        client = FakeDeploymentClient(start_error=TransportError("no"))
        orchestrator = self.make(client, on_transition=lambda old, new: transitions.append(new))
        with self.assertRaises(TransportError):
            await orchestrator.run(REQUEST)
        self.assertEqual(transitions, [RunState.INITIATING, RunState.ERRORED])

    async def test_concurrent_runs_do_not_share_state(self) -> None:
        first = FakeDeploymentClient(handle="d1", statuses=[running("d1"), successful("d1", seconds=5)])
        second = FakeDeploymentClient(handle="d2", statuses=[successful("d2", seconds=9)])

        results = await asyncio.gather(
            self.make(first, OrchestratorConfig(check_interval=0.01), sleep=asyncio.sleep).run(REQUEST),
            self.make(second, OrchestratorConfig(check_interval=0.01), sleep=asyncio.sleep).run(REQUEST),
        )

        self.assertEqual([r.id for r in results], ["d1", "d2"])
        self.assertEqual(results[0].duration, timedelta(seconds=5))
        self.assertEqual(results[1].duration, timedelta(seconds=9))

    async def test_real_sleep_waits_between_polls(self) -> None:
        client = FakeDeploymentClient(statuses=[running(), successful()])
        orchestrator = DeploymentOrchestrator(
            client, reporter=RecordingReporter(), config=OrchestratorConfig(check_interval=0.05)
        )
        loop = asyncio.get_running_loop()
        started = loop.time()
        await orchestrator.run(REQUEST)
        self.assertGreaterEqual(loop.time() - started, 0.04)


if __name__ == "__main__":
    unittest.main()
