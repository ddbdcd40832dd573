"""Provision one device per protocol, run each receive scenario, remove the devices."""
from __future__ import annotations

import time
import uuid
from concurrent.futures import ThreadPoolExecutor
from typing import Any, Iterable

from loguru import logger

from harness.app.application.scenario_runner import ScenarioRunner
from harness.app.constants import ScenarioResult, TransportProtocol
from harness.app.core import SERVICE_NAME
from harness.app.domain.models import DeviceIdentity, ScenarioReport, SuiteReport
from harness.app.ports.device_connection import ConnectionFactory
from harness.app.ports.device_registry import DeviceRegistry
from harness.app.ports.remote_sender import RemoteSender


def _log(event: str, **kwargs: Any) -> None:
    logger.bind(service_name=SERVICE_NAME, event=event, **kwargs).info("")


class ReceiveSuite:
    """Runs the receive scenarios for a set of protocols against fresh device identities.

    Scenarios share nothing but the registry and sender, so with parallel=True
    each runs on its own worker thread. One scenario failing never stops the
    others; devices that were created are always deleted, and delete failures
    are only logged.
    """

    def __init__(
        self,
        registry: DeviceRegistry,
        sender: RemoteSender,
        connection_factory: ConnectionFactory,
        runner: ScenarioRunner,
        *,
        device_id_prefix: str,
        parallel: bool = False,
    ) -> None:
        self._registry = registry
        self._sender = sender
        self._connection_factory = connection_factory
        self._runner = runner
        self._device_id_prefix = device_id_prefix
        self._parallel = parallel

    def device_id_for(self, protocol: TransportProtocol, run_id: str) -> str:
        return f"{self._device_id_prefix}-{protocol.value.lower()}-{run_id}"

    def run(self, protocols: Iterable[TransportProtocol]) -> SuiteReport:
        selected = list(protocols)
        run_id = str(uuid.uuid4())
        _log("suite_started", protocols=[p.value for p in selected], run_id=run_id, parallel=self._parallel)

        if self._parallel and len(selected) > 1:
            with ThreadPoolExecutor(max_workers=len(selected), thread_name_prefix="scenario") as pool:
                reports = list(pool.map(lambda p: self._run_one(p, run_id), selected))
        else:
            reports = [self._run_one(p, run_id) for p in selected]

        suite = SuiteReport(reports=tuple(reports))
        _log(
            "suite_finished",
            run_id=run_id,
            succeeded=suite.succeeded,
            failed=[r.protocol.value for r in suite.failed],
        )
        return suite

    def _run_one(self, protocol: TransportProtocol, run_id: str) -> ScenarioReport:
        device_id = self.device_id_for(protocol, run_id)
        started = time.monotonic()
        try:
            identity = self._registry.create_device(device_id)
        except Exception as exc:
            logger.warning("device create failed ({}): {}", device_id, exc)
            return ScenarioReport(
                protocol=protocol,
                device_id=device_id,
                result=ScenarioResult.TRANSPORT_ERROR,
                error=f"{type(exc).__name__}: {exc}",
                elapsed_seconds=time.monotonic() - started,
            )
        _log("device_created", protocol=protocol.value, device_id=device_id)

        try:
            return self._run_scenario(protocol, identity)
        finally:
            self._delete_device(device_id)

    def _run_scenario(self, protocol: TransportProtocol, identity: DeviceIdentity) -> ScenarioReport:
        started = time.monotonic()
        try:
            connection = self._connection_factory(protocol, identity)
        except Exception as exc:
            logger.warning("connection create failed ({}): {}", identity.device_id, exc)
            return ScenarioReport(
                protocol=protocol,
                device_id=identity.device_id,
                result=ScenarioResult.TRANSPORT_ERROR,
                error=f"{type(exc).__name__}: {exc}",
                elapsed_seconds=time.monotonic() - started,
            )
        return self._runner.run(protocol, connection, self._sender.send, device_id=identity.device_id)

    def _delete_device(self, device_id: str) -> None:
        try:
            self._registry.delete_device(device_id)
            _log("device_deleted", device_id=device_id)
        except Exception as exc:
            logger.warning("device delete failed ({}): {}", device_id, exc)
