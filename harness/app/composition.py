"""Harness composition root: build and lifecycle-manage concrete dependencies.

Composition may: import factories, convert configured milliseconds to the
seconds the domain works in, store port types, manage high-level lifecycle.
"""
from __future__ import annotations

from loguru import logger

from harness.app.application.scenario_runner import ScenarioRunner
from harness.app.application.suite import ReceiveSuite
from harness.app.config.settings import Settings
from harness.app.domain.receive_waiter import ReceiveWaiter
from harness.app.infrastructure.factory import Transport, create_transport


class HarnessDependencies:
    """Holds wired harness dependencies and their lifecycle."""

    def __init__(self, *, settings: Settings) -> None:
        self._settings = settings
        self._transport: Transport | None = None
        self._runner: ScenarioRunner | None = None
        self._suite: ReceiveSuite | None = None

    @property
    def settings(self) -> Settings:
        return self._settings

    @property
    def transport(self) -> Transport:
        if self._transport is None:
            raise RuntimeError("transport is not initialized")
        return self._transport

    @property
    def runner(self) -> ScenarioRunner:
        if self._runner is None:
            raise RuntimeError("runner is not initialized")
        return self._runner

    @property
    def suite(self) -> ReceiveSuite:
        if self._suite is None:
            raise RuntimeError("suite is not initialized")
        return self._suite

    def connect(self) -> None:
        settings = self._settings
        self._transport = create_transport(settings)
        self._runner = ScenarioRunner(
            ReceiveWaiter(),
            receive_timeout_seconds=settings.receive_timeout_ms / 1000.0,
            poll_interval_seconds=settings.poll_interval_ms / 1000.0,
            grace_period_seconds=settings.grace_period_ms / 1000.0,
            https_minimum_polling_interval_ms=settings.https_minimum_polling_interval_ms,
        )
        self._suite = ReceiveSuite(
            self._transport.registry,
            self._transport.sender,
            self._transport.connection_factory,
            self._runner,
            device_id_prefix=settings.device_id_prefix,
            parallel=settings.parallel_scenarios,
        )

    def close(self) -> None:
        if self._transport is not None:
            try:
                self._transport.sender.close()
            except Exception as exc:
                logger.warning("remote sender close failed: {}", exc)
            try:
                self._transport.registry.close()
            except Exception as exc:
                logger.warning("device registry close failed: {}", exc)
            self._transport = None

        self._runner = None
        self._suite = None


def create_harness_dependencies(settings: Settings | None = None) -> HarnessDependencies:
    return HarnessDependencies(settings=settings or Settings())
