import sys
from typing import Any

from loguru import logger
from pydantic import ValidationError

from harness.app.composition import create_harness_dependencies
from harness.app.config.settings import Settings
from harness.app.core import SERVICE_NAME

EXIT_OK = 0
EXIT_SCENARIO_FAILED = 1
EXIT_SETUP_ERROR = 2


def _log(event: str, **kwargs: Any) -> None:
    logger.bind(service_name=SERVICE_NAME, event=event, **kwargs).info("")


def run_harness() -> int:
    try:
        settings = Settings()
        protocols = settings.enabled_protocols()
    except (ValidationError, ValueError) as e:
        logger.error("harness setup failed: {}", e)
        return EXIT_SETUP_ERROR

    deps = create_harness_dependencies(settings)
    try:
        deps.connect()
    except Exception as e:
        logger.exception("harness setup failed: {}", e)
        deps.close()
        return EXIT_SETUP_ERROR

    try:
        suite = deps.suite.run(protocols)
    finally:
        deps.close()

    for report in suite.reports:
        _log(
            "scenario_report",
            protocol=report.protocol.value,
            device_id=report.device_id,
            result=report.result.value,
            error=report.error,
            elapsed_seconds=round(report.elapsed_seconds, 3),
        )
    return EXIT_OK if suite.succeeded else EXIT_SCENARIO_FAILED


def main() -> None:
    try:
        code = run_harness()
    except KeyboardInterrupt:
        _log("harness_interrupted")
        code = EXIT_SCENARIO_FAILED
    except Exception as e:
        logger.exception("harness failed: {}", e)
        raise
    sys.exit(code)


if __name__ == "__main__":
    main()
