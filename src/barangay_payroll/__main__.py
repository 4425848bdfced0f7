"""Run the barangay payroll API with uvicorn."""

import logging

import uvicorn

from barangay_payroll.config import get_settings
from barangay_payroll.logging_config import configure_logging

logger = logging.getLogger(__name__)

APP_PATH = "barangay_payroll.api.app:app"


def main() -> None:
    """Serve the payroll API on the configured host and port."""
    settings = get_settings()
    configure_logging(settings.log_level)
    logger.info(
        "Starting payroll API v%s on %s:%d (payroll timezone %s)",
        settings.engine_version,
        settings.HOST,
        settings.PORT,
        settings.payroll_timezone,
    )
    uvicorn.run(
        APP_PATH,
        host=settings.HOST,
        port=settings.PORT,
        reload=settings.DEBUG,
        log_level=settings.log_level.lower(),
    )


if __name__ == "__main__":
    main()
