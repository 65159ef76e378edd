"""CLI entrypoint for the stealth ledger node."""
from __future__ import annotations

import logging
import sys

from .api import create_app, run_api
from .chain import Chain
from .config import settings
from .ledger import StealthLedger


def configure_logging() -> None:
    logging.basicConfig(
        level=logging.INFO,
        format="%(asctime)s %(levelname)s %(name)s:%(lineno)d | %(message)s",
        stream=sys.stdout,
    )


def main() -> None:
    configure_logging()
    logger = logging.getLogger(__name__)

    logger.info("Starting stealth ledger node")

    chain = Chain()
    ledger = StealthLedger.from_settings(chain, settings)
    logger.info(
        "Ledger %s owner=%s fee_manager=%s fee_taker=%s protocol_fee=%s native_toll=%s forwarder=%s",
        ledger.address,
        ledger.owner,
        ledger.fee_manager,
        ledger.fee_taker,
        ledger.protocol_fee,
        ledger.native_toll,
        ledger.trusted_forwarder or "-",
    )
    if settings.event_journal_path:
        logger.info("Event journal at %s", settings.event_journal_path)

    app = create_app(ledger, settings)
    logger.info("HTTP API available at http://%s:%s", settings.api_host, settings.api_port)
    run_api(app, settings)


if __name__ == "__main__":
    main()
