from __future__ import annotations

import json
from typing import Optional

from prefect import flow, get_run_logger

from leadgrid.discovery.cells import release_stale_claims
from leadgrid.discovery import config


@flow(name="discovery-stale-claim-sweeper")
def stale_claim_sweeper_flow(timeout_minutes: Optional[int] = None) -> int:
    """
    Puts cells stuck in `searching` (search worker died mid-run) back to the
    status they had before the claim, so they can be searched or
    restructured again.
    """
    logger = get_run_logger()
    timeout = config.SEARCHING_TIMEOUT_MINUTES if timeout_minutes is None else timeout_minutes

    released = release_stale_claims(timeout_minutes=timeout)

    if not released:
        logger.info("stale_claim_sweeper: no cells stuck in searching for > %s min", timeout)
    logger.info(json.dumps({"event": "discovery_stale_claims_released", "released": released,
                            "timeout_minutes": timeout}, sort_keys=True))
    return released


if __name__ == "__main__":
    stale_claim_sweeper_flow()
