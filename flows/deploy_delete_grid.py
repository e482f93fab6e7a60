from flows.delete_grid_flow import delete_discovery_grid
from flows.stale_claim_sweeper_flow import stale_claim_sweeper_flow


if __name__ == "__main__":
    """
    Deploy the discovery grid flows to Prefect.

    Usage:
        PYTHONPATH=. python flows/deploy_delete_grid.py
    """
    # run on demand only: request_delete_grid() triggers it with a grid_id
    delete_discovery_grid.from_source(
        source=".",
        entrypoint="flows/delete_grid_flow.py:delete_discovery_grid",
    ).deploy(
        name="delete-discovery-grid",
        work_pool_name="leadgrid-managed",
        work_queue_name="discovery",
        tags=["discovery", "delete"],
    )

    stale_claim_sweeper_flow.from_source(
        source=".",
        entrypoint="flows/stale_claim_sweeper_flow.py:stale_claim_sweeper_flow",
    ).deploy(
        name="discovery-stale-claim-sweeper",
        work_pool_name="leadgrid-managed",
        work_queue_name="discovery",
        cron="*/15 * * * *",
        tags=["discovery", "sweeper"],
        parameters={},
    )
