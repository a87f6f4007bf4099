"""Service entrypoint: run the scheduled task dispatcher."""

from __future__ import annotations

import asyncio
import logging
from datetime import timedelta

from workflow_dispatch.catalog import ModuleCatalog
from workflow_dispatch.config import load_settings
from workflow_dispatch.db import Database
from workflow_dispatch.identity import DatabaseIdentityLookup
from workflow_dispatch.scheduler import TaskDispatcher
from workflow_dispatch.sessions import ChatSessionManager
from workflow_dispatch.tasks import ScheduledTaskStore
from workflow_dispatch.workflow.client import WebhookCredentials, WebhookWorkflowClient
from workflow_dispatch.workflow.modules import validate_module_tables

LOGGER = logging.getLogger(__name__)


async def run() -> None:
    """Initialize app layers and start the dispatch loop."""

    settings = load_settings()
    logging.basicConfig(
        level=settings.log_level.upper(),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )

    db = Database(settings.database_path)
    db.initialize()

    catalog = ModuleCatalog(db)
    validate_module_tables(catalog.list_slugs())

    sessions = ChatSessionManager(db, ttl=timedelta(hours=settings.session_ttl_hours))
    client = WebhookWorkflowClient(
        identity=DatabaseIdentityLookup(db),
        credentials=WebhookCredentials(settings.webhook_auth_user, settings.webhook_auth_pass),
        sessions=sessions,
        default_timeout_seconds=settings.default_workflow_timeout_seconds,
        header_prefix=settings.webhook_header_prefix,
        user_agent=settings.webhook_user_agent,
    )
    dispatcher = TaskDispatcher(
        tasks=ScheduledTaskStore(db),
        catalog=catalog,
        client=client,
        batch_size=settings.dispatch_batch_size,
        poll_interval_seconds=settings.dispatch_poll_interval_seconds,
        sessions=sessions,
        session_cleanup_every_cycles=settings.session_cleanup_every_cycles,
    )

    LOGGER.info(
        "Dispatcher started (db=%s batch=%d poll=%.0fs)",
        settings.database_path,
        settings.dispatch_batch_size,
        settings.dispatch_poll_interval_seconds,
    )
    try:
        await dispatcher.run_forever()
    finally:
        dispatcher.stop()
        LOGGER.info("Dispatcher shutdown complete")


def main() -> None:
    """Synchronous wrapper for asyncio entrypoint."""

    asyncio.run(run())


if __name__ == "__main__":
    main()
