"""Optional OpenTelemetry tracing of workflow runs.

Spans from the four flow workflows are exported through Agno's tracing setup
into their own SQLite file (TRACING_DB_FILE). No workflow session storage is
configured, so the trace file is the only place a run can leave data behind:
fridge contents and recipe text end up in span attributes. That is why
ENABLE_TRACING defaults to false.
"""

from typing import Optional

from agno.db.sqlite import SqliteDb
from agno.tracing import setup_tracing

from fridge_chef.utils.config import Config
from fridge_chef.utils.logger import logger

# Flow runs are few and short; small batches flush traces promptly
TRACE_QUEUE_SIZE = 1024
TRACE_BATCH_SIZE = 128
TRACE_FLUSH_MILLIS = 3000


def initialize_tracing(config: Config) -> Optional[SqliteDb]:
    """Start exporting traces when ENABLE_TRACING is set.

    Returns the trace database, or None when tracing is off or could not be
    set up. A failure here never stops the flow server.
    """
    if not config.ENABLE_TRACING:
        logger.info("Tracing disabled via ENABLE_TRACING=false")
        return None

    try:
        tracing_db = SqliteDb(db_file=config.TRACING_DB_FILE, id="fridge_chef_tracing_db")
        setup_tracing(
            db=tracing_db,
            batch_processing=True,
            max_queue_size=TRACE_QUEUE_SIZE,
            schedule_delay_millis=TRACE_FLUSH_MILLIS,
            max_export_batch_size=TRACE_BATCH_SIZE,
        )
    except Exception as e:
        logger.warning(f"Tracing initialization failed (non-fatal), continuing without traces: {e}")
        return None

    logger.info(f"Tracing workflow runs to {config.TRACING_DB_FILE}")
    return tracing_db
