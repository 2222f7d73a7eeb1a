# Services module

from tableside.services.realtime_service import ConnectionManager, cart_channel, ws_manager
from tableside.services.scheduler_service import TaskScheduler, scheduler
from tableside.services.session_cleanup_service import (
    SessionCleanupService,
    run_session_cleanup,
)
from tableside.services.subscription_service import SubscriptionService
from tableside.services.table_session_service import TableSessionService
