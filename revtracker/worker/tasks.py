import logging
import os
import socket
from typing import Any, Dict, Optional, Set

from arq import cron
from arq.connections import RedisSettings

from ..config.config_loader import load_project_refs
from ..config.global_config_loader import GlobalConfig, get_global_config
from ..notifications import BuildBreakSubscriptionHook
from ..store import get_store
from ..tracker.runner import TrackerRunner

# Get worker identifier
WORKER_ID = f"{socket.gethostname()}-{os.getpid()}"

logger = logging.getLogger(__name__)


def create_runner(global_config: GlobalConfig, store) -> TrackerRunner:
    return TrackerRunner(global_config, store, notification_hook=BuildBreakSubscriptionHook(store))


async def startup(ctx: dict):
    """Connect the document store once per worker"""
    global_config = get_global_config()
    store = get_store(global_config.store.type, {
        'url': global_config.redis.url,
        'key_prefix': global_config.store.key_prefix,
    })
    await store.connect()
    ctx['store'] = store
    ctx['runner'] = create_runner(global_config, store)
    logger.info(f"Worker {WORKER_ID} connected to {global_config.store.type} store")


async def shutdown(ctx: dict):
    store = ctx.get('store')
    if store is not None:
        await store.disconnect()


async def track_project(ctx: dict, project_id: str) -> Dict[str, Any]:
    """
    ARQ job: run the tracker for a single project.

    Returns:
        Result dictionary
    """
    global_config = get_global_config()
    runner: TrackerRunner = ctx['runner']

    project_refs = {ref.identifier: ref for ref in load_project_refs(global_config.projects.projects_path)}
    project_ref = project_refs.get(project_id)
    if project_ref is None:
        logger.error(f"Worker {WORKER_ID}: unknown project {project_id}")
        return {"status": "failed", "error": f"unknown project {project_id}", "worker": WORKER_ID}

    logger.info(f"Worker {WORKER_ID} tracking {project_id}")
    try:
        await runner.run_project(project_ref)
    except Exception as e:
        logger.error(f"Tracking {project_id} failed: {e}", exc_info=True)
        return {"status": "failed", "error": str(e), "worker": WORKER_ID}

    return {"status": "success", "worker": WORKER_ID}


async def track_all(ctx: dict) -> Dict[str, Any]:
    """ARQ cron job: run the tracker for every enabled project"""
    global_config = get_global_config()
    runner: TrackerRunner = ctx['runner']

    project_refs = load_project_refs(global_config.projects.projects_path)
    results = await runner.run_all(project_refs)
    logger.info(f"Worker {WORKER_ID} tracked {len(results)} project(s)")
    return {"status": "success", "results": results, "worker": WORKER_ID}


def track_minutes(interval: int) -> Optional[Set[int]]:
    """
    Cron minutes for a tracking interval; None runs every minute.

    Raises:
        ValueError: the interval does not divide 60, so runs would not be
            evenly spaced
    """
    if interval <= 1:
        return None
    if interval > 60 or 60 % interval:
        raise ValueError(f"track interval must divide 60 minutes, got {interval}")
    return set(range(0, 60, interval))


# ARQ Worker class configuration
class WorkerSettings:
    """ARQ worker settings"""
    functions = [track_project]
    cron_jobs = [cron(track_all, minute=track_minutes(5), run_at_startup=True)]
    on_startup = startup
    on_shutdown = shutdown
    redis_settings = RedisSettings()
    max_jobs = 4
    job_timeout = 3600
    keep_result = 3600
