"""
Scheduler for the periodic metrics sync

Uses APScheduler to run sync_all() for every connected tenant on a fixed
interval. Manual triggers and dashboard bootstraps share the same per-platform
lease, so overlapping runs never double-fetch a platform.
"""
from apscheduler.schedulers.asyncio import AsyncIOScheduler
from apscheduler.triggers.interval import IntervalTrigger
import asyncio
import sys
import time

from adprofit.config import get_settings
from adprofit.services.sync_service import get_sync_service
from adprofit.utils.logger import log

settings = get_settings()
scheduler = AsyncIOScheduler()


async def sync_all_tenants():
    """Sync every tenant with a connection (interval job)"""
    start = time.time()
    try:
        log.info("Starting scheduled sync for all tenants...")
        result = await get_sync_service().sync_all()
        log.info(
            f"Scheduled sync completed: {result['tenants'] - result['failed']}/{result['tenants']} "
            f"tenants in {time.time() - start:.1f}s"
        )
        return result
    except Exception as e:
        log.error(f"Scheduled sync error: {str(e)}")
        return {"tenants": 0, "failed": 0, "error": str(e)}


def setup_scheduler():
    """
    Configure the scheduler.

    Sync Frequencies:
    - All tenants: every settings.sync_interval_hours (default 4h)
    """
    scheduler.add_job(
        sync_all_tenants,
        trigger=IntervalTrigger(hours=settings.sync_interval_hours),
        id='metrics_sync_all',
        name='Metrics Cache Sync (all tenants)',
        replace_existing=True,
        max_instances=1
    )

    log.info(f"Scheduler configured: full sync every {settings.sync_interval_hours}h")


def start_scheduler():
    """Start the scheduler"""
    setup_scheduler()
    scheduler.start()
    log.info("Scheduler started")


def stop_scheduler():
    """Stop the scheduler"""
    if scheduler.running:
        scheduler.shutdown()
        log.info("Scheduler stopped")


def run_sync_now(tenant_id: int = None) -> dict:
    """
    Manually run a sync outside the schedule

    Args:
        tenant_id: Sync only this tenant; all tenants when omitted

    Returns:
        Dict with sync results
    """
    try:
        if tenant_id is None:
            log.info("Manually triggering full sync...")
            result = asyncio.run(sync_all_tenants())
            return {'success': True, 'message': 'Full sync completed', 'result': result}

        log.info(f"Manually triggering sync for tenant {tenant_id}...")
        results = asyncio.run(get_sync_service().sync_tenant(tenant_id))
        return {
            'success': True,
            'message': f'Tenant {tenant_id} sync completed',
            'result': {platform: r.status for platform, r in results.items()},
        }

    except Exception as e:
        log.error(f"Error triggering sync: {str(e)}")
        return {
            'success': False,
            'error': str(e)
        }


def get_scheduled_jobs() -> list:
    """
    Get list of all scheduled jobs

    Returns:
        List of job info dicts
    """
    jobs = []

    for job in scheduler.get_jobs():
        next_run = job.next_run_time

        jobs.append({
            'id': job.id,
            'name': job.name,
            'next_run': next_run.isoformat() if next_run else None,
            'trigger': str(job.trigger)
        })

    return jobs


if __name__ == "__main__":
    if len(sys.argv) < 2:
        print("Usage: python -m adprofit.scheduler <command>")
        print("Commands:")
        print("  sync [tenant_id]  - Run a sync now")
        print("  list              - List scheduled jobs")
        sys.exit(1)

    command = sys.argv[1]

    if command == "sync":
        tenant = int(sys.argv[2]) if len(sys.argv) > 2 else None
        result = run_sync_now(tenant)

        if result['success']:
            print(f"✓ {result['message']}")
        else:
            print(f"✗ Error: {result['error']}")
            sys.exit(1)

    elif command == "list":
        setup_scheduler()
        print("\nScheduled Jobs:")
        print("-" * 80)

        for job in get_scheduled_jobs():
            print(f"\nID:       {job['id']}")
            print(f"Name:     {job['name']}")
            print(f"Next Run: {job['next_run']}")
            print(f"Trigger:  {job['trigger']}")

    else:
        print(f"Unknown command: {command}")
        sys.exit(1)
