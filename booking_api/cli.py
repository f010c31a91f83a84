"""CLI tools for booking administration."""

import asyncio
from uuid import UUID

import click

from booking_api.core.clock import SystemClock
from booking_api.core.config import settings
from booking_api.db.enums import ActionTokenEntity
from booking_api.db.session import SessionLocal
from booking_api.services import appointment_service, job_service
from booking_api.services.action_token_service import ActionTokenRegistry, purge_expired_tokens
from booking_api.services.appointment_email_service import action_link_variables


@click.group()
def cli():
    """Booking CLI tools."""
    pass


@cli.command()
def run_worker():
    """Start the background job worker (same as python -m booking_api.worker)."""
    from booking_api.worker import main

    main()


@cli.command()
@click.option("--limit", default=None, type=int, help="Max jobs to process (default: batch size)")
def run_once(limit: int | None):
    """Process a single batch of due jobs and exit."""
    from booking_api.worker import BATCH_SIZE, run_batch

    with SessionLocal() as db:
        processed = asyncio.run(run_batch(db, limit or BATCH_SIZE))
    click.echo(f"✓ Processed {processed} jobs")


@cli.command()
@click.option(
    "--minutes",
    default=settings.WORKER_STALE_JOB_MINUTES,
    show_default=True,
    help="Requeue jobs running longer than this",
)
def requeue_stale_jobs(minutes: int):
    """Put jobs stuck in running (crashed worker) back in the queue."""
    with SessionLocal() as db:
        count = job_service.requeue_stale_jobs(db, minutes)
    click.echo(f"✓ Requeued {count} stale jobs")


@cli.command()
@click.option("--appointment-id", required=True, type=click.UUID, help="Appointment ID")
def issue_action_tokens(appointment_id: UUID):
    """
    Mint fresh accept/reject/reschedule links for an appointment.

    Useful when the admin notification email was lost or its links expired.

    Example:
        python -m booking_api.cli issue-action-tokens --appointment-id <uuid>
    """
    db = SessionLocal()
    try:
        appointment = appointment_service.get_appointment(db, appointment_id)
        if not appointment:
            click.echo(f"❌ Appointment {appointment_id} not found")
            raise SystemExit(1)

        registry = ActionTokenRegistry(db, SystemClock())
        links = registry.create_action_links(ActionTokenEntity.APPOINTMENT, appointment.id)
        db.commit()

        urls = action_link_variables(
            appointment, links.accept_token, links.reject_token, links.reschedule_token
        )
        click.echo(f"✓ Issued action links for appointment {appointment.id} ({appointment.status})")
        click.echo(f"  Accept:     {urls['accept_url']}")
        click.echo(f"  Reject:     {urls['reject_url']}")
        click.echo(f"  Reschedule: {urls['reschedule_url']}")
        click.echo(f"→ Links expire in {registry.ttl_hours} hours and work once")
    finally:
        db.close()


@cli.command()
def purge_action_tokens():
    """Delete used and expired action tokens."""
    with SessionLocal() as db:
        deleted = purge_expired_tokens(db, SystemClock().now())
    click.echo(f"✓ Deleted {deleted} action tokens")


if __name__ == "__main__":
    cli()
