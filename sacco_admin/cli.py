"""Operational commands: schema creation, admin seeding, outbox draining"""

import asyncio
import click

from sacco_admin.config import settings
from sacco_admin.domain.models import UserRole, UserStatus
from sacco_admin.infrastructure.database.models import Base
from sacco_admin.infrastructure.database.repositories import UserRepository
from sacco_admin.infrastructure.database.session import SessionLocal, engine, session_scope
from sacco_admin.infrastructure.observability.logging import setup_logging
from sacco_admin.services.auth import hash_password
from sacco_admin.services.notifications import NotificationDispatcher


@click.group()
def cli():
    """SACCO admin back-office management commands."""
    setup_logging(settings.log_level, settings.service_name)


@cli.command("init-db")
def init_db():
    """Create all tables that do not exist yet."""
    Base.metadata.create_all(bind=engine)
    click.echo("Database tables created.")


@cli.command("seed-admin")
@click.option("--email", default=lambda: settings.admin_email, show_default="ADMIN_EMAIL")
@click.option("--password", default=lambda: settings.admin_password, show_default="ADMIN_PASSWORD")
@click.option("--rotate-password", is_flag=True, help="Reset the password of an existing admin.")
def seed_admin(email, password, rotate_password):
    """Create the admin account, or promote and refresh an existing one."""
    with session_scope() as db:
        users = UserRepository(db)
        existing = users.find_by_email(email)
        profile = {
            "role": UserRole.ADMIN.value,
            "status": UserStatus.ACTIVE.value,
            "first_name": settings.admin_first_name,
            "last_name": settings.admin_last_name,
            "phone_number": settings.admin_phone,
        }
        if existing:
            if rotate_password:
                profile["password"] = hash_password(password)
            users.update(existing, **profile)
            click.echo(f"[seed] Admin user updated: {email}")
        else:
            users.create(email=email, password=hash_password(password), **profile)
            click.echo(f"[seed] Admin user created: {email}")


@cli.command("dispatch-notifications")
def dispatch_notifications():
    """Deliver pending notifications from the outbox once."""
    delivered = asyncio.run(NotificationDispatcher(SessionLocal).dispatch_pending())
    click.echo(f"Delivered {delivered} notification(s).")


if __name__ == "__main__":
    cli()
