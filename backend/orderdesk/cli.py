# Overview: Flask CLI command groups for bootstrap, user management and offline sync.

# backend/orderdesk/cli.py
# Commands Legend (run from the backend directory):
# Prereqs:
# - Activate your virtualenv.
# - Set FLASK_APP to orderdesk (PowerShell: $env:FLASK_APP="orderdesk").
# - Use: python -m flask <group> <command> [options]
#
# System bootstrap/repair:
# - python -m flask system init-db
#   Create all tables (idempotent).
# - python -m flask system reset-db --yes
#   DEV/TEST only: drop and recreate all tables (deletes all data).
#
# Users:
# - python -m flask users list
#   List all users with role and active status.
# - python -m flask users create --username courier1 --password "Courier123" --role courier
#   Create a user (prompts if options are omitted).
# - python -m flask users deactivate courier1
#   Disable an account and revoke its open sessions (activate re-enables).
# - python -m flask users roles
#   Show the permission codes granted to each role.
#
# Courier device queue:
# - python -m flask offline pending
#   Show actions waiting in the local offline queue.
# - python -m flask offline sync --token <bearer token>
#   Replay pending actions against API_BASE_URL in enqueue order.

import click
from flask import current_app
from flask.cli import with_appcontext

from .errors import OrderDeskError
from .extensions import db
from .models import ROLES, User
from .offline import HttpDispatcher, OfflineActionQueue, replay_pending
from .permissions import get_permission_definition, get_role_permissions
from .services.auth_service import PasswordValidationError, create_user, set_user_active
from .time_utils import to_utc_z


@click.group('system')
def system_group():
    """System bootstrap and repair commands."""


@system_group.command('init-db')
@with_appcontext
def init_db():
    """Create all tables that do not exist yet."""
    db.create_all()
    click.echo("PASS Database schema is up to date.")


@system_group.command('reset-db')
@click.option('--yes', is_flag=True, help='Skip confirmation')
@with_appcontext
def reset_db(yes):
    """
    DANGER: Drop all tables and recreate schema.

    This will DELETE ALL DATA!
    """
    if not yes:
        click.confirm("WARN This will DELETE ALL DATA. Are you sure?", abort=True)

    click.echo("DELETE  Dropping all tables...")
    db.drop_all()

    click.echo("BUILD  Creating all tables...")
    db.create_all()

    click.echo("PASS Database reset complete. Run 'python -m flask users create' to add an admin.")


@click.group('users')
def users_group():
    """User management commands."""


@users_group.command('create')
@click.option('--username', prompt=True, help='Username')
@click.option('--name', default=None, help='Display name')
@click.option('--password', prompt=True, hide_input=True, confirmation_prompt=True, help='Password')
@click.option('--role', type=click.Choice(ROLES), prompt=True, help='Role')
@with_appcontext
def create_user_cli(username, name, password, role):
    """
    Create a new user.

    Password must be at least 8 characters with a letter and a digit.
    """
    try:
        user = create_user(username=username, password=password, role=role, name=name)
    except PasswordValidationError as e:
        raise click.ClickException(f"Password validation failed: {e.message}")
    except OrderDeskError as e:
        raise click.ClickException(f"Failed to create user: {e.message}")

    click.echo(f"PASS Created user: {user.username} with role '{user.role}' (ID: {user.id})")
    click.echo("SECURITY Password securely hashed with bcrypt")


@users_group.command('list')
@click.option('--role', type=click.Choice(ROLES), default=None, help='Filter by role')
@with_appcontext
def list_users(role):
    """List all users with their roles."""
    query = db.session.query(User)
    if role:
        query = query.filter_by(role=role)

    users = query.order_by(User.username).all()

    if not users:
        click.echo("No users found.")
        return

    click.echo("\n" + "="*90)
    click.echo(f"{'ID':<34} {'Username':<20} {'Role':<15} {'Active':<8} {'Name'}")
    click.echo("="*90)

    for user in users:
        active_str = "Yes" if user.is_active else "No"
        click.echo(f"{user.id:<34} {user.username:<20} {user.role:<15} {active_str:<8} {user.name or '-'}")

    click.echo("="*90 + "\n")


@users_group.command('deactivate')
@click.argument('username')
@with_appcontext
def deactivate_user_cli(username):
    """Disable an account and revoke its sessions."""
    try:
        user = set_user_active(username, False)
    except OrderDeskError as e:
        raise click.ClickException(e.message)
    click.echo(f"PASS Deactivated {user.username}")


@users_group.command('activate')
@click.argument('username')
@with_appcontext
def activate_user_cli(username):
    """Re-enable a deactivated account."""
    try:
        user = set_user_active(username, True)
    except OrderDeskError as e:
        raise click.ClickException(e.message)
    click.echo(f"PASS Activated {user.username}")

@users_group.command('roles')
def list_roles():
    """Show the permission codes granted to each role."""
    for role in ROLES:
        click.echo(f"\n{role}")
        for code in sorted(get_role_permissions(role)):
            definition = get_permission_definition(code)
            click.echo(f"  {code:<24} {definition['name']}")


@click.group('offline')
def offline_group():
    """Courier device offline queue."""


def _open_queue(url):
    return OfflineActionQueue(url or current_app.config["OFFLINE_QUEUE_URL"])


@offline_group.command('pending')
@click.option('--queue-url', default=None, help='Queue database URL (default: OFFLINE_QUEUE_URL)')
@with_appcontext
def pending_cli(queue_url):
    """Show actions waiting to be replayed."""
    queue = _open_queue(queue_url)
    try:
        actions = queue.list_pending()
    finally:
        queue.close()

    if not actions:
        click.echo("No pending actions.")
        return

    click.echo(f"{'ID':<6} {'Type':<18} {'Created':<22} {'Attempts':<9} {'Last error'}")
    for action in actions:
        click.echo(
            f"{action.id:<6} {action.type:<18} {to_utc_z(action.created_at):<22} "
            f"{action.attempts:<9} {action.last_error or '-'}"
        )


@offline_group.command('sync')
@click.option('--token', envvar='ORDERDESK_TOKEN', required=True, help='Bearer token of the courier')
@click.option('--base-url', default=None, help='API base URL (default: API_BASE_URL)')
@click.option('--queue-url', default=None, help='Queue database URL (default: OFFLINE_QUEUE_URL)')
@with_appcontext
def sync_cli(token, base_url, queue_url):
    """Replay pending actions in enqueue order."""
    queue = _open_queue(queue_url)
    dispatcher = HttpDispatcher(
        base_url or current_app.config["API_BASE_URL"],
        token,
        timeout=current_app.config["API_TIMEOUT_SECONDS"],
    )
    try:
        report = replay_pending(queue, dispatcher)
    finally:
        dispatcher.close()
        queue.close()

    click.echo(f"PASS Synced {len(report.synced)} action(s)")
    for failure in report.failed:
        click.echo(f"FAIL Action {failure.action_id} ({failure.type}): {failure.code} {failure.error}")
    if report.offline:
        click.echo("WARN API unreachable; remaining actions stay queued")
    click.echo(f"{report.remaining} action(s) still pending")


def register_commands(app):
    """Register all CLI commands with Flask app."""
    app.cli.add_command(system_group)
    app.cli.add_command(users_group)
    app.cli.add_command(offline_group)
