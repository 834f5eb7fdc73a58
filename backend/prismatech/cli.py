# Overview: Flask CLI command groups for bootstrap, inspection, and maintenance.

# backend/prismatech/cli.py
# Commands Legend (run from the backend directory):
# Prereqs:
# - Activate your virtualenv.
# - Set FLASK_APP to wsgi.py (PowerShell: $env:FLASK_APP="wsgi.py").
# - Use: python -m flask <group> <command> [options]
#
# System bootstrap/repair:
# - python -m flask system init
#   Idempotent bootstrap: creates tables, default users and default categories.
# - python -m flask system reset-db --yes
#   DEV/TEST only: drop and recreate all tables (deletes all data).
#
# Users:
# - python -m flask users list
# - python -m flask users create --username ana --email ana@prismatech.local --password "Password123" --role employee
#
# Sessions:
# - python -m flask sessions cleanup
#   Deactivate sessions past their expiry.

import click
from flask.cli import with_appcontext

from .extensions import db
from .models import Category, ROLES
from .services.auth_service import create_user, ensure_user, list_users as list_all_users
from .services.categories_service import DEFAULT_CATEGORY_ICON
from .services.products_service import unique_slug
from .services.session_service import cleanup_expired_sessions
from .validation import ApiError


DEFAULT_PASSWORD = "Password123"

DEFAULT_USERS = (
    ("admin", "admin@prismatech.local", "admin", "Administrador"),
    ("manager", "manager@prismatech.local", "manager", "Gerente"),
    ("employee", "employee@prismatech.local", "employee", "Vendedor"),
)

DEFAULT_CATEGORIES = (
    ("Pantallas", "Displays LCD, LED, OLED", "fas fa-tv"),
    ("Teclados", "Teclados de reemplazo", "fas fa-keyboard"),
    ("Baterías", "Baterías para laptops", "fas fa-battery-three-quarters"),
    ("Cargadores", "Adaptadores de corriente", "fas fa-plug"),
    ("Memorias", "RAM DDR3, DDR4, DDR5", "fas fa-memory"),
    ("Almacenamiento", "SSD, HDD, M.2 NVMe", "fas fa-hdd"),
)


@click.group('system')
def system_group():
    """System bootstrap and repair commands."""


@system_group.command('init')
@with_appcontext
def init_system():
    """
    Initialize PrismaTech: schema, default users and default categories.

    Creates:
    - Users: admin, manager, employee (password "Password123")
    - Categories: Pantallas, Teclados, Baterías, Cargadores, Memorias, Almacenamiento

    SECURITY: Change passwords immediately in production!
    """
    click.echo("START Initializing PrismaTech...")
    db.create_all()

    for username, email, role, full_name in DEFAULT_USERS:
        user, created = ensure_user(username, email, DEFAULT_PASSWORD, role, full_name)
        status = "Created" if created else "Exists "
        click.echo(f"PASS {status} user: {user.username:<10} ({user.role})")

    for name, description, icon in DEFAULT_CATEGORIES:
        if db.session.query(Category).filter_by(name=name).first():
            click.echo(f"PASS Exists  category: {name}")
            continue
        db.session.add(Category(
            name=name,
            slug=unique_slug(Category, name),
            description=description,
            icon=icon or DEFAULT_CATEGORY_ICON,
            status="active",
        ))
        db.session.flush()
        click.echo(f"PASS Created category: {name}")
    db.session.commit()

    click.echo("\nDONE PrismaTech initialized.")
    click.echo(f"   Default password for seeded users: {DEFAULT_PASSWORD}")


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

    click.echo("PASS Database reset complete. Run 'python -m flask system init' to initialize.")


@click.group('users')
def users_group():
    """User inspection and bootstrap commands."""


@users_group.command('create')
@click.option('--username', prompt=True, help='Username')
@click.option('--email', prompt=True, help='Email address')
@click.option('--password', prompt=True, hide_input=True, confirmation_prompt=True, help='Password')
@click.option('--role', type=click.Choice(list(ROLES)), prompt=True, help='Role')
@click.option('--full-name', default=None, help='Display name')
@with_appcontext
def create_user_cli(username, email, password, role, full_name):
    """
    Create a new user.

    Password must be at least 8 characters with an uppercase letter, a
    lowercase letter and a digit.
    """
    try:
        user = create_user(username, email, password, role=role, full_name=full_name)
    except ApiError as e:
        click.echo(f"FAIL {e.message}")
        for problem in (e.details or {}).get("errors", []):
            click.echo(f"     {problem['field']}: {problem['message']}")
        raise SystemExit(1)

    click.echo(f"PASS Created user: {user.username} ({user.email}) with role '{user.role}'")


@users_group.command('list')
@with_appcontext
def list_users():
    """List all users with their roles."""
    users = list_all_users()
    if not users:
        click.echo("No users found.")
        return

    click.echo("\n" + "=" * 80)
    click.echo(f"{'ID':<5} {'Username':<20} {'Email':<32} {'Role':<10} {'Status'}")
    click.echo("=" * 80)
    for user in users:
        click.echo(f"{user.id:<5} {user.username:<20} {user.email:<32} {user.role:<10} {user.status}")
    click.echo("=" * 80 + "\n")


@click.group('sessions')
def sessions_group():
    """Session maintenance commands."""


@sessions_group.command('cleanup')
@with_appcontext
def cleanup_sessions():
    """Deactivate every session past its expiry."""
    count = cleanup_expired_sessions()
    click.echo(f"PASS Deactivated {count} expired session(s)")


def register_commands(app):
    app.cli.add_command(system_group)
    app.cli.add_command(users_group)
    app.cli.add_command(sessions_group)
