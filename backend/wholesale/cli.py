# Overview: Flask CLI command groups for bootstrap, inspection, and maintenance.

# backend/wholesale/cli.py
# Commands Legend (run from the backend directory):
# Prereqs:
# - Activate your virtualenv.
# - Set FLASK_APP to wsgi.py (PowerShell: $env:FLASK_APP="wsgi.py").
# - Use: python -m flask <group> <command> [options]
#
# System:
# - python -m flask system reset-db --yes
#   DEV/TEST only: drop and recreate all tables (deletes all data).
#
# Organization management:
# - python -m flask orgs list
#   List all organizations with profile/invoice counts.
# - python -m flask orgs create --name "Sahel Distribution"
#   Create an organization with default business settings.
#
# Profiles:
# - python -m flask users list [--org-id 1]
# - python -m flask users create --org-id 1 --email staff@example.com --password "Password123!" --role staff
#
# Invoice reconciliation:
# - python -m flask invoices audit [--org-id 1]
#   Report invoices whose paid_amount/payment_status disagree with their payments.
# - python -m flask invoices audit --fix
#   Recompute the drifted invoices (and their customers' outstanding balances).
#
# Maintenance:
# - python -m flask maintenance cleanup-sessions [--older-than-days 30]
#   Delete expired or revoked session tokens.
# - python -m flask maintenance cleanup-security-events --retention-days 90
#   Delete security events older than the retention window.
# - python -m flask maintenance cleanup-change-events --retention-days 90
#   Delete change feed events older than the retention window.

import click
from flask import current_app
from flask.cli import with_appcontext

from .extensions import db
from .models import Organization, Profile, Invoice, BusinessSettings
from .services import reconciliation
from .services.auth_service import create_profile, PasswordValidationError, SignUpError
from .services.change_feed import cleanup_change_events, record_row, EVENT_UPDATE
from .services.customer_service import refresh_outstanding_balance
from .services.invoice_service import invoices_for_audit, payment_amounts
from .services.security_service import cleanup_security_events
from .services.session_service import cleanup_expired_sessions


@click.group('system')
def system_group():
    """System bootstrap and repair commands."""


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

    click.echo("PASS Database reset complete. Sign up through POST /api/auth/sign-up or 'flask orgs create'.")


# =============================================================================
# ORGANIZATION MANAGEMENT COMMANDS
# =============================================================================

@click.group('orgs')
def orgs_group():
    """Organization (tenant) management commands."""


@orgs_group.command('list')
@with_appcontext
def list_orgs():
    """List all organizations."""
    orgs = db.session.query(Organization).order_by(Organization.id).all()

    if not orgs:
        click.echo("No organizations found.")
        return

    click.echo("\n" + "="*80)
    click.echo(f"{'ID':<5} {'Name':<35} {'Active':<8} {'Profiles':<10} {'Invoices'}")
    click.echo("="*80)

    for org in orgs:
        profile_count = db.session.query(Profile).filter_by(org_id=org.id).count()
        invoice_count = db.session.query(Invoice).filter_by(org_id=org.id).count()
        active_str = "Yes" if org.is_active else "No"

        click.echo(f"{org.id:<5} {org.name:<35} {active_str:<8} {profile_count:<10} {invoice_count}")

    click.echo("="*80 + "\n")


@orgs_group.command('create')
@click.option('--name', required=True, help='Organization (business) name')
@with_appcontext
def create_org_cli(name):
    """Create a new organization with default business settings."""
    org = Organization(name=name, is_active=True)
    db.session.add(org)
    db.session.flush()
    db.session.add(BusinessSettings(
        org_id=org.id,
        business_name=name,
        currency=current_app.config.get("DEFAULT_CURRENCY", "TND"),
    ))
    db.session.commit()

    click.echo(f"PASS Created organization: {org.name} (ID: {org.id})")


# =============================================================================
# PROFILE COMMANDS
# =============================================================================

@click.group('users')
def users_group():
    """Profile inspection and bootstrap commands."""


@users_group.command('create')
@click.option('--org-id', type=int, required=True, help='Organization ID')
@click.option('--email', prompt=True, help='Email address')
@click.option('--password', prompt=True, hide_input=True, confirmation_prompt=True, help='Password')
@click.option('--full-name', default=None, help='Display name')
@click.option('--role', type=click.Choice(['owner', 'staff']), default='staff', help='Role')
@with_appcontext
def create_user_cli(org_id, email, password, full_name, role):
    """Create a login profile inside an organization."""
    try:
        profile = create_profile(org_id, email, password, full_name, role=role)
    except (PasswordValidationError, SignUpError) as e:
        click.echo(f"FAIL {e}")
        return

    click.echo(f"PASS Created profile: {profile.email} (ID: {profile.id}, org {profile.org_id}, role {profile.role})")


@users_group.command('list')
@click.option('--org-id', type=int, help='Filter by organization ID')
@with_appcontext
def list_users(org_id):
    """List profiles."""
    query = db.session.query(Profile)

    if org_id:
        query = query.filter_by(org_id=org_id)

    profiles = query.order_by(Profile.id).all()

    if not profiles:
        click.echo("No profiles found.")
        return

    click.echo("\n" + "="*90)
    click.echo(f"{'ID':<5} {'Org':<5} {'Email':<35} {'Name':<25} {'Role':<8} {'Active'}")
    click.echo("="*90)

    for p in profiles:
        active_str = "Yes" if p.is_active else "No"
        click.echo(f"{p.id:<5} {p.org_id:<5} {p.email:<35} {(p.full_name or '-'):<25} {p.role:<8} {active_str}")

    click.echo("="*90 + "\n")


# =============================================================================
# INVOICE RECONCILIATION COMMANDS
# =============================================================================

@click.group('invoices')
def invoices_group():
    """Invoice balance inspection and repair."""


@invoices_group.command('audit')
@click.option('--org-id', type=int, help='Only audit this organization')
@click.option('--fix', is_flag=True, help='Recompute drifted invoices from their payments')
@with_appcontext
def audit_invoices(org_id, fix):
    """
    Compare every invoice with its payments.

    Drift is reported when paid_amount differs from the sum of payments or
    payment_status differs from the status that sum implies (manual
    overrides included).
    """
    checked = 0
    drifted = 0
    touched_customers = {}

    for invoice in invoices_for_audit(org_id).all():
        checked += 1
        amounts = payment_amounts(invoice.id)
        problems = reconciliation.check_consistency(reconciliation.InvoiceBalance.of(invoice), amounts)
        if not problems:
            continue

        drifted += 1
        for problem in problems:
            click.echo(f"DRIFT {invoice.invoice_number} (org {invoice.org_id}): {problem}")
            current_app.logger.warning("Invoice %s drift: %s", invoice.invoice_number, problem)

        if fix:
            fixed = reconciliation.reconcile(reconciliation.InvoiceBalance.of(invoice), amounts)
            invoice.paid_amount = fixed.paid_amount
            invoice.payment_status = fixed.payment_status
            db.session.flush()
            record_row(invoice.org_id, "invoices", EVENT_UPDATE, invoice)
            touched_customers[invoice.customer_id] = invoice.customer

    if fix and drifted:
        for customer in touched_customers.values():
            if customer is not None:
                refresh_outstanding_balance(customer)
        db.session.commit()
        click.echo(f"FIXED {drifted} invoice(s)")

    status = "FAIL" if drifted and not fix else "PASS"
    click.echo(f"{status} Checked {checked} invoice(s), {drifted} with drift")


# =============================================================================
# MAINTENANCE COMMANDS
# =============================================================================

@click.group('maintenance')
def maintenance_group():
    """Housekeeping commands."""


@maintenance_group.command('cleanup-sessions')
@click.option('--older-than-days', type=int, default=30, show_default=True)
@with_appcontext
def cleanup_sessions_cli(older_than_days):
    """Delete expired or revoked session tokens."""
    deleted = cleanup_expired_sessions(older_than_days)
    click.echo(f"PASS Deleted {deleted} session token(s)")


@maintenance_group.command('cleanup-security-events')
@click.option('--retention-days', type=int, default=90, show_default=True)
@with_appcontext
def cleanup_security_events_cli(retention_days):
    """Delete security events older than the retention window."""
    deleted = cleanup_security_events(retention_days)
    click.echo(f"PASS Deleted {deleted} security event(s)")


@maintenance_group.command('cleanup-change-events')
@click.option('--retention-days', type=int, default=90, show_default=True)
@with_appcontext
def cleanup_change_events_cli(retention_days):
    """Delete change feed events older than the retention window."""
    deleted = cleanup_change_events(retention_days)
    click.echo(f"PASS Deleted {deleted} change event(s)")


def register_commands(app):
    """Register all CLI commands with Flask app."""
    app.cli.add_command(system_group)
    app.cli.add_command(orgs_group)
    app.cli.add_command(users_group)
    app.cli.add_command(invoices_group)
    app.cli.add_command(maintenance_group)
