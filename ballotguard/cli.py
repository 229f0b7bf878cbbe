# ballotguard/cli.py

# Operator commands: flask --app ballotguard:create_app <command>

from datetime import date

import click
from flask import current_app
from flask.cli import with_appcontext

from ballotguard import db
from ballotguard.authentication.mfa import ChallengeGenerator
from ballotguard.database.models import User, VoterProfile


def register_commands(app):
    app.cli.add_command(init_db)
    app.cli.add_command(create_voter)
    app.cli.add_command(attest_pending)


@click.command('init-db')
@with_appcontext
def init_db():
    """Create all tables (development; use `flask db upgrade` in production)."""
    db.create_all()
    click.echo("Database tables created.")


@click.command('create-voter')
@click.option('--email', required=True)
@click.option('--password', required=True, prompt=True, hide_input=True)
@click.option('--name', required=True)
@click.option('--address', default='')
@click.option('--dob', type=click.DateTime(formats=['%Y-%m-%d']), required=True)
@click.option('--voter-id', default=None)
@with_appcontext
def create_voter(email, password, name, address, dob, voter_id):
    """Create a verified user with a verified voter profile."""
    svc = current_app.extensions['ballotguard']
    user = User(
        email=email.lower(),
        password_hash=svc.password_service.hash_password(password),
        mfa_secret=ChallengeGenerator.generate_secret(),
        is_verified=True,
    )
    db.session.add(user)
    db.session.flush()
    db.session.add(VoterProfile(
        user_id=user.id,
        name=name,
        address=address,
        dob=date(dob.year, dob.month, dob.day),
        voter_id=voter_id,
        is_verified=True,
    ))
    db.session.commit()
    click.echo(f"Voter {user.email} created (user id {user.id}).")


@click.command('attest-pending')
@with_appcontext
def attest_pending():
    """Attach attestation references to votes stored without one."""
    attached = current_app.extensions['ballotguard'].casting.attach_pending_attestations()
    click.echo(f"Attested {attached} vote(s).")
