# File: backend/geocheckin/cli.py
"""Flask CLI commands for database setup and eligibility checks."""
import asyncio
from datetime import time, timedelta

import click
from flask import Flask

from geocheckin import db


def register_cli(app: Flask) -> None:
    """Register CLI commands."""

    @app.cli.command('init-db')
    @click.option('--drop', is_flag=True, help='Drop existing tables')
    def init_db(drop):
        """Initialize the database."""
        if drop:
            db.drop_all()
            click.echo('Dropped all tables.')

        db.create_all()
        click.echo('Created all tables.')

    @app.cli.command('seed-demo')
    @click.option('--latitude', type=float, default=33.3152, show_default=True)
    @click.option('--longitude', type=float, default=44.3661, show_default=True)
    def seed_demo(latitude, longitude):
        """Create a demo location with an open session running now."""
        from geocheckin.models import AttendanceSession, ClassLocation
        from geocheckin.utils.helpers import current_time

        now = current_time()
        start = (now - timedelta(minutes=30)).time().replace(second=0, microsecond=0)
        end = (now + timedelta(hours=1)).time().replace(second=0, microsecond=0)
        if start >= end:
            start, end = time(0, 0), time(23, 59)

        try:
            location = ClassLocation(
                name='Demo Hall',
                address='Main Building, Ground Floor',
                latitude=latitude,
                longitude=longitude,
                radius_meters=app.config['DEFAULT_LOCATION_RADIUS_METERS']
            )
            location.save()

            session = AttendanceSession(
                course_id='DEMO-101',
                title='Demo lecture',
                date=now.date(),
                start_time=start,
                end_time=end,
                class_location_id=location.id,
                is_open=True
            )
            session.save()
        except Exception as e:
            db.session.rollback()
            raise click.ClickException(f'Error seeding database: {str(e)}')

        click.echo(f'Created location {location.id} and open session {session.id}.')

    @app.cli.command('evaluate-session')
    @click.argument('session_id', type=int)
    @click.option('--latitude', type=float, required=True)
    @click.option('--longitude', type=float, required=True)
    @click.option('--accuracy', type=float, default=None)
    @click.option('--student', 'student_id', default=None, help='Take this student\'s record into account')
    def evaluate_session(session_id, latitude, longitude, accuracy, student_id):
        """Evaluate whether a check-in from a position would be accepted now."""
        from geocheckin.domain import Coordinate
        from geocheckin.models import AttendanceRecord, AttendanceSession
        from geocheckin.services.eligibility_service import EligibilityService
        from geocheckin.services.location_provider import FixedLocationProvider
        from geocheckin.services.location_service import LocationService
        from geocheckin.services.session_lifecycle_service import SessionLifecycleService
        from geocheckin.utils.errors import InvalidCoordinate
        from geocheckin.utils.helpers import current_time, format_distance

        session = AttendanceSession.get_by_id(session_id)
        if session is None:
            raise click.ClickException(f'Session {session_id} not found')

        try:
            provider = FixedLocationProvider(Coordinate(latitude, longitude, accuracy))
        except InvalidCoordinate as e:
            raise click.BadParameter(str(e))

        location_service = LocationService.from_config(provider, app.config)
        location = asyncio.run(location_service.get_current_location())

        record = AttendanceRecord.find(session.id, student_id) if student_id else None
        now = current_time()
        info = session.to_domain()
        verdict = EligibilityService.evaluate(
            info,
            record.to_domain() if record else None,
            now,
            location.coordinate,
            app.config['LATE_CHECK_IN_GRACE_MINUTES']
        )

        click.echo(f'Session {info.id} ({info.title}) is {SessionLifecycleService.classify(info, now).value}')
        click.echo(f'Distance: {format_distance(verdict.distance_meters)} '
                   f'(allowed {format_distance(verdict.radius_meters)})')
        if verdict.can_attend:
            click.echo('Check-in would be accepted' + (' as late' if verdict.is_late else ''))
        else:
            click.echo(f'Check-in would be rejected: {verdict.to_error().message}')
