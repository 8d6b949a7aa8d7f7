import os

import pytest
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

os.environ.setdefault('DATABASE_URL', 'sqlite:///./test.db')

from ridesafe.auth.identity import IdentityAdapter, Principal  # noqa: E402
from ridesafe.auth.local_provider import LocalAuthProvider  # noqa: E402
from ridesafe.database import Base  # noqa: E402
from ridesafe.models import admin_code, admission, change_request, identity, sync_event, user  # noqa: E402,F401
from ridesafe.models.user import UserProfile, profile_id_for  # noqa: E402
from ridesafe.realtime.change_feed import ChangeFeed  # noqa: E402


@pytest.fixture
def session_factory():
    engine = create_engine(
        'sqlite://',
        connect_args={'check_same_thread': False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(bind=engine)
    factory = sessionmaker(autocommit=False, autoflush=False, bind=engine)
    try:
        yield factory
    finally:
        Base.metadata.drop_all(bind=engine)
        engine.dispose()


@pytest.fixture
def db(session_factory):
    session = session_factory()
    try:
        yield session
    finally:
        session.close()


@pytest.fixture
def change_feed(session_factory):
    feed = ChangeFeed(session_factory)
    try:
        yield feed
    finally:
        feed.close()


@pytest.fixture
def sent_codes():
    return []


@pytest.fixture
def identity_adapter(db, sent_codes):
    def mailer(email, purpose, code):
        sent_codes.append((email, purpose, code))

    return IdentityAdapter(LocalAuthProvider(db, mailer=mailer))


@pytest.fixture
def make_profile(db):
    def _make_profile(email='parent@example.com', role='user', verified=True, uid=None, **fields):
        uid = uid or email.split('@')[0]
        defaults = {'name': 'Parent', 'phone': '+91 90000 00000'}
        if role == 'user':
            defaults['student_name'] = 'John Doe'
        defaults.update(fields)
        profile = UserProfile(
            id=profile_id_for(uid, role),
            uid=uid,
            email=email,
            role=role,
            email_verified=verified,
            **defaults,
        )
        db.add(profile)
        db.commit()
        db.refresh(profile)
        return profile

    return _make_profile


@pytest.fixture
def principal():
    return Principal(uid='parent', email='parent@example.com', email_verified=True)


@pytest.fixture
def admission_form_data():
    return {
        'user_email': 'parent@example.com',
        'student_name': 'John Doe',
        'student_class': '5',
        'school_name': 'Green Valley School',
        'pickup_location': 'MG Road',
        'drop_location': 'Green Valley School Gate 2',
        'guardian_name': 'Jane Doe',
        'guardian_phone': '+91 98765 43210',
        'guardian_email': 'jane@example.com',
        'alternate_phone': '+91 91234 56789',
        'emergency_contact': '+91 90000 11111',
        'medical_conditions': 'Asthma',
        'special_requirements': 'Front seat',
    }
