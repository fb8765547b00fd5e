"""
School Admin - Test Configuration and Fixtures
"""
import os
from datetime import datetime
from typing import AsyncGenerator

import mongomock
import pytest
from httpx import AsyncClient, ASGITransport
from faker import Faker

# Set testing environment before the app reads its settings
os.environ.pop('DATABASE_URL', None)
os.environ['ENVIRONMENT'] = 'test'
os.environ['BCRYPT_ROUNDS'] = '4'
os.environ['LOG_LEVEL'] = 'WARNING'

import database
from backend.main import app
from backend.security import get_password_hash, open_session

fake = Faker()

ADMIN_PASSWORD = 'Admin@1234'


@pytest.fixture
def mongo_db():
    """Fresh in-memory database per test"""
    db = database.init_db(mongomock.MongoClient(), 'school_admin_test')
    yield db
    database.close_db()


@pytest.fixture
async def client(mongo_db) -> AsyncGenerator[AsyncClient, None]:
    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url='http://test') as ac:
        yield ac


@pytest.fixture
def admin_user(mongo_db) -> dict:
    uid = database.create_document('user', {
        'fullName': fake.name(),
        'email': fake.unique.email(),
        'phone': '252615000001',
        'title': 'admin',
        'status': 'active',
        'password': get_password_hash(ADMIN_PASSWORD),
        'studentId': None,
    })
    return database.find_document('user', uid)


@pytest.fixture
def auth_headers(admin_user) -> dict:
    session = open_session(admin_user)
    return {'Authorization': f'Bearer {session.token}'}


@pytest.fixture
def department(mongo_db) -> dict:
    did = database.create_document('department', {'name': 'Computer Science'})
    return database.find_document('department', did)


@pytest.fixture
def school_class(department) -> dict:
    cid = database.create_document('class', {
        'departmentId': str(department['_id']),
        'semester': 1,
        'classMode': 'morning',
        'type': 'regular',
        'status': 'active',
    })
    return database.find_document('class', cid)


@pytest.fixture
def student(school_class) -> dict:
    sid = database.create_document('student', {
        'name': fake.name(),
        'gender': 'female',
        'parentPhone': '252615000002',
        'phone': '252615000003',
        'studentId': 1001,
        'classId': str(school_class['_id']),
        'status': 'active',
    })
    return database.find_document('student', sid)


def make_fee(student_id: str, amount: float, amount_paid: float, status: str, day: datetime) -> str:
    return database.create_document('fee', {
        'studentId': student_id,
        'financeType': 'tuition',
        'amount': amount,
        'amountPaid': amount_paid,
        'balance': amount - amount_paid,
        'status': status,
        'description': '',
        'date': day,
    })
