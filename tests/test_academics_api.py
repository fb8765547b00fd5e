"""
API Tests for departments, classes and faculties
"""
import pytest
from bson import ObjectId
from httpx import AsyncClient

import database


class TestDepartments:
    """Test department endpoints"""

    @pytest.mark.asyncio
    async def test_create_and_list(self, client: AsyncClient, auth_headers):
        response = await client.post('/departments', json={'name': 'Mathematics'}, headers=auth_headers)
        assert response.status_code == 201
        assert response.json()['name'] == 'Mathematics'

        await client.post('/departments', json={'name': 'Physics'}, headers=auth_headers)
        listed = await client.get('/departments', headers=auth_headers)

        assert listed.status_code == 200
        assert [d['name'] for d in listed.json()] == ['Physics', 'Mathematics']

    @pytest.mark.asyncio
    async def test_duplicate_name_rejected(self, client: AsyncClient, auth_headers, department):
        response = await client.post('/departments', json={'name': department['name']}, headers=auth_headers)
        assert response.status_code == 400
        assert response.json()['code'] == 'DUPLICATE'

    @pytest.mark.asyncio
    async def test_missing_name(self, client: AsyncClient, auth_headers):
        response = await client.post('/departments', json={'name': '  '}, headers=auth_headers)
        assert response.status_code == 400
        assert response.json()['details']['fields'] == ['name']

    @pytest.mark.asyncio
    async def test_delete_does_not_cascade(self, client: AsyncClient, auth_headers, school_class, department):
        response = await client.delete(f"/departments?id={department['_id']}", headers=auth_headers)
        assert response.status_code == 200
        assert response.json() == {'success': True}

        classes = await client.get('/classes', headers=auth_headers)
        assert len(classes.json()) == 1
        assert classes.json()[0]['departmentId'] is None

    @pytest.mark.asyncio
    async def test_update_without_id(self, client: AsyncClient, auth_headers):
        response = await client.put('/departments', json={'name': 'X'}, headers=auth_headers)
        assert response.status_code == 400
        assert response.json()['code'] == 'MISSING_ID'

    @pytest.mark.asyncio
    async def test_rename_to_existing_name_rejected(self, client: AsyncClient, auth_headers, department):
        other = (await client.post('/departments', json={'name': 'Physics'}, headers=auth_headers)).json()

        response = await client.put(
            f"/departments?id={other['id']}", json={'name': department['name']}, headers=auth_headers
        )

        assert response.status_code == 400
        assert response.json()['code'] == 'DUPLICATE'
        assert database.find_document('department', other['id'])['name'] == 'Physics'


class TestClasses:
    """Test class endpoints"""

    @pytest.mark.asyncio
    async def test_create_expands_department(self, client: AsyncClient, auth_headers, department):
        payload = {
            'departmentId': str(department['_id']),
            'semester': 3,
            'classMode': 'evening',
            'type': 'regular',
        }
        response = await client.post('/classes', json=payload, headers=auth_headers)

        assert response.status_code == 201
        body = response.json()
        assert body['departmentId'] == {'id': str(department['_id']), 'name': 'Computer Science'}
        assert body['status'] == 'active'
        assert 'createdAt' in body

    @pytest.mark.asyncio
    async def test_unknown_department_is_not_found_and_not_persisted(self, client: AsyncClient, auth_headers):
        payload = {'departmentId': str(ObjectId()), 'semester': 1, 'classMode': 'morning', 'type': 'regular'}
        response = await client.post('/classes', json=payload, headers=auth_headers)

        assert response.status_code == 404
        assert response.json()['error'] == 'Department not found'
        assert database.collection('class').count_documents({}) == 0

    @pytest.mark.asyncio
    async def test_malformed_department_id(self, client: AsyncClient, auth_headers):
        payload = {'departmentId': 'not-an-id', 'semester': 1, 'classMode': 'morning', 'type': 'regular'}
        response = await client.post('/classes', json=payload, headers=auth_headers)
        assert response.status_code == 400
        assert response.json()['code'] == 'INVALID_ID'

    @pytest.mark.asyncio
    async def test_missing_fields(self, client: AsyncClient, auth_headers, department):
        response = await client.post('/classes', json={'departmentId': str(department['_id'])}, headers=auth_headers)
        assert response.status_code == 400
        assert set(response.json()['details']['fields']) == {'semester', 'classMode', 'type'}

    @pytest.mark.asyncio
    async def test_update_merges_fields(self, client: AsyncClient, auth_headers, school_class):
        response = await client.put(
            f"/classes?id={school_class['_id']}",
            json={'semester': 4, 'status': 'inactive'},
            headers=auth_headers,
        )
        assert response.status_code == 200
        body = response.json()
        assert body['semester'] == 4
        assert body['status'] == 'inactive'
        assert body['classMode'] == 'morning'

    @pytest.mark.asyncio
    async def test_update_accepts_id_in_body(self, client: AsyncClient, auth_headers, school_class):
        response = await client.put('/classes', json={'id': str(school_class['_id']), 'type': 'weekend'}, headers=auth_headers)
        assert response.status_code == 200
        assert response.json()['type'] == 'weekend'

    @pytest.mark.asyncio
    async def test_update_checks_new_department(self, client: AsyncClient, auth_headers, school_class):
        response = await client.put(
            f"/classes?id={school_class['_id']}",
            json={'departmentId': str(ObjectId())},
            headers=auth_headers,
        )
        assert response.status_code == 404
        stored = database.find_document('class', school_class['_id'])
        assert stored['departmentId'] == school_class['departmentId']

    @pytest.mark.asyncio
    async def test_delete_unknown(self, client: AsyncClient, auth_headers):
        response = await client.delete(f'/classes?id={ObjectId()}', headers=auth_headers)
        assert response.status_code == 404


class TestFaculties:
    """Test faculty endpoints"""

    @pytest.mark.asyncio
    async def test_create_and_list(self, client: AsyncClient, auth_headers, department):
        response = await client.post(
            '/faculties',
            json={'name': 'Dr. Warsame', 'departmentId': str(department['_id'])},
            headers=auth_headers,
        )
        assert response.status_code == 201

        listed = await client.get('/faculties', headers=auth_headers)
        assert listed.json()[0]['departmentId']['name'] == 'Computer Science'

    @pytest.mark.asyncio
    async def test_unknown_department(self, client: AsyncClient, auth_headers):
        response = await client.post(
            '/faculties',
            json={'name': 'Dr. Warsame', 'departmentId': str(ObjectId())},
            headers=auth_headers,
        )
        assert response.status_code == 404

    @pytest.fixture
    def faculty(self, department) -> dict:
        fid = database.create_document('faculty', {
            'name': 'Dr. Warsame',
            'departmentId': str(department['_id']),
            'email': 'warsame@example.com',
            'phone': '252615000020',
            'status': 'active',
        })
        return database.find_document('faculty', fid)

    @pytest.mark.asyncio
    async def test_update_merges_fields(self, client: AsyncClient, auth_headers, faculty):
        response = await client.put(f"/faculties?id={faculty['_id']}", json={'status': 'inactive'}, headers=auth_headers)

        assert response.status_code == 200
        body = response.json()
        assert body['status'] == 'inactive'
        assert body['email'] == 'warsame@example.com'
        assert body['departmentId']['name'] == 'Computer Science'

    @pytest.mark.asyncio
    async def test_update_clears_optional_contact(self, client: AsyncClient, auth_headers, faculty):
        response = await client.put(
            f"/faculties?id={faculty['_id']}", json={'email': None, 'phone': None}, headers=auth_headers
        )

        assert response.status_code == 200
        assert response.json()['email'] is None
        stored = database.find_document('faculty', faculty['_id'])
        assert stored['email'] is None
        assert stored['phone'] is None
        assert stored['name'] == 'Dr. Warsame'

    @pytest.mark.asyncio
    async def test_null_name_is_ignored(self, client: AsyncClient, auth_headers, faculty):
        response = await client.put(f"/faculties?id={faculty['_id']}", json={'name': None}, headers=auth_headers)
        assert response.status_code == 200
        assert response.json()['name'] == 'Dr. Warsame'

    @pytest.mark.asyncio
    async def test_update_checks_new_department(self, client: AsyncClient, auth_headers, faculty):
        response = await client.put(
            f"/faculties?id={faculty['_id']}",
            json={'departmentId': str(ObjectId())},
            headers=auth_headers,
        )

        assert response.status_code == 404
        assert response.json()['error'] == 'Department not found'
        stored = database.find_document('faculty', faculty['_id'])
        assert stored['departmentId'] == faculty['departmentId']

    @pytest.mark.asyncio
    async def test_delete(self, client: AsyncClient, auth_headers, faculty):
        response = await client.delete(f"/faculties?id={faculty['_id']}", headers=auth_headers)
        assert response.status_code == 200
        assert response.json() == {'success': True}
        assert database.collection('faculty').count_documents({}) == 0

    @pytest.mark.asyncio
    async def test_delete_unknown(self, client: AsyncClient, auth_headers, faculty):
        response = await client.delete(f'/faculties?id={ObjectId()}', headers=auth_headers)

        assert response.status_code == 404
        assert response.json()['error'] == 'Faculty not found'
        assert database.collection('faculty').count_documents({}) == 1
