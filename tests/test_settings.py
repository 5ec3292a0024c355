import hashlib
import os

from models import hash_password, verify_password
from security import resolve_wholesale_access

PASSWORD = 'abcd'


def test_fresh_install_has_no_passwords(client):
    assert client.get('/api/settings').get_json() == {'hasPassword': False, 'hasMasterPassword': False}


def test_setup_then_verify(client):
    assert client.post('/api/settings/setup', json={'password': 'abcd'}).get_json() == {'success': True}
    assert client.post('/api/settings/verify', json={'password': 'abcd'}).get_json() == {'valid': True}
    assert client.post('/api/settings/verify', json={'password': 'wrong'}).get_json() == {'valid': False}
    assert client.get('/api/settings').get_json()['hasPassword'] is True


def test_setup_only_once(client, auth_headers):
    resp = client.post('/api/settings/setup', json={'password': 'other'})
    assert resp.status_code == 400
    assert resp.get_json()['message'] == 'Password already set'


def test_setup_needs_a_password(client):
    assert client.post('/api/settings/setup', json={'password': ''}).status_code == 400
    assert client.post('/api/settings/setup', json={}).status_code == 400


def test_verify_before_setup(client):
    resp = client.post('/api/settings/verify', json={'password': 'abcd'})
    assert resp.status_code == 400
    assert resp.get_json()['message'] == 'Setup required'


def test_change_password(client, auth_headers):
    resp = client.post('/api/settings/change-password', json={'oldPassword': 'bad', 'newPassword': 'efgh'})
    assert resp.status_code == 401
    resp = client.post('/api/settings/change-password', json={'oldPassword': PASSWORD, 'newPassword': 'efgh'})
    assert resp.status_code == 200
    assert client.post('/api/settings/verify', json={'password': 'efgh'}).get_json()['valid'] is True
    assert client.post('/api/settings/verify', json={'password': PASSWORD}).get_json()['valid'] is False


def test_reset_without_master_password(client, auth_headers):
    assert client.post('/api/settings/reset', json={}).status_code == 200
    assert client.get('/api/settings').get_json()['hasPassword'] is False
    # writes are open again until a new password is set
    assert client.post('/api/categories', json={'name': 'x'}).status_code == 201


def test_reset_before_setup(client):
    assert client.post('/api/settings/reset', json={}).status_code == 400


def test_master_password_guards_reset(client, auth_headers):
    assert client.post('/api/settings/master-password', json={'masterPassword': 'm1'}).status_code == 403
    resp = client.post('/api/settings/master-password', json={'masterPassword': 'm1'}, headers=auth_headers)
    assert resp.status_code == 200
    assert client.get('/api/settings').get_json() == {'hasPassword': True, 'hasMasterPassword': True}

    assert client.post('/api/settings/reset', json={}).status_code == 401
    assert client.post('/api/settings/reset', json={'masterPassword': 'nope'}).status_code == 401
    assert client.post('/api/settings/reset', json={'masterPassword': 'm1'}).status_code == 200
    assert client.get('/api/settings').get_json()['hasPassword'] is False


def test_changing_master_password_needs_current_one(client, auth_headers):
    client.post('/api/settings/master-password', json={'masterPassword': 'm1'}, headers=auth_headers)
    resp = client.post('/api/settings/master-password', json={'masterPassword': 'm2'}, headers=auth_headers)
    assert resp.status_code == 401
    resp = client.post('/api/settings/master-password',
                       json={'masterPassword': 'm2', 'currentMasterPassword': 'm1'}, headers=auth_headers)
    assert resp.status_code == 200
    assert client.post('/api/settings/reset', json={'masterPassword': 'm2'}).status_code == 200


def test_master_reset_works_once(client, auth_headers):
    assert client.post('/api/settings/reset-master-once', headers=auth_headers).status_code == 400
    client.post('/api/settings/master-password', json={'masterPassword': 'm1'}, headers=auth_headers)
    assert client.post('/api/settings/reset-master-once').status_code == 403

    assert client.post('/api/settings/reset-master-once', headers=auth_headers).status_code == 200
    assert client.get('/api/settings').get_json()['hasMasterPassword'] is False

    client.post('/api/settings/master-password', json={'masterPassword': 'm2'}, headers=auth_headers)
    resp = client.post('/api/settings/reset-master-once', headers=auth_headers)
    assert resp.status_code == 403
    assert client.get('/api/settings').get_json()['hasMasterPassword'] is True


def test_hashes_are_salted():
    first, second = hash_password('abcd'), hash_password('abcd')
    assert first != second
    assert verify_password('abcd', first)
    assert verify_password('abcd', second)
    assert not verify_password('abcE', first)
    assert not verify_password('', first)
    assert not verify_password('abcd', '')
    assert not verify_password('abcd', None)


def test_wholesale_access(app, client):
    with app.test_request_context():
        access = resolve_wholesale_access('')
        assert not access.configured
        assert access.can_write

    client.post('/api/settings/setup', json={'password': PASSWORD})
    with app.test_request_context():
        assert resolve_wholesale_access(PASSWORD).can_write
        locked = resolve_wholesale_access('guess')
        assert locked.configured and not locked.unlocked
        assert not locked.can_write


def test_hashes_from_the_previous_server_still_verify():
    salt = os.urandom(16).hex()
    key = hashlib.scrypt(b'abcd', salt=salt.encode(), n=16384, r=8, p=1, dklen=64).hex()
    legacy = f'{salt}:{key}'
    assert verify_password('abcd', legacy)
    assert not verify_password('abce', legacy)
    assert not verify_password('abcd', f'{salt}:not-hex')
