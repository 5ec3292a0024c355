EMAIL_HEADER = 'X-Forwarded-Email'


def test_not_logged_in(client):
    resp = client.get('/api/auth/user')
    assert resp.status_code == 401
    assert resp.get_json() == {'message': 'Not logged in'}


def test_login_redirects_to_oauth_provider(client):
    resp = client.get('/api/login')
    assert resp.status_code == 302
    assert resp.headers['Location'].endswith('/__replauthlogin')


def test_allowed_email_logs_in(client):
    resp = client.get('/api/login', headers={EMAIL_HEADER: 'Owner@Example.com'})
    assert resp.status_code == 302
    assert resp.headers['Location'].endswith('/')

    resp = client.get('/api/auth/user')
    assert resp.status_code == 200
    assert resp.get_json() == {'email': 'owner@example.com', 'isWhitelisted': True}


def test_second_login_reuses_user(app, client):
    from models import db, User

    client.get('/api/login', headers={EMAIL_HEADER: 'owner@example.com'})
    client.post('/api/logout')
    client.get('/api/login', headers={EMAIL_HEADER: 'owner@example.com'})
    with app.app_context():
        assert db.session.query(User).count() == 1


def test_unknown_email_is_refused(client):
    resp = client.get('/api/login', headers={EMAIL_HEADER: 'stranger@example.com'})
    assert resp.status_code == 403
    assert client.get('/api/auth/user').status_code == 401


def test_logout(client):
    client.get('/api/login', headers={EMAIL_HEADER: 'owner@example.com'})
    assert client.post('/api/logout').get_json() == {'success': True}
    assert client.get('/api/auth/user').status_code == 401
    assert client.post('/api/logout').status_code == 401
