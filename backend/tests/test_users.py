def test_user_directory_lists_usernames(client, alice, bob):
    r = client.get('/users', headers=alice)
    assert r.status_code == 200
    assert [u['username'] for u in r.json()] == ['alice', 'bob']
    assert all(set(u) == {'id', 'username'} for u in r.json())


def test_user_can_read_only_self(client, alice, bob):
    me = client.get('/auth/me', headers=alice).json()['user']
    bob_id = client.get('/auth/me', headers=bob).json()['user']['id']

    own = client.get(f"/users/{me['id']}", headers=alice)
    assert own.status_code == 200
    assert own.json()['user']['username'] == 'alice'

    other = client.get(f'/users/{bob_id}', headers=alice)
    assert other.status_code == 403
    assert other.json() == {'error': 'Unauthorized'}


def test_users_with_subjects_aggregate(client, alice, bob):
    subject = client.post('/subjects', json={'name': 'Math'}, headers=alice).json()
    client.post(f"/subjects/{subject['id']}/notes", json={'title': 'Ch1'}, headers=alice)

    r = client.get('/users/subjects', headers=bob)
    assert r.status_code == 200
    by_name = {u['username']: u for u in r.json()}
    assert by_name['bob']['subjects'] == []
    alice_subjects = by_name['alice']['subjects']
    assert [s['name'] for s in alice_subjects] == ['Math']
    assert [n['title'] for n in alice_subjects[0]['notes']] == ['Ch1']


def test_users_routes_require_token(client):
    for path in ('/users', '/users/subjects', '/users/1', '/auth/me'):
        assert client.get(path).status_code == 401
