import pytest


@pytest.fixture
def math_id(client, alice):
    return client.post('/subjects', json={'name': 'Math'}, headers=alice).json()['id']


def _session(client, headers, subject_id, start, end, **extra):
    r = client.post('/sessions', json={'subjectId': subject_id, 'startAt': start, 'endAt': end, **extra},
                    headers=headers)
    assert r.status_code == 201, r.text
    return r.json()


def test_create_session_defaults_to_planned(client, alice, math_id):
    s = _session(client, alice, math_id, '2024-01-01T09:00', '2024-01-01T10:00', status='completed', title='')
    assert s['status'] == 'planned'
    assert s['title'] is None
    assert s['subjectId'] == math_id
    assert s['startAt'].startswith('2024-01-01T09:00')


def test_create_session_rejects_inverted_interval(client, alice, math_id):
    r = client.post('/sessions', json={'subjectId': math_id, 'startAt': '2024-01-01T10:00',
                                       'endAt': '2024-01-01T09:00'}, headers=alice)
    assert r.status_code == 400
    equal = client.post('/sessions', json={'subjectId': math_id, 'startAt': '2024-01-01T10:00',
                                           'endAt': '2024-01-01T10:00'}, headers=alice)
    assert equal.status_code == 400
    assert client.get('/sessions', headers=alice).json() == []


def test_create_session_requires_fields(client, alice, math_id):
    r = client.post('/sessions', json={'subjectId': math_id, 'startAt': '2024-01-01T10:00'}, headers=alice)
    assert r.status_code == 400


def test_create_session_for_foreign_subject(client, alice, bob, math_id):
    r = client.post('/sessions', json={'subjectId': math_id, 'startAt': '2024-01-01T09:00',
                                       'endAt': '2024-01-01T10:00'}, headers=bob)
    assert r.status_code == 404


def test_timezone_offsets_normalised(client, alice, math_id):
    s = _session(client, alice, math_id, '2024-01-01T10:00:00+02:00', '2024-01-01T09:30:00Z')
    assert s['startAt'].startswith('2024-01-01T08:00')


def test_naive_times_round_trip_as_utc(client, alice, math_id):
    s = _session(client, alice, math_id, '2024-01-01T09:00:00', '2024-01-01T10:00:00')
    r = client.get(f"/sessions/{s['id']}", headers=alice)
    assert r.status_code == 200
    assert r.json()['startAt'].startswith('2024-01-01T09:00')
    r = client.patch(f"/sessions/{s['id']}", json={'endAt': '2024-01-01T11:00:00'}, headers=alice)
    assert r.status_code == 200, r.text
    assert r.json()['endAt'].startswith('2024-01-01T11:00')
    listed = client.get('/sessions', params={'from': '2024-01-01T08:00:00', 'to': '2024-01-01T09:30:00'},
                        headers=alice)
    assert [x['id'] for x in listed.json()] == [s['id']]


def test_range_filter_returns_overlapping_sessions(client, alice, math_id):
    before = _session(client, alice, math_id, '2024-01-01T06:00', '2024-01-01T07:00', title='before')
    straddle_start = _session(client, alice, math_id, '2024-01-01T07:30', '2024-01-01T08:30', title='straddle-start')
    inside = _session(client, alice, math_id, '2024-01-01T09:00', '2024-01-01T09:30', title='inside')
    straddle_end = _session(client, alice, math_id, '2024-01-01T11:30', '2024-01-01T13:00', title='straddle-end')
    covering = _session(client, alice, math_id, '2024-01-01T05:00', '2024-01-01T14:00', title='covering')
    touching = _session(client, alice, math_id, '2024-01-01T12:00', '2024-01-01T12:30', title='touching-end')
    _session(client, alice, math_id, '2024-01-01T12:01', '2024-01-01T12:30', title='after')

    r = client.get('/sessions', params={'from': '2024-01-01T08:00', 'to': '2024-01-01T12:00'}, headers=alice)
    assert r.status_code == 200
    titles = [s['title'] for s in r.json()]
    assert titles == ['covering', 'straddle-start', 'inside', 'straddle-end', 'touching-end']
    assert before['title'] not in titles
    assert {straddle_start['id'], inside['id'], straddle_end['id'], covering['id'], touching['id']} == \
        {s['id'] for s in r.json()}


def test_range_filter_single_bound_and_subject(client, alice, math_id):
    physics_id = client.post('/subjects', json={'name': 'Physics'}, headers=alice).json()['id']
    _session(client, alice, math_id, '2024-01-01T06:00', '2024-01-01T07:00', title='m1')
    _session(client, alice, physics_id, '2024-01-02T06:00', '2024-01-02T07:00', title='p1')
    _session(client, alice, math_id, '2024-01-03T06:00', '2024-01-03T07:00', title='m2')

    later = client.get('/sessions', params={'from': '2024-01-02T00:00'}, headers=alice).json()
    assert [s['title'] for s in later] == ['p1', 'm2']
    only_math = client.get('/sessions', params={'subjectId': math_id}, headers=alice).json()
    assert [s['title'] for s in only_math] == ['m1', 'm2']


def test_range_filter_rejects_reversed_range(client, alice):
    r = client.get('/sessions', params={'from': '2024-01-02T00:00', 'to': '2024-01-01T00:00'}, headers=alice)
    assert r.status_code == 400


def test_out_of_range_subject_id_rejected(client, alice):
    huge = 10 ** 20
    r = client.post('/sessions', json={'subjectId': huge, 'startAt': '2024-01-01T09:00',
                                       'endAt': '2024-01-01T10:00'}, headers=alice)
    assert r.status_code == 400
    assert 'error' in r.json()
    r = client.get('/sessions', params={'subjectId': str(huge)}, headers=alice)
    assert r.status_code == 400
    assert 'error' in r.json()


def test_list_sessions_scoped_to_owner(client, alice, bob, math_id):
    _session(client, alice, math_id, '2024-01-01T06:00', '2024-01-01T07:00')
    assert client.get('/sessions', headers=bob).json() == []


def test_update_revalidates_merged_interval(client, alice, math_id):
    s = _session(client, alice, math_id, '2024-01-01T09:00', '2024-01-01T10:00')
    only_end = client.patch(f"/sessions/{s['id']}", json={'endAt': '2024-01-01T08:00'}, headers=alice)
    assert only_end.status_code == 400
    only_start = client.put(f"/sessions/{s['id']}", json={'startAt': '2024-01-01T10:00'}, headers=alice)
    assert only_start.status_code == 400

    ok = client.patch(f"/sessions/{s['id']}", json={'startAt': '2024-01-01T09:30'}, headers=alice)
    assert ok.status_code == 200
    assert ok.json()['startAt'].startswith('2024-01-01T09:30')
    assert ok.json()['endAt'].startswith('2024-01-01T10:00')


def test_update_fields_status_and_clearing(client, alice, math_id):
    s = _session(client, alice, math_id, '2024-01-01T09:00', '2024-01-01T10:00', title='Algebra', notes='bring book')
    r = client.put(f"/sessions/{s['id']}", json={'status': 'completed', 'title': '', 'notes': ''}, headers=alice)
    assert r.status_code == 200
    body = r.json()
    assert body['status'] == 'completed'
    assert body['title'] is None
    assert body['notes'] is None

    bad = client.patch(f"/sessions/{s['id']}", json={'status': 'done'}, headers=alice)
    assert bad.status_code == 400
    assert client.get(f"/sessions/{s['id']}", headers=alice).json()['status'] == 'completed'


def test_update_with_no_recognised_fields(client, alice, math_id):
    s = _session(client, alice, math_id, '2024-01-01T09:00', '2024-01-01T10:00')
    r = client.patch(f"/sessions/{s['id']}", json={'ownerId': 5, 'bogus': 1}, headers=alice)
    assert r.status_code == 400
    assert r.json() == {'error': 'No valid fields provided to update'}


def test_update_subject_must_be_owned(client, alice, bob, math_id):
    s = _session(client, alice, math_id, '2024-01-01T09:00', '2024-01-01T10:00')
    bob_subject = client.post('/subjects', json={'name': 'Bobs'}, headers=bob).json()['id']
    r = client.patch(f"/sessions/{s['id']}", json={'subjectId': bob_subject}, headers=alice)
    assert r.status_code == 404


def test_other_users_session_not_found(client, alice, bob, math_id):
    s = _session(client, alice, math_id, '2024-01-01T09:00', '2024-01-01T10:00')
    assert client.get(f"/sessions/{s['id']}", headers=bob).status_code == 404
    assert client.patch(f"/sessions/{s['id']}", json={'title': 'x'}, headers=bob).status_code == 404
    assert client.delete(f"/sessions/{s['id']}", headers=bob).status_code == 404


def test_delete_session_no_content(client, alice, math_id):
    s = _session(client, alice, math_id, '2024-01-01T09:00', '2024-01-01T10:00')
    r = client.delete(f"/sessions/{s['id']}", headers=alice)
    assert r.status_code == 204
    assert r.content == b''
    assert client.get(f"/sessions/{s['id']}", headers=alice).status_code == 404


def test_subject_delete_leaves_sessions(client, alice, math_id):
    s = _session(client, alice, math_id, '2024-01-01T09:00', '2024-01-01T10:00')
    assert client.delete(f'/subjects/{math_id}', headers=alice).status_code == 200
    remaining = client.get('/sessions', headers=alice).json()
    assert [x['id'] for x in remaining] == [s['id']]
    assert remaining[0]['subjectId'] == math_id
