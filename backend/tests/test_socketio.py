import pytest

from groupvote.services.games.supervisor import create_game


@pytest.fixture()
def flask_app(bare_app):
    return bare_app


def _game(flask_app):
    with flask_app.app_context():
        return create_game('buddy_up').id


def _names(sio_client):
    return [pkt['name'] for pkt in sio_client.get_received('/ws')]


def test_socket_connect_and_join(flask_app, sio_client):
    assert sio_client.is_connected('/ws')
    assert 'connected' in _names(sio_client)

    game_id = _game(flask_app)
    sio_client.emit('join_game', {'game_id': game_id}, namespace='/ws')
    received = sio_client.get_received('/ws')
    joined = [pkt for pkt in received if pkt['name'] == 'joined']
    assert joined
    assert joined[0]['args'][0]['room'] == f'game:{game_id}'
    assert joined[0]['args'][0]['status'] == 'signup'


def test_join_requires_a_known_game(sio_client):
    sio_client.get_received('/ws')
    sio_client.emit('join_game', {}, namespace='/ws')
    assert 'error' in _names(sio_client)
    sio_client.emit('join_game', {'game_id': 4040}, namespace='/ws')
    received = sio_client.get_received('/ws')
    assert [pkt['args'][0]['message'] for pkt in received if pkt['name'] == 'error'] == ['Game not found']


def test_ping(sio_client):
    sio_client.get_received('/ws')
    sio_client.emit('ping', {'n': 1}, namespace='/ws')
    received = sio_client.get_received('/ws')
    assert any(pkt['name'] == 'pong' and pkt['args'][0] == {'n': 1} for pkt in received)


def test_state_update_after_signup(flask_app, sio_client, make_users, login):
    game_id = _game(flask_app)
    sio_client.emit('join_game', {'game_id': game_id}, namespace='/ws')
    sio_client.get_received('/ws')

    (uid,) = make_users(1)
    assert login(uid).post(f'/api/games/{game_id}/signup').status_code == 201
    updates = [pkt for pkt in sio_client.get_received('/ws') if pkt['name'] == 'state_update']
    assert updates
    assert updates[0]['args'][0] == {'game_id': game_id}


def test_leave_game(flask_app, sio_client):
    game_id = _game(flask_app)
    sio_client.emit('join_game', {'game_id': game_id}, namespace='/ws')
    sio_client.emit('leave_game', {'game_id': game_id}, namespace='/ws')
    assert 'left' in _names(sio_client)
