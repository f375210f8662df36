from datetime import timedelta
import uuid

from app.core.auth import create_access_token, decode_access_token


def test_token_round_trip():
    user_id = uuid.uuid4()
    assert decode_access_token(create_access_token(user_id)) == user_id


def test_expired_token_is_rejected():
    token = create_access_token(uuid.uuid4(), expires_delta=timedelta(minutes=-1))
    assert decode_access_token(token) is None


def test_garbage_token_is_rejected():
    assert decode_access_token("not-a-token") is None
