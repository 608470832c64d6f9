"""Tests for bearer token handling."""

from datetime import timedelta
from uuid import uuid4

from jose import jwt

from schoolflow.core.config import get_settings
from schoolflow.core.security import create_access_token, decode_token


class TestTokens:
    
    def test_round_trip_to_actor(self):
        user_id, school_id = uuid4(), uuid4()
        actor = decode_token(create_access_token(user_id, school_id, "principal"))
        
        assert actor.actor_id == user_id
        assert actor.tenant_id == school_id
        assert actor.role == "principal"
    
    def test_expired_token(self):
        token = create_access_token(uuid4(), uuid4(), "hr", expires_delta=timedelta(minutes=-1))
        assert decode_token(token) is None
    
    def test_wrong_signature(self):
        token = jwt.encode(
            {"sub": str(uuid4()), "school_id": str(uuid4()), "role": "hr"},
            "not-the-secret",
            algorithm="HS256",
        )
        assert decode_token(token) is None
    
    def test_missing_school_claim(self):
        settings = get_settings()
        token = jwt.encode({"sub": str(uuid4()), "role": "hr"}, settings.secret_key, algorithm=settings.algorithm)
        assert decode_token(token) is None
    
    def test_malformed_ids(self):
        settings = get_settings()
        token = jwt.encode(
            {"sub": "user-7", "school_id": str(uuid4()), "role": "hr"},
            settings.secret_key,
            algorithm=settings.algorithm,
        )
        assert decode_token(token) is None
    
    def test_garbage(self):
        assert decode_token("not-a-jwt") is None
