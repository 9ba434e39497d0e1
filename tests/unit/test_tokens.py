"""Unit tests for render tokens."""

from datetime import datetime, timedelta, timezone

import jwt
import pytest

from bookpress.errors import RenderTokenError
from bookpress.render.tokens import ALGORITHM, COVER_SUBJECT, RenderTokenIssuer


@pytest.fixture
def issuer():
    return RenderTokenIssuer("unit-secret", ttl_seconds=300)


class TestRenderTokens:
    def test_round_trip(self, issuer):
        token = issuer.issue("fam", "p1")
        payload = issuer.verify(token, "fam", "p1")
        assert payload["fid"] == "fam"
        assert payload["sub"] == "p1"
        assert payload["scope"] == "render"

    def test_cover_subject(self, issuer):
        token = issuer.issue("fam", COVER_SUBJECT)
        assert issuer.verify(token, "fam", "cover")["sub"] == "cover"

    def test_missing(self, issuer):
        with pytest.raises(RenderTokenError) as exc:
            issuer.verify(None, "fam", "p1")
        assert exc.value.reason == "missing"

    def test_expired(self):
        stale = RenderTokenIssuer("unit-secret", ttl_seconds=-10)
        token = stale.issue("fam", "p1")
        with pytest.raises(RenderTokenError) as exc:
            stale.verify(token, "fam", "p1")
        assert exc.value.reason == "expired"

    def test_bound_to_page(self, issuer):
        token = issuer.issue("fam", "p1")
        with pytest.raises(RenderTokenError) as exc:
            issuer.verify(token, "fam", "p2")
        assert exc.value.reason == "mismatch"

    def test_bound_to_family(self, issuer):
        token = issuer.issue("fam", "p1")
        with pytest.raises(RenderTokenError) as exc:
            issuer.verify(token, "other-fam", "p1")
        assert exc.value.reason == "mismatch"

    def test_wrong_secret(self, issuer):
        forged = RenderTokenIssuer("not-the-secret").issue("fam", "p1")
        with pytest.raises(RenderTokenError) as exc:
            issuer.verify(forged, "fam", "p1")
        assert exc.value.reason == "invalid"

    def test_wrong_scope(self, issuer):
        exp = datetime.now(timezone.utc) + timedelta(minutes=5)
        token = jwt.encode({"fid": "fam", "sub": "p1", "scope": "admin", "exp": exp}, "unit-secret", algorithm=ALGORITHM)
        with pytest.raises(RenderTokenError) as exc:
            issuer.verify(token, "fam", "p1")
        assert exc.value.reason == "invalid"

    def test_garbage(self, issuer):
        with pytest.raises(RenderTokenError):
            issuer.verify("not.a.jwt", "fam", "p1")
