try:
    from . import _bootstrap  # noqa: F401
except Exception:  # pragma: no cover - fallback for direct execution
    import _bootstrap  # type: ignore # noqa: F401

import base64
import json
from urllib.parse import parse_qs, urlparse

import httpx
import pytest

from app.clients.oauth import GoogleOAuthClient, MyCaseOAuthClient, OAuthStateEncoder
from app.core.config import GoogleSettings, MyCaseSettings
from app.core.errors import InvalidStateError, OAuthTokenExchangeError


def _mycase_settings() -> MyCaseSettings:
    return MyCaseSettings(
        MYCASE_CLIENT_ID="mycase-id",
        MYCASE_CLIENT_SECRET="mycase-secret",
        MYCASE_REDIRECT_URI="https://example.com/api/auth/mycase/callback",
    )


def _google_settings() -> GoogleSettings:
    return GoogleSettings(
        GOOGLE_CLIENT_ID="google-id",
        GOOGLE_CLIENT_SECRET="google-secret",
        GOOGLE_REDIRECT_URI="https://example.com/api/auth/google/callback",
    )


class RecordingTransport:
    def __init__(self, response: httpx.Response) -> None:
        self.response = response
        self.requests: list[httpx.Request] = []

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        return self.response


def test_mycase_authorization_url_carries_client_and_state() -> None:
    client = MyCaseOAuthClient(_mycase_settings())

    url = urlparse(client.build_authorization_url(state="opaque-state"))
    params = parse_qs(url.query)

    assert f"{url.scheme}://{url.netloc}{url.path}" == "https://api.mycase.com/oauth/authorize"
    assert params["client_id"] == ["mycase-id"]
    assert params["response_type"] == ["code"]
    assert params["scope"] == ["read write"]
    assert params["state"] == ["opaque-state"]
    assert params["redirect_uri"] == ["https://example.com/api/auth/mycase/callback"]


def test_google_authorization_url_requests_offline_access() -> None:
    client = GoogleOAuthClient(_google_settings())

    params = parse_qs(urlparse(client.build_authorization_url(state="s")).query)

    assert params["access_type"] == ["offline"]
    assert params["prompt"] == ["consent"]
    assert "https://www.googleapis.com/auth/drive.file" in params["scope"][0].split()


@pytest.mark.asyncio
async def test_mycase_exchange_posts_json_body() -> None:
    transport = RecordingTransport(
        httpx.Response(
            200,
            json={"access_token": "a", "refresh_token": "r", "expires_in": 7200},
        )
    )
    client = MyCaseOAuthClient(_mycase_settings(), transport=httpx.MockTransport(transport))

    grant = await client.exchange_authorization_code("the-code")

    body = json.loads(transport.requests[0].content)
    assert str(transport.requests[0].url) == "https://auth.mycase.com/tokens"
    assert body["grant_type"] == "authorization_code"
    assert body["code"] == "the-code"
    assert body["client_secret"] == "mycase-secret"
    assert (grant.access_token, grant.refresh_token, grant.expires_in) == ("a", "r", 7200)


@pytest.mark.asyncio
async def test_google_refresh_posts_form_body() -> None:
    transport = RecordingTransport(
        httpx.Response(200, json={"access_token": "fresh", "expires_in": 3599, "scope": "x"})
    )
    client = GoogleOAuthClient(_google_settings(), transport=httpx.MockTransport(transport))

    grant = await client.refresh_token("stored-refresh")

    form = parse_qs(transport.requests[0].content.decode())
    assert form["grant_type"] == ["refresh_token"]
    assert form["refresh_token"] == ["stored-refresh"]
    assert form["client_id"] == ["google-id"]
    assert grant.refresh_token is None
    assert grant.scope == "x"


@pytest.mark.asyncio
async def test_rejected_exchange_raises_with_authority_detail() -> None:
    transport = RecordingTransport(httpx.Response(400, text='{"error":"invalid_grant"}'))
    client = MyCaseOAuthClient(_mycase_settings(), transport=httpx.MockTransport(transport))

    with pytest.raises(OAuthTokenExchangeError, match="invalid_grant"):
        await client.refresh_token("revoked")


@pytest.mark.asyncio
async def test_exchange_without_refresh_token_is_rejected() -> None:
    transport = RecordingTransport(
        httpx.Response(200, json={"access_token": "a", "expires_in": 3600})
    )
    client = GoogleOAuthClient(_google_settings(), transport=httpx.MockTransport(transport))

    with pytest.raises(OAuthTokenExchangeError):
        await client.exchange_authorization_code("code")


@pytest.mark.asyncio
async def test_network_failure_raises_exchange_error() -> None:
    def _fail(request: httpx.Request) -> httpx.Response:
        raise httpx.ConnectError("connection refused", request=request)

    client = GoogleOAuthClient(_google_settings(), transport=httpx.MockTransport(_fail))

    with pytest.raises(OAuthTokenExchangeError):
        await client.refresh_token("refresh")


@pytest.mark.asyncio
@pytest.mark.parametrize(
    "response",
    [
        httpx.Response(200, json={"access_token": "a", "expires_in": "soon"}),
        httpx.Response(200, json=["not", "an", "object"]),
        httpx.Response(200, json="token"),
        httpx.Response(200, json={"access_token": "a", "expires_in": 3600, "scope": 5}),
        httpx.Response(200, text="<html>login</html>"),
    ],
)
async def test_malformed_success_payload_raises_exchange_error(response) -> None:
    client = MyCaseOAuthClient(
        _mycase_settings(), transport=httpx.MockTransport(RecordingTransport(response))
    )

    with pytest.raises(OAuthTokenExchangeError):
        await client.refresh_token("refresh")


def test_state_encoder_roundtrip() -> None:
    encoder = OAuthStateEncoder(secret_key="state-secret")
    payload = {"integration": "google", "subject": "user-1", "nonce": "n"}

    assert encoder.decode(encoder.encode(payload)) == payload


@pytest.mark.parametrize("state", [None, "", "!!!not-base64!!!", "c2hvcnQ="])
def test_state_encoder_rejects_missing_or_malformed_state(state) -> None:
    encoder = OAuthStateEncoder(secret_key="state-secret")

    with pytest.raises(InvalidStateError):
        encoder.decode(state)


def test_state_encoder_rejects_tampered_payload() -> None:
    encoder = OAuthStateEncoder(secret_key="state-secret")
    raw = base64.urlsafe_b64decode(encoder.encode({"subject": "user-1"}))
    tampered = raw[:32] + raw[32:].replace(b"user-1", b"user-2")

    with pytest.raises(InvalidStateError):
        encoder.decode(base64.urlsafe_b64encode(tampered).decode())


def test_state_encoder_rejects_other_secret() -> None:
    state = OAuthStateEncoder(secret_key="one").encode({"subject": "user-1"})

    with pytest.raises(InvalidStateError):
        OAuthStateEncoder(secret_key="two").decode(state)
