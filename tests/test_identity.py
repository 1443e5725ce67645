import pytest

from smartspendr.errors import AuthCancelled, AuthError, PopupBlocked
from smartspendr.integration.identity import AuthSession, IdentityProvider, LocalIdentityProvider
from smartspendr.models import User


class ScriptedProvider(IdentityProvider):
    def __init__(self, popup_error: AuthError | None = None) -> None:
        super().__init__()
        self.popup_error = popup_error
        self.redirects = 0
        self._user: User | None = None

    def current_user(self) -> User | None:
        return self._user

    async def sign_in(self) -> User:
        if self.popup_error is not None:
            raise self.popup_error
        self._user = User(id="popup")
        return self._user

    async def sign_in_redirect(self) -> User:
        self.redirects += 1
        self._user = User(id="redirect")
        return self._user

    async def sign_out(self) -> None:
        self._user = None


@pytest.mark.anyio
async def test_popup_sign_in() -> None:
    provider = ScriptedProvider()

    user = await AuthSession(provider).sign_in()

    assert user.id == "popup"
    assert provider.redirects == 0


@pytest.mark.anyio
@pytest.mark.parametrize("error", [PopupBlocked("blocked"), AuthCancelled("closed")])
async def test_falls_back_to_redirect(error: AuthError) -> None:
    provider = ScriptedProvider(popup_error=error)
    session = AuthSession(provider)

    user = await session.sign_in()

    assert user.id == "redirect"
    assert provider.redirects == 1
    assert session.user == user


@pytest.mark.anyio
async def test_other_auth_errors_propagate() -> None:
    provider = ScriptedProvider(popup_error=AuthError("provider down"))

    with pytest.raises(AuthError):
        await AuthSession(provider).sign_in()
    assert provider.redirects == 0


@pytest.mark.anyio
async def test_local_provider_notifies_listeners() -> None:
    provider = LocalIdentityProvider(User(id="u1", display_name="Ann"), signed_in=False)
    seen: list[User | None] = []
    unsubscribe = provider.on_auth_change(seen.append)

    assert provider.current_user() is None
    await provider.sign_in()
    await provider.sign_out()
    unsubscribe()
    await provider.sign_in()

    assert [user.id if user else None for user in seen] == ["u1", None]


def test_local_provider_reads_environment(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("LOCAL_USER_ID", "me")
    monkeypatch.setenv("LOCAL_USER_NAME", "Me Myself")
    monkeypatch.delenv("LOCAL_USER_EMAIL", raising=False)

    user = LocalIdentityProvider().current_user()

    assert user == User(id="me", display_name="Me Myself", email=None)
