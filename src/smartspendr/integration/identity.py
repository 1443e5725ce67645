import os
from abc import ABC, abstractmethod
from collections.abc import Callable

from smartspendr.errors import AuthCancelled, AuthError, PopupBlocked
from smartspendr.logger import get_logger
from smartspendr.models import User

logger = get_logger(__name__)

AuthCallback = Callable[[User | None], None]


class IdentityProvider(ABC):
    def __init__(self) -> None:
        self._listeners: list[AuthCallback] = []

    @abstractmethod
    def current_user(self) -> User | None:
        pass

    @abstractmethod
    async def sign_in(self) -> User:
        """Interactive (popup) sign-in. May raise PopupBlocked or AuthCancelled."""

    @abstractmethod
    async def sign_in_redirect(self) -> User:
        pass

    @abstractmethod
    async def sign_out(self) -> None:
        pass

    def on_auth_change(self, callback: AuthCallback) -> Callable[[], None]:
        self._listeners.append(callback)

        def unsubscribe() -> None:
            if callback in self._listeners:
                self._listeners.remove(callback)

        return unsubscribe

    def _emit(self, user: User | None) -> None:
        for listener in list(self._listeners):
            listener(user)


class LocalIdentityProvider(IdentityProvider):
    """Single local account configured through LOCAL_USER_* settings."""

    def __init__(self, user: User | None = None, signed_in: bool = True) -> None:
        super().__init__()
        self.account = user or User(
            id=os.getenv("LOCAL_USER_ID", "local"),
            display_name=os.getenv("LOCAL_USER_NAME", "Local User"),
            email=os.getenv("LOCAL_USER_EMAIL") or None,
        )
        self._user: User | None = self.account if signed_in else None

    def current_user(self) -> User | None:
        return self._user

    async def sign_in(self) -> User:
        self._user = self.account
        self._emit(self._user)
        return self._user

    async def sign_in_redirect(self) -> User:
        return await self.sign_in()

    async def sign_out(self) -> None:
        self._user = None
        self._emit(None)


class AuthSession:
    def __init__(self, provider: IdentityProvider) -> None:
        self.provider = provider

    @property
    def user(self) -> User | None:
        return self.provider.current_user()

    async def sign_in(self) -> User:
        try:
            return await self.provider.sign_in()
        except (PopupBlocked, AuthCancelled) as exc:
            logger.info("[AUTH] Popup sign-in unavailable (%s), falling back to redirect.", type(exc).__name__)
            return await self.provider.sign_in_redirect()
        except AuthError:
            logger.exception("[AUTH] Sign-in failed.")
            raise

    async def sign_out(self) -> None:
        try:
            await self.provider.sign_out()
        except AuthError:
            logger.exception("[AUTH] Sign-out failed.")
            raise
