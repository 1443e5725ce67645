class SmartSpendrError(Exception):
    """Base class for every error raised by the core."""


class ValidationError(SmartSpendrError):
    """Form-level error; `errors` maps field name to message."""

    def __init__(self, errors: dict[str, str]) -> None:
        self.errors = dict(errors)
        fields = ", ".join(sorted(self.errors)) or "unknown"
        super().__init__(f"Invalid expense fields: {fields}")


class InvalidRange(SmartSpendrError):
    def __init__(self, start: object, end: object) -> None:
        self.start = start
        self.end = end
        super().__init__(f"Window end {end} is before start {start}")


class StoreError(SmartSpendrError):
    """Remote persistence failure. The write must be treated as not applied."""

    def __init__(self, message: str, cause: BaseException | None = None) -> None:
        super().__init__(message)
        self.cause = cause


class ExpenseNotFound(StoreError):
    def __init__(self, expense_id: str, cause: BaseException | None = None) -> None:
        super().__init__(f"Expense {expense_id} not found", cause=cause)
        self.expense_id = expense_id


class AuthError(SmartSpendrError):
    pass


class PopupBlocked(AuthError):
    pass


class AuthCancelled(AuthError):
    pass


class CacheError(SmartSpendrError):
    pass


class InstallError(CacheError):
    def __init__(self, message: str, failed: list[str]) -> None:
        super().__init__(message)
        self.failed = failed
