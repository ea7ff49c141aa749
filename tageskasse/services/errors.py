# tageskasse/services/errors.py


class KasseError(Exception):
    """Basisklasse fuer fachliche Fehler; wird als {"ok": False, "error": ...} ausgeliefert."""
    status_code = 400

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class ValidationError(KasseError):
    status_code = 400


class AuthorizationError(KasseError):
    status_code = 403


class NotAuthenticatedError(AuthorizationError):
    status_code = 401


class NotFoundError(KasseError):
    status_code = 404
