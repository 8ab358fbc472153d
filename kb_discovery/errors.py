# kb_discovery/errors.py


class DiscoveryError(Exception):
    """
    Base class for every failure the repositories and the orchestrator raise on purpose.
    `status_code` is what the HTTP layer answers with.
    """

    status_code = 500

    def __init__(self, message: str = ""):
        super().__init__(message)
        self.message = message or self.__class__.__name__


class ValidationError(DiscoveryError):
    status_code = 400


class MissingFields(ValidationError):
    pass


class AnswerRequired(ValidationError):
    def __init__(self, question_id: str):
        super().__init__("Please provide an answer before generating a response.")
        self.question_id = question_id


class NotFound(DiscoveryError):
    status_code = 404


class UserNotFound(NotFound):
    def __init__(self, message: str = "User not found"):
        super().__init__(message)


class DuplicateUsername(DiscoveryError):
    status_code = 400

    def __init__(self, message: str = "Username already exists"):
        super().__init__(message)


class AuthError(DiscoveryError):
    status_code = 401


class Forbidden(AuthError):
    status_code = 403


class StorageError(DiscoveryError):
    """
    The record store could not write a collection. The message shown to callers is
    generic; the chained OSError carries the detail for the logs.
    """

    status_code = 500

    def __init__(self, collection: str):
        super().__init__("Internal server error")
        self.collection = collection
