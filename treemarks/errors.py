class TreeError(Exception):
    status_code = 500

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class NotFound(TreeError):
    status_code = 404


class BadRequest(TreeError):
    status_code = 400


class StoreFailure(TreeError):
    """Any failure of the underlying database. The message is never shown to callers."""

    status_code = 500
