"""Error kinds raised by the report pipeline and the job manager.

Each error carries a human readable ``message`` and the HTTP status the API
layer should answer with when the error reaches a request handler.
"""


class ReportError(Exception):
    status_code = 500

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class DatasetParseError(ReportError):
    """A dataset row could not be turned into a typed record"""
    status_code = 422


class DatasetUnavailableError(ReportError):
    """A dataset file is missing or cannot be opened"""
    status_code = 503


class JobNotFoundError(ReportError):
    status_code = 404


class InternalError(ReportError):
    status_code = 500
