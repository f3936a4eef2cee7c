"""
Typed failures of the incident lifecycle and timeline.

Each error carries the HTTP status it maps to at the API boundary. Resources
that exist but belong to someone else are reported as NotFound so callers
cannot probe for their existence.
"""


class IncidentError(Exception):
    status_code = 500

    def __init__(self, detail: str):
        super().__init__(detail)
        self.detail = detail


class NotFound(IncidentError):
    status_code = 404


class Conflict(IncidentError):
    status_code = 409


class InvalidState(IncidentError):
    status_code = 400


class InvalidInput(IncidentError):
    status_code = 400


class Forbidden(IncidentError):
    status_code = 403
