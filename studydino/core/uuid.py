"""
UUID creation. Required because uuid7 was not part of the python standard as of 3.12

Group and message identifiers travel as strings (query parameters, JSON), so
parsing them back is done here too.
"""

from uuid import UUID as UUID

from uuid_extensions import uuid7 as uuid7

__all__ = ["UUID", "uuid7", "parse_uuid"]


def parse_uuid(value: str | UUID | None) -> UUID | None:
    """
    Parse a client-provided identifier, returning None if it is not a UUID.
    """
    if value is None or isinstance(value, UUID):
        return value

    try:
        return UUID(value)
    except (ValueError, AttributeError, TypeError):
        return None
