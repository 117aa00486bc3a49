"""
Meta functionality for the database.
"""

from .group import Group, GroupMembership
from .message import GroupMessage
from .university import Course, Module, University
from .user import User

ALL_TABLES = (
    User,
    Group,
    GroupMembership,
    GroupMessage,
    University,
    Course,
    Module,
)
