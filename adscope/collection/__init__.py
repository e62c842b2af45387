"""
adscope Collection Module
=========================

Everything that talks to the directory over LDAP (using ldap3).

Components:
- connection.py: bound ldap3 connection and naming contexts
- query.py: paged, cookie-continued query execution
- projector.py: result pages -> formatted records
- security.py: SID/GUID helpers and security-descriptor parsing
- rights.py: extended-right GUID -> name resolution
- acl.py: access rules of one object
- topology.py: domains, domain controllers and trusts
"""

from .connection import DirectorySession
from .query import QueryExecutor
from .projector import ResultProjector
from .rights import RightsResolver, RightsCache
from .acl import AclReporter
from .topology import TopologyCollector
