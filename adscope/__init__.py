"""
adscope - Active Directory Security Configuration Collector
===========================================================

Enumerates the security-relevant configuration of an Active Directory
domain over LDAP and recovers credentials left in Group Policy
Preferences files.

Architecture Overview:
----------------------
- collection/: LDAP session, paged query executor, result projector,
  extended-right resolution, ACL reporting and topology enumeration
- harvest/: GPP credential harvester and Kerberos policy reader
- model/: Typed data models shared by every component
- reporting/: Console text rendering

Design Decisions:
-----------------
1. ldap3 is the only LDAP client; every collector works on a bound
   ldap3 Connection (or anything with the same search interface)
2. All data models use Python dataclasses
3. Failures are scoped to one query, one file or one directory and
   never end a run
"""

__version__ = "1.0.0"

from .config import AdscopeConfig
