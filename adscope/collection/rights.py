"""
Extended Rights Resolver
========================

Maps an extended-right GUID found in an object ACE to the display name
registered for it under CN=Extended-Rights,CN=Configuration,<forest>.

Design Decisions:
-----------------
1. RightsResolver issues exactly one single-level search per call and keeps
   no state; a match count other than one is "not resolvable"
2. RightsCache memoizes per (forest DN, GUID) for the lifetime of one run,
   including failed lookups, so every miss costs exactly one search
3. Neither class is thread-safe; one cache belongs to one caller
"""

from typing import Optional

from ldap3 import LEVEL
from ldap3.core.exceptions import LDAPException
from ldap3.utils.conv import escape_filter_chars

from ..errors import LookupFailed


def extended_rights_dn(forest_dn: str) -> str:
    return f"CN=Extended-Rights,CN=Configuration,{forest_dn}"


class RightsResolver:
    """Resolves rightsGuid values against the Extended-Rights container.

    Usage:
        resolver = RightsResolver(connection)
        name = resolver.resolve("DC=corp,DC=local", "00299570-246d-11d0-a768-00aa006e0529")
        # -> "User-Force-Change-Password"
    """

    def __init__(self, connection):
        self.connection = connection

    def resolve(self, forest_dn: str, guid: str) -> str:
        """Return the cn of the controlAccessRight registered for guid.

        Raises:
            LookupFailed: If the search fails or does not return exactly one entry
        """
        try:
            self.connection.search(
                search_base=extended_rights_dn(forest_dn),
                search_filter=f"(rightsGuid={escape_filter_chars(guid)})",
                search_scope=LEVEL,
                attributes=['cn']
            )
        except (LDAPException, OSError) as e:
            raise LookupFailed(guid, str(e)) from e

        result = self.connection.result or {}
        if result.get('result', 0) != 0:
            raise LookupFailed(guid, result.get('description', 'search failed'))

        hits = [item for item in self.connection.response or [] if item.get('type') == 'searchResEntry']
        if len(hits) != 1:
            raise LookupFailed(guid, f"{len(hits)} matching entries")

        cn = (hits[0].get('attributes') or {}).get('cn')
        if isinstance(cn, list):
            cn = cn[0] if cn else None
        if not cn:
            raise LookupFailed(guid, "matching entry has no cn")
        return str(cn)


class RightsCache:
    """Memoizing front of a RightsResolver.

    Keys are (forest DN, GUID) pairs compared case-insensitively. A failed
    resolution is cached as well and re-raised without another search.
    The cache lives as long as the object; there is no invalidation.
    """

    def __init__(self, resolver: RightsResolver):
        self.resolver = resolver
        self._entries: dict[tuple, Optional[str]] = {}
        self.lookups = 0

    def resolve(self, forest_dn: str, guid: str) -> str:
        key = (forest_dn.lower(), guid.lower())
        if key in self._entries:
            name = self._entries[key]
            if name is None:
                raise LookupFailed(guid, "previously unresolvable")
            return name

        self.lookups += 1
        try:
            name = self.resolver.resolve(forest_dn, guid)
        except LookupFailed:
            self._entries[key] = None
            raise

        self._entries[key] = name
        return name

    def __contains__(self, key) -> bool:
        forest_dn, guid = key
        return (forest_dn.lower(), guid.lower()) in self._entries

    def __len__(self):
        return len(self._entries)

    def clear(self) -> None:
        self._entries.clear()
