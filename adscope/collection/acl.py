"""
ACL Reporter Module
===================

Reads the DACL of a directory object and turns every ACE into an
AccessRule with principal names and extended-right names resolved.

Design Decisions:
-----------------
1. The security descriptor is read with the SD_FLAGS control asking for the
   DACL only, which non-privileged accounts are allowed to read
2. Inherited ACEs are reported alongside explicit ones
3. Extended-right resolution failure never drops a rule: the raw GUID is
   shown instead of the name
4. Failures are logged once and end (descriptor) or skip (ACE) the
   smallest unit affected; report() itself never raises for them
"""

from typing import Optional, Callable, Iterator

from ldap3 import BASE
from ldap3.core.exceptions import LDAPException
from ldap3.protocol.microsoft import security_descriptor_control

from ..errors import LookupFailed
from ..model.schemas import Entry, AccessRule, AccessType
from .rights import RightsCache, RightsResolver
from .security import (
    SidResolver, RawAce, parse_security_descriptor,
    decode_access_mask, decode_ace_flags, references_extended_right
)


# SD_FLAGS: DACL_SECURITY_INFORMATION
DACL_SECURITY_INFORMATION = 0x04


class AclReporter:
    """Reports the access rules of directory objects.

    Usage:
        reporter = AclReporter(connection, base_dn="DC=corp,DC=local")
        for rule in reporter.report("CN=AdminSDHolder,CN=System,DC=corp,DC=local",
                                    "DC=corp,DC=local"):
            print(rule.identity, rule.rights, rule.extended_right_display)
    """

    def __init__(
        self,
        connection,
        base_dn: str = "",
        rights: Optional[RightsCache] = None,
        sid_resolver: Optional[SidResolver] = None,
        verbose: bool = True,
        progress_callback: Optional[Callable[[str], None]] = None
    ):
        """Initialize the reporter.

        Args:
            connection: Bound ldap3 Connection
            base_dn: Domain base DN used for SID lookups
            rights: Rights cache shared by the reports of one run
            sid_resolver: Principal name resolver
            verbose: Whether to print failure messages
            progress_callback: Optional callback for progress updates
        """
        self.connection = connection
        self.rights = rights or RightsCache(RightsResolver(connection))
        self.sid_resolver = sid_resolver or SidResolver(connection, base_dn)
        self.verbose = verbose
        self.progress_callback = progress_callback
        self._unresolved: set[str] = set()

    def _log(self, message: str) -> None:
        """Log a message to console and/or callback."""
        if self.verbose:
            print(message)
        if self.progress_callback:
            self.progress_callback(message)

    def read_security_descriptor(self, target_dn: str) -> Optional[bytes]:
        """Fetch the raw nTSecurityDescriptor of an object, or None."""
        try:
            self.connection.search(
                search_base=target_dn,
                search_filter="(objectClass=*)",
                search_scope=BASE,
                attributes=['nTSecurityDescriptor'],
                controls=security_descriptor_control(sdflags=DACL_SECURITY_INFORMATION)
            )
        except (LDAPException, OSError) as e:
            self._log(f"[!] Error reading security descriptor of {target_dn}: {e}")
            return None

        for item in self.connection.response or []:
            if item.get('type') != 'searchResEntry':
                continue
            values = Entry.from_response(item).get_raw('nTSecurityDescriptor')
            if values:
                return values[0]

        self._log(f"[!] No security descriptor returned for {target_dn}")
        return None

    def report(self, target_dn: str, forest_dn: str) -> Iterator[AccessRule]:
        """Yield the access rules of target_dn in DACL order.

        Args:
            target_dn: Object whose DACL is reported
            forest_dn: Forest root DN, used to resolve extended rights
        """
        sd_bytes = self.read_security_descriptor(target_dn)
        if sd_bytes is None:
            return

        try:
            _, aces = parse_security_descriptor(
                sd_bytes,
                on_error=lambda msg: self._log(f"[!] {target_dn}: {msg}")
            )
        except ValueError as e:
            self._log(f"[!] Cannot parse security descriptor of {target_dn}: {e}")
            return

        for ace in aces:
            yield self._to_rule(ace, forest_dn)

    def _to_rule(self, ace: RawAce, forest_dn: str) -> AccessRule:
        extended_right_id = ace.object_type if references_extended_right(ace) else None
        extended_right_name = None

        if extended_right_id is not None:
            try:
                extended_right_name = self.rights.resolve(forest_dn, extended_right_id)
            except LookupFailed as e:
                if extended_right_id not in self._unresolved:
                    self._unresolved.add(extended_right_id)
                    self._log(f"[*] {e}")

        return AccessRule(
            identity=self.sid_resolver.resolve(ace.sid),
            rights=decode_access_mask(ace.access_mask),
            access_type=AccessType.ALLOW if ace.is_allow else AccessType.DENY,
            inheritance_flags=decode_ace_flags(ace.flags),
            is_inherited=ace.is_inherited,
            access_mask=ace.access_mask,
            object_type=ace.object_type,
            inherited_object_type=ace.inherited_object_type,
            extended_right_id=extended_right_id,
            extended_right_name=extended_right_name,
            sid=ace.sid
        )
