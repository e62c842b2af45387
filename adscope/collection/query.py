"""
Query Executor Module
=====================

Runs one logical LDAP query across as many result pages as the server
hands out, one page at a time.

Features:
- Simple paged results (500 entries per page) continued by cookie
- Referral suppression through the LDAP_SERVER_SEARCH_OPTIONS control so
  data from other partitions is not returned
- Per-query failure isolation: a failed page ends that query only

Design Decisions:
-----------------
1. Uses ldap3's paged_size / paged_cookie search arguments
2. A response must carry exactly one control, the paged-results
   acknowledgment; anything else means the server cannot page
3. No retries: a failed page is the end of that query's stream
4. Failures are returned as an Outcome value instead of being raised
"""

from typing import Optional, Callable, Iterator

from ldap3 import BASE, LEVEL, SUBTREE, ALL_ATTRIBUTES
from ldap3.core.exceptions import LDAPException
from ldap3.protocol.controls import build_control
from pyasn1.type.namedtype import NamedTypes, NamedType
from pyasn1.type.univ import Sequence, Integer

from ..errors import Outcome, TransportFailure, UnsupportedServer
from ..model.schemas import Query, SearchScope, Entry, ResultPage
from .projector import ResultProjector


LDAP_PAGED_RESULT_OID_STRING = "1.2.840.113556.1.4.319"
LDAP_SERVER_SEARCH_OPTIONS_OID = "1.2.840.113556.1.4.1340"

# LDAP_SERVER_SEARCH_OPTIONS flags
SERVER_SEARCH_FLAG_DOMAIN_SCOPE = 0x1   # Do not generate referrals

SCOPES = {
    SearchScope.OBJECT: BASE,
    SearchScope.ONE_LEVEL: LEVEL,
    SearchScope.SUBTREE: SUBTREE,
}


class SearchOptions(Sequence):
    # SearchOptionsRequestValue ::= SEQUENCE {
    #     Flags    INTEGER
    # }
    componentType = NamedTypes(NamedType('Flags', Integer()))


def search_options_control(flags: int = SERVER_SEARCH_FLAG_DOMAIN_SCOPE, criticality: bool = False):
    """Build the LDAP_SERVER_SEARCH_OPTIONS control."""
    value = SearchOptions()
    value.setComponentByName('Flags', flags)
    return build_control(LDAP_SERVER_SEARCH_OPTIONS_OID, criticality, value)


class QueryExecutor:
    """Runs paged queries against an ldap3 connection.

    Usage:
        executor = QueryExecutor(connection)
        outcome = executor.execute(query, on_page=handle_page)

        # Or as a stream
        for page in executor.iter_pages(query):
            ...

    The connection is any object with ldap3's search() signature and its
    `result` / `response` attributes.
    """

    def __init__(
        self,
        connection,
        projector: Optional[ResultProjector] = None,
        verbose: bool = True,
        progress_callback: Optional[Callable[[str], None]] = None
    ):
        """Initialize the executor.

        Args:
            connection: Bound ldap3 Connection
            projector: Projector used by search(); a default one is created
            verbose: Whether to print failure messages
            progress_callback: Optional callback for progress updates
        """
        self.connection = connection
        self.projector = projector or ResultProjector()
        self.verbose = verbose
        self.progress_callback = progress_callback

    def _log(self, message: str) -> None:
        """Log a message to console and/or callback."""
        if self.verbose:
            print(message)
        if self.progress_callback:
            self.progress_callback(message)

    def execute(
        self,
        query: Query,
        on_page: Callable[[ResultPage], None],
        controls: Optional[list] = None
    ) -> Outcome:
        """Run a query, handing each page to on_page in server order.

        Args:
            query: The query to run
            on_page: Called once per page
            controls: Extra request controls (e.g. security descriptor flags)

        Returns:
            Outcome with page/entry counts and the failure that ended the
            query early, if any
        """
        outcome = Outcome()
        for page in self._pages(query, controls, outcome):
            on_page(page)
        return outcome

    def iter_pages(self, query: Query, controls: Optional[list] = None,
                   outcome: Optional[Outcome] = None) -> Iterator[ResultPage]:
        """Yield the pages of a query as they arrive.

        Pass an Outcome to learn, after the iteration, why it ended.
        """
        return self._pages(query, controls, outcome if outcome is not None else Outcome())

    def search(self, query: Query, mode, controls: Optional[list] = None,
               outcome: Optional[Outcome] = None):
        """Run a query and yield projected records, page by page."""
        for page in self.iter_pages(query, controls, outcome):
            yield from self.projector.project(page, mode)

    def _pages(self, query: Query, controls: Optional[list], outcome: Outcome) -> Iterator[ResultPage]:
        request_controls = [search_options_control()]
        if controls:
            request_controls.extend(controls)

        attributes = list(query.attributes) or ALL_ATTRIBUTES
        cookie = None

        # loop through each page
        while True:
            try:
                self.connection.search(
                    search_base=query.base_dn,
                    search_filter=query.filter,
                    search_scope=SCOPES[query.scope],
                    attributes=attributes,
                    controls=request_controls,
                    paged_size=query.page_size,
                    paged_cookie=cookie
                )
            except (LDAPException, OSError) as e:
                outcome.error = TransportFailure(str(e))
                self._log(f"[!] Unexpected error: {e}")
                return

            result = self.connection.result or {}
            if result.get('result', 0) != 0:
                outcome.error = TransportFailure(
                    f"{result.get('description', 'error')}: {result.get('message', '')}".strip()
                )
                self._log(f"[!] Unexpected error: {outcome.error}")
                return

            response_controls = result.get('controls') or {}
            if len(response_controls) != 1 or LDAP_PAGED_RESULT_OID_STRING not in response_controls:
                outcome.error = UnsupportedServer("paged results control missing from response")
                self._log("[!] The server does not support this advanced search operation")
                return

            entries = [
                Entry.from_response(item)
                for item in self.connection.response or []
                if item.get('type') == 'searchResEntry'
            ]
            control_value = response_controls[LDAP_PAGED_RESULT_OID_STRING].get('value') or {}
            cookie = control_value.get('cookie') or b""

            outcome.pages += 1
            outcome.entries += len(entries)
            yield ResultPage(entries=entries, cookie=cookie)

            if not cookie:
                break
