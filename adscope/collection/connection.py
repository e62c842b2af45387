"""
LDAP Connection Module
======================

Opens the ldap3 connection every collector works on.

Features:
- LDAP (389) and LDAPS (636)
- NTLM bind with password or hash, simple bind fallback, anonymous bind
- Naming contexts (domain and forest root) read from the RootDSE

Design Decisions:
-----------------
1. The connection timeout is set here; collectors see a timeout as an
   ordinary failed request
2. Domain base DN is derived from the domain name; the forest root comes
   from rootDomainNamingContext when the server publishes it
"""

from typing import Optional, Callable

from ldap3 import Server, Connection, ALL, NTLM, SIMPLE
from ldap3.core.exceptions import LDAPException

from ..config import LDAPConfig


def domain_to_dn(domain: str) -> str:
    """corp.local -> DC=corp,DC=local"""
    return ",".join(f"DC={part}" for part in domain.split(".") if part)


def dn_to_domain(dn: str) -> str:
    """DC=corp,DC=local -> corp.local"""
    parts = [p.split("=", 1)[1] for p in dn.split(",") if p.strip().upper().startswith("DC=")]
    return ".".join(parts)


class DirectorySession:
    """A bound connection to one domain controller.

    Usage:
        session = DirectorySession(
            server_ip="192.168.1.100",
            domain="corp.local",
            username="user",
            password="password"
        )
        if session.connect():
            executor = QueryExecutor(session.connection)
    """

    def __init__(
        self,
        server_ip: str,
        domain: str,
        username: Optional[str] = None,
        password: Optional[str] = None,
        ntlm_hash: Optional[str] = None,
        config: Optional[LDAPConfig] = None,
        verbose: bool = True,
        progress_callback: Optional[Callable[[str], None]] = None
    ):
        """Initialize the session.

        Args:
            server_ip: IP address or hostname of the domain controller
            domain: Domain name (e.g., "corp.local")
            username: Username for authentication (domain\\user or user@domain)
            password: Password for authentication
            ntlm_hash: NTLM hash for Pass-the-Hash (format: LM:NT or just NT)
            config: LDAPConfig object for connection settings
            verbose: Whether to print progress messages
            progress_callback: Optional callback for progress updates
        """
        self.server_ip = server_ip
        self.domain = domain
        self.username = username
        self.password = password
        self.ntlm_hash = ntlm_hash
        self.config = config or LDAPConfig()
        self.verbose = verbose
        self.progress_callback = progress_callback

        self.connection: Optional[Connection] = None
        self.base_dn = domain_to_dn(domain)
        self.forest_dn = self.base_dn
        self.netbios_name = domain.split(".")[0].upper() if domain else ""

    def _log(self, message: str) -> None:
        """Log a message to console and/or callback."""
        if self.verbose:
            print(message)
        if self.progress_callback:
            self.progress_callback(message)

    @property
    def has_credentials(self) -> bool:
        return bool(self.username and (self.password or self.ntlm_hash))

    def ntlm_user(self) -> str:
        """DOMAIN\\user form for NTLM; qualified names are used as given."""
        if '\\' in self.username or '@' in self.username:
            return self.username
        return f"{self.netbios_name}\\{self.username}"

    def simple_user(self) -> str:
        """user@domain form for a simple bind."""
        if '@' in self.username:
            return self.username
        return f"{self.username}@{self.domain}"

    def connect(self) -> bool:
        """Bind to the domain controller and read its naming contexts.

        Returns:
            True if the bind succeeded, False otherwise
        """
        try:
            server = Server(
                self.server_ip,
                port=self.config.port,
                use_ssl=self.config.use_ssl,
                get_info=ALL,
                connect_timeout=self.config.timeout
            )
            if self.has_credentials:
                self.connection = self._bind_user(server)
            else:
                self.connection = self._bind_anonymous(server)
        except (LDAPException, OSError) as e:
            self._log(f"[!] Connection failed: {e}")
            return False

        self._log(f"[+] Connected successfully to {self.server_ip}")
        self._read_naming_contexts(server)
        return True

    def _open(self, server: Server, **bind_args) -> Connection:
        return Connection(server, auto_bind=True, receive_timeout=self.config.timeout, **bind_args)

    def _bind_user(self, server: Server) -> Connection:
        """NTLM bind; a password that NTLM rejects is retried as a simple bind."""
        user = self.ntlm_user()
        method = "Pass-the-Hash" if self.ntlm_hash else "Password"
        self._log(f"[*] Connecting to {self.server_ip}:{self.config.port} as {user} ({method})")
        try:
            return self._open(server, user=user, password=self.ntlm_hash or self.password,
                              authentication=NTLM)
        except LDAPException:
            if self.ntlm_hash:
                raise
        self._log("[*] NTLM auth failed, trying simple bind...")
        return self._open(server, user=self.simple_user(), password=self.password,
                          authentication=SIMPLE)

    def _bind_anonymous(self, server: Server) -> Connection:
        self._log(f"[*] Connecting anonymously to {self.server_ip}:{self.config.port}")
        return self._open(server)

    def _read_naming_contexts(self, server: Server) -> None:
        info = server.info
        if info is None:
            return
        other = info.other or {}
        default_nc = other.get('defaultNamingContext')
        root_nc = other.get('rootDomainNamingContext')
        if default_nc:
            self.base_dn = str(default_nc[0])
        if root_nc:
            self.forest_dn = str(root_nc[0])
        self._log(f"[+] Domain: {self.base_dn}  Forest: {self.forest_dn}")

    def disconnect(self) -> None:
        """Close the LDAP connection."""
        if self.connection:
            try:
                self.connection.unbind()
            except LDAPException:
                pass
            self.connection = None
