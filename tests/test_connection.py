"""Tests for the directory session bind logic."""

import os
import sys
import unittest
from unittest import mock

sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from ldap3 import NTLM, SIMPLE  # noqa: E402
from ldap3.core.exceptions import LDAPBindError, LDAPSocketOpenError  # noqa: E402

from adscope.collection import connection as connection_module  # noqa: E402
from adscope.collection.connection import DirectorySession, dn_to_domain, domain_to_dn  # noqa: E402


class TestDirectorySession(unittest.TestCase):
    """Test binding with mocked ldap3 Server and Connection."""

    def setUp(self):
        server_patch = mock.patch.object(connection_module, "Server")
        connection_patch = mock.patch.object(connection_module, "Connection")
        self.server_cls = server_patch.start()
        self.connection_cls = connection_patch.start()
        self.addCleanup(server_patch.stop)
        self.addCleanup(connection_patch.stop)
        self.server_cls.return_value.info.other = {
            "defaultNamingContext": ["DC=child,DC=corp,DC=local"],
            "rootDomainNamingContext": ["DC=corp,DC=local"],
        }

    def session(self, **kwargs):
        return DirectorySession(server_ip="10.0.0.1", domain="child.corp.local", verbose=False, **kwargs)

    def test_ntlm_bind_with_netbios_user(self):
        """Test that a bare user name is qualified with the NetBIOS name for NTLM."""
        session = self.session(username="alice", password="Password123")

        self.assertTrue(session.connect())

        kwargs = self.connection_cls.call_args.kwargs
        self.assertEqual(kwargs["user"], "CHILD\\alice")
        self.assertEqual(kwargs["authentication"], NTLM)
        self.assertIs(session.connection, self.connection_cls.return_value)

    def test_simple_bind_fallback(self):
        """Test that a password rejected by NTLM is retried as a simple bind."""
        bound = mock.Mock()
        self.connection_cls.side_effect = [LDAPBindError("invalid credentials"), bound]
        session = self.session(username="alice", password="Password123")

        self.assertTrue(session.connect())

        kwargs = self.connection_cls.call_args.kwargs
        self.assertEqual(kwargs["user"], "alice@child.corp.local")
        self.assertEqual(kwargs["authentication"], SIMPLE)
        self.assertIs(session.connection, bound)

    def test_hash_has_no_fallback(self):
        """Test that a rejected hash fails without a simple bind."""
        self.connection_cls.side_effect = LDAPBindError("invalid credentials")
        session = self.session(username="alice", ntlm_hash="aad3b435b51404eeaad3b435b51404ee:31d6cfe0d16ae931b73c59d7e0c089c0")

        self.assertFalse(session.connect())
        self.assertEqual(self.connection_cls.call_count, 1)
        self.assertIsNone(session.connection)

    def test_anonymous_bind(self):
        """Test that no credentials means an anonymous bind."""
        session = self.session()

        self.assertTrue(session.connect())

        kwargs = self.connection_cls.call_args.kwargs
        self.assertNotIn("user", kwargs)
        self.assertTrue(kwargs["auto_bind"])

    def test_naming_contexts(self):
        """Test that domain and forest DNs come from the RootDSE."""
        session = self.session()
        session.connect()

        self.assertEqual(session.base_dn, "DC=child,DC=corp,DC=local")
        self.assertEqual(session.forest_dn, "DC=corp,DC=local")

    def test_unreachable_server(self):
        """Test that a socket failure is reported as a failed connect."""
        self.connection_cls.side_effect = LDAPSocketOpenError("unreachable")
        messages = []
        session = DirectorySession(server_ip="10.0.0.1", domain="corp.local", verbose=False,
                                   progress_callback=messages.append)

        self.assertFalse(session.connect())
        self.assertTrue(messages[-1].startswith("[!] Connection failed"))


class TestDnHelpers(unittest.TestCase):
    """Test domain name and DN conversion."""

    def test_domain_to_dn(self):
        """Test converting a DNS name to a DN."""
        self.assertEqual(domain_to_dn("corp.local"), "DC=corp,DC=local")

    def test_dn_to_domain(self):
        """Test converting a DN to a DNS name."""
        self.assertEqual(dn_to_domain("DC=corp,DC=local"), "corp.local")


if __name__ == "__main__":
    unittest.main()
