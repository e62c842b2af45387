"""Tests for the command-line interface."""

import contextlib
import io
import os
import shutil
import sys
import tempfile
import unittest
from unittest import mock

sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from adscope.collection.query import LDAP_PAGED_RESULT_OID_STRING  # noqa: E402
from adscope.main import build_config, build_parser, main, wants_ldap  # noqa: E402

GROUPS_XML = """<Groups>
  <User name="Administrator" changed="2013-07-04 00:07:13">
    <Properties userName="Administrator" cpassword="RI133B2WlQ"/>
  </User>
</Groups>
"""


class TestCli(unittest.TestCase):
    """Test argument handling and file-only runs."""

    def setUp(self):
        self.root = tempfile.mkdtemp()

    def tearDown(self):
        shutil.rmtree(self.root, ignore_errors=True)

    def run_main(self, argv):
        out = io.StringIO()
        with contextlib.redirect_stdout(out):
            status = main(argv)
        return status, out.getvalue()

    def test_gpp_without_ldap(self):
        """Test that a GPP harvest needs no directory connection."""
        with open(os.path.join(self.root, "Groups.xml"), "w", encoding="utf-8") as f:
            f.write(GROUPS_XML)

        status, output = self.run_main(["--gpp", self.root])

        self.assertEqual(status, 0)
        self.assertIn("Group Policy Preferences Credentials", output)
        self.assertIn("RI133B2WlQ", output)

    def test_ldap_section_needs_server(self):
        """Test that LDAP sections without a target are rejected."""
        with contextlib.redirect_stderr(io.StringIO()):
            with self.assertRaises(SystemExit):
                main(["--trusts", "-d", "corp.local"])

    def test_nothing_to_do(self):
        """Test that an empty command line is rejected."""
        with contextlib.redirect_stderr(io.StringIO()):
            with self.assertRaises(SystemExit):
                main([])

    def test_wants_ldap(self):
        """Test LDAP section detection."""
        parser = build_parser()
        self.assertTrue(wants_ldap(parser.parse_args(["--spn"])))
        self.assertTrue(wants_ldap(parser.parse_args(["--acl", "CN=x,DC=corp,DC=local"])))
        self.assertFalse(wants_ldap(parser.parse_args(["--gpp", "/tmp"])))

    def test_spn_optional_target(self):
        """Test that --spn takes an optional target name."""
        parser = build_parser()
        self.assertEqual(parser.parse_args(["--spn"]).spn, "")
        self.assertEqual(parser.parse_args(["--spn", "sql01"]).spn, "sql01")
        self.assertIsNone(parser.parse_args([]).spn)

    def test_no_inherited_flag(self):
        """Test that --no-inherited turns off inherited ACEs in the configuration."""
        parser = build_parser()
        self.assertTrue(build_config(parser.parse_args([])).output.show_inherited)
        self.assertFalse(build_config(parser.parse_args(["--no-inherited"])).output.show_inherited)

    def test_build_config(self):
        """Test that connection and harvest options reach the configuration."""
        args = build_parser().parse_args(["--ldaps", "--timeout", "30", "--sysvol-root", "/mnt/sysvol", "-v"])
        config = build_config(args)
        self.assertEqual(config.ldap.port, 636)
        self.assertEqual(config.ldap.timeout, 30)
        self.assertEqual(config.harvest.sysvol_root, "/mnt/sysvol")
        self.assertTrue(config.verbose)


class FakeDirectoryConnection:
    """Serves a single domain crossRef and a domain head without objectSid."""

    def __init__(self):
        self.response = []
        self.result = {}

    def search(self, search_base, search_filter, search_scope=None, attributes=None, controls=None,
               paged_size=None, paged_cookie=None, **kwargs):
        if search_base.startswith("CN=Partitions,"):
            self.response = [{
                "type": "searchResEntry",
                "dn": "CN=CORP,CN=Partitions,CN=Configuration,DC=corp,DC=local",
                "attributes": {"dnsRoot": ["corp.local"], "nETBIOSName": "CORP", "nCName": "DC=corp,DC=local"},
                "raw_attributes": {},
            }]
        else:
            self.response = [{
                "type": "searchResEntry", "dn": search_base, "attributes": {}, "raw_attributes": {},
            }]
        self.result = {
            "result": 0,
            "controls": {LDAP_PAGED_RESULT_OID_STRING: {"value": {"size": 0, "cookie": b""}}},
        }
        return True


class FakeSession:
    base_dn = "DC=corp,DC=local"
    forest_dn = "DC=corp,DC=local"
    netbios_name = "CORP"

    def __init__(self):
        self.connection = FakeDirectoryConnection()
        self.disconnected = False

    def connect(self):
        return True

    def disconnect(self):
        self.disconnected = True


class TestLdapRun(unittest.TestCase):
    """Test LDAP sections against a fake directory session."""

    def run_main(self, argv):
        session = FakeSession()
        out = io.StringIO()
        with mock.patch("adscope.main.DirectorySession", return_value=session):
            with contextlib.redirect_stdout(out):
                status = main(argv)
        self.assertTrue(session.disconnected)
        return status, out.getvalue()

    def test_warnings_shown_without_verbose(self):
        """Test that collection warnings are printed even without -v."""
        status, output = self.run_main(["-d", "corp.local", "-s", "10.0.0.1", "--domains"])

        self.assertEqual(status, 0)
        self.assertIn("[!] Could not retrieve domain SID for DC=corp,DC=local", output)
        self.assertIn("corp.local", output)
        self.assertNotIn("[*] Enumerating domains", output)

    def test_verbose_announces_sections(self):
        """Test that -v announces each section."""
        _, output = self.run_main(["-d", "corp.local", "-s", "10.0.0.1", "--domains", "-v"])
        self.assertIn("[*] Enumerating domains...", output)
        self.assertIn("[!] Could not retrieve domain SID", output)


if __name__ == "__main__":
    unittest.main()
