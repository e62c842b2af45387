"""Tests for the Kerberos policy reader."""

import os
import shutil
import sys
import tempfile
import unittest

sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from adscope.errors import PolicyReadError  # noqa: E402
from adscope.harvest.policy import default_domain_policy_path, read_kerberos_policy  # noqa: E402

GPTTMPL = """[Unicode]
Unicode=yes
[System Access]
MinimumPasswordAge = 1
MaximumPasswordAge = 42
[Kerberos Policy]
MaxTicketAge = 10
MaxRenewAge = 7
MaxServiceAge = 600
MaxClockSkew = 5
TicketValidateClient = 1
[Version]
signature="$CHICAGO$"
Revision=1
"""


class TestKerberosPolicy(unittest.TestCase):
    """Test GptTmpl.inf parsing."""

    def setUp(self):
        self.root = tempfile.mkdtemp()

    def tearDown(self):
        shutil.rmtree(self.root, ignore_errors=True)

    def write(self, content: bytes) -> str:
        path = os.path.join(self.root, "GptTmpl.inf")
        with open(path, "wb") as f:
            f.write(content)
        return path

    def test_utf16_template(self):
        """Test a template as written by secedit (UTF-16 with BOM)."""
        path = self.write(GPTTMPL.replace("\n", "\r\n").encode("utf-16"))
        policy = read_kerberos_policy(path)

        self.assertEqual(policy.max_service_age, "600")
        self.assertEqual(policy.max_ticket_age, "10")
        self.assertEqual(policy.max_renew_age, "7")
        self.assertEqual(policy.max_clock_skew, "5")
        self.assertEqual(policy.ticket_validate_client, "1")

    def test_utf8_template(self):
        """Test a hand-edited UTF-8 template."""
        policy = read_kerberos_policy(self.write(GPTTMPL.encode("utf-8")))
        self.assertEqual(policy.max_ticket_age, "10")

    def test_missing_key(self):
        """Test that absent settings are None."""
        policy = read_kerberos_policy(self.write(GPTTMPL.replace("MaxClockSkew = 5\n", "").encode("utf-8")))
        self.assertIsNone(policy.max_clock_skew)

    def test_missing_section(self):
        """Test that a template without Kerberos settings is an error."""
        path = self.write(b"[System Access]\nMinimumPasswordAge = 1\n")
        with self.assertRaises(PolicyReadError):
            read_kerberos_policy(path)

    def test_missing_file(self):
        """Test that an unreadable template is an error."""
        with self.assertRaises(PolicyReadError):
            read_kerberos_policy(os.path.join(self.root, "absent.inf"))

    def test_default_domain_policy_path(self):
        """Test the Default Domain Policy template location."""
        path = default_domain_policy_path("Policies")
        self.assertTrue(path.startswith(os.path.join("Policies", "{31B2F340-016D-11D2-945F-00C04FB984F9}")))
        self.assertTrue(path.endswith("GptTmpl.inf"))


if __name__ == "__main__":
    unittest.main()
