"""
Tests for candidate process enumeration.
"""

import psutil
import pytest

from iis_procfinder.correlation.architecture import ArchitectureResolver
from iis_procfinder.correlation.candidates import (
    CandidateEnumerator,
    read_owner_identity,
    validate_executable_name,
)
from iis_procfinder.correlation.models import ArchitectureTag
from iis_procfinder.utils.errors import CandidateQueryError
from tests.fixtures.process_fixtures import FakeProcess, FakeWow64Probe


def make_enumerator(processes, probe=None):
    resolver = ArchitectureResolver(probe or FakeWow64Probe())
    return CandidateEnumerator(resolver=resolver, process_iter=lambda attrs: iter(processes))


class TestEnumerateCandidates:
    """Test filtering the process table."""

    def test_exact_name_filter(self, process_table):
        candidates = make_enumerator(process_table).enumerate_candidates("dotnet.exe")

        assert [c.process_id for c in candidates] == [5678, 9000]
        assert candidates[0].parent_process_id == 1234
        assert all(c.process_name == "dotnet.exe" for c in candidates)

    def test_name_filter_is_case_sensitive(self):
        processes = [FakeProcess(1, 10, "dotnet.exe"), FakeProcess(2, 10, "DOTNET.EXE")]

        candidates = make_enumerator(processes).enumerate_candidates("dotnet.exe")

        assert [c.process_id for c in candidates] == [1]

    def test_zero_matches_is_not_an_error(self, process_table):
        assert make_enumerator(process_table).enumerate_candidates("MyApp.exe") == []

    def test_architecture_is_resolved_per_candidate(self):
        processes = [FakeProcess(1, 10, "app.exe"), FakeProcess(2, 10, "app.exe"), FakeProcess(3, 10, "app.exe")]
        probe = FakeWow64Probe(wow64_pids={1}, failing_pids={3})

        candidates = make_enumerator(processes, probe).enumerate_candidates("app.exe")

        assert [c.processor_architecture for c in candidates] == [
            ArchitectureTag.X86,
            ArchitectureTag.X64,
            ArchitectureTag.UNKNOWN,
        ]
        assert sorted(probe.closed) == [1, 2, 3]

    def test_vanished_process_is_skipped(self):
        processes = [
            FakeProcess(1, 10, "app.exe", vanish=True),
            FakeProcess(2, 10, "app.exe"),
        ]

        candidates = make_enumerator(processes).enumerate_candidates("app.exe")

        assert [c.process_id for c in candidates] == [2]

    def test_missing_parent_is_zero(self):
        candidates = make_enumerator([FakeProcess(1, None, "app.exe")]).enumerate_candidates("app.exe")
        assert candidates[0].parent_process_id == 0

    def test_enumerate_all_concatenates_in_name_order(self):
        processes = [
            FakeProcess(1, 10, "dotnet.exe"),
            FakeProcess(2, 10, "MyApp.exe"),
            FakeProcess(3, 10, "dotnet.exe"),
        ]

        enumeration = make_enumerator(processes).enumerate_all(["MyApp.exe", "dotnet.exe"])

        assert [c.process_id for c in enumeration.candidates] == [2, 1, 3]
        assert enumeration.skipped_names == ()

    def test_enumerate_all_skips_unusable_names(self):
        processes = [FakeProcess(1, 10, "dotnet.exe"), FakeProcess(2, 10, "MyApp.exe")]

        enumeration = make_enumerator(processes).enumerate_all(["My'App.exe", "dotnet.exe", "", "MyApp.exe"])

        assert [c.process_id for c in enumeration.candidates] == [1, 2]
        assert enumeration.skipped_names == ("My'App.exe", "")

    @pytest.mark.parametrize("name", ["", "  ", "c:\\apps\\dotnet.exe", "bin/dotnet", "dot'net.exe", 'x".exe'])
    def test_invalid_filter_is_fatal(self, name):
        with pytest.raises(CandidateQueryError):
            make_enumerator([]).enumerate_candidates(name)


class TestOwnerIdentity:
    """Test reading the owning account of a process."""

    def test_domain_and_user_from_environment(self):
        process = FakeProcess(1, 0, "app.exe", environ={"USERDOMAIN": "IIS APPPOOL", "USERNAME": "MyPool"})
        assert read_owner_identity(process) == "IIS APPPOOL\\MyPool"

    def test_user_without_domain(self):
        process = FakeProcess(1, 0, "app.exe", environ={"USERNAME": "svc"})
        assert read_owner_identity(process) == "svc"

    def test_falls_back_to_account_name(self):
        process = FakeProcess(1, 0, "app.exe", deny_environ=True, username="CONTOSO\\svc")
        assert read_owner_identity(process) == "CONTOSO\\svc"

    def test_unavailable_identity_is_empty(self):
        process = FakeProcess(1, 0, "app.exe", deny_environ=True)
        assert read_owner_identity(process) == ""

    @pytest.mark.parametrize("error", [
        OSError(299, "Only part of a ReadProcessMemory request was completed"),
        psutil.Error("environment unreadable"),
        psutil.ZombieProcess(1),
    ])
    def test_unreadable_environment_falls_back(self, error):
        process = FakeProcess(1, 0, "app.exe", environ_error=error, username="IIS APPPOOL\\X")
        assert read_owner_identity(process) == "IIS APPPOOL\\X"

    def test_unreadable_account_is_empty(self):
        process = FakeProcess(1, 0, "app.exe", environ_error=OSError("denied"), username_error=OSError("denied"))
        assert read_owner_identity(process) == ""

    def test_exited_process_propagates(self):
        process = FakeProcess(1, 0, "app.exe", username_error=psutil.NoSuchProcess(1))
        with pytest.raises(psutil.NoSuchProcess):
            read_owner_identity(process)

    def test_unreadable_identity_keeps_candidate(self):
        processes = [
            FakeProcess(5678, 1234, "dotnet.exe", environ_error=OSError(299, "partial copy")),
            FakeProcess(5679, 1234, "dotnet.exe", environ_error=psutil.Error("boom"), username="IIS APPPOOL\\X"),
        ]

        candidates = make_enumerator(processes).enumerate_candidates("dotnet.exe")

        assert [(c.process_id, c.owner_identity) for c in candidates] == [
            (5678, ""),
            (5679, "IIS APPPOOL\\X"),
        ]

    def test_identity_carried_on_candidate(self, process_table):
        candidates = make_enumerator(process_table).enumerate_candidates("dotnet.exe")
        assert candidates[0].owner_identity == "IIS APPPOOL\\DefaultAppPool"
        assert candidates[1].owner_identity == ""


class TestValidateExecutableName:
    """Test process filter validation."""

    def test_bare_names_pass(self):
        assert validate_executable_name("dotnet.exe") == "dotnet.exe"
        assert validate_executable_name("My App.exe") == "My App.exe"

    def test_error_carries_name(self):
        with pytest.raises(CandidateQueryError) as exc_info:
            validate_executable_name("a/b")
        assert exc_info.value.kwargs["executable_name"] == "a/b"


def test_psutil_process_iter_is_default():
    assert CandidateEnumerator(resolver=ArchitectureResolver(FakeWow64Probe())).process_iter is psutil.process_iter
