"""Tests for ReconciliationService and the batch validation function."""

import json
import logging
from unittest.mock import patch

import pytest

from statement_recon.accounts import AccountDirectory
from statement_recon.config import Settings
from statement_recon.csv_table import parse_csv
from statement_recon.exceptions import FileAccessError
from statement_recon.models import Account
from statement_recon.reconciler import validate_table
from statement_recon.service import ReconciliationService, detect_all
from statement_recon.storage import FileStore

HEADER = "Date;Libellé;Montant;Source;Compte\r\n"
CCAL_FILE = "CCAL_01.01.2025_31.01.2025.csv"


def statement(*lines: str) -> str:
    """Build statement content from data lines."""
    return HEADER + "".join(f"{line}\r\n" for line in lines)


@pytest.fixture
def settings(tmp_path):
    """Create settings rooted in a temporary folder with an account file."""
    accounts_path = tmp_path / "parametre" / "account.json"
    accounts_path.parent.mkdir()
    accounts_path.write_text(
        json.dumps(
            {
                "CCAL": {"name": "BNP Courant", "color": "#1f77b4"},
                "HSBC": {"name": "HSBC", "color": "#d62728"},
            }
        ),
        encoding="utf-8",
    )
    (tmp_path / "data").mkdir()
    return Settings(base_dir=tmp_path)


@pytest.fixture
def service(settings):
    """Create a ReconciliationService instance."""
    return ReconciliationService(settings)


@pytest.fixture
def data_dir(settings):
    return settings.base_dir / "data"


def write_statement(data_dir, file_name: str, content: str):
    (data_dir / file_name).write_text(content, encoding="utf-8", newline="")


def read_statement(data_dir, file_name: str) -> str:
    return (data_dir / file_name).read_bytes().decode("utf-8")


class TestValidateFile:
    """Tests for validate_file."""

    def test_reports_inconsistencies(self, service, data_dir):
        write_statement(
            data_dir,
            CCAL_FILE,
            statement(
                f"02/01/2025;EDF;-54,10;{CCAL_FILE};Wrong Bank",
                f"03/01/2025;SNCF;-20,00;{CCAL_FILE};BNP Courant",
            ),
        )

        result = service.validate_file(CCAL_FILE)

        assert not result.is_valid
        assert result.total_lines == 2
        assert result.inconsistent_lines == 1
        assert result.inconsistencies[0].compte_expected == "BNP Courant"
        assert result.inconsistencies[0].file_name == CCAL_FILE

    def test_empty_source_uses_file_name(self, service, data_dir):
        write_statement(data_dir, "HSBC_2025.csv", statement("02/01/2025;X;1;;HSBC"))

        assert service.validate_file("HSBC_2025.csv").is_valid

    def test_missing_file_raises_file_access_error(self, service):
        with pytest.raises(FileAccessError) as exc_info:
            service.validate_file("missing.csv")

        assert exc_info.value.operation == "validation"
        assert exc_info.value.path == "missing.csv"
        assert "missing.csv" in str(exc_info.value)

    def test_partial_parse_validates_rows_read(self, service, data_dir):
        write_statement(
            data_dir,
            CCAL_FILE,
            statement(
                f"02/01/2025;EDF;-54,10;{CCAL_FILE};Wrong Bank",
                f'03/01/2025;"SNCF"x;-20,00;{CCAL_FILE};Wrong Bank',
            ),
        )

        result = service.validate_file(CCAL_FILE)

        assert result.total_lines == 1
        assert result.inconsistent_lines == 1

    def test_uses_fresh_directory_after_refresh(self, service, settings, data_dir):
        write_statement(
            data_dir, CCAL_FILE, statement(f"02/01/2025;EDF;-1;{CCAL_FILE};Renamed")
        )
        assert not service.validate_file(CCAL_FILE).is_valid

        settings.accounts_path.write_text(
            json.dumps({"CCAL": {"name": "Renamed", "color": ""}}), encoding="utf-8"
        )
        assert not service.validate_file(CCAL_FILE).is_valid

        service.accounts.invalidate()
        assert service.validate_file(CCAL_FILE).is_valid


class TestDetectAll:
    """Tests for the detect_all batch function."""

    @pytest.fixture
    def directory(self):
        return {"CCAL": Account(name="BNP Courant"), "HSBC": Account(name="HSBC")}

    def test_aggregates_in_given_order(self, directory):
        contents = {
            "HSBC_a.csv": statement("01/01/2025;X;1;HSBC_a.csv;Wrong"),
            "CCAL_b.csv": statement(
                "01/01/2025;X;1;CCAL_b.csv;Wrong",
                "02/01/2025;X;1;ZZZ_b.csv;Wrong",
            ),
        }

        batch = detect_all(["HSBC_a.csv", "CCAL_b.csv"], contents.__getitem__, directory)

        assert [item.file_name for item in batch.inconsistencies] == [
            "HSBC_a.csv",
            "CCAL_b.csv",
            "CCAL_b.csv",
        ]
        assert list(batch.results) == ["HSBC_a.csv", "CCAL_b.csv"]
        assert batch.failed_files == []
        assert not batch.is_valid

    def test_failure_does_not_abort_batch(self, directory):
        def loader(file_name: str) -> str:
            if file_name == "broken.csv":
                raise FileAccessError("read", file_name)
            return statement(f"01/01/2025;X;1;{file_name};Wrong")

        batch = detect_all(["CCAL_a.csv", "broken.csv", "HSBC_c.csv"], loader, directory)

        assert batch.failed_files == ["broken.csv"]
        assert list(batch.results) == ["CCAL_a.csv", "HSBC_c.csv"]
        assert [item.file_name for item in batch.inconsistencies] == [
            "CCAL_a.csv",
            "HSBC_c.csv",
        ]

    def test_validation_error_is_isolated(self, directory):
        contents = {
            "CCAL_a.csv": statement("01/01/2025;X;1;CCAL_a.csv;Wrong"),
            "HSBC_b.csv": statement("01/01/2025;X;1;HSBC_b.csv;Wrong"),
        }

        def flaky_validate(table, file_name, directory):
            if file_name == "CCAL_a.csv":
                raise RuntimeError("boom")
            return validate_table(table, file_name, directory)

        with patch("statement_recon.service.validate_table", side_effect=flaky_validate):
            batch = detect_all(["CCAL_a.csv", "HSBC_b.csv"], contents.__getitem__, directory)

        assert batch.failed_files == ["CCAL_a.csv"]
        assert list(batch.results) == ["HSBC_b.csv"]
        assert len(batch.inconsistencies) == 1

    def test_empty_file_contributes_no_rows(self, directory):
        batch = detect_all(["empty.csv"], lambda name: "", directory)

        assert batch.results["empty.csv"].total_lines == 0
        assert batch.is_valid

    def test_empty_list(self, directory):
        batch = detect_all([], lambda name: "", directory)

        assert batch.inconsistencies == []
        assert batch.results == {}


class TestDetectAllInconsistencies:
    """Tests for detect_all_inconsistencies."""

    def test_checks_csv_files_in_listing_order(self, service, data_dir):
        write_statement(data_dir, "HSBC_b.csv", statement("01/01/2025;X;1;HSBC_b.csv;Wrong"))
        write_statement(data_dir, "CCAL_a.csv", statement("01/01/2025;X;1;CCAL_a.csv;Wrong"))
        write_statement(data_dir, "notes.txt", "not a statement")

        batch = service.detect_all_inconsistencies()

        assert list(batch.results) == ["CCAL_a.csv", "HSBC_b.csv"]
        assert [item.file_name for item in batch.inconsistencies] == [
            "CCAL_a.csv",
            "HSBC_b.csv",
        ]

    def test_unreadable_file_is_skipped(self, service, data_dir):
        write_statement(data_dir, "CCAL_a.csv", statement("01/01/2025;X;1;CCAL_a.csv;Wrong"))
        (data_dir / "CCAL_b.csv").write_bytes(b"\xff\xfe\xfa invalid utf-8")

        batch = service.detect_all_inconsistencies()

        assert batch.failed_files == ["CCAL_b.csv"]
        assert list(batch.results) == ["CCAL_a.csv"]

    def test_missing_data_folder_raises(self, service, data_dir):
        data_dir.rmdir()

        with pytest.raises(FileAccessError):
            service.detect_all_inconsistencies()


class TestCorrectFile:
    """Tests for correct_file."""

    def test_rewrites_file_when_corrected(self, service, data_dir):
        write_statement(
            data_dir,
            CCAL_FILE,
            statement(
                f"02/01/2025;EDF;-54,10;{CCAL_FILE};Wrong Bank",
                f"03/01/2025;SNCF;-20,00;{CCAL_FILE};BNP Courant",
            ),
        )

        result = service.correct_file(CCAL_FILE)

        assert result.corrected == 1
        assert result.errors == 0
        assert result.written
        assert read_statement(data_dir, CCAL_FILE) == statement(
            f"02/01/2025;EDF;-54,10;{CCAL_FILE};BNP Courant",
            f"03/01/2025;SNCF;-20,00;{CCAL_FILE};BNP Courant",
        )
        assert service.validate_file(CCAL_FILE).is_valid

    def test_leaves_file_untouched_when_nothing_to_correct(self, service, data_dir):
        original = HEADER.replace("\r\n", "\n") + f"02/01/2025;EDF;-1;{CCAL_FILE};BNP Courant\n"
        write_statement(data_dir, CCAL_FILE, original)

        with patch.object(service.store, "write_text") as write_text:
            result = service.correct_file(CCAL_FILE)

        assert result.corrected == 0
        assert not result.written
        write_text.assert_not_called()
        assert read_statement(data_dir, CCAL_FILE) == original

    def test_counts_invalid_prefixes(self, service, data_dir):
        write_statement(data_dir, CCAL_FILE, statement("02/01/2025;EDF;-1;ZZZ_x.csv;Other"))

        result = service.correct_file(CCAL_FILE)

        assert result.corrected == 0
        assert result.errors == 1
        assert not result.written

    def test_dry_run_does_not_write(self, service, data_dir):
        content = statement(f"02/01/2025;EDF;-1;{CCAL_FILE};Wrong")
        write_statement(data_dir, CCAL_FILE, content)

        result = service.correct_file(CCAL_FILE, dry_run=True)

        assert result.corrected == 1
        assert not result.written
        assert read_statement(data_dir, CCAL_FILE) == content

    def test_second_correction_is_noop(self, service, data_dir):
        write_statement(data_dir, CCAL_FILE, statement(f"02/01/2025;EDF;-1;{CCAL_FILE};Wrong"))

        service.correct_file(CCAL_FILE)
        second = service.correct_file(CCAL_FILE)

        assert second.corrected == 0
        assert not second.written

    def test_write_failure_is_wrapped(self, service, data_dir):
        write_statement(data_dir, CCAL_FILE, statement(f"02/01/2025;EDF;-1;{CCAL_FILE};Wrong"))

        with patch.object(
            service.store,
            "write_text",
            side_effect=FileAccessError("write", CCAL_FILE, "disk full"),
        ):
            with pytest.raises(FileAccessError) as exc_info:
                service.correct_file(CCAL_FILE)

        assert exc_info.value.operation == "correction"
        assert CCAL_FILE in str(exc_info.value)


class TestSplitFile:
    """Tests for split_file."""

    @pytest.fixture
    def split_settings(self, settings):
        settings.accounts_path.write_text(
            json.dumps({"BNP": "BNP Courant", "HSBC": "HSBC"}), encoding="utf-8"
        )
        return settings

    def test_writes_one_file_per_account(self, split_settings, data_dir):
        service = ReconciliationService(split_settings)
        content = statement(
            f"20/01/2025;A;1;{CCAL_FILE};BNP Courant",
            f"18/01/2025;B;2;{CCAL_FILE};HSBC",
            f"05/01/2025;C;3;{CCAL_FILE};BNP Courant",
            f"02/01/2025;D;4;{CCAL_FILE};HSBC",
            f"11/01/2025;E;5;{CCAL_FILE};BNP Courant",
        )
        write_statement(data_dir, CCAL_FILE, content)

        result = service.split_file(CCAL_FILE)

        assert result.errors == 0
        assert result.created_files == [
            "BNP_01.01.2025_31.01.2025.csv",
            "HSBC_01.01.2025_31.01.2025.csv",
        ]
        bnp_text = read_statement(data_dir, "BNP_01.01.2025_31.01.2025.csv")
        assert bnp_text == statement(
            f"05/01/2025;C;3;{CCAL_FILE};BNP Courant",
            f"11/01/2025;E;5;{CCAL_FILE};BNP Courant",
            f"20/01/2025;A;1;{CCAL_FILE};BNP Courant",
        )
        hsbc_table = parse_csv(
            read_statement(data_dir, "HSBC_01.01.2025_31.01.2025.csv")
        ).table
        assert [row["Libellé"] for row in hsbc_table.rows] == ["D", "B"]

    def test_keeps_original_file(self, split_settings, data_dir):
        service = ReconciliationService(split_settings)
        content = statement(
            f"20/01/2025;A;1;{CCAL_FILE};BNP Courant",
            f"18/01/2025;B;2;{CCAL_FILE};HSBC",
        )
        write_statement(data_dir, CCAL_FILE, content)

        service.split_file(CCAL_FILE)

        assert read_statement(data_dir, CCAL_FILE) == content

    def test_single_account_writes_nothing(self, split_settings, data_dir):
        service = ReconciliationService(split_settings)
        write_statement(
            data_dir,
            CCAL_FILE,
            statement(
                f"20/01/2025;A;1;{CCAL_FILE};BNP Courant",
                f"18/01/2025;B;2;{CCAL_FILE};BNP Courant",
            ),
        )

        result = service.split_file(CCAL_FILE)

        assert result.groups == []
        assert result.errors == 0
        assert sorted(path.name for path in data_dir.iterdir()) == [CCAL_FILE]

    def test_unmatched_account_counted(self, split_settings, data_dir):
        service = ReconciliationService(split_settings)
        write_statement(
            data_dir,
            CCAL_FILE,
            statement(
                f"20/01/2025;A;1;{CCAL_FILE};BNP Courant",
                f"18/01/2025;B;2;{CCAL_FILE};Mystery Bank",
            ),
        )

        result = service.split_file(CCAL_FILE)

        assert result.errors == 1
        assert result.created_files == ["BNP_01.01.2025_31.01.2025.csv"]

    def test_does_not_replace_original_when_rows_are_unmatched(self, settings, data_dir):
        """The group named after the original is skipped if other rows have no target."""
        service = ReconciliationService(settings)
        content = statement(
            f"20/01/2025;A;1;{CCAL_FILE};BNP Courant",
            f"18/01/2025;B;2;{CCAL_FILE};Typo Bank",
            f"05/01/2025;C;3;{CCAL_FILE};Typo Bank",
        )
        write_statement(data_dir, CCAL_FILE, content)

        result = service.split_file(CCAL_FILE)

        assert result.errors == 1
        assert result.created_files == []
        assert result.skipped_files == [CCAL_FILE]
        assert read_statement(data_dir, CCAL_FILE) == content

    def test_writes_group_named_after_original_last(self, settings, data_dir):
        service = ReconciliationService(settings)
        write_statement(
            data_dir,
            CCAL_FILE,
            statement(
                f"20/01/2025;A;1;{CCAL_FILE};BNP Courant",
                f"18/01/2025;B;2;{CCAL_FILE};HSBC",
            ),
        )
        real_write = service.store.write_text
        written = []

        def recording_write(path, content):
            written.append(path)
            real_write(path, content)

        with patch.object(service.store, "write_text", side_effect=recording_write):
            result = service.split_file(CCAL_FILE)

        assert result.errors == 0
        assert result.skipped_files == []
        assert written == [
            "data/HSBC_01.01.2025_31.01.2025.csv",
            f"data/{CCAL_FILE}",
        ]
        assert read_statement(data_dir, CCAL_FILE) == statement(
            f"20/01/2025;A;1;{CCAL_FILE};BNP Courant"
        )

    def test_write_failure_leaves_original_untouched(self, settings, data_dir):
        settings.accounts_path.write_text(
            json.dumps({"CCAL": "BNP Courant", "HSBC": "HSBC", "LCL": "LCL"}),
            encoding="utf-8",
        )
        service = ReconciliationService(settings)
        content = statement(
            f"20/01/2025;A;1;{CCAL_FILE};BNP Courant",
            f"18/01/2025;B;2;{CCAL_FILE};HSBC",
            f"05/01/2025;C;3;{CCAL_FILE};LCL",
        )
        write_statement(data_dir, CCAL_FILE, content)
        real_write = service.store.write_text
        calls = []

        def failing_second_write(path, content):
            calls.append(path)
            if len(calls) == 2:
                raise FileAccessError("write", path, "disk full")
            real_write(path, content)

        with patch.object(service.store, "write_text", side_effect=failing_second_write):
            with pytest.raises(FileAccessError) as exc_info:
                service.split_file(CCAL_FILE)

        assert exc_info.value.operation == "split"
        assert exc_info.value.path == "LCL_01.01.2025_31.01.2025.csv"
        assert (data_dir / "HSBC_01.01.2025_31.01.2025.csv").exists()
        assert not (data_dir / "LCL_01.01.2025_31.01.2025.csv").exists()
        assert read_statement(data_dir, CCAL_FILE) == content

    def test_logs_each_created_file_once(self, split_settings, data_dir, caplog):
        service = ReconciliationService(split_settings)
        write_statement(
            data_dir,
            CCAL_FILE,
            statement(
                f"20/01/2025;A;1;{CCAL_FILE};BNP Courant",
                f"18/01/2025;B;2;{CCAL_FILE};HSBC",
            ),
        )

        with caplog.at_level(logging.INFO, logger="statement_recon"):
            service.split_file(CCAL_FILE)

        mentions = [
            record.getMessage()
            for record in caplog.records
            if record.name != "statement_recon.storage"
            and "HSBC_01.01.2025_31.01.2025.csv" in record.getMessage()
        ]
        assert len(mentions) == 1
        assert mentions[0].startswith("Created ")


class TestServiceWithInjectedCollaborators:
    """The service accepts an explicit store and directory."""

    def test_uses_given_directory(self, settings, data_dir):
        directory = AccountDirectory.from_mapping({"CCAL": "Custom Name"})
        service = ReconciliationService(
            settings, store=FileStore(settings.base_dir), accounts=directory
        )
        write_statement(data_dir, CCAL_FILE, statement(f"02/01/2025;A;1;{CCAL_FILE};Custom Name"))

        assert service.validate_file(CCAL_FILE).is_valid
