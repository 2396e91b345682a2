"""Tests for the royalty CLI."""

import io
import json

import pytest

from royalty_engine.cli import EXIT_OK, EXIT_REJECTED, EXIT_USAGE, RoyaltyCli, load_ledger


def write_split(tmp_path, payload, name="split.json"):
    path = tmp_path / name
    path.write_text(json.dumps(payload))
    return str(path)


@pytest.fixture
def cli():
    return RoyaltyCli(stdout=io.StringIO(), stderr=io.StringIO())


SEVENTY_THIRTY = {
    "work_id": "track-42",
    "shares": [
        {"recipient_name": "Ana", "role": "artist", "percentage": "70"},
        {"recipient_name": "Bo", "role": "producer", "percentage": "30"},
    ],
}


class TestLoadLedger:
    """Test split file parsing."""

    def test_object_form(self):
        ledger = load_ledger(io.StringIO(json.dumps(SEVENTY_THIRTY)))

        assert ledger.work_id == "track-42"
        assert len(ledger.shares) == 2

    def test_list_form_and_float_percentages(self):
        ledger = load_ledger(
            io.StringIO('[{"recipient_name": "Ana", "role": "artist", "percentage": 33.33}]')
        )

        assert ledger.work_id == "local"
        assert str(ledger.shares[0].percentage) == "33.33"

    @pytest.mark.parametrize(
        "text",
        ['{"work_id": "x"}', '"shares"', '[{"recipient_name": "Ana"}]'],
    )
    def test_malformed(self, text):
        with pytest.raises(ValueError):
            load_ledger(io.StringIO(text))


class TestValidateSplit:
    """Test the validate-split command."""

    def test_valid_split(self, cli, tmp_path):
        code = cli.run(["validate-split", write_split(tmp_path, SEVENTY_THIRTY)])

        output = json.loads(cli.stdout.getvalue())
        assert code == EXIT_OK
        assert output["work_id"] == "track-42"
        assert output["valid"] is True
        assert output["score"] == 100

    def test_invalid_split(self, cli, tmp_path):
        payload = [
            {"recipient_name": "Ana", "role": "artist", "percentage": "60"},
            {"recipient_name": "Bo", "role": "producer", "percentage": "60"},
        ]

        code = cli.run(["validate-split", write_split(tmp_path, payload)])

        output = json.loads(cli.stdout.getvalue())
        assert code == EXIT_REJECTED
        assert output["valid"] is False
        assert output["errors"][0]["code"] == "sum_mismatch"

    @pytest.mark.parametrize("percentage", ['"NaN"', "NaN"])
    def test_nan_percentage_is_rejected_not_raised(self, cli, tmp_path, percentage):
        path = tmp_path / "split.json"
        path.write_text(
            '[{"recipient_name": "Ana", "role": "artist", "percentage": ' + percentage + "},"
            ' {"recipient_name": "Bo", "role": "producer", "percentage": "100"}]'
        )

        code = cli.run(["validate-split", str(path)])

        output = json.loads(cli.stdout.getvalue())
        assert code == EXIT_REJECTED
        assert output["valid"] is False
        assert [e["code"] for e in output["errors"]] == ["percentage_out_of_range"]

    def test_unreadable_split(self, cli, tmp_path):
        path = tmp_path / "broken.json"
        path.write_text("{not json")

        code = cli.run(["validate-split", str(path)])

        assert code == EXIT_USAGE
        assert "ERROR" in cli.stderr.getvalue()


class TestPreview:
    """Test the preview command."""

    def test_preview(self, cli, tmp_path):
        code = cli.run(["preview", write_split(tmp_path, SEVENTY_THIRTY), "--amount", "9.99"])

        output = json.loads(cli.stdout.getvalue())
        assert code == EXIT_OK
        assert output["currency"] == "USD"
        assert [line["amount"] for line in output["lines"]] == ["6.99", "3.00"]

    def test_preview_zero_decimal_currency(self, cli, tmp_path):
        code = cli.run(
            [
                "preview",
                write_split(tmp_path, SEVENTY_THIRTY),
                "--amount",
                "1000",
                "--currency",
                "jpy",
            ]
        )

        output = json.loads(cli.stdout.getvalue())
        assert code == EXIT_OK
        assert output["currency"] == "JPY"
        assert [line["amount"] for line in output["lines"]] == ["700", "300"]

    def test_preview_rejects_fractional_minor_units(self, cli, tmp_path):
        code = cli.run(
            ["preview", write_split(tmp_path, SEVENTY_THIRTY), "--amount", "9.999"]
        )

        assert code == EXIT_REJECTED
        assert "ERROR" in cli.stderr.getvalue()

    def test_preview_invalid_split(self, cli, tmp_path):
        payload = [{"recipient_name": "Ana", "role": "artist", "percentage": "50"}]

        code = cli.run(["preview", write_split(tmp_path, payload), "--amount", "10"])

        assert code == EXIT_REJECTED
        assert json.loads(cli.stdout.getvalue())["valid"] is False


class TestUsage:
    """Test argument handling."""

    def test_no_command(self, cli):
        assert cli.run([]) == EXIT_USAGE

    def test_missing_amount(self, cli, tmp_path):
        with pytest.raises(SystemExit):
            cli.run(["preview", write_split(tmp_path, SEVENTY_THIRTY)])
