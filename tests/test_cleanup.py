import os
import sys
from unittest.mock import patch

# Add project root to path
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

import cleanup
from cleanup import select_for_purge, is_protected

DEALS = [
    {"id": "1", "Deal_Name": "Sarah Litowich Test", "Amount": 1250},
    {"id": "2", "Deal_Name": "Cloud Probe Firm", "Amount": 650},
    {"id": "3", "Deal_Name": "Real Client LLP", "Amount": 3000},
    {"id": "4", "Deal_Name": "Mock Law Group", "Amount": 1250},
    {"id": "5", "Deal_Name": "latest firm", "Amount": 1250},
    {"id": "6", "Deal_Name": "SARAH'S TEST DEAL", "Amount": 650},
]


class TestPurgeFilter:
    """Test the CRM purge selection rules."""

    def test_protected_name_beats_keyword(self):
        selected = select_for_purge(DEALS)

        assert "Sarah Litowich Test" not in [d["Deal_Name"] for d in selected]

    def test_protected_check_is_case_insensitive(self):
        assert is_protected("SARAH'S TEST DEAL")
        assert "6" not in [d["id"] for d in select_for_purge(DEALS)]

    def test_keyword_matches_selected(self):
        ids = [d["id"] for d in select_for_purge(DEALS)]

        assert ids == ["2", "4"]

    def test_keywords_are_case_sensitive(self):
        assert select_for_purge([{"id": "5", "Deal_Name": "latest firm"}]) == []

    def test_custom_keywords_and_protection(self):
        deals = [{"id": "9", "Deal_Name": "Acme Test"}, {"id": "10", "Deal_Name": "Beta Test"}]

        selected = select_for_purge(deals, keywords=["Test"], protected=["acme"])

        assert [d["id"] for d in selected] == ["10"]


class TestPurgeCommand:
    """Test the CLI entry point."""

    def test_dry_run_deletes_nothing(self, capsys):
        with patch("tools.zoho.list_recent_deals", return_value=DEALS), \
             patch("tools.zoho.delete_deal") as mock_delete:
            code = cleanup.main(["purge", "--dry-run"])

        assert code == 0
        mock_delete.assert_not_called()
        assert "Would delete 2" in capsys.readouterr().out

    def test_purge_deletes_only_selected(self):
        with patch("tools.zoho.list_recent_deals", return_value=DEALS), \
             patch("tools.zoho.delete_deal") as mock_delete:
            code = cleanup.main(["purge"])

        assert code == 0
        assert [c.args[0] for c in mock_delete.call_args_list] == ["2", "4"]

    def test_purge_reports_failures(self):
        with patch("tools.zoho.list_recent_deals", return_value=DEALS), \
             patch("tools.zoho.delete_deal", side_effect=[RuntimeError("403"), {"status": "ok"}]):
            assert cleanup.main(["purge"]) == 1

    def test_list(self, capsys):
        with patch("tools.zoho.list_recent_deals", return_value=DEALS[:1]):
            assert cleanup.main(["list"]) == 0

        assert "Sarah Litowich Test" in capsys.readouterr().out
