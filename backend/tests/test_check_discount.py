import os
import sys
from helpers import write_json

sys.path.append(os.path.join(os.path.dirname(os.path.dirname(os.path.abspath(__file__))), "scripts"))

from check_discount import main, run_check

def test_valid_drafts_print_breakdown(tmp_path, capsys):
    path = write_json(tmp_path / "drafts.json", [
        {"name": "Spring 15", "type": "percentage", "value": 15},
        {"name": "Loyalty 500", "type": "fixed_amount", "value": 500},
    ])
    assert run_check(path, 10000) == 0
    out = capsys.readouterr().out
    assert "[OK]" in out
    assert "Total discount: 2000.00" in out
    assert "Final amount: 8000.00" in out

def test_bottle_return_value_is_corrected_before_pricing(tmp_path, capsys):
    path = write_json(tmp_path / "draft.json", {"type": "bottle_return", "value": 1, "bottleReturnCount": 2})
    assert run_check(path, 10000) == 0
    assert "Total discount: 2000.00" in capsys.readouterr().out

def test_invalid_draft_fails(tmp_path, capsys):
    path = write_json(tmp_path / "draft.json", {"type": "bottle_return", "bottle_return_count": 7})
    assert run_check(path) == 1
    out = capsys.readouterr().out
    assert "[FAIL]" in out
    assert "No bottle return tier for 7 bottle(s)" in out

def test_cap_is_reported(tmp_path, capsys):
    path = write_json(tmp_path / "drafts.json", [
        {"type": "percentage", "value": 45},
        {"type": "fixed_amount", "value": 1000},
    ])
    assert run_check(path, 10000) == 0
    out = capsys.readouterr().out
    assert "capped at 50%" in out
    assert "Total discount: 5000.00" in out

def test_unparseable_draft(tmp_path, capsys):
    path = write_json(tmp_path / "draft.json", {"type": "voucher", "value": 10})
    assert run_check(path) == 1
    assert "Unknown discount type" in capsys.readouterr().out

def test_missing_file(tmp_path):
    assert run_check(str(tmp_path / "nope.json")) == 1

def test_usage_errors(capsys):
    assert main([]) == 2
    assert "Usage" in capsys.readouterr().out
    assert main(["draft.json", "lots"]) == 2
