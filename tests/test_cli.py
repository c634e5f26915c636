from datetime import datetime, timezone

from pixel_pal.cli.main import main


def test_onboard_ingest_sync_status(capsys):
    today = datetime.now(timezone.utc).date().isoformat()

    assert main(["onboard", "--gender", "female"]) == 0
    assert main(["ingest", "--date", today, "--steps", "26,000"]) == 0
    assert main(["sync"]) == 0

    out = capsys.readouterr().out
    assert "Recorded 26000 steps" in out
    assert "Evolved! Phase 2: Active" in out
    assert "Phase 2 (Active)" in out
    assert "7-day average: 3,714 steps/day" in out


def test_onboarding_twice_is_an_error(capsys):
    assert main(["onboard", "--gender", "male"]) == 0
    assert main(["onboard", "--gender", "male"]) == 1
    assert "already exists" in capsys.readouterr().err


def test_sync_before_onboarding_fails_cleanly(capsys):
    assert main(["sync"]) == 1
    assert "error:" in capsys.readouterr().err


def test_premium_and_paywall_commands(capsys):
    main(["onboard", "--gender", "male"])
    assert main(["premium", "on"]) == 0
    assert main(["ack-paywall"]) == 0
    assert main(["status"]) == 0

    out = capsys.readouterr().out
    assert "Premium: yes" in out
    assert "Paywall pending" not in out


def test_demo_walk_prints_frames(capsys):
    assert main(["demo-walk", "100", "105", "105", "110"]) == 0

    lines = capsys.readouterr().out.splitlines()
    assert "idle" in lines[0]
    assert any("walking frame 2" in line for line in lines)
    assert sum("idle" in line for line in lines) == 2
