from pathlib import Path
import sys

import pytest

sys.path.insert(0, str(Path(__file__).resolve().parents[1] / "src"))


@pytest.fixture(autouse=True)
def _allow_tmp_config_paths(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("CLAW_GATEWAY_ALLOW_WORKSPACE_PATH", "1")
    for name in ("CLAW_GATEWAY_CONFIG_PATH", "CLAW_GATEWAY_MAX_POLL_ATTEMPTS"):
        monkeypatch.delenv(name, raising=False)
