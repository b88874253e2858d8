"""Pytest configuration shared by all tests."""

import os
import sys
from pathlib import Path

_SRC_ROOT = Path(__file__).resolve().parents[1] / "src"
if str(_SRC_ROOT) not in sys.path:
    sys.path.insert(0, str(_SRC_ROOT))

# get_store() を呼ぶテストが作業ディレクトリに DB を作らないよう、既定は in-memory DB。
# 個別のテストは monkeypatch で DB_PATH を差し替えてからモジュールを再読み込みする。
os.environ.setdefault("DB_PATH", ":memory:")
os.environ.setdefault("STRICT_MODE", "false")
