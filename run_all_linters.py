#!/usr/bin/env python3
"""執行格式化、靜態檢查與單元測試。

預設為檢查模式；加上 `--fix` 時由 Black、isort 與 Ruff 直接修正檔案。
最後執行 pytest，所有結果集中輸出於總結報告。
"""

import argparse
from pathlib import Path
import subprocess
import sys

ROOT = Path(__file__).parent
PACKAGES = ["app", "core", "infrastructure", "main.py"]


def build_commands(fix: bool) -> list[tuple[list[str], str]]:
    """依模式組出要執行的命令。"""
    py = sys.executable
    if fix:
        return [
            ([py, "-m", "black", "."], "Black 格式化"),
            ([py, "-m", "isort", "."], "isort 匯入排序"),
            ([py, "-m", "ruff", "check", ".", "--fix"], "Ruff 修正"),
        ]
    return [
        ([py, "-m", "black", ".", "--check"], "Black 格式化檢查"),
        ([py, "-m", "isort", ".", "--check-only"], "isort 匯入排序檢查"),
        ([py, "-m", "ruff", "check", "."], "Ruff 靜態檢查"),
        ([py, "-m", "pylint", *PACKAGES], "Pylint 靜態分析"),
        ([py, "-m", "pytest", "-q"], "pytest 單元測試"),
    ]


def run_command(cmd: list[str], description: str) -> tuple[bool, str]:
    print(f"\n{'=' * 60}\n{description}: {' '.join(cmd)}\n{'=' * 60}")
    try:
        result = subprocess.run(cmd, capture_output=True, text=True, check=False, cwd=ROOT)
    except OSError as e:
        print(f"❌ 無法執行: {e}")
        return False, str(e)

    output = (result.stdout + result.stderr).strip()
    print("✅ 成功" if result.returncode == 0 else "❌ 失敗")
    if output:
        print(output)
    return result.returncode == 0, output


def main() -> int:
    parser = argparse.ArgumentParser(description="Run formatters, linters and tests")
    parser.add_argument("--fix", action="store_true", help="apply formatting fixes instead of checking")
    args = parser.parse_args()

    results = [(desc, *run_command(cmd, desc)) for cmd, desc in build_commands(args.fix)]

    print(f"\n{'=' * 60}\n總結報告\n{'=' * 60}")
    for description, success, _ in results:
        print(f"{description}: {'✅ 通過' if success else '❌ 失敗'}")

    failed = [desc for desc, success, _ in results if not success]
    print(f"\n整體結果: {'❌ 失敗: ' + ', '.join(failed) if failed else '✅ 全部通過'}")
    return 1 if failed else 0


if __name__ == "__main__":
    raise SystemExit(main())
