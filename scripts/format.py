"""Format and lint talk2ai with ruff."""

import subprocess
import sys
from pathlib import Path

ROOT = Path(__file__).resolve().parent.parent


def targets() -> list[str]:
    paths = [str(ROOT / "talk2ai"), str(ROOT / "scripts")]
    paths.extend(str(p) for p in sorted(ROOT.glob("test_*.py")))
    return paths


def ruff(*args: str) -> None:
    subprocess.run([sys.executable, "-m", "ruff", *args], check=True, cwd=ROOT)


def main() -> None:
    """Run ruff format, then whitespace and lint fixes."""
    paths = targets()
    try:
        ruff("format", *paths)
        # whitespace-only fixes need preview + unsafe
        ruff("check", "--preview", "--fix", "--unsafe-fixes", "--select", "W291,W293,E3", *paths)
        ruff("check", "--fix", "--ignore", "E501", *paths)
    except subprocess.CalledProcessError:
        sys.exit(1)


if __name__ == "__main__":
    main()
