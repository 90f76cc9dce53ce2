"""
入口转发

引擎以可复用的包与 CLI 提供：
  - 包名: beacon_proximity
  - CLI: beacon-proximity

此文件仅用于兼容 `python main.py` 的运行方式，会转发到 `beacon_proximity.cli:main`。
"""

import sys

from beacon_proximity.cli import main as _cli_main


def main():
    return _cli_main()


if __name__ == "__main__":  # pragma: no cover
    sys.exit(main())
